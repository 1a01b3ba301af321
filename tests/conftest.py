"""
Shared fixtures for the JML Lite test suite.

Time is frozen at NOW so due-date arithmetic is deterministic, the store is
in memory, and outbound HTTP goes through an httpx MockTransport that
records every request.
"""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import httpx
import pytest

from jml_lite.background import BackgroundDispatcher
from jml_lite.constants import CONFIGURATION_LIST
from jml_lite.exceptions import StoreError
from jml_lite.models import SiteUser
from jml_lite.store import InMemoryListStore, InMemoryUserDirectory

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)
TODAY = datetime(2026, 3, 10, tzinfo=timezone.utc)

PRIMARY_URL = "https://contoso.webhook.office.com/primary"
HR_URL = "https://contoso.webhook.office.com/hr"
IT_URL = "https://contoso.webhook.office.com/it"


def days_from_now(days: float) -> datetime:
    return NOW + timedelta(days=days)


class FrozenClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingTransport:
    """httpx handler that records requests and answers with a per-URL status."""

    def __init__(self, status_code: int = 200, text: str = "1"):
        self.status_code = status_code
        self.text = text
        self.statuses: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.get(str(request.url), self.status_code)
        text = self.text if status < 400 else httpx.codes.get_reason_phrase(status)
        return httpx.Response(status, text=text)

    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]

    def bodies(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]


class FakeCredential:
    """Stands in for an azure-identity async credential."""

    def __init__(self, token: str = "test-token", error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.scopes: List[str] = []

    async def get_token(self, *scopes):
        self.scopes.extend(scopes)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(token=self.token, expires_on=0)


class FailingListStore(InMemoryListStore):
    """In-memory store whose operations fail for selected lists."""

    def __init__(self, failing_lists=(), fail_reads=True, fail_writes=True):
        super().__init__()
        self.failing_lists = set(failing_lists)
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def _check(self, list_name: str, read: bool) -> None:
        if list_name in self.failing_lists and (self.fail_reads if read else self.fail_writes):
            raise StoreError("Service unavailable", list_name=list_name, status_code=503)

    async def get_items(self, list_name, query=None):
        self._check(list_name, read=True)
        return await super().get_items(list_name, query)

    async def get_item(self, list_name, item_id, select=None):
        self._check(list_name, read=True)
        return await super().get_item(list_name, item_id, select)

    async def add_item(self, list_name, fields):
        self._check(list_name, read=False)
        return await super().add_item(list_name, fields)

    async def update_item(self, list_name, item_id, fields):
        self._check(list_name, read=False)
        return await super().update_item(list_name, item_id, fields)


@pytest.fixture
def clock():
    """Frozen clock at NOW."""
    return FrozenClock()


@pytest.fixture
def store():
    """Empty in-memory list store."""
    return InMemoryListStore()


@pytest.fixture
def dispatcher():
    """Background dispatcher tests can drain."""
    return BackgroundDispatcher()


@pytest.fixture
def directory():
    """Directory with an admin (the current user), an approver and an assignee."""
    return InMemoryUserDirectory(
        users=[
            SiteUser(id=1, title="Alex Admin", email="alex@contoso.com"),
            SiteUser(id=2, title="Sam Approver", email="sam@contoso.com"),
            SiteUser(id=3, title="Jo Assignee", email="jo@contoso.com"),
        ],
        groups={"HR": [1, 2]},
        current_user_id=1,
    )


@pytest.fixture
def transport():
    """Recording transport answering 200 by default."""
    return RecordingTransport()


@pytest.fixture
def http_client(transport):
    """httpx client routed through the recording transport."""
    return httpx.AsyncClient(transport=httpx.MockTransport(transport))


@pytest.fixture
def webhooks_configured(store):
    """Configuration list with primary, HR and IT webhooks and no enabled flag."""
    store.seed(
        CONFIGURATION_LIST,
        [
            {"Title": "TeamsWebhookPrimary", "ConfigKey": "TeamsWebhookPrimary", "ConfigValue": PRIMARY_URL},
            {"Title": "TeamsWebhookHR", "ConfigKey": "TeamsWebhookHR", "ConfigValue": HR_URL},
            {"Title": "TeamsWebhookIT", "ConfigKey": "TeamsWebhookIT", "ConfigValue": IT_URL},
        ],
    )
    return store
