"""
Tests for the Graph client and the Graph Notification Service.
"""

import json

import httpx
import pytest
from azure.core.exceptions import ClientAuthenticationError

from conftest import FakeCredential, days_from_now
from jml_lite.audit import AuditTrailService
from jml_lite.constants import AUDIT_TRAIL_LIST
from jml_lite.exceptions import NotificationTransportError
from jml_lite.models import ApprovalNotification, NotificationRecipient, TaskNotification
from jml_lite.notifications import GraphClient, GraphNotificationService

SEND_MAIL_URL = "https://graph.microsoft.com/v1.0/me/sendMail"
JO = NotificationRecipient(user_id=3, email="jo@contoso.com", display_name="Jo Assignee")


def task_notification(**overrides):
    fields = {
        "task_id": 5,
        "task_title": "Set up laptop",
        "task_category": "IT",
        "process_type": "Onboarding",
        "employee_name": "Casey New",
        "assigned_to": JO,
        "due_date": days_from_now(2),
    }
    fields.update(overrides)
    return TaskNotification(**fields)


@pytest.fixture
def credential():
    return FakeCredential()


@pytest.fixture
def graph_client(credential, http_client):
    return GraphClient(credential, http_client)


@pytest.fixture
def audit(store, dispatcher):
    return AuditTrailService(store, dispatcher)


@pytest.fixture
def service(audit, graph_client, clock):
    return GraphNotificationService(audit, graph_client, clock)


async def audit_rows(store, dispatcher):
    await dispatcher.drain()
    return await store.get_items(AUDIT_TRAIL_LIST)


class TestGraphClient:
    """Test cases for GraphClient."""

    @pytest.mark.asyncio
    async def test_send_mail_request(self, graph_client, credential, transport):
        await graph_client.send_mail({"subject": "Hi"})

        [request] = transport.requests
        assert str(request.url) == SEND_MAIL_URL
        assert request.headers["Authorization"] == "Bearer test-token"
        assert json.loads(request.content) == {"message": {"subject": "Hi"}, "saveToSentItems": False}
        assert credential.scopes == ["https://graph.microsoft.com/.default"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, graph_client, transport):
        transport.statuses[SEND_MAIL_URL] = 403

        with pytest.raises(NotificationTransportError, match="HTTP 403: Forbidden"):
            await graph_client.send_mail({"subject": "Hi"})

    @pytest.mark.asyncio
    async def test_auth_error_raises(self, http_client, transport):
        client = GraphClient(FakeCredential(error=ClientAuthenticationError("expired")), http_client)

        with pytest.raises(NotificationTransportError, match="Failed to acquire Graph token"):
            await client.send_mail({"subject": "Hi"})
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, credential):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = GraphClient(credential, httpx.AsyncClient(transport=httpx.MockTransport(refuse)))
        with pytest.raises(NotificationTransportError, match="Graph request failed"):
            await client.send_mail({"subject": "Hi"})


class TestGraphNotificationService:
    """Test cases for GraphNotificationService."""

    @pytest.mark.asyncio
    async def test_without_client_email_is_queued(self, audit, store, dispatcher, clock):
        """No Graph client: nothing is sent and the email is audited as queued."""
        service = GraphNotificationService(audit, None, clock)

        assert service.is_graph_available() is False
        assert await service.notify_task_assigned(task_notification()) is False

        [row] = await audit_rows(store, dispatcher)
        assert row["Action"] == "NotificationQueued"
        details = json.loads(row["Details"])
        assert details["recipients"] == ["jo@contoso.com"]
        assert details["success"] is False

    @pytest.mark.asyncio
    async def test_task_assigned_message(self, service, transport, store, dispatcher):
        assert await service.notify_task_assigned(task_notification()) is True

        message = transport.bodies()[0]["message"]
        assert message["subject"] == "[JML Lite] Task Assigned: Set up laptop"
        assert message["body"]["contentType"] == "HTML"
        assert message["toRecipients"] == [{"emailAddress": {"address": "jo@contoso.com", "name": "Jo Assignee"}}]
        assert message["importance"] == "normal"
        assert [row["Action"] for row in await audit_rows(store, dispatcher)] == ["NotificationSent"]

    @pytest.mark.asyncio
    async def test_overdue_is_high_importance(self, service, transport):
        assert await service.notify_task_overdue(task_notification(due_date=days_from_now(-2))) is True
        assert transport.bodies()[0]["message"]["importance"] == "high"

    @pytest.mark.asyncio
    async def test_failure_is_audited(self, service, transport, store, dispatcher):
        transport.statuses[SEND_MAIL_URL] = 500

        assert await service.notify_task_assigned(task_notification()) is False

        [row] = await audit_rows(store, dispatcher)
        assert row["Action"] == "NotificationQueued"
        assert json.loads(row["Details"])["error"] == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_missing_recipient_sends_nothing(self, service, transport):
        assert await service.notify_task_assigned(task_notification(assigned_to=None)) is False
        assert await service.notify_task_overdue(task_notification(assigned_to=None)) is False
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_approval_required(self, service, transport):
        sam = NotificationRecipient(user_id=2, email="sam@contoso.com", display_name="Sam Approver")
        sent = await service.notify_approval_required(
            ApprovalNotification(
                approval_type="Equipment Request",
                request_title="Equipment Request: Laptop for Casey New",
                employee_name="Casey New",
                requestor_name="Alex Admin",
                approver=sam,
                action_url="https://contoso/jml?view=approvals&id=1",
            )
        )

        assert sent is True
        message = transport.bodies()[0]["message"]
        assert message["toRecipients"][0]["emailAddress"]["address"] == "sam@contoso.com"
        assert message["importance"] == "high"

    @pytest.mark.asyncio
    async def test_task_completed_and_decision(self, service, transport):
        alex = NotificationRecipient(email="alex@contoso.com", display_name="Alex Admin")

        assert await service.notify_task_completed("Laptop", "Casey New", "Onboarding", "Jo", [alex, JO])
        assert await service.notify_approval_decision("Laptop", "Casey New", "Approved", "Sam", None, alex)

        completed, decision = [body["message"] for body in transport.bodies()]
        assert completed["subject"] == "[JML Lite] Task Completed: Laptop"
        assert len(completed["toRecipients"]) == 2
        assert completed["importance"] == "low"
        assert decision["subject"] == "[Approved] Laptop"

    def test_task_adaptive_card(self, service):
        card = service.build_task_adaptive_card(task_notification(action_url="https://contoso/jml"))
        assert card["body"][0]["items"][0]["text"] == "New Task Assigned"
        assert card["actions"] == [{"type": "Action.OpenUrl", "title": "View Task", "url": "https://contoso/jml"}]
