"""
Microsoft Graph transport for JML Lite.

A thin wrapper over httpx that authenticates with an azure-identity async
credential and posts to the Graph ``sendMail`` endpoint.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from azure.core.exceptions import ClientAuthenticationError

from ..constants import GRAPH_BASE_URL, GRAPH_SCOPE
from ..exceptions import NotificationTransportError

logger = logging.getLogger(__name__)


class GraphClient:
    """Authenticated Microsoft Graph client (delegated ``/me`` endpoints)."""

    def __init__(self, credential: Any, client: Optional[httpx.AsyncClient] = None,
                 base_url: str = GRAPH_BASE_URL):
        """
        Initialize the Graph client.

        Args:
            credential: azure-identity async credential (anything with ``async get_token(*scopes)``)
            client: Optional injected httpx client for testing / transport control.
            base_url: Graph API root
        """
        self.credential = credential
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def _headers(self) -> Dict[str, str]:
        try:
            token = await self.credential.get_token(GRAPH_SCOPE)
        except ClientAuthenticationError as e:
            raise NotificationTransportError(f"Failed to acquire Graph token: {e}") from e
        return {"Authorization": f"Bearer {token.token}", "Content-Type": "application/json"}

    async def send_mail(self, message: Dict[str, Any], save_to_sent_items: bool = False) -> None:
        """
        Send a mail message as the signed-in user.

        Args:
            message: Graph ``message`` resource
            save_to_sent_items: Whether Graph keeps a copy in Sent Items

        Raises:
            NotificationTransportError: If the token, the request or the response fails
        """
        headers = await self._headers()
        try:
            response = await self._client.post(
                f"{self.base_url}/me/sendMail",
                json={"message": message, "saveToSentItems": save_to_sent_items},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise NotificationTransportError(f"Graph request failed: {e}") from e

        if response.status_code >= 400:
            raise NotificationTransportError(f"HTTP {response.status_code}: {response.text}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
