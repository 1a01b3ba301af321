"""
SharePoint Online adapters for JML Lite.

Implements the list store and user directory contracts over the SharePoint
REST API. Typed queries are compiled to OData parameters; bearer tokens come
from an azure-identity async credential.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx
from azure.core.exceptions import ClientAuthenticationError
from azure.identity.aio import DefaultAzureCredential

from ..exceptions import ItemNotFoundError, StoreError
from ..models import SiteUser, as_utc
from .base import ListStore
from .directory import UserDirectory
from .query import Query, to_odata_params

logger = logging.getLogger(__name__)

JSON_NOMETADATA = "application/json;odata=nometadata"


def _quote(name: str) -> str:
    return name.replace("'", "''")


def _serialise(fields: Dict[str, Any]) -> Dict[str, Any]:
    body = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            value = as_utc(value).isoformat().replace("+00:00", "Z")
        body[key] = value
    return body


class SharePointClient:
    """
    Minimal authenticated REST client for one SharePoint site.

    Shared by SharePointListStore and SharePointUserDirectory.
    """

    def __init__(self, site_url: str, credential: Optional[Any] = None,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the client.

        Args:
            site_url: Absolute site URL, e.g. https://contoso.sharepoint.com/sites/hr
            credential: azure-identity async credential. Defaults to DefaultAzureCredential.
            client: Optional injected httpx client for testing / transport control.
        """
        self.site_url = site_url.rstrip("/")
        parts = urlsplit(self.site_url)
        self.scope = f"{parts.scheme}://{parts.netloc}/.default"
        self.credential = credential if credential is not None else DefaultAzureCredential()
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def request(self, method: str, path: str, *, params: Optional[Dict[str, str]] = None,
                      json: Optional[Dict[str, Any]] = None,
                      headers: Optional[Dict[str, str]] = None,
                      list_name: Optional[str] = None) -> httpx.Response:
        """
        Send an authenticated request to the site REST API.

        Raises:
            StoreError: On authentication failure, transport failure or a non-2xx response
        """
        try:
            token = await self.credential.get_token(self.scope)
        except ClientAuthenticationError as e:
            raise StoreError(f"Failed to acquire SharePoint token: {e}", list_name=list_name) from e

        request_headers = {
            "Authorization": f"Bearer {token.token}",
            "Accept": JSON_NOMETADATA,
        }
        if json is not None:
            request_headers["Content-Type"] = JSON_NOMETADATA
        request_headers.update(headers or {})

        url = f"{self.site_url}/_api/{path}"
        try:
            response = await self._client.request(method, url, params=params, json=json, headers=request_headers)
        except httpx.HTTPError as e:
            raise StoreError(f"SharePoint request failed: {e}", list_name=list_name) from e

        if response.status_code >= 400:
            raise StoreError(
                f"SharePoint returned HTTP {response.status_code}: {response.text}",
                list_name=list_name,
                status_code=response.status_code,
            )
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class SharePointListStore(ListStore):
    """List store over SharePoint list REST endpoints."""

    def __init__(self, client: SharePointClient):
        self.client = client

    def _items_path(self, list_name: str) -> str:
        return f"web/lists/getbytitle('{_quote(list_name)}')/items"

    async def get_items(self, list_name: str, query: Optional[Query] = None) -> List[Dict[str, Any]]:
        response = await self.client.request(
            "GET", self._items_path(list_name), params=to_odata_params(query), list_name=list_name
        )
        return response.json().get("value", [])

    async def get_item(self, list_name: str, item_id: int, select: Optional[List[str]] = None) -> Dict[str, Any]:
        params = {"$select": ",".join(select)} if select else None
        try:
            response = await self.client.request(
                "GET", f"{self._items_path(list_name)}({int(item_id)})", params=params, list_name=list_name
            )
        except StoreError as e:
            if e.status_code == 404:
                raise ItemNotFoundError(list_name, item_id) from e
            raise
        return response.json()

    async def add_item(self, list_name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.request(
            "POST", self._items_path(list_name), json=_serialise(fields), list_name=list_name
        )
        row = response.json()
        logger.debug(f"Added item {row.get('Id')} to {list_name}")
        return row

    async def update_item(self, list_name: str, item_id: int, fields: Dict[str, Any]) -> None:
        await self.client.request(
            "POST",
            f"{self._items_path(list_name)}({int(item_id)})",
            json=_serialise(fields),
            headers={"X-HTTP-Method": "MERGE", "IF-MATCH": "*"},
            list_name=list_name,
        )

    async def delete_item(self, list_name: str, item_id: int) -> None:
        await self.client.request(
            "POST",
            f"{self._items_path(list_name)}({int(item_id)})",
            headers={"X-HTTP-Method": "DELETE", "IF-MATCH": "*"},
            list_name=list_name,
        )

    async def aclose(self) -> None:
        await self.client.aclose()


class SharePointUserDirectory(UserDirectory):
    """User directory over the SharePoint site users and groups endpoints."""

    def __init__(self, client: SharePointClient):
        self.client = client

    async def get_user_by_id(self, user_id: int) -> SiteUser:
        try:
            response = await self.client.request("GET", f"web/getuserbyid({int(user_id)})")
        except StoreError as e:
            if e.status_code == 404:
                raise ItemNotFoundError("SiteUsers", user_id) from e
            raise
        return SiteUser.model_validate(response.json())

    async def get_current_user(self) -> SiteUser:
        response = await self.client.request("GET", "web/currentuser")
        return SiteUser.model_validate(response.json())

    async def get_users_by_group(self, group_name: str) -> List[SiteUser]:
        response = await self.client.request("GET", f"web/sitegroups/getbyname('{_quote(group_name)}')/users")
        return [SiteUser.model_validate(row) for row in response.json().get("value", [])]
