"""
User directory for JML Lite.

Resolves site user ids to contact details for notification recipients and
approval requestors.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from ..exceptions import ItemNotFoundError, StoreError
from ..models import SiteUser

logger = logging.getLogger(__name__)


class UserDirectory(ABC):
    """Abstract async user directory."""

    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> SiteUser:
        """
        Look up a user by site id.

        Raises:
            ItemNotFoundError: If the user does not exist
            StoreError: If the directory cannot be reached
        """

    @abstractmethod
    async def get_current_user(self) -> SiteUser:
        """Return the user the directory is acting as."""

    @abstractmethod
    async def get_users_by_group(self, group_name: str) -> List[SiteUser]:
        """Return the members of a site group."""


class InMemoryUserDirectory(UserDirectory):
    """Directory backed by a fixed set of users and groups."""

    def __init__(
        self,
        users: Optional[Iterable[SiteUser]] = None,
        groups: Optional[Dict[str, List[int]]] = None,
        current_user_id: Optional[int] = None,
    ):
        self.users: Dict[int, SiteUser] = {user.id: user for user in users or []}
        self.groups: Dict[str, List[int]] = dict(groups or {})
        self.current_user_id = current_user_id

    def add_user(self, user: SiteUser, groups: Iterable[str] = ()) -> None:
        self.users[user.id] = user
        for group_name in groups:
            self.groups.setdefault(group_name, []).append(user.id)

    async def get_user_by_id(self, user_id: int) -> SiteUser:
        user = self.users.get(user_id)
        if user is None:
            raise ItemNotFoundError("SiteUsers", user_id)
        return user

    async def get_current_user(self) -> SiteUser:
        if self.current_user_id is None:
            raise StoreError("No current user configured")
        return await self.get_user_by_id(self.current_user_id)

    async def get_users_by_group(self, group_name: str) -> List[SiteUser]:
        if group_name not in self.groups:
            raise StoreError(f"Group '{group_name}' not found")
        return [self.users[user_id] for user_id in self.groups[group_name] if user_id in self.users]
