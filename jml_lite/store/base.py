"""
List store contract for JML Lite.

A list store holds named lists of rows keyed by an integer ``Id``. Rows are
plain dicts keyed by column name. Adapters raise StoreError (or
ItemNotFoundError) on failure; services decide how to degrade.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .query import Query


class ListStore(ABC):
    """Abstract async list store."""

    @abstractmethod
    async def get_items(self, list_name: str, query: Optional[Query] = None) -> List[Dict[str, Any]]:
        """
        Read rows from a list.

        Args:
            list_name: Name of the list
            query: Optional filter, projection, ordering and limit

        Returns:
            Matching rows
        """

    @abstractmethod
    async def get_item(self, list_name: str, item_id: int, select: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Read a single row by id.

        Raises:
            ItemNotFoundError: If no row has the id
        """

    @abstractmethod
    async def add_item(self, list_name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add a row.

        Returns:
            The stored row, including its assigned ``Id``
        """

    @abstractmethod
    async def update_item(self, list_name: str, item_id: int, fields: Dict[str, Any]) -> None:
        """Merge the given fields into an existing row."""

    @abstractmethod
    async def delete_item(self, list_name: str, item_id: int) -> None:
        """Delete a row."""

    async def aclose(self) -> None:
        """Release any resources held by the store."""
