"""
Exceptions raised by JML Lite store adapters.

Services catch these at their public boundary and return safe defaults;
only the adapters raise them.
"""

from typing import Optional


class JMLLiteError(Exception):
    """Base class for JML Lite errors."""


class StoreError(JMLLiteError):
    """A list store operation failed."""

    def __init__(self, message: str, list_name: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.list_name = list_name
        self.status_code = status_code


class ItemNotFoundError(StoreError):
    """The requested row does not exist."""

    def __init__(self, list_name: str, item_id: int):
        super().__init__(f"Item {item_id} not found in list '{list_name}'", list_name=list_name, status_code=404)
        self.item_id = item_id


class NotificationTransportError(JMLLiteError):
    """A Graph or webhook request could not be completed."""


class InvalidRowError(StoreError):
    """A row does not match the model its list is read as."""

    def __init__(self, list_name: str, item_id: Optional[int], detail: str):
        super().__init__(f"Item {item_id} in list '{list_name}' is invalid: {detail}", list_name=list_name)
        self.item_id = item_id
