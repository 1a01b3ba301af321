"""
In-memory list store for JML Lite.

Keeps lists in process memory with optional JSON file persistence. Used by
the test suite and by the admin CLI, which points it at a JSON snapshot of
the lists.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import ItemNotFoundError, StoreError
from ..models import as_utc
from .base import ListStore
from .query import Query, apply_query

logger = logging.getLogger(__name__)

_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")


class InMemoryListStore(ListStore):
    """
    List store backed by dictionaries.

    Every added row gets an integer ``Id`` (per list, starting at 1) and the
    system columns ``Created``, ``Modified`` and ``Author``.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None, author: str = "System"):
        """
        Initialize the store.

        Args:
            storage_path: JSON file to persist lists to. If None, lists are kept
                         in memory only.
            author: Display name stamped into the ``Author`` column of new rows
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self.author = author
        self.lists: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._next_ids: Dict[str, int] = {}

        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

        logger.info(
            f"Initialized InMemoryListStore with {'persistent' if self.storage_path else 'in-memory'} storage"
        )

    async def get_items(self, list_name: str, query: Optional[Query] = None) -> List[Dict[str, Any]]:
        rows = self.lists.get(list_name, {})
        return apply_query(rows.values(), query)

    async def get_item(self, list_name: str, item_id: int, select: Optional[List[str]] = None) -> Dict[str, Any]:
        row = self.lists.get(list_name, {}).get(int(item_id))
        if row is None:
            raise ItemNotFoundError(list_name, item_id)
        if select:
            return {key: row.get(key) for key in select}
        return dict(row)

    async def add_item(self, list_name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        item_id = self._next_ids.get(list_name, 1)
        self._next_ids[list_name] = item_id + 1

        row = {"Created": now, "Author": self.author, **fields}
        row["Id"] = item_id
        row["Modified"] = now
        self.lists.setdefault(list_name, {})[item_id] = row

        self._save_state()
        logger.debug(f"Added item {item_id} to {list_name}")
        return dict(row)

    async def update_item(self, list_name: str, item_id: int, fields: Dict[str, Any]) -> None:
        row = self.lists.get(list_name, {}).get(int(item_id))
        if row is None:
            raise ItemNotFoundError(list_name, item_id)

        row.update({key: value for key, value in fields.items() if key != "Id"})
        row["Modified"] = datetime.now(timezone.utc)

        self._save_state()
        logger.debug(f"Updated item {item_id} in {list_name}")

    async def delete_item(self, list_name: str, item_id: int) -> None:
        rows = self.lists.get(list_name, {})
        if int(item_id) not in rows:
            raise ItemNotFoundError(list_name, item_id)

        del rows[int(item_id)]
        self._save_state()
        logger.debug(f"Deleted item {item_id} from {list_name}")

    def seed(self, list_name: str, rows: List[Dict[str, Any]]) -> List[int]:
        """
        Load rows synchronously, keeping any ``Id`` they carry.

        Args:
            list_name: Target list
            rows: Rows to insert

        Returns:
            Ids of the inserted rows
        """
        ids = []
        target = self.lists.setdefault(list_name, {})
        for fields in rows:
            item_id = int(fields.get("Id") or self._next_ids.get(list_name, 1))
            target[item_id] = {"Created": datetime.now(timezone.utc), "Author": self.author, **fields, "Id": item_id}
            self._next_ids[list_name] = max(self._next_ids.get(list_name, 1), item_id + 1)
            ids.append(item_id)
        self._save_state()
        return ids

    def _save_state(self):
        """Write all lists to the JSON file, if one is configured."""
        if not self.storage_path:
            return

        state_data = {
            "lists": {name: list(rows.values()) for name, rows in self.lists.items()},
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

        try:
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(state_data, f, indent=2, default=_json_default)
        except OSError as e:
            logger.error(f"Failed to save state to {self.storage_path}: {e}")
            raise StoreError(f"Failed to save state: {e}") from e

    def _load_state(self):
        """Load lists from the JSON file, if it exists."""
        if not self.storage_path or not self.storage_path.exists():
            return

        try:
            with open(self.storage_path, encoding="utf-8") as f:
                state_data = json.load(f)

            for list_name, rows in state_data.get("lists", {}).items():
                target = self.lists.setdefault(list_name, {})
                for row in rows:
                    row = {key: _revive(value) for key, value in row.items()}
                    target[int(row["Id"])] = row
                self._next_ids[list_name] = max(target, default=0) + 1

            logger.info(f"Loaded {len(self.lists)} lists from {self.storage_path}")

        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load state from {self.storage_path}: {e}")
            # Continue with empty lists if load fails


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return str(value)


def _revive(value: Any) -> Any:
    """Turn ISO datetime strings from the JSON snapshot back into datetimes."""
    if isinstance(value, str) and _ISO_DATETIME.match(value):
        try:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    return value
