"""
Audit Trail Module.

This module records workflow and notification activity to the audit trail
list. Writes are fire-and-forget: a failed write is logged and never reaches
the caller.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..background import BackgroundDispatcher
from ..constants import AUDIT_TRAIL_LIST
from ..exceptions import StoreError
from ..models import AuditEntry
from ..store.base import ListStore
from ..store.query import OrderBy, Query, all_of, eq, ge
from ..store.rows import parse_row, parse_rows

logger = logging.getLogger(__name__)


class AuditTrailService:
    """
    Append-only activity log over the audit trail list.

    Entries are write-once; the store stamps the performer (``Author``) and
    timestamp (``Created``).
    """

    def __init__(self, store: ListStore, dispatcher: Optional[BackgroundDispatcher] = None):
        """
        Initialize the audit trail.

        Args:
            store: List store holding the audit trail list
            dispatcher: Dispatcher used for detached writes
        """
        self.store = store
        self.dispatcher = dispatcher or BackgroundDispatcher()

    def log_activity(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        entity_title: Optional[str] = None,
        details: Optional[Union[str, Dict[str, Any]]] = None,
    ) -> None:
        """
        Record an activity without waiting for the write.

        Args:
            action: Action name, e.g. 'NotificationSent'
            entity_type: Kind of entity the action concerns
            entity_id: Id of the entity, if any
            entity_title: Display title of the entity
            details: Extra context; dicts are JSON-encoded
        """
        if isinstance(details, dict):
            details = json.dumps(details, default=str)

        fields = {
            "Title": action,
            "Action": action,
            "EntityType": entity_type,
            "EntityId": entity_id,
            "EntityTitle": entity_title,
            "Details": details,
        }
        fields = {key: value for key, value in fields.items() if value is not None}
        self.dispatcher.spawn(self._write(fields), f"audit {action}")

    async def _write(self, fields: Dict[str, Any]) -> None:
        try:
            await self.store.add_item(AUDIT_TRAIL_LIST, fields)
        except StoreError as e:
            logger.warning(f"Failed to write audit entry {fields.get('Action')}: {e}")

    async def get_audit_log(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        action: Optional[str] = None,
        since: Optional[datetime] = None,
        top: int = 100,
    ) -> List[AuditEntry]:
        """
        Read recent audit entries, newest first.

        Args:
            entity_type: Only entries for this entity type
            entity_id: Only entries for this entity id
            action: Only entries with this action
            since: Only entries created at or after this time
            top: Maximum number of entries

        Returns:
            Matching entries, or an empty list if the store cannot be read
        """
        query = Query(
            filter=all_of(
                eq("EntityType", entity_type) if entity_type else None,
                eq("EntityId", entity_id) if entity_id is not None else None,
                eq("Action", action) if action else None,
                ge("Created", since) if since else None,
            ),
            order_by=(OrderBy("Created", ascending=False),),
            top=top,
        )

        try:
            rows = await self.store.get_items(AUDIT_TRAIL_LIST, query)
        except StoreError as e:
            logger.error(f"Failed to read audit log: {e}")
            return []

        return parse_rows(self._to_entry, rows)

    @staticmethod
    def _to_entry(row: Dict[str, Any]) -> AuditEntry:
        author = row.get("Author")
        if isinstance(author, dict):
            author = author.get("Title")
        return parse_row(
            AuditEntry,
            {
                **row,
                "PerformedByName": author,
                "Timestamp": row.get("Created"),
            },
            AUDIT_TRAIL_LIST,
        )
