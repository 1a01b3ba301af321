"""
In-app notifications for JML Lite.

Persists notifications to the Notifications list for the app's
notification panel.
"""

import logging
from typing import List, Optional

from ..constants import NOTIFICATIONS_LIST
from ..exceptions import StoreError
from ..models import (
    InAppNotification,
    InAppNotificationType,
    InAppPriority,
    NotificationCategory,
)
from ..store.base import ListStore
from ..store.query import OrderBy, Query, all_of, eq
from ..store.rows import parse_row, parse_rows
from ..utils import Clock, utcnow

logger = logging.getLogger(__name__)


class InAppNotificationService:
    """CRUD over in-app notifications. Store failures degrade to safe defaults."""

    def __init__(self, store: ListStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    async def create_notification(self, notification: InAppNotification) -> Optional[InAppNotification]:
        """
        Persist a new notification.

        Returns:
            The stored notification, or None on failure
        """
        fields = notification.to_item(exclude={"id", "created", "read_at"})
        fields["IsRead"] = False
        fields["IsDismissed"] = False
        try:
            row = await self.store.add_item(NOTIFICATIONS_LIST, fields)
            return parse_row(InAppNotification, row, NOTIFICATIONS_LIST)
        except StoreError as e:
            logger.error(f"Error creating notification '{notification.title}': {e}")
            return None

    async def get_notifications(self, recipient_email: str, include_read: bool = True,
                                top: int = 100) -> List[InAppNotification]:
        """
        List a recipient's notifications that have not been dismissed, newest first.

        Args:
            recipient_email: Recipient to list for
            include_read: Whether to include notifications already read
            top: Maximum number returned
        """
        query = Query(
            filter=all_of(
                eq("RecipientEmail", recipient_email),
                eq("IsDismissed", False),
                None if include_read else eq("IsRead", False),
            ),
            order_by=(OrderBy("Created", ascending=False),),
            top=top,
        )
        try:
            rows = await self.store.get_items(NOTIFICATIONS_LIST, query)
        except StoreError as e:
            logger.error(f"Error fetching notifications for {recipient_email}: {e}")
            return []
        return parse_rows(lambda row: parse_row(InAppNotification, row, NOTIFICATIONS_LIST), rows)

    async def get_unread_count(self, recipient_email: str) -> int:
        return len(await self.get_notifications(recipient_email, include_read=False))

    async def mark_as_read(self, notification_id: int) -> bool:
        try:
            await self.store.update_item(
                NOTIFICATIONS_LIST, notification_id, {"IsRead": True, "ReadAt": self.clock()}
            )
        except StoreError as e:
            logger.error(f"Error marking notification {notification_id} as read: {e}")
            return False
        return True

    async def mark_all_as_read(self, recipient_email: str) -> bool:
        """Mark every unread notification of a recipient as read. False if any update failed."""
        unread = await self.get_notifications(recipient_email, include_read=False)
        results = [await self.mark_as_read(notification.id) for notification in unread]
        return all(results)

    async def dismiss(self, notification_id: int) -> bool:
        try:
            await self.store.update_item(NOTIFICATIONS_LIST, notification_id, {"IsDismissed": True})
        except StoreError as e:
            logger.error(f"Error dismissing notification {notification_id}: {e}")
            return False
        return True

    # Convenience creators

    async def notify_task_assigned(self, recipient_email: str, task_title: str, employee_name: str,
                                   category: NotificationCategory, task_id: int,
                                   action_url: Optional[str] = None) -> Optional[InAppNotification]:
        return await self.create_notification(
            InAppNotification(
                title="New Task Assigned",
                message=f'Task "{task_title}" for {employee_name} has been assigned to you.',
                notification_type=InAppNotificationType.TASK_ASSIGNED,
                category=category,
                priority=InAppPriority.MEDIUM,
                recipient_email=recipient_email,
                related_entity_type="Task",
                related_entity_id=task_id,
                action_url=action_url,
            )
        )

    async def notify_task_overdue(self, recipient_email: str, task_title: str, employee_name: str,
                                  category: NotificationCategory, days_overdue: int, task_id: int,
                                  action_url: Optional[str] = None) -> Optional[InAppNotification]:
        return await self.create_notification(
            InAppNotification(
                title="Task Overdue",
                message=(
                    f'Task "{task_title}" for {employee_name} is {days_overdue} day(s) overdue. '
                    "Please complete as soon as possible."
                ),
                notification_type=InAppNotificationType.TASK_OVERDUE,
                category=category,
                priority=InAppPriority.URGENT if days_overdue > 3 else InAppPriority.HIGH,
                recipient_email=recipient_email,
                related_entity_type="Task",
                related_entity_id=task_id,
                action_url=action_url,
            )
        )

    async def notify_approval_required(self, approver_email: str, request_title: str, requestor_name: str,
                                       approval_id: int, action_url: str) -> Optional[InAppNotification]:
        return await self.create_notification(
            InAppNotification(
                title="Approval Required",
                message=f"{requestor_name} is requesting your approval for: {request_title}",
                notification_type=InAppNotificationType.APPROVAL_REQUIRED,
                category=NotificationCategory.APPROVAL,
                priority=InAppPriority.HIGH,
                recipient_email=approver_email,
                related_entity_type="Approval",
                related_entity_id=approval_id,
                action_url=action_url,
            )
        )

    async def notify_approval_decision(self, requestor_email: str, request_title: str, approved: bool,
                                       decided_by: str, approval_id: int) -> Optional[InAppNotification]:
        decision = "approved" if approved else "rejected"
        return await self.create_notification(
            InAppNotification(
                title=f"Request {decision.capitalize()}",
                message=f'Your request "{request_title}" has been {decision} by {decided_by}.',
                notification_type=(
                    InAppNotificationType.APPROVAL_APPROVED if approved else InAppNotificationType.APPROVAL_REJECTED
                ),
                category=NotificationCategory.APPROVAL,
                priority=InAppPriority.MEDIUM,
                recipient_email=requestor_email,
                related_entity_type="Approval",
                related_entity_id=approval_id,
            )
        )
