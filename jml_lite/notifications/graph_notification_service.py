"""
Email notifications for JML Lite via Microsoft Graph.

Renders task and approval emails and sends them through the Graph
``sendMail`` endpoint. Every attempt is audited; when Graph is unavailable
the email is recorded as queued in the audit trail instead of being sent.
"""

import logging
from typing import Any, Dict, List, Optional

from ..audit.audit_trail import AuditTrailService
from ..exceptions import NotificationTransportError
from ..models import (
    ApprovalNotification,
    EmailImportance,
    NotificationPayload,
    NotificationRecipient,
    TaskNotification,
)
from ..utils import Clock, utcnow
from . import email_templates
from .cards import build_task_adaptive_card
from .graph_client import GraphClient

logger = logging.getLogger(__name__)


class GraphNotificationService:
    """
    Sends notification emails through Microsoft Graph.

    Without a Graph client the service degrades to audit-only: nothing is
    sent, every send returns False and is logged as ``NotificationQueued``.
    """

    def __init__(self, audit: AuditTrailService, graph_client: Optional[GraphClient] = None,
                 clock: Clock = utcnow):
        """
        Initialize the service.

        Args:
            audit: Audit trail that records every send attempt
            graph_client: Authenticated Graph client, or None when Graph is not available
            clock: Source of the current time
        """
        self.audit = audit
        self.graph_client = graph_client
        self.clock = clock

    def is_graph_available(self) -> bool:
        """Check whether a Graph client is configured."""
        return self.graph_client is not None

    async def send_email(self, payload: NotificationPayload) -> bool:
        """
        Send an email.

        Args:
            payload: Rendered email

        Returns:
            True if Graph accepted the message
        """
        if self.graph_client is None:
            logger.warning("Graph client not available, logging email to audit trail")
            self._log_to_audit("Email", payload)
            return False

        importance = EmailImportance(payload.priority)
        message = {
            "subject": payload.subject,
            "body": {
                "contentType": "HTML" if payload.body_html else "Text",
                "content": payload.body_html or payload.body,
            },
            "toRecipients": [
                {"emailAddress": {"address": r.email, "name": r.display_name}} for r in payload.recipients
            ],
            "importance": importance.value,
        }

        try:
            await self.graph_client.send_mail(message, save_to_sent_items=False)
        except NotificationTransportError as e:
            logger.error(f"Error sending email '{payload.subject}': {e}")
            self._log_to_audit("Email", payload, success=False, error=str(e))
            return False

        logger.info(f"Email sent to {len(payload.recipients)} recipients")
        self._log_to_audit("Email", payload, success=True)
        return True

    async def notify_task_assigned(self, notification: TaskNotification) -> bool:
        """Email the assignee of a newly assigned task."""
        if notification.assigned_to is None:
            logger.warning(f"Task '{notification.task_title}' has no assignee to notify")
            return False
        return await self.send_email(email_templates.task_assigned_email(notification, self.clock()))

    async def notify_task_completed(
        self,
        task_title: str,
        employee_name: str,
        process_type: str,
        completed_by: str,
        recipients: List[NotificationRecipient],
    ) -> bool:
        """Email stakeholders that a task was completed."""
        payload = email_templates.task_completed_email(
            task_title, employee_name, process_type, completed_by, recipients, self.clock()
        )
        return await self.send_email(payload)

    async def notify_task_overdue(self, notification: TaskNotification) -> bool:
        """Email the assignee of an overdue task."""
        if notification.assigned_to is None:
            logger.warning(f"Overdue task '{notification.task_title}' has no assignee to notify")
            return False
        return await self.send_email(email_templates.task_overdue_email(notification, self.clock()))

    async def notify_approval_required(self, notification: ApprovalNotification) -> bool:
        """Email an approver about a pending request."""
        if notification.approver is None:
            logger.warning(f"Approval '{notification.request_title}' has no approver to notify")
            return False
        return await self.send_email(email_templates.approval_required_email(notification))

    async def notify_approval_decision(
        self,
        request_title: str,
        employee_name: str,
        decision: str,
        decision_by: str,
        comments: Optional[str],
        recipient: NotificationRecipient,
    ) -> bool:
        """Email a requestor the outcome of their request ('Approved' or 'Rejected')."""
        payload = email_templates.approval_decision_email(
            request_title, employee_name, decision, decision_by, comments, recipient, self.clock()
        )
        return await self.send_email(payload)

    def build_task_adaptive_card(self, notification: TaskNotification) -> Dict[str, Any]:
        """Build the Adaptive Card used for task chat messages."""
        return build_task_adaptive_card(notification)

    def _log_to_audit(self, notification_type: str, payload: NotificationPayload,
                      success: bool = False, error: Optional[str] = None) -> None:
        self.audit.log_activity(
            action="NotificationSent" if success else "NotificationQueued",
            entity_type="Notification",
            entity_id=0,
            entity_title=payload.subject,
            details={
                "type": notification_type,
                "recipients": [r.email for r in payload.recipients],
                "subject": payload.subject,
                "success": success,
                "error": error,
                "timestamp": self.clock().isoformat(),
            },
        )
