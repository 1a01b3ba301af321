"""
Teams channel notifications for JML Lite via incoming webhooks.

Webhook URLs live in the Configuration list and are cached per service
instance for five minutes. Cards are posted with httpx; failures are
returned as DeliveryResult values and audited, never raised or retried.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx

from ..audit.audit_trail import AuditTrailService
from ..constants import (
    CONFIGURATION_LIST,
    SYSTEM_NAME,
    WEBHOOK_CONFIG_TTL_SECONDS,
    WEBHOOK_ENABLED_KEY,
    WEBHOOK_HR_KEY,
    WEBHOOK_IT_KEY,
    WEBHOOK_KEY_MARKER,
    WEBHOOK_LEGACY_PRIMARY_KEY,
    WEBHOOK_MANAGER_KEY,
    WEBHOOK_PRIMARY_KEY,
)
from ..exceptions import StoreError
from ..models import (
    ApprovalNotification,
    Fact,
    NotificationCategory,
    Priority,
    ProcessLabel,
    ProcessNotification,
    TaskNotification,
    WebhookConfig,
    WebhookMessage,
    WebhookTarget,
)
from ..store.base import ListStore
from ..store.query import Query, contains, eq
from ..utils import Clock, format_timestamp, utcnow, validate_webhook_url, whole_days_between
from .cards import (
    build_approval_card,
    build_general_card,
    build_process_card,
    build_task_card,
    webhook_envelope,
)
from .results import DeliveryResult

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = {
    WEBHOOK_PRIMARY_KEY: "primary_webhook_url",
    WEBHOOK_LEGACY_PRIMARY_KEY: "primary_webhook_url",
    WEBHOOK_HR_KEY: "hr_webhook_url",
    WEBHOOK_IT_KEY: "it_webhook_url",
    WEBHOOK_MANAGER_KEY: "manager_webhook_url",
}


class WebhookConfigCache:
    """A single cached WebhookConfig with an expiry time."""

    def __init__(self, ttl_seconds: int = WEBHOOK_CONFIG_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.value: Optional[WebhookConfig] = None
        self.expires_at: Optional[datetime] = None

    def get(self, now: datetime) -> Optional[WebhookConfig]:
        if self.value is not None and self.expires_at is not None and now < self.expires_at:
            return self.value
        return None

    def set(self, value: WebhookConfig, now: datetime) -> None:
        self.value = value
        self.expires_at = now + self.ttl

    def invalidate(self) -> None:
        self.value = None
        self.expires_at = None


class TeamsWebhookService:
    """
    Posts Adaptive Cards to Teams channels.

    Every send method returns False without any HTTP call when webhooks are
    disabled or no primary URL is configured.
    """

    def __init__(self, store: ListStore, audit: AuditTrailService,
                 client: Optional[httpx.AsyncClient] = None, clock: Clock = utcnow):
        """
        Initialize the service.

        Args:
            store: List store holding the Configuration list
            audit: Audit trail that records every send attempt
            client: Optional injected httpx client for testing / transport control.
            clock: Source of the current time
        """
        self.store = store
        self.audit = audit
        self.clock = clock
        self.cache = WebhookConfigCache()
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # Configuration

    async def get_webhook_config(self) -> WebhookConfig:
        """
        Load webhook settings from the Configuration list.

        Returns:
            The cached config when fresh; otherwise a freshly read config. A
            store failure yields a disabled config that is not cached.
        """
        now = self.clock()
        cached = self.cache.get(now)
        if cached is not None:
            return cached

        try:
            rows = await self.store.get_items(
                CONFIGURATION_LIST,
                Query(filter=contains("ConfigKey", WEBHOOK_KEY_MARKER), select=("ConfigKey", "ConfigValue")),
            )
        except StoreError as e:
            logger.error(f"Error loading webhook config: {e}")
            return WebhookConfig()

        values: Dict[str, Any] = {"is_enabled": False}
        has_enabled_flag = False
        for row in rows:
            key = row.get("ConfigKey")
            value = row.get("ConfigValue") or None
            if key in _CONFIG_FIELDS:
                values[_CONFIG_FIELDS[key]] = value
            elif key == WEBHOOK_ENABLED_KEY:
                has_enabled_flag = True
                values["is_enabled"] = (value or "").lower() == "true"

        # No explicit flag: enabled whenever a primary URL exists
        if values.get("primary_webhook_url") and not has_enabled_flag:
            values["is_enabled"] = True

        config = WebhookConfig(**values)
        self.cache.set(config, now)
        return config

    async def save_webhook_config(self, key: str, value: str) -> bool:
        """
        Insert or update a webhook configuration value.

        Args:
            key: Configuration key, e.g. 'TeamsWebhookPrimary'
            value: New value

        Returns:
            True if saved
        """
        try:
            existing = await self.store.get_items(
                CONFIGURATION_LIST, Query(filter=eq("ConfigKey", key), select=("Id",))
            )
            if existing:
                await self.store.update_item(CONFIGURATION_LIST, existing[0]["Id"], {"ConfigValue": value})
            else:
                await self.store.add_item(
                    CONFIGURATION_LIST, {"Title": key, "ConfigKey": key, "ConfigValue": value}
                )
        except StoreError as e:
            logger.error(f"Error saving webhook config {key}: {e}")
            return False
        finally:
            self.cache.invalidate()

        logger.info(f"Saved webhook config {key}")
        return True

    async def test_webhook(self, webhook_url: str) -> DeliveryResult:
        """
        Send a test card straight to a webhook URL.

        Args:
            webhook_url: URL to test (need not be saved)

        Returns:
            DeliveryResult with the HTTP error text on failure
        """
        errors = validate_webhook_url(webhook_url)
        if errors:
            return DeliveryResult(False, error="; ".join(errors), channel="test")

        card = build_general_card(
            WebhookMessage(
                title=f"{SYSTEM_NAME} Webhook Test",
                message=f"This is a test message from {SYSTEM_NAME}. "
                        "If you see this, your webhook is configured correctly!",
                category=NotificationCategory.SYSTEM,
                priority=Priority.LOW,
                facts=[
                    Fact(title="Timestamp", value=format_timestamp(self.clock())),
                    Fact(title="Test Type", value="Connection Verification"),
                ],
            )
        )
        return await self._send_to_webhook(webhook_url, card, "test")

    # Transport

    async def _send_to_webhook(self, webhook_url: str, card: Dict[str, Any],
                               channel: str = "primary") -> DeliveryResult:
        try:
            response = await self._client.post(webhook_url, json=webhook_envelope(card))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Error sending to {channel} webhook: {e}")
            return DeliveryResult(False, error=str(e) or e.__class__.__name__, channel=channel)

        if not response.is_success:
            logger.error(f"Webhook error ({channel}): {response.status_code} {response.text}")
            return DeliveryResult(False, error=f"HTTP {response.status_code}: {response.text}",
                                  status_code=response.status_code, channel=channel)

        return DeliveryResult(True, status_code=response.status_code, channel=channel)

    async def _primary_url(self) -> Optional[str]:
        config = await self.get_webhook_config()
        if not config.is_enabled or not config.primary_webhook_url:
            logger.debug("Webhooks disabled or not configured")
            return None
        return config.primary_webhook_url

    # Send methods

    async def send_notification(self, message: WebhookMessage) -> bool:
        """Send a general card to the primary channel."""
        url = await self._primary_url()
        if url is None:
            return False

        result = await self._send_to_webhook(url, build_general_card(message))
        self.audit.log_activity(
            action="TeamsNotificationSent" if result else "TeamsNotificationFailed",
            entity_type="Notification",
            entity_id=0,
            entity_title=message.title,
            details={
                "category": message.category,
                "priority": message.priority,
                **result.audit_details(),
            },
        )
        return result.success

    async def send_task_notification(self, message: TaskNotification) -> bool:
        """Send a task assignment card to the primary channel."""
        url = await self._primary_url()
        if url is None:
            return False

        result = await self._send_to_webhook(url, build_task_card(message, self.clock()))
        self.audit.log_activity(
            action="TeamsTaskNotificationSent" if result else "TeamsTaskNotificationFailed",
            entity_type="Task",
            entity_id=message.task_id,
            entity_title=message.task_title,
            details={
                "processType": message.process_type,
                "employeeName": message.employee_name,
                "assignee": message.assigned_to.display_name if message.assigned_to else None,
                **result.audit_details(),
            },
        )
        return result.success

    async def send_overdue_task_reminder(self, message: TaskNotification) -> bool:
        """Send an overdue task card, computing the whole days overdue from the due date."""
        url = await self._primary_url()
        if url is None:
            return False

        if message.due_date:
            message = message.model_copy(
                update={"is_overdue": True, "days_overdue": whole_days_between(self.clock(), message.due_date)}
            )

        result = await self._send_to_webhook(url, build_task_card(message, self.clock()))
        self.audit.log_activity(
            action="TeamsReminderSent" if result else "TeamsReminderFailed",
            entity_type="Task",
            entity_id=message.task_id,
            entity_title=message.task_title,
            details={
                "daysOverdue": message.days_overdue,
                **result.audit_details(),
            },
        )
        return result.success

    async def send_approval_notification(self, message: ApprovalNotification) -> bool:
        """Send an approval request card to the primary channel."""
        url = await self._primary_url()
        if url is None:
            return False

        result = await self._send_to_webhook(url, build_approval_card(message))
        self.audit.log_activity(
            action="TeamsApprovalNotificationSent" if result else "TeamsApprovalNotificationFailed",
            entity_type="Approval",
            entity_id=message.approval_id,
            entity_title=message.request_title,
            details={
                "approvalType": message.approval_type,
                "employeeName": message.employee_name,
                "approver": message.approver.display_name if message.approver else None,
                **result.audit_details(),
            },
        )
        return result.success

    async def _send_process_card(self, message: ProcessNotification, status: str,
                                 hr: bool = False, it: bool = False) -> bool:
        config = await self.get_webhook_config()
        if not config.is_enabled or not config.primary_webhook_url:
            return False

        card = build_process_card(message, status)
        targets = [("primary", config.primary_webhook_url)]
        if hr and config.hr_webhook_url:
            targets.append(("hr", config.hr_webhook_url))
        if it and config.it_webhook_url:
            targets.append(("it", config.it_webhook_url))

        # Secondary channels are best effort; only the primary result counts
        results = []
        for channel, url in targets:
            result = await self._send_to_webhook(url, card, channel)
            self.audit.log_activity(
                action="TeamsProcessNotificationSent" if result else "TeamsProcessNotificationFailed",
                entity_type=message.process_type,
                entity_id=message.process_id,
                entity_title=message.employee_name,
                details={"status": status, **result.audit_details()},
            )
            results.append(result)
        return results[0].success

    async def notify_onboarding_started(self, message: ProcessNotification) -> bool:
        """Announce a new onboarding on the primary and HR channels."""
        message = message.model_copy(update={"process_type": ProcessLabel.ONBOARDING.value})
        return await self._send_process_card(message, "started", hr=True)

    async def notify_transfer_started(self, message: ProcessNotification) -> bool:
        """Announce a transfer on the primary, HR and IT channels."""
        message = message.model_copy(update={"process_type": ProcessLabel.TRANSFER.value})
        return await self._send_process_card(message, "started", hr=True, it=True)

    async def notify_offboarding_started(self, message: ProcessNotification,
                                         termination_type: Optional[str] = None) -> bool:
        """Announce an offboarding on the primary, HR and IT channels."""
        update: Dict[str, Any] = {"process_type": ProcessLabel.OFFBOARDING.value}
        if termination_type:
            update["additional_facts"] = [*message.additional_facts, Fact(title="Type", value=termination_type)]
        message = message.model_copy(update=update)
        return await self._send_process_card(message, "started", hr=True, it=True)

    async def notify_process_completed(self, message: ProcessNotification) -> bool:
        """Announce a completed process on the primary channel."""
        return await self._send_process_card(message, "completed")

    async def send_to_specific_webhook(self, target: WebhookTarget, message: WebhookMessage) -> bool:
        """
        Send a general card to a named channel.

        HR, IT and manager targets fall back to the primary URL when they are
        not configured.
        """
        config = await self.get_webhook_config()
        if not config.is_enabled:
            return False

        target = WebhookTarget(target)
        urls = {
            WebhookTarget.PRIMARY: config.primary_webhook_url,
            WebhookTarget.HR: config.hr_webhook_url,
            WebhookTarget.IT: config.it_webhook_url,
            WebhookTarget.MANAGER: config.manager_webhook_url,
        }
        channel = target.value if urls[target] else WebhookTarget.PRIMARY.value
        url = urls[target] or config.primary_webhook_url
        if not url:
            return False

        result = await self._send_to_webhook(url, build_general_card(message), channel)
        self.audit.log_activity(
            action="TeamsNotificationSent" if result else "TeamsNotificationFailed",
            entity_type="Notification",
            entity_id=0,
            entity_title=message.title,
            details={
                "target": target.value,
                "category": message.category,
                "priority": message.priority,
                **result.audit_details(),
            },
        )
        return result.success
