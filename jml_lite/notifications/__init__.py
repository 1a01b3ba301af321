"""
Notifications Package for JML Lite.

Email via Microsoft Graph, Teams channel cards via incoming webhooks, and
in-app notifications.
"""

from .graph_client import GraphClient
from .graph_notification_service import GraphNotificationService
from .in_app_notification_service import InAppNotificationService
from .results import DeliveryResult
from .teams_webhook_service import TeamsWebhookService, WebhookConfigCache

__all__ = [
    "DeliveryResult",
    "GraphClient",
    "GraphNotificationService",
    "InAppNotificationService",
    "TeamsWebhookService",
    "WebhookConfigCache",
]
