"""
Adaptive Card builders for JML Lite.

Pure functions that turn notification intents into Adaptive Card (schema
1.4) payloads for Teams incoming webhooks. Nothing here performs I/O.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..constants import PRIORITY_ICONS
from ..models import (
    ApprovalNotification,
    Fact,
    Priority,
    ProcessLabel,
    ProcessNotification,
    TaskNotification,
    WebhookMessage,
    as_utc,
)
from ..utils import format_date, plural

CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"
CARD_VERSION = "1.4"
CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"

PROCESS_STATUS_ICONS = {
    "started": "🚀",
    "completed": "✅",
    "cancelled": "❌",
}

PROCESS_STATUS_STYLES = {
    "started": ("emphasis", "Accent"),
    "completed": ("good", "Good"),
    "cancelled": ("attention", "Attention"),
}


def _card(body: List[Dict[str, Any]], actions: List[Dict[str, Any]],
          msteams: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "type": "AdaptiveCard",
        "$schema": CARD_SCHEMA,
        "version": CARD_VERSION,
        "body": body,
        "actions": actions,
        "msteams": msteams or {"width": "Full"},
    }


def _open_url(title: str, url: str, style: Optional[str] = "positive") -> Dict[str, Any]:
    action = {"type": "Action.OpenUrl", "title": title, "url": url}
    if style:
        action["style"] = style
    return action


def _facts(facts: List[Fact]) -> List[Dict[str, str]]:
    return [fact.model_dump() for fact in facts]


def priority_icon(priority: Any) -> str:
    try:
        return PRIORITY_ICONS[Priority(priority)]
    except ValueError:
        return ""


def build_general_card(message: WebhookMessage) -> Dict[str, Any]:
    """
    Build a general notification card.

    Args:
        message: Title, body text, category, priority and optional facts

    Returns:
        Adaptive Card dict
    """
    title_items = [
        {
            "type": "TextBlock",
            "text": f"{priority_icon(message.priority)} {message.title}",
            "weight": "Bolder",
            "size": "Medium",
            "color": "Accent",
            "wrap": True,
        }
    ]
    if message.subtitle:
        title_items.append(
            {"type": "TextBlock", "text": message.subtitle, "size": "Small", "isSubtle": True, "spacing": "None"}
        )

    body_items: List[Dict[str, Any]] = [{"type": "TextBlock", "text": message.message, "wrap": True}]
    if message.facts:
        body_items.append({"type": "FactSet", "facts": _facts(message.facts), "spacing": "Medium"})

    body = [
        {
            "type": "Container",
            "style": "emphasis",
            "bleed": True,
            "items": [
                {
                    "type": "ColumnSet",
                    "columns": [
                        {"type": "Column", "width": "stretch", "items": title_items},
                        {
                            "type": "Column",
                            "width": "auto",
                            "items": [
                                {
                                    "type": "TextBlock",
                                    "text": str(message.category),
                                    "size": "Small",
                                    "weight": "Lighter",
                                    "color": "Accent",
                                }
                            ],
                        },
                    ],
                }
            ],
        },
        {"type": "Container", "spacing": "Medium", "items": body_items},
    ]

    actions = []
    if message.action_url:
        actions.append(_open_url(message.action_title or "View Details", message.action_url))

    mentions = [
        {
            "type": "mention",
            "text": f"<at>User{index}</at>",
            "mentioned": {"id": email, "name": email.split("@")[0]},
        }
        for index, email in enumerate(message.mention_emails)
    ]
    return _card(body, actions, {"width": "Full", "entities": mentions})


def is_task_overdue(message: TaskNotification, now: datetime) -> bool:
    """A task card is overdue when flagged so, or when its due date has passed."""
    return bool(message.is_overdue or (message.due_date and message.due_date < as_utc(now)))


def build_task_card(message: TaskNotification, now: datetime) -> Dict[str, Any]:
    """
    Build a task assignment or overdue task card.

    Args:
        message: Task facts
        now: Current time, used to decide whether the task is overdue

    Returns:
        Adaptive Card dict
    """
    overdue = is_task_overdue(message, now)

    if overdue:
        header = "⚠️ Overdue Task"
        if message.days_overdue:
            header += f" ({plural(message.days_overdue, 'day')})"
    else:
        header = f"{priority_icon(message.priority)} New Task Assigned"

    facts = [
        Fact(title="Employee", value=message.employee_name),
        Fact(title="Category", value=message.task_category),
        Fact(title="Process", value=str(message.process_type)),
    ]
    if message.assigned_to and message.assigned_to.display_name:
        facts.append(Fact(title="Assigned To", value=message.assigned_to.display_name))
    if message.due_date:
        due = format_date(message.due_date)
        facts.append(Fact(title="Due Date", value=f"⚠️ {due}" if overdue else due))

    body = [
        {
            "type": "Container",
            "style": "attention" if overdue else "emphasis",
            "bleed": True,
            "items": [
                {
                    "type": "TextBlock",
                    "text": header,
                    "weight": "Bolder",
                    "size": "Medium",
                    "color": "Attention" if overdue else "Accent",
                },
                {
                    "type": "TextBlock",
                    "text": f"{message.process_type} — {message.employee_name}",
                    "size": "Small",
                    "isSubtle": True,
                    "spacing": "None",
                },
            ],
        },
        {
            "type": "Container",
            "spacing": "Medium",
            "items": [
                {"type": "TextBlock", "text": message.task_title, "weight": "Bolder", "size": "Large", "wrap": True},
                {"type": "FactSet", "facts": _facts(facts), "spacing": "Medium"},
            ],
        },
    ]

    actions = []
    if message.action_url:
        actions.append(_open_url("Complete Task Now" if overdue else "View Task", message.action_url))
    return _card(body, actions)


def build_approval_card(message: ApprovalNotification) -> Dict[str, Any]:
    """Build an approval request card with a review action."""
    facts = [
        Fact(title="Type", value=message.approval_type),
        Fact(title="Employee", value=message.employee_name),
        Fact(title="Requested By", value=message.requestor_name),
    ]
    if message.approver and message.approver.display_name:
        facts.append(Fact(title="Approver", value=message.approver.display_name))
    if message.due_date:
        facts.append(Fact(title="Due By", value=format_date(message.due_date)))

    items: List[Dict[str, Any]] = [
        {"type": "TextBlock", "text": message.request_title, "weight": "Bolder", "size": "Large", "wrap": True},
        {"type": "FactSet", "facts": _facts(facts), "spacing": "Medium"},
    ]
    if message.details:
        items.append(
            {
                "type": "Container",
                "style": "accent",
                "items": [{"type": "TextBlock", "text": message.details, "wrap": True, "size": "Small"}],
            }
        )

    body = [
        {
            "type": "Container",
            "style": "warning",
            "bleed": True,
            "items": [
                {
                    "type": "TextBlock",
                    "text": "⚠️ Approval Required",
                    "weight": "Bolder",
                    "size": "Medium",
                    "color": "Warning",
                }
            ],
        },
        {"type": "Container", "spacing": "Medium", "items": items},
    ]
    return _card(body, [_open_url("Review & Approve", message.action_url)])


def build_process_card(message: ProcessNotification, status: str) -> Dict[str, Any]:
    """
    Build a process started/completed/cancelled card.

    Args:
        message: Process facts
        status: One of 'started', 'completed' or 'cancelled'

    Returns:
        Adaptive Card dict
    """
    if status not in PROCESS_STATUS_ICONS:
        raise ValueError(f"Unknown process status: {status}")

    style, colour = PROCESS_STATUS_STYLES[status]
    date_label = "Last Day" if message.process_type == ProcessLabel.OFFBOARDING else "Effective Date"

    facts = [
        Fact(title="Employee", value=message.employee_name),
        Fact(title="Department", value=message.department),
        Fact(title="Job Title", value=message.job_title),
        Fact(title=date_label, value=format_date(message.effective_date)),
    ]
    if message.manager_name:
        facts.append(Fact(title="Manager", value=message.manager_name))
    facts.extend(message.additional_facts)

    body = [
        {
            "type": "Container",
            "style": style,
            "bleed": True,
            "items": [
                {
                    "type": "TextBlock",
                    "text": f"{PROCESS_STATUS_ICONS[status]} {message.process_type} {status.capitalize()}",
                    "weight": "Bolder",
                    "size": "Medium",
                    "color": colour,
                }
            ],
        },
        {
            "type": "Container",
            "spacing": "Medium",
            "items": [
                {"type": "TextBlock", "text": message.employee_name, "weight": "Bolder", "size": "Large"},
                {"type": "FactSet", "facts": _facts(facts), "spacing": "Medium"},
            ],
        },
    ]

    actions = []
    if message.action_url:
        actions.append(_open_url("View Details", message.action_url, style=None))
    return _card(body, actions)


def build_task_adaptive_card(notification: TaskNotification) -> Dict[str, Any]:
    """Build the compact task card attached to Graph chat messages."""
    facts = [
        Fact(title="Category", value=notification.task_category),
        Fact(title="Employee", value=notification.employee_name),
        Fact(title="Due Date", value=format_date(notification.due_date)),
    ]
    card = {
        "type": "AdaptiveCard",
        "$schema": CARD_SCHEMA,
        "version": CARD_VERSION,
        "body": [
            {
                "type": "Container",
                "style": "emphasis",
                "items": [
                    {"type": "TextBlock", "text": "New Task Assigned", "weight": "Bolder", "size": "Medium",
                     "color": "Accent"},
                    {"type": "TextBlock", "text": f"{notification.process_type} — {notification.employee_name}",
                     "size": "Small", "isSubtle": True},
                ],
            },
            {
                "type": "Container",
                "items": [
                    {"type": "TextBlock", "text": notification.task_title, "weight": "Bolder", "size": "Large",
                     "wrap": True},
                    {"type": "FactSet", "facts": _facts(facts)},
                ],
            },
        ],
        "actions": [],
    }
    if notification.action_url:
        card["actions"].append(_open_url("View Task", notification.action_url, style=None))
    return card


def webhook_envelope(card: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a card in the message envelope expected by Teams incoming webhooks."""
    return {
        "type": "message",
        "attachments": [
            {
                "contentType": CARD_CONTENT_TYPE,
                "contentUrl": None,
                "content": card,
            }
        ],
    }
