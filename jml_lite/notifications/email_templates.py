"""
Email templates for JML Lite.

Builds the HTML and plain-text bodies for task and approval emails. Every
interpolated value is HTML-escaped; the plain-text body carries the same
facts for clients that do not render HTML.
"""

from datetime import datetime
from html import escape
from typing import List, Optional, Sequence, Tuple

from ..constants import (
    APPROVAL_THEME_COLOUR,
    COMPLETED_THEME_COLOUR,
    OVERDUE_THEME_COLOUR,
    PROCESS_THEME_COLOURS,
    SYSTEM_NAME,
)
from ..models import (
    ApprovalNotification,
    EmailImportance,
    NotificationPayload,
    NotificationRecipient,
    TaskNotification,
)
from ..utils import format_date, plural, whole_days_between

WRAPPER_STYLE = "font-family: 'Segoe UI', sans-serif; max-width: 600px; margin: 0 auto;"
PANEL_STYLE = (
    "background: #ffffff; padding: 24px; border: 1px solid #e0e0e0; "
    "border-top: none; border-radius: 0 0 8px 8px;"
)
NOTE_STYLE = "margin-top: 16px; padding: 12px; background: #f9f9f9; border-radius: 6px; font-size: 14px; color: #323130;"
FOOTER_STYLE = "font-size: 12px; color: #666; margin-top: 16px; text-align: center;"


def _header(colour: str, heading: str, subheading: Optional[str] = None) -> str:
    sub = f'<p style="margin: 8px 0 0 0; opacity: 0.9;">{escape(subheading)}</p>' if subheading else ""
    return (
        f'<div style="background: {colour}; color: white; padding: 20px; border-radius: 8px 8px 0 0;">'
        f'<h2 style="margin: 0; font-size: 20px;">{escape(heading)}</h2>{sub}</div>'
    )


def _fact_table(rows: Sequence[Tuple[str, str, str]]) -> str:
    """Render (label, value, value colour) rows."""
    cells = "".join(
        f'<tr><td style="padding: 8px 0; color: #666; width: 120px;">{escape(label)}:</td>'
        f'<td style="padding: 8px 0; color: {colour}; font-weight: 500;">{escape(value)}</td></tr>'
        for label, value, colour in rows
    )
    return f'<table style="width: 100%; border-collapse: collapse; font-size: 14px;">{cells}</table>'


def _button(colour: str, label: str, url: str) -> str:
    return (
        f'<div style="margin-top: 24px;"><a href="{escape(url, quote=True)}" style="display: inline-block; '
        f"background: {colour}; color: white; padding: 12px 24px; border-radius: 6px; "
        f'text-decoration: none; font-weight: 600;">{escape(label)}</a></div>'
    )


def _page(header: str, title: str, content: str, footer: Optional[str] = None) -> str:
    foot = f'<p style="{FOOTER_STYLE}">{escape(footer)}</p>' if footer else ""
    return (
        f'<div style="{WRAPPER_STYLE}">{header}'
        f'<div style="{PANEL_STYLE}"><h3 style="margin: 0 0 16px 0; color: #1a1a1a; font-size: 18px;">'
        f"{escape(title)}</h3>{content}</div>{foot}</div>"
    )


def task_assigned_email(notification: TaskNotification, now: datetime) -> NotificationPayload:
    """Email telling an assignee about a new task."""
    colour = PROCESS_THEME_COLOURS.get(notification.process_type, OVERDUE_THEME_COLOUR)
    due = format_date(notification.due_date)
    due_colour = OVERDUE_THEME_COLOUR if notification.due_date and notification.due_date < now else "#1a1a1a"

    content = _fact_table(
        [
            ("Category", notification.task_category, "#1a1a1a"),
            ("Employee", notification.employee_name, "#1a1a1a"),
            ("Due Date", due, due_colour),
        ]
    )
    if notification.action_url:
        content += _button(colour, "View Task", notification.action_url)

    html_body = _page(
        _header(colour, "New Task Assigned", f"{notification.process_type} — {notification.employee_name}"),
        notification.task_title,
        content,
        footer=f"This is an automated notification from {SYSTEM_NAME}",
    )

    return NotificationPayload(
        recipients=[notification.assigned_to],
        subject=f"[{SYSTEM_NAME}] Task Assigned: {notification.task_title}",
        body=(
            f"You have been assigned a new task: {notification.task_title}\n\n"
            f"Employee: {notification.employee_name}\n"
            f"Category: {notification.task_category}\n"
            f"Due Date: {due}"
        ),
        body_html=html_body,
        priority=EmailImportance.NORMAL,
        action_url=notification.action_url,
        action_label="View Task" if notification.action_url else None,
    )


def task_completed_email(
    task_title: str,
    employee_name: str,
    process_type: str,
    completed_by: str,
    recipients: List[NotificationRecipient],
    now: datetime,
) -> NotificationPayload:
    """Email telling stakeholders that a task was completed."""
    content = (
        f'<p style="color: #666; font-size: 14px;">Completed by <strong>{escape(completed_by)}</strong> '
        f"on {format_date(now)}</p>"
    )
    html_body = _page(
        _header(COMPLETED_THEME_COLOUR, "✓ Task Completed", f"{process_type} — {employee_name}"),
        task_title,
        content,
    )
    return NotificationPayload(
        recipients=recipients,
        subject=f"[{SYSTEM_NAME}] Task Completed: {task_title}",
        body=f'Task "{task_title}" for {employee_name} has been completed by {completed_by}.',
        body_html=html_body,
        priority=EmailImportance.LOW,
    )


def task_overdue_email(notification: TaskNotification, now: datetime) -> NotificationPayload:
    """Reminder email for a task past its due date."""
    days_overdue = whole_days_between(now, notification.due_date) if notification.due_date else 0

    content = _fact_table(
        [
            ("Process", notification.process_type, "#1a1a1a"),
            ("Employee", notification.employee_name, "#1a1a1a"),
            ("Due Date", format_date(notification.due_date, default=""), OVERDUE_THEME_COLOUR),
        ]
    )
    if notification.action_url:
        content += _button(OVERDUE_THEME_COLOUR, "Complete Task Now", notification.action_url)

    html_body = _page(
        _header(OVERDUE_THEME_COLOUR, "⚠ Overdue Task Reminder", f"{plural(days_overdue, 'day')} overdue"),
        notification.task_title,
        content,
    )
    return NotificationPayload(
        recipients=[notification.assigned_to],
        subject=f"[OVERDUE] {notification.task_title} — Action Required",
        body=(
            f'Your task "{notification.task_title}" is {days_overdue} day(s) overdue. '
            "Please complete it as soon as possible."
        ),
        body_html=html_body,
        priority=EmailImportance.HIGH,
        action_url=notification.action_url,
        action_label="Complete Task Now" if notification.action_url else None,
    )


def approval_required_email(notification: ApprovalNotification) -> NotificationPayload:
    """Email asking an approver to review a request."""
    content = _fact_table(
        [
            ("Employee", notification.employee_name, "#1a1a1a"),
            ("Requested by", notification.requestor_name, "#1a1a1a"),
        ]
    )
    content += f'<div style="{NOTE_STYLE}">{escape(notification.details)}</div>'
    content += _button(APPROVAL_THEME_COLOUR, "Review & Approve", notification.action_url)

    html_body = _page(
        _header(APPROVAL_THEME_COLOUR, "Approval Required", notification.approval_type),
        notification.request_title,
        content,
        footer="Please review and respond within 48 hours",
    )
    return NotificationPayload(
        recipients=[notification.approver],
        subject=f"[Approval Required] {notification.request_title}",
        body=(
            f"You have a pending approval request:\n\n{notification.request_title}\n"
            f"Employee: {notification.employee_name}\n"
            f"Requested by: {notification.requestor_name}\n\n"
            f"Details: {notification.details}"
        ),
        body_html=html_body,
        priority=EmailImportance.HIGH,
        action_url=notification.action_url,
        action_label="Review & Approve",
    )


def approval_decision_email(
    request_title: str,
    employee_name: str,
    decision: str,
    decision_by: str,
    comments: Optional[str],
    recipient: NotificationRecipient,
    now: datetime,
) -> NotificationPayload:
    """Email telling a requestor that their request was approved or rejected."""
    approved = decision == "Approved"
    colour = COMPLETED_THEME_COLOUR if approved else OVERDUE_THEME_COLOUR
    icon = "✓" if approved else "✗"

    content = _fact_table(
        [
            ("Employee", employee_name, "#1a1a1a"),
            (f"{decision} by", decision_by, "#1a1a1a"),
            ("Date", format_date(now), "#1a1a1a"),
        ]
    )
    if comments:
        content += f'<div style="{NOTE_STYLE}"><strong>Comments:</strong><br/>{escape(comments)}</div>'

    html_body = _page(_header(colour, f"{icon} Request {decision}"), request_title, content)

    body = f'Your request "{request_title}" for {employee_name} has been {decision.lower()} by {decision_by}.'
    if comments:
        body += f"\n\nComments: {comments}"

    return NotificationPayload(
        recipients=[recipient],
        subject=f"[{decision}] {request_title}",
        body=body,
        body_html=html_body,
        priority=EmailImportance.NORMAL,
    )
