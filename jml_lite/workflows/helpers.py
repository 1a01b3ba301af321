"""
Workflow Helper Functions for JML Lite.

Validation, link building and reminder scheduling helpers used by the
workflow services.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from ..models import ProcessType, TaskStatus
from ..utils import whole_days_between

logger = logging.getLogger(__name__)

APPROVAL_DECISIONS = ("approve", "reject")


def validate_approval_decision(decision: str, comments: Optional[str] = None) -> List[str]:
    """
    Validate an approver's decision before it is written.

    Args:
        decision: 'approve' or 'reject'
        comments: Decision comments; required when rejecting

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if decision not in APPROVAL_DECISIONS:
        errors.append(f"Decision must be one of: {', '.join(APPROVAL_DECISIONS)}")

    if decision == "reject" and (not comments or not comments.strip()):
        errors.append("A reason is required when rejecting a request")

    return errors


def build_task_url(site_url: str, process_type: ProcessType, task_id: int) -> str:
    """Deep link to a task in the JML app."""
    return f"{site_url}?view={ProcessType(process_type).value.lower()}&id={task_id}"


def build_approval_url(site_url: str, approval_id: int) -> str:
    """Deep link to an approval in the JML app."""
    return f"{site_url}?view=approvals&id={approval_id}"


def should_send_reminder(
    due_date: Optional[datetime],
    status: Optional[str],
    reminder_days: Iterable[int],
    now: datetime,
) -> bool:
    """
    Decide whether an overdue reminder fires for a task today.

    Reminders fire only on the configured whole-day offsets past the due
    date, so a task two days late gets nothing when the schedule is [1, 3, 7].

    Args:
        due_date: Task due date
        status: Task status
        reminder_days: Days overdue on which to remind
        now: Current time

    Returns:
        True if a reminder should be sent
    """
    if due_date is None:
        return False
    if status in (TaskStatus.COMPLETED.value, TaskStatus.NOT_APPLICABLE.value):
        return False

    days_overdue = whole_days_between(now, due_date)
    return days_overdue > 0 and days_overdue in set(reminder_days)
