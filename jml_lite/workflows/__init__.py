"""
Workflows Package for JML Lite.

Approval, task and reminder services plus the orchestrator that composes
them into Joiner, Mover and Leaver workflow operations.
"""

from .approval_service import ApprovalService
from .helpers import (
    build_approval_url,
    build_task_url,
    should_send_reminder,
    validate_approval_decision,
)
from .orchestrator import WorkflowOrchestrator
from .task_reminder_service import TaskReminderService
from .task_repository import TaskRepository

__all__ = [
    "ApprovalService",
    "TaskRepository",
    "TaskReminderService",
    "WorkflowOrchestrator",
    "validate_approval_decision",
    "build_task_url",
    "build_approval_url",
    "should_send_reminder",
]
