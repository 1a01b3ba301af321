"""
JML Lite

Workflow orchestration and notification core for employee
Joiner-Mover-Leaver processes: approvals, task reminders, audit trail, and
notification delivery by email (Microsoft Graph), Teams webhooks and
in-app messages over a list-based store.
"""

__version__ = "1.0.0"
__author__ = "JML Lite Team"
__email__ = "team@example.com"

from .config import WorkflowConfig, load_workflow_config
from .workflows.approval_service import ApprovalService
from .workflows.orchestrator import WorkflowOrchestrator
from .workflows.task_reminder_service import TaskReminderService

__all__ = [
    "WorkflowConfig",
    "load_workflow_config",
    "ApprovalService",
    "TaskReminderService",
    "WorkflowOrchestrator",
]
