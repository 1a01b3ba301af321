"""
Task Reminder Service for JML Lite.

Finds open tasks that are overdue or due soon across the three task lists
and sends reminder cards to the Teams channel.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ..constants import DUE_SOON_DAYS
from ..exceptions import StoreError
from ..models import (
    OPEN_TASK_STATUSES,
    ProcessType,
    ReminderResult,
    TaskNotification,
    TaskStats,
    TaskWithReminder,
    process_label,
)
from ..notifications.teams_webhook_service import TeamsWebhookService
from ..store.query import Filter, all_of, ge, lt, one_of
from ..utils import Clock, start_of_day, utcnow
from .helpers import build_task_url
from .task_repository import TaskRepository

logger = logging.getLogger(__name__)


class TaskReminderService:
    """
    Queries open tasks by due date and sends reminders.

    A list that cannot be read contributes no tasks; a task whose parent
    record cannot be read is skipped. Sweeps report one result per task.
    """

    def __init__(self, repository: TaskRepository, teams: Optional[TeamsWebhookService] = None,
                 site_url: str = "", clock: Clock = utcnow):
        """
        Initialize the reminder service.

        Args:
            repository: Task repository
            teams: Teams webhook service used to deliver reminders
            site_url: Base URL for task links in reminder cards
            clock: Source of the current time
        """
        self.repository = repository
        self.teams = teams
        self.site_url = site_url
        self.clock = clock

    async def _collect(self, due_filter: Filter) -> List[TaskWithReminder]:
        task_filter = all_of(due_filter, one_of("Status", OPEN_TASK_STATUSES))
        results: List[TaskWithReminder] = []

        for kind in ProcessType:
            try:
                tasks = await self.repository.find_tasks(kind, task_filter)
            except StoreError as e:
                logger.error(f"Error getting {kind.value} tasks: {e}")
                continue

            for task in tasks:
                if task.id is None or task.parent_id is None or task.due_date is None:
                    continue
                try:
                    parent = await self.repository.get_process(kind, task.parent_id)
                except StoreError as e:
                    logger.debug(f"Skipping task {task.id}: parent {kind.value} {task.parent_id} unavailable ({e})")
                    continue

                results.append(
                    TaskWithReminder(
                        task_id=task.id,
                        task_title=task.title,
                        task_category=task.category,
                        process_type=kind,
                        employee_name=parent.employee_name,
                        employee_id=parent.employee_id,
                        assigned_to_id=task.assigned_to_id,
                        due_date=task.due_date,
                        priority=task.priority,
                        status=task.status,
                        parent_id=task.parent_id,
                    )
                )

        return results

    async def get_overdue_tasks(self) -> List[TaskWithReminder]:
        """Open tasks due before the start of today."""
        today = start_of_day(self.clock())
        return await self._collect(lt("DueDate", today))

    async def get_tasks_in_date_range(self, start: datetime, end: datetime) -> List[TaskWithReminder]:
        """Open tasks with ``start <= DueDate < end``."""
        return await self._collect(all_of(ge("DueDate", start), lt("DueDate", end)))

    async def get_tasks_due_today(self) -> List[TaskWithReminder]:
        today = start_of_day(self.clock())
        return await self.get_tasks_in_date_range(today, today + timedelta(days=1))

    def _to_notification(self, task: TaskWithReminder) -> TaskNotification:
        return TaskNotification(
            task_id=task.task_id,
            task_title=task.task_title,
            task_category=task.task_category,
            process_type=process_label(task.process_type),
            employee_name=task.employee_name,
            due_date=task.due_date,
            priority=task.priority,
            action_url=build_task_url(self.site_url, task.process_type, task.task_id),
        )

    async def _send_all(self, tasks: List[TaskWithReminder], overdue: bool) -> List[ReminderResult]:
        results = []
        for task in tasks:
            if self.teams is None:
                results.append(
                    ReminderResult(task_id=task.task_id, task_title=task.task_title, sent=False,
                                   error="No reminder channel configured")
                )
                continue

            notification = self._to_notification(task)
            try:
                if overdue:
                    sent = await self.teams.send_overdue_task_reminder(notification)
                else:
                    sent = await self.teams.send_task_notification(notification)
            except Exception as e:
                logger.error(f"Error sending reminder for task {task.task_id}: {e}")
                results.append(
                    ReminderResult(task_id=task.task_id, task_title=task.task_title, sent=False, error=str(e))
                )
                continue

            results.append(
                ReminderResult(
                    task_id=task.task_id,
                    task_title=task.task_title,
                    sent=sent,
                    error=None if sent else "Reminder was not delivered",
                )
            )
        return results

    async def send_overdue_reminders(self) -> List[ReminderResult]:
        """Send an overdue reminder for every overdue open task."""
        results = await self._send_all(await self.get_overdue_tasks(), overdue=True)
        logger.info(f"Overdue reminders: {sum(r.sent for r in results)}/{len(results)} sent")
        return results

    async def send_due_today_reminders(self) -> List[ReminderResult]:
        """Send a task card for every open task due today."""
        results = await self._send_all(await self.get_tasks_due_today(), overdue=False)
        logger.info(f"Due-today reminders: {sum(r.sent for r in results)}/{len(results)} sent")
        return results

    async def get_task_stats(self) -> TaskStats:
        """
        Reminder dashboard counts.

        ``due_soon`` covers ``[today, today + 3 days)`` and therefore includes
        tasks due today; ``total`` is ``overdue + due_soon``.
        """
        today = start_of_day(self.clock())
        overdue = await self.get_overdue_tasks()
        due_today = await self.get_tasks_due_today()
        due_soon = await self.get_tasks_in_date_range(today, today + timedelta(days=DUE_SOON_DAYS))

        return TaskStats(
            overdue=len(overdue),
            due_today=len(due_today),
            due_soon=len(due_soon),
            total=len(overdue) + len(due_soon),
        )
