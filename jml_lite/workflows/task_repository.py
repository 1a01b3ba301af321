"""
Task Repository for JML Lite.

The onboarding, mover and offboarding task lists share one shape and differ
only in list name and parent column. This repository is indexed by
ProcessType so callers handle all three the same way. Methods raise
StoreError; the calling services decide how to degrade. A row that fails
validation raises InvalidRowError when read on its own and is skipped in
list reads.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from ..constants import (
    PROCESS_EMPLOYEE_FIELDS,
    PROCESS_KEY_DATE_FIELDS,
    PROCESS_LISTS,
    TASK_LISTS,
    TASK_PARENT_FIELDS,
    TERMINAL_PROCESS_STATUSES,
)
from ..models import ProcessRecord, ProcessType, Task, TaskConfiguration, TaskStatus
from ..store.base import ListStore
from ..store.query import Filter, Query, all_of, eq, ne
from ..store.rows import parse_row, parse_rows
from ..utils import Clock, utcnow

logger = logging.getLogger(__name__)


class TaskRepository:
    """Kind-indexed access to JML tasks and their parent process records."""

    def __init__(self, store: ListStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    # Row mapping

    @staticmethod
    def task_from_row(kind: ProcessType, row: Dict[str, Any]) -> Task:
        kind = ProcessType(kind)
        return parse_row(
            Task, {**row, "Kind": kind.value, "ParentId": row.get(TASK_PARENT_FIELDS[kind])}, TASK_LISTS[kind]
        )

    @staticmethod
    def task_to_row(task: Task) -> Dict[str, Any]:
        kind = ProcessType(task.kind)
        row = task.to_item(exclude={"id", "kind", "parent_id"})
        row[TASK_PARENT_FIELDS[kind]] = task.parent_id
        return row

    @staticmethod
    def process_from_row(kind: ProcessType, row: Dict[str, Any]) -> ProcessRecord:
        kind = ProcessType(kind)
        name_field, id_field = PROCESS_EMPLOYEE_FIELDS[kind]
        return parse_row(
            ProcessRecord,
            {
                **row,
                "Kind": kind.value,
                "EmployeeName": row.get(name_field),
                "EmployeeId": row.get(id_field),
                "KeyDate": row.get(PROCESS_KEY_DATE_FIELDS[kind]),
            },
            PROCESS_LISTS[kind],
        )

    # Tasks

    async def get_task(self, kind: ProcessType, task_id: int) -> Task:
        row = await self.store.get_item(TASK_LISTS[ProcessType(kind)], task_id)
        return self.task_from_row(kind, row)

    async def find_tasks(self, kind: ProcessType, task_filter: Optional[Filter] = None) -> List[Task]:
        """Tasks of one kind matching an optional filter."""
        rows = await self.store.get_items(TASK_LISTS[ProcessType(kind)], Query(filter=task_filter))
        return parse_rows(lambda row: self.task_from_row(kind, row), rows)

    async def get_tasks_for_process(self, kind: ProcessType, parent_id: int) -> List[Task]:
        return await self.find_tasks(kind, eq(TASK_PARENT_FIELDS[ProcessType(kind)], parent_id))

    async def update_task(self, kind: ProcessType, task_id: int, fields: Dict[str, Any]) -> None:
        await self.store.update_item(TASK_LISTS[ProcessType(kind)], task_id, fields)

    async def assign_task(self, kind: ProcessType, task_id: int, user_id: int) -> None:
        await self.update_task(kind, task_id, {"AssignedToId": user_id})

    async def complete_task(self, kind: ProcessType, task_id: int, completed_by_id: Optional[int] = None,
                            notes: Optional[str] = None) -> None:
        fields: Dict[str, Any] = {"Status": TaskStatus.COMPLETED.value, "CompletedDate": self.clock()}
        if completed_by_id is not None:
            fields["CompletedById"] = completed_by_id
        if notes:
            fields["Notes"] = notes
        await self.update_task(kind, task_id, fields)

    async def create_tasks(
        self,
        kind: ProcessType,
        parent_id: int,
        configurations: Sequence[TaskConfiguration],
        key_date: Optional[datetime] = None,
    ) -> List[Task]:
        """
        Create task rows from wizard task configurations.

        Args:
            kind: Process kind the tasks belong to
            parent_id: Id of the parent process record
            configurations: Configured tasks; 'Critical' priority is stored as 'High'
            key_date: Start, effective or last-working date that day offsets are relative to

        Returns:
            The created tasks
        """
        created = []
        for index, config in enumerate(configurations, start=1):
            due_date = config.due_date
            if due_date is None and key_date is not None:
                due_date = key_date + timedelta(days=config.days_offset)

            task = Task(
                kind=kind,
                parent_id=parent_id,
                title=config.title,
                description=config.description,
                category=config.category,
                status=TaskStatus.PENDING,
                priority=config.priority,
                assigned_to_id=config.assigned_to_id,
                due_date=due_date,
                sort_order=config.sort_order if config.sort_order is not None else index,
            )
            row = await self.store.add_item(TASK_LISTS[ProcessType(kind)], self.task_to_row(task))
            created.append(self.task_from_row(kind, row))

        logger.info(f"Created {len(created)} {ProcessType(kind).value} tasks for process {parent_id}")
        return created

    # Process records

    async def get_process(self, kind: ProcessType, process_id: int) -> ProcessRecord:
        row = await self.store.get_item(PROCESS_LISTS[ProcessType(kind)], process_id)
        return self.process_from_row(kind, row)

    async def get_active_processes(self, kind: ProcessType) -> List[ProcessRecord]:
        """Process records of one kind that are neither Completed nor Cancelled."""
        active = all_of(*(ne("Status", status) for status in TERMINAL_PROCESS_STATUSES))
        rows = await self.store.get_items(PROCESS_LISTS[ProcessType(kind)], Query(filter=active))
        return parse_rows(lambda row: self.process_from_row(kind, row), rows)

    async def recalculate_progress(self, kind: ProcessType, process_id: int) -> Dict[str, Any]:
        """
        Recount a process record's tasks and store its progress counters.

        The record is marked Completed once every task is complete.

        Returns:
            The fields written to the process record
        """
        tasks = await self.get_tasks_for_process(kind, process_id)
        total = len(tasks)
        completed = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED)
        percentage = math.floor(completed / total * 100 + 0.5) if total else 0

        fields: Dict[str, Any] = {
            "TotalTasks": total,
            "CompletedTasks": completed,
            "CompletionPercentage": percentage,
        }
        if total and completed == total:
            fields["Status"] = "Completed"
            fields["CompletedDate"] = self.clock()

        await self.store.update_item(PROCESS_LISTS[ProcessType(kind)], process_id, fields)
        logger.info(f"{ProcessType(kind).value} {process_id} progress: {completed}/{total} ({percentage}%)")
        return fields
