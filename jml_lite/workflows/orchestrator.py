"""
Workflow Orchestrator for JML Lite.

Composes the approval, notification, audit and task services into the
higher-level workflow operations: assigning and completing tasks, overdue
reminder sweeps, approval requests and decisions, and process lifecycle
markers.

Notification delivery is spawned on a background dispatcher and never
awaited by the workflow action that triggered it, so a failed email or card
cannot fail the action itself. Call ``drain()`` to wait for it.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import httpx

from ..audit.audit_trail import AuditTrailService
from ..background import BackgroundDispatcher
from ..config import WorkflowConfig
from ..exceptions import StoreError
from ..models import (
    Approval,
    ApprovalNotification,
    ApprovalType,
    CreateApprovalRequest,
    EmployeeInfo,
    NotificationCategory,
    NotificationRecipient,
    Priority,
    ProcessRecord,
    ProcessType,
    SiteUser,
    Task,
    TaskAssignment,
    TaskConfiguration,
    TaskNotification,
    process_label,
)
from ..notifications.graph_client import GraphClient
from ..notifications.graph_notification_service import GraphNotificationService
from ..notifications.in_app_notification_service import InAppNotificationService
from ..notifications.teams_webhook_service import TeamsWebhookService
from ..store.base import ListStore
from ..store.directory import UserDirectory
from ..utils import Clock, utcnow, whole_days_between
from .approval_service import ApprovalService
from .helpers import build_approval_url, build_task_url, should_send_reminder, validate_approval_decision
from .task_reminder_service import TaskReminderService
from .task_repository import TaskRepository

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """
    Top-level coordinator for JML workflows.

    Public methods never raise store or transport errors; they return False
    or None when the primary action fails.
    """

    def __init__(
        self,
        store: ListStore,
        directory: UserDirectory,
        config: Optional[WorkflowConfig] = None,
        graph_client: Optional[GraphClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = utcnow,
        dispatcher: Optional[BackgroundDispatcher] = None,
    ):
        """
        Initialize the orchestrator and the services it composes.

        Args:
            store: List store shared by every service
            directory: User directory for recipients, approvers and the acting user
            config: Workflow settings; defaults apply when omitted
            graph_client: Graph client for email; email degrades to audit-only without it
            http_client: Optional httpx client used for Teams webhooks
            clock: Source of the current time
            dispatcher: Background dispatcher for detached notifications and audit writes
        """
        self.store = store
        self.directory = directory
        self.config = config or WorkflowConfig()
        self.clock = clock
        self.dispatcher = dispatcher or BackgroundDispatcher()

        self.audit = AuditTrailService(store, self.dispatcher)
        self.approvals = ApprovalService(store, clock)
        self.tasks = TaskRepository(store, clock)
        self.email = GraphNotificationService(self.audit, graph_client, clock)
        self.teams = TeamsWebhookService(store, self.audit, http_client, clock)
        self.in_app = InAppNotificationService(store, clock)
        self.reminders = TaskReminderService(self.tasks, self.teams, self.config.site_url, clock)

    async def drain(self) -> None:
        """Wait for every detached notification and audit write to finish."""
        await self.dispatcher.drain()

    async def aclose(self) -> None:
        await self.drain()
        await self.teams.aclose()

    # Task workflow

    async def assign_task(self, assignment: TaskAssignment) -> bool:
        """
        Assign a task and notify the assignee.

        Args:
            assignment: Task, assignee and process details

        Returns:
            True if the assignment was written; notification outcomes do not
            affect the result
        """
        kind = ProcessType(assignment.process_type)
        try:
            await self.tasks.assign_task(kind, assignment.task_id, assignment.assignee_user_id)
        except StoreError as e:
            logger.error(f"Error assigning task {assignment.task_id}: {e}")
            return False

        action_url = build_task_url(self.config.site_url, kind, assignment.process_id)
        notification = TaskNotification(
            task_id=assignment.task_id,
            task_title=assignment.task_title,
            task_category=assignment.category,
            process_type=process_label(kind),
            employee_name=assignment.employee_name,
            assigned_to=NotificationRecipient(
                user_id=assignment.assignee_user_id,
                email=assignment.assignee_email,
                display_name=assignment.assignee_name,
            ),
            due_date=assignment.due_date,
            priority=assignment.priority,
            action_url=action_url,
        )

        if self.config.send_email_notifications:
            self.dispatcher.spawn(self.email.notify_task_assigned(notification),
                                  f"task {assignment.task_id} assignment email")
        if self.config.send_teams_notifications:
            self.dispatcher.spawn(self.teams.send_task_notification(notification),
                                  f"task {assignment.task_id} assignment card")
        if self.config.send_in_app_notifications:
            self.dispatcher.spawn(
                self.in_app.notify_task_assigned(
                    assignment.assignee_email,
                    assignment.task_title,
                    assignment.employee_name,
                    NotificationCategory(process_label(kind).value),
                    assignment.task_id,
                    action_url,
                ),
                f"task {assignment.task_id} in-app notification",
            )

        self.audit.log_activity(
            action="TaskAssigned",
            entity_type=f"{kind.value}Task",
            entity_id=assignment.task_id,
            entity_title=assignment.task_title,
            details={
                "assignedTo": assignment.assignee_name,
                "processType": kind.value,
                "processId": assignment.process_id,
            },
        )
        logger.info(f"Assigned task {assignment.task_id} to {assignment.assignee_name}")
        return True

    async def complete_task(
        self,
        process_type: ProcessType,
        task_id: int,
        completed_by_id: Optional[int] = None,
        notes: Optional[str] = None,
        notify_user_ids: Optional[Sequence[int]] = None,
    ) -> bool:
        """
        Mark a task Completed, refresh its process progress and announce it.

        Args:
            process_type: Which task list holds the task
            task_id: Task to complete
            completed_by_id: User completing the task; the current user when omitted
            notes: Optional completion notes
            notify_user_ids: Users to email about the completion

        Returns:
            True if the task was marked Completed
        """
        kind = ProcessType(process_type)
        try:
            task = await self.tasks.get_task(kind, task_id)
            await self.tasks.complete_task(kind, task_id, completed_by_id, notes)
        except StoreError as e:
            logger.error(f"Error completing task {task_id}: {e}")
            return False

        employee_name = ""
        if task.parent_id is not None:
            try:
                await self.tasks.recalculate_progress(kind, task.parent_id)
                employee_name = (await self.tasks.get_process(kind, task.parent_id)).employee_name
            except StoreError as e:
                logger.warning(f"Could not refresh progress for {kind.value} {task.parent_id}: {e}")

        completed_by = await self._resolve_actor(completed_by_id)
        await self.on_task_completed(
            task_id,
            task.title,
            kind,
            task.parent_id or 0,
            employee_name,
            completed_by.title if completed_by else "System",
            notify_user_ids,
        )
        return True

    async def _resolve_actor(self, user_id: Optional[int]) -> Optional[SiteUser]:
        try:
            if user_id is not None:
                return await self.directory.get_user_by_id(user_id)
            return await self.directory.get_current_user()
        except StoreError as e:
            logger.debug(f"Could not resolve acting user: {e}")
            return None

    async def on_task_completed(
        self,
        task_id: int,
        task_title: str,
        process_type: ProcessType,
        process_id: int,
        employee_name: str,
        completed_by_name: str,
        notify_user_ids: Optional[Sequence[int]] = None,
    ) -> None:
        """
        Email stakeholders about a completed task and audit the completion.

        Recipients that cannot be resolved are skipped.
        """
        kind = ProcessType(process_type)
        recipients: List[NotificationRecipient] = []
        for user_id in notify_user_ids or []:
            try:
                user = await self.directory.get_user_by_id(user_id)
            except StoreError as e:
                logger.warning(f"Could not resolve user {user_id}: {e}")
                continue
            recipients.append(user.to_recipient())

        if recipients and self.config.send_email_notifications:
            label = process_label(kind).value
            self.dispatcher.spawn(
                self.email.notify_task_completed(
                    task_title, employee_name, label, completed_by_name, recipients
                ),
                f"task {task_id} completion email",
            )

        self.audit.log_activity(
            action="TaskCompleted",
            entity_type=f"{kind.value}Task",
            entity_id=task_id,
            entity_title=task_title,
            details={
                "completedBy": completed_by_name,
                "processType": kind.value,
                "processId": process_id,
            },
        )

    async def create_process_tasks(
        self,
        process_type: ProcessType,
        parent_id: int,
        configurations: Sequence[TaskConfiguration],
        key_date: Optional[datetime] = None,
    ) -> List[Task]:
        """
        Create a process's checklist from wizard task configurations.

        When ``auto_create_approvals`` is set, system and asset tasks that
        require approval and name an approver also get an approval request.

        Returns:
            The created tasks, or an empty list if the store write fails
        """
        kind = ProcessType(process_type)
        try:
            created = await self.tasks.create_tasks(kind, parent_id, configurations, key_date)
        except StoreError as e:
            logger.error(f"Error creating tasks for {kind.value} {parent_id}: {e}")
            return []

        try:
            await self.tasks.recalculate_progress(kind, parent_id)
        except StoreError as e:
            logger.warning(f"Could not refresh progress for {kind.value} {parent_id}: {e}")

        if self.config.auto_create_approvals:
            await self._request_task_approvals(kind, parent_id, configurations)
        return created

    async def _request_task_approvals(self, kind: ProcessType, parent_id: int,
                                      configurations: Sequence[TaskConfiguration]) -> int:
        pending = [c for c in configurations
                   if c.requires_approval and c.approver_id and c.source_type in ("system", "asset")]
        if not pending:
            return 0

        try:
            process = await self.tasks.get_process(kind, parent_id)
            employee = EmployeeInfo(name=process.employee_name or "New Employee",
                                    department=process.department, job_title=process.job_title)
        except StoreError as e:
            logger.warning(f"Could not load {kind.value} {parent_id} for approval requests: {e}")
            employee = EmployeeInfo(name="New Employee")

        requested = 0
        for config in pending:
            if config.source_type == "system":
                ok = await self.request_system_access_approval(
                    config.title, "Standard", employee, kind, parent_id, config.approver_id
                )
            else:
                ok = await self.request_equipment_approval(
                    config.title, config.category, employee.name, kind, parent_id, config.approver_id
                )
            if ok:
                requested += 1
            else:
                logger.warning(f"Approval request failed for task '{config.title}'")

        logger.info(f"Created {requested} approval requests for {kind.value} {parent_id}")
        return requested

    # Reminders

    async def send_overdue_reminders(self) -> int:
        """
        Sweep active processes and remind assignees of overdue tasks.

        A reminder fires only when a task is overdue by exactly one of the
        configured day offsets.

        Returns:
            Number of reminders fired
        """
        reminders_sent = 0
        now = self.clock()

        for kind in ProcessType:
            try:
                processes = await self.tasks.get_active_processes(kind)
            except StoreError as e:
                logger.error(f"Error reading {kind.value} records for reminders: {e}")
                continue

            for process in processes:
                if process.id is None or not process.is_active:
                    continue
                try:
                    tasks = await self.tasks.get_tasks_for_process(kind, process.id)
                except StoreError as e:
                    logger.error(f"Error reading tasks for {kind.value} {process.id}: {e}")
                    continue

                for task in tasks:
                    if should_send_reminder(task.due_date, task.status, self.config.overdue_reminder_days, now):
                        await self._send_task_reminder(task, process, now)
                        reminders_sent += 1

        logger.info(f"Sent {reminders_sent} overdue reminders")
        return reminders_sent

    async def _send_task_reminder(self, task: Task, process: ProcessRecord, now: datetime) -> None:
        if task.assigned_to_id is None:
            return
        try:
            user = await self.directory.get_user_by_id(task.assigned_to_id)
        except StoreError as e:
            logger.error(f"Error sending reminder for task {task.id}: {e}")
            return

        kind = ProcessType(task.kind)
        days_overdue = whole_days_between(now, task.due_date) if task.due_date else 0
        notification = TaskNotification(
            task_id=task.id,
            task_title=task.title,
            task_category=task.category,
            process_type=process_label(kind),
            employee_name=process.employee_name,
            assigned_to=user.to_recipient(),
            due_date=task.due_date,
            priority=task.priority,
            action_url=build_task_url(self.config.site_url, kind, process.id),
            is_overdue=True,
            days_overdue=days_overdue,
        )

        if self.config.send_email_notifications:
            await self.email.notify_task_overdue(notification)
        if self.config.send_teams_notifications:
            await self.teams.send_overdue_task_reminder(notification)
        if self.config.send_in_app_notifications:
            await self.in_app.notify_task_overdue(
                user.email,
                task.title,
                process.employee_name,
                NotificationCategory(process_label(kind).value),
                days_overdue,
                task.id,
                notification.action_url,
            )

    # Approvals

    async def _requestor(self) -> Optional[SiteUser]:
        try:
            return await self.directory.get_current_user()
        except StoreError as e:
            logger.debug(f"No current user for approval request: {e}")
            return None

    async def _request_approval(self, request: CreateApprovalRequest, approval_type_label: str,
                                details: str) -> bool:
        approval = await self.approvals.create_approval(request)
        if approval is None:
            return False

        if self.config.send_email_notifications or self.config.send_in_app_notifications:
            notification = ApprovalNotification(
                approval_id=approval.id,
                approval_type=approval_type_label,
                request_title=request.title,
                employee_name=request.employee_name or "",
                requestor_name=request.requestor_name or "System",
                approver=NotificationRecipient(
                    user_id=request.approver_id,
                    email=request.approver_email or "",
                    display_name=request.approver_name or "",
                ),
                details=details,
                action_url=build_approval_url(self.config.site_url, approval.id),
                due_date=request.due_date,
            )
            if self.config.send_email_notifications:
                self.dispatcher.spawn(self.email.notify_approval_required(notification),
                                      f"approval {approval.id} request email")
            if self.config.send_in_app_notifications and request.approver_email:
                self.dispatcher.spawn(
                    self.in_app.notify_approval_required(
                        request.approver_email,
                        request.title,
                        notification.requestor_name,
                        approval.id,
                        notification.action_url,
                    ),
                    f"approval {approval.id} in-app notification",
                )

        self.audit.log_activity(
            action="ApprovalRequested",
            entity_type="Approval",
            entity_id=approval.id,
            entity_title=approval.title,
            details={"approver": request.approver_name, "type": approval_type_label},
        )
        return True

    async def _build_request(
        self,
        title: str,
        approval_type: ApprovalType,
        priority: Priority,
        employee: EmployeeInfo,
        process_type: ProcessType,
        process_id: int,
        related_item_title: str,
        approver_id: int,
        request_comments: str,
    ) -> Optional[CreateApprovalRequest]:
        try:
            approver = await self.directory.get_user_by_id(approver_id)
        except StoreError as e:
            logger.error(f"Error resolving approver {approver_id}: {e}")
            return None

        requestor = await self._requestor()
        return CreateApprovalRequest(
            title=title,
            approval_type=approval_type,
            priority=priority,
            related_item_id=process_id,
            related_item_type=ProcessType(process_type).value,
            related_item_title=related_item_title,
            employee_name=employee.name,
            employee_email=employee.email,
            department=employee.department,
            job_title=employee.job_title,
            requestor_id=requestor.id if requestor else None,
            requestor_name=requestor.title if requestor else None,
            requestor_email=requestor.email if requestor else None,
            approver_id=approver.id,
            approver_name=approver.title,
            approver_email=approver.email,
            due_date=self.clock() + timedelta(days=self.config.approval_due_days),
            request_comments=request_comments,
        )

    async def request_system_access_approval(
        self,
        system_name: str,
        requested_role: str,
        employee: EmployeeInfo,
        process_type: ProcessType,
        process_id: int,
        approver_id: int,
    ) -> bool:
        """
        Request approval for an employee's access to a system.

        Returns:
            True if the approval was created
        """
        request = await self._build_request(
            title=f"System Access: {system_name} for {employee.name}",
            approval_type=ApprovalType.SYSTEM_ACCESS,
            priority=Priority.HIGH,
            employee=employee,
            process_type=process_type,
            process_id=process_id,
            related_item_title=f"{system_name} - {requested_role}",
            approver_id=approver_id,
            request_comments=f"Requesting {requested_role} access to {system_name}",
        )
        if request is None:
            return False
        return await self._request_approval(
            request, "System Access Request", f"Requesting {requested_role} role access to {system_name}"
        )

    async def request_equipment_approval(
        self,
        asset_name: str,
        asset_type: str,
        employee_name: str,
        process_type: ProcessType,
        process_id: int,
        approver_id: int,
    ) -> bool:
        """
        Request approval for equipment or another asset.

        Returns:
            True if the approval was created
        """
        request = await self._build_request(
            title=f"Equipment Request: {asset_name} for {employee_name}",
            approval_type=ApprovalType.EQUIPMENT,
            priority=Priority.MEDIUM,
            employee=EmployeeInfo(name=employee_name),
            process_type=process_type,
            process_id=process_id,
            related_item_title=f"{asset_type} - {asset_name}",
            approver_id=approver_id,
            request_comments=f"Requesting {asset_name} ({asset_type})",
        )
        if request is None:
            return False
        return await self._request_approval(request, "Equipment Request", f"Requesting {asset_name} ({asset_type})")

    async def process_approval_decision(self, approval_id: int, decision: str, comments: str = "") -> bool:
        """
        Approve or reject a request as the current user and tell the requestor.

        Args:
            approval_id: Approval to decide
            decision: 'approve' or 'reject'
            comments: Decision comments; required when rejecting

        Returns:
            True if the decision was written
        """
        errors = validate_approval_decision(decision, comments)
        if errors:
            logger.warning(f"Invalid decision for approval {approval_id}: {'; '.join(errors)}")
            return False

        approval = await self.approvals.get_approval_by_id(approval_id)
        if approval is None:
            return False

        try:
            actor = await self.directory.get_current_user()
        except StoreError as e:
            logger.error(f"Error resolving current user for approval {approval_id}: {e}")
            return False

        approved = decision == "approve"
        if approved:
            success = await self.approvals.approve(approval_id, comments, actor.title, actor.id)
        else:
            success = await self.approvals.reject(approval_id, comments, actor.title, actor.id)
        if not success:
            return False

        outcome = "Approved" if approved else "Rejected"
        if approval.requestor_email:
            recipient = NotificationRecipient(
                user_id=approval.requestor_id,
                email=approval.requestor_email,
                display_name=approval.requestor_name or "Requestor",
            )
            if self.config.send_email_notifications:
                self.dispatcher.spawn(
                    self.email.notify_approval_decision(
                        approval.title, approval.employee_name or "", outcome, actor.title, comments, recipient
                    ),
                    f"approval {approval_id} decision email",
                )
            if self.config.send_in_app_notifications:
                self.dispatcher.spawn(
                    self.in_app.notify_approval_decision(
                        approval.requestor_email, approval.title, approved, actor.title, approval_id
                    ),
                    f"approval {approval_id} decision in-app notification",
                )

        self.audit.log_activity(
            action=f"Approval{outcome}",
            entity_type="Approval",
            entity_id=approval_id,
            entity_title=approval.title,
            details={"decisionBy": actor.title, "comments": comments},
        )

        if approved:
            await self.on_approval_granted(approval)
        return True

    async def on_approval_granted(self, approval: Approval) -> None:
        """Extension point for work that follows an approval; currently only logs."""
        logger.info(f"Approval granted: {approval.title}")

    # Process lifecycle

    async def start_onboarding_workflow(self, onboarding: ProcessRecord) -> None:
        """Record the start of an onboarding in the audit trail."""
        self.audit.log_activity(
            action="WorkflowStarted",
            entity_type=ProcessType.ONBOARDING.value,
            entity_id=onboarding.id,
            entity_title=onboarding.title or onboarding.employee_name,
            details={
                "employee": onboarding.employee_name,
                "startDate": onboarding.key_date.isoformat() if onboarding.key_date else None,
                "department": onboarding.department,
            },
        )
        logger.info(f"Started onboarding workflow for {onboarding.employee_name}")

    async def complete_onboarding_workflow(self, onboarding_id: int) -> None:
        """Record the completion of an onboarding in the audit trail."""
        try:
            onboarding = await self.tasks.get_process(ProcessType.ONBOARDING, onboarding_id)
        except StoreError as e:
            logger.error(f"Error completing onboarding workflow {onboarding_id}: {e}")
            return

        self.audit.log_activity(
            action="WorkflowCompleted",
            entity_type=ProcessType.ONBOARDING.value,
            entity_id=onboarding_id,
            entity_title=onboarding.title or onboarding.employee_name,
            details={
                "employee": onboarding.employee_name,
                "completedDate": self.clock().isoformat(),
            },
        )
        logger.info(f"Completed onboarding workflow for {onboarding.employee_name}")

    # Directory

    async def get_user_by_id(self, user_id: int) -> Optional[SiteUser]:
        try:
            return await self.directory.get_user_by_id(user_id)
        except StoreError as e:
            logger.error(f"Error getting user {user_id}: {e}")
            return None

    async def get_users_by_group(self, group_name: str) -> List[SiteUser]:
        try:
            return await self.directory.get_users_by_group(group_name)
        except StoreError as e:
            logger.error(f"Error getting users in group '{group_name}': {e}")
            return []
