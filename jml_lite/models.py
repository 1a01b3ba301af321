"""
Core data models for JML Lite.

This module defines the Pydantic models used throughout the system for
approvals, JML tasks, process records, audit entries and notification
intents. List-backed models use the list column names as field aliases so
that store rows validate straight into models and dump back to rows.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to timezone-aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ApprovalStatus(str, Enum):
    """Approval lifecycle state. Everything but PENDING is terminal."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


TERMINAL_APPROVAL_STATUSES = frozenset(
    {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.CANCELLED, ApprovalStatus.EXPIRED}
)


class ApprovalType(str, Enum):
    """What an approval gates."""
    ONBOARDING = "Onboarding"
    MOVER = "Mover"
    OFFBOARDING = "Offboarding"
    SYSTEM_ACCESS = "SystemAccess"
    EQUIPMENT = "Equipment"
    TRAINING = "Training"


class Priority(str, Enum):
    """Priority scale shared by approvals and Teams messages."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class RelatedItemType(str, Enum):
    """Kind of record an approval refers to."""
    ONBOARDING = "Onboarding"
    MOVER = "Mover"
    OFFBOARDING = "Offboarding"
    TASK = "Task"


class ApprovalActionType(str, Enum):
    """Actions accepted by ApprovalService.process_approval."""
    APPROVE = "approve"
    REJECT = "reject"
    DELEGATE = "delegate"
    CANCEL = "cancel"


class ProcessType(str, Enum):
    """The three JML processes; also the discriminator for task variants."""
    ONBOARDING = "Onboarding"
    MOVER = "Mover"
    OFFBOARDING = "Offboarding"


class ProcessLabel(str, Enum):
    """User-facing process names used in notifications (a mover is a 'Transfer')."""
    ONBOARDING = "Onboarding"
    TRANSFER = "Transfer"
    OFFBOARDING = "Offboarding"


def process_label(process_type: ProcessType) -> ProcessLabel:
    """Map a process type to the label shown in emails and cards."""
    if ProcessType(process_type) == ProcessType.MOVER:
        return ProcessLabel.TRANSFER
    return ProcessLabel(ProcessType(process_type).value)


class TaskStatus(str, Enum):
    """Task lifecycle state."""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"
    NOT_APPLICABLE = "Not Applicable"
    SKIPPED = "Skipped"


OPEN_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class TaskPriority(str, Enum):
    """Priority persisted on task rows and sent in task notifications."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskConfigurationPriority(str, Enum):
    """Priority offered by the task configuration UI, which adds CRITICAL."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


def downgrade_task_priority(value: Any) -> Any:
    """Collapse the UI-only 'Critical' priority onto 'High'; unset becomes 'Medium'."""
    if value is None or value == "":
        return TaskPriority.MEDIUM
    if isinstance(value, Enum):
        value = value.value
    if value == TaskConfigurationPriority.CRITICAL.value:
        return TaskPriority.HIGH
    return value


class NotificationCategory(str, Enum):
    """Categories used by Teams cards and in-app notifications."""
    ONBOARDING = "Onboarding"
    TRANSFER = "Transfer"
    OFFBOARDING = "Offboarding"
    APPROVAL = "Approval"
    TASK = "Task"
    SYSTEM = "System"


class EmailImportance(str, Enum):
    """Importance flag on outgoing mail."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class WebhookTarget(str, Enum):
    """Configured Teams channels."""
    PRIMARY = "primary"
    HR = "hr"
    IT = "it"
    MANAGER = "manager"


class JMLModel(BaseModel):
    """Base model; enum fields hold their plain string values."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class ListItem(JMLModel):
    """Base for models persisted as list rows."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # Store rows carry explicit nulls for empty columns; let field defaults apply instead.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    def to_item(self, exclude: Optional[set] = None) -> Dict[str, Any]:
        """Dump to a store row keyed by column name."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude=exclude)


class Approval(ListItem):
    """A gating decision requested by a workflow step."""
    id: Optional[int] = Field(None, alias="Id")
    title: str = Field("", alias="Title")
    approval_type: ApprovalType = Field(ApprovalType.ONBOARDING, alias="ApprovalType")
    status: ApprovalStatus = Field(ApprovalStatus.PENDING, alias="Status")
    priority: Priority = Field(Priority.MEDIUM, alias="Priority")

    related_item_id: Optional[int] = Field(None, alias="RelatedItemId")
    related_item_type: RelatedItemType = Field(RelatedItemType.ONBOARDING, alias="RelatedItemType")
    related_item_title: Optional[str] = Field(None, alias="RelatedItemTitle")

    employee_name: str = Field("", alias="EmployeeName")
    employee_email: Optional[str] = Field(None, alias="EmployeeEmail")
    department: Optional[str] = Field(None, alias="Department")
    job_title: Optional[str] = Field(None, alias="JobTitle")

    requestor_id: Optional[int] = Field(None, alias="RequestorId")
    requestor_name: Optional[str] = Field(None, alias="RequestorName")
    requestor_email: Optional[str] = Field(None, alias="RequestorEmail")
    requested_date: Optional[UtcDatetime] = Field(None, alias="RequestedDate")

    approver_id: Optional[int] = Field(None, alias="ApproverId")
    approver_name: Optional[str] = Field(None, alias="ApproverName")
    approver_email: Optional[str] = Field(None, alias="ApproverEmail")

    approved_by_id: Optional[int] = Field(None, alias="ApprovedById")
    approved_by_name: Optional[str] = Field(None, alias="ApprovedByName")
    approved_date: Optional[UtcDatetime] = Field(None, alias="ApprovedDate")

    request_comments: Optional[str] = Field(None, alias="RequestComments")
    approval_comments: Optional[str] = Field(None, alias="ApprovalComments")
    rejection_reason: Optional[str] = Field(None, alias="RejectionReason")

    due_date: Optional[UtcDatetime] = Field(None, alias="DueDate")

    delegated_to_id: Optional[int] = Field(None, alias="DelegatedToId")
    delegated_to_name: Optional[str] = Field(None, alias="DelegatedToName")
    delegated_date: Optional[UtcDatetime] = Field(None, alias="DelegatedDate")

    created: Optional[UtcDatetime] = Field(None, alias="Created")
    modified: Optional[UtcDatetime] = Field(None, alias="Modified")

    @property
    def is_terminal(self) -> bool:
        return ApprovalStatus(self.status) in TERMINAL_APPROVAL_STATUSES


class ApprovalFilters(JMLModel):
    """Filter dimensions for ApprovalService.get_approvals.

    Multi-value dimensions are OR'd internally; dimensions are AND'd together.
    """
    status: List[ApprovalStatus] = Field(default_factory=list)
    types: List[ApprovalType] = Field(default_factory=list)
    priority: List[Priority] = Field(default_factory=list)
    approver_id: Optional[int] = None
    requestor_id: Optional[int] = None
    related_item_id: Optional[int] = None
    related_item_type: Optional[RelatedItemType] = None
    due_before: Optional[UtcDatetime] = Field(None, description="Inclusive upper bound on DueDate")
    due_after: Optional[UtcDatetime] = Field(None, description="Inclusive lower bound on DueDate")


class ApprovalStats(JMLModel):
    """Aggregate counts for the approval queue."""
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    overdue: int = 0
    due_today: int = 0
    due_soon: int = 0


class ApprovalAction(JMLModel):
    """A single state transition request against an approval."""
    approval_id: int
    action: ApprovalActionType
    comments: Optional[str] = None
    delegate_to_id: Optional[int] = None
    delegate_to_name: Optional[str] = None


class CreateApprovalRequest(JMLModel):
    """Payload used to open a new approval."""
    title: str
    approval_type: ApprovalType
    priority: Optional[Priority] = None
    related_item_id: int
    related_item_type: RelatedItemType
    related_item_title: Optional[str] = None
    employee_name: str
    employee_email: Optional[str] = None
    department: Optional[str] = None
    job_title: Optional[str] = None
    requestor_id: Optional[int] = None
    requestor_name: Optional[str] = None
    requestor_email: Optional[str] = None
    approver_id: Optional[int] = None
    approver_name: Optional[str] = None
    approver_email: Optional[str] = None
    due_date: Optional[UtcDatetime] = None
    request_comments: Optional[str] = None


class AuditEntry(ListItem):
    """Write-once activity record."""
    id: Optional[int] = Field(None, alias="Id")
    action: str = Field(..., alias="Action")
    entity_type: str = Field(..., alias="EntityType")
    entity_id: Optional[int] = Field(None, alias="EntityId")
    entity_title: Optional[str] = Field(None, alias="EntityTitle")
    details: Optional[str] = Field(None, alias="Details", description="JSON-encoded details blob")
    performed_by_name: Optional[str] = Field(None, alias="PerformedByName")
    timestamp: Optional[UtcDatetime] = Field(None, alias="Timestamp")


class Task(ListItem):
    """A JML checklist task; `kind` says which of the three task lists holds it."""
    id: Optional[int] = Field(None, alias="Id")
    kind: ProcessType = Field(..., alias="Kind")
    parent_id: Optional[int] = Field(None, alias="ParentId")
    title: str = Field("", alias="Title")
    description: Optional[str] = Field(None, alias="Description")
    category: str = Field("", alias="Category")
    status: TaskStatus = Field(TaskStatus.PENDING, alias="Status")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, alias="Priority")
    assigned_to_id: Optional[int] = Field(None, alias="AssignedToId")
    due_date: Optional[UtcDatetime] = Field(None, alias="DueDate")
    completed_date: Optional[UtcDatetime] = Field(None, alias="CompletedDate")
    completed_by_id: Optional[int] = Field(None, alias="CompletedById")
    sort_order: Optional[int] = Field(None, alias="SortOrder")
    notes: Optional[str] = Field(None, alias="Notes")

    downgrade_priority = field_validator("priority", mode="before")(downgrade_task_priority)


class TaskConfiguration(JMLModel):
    """A task as configured in a process wizard, before it is persisted."""
    title: str
    category: str = "General"
    description: Optional[str] = None
    priority: TaskConfigurationPriority = TaskConfigurationPriority.MEDIUM
    days_offset: int = Field(0, description="Days relative to the process key date")
    due_date: Optional[UtcDatetime] = None
    assigned_to_id: Optional[int] = None
    sort_order: Optional[int] = None
    source_type: Optional[str] = Field(None, description="'system' or 'asset' for catalogue-sourced tasks")
    requires_approval: bool = False
    approver_id: Optional[int] = None


class ProcessRecord(ListItem):
    """An onboarding, mover or offboarding record (the parent of tasks)."""
    id: Optional[int] = Field(None, alias="Id")
    kind: ProcessType = Field(..., alias="Kind")
    title: str = Field("", alias="Title")
    employee_name: str = Field("", alias="EmployeeName")
    employee_id: Optional[int] = Field(None, alias="EmployeeId")
    status: str = Field("", alias="Status")
    department: Optional[str] = Field(None, alias="Department")
    job_title: Optional[str] = Field(None, alias="JobTitle")
    key_date: Optional[UtcDatetime] = Field(None, alias="KeyDate")
    total_tasks: int = Field(0, alias="TotalTasks")
    completed_tasks: int = Field(0, alias="CompletedTasks")
    completion_percentage: int = Field(0, alias="CompletionPercentage")
    completed_date: Optional[UtcDatetime] = Field(None, alias="CompletedDate")

    @property
    def is_active(self) -> bool:
        return self.status not in ("Completed", "Cancelled")


class SiteUser(ListItem):
    """A user known to the site directory."""
    id: int = Field(..., alias="Id")
    title: str = Field("", alias="Title", description="Display name")
    email: str = Field("", alias="Email")

    def to_recipient(self) -> "NotificationRecipient":
        return NotificationRecipient(user_id=self.id, email=self.email, display_name=self.title)


class EmployeeInfo(JMLModel):
    """Employee facts attached to approval requests."""
    name: str
    email: Optional[str] = None
    department: Optional[str] = None
    job_title: Optional[str] = None


class TaskAssignment(JMLModel):
    """Input to WorkflowOrchestrator.assign_task."""
    task_id: int
    task_title: str
    category: str
    process_type: ProcessType
    process_id: int
    employee_name: str
    assignee_user_id: int
    assignee_email: str
    assignee_name: str
    due_date: Optional[UtcDatetime] = None
    priority: TaskPriority = TaskPriority.MEDIUM

    downgrade_priority = field_validator("priority", mode="before")(downgrade_task_priority)


# Notification intents


class NotificationRecipient(JMLModel):
    """Someone a notification is addressed to."""
    user_id: Optional[int] = None
    email: str
    display_name: str = ""


class NotificationPayload(JMLModel):
    """A rendered email ready for delivery."""
    recipients: List[NotificationRecipient]
    subject: str
    body: str
    body_html: Optional[str] = None
    priority: EmailImportance = EmailImportance.NORMAL
    action_url: Optional[str] = None
    action_label: Optional[str] = None


class Fact(JMLModel):
    """One title/value row of an Adaptive Card FactSet."""
    title: str
    value: str


class TaskNotification(JMLModel):
    """Facts needed to render a task email or card."""
    task_id: Optional[int] = None
    task_title: str
    task_category: str
    process_type: ProcessLabel
    employee_name: str
    assigned_to: Optional[NotificationRecipient] = None
    due_date: Optional[UtcDatetime] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    action_url: Optional[str] = None
    is_overdue: bool = False
    days_overdue: Optional[int] = None

    downgrade_priority = field_validator("priority", mode="before")(downgrade_task_priority)


class ApprovalNotification(JMLModel):
    """Facts needed to render an approval request email or card."""
    approval_id: Optional[int] = None
    approval_type: str
    request_title: str
    employee_name: str
    requestor_name: str
    approver: Optional[NotificationRecipient] = None
    details: str = ""
    action_url: str
    due_date: Optional[UtcDatetime] = None


class ProcessNotification(JMLModel):
    """Facts needed to render a process started/completed card."""
    process_type: ProcessLabel
    process_id: int
    employee_name: str
    department: str
    job_title: str
    effective_date: UtcDatetime
    manager_name: Optional[str] = None
    action_url: Optional[str] = None
    additional_facts: List[Fact] = Field(default_factory=list)


class WebhookMessage(JMLModel):
    """A general-purpose Teams card message."""
    title: str
    subtitle: Optional[str] = None
    message: str
    category: NotificationCategory
    priority: Priority
    facts: List[Fact] = Field(default_factory=list)
    action_url: Optional[str] = None
    action_title: Optional[str] = None
    mention_emails: List[str] = Field(default_factory=list)


class WebhookConfig(JMLModel):
    """Teams webhook settings resolved from the configuration list."""
    primary_webhook_url: Optional[str] = None
    hr_webhook_url: Optional[str] = None
    it_webhook_url: Optional[str] = None
    manager_webhook_url: Optional[str] = None
    is_enabled: bool = False


class InAppNotificationType(str, Enum):
    """Type tag for in-app notifications."""
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"
    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"
    ONBOARDING_STARTED = "onboarding_started"
    TRANSFER_STARTED = "transfer_started"
    OFFBOARDING_STARTED = "offboarding_started"
    REMINDER = "reminder"
    SYSTEM = "system"
    INFO = "info"


class InAppPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class InAppNotification(ListItem):
    """A notification shown in the app's notification panel."""
    id: Optional[int] = Field(None, alias="Id")
    title: str = Field(..., alias="Title")
    message: str = Field("", alias="Message")
    notification_type: InAppNotificationType = Field(InAppNotificationType.INFO, alias="NotificationType")
    category: NotificationCategory = Field(NotificationCategory.SYSTEM, alias="Category")
    priority: InAppPriority = Field(InAppPriority.MEDIUM, alias="Priority")
    recipient_id: Optional[int] = Field(None, alias="RecipientId")
    recipient_email: str = Field(..., alias="RecipientEmail")
    related_entity_type: Optional[str] = Field(None, alias="RelatedEntityType")
    related_entity_id: Optional[int] = Field(None, alias="RelatedEntityId")
    action_url: Optional[str] = Field(None, alias="ActionUrl")
    is_read: bool = Field(False, alias="IsRead")
    is_dismissed: bool = Field(False, alias="IsDismissed")
    read_at: Optional[UtcDatetime] = Field(None, alias="ReadAt")
    created: Optional[UtcDatetime] = Field(None, alias="Created")
    expires_at: Optional[UtcDatetime] = Field(None, alias="ExpiresAt")


class TaskWithReminder(JMLModel):
    """An open task joined to its parent record's employee."""
    task_id: int
    task_title: str
    task_category: str = ""
    process_type: ProcessType
    employee_name: str
    employee_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    assigned_to_email: Optional[str] = None
    due_date: UtcDatetime
    priority: TaskPriority = TaskPriority.MEDIUM
    status: str
    parent_id: int

    downgrade_priority = field_validator("priority", mode="before")(downgrade_task_priority)


class ReminderResult(JMLModel):
    """Outcome of one reminder in a sweep."""
    task_id: int
    task_title: str
    sent: bool
    error: Optional[str] = None


class TaskStats(JMLModel):
    """Reminder dashboard counts."""
    overdue: int = 0
    due_today: int = 0
    due_soon: int = 0
    total: int = 0
