"""
Constants for JML Lite.

List names, Configuration keys and notification theme values shared by
the services.
"""

from .models import Priority, ProcessType

# Lists
ONBOARDING_LIST = "JML_Onboarding"
ONBOARDING_TASKS_LIST = "JML_OnboardingTasks"
MOVER_LIST = "JML_Mover"
MOVER_TASKS_LIST = "JML_MoverTasks"
OFFBOARDING_LIST = "JML_Offboarding"
OFFBOARDING_TASKS_LIST = "JML_OffboardingTasks"
APPROVALS_LIST = "JML_Approvals"
NOTIFICATIONS_LIST = "JML_Notifications"
CONFIGURATION_LIST = "JML_Configuration"
AUDIT_TRAIL_LIST = "JML_AuditTrail"

PROCESS_LISTS = {
    ProcessType.ONBOARDING: ONBOARDING_LIST,
    ProcessType.MOVER: MOVER_LIST,
    ProcessType.OFFBOARDING: OFFBOARDING_LIST,
}

TASK_LISTS = {
    ProcessType.ONBOARDING: ONBOARDING_TASKS_LIST,
    ProcessType.MOVER: MOVER_TASKS_LIST,
    ProcessType.OFFBOARDING: OFFBOARDING_TASKS_LIST,
}

# Column on a task row that points at its parent process record
TASK_PARENT_FIELDS = {
    ProcessType.ONBOARDING: "OnboardingId",
    ProcessType.MOVER: "MoverId",
    ProcessType.OFFBOARDING: "OffboardingId",
}

# Employee columns on the parent process record
PROCESS_EMPLOYEE_FIELDS = {
    ProcessType.ONBOARDING: ("CandidateName", "CandidateId"),
    ProcessType.MOVER: ("EmployeeName", "EmployeeId"),
    ProcessType.OFFBOARDING: ("EmployeeName", "EmployeeId"),
}

# Key date column on the parent process record
PROCESS_KEY_DATE_FIELDS = {
    ProcessType.ONBOARDING: "StartDate",
    ProcessType.MOVER: "EffectiveDate",
    ProcessType.OFFBOARDING: "LastWorkingDate",
}

TERMINAL_PROCESS_STATUSES = ("Completed", "Cancelled")

# Configuration keys
WEBHOOK_KEY_MARKER = "TeamsWebhook"
WEBHOOK_PRIMARY_KEY = "TeamsWebhookPrimary"
WEBHOOK_LEGACY_PRIMARY_KEY = "TeamsWebhookUrl"
WEBHOOK_HR_KEY = "TeamsWebhookHR"
WEBHOOK_IT_KEY = "TeamsWebhookIT"
WEBHOOK_MANAGER_KEY = "TeamsWebhookManager"
WEBHOOK_ENABLED_KEY = "TeamsWebhookEnabled"

WEBHOOK_CONFIG_TTL_SECONDS = 5 * 60

# Microsoft Graph
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Approvals
DUE_SOON_DAYS = 3
SYSTEM_NAME = "JML Lite"

PRIORITY_ICONS = {
    Priority.LOW: "🟢",
    Priority.MEDIUM: "🟡",
    Priority.HIGH: "🟠",
    Priority.URGENT: "🔴",
}

# Email accent colours per process label
PROCESS_THEME_COLOURS = {
    "Onboarding": "#005BAA",
    "Transfer": "#ea580c",
    "Offboarding": "#d13438",
}
APPROVAL_THEME_COLOUR = "#7c3aed"
COMPLETED_THEME_COLOUR = "#10b981"
OVERDUE_THEME_COLOUR = "#d13438"
