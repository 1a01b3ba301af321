"""
Tests for Adaptive Card builders and email templates.
"""

import pytest

from conftest import NOW, days_from_now
from jml_lite.models import (
    ApprovalNotification,
    Fact,
    NotificationRecipient,
    ProcessNotification,
    TaskNotification,
    TaskWithReminder,
    WebhookMessage,
)
from jml_lite.notifications import email_templates
from jml_lite.notifications.cards import (
    CARD_CONTENT_TYPE,
    build_approval_card,
    build_general_card,
    build_process_card,
    build_task_card,
    webhook_envelope,
)

ASSIGNEE = NotificationRecipient(user_id=3, email="jo@contoso.com", display_name="Jo Assignee")


def header_text(card):
    return card["body"][0]["items"][0]["text"]


def facts(card):
    factset = next(item for item in card["body"][1]["items"] if item["type"] == "FactSet")
    return {fact["title"]: fact["value"] for fact in factset["facts"]}


@pytest.fixture
def task():
    return TaskNotification(
        task_id=5,
        task_title="Set up laptop",
        task_category="IT",
        process_type="Onboarding",
        employee_name="Casey New",
        assigned_to=ASSIGNEE,
        due_date=days_from_now(2),
        priority="High",
        action_url="https://contoso/jml?view=onboarding&id=5",
    )


class TestTaskCard:
    """Test cases for the task card."""

    def test_assignment_card(self, task):
        """A task that is not due yet gets the assignment header and a View Task action."""
        card = build_task_card(task, NOW)

        assert card["type"] == "AdaptiveCard"
        assert card["version"] == "1.4"
        assert header_text(card) == "🟠 New Task Assigned"
        assert card["body"][0]["style"] == "emphasis"
        assert card["actions"][0]["title"] == "View Task"
        assert facts(card)["Assigned To"] == "Jo Assignee"
        assert facts(card)["Due Date"] == "12 Mar 2026"

    def test_past_due_date_makes_card_overdue(self, task):
        """A due date in the past switches to the overdue layout even without the flag."""
        card = build_task_card(task.model_copy(update={"due_date": days_from_now(-1)}), NOW)

        assert header_text(card) == "⚠️ Overdue Task"
        assert card["body"][0]["style"] == "attention"
        assert card["actions"][0]["title"] == "Complete Task Now"
        assert facts(card)["Due Date"].startswith("⚠️")

    def test_overdue_days_in_header(self, task):
        card = build_task_card(task.model_copy(update={"is_overdue": True, "days_overdue": 3}), NOW)
        assert header_text(card) == "⚠️ Overdue Task (3 days)"

    def test_no_action_without_url(self, task):
        assert build_task_card(task.model_copy(update={"action_url": None}), NOW)["actions"] == []

    def test_critical_renders_as_high(self):
        critical = TaskNotification(
            task_id=5, task_title="Laptop", task_category="IT", process_type="Onboarding",
            employee_name="Casey New", due_date=days_from_now(2), priority="Critical",
        )

        assert critical.priority == "High"
        assert header_text(build_task_card(critical, NOW)) == "🟠 New Task Assigned"

    @pytest.mark.parametrize("priority, expected", [("Critical", "High"), (None, "Medium"), ("Low", "Low")])
    def test_reminder_task_priority(self, priority, expected):
        task = TaskWithReminder(
            task_id=1, task_title="Laptop", process_type="Onboarding", employee_name="Casey New",
            due_date=days_from_now(-1), priority=priority, status="Pending", parent_id=1,
        )
        assert task.priority == expected


class TestOtherCards:
    """Test cases for the approval, process and general cards."""

    def test_approval_card(self):
        card = build_approval_card(
            ApprovalNotification(
                approval_id=9,
                approval_type="System Access Request",
                request_title="System Access: CRM for Casey New",
                employee_name="Casey New",
                requestor_name="Alex Admin",
                details="Requesting Admin access to CRM",
                action_url="https://contoso/jml?view=approvals&id=9",
                due_date=days_from_now(3),
            )
        )

        assert header_text(card) == "⚠️ Approval Required"
        assert card["actions"][0]["title"] == "Review & Approve"
        assert facts(card)["Requested By"] == "Alex Admin"
        assert facts(card)["Due By"] == "13 Mar 2026"
        assert card["body"][1]["items"][-1]["items"][0]["text"] == "Requesting Admin access to CRM"

    @pytest.fixture
    def process(self):
        return ProcessNotification(
            process_type="Offboarding",
            process_id=4,
            employee_name="Morgan Leaver",
            department="Finance",
            job_title="Analyst",
            effective_date=days_from_now(10),
            additional_facts=[Fact(title="Type", value="Voluntary")],
        )

    def test_process_card(self, process):
        """Offboarding cards label the date as the last day."""
        card = build_process_card(process, "started")

        assert header_text(card) == "🚀 Offboarding Started"
        assert facts(card)["Last Day"] == "20 Mar 2026"
        assert facts(card)["Type"] == "Voluntary"
        assert card["actions"] == []

    def test_process_card_completed(self, process):
        card = build_process_card(process.model_copy(update={"process_type": "Onboarding"}), "completed")
        assert header_text(card) == "✅ Onboarding Completed"
        assert "Effective Date" in facts(card)

    def test_process_card_unknown_status(self, process):
        with pytest.raises(ValueError):
            build_process_card(process, "paused")

    def test_general_card_mentions(self):
        card = build_general_card(
            WebhookMessage(
                title="Heads up",
                message="Payroll closes today",
                category="System",
                priority="Urgent",
                mention_emails=["sam@contoso.com"],
                action_url="https://contoso/jml",
            )
        )

        title = card["body"][0]["items"][0]["columns"][0]["items"][0]["text"]
        assert title == "🔴 Heads up"
        assert card["actions"][0]["title"] == "View Details"
        assert card["msteams"]["entities"][0]["mentioned"] == {"id": "sam@contoso.com", "name": "sam"}

    def test_webhook_envelope(self):
        envelope = webhook_envelope({"type": "AdaptiveCard"})
        assert envelope["type"] == "message"
        assert envelope["attachments"][0]["contentType"] == CARD_CONTENT_TYPE
        assert envelope["attachments"][0]["content"] == {"type": "AdaptiveCard"}


class TestEmailTemplates:
    """Test cases for email templates."""

    def test_task_assigned(self, task):
        payload = email_templates.task_assigned_email(task, NOW)

        assert payload.subject == "[JML Lite] Task Assigned: Set up laptop"
        assert payload.recipients == [ASSIGNEE]
        assert payload.priority == "normal"
        assert "Due Date: 12 Mar 2026" in payload.body
        assert "View Task" in payload.body_html

    def test_task_overdue(self, task):
        payload = email_templates.task_overdue_email(task.model_copy(update={"due_date": days_from_now(-3)}), NOW)

        assert payload.subject == "[OVERDUE] Set up laptop — Action Required"
        assert payload.priority == "high"
        assert "3 day(s) overdue" in payload.body
        assert "3 days overdue" in payload.body_html

    def test_values_are_escaped(self, task):
        """User-supplied text cannot inject markup."""
        payload = email_templates.task_assigned_email(
            task.model_copy(update={"task_title": "<script>alert(1)</script>", "employee_name": "O'Brien & Co"}),
            NOW,
        )

        assert "<script>" not in payload.body_html
        assert "&lt;script&gt;" in payload.body_html
        assert "O&#x27;Brien &amp; Co" in payload.body_html

    def test_approval_required(self):
        approver = NotificationRecipient(user_id=2, email="sam@contoso.com", display_name="Sam Approver")
        payload = email_templates.approval_required_email(
            ApprovalNotification(
                approval_type="Equipment Request",
                request_title="Equipment Request: Laptop for Casey New",
                employee_name="Casey New",
                requestor_name="System",
                approver=approver,
                action_url="https://contoso/jml?view=approvals&id=1",
            )
        )

        assert payload.subject == "[Approval Required] Equipment Request: Laptop for Casey New"
        assert payload.recipients == [approver]
        assert payload.priority == "high"
        assert payload.action_label == "Review & Approve"

    def test_approval_decision(self):
        requestor = NotificationRecipient(email="alex@contoso.com", display_name="Alex Admin")
        payload = email_templates.approval_decision_email(
            "Laptop", "Casey New", "Rejected", "Sam Approver", "No budget", requestor, NOW
        )

        assert payload.subject == "[Rejected] Laptop"
        assert "has been rejected by Sam Approver" in payload.body
        assert "Comments: No budget" in payload.body
