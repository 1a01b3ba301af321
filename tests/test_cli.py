"""
Tests for the jmlctl command line interface.

Each command runs against a JSON list snapshot in a temporary directory.
"""

from datetime import datetime, timezone

import pytest
from click.testing import CliRunner

from jml_lite.cli.jmlctl import cli
from jml_lite.constants import (
    APPROVALS_LIST,
    AUDIT_TRAIL_LIST,
    CONFIGURATION_LIST,
    ONBOARDING_LIST,
    ONBOARDING_TASKS_LIST,
)
from jml_lite.store import InMemoryListStore

LONG_AGO = datetime(2020, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "jml_store.json"


def invoke(runner, store_path, *args):
    return runner.invoke(cli, ["--store", str(store_path), *args], obj={})


class TestApprovalCommands:
    """Test cases for approval commands."""

    def test_expire_approvals(self, runner, store_path):
        InMemoryListStore(store_path).seed(
            APPROVALS_LIST,
            [
                {"Title": "Laptop", "Status": "Pending", "DueDate": LONG_AGO},
                {"Title": "Badge", "Status": "Pending"},
            ],
        )

        result = invoke(runner, store_path, "expire-approvals")
        assert result.exit_code == 0
        assert "Expired 1 overdue approvals" in result.output

        result = invoke(runner, store_path, "expire-approvals")
        assert "No overdue approvals to expire" in result.output

        rows = InMemoryListStore(store_path).lists[APPROVALS_LIST]
        assert rows[1]["Status"] == "Expired"
        assert rows[2]["Status"] == "Pending"

    def test_approval_stats(self, runner, store_path):
        InMemoryListStore(store_path).seed(
            APPROVALS_LIST,
            [{"Title": "Laptop", "Status": "Pending", "ApproverId": 7}, {"Title": "Badge", "Status": "Approved"}],
        )

        result = invoke(runner, store_path, "approval-stats", "--approver-id", "7")

        assert result.exit_code == 0
        assert "Approval Statistics" in result.output
        assert "Pending" in result.output


class TestTaskCommands:
    """Test cases for task commands."""

    @pytest.fixture
    def overdue_task(self, store_path):
        store = InMemoryListStore(store_path)
        store.seed(ONBOARDING_LIST, [{"CandidateName": "Casey New", "Status": "In Progress"}])
        store.seed(
            ONBOARDING_TASKS_LIST,
            [{"Title": "Laptop", "Status": "Pending", "DueDate": LONG_AGO, "OnboardingId": 1}],
        )
        return store

    def test_task_stats(self, runner, store_path, overdue_task):
        result = invoke(runner, store_path, "task-stats")

        assert result.exit_code == 0
        assert "Task Statistics" in result.output
        assert "Total" in result.output

    def test_send_reminders_without_webhook(self, runner, store_path, overdue_task):
        result = invoke(runner, store_path, "send-reminders")

        assert result.exit_code == 0
        assert "Laptop" in result.output
        assert "Sent 0 of 1 reminders" in result.output

    def test_send_reminders_nothing_due(self, runner, store_path):
        result = invoke(runner, store_path, "send-reminders", "--due-today")

        assert result.exit_code == 0
        assert "No tasks need reminders" in result.output

    def test_orchestrator_sweep(self, runner, store_path):
        result = invoke(runner, store_path, "orchestrator-sweep")

        assert result.exit_code == 0
        assert "Sweep complete: 0 reminders fired" in result.output


class TestWebhookCommands:
    """Test cases for webhook commands."""

    def test_set_webhook(self, runner, store_path):
        result = invoke(runner, store_path, "set-webhook", "TeamsWebhookPrimary", "https://contoso.webhook.office.com/x")

        assert result.exit_code == 0
        assert "Saved TeamsWebhookPrimary" in result.output
        [row] = InMemoryListStore(store_path).lists[CONFIGURATION_LIST].values()
        assert row["ConfigValue"] == "https://contoso.webhook.office.com/x"

    def test_set_webhook_invalid_url(self, runner, store_path):
        result = invoke(runner, store_path, "set-webhook", "TeamsWebhookHR", "http://contoso")

        assert result.exit_code == 1
        assert "Webhook URL must use https" in result.output

    def test_set_enabled_flag(self, runner, store_path):
        assert invoke(runner, store_path, "set-webhook", "TeamsWebhookEnabled", "maybe").exit_code == 1
        assert invoke(runner, store_path, "set-webhook", "TeamsWebhookEnabled", "TRUE").exit_code == 0

        [row] = InMemoryListStore(store_path).lists[CONFIGURATION_LIST].values()
        assert row["ConfigValue"] == "true"

    def test_unknown_key(self, runner, store_path):
        assert invoke(runner, store_path, "set-webhook", "SiteTheme", "dark").exit_code == 2

    def test_test_webhook_invalid_url(self, runner, store_path):
        result = invoke(runner, store_path, "test-webhook", "http://contoso")

        assert result.exit_code == 1
        assert "Webhook test failed" in result.output


class TestAuditAndConfig:
    """Test cases for the audit log command and configuration handling."""

    def test_audit_log_empty(self, runner, store_path):
        result = invoke(runner, store_path, "audit-log")
        assert "No audit entries found" in result.output

    def test_audit_log(self, runner, store_path):
        InMemoryListStore(store_path).seed(
            AUDIT_TRAIL_LIST,
            [
                {"Action": "TaskAssigned", "EntityType": "OnboardingTask", "EntityId": 5, "EntityTitle": "Laptop"},
                {"Action": "ApprovalApproved", "EntityType": "Approval", "EntityId": 2},
            ],
        )

        result = invoke(runner, store_path, "audit-log", "--entity-type", "OnboardingTask")

        assert result.exit_code == 0
        assert "TaskAssigned" in result.output
        assert "ApprovalApproved" not in result.output

    def test_invalid_config(self, runner, store_path, tmp_path):
        config_path = tmp_path / "jml.yaml"
        config_path.write_text("overdue_reminder_days: [0]\n", encoding="utf-8")

        result = invoke(runner, store_path, "--config", str(config_path), "task-stats")

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
