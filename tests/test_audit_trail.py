"""
Tests for the Audit Trail Service and the background dispatcher.
"""

import asyncio
import json
import logging

import pytest

from conftest import NOW, FailingListStore, days_from_now
from jml_lite.audit import AuditTrailService
from jml_lite.background import BackgroundDispatcher
from jml_lite.constants import AUDIT_TRAIL_LIST


class TestAuditTrailService:
    """Test cases for AuditTrailService."""

    @pytest.fixture
    def audit(self, store, dispatcher):
        return AuditTrailService(store, dispatcher)

    @pytest.mark.asyncio
    async def test_log_activity_writes_entry(self, audit, store, dispatcher):
        """Dict details are JSON-encoded and the action doubles as the title."""
        audit.log_activity("TaskAssigned", "OnboardingTask", 5, "Laptop", {"assignedTo": "Jo", "empty": None})
        await dispatcher.drain()

        [row] = await store.get_items(AUDIT_TRAIL_LIST)
        assert row["Title"] == "TaskAssigned"
        assert row["EntityType"] == "OnboardingTask"
        assert row["EntityId"] == 5
        assert json.loads(row["Details"]) == {"assignedTo": "Jo", "empty": None}

    @pytest.mark.asyncio
    async def test_none_fields_are_omitted(self, audit, store, dispatcher):
        audit.log_activity("WorkflowStarted", "Onboarding")
        await dispatcher.drain()

        [row] = await store.get_items(AUDIT_TRAIL_LIST)
        assert "EntityId" not in row
        assert "Details" not in row

    @pytest.mark.asyncio
    async def test_log_activity_does_not_wait(self, audit, store, dispatcher):
        """The write happens after the caller continues."""
        audit.log_activity("TaskAssigned", "OnboardingTask", 5)

        assert dispatcher.pending == 1
        assert await store.get_items(AUDIT_TRAIL_LIST) == []
        await dispatcher.drain()
        assert len(await store.get_items(AUDIT_TRAIL_LIST)) == 1

    @pytest.mark.asyncio
    async def test_failed_write_is_swallowed(self, dispatcher, caplog):
        audit = AuditTrailService(FailingListStore([AUDIT_TRAIL_LIST]), dispatcher)

        with caplog.at_level(logging.WARNING):
            audit.log_activity("TaskAssigned", "OnboardingTask", 5)
            await dispatcher.drain()

        assert "Failed to write audit entry TaskAssigned" in caplog.text

    @pytest.mark.asyncio
    async def test_get_audit_log_filters_and_orders(self, audit, store):
        store.seed(
            AUDIT_TRAIL_LIST,
            [
                {"Action": "TaskAssigned", "EntityType": "OnboardingTask", "EntityId": 5,
                 "Created": days_from_now(-3), "Author": {"Title": "Alex Admin"}},
                {"Action": "TaskCompleted", "EntityType": "OnboardingTask", "EntityId": 5,
                 "Created": days_from_now(-1)},
                {"Action": "TaskAssigned", "EntityType": "MoverTask", "EntityId": 5, "Created": NOW},
            ],
        )

        entries = await audit.get_audit_log(entity_type="OnboardingTask", entity_id=5)
        assert [e.action for e in entries] == ["TaskCompleted", "TaskAssigned"]
        assert entries[1].performed_by_name == "Alex Admin"
        assert entries[0].performed_by_name == "System"
        assert entries[1].timestamp == days_from_now(-3)

        recent = await audit.get_audit_log(since=days_from_now(-2))
        assert len(recent) == 2

        assert len(await audit.get_audit_log(action="TaskAssigned", top=1)) == 1

    @pytest.mark.asyncio
    async def test_get_audit_log_store_failure(self, dispatcher):
        audit = AuditTrailService(FailingListStore([AUDIT_TRAIL_LIST]), dispatcher)
        assert await audit.get_audit_log() == []


class TestBackgroundDispatcher:
    """Test cases for BackgroundDispatcher."""

    @pytest.mark.asyncio
    async def test_drain_waits_for_nested_work(self):
        dispatcher = BackgroundDispatcher()
        done = []

        async def inner():
            await asyncio.sleep(0)
            done.append("inner")

        async def outer():
            dispatcher.spawn(inner(), "inner")
            done.append("outer")

        dispatcher.spawn(outer(), "outer")
        await dispatcher.drain()

        assert done == ["outer", "inner"]
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        dispatcher = BackgroundDispatcher()

        async def explode():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            dispatcher.spawn(explode(), "exploding task")
            await dispatcher.drain()

        assert "Background task failed (exploding task): boom" in caplog.text
