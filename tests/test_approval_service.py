"""
Tests for the Approval Service.

Covers approval creation, filtering and ordering, the status state machine,
delegation, statistics and expiry.
"""

from datetime import timedelta

import pytest

from conftest import NOW, TODAY, FailingListStore, days_from_now
from jml_lite.constants import APPROVALS_LIST
from jml_lite.models import (
    ApprovalAction,
    ApprovalFilters,
    ApprovalStatus,
    ApprovalType,
    CreateApprovalRequest,
    Priority,
    RelatedItemType,
)
from jml_lite.workflows.approval_service import ApprovalService


def approval_row(**overrides):
    row = {
        "Title": "Laptop for Casey",
        "ApprovalType": "Equipment",
        "Status": "Pending",
        "Priority": "Medium",
        "RelatedItemId": 1,
        "RelatedItemType": "Onboarding",
        "EmployeeName": "Casey New",
        "ApproverId": 2,
        "ApproverName": "Sam Approver",
    }
    row.update(overrides)
    return row


class TestApprovalService:
    """Test cases for ApprovalService."""

    @pytest.fixture
    def service(self, store, clock):
        return ApprovalService(store, clock)

    @pytest.mark.asyncio
    async def test_create_approval_defaults(self, service, store):
        """A new approval is Pending, Medium priority, requested now and has no due date."""
        approval = await service.create_approval(
            CreateApprovalRequest(
                title="Badge for Casey",
                approval_type=ApprovalType.EQUIPMENT,
                related_item_id=1,
                related_item_type=RelatedItemType.ONBOARDING,
                employee_name="Casey New",
                approver_id=2,
            )
        )

        assert approval is not None
        assert approval.id == 1
        assert approval.status == ApprovalStatus.PENDING
        assert approval.priority == Priority.MEDIUM
        assert approval.requested_date == NOW
        assert approval.due_date is None
        assert "DueDate" not in await store.get_item(APPROVALS_LIST, 1)

    @pytest.mark.asyncio
    async def test_create_approval_store_failure(self, clock):
        """A failed write returns None."""
        service = ApprovalService(FailingListStore([APPROVALS_LIST]), clock)
        approval = await service.create_approval(
            CreateApprovalRequest(
                title="Badge",
                approval_type=ApprovalType.EQUIPMENT,
                related_item_id=1,
                related_item_type=RelatedItemType.ONBOARDING,
                employee_name="Casey New",
            )
        )
        assert approval is None

    @pytest.mark.asyncio
    async def test_get_approvals_ordering(self, service, store):
        """Higher priority first, then earlier due date, with no due date last."""
        store.seed(
            APPROVALS_LIST,
            [
                approval_row(Title="low", Priority="Low", DueDate=days_from_now(1)),
                approval_row(Title="high-late", Priority="High", DueDate=days_from_now(5)),
                approval_row(Title="high-undated", Priority="High"),
                approval_row(Title="high-early", Priority="High", DueDate=days_from_now(2)),
                approval_row(Title="urgent", Priority="Urgent", DueDate=days_from_now(9)),
            ],
        )

        titles = [a.title for a in await service.get_approvals()]
        assert titles == ["urgent", "high-early", "high-late", "high-undated", "low"]

    @pytest.mark.asyncio
    async def test_get_approvals_filters(self, service, store):
        """Multiple statuses are OR'd and combined with the approver filter."""
        store.seed(
            APPROVALS_LIST,
            [
                approval_row(Title="pending-2", Status="Pending", ApproverId=2),
                approval_row(Title="approved-2", Status="Approved", ApproverId=2),
                approval_row(Title="rejected-2", Status="Rejected", ApproverId=2),
                approval_row(Title="pending-3", Status="Pending", ApproverId=3),
            ],
        )

        approvals = await service.get_approvals(
            ApprovalFilters(status=[ApprovalStatus.PENDING, ApprovalStatus.APPROVED], approver_id=2)
        )
        assert sorted(a.title for a in approvals) == ["approved-2", "pending-2"]

    @pytest.mark.asyncio
    async def test_due_bounds_are_inclusive(self, service, store):
        store.seed(
            APPROVALS_LIST,
            [
                approval_row(Title="on-bound", DueDate=TODAY),
                approval_row(Title="after", DueDate=TODAY + timedelta(days=1)),
            ],
        )
        approvals = await service.get_approvals(ApprovalFilters(due_before=TODAY))
        assert [a.title for a in approvals] == ["on-bound"]

    @pytest.mark.asyncio
    async def test_get_approvals_store_failure(self, clock):
        """An unreadable list yields an empty result."""
        service = ApprovalService(FailingListStore([APPROVALS_LIST]), clock)
        assert await service.get_approvals() == []
        assert await service.get_approval_by_id(1) is None

    @pytest.mark.asyncio
    async def test_invalid_rows_are_skipped(self, service, store):
        """A row with an unknown status does not break the queue."""
        store.seed(APPROVALS_LIST, [approval_row(Title="Good"), approval_row(Title="Bad", Status="Draft")])

        assert [a.title for a in await service.get_approvals()] == ["Good"]
        assert await service.get_approval_by_id(2) is None
        assert (await service.get_approval_by_id(1)).title == "Good"
        assert (await service.get_approval_stats()).pending == 1

    @pytest.mark.asyncio
    async def test_delegate_keeps_status(self, service, store):
        """Delegation reassigns the approver and leaves the approval Pending."""
        store.seed(APPROVALS_LIST, [approval_row()])

        ok = await service.process_approval(
            ApprovalAction(approval_id=1, action="delegate", delegate_to_id=3, delegate_to_name="Jo Assignee")
        )

        approval = await service.get_approval_by_id(1)
        assert ok is True
        assert approval.status == ApprovalStatus.PENDING
        assert approval.approver_id == 3
        assert approval.approver_name == "Jo Assignee"
        assert approval.delegated_to_id == 3
        assert approval.delegated_date == NOW

    @pytest.mark.asyncio
    async def test_delegate_requires_target(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row()])
        assert await service.process_approval(ApprovalAction(approval_id=1, action="delegate")) is False

    @pytest.mark.asyncio
    async def test_cancel(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row()])
        assert await service.process_approval(ApprovalAction(approval_id=1, action="cancel", comments="Withdrawn"))
        assert (await service.get_approval_by_id(1)).status == ApprovalStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_approve_records_decision(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row()])

        assert await service.approve(1, "Looks fine", "Sam Approver", 2)

        approval = await service.get_approval_by_id(1)
        assert approval.status == ApprovalStatus.APPROVED
        assert approval.approved_by_id == 2
        assert approval.approved_by_name == "Sam Approver"
        assert approval.approval_comments == "Looks fine"
        assert approval.approved_date == NOW

    @pytest.mark.asyncio
    async def test_reject_records_reason(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row()])

        assert await service.reject(1, "Budget", "Sam Approver", 2)

        approval = await service.get_approval_by_id(1)
        assert approval.status == ApprovalStatus.REJECTED
        assert approval.rejection_reason == "Budget"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["Approved", "Rejected", "Cancelled", "Expired"])
    async def test_terminal_states_are_final(self, service, store, status):
        """No action moves an approval out of a terminal state."""
        store.seed(APPROVALS_LIST, [approval_row(Status=status)])

        assert await service.approve(1) is False
        assert await service.reject(1, "No") is False
        assert await service.process_approval(
            ApprovalAction(approval_id=1, action="delegate", delegate_to_id=3, delegate_to_name="Jo")
        ) is False
        assert (await service.get_approval_by_id(1)).status == status

    @pytest.mark.asyncio
    async def test_update_missing_approval(self, service):
        assert await service.approve(99) is False

    @pytest.mark.asyncio
    async def test_delete_approval(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row()])
        assert await service.delete_approval(1) is True
        assert await service.delete_approval(1) is False

    @pytest.mark.asyncio
    async def test_approval_stats(self, service, store):
        """Pending approvals are bucketed by calendar day of their due date."""
        store.seed(
            APPROVALS_LIST,
            [
                approval_row(DueDate=days_from_now(-1)),
                approval_row(DueDate=TODAY + timedelta(hours=23)),
                approval_row(DueDate=TODAY + timedelta(days=2)),
                approval_row(DueDate=TODAY + timedelta(days=10)),
                approval_row(),
                approval_row(Status="Approved", DueDate=days_from_now(-5)),
                approval_row(Status="Rejected"),
            ],
        )

        stats = await service.get_approval_stats()
        assert stats.pending == 5
        assert stats.overdue == 1
        assert stats.due_today == 1
        assert stats.due_soon == 1
        assert stats.approved == 1
        assert stats.rejected == 1

    @pytest.mark.asyncio
    async def test_approval_stats_for_approver(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row(ApproverId=2), approval_row(ApproverId=3)])
        assert (await service.get_approval_stats(approver_id=3)).pending == 1

    @pytest.mark.asyncio
    async def test_expire_overdue_approvals_is_idempotent(self, service, store):
        """Expiry moves past-due pending approvals once; a rerun finds nothing."""
        store.seed(
            APPROVALS_LIST,
            [
                approval_row(DueDate=days_from_now(-2)),
                approval_row(DueDate=NOW - timedelta(minutes=1)),
                approval_row(DueDate=days_from_now(1)),
                approval_row(),
                approval_row(Status="Approved", DueDate=days_from_now(-2)),
            ],
        )

        assert await service.expire_overdue_approvals() == 2
        assert await service.expire_overdue_approvals() == 0

        expired = await service.get_approvals(ApprovalFilters(status=[ApprovalStatus.EXPIRED]))
        assert sorted(a.id for a in expired) == [1, 2]

    @pytest.mark.asyncio
    async def test_expire_skips_failed_updates(self, clock):
        """A failed update is skipped and not counted."""
        store = FailingListStore([APPROVALS_LIST], fail_reads=False)
        store.seed(APPROVALS_LIST, [approval_row(DueDate=days_from_now(-2))])

        service = ApprovalService(store, clock)
        assert await service.expire_overdue_approvals() == 0

    @pytest.mark.asyncio
    async def test_has_pending_approval(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row(RelatedItemId=7, RelatedItemType="Mover")])
        assert await service.has_pending_approval(7, RelatedItemType.MOVER) is True
        assert await service.has_pending_approval(7, RelatedItemType.ONBOARDING) is False

    @pytest.mark.asyncio
    async def test_pending_approvals_for_user(self, service, store):
        store.seed(APPROVALS_LIST, [approval_row(ApproverId=2), approval_row(ApproverId=2, Status="Approved")])
        approvals = await service.get_pending_approvals_for_user(2)
        assert [a.id for a in approvals] == [1]
