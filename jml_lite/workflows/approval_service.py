"""
Approval Service for JML Lite.

CRUD and state machine over the approvals list. An approval starts Pending
and moves once to Approved, Rejected, Cancelled or Expired; delegation
changes the approver but not the status.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..constants import APPROVALS_LIST, DUE_SOON_DAYS
from ..exceptions import StoreError
from ..models import (
    PRIORITY_RANK,
    Approval,
    ApprovalAction,
    ApprovalActionType,
    ApprovalFilters,
    ApprovalStats,
    ApprovalStatus,
    CreateApprovalRequest,
    Priority,
    RelatedItemType,
)
from ..store.base import ListStore
from ..store.query import Query, all_of, eq, ge, le, lt, one_of
from ..store.rows import parse_row, parse_rows
from ..utils import Clock, start_of_day, utcnow

logger = logging.getLogger(__name__)


def _to_approval(row: Dict[str, Any]) -> Approval:
    return parse_row(Approval, row, APPROVALS_LIST)


def _sort_approvals(approvals: List[Approval]) -> List[Approval]:
    """Priority rank descending, then due date ascending (unset last), then newest first."""
    approvals = sorted(approvals, key=lambda a: a.created.timestamp() if a.created else 0.0, reverse=True)
    approvals = sorted(approvals, key=lambda a: (a.due_date is None, a.due_date.timestamp() if a.due_date else 0.0))
    return sorted(approvals, key=lambda a: PRIORITY_RANK.get(Priority(a.priority), 0), reverse=True)


class ApprovalService:
    """
    Manages approval requests.

    Public methods never raise store errors; they log and return an empty
    or negative result instead.
    """

    def __init__(self, store: ListStore, clock: Clock = utcnow):
        """
        Initialize the approval service.

        Args:
            store: List store holding the approvals list
            clock: Source of the current time
        """
        self.store = store
        self.clock = clock

    async def get_approvals(self, filters: Optional[ApprovalFilters] = None) -> List[Approval]:
        """
        Query approvals.

        Args:
            filters: Optional filter dimensions. Values within a dimension are
                     OR'd; dimensions are AND'd.

        Returns:
            Approvals ordered by priority, due date and creation time, or an
            empty list if the store cannot be read
        """
        filters = filters or ApprovalFilters()
        query = Query(
            filter=all_of(
                one_of("Status", filters.status),
                one_of("ApprovalType", filters.types),
                one_of("Priority", filters.priority),
                eq("ApproverId", filters.approver_id) if filters.approver_id is not None else None,
                eq("RequestorId", filters.requestor_id) if filters.requestor_id is not None else None,
                eq("RelatedItemId", filters.related_item_id) if filters.related_item_id is not None else None,
                eq("RelatedItemType", filters.related_item_type) if filters.related_item_type else None,
                le("DueDate", filters.due_before) if filters.due_before else None,
                ge("DueDate", filters.due_after) if filters.due_after else None,
            )
        )
        return await self._query(query)

    async def _query(self, query: Query) -> List[Approval]:
        try:
            rows = await self.store.get_items(APPROVALS_LIST, query)
        except StoreError as e:
            logger.error(f"Error getting approvals: {e}")
            return []
        return _sort_approvals(parse_rows(_to_approval, rows))

    async def get_pending_approvals_for_user(self, user_id: int) -> List[Approval]:
        """Pending approvals assigned to an approver."""
        return await self.get_approvals(ApprovalFilters(status=[ApprovalStatus.PENDING], approver_id=user_id))

    async def get_approval_by_id(self, approval_id: int) -> Optional[Approval]:
        """Load one approval, or None if it cannot be read."""
        try:
            row = await self.store.get_item(APPROVALS_LIST, approval_id)
            return _to_approval(row)
        except StoreError as e:
            logger.error(f"Error getting approval {approval_id}: {e}")
            return None

    async def create_approval(self, request: CreateApprovalRequest) -> Optional[Approval]:
        """
        Open a new approval request.

        Args:
            request: Approval details. Priority defaults to Medium.

        Returns:
            The created approval, or None on failure
        """
        approval = Approval(
            title=request.title,
            approval_type=request.approval_type,
            status=ApprovalStatus.PENDING,
            priority=request.priority or Priority.MEDIUM,
            related_item_id=request.related_item_id,
            related_item_type=request.related_item_type,
            related_item_title=request.related_item_title,
            employee_name=request.employee_name,
            employee_email=request.employee_email,
            department=request.department,
            job_title=request.job_title,
            requestor_id=request.requestor_id,
            requestor_name=request.requestor_name,
            requestor_email=request.requestor_email,
            approver_id=request.approver_id,
            approver_name=request.approver_name,
            approver_email=request.approver_email,
            requested_date=self.clock(),
            due_date=request.due_date,
            request_comments=request.request_comments,
        )

        try:
            row = await self.store.add_item(APPROVALS_LIST, approval.to_item(exclude={"id", "created", "modified"}))
            created = _to_approval(row)
        except StoreError as e:
            logger.error(f"Error creating approval '{request.title}': {e}")
            return None

        logger.info(f"Created approval {created.id}: {created.title}")
        return created

    async def _is_known_terminal(self, approval_id: int) -> bool:
        # A failed read is not proof of anything; let the write decide
        try:
            row = await self.store.get_item(APPROVALS_LIST, approval_id, select=["Id", "Status"])
        except StoreError as e:
            logger.debug(f"Could not read approval {approval_id} before update: {e}")
            return False
        status = row.get("Status")
        return status is not None and status != ApprovalStatus.PENDING.value

    async def _update(self, approval_id: int, fields: Dict[str, Any], verb: str) -> bool:
        if await self._is_known_terminal(approval_id):
            logger.warning(f"Cannot {verb} approval {approval_id}: it is already closed")
            return False

        fields = {key: value for key, value in fields.items() if value is not None}
        try:
            await self.store.update_item(APPROVALS_LIST, approval_id, fields)
        except StoreError as e:
            logger.error(f"Error trying to {verb} approval {approval_id}: {e}")
            return False

        logger.info(f"Approval {approval_id}: {verb}")
        return True

    async def process_approval(self, action: ApprovalAction) -> bool:
        """
        Apply an approve, reject, delegate or cancel action in a single update.

        Returns:
            True if the update was written
        """
        now = self.clock()
        kind = ApprovalActionType(action.action)

        if kind == ApprovalActionType.APPROVE:
            fields = {
                "Status": ApprovalStatus.APPROVED.value,
                "ApprovedDate": now,
                "ApprovalComments": action.comments,
            }
        elif kind == ApprovalActionType.REJECT:
            fields = {
                "Status": ApprovalStatus.REJECTED.value,
                "ApprovedDate": now,
                "RejectionReason": action.comments,
            }
        elif kind == ApprovalActionType.DELEGATE:
            if action.delegate_to_id is None:
                logger.warning(f"Cannot delegate approval {action.approval_id}: no delegate given")
                return False
            fields = {
                "DelegatedToId": action.delegate_to_id,
                "DelegatedToName": action.delegate_to_name,
                "DelegatedDate": now,
                "ApprovalComments": action.comments,
                "ApproverId": action.delegate_to_id,
                "ApproverName": action.delegate_to_name,
            }
        else:
            fields = {
                "Status": ApprovalStatus.CANCELLED.value,
                "ApprovalComments": action.comments,
            }

        return await self._update(action.approval_id, fields, kind.value)

    async def approve(self, approval_id: int, comments: Optional[str] = None,
                      approver_name: Optional[str] = None, approver_id: Optional[int] = None) -> bool:
        """Approve a request, recording who decided."""
        return await self._update(
            approval_id,
            {
                "Status": ApprovalStatus.APPROVED.value,
                "ApprovedDate": self.clock(),
                "ApprovedById": approver_id,
                "ApprovedByName": approver_name,
                "ApprovalComments": comments,
            },
            "approve",
        )

    async def reject(self, approval_id: int, reason: str,
                     approver_name: Optional[str] = None, approver_id: Optional[int] = None) -> bool:
        """Reject a request, recording who decided and why."""
        return await self._update(
            approval_id,
            {
                "Status": ApprovalStatus.REJECTED.value,
                "ApprovedDate": self.clock(),
                "ApprovedById": approver_id,
                "ApprovedByName": approver_name,
                "RejectionReason": reason,
            },
            "reject",
        )

    async def delete_approval(self, approval_id: int) -> bool:
        try:
            await self.store.delete_item(APPROVALS_LIST, approval_id)
        except StoreError as e:
            logger.error(f"Error deleting approval {approval_id}: {e}")
            return False
        return True

    async def get_approval_stats(self, approver_id: Optional[int] = None) -> ApprovalStats:
        """
        Count approvals by status and, for pending ones, by due date.

        Due dates are compared as calendar days: before today is overdue,
        today is due today, and up to three days ahead is due soon.

        Args:
            approver_id: Restrict to one approver

        Returns:
            ApprovalStats (all zeros if the store cannot be read)
        """
        try:
            rows = await self.store.get_items(
                APPROVALS_LIST,
                Query(filter=eq("ApproverId", approver_id) if approver_id is not None else None),
            )
        except StoreError as e:
            logger.error(f"Error getting approval stats: {e}")
            return ApprovalStats()

        today = start_of_day(self.clock())
        soon = today + timedelta(days=DUE_SOON_DAYS)
        stats = ApprovalStats()

        for approval in parse_rows(_to_approval, rows):
            if approval.status == ApprovalStatus.PENDING:
                stats.pending += 1
                if approval.due_date is None:
                    continue
                due = start_of_day(approval.due_date)
                if due < today:
                    stats.overdue += 1
                elif due == today:
                    stats.due_today += 1
                elif due <= soon:
                    stats.due_soon += 1
            elif approval.status == ApprovalStatus.APPROVED:
                stats.approved += 1
            elif approval.status == ApprovalStatus.REJECTED:
                stats.rejected += 1

        return stats

    async def has_pending_approval(self, related_item_id: int, related_item_type: RelatedItemType) -> bool:
        """Check whether a related record still has a pending approval."""
        approvals = await self.get_approvals(
            ApprovalFilters(
                status=[ApprovalStatus.PENDING],
                related_item_id=related_item_id,
                related_item_type=related_item_type,
            )
        )
        return len(approvals) > 0

    async def expire_overdue_approvals(self) -> int:
        """
        Move every pending approval whose due date has passed to Expired.

        Items are updated one at a time; a failed update is logged and
        skipped, so a rerun picks it up again.

        Returns:
            Number of approvals expired by this call
        """
        overdue = await self._query(
            Query(filter=all_of(eq("Status", ApprovalStatus.PENDING), lt("DueDate", self.clock())))
        )

        expired = 0
        for approval in overdue:
            if approval.id is None:
                continue
            try:
                await self.store.update_item(APPROVALS_LIST, approval.id, {"Status": ApprovalStatus.EXPIRED.value})
            except StoreError as e:
                logger.error(f"Error expiring approval {approval.id}: {e}")
                continue
            expired += 1

        if expired:
            logger.info(f"Expired {expired} overdue approvals")
        return expired
