"""Leave service layer — application, lifecycle transitions, balances, queries.

Business logic:
  - Leave application with day counting, overlap guard and coverage resolution
  - Editing of pending requests with the same checks re-run
  - Approve / reject / reverse with bucket deduction and restoration
  - Deletion with restoration of approved bucket leave
  - Administrative bucket adjustment
  - Listing, per-employee history and statistics

Every mutating method expects to run inside the caller's transaction (see
``staffhub.common.transactions.run_in_transaction``) and serializes work per
employee by locking that employee's ``LeaveBalance`` row first.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from staffhub.common.audit import create_audit_entry
from staffhub.common.cache import BalanceCache, paid_leave_cache_key
from staffhub.common.constants import (
    DEFAULT_BUCKET_BALANCES,
    HALF_DAY,
    LEAVE_TRANSITIONS,
    LeaveStatus,
    LeaveType,
)
from staffhub.common.dates import utcnow
from staffhub.common.exceptions import (
    InsufficientBalanceError,
    InvalidStateTransition,
    LeaveNotEditable,
    LeaveOverlapError,
    NotFoundException,
    ValidationException,
)
from staffhub.common.pagination import paginate
from staffhub.core_hr.service import EmployeeService
from staffhub.leave.classifier import (
    ZERO,
    BalanceSource,
    Coverage,
    check_bucket_coverage,
    classify_leave_type,
    resolve_pool_coverage,
)
from staffhub.leave.models import LeaveBalance, LeaveRequest
from staffhub.leave.paid_leave import PaidLeaveService
from staffhub.leave.schemas import (
    LeaveListResponse,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatistics,
    LeaveTypeStat,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


def compute_leave_days(from_date: date, to_date: date, is_half_day: bool) -> Decimal:
    """0.5 for a half day, else the inclusive calendar-day count (at least 1)."""
    if is_half_day:
        return HALF_DAY
    return Decimal(max(1, (to_date - from_date).days + 1))


def _audit_snapshot(leave: LeaveRequest) -> dict:
    return {
        "type": leave.type.value,
        "from_date": leave.from_date.isoformat(),
        "to_date": leave.to_date.isoformat(),
        "days": str(leave.days),
        "is_paid": leave.is_paid,
        "paid_days": str(leave.paid_days),
        "status": leave.status.value,
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, transition, delete, balances, queries."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _lock_balance(db: AsyncSession, employee_id: uuid.UUID) -> LeaveBalance:
        """Row-lock the employee's balance, seeding defaults if it is missing."""

        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id)
            .with_for_update()
        )
        balance = result.scalars().first()
        if balance is None:
            balance = LeaveBalance(employee_id=employee_id, **DEFAULT_BUCKET_BALANCES)
            db.add(balance)
            await db.flush()
        return balance

    @staticmethod
    async def _load_for_update(db: AsyncSession, request_id: uuid.UUID) -> tuple[LeaveRequest, LeaveBalance]:
        """Lock the owner's balance, then re-read the request under lock."""

        leave = await db.get(LeaveRequest, request_id)
        if leave is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        balance = await LeaveService._lock_balance(db, leave.employee_id)
        await db.refresh(leave, with_for_update=True)
        return leave, balance

    @staticmethod
    async def _resolve_coverage(
        db: AsyncSession,
        employee_id: uuid.UUID,
        balance: LeaveBalance,
        leave_type: LeaveType,
        days: Decimal,
        as_of: Optional[date],
        *,
        released: Decimal = ZERO,
    ) -> Coverage:
        """Paid/unpaid split for ``days`` of ``leave_type``, read under the balance lock.

        ``released`` is pool credit held by the request being edited, which
        is still counted as pending in the fresh read.
        """
        if classify_leave_type(leave_type) is BalanceSource.pool:
            available = ZERO
            if leave_type is LeaveType.paid:
                available = await PaidLeaveService.get_available_fresh(db, employee_id, as_of)
                available += released
            return resolve_pool_coverage(leave_type, days, available)
        bucket = leave_type.value.lower()
        return check_bucket_coverage(bucket, balance.get_bucket(bucket), days)

    @staticmethod
    def invalidate_cached_balance(cache: Optional[BalanceCache], employee_id: uuid.UUID) -> None:
        """Drop the employee's cached pool value; call after the mutation commits."""
        if cache is not None:
            cache.invalidate(paid_leave_cache_key(employee_id))

    # ─────────────────────────────────────────────────────────────────
    # Overlap guard
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def find_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        from_date: date,
        to_date: date,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveRequest]:
        """First pending/approved request whose inclusive range meets [from, to]."""

        query = select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(ACTIVE_STATUSES),
            LeaveRequest.from_date <= to_date,
            LeaveRequest.to_date >= from_date,
        )
        if exclude_id is not None:
            query = query.where(LeaveRequest.id != exclude_id)
        result = await db.execute(query.order_by(LeaveRequest.from_date).limit(1))
        return result.scalars().first()

    @staticmethod
    async def has_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        from_date: date,
        to_date: date,
    ) -> bool:
        return await LeaveService.find_overlap(db, employee_id, from_date, to_date) is not None

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_leave(
        db: AsyncSession,
        data: LeaveRequestCreate,
        *,
        as_of: Optional[date] = None,
        actor: Optional[str] = None,
    ) -> LeaveRequest:
        """Create a pending leave request.

        Raises ``LeaveOverlapError`` when the range meets an active request and
        ``InsufficientBalanceError`` when a bucket cannot cover the days or the
        accrual pool is empty for a ``Paid`` request. Bucket balances are not
        touched until approval.
        """

        employee = await EmployeeService.get_employee(db, data.employee_id)
        balance = await LeaveService._lock_balance(db, employee.id)

        to_date = data.to_date or data.from_date
        days = compute_leave_days(data.from_date, to_date, data.is_half_day)

        # ── Overlap ─────────────────────────────────────────────────
        existing = await LeaveService.find_overlap(db, employee.id, data.from_date, to_date)
        if existing is not None:
            raise LeaveOverlapError(existing.id, existing.from_date, existing.to_date)

        coverage = await LeaveService._resolve_coverage(
            db, employee.id, balance, data.type, days, as_of,
        )

        leave = LeaveRequest(
            employee=employee,
            employee_id=employee.id,
            type=data.type,
            from_date=data.from_date,
            to_date=to_date,
            days=days,
            is_half_day=data.is_half_day,
            is_paid=coverage.is_paid,
            paid_days=coverage.paid_days,
            status=LeaveStatus.pending,
            reason=data.reason,
            contact_during_leave=data.contact_during_leave,
            address_during_leave=data.address_during_leave,
        )
        db.add(leave)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave.id,
            actor=actor or employee.id,
            new_values=_audit_snapshot(leave),
        )

        if coverage.is_partial:
            logger.info(
                "Leave %s for %s partially paid: %s of %s days",
                leave.id, employee.employee_code, coverage.paid_days, days,
            )
        logger.info(
            "Leave %s created for %s: %s %s..%s (%s days)",
            leave.id, employee.employee_code, data.type.value,
            data.from_date, to_date, days,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        data: LeaveRequestUpdate,
        *,
        as_of: Optional[date] = None,
        actor: Optional[str] = None,
    ) -> LeaveRequest:
        """Edit a pending request.

        Days are recomputed from the merged dates, then the overlap guard and
        coverage run again under the balance lock exactly as on creation. The
        request's own pending pool credit is released for the re-check.
        """

        leave, balance = await LeaveService._load_for_update(db, request_id)
        if leave.status != LeaveStatus.pending:
            raise LeaveNotEditable(leave.id, leave.status.value)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        leave_type = changes.get("type", leave.type)
        from_date = changes.get("from_date", leave.from_date)
        is_half_day = changes.get("is_half_day", leave.is_half_day)
        if is_half_day:
            to_date = changes.get("to_date", from_date)
            if to_date != from_date:
                raise ValidationException(
                    {"to_date": ["A half-day leave must start and end on the same date"]}
                )
        else:
            to_date = changes.get("to_date", leave.to_date)
            if to_date < from_date:
                raise ValidationException({"to_date": ["to_date must be on or after from_date"]})

        days = compute_leave_days(from_date, to_date, is_half_day)

        existing = await LeaveService.find_overlap(
            db, leave.employee_id, from_date, to_date, exclude_id=leave.id,
        )
        if existing is not None:
            raise LeaveOverlapError(existing.id, existing.from_date, existing.to_date)

        released = ZERO
        if leave.type is LeaveType.paid and leave.is_paid:
            released = leave.paid_days
        coverage = await LeaveService._resolve_coverage(
            db, leave.employee_id, balance, leave_type, days, as_of, released=released,
        )

        old_values = _audit_snapshot(leave)
        leave.type = leave_type
        leave.from_date = from_date
        leave.to_date = to_date
        leave.is_half_day = is_half_day
        leave.days = days
        leave.is_paid = coverage.is_paid
        leave.paid_days = coverage.paid_days
        for field in ("reason", "contact_during_leave", "address_during_leave"):
            if field in changes:
                setattr(leave, field, changes[field])
        leave.updated_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_request",
            entity_id=leave.id,
            actor=actor or leave.employee_id,
            old_values=old_values,
            new_values=_audit_snapshot(leave),
        )
        logger.info(
            "Leave %s updated: %s %s..%s (%s days, %s paid)",
            leave.id, leave_type.value, from_date, to_date, days, coverage.paid_days,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Status transitions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def set_status(
        db: AsyncSession,
        request_id: uuid.UUID,
        new_status: LeaveStatus,
        *,
        approved_by: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        manager_notes: Optional[str] = None,
    ) -> LeaveRequest:
        """Move a request along pending → approved → rejected.

        Approval deducts bucket types after a fresh re-check; rejecting an
        approved request restores them. Pool types need no stored mutation:
        the status change alone moves their paid days between the pending,
        consumed and excluded sums.
        """

        leave, balance = await LeaveService._load_for_update(db, request_id)
        current = leave.status
        if new_status not in LEAVE_TRANSITIONS[current]:
            raise InvalidStateTransition(current.value, new_status.value)

        old_values = _audit_snapshot(leave)
        bucket = leave.bucket
        now = utcnow()

        if new_status == LeaveStatus.approved:
            if bucket is not None:
                available = balance.get_bucket(bucket)
                if available < leave.days:
                    raise InsufficientBalanceError(bucket, available, leave.days)
                balance.set_bucket(bucket, available - leave.days)
            leave.approved_by = approved_by
            leave.approved_date = now
            leave.rejection_reason = None
        else:
            if current == LeaveStatus.approved and bucket is not None:
                balance.set_bucket(bucket, balance.get_bucket(bucket) + leave.days)
            leave.rejection_reason = rejection_reason
            leave.approved_by = None
            leave.approved_date = None

        if manager_notes is not None:
            leave.manager_notes = manager_notes
        leave.status = new_status
        leave.updated_at = now
        await db.flush()

        new_values = _audit_snapshot(leave)
        if bucket is not None:
            new_values[f"{bucket}_balance"] = str(balance.get_bucket(bucket))
        await create_audit_entry(
            db,
            action="approve" if new_status == LeaveStatus.approved else "reject",
            entity_type="leave_request",
            entity_id=leave.id,
            actor=approved_by,
            old_values=old_values,
            new_values=new_values,
        )

        logger.info(
            "Leave %s moved %s -> %s by %s",
            leave.id, current.value, new_status.value, approved_by or "system",
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor: Optional[str] = None,
    ) -> LeaveRequest:
        """Delete a request, restoring its bucket if it was approved."""

        leave, balance = await LeaveService._load_for_update(db, request_id)
        bucket = leave.bucket
        restored = Decimal("0")

        if leave.status == LeaveStatus.approved and bucket is not None:
            balance.set_bucket(bucket, balance.get_bucket(bucket) + leave.days)
            restored = leave.days

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_request",
            entity_id=leave.id,
            actor=actor,
            old_values=_audit_snapshot(leave),
            new_values={"restored_days": str(restored)} if restored else None,
        )
        await db.delete(leave)
        await db.flush()

        logger.info("Leave %s deleted (restored %s days)", leave.id, restored)
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_bucket_balance(db: AsyncSession, employee_id: uuid.UUID) -> LeaveBalance:
        await EmployeeService.get_employee(db, employee_id)
        result = await db.execute(
            select(LeaveBalance).where(LeaveBalance.employee_id == employee_id)
        )
        balance = result.scalars().first()
        if balance is None:
            raise NotFoundException("LeaveBalance", str(employee_id))
        return balance

    @staticmethod
    async def adjust_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        bucket: str,
        adjustment: Decimal,
        reason: str,
        *,
        actor: Optional[str] = None,
    ) -> LeaveBalance:
        """Administrative override of one bucket; the result must stay >= 0."""

        await EmployeeService.get_employee(db, employee_id)
        balance = await LeaveService._lock_balance(db, employee_id)

        old_value = balance.get_bucket(bucket)
        new_value = old_value + adjustment
        if new_value < 0:
            raise InsufficientBalanceError(bucket, old_value, -adjustment)

        balance.set_bucket(bucket, new_value)
        await db.flush()

        await create_audit_entry(
            db,
            action="adjust",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor=actor,
            old_values={bucket: str(old_value)},
            new_values={
                bucket: str(new_value),
                "adjustment_delta": str(adjustment),
                "reason": reason,
            },
        )
        logger.info(
            "Balance %s for employee %s adjusted %s -> %s", bucket, employee_id, old_value, new_value,
        )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.employee))
        )
        leave = result.scalars().first()
        if leave is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        *,
        status: Optional[LeaveStatus] = None,
        employee_id: Optional[uuid.UUID] = None,
        leave_type: Optional[LeaveType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> LeaveListResponse:
        """Paginated leave requests, newest application first."""

        query = (
            select(LeaveRequest)
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.applied_date.desc())
        )
        if status:
            query = query.where(LeaveRequest.status == status)
        if employee_id:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if leave_type:
            query = query.where(LeaveRequest.type == leave_type)
        if from_date:
            query = query.where(LeaveRequest.to_date >= from_date)
        if to_date:
            query = query.where(LeaveRequest.from_date <= to_date)

        rows, meta = await paginate(db, query, page, page_size)
        return LeaveListResponse(
            data=[LeaveRequestOut.model_validate(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def get_employee_leaves(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Sequence[LeaveRequest]:
        await EmployeeService.get_employee(db, employee_id)
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.applied_date.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        employee_id: Optional[uuid.UUID] = None,
    ) -> LeaveStatistics:
        """Counts by status and ``{count, days}`` per leave type."""

        status_q = select(LeaveRequest.status, func.count()).group_by(LeaveRequest.status)
        type_q = select(
            LeaveRequest.type,
            func.count(),
            func.coalesce(func.sum(LeaveRequest.days), 0),
        ).group_by(LeaveRequest.type)
        if employee_id:
            status_q = status_q.where(LeaveRequest.employee_id == employee_id)
            type_q = type_q.where(LeaveRequest.employee_id == employee_id)

        stats = LeaveStatistics()
        for status, count in (await db.execute(status_q)).all():
            setattr(stats, status.value, count)
            stats.total += count

        for leave_type, count, days in (await db.execute(type_q)).all():
            stats.by_type[leave_type.value] = LeaveTypeStat(
                count=count, days=Decimal(str(days)),
            )
        return stats
