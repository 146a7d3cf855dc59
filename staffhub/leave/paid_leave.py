"""Paid-leave (accrual pool) balance service.

The pool is never stored. It is derived on every read as::

    available = earned(join_date, as_of) - consumed(approved) - reserved(pending)

where consumed and reserved sum ``paid_days`` of ``Paid``-type requests.
Decisions about whether a request can be paid must use
``get_available_fresh`` inside the deciding transaction; the cached variant is
for read-only callers and may lag by up to the cache TTL.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from staffhub.common.cache import BalanceCache, paid_leave_cache_key
from staffhub.common.constants import LeaveStatus, LeaveType
from staffhub.common.dates import reference_date
from staffhub.config import settings
from staffhub.core_hr.models import Employee
from staffhub.core_hr.service import EmployeeService
from staffhub.leave.accrual import complete_months, earned_credits, next_credit_date
from staffhub.leave.models import LeaveRequest
from staffhub.leave.schemas import PaidLeaveBalanceOut, PaidLeaveBreakdown

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PaidLeaveService:
    """Derived accrual-pool reads: fresh (for decisions) and cached (for display)."""

    # ── Aggregates ──────────────────────────────────────────────────

    @staticmethod
    async def _sum_paid_days(
        db: AsyncSession,
        employee_id: uuid.UUID,
        status: LeaveStatus,
    ) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(LeaveRequest.paid_days), 0)).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.type == LeaveType.paid,
                LeaveRequest.is_paid.is_(True),
                LeaveRequest.status == status,
            )
        )
        return Decimal(str(result.scalar_one() or 0))

    @staticmethod
    async def consumed(db: AsyncSession, employee_id: uuid.UUID) -> Decimal:
        """Paid days of approved ``Paid`` requests."""
        return await PaidLeaveService._sum_paid_days(db, employee_id, LeaveStatus.approved)

    @staticmethod
    async def reserved(db: AsyncSession, employee_id: uuid.UUID) -> Decimal:
        """Paid days held by pending ``Paid`` requests."""
        return await PaidLeaveService._sum_paid_days(db, employee_id, LeaveStatus.pending)

    @staticmethod
    async def _snapshot(
        db: AsyncSession,
        employee: Employee,
        as_of: date,
    ) -> PaidLeaveBalanceOut:
        earned = earned_credits(employee.join_date, as_of)
        consumed = await PaidLeaveService.consumed(db, employee.id)
        pending = await PaidLeaveService.reserved(db, employee.id)
        available = max(ZERO, Decimal(earned) - consumed - pending)
        return PaidLeaveBalanceOut(
            employee_id=employee.id,
            earned=earned,
            consumed=consumed,
            pending=pending,
            available=available,
        )

    # ── Available ───────────────────────────────────────────────────

    @staticmethod
    async def get_available_fresh(
        db: AsyncSession,
        employee_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """Available pool read straight from the database, never cached."""
        employee = await EmployeeService.get_employee(db, employee_id)
        snapshot = await PaidLeaveService._snapshot(db, employee, as_of or reference_date())
        return snapshot.available

    @staticmethod
    async def get_paid_balance_cached(
        db: AsyncSession,
        employee_id: uuid.UUID,
        cache: BalanceCache,
    ) -> PaidLeaveBalanceOut:
        """Today's pool snapshot for display, cached as a whole.

        All four figures come from the same read, so a stale entry is an old
        but self-consistent snapshot.
        """
        key = paid_leave_cache_key(employee_id)
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Balance cache hit for %s", key)
            return cached.model_copy()

        logger.debug("Balance cache miss for %s", key)
        snapshot = await PaidLeaveService.get_paid_balance(db, employee_id)
        cache.set(key, snapshot.model_copy(), settings.BALANCE_CACHE_TTL_SECONDS)
        return snapshot

    # ── Detailed views ──────────────────────────────────────────────

    @staticmethod
    async def get_paid_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> PaidLeaveBalanceOut:
        employee = await EmployeeService.get_employee(db, employee_id)
        return await PaidLeaveService._snapshot(db, employee, as_of or reference_date())

    @staticmethod
    async def get_breakdown(
        db: AsyncSession,
        employee_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> PaidLeaveBreakdown:
        """Pool snapshot plus tenure, next credit date and next-month projection."""
        today = as_of or reference_date()
        employee = await EmployeeService.get_employee(db, employee_id)
        snapshot = await PaidLeaveService._snapshot(db, employee, today)
        next_credit = next_credit_date(employee.join_date, today)
        return PaidLeaveBreakdown(
            **snapshot.model_dump(),
            join_date=employee.join_date,
            months_worked=complete_months(employee.join_date, today),
            next_credit_date=next_credit,
            days_until_next_credit=(next_credit - today).days,
            projected_next_month=snapshot.available + 1,
        )
