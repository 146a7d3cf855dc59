"""Leave router — apply, edit, approve/reject, delete, balances, statistics.

Mutations run through ``run_in_transaction`` so each one commits atomically
and is retried on serialization conflicts; reads use the request-scoped
session from ``get_db``.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffhub.common.cache import BalanceCache, get_balance_cache
from staffhub.common.constants import LeaveStatus, LeaveType
from staffhub.common.pagination import PaginationParams
from staffhub.common.rate_limit import limiter
from staffhub.common.transactions import run_in_transaction
from staffhub.config import settings
from staffhub.database import get_db, get_session_factory
from staffhub.leave.paid_leave import PaidLeaveService
from staffhub.leave.schemas import (
    BalanceAdjustRequest,
    BucketBalanceOut,
    LeaveListResponse,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatistics,
    LeaveStatusUpdate,
    PaidLeaveBalanceOut,
    PaidLeaveBreakdown,
)
from staffhub.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("/", response_model=LeaveListResponse)
async def list_leaves(
    status: Optional[LeaveStatus] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    type: Optional[LeaveType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests with filters and pagination."""
    return await LeaveService.list_leaves(
        db,
        status=status,
        employee_id=employee_id,
        leave_type=type,
        from_date=from_date,
        to_date=to_date,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /statistics ─────────────────────────────────────────────────

@router.get("/statistics", response_model=LeaveStatistics)
async def leave_statistics(
    employee_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_statistics(db, employee_id)


# ── GET /employee/{employee_id} ─────────────────────────────────────

@router.get("/employee/{employee_id}", response_model=list[LeaveRequestOut])
async def employee_leaves(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """All leave requests of one employee, newest first."""
    return await LeaveService.get_employee_leaves(db, employee_id)


# ── GET /employee/{employee_id}/paid-balance ────────────────────────

@router.get("/employee/{employee_id}/paid-balance", response_model=PaidLeaveBalanceOut)
async def paid_balance(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Accrual pool snapshot, cached per employee until the next leave mutation."""
    return await PaidLeaveService.get_paid_balance_cached(db, employee_id, cache)


# ── GET /employee/{employee_id}/paid-balance/breakdown ──────────────

@router.get(
    "/employee/{employee_id}/paid-balance/breakdown",
    response_model=PaidLeaveBreakdown,
)
async def paid_balance_breakdown(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await PaidLeaveService.get_breakdown(db, employee_id)


# ── GET /employee/{employee_id}/balance ─────────────────────────────

@router.get("/employee/{employee_id}/balance", response_model=BucketBalanceOut)
async def bucket_balance(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_bucket_balance(db, employee_id)


# ── POST /employee/{employee_id}/balance/adjust ─────────────────────

@router.post("/employee/{employee_id}/balance/adjust", response_model=BucketBalanceOut)
async def adjust_bucket_balance(
    employee_id: uuid.UUID,
    body: BalanceAdjustRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Administrative bucket override. The resulting bucket must stay >= 0."""
    return await run_in_transaction(
        session_factory,
        LeaveService.adjust_balance,
        employee_id,
        body.bucket,
        body.adjustment,
        body.reason,
        actor=body.actor,
    )


# ── GET /{request_id} ───────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave(
    request_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, request_id)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("/", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(settings.LEAVE_CREATE_RATE_LIMIT)
async def create_leave(
    request: Request,
    body: LeaveRequestCreate,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Apply for leave. Validates overlap and bucket / paid-leave coverage."""
    leave = await run_in_transaction(session_factory, LeaveService.create_leave, body)
    LeaveService.invalidate_cached_balance(cache, leave.employee_id)
    return leave


# ── PUT /{request_id} ───────────────────────────────────────────────

@router.put("/{request_id}", response_model=LeaveRequestOut)
async def update_leave(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Edit a pending request; days, overlap and coverage are re-evaluated."""
    leave = await run_in_transaction(session_factory, LeaveService.update_leave, request_id, body)
    LeaveService.invalidate_cached_balance(cache, leave.employee_id)
    return leave


# ── PATCH /{request_id}/status ──────────────────────────────────────

@router.patch("/{request_id}/status", response_model=LeaveRequestOut)
async def update_leave_status(
    request_id: uuid.UUID,
    body: LeaveStatusUpdate,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Approve, reject, or reverse an approved leave."""
    leave = await run_in_transaction(
        session_factory,
        LeaveService.set_status,
        request_id,
        body.status,
        approved_by=body.approved_by,
        rejection_reason=body.rejection_reason,
        manager_notes=body.manager_notes,
    )
    LeaveService.invalidate_cached_balance(cache, leave.employee_id)
    return leave


# ── DELETE /{request_id} ────────────────────────────────────────────

@router.delete("/{request_id}")
async def delete_leave(
    request_id: uuid.UUID,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Delete a leave request; approved bucket leave is restored first."""
    leave = await run_in_transaction(session_factory, LeaveService.delete_leave, request_id)
    LeaveService.invalidate_cached_balance(cache, leave.employee_id)
    return {"message": "Leave request deleted successfully", "id": str(request_id)}
