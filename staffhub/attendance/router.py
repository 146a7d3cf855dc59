"""Attendance routers.

``router`` serves one employee (clock-in/out, breaks, today, history) and is
mounted under ``/api/v1/attendance/{employee_id}``. ``admin_router`` serves
marking, listing, statistics and deletion under ``/api/v1/attendance``.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffhub.attendance.schemas import (
    AttendanceListResponse,
    AttendanceMarkRequest,
    AttendanceRecordDetail,
    AttendanceRecordOut,
    AttendanceStats,
    BreakEndRequest,
    BreakListOut,
    BreakRecordOut,
    BreakStartRequest,
    BulkMarkRequest,
    BulkMarkResult,
    ClockRequest,
    EmployeeAttendanceOut,
    TodayStatusOut,
)
from staffhub.attendance.service import AttendanceService
from staffhub.common.constants import AttendanceStatus
from staffhub.common.pagination import PaginationParams
from staffhub.common.transactions import run_in_transaction
from staffhub.database import get_db, get_session_factory

router = APIRouter(prefix="", tags=["attendance"])
admin_router = APIRouter(prefix="", tags=["attendance"])


# ── POST /clock-in ──────────────────────────────────────────────────

@router.post("/clock-in", response_model=AttendanceRecordOut, status_code=201)
async def clock_in(
    employee_id: uuid.UUID,
    body: Optional[ClockRequest] = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Clock in for today. Status is ``late`` after the configured threshold."""
    body = body or ClockRequest()
    return await run_in_transaction(
        session_factory,
        AttendanceService.clock_in,
        employee_id,
        at=body.at,
        location=body.location,
        notes=body.notes,
    )


# ── POST /clock-out ─────────────────────────────────────────────────

@router.post("/clock-out", response_model=AttendanceRecordOut)
async def clock_out(
    employee_id: uuid.UUID,
    body: Optional[ClockRequest] = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Clock out for today and compute worked hours net of breaks."""
    body = body or ClockRequest()
    return await run_in_transaction(
        session_factory,
        AttendanceService.clock_out,
        employee_id,
        at=body.at,
        location=body.location,
        notes=body.notes,
    )


# ── GET /today ──────────────────────────────────────────────────────

@router.get("/today", response_model=TodayStatusOut)
async def today_status(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_today_status(db, employee_id)


# ── POST /breaks/start ──────────────────────────────────────────────

@router.post("/breaks/start", response_model=BreakRecordOut, status_code=201)
async def start_break(
    employee_id: uuid.UUID,
    body: Optional[BreakStartRequest] = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    body = body or BreakStartRequest()
    return await run_in_transaction(
        session_factory,
        AttendanceService.start_break,
        employee_id,
        at=body.at,
        reason=body.reason,
    )


# ── POST /breaks/{break_id}/end ─────────────────────────────────────

@router.post("/breaks/{break_id}/end", response_model=BreakRecordOut)
async def end_break(
    employee_id: uuid.UUID,
    break_id: uuid.UUID,
    body: Optional[BreakEndRequest] = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    body = body or BreakEndRequest()
    return await run_in_transaction(
        session_factory,
        AttendanceService.end_break,
        employee_id,
        break_id,
        at=body.at,
    )


# ── GET /breaks ─────────────────────────────────────────────────────

@router.get("/breaks", response_model=BreakListOut)
async def list_breaks(
    employee_id: uuid.UUID,
    day: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
):
    """Breaks of the employee, newest first; filter with ``?date=YYYY-MM-DD``."""
    breaks = await AttendanceService.list_breaks(db, employee_id, day)
    return BreakListOut(
        count=len(breaks),
        data=[BreakRecordOut.model_validate(b) for b in breaks],
    )


# ── GET /history ────────────────────────────────────────────────────

@router.get("/history", response_model=EmployeeAttendanceOut)
async def employee_history(
    employee_id: uuid.UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    db: AsyncSession = Depends(get_db),
):
    """Records of one employee with status counts and total hours."""
    return await AttendanceService.get_employee_attendance(
        db,
        employee_id,
        start_date=start_date,
        end_date=end_date,
        month=month,
        year=year,
    )


# ═════════════════════════════════════════════════════════════════════
# Administration
# ═════════════════════════════════════════════════════════════════════


# ── GET / ───────────────────────────────────────────────────────────

@admin_router.get("/", response_model=AttendanceListResponse)
async def list_attendance(
    employee_id: Optional[uuid.UUID] = Query(None),
    department: Optional[str] = Query(None),
    status: Optional[AttendanceStatus] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.list_attendance(
        db,
        employee_id=employee_id,
        department=department,
        status=status,
        start_date=start_date,
        end_date=end_date,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /stats ──────────────────────────────────────────────────────

@admin_router.get("/stats", response_model=AttendanceStats)
async def attendance_stats(
    department: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Period statistics; the current month when no range is given."""
    return await AttendanceService.get_attendance_stats(
        db, department=department, start_date=start_date, end_date=end_date,
    )


# ── GET /records/{record_id} ────────────────────────────────────────

@admin_router.get("/records/{record_id}", response_model=AttendanceRecordDetail)
async def get_attendance(
    record_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_attendance(db, record_id)


# ── POST /mark ──────────────────────────────────────────────────────

@admin_router.post("/mark", response_model=AttendanceRecordOut)
async def mark_attendance(
    body: AttendanceMarkRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Create or overwrite one employee-day."""
    return await run_in_transaction(
        session_factory, AttendanceService.mark_attendance, body, actor=body.actor,
    )


# ── POST /bulk ──────────────────────────────────────────────────────

@admin_router.post("/bulk", response_model=BulkMarkResult)
async def bulk_mark_attendance(
    body: BulkMarkRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await run_in_transaction(
        session_factory, AttendanceService.bulk_mark_attendance, body, actor=body.actor,
    )


# ── DELETE /records/{record_id} ─────────────────────────────────────

@admin_router.delete("/records/{record_id}")
async def delete_attendance(
    record_id: uuid.UUID,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    await run_in_transaction(session_factory, AttendanceService.delete_attendance, record_id)
    return {"message": "Attendance record deleted successfully", "id": str(record_id)}
