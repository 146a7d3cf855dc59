"""Attendance Pydantic v2 schemas — clock, break, marking and history models."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from staffhub.common.constants import AttendanceStatus, BreakStatus
from staffhub.common.pagination import PaginationMeta
from staffhub.core_hr.schemas import EmployeeBrief


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class ClockRequest(BaseModel):
    """Clock-in / clock-out body; ``at`` defaults to the server time."""

    at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class BreakStartRequest(BaseModel):
    at: Optional[datetime] = None
    reason: Optional[str] = Field(None, max_length=500)


class BreakEndRequest(BaseModel):
    at: Optional[datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    date: date
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    total_hours: Optional[Decimal] = None
    status: AttendanceStatus
    location: Optional[str] = None
    notes: Optional[str] = None


class BreakRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    date: date
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    status: BreakStatus
    reason: Optional[str] = None


class TodayStatusOut(BaseModel):
    """Today's attendance (if any) with the day's breaks."""

    date: date
    attendance: Optional[AttendanceRecordOut] = None
    breaks: list[BreakRecordOut] = Field(default_factory=list)
    active_break: Optional[BreakRecordOut] = None
    total_break_minutes: int = 0


class BreakListOut(BaseModel):
    count: int
    data: list[BreakRecordOut]


# ═════════════════════════════════════════════════════════════════════
# Administrative marking
# ═════════════════════════════════════════════════════════════════════


class AttendanceMarkRequest(BaseModel):
    """Create or overwrite one employee-day. Hours are derived from the times."""

    employee_id: uuid.UUID
    date: date
    status: AttendanceStatus
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    actor: Optional[str] = Field(None, max_length=100)


class BulkMarkRequest(BaseModel):
    """Mark the same status for many employees on one day."""

    employee_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=500)
    date: date
    status: AttendanceStatus
    notes: Optional[str] = Field(None, max_length=1000)
    actor: Optional[str] = Field(None, max_length=100)


class BulkMarkError(BaseModel):
    employee_id: uuid.UUID
    error: str


class BulkMarkResult(BaseModel):
    marked: int
    data: list[AttendanceRecordOut]
    errors: list[BulkMarkError] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# History and statistics
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordDetail(AttendanceRecordOut):
    employee: Optional[EmployeeBrief] = None


class AttendanceStatusCounts(BaseModel):
    present: int = 0
    absent: int = 0
    late: int = 0
    half_day: int = 0
    on_leave: int = 0


class AttendanceListResponse(BaseModel):
    data: list[AttendanceRecordDetail]
    meta: PaginationMeta
    stats: AttendanceStatusCounts


class EmployeeAttendanceStats(AttendanceStatusCounts):
    total_hours: Decimal = Decimal("0")


class EmployeeAttendanceOut(BaseModel):
    """One employee's records in a period, newest first, with totals."""

    count: int
    stats: EmployeeAttendanceStats
    data: list[AttendanceRecordOut]


class DepartmentAttendance(AttendanceStatusCounts):
    total: int = 0


class DailyAttendanceTrend(BaseModel):
    date: date
    count: int
    average_hours: Decimal


class AttendanceStats(AttendanceStatusCounts):
    """Organisation-wide figures for a period (current month by default)."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_employees: int = 0
    total_records: int = 0
    average_hours: Decimal = Decimal("0")
    department_breakdown: dict[str, DepartmentAttendance] = Field(default_factory=dict)
    daily_trend: list[DailyAttendanceTrend] = Field(default_factory=list)
