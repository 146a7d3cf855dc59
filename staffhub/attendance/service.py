"""Attendance service layer — clock-in/out, breaks, and worked-hours accrual.

Business logic:
  - One attendance record per employee per reference-zone day
  - Lateness from the local clock-in time, half-day from worked hours
  - Worked hours = (check-out - check-in) - completed break minutes
  - At most one active break per employee per day
  - Administrative marking upserts a whole employee-day; history and
    statistics read across employees and departments
"""

from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from staffhub.attendance.models import AttendanceRecord, BreakRecord
from staffhub.attendance.schemas import (
    AttendanceListResponse,
    AttendanceMarkRequest,
    AttendanceRecordDetail,
    AttendanceRecordOut,
    AttendanceStats,
    AttendanceStatusCounts,
    BreakRecordOut,
    BulkMarkError,
    BulkMarkRequest,
    BulkMarkResult,
    DailyAttendanceTrend,
    DepartmentAttendance,
    EmployeeAttendanceOut,
    EmployeeAttendanceStats,
    TodayStatusOut,
)
from staffhub.common.audit import create_audit_entry
from staffhub.common.constants import AttendanceStatus, BreakStatus
from staffhub.common.dates import ensure_utc, is_late, reference_date, utcnow
from staffhub.common.exceptions import (
    AlreadyClockedIn,
    AttendanceMarkConflict,
    BreakAlreadyActive,
    NoActiveBreak,
    NoActiveClockIn,
    NotFoundException,
    ValidationException,
)
from staffhub.common.pagination import paginate
from staffhub.config import settings
from staffhub.core_hr.models import Employee
from staffhub.core_hr.service import EmployeeService

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
ZERO_HOURS = Decimal("0")
UNASSIGNED_DEPARTMENT = "Unassigned"


def compute_total_hours(
    check_in: datetime,
    check_out: datetime,
    break_minutes: int = 0,
) -> Decimal:
    """Worked hours to two decimals, net of breaks, never negative."""
    elapsed = (ensure_utc(check_out) - ensure_utc(check_in)).total_seconds() / 3600
    hours = Decimal(str(elapsed)) - Decimal(break_minutes) / 60
    return max(Decimal("0"), hours).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def break_duration_minutes(start: datetime, end: datetime) -> int:
    """Break length in whole minutes, rounded to nearest."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    minutes = Decimal(str(seconds)) / 60
    return max(0, int(minutes.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def derive_clock_in_status(at: datetime) -> AttendanceStatus:
    return AttendanceStatus.late if is_late(at) else AttendanceStatus.present


def derive_clock_out_status(
    total_hours: Decimal,
    clock_in_status: AttendanceStatus,
) -> AttendanceStatus:
    if total_hours < Decimal(str(settings.HALF_DAY_HOURS)):
        return AttendanceStatus.half_day
    return clock_in_status


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


def _count_status(counts: AttendanceStatusCounts, status: AttendanceStatus) -> None:
    setattr(counts, status.value, getattr(counts, status.value) + 1)


def _record_snapshot(record: AttendanceRecord) -> dict:
    return {
        "date": record.date.isoformat(),
        "status": record.status.value,
        "check_in": record.check_in.isoformat() if record.check_in else None,
        "check_out": record.check_out.isoformat() if record.check_out else None,
        "total_hours": str(record.total_hours) if record.total_hours is not None else None,
    }


def _filtered(
    query: Select,
    *,
    employee_id: Optional[uuid.UUID] = None,
    department: Optional[str] = None,
    status: Optional[AttendanceStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Select:
    """Apply the shared attendance filters to a query over AttendanceRecord."""
    if employee_id:
        query = query.where(AttendanceRecord.employee_id == employee_id)
    if department:
        query = query.join(Employee, Employee.id == AttendanceRecord.employee_id).where(
            Employee.department == department
        )
    if status:
        query = query.where(AttendanceRecord.status == status)
    if start_date:
        query = query.where(AttendanceRecord.date >= start_date)
    if end_date:
        query = query.where(AttendanceRecord.date <= end_date)
    return query


class AttendanceService:
    """Async attendance operations: clock-in/out, breaks, daily status."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _find_record(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
        *,
        for_update: bool = False,
    ) -> Optional[AttendanceRecord]:
        query = select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == day,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def _completed_break_minutes(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(BreakRecord.duration), 0)).where(
                BreakRecord.employee_id == employee_id,
                BreakRecord.date == day,
                BreakRecord.status == BreakStatus.completed,
            )
        )
        return int(result.scalar_one() or 0)

    @staticmethod
    async def _find_active_break(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> Optional[BreakRecord]:
        result = await db.execute(
            select(BreakRecord).where(
                BreakRecord.employee_id == employee_id,
                BreakRecord.date == day,
                BreakRecord.status == BreakStatus.active,
            )
        )
        return result.scalars().first()

    # ── Clock in ────────────────────────────────────────────────────

    @staticmethod
    async def clock_in(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        at: Optional[datetime] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AttendanceRecord:
        """Open the day's attendance. A second clock-in on the same day is rejected."""

        now = ensure_utc(at or utcnow())
        day = reference_date(now)
        await EmployeeService.get_employee(db, employee_id)

        record = await AttendanceService._find_record(db, employee_id, day, for_update=True)
        if record is not None and record.check_in is not None:
            raise AlreadyClockedIn(day)

        status = derive_clock_in_status(now)
        if record is None:
            record = AttendanceRecord(
                employee_id=employee_id,
                date=day,
                check_in=now,
                status=status,
                location=location,
                notes=notes,
            )
            db.add(record)
            try:
                await db.flush()
            except IntegrityError as exc:
                # Lost the race against a concurrent clock-in for the same day
                raise AlreadyClockedIn(day) from exc
        else:
            # Pre-existing marker row (e.g. absent) without a check-in
            record.check_in = now
            record.status = status
            record.location = location or record.location
            record.notes = notes or record.notes
            record.updated_at = utcnow()
            await db.flush()

        await create_audit_entry(
            db,
            action="clock_in",
            entity_type="attendance_record",
            entity_id=record.id,
            actor=employee_id,
            new_values={"check_in": now.isoformat(), "status": status.value},
        )
        logger.info("Employee %s clocked in on %s (%s)", employee_id, day, status.value)
        return record

    # ── Clock out ───────────────────────────────────────────────────

    @staticmethod
    async def clock_out(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        at: Optional[datetime] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AttendanceRecord:
        """Close the day's attendance and compute worked hours net of breaks."""

        now = ensure_utc(at or utcnow())
        day = reference_date(now)
        await EmployeeService.get_employee(db, employee_id)

        record = await AttendanceService._find_record(db, employee_id, day, for_update=True)
        if record is None or record.check_in is None or record.check_out is not None:
            raise NoActiveClockIn(day)

        break_minutes = await AttendanceService._completed_break_minutes(db, employee_id, day)
        total_hours = compute_total_hours(record.check_in, now, break_minutes)
        old_status = record.status

        record.check_out = now
        record.total_hours = total_hours
        record.status = derive_clock_out_status(total_hours, record.status)
        record.location = location or record.location
        record.notes = notes or record.notes
        record.updated_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="clock_out",
            entity_type="attendance_record",
            entity_id=record.id,
            actor=employee_id,
            old_values={"status": old_status.value},
            new_values={
                "check_out": now.isoformat(),
                "total_hours": str(total_hours),
                "break_minutes": break_minutes,
                "status": record.status.value,
            },
        )
        logger.info(
            "Employee %s clocked out on %s: %s h (%s)",
            employee_id, day, total_hours, record.status.value,
        )
        return record

    # ── Breaks ──────────────────────────────────────────────────────

    @staticmethod
    async def start_break(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        at: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> BreakRecord:
        now = ensure_utc(at or utcnow())
        day = reference_date(now)
        await EmployeeService.get_employee(db, employee_id)

        if await AttendanceService._find_active_break(db, employee_id, day) is not None:
            raise BreakAlreadyActive(day)

        record = BreakRecord(
            employee_id=employee_id,
            date=day,
            start_time=now,
            reason=reason,
            status=BreakStatus.active,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise BreakAlreadyActive(day) from exc

        await create_audit_entry(
            db,
            action="break_start",
            entity_type="break",
            entity_id=record.id,
            actor=employee_id,
            new_values={"start_time": now.isoformat(), "reason": reason},
        )
        logger.info("Employee %s started a break on %s", employee_id, day)
        return record

    @staticmethod
    async def end_break(
        db: AsyncSession,
        employee_id: uuid.UUID,
        break_id: uuid.UUID,
        *,
        at: Optional[datetime] = None,
    ) -> BreakRecord:
        """Complete an active break; recompute worked hours if the day is closed."""

        now = ensure_utc(at or utcnow())
        result = await db.execute(
            select(BreakRecord)
            .where(
                BreakRecord.id == break_id,
                BreakRecord.employee_id == employee_id,
                BreakRecord.status == BreakStatus.active,
            )
            .with_for_update()
        )
        record = result.scalars().first()
        if record is None:
            raise NoActiveBreak(break_id)

        record.end_time = now
        record.duration = break_duration_minutes(record.start_time, now)
        record.status = BreakStatus.completed
        await db.flush()

        # A closed day must reflect the newly completed break
        attendance = await AttendanceService._find_record(
            db, employee_id, record.date, for_update=True,
        )
        recomputed: Optional[Decimal] = None
        if attendance is not None and attendance.check_in and attendance.check_out:
            break_minutes = await AttendanceService._completed_break_minutes(
                db, employee_id, record.date,
            )
            recomputed = compute_total_hours(
                attendance.check_in, attendance.check_out, break_minutes,
            )
            attendance.total_hours = recomputed
            attendance.updated_at = utcnow()
            await db.flush()

        await create_audit_entry(
            db,
            action="break_end",
            entity_type="break",
            entity_id=record.id,
            actor=employee_id,
            new_values={
                "end_time": now.isoformat(),
                "duration": record.duration,
                "total_hours": str(recomputed) if recomputed is not None else None,
            },
        )
        logger.info(
            "Employee %s ended break %s after %s min", employee_id, record.id, record.duration,
        )
        return record

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def list_breaks(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: Optional[date] = None,
    ) -> Sequence[BreakRecord]:
        """Breaks of an employee, newest first, optionally for a single day."""

        await EmployeeService.get_employee(db, employee_id)
        query = select(BreakRecord).where(BreakRecord.employee_id == employee_id)
        if day is not None:
            query = query.where(BreakRecord.date == day)
        result = await db.execute(query.order_by(BreakRecord.start_time.desc()))
        return result.scalars().all()

    @staticmethod
    async def get_today_status(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        at: Optional[datetime] = None,
    ) -> TodayStatusOut:
        day = reference_date(at)
        record = await AttendanceService._find_record(db, employee_id, day)
        breaks = await AttendanceService.list_breaks(db, employee_id, day)
        active = next((b for b in breaks if b.status == BreakStatus.active), None)
        return TodayStatusOut(
            date=day,
            attendance=AttendanceRecordOut.model_validate(record) if record else None,
            breaks=[BreakRecordOut.model_validate(b) for b in breaks],
            active_break=BreakRecordOut.model_validate(active) if active else None,
            total_break_minutes=sum(b.duration or 0 for b in breaks),
        )

    @staticmethod
    async def get_attendance(db: AsyncSession, record_id: uuid.UUID) -> AttendanceRecord:
        result = await db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.id == record_id)
            .options(selectinload(AttendanceRecord.employee))
        )
        record = result.scalars().first()
        if record is None:
            raise NotFoundException("Attendance Record", str(record_id))
        return record

    @staticmethod
    async def list_attendance(
        db: AsyncSession,
        *,
        employee_id: Optional[uuid.UUID] = None,
        department: Optional[str] = None,
        status: Optional[AttendanceStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AttendanceListResponse:
        """Paginated records, newest day first, with status counts over the whole filter."""

        filters = dict(
            employee_id=employee_id,
            department=department,
            status=status,
            start_date=start_date,
            end_date=end_date,
        )
        query = _filtered(
            select(AttendanceRecord)
            .options(selectinload(AttendanceRecord.employee))
            .order_by(AttendanceRecord.date.desc(), AttendanceRecord.created_at.desc()),
            **filters,
        )
        rows, meta = await paginate(db, query, page, page_size)

        counts_q = _filtered(
            select(AttendanceRecord.status, func.count()).group_by(AttendanceRecord.status),
            **filters,
        )
        stats = AttendanceStatusCounts()
        for row_status, count in (await db.execute(counts_q)).all():
            setattr(stats, row_status.value, count)

        return AttendanceListResponse(
            data=[AttendanceRecordDetail.model_validate(r) for r in rows],
            meta=meta,
            stats=stats,
        )

    @staticmethod
    async def get_employee_attendance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> EmployeeAttendanceOut:
        """Records of one employee. An explicit range wins over ``month``/``year``."""

        await EmployeeService.get_employee(db, employee_id)
        if start_date is None and end_date is None and month and year:
            start_date, end_date = _month_bounds(year, month)

        query = _filtered(
            select(AttendanceRecord).order_by(AttendanceRecord.date.desc()),
            employee_id=employee_id,
            start_date=start_date,
            end_date=end_date,
        )
        records = (await db.execute(query)).scalars().all()

        stats = EmployeeAttendanceStats()
        for record in records:
            _count_status(stats, record.status)
            stats.total_hours += record.total_hours or ZERO_HOURS
        return EmployeeAttendanceOut(
            count=len(records),
            stats=stats,
            data=[AttendanceRecordOut.model_validate(r) for r in records],
        )

    @staticmethod
    async def get_attendance_stats(
        db: AsyncSession,
        *,
        department: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        as_of: Optional[date] = None,
    ) -> AttendanceStats:
        """Status counts, average hours, per-department and per-day figures.

        Without a range the current reference-zone month is used.
        """

        if start_date is None and end_date is None:
            today = as_of or reference_date()
            start_date, end_date = _month_bounds(today.year, today.month)

        query = _filtered(
            select(AttendanceRecord).options(selectinload(AttendanceRecord.employee)),
            department=department,
            start_date=start_date,
            end_date=end_date,
        )
        records = (await db.execute(query)).scalars().all()

        employees_q = select(func.count()).select_from(Employee)
        if department:
            employees_q = employees_q.where(Employee.department == department)

        stats = AttendanceStats(
            start_date=start_date,
            end_date=end_date,
            total_employees=(await db.execute(employees_q)).scalar_one(),
            total_records=len(records),
        )
        total_hours = ZERO_HOURS
        days: dict[date, list] = {}
        for record in records:
            hours = record.total_hours or ZERO_HOURS
            total_hours += hours
            _count_status(stats, record.status)

            name = record.employee.department or UNASSIGNED_DEPARTMENT
            dept = stats.department_breakdown.setdefault(name, DepartmentAttendance())
            _count_status(dept, record.status)
            dept.total += 1

            bucket = days.setdefault(record.date, [0, ZERO_HOURS])
            bucket[0] += 1
            bucket[1] += hours

        if records:
            stats.average_hours = (total_hours / len(records)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        stats.daily_trend = [
            DailyAttendanceTrend(
                date=day,
                count=count,
                average_hours=(hours / count).quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            )
            for day, (count, hours) in sorted(days.items())
        ]
        return stats

    # ── Administrative marking ──────────────────────────────────────

    @staticmethod
    async def mark_attendance(
        db: AsyncSession,
        data: AttendanceMarkRequest,
        *,
        actor: Optional[str] = None,
    ) -> AttendanceRecord:
        """Create or overwrite the employee-day identified by ``data``.

        Worked hours are derived, net of completed breaks, when both times
        are given. A check-out needs a check-in before it.
        """

        await EmployeeService.get_employee(db, data.employee_id)
        check_in = ensure_utc(data.check_in) if data.check_in else None
        check_out = ensure_utc(data.check_out) if data.check_out else None
        if check_out is not None and check_in is None:
            raise ValidationException({"check_out": ["check_out requires check_in"]})
        if check_in is not None and check_out is not None and check_out <= check_in:
            raise ValidationException({"check_out": ["check_out must be after check_in"]})

        total_hours: Optional[Decimal] = None
        if check_in is not None and check_out is not None:
            break_minutes = await AttendanceService._completed_break_minutes(
                db, data.employee_id, data.date,
            )
            total_hours = compute_total_hours(check_in, check_out, break_minutes)

        record = await AttendanceService._find_record(
            db, data.employee_id, data.date, for_update=True,
        )
        old_values = _record_snapshot(record) if record is not None else None
        if record is None:
            record = AttendanceRecord(employee_id=data.employee_id, date=data.date)
            db.add(record)

        record.status = data.status
        record.check_in = check_in
        record.check_out = check_out
        record.total_hours = total_hours
        record.notes = data.notes
        record.updated_at = utcnow()
        try:
            await db.flush()
        except IntegrityError as exc:
            raise AttendanceMarkConflict(data.employee_id, data.date) from exc

        await create_audit_entry(
            db,
            action="mark",
            entity_type="attendance_record",
            entity_id=record.id,
            actor=actor or "admin",
            old_values=old_values,
            new_values=_record_snapshot(record),
        )
        logger.info(
            "Attendance of %s on %s marked %s", data.employee_id, data.date, data.status.value,
        )
        return record

    @staticmethod
    async def bulk_mark_attendance(
        db: AsyncSession,
        data: BulkMarkRequest,
        *,
        actor: Optional[str] = None,
    ) -> BulkMarkResult:
        """Mark one status for many employees on one day.

        Unknown employees are reported in ``errors`` and skipped. Existing
        rows keep their clock times; only status and notes change.
        """

        employee_ids = list(dict.fromkeys(data.employee_ids))
        known = set(
            (await db.execute(select(Employee.id).where(Employee.id.in_(employee_ids))))
            .scalars()
            .all()
        )
        existing = {
            r.employee_id: r
            for r in (
                await db.execute(
                    select(AttendanceRecord)
                    .where(
                        AttendanceRecord.date == data.date,
                        AttendanceRecord.employee_id.in_(list(known)),
                    )
                    .with_for_update()
                )
            ).scalars().all()
        }

        marked: list[AttendanceRecord] = []
        errors: list[BulkMarkError] = []
        for employee_id in employee_ids:
            if employee_id not in known:
                errors.append(BulkMarkError(employee_id=employee_id, error="Employee not found"))
                continue
            record = existing.get(employee_id)
            if record is None:
                record = AttendanceRecord(
                    employee_id=employee_id,
                    date=data.date,
                    status=data.status,
                    notes=data.notes,
                )
                db.add(record)
            else:
                record.status = data.status
                if data.notes is not None:
                    record.notes = data.notes
                record.updated_at = utcnow()
            marked.append(record)

        try:
            await db.flush()
        except IntegrityError as exc:
            raise AttendanceMarkConflict("bulk", data.date) from exc

        for record in marked:
            await create_audit_entry(
                db,
                action="bulk_mark",
                entity_type="attendance_record",
                entity_id=record.id,
                actor=actor or "admin",
                new_values=_record_snapshot(record),
            )
        logger.info(
            "Bulk-marked %d employees %s on %s (%d skipped)",
            len(marked), data.status.value, data.date, len(errors),
        )
        return BulkMarkResult(
            marked=len(marked),
            data=[AttendanceRecordOut.model_validate(r) for r in marked],
            errors=errors,
        )

    @staticmethod
    async def delete_attendance(
        db: AsyncSession,
        record_id: uuid.UUID,
        *,
        actor: Optional[str] = None,
    ) -> AttendanceRecord:
        """Remove one attendance record. Breaks of that day are kept."""

        result = await db.execute(
            select(AttendanceRecord).where(AttendanceRecord.id == record_id).with_for_update()
        )
        record = result.scalars().first()
        if record is None:
            raise NotFoundException("Attendance Record", str(record_id))

        old_values = _record_snapshot(record)
        await db.delete(record)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="attendance_record",
            entity_id=record_id,
            actor=actor or "admin",
            old_values=old_values,
        )
        logger.info("Attendance record %s deleted", record_id)
        return record
