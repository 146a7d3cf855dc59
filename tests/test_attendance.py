"""Attendance test suite — clock-in/out, lateness and half-day derivation,
break accrual, duplicate-day safety nets, administrative marking, history,
statistics and API endpoints.

Timestamps are built in the reference zone (America/New_York).
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffhub.attendance.models import AttendanceRecord, BreakRecord
from staffhub.attendance.schemas import AttendanceMarkRequest, BulkMarkRequest
from staffhub.attendance.service import (
    AttendanceService,
    break_duration_minutes,
    compute_total_hours,
)
from staffhub.common.constants import AttendanceStatus, BreakStatus
from staffhub.common.exceptions import (
    AlreadyClockedIn,
    BreakAlreadyActive,
    NoActiveBreak,
    NoActiveClockIn,
    NotFoundException,
    ValidationException,
)
from staffhub.common.transactions import run_in_transaction
from staffhub.database import Base
from tests.conftest import _seed_employee
from tests.support import NY, TestSessionFactory, make_file_engine, ny


async def _tx(operation, *args, **kwargs):
    return await run_in_transaction(TestSessionFactory, operation, *args, **kwargs)


async def _count(model, employee_id: uuid.UUID) -> int:
    async with TestSessionFactory() as s:
        return (
            await s.execute(
                select(func.count()).select_from(model).where(model.employee_id == employee_id)
            )
        ).scalar_one()


# ═════════════════════════════════════════════════════════════════════
# Pure computations
# ═════════════════════════════════════════════════════════════════════


def test_total_hours_net_of_breaks():
    assert compute_total_hours(ny(2026, 3, 2, 9), ny(2026, 3, 2, 17, 30), 30) == Decimal("8.00")


def test_total_hours_rounds_to_two_places():
    assert compute_total_hours(ny(2026, 3, 2, 9), ny(2026, 3, 2, 9, 20)) == Decimal("0.33")


def test_total_hours_clamped_at_zero():
    assert compute_total_hours(ny(2026, 3, 2, 9), ny(2026, 3, 2, 9, 10), 60) == Decimal("0.00")


def test_total_hours_accepts_naive_utc():
    check_in = datetime(2026, 3, 2, 14, 0)  # as read back from SQLite
    check_out = datetime(2026, 3, 2, 22, 0, tzinfo=timezone.utc)
    assert compute_total_hours(check_in, check_out) == Decimal("8.00")


def test_break_duration_rounds_to_nearest_minute():
    start = datetime(2026, 3, 2, 12, 0, 0, tzinfo=NY)
    assert break_duration_minutes(start, start + timedelta(minutes=30, seconds=40)) == 31
    assert break_duration_minutes(start, start + timedelta(minutes=30, seconds=20)) == 30


# ═════════════════════════════════════════════════════════════════════
# Clock in
# ═════════════════════════════════════════════════════════════════════


class TestClockIn:

    async def test_on_time_is_present(self, test_employee):
        record = await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 15))
        assert record.status == AttendanceStatus.present
        assert record.date == date(2026, 3, 2)
        assert record.check_out is None
        assert record.total_hours is None

    async def test_exactly_threshold_is_present(self, test_employee):
        record = await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 30))
        assert record.status == AttendanceStatus.present

    async def test_after_threshold_is_late(self, test_employee):
        record = await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 31))
        assert record.status == AttendanceStatus.late

    async def test_late_evening_stays_on_local_day(self, test_employee):
        # 23:30 in New York is already the next day in UTC
        record = await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 23, 30))
        assert record.date == date(2026, 3, 2)

    async def test_second_clock_in_same_day_rejected(self, test_employee):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        with pytest.raises(AlreadyClockedIn):
            await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 13, 0))
        assert await _count(AttendanceRecord, test_employee.id) == 1

    async def test_clock_in_after_clock_out_rejected(self, test_employee):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        await _tx(AttendanceService.clock_out, test_employee.id, at=ny(2026, 3, 2, 12, 0))
        with pytest.raises(AlreadyClockedIn):
            await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 13, 0))

    async def test_next_day_allowed(self, test_employee):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 3, 9, 0))
        assert await _count(AttendanceRecord, test_employee.id) == 2

    async def test_lost_race_maps_to_conflict(self, test_employee, monkeypatch):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))

        async def _missed_check(db, employee_id, day, *, for_update=False):
            return None

        # Simulate a concurrent caller that passed the pre-check before the first insert landed
        monkeypatch.setattr(AttendanceService, "_find_record", staticmethod(_missed_check))
        with pytest.raises(AlreadyClockedIn):
            await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 1))
        assert await _count(AttendanceRecord, test_employee.id) == 1

    async def test_unknown_employee(self):
        with pytest.raises(NotFoundException):
            await _tx(AttendanceService.clock_in, uuid.uuid4(), at=ny(2026, 3, 2, 9, 0))


# ═════════════════════════════════════════════════════════════════════
# Clock out
# ═════════════════════════════════════════════════════════════════════


class TestClockOut:

    async def test_full_day_net_of_breaks(self, test_employee):
        emp = test_employee.id
        await _tx(AttendanceService.clock_in, emp, at=ny(2026, 3, 2, 9, 0))
        brk = await _tx(AttendanceService.start_break, emp, at=ny(2026, 3, 2, 12, 0), reason="Lunch")
        await _tx(AttendanceService.end_break, emp, brk.id, at=ny(2026, 3, 2, 12, 30))

        record = await _tx(AttendanceService.clock_out, emp, at=ny(2026, 3, 2, 17, 30), notes="Done")
        assert record.total_hours == Decimal("8.00")
        assert record.status == AttendanceStatus.present
        assert record.notes == "Done"

    async def test_short_day_is_half_day(self, test_employee):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        record = await _tx(AttendanceService.clock_out, test_employee.id, at=ny(2026, 3, 2, 12, 0))
        assert record.total_hours == Decimal("3.00")
        assert record.status == AttendanceStatus.half_day

    async def test_late_status_kept_for_full_day(self, test_employee):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 45))
        record = await _tx(AttendanceService.clock_out, test_employee.id, at=ny(2026, 3, 2, 18, 0))
        assert record.total_hours == Decimal("8.25")
        assert record.status == AttendanceStatus.late

    async def test_without_clock_in(self, test_employee):
        with pytest.raises(NoActiveClockIn):
            await _tx(AttendanceService.clock_out, test_employee.id, at=ny(2026, 3, 2, 17, 0))

    async def test_twice(self, test_employee):
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        await _tx(AttendanceService.clock_out, test_employee.id, at=ny(2026, 3, 2, 17, 0))
        with pytest.raises(NoActiveClockIn):
            await _tx(AttendanceService.clock_out, test_employee.id, at=ny(2026, 3, 2, 18, 0))


# ═════════════════════════════════════════════════════════════════════
# Breaks
# ═════════════════════════════════════════════════════════════════════


class TestBreaks:

    async def test_one_active_break_per_day(self, test_employee):
        await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 11, 0))
        with pytest.raises(BreakAlreadyActive):
            await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 11, 5))

    async def test_new_break_after_completion(self, test_employee):
        first = await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 11, 0))
        await _tx(AttendanceService.end_break, test_employee.id, first.id, at=ny(2026, 3, 2, 11, 15))
        second = await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 15, 0))
        assert second.status == BreakStatus.active

    async def test_lost_race_on_active_break(self, test_employee, monkeypatch):
        await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 11, 0))

        async def _missed_check(db, employee_id, day):
            return None

        monkeypatch.setattr(AttendanceService, "_find_active_break", staticmethod(_missed_check))
        with pytest.raises(BreakAlreadyActive):
            await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 11, 1))
        assert await _count(BreakRecord, test_employee.id) == 1

    async def test_end_break_duration(self, test_employee):
        brk = await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 12, 0))
        ended = await _tx(
            AttendanceService.end_break, test_employee.id, brk.id,
            at=datetime(2026, 3, 2, 12, 30, 40, tzinfo=NY),
        )
        assert ended.duration == 31
        assert ended.status == BreakStatus.completed

    async def test_end_break_twice(self, test_employee):
        brk = await _tx(AttendanceService.start_break, test_employee.id, at=ny(2026, 3, 2, 12, 0))
        await _tx(AttendanceService.end_break, test_employee.id, brk.id, at=ny(2026, 3, 2, 12, 10))
        with pytest.raises(NoActiveBreak):
            await _tx(AttendanceService.end_break, test_employee.id, brk.id, at=ny(2026, 3, 2, 12, 20))

    async def test_end_unknown_break(self, test_employee):
        with pytest.raises(NoActiveBreak):
            await _tx(AttendanceService.end_break, test_employee.id, uuid.uuid4(), at=ny(2026, 3, 2, 12, 0))

    async def test_end_break_after_clock_out_recomputes_hours(self, test_employee):
        emp = test_employee.id
        await _tx(AttendanceService.clock_in, emp, at=ny(2026, 3, 2, 9, 0))
        brk = await _tx(AttendanceService.start_break, emp, at=ny(2026, 3, 2, 12, 0))
        record = await _tx(AttendanceService.clock_out, emp, at=ny(2026, 3, 2, 17, 0))
        assert record.total_hours == Decimal("8.00")

        await _tx(AttendanceService.end_break, emp, brk.id, at=ny(2026, 3, 2, 12, 30))
        async with TestSessionFactory() as s:
            record = await s.get(AttendanceRecord, record.id)
        assert record.total_hours == Decimal("7.50")

    async def test_today_status_and_listing(self, db, test_employee):
        emp = test_employee.id
        await _tx(AttendanceService.clock_in, emp, at=ny(2026, 3, 2, 9, 0))
        first = await _tx(AttendanceService.start_break, emp, at=ny(2026, 3, 2, 11, 0))
        await _tx(AttendanceService.end_break, emp, first.id, at=ny(2026, 3, 2, 11, 20))
        second = await _tx(AttendanceService.start_break, emp, at=ny(2026, 3, 2, 15, 0))
        await _tx(AttendanceService.start_break, emp, at=ny(2026, 3, 3, 10, 0))

        status = await AttendanceService.get_today_status(db, emp, at=ny(2026, 3, 2, 16, 0))
        assert status.date == date(2026, 3, 2)
        assert status.attendance.status == AttendanceStatus.present
        assert len(status.breaks) == 2
        assert status.active_break.id == second.id
        assert status.total_break_minutes == 20

        breaks = await AttendanceService.list_breaks(db, emp)
        assert [b.date for b in breaks] == [date(2026, 3, 3), date(2026, 3, 2), date(2026, 3, 2)]
        assert len(await AttendanceService.list_breaks(db, emp, date(2026, 3, 3))) == 1


# ═════════════════════════════════════════════════════════════════════
# Administrative marking
# ═════════════════════════════════════════════════════════════════════


def _mark_request(employee_id, day, status, check_in=None, check_out=None, notes=None):
    return AttendanceMarkRequest(
        employee_id=employee_id,
        date=day,
        status=status,
        check_in=check_in,
        check_out=check_out,
        notes=notes,
    )


async def _mark(employee_id, day, status, check_in=None, check_out=None, notes=None):
    data = _mark_request(employee_id, day, status, check_in, check_out, notes)
    return await _tx(AttendanceService.mark_attendance, data, actor="hr")


class TestMarking:

    async def test_mark_derives_hours_net_of_breaks(self, test_employee):
        emp = test_employee.id
        brk = await _tx(AttendanceService.start_break, emp, at=ny(2026, 3, 2, 12, 0))
        await _tx(AttendanceService.end_break, emp, brk.id, at=ny(2026, 3, 2, 12, 30))

        record = await _mark(
            emp, date(2026, 3, 2), AttendanceStatus.present,
            ny(2026, 3, 2, 9, 0), ny(2026, 3, 2, 17, 30), notes="Badge reader down",
        )
        assert record.total_hours == Decimal("8.00")
        assert record.notes == "Badge reader down"

    async def test_mark_without_times_has_no_hours(self, test_employee):
        record = await _mark(test_employee.id, date(2026, 3, 2), AttendanceStatus.absent)
        assert record.check_in is None
        assert record.total_hours is None

    async def test_mark_overwrites_the_day(self, test_employee):
        opened = await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        record = await _mark(test_employee.id, date(2026, 3, 2), AttendanceStatus.on_leave)
        assert record.id == opened.id
        assert record.status == AttendanceStatus.on_leave
        assert record.check_in is None
        assert await _count(AttendanceRecord, test_employee.id) == 1

    async def test_clock_in_fills_marked_day(self, test_employee):
        marked = await _mark(
            test_employee.id, date(2026, 3, 2), AttendanceStatus.absent, notes="No show yet",
        )
        record = await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 45))
        assert record.id == marked.id
        assert record.status == AttendanceStatus.late
        assert record.check_in is not None
        assert record.notes == "No show yet"
        assert await _count(AttendanceRecord, test_employee.id) == 1

        with pytest.raises(AlreadyClockedIn):
            await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 10, 0))

    async def test_check_out_needs_check_in(self, test_employee):
        with pytest.raises(ValidationException) as exc_info:
            await _mark(
                test_employee.id, date(2026, 3, 2), AttendanceStatus.present,
                check_out=ny(2026, 3, 2, 17, 0),
            )
        assert "check_out" in exc_info.value.errors

    async def test_check_out_before_check_in(self, test_employee):
        with pytest.raises(ValidationException):
            await _mark(
                test_employee.id, date(2026, 3, 2), AttendanceStatus.present,
                ny(2026, 3, 2, 17, 0), ny(2026, 3, 2, 9, 0),
            )
        assert await _count(AttendanceRecord, test_employee.id) == 0

    async def test_mark_unknown_employee(self):
        with pytest.raises(NotFoundException):
            await _mark(uuid.uuid4(), date(2026, 3, 2), AttendanceStatus.present)

    async def test_bulk_mark(self, db, test_employee):
        other = await _seed_employee(db)
        await _tx(AttendanceService.clock_in, test_employee.id, at=ny(2026, 3, 2, 9, 0))
        missing = uuid.uuid4()

        data = BulkMarkRequest(
            employee_ids=[test_employee.id, other.id, missing, other.id],
            date=date(2026, 3, 2),
            status=AttendanceStatus.on_leave,
            notes="Office closed",
        )
        result = await _tx(AttendanceService.bulk_mark_attendance, data, actor="hr")
        assert result.marked == 2
        assert [e.employee_id for e in result.errors] == [missing]

        async with TestSessionFactory() as s:
            kept = await AttendanceService._find_record(s, test_employee.id, date(2026, 3, 2))
        assert kept.status == AttendanceStatus.on_leave
        assert kept.check_in is not None
        assert kept.notes == "Office closed"
        assert await _count(AttendanceRecord, other.id) == 1

    async def test_delete(self, test_employee):
        record = await _mark(test_employee.id, date(2026, 3, 2), AttendanceStatus.present)
        await _tx(AttendanceService.delete_attendance, record.id)
        async with TestSessionFactory() as s:
            with pytest.raises(NotFoundException):
                await AttendanceService.get_attendance(s, record.id)
        with pytest.raises(NotFoundException):
            await _tx(AttendanceService.delete_attendance, record.id)

    async def test_simultaneous_clock_ins_open_one_day(self, tmp_path):
        file_engine = make_file_engine(tmp_path / "clock.db")
        factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with file_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with factory() as s:
                employee = await _seed_employee(s)

            results = await asyncio.gather(
                *(
                    run_in_transaction(
                        factory, AttendanceService.clock_in, employee.id, at=ny(2026, 3, 2, 9, minute),
                    )
                    for minute in (0, 1)
                ),
                return_exceptions=True,
            )
            async with factory() as s:
                stored = (
                    await s.execute(
                        select(func.count()).select_from(AttendanceRecord)
                        .where(AttendanceRecord.employee_id == employee.id)
                    )
                ).scalar_one()
        finally:
            await file_engine.dispose()

        assert sum(isinstance(r, AttendanceRecord) for r in results) == 1, results
        assert sum(isinstance(r, AlreadyClockedIn) for r in results) == 1, results
        assert stored == 1


# ═════════════════════════════════════════════════════════════════════
# History and statistics
# ═════════════════════════════════════════════════════════════════════


class TestHistoryAndStats:

    async def _seed_march(self, db):
        """Two employees in different departments with a few March days."""
        eng = await _seed_employee(db, department="Engineering")
        ops = await _seed_employee(db)
        await _mark(eng.id, date(2026, 3, 2), AttendanceStatus.present, ny(2026, 3, 2, 9), ny(2026, 3, 2, 17))
        await _mark(eng.id, date(2026, 3, 3), AttendanceStatus.late, ny(2026, 3, 3, 10), ny(2026, 3, 3, 17))
        await _mark(eng.id, date(2026, 3, 4), AttendanceStatus.half_day, ny(2026, 3, 4, 9), ny(2026, 3, 4, 12))
        await _mark(eng.id, date(2026, 4, 1), AttendanceStatus.absent)
        await _mark(ops.id, date(2026, 3, 2), AttendanceStatus.present, ny(2026, 3, 2, 9), ny(2026, 3, 2, 13))
        return eng, ops

    async def test_employee_history(self, db):
        eng, _ = await self._seed_march(db)
        async with TestSessionFactory() as s:
            march = await AttendanceService.get_employee_attendance(s, eng.id, month=3, year=2026)
            everything = await AttendanceService.get_employee_attendance(s, eng.id)
            one_day = await AttendanceService.get_employee_attendance(
                s, eng.id, start_date=date(2026, 3, 3), end_date=date(2026, 3, 3), month=3, year=2026,
            )
        assert march.count == 3
        assert (march.stats.present, march.stats.late, march.stats.half_day) == (1, 1, 1)
        assert march.stats.total_hours == Decimal("18")
        assert march.data[0].date == date(2026, 3, 4)
        assert everything.count == 4
        assert everything.stats.absent == 1
        assert one_day.count == 1

    async def test_history_unknown_employee(self):
        async with TestSessionFactory() as s:
            with pytest.raises(NotFoundException):
                await AttendanceService.get_employee_attendance(s, uuid.uuid4())

    async def test_list_filters_and_counts(self, db):
        eng, ops = await self._seed_march(db)
        async with TestSessionFactory() as s:
            page = await AttendanceService.list_attendance(s, page_size=2)
            engineering = await AttendanceService.list_attendance(s, department="Engineering")
            present = await AttendanceService.list_attendance(
                s, status=AttendanceStatus.present, start_date=date(2026, 3, 1), end_date=date(2026, 3, 31),
            )
        assert len(page.data) == 2
        assert page.meta.total == 5
        assert page.stats.present == 2
        assert page.stats.absent == 1
        assert page.data[0].date == date(2026, 4, 1)
        assert engineering.meta.total == 4
        assert {r.employee_id for r in engineering.data} == {eng.id}
        assert engineering.data[0].employee.department == "Engineering"
        assert present.meta.total == 2
        assert present.stats.late == 0

    async def test_stats_for_period(self, db):
        await self._seed_march(db)
        async with TestSessionFactory() as s:
            stats = await AttendanceService.get_attendance_stats(
                s, start_date=date(2026, 3, 1), end_date=date(2026, 3, 31),
            )
        assert stats.total_employees == 2
        assert stats.total_records == 4
        assert stats.present == 2
        assert stats.average_hours == Decimal("5.50")
        assert stats.department_breakdown["Engineering"].total == 3
        assert stats.department_breakdown["Unassigned"].present == 1
        assert [d.date for d in stats.daily_trend] == [
            date(2026, 3, 2), date(2026, 3, 3), date(2026, 3, 4),
        ]
        assert stats.daily_trend[0].count == 2
        assert stats.daily_trend[0].average_hours == Decimal("6.00")

    async def test_stats_default_to_current_month(self, db):
        await self._seed_march(db)
        async with TestSessionFactory() as s:
            april = await AttendanceService.get_attendance_stats(s, as_of=date(2026, 4, 15))
            engineering = await AttendanceService.get_attendance_stats(
                s, department="Engineering", as_of=date(2026, 3, 15),
            )
        assert (april.start_date, april.end_date) == (date(2026, 4, 1), date(2026, 4, 30))
        assert april.total_records == 1
        assert april.absent == 1
        assert engineering.total_employees == 1
        assert engineering.total_records == 3


# ═════════════════════════════════════════════════════════════════════
# API endpoints
# ═════════════════════════════════════════════════════════════════════


class TestAttendanceAPI:

    async def test_clock_in_and_out(self, client, test_employee):
        base = f"/api/v1/attendance/{test_employee.id}"
        resp = await client.post(f"{base}/clock-in", json={"at": "2026-03-02T09:40:00-05:00", "location": "HQ"})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "late"
        assert body["date"] == "2026-03-02"
        assert body["location"] == "HQ"

        resp = await client.post(f"{base}/clock-in", json={"at": "2026-03-02T10:00:00-05:00"})
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/already-clocked-in")

        resp = await client.post(f"{base}/clock-out", json={"at": "2026-03-02T12:40:00-05:00"})
        assert resp.status_code == 200, resp.text
        assert Decimal(resp.json()["total_hours"]) == Decimal("3.00")
        assert resp.json()["status"] == "half_day"

    async def test_clock_out_without_clock_in(self, client, test_employee):
        resp = await client.post(
            f"/api/v1/attendance/{test_employee.id}/clock-out",
            json={"at": "2026-03-02T17:00:00-05:00"},
        )
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/no-active-clock-in")

    async def test_breaks_flow(self, client, test_employee):
        base = f"/api/v1/attendance/{test_employee.id}"
        resp = await client.post(f"{base}/breaks/start", json={"at": "2026-03-02T12:00:00-05:00", "reason": "Lunch"})
        assert resp.status_code == 201, resp.text
        break_id = resp.json()["id"]

        resp = await client.post(f"{base}/breaks/start", json={"at": "2026-03-02T12:05:00-05:00"})
        assert resp.status_code == 409

        resp = await client.post(f"{base}/breaks/{break_id}/end", json={"at": "2026-03-02T12:45:00-05:00"})
        assert resp.status_code == 200
        assert resp.json()["duration"] == 45

        resp = await client.get(f"{base}/breaks", params={"date": "2026-03-02"})
        assert resp.json()["count"] == 1
        assert resp.json()["data"][0]["reason"] == "Lunch"

    async def test_today_without_record(self, client, test_employee):
        resp = await client.get(f"/api/v1/attendance/{test_employee.id}/today")
        assert resp.status_code == 200
        body = resp.json()
        assert body["attendance"] is None
        assert body["breaks"] == []

    async def test_unknown_employee(self, client):
        resp = await client.post(f"/api/v1/attendance/{uuid.uuid4()}/clock-in")
        assert resp.status_code == 404

    async def test_mark_get_list_and_delete(self, client, test_employee):
        resp = await client.post(
            "/api/v1/attendance/mark",
            json={
                "employee_id": str(test_employee.id),
                "date": "2026-03-02",
                "status": "present",
                "check_in": "2026-03-02T09:00:00-05:00",
                "check_out": "2026-03-02T17:15:00-05:00",
                "actor": "hr",
            },
        )
        assert resp.status_code == 200, resp.text
        assert Decimal(resp.json()["total_hours"]) == Decimal("8.25")
        record_id = resp.json()["id"]

        resp = await client.get(f"/api/v1/attendance/records/{record_id}")
        assert resp.status_code == 200
        assert resp.json()["employee"]["employee_code"] == test_employee.employee_code

        resp = await client.get("/api/v1/attendance/", params={"status": "present"})
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert body["stats"]["present"] == 1

        resp = await client.delete(f"/api/v1/attendance/records/{record_id}")
        assert resp.status_code == 200
        resp = await client.get(f"/api/v1/attendance/records/{record_id}")
        assert resp.status_code == 404

    async def test_mark_with_inverted_times(self, client, test_employee):
        resp = await client.post(
            "/api/v1/attendance/mark",
            json={
                "employee_id": str(test_employee.id),
                "date": "2026-03-02",
                "status": "present",
                "check_in": "2026-03-02T17:00:00-05:00",
                "check_out": "2026-03-02T09:00:00-05:00",
            },
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["type"].endswith("/validation-error")
        assert "check_out" in body["errors"]

    async def test_bulk_history_and_stats(self, client, test_employee):
        missing = str(uuid.uuid4())
        resp = await client.post(
            "/api/v1/attendance/bulk",
            json={
                "employee_ids": [str(test_employee.id), missing],
                "date": "2026-03-02",
                "status": "on_leave",
            },
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["marked"] == 1
        assert body["errors"][0]["employee_id"] == missing

        resp = await client.get(
            f"/api/v1/attendance/{test_employee.id}/history", params={"month": 3, "year": 2026},
        )
        assert resp.status_code == 200
        assert resp.json()["count"] == 1
        assert resp.json()["stats"]["on_leave"] == 1

        resp = await client.get(
            "/api/v1/attendance/stats",
            params={"start_date": "2026-03-01", "end_date": "2026-03-31"},
        )
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["total_records"] == 1
        assert stats["department_breakdown"]["Unassigned"]["on_leave"] == 1

    async def test_history_rejects_bad_month(self, client, test_employee):
        resp = await client.get(
            f"/api/v1/attendance/{test_employee.id}/history", params={"month": 13, "year": 2026},
        )
        assert resp.status_code == 422
