"""Enums and constants for StaffHub — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class LeaveType(str, enum.Enum):
    casual = "Casual"
    sick = "Sick"
    earned = "Earned"
    maternity = "Maternity"
    paternity = "Paternity"
    bereavement = "Bereavement"
    paid = "Paid"
    unpaid = "Unpaid"


# Types drawing on the derived accrual pool rather than a stored bucket
POOL_LEAVE_TYPES = frozenset({LeaveType.paid, LeaveType.unpaid})

# Stored bucket per type; the bucket name is the lowercased type
BUCKET_NAMES: tuple[str, ...] = (
    "casual",
    "sick",
    "earned",
    "maternity",
    "paternity",
    "bereavement",
)

DEFAULT_BUCKET_BALANCES: dict[str, Decimal] = {
    "casual": Decimal("12"),
    "sick": Decimal("8"),
    "earned": Decimal("20"),
    "maternity": Decimal("90"),
    "paternity": Decimal("7"),
    "bereavement": Decimal("7"),
}

# Allowed lifecycle moves; anything else is an invalid transition
LEAVE_TRANSITIONS: dict[LeaveStatus, frozenset[LeaveStatus]] = {
    LeaveStatus.pending: frozenset({LeaveStatus.approved, LeaveStatus.rejected}),
    LeaveStatus.approved: frozenset({LeaveStatus.rejected}),
    LeaveStatus.rejected: frozenset(),
}

HALF_DAY = Decimal("0.5")
MONTHLY_PAID_LEAVES = 1


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    late = "late"
    half_day = "half_day"
    absent = "absent"
    on_leave = "on_leave"


class BreakStatus(str, enum.Enum):
    active = "active"
    completed = "completed"


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
