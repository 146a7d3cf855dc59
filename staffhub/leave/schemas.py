"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request / *Update  → request bodies (write)
  - *Out / *Breakdown             → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from staffhub.common.constants import BUCKET_NAMES, LeaveStatus, LeaveType
from staffhub.common.pagination import PaginationMeta
from staffhub.core_hr.schemas import EmployeeBrief


def _is_half_step(value: Decimal) -> bool:
    return (value * 2) % 1 == 0


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    employee_id: uuid.UUID
    type: LeaveType
    from_date: date = Field(..., description="Leave start date (inclusive)")
    to_date: Optional[date] = Field(
        None, description="Leave end date (inclusive); defaults to from_date for half days",
    )
    is_half_day: bool = False
    reason: str = Field(..., min_length=1, max_length=1000)
    contact_during_leave: Optional[str] = Field(None, max_length=50)
    address_during_leave: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason is required")
        return v.strip()

    @model_validator(mode="after")
    def _validate_dates(self) -> "LeaveRequestCreate":
        if self.is_half_day:
            if self.to_date is None:
                self.to_date = self.from_date
            elif self.to_date != self.from_date:
                raise ValueError("A half-day leave must start and end on the same date")
        elif self.to_date is None:
            raise ValueError("to_date is required unless is_half_day is set")
        elif self.to_date < self.from_date:
            raise ValueError("to_date must be on or after from_date")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Update
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestUpdate(BaseModel):
    """Partial edit of a pending request. Omitted fields keep their value.

    Date consistency is checked by the service against the merged request.
    """

    type: Optional[LeaveType] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    is_half_day: Optional[bool] = None
    reason: Optional[str] = Field(None, min_length=1, max_length=1000)
    contact_during_leave: Optional[str] = Field(None, max_length=50)
    address_during_leave: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Reason cannot be blank")
        return v.strip() if v is not None else v


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Status
# ═════════════════════════════════════════════════════════════════════


class LeaveStatusUpdate(BaseModel):
    """Approve or reject a leave request."""

    status: LeaveStatus
    approved_by: Optional[str] = Field(None, max_length=100)
    rejection_reason: Optional[str] = Field(None, max_length=1000)
    manager_notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def _not_pending(cls, v: LeaveStatus) -> LeaveStatus:
        if v == LeaveStatus.pending:
            raise ValueError("Status must be 'approved' or 'rejected'")
        return v


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Read
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    type: LeaveType
    from_date: date
    to_date: date
    days: Decimal
    is_half_day: bool
    is_paid: bool
    paid_days: Decimal
    status: LeaveStatus
    reason: str
    contact_during_leave: Optional[str] = None
    address_during_leave: Optional[str] = None
    manager_notes: Optional[str] = None
    approved_by: Optional[str] = None
    approved_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    applied_date: datetime
    updated_at: datetime

    employee: Optional[EmployeeBrief] = None


class LeaveListResponse(BaseModel):
    data: list[LeaveRequestOut]
    meta: PaginationMeta


class LeaveTypeStat(BaseModel):
    count: int = 0
    days: Decimal = Decimal("0")


class LeaveStatistics(BaseModel):
    """Counts by status plus a per-type breakdown."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    by_type: dict[str, LeaveTypeStat] = Field(default_factory=dict)


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class BucketBalanceOut(BaseModel):
    """Stored bucket balances for one employee."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    casual: Decimal
    sick: Decimal
    earned: Decimal
    maternity: Decimal
    paternity: Decimal
    bereavement: Decimal
    updated_at: Optional[datetime] = None


class BalanceAdjustRequest(BaseModel):
    """Administrative override of a single bucket."""

    bucket: str
    adjustment: Decimal = Field(..., description="Signed delta in 0.5-day steps")
    reason: str = Field(..., min_length=3, max_length=500)
    actor: Optional[str] = Field(None, max_length=100)

    @field_validator("bucket")
    @classmethod
    def _known_bucket(cls, v: str) -> str:
        name = v.strip().lower()
        if name not in BUCKET_NAMES:
            raise ValueError(f"Unknown bucket '{v}'. Expected one of: {', '.join(BUCKET_NAMES)}")
        return name

    @field_validator("adjustment")
    @classmethod
    def _half_day_steps(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Adjustment must be non-zero")
        if not _is_half_step(v):
            raise ValueError("Adjustment must be a multiple of 0.5")
        return v


class PaidLeaveBalanceOut(BaseModel):
    """Accrual pool snapshot: earned credits minus consumed and reserved days."""

    employee_id: uuid.UUID
    earned: int
    consumed: Decimal
    pending: Decimal
    available: Decimal


class PaidLeaveBreakdown(PaidLeaveBalanceOut):
    """Pool snapshot with tenure and next-credit projection."""

    join_date: date
    months_worked: int
    next_credit_date: date
    days_until_next_credit: int
    projected_next_month: Decimal
    accrual_rate: str = "1 day per month"
