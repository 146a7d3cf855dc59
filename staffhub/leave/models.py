"""Leave ORM models: LeaveBalance, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staffhub.common.constants import (
    BUCKET_NAMES,
    DEFAULT_BUCKET_BALANCES,
    LeaveStatus,
    LeaveType,
)
from staffhub.database import Base
from staffhub.leave.classifier import bucket_for

if TYPE_CHECKING:
    from staffhub.core_hr.models import Employee


def _bucket_column(name: str) -> Mapped[Decimal]:
    return mapped_column(
        sa.Numeric(5, 1),
        nullable=False,
        default=DEFAULT_BUCKET_BALANCES[name],
    )


class LeaveBalance(Base):
    """Per-employee stored buckets; the accrual pool is derived, not stored."""

    __tablename__ = "leave_balances"
    __table_args__ = tuple(
        sa.CheckConstraint(f"{name} >= 0", name=f"ck_leave_balance_{name}_non_negative")
        for name in BUCKET_NAMES
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    casual: Mapped[Decimal] = _bucket_column("casual")
    sick: Mapped[Decimal] = _bucket_column("sick")
    earned: Mapped[Decimal] = _bucket_column("earned")
    maternity: Mapped[Decimal] = _bucket_column("maternity")
    paternity: Mapped[Decimal] = _bucket_column("paternity")
    bereavement: Mapped[Decimal] = _bucket_column("bereavement")
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_balance")

    def get_bucket(self, bucket: str) -> Decimal:
        return Decimal(getattr(self, bucket))

    def set_bucket(self, bucket: str, value: Decimal) -> None:
        setattr(self, bucket, value)
        self.updated_at = datetime.now(timezone.utc)

    def as_dict(self) -> dict[str, Decimal]:
        return {name: self.get_bucket(name) for name in BUCKET_NAMES}


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("to_date >= from_date", name="ck_leave_request_date_order"),
        sa.CheckConstraint("paid_days <= days", name="ck_leave_request_paid_days"),
        sa.CheckConstraint("days > 0", name="ck_leave_request_days_positive"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "from_date", "to_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False,
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    is_half_day: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_paid: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    paid_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
    )
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    contact_during_leave: Mapped[Optional[str]] = mapped_column(sa.String(50))
    address_during_leave: Mapped[Optional[str]] = mapped_column(sa.Text)
    manager_notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    approved_by: Mapped[Optional[str]] = mapped_column(sa.String(100))
    approved_date: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    applied_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_requests", lazy="selectin",
    )

    @property
    def bucket(self) -> Optional[str]:
        """Stored bucket this request draws on, or None for pool types."""
        return bucket_for(self.type)

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.type.value} {self.from_date}..{self.to_date} "
            f"{self.status.value}>"
        )
