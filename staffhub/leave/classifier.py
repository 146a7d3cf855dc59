"""Leave-type classification and coverage resolution.

``Paid`` and ``Unpaid`` draw on the derived accrual pool; every other type
draws on the stored bucket named after it (``Casual`` → ``casual``).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from staffhub.common.constants import POOL_LEAVE_TYPES, LeaveType
from staffhub.common.exceptions import InsufficientBalanceError

ZERO = Decimal("0")


class BalanceSource(str, enum.Enum):
    pool = "pool"
    bucket = "bucket"


@dataclass(frozen=True)
class Coverage:
    """How much of a request is paid, fixed at creation time."""

    is_paid: bool
    paid_days: Decimal
    unpaid_days: Decimal = ZERO

    @property
    def is_partial(self) -> bool:
        return self.is_paid and self.unpaid_days > 0


def classify_leave_type(leave_type: LeaveType) -> BalanceSource:
    return BalanceSource.pool if leave_type in POOL_LEAVE_TYPES else BalanceSource.bucket


def bucket_for(leave_type: LeaveType) -> Optional[str]:
    """Bucket column for ``leave_type``; ``None`` for pool types."""
    if classify_leave_type(leave_type) is BalanceSource.pool:
        return None
    return leave_type.value.lower()


def resolve_pool_coverage(
    leave_type: LeaveType,
    days: Decimal,
    available: Decimal,
) -> Coverage:
    """Coverage for a pool-type request against a freshly read ``available``.

    ``Unpaid`` is never paid. ``Paid`` is fully paid when the pool covers it,
    partially paid when it covers some of it, and rejected when the pool is
    empty.
    """
    if leave_type is LeaveType.unpaid:
        return Coverage(is_paid=False, paid_days=ZERO, unpaid_days=days)
    if available <= 0:
        raise InsufficientBalanceError(
            "paid",
            ZERO,
            days,
            detail="No paid leaves available. Please apply for unpaid leave.",
        )
    paid_days = min(available, days)
    return Coverage(is_paid=True, paid_days=paid_days, unpaid_days=days - paid_days)


def check_bucket_coverage(bucket: str, balance: Decimal, days: Decimal) -> Coverage:
    """Bucket requests must be fully covered; raises otherwise."""
    if balance < days:
        raise InsufficientBalanceError(
            bucket,
            balance,
            days,
            detail=(
                f"Insufficient {bucket.capitalize()} leave balance. "
                f"Available: {balance} days, Requested: {days} days"
            ),
        )
    return Coverage(is_paid=True, paid_days=days)
