"""Paid-leave accrual: one credit per complete month of tenure.

Pure functions over dates; nothing here touches the database.
"""

from __future__ import annotations

from datetime import date, timedelta

from staffhub.common.constants import MONTHLY_PAID_LEAVES

# Longest possible gap between two credits (a 31st anniversary skipping February)
_MAX_CREDIT_GAP_DAYS = 62


def complete_months(join_date: date, as_of: date) -> int:
    """Whole calendar months between ``join_date`` and ``as_of``.

    The month in progress counts only once ``as_of`` has reached the joining
    day-of-month. Months shorter than the joining day are compared as-is, so
    a 31st anniversary is reached on the 1st of the following month.
    """
    months = (as_of.year - join_date.year) * 12 + (as_of.month - join_date.month)
    if as_of.day < join_date.day:
        months -= 1
    return max(0, months)


def earned_credits(join_date: date, as_of: date) -> int:
    """Paid-leave credits earned by ``as_of``; never negative."""
    return complete_months(join_date, as_of) * MONTHLY_PAID_LEAVES


def next_credit_date(join_date: date, as_of: date) -> date:
    """First date after ``as_of`` on which ``earned_credits`` increases."""
    start = max(as_of, join_date)
    current = earned_credits(join_date, as_of)
    candidate = start
    for _ in range(_MAX_CREDIT_GAP_DAYS):
        candidate += timedelta(days=1)
        if earned_credits(join_date, candidate) > current:
            return candidate
    raise RuntimeError(f"No accrual within {_MAX_CREDIT_GAP_DAYS} days of {start}")
