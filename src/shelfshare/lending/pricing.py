"""Loan duration and price calculation.

Pricing picks one duration tier, it does not combine them:

- up to 7 days with a weekly rate: the weekly rate, flat
- otherwise up to 30 days with a monthly rate: the monthly rate, flat
- otherwise: daily rate times the number of days

A short loan on a book without a weekly rate falls through to the monthly
tier (if set) and then to daily pricing.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

ONE_DAY = timedelta(days=1)
WEEKLY_MAX_DAYS = 7
MONTHLY_MAX_DAYS = 30


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def loan_duration_days(start: datetime, end: datetime) -> int:
    """Whole days covered by a loan, rounding partial days up."""
    delta = abs(ensure_utc(end) - ensure_utc(start))
    return math.ceil(delta / ONE_DAY)


def compute_total_amount(
    daily_rate: float,
    duration: int,
    weekly_rate: Optional[float] = None,
    monthly_rate: Optional[float] = None,
) -> float:
    """Price a loan of ``duration`` days.

    Args:
        daily_rate: Price per day (always set)
        duration: Loan length in days
        weekly_rate: Flat price for loans up to a week
        monthly_rate: Flat price for loans up to 30 days

    Returns:
        Total amount for the loan
    """
    if duration <= WEEKLY_MAX_DAYS and weekly_rate:
        return weekly_rate
    if duration <= MONTHLY_MAX_DAYS and monthly_rate:
        return monthly_rate
    return daily_rate * duration


def price_loan(book, start: datetime, end: datetime) -> tuple[int, float]:
    """Return ``(duration, total_amount)`` for a loan of ``book``."""
    duration = loan_duration_days(start, end)
    total = compute_total_amount(
        book.daily_rate,
        duration,
        weekly_rate=book.weekly_rate,
        monthly_rate=book.monthly_rate,
    )
    return duration, total
