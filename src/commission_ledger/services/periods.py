"""Billing period helpers.

A period is a calendar month written ``YYYY-MM``. Its bounds are half-open in
UTC: ``[first day 00:00, first day of next month 00:00)``.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from commission_ledger.errors import ValidationError

PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def parse_period(period: str) -> tuple[int, int]:
    """Return (year, month) for a ``YYYY-MM`` period.

    Raises:
        ValidationError: If the period is not a valid ``YYYY-MM`` string
    """
    match = PERIOD_PATTERN.match(period or "")
    if match is None:
        raise ValidationError(
            f"period must be formatted YYYY-MM, got '{period}'", period=period
        )
    return int(match.group(1)), int(match.group(2))


def period_bounds(period: str) -> tuple[datetime, datetime]:
    """Half-open UTC bounds of a period."""
    year, month = parse_period(period)
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def as_utc(moment: datetime) -> datetime:
    """Normalize to aware UTC; naive timestamps are taken as UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def period_of(moment: datetime) -> str:
    """Period a timestamp falls in."""
    return as_utc(moment).strftime("%Y-%m")
