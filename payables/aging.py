from __future__ import annotations

import math
from datetime import date, datetime
from typing import NamedTuple

from payables.money import coerce_datetime


SECONDS_PER_DAY = 24 * 60 * 60

# (upper bound in days, label); bounds are inclusive.
_BRACKET_BOUNDS: tuple[tuple[int, str], ...] = (
    (30, "0-30"),
    (60, "31-60"),
    (90, "61-90"),
)
OVERFLOW_BRACKET = "90+"
BRACKETS: tuple[str, ...] = tuple(label for _, label in _BRACKET_BOUNDS) + (OVERFLOW_BRACKET,)


class Aging(NamedTuple):
    aging_days: int
    aging_bracket: str


def bracket_for_days(days: int) -> str:
    for upper, label in _BRACKET_BOUNDS:
        if days <= upper:
            return label
    return OVERFLOW_BRACKET


def calculate_aging(invoice_date: datetime | date | str, now: datetime | date | str) -> Aging:
    """Days elapsed between the invoice date and ``now``, rounded up.

    Pure: the stored aging fields are never touched here, callers decide
    whether the result is persisted as a snapshot or only reported.
    """
    start = coerce_datetime(invoice_date)
    end = coerce_datetime(now)
    if start is None or end is None:
        raise ValueError("Both invoice_date and now are required to compute aging")

    elapsed = abs((end - start).total_seconds())
    days = math.ceil(elapsed / SECONDS_PER_DAY)
    return Aging(aging_days=days, aging_bracket=bracket_for_days(days))
