from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from dateutil import parser as date_parser


# Remaining balance at or below this is treated as settled.
PAID_TOLERANCE = 0.01

_MONEY_RE = re.compile(r"-?\d{1,3}(?:,\d{3})*(?:\.\d+)?|-?\d+(?:\.\d+)?")


def parse_money(value: str | None) -> Optional[float]:
    if not value:
        return None

    cleaned = value.strip()
    for symbol in ("Rp", "£", "$", "€", "¥"):
        cleaned = cleaned.replace(symbol, "")
    cleaned = cleaned.replace(" ", "")

    match = _MONEY_RE.search(cleaned)
    if not match:
        return None

    number = match.group(0).replace(",", "")
    try:
        return float(number)
    except ValueError:
        return None


def coerce_money(value: Any) -> Any:
    """Accept "1,110,000.00"-style strings wherever an amount is expected."""
    if isinstance(value, str):
        parsed = parse_money(value)
        if parsed is None:
            raise ValueError(f"Not a monetary amount: {value!r}")
        return parsed
    return value


def round_money(value: float | None) -> float:
    return round(float(value or 0.0), 2) + 0.0


def approx_equal(left: float | None, right: float | None, tolerance: float = 0.02) -> bool:
    if left is None or right is None:
        return False

    if math.isclose(left, right, abs_tol=tolerance, rel_tol=0.0):
        return True

    return False


def is_settled(amount_due: float) -> bool:
    return amount_due <= PAID_TOLERANCE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_datetime(value: Any, dayfirst: bool = False) -> Optional[datetime]:
    """Normalise strings, dates and naive datetimes to aware UTC datetimes.

    Firestore hands back ``DatetimeWithNanoseconds`` (a ``datetime`` subclass),
    callers hand in ISO strings or plain dates; aging math needs all of them
    on one timeline.
    """
    if value is None or value == "":
        return None

    if isinstance(value, str):
        try:
            value = date_parser.parse(value.strip(), dayfirst=dayfirst)
        except (ValueError, TypeError, OverflowError) as exc:
            raise ValueError(f"Unrecognised date: {value!r}") from exc

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    raise ValueError(f"Unsupported date value: {value!r}")
