"""Tests for aging-day and bracket computation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from payables.aging import BRACKETS, bracket_for_days, calculate_aging

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "days, expected",
    [
        (0, "0-30"),
        (1, "0-30"),
        (30, "0-30"),
        (31, "31-60"),
        (60, "31-60"),
        (61, "61-90"),
        (90, "61-90"),
        (91, "90+"),
        (400, "90+"),
    ],
)
def test_bracket_boundaries_are_inclusive(days, expected):
    assert bracket_for_days(days) == expected


def test_brackets_are_fixed_and_ordered():
    assert BRACKETS == ("0-30", "31-60", "61-90", "90+")


def test_forty_five_days_is_second_bracket():
    aging = calculate_aging(NOW - timedelta(days=45), NOW)
    assert aging.aging_days == 45
    assert aging.aging_bracket == "31-60"


def test_partial_day_rounds_up():
    aging = calculate_aging(NOW - timedelta(days=30, seconds=1), NOW)
    assert aging.aging_days == 31
    assert aging.aging_bracket == "31-60"


def test_same_instant_is_zero_days():
    assert calculate_aging(NOW, NOW) == (0, "0-30")


def test_future_invoice_date_uses_absolute_difference():
    aging = calculate_aging(NOW + timedelta(days=5), NOW)
    assert aging.aging_days == 5


def test_accepts_dates_strings_and_naive_datetimes():
    from_date = calculate_aging(date(2025, 5, 1), NOW)
    from_string = calculate_aging("2025-05-01", NOW)
    from_naive = calculate_aging(datetime(2025, 5, 1), NOW)
    assert from_date == from_string == from_naive
    assert from_date.aging_days == 46


def test_deterministic_for_same_inputs():
    invoice_date = NOW - timedelta(days=72, hours=3)
    results = {calculate_aging(invoice_date, NOW) for _ in range(5)}
    assert len(results) == 1


def test_missing_date_raises():
    with pytest.raises(ValueError):
        calculate_aging(None, NOW)
