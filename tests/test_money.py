"""Tests for money and date helpers."""

from datetime import date, datetime, timezone

import pytest

from payables.money import (
    approx_equal,
    coerce_datetime,
    coerce_money,
    is_settled,
    parse_money,
    round_money,
)


# ---------------------------------------------------------------------------
# parse_money / coerce_money
# ---------------------------------------------------------------------------

def test_parse_money_rupiah_with_thousands():
    assert parse_money("Rp 1,110,000.00") == 1110000.0


def test_parse_money_pounds():
    assert parse_money("£12.50") == 12.5


def test_parse_money_negative():
    assert parse_money("-45.10") == -45.10


def test_parse_money_empty():
    assert parse_money("") is None
    assert parse_money(None) is None


def test_parse_money_no_digits():
    assert parse_money("n/a") is None


def test_coerce_money_passes_numbers_through():
    assert coerce_money(12) == 12
    assert coerce_money(None) is None


def test_coerce_money_rejects_garbage_strings():
    with pytest.raises(ValueError):
        coerce_money("twelve")


# ---------------------------------------------------------------------------
# rounding / tolerance
# ---------------------------------------------------------------------------

def test_round_money_two_places():
    assert round_money(0.1 + 0.2) == 0.3
    assert round_money(None) == 0.0


def test_round_money_has_no_negative_zero():
    assert str(round_money(-0.001)) == "0.0"


def test_is_settled_tolerance():
    assert is_settled(0.0)
    assert is_settled(0.01)
    assert not is_settled(0.02)


def test_approx_equal():
    assert approx_equal(100.0, 100.01)
    assert not approx_equal(100.0, 100.05)
    assert not approx_equal(None, 1.0)


# ---------------------------------------------------------------------------
# coerce_datetime
# ---------------------------------------------------------------------------

def test_coerce_datetime_iso_string_is_utc():
    value = coerce_datetime("2025-06-15")
    assert value == datetime(2025, 6, 15, tzinfo=timezone.utc)


def test_coerce_datetime_converts_offsets_to_utc():
    value = coerce_datetime("2025-06-15T07:00:00+07:00")
    assert value == datetime(2025, 6, 15, 0, 0, tzinfo=timezone.utc)


def test_coerce_datetime_plain_date_is_midnight():
    assert coerce_datetime(date(2025, 1, 2)) == datetime(2025, 1, 2, tzinfo=timezone.utc)


def test_coerce_datetime_naive_assumed_utc():
    assert coerce_datetime(datetime(2025, 1, 2, 3, 4)).tzinfo == timezone.utc


def test_coerce_datetime_dayfirst():
    assert coerce_datetime("02/01/2025", dayfirst=True).month == 1


def test_coerce_datetime_empty_is_none():
    assert coerce_datetime("") is None
    assert coerce_datetime(None) is None


def test_coerce_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        coerce_datetime("garbage")
    with pytest.raises(ValueError):
        coerce_datetime(12345)
