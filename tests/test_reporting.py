"""Tests for the aging report."""

from datetime import timedelta

import pytest

from conftest import NOW, make_simple_input
from payables.errors import StoreUnavailable
from payables.reporting import AgingReportBuilder


def _payment(amount):
    return {"amount": amount, "payment_date": NOW.isoformat()}


def _brackets(report):
    return {b.bracket: b for b in report.brackets}


def test_empty_report_has_four_zero_brackets(report_builder):
    report = report_builder.generate()

    assert [b.bracket for b in report.brackets] == ["0-30", "31-60", "61-90", "90+"]
    assert all(b.count == 0 and b.total_amount == 0 and b.percentage == 0 for b in report.brackets)
    assert report.total_amount == 0
    assert report.total_count == 0
    assert report.details == []
    assert report.report_type == "payable"
    assert report.currency == "IDR"
    assert report.report_date == NOW
    assert report.generated_by == "system"


def test_two_equal_brackets_split_fifty_fifty(manager, report_builder):
    manager.create(make_simple_input(5_000_000, NOW - timedelta(days=10)), "user_1")
    manager.create(make_simple_input(5_000_000, NOW - timedelta(days=45)), "user_1")

    brackets = _brackets(report_builder.generate())

    assert brackets["0-30"].percentage == 50
    assert brackets["31-60"].percentage == 50
    assert brackets["61-90"].percentage == 0
    assert brackets["90+"].count == 0


def test_closed_payables_are_excluded(manager, report_builder):
    open_ap = manager.create(make_simple_input(1_000_000), "user_1")
    paid = manager.create(make_simple_input(2_000_000), "user_1")
    manager.record_payment(paid.id, _payment(2_000_000), "user_1")
    manager.cancel(manager.create(make_simple_input(3_000_000), "user_1").id, "user_1")
    manager.void(manager.create(make_simple_input(4_000_000), "user_1").id, "user_1")

    report = report_builder.generate()

    assert [ap.id for ap in report.details] == [open_ap.id]
    assert report.total_count == 1
    assert report.total_amount == 1_000_000


def test_partially_paid_counts_amount_due(manager, report_builder):
    payable = manager.create(make_simple_input(2_000_000), "user_1")
    manager.record_payment(payable.id, _payment(500_000), "user_1")

    report = report_builder.generate()

    assert report.total_amount == 1_500_000
    assert _brackets(report)["0-30"].total_amount == 1_500_000


def test_totals_and_percentages_add_up(manager, report_builder):
    for days, total in ((5, 1_000_000), (40, 2_000_000), (75, 3_000_000), (200, 1_234_567.89)):
        manager.create(make_simple_input(total, NOW - timedelta(days=days)), "user_1")

    report = report_builder.generate()

    assert report.total_count == 4
    assert sum(b.count for b in report.brackets) == 4
    assert sum(b.total_amount for b in report.brackets) == pytest.approx(report.total_amount)
    assert sum(b.percentage for b in report.brackets) == pytest.approx(100, abs=0.05)


def test_aging_is_recomputed_without_writing_back(manager, repository, report_builder):
    payable = manager.create(make_simple_input(1_000_000), "user_1")

    report = report_builder.generate(as_of=NOW + timedelta(days=100), generated_by="auditor")

    detail = report.details[0]
    assert detail.aging_bracket == "90+"
    assert detail.aging_days == 114
    assert report.generated_by == "auditor"
    assert repository.records[payable.id].aging_bracket == "0-30"
    assert repository.records[payable.id].aging_days == 14


def test_generate_is_repeatable(manager, report_builder):
    manager.create(make_simple_input(1_000_000, NOW - timedelta(days=33)), "user_1")
    first = report_builder.generate(as_of=NOW)
    second = report_builder.generate(as_of=NOW)
    assert first.model_dump() == second.model_dump()


def test_report_currency_from_settings(repository, settings, clock, retry):
    settings = settings.model_copy(update={"report_currency": "USD"})
    builder = AgingReportBuilder(repository, settings=settings, clock=clock, retry=retry)
    assert builder.generate().currency == "USD"


def test_store_outage_surfaces(repository, report_builder):
    repository.fail_next_reads = 10**9
    with pytest.raises(StoreUnavailable):
        report_builder.generate()
