"""In-memory stand-ins for the store, journal and audit collaborators."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
from google.api_core.exceptions import ServiceUnavailable

from payables.errors import PayableNotFound
from payables.lifecycle import PayableLifecycleManager
from payables.models import AuditEntry, JournalEntryRef
from payables.reporting import AgingReportBuilder
from payables.retry import build_retry
from payables.sequence import SequenceAllocator
from payables.settings import PayableSettings

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class InMemoryPayableRepository:
    def __init__(self):
        self.records = {}
        self.counters: Dict[str, int] = {}
        self.reserved: Dict[str, str] = {}
        self.fail_next_reads = 0
        self.fail_next_saves = 0
        self.fail_next_mutations = 0
        # Run each mutation twice, discarding the first result, the way a
        # retried store transaction would.
        self.rerun_mutations = False
        self.save_calls = 0
        self._lock = threading.Lock()

    def _maybe_fail(self, counter: str) -> None:
        with self._lock:
            remaining = getattr(self, counter)
            if remaining > 0:
                setattr(self, counter, remaining - 1)
                raise ServiceUnavailable("store temporarily unavailable")

    def get(self, ap_id):
        self._maybe_fail("fail_next_reads")
        with self._lock:
            record = self.records.get(ap_id)
            return record.model_copy(deep=True) if record else None

    def list_all(self):
        self._maybe_fail("fail_next_reads")
        with self._lock:
            items = [r.model_copy(deep=True) for r in self.records.values()]
        return sorted(items, key=lambda r: r.invoice_date, reverse=True)

    def query(self, field, value, order_by, descending=False):
        self._maybe_fail("fail_next_reads")
        with self._lock:
            items = [r.model_copy(deep=True) for r in self.records.values() if getattr(r, field) == value]
        return sorted(items, key=lambda r: getattr(r, order_by), reverse=descending)

    def save(self, payable):
        self.save_calls += 1
        self._maybe_fail("fail_next_saves")
        with self._lock:
            self.records[payable.id] = payable.model_copy(deep=True)

    def mutate(self, ap_id, mutation):
        self._maybe_fail("fail_next_mutations")
        with self._lock:
            current = self.records.get(ap_id)
            if current is None:
                raise PayableNotFound(f"Accounts payable not found: {ap_id}")
            if self.rerun_mutations:
                mutation(current.model_copy(deep=True))
            updated = mutation(current.model_copy(deep=True))
            if updated is None:
                return current.model_copy(deep=True)
            self.records[ap_id] = updated.model_copy(deep=True)
            return updated

    def highest_ap_number(self, prefix):
        self._maybe_fail("fail_next_reads")
        with self._lock:
            numbers = [r.ap_number for r in self.records.values() if r.ap_number.startswith(prefix)]
        return max(numbers) if numbers else None

    def advance_sequence(self, key, floor):
        with self._lock:
            value = max(self.counters.get(key, 0), floor) + 1
            self.counters[key] = value
            return value

    def reserve_ap_number(self, ap_number, ap_id):
        with self._lock:
            if ap_number in self.reserved:
                return False
            self.reserved[ap_number] = ap_id
            return True


class RecordingJournal:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.entries = []

    def create_journal_entry(self, entry, actor_id):
        if self.fail:
            raise RuntimeError("journal service down")
        self.entries.append((entry, actor_id))
        n = len(self.entries)
        return JournalEntryRef(id=f"je_{n}", entry_number=f"JE-2025-{n:04d}")


class RecordingAudit:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.entries = []

    def record(self, ap_id, action, actor_id, details: Optional[Dict[str, Any]] = None):
        if self.fail:
            raise RuntimeError("audit store down")
        self.entries.append(
            AuditEntry(
                id=f"audit_{len(self.entries) + 1}",
                ap_id=ap_id,
                action=action,
                user_id=actor_id,
                details=dict(details or {}),
                timestamp=NOW,
            )
        )

    def entries_for(self, ap_id):
        return [e for e in self.entries if e.ap_id == ap_id]

    def actions(self):
        return [e.action for e in self.entries]


def make_input(**overrides):
    data = {
        "invoice_number": "INV-2025-001",
        "invoice_date": (NOW - timedelta(days=14)).isoformat(),
        "due_date": (NOW + timedelta(days=16)).isoformat(),
        "vendor_id": "vendor_sumber",
        "vendor_name": "PT Sumber Makmur",
        "vendor_code": "SUP-001",
        "line_items": [
            {"description": "Office paper", "quantity": 10, "unit_price": 100_000},
        ],
        "subtotal": 1_000_000,
        "tax_amount": 110_000,
        "total_amount": 1_110_000,
    }
    data.update(overrides)
    return data


def make_simple_input(total, invoice_date=None, **overrides):
    """Single-line invoice whose subtotal equals ``total``."""
    data = make_input(
        line_items=[{"description": "Services", "quantity": 1, "unit_price": total}],
        subtotal=total,
        tax_amount=0,
        total_amount=total,
    )
    if invoice_date is not None:
        data["invoice_date"] = invoice_date.isoformat()
    data.update(overrides)
    return data


@pytest.fixture
def settings():
    return PayableSettings(retry_initial=0.001, retry_maximum=0.01, retry_deadline=0.5)


@pytest.fixture
def repository():
    return InMemoryPayableRepository()


@pytest.fixture
def journal():
    return RecordingJournal()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def retry(settings):
    return build_retry(settings)


@pytest.fixture
def allocator(repository, settings, retry):
    return SequenceAllocator(repository, settings, retry)


@pytest.fixture
def manager(repository, allocator, journal, audit, settings, clock, retry):
    return PayableLifecycleManager(
        repository,
        allocator=allocator,
        journal=journal,
        audit=audit,
        settings=settings,
        clock=clock,
        retry=retry,
    )


@pytest.fixture
def report_builder(repository, settings, clock, retry):
    return AgingReportBuilder(repository, settings=settings, clock=clock, retry=retry)
