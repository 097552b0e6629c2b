"""Collaborators the lifecycle manager is constructed with.

Firestore and HTTP implementations live in ``firestore_store`` and
``journal_client``; tests substitute in-memory fakes.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol

from payables.models import AccountsPayable, AuditEntry, JournalEntryRef, JournalEntryRequest


# Receives the current record, returns the replacement or None to leave it as is.
Mutation = Callable[[AccountsPayable], Optional[AccountsPayable]]


class PayableRepository(Protocol):
    def get(self, ap_id: str) -> Optional[AccountsPayable]:
        ...

    def list_all(self) -> list[AccountsPayable]:
        ...

    def query(
        self, field: str, value: Any, order_by: str, descending: bool = False
    ) -> list[AccountsPayable]:
        ...

    def save(self, payable: AccountsPayable) -> None:
        """Idempotent upsert keyed by ``payable.id``."""

    def mutate(self, ap_id: str, mutation: Mutation) -> AccountsPayable:
        """Atomic read-modify-write of one record; ``mutation`` may run more than once."""

    def highest_ap_number(self, prefix: str) -> Optional[str]:
        ...

    def advance_sequence(self, key: str, floor: int) -> int:
        """Atomically set the counter to ``max(counter, floor) + 1`` and return it."""

    def reserve_ap_number(self, ap_number: str, ap_id: str) -> bool:
        """Create-if-absent reservation; False when the number is already taken."""


class AuditTrailRecorder(Protocol):
    def record(
        self, ap_id: str, action: str, actor_id: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        ...

    def entries_for(self, ap_id: str) -> list[AuditEntry]:
        ...


class JournalBridge(Protocol):
    def create_journal_entry(self, entry: JournalEntryRequest, actor_id: str) -> JournalEntryRef:
        ...
