from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from google.api_core.exceptions import Aborted, AlreadyExists
from google.cloud import firestore

from payables.errors import ConflictError, PayableError, PayableNotFound
from payables.interfaces import Mutation
from payables.models import AccountsPayable, AuditEntry
from payables.settings import PayableSettings

logger = logging.getLogger(__name__)

# Upper bound for prefix range queries.
_PREFIX_END = "\uf8ff"


def _get_client(settings: PayableSettings) -> firestore.Client:
    return firestore.Client(database=settings.firestore_database)


def _normalize_doc_id(value: str) -> str:
    return value.strip().replace("/", "_")


def _payable_from_snapshot(snapshot: Any) -> AccountsPayable:
    data = snapshot.to_dict() or {}
    data.setdefault("id", snapshot.id)
    data.setdefault("payments", [])
    return AccountsPayable.model_validate(data)


def _to_storage(payable: AccountsPayable) -> Dict[str, Any]:
    return payable.model_dump()


def _is_contention(exc: Exception) -> bool:
    # The transaction helper gives up with a ValueError chained from the last Aborted.
    return isinstance(exc, Aborted) or isinstance(exc.__cause__, Aborted)


class FirestorePayableRepository:
    def __init__(self, settings: PayableSettings, client: Optional[firestore.Client] = None) -> None:
        self._settings = settings
        self._client = client or _get_client(settings)
        self._timeout = settings.store_timeout

    @property
    def client(self) -> firestore.Client:
        return self._client

    def _payables(self):
        return self._client.collection(self._settings.payables_collection)

    def get(self, ap_id: str) -> Optional[AccountsPayable]:
        snapshot = self._payables().document(ap_id).get(timeout=self._timeout)
        if not snapshot.exists:
            return None
        return _payable_from_snapshot(snapshot)

    def list_all(self) -> list[AccountsPayable]:
        query = self._payables().order_by("invoice_date", direction=firestore.Query.DESCENDING)
        return [_payable_from_snapshot(doc) for doc in query.stream(timeout=self._timeout)]

    def query(
        self, field: str, value: Any, order_by: str, descending: bool = False
    ) -> list[AccountsPayable]:
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        query = self._payables().where(field, "==", value).order_by(order_by, direction=direction)
        return [_payable_from_snapshot(doc) for doc in query.stream(timeout=self._timeout)]

    def save(self, payable: AccountsPayable) -> None:
        self._payables().document(payable.id).set(_to_storage(payable), timeout=self._timeout)

    def mutate(self, ap_id: str, mutation: Mutation) -> AccountsPayable:
        doc_ref = self._payables().document(ap_id)
        transaction = self._client.transaction(max_attempts=self._settings.transaction_attempts)

        @firestore.transactional
        def _apply(transaction, ref) -> AccountsPayable:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise PayableNotFound(f"Accounts payable not found: {ap_id}")
            current = _payable_from_snapshot(snapshot)
            updated = mutation(current)
            if updated is None:
                return current
            transaction.set(ref, _to_storage(updated))
            return updated

        try:
            return _apply(transaction, doc_ref)
        except (Aborted, ValueError) as exc:
            if not _is_contention(exc):
                logger.exception("Stored payable %s could not be updated", ap_id)
                raise PayableError(f"Stored payable {ap_id} is invalid: {exc}") from exc
            logger.warning("Transaction on %s did not commit: %s", ap_id, exc)
            raise ConflictError(f"Concurrent update on {ap_id} could not be applied: {exc}") from exc

    def highest_ap_number(self, prefix: str) -> Optional[str]:
        query = (
            self._payables()
            .where("ap_number", ">=", prefix)
            .where("ap_number", "<", prefix + _PREFIX_END)
            .order_by("ap_number", direction=firestore.Query.DESCENDING)
            .limit(1)
        )
        for doc in query.stream(timeout=self._timeout):
            data = doc.to_dict() or {}
            return data.get("ap_number")
        return None

    def advance_sequence(self, key: str, floor: int) -> int:
        col = self._client.collection(self._settings.sequence_collection)
        doc_ref = col.document(_normalize_doc_id(key))
        transaction = self._client.transaction(max_attempts=self._settings.transaction_attempts)

        @firestore.transactional
        def _advance(transaction, ref) -> int:
            snapshot = ref.get(transaction=transaction)
            data = snapshot.to_dict() or {}
            current = int(data.get("value") or 0)
            value = max(current, floor) + 1
            transaction.set(
                ref,
                {"value": value, "updated_at": firestore.SERVER_TIMESTAMP},
                merge=True,
            )
            return value

        try:
            return _advance(transaction, doc_ref)
        except (Aborted, ValueError) as exc:
            if not _is_contention(exc):
                raise
            logger.warning("Sequence %s did not advance: %s", key, exc)
            raise ConflictError(f"Sequence {key} is contended: {exc}") from exc

    def reserve_ap_number(self, ap_number: str, ap_id: str) -> bool:
        col = self._client.collection(self._settings.number_collection)
        payload = {
            "ap_number": ap_number,
            "ap_id": ap_id,
            "created_at": firestore.SERVER_TIMESTAMP,
        }
        try:
            col.document(_normalize_doc_id(ap_number)).create(payload, timeout=self._timeout)
            return True
        except AlreadyExists:
            return False


class FirestoreAuditTrail:
    def __init__(self, settings: PayableSettings, client: Optional[firestore.Client] = None) -> None:
        self._settings = settings
        self._client = client or _get_client(settings)
        self._timeout = settings.store_timeout

    def _collection(self):
        return self._client.collection(self._settings.audit_collection)

    def record(
        self, ap_id: str, action: str, actor_id: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        audit_id = f"audit_{uuid.uuid4().hex}"
        self._collection().document(audit_id).set(
            {
                "id": audit_id,
                "ap_id": ap_id,
                "action": action,
                "user_id": actor_id,
                "details": dict(details or {}),
                "timestamp": firestore.SERVER_TIMESTAMP,
            },
            timeout=self._timeout,
        )

    def entries_for(self, ap_id: str) -> list[AuditEntry]:
        query = self._collection().where("ap_id", "==", ap_id).order_by("timestamp")
        results: list[AuditEntry] = []
        for doc in query.stream(timeout=self._timeout):
            data = doc.to_dict() or {}
            data.setdefault("id", doc.id)
            results.append(AuditEntry.model_validate(data))
        return results


def get_client_info(settings: PayableSettings) -> Dict[str, Any]:
    client = _get_client(settings)
    return {
        "project": client.project,
        "database": settings.firestore_database or "(default)",
        "collection": settings.payables_collection,
    }
