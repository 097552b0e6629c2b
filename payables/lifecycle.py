"""Vendor-invoice lifecycle: create, approve, pay, cancel/void.

The manager is stateless; every collaborator is injected. The AP record is the
source of truth. Journal posting and audit entries are best-effort side effects
that run after the record is committed: their failures are logged and never
undo or fail the operation that triggered them.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from google.api_core import retry as retries
from pydantic import ValidationError

from payables.aging import calculate_aging
from payables.errors import InvalidInput, InvalidOperation, PayableNotFound
from payables.interfaces import AuditTrailRecorder, JournalBridge, PayableRepository
from payables.models import (
    PAYABLE_STATUSES,
    TERMINAL_STATUSES,
    AccountsPayable,
    AccountsPayableInput,
    AuditEntry,
    JournalEntryRef,
    JournalEntryRequest,
    JournalLine,
    PayableLineItem,
    PayableLineItemInput,
    Payment,
    PaymentInput,
    can_transition,
)
from payables.money import approx_equal, is_settled, round_money, utcnow
from payables.retry import build_retry, call_once, call_with_retry
from payables.sequence import SequenceAllocator
from payables.settings import PayableSettings

logger = logging.getLogger(__name__)

INVOICE_NUMBER_MAX_LENGTH = 50

PayableInputLike = Union[AccountsPayableInput, Mapping[str, Any]]
PaymentInputLike = Union[PaymentInput, Mapping[str, Any]]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _payment_number(now: datetime) -> str:
    return f"PAY-{now:%Y%m%d%H%M%S%f}-{uuid.uuid4().hex[:4].upper()}"


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


class PayableLifecycleManager:
    def __init__(
        self,
        repository: PayableRepository,
        allocator: Optional[SequenceAllocator] = None,
        journal: Optional[JournalBridge] = None,
        audit: Optional[AuditTrailRecorder] = None,
        settings: Optional[PayableSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        retry: Optional[retries.Retry] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or PayableSettings()
        self._retry = retry if retry is not None else build_retry(self._settings)
        self._allocator = allocator or SequenceAllocator(repository, self._settings, self._retry)
        self._journal = journal
        self._audit = audit
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, ap_id: str) -> AccountsPayable:
        payable = call_with_retry(self._retry, self._repository.get, ap_id)
        if payable is None:
            raise PayableNotFound(f"Accounts payable not found: {ap_id}")
        return payable

    def list_all(self) -> list[AccountsPayable]:
        return call_with_retry(self._retry, self._repository.list_all)

    def list_by_status(self, status: str) -> list[AccountsPayable]:
        if status not in PAYABLE_STATUSES:
            raise InvalidInput(f"Unknown payable status: {status}")
        return call_with_retry(self._retry, self._repository.query, "status", status, "due_date")

    def list_by_vendor(self, vendor_id: str) -> list[AccountsPayable]:
        if not vendor_id:
            raise InvalidInput("Vendor ID is required")
        return call_with_retry(
            self._retry, self._repository.query, "vendor_id", vendor_id, "invoice_date", True
        )

    def audit_trail(self, ap_id: str) -> list[AuditEntry]:
        if self._audit is None:
            return []
        return call_with_retry(self._retry, self._audit.entries_for, ap_id)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, data: PayableInputLike, actor_id: str) -> AccountsPayable:
        request = self._coerce(AccountsPayableInput, data)
        self._validate_new(request)

        now = self._clock()
        ap_id = _new_id("ap")
        ap_number = self._allocator.allocate(now.year, ap_id)
        aging = calculate_aging(request.invoice_date, now)

        line_items = [
            self._enrich_line(line, index) for index, line in enumerate(request.line_items, start=1)
        ]
        total_amount = round_money(request.total_amount)

        fields = request.model_dump(exclude={"line_items"})
        fields.update(
            id=ap_id,
            ap_number=ap_number,
            currency=request.currency or self._settings.default_currency,
            line_items=line_items,
            subtotal=round_money(request.subtotal),
            tax_amount=round_money(request.tax_amount),
            total_amount=total_amount,
            amount_paid=0.0,
            amount_due=total_amount,
            status="pending",
            aging_days=aging.aging_days,
            aging_bracket=aging.aging_bracket,
            payments=[],
            requires_approval=total_amount > self._settings.approval_threshold,
            warnings=self._reconciliation_warnings(request, line_items),
            created_at=now,
            created_by=actor_id,
            updated_at=now,
            updated_by=actor_id,
        )
        payable = AccountsPayable(**fields)

        # Pre-generated id makes the write an idempotent upsert, safe to retry.
        call_with_retry(self._retry, self._repository.save, payable)

        self._record_audit(
            ap_id,
            "ap_created",
            actor_id,
            {
                "ap_number": ap_number,
                "vendor_name": payable.vendor_name,
                "total_amount": payable.total_amount,
            },
        )
        for warning in payable.warnings:
            logger.warning("%s: %s", ap_number, warning)
        logger.info(
            "AP created",
            extra={"ap_id": ap_id, "ap_number": ap_number, "total_amount": total_amount},
        )
        return payable

    def _validate_new(self, request: AccountsPayableInput) -> None:
        invoice_number = (request.invoice_number or "").strip()
        if not invoice_number or len(invoice_number) > INVOICE_NUMBER_MAX_LENGTH:
            raise InvalidInput(
                f"Invoice number is required (1-{INVOICE_NUMBER_MAX_LENGTH} characters)"
            )
        if not (request.vendor_id or "").strip():
            raise InvalidInput("Vendor ID is required")
        if not request.line_items:
            raise InvalidInput("At least one line item is required")

    def _enrich_line(self, line: PayableLineItemInput, line_number: int) -> PayableLineItem:
        amount = line.amount
        if amount is None:
            amount = line.quantity * line.unit_price
        return PayableLineItem(
            id=f"line_{line_number}",
            line_number=line_number,
            description=line.description,
            quantity=line.quantity,
            unit_price=line.unit_price,
            amount=round_money(amount),
            expense_account_id=line.expense_account_id or self._settings.default_expense_account_id,
            expense_account_number=line.expense_account_number
            or self._settings.default_expense_account_number,
            expense_account_name=line.expense_account_name
            or self._settings.default_expense_account_name,
            tax_code=line.tax_code,
            project_id=line.project_id,
            cost_center_id=line.cost_center_id,
        )

    @staticmethod
    def _reconciliation_warnings(
        request: AccountsPayableInput, line_items: list[PayableLineItem]
    ) -> list[str]:
        warnings: list[str] = []
        if not approx_equal(request.subtotal + request.tax_amount, request.total_amount):
            warnings.append("Totals do not reconcile (subtotal + tax != total)")
        line_total = sum(line.amount for line in line_items)
        if request.subtotal and not approx_equal(line_total, request.subtotal):
            warnings.append("Line items do not sum to subtotal")
        return warnings

    # ------------------------------------------------------------------
    # Approve
    # ------------------------------------------------------------------

    def approve(self, ap_id: str, actor_id: str, notes: Optional[str] = None) -> AccountsPayable:
        def _approve(current: AccountsPayable) -> AccountsPayable:
            self._ensure_transition(current, "approved", "approve")
            now = self._clock()
            return current.model_copy(
                update={
                    "status": "approved",
                    "approved_by": actor_id,
                    "approved_at": now,
                    "approval_notes": notes or "",
                    "updated_at": now,
                    "updated_by": actor_id,
                }
            )

        updated = call_once(self._repository.mutate, ap_id, _approve)
        self._record_audit(ap_id, "ap_approved", actor_id, {"notes": notes})
        logger.info("AP approved", extra={"ap_id": ap_id, "ap_number": updated.ap_number})
        return updated

    # ------------------------------------------------------------------
    # Pay
    # ------------------------------------------------------------------

    def record_payment(
        self, ap_id: str, payment: PaymentInputLike, actor_id: str
    ) -> AccountsPayable:
        request = self._coerce(PaymentInput, payment)
        amount = round_money(request.amount)
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidInput("Payment amount must be greater than zero")

        now = self._clock()
        payment_id = _new_id("pay")
        payment_number = _payment_number(now)
        applied: Dict[str, Any] = {}

        def _apply(current: AccountsPayable) -> Optional[AccountsPayable]:
            # Runs again on transaction retry; everything is derived from ``current``.
            applied.clear()
            key = request.idempotency_key
            if key and any(p.idempotency_key == key for p in current.payments):
                applied["replayed"] = True
                return None

            if current.status in TERMINAL_STATUSES:
                raise InvalidOperation(f"Cannot record payment for AP with status {current.status}")
            if (
                self._settings.require_approval_for_payment
                and current.status == "pending"
                and current.requires_approval
            ):
                raise InvalidOperation(
                    f"Cannot record payment for AP with status {current.status}: approval required"
                )
            amount_due = round_money(current.amount_due)
            if amount > amount_due:
                raise InvalidInput(
                    f"Payment amount ({amount:.2f}) exceeds amount due ({amount_due:.2f})"
                )

            amount_paid = round_money(current.amount_paid + amount)
            remaining = max(round_money(current.total_amount - amount_paid), 0.0)
            status = "paid" if is_settled(remaining) else "partially_paid"
            self._ensure_transition(current, status, "record payment for")

            recorded = Payment(
                id=payment_id,
                payment_number=payment_number,
                amount=amount,
                payment_date=request.payment_date,
                payment_method=request.payment_method,
                bank_account_id=request.bank_account_id,
                bank_account_name=request.bank_account_name,
                reference=request.reference,
                currency=request.currency or current.currency,
                reference_id=current.id,
                notes=request.notes,
                idempotency_key=key,
                created_at=now,
                created_by=actor_id,
            )
            applied["payment"] = recorded
            return current.model_copy(
                update={
                    "amount_paid": amount_paid,
                    "amount_due": remaining,
                    "status": status,
                    "payments": [*current.payments, recorded],
                    "last_payment_date": request.payment_date,
                    "updated_at": now,
                    "updated_by": actor_id,
                }
            )

        updated = call_once(self._repository.mutate, ap_id, _apply)

        if applied.get("replayed"):
            logger.info(
                "Duplicate payment replay ignored",
                extra={"ap_id": ap_id, "idempotency_key": request.idempotency_key},
            )
            return updated

        recorded: Payment = applied["payment"]
        journal_ref = self._post_payment_journal(updated, recorded, actor_id)
        self._record_audit(
            ap_id,
            "payment_recorded",
            actor_id,
            {
                "payment_amount": recorded.amount,
                "payment_number": recorded.payment_number,
                "journal_entry_id": journal_ref.id if journal_ref else None,
            },
        )
        logger.info(
            "Payment recorded",
            extra={"ap_id": ap_id, "payment_id": recorded.id, "status": updated.status},
        )
        return updated

    def build_payment_journal_entry(
        self, payable: AccountsPayable, payment: Payment
    ) -> JournalEntryRequest:
        settings = self._settings
        return JournalEntryRequest(
            entry_date=payment.payment_date,
            description=f"Payment for {payable.ap_number} - {payable.vendor_name}",
            reference=payable.ap_number,
            currency=payable.currency,
            lines=[
                JournalLine(
                    account_id=settings.ap_account_id,
                    account_number=settings.ap_account_number,
                    account_name=settings.ap_account_name,
                    debit=payment.amount,
                    credit=0.0,
                    currency=payable.currency,
                    description=f"Payment to {payable.vendor_name}",
                ),
                JournalLine(
                    account_id=payment.bank_account_id or settings.cash_account_id,
                    account_number=settings.cash_account_number,
                    account_name=payment.bank_account_name or settings.cash_account_name,
                    debit=0.0,
                    credit=payment.amount,
                    currency=payable.currency,
                    description=f"Payment via {payment.payment_method}",
                ),
            ],
        )

    def _post_payment_journal(
        self, payable: AccountsPayable, payment: Payment, actor_id: str
    ) -> Optional[JournalEntryRef]:
        if self._journal is None or not self._settings.journal_enabled:
            return None
        try:
            entry = self.build_payment_journal_entry(payable, payment)
            return self._journal.create_journal_entry(entry, actor_id)
        except Exception as exc:
            logger.warning(
                "Failed to create journal entry for %s: %s",
                payable.ap_number,
                exc,
                extra={"ap_id": payable.id, "payment_id": payment.id},
            )
            return None

    # ------------------------------------------------------------------
    # Cancel / void
    # ------------------------------------------------------------------

    def cancel(self, ap_id: str, actor_id: str, reason: Optional[str] = None) -> AccountsPayable:
        return self._close(ap_id, actor_id, reason, "cancelled", "cancel", "ap_cancelled")

    def void(self, ap_id: str, actor_id: str, reason: Optional[str] = None) -> AccountsPayable:
        return self._close(ap_id, actor_id, reason, "void", "void", "ap_voided")

    def _close(
        self,
        ap_id: str,
        actor_id: str,
        reason: Optional[str],
        target: str,
        verb: str,
        action: str,
    ) -> AccountsPayable:
        def _apply(current: AccountsPayable) -> AccountsPayable:
            self._ensure_transition(current, target, verb)
            if current.payments or current.amount_paid > 0:
                raise InvalidOperation(f"Cannot {verb} AP {current.ap_number} with recorded payments")
            now = self._clock()
            return current.model_copy(
                update={
                    "status": target,
                    "cancelled_by": actor_id,
                    "cancelled_at": now,
                    "cancellation_reason": reason or "",
                    "updated_at": now,
                    "updated_by": actor_id,
                }
            )

        updated = call_once(self._repository.mutate, ap_id, _apply)
        self._record_audit(ap_id, action, actor_id, {"reason": reason})
        logger.info("AP %s", target, extra={"ap_id": ap_id, "ap_number": updated.ap_number})
        return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise InvalidInput(_describe_validation_error(exc)) from exc

    @staticmethod
    def _ensure_transition(current: AccountsPayable, target: str, verb: str) -> None:
        if not can_transition(current.status, target):
            raise InvalidOperation(f"Cannot {verb} AP with status {current.status}")

    def _record_audit(
        self, ap_id: str, action: str, actor_id: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        if self._audit is None:
            return
        try:
            self._audit.record(ap_id, action, actor_id, details)
        except Exception as exc:
            logger.warning(
                "Failed to add audit entry: %s", exc, extra={"ap_id": ap_id, "action": action}
            )
