# payables/models.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from payables.money import coerce_datetime, coerce_money, round_money


PayableStatus = Literal["pending", "approved", "partially_paid", "paid", "cancelled", "void"]
AgingBracketLabel = Literal["0-30", "31-60", "61-90", "90+"]
PaymentMethod = Literal[
    "cash",
    "check",
    "bank_transfer",
    "wire_transfer",
    "credit_card",
    "debit_card",
    "e_wallet",
    "other",
]

PAYABLE_STATUSES: tuple[str, ...] = (
    "pending",
    "approved",
    "partially_paid",
    "paid",
    "cancelled",
    "void",
)
TERMINAL_STATUSES = frozenset({"paid", "cancelled", "void"})

ALLOWED_TRANSITIONS: Dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "partially_paid", "paid", "cancelled", "void"}),
    "approved": frozenset({"partially_paid", "paid", "cancelled", "void"}),
    "partially_paid": frozenset({"partially_paid", "paid"}),
    "paid": frozenset(),
    "cancelled": frozenset(),
    "void": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class PayableLineItemInput(BaseModel):
    description: str = ""
    quantity: float = 1.0
    unit_price: float = 0.0
    amount: float | None = None

    expense_account_id: str | None = None
    expense_account_number: str | None = None
    expense_account_name: str | None = None

    tax_code: str | None = None
    project_id: str | None = None
    cost_center_id: str | None = None

    @field_validator("quantity", "unit_price", "amount", mode="before")
    @classmethod
    def coerce_amounts(cls, value: Any) -> Any:
        return coerce_money(value)


class PayableLineItem(BaseModel):
    id: str
    line_number: int = Field(ge=1)
    description: str
    quantity: float
    unit_price: float
    amount: float

    expense_account_id: str
    expense_account_number: str
    expense_account_name: str

    tax_code: str | None = None
    project_id: str | None = None
    cost_center_id: str | None = None


class AccountsPayableInput(BaseModel):
    """What a caller supplies to create a vendor invoice."""

    invoice_number: str = ""
    invoice_date: datetime
    due_date: datetime

    vendor_id: str = ""
    vendor_name: str = ""
    vendor_code: str = ""

    currency: str | None = None
    line_items: list[PayableLineItemInput] = []

    subtotal: float = Field(default=0.0, ge=0)
    tax_amount: float = Field(default=0.0, ge=0)
    total_amount: float = Field(ge=0)

    payment_terms: str | None = None
    purchase_order_id: str | None = None
    purchase_order_number: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    notes: str | None = None
    tags: list[str] = []

    @field_validator("invoice_date", "due_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @field_validator("subtotal", "tax_amount", "total_amount", mode="before")
    @classmethod
    def coerce_amounts(cls, value: Any) -> Any:
        return coerce_money(value)


class PaymentInput(BaseModel):
    amount: float
    payment_date: datetime
    payment_method: PaymentMethod = "bank_transfer"

    bank_account_id: str | None = None
    bank_account_name: str | None = None
    reference: str | None = None
    currency: str | None = None
    notes: str | None = None

    # Replays carrying an already-applied key return the record unchanged.
    idempotency_key: str | None = None

    @field_validator("payment_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amounts(cls, value: Any) -> Any:
        return coerce_money(value)


class Payment(BaseModel):
    id: str
    payment_number: str
    amount: float = Field(gt=0)
    payment_date: datetime
    payment_method: PaymentMethod

    bank_account_id: str | None = None
    bank_account_name: str | None = None
    reference: str | None = None
    currency: str

    status: Literal["completed"] = "completed"
    reference_type: Literal["ap"] = "ap"
    reference_id: str

    notes: str | None = None
    idempotency_key: str | None = None

    created_at: datetime
    created_by: str

    @field_validator("payment_date", "created_at", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)


class AccountsPayable(BaseModel):
    id: str
    ap_number: str

    invoice_number: str
    invoice_date: datetime
    due_date: datetime

    vendor_id: str
    vendor_name: str = ""
    vendor_code: str = ""

    currency: str
    line_items: list[PayableLineItem]

    subtotal: float
    tax_amount: float
    total_amount: float
    amount_paid: float = 0.0
    amount_due: float

    status: PayableStatus = "pending"
    aging_days: int = 0
    aging_bracket: AgingBracketLabel = "0-30"

    payments: list[Payment] = []
    last_payment_date: datetime | None = None

    requires_approval: bool = False
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_notes: str | None = None

    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    payment_terms: str | None = None
    purchase_order_id: str | None = None
    purchase_order_number: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    notes: str | None = None
    tags: list[str] = []

    warnings: list[str] = []

    created_at: datetime
    created_by: str
    updated_at: datetime
    updated_by: str

    @field_validator(
        "invoice_date",
        "due_date",
        "last_payment_date",
        "approved_at",
        "cancelled_at",
        "created_at",
        "updated_at",
        mode="before",
    )
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @property
    def payments_total(self) -> float:
        return round_money(sum(p.amount for p in self.payments))


class AgingBracket(BaseModel):
    bracket: AgingBracketLabel
    count: int = 0
    total_amount: float = 0.0
    percentage: float = 0.0


class AgingReport(BaseModel):
    report_date: datetime
    report_type: Literal["payable"] = "payable"
    currency: str

    brackets: list[AgingBracket]
    total_count: int
    total_amount: float

    details: list[AccountsPayable]

    generated_at: datetime
    generated_by: str


class JournalLine(BaseModel):
    account_id: str
    account_number: str
    account_name: str
    debit: float = Field(default=0.0, ge=0)
    credit: float = Field(default=0.0, ge=0)
    currency: str
    description: str = ""


class JournalEntryRequest(BaseModel):
    entry_date: datetime
    description: str
    reference: str
    currency: str
    lines: list[JournalLine] = Field(min_length=2)

    @model_validator(mode="after")
    def check_balanced(self) -> "JournalEntryRequest":
        debit = round_money(sum(line.debit for line in self.lines))
        credit = round_money(sum(line.credit for line in self.lines))
        if debit != credit:
            raise ValueError(f"Journal entry is not balanced (debit {debit} != credit {credit})")
        return self

    @property
    def total_debit(self) -> float:
        return round_money(sum(line.debit for line in self.lines))


class JournalEntryRef(BaseModel):
    id: str
    entry_number: str = ""


class AuditEntry(BaseModel):
    id: str
    ap_id: str
    action: str
    user_id: str
    details: Dict[str, Any] = {}
    timestamp: datetime | None = None
