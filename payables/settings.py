from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _get_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value.strip() if value else None


def _env_bool(name: str, default: bool) -> bool:
    value = _get_env(name)
    if value is None:
        return default
    return value.lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    value = _get_env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, value)
        return default


def _env_int(name: str, default: int) -> int:
    value = _get_env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, value)
        return default


class PayableSettings(BaseModel):
    approval_threshold: float = Field(default=10_000_000, ge=0)
    # Blocks payment of pending APs above the threshold until approved.
    require_approval_for_payment: bool = False
    default_currency: str = "IDR"
    report_currency: str = "IDR"

    firestore_database: Optional[str] = None
    payables_collection: str = "accounts_payable"
    sequence_collection: str = "ap_sequences"
    number_collection: str = "ap_numbers"
    audit_collection: str = "ap_audit_trail"

    # seconds
    store_timeout: float = Field(default=10.0, gt=0)
    retry_initial: float = Field(default=0.2, gt=0)
    retry_maximum: float = Field(default=2.0, gt=0)
    retry_deadline: float = Field(default=10.0, gt=0)

    transaction_attempts: int = Field(default=5, ge=1)
    sequence_max_attempts: int = Field(default=5, ge=1)
    sequence_width: int = Field(default=4, ge=1)

    journal_enabled: bool = True
    ap_account_id: str = "accounts_payable_account"
    ap_account_number: str = "2010"
    ap_account_name: str = "Accounts Payable"
    cash_account_id: str = "cash_account"
    cash_account_number: str = "1010"
    cash_account_name: str = "Cash"

    default_expense_account_id: str = "default_expense_account"
    default_expense_account_number: str = "5000"
    default_expense_account_name: str = "General Expense"

    @classmethod
    def from_env(cls) -> "PayableSettings":
        defaults = cls()
        return cls(
            approval_threshold=_env_float("PAYABLES_APPROVAL_THRESHOLD", defaults.approval_threshold),
            require_approval_for_payment=_env_bool(
                "PAYABLES_REQUIRE_APPROVAL_FOR_PAYMENT", defaults.require_approval_for_payment
            ),
            default_currency=_get_env("PAYABLES_DEFAULT_CURRENCY") or defaults.default_currency,
            report_currency=_get_env("PAYABLES_REPORT_CURRENCY") or defaults.report_currency,
            firestore_database=_get_env("FIRESTORE_DATABASE"),
            payables_collection=_get_env("PAYABLES_COLLECTION") or defaults.payables_collection,
            sequence_collection=_get_env("PAYABLES_SEQUENCE_COLLECTION") or defaults.sequence_collection,
            number_collection=_get_env("PAYABLES_NUMBER_COLLECTION") or defaults.number_collection,
            audit_collection=_get_env("PAYABLES_AUDIT_COLLECTION") or defaults.audit_collection,
            store_timeout=_env_float("PAYABLES_STORE_TIMEOUT", defaults.store_timeout),
            retry_initial=_env_float("PAYABLES_RETRY_INITIAL", defaults.retry_initial),
            retry_maximum=_env_float("PAYABLES_RETRY_MAXIMUM", defaults.retry_maximum),
            retry_deadline=_env_float("PAYABLES_RETRY_DEADLINE", defaults.retry_deadline),
            transaction_attempts=_env_int("PAYABLES_TRANSACTION_ATTEMPTS", defaults.transaction_attempts),
            sequence_max_attempts=_env_int("PAYABLES_SEQUENCE_MAX_ATTEMPTS", defaults.sequence_max_attempts),
            sequence_width=_env_int("PAYABLES_SEQUENCE_WIDTH", defaults.sequence_width),
            journal_enabled=_env_bool("JOURNAL_ENABLED", defaults.journal_enabled),
            ap_account_id=_get_env("JOURNAL_AP_ACCOUNT_ID") or defaults.ap_account_id,
            ap_account_number=_get_env("JOURNAL_AP_ACCOUNT_NUMBER") or defaults.ap_account_number,
            ap_account_name=_get_env("JOURNAL_AP_ACCOUNT_NAME") or defaults.ap_account_name,
            cash_account_id=_get_env("JOURNAL_CASH_ACCOUNT_ID") or defaults.cash_account_id,
            cash_account_number=_get_env("JOURNAL_CASH_ACCOUNT_NUMBER") or defaults.cash_account_number,
            cash_account_name=_get_env("JOURNAL_CASH_ACCOUNT_NAME") or defaults.cash_account_name,
            default_expense_account_id=(
                _get_env("PAYABLES_DEFAULT_EXPENSE_ACCOUNT_ID") or defaults.default_expense_account_id
            ),
            default_expense_account_number=(
                _get_env("PAYABLES_DEFAULT_EXPENSE_ACCOUNT_NUMBER")
                or defaults.default_expense_account_number
            ),
            default_expense_account_name=(
                _get_env("PAYABLES_DEFAULT_EXPENSE_ACCOUNT_NAME") or defaults.default_expense_account_name
            ),
        )
