from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from google.api_core import retry as retries

from payables.aging import BRACKETS, calculate_aging
from payables.interfaces import PayableRepository
from payables.models import AccountsPayable, AgingBracket, AgingReport
from payables.money import coerce_datetime, round_money, utcnow
from payables.retry import build_retry, call_with_retry
from payables.settings import PayableSettings

logger = logging.getLogger(__name__)

EXCLUDED_STATUSES = frozenset({"paid", "cancelled", "void"})


def _percentage(part: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round_money(part / total * 100)


class AgingReportBuilder:
    """Buckets open payables by age as of a given date.

    Read-only: aging is recomputed for the report and never written back.
    """

    def __init__(
        self,
        repository: PayableRepository,
        settings: Optional[PayableSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        retry: Optional[retries.Retry] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or PayableSettings()
        self._clock = clock or utcnow
        self._retry = retry if retry is not None else build_retry(self._settings)

    def generate(self, as_of: Optional[datetime] = None, generated_by: str = "system") -> AgingReport:
        now = self._clock()
        report_date = coerce_datetime(as_of) or now

        payables = call_with_retry(self._retry, self._repository.list_all)
        open_items = [ap for ap in payables if ap.status not in EXCLUDED_STATUSES]

        counts: Dict[str, int] = {label: 0 for label in BRACKETS}
        totals: Dict[str, float] = {label: 0.0 for label in BRACKETS}
        details: list[AccountsPayable] = []

        for ap in open_items:
            aging = calculate_aging(ap.invoice_date, report_date)
            refreshed = ap.model_copy(
                update={"aging_days": aging.aging_days, "aging_bracket": aging.aging_bracket}
            )
            details.append(refreshed)
            counts[aging.aging_bracket] += 1
            totals[aging.aging_bracket] += ap.amount_due

        total_amount = round_money(sum(totals.values()))
        brackets = [
            AgingBracket(
                bracket=label,
                count=counts[label],
                total_amount=round_money(totals[label]),
                percentage=_percentage(totals[label], total_amount),
            )
            for label in BRACKETS
        ]

        logger.info(
            "Aging report generated",
            extra={"report_date": report_date.isoformat(), "total_count": len(details)},
        )
        return AgingReport(
            report_date=report_date,
            currency=self._settings.report_currency,
            brackets=brackets,
            total_count=len(details),
            total_amount=total_amount,
            details=details,
            generated_at=now,
            generated_by=generated_by,
        )
