from __future__ import annotations

import logging
import re
from typing import Optional

from google.api_core import retry as retries

from payables.errors import ConflictError, InvalidOperation
from payables.interfaces import PayableRepository
from payables.retry import build_retry, call_once, call_with_retry
from payables.settings import PayableSettings

logger = logging.getLogger(__name__)

_AP_NUMBER_RE = re.compile(r"^AP-(\d{4})-(\d+)$")


def ap_prefix(year: int) -> str:
    return f"AP-{year}-"


def format_ap_number(year: int, sequence: int, width: int = 4) -> str:
    return f"{ap_prefix(year)}{str(sequence).zfill(width)}"


def parse_ap_sequence(ap_number: Optional[str]) -> Optional[int]:
    if not ap_number:
        return None
    match = _AP_NUMBER_RE.match(ap_number.strip())
    if not match:
        return None
    return int(match.group(2))


class SequenceAllocator:
    """Issues ``AP-<year>-NNNN`` numbers, unique and increasing within a year.

    The per-year counter document is advanced inside a store transaction, so
    concurrent creations never read the same "last number". The highest
    number already on file is used as a floor, which keeps numbering correct
    for records written before the counter existed. Each issued number is
    then reserved with a create-if-absent write; a taken number is skipped
    and the counter advanced again.
    """

    def __init__(
        self,
        repository: PayableRepository,
        settings: Optional[PayableSettings] = None,
        retry: Optional[retries.Retry] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or PayableSettings()
        self._retry = retry if retry is not None else build_retry(self._settings)

    @property
    def capacity(self) -> int:
        return 10 ** self._settings.sequence_width - 1

    def allocate(self, year: int, owner_id: str = "") -> str:
        prefix = ap_prefix(year)
        attempts = self._settings.sequence_max_attempts

        for attempt in range(1, attempts + 1):
            highest = call_with_retry(self._retry, self._repository.highest_ap_number, prefix)
            floor = parse_ap_sequence(highest) or 0

            value = call_once(self._repository.advance_sequence, prefix.rstrip("-"), floor)
            if value > self.capacity:
                logger.error("AP numbering exhausted for %s (counter=%s)", year, value)
                raise InvalidOperation(
                    f"AP numbering exhausted for {year}: {value} exceeds {self.capacity}"
                )

            ap_number = format_ap_number(year, value, self._settings.sequence_width)
            if call_once(self._repository.reserve_ap_number, ap_number, owner_id):
                return ap_number

            logger.warning(
                "AP number already reserved, allocating again",
                extra={"ap_number": ap_number, "attempt": attempt},
            )

        raise ConflictError(f"Could not allocate a unique AP number for {year} after {attempts} attempts")
