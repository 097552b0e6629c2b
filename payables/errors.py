from __future__ import annotations

from typing import Any, Dict


class PayableError(Exception):
    """Base for every failure the payables service reports to its callers.

    ``kind`` is the stable, machine-readable category; ``message`` is meant
    for humans.
    """

    kind = "INTERNAL"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class InvalidInput(PayableError):
    kind = "INVALID_INPUT"


class PayableNotFound(PayableError):
    kind = "NOT_FOUND"


class InvalidOperation(PayableError):
    kind = "INVALID_OPERATION"


class ConflictError(PayableError):
    kind = "CONFLICT"
    retryable = True


class DependencyFailure(PayableError):
    kind = "DEPENDENCY_FAILURE"


class StoreUnavailable(PayableError):
    kind = "UNAVAILABLE"
    retryable = True
