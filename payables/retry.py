from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from google.api_core import exceptions as core_exceptions
from google.api_core import retry as retries

from payables.errors import StoreUnavailable
from payables.settings import PayableSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that say nothing about the request itself and are safe to repeat
# for reads and idempotent upserts.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    core_exceptions.ServiceUnavailable,
    core_exceptions.DeadlineExceeded,
    core_exceptions.InternalServerError,
    core_exceptions.TooManyRequests,
)


def _log_retry(exc: Exception) -> None:
    logger.info("Transient store error, retrying: %s", exc)


def build_retry(settings: Optional[PayableSettings] = None) -> retries.Retry:
    settings = settings or PayableSettings()
    return retries.Retry(
        predicate=retries.if_exception_type(*TRANSIENT_ERRORS),
        initial=settings.retry_initial,
        maximum=settings.retry_maximum,
        multiplier=2.0,
        timeout=settings.retry_deadline,
        on_error=_log_retry,
    )


def call_with_retry(policy: Optional[retries.Retry], func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run an idempotent store call under ``policy``.

    Exhausted retries and transient errors surface as ``StoreUnavailable`` so
    callers see one retryable error kind whatever the backend raised.
    """
    wrapped = policy(func) if policy is not None else func
    try:
        return wrapped(*args, **kwargs)
    except core_exceptions.RetryError as exc:
        raise StoreUnavailable(f"Store unavailable after retries: {exc.cause or exc}") from exc
    except TRANSIENT_ERRORS as exc:
        raise StoreUnavailable(f"Store unavailable: {exc}") from exc


def call_once(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a non-idempotent store call exactly once, translating transient errors."""
    return call_with_retry(None, func, *args, **kwargs)
