"""Retry handling for the HTTP calls made to GitHub and the NuGet gallery."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import requests

T = TypeVar("T")

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


def status_code_of(exc: BaseException) -> int | None:
    response = getattr(exc, "response", None)
    return None if response is None else response.status_code


def _quota_exhausted(response: requests.Response | None) -> bool:
    # GitHub answers 403 with X-RateLimit-Remaining: 0 once the hourly quota is spent
    if response is None:
        return False
    return str(response.headers.get("X-RateLimit-Remaining", "")).strip() == "0"


def is_retryable_http_exception(
    exc: BaseException,
    retry_on_429: bool = True,
    retry_on_403: bool = False,
) -> bool:
    """True for failures worth another attempt.

    Transport errors and 5xx responses always qualify. A 429 qualifies unless
    ``retry_on_429`` is off; a 403 qualifies when ``retry_on_403`` is on or when
    it reports an exhausted GitHub quota.
    """
    if isinstance(exc, TRANSPORT_ERRORS):
        return True
    if not isinstance(exc, requests.exceptions.HTTPError):
        return False
    status = status_code_of(exc)
    if status is None:
        return False
    if status >= 500:
        return True
    if status == 429:
        return retry_on_429
    if status == 403:
        return retry_on_403 or _quota_exhausted(exc.response)
    return False


def retry_after_seconds(exc: BaseException, *, now: float | None = None) -> float | None:
    """Delay requested by the server through ``Retry-After`` or ``X-RateLimit-Reset``."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    headers = response.headers
    try:
        if headers.get("Retry-After"):
            return max(0.0, float(headers["Retry-After"]))
        if headers.get("X-RateLimit-Reset") and _quota_exhausted(response):
            current = time.time() if now is None else now
            return max(0.0, float(headers["X-RateLimit-Reset"]) - current)
    except ValueError:
        return None
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to call, and how long to wait between calls.

    The wait before retry ``n`` (1-based) is ``backoff_base ** (n - 1)``
    seconds unless the server asked for a specific delay; either is capped at
    ``backoff_max``.
    """

    max_attempts: int = 3
    backoff_base: float = 2.0
    backoff_max: float = 60.0
    retry_on_429: bool = True
    retry_on_403: bool = False

    def should_retry(self, exc: BaseException) -> bool:
        return is_retryable_http_exception(exc, retry_on_429=self.retry_on_429, retry_on_403=self.retry_on_403)

    def delay(self, retry: int, exc: BaseException) -> float:
        requested = retry_after_seconds(exc)
        wait = requested if requested is not None else self.backoff_base ** (retry - 1)
        return min(wait, self.backoff_max)


def with_retries(
    fn: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds, fails for good, or ``policy`` runs out of attempts.

    The last exception propagates unchanged.
    """
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt == attempts or not policy.should_retry(exc):
                raise
            if on_retry is not None:
                on_retry(attempt, exc)
            wait = policy.delay(attempt, exc)
            logger.debug("Retrying in %.1fs after attempt %d: %s", wait, attempt, exc)
            sleep(wait)
    raise RuntimeError("unreachable")
