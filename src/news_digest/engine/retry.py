"""Retry policy for collaborator calls and failure classification."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from news_digest.engine.collaborators import (
    CallBudgetExhaustedError,
    EmptyResultError,
    RateLimitedError,
    TransientCollaboratorError,
)
from news_digest.engine.models import FailureReason

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Exponential backoff with full jitter.

    ``max_attempts`` counts the first call, so 1 means "no retries".
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0

    def compute_delay(
        self,
        *,
        retry_number: int,
        retry_after: float | None = None,
        rng: random.Random | None = None,
    ) -> float:
        max_delay = min(
            self.max_delay_seconds,
            self.base_delay_seconds * (2 ** max(retry_number - 1, 0)),
        )
        delay = (rng or random).uniform(0, max_delay)
        if retry_after is not None:
            delay = max(delay, min(retry_after, self.max_delay_seconds))
        return delay


def call_with_retry(
    func: Callable[[], T],
    *,
    policy: RetryPolicy,
    operation: str,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[], None] | None = None,
) -> T:
    """Call ``func`` until it succeeds, fails permanently, or attempts run out.

    ``on_attempt`` runs before every attempt; the pipeline uses it to meter
    outbound calls against the tick budget.
    """

    attempt = 0
    while True:
        attempt += 1
        if on_attempt is not None:
            on_attempt()
        try:
            return func()
        except Exception as error:
            if not is_retryable(error) or attempt >= policy.max_attempts:
                raise
            delay = policy.compute_delay(
                retry_number=attempt,
                retry_after=retry_after_seconds(error),
            )
            logger.info(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                operation,
                attempt,
                policy.max_attempts,
                error,
                delay,
            )
            sleep(delay)


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, TransientCollaboratorError | httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == HTTP_TOO_MANY_REQUESTS or status >= HTTP_SERVER_ERROR
    return False


def retry_after_seconds(error: BaseException) -> float | None:
    if isinstance(error, RateLimitedError):
        return error.retry_after
    if isinstance(error, httpx.HTTPStatusError):
        return parse_retry_after(error.response.headers.get("Retry-After"))
    return None


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_failure(error: BaseException) -> FailureReason:
    """Map an exception to the item failure reason stored with the item."""

    if isinstance(error, RateLimitedError | CallBudgetExhaustedError):
        return FailureReason.RATE_LIMIT
    if isinstance(error, EmptyResultError):
        return FailureReason.EMPTY_RESULT
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code == HTTP_TOO_MANY_REQUESTS:
            return FailureReason.RATE_LIMIT
        return FailureReason.NETWORK
    if isinstance(error, TransientCollaboratorError | httpx.TransportError):
        return FailureReason.NETWORK
    return FailureReason.UNKNOWN
