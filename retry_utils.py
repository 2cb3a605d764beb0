"""Failure classification, backoff delays and a circuit breaker.

Two consumers with different needs:

- the model fallback orchestrator asks classify_error() how to react to a
  failed attempt (abort, next model, retry) and sleeps
  exponential_backoff_delay() between retries;
- the nutrition lookup client retries plain HTTP failures that
  is_retriable_error() accepts, behind a CircuitBreaker.
"""

import asyncio
import os
import random
import sys
import time
from typing import Callable, Optional

from generation_errors import (
    ErrorKind,
    FatalProviderError,
    QuotaExceededError,
    ResponseParseError,
    TransientProviderError,
)

DEFAULT_MAX_RETRIES = int(os.getenv("NUTRITION_MAX_RETRIES", "3"))
DEFAULT_BASE_DELAY_SECONDS = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "1.0"))
DEFAULT_MAX_DELAY_SECONDS = float(os.getenv("RETRY_MAX_DELAY_SECONDS", "30.0"))
DEFAULT_EXPONENTIAL_BASE = 2.0
DEFAULT_JITTER_FACTOR = 0.1

# Plain HTTP lookups
RETRIABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
RETRIABLE_KEYWORDS = ("rate limit", "timeout", "timed out", "connection", "502", "503", "504")

# Model providers
FATAL_STATUS_CODES = frozenset({401, 403})
QUOTA_STATUS_CODES = frozenset({402, 429})
TRANSIENT_STATUS_CODES = frozenset({408, 500, 502, 503, 504})

# litellm / openai exception class names
EXCEPTION_NAME_KINDS = {
    "AuthenticationError": ErrorKind.FATAL,
    "PermissionDeniedError": ErrorKind.FATAL,
    "RateLimitError": ErrorKind.QUOTA,
    "Timeout": ErrorKind.TRANSIENT,
    "APITimeoutError": ErrorKind.TRANSIENT,
    "ServiceUnavailableError": ErrorKind.TRANSIENT,
    "InternalServerError": ErrorKind.TRANSIENT,
    "APIConnectionError": ErrorKind.TRANSIENT,
}

FATAL_KEYWORDS = (
    "401",
    "403",
    "api_key_invalid",
    "api key not valid",
    "invalid api key",
    "unauthorized",
    "permission_denied",
)
QUOTA_KEYWORDS = ("429", "quota", "rate limit", "resource_exhausted")

_TAXONOMY_KINDS = (
    (FatalProviderError, ErrorKind.FATAL),
    (QuotaExceededError, ErrorKind.QUOTA),
    (TransientProviderError, ErrorKind.TRANSIENT),
    (ResponseParseError, ErrorKind.PARSE),
)


def _status_of(exc: BaseException) -> Optional[int]:
    """HTTP status carried by the exception (httpx response, litellm, our fakes)."""
    status = getattr(exc, "status_code", None) or getattr(exc, "http_status", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _message_of(exc: BaseException) -> str:
    try:
        return str(exc).lower()
    except Exception:  # pragma: no cover - exotic __str__
        return ""


def classify_error(exc: BaseException) -> ErrorKind:
    """How the fallback orchestrator should react to a failed model call.

    Checked in order: our own taxonomy, timeouts, the HTTP status, the
    exception class name, then message keywords. Anything unrecognised is
    transient.
    """
    for error_type, kind in _TAXONOMY_KINDS:
        if isinstance(exc, error_type):
            return kind

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TRANSIENT

    status = _status_of(exc)
    if status in FATAL_STATUS_CODES:
        return ErrorKind.FATAL
    if status in QUOTA_STATUS_CODES:
        return ErrorKind.QUOTA
    if status in TRANSIENT_STATUS_CODES:
        return ErrorKind.TRANSIENT

    by_name = EXCEPTION_NAME_KINDS.get(type(exc).__name__)
    if by_name is not None:
        return by_name

    message = _message_of(exc)
    if any(keyword in message for keyword in FATAL_KEYWORDS):
        return ErrorKind.FATAL
    if any(keyword in message for keyword in QUOTA_KEYWORDS):
        return ErrorKind.QUOTA
    return ErrorKind.TRANSIENT


def is_retriable_error(exc: BaseException) -> bool:
    """True for rate limits, 5xx answers and connection trouble on HTTP lookups."""
    status = _status_of(exc)
    if status is not None:
        return status in RETRIABLE_STATUS_CODES
    message = _message_of(exc)
    return any(keyword in message for keyword in RETRIABLE_KEYWORDS)


def exponential_backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
    exponential_base: float = DEFAULT_EXPONENTIAL_BASE,
    jitter_factor: float = DEFAULT_JITTER_FACTOR,
    rng: Optional[random.Random] = None,
) -> float:
    """Seconds to wait before retry number `attempt` (0-indexed).

    min(base_delay * exponential_base ** attempt, max_delay), then spread by
    up to +/- jitter_factor of itself so concurrent days do not retry in lockstep.
    """
    delay = min(base_delay * (exponential_base**attempt), max_delay)
    if jitter_factor:
        delay += delay * jitter_factor * (rng or random).uniform(-1, 1)
    return max(0.0, delay)


class CircuitBreakerOpen(Exception):
    """Requests are blocked until the breaker's cooldown has passed."""


class CircuitBreaker:
    """Stop calling a failing service for a while.

    closed -> open after `failure_threshold` consecutive failures;
    open -> half-open once `recovery_timeout` seconds have passed;
    half-open -> closed on the next success (a failure re-opens it).
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.state = self.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    def remaining_cooldown(self) -> float:
        if self.state != self.OPEN or self.opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - self.opened_at))

    def can_execute(self) -> bool:
        if self.state == self.OPEN:
            if self.remaining_cooldown() > 0:
                return False
            self.state = self.HALF_OPEN
            print(f"   ⚡ Circuit breaker '{self.name}' half-open, letting one request through", file=sys.stderr)
        return True

    def guard(self) -> None:
        """Raise CircuitBreakerOpen instead of returning False."""
        if not self.can_execute():
            raise CircuitBreakerOpen(
                f"circuit breaker '{self.name}' is open "
                f"({self.remaining_cooldown():.0f}s cooldown left)"
            )

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == self.HALF_OPEN or (
            self.state == self.CLOSED and self.failure_count >= self.failure_threshold
        ):
            self.state = self.OPEN
            self.opened_at = self._clock()
            print(
                f"   ⚡ Circuit breaker '{self.name}' opened after {self.failure_count} failures",
                file=sys.stderr,
            )

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            print(f"   ⚡ Circuit breaker '{self.name}' closed again", file=sys.stderr)
        self.state = self.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def reset(self) -> None:
        self.record_success()


_nutrition_circuit_breaker: Optional[CircuitBreaker] = None


def get_nutrition_circuit_breaker() -> CircuitBreaker:
    """Process-wide breaker for the nutrition database."""
    global _nutrition_circuit_breaker
    if _nutrition_circuit_breaker is None:
        _nutrition_circuit_breaker = CircuitBreaker(
            name="nutrition_api",
            failure_threshold=int(os.getenv("NUTRITION_CIRCUIT_FAILURE_THRESHOLD", "5")),
            recovery_timeout=float(os.getenv("NUTRITION_CIRCUIT_RECOVERY_TIMEOUT", "60.0")),
        )
    return _nutrition_circuit_breaker
