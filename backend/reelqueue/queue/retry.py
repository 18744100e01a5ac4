"""
Retry classification and backoff calculation for generation jobs.

Implements signal-based retry logic on the error text surfaced by the
generation backend:
- Transport/availability signals (connection reset, timeout, connection
  refused, 429, 502, 503) -> retry
- Client/request signals (400, 401, 403, 404) -> fail immediately
- Anything else -> retry (unknown failures are retried, not dropped)

The retryable set is checked first, so a message carrying both kinds of
signal is retried.

Backoff formula: 2^(n-1) seconds for the n-th retry (1s, 2s, 4s, ...).
No jitter and no cap.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

BASE_DELAY_MS = 1000

RETRYABLE_SIGNALS: tuple[str, ...] = (
    "connection reset",
    "timeout",
    "connection refused",
    "429",
    "502",
    "503",
)

NON_RETRYABLE_SIGNALS: tuple[str, ...] = (
    "400",
    "401",
    "403",
    "404",
)

# Socket error codes some providers forward verbatim
TRANSPORT_CODE_ALIASES: tuple[str, ...] = (
    "econnreset",
    "etimedout",
    "econnrefused",
)


class ErrorCategory(str, Enum):
    """Error classification for retry decisions."""
    TRANSIENT = "transient"  # transport/availability signal - retry
    CLIENT_ERROR = "client_error"  # 400/401/403/404 - no retry
    CONFIGURATION = "configuration"  # no handler for kind - no retry
    UNKNOWN = "unknown"  # no signal - retry


@dataclass
class RetryDecision:
    """
    Result of retry evaluation.

    Attributes:
        should_retry: Whether the job goes back to the queue
        error_category: Classified error type
        retry_count: Retry count the job will carry after the decision
        delay: Backoff before the job is eligible again (retries only)
        next_scheduled_at: Absolute time of next eligibility (retries only)
        reason: Human-readable explanation
    """
    should_retry: bool
    error_category: ErrorCategory
    retry_count: int
    delay: Optional[timedelta]
    next_scheduled_at: Optional[datetime]
    reason: str


def categorize_error(error_text: Optional[str]) -> ErrorCategory:
    """
    Categorize an error message by the signals it carries.

    Args:
        error_text: String form of the backend error

    Returns:
        ErrorCategory for the error
    """
    if not error_text:
        return ErrorCategory.UNKNOWN

    lowered = error_text.lower()

    for signal in RETRYABLE_SIGNALS + TRANSPORT_CODE_ALIASES:
        if signal in lowered:
            return ErrorCategory.TRANSIENT

    for signal in NON_RETRYABLE_SIGNALS:
        if signal in lowered:
            return ErrorCategory.CLIENT_ERROR

    return ErrorCategory.UNKNOWN


def is_retryable_error(error_text: Optional[str]) -> bool:
    """Return True if a failure with this message should be retried."""
    return categorize_error(error_text) in (
        ErrorCategory.TRANSIENT,
        ErrorCategory.UNKNOWN,
    )


def calculate_backoff(attempt: int) -> timedelta:
    """
    Calculate the delay before a retried job becomes eligible again.

    Args:
        attempt: Retry number, 1-indexed (the retry_count after incrementing)

    Returns:
        2^(attempt-1) seconds

    Raises:
        ValueError: If attempt is less than 1
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return timedelta(milliseconds=(2 ** (attempt - 1)) * BASE_DELAY_MS)


def next_scheduled_at(attempt: int, now: datetime) -> datetime:
    """Absolute time at which the attempt-th retry becomes eligible."""
    return now + calculate_backoff(attempt)


def decide_retry(
    error_text: str,
    retry_count: int,
    max_retries: int,
    now: datetime,
    error_category: Optional[ErrorCategory] = None,
) -> RetryDecision:
    """
    Determine whether a failed job is retried or failed for good.

    Args:
        error_text: String form of the backend error
        retry_count: Retries consumed before this failure
        max_retries: Retry budget of the job
        now: Time of the failure
        error_category: Pre-computed category (skips text classification)

    Returns:
        RetryDecision with the next state's retry values
    """
    category = error_category or categorize_error(error_text)

    if category in (ErrorCategory.CLIENT_ERROR, ErrorCategory.CONFIGURATION):
        return RetryDecision(
            should_retry=False,
            error_category=category,
            retry_count=retry_count,
            delay=None,
            next_scheduled_at=None,
            reason=f"Non-retryable error ({category.value})",
        )

    if retry_count >= max_retries:
        return RetryDecision(
            should_retry=False,
            error_category=category,
            retry_count=retry_count,
            delay=None,
            next_scheduled_at=None,
            reason=f"Max retries ({max_retries}) exhausted",
        )

    attempt = retry_count + 1
    delay = calculate_backoff(attempt)
    return RetryDecision(
        should_retry=True,
        error_category=category,
        retry_count=attempt,
        delay=delay,
        next_scheduled_at=now + delay,
        reason=(
            f"Retryable error ({category.value}) - retry in "
            f"{delay.total_seconds():.0f}s (attempt {attempt}/{max_retries})"
        ),
    )


def log_retry_decision(
    job_id: str,
    tenant_id: str,
    decision: RetryDecision,
) -> None:
    """
    Log retry decision for observability.

    Args:
        job_id: Job identifier
        tenant_id: Tenant identifier
        decision: Retry decision made
    """
    log_extra = {
        "job_id": job_id,
        "tenant_id": tenant_id,
        "error_category": decision.error_category.value,
        "should_retry": decision.should_retry,
        "retry_count": decision.retry_count,
        "reason": decision.reason,
    }

    if decision.next_scheduled_at:
        log_extra["next_scheduled_at"] = decision.next_scheduled_at.isoformat()
        log_extra["delay_seconds"] = decision.delay.total_seconds()

    if decision.should_retry:
        logger.info("Job scheduled for retry", extra=log_extra)
    else:
        logger.warning("Job failed without retry", extra=log_extra)
