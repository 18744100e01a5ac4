"""
Generation queue core: priority, retry policy, backend registry, dispatcher.
"""

from reelqueue.queue.priority import resolve_priority, TIER_PRIORITY, UNKNOWN_TIER_PRIORITY
from reelqueue.queue.retry import (
    ErrorCategory,
    RetryDecision,
    categorize_error,
    is_retryable_error,
    calculate_backoff,
    next_scheduled_at,
    decide_retry,
)
from reelqueue.queue.backend import (
    GenerationHandler,
    HandlerRegistry,
    GenerationBackend,
    build_generation_backend,
)
from reelqueue.queue.dispatcher import (
    GenerationJobDispatcher,
    QueuedJob,
    run_scheduling_pass,
)

__all__ = [
    "resolve_priority",
    "TIER_PRIORITY",
    "UNKNOWN_TIER_PRIORITY",
    "ErrorCategory",
    "RetryDecision",
    "categorize_error",
    "is_retryable_error",
    "calculate_backoff",
    "next_scheduled_at",
    "decide_retry",
    "GenerationHandler",
    "HandlerRegistry",
    "GenerationBackend",
    "build_generation_backend",
    "GenerationJobDispatcher",
    "QueuedJob",
    "run_scheduling_pass",
]
