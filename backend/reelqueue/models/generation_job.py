"""
Generation Job model for the asynchronous generation queue.

A GenerationJob is one queued request to a third-party generation provider
(talking-head video, text-to-speech, image generation, transcription).
Jobs are created by the enqueue API and mutated exclusively by the
GenerationJobDispatcher during a scheduling pass.

Lifecycle:
    pending    -> processing            (claimed)
    retrying   -> processing            (scheduled_at elapsed, claimed)
    processing -> completed             (backend success)       [terminal]
    processing -> retrying              (retryable, budget left)
    processing -> failed                (terminal error/exhausted) [terminal]

SECURITY:
- Tenant isolation via TenantScopedMixin (tenant_id from auth token only)
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, String, Integer, Enum, DateTime, Text, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy import JSON

from reelqueue.db_base import Base
from reelqueue.models.base import (
    TimestampMixin,
    TenantScopedMixin,
    generate_uuid,
    utc_now,
    ensure_utc,
)


# Use JSONB for PostgreSQL, JSON for other databases (testing)
JSONType = JSON().with_variant(JSONB(), "postgresql")

DEFAULT_MAX_RETRIES = 3


class GenerationKind(str, enum.Enum):
    """Generation types a job can request."""
    TALKING_HEAD = "talking_head"
    TTS = "tts"
    IMAGE_GEN = "image_gen"
    TRANSCRIPT = "transcript"


class GenerationJobStatus(str, enum.Enum):
    """Status of a generation job."""
    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[GenerationJobStatus, frozenset[GenerationJobStatus]] = {
    GenerationJobStatus.PENDING: frozenset({GenerationJobStatus.PROCESSING}),
    GenerationJobStatus.RETRYING: frozenset({GenerationJobStatus.PROCESSING}),
    GenerationJobStatus.PROCESSING: frozenset({
        GenerationJobStatus.COMPLETED,
        GenerationJobStatus.RETRYING,
        GenerationJobStatus.FAILED,
    }),
    GenerationJobStatus.COMPLETED: frozenset(),
    GenerationJobStatus.FAILED: frozenset(),
}

# Statuses a worker may claim from
CLAIMABLE_STATUSES = tuple(
    status for status, targets in ALLOWED_TRANSITIONS.items()
    if GenerationJobStatus.PROCESSING in targets
)

TERMINAL_STATUSES = tuple(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


class InvalidJobTransitionError(Exception):
    """Raised when a job is moved along an edge the lifecycle does not allow."""

    def __init__(self, job_id: str, current: GenerationJobStatus, target: GenerationJobStatus):
        super().__init__(
            f"Job {job_id}: illegal transition {current.value} -> {target.value}"
        )
        self.job_id = job_id
        self.current = current
        self.target = target


class GenerationJob(Base, TimestampMixin, TenantScopedMixin):
    """
    A queued generation request with its own state and retry budget.

    priority is resolved from the tenant's subscription tier at enqueue
    time and never changes afterwards. Lower values are serviced first.
    """

    __tablename__ = "generation_jobs"

    id = Column(
        String(255),
        primary_key=True,
        default=generate_uuid,
        comment="Unique job identifier (UUID)"
    )

    kind = Column(
        String(64),
        nullable=False,
        comment="Generation type; selects the handler in the registry"
    )

    payload = Column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Kind-specific generation parameters"
    )

    priority = Column(
        Integer,
        nullable=False,
        comment="Scheduling rank from subscription tier (lower first)"
    )

    status = Column(
        Enum(GenerationJobStatus),
        nullable=False,
        default=GenerationJobStatus.PENDING,
        index=True,
        comment="Current job status"
    )

    scheduled_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        comment="Earliest time the job is eligible for pickup"
    )

    started_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the job was last claimed"
    )

    completed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the job reached a terminal state"
    )

    retry_count = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Retries consumed so far"
    )

    max_retries = Column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_RETRIES,
        comment="Retry budget"
    )

    error_message = Column(
        Text,
        nullable=True,
        comment="Most recent failure detail"
    )

    result = Column(
        JSONType,
        nullable=True,
        comment="Backend response, set only on completion"
    )

    __table_args__ = (
        # Eligibility scan: tenant + status + scheduled_at
        Index(
            "ix_generation_jobs_tenant_status_scheduled",
            "tenant_id",
            "status",
            "scheduled_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationJob("
            f"id={self.id}, "
            f"tenant_id={self.tenant_id}, "
            f"kind={self.kind}, "
            f"status={self.status.value if self.status else None}"
            f")>"
        )

    @property
    def is_terminal(self) -> bool:
        """Check if job has reached a terminal state."""
        return self.status in TERMINAL_STATUSES

    @property
    def can_retry(self) -> bool:
        """Check if the retry budget has room for another attempt."""
        return (self.retry_count or 0) < (self.max_retries or 0)

    def is_eligible(self, now: datetime) -> bool:
        """Check if job may be picked up at the given time."""
        return (
            self.status in CLAIMABLE_STATUSES
            and ensure_utc(self.scheduled_at) <= ensure_utc(now)
        )

    def _transition_to(self, target: GenerationJobStatus) -> None:
        current = self.status
        if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
            raise InvalidJobTransitionError(self.id, current, target)
        self.status = target

    def mark_completed(self, result: Any, now: Optional[datetime] = None) -> None:
        """Mark job as successfully completed with the backend response."""
        self._transition_to(GenerationJobStatus.COMPLETED)
        self.completed_at = now or utc_now()
        self.result = result

    def mark_retrying(self, error_message: str, next_scheduled_at: datetime) -> None:
        """
        Consume one retry and reschedule the job.

        Raises InvalidJobTransitionError if the budget is already exhausted,
        which keeps retry_count <= max_retries.
        """
        if not self.can_retry:
            raise InvalidJobTransitionError(
                self.id, self.status, GenerationJobStatus.RETRYING
            )
        self._transition_to(GenerationJobStatus.RETRYING)
        self.retry_count = (self.retry_count or 0) + 1
        self.scheduled_at = next_scheduled_at
        self.error_message = error_message

    def mark_failed(self, error_message: str, now: Optional[datetime] = None) -> None:
        """Mark job as permanently failed."""
        self._transition_to(GenerationJobStatus.FAILED)
        self.completed_at = now or utc_now()
        self.error_message = error_message
