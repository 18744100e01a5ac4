"""
Database models for the generation queue.

Tenant-scoped models inherit from TenantScopedMixin.
"""

from reelqueue.models.base import TimestampMixin, TenantScopedMixin
from reelqueue.models.generation_job import (
    GenerationJob,
    GenerationJobStatus,
    GenerationKind,
    InvalidJobTransitionError,
)

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "GenerationJob",
    "GenerationJobStatus",
    "GenerationKind",
    "InvalidJobTransitionError",
]
