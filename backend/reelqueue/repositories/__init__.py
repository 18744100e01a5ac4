"""Repositories for tenant-scoped data access."""

from reelqueue.repositories.generation_jobs_repo import (
    GenerationJobRepository,
    TenantIsolationError,
    get_tenants_with_eligible_jobs,
)

__all__ = [
    "GenerationJobRepository",
    "TenantIsolationError",
    "get_tenants_with_eligible_jobs",
]
