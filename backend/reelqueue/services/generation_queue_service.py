"""
Generation queue service: enqueue and status query.

Jobs are created pending with a priority resolved from the tenant's
subscription tier at enqueue time. The priority is never recomputed,
so a later plan change does not reorder jobs already queued.

SECURITY: tenant_id from JWT only, never from client input.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from reelqueue.models.generation_job import (
    GenerationJob,
    GenerationJobStatus,
    DEFAULT_MAX_RETRIES,
)
from reelqueue.queue.priority import resolve_priority
from reelqueue.repositories.generation_jobs_repo import GenerationJobRepository

logger = logging.getLogger(__name__)


class JobNotFoundError(Exception):
    """Raised when a job does not exist for the tenant."""
    pass


class GenerationQueueService:
    """Tenant-scoped entry point for queueing and inspecting generation jobs."""

    def __init__(self, db_session: Session, tenant_id: str):
        if not tenant_id:
            raise ValueError("tenant_id is required")

        self.db = db_session
        self.tenant_id = tenant_id
        self.repository = GenerationJobRepository(db_session, tenant_id)

    def enqueue(
        self,
        kind: str,
        payload: Optional[dict[str, Any]] = None,
        billing_tier: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> GenerationJob:
        """
        Queue a generation job for the tenant.

        Args:
            kind: Generation type (selects the backend handler)
            payload: Kind-specific parameters, stored as given
            billing_tier: Tenant's current subscription tier
            max_retries: Retry budget (defaults to 3)

        Returns:
            Created GenerationJob in PENDING status
        """
        priority = resolve_priority(billing_tier)
        budget = DEFAULT_MAX_RETRIES if max_retries is None else max_retries
        if budget < 0:
            raise ValueError("max_retries must be >= 0")

        job = self.repository.create({
            "kind": kind,
            "payload": payload or {},
            "priority": priority,
            "status": GenerationJobStatus.PENDING,
            "retry_count": 0,
            "max_retries": budget,
        })

        logger.info(
            "generation_job.enqueued",
            extra={
                "job_id": job.id,
                "tenant_id": self.tenant_id,
                "kind": kind,
                "priority": priority,
                "billing_tier": billing_tier,
            },
        )
        return job

    def get_job(self, job_id: str) -> GenerationJob:
        """
        Get a job owned by the tenant.

        Raises:
            JobNotFoundError: If the job does not exist or belongs to
                another tenant
        """
        job = self.repository.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Generation job {job_id} not found")
        return job

    def get_status(self, job_id: str) -> dict[str, Any]:
        """
        Status view of a job.

        Completed jobs expose their result, failed jobs their error. Jobs
        still in flight expose retry progress and the last transient error.
        """
        job = self.get_job(job_id)

        status = {
            "job_id": job.id,
            "kind": job.kind,
            "status": job.status.value,
            "priority": job.priority,
            "created_at": job.created_at,
        }

        if job.status == GenerationJobStatus.COMPLETED:
            status["result"] = job.result
            status["completed_at"] = job.completed_at
        elif job.status == GenerationJobStatus.FAILED:
            status["error_message"] = job.error_message
            status["completed_at"] = job.completed_at
        else:
            status["retry_count"] = job.retry_count
            status["max_retries"] = job.max_retries
            status["error_message"] = job.error_message
            status["scheduled_at"] = job.scheduled_at

        return status

    def list_jobs(
        self,
        status: Optional[GenerationJobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[GenerationJob], int]:
        """List the tenant's jobs, newest first, with the unpaginated total."""
        return self.repository.list_jobs(status=status, limit=limit, offset=offset)
