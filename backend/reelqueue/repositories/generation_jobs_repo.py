"""
Repository for generation jobs.

Every read and write made through GenerationJobRepository is filtered by
the tenant it was built for; the tenant comes from the auth token or from
the dispatcher's snapshot, never from a request body. The tenant discovery
query used by the dispatcher is the only cross-tenant read and lives at
module level.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from reelqueue.models.generation_job import (
    GenerationJob,
    GenerationJobStatus,
    CLAIMABLE_STATUSES,
)

logger = logging.getLogger(__name__)


class TenantIsolationError(Exception):
    """Raised when an operation names a tenant other than the repository's."""
    pass


class GenerationJobRepository:
    """Persistence for one tenant's generation jobs."""

    def __init__(self, db_session: Session, tenant_id: str):
        """
        Args:
            db_session: SQLAlchemy database session
            tenant_id: Tenant whose jobs this repository may touch

        Raises:
            ValueError: If tenant_id is empty or None
        """
        if not tenant_id:
            raise ValueError("tenant_id is required and cannot be empty")

        self.db_session = db_session
        self.tenant_id = tenant_id

    def _scoped(self) -> Query:
        return self.db_session.query(GenerationJob).filter(
            GenerationJob.tenant_id == self.tenant_id
        )

    def _check_tenant(self, tenant_id: Optional[str], operation: str) -> None:
        if tenant_id and tenant_id != self.tenant_id:
            logger.error(
                "generation_job.tenant_mismatch",
                extra={
                    "repository_tenant_id": self.tenant_id,
                    "provided_tenant_id": tenant_id,
                    "operation": operation,
                },
            )
            raise TenantIsolationError(
                f"Repository is scoped to tenant {self.tenant_id}, "
                f"{operation} was called for {tenant_id}"
            )

    def get_by_id(self, job_id: str, tenant_id: Optional[str] = None) -> Optional[GenerationJob]:
        """Job by id, or None if it does not exist for this tenant."""
        self._check_tenant(tenant_id, "get_by_id")
        return self._scoped().filter(GenerationJob.id == job_id).first()

    def create(self, job_data: dict[str, Any], tenant_id: Optional[str] = None) -> GenerationJob:
        """
        Insert a job owned by this repository's tenant and commit it.

        A tenant_id inside job_data is discarded.

        Raises:
            TenantIsolationError: If tenant_id names another tenant
            SQLAlchemyError: If the insert fails (the session is rolled back)
        """
        self._check_tenant(tenant_id, "create")

        fields = dict(job_data)
        dropped = fields.pop("tenant_id", None)
        if dropped is not None:
            logger.warning(
                "generation_job.tenant_id_ignored",
                extra={"tenant_id": self.tenant_id, "ignored_tenant_id": dropped},
            )

        job = GenerationJob(tenant_id=self.tenant_id, **fields)
        self.db_session.add(job)

        try:
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "generation_job.create_failed",
                extra={"tenant_id": self.tenant_id, "error": str(e)},
            )
            raise

        self.db_session.refresh(job)
        return job

    def list_jobs(
        self,
        status: Optional[GenerationJobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[GenerationJob], int]:
        """
        List the tenant's jobs, newest first.

        Returns:
            Tuple of (jobs, total count before pagination)
        """
        query = self._scoped()
        if status is not None:
            query = query.filter(GenerationJob.status == status)

        total = query.count()
        jobs = (
            query
            .order_by(GenerationJob.created_at.desc(), GenerationJob.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return jobs, total

    def get_eligible_jobs(self, now: datetime, limit: Optional[int] = None) -> list[GenerationJob]:
        """
        Jobs that may be picked up at `now`, in dispatch order.

        Order is priority ascending, then creation time ascending (FIFO
        within a priority level).
        """
        query = (
            self._scoped()
            .filter(
                GenerationJob.status.in_(CLAIMABLE_STATUSES),
                GenerationJob.scheduled_at <= now,
            )
            .order_by(
                GenerationJob.priority.asc(),
                GenerationJob.created_at.asc(),
                GenerationJob.id.asc(),
            )
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def claim(self, job_id: str, now: datetime) -> bool:
        """
        Atomically move a job from pending/retrying to processing.

        Single conditional UPDATE; exactly one caller can win for a given
        job state. Commits on success so the claim is durable before the
        backend is called.

        Returns:
            True if this caller now owns the job
        """
        stmt = (
            update(GenerationJob)
            .where(
                GenerationJob.id == job_id,
                GenerationJob.tenant_id == self.tenant_id,
                GenerationJob.status.in_(CLAIMABLE_STATUSES),
                GenerationJob.scheduled_at <= now,
            )
            .values(
                status=GenerationJobStatus.PROCESSING,
                started_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db_session.execute(stmt)

        if result.rowcount != 1:
            self.db_session.rollback()
            logger.info(
                "generation_job.claim_lost",
                extra={"job_id": job_id, "tenant_id": self.tenant_id},
            )
            return False

        self.db_session.commit()
        return True

    def get_processing_job(self, job_id: str) -> Optional[GenerationJob]:
        """
        Load a claimed job for finalization.

        Returns None unless the job is still processing, so an outcome is
        never written over a terminal job. Row-locked where supported.
        """
        return (
            self._scoped()
            .filter(
                GenerationJob.id == job_id,
                GenerationJob.status == GenerationJobStatus.PROCESSING,
            )
            .populate_existing()
            .with_for_update()
            .first()
        )


def get_tenants_with_eligible_jobs(db_session: Session, now: datetime) -> list[str]:
    """
    Tenants that have at least one job eligible for pickup at `now`.

    Used by the dispatcher to iterate tenants; order is not significant.
    """
    rows = (
        db_session.query(GenerationJob.tenant_id)
        .filter(
            GenerationJob.status.in_(CLAIMABLE_STATUSES),
            GenerationJob.scheduled_at <= now,
        )
        .distinct()
        .order_by(GenerationJob.tenant_id.asc())
        .all()
    )
    return [row[0] for row in rows]
