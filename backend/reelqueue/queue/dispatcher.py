"""
Generation job dispatcher.

Runs one scheduling pass over the queue:
- Finds tenants with eligible work (pending, or retrying with an elapsed
  scheduled_at)
- Feeds each tenant's jobs, in (priority, created_at) order, to a bounded
  pool of asyncio workers
- Each worker claims its job with an atomic conditional update, calls the
  generation backend, then completes, reschedules or fails the job

Triggered by the cron endpoint or the queue processor job. Overlapping
passes are safe: a job can only be claimed once per eligible state.

SECURITY: Jobs are only ever read and written through a repository scoped
to the job's own tenant.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from reelqueue.config.queue_settings import QueueSettings, DEFAULT_WORKER_COUNT
from reelqueue.integrations.generation.exceptions import UnknownGenerationKindError
from reelqueue.models.base import utc_now
from reelqueue.queue.backend import GenerationBackend, build_generation_backend
from reelqueue.queue.retry import (
    ErrorCategory,
    decide_retry,
    log_retry_decision,
)
from reelqueue.repositories.generation_jobs_repo import (
    GenerationJobRepository,
    get_tenants_with_eligible_jobs,
)

logger = logging.getLogger(__name__)


@dataclass
class QueuedJob:
    """Snapshot of an eligible job handed to the worker pool."""
    job_id: str
    tenant_id: str
    kind: str
    priority: int
    payload: dict[str, Any] = field(default_factory=dict)


class GenerationJobDispatcher:
    """
    Executes scheduling passes over the generation queue.

    Each worker opens its own session from session_factory; no session is
    shared between workers or held across a backend call.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        backend: GenerationBackend,
        worker_count: int = DEFAULT_WORKER_COUNT,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize dispatcher.

        Args:
            session_factory: Callable returning a new SQLAlchemy session
            backend: Generation backend used to execute jobs
            worker_count: Number of concurrent workers per pass
            clock: Returns the current aware UTC time
        """
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")

        self.session_factory = session_factory
        self.backend = backend
        self.worker_count = worker_count
        self.clock = clock
        self.stats = self._new_stats()

    @staticmethod
    def _new_stats() -> dict:
        return {
            "run_id": str(uuid.uuid4()),
            "tenants_processed": 0,
            "jobs_found": 0,
            "jobs_claimed": 0,
            "jobs_skipped": 0,
            "jobs_completed": 0,
            "jobs_retrying": 0,
            "jobs_failed": 0,
            "errors": 0,
            "duration_seconds": 0.0,
        }

    def collect_eligible_jobs(self) -> list[QueuedJob]:
        """
        Snapshot the jobs eligible now, tenant after tenant.

        Within a tenant jobs are ordered by priority then creation time.
        The snapshot session is closed before any worker starts.
        """
        session: Session = self.session_factory()
        try:
            now = self.clock()
            queued: list[QueuedJob] = []
            for tenant_id in get_tenants_with_eligible_jobs(session, now):
                jobs = GenerationJobRepository(session, tenant_id).get_eligible_jobs(now)
                self.stats["tenants_processed"] += 1
                for job in jobs:
                    queued.append(QueuedJob(
                        job_id=job.id,
                        tenant_id=job.tenant_id,
                        kind=job.kind,
                        priority=job.priority,
                        payload=dict(job.payload or {}),
                    ))
            self.stats["jobs_found"] = len(queued)
            return queued
        finally:
            session.close()

    async def run(self) -> dict:
        """
        Run one scheduling pass.

        Returns:
            Pass statistics
        """
        self.stats = self._new_stats()
        start_time = time.time()

        logger.info(
            "Starting generation queue pass",
            extra={"run_id": self.stats["run_id"], "worker_count": self.worker_count},
        )

        queued = self.collect_eligible_jobs()

        work: asyncio.Queue = asyncio.Queue()
        for item in queued:
            await work.put(item)

        pool_size = min(self.worker_count, len(queued))
        for _ in range(pool_size):
            await work.put(None)

        workers = [
            asyncio.create_task(self._worker(index, work))
            for index in range(pool_size)
        ]
        if workers:
            await asyncio.gather(*workers)

        self.stats["duration_seconds"] = round(time.time() - start_time, 3)

        logger.info("Generation queue pass completed", extra=self.stats)
        return dict(self.stats)

    async def _worker(self, index: int, work: asyncio.Queue) -> None:
        while True:
            item = await work.get()
            try:
                if item is None:
                    return
                await self.process_job(item)
            except Exception as e:
                self.stats["errors"] += 1
                logger.error(
                    "Unexpected error processing generation job",
                    extra={
                        "run_id": self.stats["run_id"],
                        "worker": index,
                        "job_id": item.job_id,
                        "tenant_id": item.tenant_id,
                        "error": str(e),
                    },
                    exc_info=True,
                )
            finally:
                work.task_done()

    async def process_job(self, item: QueuedJob) -> None:
        """
        Claim, execute and finalize a single job.

        Backend errors are absorbed here and turned into job outcomes.
        """
        session: Session = self.session_factory()
        try:
            repository = GenerationJobRepository(session, item.tenant_id)

            if not repository.claim(item.job_id, self.clock()):
                self.stats["jobs_skipped"] += 1
                return

            self.stats["jobs_claimed"] += 1
            logger.info(
                "generation_job.claimed",
                extra={
                    "run_id": self.stats["run_id"],
                    "job_id": item.job_id,
                    "tenant_id": item.tenant_id,
                    "kind": item.kind,
                    "priority": item.priority,
                },
            )

            try:
                result = await self.backend.execute(item.kind, item.payload)
            except UnknownGenerationKindError as e:
                self._handle_failure(
                    session, repository, item, str(e), ErrorCategory.CONFIGURATION
                )
            except Exception as e:
                self._handle_failure(
                    session, repository, item, str(e) or type(e).__name__
                )
            else:
                self._handle_success(session, repository, item, result)
        finally:
            session.close()

    def _handle_success(
        self,
        session: Session,
        repository: GenerationJobRepository,
        item: QueuedJob,
        result: Any,
    ) -> None:
        job = repository.get_processing_job(item.job_id)
        if job is None:
            self._log_finalize_skipped(item)
            return

        job.mark_completed(result, now=self.clock())
        self._commit(session)
        self.stats["jobs_completed"] += 1

        logger.info(
            "generation_job.completed",
            extra={
                "run_id": self.stats["run_id"],
                "job_id": job.id,
                "tenant_id": job.tenant_id,
                "kind": job.kind,
                "retry_count": job.retry_count,
            },
        )

    def _handle_failure(
        self,
        session: Session,
        repository: GenerationJobRepository,
        item: QueuedJob,
        error_message: str,
        error_category: Optional[ErrorCategory] = None,
    ) -> None:
        """
        Reschedule or fail a job after a backend error.

        Args:
            session: Worker session
            repository: Repository scoped to the job's tenant
            item: The claimed job
            error_message: Backend error text, stored verbatim
            error_category: Forced category (skips text classification)
        """
        job = repository.get_processing_job(item.job_id)
        if job is None:
            self._log_finalize_skipped(item)
            return

        now = self.clock()
        decision = decide_retry(
            error_text=error_message,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            now=now,
            error_category=error_category,
        )
        log_retry_decision(job.id, job.tenant_id, decision)

        if decision.should_retry:
            job.mark_retrying(error_message, decision.next_scheduled_at)
            self._commit(session)
            self.stats["jobs_retrying"] += 1
            logger.info(
                "generation_job.retrying",
                extra={
                    "run_id": self.stats["run_id"],
                    "job_id": job.id,
                    "tenant_id": job.tenant_id,
                    "kind": job.kind,
                    "retry_count": job.retry_count,
                    "max_retries": job.max_retries,
                    "error_category": decision.error_category.value,
                    "delay_seconds": decision.delay.total_seconds(),
                    "next_scheduled_at": decision.next_scheduled_at.isoformat(),
                },
            )
        else:
            job.mark_failed(error_message, now=now)
            self._commit(session)
            self.stats["jobs_failed"] += 1
            logger.error(
                "generation_job.failed",
                extra={
                    "run_id": self.stats["run_id"],
                    "job_id": job.id,
                    "tenant_id": job.tenant_id,
                    "kind": job.kind,
                    "retry_count": job.retry_count,
                    "error_category": decision.error_category.value,
                    "error_message": error_message[:500],
                },
            )

    @staticmethod
    def _commit(session: Session) -> None:
        try:
            session.commit()
        except Exception:
            session.rollback()
            raise

    def _log_finalize_skipped(self, item: QueuedJob) -> None:
        self.stats["errors"] += 1
        logger.warning(
            "generation_job.finalize_skipped",
            extra={
                "run_id": self.stats["run_id"],
                "job_id": item.job_id,
                "tenant_id": item.tenant_id,
                "reason": "job no longer processing",
            },
        )


async def run_scheduling_pass(
    session_factory: sessionmaker,
    backend: Optional[GenerationBackend] = None,
    settings: Optional[QueueSettings] = None,
    clock: Callable[[], datetime] = utc_now,
) -> dict:
    """
    Run one pass of the generation queue.

    Called by the cron trigger and the queue processor job.

    Args:
        session_factory: Session factory for worker sessions
        backend: Generation backend (built from settings if not provided)
        settings: Queue settings (read from environment if not provided)
        clock: Current-time source

    Returns:
        Pass statistics
    """
    settings = settings or QueueSettings.from_env()
    owns_backend = backend is None
    if owns_backend:
        backend = build_generation_backend(settings)

    try:
        dispatcher = GenerationJobDispatcher(
            session_factory=session_factory,
            backend=backend,
            worker_count=settings.worker_count,
            clock=clock,
        )
        return await dispatcher.run()
    finally:
        if owns_backend:
            await backend.close()
