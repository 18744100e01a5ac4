"""
Queue trigger route.

Called by the platform cron every minute. Runs exactly one scheduling
pass and answers once it has finished.

SECURITY: Guarded by the X-Cron-Secret header, not a JWT. A rejected call
never touches the queue.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from reelqueue.api.dependencies.queue import (
    get_generation_backend,
    get_queue_settings,
    require_cron_secret,
)
from reelqueue.config.queue_settings import QueueSettings
from reelqueue.database.session import get_session_factory_dependency
from reelqueue.queue.backend import GenerationBackend
from reelqueue.queue.dispatcher import run_scheduling_pass


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queue", tags=["queue"])


class QueuePassStats(BaseModel):
    """Counters for one scheduling pass."""

    run_id: str
    tenants_processed: int
    jobs_found: int
    jobs_claimed: int
    jobs_skipped: int
    jobs_completed: int
    jobs_retrying: int
    jobs_failed: int
    errors: int
    duration_seconds: float


class QueueProcessResponse(BaseModel):
    success: bool
    stats: QueuePassStats


@router.post(
    "/process",
    response_model=QueueProcessResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def process_queue(
    session_factory=Depends(get_session_factory_dependency),
    backend: Optional[GenerationBackend] = Depends(get_generation_backend),
    settings: QueueSettings = Depends(get_queue_settings),
):
    """Run one pass over the generation queue."""
    stats = await run_scheduling_pass(
        session_factory,
        backend=backend,
        settings=settings,
    )

    logger.info("Queue trigger completed", extra=stats)
    return QueueProcessResponse(success=True, stats=QueuePassStats(**stats))
