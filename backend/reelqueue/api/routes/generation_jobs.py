"""
Generation job API routes.

Provides endpoints for:
- Queueing a generation job for the authenticated tenant
- Querying a job's status
- Listing the tenant's jobs

SECURITY: All routes require valid tenant context from JWT.
Jobs are tenant-scoped - users can only see their own jobs. Priority is
derived from the billing tier in the token, never from the request.
"""

import logging
from typing import Any, Optional, List
from datetime import datetime

from fastapi import APIRouter, Request, HTTPException, status, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reelqueue.platform.tenant_context import get_tenant_context
from reelqueue.database.session import get_db_session
from reelqueue.api.dependencies.queue import get_queue_settings
from reelqueue.config.queue_settings import QueueSettings
from reelqueue.models.generation_job import GenerationJob, GenerationJobStatus, GenerationKind
from reelqueue.services.generation_queue_service import (
    GenerationQueueService,
    JobNotFoundError,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generation-jobs", tags=["generation-jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================


class TalkingHeadPayload(BaseModel):
    """Parameters for a talking-head video generation."""

    model_config = ConfigDict(extra="allow")

    audio_signed_url: str = Field(..., min_length=1)
    image_signed_url: str = Field(..., min_length=1)
    resolution: str = "480p"

    @field_validator("resolution", mode="before")
    @classmethod
    def normalize_resolution(cls, value: Any) -> str:
        # Only 720p is offered above the default
        return "720p" if value == "720p" else "480p"


# Kind-specific payload validation; kinds not listed are stored as given
PAYLOAD_MODELS: dict[GenerationKind, type[BaseModel]] = {
    GenerationKind.TALKING_HEAD: TalkingHeadPayload,
}


class EnqueueRequest(BaseModel):
    """Request body for queueing a generation job."""

    kind: GenerationKind
    payload: dict[str, Any] = Field(default_factory=dict)


class GenerationJobResponse(BaseModel):
    """Response model for a queued job."""

    job_id: str
    kind: str
    status: str
    priority: int
    retry_count: int
    max_retries: int
    scheduled_at: datetime
    created_at: datetime


class JobStatusResponse(BaseModel):
    """Response model for a job status query."""

    job_id: str
    kind: str
    status: str
    priority: int
    created_at: datetime
    result: Optional[Any] = None
    error_message: Optional[str] = None
    retry_count: Optional[int] = None
    max_retries: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class GenerationJobListResponse(BaseModel):
    """Response model for listing jobs."""

    jobs: List[GenerationJobResponse]
    total: int
    has_more: bool


# =============================================================================
# Helper Functions
# =============================================================================


def _job_to_response(job: GenerationJob) -> GenerationJobResponse:
    return GenerationJobResponse(
        job_id=job.id,
        kind=job.kind,
        status=job.status.value,
        priority=job.priority,
        retry_count=job.retry_count,
        max_retries=job.max_retries,
        scheduled_at=job.scheduled_at,
        created_at=job.created_at,
    )


def _validate_payload(kind: GenerationKind, payload: dict[str, Any]) -> dict[str, Any]:
    """Validate and normalize a payload for kinds that declare a schema."""
    model = PAYLOAD_MODELS.get(kind)
    if model is None:
        return payload

    try:
        return model.model_validate(payload).model_dump()
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[
                {"loc": ["body", "payload", *err["loc"]], "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ],
        )


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "",
    response_model=GenerationJobResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enqueue_generation_job(
    request: Request,
    body: EnqueueRequest,
    db_session=Depends(get_db_session),
    settings: QueueSettings = Depends(get_queue_settings),
):
    """
    Queue a generation job for the current tenant.

    The job starts pending with a priority taken from the tenant's
    subscription tier. It is executed by the next queue pass.
    """
    tenant_ctx = get_tenant_context(request)
    payload = _validate_payload(body.kind, body.payload)

    service = GenerationQueueService(db_session, tenant_ctx.tenant_id)
    job = service.enqueue(
        kind=body.kind.value,
        payload=payload,
        billing_tier=tenant_ctx.billing_tier,
        max_retries=settings.default_max_retries,
    )

    return _job_to_response(job)


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
)
async def get_generation_job_status(
    request: Request,
    job_id: str,
    db_session=Depends(get_db_session),
):
    """
    Get a job's status.

    Completed jobs include their result; failed jobs their error message.
    Jobs still queued or retrying include retry progress.

    SECURITY: Jobs of other tenants are reported as not found.
    """
    tenant_ctx = get_tenant_context(request)
    service = GenerationQueueService(db_session, tenant_ctx.tenant_id)

    try:
        job_status = service.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation job not found",
        )

    return JobStatusResponse(**job_status)


@router.get(
    "",
    response_model=GenerationJobListResponse,
)
async def list_generation_jobs(
    request: Request,
    db_session=Depends(get_db_session),
    job_status: Optional[str] = Query(
        None, alias="status", description="Filter by status (pending, retrying, ...)"
    ),
    limit: int = Query(20, ge=1, le=100, description="Maximum jobs to return"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
):
    """
    List the current tenant's generation jobs, newest first.

    SECURITY: Only returns jobs belonging to the authenticated tenant.
    """
    tenant_ctx = get_tenant_context(request)

    status_filter = None
    if job_status:
        try:
            status_filter = GenerationJobStatus(job_status)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {job_status}",
            )

    service = GenerationQueueService(db_session, tenant_ctx.tenant_id)
    jobs, total = service.list_jobs(status=status_filter, limit=limit, offset=offset)

    return GenerationJobListResponse(
        jobs=[_job_to_response(job) for job in jobs],
        total=total,
        has_more=offset + len(jobs) < total,
    )
