"""
Generation queue dependencies.

Provides the queue settings, the shared generation backend and the cron
secret guard as reusable FastAPI dependencies, so tests can override each
one independently.
"""

import hmac
import logging
from typing import Optional

from fastapi import Request, HTTPException, status, Header, Depends

from reelqueue.config.queue_settings import QueueSettings
from reelqueue.queue.backend import GenerationBackend


logger = logging.getLogger(__name__)


def get_queue_settings() -> QueueSettings:
    """Queue settings read from the environment on each request."""
    return QueueSettings.from_env()


def get_generation_backend(request: Request) -> Optional[GenerationBackend]:
    """
    Backend created at application startup.

    None when the app was started without one; the pass then builds and
    closes its own backend.
    """
    return getattr(request.app.state, "generation_backend", None)


def verify_cron_secret(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison of the presented secret."""
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_cron_secret(
    request: Request,
    x_cron_secret: Optional[str] = Header(None, alias="X-Cron-Secret"),
    settings: QueueSettings = Depends(get_queue_settings),
) -> None:
    """
    Guard for the cron trigger.

    Raises 503 if CRON_SECRET is not configured (fail closed) and 401 if
    the header is missing or wrong.
    """
    if not settings.cron_secret:
        logger.error(
            "Queue trigger called but CRON_SECRET is not configured",
            extra={"path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Queue trigger not configured",
        )

    if not verify_cron_secret(x_cron_secret, settings.cron_secret):
        logger.warning(
            "Queue trigger rejected - invalid cron secret",
            extra={
                "path": request.url.path,
                "client": request.client.host if request.client else None,
                "header_present": x_cron_secret is not None,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
