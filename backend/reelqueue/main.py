"""
FastAPI application entry point for the generation queue.

Multi-tenant enforcement is enabled via TenantContextMiddleware.
All /api routes require a valid JWT with tenant context, except the cron
trigger, which is guarded by the shared cron secret.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from reelqueue.platform.tenant_context import TenantContextMiddleware
from reelqueue.api.routes import health
from reelqueue.api.routes import generation_jobs
from reelqueue.api.routes import queue
from reelqueue.config.queue_settings import QueueSettings
from reelqueue.queue.backend import build_generation_backend

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting generation queue API")

    env_status = {
        var: "set" if os.getenv(var) else "missing"
        for var in ("DATABASE_URL", "JWT_SECRET", "CRON_SECRET")
    }
    missing_vars = [var for var, state in env_status.items() if state == "missing"]
    if missing_vars:
        logger.warning(
            f"Configuration incomplete (missing: {missing_vars}). "
            "Affected endpoints will return 503.",
            extra={"env_status": env_status},
        )
    else:
        logger.info("Configuration loaded", extra={"env_status": env_status})

    settings = QueueSettings.from_env()
    app.state.generation_backend = build_generation_backend(settings)

    yield

    # Shutdown
    await app.state.generation_backend.close()
    logger.info("Shutting down generation queue API")


# Create FastAPI app
app = FastAPI(
    title="Generation Queue API",
    description="Multi-tenant AI generation job queue with priority scheduling",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# CRITICAL: Add tenant context middleware
tenant_middleware = TenantContextMiddleware()
app.middleware("http")(tenant_middleware)


# Include health route (bypasses authentication)
app.include_router(health.router)

# Include generation job routes (requires authentication)
app.include_router(generation_jobs.router)

# Include queue trigger (uses cron secret, not JWT)
app.include_router(queue.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    tenant_id = "unknown"
    if hasattr(request.state, "tenant_context"):
        tenant_id = request.state.tenant_context.tenant_id

    logger.error(
        "Unhandled exception",
        extra={
            "tenant_id": tenant_id,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "reelqueue.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
