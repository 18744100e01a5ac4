"""
Multi-tenant context enforcement for the generation queue API.

CRITICAL SECURITY REQUIREMENTS:
- tenant_id is ALWAYS extracted from the JWT (org_id, falling back to sub),
  NEVER from request body/query
- All requests without valid tenant context return 403
- The subscription tier used for job priority comes from the billing_tier
  claim, never from the request

Tokens are HS256-signed with JWT_SECRET.
"""

import os
import logging
from typing import Optional

import jwt
from jwt.exceptions import InvalidTokenError
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

# Paths that do not carry tenant context. The queue trigger is guarded by
# the cron secret instead of a JWT.
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json", "/api/queue/process"}


class TenantContext:
    """
    Immutable tenant context extracted from JWT.

    billing_tier is the tenant's current subscription tier; unrecognized or
    missing tiers are kept as given and resolve to the lowest priority.
    """

    def __init__(
        self,
        tenant_id: str,
        user_id: Optional[str] = None,
        billing_tier: Optional[str] = None,
    ):
        if not tenant_id:
            raise ValueError("tenant_id cannot be empty")
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.billing_tier = billing_tier

    def __repr__(self) -> str:
        return (
            f"TenantContext(tenant_id={self.tenant_id}, user_id={self.user_id}, "
            f"billing_tier={self.billing_tier})"
        )


def _reject(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


class TenantContextMiddleware:
    """
    FastAPI middleware that enforces tenant isolation.

    Extracts tenant context from the bearer JWT and attaches it to
    request.state. Rejects all protected requests without valid context.

    JWT Claims:
    - sub: User ID
    - org_id: Account/organization ID (tenant)
    - billing_tier: Subscription tier (enterprise, pro, basic, free)
    """

    def __init__(self, secret: Optional[str] = None):
        """
        Initialize middleware.

        The secret is resolved lazily so the module imports without
        JWT_SECRET set.
        """
        self._secret = secret

    @property
    def secret(self) -> Optional[str]:
        return self._secret or os.getenv("JWT_SECRET")

    async def __call__(self, request: Request, call_next):
        """
        Process request and extract tenant context from JWT.

        SECURITY: tenant_id is ONLY extracted from JWT, never from request body/query.
        """
        path = request.url.path
        if path in PUBLIC_PATHS or not path.startswith("/api/"):
            return await call_next(request)

        secret = self.secret
        if not secret:
            logger.warning(
                "Authentication not configured - protected endpoint accessed",
                extra={"path": path, "method": request.method}
            )
            return _reject(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "Authentication service not configured",
            )

        auth_header = request.headers.get("Authorization", "")
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            logger.warning("Request missing authorization token", extra={
                "path": path,
                "method": request.method
            })
            return _reject(
                status.HTTP_403_FORBIDDEN,
                "Missing or invalid authorization token",
            )

        try:
            payload = jwt.decode(
                token.strip(),
                secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_aud": False, "verify_exp": True},
            )
        except InvalidTokenError as e:
            logger.warning("Invalid authorization token", extra={
                "path": path,
                "error": str(e)
            })
            return _reject(status.HTTP_403_FORBIDDEN, "Invalid authorization token")

        tenant_id = payload.get("org_id") or payload.get("sub")
        if not tenant_id:
            logger.warning("Token missing tenant claim", extra={"path": path})
            return _reject(status.HTTP_403_FORBIDDEN, "Token missing tenant identifier")

        request.state.tenant_context = TenantContext(
            tenant_id=str(tenant_id),
            user_id=payload.get("sub"),
            billing_tier=payload.get("billing_tier"),
        )

        logger.debug("Tenant context attached", extra={
            "tenant_id": tenant_id,
            "path": path
        })
        return await call_next(request)


def get_tenant_context(request: Request) -> TenantContext:
    """
    Extract tenant context from request state.

    Raises 403 if tenant context is missing.
    Use this in route handlers to access tenant_id.
    """
    if not hasattr(request.state, "tenant_context"):
        logger.error("Route handler accessed without tenant context", extra={
            "path": request.url.path
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context not available"
        )

    return request.state.tenant_context
