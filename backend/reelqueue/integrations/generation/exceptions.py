"""
Generation provider exceptions for error handling.

Every message carries the transport signal or HTTP status verbatim
("HTTP 503: ...", "timeout: ...") because the queue classifies failures
from the error text alone.
"""

from typing import Optional, Dict, Any


class GenerationBackendError(Exception):
    """Base exception for generation provider errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class GenerationAuthenticationError(GenerationBackendError):
    """Raised when the provider rejects our credentials (401/403)."""

    def __init__(
        self,
        message: str = "HTTP 401: authentication failed - API key may be invalid or missing",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class GenerationRateLimitError(GenerationBackendError):
    """Raised when the provider rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str = "HTTP 429: rate limit exceeded",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class GenerationConnectionError(GenerationBackendError):
    """Raised when the provider cannot be reached or drops the connection."""

    def __init__(
        self,
        message: str = "connection refused - unable to reach generation provider",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class GenerationTimeoutError(GenerationBackendError):
    """Raised when a provider request times out."""

    def __init__(
        self,
        message: str = "timeout waiting for generation provider",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class UnknownGenerationKindError(GenerationBackendError):
    """Raised when no handler is registered for a job kind."""

    def __init__(self, kind: str, registered: Optional[list[str]] = None):
        super().__init__(
            f"Unknown generation type: {kind}. Registered: {sorted(registered or [])}"
        )
        self.kind = kind
