"""
HTTP client for third-party generation providers.

Each generation kind is served by a provider endpoint that accepts the job
payload as JSON and answers with a JSON result (a task id, an audio URL,
a transcript, ...). This client handles:
- Submitting payloads with bearer authentication
- Translating HTTP statuses and transport failures into exceptions whose
  text carries the classifiable signal verbatim

SECURITY:
- API key must be stored securely and never logged
"""

import logging
import time
from typing import Optional, Dict, Any

import httpx

from reelqueue.integrations.generation.exceptions import (
    GenerationBackendError,
    GenerationAuthenticationError,
    GenerationRateLimitError,
    GenerationConnectionError,
    GenerationTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0


class GenerationProviderClient:
    """
    Async client for generation provider endpoints.

    SECURITY: API key must be stored securely and never logged.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize provider client.

        Args:
            api_key: Bearer token sent to providers (optional)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Custom httpx transport (tests)
        """
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "GenerationProviderClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return str(error.get("message", ""))[:200]
            if error:
                return str(error)[:200]
        return str(body)[:200]

    async def submit(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a generation payload to a provider endpoint.

        Args:
            url: Provider endpoint URL
            payload: Kind-specific generation parameters

        Returns:
            Provider response as dictionary

        Raises:
            GenerationBackendError: On provider or transport errors
        """
        start_time = time.time()

        try:
            response = await self._client.post(url, json=payload)
        except httpx.TimeoutException as e:
            logger.warning(
                "Generation provider timeout",
                extra={"url": url, "error": str(e)},
            )
            raise GenerationTimeoutError(f"timeout: {e}")
        except httpx.ConnectError as e:
            logger.warning(
                "Generation provider unreachable",
                extra={"url": url, "error": str(e)},
            )
            raise GenerationConnectionError(f"connection refused: {e}")
        except httpx.TransportError as e:
            # Read/write/protocol failures after the connection was up
            logger.warning(
                "Generation provider connection dropped",
                extra={"url": url, "error": str(e)},
            )
            raise GenerationConnectionError(f"connection reset: {e}")

        status_code = response.status_code

        if status_code in (401, 403):
            logger.error(
                "Generation provider authentication failed",
                extra={"status_code": status_code, "url": url},
            )
            raise GenerationAuthenticationError(
                message=f"HTTP {status_code}: {self._error_detail(response)}",
                status_code=status_code,
            )

        if status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(
                "Generation provider rate limited",
                extra={"url": url, "retry_after": retry_after},
            )
            raise GenerationRateLimitError(
                message=f"HTTP 429: {self._error_detail(response)}",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if status_code >= 400:
            detail = self._error_detail(response)
            logger.error(
                "Generation provider error",
                extra={"status_code": status_code, "url": url, "detail": detail},
            )
            raise GenerationBackendError(
                message=f"HTTP {status_code}: {detail}",
                status_code=status_code,
            )

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Generation provider request successful",
            extra={"url": url, "status_code": status_code, "latency_ms": latency_ms},
        )

        if status_code == 204 or not response.content:
            return {}

        try:
            data = response.json()
        except ValueError:
            raise GenerationBackendError(
                message=f"HTTP {status_code}: provider returned a non-JSON body",
                status_code=status_code,
            )
        return data if isinstance(data, dict) else {"result": data}
