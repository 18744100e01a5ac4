"""
Provider-backed generation handlers.

A handler serves one job kind: it receives the job payload and returns the
provider's JSON result or raises GenerationBackendError.
"""

import logging
from typing import Any, Dict

from reelqueue.integrations.generation.client import GenerationProviderClient

logger = logging.getLogger(__name__)


class HttpGenerationHandler:
    """Submits a job payload to the provider endpoint configured for its kind."""

    def __init__(self, kind: str, endpoint_url: str, client: GenerationProviderClient):
        if not endpoint_url:
            raise ValueError(f"endpoint_url is required for kind {kind}")
        self.kind = kind
        self.endpoint_url = endpoint_url
        self._client = client

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug(
            "Submitting generation payload",
            extra={"kind": self.kind, "url": self.endpoint_url},
        )
        return await self._client.submit(self.endpoint_url, payload)

    def __repr__(self) -> str:
        return f"HttpGenerationHandler(kind={self.kind!r}, endpoint_url={self.endpoint_url!r})"
