"""
Generation backend: kind-keyed handler registry.

The dispatcher never branches on job kind. It calls
GenerationBackend.execute(kind, payload), which resolves the handler
registered for that kind. New generation types are added by registering
a handler, not by touching the dispatcher.
"""

from __future__ import annotations

import inspect
import logging
import threading
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from reelqueue.config.queue_settings import QueueSettings
from reelqueue.integrations.generation.client import GenerationProviderClient
from reelqueue.integrations.generation.exceptions import UnknownGenerationKindError
from reelqueue.integrations.generation.handlers import HttpGenerationHandler

logger = logging.getLogger(__name__)


@runtime_checkable
class GenerationHandler(Protocol):
    """Capability that performs one kind of generation."""

    async def execute(self, payload: Dict[str, Any]) -> Any:
        ...


class HandlerRegistry:
    """
    Minimal thread-safe registry of generation handlers keyed by kind.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handlers: Dict[str, GenerationHandler] = {}

    def register(self, kind: str, handler: GenerationHandler) -> None:
        key = kind.strip()
        with self._lock:
            if key in self._handlers:
                raise ValueError(f"Handler already registered: {key}")
            self._handlers[key] = handler

    def set(self, kind: str, handler: GenerationHandler) -> None:
        """Overwrite existing registration."""
        with self._lock:
            self._handlers[kind.strip()] = handler

    def get(self, kind: str) -> GenerationHandler:
        key = (kind or "").strip()
        with self._lock:
            try:
                return self._handlers[key]
            except KeyError:
                raise UnknownGenerationKindError(key, list(self._handlers))

    def has(self, kind: str) -> bool:
        with self._lock:
            return (kind or "").strip() in self._handlers

    def kinds(self) -> list[str]:
        with self._lock:
            return sorted(self._handlers)


class GenerationBackend:
    """Executes a job's payload with the handler registered for its kind."""

    def __init__(self, registry: HandlerRegistry, client: Optional[GenerationProviderClient] = None):
        self.registry = registry
        self._client = client

    async def execute(self, kind: str, payload: Dict[str, Any]) -> Any:
        """
        Run one generation.

        Raises:
            UnknownGenerationKindError: No handler registered for kind
            Exception: Whatever the handler raises, text preserved
        """
        handler = self.registry.get(kind)
        result = handler.execute(payload or {})
        if inspect.isawaitable(result):
            result = await result
        return result

    async def close(self) -> None:
        """Close the shared provider client, if this backend owns one."""
        if self._client is not None:
            await self._client.close()


def build_generation_backend(settings: Optional[QueueSettings] = None) -> GenerationBackend:
    """
    Build a backend with one HTTP handler per configured provider endpoint.

    Kinds without a GENERATION_<KIND>_URL stay unregistered; their jobs
    fail as configuration errors when dispatched.
    """
    settings = settings or QueueSettings.from_env()
    client = GenerationProviderClient(
        api_key=settings.api_key,
        timeout=settings.backend_timeout_seconds,
    )

    registry = HandlerRegistry()
    for kind, url in settings.endpoints.items():
        registry.register(kind, HttpGenerationHandler(kind, url, client))

    logger.info(
        "Generation backend configured",
        extra={"registered_kinds": registry.kinds()},
    )
    return GenerationBackend(registry, client=client)
