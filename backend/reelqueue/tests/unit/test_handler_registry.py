"""
Tests for the kind-keyed handler registry and GenerationBackend.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from reelqueue.config.queue_settings import QueueSettings
from reelqueue.integrations.generation import HttpGenerationHandler, UnknownGenerationKindError
from reelqueue.queue.backend import (
    GenerationBackend,
    GenerationHandler,
    HandlerRegistry,
    build_generation_backend,
)


class EchoHandler:
    async def execute(self, payload):
        return {"echo": payload}


class SyncHandler:
    def execute(self, payload):
        return "done"


class TestHandlerRegistry:

    def test_register_and_get(self):
        registry = HandlerRegistry()
        handler = EchoHandler()

        registry.register("tts", handler)

        assert registry.get("tts") is handler
        assert registry.has("tts") is True

    def test_duplicate_registration_rejected(self):
        registry = HandlerRegistry()
        registry.register("tts", EchoHandler())

        with pytest.raises(ValueError):
            registry.register("tts", EchoHandler())

    def test_set_overwrites(self):
        registry = HandlerRegistry()
        first, second = EchoHandler(), EchoHandler()
        registry.register("tts", first)

        registry.set("tts", second)

        assert registry.get("tts") is second

    def test_unknown_kind_raises(self):
        registry = HandlerRegistry()
        registry.register("tts", EchoHandler())

        with pytest.raises(UnknownGenerationKindError) as exc_info:
            registry.get("lipsync")

        assert exc_info.value.kind == "lipsync"
        assert "Unknown generation type: lipsync" in str(exc_info.value)
        assert "tts" in str(exc_info.value)

    def test_kinds_sorted(self):
        registry = HandlerRegistry()
        registry.register("tts", EchoHandler())
        registry.register("image_gen", EchoHandler())

        assert registry.kinds() == ["image_gen", "tts"]

    def test_handlers_satisfy_protocol(self):
        assert isinstance(EchoHandler(), GenerationHandler)


class TestGenerationBackend:

    @pytest.mark.asyncio
    async def test_execute_dispatches_by_kind(self):
        registry = HandlerRegistry()
        registry.register("tts", EchoHandler())
        backend = GenerationBackend(registry)

        result = await backend.execute("tts", {"text": "hi"})

        assert result == {"echo": {"text": "hi"}}

    @pytest.mark.asyncio
    async def test_execute_accepts_synchronous_handler(self):
        registry = HandlerRegistry()
        registry.register("transcript", SyncHandler())

        assert await GenerationBackend(registry).execute("transcript", {}) == "done"

    @pytest.mark.asyncio
    async def test_execute_unknown_kind(self):
        backend = GenerationBackend(HandlerRegistry())

        with pytest.raises(UnknownGenerationKindError):
            await backend.execute("talking_head", {})

    @pytest.mark.asyncio
    async def test_handler_errors_propagate_verbatim(self):
        handler = MagicMock()
        handler.execute = AsyncMock(side_effect=RuntimeError("HTTP 503: busy"))
        registry = HandlerRegistry()
        registry.register("tts", handler)

        with pytest.raises(RuntimeError, match="HTTP 503: busy"):
            await GenerationBackend(registry).execute("tts", {"text": "x"})

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        client = MagicMock()
        client.close = AsyncMock()

        await GenerationBackend(HandlerRegistry(), client=client).close()

        client.close.assert_awaited_once()


class TestBuildGenerationBackend:

    @pytest.mark.asyncio
    async def test_registers_one_http_handler_per_endpoint(self):
        settings = QueueSettings(
            endpoints={
                "talking_head": "https://provider.test/talking-head",
                "tts": "https://provider.test/tts",
            },
        )

        backend = build_generation_backend(settings)
        try:
            assert backend.registry.kinds() == ["talking_head", "tts"]
            handler = backend.registry.get("tts")
            assert isinstance(handler, HttpGenerationHandler)
            assert handler.endpoint_url == "https://provider.test/tts"
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_without_endpoints_no_kind_is_registered(self):
        backend = build_generation_backend(QueueSettings())
        try:
            assert backend.registry.kinds() == []
        finally:
            await backend.close()
