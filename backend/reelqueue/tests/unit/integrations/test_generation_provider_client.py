"""
Unit tests for GenerationProviderClient and HttpGenerationHandler.

Tests cover:
- Successful submissions and response shapes
- HTTP status translation (401/403, 429, other 4xx/5xx)
- Transport failures (timeout, refused, reset)
- Error text carrying the classifiable signal
"""

import json

import httpx
import pytest

from reelqueue.integrations.generation import (
    GenerationProviderClient,
    HttpGenerationHandler,
    GenerationBackendError,
    GenerationAuthenticationError,
    GenerationRateLimitError,
    GenerationConnectionError,
    GenerationTimeoutError,
)
from reelqueue.queue.retry import is_retryable_error


PROVIDER_URL = "https://provider.test/v1/talking-head"


def make_client(handler, api_key="test-key") -> GenerationProviderClient:
    return GenerationProviderClient(
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


class TestSubmitSuccess:

    @pytest.mark.asyncio
    async def test_returns_json_body_and_sends_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"task_id": "t-1", "status": "queued"})

        async with make_client(handler) as client:
            result = await client.submit(PROVIDER_URL, {"audio_signed_url": "a", "image_signed_url": "i"})

        assert result == {"task_id": "t-1", "status": "queued"}
        assert seen["method"] == "POST"
        assert seen["url"] == PROVIDER_URL
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"] == {"audio_signed_url": "a", "image_signed_url": "i"}

    @pytest.mark.asyncio
    async def test_no_authorization_header_without_api_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={})

        async with make_client(handler, api_key=None) as client:
            await client.submit(PROVIDER_URL, {})

        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_empty_response_becomes_empty_dict(self):
        async with make_client(lambda request: httpx.Response(204)) as client:
            assert await client.submit(PROVIDER_URL, {}) == {}

    @pytest.mark.asyncio
    async def test_non_object_json_is_wrapped(self):
        async with make_client(lambda request: httpx.Response(200, json=["a", "b"])) as client:
            assert await client.submit(PROVIDER_URL, {}) == {"result": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_non_json_success_body_raises(self):
        async with make_client(lambda request: httpx.Response(200, text="<html>ok</html>")) as client:
            with pytest.raises(GenerationBackendError):
                await client.submit(PROVIDER_URL, {})


class TestSubmitHttpErrors:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_errors_are_terminal(self, status_code):
        def handler(request):
            return httpx.Response(status_code, json={"error": {"message": "invalid key"}})

        async with make_client(handler) as client:
            with pytest.raises(GenerationAuthenticationError) as exc_info:
                await client.submit(PROVIDER_URL, {})

        assert exc_info.value.status_code == status_code
        assert str(exc_info.value) == f"HTTP {status_code}: invalid key"
        assert is_retryable_error(str(exc_info.value)) is False

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "7"}, json={"error": "slow down"})

        async with make_client(handler) as client:
            with pytest.raises(GenerationRateLimitError) as exc_info:
                await client.submit(PROVIDER_URL, {})

        assert exc_info.value.retry_after == 7
        assert str(exc_info.value).startswith("HTTP 429")
        assert is_retryable_error(str(exc_info.value)) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,retryable", [(502, True), (503, True), (400, False), (404, False)])
    async def test_other_statuses_keep_code_in_message(self, status_code, retryable):
        async with make_client(lambda request: httpx.Response(status_code, text="nope")) as client:
            with pytest.raises(GenerationBackendError) as exc_info:
                await client.submit(PROVIDER_URL, {})

        assert exc_info.value.status_code == status_code
        assert str(exc_info.value) == f"HTTP {status_code}: nope"
        assert is_retryable_error(str(exc_info.value)) is retryable


class TestSubmitTransportErrors:

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(GenerationTimeoutError) as exc_info:
                await client.submit(PROVIDER_URL, {})

        assert "timeout" in str(exc_info.value)
        assert is_retryable_error(str(exc_info.value)) is True

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111]", request=request)

        async with make_client(handler) as client:
            with pytest.raises(GenerationConnectionError) as exc_info:
                await client.submit(PROVIDER_URL, {})

        assert "connection refused" in str(exc_info.value)
        assert is_retryable_error(str(exc_info.value)) is True

    @pytest.mark.asyncio
    async def test_connection_dropped(self):
        def handler(request):
            raise httpx.ReadError("peer closed", request=request)

        async with make_client(handler) as client:
            with pytest.raises(GenerationConnectionError) as exc_info:
                await client.submit(PROVIDER_URL, {})

        assert "connection reset" in str(exc_info.value)


class TestHttpGenerationHandler:

    def test_requires_endpoint(self):
        with pytest.raises(ValueError):
            HttpGenerationHandler("tts", "", client=None)

    @pytest.mark.asyncio
    async def test_posts_payload_to_its_endpoint(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"audio_url": "https://cdn.test/a.mp3"})

        async with make_client(handler) as client:
            tts = HttpGenerationHandler("tts", "https://provider.test/tts", client)
            result = await tts.execute({"text": "hello"})

        assert result == {"audio_url": "https://cdn.test/a.mp3"}
        assert seen == ["https://provider.test/tts"]
