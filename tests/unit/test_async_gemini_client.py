"""
Tests for AsyncGeminiHTTPClient and AsyncRequestExecutor using respx mocks.
"""

import asyncio
import json

import httpx
import pytest
import respx

from src.gemini_transport.async_client import AsyncGeminiHTTPClient, AsyncRequestExecutor
from src.gemini_transport.core.auth import ApiKeyAuth
from src.gemini_transport.core.config import RetryPolicy, TimeoutConfig, TransportConfig
from src.gemini_transport.core.exceptions import (
    AuthError,
    NetworkError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)
from src.gemini_transport.core.executor import TransportRequest
from src.gemini_transport.core.logging.filters import get_correlation_id

API = "https://generativelanguage.googleapis.com/v1"
GENERATE = f"{API}/models/x:generateContent"
STREAM = f"{API}/models/x:streamGenerateContent"
KEY = "AIzaSyTEST-key-0123456789abcdefghijk"


class AsyncRecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def async_sleep():
    return AsyncRecordingSleep()


@pytest.fixture
def async_client(async_sleep):
    return AsyncGeminiHTTPClient(ApiKeyAuth(KEY), TransportConfig(), sleep=async_sleep)


class TestAsyncUnary:

    @respx.mock
    @pytest.mark.asyncio
    async def test_success(self, async_client):
        route = respx.post(GENERATE).mock(return_value=httpx.Response(200, json={"candidates": []}))

        async with async_client:
            result = await async_client.post("models/x:generateContent", body={"contents": []})

        assert result == {"candidates": []}
        request = route.calls.last.request
        assert request.headers["x-goog-api-key"] == KEY
        assert json.loads(request.content) == {"contents": []}

    @respx.mock
    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, async_client, async_sleep):
        route = respx.post(GENERATE).mock(side_effect=[
            httpx.Response(429, text='{"error": {"code": 429, "retry_after": 1}}'),
            httpx.Response(200, json={"candidates": []}),
        ])

        async with async_client:
            assert await async_client.post("models/x:generateContent", body={}) == {"candidates": []}

        assert route.call_count == 2
        assert async_sleep.delays == [1.0]

    @respx.mock
    @pytest.mark.asyncio
    async def test_auth_failure_single_call(self, async_client, async_sleep):
        route = respx.get(f"{API}/models").mock(return_value=httpx.Response(403))

        async with async_client:
            with pytest.raises(AuthError) as exc_info:
                await async_client.get("models")

        assert exc_info.value.message == "Access forbidden"
        assert route.call_count == 1
        assert async_sleep.delays == []

    @respx.mock
    @pytest.mark.asyncio
    async def test_exhaustion(self, async_client, async_sleep):
        route = respx.post(GENERATE).mock(return_value=httpx.Response(502))

        async with async_client:
            with pytest.raises(ServerError) as exc_info:
                await async_client.post("models/x:generateContent", body={})

        assert exc_info.value.status_code == 502
        assert route.call_count == 3
        assert async_sleep.delays == [1.0, 2.0]

    @respx.mock
    @pytest.mark.asyncio
    async def test_timeout(self, async_client):
        respx.post(GENERATE).mock(side_effect=httpx.ReadTimeout("timed out"))

        async with async_client:
            with pytest.raises(TimeoutError) as exc_info:
                await async_client.post("models/x:generateContent", body={})

        assert exc_info.value.timeout == 30.0

    @respx.mock
    @pytest.mark.asyncio
    async def test_connect_error_then_success(self, async_client, async_sleep):
        respx.get(f"{API}/models").mock(side_effect=[
            httpx.ConnectError("refused"),
            httpx.Response(200, json={"models": []}),
        ])

        async with async_client:
            assert await async_client.get("models") == {"models": []}
        assert async_sleep.delays == [1.0]

    @respx.mock
    @pytest.mark.asyncio
    async def test_concurrent_calls_keep_own_correlation_id(self, async_client):
        seen = []

        def record(request):
            seen.append(get_correlation_id())
            return httpx.Response(200, json={"candidates": []})

        respx.post(GENERATE).mock(side_effect=record)

        async with async_client:
            await asyncio.gather(
                async_client.post("models/x:generateContent", body={}),
                async_client.post("models/x:generateContent", body={}),
            )

        assert len(seen) == 2
        assert None not in seen
        assert seen[0] != seen[1]
        assert get_correlation_id() is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_invalid_json(self, async_client):
        respx.get(f"{API}/models").mock(return_value=httpx.Response(200, text="not json"))

        async with async_client:
            with pytest.raises(ValidationError):
                await async_client.get("models")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = AsyncGeminiHTTPClient(ApiKeyAuth())
        with pytest.raises(AuthError):
            await client.get("models")
        await client.close()


class TestAsyncStreaming:

    @respx.mock
    @pytest.mark.asyncio
    async def test_post_stream(self, async_client):
        route = respx.post(STREAM).mock(
            return_value=httpx.Response(200, content=b'[{"a": 1},\r\n{"b": 2}]')
        )

        async with async_client:
            values = [v async for v in async_client.post_stream("models/x:streamGenerateContent", body={})]

        assert values == [{"a": 1}, {"b": 2}]
        assert route.calls.last.request.headers["Accept"] == "text/event-stream"
        assert route.calls.last.request.headers["Cache-Control"] == "no-cache"

    @respx.mock
    @pytest.mark.asyncio
    async def test_stream_open_retried(self, async_client, async_sleep):
        respx.post(STREAM).mock(side_effect=[
            httpx.Response(500),
            httpx.Response(200, content=b'{"a": 1}\n{"b": 2}'),
        ])

        async with async_client:
            values = [v async for v in async_client.post_stream("models/x:streamGenerateContent")]

        assert values == [{"a": 1}, {"b": 2}]
        assert async_sleep.delays == [1.0]

    @respx.mock
    @pytest.mark.asyncio
    async def test_stream_error_status(self):
        respx.post(STREAM).mock(return_value=httpx.Response(
            429, json={"error": {"code": 429, "message": "Resource has been exhausted"}}
        ))
        client = AsyncGeminiHTTPClient(
            ApiKeyAuth(KEY), TransportConfig(retry=RetryPolicy.no_retry())
        )

        async with client:
            with pytest.raises(RateLimitError) as exc_info:
                async for _ in client.post_stream("models/x:streamGenerateContent"):
                    pass

        assert exc_info.value.message == "Resource has been exhausted"
        assert exc_info.value.retry_after == 60.0


class TestAsyncRequestExecutor:

    @respx.mock
    @pytest.mark.asyncio
    async def test_executor_with_injected_client(self, async_sleep):
        respx.post(GENERATE).mock(side_effect=[
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
        ])

        async with httpx.AsyncClient() as http:
            executor = AsyncRequestExecutor(http, RetryPolicy(), TimeoutConfig(), sleep=async_sleep)
            with pytest.raises(NetworkError) as exc_info:
                await executor.execute_unary(lambda: TransportRequest("POST", GENERATE, body=b"{}"))

        assert exc_info.value.status_code is None
        assert async_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        http = httpx.AsyncClient()
        client = AsyncGeminiHTTPClient(ApiKeyAuth(KEY), client=http)
        async with client:
            pass
        assert not http.is_closed
        await http.aclose()
