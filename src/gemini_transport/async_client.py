# src/gemini_transport/async_client.py
"""
Асинхронный клиент Gemini API на базе httpx.

Та же семантика, что у GeminiHTTPClient: retry, классификация ошибок,
streaming. Корутина приостанавливается только на запросе к транспорту
и на задержке между попытками.
"""

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Tuple, TypeVar, Union

import httpx

from .core.auth import ApiKeyAuth
from .core.config import RetryPolicy, TimeoutConfig, TransportConfig
from .core.error_classifier import classify_transport_failure
from .core.exceptions import GeminiTransportError
from .core.executor import (
    RequestBuilder,
    TransportRequest,
    CallLog,
    error_from_response,
    parse_json_object,
)
from .core.http_client import JSONBody, BaseGeminiClient, multipart_headers, read_upload, upload_content_type
from .core.retry_engine import RetryEngine, RetryState
from .core.stream_decoder import StreamDecoder

T = TypeVar("T")

_TRANSPORT_ERRORS = (httpx.HTTPError, OSError, asyncio.TimeoutError)


def _httpx_timeout(timeout: TimeoutConfig) -> httpx.Timeout:
    return httpx.Timeout(timeout.read, connect=timeout.connect)


class AsyncRequestExecutor:
    """
    Асинхронный executor поверх httpx.AsyncClient.

    Args:
        client: Транспорт
        policy: Политика retry
        timeout: Таймауты одной попытки
        sleep: Корутина ожидания (подменяется в тестах)
        logger: TransportLogger
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy,
        timeout: TimeoutConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger=None
    ):
        self.client = client
        self.policy = policy
        self.timeout = timeout
        self._sleep = sleep
        self._logger = logger

    async def execute_unary(self, build_request: RequestBuilder) -> Dict[str, Any]:
        """Выполнить запрос с retry и вернуть JSON объект ответа."""
        result, _ = await self._run(build_request, self._send_unary, stream=False)
        return result

    async def execute_streaming(self, build_request: RequestBuilder) -> AsyncIterator[Dict[str, Any]]:
        """
        Async generator JSON объектов.

        Retry только на открытие потока; обрыв потом поднимается без retry.
        """
        response, call_log = await self._run(build_request, self._open_stream, stream=True)
        decoder = StreamDecoder()
        emitted = 0
        try:
            try:
                async for chunk in response.aiter_bytes():
                    for value in decoder.feed(chunk):
                        emitted += 1
                        yield value
            except _TRANSPORT_ERRORS as exc:
                error = classify_transport_failure(exc, self.timeout.total)
                call_log.stream_interrupted(error, emitted)
                raise error from exc

            for value in decoder.close():
                emitted += 1
                yield value
        finally:
            await response.aclose()

    async def _run(
        self,
        build_request: RequestBuilder,
        send: Callable[[TransportRequest], Awaitable[T]],
        *,
        stream: bool
    ) -> Tuple[T, CallLog]:
        engine = RetryEngine(self.policy)
        attempt = engine.start()
        request = build_request()
        call_log = CallLog(self._logger, self.policy, request)
        call_log.started(stream)

        try:
            while True:
                try:
                    result = await send(request)
                except GeminiTransportError as error:
                    transition = engine.on_failure(error)
                    if transition.state is RetryState.EXHAUSTED:
                        call_log.failed(attempt.number, error)
                        raise

                    call_log.will_retry(attempt.number, error, transition.delay)
                    if transition.delay > 0:
                        await self._sleep(transition.delay)
                    attempt = engine.advance()
                    request = build_request()
                    continue

                engine.on_success()
                call_log.completed(attempt.number)
                return result, call_log
        finally:
            call_log.finish()

    async def _send(self, request: TransportRequest, stream: bool) -> httpx.Response:
        http_request = self.client.build_request(
            request.method,
            request.url,
            headers=dict(request.headers),
            params=request.params,
            content=request.body if request.files is None else None,
            files=request.files,
            data=request.data if request.files is not None else None,
            timeout=_httpx_timeout(self.timeout),
        )
        try:
            return await self.client.send(http_request, stream=stream)
        except _TRANSPORT_ERRORS as exc:
            raise classify_transport_failure(exc, self.timeout.total) from exc

    async def _send_unary(self, request: TransportRequest) -> Dict[str, Any]:
        response = await self._send(request, stream=False)
        if response.status_code >= 400:
            raise error_from_response(response.status_code, response.text)
        return parse_json_object(response.content)

    async def _open_stream(self, request: TransportRequest) -> httpx.Response:
        response = await self._send(request, stream=True)
        if response.status_code < 400:
            return response

        try:
            await response.aread()
        except _TRANSPORT_ERRORS as exc:
            raise classify_transport_failure(exc, self.timeout.total) from exc
        finally:
            await response.aclose()
        raise error_from_response(response.status_code, response.text)


class AsyncGeminiHTTPClient(BaseGeminiClient):
    """
    Асинхронный клиент Gemini API.

    Examples:
        >>> async with AsyncGeminiHTTPClient(ApiKeyAuth.from_env()) as client:
        ...     data = await client.post("models/gemini-pro:generateContent", body={...})
        ...     async for chunk in client.post_stream("models/gemini-pro:streamGenerateContent", body={...}):
        ...         print(chunk)
    """

    def __init__(
        self,
        auth: ApiKeyAuth,
        config: Optional[TransportConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        super().__init__(auth, config)
        self._owns_client = client is None
        self._client = client
        self._sleep = sleep
        self._executor: Optional[AsyncRequestExecutor] = None

    def _get_executor(self) -> AsyncRequestExecutor:
        """Lazy: httpx.AsyncClient создаётся внутри работающего event loop."""
        if self._executor is None:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=_httpx_timeout(self._config.timeout),
                    verify=self._config.verify_ssl,
                )
            self._executor = AsyncRequestExecutor(
                self._client,
                self._config.retry,
                self._config.timeout,
                sleep=self._sleep,
                logger=self._logger,
            )
        return self._executor

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        body: JSONBody = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        url = self.build_url(endpoint)
        request_headers = self.build_headers(headers)
        payload = self._encode_body(body)

        def build() -> TransportRequest:
            return TransportRequest(method, url, request_headers, payload, params)

        return await self._get_executor().execute_unary(build)

    async def get(self, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("POST", endpoint, **kwargs)

    async def put(self, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("PUT", endpoint, **kwargs)

    async def patch(self, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("PATCH", endpoint, **kwargs)

    async def delete(self, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("DELETE", endpoint, **kwargs)

    def post_stream(
        self,
        endpoint: str,
        *,
        body: JSONBody = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """Streaming POST: async iterator JSON объектов (запрос уходит на первом __anext__)."""
        url = self.build_url(endpoint)
        request_headers = self.build_headers(headers, stream=True)
        payload = self._encode_body(body)

        def build() -> TransportRequest:
            return TransportRequest("POST", url, request_headers, payload, params, stream=True)

        return self._get_executor().execute_streaming(build)

    async def upload_file(
        self,
        endpoint: str,
        path: Union[str, Path],
        *,
        field_name: str = "file",
        mime_type: Optional[str] = None,
        additional_fields: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        """Multipart загрузка файла (перечитывается на каждую попытку)."""
        file_path = Path(path)
        url = self.build_url(endpoint)
        request_headers = multipart_headers(self.build_headers(headers))
        content_type = upload_content_type(file_path, mime_type)
        fields = dict(additional_fields or {})

        def build() -> TransportRequest:
            return TransportRequest(
                "POST",
                url,
                request_headers,
                files={field_name: (file_path.name, read_upload(file_path), content_type)},
                data=fields,
            )

        return await self._get_executor().execute_unary(build)

    async def close(self) -> None:
        """Закрыть собственный httpx клиент и логгер."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._executor = None
        if self._logger is not None:
            self._logger.close()

    async def __aenter__(self) -> "AsyncGeminiHTTPClient":
        self._get_executor()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
