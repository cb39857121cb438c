# src/gemini_transport/core/executor.py
"""
Request executor - retry цикл поверх транспорта.

Executor ведёт RetryEngine: отправляет попытку, классифицирует результат,
ждёт задержку политики и повторяет. Наружу выходят только ошибки
GeminiTransportError; последняя классифицированная ошибка поднимается как есть.

Два режима:
- unary: один JSON объект в ответе
- streaming: ленивый итератор JSON объектов из тела ответа
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, TypeVar

import requests
import urllib3

from .config import RetryPolicy, TimeoutConfig
from .error_classifier import classify_status_code, classify_transport_failure, extract_error_message
from .exceptions import GeminiTransportError, ValidationError
from .logging.filters import reset_correlation_id, set_correlation_id
from .retry_engine import RetryEngine, RetryState
from .stream_decoder import StreamDecoder
from ..utils.sanitizer import mask_sensitive_data, sanitize_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

STREAM_CHUNK_SIZE = 8192

# urllib3 ошибки чтения тела приходят из raw.read1 без обёртки requests
_TRANSPORT_ERRORS = (requests.exceptions.RequestException, urllib3.exceptions.HTTPError, OSError)


@dataclass(frozen=True)
class TransportRequest:
    """
    Одна попытка запроса в том виде, в каком она уходит в транспорт.

    Args:
        method: HTTP метод
        url: Полный URL
        headers: Заголовки
        body: Тело (уже сериализованный JSON)
        params: Query параметры
        files: Файлы для multipart (формат requests/httpx)
        data: Поля формы для multipart
        stream: Ответ читается потоком
    """
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    params: Optional[Mapping[str, Any]] = None
    files: Optional[Mapping[str, Any]] = None
    data: Optional[Mapping[str, str]] = None
    stream: bool = False


RequestBuilder = Callable[[], TransportRequest]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RESPONSE HANDLING (общее для sync и async)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def error_from_response(status_code: int, body: Optional[str]) -> GeminiTransportError:
    """Ошибка для ответа со статусом >= 400."""
    message = extract_error_message(body, "")
    return classify_status_code(status_code, message, body)


def iter_available(response: requests.Response, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Байты тела по мере прихода с сети.

    iter_content(None) ждёт конца тела, если ответ не chunked (Content-Length
    или закрытие соединения). read1 отдаёт то, что уже пришло, не дожидаясь
    chunk_size байт; gzip и прочие кодировки снимаются.
    """
    raw = response.raw
    while True:
        chunk = raw.read1(chunk_size, decode_content=True)
        if not chunk:
            return
        yield chunk


def parse_json_object(content: bytes) -> Dict[str, Any]:
    """
    Разобрать тело успешного ответа.

    Пустое тело - пустой объект (DELETE отвечает без тела).

    Raises:
        ValidationError: Тело не JSON или не объект
    """
    if not content or not content.strip():
        return {}

    try:
        payload = json.loads(content)
    except ValueError as exc:
        raise ValidationError(f"Invalid response format: {exc}", {}, original_error=exc) from exc

    if not isinstance(payload, dict):
        raise ValidationError(
            f"Invalid response format: expected JSON object, got {type(payload).__name__}",
            {}
        )
    return payload


class CallLog:
    """Поля и замер времени одного логического вызова для структурных логов."""

    def __init__(self, request_logger, policy: RetryPolicy, request: TransportRequest):
        self._logger = request_logger
        self.max_attempts = policy.max_attempts
        self.method = request.method
        self.url = sanitize_url(request.url)
        self.correlation_id = str(uuid.uuid4())
        self.start_time = time.time()
        self._token = set_correlation_id(self.correlation_id)

    def finish(self) -> None:
        """Вернуть correlation id, который был до вызова."""
        if self._token is not None:
            reset_correlation_id(self._token)
            self._token = None

    def _emit(self, level: str, message: str, **fields: Any) -> None:
        fields.update(
            method=self.method,
            url=self.url,
            correlation_id=self.correlation_id,
            duration_ms=round((time.time() - self.start_time) * 1000, 2),
        )
        if self._logger is not None:
            getattr(self._logger, level)(message, **fields)
        else:
            logger.log(getattr(logging, level.upper()), "%s %s", message, mask_sensitive_data(fields))

    def started(self, stream: bool) -> None:
        self._emit("debug", "Request started", max_attempts=self.max_attempts, stream=stream)

    def completed(self, attempt: int, **fields: Any) -> None:
        self._emit("info", "Request completed", attempt=attempt, **fields)

    def will_retry(self, attempt: int, error: GeminiTransportError, wait_time: float) -> None:
        self._emit(
            "warning",
            "Request error (will retry)",
            attempt=attempt,
            max_attempts=self.max_attempts,
            error=str(error),
            error_type=type(error).__name__,
            wait_time_s=round(wait_time, 2),
        )

    def failed(self, attempt: int, error: GeminiTransportError) -> None:
        self._emit(
            "error",
            "Request failed",
            attempt=attempt,
            max_attempts=self.max_attempts,
            error=str(error),
            error_type=type(error).__name__,
            is_max_attempts=attempt >= self.max_attempts,
        )

    def stream_interrupted(self, error: GeminiTransportError, values: int) -> None:
        self._emit(
            "error",
            "Stream interrupted",
            error=str(error),
            error_type=type(error).__name__,
            values_emitted=values,
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SYNC EXECUTOR
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RequestExecutor:
    """
    Синхронный executor поверх requests.Session.

    Args:
        session: Транспорт
        policy: Политика retry
        timeout: Таймауты одной попытки
        sleep: Функция ожидания (подменяется в тестах)
        logger: TransportLogger (None - стандартный logging модуля)
        verify_ssl: Проверять SSL сертификаты

    Examples:
        >>> executor = RequestExecutor(requests.Session(), RetryPolicy(), TimeoutConfig())
        >>> executor.execute_unary(lambda: TransportRequest("GET", url, headers))
        {'models': [...]}
    """

    def __init__(
        self,
        session: requests.Session,
        policy: RetryPolicy,
        timeout: TimeoutConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        logger=None,
        verify_ssl: bool = True
    ):
        self.session = session
        self.policy = policy
        self.timeout = timeout
        self._sleep = sleep
        self._logger = logger
        self._verify_ssl = verify_ssl

    def execute_unary(self, build_request: RequestBuilder) -> Dict[str, Any]:
        """
        Выполнить запрос с retry и вернуть JSON объект ответа.

        Args:
            build_request: Собирает запрос; вызывается на каждую попытку

        Raises:
            GeminiTransportError: Последняя ошибка, когда retry закончились
        """
        result, _ = self._run(build_request, self._send_unary, stream=False)
        return result

    def execute_streaming(self, build_request: RequestBuilder) -> Iterator[Dict[str, Any]]:
        """
        Выполнить streaming запрос; JSON объекты отдаются по мере готовности.

        Запрос уходит только на первом next(). Retry применяется к открытию
        потока; обрыв после открытия классифицируется и поднимается без retry.
        """
        response, call_log = self._run(build_request, self._open_stream, stream=True)
        decoder = StreamDecoder()
        emitted = 0
        try:
            try:
                for chunk in iter_available(response):
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
            response.close()

    # ==================== Retry loop ====================

    def _run(
        self,
        build_request: RequestBuilder,
        send: Callable[[TransportRequest], T],
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
                    result = send(request)
                except GeminiTransportError as error:
                    transition = engine.on_failure(error)
                    if transition.state is RetryState.EXHAUSTED:
                        call_log.failed(attempt.number, error)
                        raise

                    call_log.will_retry(attempt.number, error, transition.delay)
                    if transition.delay > 0:
                        self._sleep(transition.delay)
                    attempt = engine.advance()
                    request = build_request()
                    continue

                engine.on_success()
                call_log.completed(attempt.number)
                return result, call_log
        finally:
            call_log.finish()

    # ==================== Transport ====================

    def _request(self, request: TransportRequest, stream: bool) -> requests.Response:
        try:
            return self.session.request(
                method=request.method,
                url=request.url,
                headers=dict(request.headers),
                params=request.params,
                data=request.body if request.files is None else request.data,
                files=request.files,
                timeout=self.timeout.as_tuple(),
                verify=self._verify_ssl,
                stream=stream,
            )
        except _TRANSPORT_ERRORS as exc:
            raise classify_transport_failure(exc, self.timeout.total) from exc

    def _send_unary(self, request: TransportRequest) -> Dict[str, Any]:
        response = self._request(request, stream=False)
        try:
            content = response.content
        except _TRANSPORT_ERRORS as exc:
            raise classify_transport_failure(exc, self.timeout.total) from exc
        finally:
            response.close()

        if response.status_code >= 400:
            raise error_from_response(response.status_code, content.decode("utf-8", errors="replace"))
        return parse_json_object(content)

    def _open_stream(self, request: TransportRequest) -> requests.Response:
        response = self._request(request, stream=True)
        if response.status_code < 400:
            return response

        try:
            body = response.text
        except _TRANSPORT_ERRORS as exc:
            raise classify_transport_failure(exc, self.timeout.total) from exc
        finally:
            response.close()
        raise error_from_response(response.status_code, body)
