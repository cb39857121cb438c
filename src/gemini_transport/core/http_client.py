# src/gemini_transport/core/http_client.py
"""
HTTP клиент Gemini API.

Собирает URL и заголовки, сериализует тело и отдаёт выполнение
RequestExecutor (retry, классификация ошибок, streaming).
"""

import json
import mimetypes
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union
from urllib.parse import urlparse

import requests

from .auth import ApiKeyAuth
from .config import TransportConfig
from .exceptions import AuthError, ValidationError
from .executor import RequestExecutor, TransportRequest
from .logging import TransportLogger

JSONBody = Optional[Mapping[str, Any]]

_DUPLICATE_SLASHES = re.compile(r'/{2,}')

# Свой логгер клиента, не трогает настройки пакетного "gemini_transport"
REQUEST_LOGGER_NAME = "gemini_transport.requests"

STREAM_HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
}


class BaseGeminiClient:
    """URL и заголовки - общее для sync и async клиентов."""

    def __init__(self, auth: ApiKeyAuth, config: Optional[TransportConfig] = None):
        self._auth = auth
        self._config = config or TransportConfig()
        self._logger: Optional[TransportLogger] = None
        if self._config.logging is not None:
            self._logger = TransportLogger(self._config.logging, name=REQUEST_LOGGER_NAME)

    @property
    def config(self) -> TransportConfig:
        return self._config

    @property
    def auth(self) -> ApiKeyAuth:
        return self._auth

    def build_url(self, endpoint: str) -> str:
        """
        <base_url>/<api_version>/<endpoint>, повторные слэши в пути схлопываются.

        Абсолютные URL возвращаются как есть.

        Examples:
            >>> client.build_url("models/gemini-pro:generateContent")
            'https://generativelanguage.googleapis.com/v1/models/gemini-pro:generateContent'
        """
        if urlparse(endpoint).scheme in ("http", "https"):
            return endpoint

        parsed = urlparse(self._config.base_url)
        path = f"{parsed.path}/{self._config.api_version.value}/{endpoint}"
        path = _DUPLICATE_SLASHES.sub('/', path)
        return parsed._replace(path=path).geturl()

    def build_headers(
        self,
        extra: Optional[Mapping[str, str]] = None,
        *,
        stream: bool = False
    ) -> Dict[str, str]:
        """
        Заголовки запроса: базовые, из конфига, от вызывающего, затем аутентификация.

        Raises:
            AuthError: Ключ не настроен
        """
        headers = {
            "User-Agent": self._config.user_agent,
            "Accept": "application/json",
        }
        headers.update(self._config.headers)
        if extra:
            headers.update(extra)

        try:
            headers.update(self._auth.get_auth_headers())
        except AuthError as exc:
            raise AuthError(
                f"Authentication not configured: {exc.message}",
                original_error=exc
            ) from exc

        if stream:
            headers.update(STREAM_HEADERS)
        return headers

    @staticmethod
    def _encode_body(body: JSONBody) -> Optional[bytes]:
        if body is None:
            return None
        return json.dumps(body, ensure_ascii=False).encode("utf-8")


class GeminiHTTPClient(BaseGeminiClient):
    """
    Синхронный клиент Gemini API.

    Args:
        auth: Источник API ключа
        config: Конфигурация транспорта
        session: Свой requests.Session (закрывать его - забота владельца)
        sleep: Функция ожидания между попытками

    Examples:
        >>> with GeminiHTTPClient(ApiKeyAuth.from_env()) as client:
        ...     client.post("models/gemini-pro:generateContent", body={...})

        >>> for chunk in client.post_stream("models/gemini-pro:streamGenerateContent", body={...}):
        ...     print(chunk)
    """

    def __init__(
        self,
        auth: ApiKeyAuth,
        config: Optional[TransportConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        super().__init__(auth, config)
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self._executor = RequestExecutor(
            self._session,
            self._config.retry,
            self._config.timeout,
            sleep=sleep,
            logger=self._logger,
            verify_ssl=self._config.verify_ssl,
        )

    @property
    def session(self) -> requests.Session:
        return self._session

    # ==================== HTTP методы ====================

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        body: JSONBody = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        """Unary запрос с retry, возвращает JSON объект ответа."""
        url = self.build_url(endpoint)
        request_headers = self.build_headers(headers)
        payload = self._encode_body(body)

        def build() -> TransportRequest:
            return TransportRequest(method, url, request_headers, payload, params)

        return self._executor.execute_unary(build)

    def get(self, endpoint: str, *, params: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        return self.request("GET", endpoint, params=params, headers=headers)

    def post(self, endpoint: str, *, body: JSONBody = None, params: Optional[Mapping[str, Any]] = None,
             headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        return self.request("POST", endpoint, body=body, params=params, headers=headers)

    def put(self, endpoint: str, *, body: JSONBody = None, params: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        return self.request("PUT", endpoint, body=body, params=params, headers=headers)

    def patch(self, endpoint: str, *, body: JSONBody = None, params: Optional[Mapping[str, Any]] = None,
              headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        return self.request("PATCH", endpoint, body=body, params=params, headers=headers)

    def delete(self, endpoint: str, *, params: Optional[Mapping[str, Any]] = None,
               headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        return self.request("DELETE", endpoint, params=params, headers=headers)

    def post_stream(
        self,
        endpoint: str,
        *,
        body: JSONBody = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Streaming POST: ленивый итератор JSON объектов.

        Заголовки и URL собираются сразу (AuthError поднимается здесь),
        запрос уходит на первом next().
        """
        url = self.build_url(endpoint)
        request_headers = self.build_headers(headers, stream=True)
        payload = self._encode_body(body)

        def build() -> TransportRequest:
            return TransportRequest("POST", url, request_headers, payload, params, stream=True)

        return self._executor.execute_streaming(build)

    def upload_file(
        self,
        endpoint: str,
        path: Union[str, Path],
        *,
        field_name: str = "file",
        mime_type: Optional[str] = None,
        additional_fields: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Multipart загрузка файла.

        Файл перечитывается на каждую попытку.

        Raises:
            ValidationError: Файл не читается
        """
        file_path = Path(path)
        url = self.build_url(endpoint)
        request_headers = multipart_headers(self.build_headers(headers))
        content_type = upload_content_type(file_path, mime_type)
        fields = dict(additional_fields or {})

        def build() -> TransportRequest:
            content = read_upload(file_path)
            return TransportRequest(
                "POST",
                url,
                request_headers,
                files={field_name: (file_path.name, content, content_type)},
                data=fields,
            )

        return self._executor.execute_unary(build)

    # ==================== Lifecycle ====================

    def close(self) -> None:
        """Закрыть сессию (только собственную) и логгер."""
        if self._owns_session:
            self._session.close()
        if self._logger is not None:
            self._logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def multipart_headers(headers: Dict[str, str]) -> Dict[str, str]:
    # Content-Type с boundary выставляет транспорт
    return {k: v for k, v in headers.items() if k.lower() != "content-type"}


def read_upload(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ValidationError(f"Cannot read file: {path}", {"path": str(path)}, original_error=exc) from exc


def upload_content_type(path: Path, mime_type: Optional[str]) -> str:
    return mime_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
