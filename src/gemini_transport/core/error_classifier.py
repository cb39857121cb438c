# src/gemini_transport/core/error_classifier.py
"""
Классификация сбоев транспорта в ErrorKind.

Обе функции тотальны: любой вход даёт ровно одну ошибку из таксономии,
сами они никогда не бросают исключений.
"""

import asyncio
import builtins
import json
import logging
import re
import socket
from typing import Optional

import httpx
import requests
import urllib3

from .exceptions import (
    AuthError,
    GeminiTransportError,
    NetworkError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60.0

# Тело ошибки API не стабильно - ищем поле текстом, а не строгим JSON
_RETRY_AFTER_PATTERN = re.compile(r'"retry_after["\s]*:\s*(\d+)')

# builtins.TimeoutError - это и socket.timeout начиная с 3.10
_TIMEOUT_ERRORS = (
    requests.exceptions.Timeout,
    httpx.TimeoutException,
    asyncio.TimeoutError,
    builtins.TimeoutError,
    socket.timeout,
    urllib3.exceptions.TimeoutError,
)

_MALFORMED_BODY_ERRORS = (
    ValueError,
    requests.exceptions.InvalidJSONError,
    httpx.DecodingError,
)

_CONNECTION_ERRORS = (
    requests.exceptions.RequestException,
    httpx.TransportError,
    urllib3.exceptions.HTTPError,
    OSError,
)


def extract_retry_after(body: Optional[str]) -> float:
    """
    Достать retry_after (сек) из тела ответа 429.

    Args:
        body: Текст тела ответа

    Returns:
        Секунды; DEFAULT_RETRY_AFTER если поля нет или оно не число

    Examples:
        >>> extract_retry_after('{"error": {"retry_after": 5}}')
        5.0
        >>> extract_retry_after(None)
        60.0
    """
    if not body:
        return DEFAULT_RETRY_AFTER

    match = _RETRY_AFTER_PATTERN.search(body)
    if match is None:
        return DEFAULT_RETRY_AFTER

    try:
        return float(int(match.group(1)))
    except (ValueError, OverflowError):
        return DEFAULT_RETRY_AFTER


def extract_error_message(body: Optional[str], default: str) -> str:
    """
    Сообщение из конверта ошибки API: {"error": {"message": "..."}}.

    Любая другая форма тела - возвращаем default.
    """
    if not body:
        return default

    try:
        payload = json.loads(body)
    except ValueError:
        return default

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
    return default


def classify_status_code(
    status_code: int,
    message: str = "",
    body: Optional[str] = None
) -> GeminiTransportError:
    """
    Конвертировать HTTP статус в ошибку таксономии.

    Args:
        status_code: HTTP статус
        message: Сообщение (пустое - берётся дефолт для вида)
        body: Тело ответа (нужно только для 429)

    Returns:
        Ровно одна ошибка из ErrorKind

    Examples:
        >>> classify_status_code(401, "").kind
        <ErrorKind.AUTH: 'auth'>
        >>> classify_status_code(503, "").status_code
        503
    """
    code = str(status_code)

    if status_code == 400:
        return ValidationError(message or "Bad request", {}, code=code)

    elif status_code == 401:
        return AuthError(message or "Authentication failed", code=code)

    elif status_code == 403:
        return AuthError(message or "Access forbidden", code=code)

    elif status_code == 404:
        return NetworkError(message or "Resource not found", status_code=status_code, code=code)

    elif status_code == 429:
        retry_after = extract_retry_after(body)
        return RateLimitError(message or "Rate limit exceeded", retry_after, code=code)

    elif 500 <= status_code <= 504:
        return ServerError(message or "Server error", status_code, code=code)

    elif 400 <= status_code < 500:
        return ValidationError(message or "Client error", {}, code=code)

    elif status_code >= 500:
        return ServerError(message or "Server error", status_code, code=code)

    return NetworkError(message or "HTTP error", status_code=status_code, code=code)


def _caused_by_timeout(error: BaseException) -> bool:
    """
    Таймаут, завёрнутый в другое исключение.

    requests поднимает ReadTimeoutError urllib3 при чтении тела как
    ConnectionError(ReadTimeoutError(...)), поэтому смотрим args, reason и цепочку.
    """
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if current is not error and isinstance(current, _TIMEOUT_ERRORS):
            return True

        linked = list(current.args) + [
            getattr(current, "reason", None),
            current.__cause__,
            current.__context__,
        ]
        pending.extend(item for item in linked if isinstance(item, BaseException))
    return False


def classify_transport_failure(
    error: BaseException,
    timeout: float
) -> GeminiTransportError:
    """
    Конвертировать исключение транспорта (requests / httpx / socket) в ошибку таксономии.

    Args:
        error: Исключение транспорта
        timeout: Настроенный таймаут попытки (для TimeoutError)

    Returns:
        Ровно одна ошибка из ErrorKind. Уже классифицированные ошибки
        возвращаются как есть.

    Examples:
        >>> err = classify_transport_failure(requests.exceptions.ConnectTimeout(), 30)
        >>> err.timeout
        30.0
    """
    if isinstance(error, GeminiTransportError):
        return error

    # Таймаут проверяем первым: ConnectTimeout - тоже ConnectionError,
    # а builtins.TimeoutError - подкласс OSError
    if isinstance(error, _TIMEOUT_ERRORS) or _caused_by_timeout(error):
        return TimeoutError("Request timed out", timeout, original_error=error)

    if isinstance(error, _MALFORMED_BODY_ERRORS):
        return ValidationError(
            f"Invalid response format: {error}",
            {},
            original_error=error
        )

    if isinstance(error, _CONNECTION_ERRORS):
        return NetworkError(
            f"Network connection failed: {error}",
            status_code=None,
            original_error=error
        )

    logger.debug("Unrecognized transport failure %s: %s", type(error).__name__, error)
    return NetworkError(
        f"Unexpected error: {error}",
        status_code=None,
        original_error=error
    )
