"""
Иерархия ошибок транспортного слоя.

Каждый сбой (сетевой, таймаут, HTTP статус >= 400) приводится ровно к одному
виду из закрытого набора ErrorKind:

- AUTH        - ключ не задан / отклонён (401, 403)
- RATE_LIMIT  - 429, несёт retry_after
- VALIDATION  - 400 и прочие 4xx, битый JSON в ответе
- NETWORK     - ошибки соединения, 404, прочие коды
- TIMEOUT     - истёк таймаут попытки
- SERVER      - 5xx
- QUOTA       - исчерпана квота
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class ErrorKind(str, Enum):
    """Закрытый набор видов ошибок."""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    QUOTA = "quota"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BASE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class GeminiTransportError(Exception):
    """
    Базовая ошибка транспортного слоя.

    Args:
        message: Сообщение об ошибке
        code: Код ошибки (обычно HTTP статус строкой)
        original_error: Исходное исключение транспорта
    """

    kind: ErrorKind
    retryable: bool = False
    fatal: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None
    ):
        self.message = message
        self.code = code
        self.original_error = original_error
        super().__init__(message)

    def _details(self) -> str:
        return ""

    def __str__(self) -> str:
        details = self._details()
        if details:
            return f"{self.message} ({details})"
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"

    def __eq__(self, other: Any) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def _identity(self) -> tuple:
        return (self.kind, self.message, self.code)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ФАТАЛЬНЫЕ (ошибка вызывающей стороны)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class AuthError(GeminiTransportError):
    """Аутентификация не прошла (401/403 или ключ не настроен)."""
    kind = ErrorKind.AUTH
    fatal = True


class ValidationError(GeminiTransportError):
    """
    Невалидный запрос или ответ.

    Args:
        message: Сообщение
        field_errors: Ошибки по полям (API их не присылает - обычно пусто)
    """
    kind = ErrorKind.VALIDATION
    fatal = True

    def __init__(
        self,
        message: str,
        field_errors: Optional[Mapping[str, str]] = None,
        **kwargs: Any
    ):
        self.field_errors: Mapping[str, str] = MappingProxyType(dict(field_errors or {}))
        super().__init__(message, **kwargs)

    def _details(self) -> str:
        return f"fields: {dict(self.field_errors)}" if self.field_errors else ""

    def _identity(self) -> tuple:
        return super()._identity() + (tuple(sorted(self.field_errors.items())),)


class QuotaError(GeminiTransportError):
    """Квота API исчерпана."""
    kind = ErrorKind.QUOTA
    fatal = True


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ВРЕМЕННЫЕ (решение о retry принимает RetryPolicy)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RateLimitError(GeminiTransportError):
    """
    429 Rate Limit.

    Args:
        message: Сообщение
        retry_after: Сколько ждать по мнению сервера (сек)
    """
    kind = ErrorKind.RATE_LIMIT
    retryable = True

    def __init__(self, message: str, retry_after: float, **kwargs: Any):
        self.retry_after = float(retry_after)
        super().__init__(message, **kwargs)

    def _details(self) -> str:
        return f"retry after: {self.retry_after:g}s"

    def _identity(self) -> tuple:
        return super()._identity() + (self.retry_after,)


class NetworkError(GeminiTransportError):
    """
    Сетевая ошибка.

    status_code есть только когда сервер ответил (например 404),
    для DNS / connection refused / reset он None.
    """
    kind = ErrorKind.NETWORK
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs: Any):
        self.status_code = status_code
        super().__init__(message, **kwargs)

    def _details(self) -> str:
        return f"status: {self.status_code}" if self.status_code is not None else ""

    def _identity(self) -> tuple:
        return super()._identity() + (self.status_code,)


class TimeoutError(GeminiTransportError):
    """
    Таймаут попытки.

    Args:
        message: Сообщение
        timeout: Настроенный таймаут (сек)
    """
    kind = ErrorKind.TIMEOUT
    retryable = True

    def __init__(self, message: str, timeout: float, **kwargs: Any):
        self.timeout = float(timeout)
        super().__init__(message, **kwargs)

    def _details(self) -> str:
        return f"timeout: {self.timeout:g}s"

    def _identity(self) -> tuple:
        return super()._identity() + (self.timeout,)


class ServerError(GeminiTransportError):
    """5xx ошибка сервера."""
    kind = ErrorKind.SERVER
    retryable = True

    def __init__(self, message: str, status_code: int, **kwargs: Any):
        self.status_code = status_code
        super().__init__(message, **kwargs)

    def _details(self) -> str:
        return f"status: {self.status_code}"

    def _identity(self) -> tuple:
        return super()._identity() + (self.status_code,)


ERROR_CLASSES: Dict[ErrorKind, type] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.RATE_LIMIT: RateLimitError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.TIMEOUT: TimeoutError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.QUOTA: QuotaError,
}
