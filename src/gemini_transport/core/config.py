"""
Система конфигурации транспортного слоя.

Все конфиги immutable (frozen dataclasses): один RetryPolicy безопасно
разделяется между потоками и вызовами.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union, TYPE_CHECKING
from urllib.parse import urlparse

from .exceptions import ErrorKind, GeminiTransportError, NetworkError, RateLimitError, ServerError

if TYPE_CHECKING:
    from .logging import LoggingConfig

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"

DEFAULT_RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({408, 429, 500, 502, 503, 504})

DEFAULT_RETRYABLE_ERROR_KINDS: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.NETWORK,
    ErrorKind.TIMEOUT,
    ErrorKind.RATE_LIMIT,
    ErrorKind.SERVER,
})

# Никогда не ретраим - это ошибка вызывающей стороны
NON_RETRYABLE_ERROR_KINDS: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.AUTH,
    ErrorKind.VALIDATION,
    ErrorKind.QUOTA,
})


class ApiVersion(str, Enum):
    """Версия Gemini API."""
    V1 = "v1"
    V1BETA = "v1beta"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIMEOUT CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class TimeoutConfig:
    """
    Конфигурация таймаутов одной попытки.

    Args:
        connect: Таймаут подключения (сек)
        read: Таймаут чтения данных (сек)

    Examples:
        >>> TimeoutConfig(connect=5, read=30)
    """
    connect: float = 10.0
    read: float = 30.0

    def __post_init__(self):
        """Валидация."""
        if self.connect <= 0:
            raise ValueError("connect timeout must be positive")
        if self.read <= 0:
            raise ValueError("read timeout must be positive")

    def as_tuple(self) -> Tuple[float, float]:
        """Вернуть как (connect, read) для requests."""
        return (self.connect, self.read)

    @property
    def total(self) -> float:
        """Таймаут, который попадает в TimeoutError."""
        return max(self.connect, self.read)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY POLICY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RetryPolicy:
    """
    Политика повторных попыток.

    Args:
        max_attempts: Максимум попыток (включая первую), >= 1
        initial_delay: Задержка перед первым retry (сек)
        backoff_multiplier: Множитель exponential backoff, > 0
        max_delay: Потолок задержки (сек), >= initial_delay
        retryable_error_kinds: Какие виды ошибок без статуса ретраить
        retryable_status_codes: Какие статус коды ретраить (Network/Server)

    Examples:
        >>> RetryPolicy(max_attempts=5, initial_delay=0.5)
        >>> RetryPolicy.conservative()
        >>> RetryPolicy.no_retry()

    Note:
        Backoff детерминированный, без jitter.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0
    retryable_error_kinds: FrozenSet[ErrorKind] = DEFAULT_RETRYABLE_ERROR_KINDS
    retryable_status_codes: FrozenSet[int] = DEFAULT_RETRYABLE_STATUS_CODES

    def __post_init__(self):
        """Заморозить множества и провалидировать."""
        object.__setattr__(
            self,
            'retryable_error_kinds',
            frozenset(ErrorKind(kind) for kind in self.retryable_error_kinds)
        )
        object.__setattr__(
            self,
            'retryable_status_codes',
            frozenset(int(code) for code in self.retryable_status_codes)
        )

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")
        if self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be positive")
        if self.max_delay < 0:
            raise ValueError("max_delay cannot be negative")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be greater than or equal to initial_delay")

    # ==================== Пресеты ====================

    @classmethod
    def default(cls) -> 'RetryPolicy':
        """3 попытки, 1с, x2, потолок 30с."""
        return cls()

    @classmethod
    def no_retry(cls) -> 'RetryPolicy':
        """Одна попытка, без задержек."""
        return cls(
            max_attempts=1,
            initial_delay=0.0,
            backoff_multiplier=1.0,
            max_delay=0.0,
            retryable_error_kinds=frozenset(),
            retryable_status_codes=frozenset(),
        )

    @classmethod
    def aggressive(cls) -> 'RetryPolicy':
        """5 попыток, 0.5с, x1.5, потолок 10с."""
        return cls(
            max_attempts=5,
            initial_delay=0.5,
            backoff_multiplier=1.5,
            max_delay=10.0,
        )

    @classmethod
    def conservative(cls) -> 'RetryPolicy':
        """2 попытки, 2с, x3, потолок 60с. Rate limit не ретраим."""
        return cls(
            max_attempts=2,
            initial_delay=2.0,
            backoff_multiplier=3.0,
            max_delay=60.0,
            retryable_error_kinds=DEFAULT_RETRYABLE_ERROR_KINDS - {ErrorKind.RATE_LIMIT},
            retryable_status_codes=frozenset({500, 502, 503, 504}),
        )

    @classmethod
    def from_preset(cls, name: str) -> 'RetryPolicy':
        """
        Пресет по имени: default, no_retry, aggressive, conservative.

        Raises:
            ValueError: Неизвестный пресет
        """
        presets = {
            "default": cls.default,
            "no_retry": cls.no_retry,
            "aggressive": cls.aggressive,
            "conservative": cls.conservative,
        }
        factory = presets.get(name.lower().replace("-", "_"))
        if factory is None:
            raise ValueError(
                f"Unknown retry preset: {name}. "
                f"Available: {', '.join(presets)}"
            )
        return factory()

    # ==================== Решения ====================

    def should_retry(self, error: GeminiTransportError, attempt_number: int) -> bool:
        """
        Решить нужен ли retry после неудачной попытки.

        Args:
            error: Классифицированная ошибка
            attempt_number: Номер неудачной попытки (с 1)

        Returns:
            True если нужна ещё одна попытка
        """
        if attempt_number >= self.max_attempts:
            return False

        kind = error.kind

        if kind in NON_RETRYABLE_ERROR_KINDS:
            return False

        if isinstance(error, ServerError):
            return error.status_code in self.retryable_status_codes

        if isinstance(error, NetworkError):
            if error.status_code is not None:
                return error.status_code in self.retryable_status_codes
            return ErrorKind.NETWORK in self.retryable_error_kinds

        # RATE_LIMIT и TIMEOUT
        return kind in self.retryable_error_kinds

    def delay_for(self, attempt_number: int) -> float:
        """
        Exponential backoff: initial_delay * backoff_multiplier^(n-1), не больше max_delay.

        Args:
            attempt_number: Номер неудачной попытки (с 1)

        Returns:
            Секунды; 0 для attempt_number <= 0
        """
        if attempt_number <= 0:
            return 0.0

        try:
            delay = self.initial_delay * (self.backoff_multiplier ** (attempt_number - 1))
        except OverflowError:
            delay = self.max_delay

        return min(max(delay, 0.0), self.max_delay)

    def rate_limit_delay(self, error: RateLimitError) -> float:
        """Retry-after от сервера, но не больше max_delay."""
        return min(max(error.retry_after, 0.0), self.max_delay)

    def delay_after(self, error: GeminiTransportError, attempt_number: int) -> float:
        """Задержка перед следующей попыткой после error."""
        if isinstance(error, RateLimitError):
            return self.rate_limit_delay(error)
        return self.delay_for(attempt_number)

    # ==================== Утилиты ====================

    def with_changes(self, **changes: Any) -> 'RetryPolicy':
        """
        Копия с изменёнными полями (валидируется заново).

        Example:
            >>> policy = RetryPolicy().with_changes(max_attempts=5)
        """
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализуемое представление."""
        return {
            "max_attempts": self.max_attempts,
            "initial_delay": self.initial_delay,
            "backoff_multiplier": self.backoff_multiplier,
            "max_delay": self.max_delay,
            "retryable_error_kinds": sorted(kind.value for kind in self.retryable_error_kinds),
            "retryable_status_codes": sorted(self.retryable_status_codes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RetryPolicy':
        """Обратное к to_dict; отсутствующие поля берутся по умолчанию."""
        kwargs: Dict[str, Any] = {}
        for name in ("max_attempts", "initial_delay", "backoff_multiplier", "max_delay"):
            if name in data:
                kwargs[name] = data[name]
        if "retryable_error_kinds" in data:
            kwargs["retryable_error_kinds"] = frozenset(data["retryable_error_kinds"])
        if "retryable_status_codes" in data:
            kwargs["retryable_status_codes"] = frozenset(data["retryable_status_codes"])
        return cls(**kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _freeze_dict(d: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    """Convert dict to immutable MappingProxyType."""
    if d is None:
        return MappingProxyType({})
    return MappingProxyType(dict(d))


def _default_user_agent() -> str:
    from .. import __version__
    return f"gemini-transport/{__version__}"


@dataclass(frozen=True)
class TransportConfig:
    """
    Главная конфигурация транспортного слоя.

    Args:
        base_url: Базовый URL API
        api_version: Версия API (сегмент пути)
        timeout: Таймауты одной попытки
        retry: Политика retry
        headers: Дополнительные заголовки для всех запросов
        user_agent: User-Agent
        verify_ssl: Проверять SSL сертификаты
        logging: Конфигурация логирования (None = без своего логгера)

    Examples:
        >>> config = TransportConfig()
        >>> config = TransportConfig.create(timeout=60, retry="aggressive")
    """
    base_url: str = DEFAULT_BASE_URL
    api_version: ApiVersion = ApiVersion.V1
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    user_agent: str = field(default_factory=_default_user_agent)
    verify_ssl: bool = True
    logging: Optional['LoggingConfig'] = None

    def __post_init__(self):
        """Normalize base_url, freeze headers, validate."""
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, 'headers', _freeze_dict(self.headers))

        object.__setattr__(self, 'api_version', ApiVersion(self.api_version))

        if not self.base_url:
            raise ValueError("base_url cannot be empty")

        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("base_url must be a valid absolute URL")

        normalized = self.base_url.rstrip('/')
        if normalized != self.base_url:
            object.__setattr__(self, 'base_url', normalized)

    @classmethod
    def create(
        cls,
        base_url: str = DEFAULT_BASE_URL,
        api_version: Union[str, ApiVersion] = ApiVersion.V1,
        timeout: Union[float, Tuple[float, float], TimeoutConfig] = 30,
        retry: Union[str, RetryPolicy, None] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ) -> 'TransportConfig':
        """
        Удобный конструктор конфигурации.

        Args:
            base_url: Базовый URL
            api_version: "v1" / "v1beta"
            timeout: Таймаут (число = read, (connect, read) или TimeoutConfig)
            retry: RetryPolicy или имя пресета
            headers: Заголовки

        Examples:
            >>> TransportConfig.create(timeout=(5, 60), retry="no_retry")
        """
        if isinstance(retry, str):
            retry_policy = RetryPolicy.from_preset(retry)
        else:
            retry_policy = retry or RetryPolicy()

        return cls(
            base_url=base_url,
            api_version=ApiVersion(api_version),
            timeout=_as_timeout(timeout),
            retry=retry_policy,
            headers=headers or {},
            **kwargs
        )

    def with_retry(self, retry: RetryPolicy) -> 'TransportConfig':
        """Новый конфиг с другой политикой retry."""
        return replace(self, retry=retry)

    def with_timeout(self, timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> 'TransportConfig':
        """Новый конфиг с другим таймаутом."""
        return replace(self, timeout=_as_timeout(timeout))

    def with_headers(self, headers: Dict[str, str]) -> 'TransportConfig':
        """Новый конфиг с дополнительными заголовками."""
        merged = dict(self.headers)
        merged.update(headers)
        return replace(self, headers=merged)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализуемое представление (без logging)."""
        return {
            "base_url": self.base_url,
            "api_version": self.api_version.value,
            "timeout_connect": self.timeout.connect,
            "timeout_read": self.timeout.read,
            "retry": self.retry.to_dict(),
            "headers": dict(self.headers),
            "verify_ssl": self.verify_ssl,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TransportConfig':
        """Обратное к to_dict; отсутствующие поля берутся по умолчанию."""
        timeout = TimeoutConfig(
            connect=data.get("timeout_connect", TimeoutConfig.connect),
            read=data.get("timeout_read", TimeoutConfig.read),
        )
        retry_data = data.get("retry")
        if isinstance(retry_data, str):
            retry = RetryPolicy.from_preset(retry_data)
        elif retry_data:
            retry = RetryPolicy.from_dict(retry_data)
        else:
            retry = RetryPolicy()

        return cls(
            base_url=data.get("base_url", DEFAULT_BASE_URL),
            api_version=ApiVersion(data.get("api_version", ApiVersion.V1.value)),
            timeout=timeout,
            retry=retry,
            headers=data.get("headers") or {},
            verify_ssl=data.get("verify_ssl", True),
        )


def _as_timeout(timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> TimeoutConfig:
    if isinstance(timeout, TimeoutConfig):
        return timeout
    if isinstance(timeout, tuple):
        return TimeoutConfig(connect=timeout[0], read=timeout[1])
    return TimeoutConfig(read=timeout)


__all__ = [
    "ApiVersion",
    "TimeoutConfig",
    "RetryPolicy",
    "TransportConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "DEFAULT_RETRYABLE_ERROR_KINDS",
    "NON_RETRYABLE_ERROR_KINDS",
]
