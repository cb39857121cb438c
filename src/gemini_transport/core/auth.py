# src/gemini_transport/core/auth.py
"""
Аутентификация по API ключу.

Ключ передаётся в заголовке x-goog-api-key, а не в query параметре,
поэтому не попадает в URL и access логи.
"""

import os
from typing import Dict, Optional

from .exceptions import AuthError

API_KEY_HEADER = "x-goog-api-key"
API_KEY_ENV_VAR = "GEMINI_API_KEY"

_API_KEY_PREFIX = "AIza"
_API_KEY_MIN_LENGTH = 30


class ApiKeyAuth:
    """
    Источник заголовков аутентификации.

    Examples:
        >>> auth = ApiKeyAuth("AIza" + "x" * 35)
        >>> auth.get_auth_headers()["x-goog-api-key"]
        'AIzaxxx...'

        >>> auth = ApiKeyAuth.from_env()
    """

    def __init__(self, api_key: Optional[str] = None):
        """
        Args:
            api_key: API ключ (можно задать позже через set_api_key)
        """
        self._api_key: Optional[str] = None
        if api_key is not None:
            self.set_api_key(api_key)

    @classmethod
    def from_env(cls, var: str = API_KEY_ENV_VAR) -> 'ApiKeyAuth':
        """
        Взять ключ из переменной окружения.

        Raises:
            AuthError: Переменная не задана или пустая
        """
        api_key = os.environ.get(var, "").strip()
        if not api_key:
            raise AuthError(f"API key not found in environment variable {var}")
        return cls(api_key)

    def set_api_key(self, api_key: str) -> None:
        """
        Установить ключ.

        Raises:
            AuthError: Пустой ключ
        """
        if not api_key:
            raise AuthError("API key cannot be empty")
        self._api_key = api_key

    @staticmethod
    def validate_api_key(api_key: str) -> bool:
        """Проверка формата: ключи Google API начинаются с AIza и не короче 30 символов."""
        if not api_key:
            return False
        if not api_key.startswith(_API_KEY_PREFIX):
            return False
        return len(api_key) >= _API_KEY_MIN_LENGTH

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    @property
    def is_authenticated(self) -> bool:
        return bool(self._api_key)

    def get_auth_headers(self) -> Dict[str, str]:
        """
        Заголовки для запроса.

        Raises:
            AuthError: Ключ не задан
        """
        if not self._api_key:
            raise AuthError("API key not set. Call set_api_key() first.")

        return {
            API_KEY_HEADER: self._api_key,
            "Content-Type": "application/json",
        }

    def __repr__(self) -> str:
        state = "set" if self._api_key else "unset"
        return f"ApiKeyAuth(api_key=<{state}>)"
