"""
Environment configuration loader.
"""

from typing import Any, Optional

from ..auth import ApiKeyAuth
from ..config import ApiVersion, TransportConfig
from ..exceptions import AuthError
from .validator import TransportSettings


def load_from_env(env_file: Optional[str] = None, **overrides: Any) -> TransportConfig:
    """
    Load TransportConfig from environment variables.

    Priority (highest to lowest):
    1. **overrides - explicit TransportConfig fields
    2. Environment variables (GEMINI_*)
    3. .env file
    4. Defaults

    Args:
        env_file: Custom .env file path
        **overrides: TransportConfig fields (base_url, timeout, retry, ...)

    Example:
        >>> config = load_from_env()
        >>> config = load_from_env(env_file=".env.production", api_version="v1beta")
    """
    settings = _load_settings(env_file)

    values = {
        "base_url": settings.base_url,
        "api_version": ApiVersion(settings.api_version),
        "timeout": settings.to_timeout_config(),
        "retry": settings.to_retry_policy(),
        "verify_ssl": settings.verify_ssl,
        "logging": settings.to_logging_config(),
    }
    values.update(overrides)
    return TransportConfig.create(**values)


def load_auth_from_env(env_file: Optional[str] = None) -> ApiKeyAuth:
    """
    ApiKeyAuth from GEMINI_API_KEY (environment or .env file).

    Raises:
        AuthError: Key is not configured
    """
    settings = _load_settings(env_file)
    if not settings.api_key:
        raise AuthError("API key not found: set GEMINI_API_KEY")
    return ApiKeyAuth(settings.api_key)


def _load_settings(env_file: Optional[str]) -> TransportSettings:
    if env_file is None:
        return TransportSettings()
    return TransportSettings(_env_file=env_file)
