"""Gemini Transport - resilient HTTP transport for the Gemini REST API."""

import logging
from importlib.metadata import version, PackageNotFoundError

# Version info - read from package metadata (single source of truth in pyproject.toml)
try:
    __version__ = version("gemini-transport")
except PackageNotFoundError:
    # Package is not installed (development mode)
    __version__ = "0.0.0-dev"

from .core.http_client import GeminiHTTPClient
from .async_client import AsyncGeminiHTTPClient
from .core.auth import ApiKeyAuth
from .core.config import ApiVersion, RetryPolicy, TimeoutConfig, TransportConfig
from .core.env_config import load_auth_from_env, load_from_env
from .core.exceptions import (
    ErrorKind,
    GeminiTransportError,
    AuthError,
    RateLimitError,
    ValidationError,
    NetworkError,
    TimeoutError,
    ServerError,
    QuotaError,
)
from .core.logging import LoggingConfig
from .core.stream_decoder import StreamDecoder, iter_json_values, aiter_json_values

# Users can configure logging themselves using logging.getLogger('gemini_transport')
logging.getLogger('gemini_transport').addHandler(logging.NullHandler())

__all__ = [
    # Clients
    "GeminiHTTPClient",
    "AsyncGeminiHTTPClient",
    "ApiKeyAuth",

    # Config
    "ApiVersion",
    "RetryPolicy",
    "TimeoutConfig",
    "TransportConfig",
    "LoggingConfig",
    "load_from_env",
    "load_auth_from_env",

    # Errors
    "ErrorKind",
    "GeminiTransportError",
    "AuthError",
    "RateLimitError",
    "ValidationError",
    "NetworkError",
    "TimeoutError",
    "ServerError",
    "QuotaError",

    # Streaming
    "StreamDecoder",
    "iter_json_values",
    "aiter_json_values",
]
