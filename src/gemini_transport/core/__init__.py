"""Core модули транспортного слоя Gemini."""

from .config import ApiVersion, RetryPolicy, TimeoutConfig, TransportConfig
from .exceptions import (
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
from .error_classifier import classify_status_code, classify_transport_failure
from .retry_engine import RetryEngine, RetryState
from .stream_decoder import StreamDecoder, DecoderState, scan
from .executor import RequestExecutor, TransportRequest
from .auth import ApiKeyAuth
from .http_client import GeminiHTTPClient

__all__ = [
    "ApiVersion",
    "RetryPolicy",
    "TimeoutConfig",
    "TransportConfig",
    "ErrorKind",
    "GeminiTransportError",
    "AuthError",
    "RateLimitError",
    "ValidationError",
    "NetworkError",
    "TimeoutError",
    "ServerError",
    "QuotaError",
    "classify_status_code",
    "classify_transport_failure",
    "RetryEngine",
    "RetryState",
    "StreamDecoder",
    "DecoderState",
    "scan",
    "RequestExecutor",
    "TransportRequest",
    "ApiKeyAuth",
    "GeminiHTTPClient",
]
