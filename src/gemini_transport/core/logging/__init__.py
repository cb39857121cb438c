"""
Logging for the transport layer.

Example:
    >>> from gemini_transport.core.logging import LoggingConfig, TransportLogger
    >>> logger = TransportLogger(LoggingConfig.create(level="DEBUG", format="json"))
    >>> logger.info("Request started", method="POST", attempt=1)
"""

from .config import LoggingConfig, LogLevel, LogFormat
from .logger import TransportLogger, create_console_handler, create_file_handler
from .formatters import JSONFormatter, TextFormatter, get_formatter
from .filters import (
    CorrelationIdFilter,
    ExtraFieldsFilter,
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
    reset_correlation_id,
)

__all__ = [
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    "TransportLogger",
    "create_console_handler",
    "create_file_handler",
    "JSONFormatter",
    "TextFormatter",
    "get_formatter",
    "CorrelationIdFilter",
    "ExtraFieldsFilter",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "reset_correlation_id",
]
