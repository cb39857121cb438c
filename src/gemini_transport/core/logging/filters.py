"""
Log filters: correlation ids and static extra fields.
"""

import logging
from contextvars import ContextVar, Token
from typing import Dict, Any, Optional


# Per thread and per asyncio task: concurrent calls never see each other's id
_correlation_id: ContextVar[Optional[str]] = ContextVar("gemini_transport_correlation_id", default=None)


def set_correlation_id(correlation_id: str) -> Token:
    """
    Set correlation ID for the current context.

    Returns:
        Token for reset_correlation_id
    """
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token: Token) -> None:
    """Restore the ID that was current before the matching set_correlation_id."""
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    """Correlation ID of the current context, or None."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Forget the correlation ID of the current context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """
    Adds ``correlation_id`` to records when one is set.

    Example:
        >>> handler.addFilter(CorrelationIdFilter())
        >>> set_correlation_id("call-12345")
        >>> logger.info("Request started")  # correlation_id=call-12345
    """

    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = get_correlation_id()
        if correlation_id and not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id
        return True


class ExtraFieldsFilter(logging.Filter):
    """Adds static fields (service, environment, ...) to every record."""

    def __init__(self, extra_fields: Dict[str, Any]):
        super().__init__()
        self.extra_fields = dict(extra_fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.extra_fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
