"""
Correlation ID Middleware
Tags every request with a correlation ID that log records pick up
"""

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id

# Re-export CorrelationIdMiddleware for convenience
__all__ = ["CorrelationIdMiddleware", "get_correlation_id", "add_correlation_id"]


def get_correlation_id() -> str:
    """
    Get current correlation ID from async context.

    Returns:
        str: The correlation ID or 'none' outside a request
    """
    return correlation_id.get() or 'none'


def add_correlation_id(logger, method_name, event_dict):
    """structlog processor adding correlation_id to every event."""
    event_dict.setdefault("correlation_id", get_correlation_id())
    return event_dict
