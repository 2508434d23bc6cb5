"""
Middleware Module
ASGI middleware for request processing
"""

from prompt_manager.middleware.correlation_id import CorrelationIdMiddleware, get_correlation_id

__all__ = ["CorrelationIdMiddleware", "get_correlation_id"]
