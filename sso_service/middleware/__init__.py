"""Middleware modules"""

from sso_service.middleware.logging import StructuredLoggingMiddleware, get_client_ip
from sso_service.middleware.rate_limit import RateLimitMiddleware

__all__ = ["RateLimitMiddleware", "StructuredLoggingMiddleware", "get_client_ip"]
