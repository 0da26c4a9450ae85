"""Structured logging middleware"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from sso_service.core.config import logger

CORRELATION_HEADER = "X-Correlation-ID"


def get_client_ip(request: Request) -> str:
    """Client address, preferring proxy headers over the socket peer"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs start, completion and failure of every request

    A caller-supplied ``X-Correlation-ID`` is kept, otherwise a new one is
    generated. Either way it is exposed on ``request.state`` and echoed back.
    Query strings are never logged since authorize requests carry state.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        context = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": get_client_ip(request),
        }

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            f"{request.method} {request.url.path} started",
            extra={**context, "user_agent": request.headers.get("User-Agent", "unknown")},
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} failed: {type(e).__name__}",
                extra={**context, "duration_ms": elapsed_ms()},
                exc_info=True,
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={**context, "status_code": response.status_code, "duration_ms": elapsed_ms()},
        )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
