"""Rate limiting middleware"""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from sso_service.core.config import Settings
from sso_service.middleware.logging import get_client_ip
from sso_service.services.rate_limiter import RateLimiter

# Never rate limited
PUBLIC_PATHS = frozenset(
    {
        "/health",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/.well-known/jwks.json",
    }
)

# Endpoints that verify a password or client secret
CREDENTIAL_PATHS = frozenset(
    {
        "/auth/login",
        "/auth/register",
        "/auth/change-password",
        "/oauth2/token",
    }
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request limits, with a tighter allowance on credential endpoints"""

    def __init__(self, app: ASGIApp, limiter: RateLimiter, settings: Settings):
        super().__init__(app)
        self.limiter = limiter
        self.settings = settings

    def _too_many_requests(self, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "error_description": "Too many requests. Please try again later.",
            },
            headers={
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "Retry-After": str(self.limiter.window),
            },
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not self.settings.enable_rate_limiting or path in PUBLIC_PATHS:
            return await call_next(request)

        ip_address = get_client_ip(request)

        # Local development traffic
        if self.settings.is_development and ip_address in ("127.0.0.1", "localhost", "::1"):
            return await call_next(request)

        is_allowed, remaining = await self.limiter.check_rate_limit_ip(ip_address)
        if not is_allowed:
            return self._too_many_requests(self.limiter.limit_per_ip)

        if request.method == "POST" and path in CREDENTIAL_PATHS:
            is_allowed, _ = await self.limiter.check_credential_attempts(ip_address)
            if not is_allowed:
                return self._too_many_requests(self.limiter.credential_limit_per_ip)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.limit_per_ip)
        response.headers["X-RateLimit-Remaining"] = str(remaining)

        return response
