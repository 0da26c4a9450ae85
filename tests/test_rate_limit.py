"""
Unit tests for the Redis-backed rate limiter and its middleware.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from sso_service.core.container import ServiceContainer
from sso_service.main import create_app
from sso_service.services.rate_limiter import RateLimiter


@pytest.fixture
def redis_mock():
    redis = AsyncMock()
    redis.incr.return_value = 1
    return redis


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_first_request_opens_window(self, redis_mock):
        limiter = RateLimiter("redis://unused", limit_per_ip=3, window=30, redis_client=redis_mock)

        allowed, remaining = await limiter.check_rate_limit_ip("203.0.113.7")

        assert allowed
        assert remaining == 2
        redis_mock.incr.assert_awaited_once_with("rate_limit:ip:203.0.113.7")
        redis_mock.expire.assert_awaited_once_with("rate_limit:ip:203.0.113.7", 30)

    @pytest.mark.asyncio
    async def test_over_limit(self, redis_mock):
        redis_mock.incr.return_value = 4
        limiter = RateLimiter("redis://unused", limit_per_ip=3, redis_client=redis_mock)

        assert await limiter.check_rate_limit_ip("203.0.113.7") == (False, 0)
        redis_mock.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_credential_bucket_has_its_own_limit(self, redis_mock):
        redis_mock.incr.return_value = 3
        limiter = RateLimiter("redis://unused", limit_per_ip=60, credential_limit_per_ip=2, redis_client=redis_mock)

        assert await limiter.check_credential_attempts("203.0.113.7") == (False, 0)
        redis_mock.incr.assert_awaited_once_with("rate_limit:credentials:203.0.113.7")

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_is_down(self, redis_mock):
        redis_mock.incr.side_effect = RedisConnectionError("connection refused")
        limiter = RateLimiter("redis://unused", limit_per_ip=3, redis_client=redis_mock)

        assert await limiter.check_rate_limit_ip("203.0.113.7") == (True, 3)

    @pytest.mark.asyncio
    async def test_reset_and_close(self, redis_mock):
        limiter = RateLimiter("redis://unused", redis_client=redis_mock)

        await limiter.reset_rate_limit_ip("203.0.113.7")
        redis_mock.delete.assert_awaited_once_with(
            "rate_limit:ip:203.0.113.7",
            "rate_limit:credentials:203.0.113.7",
        )

        await limiter.close()
        redis_mock.aclose.assert_awaited_once()


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware wired into the application."""

    @pytest.fixture
    def make_client(self, settings, redis_mock):
        def _make():
            limited = settings.model_copy(update={"enable_rate_limiting": True})
            limiter = RateLimiter(
                "redis://unused",
                limit_per_ip=2,
                credential_limit_per_ip=1,
                redis_client=redis_mock,
            )
            return TestClient(create_app(container=ServiceContainer(limited, rate_limiter=limiter)))

        return _make

    def test_limited_request_gets_429(self, make_client, redis_mock):
        redis_mock.incr.return_value = 3

        with make_client() as client:
            response = client.get("/")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.headers["Retry-After"] == "60"

    def test_allowed_request_carries_headers(self, make_client, redis_mock):
        with make_client() as client:
            response = client.get("/")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "1"

    def test_login_uses_credential_bucket(self, make_client, redis_mock):
        # General bucket at 2/2 is still allowed; credential bucket at 2/1 is not
        redis_mock.incr.return_value = 2

        with make_client() as client:
            response = client.post("/auth/login", json={"email": "a@example.com", "password": "x"})

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Limit"] == "1"

    def test_health_is_never_limited(self, make_client, redis_mock):
        redis_mock.incr.return_value = 100

        with make_client() as client:
            response = client.get("/health")

        assert response.status_code == 200
        redis_mock.incr.assert_not_awaited()
