"""Request rate limiting backed by Redis"""

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from sso_service.core.config import logger

GENERAL_BUCKET = "ip"
CREDENTIAL_BUCKET = "credentials"


class RateLimiter:
    """
    Fixed-window request counters keyed by bucket and client IP

    Two buckets are kept per address: ``ip`` for every request and
    ``credentials`` for endpoints that take a password or client secret,
    which get a much smaller allowance. Redis outages never block traffic.
    """

    def __init__(
        self,
        redis_url: str,
        limit_per_ip: int = 60,
        credential_limit_per_ip: int = 10,
        window: int = 60,
        redis_client: aioredis.Redis | None = None,
    ):
        self.redis_url = redis_url
        self.limit_per_ip = limit_per_ip
        self.credential_limit_per_ip = credential_limit_per_ip
        self.window = window
        self._redis = redis_client

    async def get_redis(self) -> aioredis.Redis:
        """Get Redis connection"""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    @staticmethod
    def _key(bucket: str, ip_address: str) -> str:
        return f"rate_limit:{bucket}:{ip_address}"

    async def hit(self, bucket: str, ip_address: str, limit: int) -> tuple[bool, int]:
        """
        Count one request against a bucket

        Args:
            bucket: Counter family (``ip`` or ``credentials``)
            ip_address: Client IP address
            limit: Requests allowed per window

        Returns:
            Tuple of (is_allowed, remaining_requests)
        """
        key = self._key(bucket, ip_address)

        try:
            redis = await self.get_redis()
            current = await redis.incr(key)
            # The first hit opens the window
            if current == 1:
                await redis.expire(key, self.window)
        except (RedisError, OSError) as e:
            logger.error(f"Rate limiter unavailable ({bucket}), allowing request: {e}")
            return True, limit

        if current > limit:
            logger.warning(
                f"Rate limit exceeded: {bucket} {current}/{limit} in {self.window}s",
                extra={"ip_address": ip_address, "bucket": bucket},
            )
            return False, 0

        return True, limit - current

    async def check_rate_limit_ip(self, ip_address: str) -> tuple[bool, int]:
        """General per-address allowance"""
        return await self.hit(GENERAL_BUCKET, ip_address, self.limit_per_ip)

    async def check_credential_attempts(self, ip_address: str) -> tuple[bool, int]:
        """Allowance for login, registration and token requests"""
        return await self.hit(CREDENTIAL_BUCKET, ip_address, self.credential_limit_per_ip)

    async def reset_rate_limit_ip(self, ip_address: str) -> None:
        """Clear both counters of an address"""
        redis = await self.get_redis()
        await redis.delete(
            self._key(GENERAL_BUCKET, ip_address),
            self._key(CREDENTIAL_BUCKET, ip_address),
        )
        logger.debug(f"Rate limit reset for IP: {ip_address}")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
