"""
Request throttling for the inference API.

Keeps a sliding one-minute window per credential so that several workers
sharing a Groq key stay under its RPM quota. Redis coordinates across
processes when ``REDIS_URL`` is set; otherwise an in-memory window is used.
"""

import asyncio
import hashlib
import logging
import time

import redis.asyncio as redis

from codepuzzles.config import settings

logger = logging.getLogger(__name__)


def credential_bucket(api_key: str | None) -> str:
    """Stable, non-secret bucket name for a credential."""
    if not api_key:
        return "default"
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:12]


class InMemoryRateLimiter:
    """In-memory sliding window, one bucket per identifier"""

    def __init__(self, max_requests: int = 30, window_seconds: int = 60, min_delay: float = 0.0):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_delay_between_requests = min_delay
        self.requests: dict[str, list[float]] = {}
        self.last_request_time: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, identifier: str = "default") -> bool:
        """Wait until a request for ``identifier`` may be made"""
        while True:
            async with self._lock:
                now = time.time()

                time_since_last = now - self.last_request_time.get(identifier, 0.0)
                if time_since_last < self.min_delay_between_requests:
                    wait_time = self.min_delay_between_requests - time_since_last
                else:
                    window = [
                        req_time
                        for req_time in self.requests.get(identifier, [])
                        if now - req_time < self.window_seconds
                    ]
                    self.requests[identifier] = window

                    if len(window) < self.max_requests:
                        window.append(now)
                        self.last_request_time[identifier] = now
                        return True

                    wait_time = min(window) + self.window_seconds - now + 0.1

            logger.info(f"⏳ Rate limit: waiting {wait_time:.1f}s (in-memory limiter, bucket {identifier})")
            await asyncio.sleep(wait_time)


class RedisRateLimiter:
    """Redis-based distributed rate limiter"""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        max_requests: int = 30,
        window_seconds: int = 60,
        key_prefix: str = "rate_limit:groq:",
        min_delay_between_requests: float = 0.0,
    ):
        self.redis_client = redis_client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self.min_delay_between_requests = min_delay_between_requests
        self.fallback = InMemoryRateLimiter(max_requests, window_seconds, min_delay_between_requests)

    async def acquire(self, identifier: str = "default") -> bool:
        """
        Acquire permission to make a request.
        Blocks until a slot is available in the identifier's window.

        Args:
            identifier: Rate limit bucket (one per credential)

        Returns:
            True when permission is granted
        """
        if not self.redis_client:
            return await self.fallback.acquire(identifier)

        key = f"{self.key_prefix}{identifier}"

        try:
            while True:
                now = time.time()
                window_start = now - self.window_seconds

                pipe = self.redis_client.pipeline()
                pipe.zremrangebyscore(key, 0, window_start)
                pipe.zcard(key)
                pipe.zadd(key, {str(now): now})
                pipe.expire(key, self.window_seconds + 10)
                results = await pipe.execute()
                current_count = results[1]

                if current_count < self.max_requests:
                    return True

                # Over the limit: drop our speculative entry and wait for the oldest to expire
                await self.redis_client.zrem(key, str(now))
                oldest_requests = await self.redis_client.zrange(key, 0, 0, withscores=True)
                if not oldest_requests:
                    continue

                wait_time = oldest_requests[0][1] + self.window_seconds - now + 0.1
                if wait_time > 0:
                    logger.info(f"⏳ Rate limit: waiting {wait_time:.1f}s (bucket {identifier})")
                    await asyncio.sleep(wait_time)

        except redis.RedisError as e:
            logger.warning(f"⚠️  Redis rate limiter error: {e}, falling back to in-memory")
            return await self.fallback.acquire(identifier)


# Singleton instance
_rate_limiter: RedisRateLimiter | None = None
_redis_client: redis.Redis | None = None


async def get_redis_client() -> redis.Redis | None:
    """Get or create Redis client"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    if not settings.redis_url:
        logger.info("ℹ️  Redis URL not configured, using in-memory rate limiter")
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
        )
        await client.ping()
        _redis_client = client
        logger.info("✅ Redis connected for rate limiting")
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"⚠️  Failed to connect to Redis: {e}, using in-memory rate limiter")
        return None


def get_rate_limiter() -> RedisRateLimiter:
    """Get or create the rate limiter (in-memory until ``initialize_rate_limiter`` runs)"""
    global _rate_limiter

    if _rate_limiter is None:
        _rate_limiter = RedisRateLimiter(
            redis_client=None,
            max_requests=settings.groq_requests_per_minute,
            window_seconds=60,
            min_delay_between_requests=settings.groq_min_delay_seconds,
        )
        logger.info("✅ Rate limiter initialized (in-memory)")

    return _rate_limiter


async def initialize_rate_limiter() -> RedisRateLimiter:
    """Connect the rate limiter to Redis when configured (call on startup)"""
    limiter = get_rate_limiter()
    if limiter.redis_client is None:
        limiter.redis_client = await get_redis_client()
        if limiter.redis_client is not None:
            logger.info(
                f"✅ Rate limiter using Redis ({limiter.max_requests} RPM per credential)"
            )
    return limiter


async def close_rate_limiter() -> None:
    """Close the Redis connection, if any (call on shutdown)"""
    global _redis_client

    if _rate_limiter is not None:
        _rate_limiter.redis_client = None
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("✅ Redis connection closed")
