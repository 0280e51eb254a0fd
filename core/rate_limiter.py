"""
Rate Limiting Module
Per-client sliding window limits, backed by Redis when REDIS_URL is set
"""
import time
import logging
from typing import Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from core.config import settings
from core.constants import RATE_LIMITS
from core.exceptions import TooManyRequests

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding window rate limiter"""

    sweep_interval = 60

    def __init__(self, enabled: Optional[bool] = None, redis_url: Optional[str] = None):
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled
        self.redis_url = redis_url if redis_url is not None else settings.REDIS_URL
        self.redis_client: Optional[redis.Redis] = None
        self._redis_failed = False
        self._in_memory_store: Dict[str, list] = {}
        self._last_sweep = 0.0

    async def _get_redis_client(self) -> Optional[redis.Redis]:
        """Get or create Redis client"""
        if not self.redis_url or self._redis_failed:
            return None

        if not self.redis_client:
            try:
                self.redis_client = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
                await self.redis_client.ping()
                logger.info("Connected to Redis for rate limiting")
            except Exception as e:
                logger.warning(f"Redis connection failed, using in-memory store: {e}")
                self.redis_client = None
                self._redis_failed = True

        return self.redis_client

    async def check_limit(
        self,
        client_id: str,
        policy: str,
        now: Optional[float] = None
    ) -> Tuple[bool, int]:
        """
        Check if a request is within the policy budget.
        Returns (allowed, retry_after_seconds).
        """
        if not self.enabled:
            return True, 0

        max_requests, window = RATE_LIMITS[policy]
        key = f"rate_limit:{policy}:{client_id}"
        current_time = now if now is not None else time.time()

        redis_client = await self._get_redis_client()
        if redis_client:
            allowed = await self._check_redis(redis_client, key, current_time, max_requests, window)
        else:
            allowed = self._check_memory(key, current_time, max_requests, window)

        return allowed, (0 if allowed else window)

    async def _check_redis(
        self,
        redis_client: redis.Redis,
        key: str,
        current_time: float,
        max_requests: int,
        window: int
    ) -> bool:
        try:
            window_start = current_time - window

            pipe = redis_client.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window)

            results = await pipe.execute()
            return results[1] < max_requests

        except Exception as e:
            logger.error(f"Redis rate limit check failed: {e}")
            return self._check_memory(key, current_time, max_requests, window)

    def _check_memory(self, key: str, current_time: float, max_requests: int, window: int) -> bool:
        self._sweep(current_time)
        window_start = current_time - window

        hits = [ts for ts in self._in_memory_store.get(key, []) if ts > window_start]
        if len(hits) >= max_requests:
            self._in_memory_store[key] = hits
            return False

        hits.append(current_time)
        self._in_memory_store[key] = hits
        return True

    def _sweep(self, current_time: float):
        """Drop clients whose newest hit has left their policy window."""
        if current_time - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = current_time

        for key in list(self._in_memory_store):
            _, policy, _ = key.split(":", 2)
            hits = self._in_memory_store[key]
            if not hits or hits[-1] <= current_time - RATE_LIMITS[policy][1]:
                del self._in_memory_store[key]

    async def reset(self, client_id: Optional[str] = None):
        """Forget recorded hits (for one client, or everything)."""
        if client_id is None:
            self._in_memory_store.clear()
            return
        for key in [k for k in self._in_memory_store if k.endswith(f":{client_id}")]:
            del self._in_memory_store[key]


rate_limiter = RateLimiter()


def client_ip(request: Request) -> str:
    """
    Address of the caller. X-Forwarded-For is read only when the direct peer is a
    trusted proxy, and then the nearest hop not belonging to a trusted proxy wins.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = settings.TRUSTED_PROXIES
    if peer not in trusted:
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return peer
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


def rate_limit(policy: str):
    """Route dependency enforcing one of the RATE_LIMITS policies."""
    if policy not in RATE_LIMITS:
        raise KeyError(f"Unknown rate limit policy: {policy}")

    async def dependency(request: Request):
        ip = client_ip(request)
        allowed, retry_after = await rate_limiter.check_limit(ip, policy)
        if not allowed:
            logger.warning(f"Rate limit '{policy}' exceeded for {ip}")
            raise TooManyRequests(
                RATE_LIMIT_MESSAGES.get(policy),
                details={"retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

    return dependency


RATE_LIMIT_MESSAGES = {
    "general": "Too many requests from this IP, please try again later.",
    "auth": "Too many authentication attempts, please try again later.",
    "donation": "Too many donation attempts, please try again later.",
    "campaign": "Too many campaign creation attempts, please try again later.",
    "password_reset": "Too many password reset attempts, please try again later.",
    "payment": "Too many payment requests, please try again later.",
}
