# Fixed-window rate limiting for public booking submissions.
# - Keys: "{tenant_id}:{client_ip}:booking-request"
# - In-process counters by default; Redis counters when REDIS_ENABLED and reachable.
# - The in-process backend is per worker: a multi-process deployment multiplies the
#   effective limit by the worker count unless Redis is enabled.
from __future__ import annotations

import logging
import math
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis
from fastapi import Request

from .redis_client import get_redis

logger = logging.getLogger("staysite.rate_limit")


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except Exception:
        return default


# Booking submissions per window; BOOKING_RATE_LIMIT_WINDOW_SECONDS (default 3600), BOOKING_RATE_LIMIT_MAX (default 5)
BOOKING_WINDOW_SECONDS = _to_int(os.getenv("BOOKING_RATE_LIMIT_WINDOW_SECONDS"), 60 * 60)
BOOKING_MAX_REQUESTS = _to_int(os.getenv("BOOKING_RATE_LIMIT_MAX"), 5)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds
    retry_after: Optional[int] = None


class RateLimiter(ABC):
    """Counter interface; implementations reset a key's window lazily on first use after expiry."""

    @abstractmethod
    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        raise NotImplementedError


class MemoryRateLimiter(RateLimiter):
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, reset_at)
        self._windows: Dict[str, Tuple[int, float]] = {}

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            existing = self._windows.get(key)
            if existing is None or existing[1] <= now:
                reset_at = now + window_ms / 1000.0
                self._windows[key] = (1, reset_at)
                return RateLimitResult(allowed=True, remaining=max_requests - 1, reset_at=reset_at)

            count, reset_at = existing
            if count >= max_requests:
                retry_after = max(1, math.ceil(reset_at - now))
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at, retry_after=retry_after)

            self._windows[key] = (count + 1, reset_at)
            return RateLimitResult(allowed=True, remaining=max(0, max_requests - count - 1), reset_at=reset_at)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimiter(RateLimiter):
    """Shared counters (INCR + PEXPIRE) so every worker sees the same window."""

    prefix = "rl:v1:"

    def __init__(self, client: redis.Redis, clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._clock = clock

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        redis_key = f"{self.prefix}{key}"
        now = self._clock()
        try:
            current = int(self._client.incr(redis_key, amount=1))
            if current == 1:
                # First hit opens the window
                self._client.pexpire(redis_key, window_ms)
            ttl_ms = self._client.pttl(redis_key)
        except redis.RedisError as exc:
            logger.warning("Rate limit fail-open (key=%s): %s", key, exc)
            return RateLimitResult(allowed=True, remaining=max_requests, reset_at=now + window_ms / 1000.0)

        if not isinstance(ttl_ms, int) or ttl_ms <= 0:
            ttl_ms = window_ms
        reset_at = now + ttl_ms / 1000.0
        if current > max_requests:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                retry_after=max(1, math.ceil(ttl_ms / 1000.0)),
            )
        return RateLimitResult(allowed=True, remaining=max(0, max_requests - current), reset_at=reset_at)


_memory_limiter = MemoryRateLimiter()


def get_rate_limiter() -> RateLimiter:
    client = get_redis()
    if client is None:
        return _memory_limiter
    return RedisRateLimiter(client)


def reset_rate_limits() -> None:
    """Clear in-process windows (used by tests)."""
    _memory_limiter.reset()


def client_ip(request: Request) -> str:
    # Peer address only. X-Forwarded-For is client-controlled; behind a proxy run uvicorn with
    # --proxy-headers --forwarded-allow-ips so request.client is rewritten for trusted hops only.
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def booking_rate_limit_key(tenant_id: int, ip: str) -> str:
    return f"{tenant_id}:{ip}:booking-request"


def check_booking_rate_limit(tenant_id: int, request: Request) -> RateLimitResult:
    ip = client_ip(request)
    key = booking_rate_limit_key(tenant_id, ip)
    result = get_rate_limiter().check(key, BOOKING_WINDOW_SECONDS * 1000, BOOKING_MAX_REQUESTS)
    if not result.allowed:
        logger.info(
            "rate_limit.rejected",
            extra={"tenant_id": tenant_id, "ip": ip, "retry_after": result.retry_after},
        )
    return result
