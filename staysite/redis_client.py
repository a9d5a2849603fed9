# Shared Redis connection for the room lock and the rate limiter.
# Opt-in via REDIS_ENABLED; every consumer degrades gracefully when it returns None.
import logging
import os
from typing import Optional

import redis

_logger = logging.getLogger("staysite.redis")


def truthy(val: Optional[str]) -> bool:
    if val is None:
        return False
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return truthy(os.getenv("REDIS_ENABLED", "false"))


# Cached client and a one-shot guard: a failed connect keeps this process on the fallback path.
_client: Optional[redis.Redis] = None
_attempted = False


def get_redis() -> Optional[redis.Redis]:
    """
    Return a connected Redis client, or None when Redis is disabled or unreachable.

    The first call connects and pings; after a failure the process stays on the
    non-Redis path until reset_redis() is called.
    """
    global _client, _attempted
    if not is_redis_enabled():
        return None
    if _client is not None or _attempted:
        return _client

    url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    _attempted = True
    try:
        client = redis.Redis.from_url(
            url,
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            retry_on_timeout=False,
            health_check_interval=0,
        )
        client.ping()
    except redis.RedisError as exc:
        _logger.warning("Redis unavailable, using in-process fallbacks: %s", exc)
        return None

    _client = client
    _logger.info("Connected to Redis at %s", url)
    return _client


def reset_redis() -> None:
    """Forget the cached client so the next get_redis() reconnects (tests, config reloads)."""
    global _client, _attempted
    _client = None
    _attempted = False
