# Per-room advisory lock backed by Redis. Guards the booking check-and-write across
# processes in addition to the serializable transaction; fails open without Redis.
from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import uuid4

import redis

from .redis_client import get_redis

logger = logging.getLogger("staysite.locks")

# Lock lifetime and how long a request waits for a busy room before giving up
ROOM_LOCK_TTL_MS = int(os.getenv("ROOM_LOCK_TTL_MS", "5000"))
ROOM_LOCK_WAIT_MS = int(os.getenv("ROOM_LOCK_WAIT_MS", "2000"))

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def room_lock_key(tenant_id: int, room_id: int) -> str:
    return f"lock:v1:tenant:{tenant_id}:room:{room_id}"


def _acquire(client: redis.Redis, key: str, token: str, ttl_ms: int, wait_ms: int) -> bool:
    deadline = time.monotonic() + wait_ms / 1000.0
    while True:
        if client.set(key, token, nx=True, px=ttl_ms):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.05)


@contextmanager
def room_lock(
    tenant_id: int,
    room_id: Optional[int],
    ttl_ms: int = ROOM_LOCK_TTL_MS,
    wait_ms: int = ROOM_LOCK_WAIT_MS,
) -> Iterator[bool]:
    """
    Hold the advisory lock for one room while the body runs.

    Yields:
    - True when the lock is held, or when Redis is disabled/unreachable (fail-open)
    - False when another process kept the room locked for the whole wait

    Usage:

        with room_lock(tenant_id, room_id) as locked:
            if not locked:
                raise ConflictError(...)
            # check-and-write
    """
    client = get_redis()
    if client is None or room_id is None:
        yield True
        return

    key = room_lock_key(tenant_id, room_id)
    token = uuid4().hex
    try:
        acquired = _acquire(client, key, token, ttl_ms, wait_ms)
    except redis.RedisError as exc:
        logger.warning("room lock fail-open (key=%s): %s", key, exc)
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            # Release only if we still own the lock; otherwise it expires by TTL
            try:
                client.eval(_RELEASE_SCRIPT, 1, key, token)
            except redis.RedisError as exc:
                logger.debug("room lock release error (key=%s): %s", key, exc)
