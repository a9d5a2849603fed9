# Per-room advisory lock: fail-open without Redis, busy detection, owner-only release.
import redis

from staysite import locks, redis_client
from staysite.locks import room_lock, room_lock_key


class FakeRedis:
    def __init__(self) -> None:
        self.store = {}

    def set(self, key, value, nx=False, px=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


class DownRedis:
    def set(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")


def test_lock_is_noop_without_redis(monkeypatch):
    monkeypatch.setenv("REDIS_ENABLED", "false")
    redis_client.reset_redis()
    with room_lock(1, 2) as locked:
        assert locked is True


def test_lock_acquire_busy_release(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(locks, "get_redis", lambda: fake)
    key = room_lock_key(1, 2)

    with room_lock(1, 2) as locked:
        assert locked is True
        assert key in fake.store
        # A second holder gives up after the wait
        with room_lock(1, 2, wait_ms=0) as inner:
            assert inner is False
        # Other rooms are independent
        with room_lock(1, 3, wait_ms=0) as other:
            assert other is True
    assert key not in fake.store


# Someone else's token survives our release
def test_release_only_own_lock(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(locks, "get_redis", lambda: fake)
    key = room_lock_key(1, 2)

    with room_lock(1, 2):
        fake.store[key] = "someone-else"
    assert fake.store[key] == "someone-else"


def test_lock_fails_open_on_redis_error(monkeypatch):
    monkeypatch.setattr(locks, "get_redis", lambda: DownRedis())
    with room_lock(1, 2) as locked:
        assert locked is True


def test_property_wide_operations_skip_lock(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(locks, "get_redis", lambda: fake)
    with room_lock(1, None) as locked:
        assert locked is True
    assert fake.store == {}
