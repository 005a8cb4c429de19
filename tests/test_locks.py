from __future__ import annotations

import unittest
from unittest.mock import patch

from redis.exceptions import LockError

from shiftclock.services.locks import (
    InMemoryLockProvider,
    LockNotAcquired,
    RedisLockProvider,
    checkin_lock_key,
)


class _FakeRedisLock:
    def __init__(self, owner: "_FakeRedis", key: str, timeout: int) -> None:
        self.owner = owner
        self.key = key
        self.timeout = timeout

    def acquire(self, blocking: bool = True) -> bool:
        if self.key in self.owner.held:
            return False
        self.owner.held.add(self.key)
        return True

    def release(self) -> None:
        if self.key not in self.owner.held:
            raise LockError("Cannot release an unlocked lock")
        self.owner.held.discard(self.key)


class _FakeRedis:
    def __init__(self) -> None:
        self.held: set[str] = set()
        self.timeouts: list[int] = []

    def lock(self, key: str, timeout: int, blocking: bool = True) -> _FakeRedisLock:
        self.timeouts.append(timeout)
        return _FakeRedisLock(self, key, timeout)


class InMemoryLockProviderTests(unittest.TestCase):
    def test_lock_key_is_scoped_per_user(self) -> None:
        self.assertEqual(checkin_lock_key(7), "attendance:checkin:7")
        self.assertNotEqual(checkin_lock_key(7), checkin_lock_key(8))

    def test_second_acquire_fails_while_held(self) -> None:
        provider = InMemoryLockProvider()
        with provider.acquire("attendance:checkin:1", 10):
            self.assertTrue(provider.is_held("attendance:checkin:1"))
            with self.assertRaises(LockNotAcquired) as ctx:
                with provider.acquire("attendance:checkin:1", 10):
                    pass
            self.assertEqual(ctx.exception.key, "attendance:checkin:1")
            with provider.acquire("attendance:checkin:2", 10):
                pass
        self.assertFalse(provider.is_held("attendance:checkin:1"))

    def test_lock_is_released_when_body_raises(self) -> None:
        provider = InMemoryLockProvider()
        with self.assertRaises(RuntimeError):
            with provider.acquire("attendance:checkin:1", 10):
                raise RuntimeError("boom")
        with provider.acquire("attendance:checkin:1", 10):
            pass

    def test_expired_lock_can_be_taken_over(self) -> None:
        provider = InMemoryLockProvider()
        with patch("shiftclock.services.locks.time.monotonic", return_value=100.0):
            token = provider._try_take("attendance:checkin:1", 5)
        self.assertIsNotNone(token)
        with patch("shiftclock.services.locks.time.monotonic", return_value=106.0):
            self.assertFalse(provider.is_held("attendance:checkin:1"))
            self.assertIsNotNone(provider._try_take("attendance:checkin:1", 5))


class RedisLockProviderTests(unittest.TestCase):
    def test_acquire_uses_ttl_and_releases(self) -> None:
        client = _FakeRedis()
        provider = RedisLockProvider(client)  # type: ignore[arg-type]

        with provider.acquire("attendance:checkin:3", 10):
            self.assertIn("attendance:checkin:3", client.held)
            with self.assertRaises(LockNotAcquired):
                with provider.acquire("attendance:checkin:3", 10):
                    pass

        self.assertEqual(client.held, set())
        self.assertEqual(client.timeouts, [10, 10])

    def test_expired_release_is_logged_not_raised(self) -> None:
        client = _FakeRedis()
        provider = RedisLockProvider(client)  # type: ignore[arg-type]

        with self.assertLogs("shiftclock.locks", level="WARNING") as logs:
            with provider.acquire("attendance:checkin:4", 10):
                client.held.clear()

        self.assertTrue(any("named_lock_expired_before_release" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
