from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from typing import ContextManager, Protocol
from uuid import uuid4

import redis
from redis.exceptions import LockError

from shiftclock.settings import get_settings

logger = logging.getLogger("shiftclock.locks")


class LockNotAcquired(Exception):
    def __init__(self, key: str) -> None:
        super().__init__(f"Lock is held: {key}")
        self.key = key


class UserLockProvider(Protocol):
    def acquire(self, key: str, ttl_seconds: int) -> ContextManager[None]:
        ...


def checkin_lock_key(user_id: int) -> str:
    return f"attendance:checkin:{user_id}"


class InMemoryLockProvider:
    """Process-local named locks with expiry, for single-worker deployments and tests."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: dict[str, tuple[str, float]] = {}

    def _try_take(self, key: str, ttl_seconds: int) -> str | None:
        now = time.monotonic()
        with self._guard:
            current = self._held.get(key)
            if current is not None and current[1] > now:
                return None
            token = uuid4().hex
            self._held[key] = (token, now + ttl_seconds)
            return token

    def _release(self, key: str, token: str) -> None:
        with self._guard:
            current = self._held.get(key)
            if current is not None and current[0] == token:
                del self._held[key]

    def is_held(self, key: str) -> bool:
        with self._guard:
            current = self._held.get(key)
            return current is not None and current[1] > time.monotonic()

    @contextmanager
    def acquire(self, key: str, ttl_seconds: int) -> Iterator[None]:
        token = self._try_take(key, ttl_seconds)
        if token is None:
            raise LockNotAcquired(key)
        try:
            yield
        finally:
            self._release(key, token)


class RedisLockProvider:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @contextmanager
    def acquire(self, key: str, ttl_seconds: int) -> Iterator[None]:
        lock = self.client.lock(key, timeout=ttl_seconds, blocking=False)
        if not lock.acquire(blocking=False):
            raise LockNotAcquired(key)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # TTL ran out before release; another holder may already own the key.
                logger.warning("named_lock_expired_before_release", extra={"lock_key": key})


@lru_cache
def get_lock_provider() -> UserLockProvider:
    settings = get_settings()
    backend = (settings.lock_backend or "memory").strip().lower()
    if backend == "redis":
        pool = redis.ConnectionPool.from_url(settings.redis_url)
        logger.info("named_lock_backend", extra={"backend": "redis"})
        return RedisLockProvider(redis.Redis(connection_pool=pool))
    logger.info("named_lock_backend", extra={"backend": "memory"})
    return InMemoryLockProvider()
