"""
Unit tests for the matching locks.
"""
import asyncio

import pytest
from redis.exceptions import LockError, RedisError

from organ_match.core.config import RedisConfig
from organ_match.core.exceptions import StorageError
from organ_match.core.locking import LocalMatchingLock, RedisMatchingLock


class FakeRedisLock:

    def __init__(self, acquired=True, acquire_error=None, release_error=None):
        self.acquired = acquired
        self.acquire_error = acquire_error
        self.release_error = release_error
        self.released = False

    async def acquire(self):
        if self.acquire_error:
            raise self.acquire_error
        return self.acquired

    async def release(self):
        self.released = True
        if self.release_error:
            raise self.release_error


class FakeRedisClient:

    def __init__(self, lock):
        self._lock = lock
        self.lock_args = None

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.lock_args = (name, timeout, blocking_timeout)
        return self._lock


class FakeRedisManager:

    def __init__(self, lock):
        self.client = FakeRedisClient(lock)
        self.config = RedisConfig(lock_name='test:lock', lock_timeout_seconds=5, lock_blocking_timeout_seconds=1)


class TestLocalMatchingLock:

    async def test_serialises_holders(self):
        lock = LocalMatchingLock()
        order = []

        async def worker(name):
            async with lock.hold():
                order.append(f'{name}:enter')
                await asyncio.sleep(0)
                order.append(f'{name}:exit')

        await asyncio.gather(worker('a'), worker('b'))

        assert order == ['a:enter', 'a:exit', 'b:enter', 'b:exit']
        assert not lock.locked


class TestRedisMatchingLock:

    async def test_acquire_and_release(self):
        redis_lock = FakeRedisLock()
        manager = FakeRedisManager(redis_lock)
        lock = RedisMatchingLock(manager)

        async with lock.hold():
            assert lock.locked

        assert redis_lock.released
        assert not lock.locked
        assert manager.client.lock_args == ('test:lock', 5, 1)

    async def test_timeout_raises_storage_error(self):
        lock = RedisMatchingLock(FakeRedisManager(FakeRedisLock(acquired=False)))

        with pytest.raises(StorageError):
            async with lock.hold():
                pass

    async def test_connection_failure_raises_storage_error(self):
        lock = RedisMatchingLock(FakeRedisManager(FakeRedisLock(acquire_error=RedisError('down'))))

        with pytest.raises(StorageError):
            async with lock.hold():
                pass

    async def test_expired_lock_release_is_tolerated(self):
        redis_lock = FakeRedisLock(release_error=LockError('expired'))
        lock = RedisMatchingLock(FakeRedisManager(redis_lock))

        async with lock.hold():
            pass

        assert redis_lock.released
