"""
Matching lock abstractions

All matching passes (per-registration scans and the full refresh) run inside
one critical section. A single process uses an asyncio lock; several workers
share a Redis lock.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, AsyncIterator

import redis.asyncio as redis
from redis.exceptions import RedisError, LockError, ConnectionError

from .config import get_redis_config, RedisConfig
from .exceptions import StorageError

logger = logging.getLogger(__name__)


class RedisManager:
    """Redis connection pool manager"""

    def __init__(self, config: Optional[RedisConfig] = None):
        self.config = config or get_redis_config()
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client"""
        if self._initialized:
            return

        logger.info(f"Initializing Redis connection to {self.config.host}:{self.config.port}")

        pool_kwargs = {
            "host": self.config.host,
            "port": self.config.port,
            "db": self.config.db,
            "max_connections": self.config.max_connections,
            "socket_timeout": self.config.socket_timeout,
            "socket_connect_timeout": self.config.socket_connect_timeout,
            "retry_on_timeout": True,
            "retry_on_error": [ConnectionError],
        }

        if self.config.password:
            pool_kwargs["password"] = self.config.password

        try:
            self._pool = redis.ConnectionPool(**pool_kwargs)
            self._client = redis.Redis(connection_pool=self._pool)

            # Test connection
            await self._client.ping()
            logger.info("Redis connection established successfully")

            self._initialized = True

        except RedisError as e:
            logger.error(f"Failed to initialize Redis: {e}")
            raise StorageError(f"Redis unavailable: {e}") from e

    async def cleanup(self) -> None:
        """Cleanup Redis connections"""
        if self._pool:
            await self._pool.disconnect()
            self._initialized = False
            logger.info("Redis connections closed")

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client instance"""
        if not self._initialized:
            raise RuntimeError("Redis manager not initialized. Call initialize() first.")
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Perform Redis health check"""
        try:
            if not self._initialized:
                return {"status": "error", "message": "Redis not initialized"}

            pong = await self._client.ping()
            if not pong:
                return {"status": "unhealthy", "message": "Ping failed"}

            info = await self._client.info()

            return {
                "status": "healthy",
                "version": info.get("redis_version"),
                "connected_clients": info.get("connected_clients", 0),
            }

        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e)
            }


class MatchingLock(ABC):
    """Global critical section for matching passes"""

    @abstractmethod
    def hold(self) -> AsyncIterator[None]:
        """Async context manager holding the lock for its body"""

    @property
    @abstractmethod
    def locked(self) -> bool:
        pass


class LocalMatchingLock(MatchingLock):
    """In-process lock for a single worker"""

    def __init__(self):
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def hold(self):
        async with self._lock:
            yield

    @property
    def locked(self) -> bool:
        return self._lock.locked()


class RedisMatchingLock(MatchingLock):
    """
    Distributed lock shared by all workers.

    The lock expires after lock_timeout_seconds so a crashed worker cannot
    block matching forever.
    """

    def __init__(self, redis_manager: RedisManager, config: Optional[RedisConfig] = None):
        self.redis_manager = redis_manager
        self.config = config or redis_manager.config
        self._held = False

    @asynccontextmanager
    async def hold(self):
        lock = self.redis_manager.client.lock(
            self.config.lock_name,
            timeout=self.config.lock_timeout_seconds,
            blocking_timeout=self.config.lock_blocking_timeout_seconds
        )

        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error(f"Matching lock acquisition failed: {e}")
            raise StorageError("Matching lock unavailable", detail={"error": str(e)}) from e

        if not acquired:
            raise StorageError(
                "Timed out waiting for matching lock",
                detail={"lock": self.config.lock_name}
            )

        self._held = True
        try:
            yield
        finally:
            self._held = False
            try:
                await lock.release()
            except LockError as e:
                # Expired while held; another worker may already own it
                logger.warning(f"Matching lock released after expiry: {e}")
            except RedisError as e:
                logger.warning(f"Matching lock release failed: {e}")

    @property
    def locked(self) -> bool:
        return self._held
