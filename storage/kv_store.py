"""
Persisted key-value store.

Every blob (cookie cache, chameleon cooldown map, change log, options) is read
and written as a whole value. `update()` serializes read-modify-write commits
per key so overlapping tasks cannot lose each other's changes; the Redis
implementation additionally holds a Redis lock so several processes sharing
one database serialize as well.
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from core.exceptions import StorageError

logger = logging.getLogger(__name__)

Mutator = Callable[[Any], Any]


class KeyValueStore(ABC):
    """Abstract whole-value key-value store with serialized updates."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    @abstractmethod
    async def _read(self, key: str) -> Optional[Any]:
        """Return the stored value or None when absent."""

    @abstractmethod
    async def _write(self, key: str, value: Any) -> None:
        """Replace the stored value."""

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Read a whole value.

        Args:
            key: Blob key
            default: Returned when the key is absent

        Returns:
            Stored value or default
        """
        value = await self._read(key)
        return default if value is None else value

    async def set(self, key: str, value: Any) -> None:
        """Replace the whole value, queued behind pending updates of the key."""
        async with self._lock_for(key):
            await self._write(key, value)

    async def update(self, key: str, mutator: Mutator, default: Any = None) -> Any:
        """
        Serialized read-modify-write of one blob.

        Args:
            key: Blob key
            mutator: Receives the current value (or a copy of default) and
                returns the complete new value
            default: Starting value when the key is absent

        Returns:
            The value that was written
        """
        async with self._lock_for(key):
            current = await self._read(key)
            if current is None:
                current = copy.deepcopy(default)
            new_value = mutator(current)
            await self._write(key, new_value)
            return new_value

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def _read(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def _write(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of every stored blob."""
        return copy.deepcopy(self._data)


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store holding each blob as one JSON string.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key_prefix: str = "cookie_guard",
        use_distributed_lock: bool = True,
        lock_timeout: int = 30,
        blocking_timeout: Optional[float] = 10,
    ):
        """
        Initialize Redis store.

        Args:
            client: redis.asyncio client
            key_prefix: Prefix for every key
            use_distributed_lock: Hold a Redis lock around update()
            lock_timeout: Lock auto-release after this many seconds
            blocking_timeout: How long to wait for the lock (None = forever)
        """
        super().__init__()
        self.client = client
        self.key_prefix = key_prefix
        self.use_distributed_lock = use_distributed_lock
        self.lock_timeout = lock_timeout
        self.blocking_timeout = blocking_timeout

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "cookie_guard", socket_timeout: int = 5) -> "RedisKeyValueStore":
        client = aioredis.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        logger.info(f"Redis key-value store configured with prefix '{key_prefix}'")
        return cls(client, key_prefix=key_prefix)

    def _build_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def _read(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._build_key(key))
        except RedisError as e:
            raise StorageError(key, str(e)) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Discarding unreadable blob for key {key}: {e}")
            return None

    async def _write(self, key: str, value: Any) -> None:
        try:
            await self.client.set(self._build_key(key), json.dumps(value))
        except RedisError as e:
            raise StorageError(key, str(e)) from e

    async def update(self, key: str, mutator: Mutator, default: Any = None) -> Any:
        if not self.use_distributed_lock:
            return await super().update(key, mutator, default)

        lock = self.client.lock(
            f"{self._build_key(key)}:lock",
            timeout=self.lock_timeout,
            blocking_timeout=self.blocking_timeout,
        )
        try:
            async with lock:
                return await super().update(key, mutator, default)
        except RedisError as e:
            raise StorageError(key, str(e)) from e

    async def close(self) -> None:
        await self.client.aclose()
