"""Cache store backends and the tolerant JSON facade used by the core.

Keys are namespaced as ``"{namespace}:{identifier}"``. The cache is an
optimization: when the backend is unreachable, :class:`JsonCache` logs and
lets the calling operation proceed uncached.
"""

import json
import time
import fnmatch
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from leakguard.errors import CacheUnavailable

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Key-value store with per-key TTL (``ttl=0`` means no expiry)."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: int = 0) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def increment(self, key: str) -> int: ...

    async def delete_by_pattern(self, pattern: str) -> int: ...

    async def keys(self, pattern: str) -> List[str]: ...


class RedisCacheStore:
    """:class:`CacheStore` backed by ``redis.asyncio``."""

    def __init__(self, client: Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client)

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning("Failed to close Redis connection: %s", exc)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"get {key}: {exc}") from exc

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        try:
            if ttl:
                await self._client.set(key, value, ex=ttl)
            else:
                await self._client.set(key, value)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"set {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"delete {key}: {exc}") from exc

    async def increment(self, key: str) -> int:
        try:
            value = await self._client.incr(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"increment {key}: {exc}") from exc
        logger.debug("Incremented key %s to value %d", key, value)
        return int(value)

    async def keys(self, pattern: str) -> List[str]:
        try:
            return [key async for key in self._client.scan_iter(match=pattern, count=500)]
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"scan {pattern}: {exc}") from exc

    async def delete_by_pattern(self, pattern: str) -> int:
        keys = await self.keys(pattern)
        if not keys:
            logger.info("No keys found for pattern %s", pattern)
            return 0
        try:
            deleted = 0
            for start in range(0, len(keys), 500):
                deleted += await self._client.delete(*keys[start:start + 500])
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"delete {pattern}: {exc}") from exc
        logger.info("Cleared %d keys matching pattern %s", deleted, pattern)
        return deleted


class MemoryCacheStore:
    """In-process :class:`CacheStore` with monotonic-clock expiry.

    Used when no Redis URL is configured; state is lost with the process.
    *clock* returns seconds and defaults to :func:`time.monotonic`.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._clock = clock or time.monotonic

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def increment(self, key: str) -> int:
        current = self._live(key)
        value = int(current or 0) + 1
        expires_at = self._data[key][1] if current is not None else None
        self._data[key] = (str(value), expires_at)
        return value

    async def keys(self, pattern: str) -> List[str]:
        return [key for key in list(self._data)
                if fnmatch.fnmatchcase(key, pattern) and self._live(key) is not None]

    async def delete_by_pattern(self, pattern: str) -> int:
        keys = await self.keys(pattern)
        for key in keys:
            del self._data[key]
        return len(keys)

    async def close(self) -> None:
        self._data.clear()


class JsonCache:
    """JSON-encoding facade over a :class:`CacheStore`.

    Every operation absorbs :class:`CacheUnavailable`: reads return ``None``,
    writes are skipped, counters and pattern deletes return ``0``.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    async def get_json(self, key: str) -> Any:
        try:
            raw = await self.store.get(key)
        except CacheUnavailable as exc:
            logger.warning("Cache get failed for key %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int = 0) -> bool:
        try:
            await self.store.set(key, json.dumps(value, ensure_ascii=False), ttl)
            return True
        except CacheUnavailable as exc:
            logger.warning("Cache set failed for key %s: %s", key, exc)
            return False

    async def delete(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except CacheUnavailable as exc:
            logger.warning("Cache delete failed for key %s: %s", key, exc)

    async def increment(self, key: str) -> int:
        try:
            return await self.store.increment(key)
        except CacheUnavailable as exc:
            logger.warning("Cache increment failed for key %s: %s", key, exc)
            return 0

    async def keys(self, pattern: str) -> List[str]:
        try:
            return await self.store.keys(pattern)
        except CacheUnavailable as exc:
            logger.warning("Cache scan failed for pattern %s: %s", pattern, exc)
            return []

    async def delete_by_pattern(self, pattern: str) -> int:
        try:
            return await self.store.delete_by_pattern(pattern)
        except CacheUnavailable as exc:
            logger.error("Failed to clear cache by pattern %s: %s", pattern, exc)
            return 0
