"""
Cache adapter base class and the in-process memory backend.

Every backend stores values wrapped in a CacheEntry envelope so expiry can
be checked on read even where the backend has no native TTL. Cache failures
are logged and swallowed: a cache outage degrades callers to uncached
behaviour rather than failing them.
"""
import fnmatch
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

import structlog
from pydantic import ValidationError

from backend.adapters.types import CacheEntry, CacheStats, build_key, clamp_ttl, prefix_pattern

DEFAULT_TTL = 3600  # 1 hour
MAX_TTL = 86400  # 24 hours


class BaseCacheAdapter(ABC):
    """
    Shared get/set/delete semantics on top of four raw storage primitives.

    Subclasses implement ``_read``, ``_write``, ``_remove``, ``_scan`` and
    ``_stats``; key sanitizing, TTL clamping, the entry envelope, lazy
    expiry and error swallowing all live here.
    """

    provider: str = "base"

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        max_ttl: int = MAX_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = default_ttl
        self.max_ttl = max_ttl
        self._clock = clock
        self.logger = structlog.get_logger().bind(component="cache", provider=self.provider)

    # ----- raw storage primitives -----

    @abstractmethod
    async def _read(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def _write(self, key: str, payload: str, ttl: int) -> None:
        ...

    @abstractmethod
    async def _remove(self, keys: list[str]) -> None:
        ...

    @abstractmethod
    async def _scan(self, pattern: str) -> list[str]:
        ...

    @abstractmethod
    async def _stats(self) -> CacheStats:
        ...

    # ----- public contract -----

    async def get(self, key: str, prefix: Optional[str] = None) -> Any:
        full_key = build_key(key, prefix)
        try:
            raw = await self._read(full_key)
        except Exception as e:
            self.logger.error("cache_get_failed", key=full_key, error=str(e))
            return None

        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            self.logger.warning("cache_entry_malformed", key=full_key)
            await self._discard(full_key)
            return None

        if entry.is_expired(self._clock()):
            await self._discard(full_key)
            return None

        return entry.data

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, prefix: Optional[str] = None) -> None:
        full_key = build_key(key, prefix)
        ttl = clamp_ttl(ttl, self.default_ttl, self.max_ttl)
        try:
            entry = CacheEntry(data=value, timestamp=int(self._clock() * 1000), ttl=ttl)
            await self._write(full_key, entry.model_dump_json(), ttl)
        except Exception as e:
            self.logger.error("cache_set_failed", key=full_key, error=str(e))

    async def delete(self, key: str, prefix: Optional[str] = None) -> None:
        await self._discard(build_key(key, prefix))

    async def clear_by_prefix(self, prefix: str) -> None:
        pattern = prefix_pattern(prefix)
        try:
            keys = await self._scan(pattern)
            if keys:
                await self._remove(keys)
            self.logger.info("cache_prefix_cleared", prefix=prefix, keys_removed=len(keys))
        except Exception as e:
            self.logger.error("cache_clear_failed", prefix=prefix, error=str(e))

    async def purge_expired(self, prefixes: Optional[Sequence[str]] = None) -> int:
        """
        Drop expired entries under ``prefixes`` (every key when omitted).

        Only values that parse as a CacheEntry and are past their TTL are
        removed; anything else under the pattern is left untouched. Returns
        the number removed.
        """
        patterns = [prefix_pattern(p) for p in prefixes] if prefixes else ["*"]
        removed = 0
        now = self._clock()
        for pattern in patterns:
            try:
                keys = await self._scan(pattern)
            except Exception as e:
                self.logger.error("cache_purge_failed", pattern=pattern, error=str(e))
                continue
            for key in keys:
                try:
                    raw = await self._read(key)
                    if raw is None:
                        continue
                    if CacheEntry.model_validate_json(raw).is_expired(now):
                        await self._remove([key])
                        removed += 1
                except ValidationError:
                    continue
                except Exception as e:
                    self.logger.warning("cache_purge_key_failed", key=key, error=str(e))
        if removed:
            self.logger.debug("cache_purged", entries_removed=removed)
        return removed

    async def count(self, prefix: Optional[str] = None) -> int:
        pattern = prefix_pattern(prefix) if prefix else "*"
        try:
            return len(await self._scan(pattern))
        except Exception as e:
            self.logger.error("cache_count_failed", prefix=prefix, error=str(e))
            return 0

    async def get_stats(self) -> CacheStats:
        try:
            return await self._stats()
        except Exception as e:
            self.logger.error("cache_stats_failed", error=str(e))
            return CacheStats(total_keys=0, memory_usage="unknown", connected=False)

    async def is_connected(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def _discard(self, key: str) -> None:
        try:
            await self._remove([key])
        except Exception as e:
            self.logger.error("cache_delete_failed", key=key, error=str(e))


class MemoryCacheAdapter(BaseCacheAdapter):
    """Process-local cache. Entries expire lazily on read or via purge_expired."""

    provider = "memory"

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self._store: dict[str, str] = {}

    async def _read(self, key: str) -> Optional[str]:
        return self._store.get(key)

    async def _write(self, key: str, payload: str, ttl: int) -> None:
        self._store[key] = payload

    async def _remove(self, keys: list[str]) -> None:
        for key in keys:
            self._store.pop(key, None)

    async def _scan(self, pattern: str) -> list[str]:
        return [key for key in list(self._store) if fnmatch.fnmatchcase(key, pattern)]

    async def _stats(self) -> CacheStats:
        size = sum(len(key) + len(payload) for key, payload in self._store.items())
        return CacheStats(
            total_keys=len(self._store),
            memory_usage=f"{round(size / 1024)}KB",
            connected=True,
        )
