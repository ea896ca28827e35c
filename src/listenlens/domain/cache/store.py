"""
Namespaced key -> (payload, timestamp) cache with TTL reads and item merging.

The cache is best-effort: every failure is logged and degrades to a miss, so
a cold or disabled cache gives the same results as a warm one, only slower.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional

from loguru import logger

from listenlens.core.exceptions import StorageError, StorageQuotaExceededError

from .backends import CacheBackend

CACHE_PREFIX = "spotify_cache_"
CACHE_DURATION = 24 * 60 * 60  # 24 hours, in seconds

IdentityFn = Callable[[Dict[str, Any]], Hashable]


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    timestamp: float


class PersistentCache:
    """TTL cache over a storage backend."""

    def __init__(
        self,
        backend: CacheBackend,
        namespace: str = CACHE_PREFIX,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
        stale_horizon: float = CACHE_DURATION,
    ):
        self.backend = backend
        self.namespace = namespace
        self.enabled = enabled
        self.stale_horizon = stale_horizon
        self._clock = clock

    def _full_key(self, key: str) -> str:
        return self.namespace + key

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry regardless of its age."""
        if not self.enabled:
            return None

        full_key = self._full_key(key)
        try:
            record = self.backend.read(full_key)
        except StorageError as e:
            logger.warning(f"Cache get error: {e}")
            return None
        if record is None:
            return None

        payload_json, timestamp = record
        try:
            payload = json.loads(payload_json)
        except (TypeError, ValueError):
            logger.warning(f"Evicting unreadable cache entry: {key}")
            self._delete(full_key)
            return None

        return CacheEntry(key=key, payload=payload, timestamp=timestamp)

    def is_fresh(self, entry: CacheEntry, max_age: float) -> bool:
        return self._clock() - entry.timestamp <= max_age

    def get(self, key: str, max_age: float = CACHE_DURATION) -> Optional[Any]:
        """Return the payload if it is at most ``max_age`` seconds old.

        Older entries are evicted.
        """
        entry = self.peek(key)
        if entry is None:
            return None

        if not self.is_fresh(entry, max_age):
            logger.debug(f"Cache entry expired: {key} (older than {max_age}s)")
            self._delete(self._full_key(key))
            return None

        return entry.payload

    def get_timestamp(self, key: str) -> Optional[float]:
        entry = self.peek(key)
        return entry.timestamp if entry else None

    def set(self, key: str, payload: Any) -> None:
        """Store payload stamped with the current time.

        On a quota failure, old entries are cleared and the write is retried
        once. Any remaining failure is logged and swallowed.
        """
        if not self.enabled:
            return

        try:
            payload_json = json.dumps(payload)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache set error: payload for {key} is not serializable: {e}")
            return

        full_key = self._full_key(key)
        try:
            self.backend.write(full_key, payload_json, self._clock())
        except StorageQuotaExceededError:
            logger.warning(f"Cache quota exceeded writing {key}, clearing old entries")
            self.clear_old()
            try:
                self.backend.write(full_key, payload_json, self._clock())
            except StorageError as retry_error:
                logger.error(f"Cache set retry error: {retry_error}")
        except StorageError as e:
            logger.error(f"Cache set error: {e}")

    def clear(self, key: str) -> None:
        self._delete(self._full_key(key))

    def clear_all(self) -> None:
        """Remove every entry in this cache's namespace."""
        try:
            for full_key, _ in self.backend.entries(self.namespace):
                self._delete(full_key)
        except StorageError as e:
            logger.warning(f"Cache clear error: {e}")

    def clear_old(self, horizon: Optional[float] = None) -> int:
        """Remove entries older than ``horizon`` seconds (default 24h).

        Returns:
            Number of entries removed
        """
        horizon = self.stale_horizon if horizon is None else horizon
        now = self._clock()
        removed = 0
        try:
            for full_key, timestamp in self.backend.entries(self.namespace):
                if timestamp is None or now - timestamp > horizon:
                    self._delete(full_key)
                    removed += 1
        except StorageError as e:
            logger.warning(f"Cache sweep error: {e}")

        if removed:
            logger.info(f"Cleared {removed} cache entries older than {horizon}s")
        return removed

    def get_latest_item(self, key: str) -> Optional[Dict[str, Any]]:
        """Newest item (first in order) of a cached collection, regardless of age."""
        entry = self.peek(key)
        cached = entry.payload if entry is not None else None
        if not isinstance(cached, dict) or not cached.get("items"):
            return None
        return cached["items"][0]

    def merge_items(
        self, key: str, new_items: List[Dict[str, Any]], identity_fn: IdentityFn
    ) -> Dict[str, Any]:
        """Prepend the unseen ``new_items`` to the cached collection.

        Identity is compared against the cached items only; duplicates inside
        ``new_items`` are kept. Nothing is written back.

        Returns:
            {"items": merged, "total": len(merged)}
        """
        entry = self.peek(key)
        cached_items = None
        if entry is not None and isinstance(entry.payload, dict):
            cached_items = entry.payload.get("items")
        if not cached_items:
            return {"items": list(new_items), "total": len(new_items)}

        try:
            existing_ids = {identity_fn(item) for item in cached_items}
            unique_new_items = [
                item for item in new_items if identity_fn(item) not in existing_ids
            ]
        except (KeyError, TypeError) as e:
            logger.error(f"Cache merge error for {key}: {e}")
            return {"items": list(new_items), "total": len(new_items)}

        merged = unique_new_items + list(cached_items)
        return {"items": merged, "total": len(merged)}

    def _delete(self, full_key: str) -> None:
        try:
            self.backend.delete(full_key)
        except StorageError as e:
            logger.warning(f"Cache delete error: {e}")
