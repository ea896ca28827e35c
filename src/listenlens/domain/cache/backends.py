"""
Storage backends for the persistent cache.

Backends store raw ``(payload_json, timestamp)`` records and signal failures
with StorageError / StorageQuotaExceededError. TTL logic lives in the cache.
"""

import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from listenlens.core import database
from listenlens.core.exceptions import StorageError, StorageQuotaExceededError


class CacheBackend(Protocol):
    def read(self, key: str) -> Optional[Tuple[str, float]]: ...

    def write(self, key: str, payload: str, timestamp: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def entries(self, prefix: str = "") -> List[Tuple[str, float]]: ...


def _size(payload: str) -> int:
    return len(payload.encode("utf-8"))


class MemoryCacheBackend:
    """Dict-backed backend with an optional byte quota."""

    def __init__(self, quota_bytes: int = 0):
        self.quota_bytes = quota_bytes
        self._records: Dict[str, Tuple[str, float]] = {}

    def read(self, key: str) -> Optional[Tuple[str, float]]:
        return self._records.get(key)

    def write(self, key: str, payload: str, timestamp: float) -> None:
        if self.quota_bytes:
            used = sum(_size(p) for k, (p, _) in self._records.items() if k != key)
            if used + _size(payload) > self.quota_bytes:
                raise StorageQuotaExceededError(
                    f"Cache quota of {self.quota_bytes} bytes exceeded writing {key}"
                )
        self._records[key] = (payload, timestamp)

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def entries(self, prefix: str = "") -> List[Tuple[str, float]]:
        return [
            (key, timestamp)
            for key, (_, timestamp) in self._records.items()
            if key.startswith(prefix)
        ]


class SqliteCacheBackend:
    """Backend storing one row per entry in the local database."""

    def __init__(self, db_path: Optional[Path] = None, quota_bytes: int = 0):
        self.db_path = db_path
        self.quota_bytes = quota_bytes

    def read(self, key: str) -> Optional[Tuple[str, float]]:
        try:
            return database.get_cache_entry(key, self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read cache entry {key}: {e}") from e

    def write(self, key: str, payload: str, timestamp: float) -> None:
        try:
            if self.quota_bytes:
                used = database.get_cache_size_bytes(exclude_key=key, db_path=self.db_path)
                if used + _size(payload) > self.quota_bytes:
                    raise StorageQuotaExceededError(
                        f"Cache quota of {self.quota_bytes} bytes exceeded writing {key}"
                    )
            database.put_cache_entry(key, payload, timestamp, self.db_path)
        except sqlite3.OperationalError as e:
            if "full" in str(e).lower():
                raise StorageQuotaExceededError(f"Database full writing {key}") from e
            raise StorageError(f"Failed to write cache entry {key}: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write cache entry {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            database.delete_cache_entry(key, self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete cache entry {key}: {e}") from e

    def entries(self, prefix: str = "") -> List[Tuple[str, float]]:
        try:
            return database.list_cache_entries(prefix, self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list cache entries: {e}") from e
