"""Cache domain - persistent response cache.

This domain handles:
- Storage backends (SQLite rows or an in-memory dict)
- TTL reads, quota recovery and stale-entry sweeps
- Identity-based merging of collection items

Incremental sync lives in ``listenlens.domain.cache.sync``.
"""

from .backends import CacheBackend, MemoryCacheBackend, SqliteCacheBackend
from .identity import IDENTITY_BY_KIND
from .store import CACHE_DURATION, CACHE_PREFIX, CacheEntry, PersistentCache

__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "SqliteCacheBackend",
    "IDENTITY_BY_KIND",
    "CACHE_DURATION",
    "CACHE_PREFIX",
    "CacheEntry",
    "PersistentCache",
]
