"""
Incremental sync for collections that only grow at the front.

Saved tracks and saved albums are ordered newest-first by ``added_at``.
Optimization strategy:
1. Fresh cache entry -> return it, 0 API calls
2. Stale entry -> fetch newest pages until one reaches a known item, merge
   the strictly newer ones
3. No entry -> full paginated drain
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger

from listenlens.core.exceptions import NetworkError, UnauthorizedError
from listenlens.domain.catalog.fetcher import BatchFetcher, PageFn
from listenlens.domain.catalog.models import PaginatedResult

from .store import CACHE_DURATION, IdentityFn, PersistentCache


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def newer_than(items, latest: Dict[str, Any], timestamp_field: str = "added_at"):
    """Items whose timestamp is strictly newer than ``latest``'s."""
    latest_at = _parse_timestamp(latest.get(timestamp_field))
    if latest_at is None:
        return []
    newer = []
    for item in items:
        item_at = _parse_timestamp(item.get(timestamp_field))
        if item_at is not None and item_at > latest_at:
            newer.append(item)
    return newer


async def fetch_saved_with_cache(
    cache: PersistentCache,
    fetcher: BatchFetcher,
    page_fn: PageFn,
    key: str,
    identity_fn: IdentityFn,
    max_age: float = CACHE_DURATION,
    force_refresh: bool = False,
    page_size: int = 50,
    hard_cap: Optional[int] = None,
    timestamp_field: str = "added_at",
) -> PaginatedResult:
    """Return a saved collection, downloading as little as possible.

    Args:
        cache: Persistent cache holding the collection under ``key``
        fetcher: Fetcher used for the newest page or a full drain
        page_fn: (token, limit, offset) page function for the collection
        key: Cache key of the collection
        identity_fn: Identity of one item, used when merging
        max_age: Age in seconds under which the cached entry is returned as-is
        force_refresh: Skip the cache and drain everything
        page_size: Page size for remote calls
        hard_cap: Maximum items for a full drain (None = unbounded)
        timestamp_field: Item field ordering the collection

    Returns:
        PaginatedResult with the remote's total
    """
    entry = None if force_refresh else cache.peek(key)
    cached = entry.payload if entry is not None else None
    cached_items = cached.get("items") if isinstance(cached, dict) else None

    if cached_items is not None and cache.is_fresh(entry, max_age):
        logger.debug(f"Using fresh cache for {key} ({len(cached_items)} items)")
        return PaginatedResult(items=cached_items, total=cached.get("total", 0), complete=True)

    if cached_items:
        result = await _incremental_update(
            cache,
            fetcher,
            page_fn,
            key,
            cached,
            identity_fn,
            page_size,
            hard_cap,
            timestamp_field,
        )
        if result is not None:
            return result

    logger.info(f"Full refresh of {key}")
    result = await fetcher.fetch_all(page_fn, page_size=page_size, hard_cap=hard_cap)
    if result.complete:
        cache.set(key, result.to_dict())
    elif cached_items:
        logger.warning(f"Full refresh of {key} incomplete, serving stale cache")
        return PaginatedResult(items=cached_items, total=cached.get("total", 0))
    return result


async def _incremental_update(
    cache: PersistentCache,
    fetcher: BatchFetcher,
    page_fn: PageFn,
    key: str,
    cached: Dict[str, Any],
    identity_fn: IdentityFn,
    page_size: int,
    hard_cap: Optional[int],
    timestamp_field: str,
) -> Optional[PaginatedResult]:
    """Merge the items added since the cached entry was written.

    Pages are read from the newest until one contains an item that is not
    strictly newer than the cached head. Returns None when a page cannot be
    fetched, so the caller falls back to a full drain.
    """
    latest = cache.get_latest_item(key)
    if latest is None:
        return None

    new_items = []
    total = 0
    offset = 0
    while hard_cap is None or offset < hard_cap:
        if offset:
            await fetcher.pause()
        try:
            page = await fetcher.fetch_page(page_fn, page_size, offset)
        except (NetworkError, UnauthorizedError) as e:
            logger.warning(
                f"Incremental update of {key} failed, falling back to full refresh: {e}"
            )
            return None

        total = max(total, page.total)
        newer = newer_than(page.items, latest, timestamp_field)
        new_items.extend(newer)
        offset += page_size
        if len(newer) < len(page.items) or len(page.items) < page_size:
            break
    else:
        logger.warning(f"{key}: more than {hard_cap} new items, running full refresh")
        return None

    if not new_items:
        logger.info(f"No new items for {key}")
        # Re-stamp so the entry counts as fresh again
        cache.set(key, cached)
        return PaginatedResult(
            items=cached["items"], total=cached.get("total", 0), complete=True
        )

    merged = cache.merge_items(key, new_items, identity_fn)
    result = PaginatedResult(items=merged["items"], total=total, complete=True)
    cache.set(key, result.to_dict())
    logger.info(f"Merged {len(new_items)} new items into {key}")
    return result
