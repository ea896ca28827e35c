"""
Rate-limited, offset-paginated fetching.

Pages of one drain are requested one after another with a fixed delay
between calls. A failed page is skipped, so a transient error shows up as an
undercount rather than as a failed view. Callers needing an exact count
compare ``len(result.items)`` with ``result.total``.
"""

import asyncio
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from loguru import logger

from listenlens.core.exceptions import NetworkError, UnauthorizedError
from listenlens.domain.cache.store import CACHE_DURATION, PersistentCache
from listenlens.domain.session.lifecycle import CredentialManager

from .models import FetchProgress, PaginatedResult

# (access_token, limit, offset) -> {"items": [...], "total": N}
PageFn = Callable[[str, int, int], Awaitable[Dict[str, Any]]]
# (access_token, ids) -> [entity, ...]
BatchFn = Callable[[str, List[str]], Awaitable[List[Dict[str, Any]]]]
CacheKeyFn = Callable[[int, int], str]

REQUEST_DELAY_SECONDS = 0.1
DEFAULT_PAGE_SIZE = 50
MAX_IDS_PER_BATCH = 50
# Bounds an uncapped drain whose pages keep failing
MAX_CONSECUTIVE_FAILURES = 3

# Failures absorbed per batch; SessionExpiredError is not among them
BATCH_ERRORS = (NetworkError, UnauthorizedError)


class BatchFetcher:
    """Paginated retrieval through the credential manager."""

    def __init__(
        self,
        credentials: CredentialManager,
        cache: Optional[PersistentCache] = None,
        delay: float = REQUEST_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.credentials = credentials
        self.cache = cache
        self.delay = delay
        self._sleep = sleep

    async def pause(self) -> None:
        if self.delay > 0:
            await self._sleep(self.delay)

    async def fetch_page(
        self,
        page_fn: PageFn,
        limit: int,
        offset: int,
        cache_key: Optional[str] = None,
        max_age: float = CACHE_DURATION,
    ) -> PaginatedResult:
        """Fetch one page, reading through the cache when a key is given.

        Raises:
            NetworkError, UnauthorizedError, SessionExpiredError
        """
        use_cache = self.cache is not None and cache_key is not None
        if use_cache:
            cached = self.cache.get(cache_key, max_age)
            if cached is not None:
                logger.debug(f"Cache hit: {cache_key}")
                return PaginatedResult.from_response(cached)

        response = await self.credentials.wrap_call(
            lambda token: page_fn(token, limit, offset)
        )

        if use_cache:
            self.cache.set(cache_key, response)
        return PaginatedResult.from_response(response)

    async def fetch_all(
        self,
        page_fn: PageFn,
        page_size: int = DEFAULT_PAGE_SIZE,
        hard_cap: Optional[int] = None,
        cache_key_fn: Optional[CacheKeyFn] = None,
        max_age: float = CACHE_DURATION,
    ) -> PaginatedResult:
        """Drain pages at offsets 0, page_size, 2*page_size, ...

        Stops at the first successful page shorter than ``page_size`` or when
        the offset reaches ``hard_cap``; items are truncated to ``hard_cap``.
        ``hard_cap=None`` drains until a short page.
        """
        items: List[Dict[str, Any]] = []
        total = 0
        offset = 0
        batches = 0
        failures = 0
        complete = False

        while hard_cap is None or offset < hard_cap:
            if batches:
                await self.pause()
            batches += 1

            cache_key = cache_key_fn(page_size, offset) if cache_key_fn else None
            try:
                page = await self.fetch_page(page_fn, page_size, offset, cache_key, max_age)
            except BATCH_ERRORS as e:
                logger.warning(f"Error fetching batch at offset {offset}, skipping: {e}")
                offset += page_size
                failures += 1
                if hard_cap is None and failures >= MAX_CONSECUTIVE_FAILURES:
                    logger.warning(f"Giving up after {failures} consecutive failed batches")
                    break
                continue

            failures = 0
            items.extend(page.items)
            total = max(total, page.total)
            offset += page_size

            if len(page.items) < page_size:
                complete = True
                break
        else:
            complete = True

        if hard_cap is not None:
            items = items[:hard_cap]

        logger.debug(
            f"Fetched {len(items)} items in {batches} batches "
            f"(total={total}, complete={complete})"
        )
        return PaginatedResult(items=items, total=total, complete=complete)

    async def fetch_entities_by_ids(
        self,
        ids: Sequence[str],
        batch_fn: BatchFn,
        max_per_batch: int = MAX_IDS_PER_BATCH,
    ) -> List[Dict[str, Any]]:
        """Look up entities in chunks of ``max_per_batch`` ids.

        A failing chunk contributes nothing; the other chunks still count.
        """
        ids = list(ids)
        entities: List[Dict[str, Any]] = []

        for index, start in enumerate(range(0, len(ids), max_per_batch)):
            chunk = ids[start : start + max_per_batch]
            if index:
                await self.pause()
            try:
                batch = await self.credentials.wrap_call(
                    lambda token, chunk=chunk: batch_fn(token, chunk)
                )
            except BATCH_ERRORS as e:
                logger.warning(f"Error fetching entity batch {index}: {e}")
                continue
            entities.extend(entity for entity in batch if entity)

        logger.debug(f"Fetched {len(entities)} of {len(ids)} requested entities")
        return entities


# (kind, time_range, limit, offset) -> one page
PageLoader = Callable[[str, str, int, int], Awaitable[PaginatedResult]]


class ProgressiveLoader:
    """Load-more paging for a view, scoped to the selected time range.

    Progress and items are kept per (kind, range). Changing the range drops
    them; a page that arrives after the range changed is discarded.
    """

    def __init__(
        self,
        load_page: PageLoader,
        hard_caps: Dict[str, int],
        time_range: str = "long_term",
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.hard_caps = hard_caps
        self.page_size = page_size
        self._load_page = load_page
        self._time_range = time_range
        self._generation = 0
        self._progress: Dict[Tuple[str, str], FetchProgress] = {}
        self._items: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self._loading: Set[Tuple[str, str]] = set()

    @property
    def time_range(self) -> str:
        return self._time_range

    def set_range(self, time_range: str) -> None:
        if time_range == self._time_range:
            return
        logger.debug(f"Range changed {self._time_range} -> {time_range}, resetting progress")
        self._time_range = time_range
        self._generation += 1
        self._progress.clear()
        self._items.clear()
        self._loading.clear()

    def progress(self, kind: str) -> FetchProgress:
        return self._progress.setdefault((kind, self._time_range), FetchProgress())

    def items(self, kind: str) -> List[Dict[str, Any]]:
        return list(self._items.get((kind, self._time_range), []))

    async def load_more(self, kind: str) -> List[Dict[str, Any]]:
        """Fetch the next page for ``kind`` and return all items so far."""
        key = (kind, self._time_range)
        progress = self.progress(kind)
        if progress.complete or key in self._loading:
            return self.items(kind)

        generation = self._generation
        self._loading.add(key)
        try:
            page = await self._load_page(kind, key[1], self.page_size, progress.offset)
        except BATCH_ERRORS as e:
            logger.warning(f"Error loading more {kind}: {e}")
            return self.items(kind)
        finally:
            if generation == self._generation:
                self._loading.discard(key)

        if generation != self._generation:
            logger.debug(f"Discarding {kind} page for stale range {key[1]}")
            return self.items(kind)

        cap = self.hard_caps.get(kind)
        merged = self._items.get(key, []) + page.items
        self._items[key] = merged[:cap] if cap is not None else merged
        progress.offset += len(page.items)

        if len(page.items) < self.page_size or (cap is not None and progress.offset >= cap):
            progress.complete = True

        return self.items(kind)
