"""
View-facing stats operations.

Every public method returns a value: failures are logged and degrade to an
empty or partial result. A SessionExpiredError has already been reported to
the session by the credential manager by the time it reaches this layer.
"""

import asyncio
import functools
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from listenlens.core.config import CacheConfig, FetchConfig
from listenlens.core.exceptions import SessionExpiredError
from listenlens.domain.cache.identity import IDENTITY_BY_KIND
from listenlens.domain.cache.store import PersistentCache
from listenlens.domain.cache.sync import fetch_saved_with_cache
from listenlens.domain.catalog.api import CatalogClient
from listenlens.domain.catalog.fetcher import BatchFetcher, PageFn, ProgressiveLoader
from listenlens.domain.catalog.models import PaginatedResult

from .genres import GenreRecord, calculate_top_genres, find_missing_artist_ids
from .recent import RecentActivity, extract_unique_from_recently_played, merge_artist_details

TOP_KINDS = ("tracks", "artists")
RECENT_ARTIST_LOOKUP_LIMIT = 50


@dataclass
class UserStats:
    playlist_count: int = 0
    public_playlists: int = 0
    collaborative_playlists: int = 0
    saved_songs: int = 0
    saved_albums: int = 0
    followed_artists: int = 0
    follower_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def absorbs_errors(default_factory: Callable[[], Any]):
    """Return ``default_factory()`` instead of raising from a view operation."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except SessionExpiredError:
                logger.warning(f"{fn.__name__}: session expired")
                return default_factory()
            except Exception:
                logger.exception(f"Unexpected error in {fn.__name__}")
                return default_factory()

        return wrapper

    return decorator


class StatsService:
    """Top items, genres, recent activity and library views."""

    def __init__(
        self,
        catalog: CatalogClient,
        fetcher: BatchFetcher,
        cache: PersistentCache,
        fetch_config: Optional[FetchConfig] = None,
        cache_config: Optional[CacheConfig] = None,
    ):
        self.catalog = catalog
        self.fetcher = fetcher
        self.cache = cache
        self.fetch_config = fetch_config or FetchConfig()
        self.cache_config = cache_config or CacheConfig()

    @property
    def hard_caps(self) -> Dict[str, int]:
        return {
            "tracks": self.fetch_config.track_hard_cap,
            "artists": self.fetch_config.artist_hard_cap,
        }

    def _top_page_fn(self, kind: str, time_range: str) -> PageFn:
        if kind not in TOP_KINDS:
            raise ValueError(f"Unknown top item kind: {kind!r}")
        getter = (
            self.catalog.get_top_tracks if kind == "tracks" else self.catalog.get_top_artists
        )

        async def page_fn(token: str, limit: int, offset: int) -> Dict[str, Any]:
            return await getter(token, limit=limit, offset=offset, time_range=time_range)

        return page_fn

    @staticmethod
    def top_cache_key(kind: str, time_range: str, limit: int, offset: int) -> str:
        return f"top_{kind}_{time_range}_{limit}_{offset}"

    async def fetch_top_page(
        self, kind: str, time_range: str, limit: int, offset: int
    ) -> PaginatedResult:
        """One cached page of top tracks or artists. Raises on failure."""
        return await self.fetcher.fetch_page(
            self._top_page_fn(kind, time_range),
            limit,
            offset,
            cache_key=self.top_cache_key(kind, time_range, limit, offset),
            max_age=self.cache_config.top_items_ttl_seconds,
        )

    async def _drain_top(self, kind: str, time_range: str) -> PaginatedResult:
        return await self.fetcher.fetch_all(
            self._top_page_fn(kind, time_range),
            page_size=self.fetch_config.page_size,
            hard_cap=self.hard_caps[kind],
            cache_key_fn=lambda limit, offset: self.top_cache_key(
                kind, time_range, limit, offset
            ),
            max_age=self.cache_config.top_items_ttl_seconds,
        )

    def progressive_loader(self, time_range: str) -> ProgressiveLoader:
        """Load-more paging over top tracks and artists for one view."""
        return ProgressiveLoader(
            self.fetch_top_page,
            self.hard_caps,
            time_range=time_range,
            page_size=self.fetch_config.page_size,
        )

    @absorbs_errors(PaginatedResult)
    async def fetch_top_tracks(
        self, time_range: str = "long_term", limit: int = 50, offset: int = 0
    ) -> PaginatedResult:
        return await self.fetch_top_page("tracks", time_range, limit, offset)

    @absorbs_errors(PaginatedResult)
    async def fetch_top_artists(
        self, time_range: str = "long_term", limit: int = 50, offset: int = 0
    ) -> PaginatedResult:
        return await self.fetch_top_page("artists", time_range, limit, offset)

    @absorbs_errors(PaginatedResult)
    async def load_top_tracks(self, time_range: str = "long_term") -> PaginatedResult:
        return await self._drain_top("tracks", time_range)

    @absorbs_errors(PaginatedResult)
    async def load_top_artists(self, time_range: str = "long_term") -> PaginatedResult:
        return await self._drain_top("artists", time_range)

    @absorbs_errors(list)
    async def load_top_genres(self, time_range: str = "long_term") -> List[GenreRecord]:
        """Rank genres over up to 500 top tracks and 500 top artists."""
        tracks, artists = await asyncio.gather(
            self._drain_top("tracks", time_range),
            self._drain_top("artists", time_range),
        )

        missing_ids = find_missing_artist_ids(tracks.items, artists.items)
        logger.info(f"Found {len(missing_ids)} artists in tracks not present in top artists")

        additional_artists = []
        if missing_ids:
            additional_artists = await self.fetcher.fetch_entities_by_ids(
                missing_ids,
                self.catalog.get_artists,
                max_per_batch=self.fetch_config.max_ids_per_batch,
            )
            logger.info(f"Fetched {len(additional_artists)} additional artists")

        genres = calculate_top_genres(tracks.items, artists.items, additional_artists)
        return genres[: self.fetch_config.genre_limit]

    @absorbs_errors(RecentActivity)
    async def load_recently_played(self, limit: int = 50) -> RecentActivity:
        """Recently played tracks with play counts per artist, album, podcast."""
        cache_key = f"recently_played_{limit}"
        response = self.cache.get(cache_key, self.cache_config.recently_played_ttl_seconds)
        if response is None:
            response = await self.fetcher.credentials.wrap_call(
                lambda token: self.catalog.get_recently_played(token, limit=limit)
            )
            self.cache.set(cache_key, response)

        activity = extract_unique_from_recently_played(response.get("items") or [])

        artist_ids = [a["id"] for a in activity.artists[:RECENT_ARTIST_LOOKUP_LIMIT]]
        if artist_ids:
            full_artists = await self.fetcher.fetch_entities_by_ids(
                artist_ids,
                self.catalog.get_artists,
                max_per_batch=self.fetch_config.max_ids_per_batch,
            )
            activity.artists = merge_artist_details(activity.artists, full_artists)

        return activity

    @absorbs_errors(UserStats)
    async def load_user_stats(self) -> UserStats:
        """Library counts; each source that fails contributes zero."""
        wrap_call = self.fetcher.credentials.wrap_call
        results = await asyncio.gather(
            wrap_call(lambda token: self.catalog.get_user_playlists(token, limit=50)),
            wrap_call(lambda token: self.catalog.get_saved_tracks(token, limit=1)),
            wrap_call(lambda token: self.catalog.get_saved_albums(token, limit=1)),
            wrap_call(lambda token: self.catalog.get_followed_artists(token, limit=1)),
            wrap_call(self.catalog.get_me),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, SessionExpiredError):
                raise result

        def ok(result) -> Dict[str, Any]:
            if isinstance(result, BaseException):
                logger.warning(f"User stats source failed: {result}")
                return {}
            return result or {}

        playlists, saved_tracks, saved_albums, followed, me = (ok(r) for r in results)
        playlist_items = playlists.get("items") or []

        return UserStats(
            playlist_count=playlists.get("total") or 0,
            public_playlists=sum(1 for p in playlist_items if p.get("public")),
            collaborative_playlists=sum(1 for p in playlist_items if p.get("collaborative")),
            saved_songs=saved_tracks.get("total") or 0,
            saved_albums=saved_albums.get("total") or 0,
            followed_artists=followed.get("total") or 0,
            follower_count=(me.get("followers") or {}).get("total") or 0,
        )

    def _library_hard_cap(self) -> Optional[int]:
        return self.fetch_config.library_hard_cap or None

    @absorbs_errors(PaginatedResult)
    async def load_saved_tracks(self, force_refresh: bool = False) -> PaginatedResult:
        """Saved tracks, newest first, synced incrementally."""
        return await fetch_saved_with_cache(
            self.cache,
            self.fetcher,
            self.catalog.get_saved_tracks,
            "saved_tracks",
            identity_fn=IDENTITY_BY_KIND["saved_tracks"],
            max_age=self.cache_config.saved_library_ttl_seconds,
            force_refresh=force_refresh,
            page_size=self.fetch_config.page_size,
            hard_cap=self._library_hard_cap(),
        )

    @absorbs_errors(PaginatedResult)
    async def load_saved_albums(self, force_refresh: bool = False) -> PaginatedResult:
        """Saved albums, newest first, synced incrementally."""
        return await fetch_saved_with_cache(
            self.cache,
            self.fetcher,
            self.catalog.get_saved_albums,
            "saved_albums",
            identity_fn=IDENTITY_BY_KIND["saved_albums"],
            max_age=self.cache_config.saved_library_ttl_seconds,
            force_refresh=force_refresh,
            page_size=self.fetch_config.page_size,
            hard_cap=self._library_hard_cap(),
        )
