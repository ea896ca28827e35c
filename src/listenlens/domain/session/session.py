"""
Session boundary: owns the clients, the cache and every periodic task.

A host creates one ``ListeningSession`` per signed-in user. When the
credential can no longer be refreshed the session ends itself and flips
``expired`` so the host can return to its signed-out state.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable, Optional

from loguru import logger

from listenlens.core.config import Config, load_config
from listenlens.core.database import init_database
from listenlens.core.output import log
from listenlens.core.tasks import PeriodicTask
from listenlens.domain.cache.backends import MemoryCacheBackend, SqliteCacheBackend
from listenlens.domain.cache.store import PersistentCache
from listenlens.domain.catalog.api import TIME_RANGES, CatalogClient
from listenlens.domain.catalog.fetcher import BatchFetcher, ProgressiveLoader
from listenlens.domain.stats.recent import RecentActivity
from listenlens.domain.stats.service import StatsService

from .credentials import SqliteCredentialStore
from .lifecycle import CredentialManager
from .token_client import TokenClient


class ListeningSession:
    """Wires credentials, catalog, cache and stats for one signed-in user."""

    def __init__(
        self,
        config: Config,
        credentials: CredentialManager,
        token_client: TokenClient,
        catalog: CatalogClient,
        cache: PersistentCache,
        stats: StatsService,
        time_range: str = "long_term",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.credentials = credentials
        self.token_client = token_client
        self.catalog = catalog
        self.cache = cache
        self.stats = stats
        self.expired = False
        self.recent_activity: Optional[RecentActivity] = None
        self.loader: ProgressiveLoader = stats.progressive_loader(time_range)
        self._sleep = sleep
        self._polling: Optional[PeriodicTask] = None
        self._end_task: Optional[asyncio.Task] = None
        self._closed = False

        credentials.on_session_expired = self._handle_session_expired

    @classmethod
    def create(
        cls,
        config: Optional[Config] = None,
        db_path: Optional[Path] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "ListeningSession":
        """Build a session from configuration, initializing the database."""
        config = config or load_config()
        init_database(db_path)

        token_client = TokenClient(
            config.spotify.auth_server_url, timeout=config.spotify.request_timeout
        )
        credentials = CredentialManager(
            SqliteCredentialStore(db_path),
            token_client,
            safety_margin=timedelta(minutes=config.auth.safety_margin_minutes),
            refresh_interval=config.auth.refresh_interval_seconds,
        )
        catalog = CatalogClient(
            config.spotify.api_base_url,
            timeout=config.spotify.request_timeout,
            market=config.spotify.market,
        )

        if config.cache.backend == "memory":
            backend = MemoryCacheBackend(quota_bytes=config.cache.quota_bytes)
        else:
            backend = SqliteCacheBackend(db_path, quota_bytes=config.cache.quota_bytes)
        cache = PersistentCache(
            backend,
            namespace=config.cache.namespace,
            enabled=config.cache.enabled,
            stale_horizon=config.cache.stale_horizon_hours * 60 * 60,
        )

        fetcher = BatchFetcher(
            credentials,
            cache=cache,
            delay=config.fetch.request_delay_ms / 1000.0,
            sleep=sleep,
        )
        stats = StatsService(catalog, fetcher, cache, config.fetch, config.cache)

        return cls(config, credentials, token_client, catalog, cache, stats, sleep=sleep)

    @property
    def time_range(self) -> str:
        return self.loader.time_range

    @property
    def authenticated(self) -> bool:
        return self.credentials.credential is not None

    def set_range(self, time_range: str) -> None:
        """Select the time range; resets load-more progress."""
        if time_range not in TIME_RANGES:
            raise ValueError(f"Unknown time range: {time_range!r}")
        self.loader.set_range(time_range)

    def login(
        self, access_token: str, refresh_token: Optional[str], expires_in: float = 3600
    ) -> None:
        """Adopt tokens from a completed login."""
        self.credentials.store_tokens(access_token, refresh_token, expires_in)
        self.expired = False

    async def start(self) -> bool:
        """Start background work.

        Returns:
            False if no credential could be found
        """
        if self.credentials.credential is None:
            await self.credentials.load_from_server()
        if self.credentials.credential is None:
            logger.info("No credentials available, session not started")
            return False

        self.cache.clear_old()
        self.credentials.start()

        polling = self.config.polling
        if polling.enabled and self._polling is None:
            self._polling = PeriodicTask(
                "recently-played-poll",
                self._poll_recently_played,
                polling.recently_played_interval_seconds,
                sleep=self._sleep,
            )
        if self._polling is not None:
            self._polling.start()

        logger.info(f"Session started (range={self.time_range})")
        return True

    async def end(self) -> None:
        """Stop periodic tasks, log out server-side and close HTTP clients."""
        if self._closed:
            return
        self._closed = True

        if self._polling is not None:
            await self._polling.stop()
        await self.credentials.logout()
        await self.catalog.aclose()
        await self.token_client.aclose()
        logger.info("Session ended")

    logout = end

    async def wait_closed(self) -> None:
        """Wait for a session-expiry shutdown, if one is in progress."""
        if self._end_task is not None:
            await self._end_task

    async def __aenter__(self) -> "ListeningSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.end()

    async def _poll_recently_played(self) -> Optional[bool]:
        if self.expired:
            return False
        self.recent_activity = await self.stats.load_recently_played()
        return None

    def _handle_session_expired(self) -> None:
        if self.expired:
            return
        self.expired = True
        log("Session expired. Please log in again.", level="warning")
        self._end_task = asyncio.get_running_loop().create_task(self.end())
