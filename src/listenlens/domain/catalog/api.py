"""
Spotify Web API read operations.

Each method takes the access token as its first argument so it can be passed
straight to ``CredentialManager.wrap_call``. HTTP failures are mapped to the
shared exception taxonomy.
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from listenlens.core.exceptions import (
    NetworkError,
    RateLimitedError,
    UnauthorizedError,
)

# Spotify API base URL
API_BASE = "https://api.spotify.com/v1"

TIME_RANGES = ("short_term", "medium_term", "long_term")
MAX_PAGE_SIZE = 50
MAX_IDS_PER_LOOKUP = 50


class CatalogClient:
    """Async client for the catalog's paginated read endpoints."""

    def __init__(
        self,
        base_url: str = API_BASE,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        market: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.market = market
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _get(
        self, token: str, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {token}"}
        params = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

        if response.status_code == 401:
            raise UnauthorizedError(f"Unauthorized: {path}")
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"Spotify rate limit hit on {path}")
            raise RateLimitedError(
                f"Rate limited: {path}",
                retry_after=float(retry_after) if retry_after else None,
            )
        if response.status_code >= 400:
            raise NetworkError(
                f"HTTP {response.status_code} from {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {path}") from e

    async def get_me(self, token: str) -> Dict[str, Any]:
        return await self._get(token, "/me")

    async def get_top_tracks(
        self,
        token: str,
        limit: int = MAX_PAGE_SIZE,
        offset: int = 0,
        time_range: str = "long_term",
    ) -> Dict[str, Any]:
        return await self._get(
            token,
            "/me/top/tracks",
            {"limit": limit, "offset": offset, "time_range": time_range},
        )

    async def get_top_artists(
        self,
        token: str,
        limit: int = MAX_PAGE_SIZE,
        offset: int = 0,
        time_range: str = "long_term",
    ) -> Dict[str, Any]:
        return await self._get(
            token,
            "/me/top/artists",
            {"limit": limit, "offset": offset, "time_range": time_range},
        )

    async def get_artists(self, token: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Bulk artist lookup (at most 50 ids).

        Unknown ids come back as null and are dropped.
        """
        if len(ids) > MAX_IDS_PER_LOOKUP:
            raise ValueError(f"At most {MAX_IDS_PER_LOOKUP} ids per lookup, got {len(ids)}")
        data = await self._get(token, "/artists", {"ids": ",".join(ids)})
        return [artist for artist in data.get("artists") or [] if artist]

    async def get_recently_played(
        self, token: str, limit: int = MAX_PAGE_SIZE
    ) -> Dict[str, Any]:
        return await self._get(token, "/me/player/recently-played", {"limit": limit})

    async def get_saved_tracks(
        self, token: str, limit: int = MAX_PAGE_SIZE, offset: int = 0
    ) -> Dict[str, Any]:
        return await self._get(
            token,
            "/me/tracks",
            {"limit": limit, "offset": offset, "market": self.market},
        )

    async def get_saved_albums(
        self, token: str, limit: int = MAX_PAGE_SIZE, offset: int = 0
    ) -> Dict[str, Any]:
        return await self._get(
            token,
            "/me/albums",
            {"limit": limit, "offset": offset, "market": self.market},
        )

    async def get_followed_artists(
        self, token: str, limit: int = MAX_PAGE_SIZE, after: Optional[str] = None
    ) -> Dict[str, Any]:
        """Cursor-paged followed artists: {"items", "total", "cursors"}."""
        data = await self._get(
            token, "/me/following", {"type": "artist", "limit": limit, "after": after}
        )
        return data.get("artists") or {"items": [], "total": 0}

    async def get_user_playlists(
        self, token: str, limit: int = MAX_PAGE_SIZE, offset: int = 0
    ) -> Dict[str, Any]:
        return await self._get(token, "/me/playlists", {"limit": limit, "offset": offset})

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
