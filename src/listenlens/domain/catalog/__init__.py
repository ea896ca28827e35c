"""Catalog domain - Spotify Web API reads and paginated fetching."""

from .api import TIME_RANGES, CatalogClient
from .fetcher import BatchFetcher, ProgressiveLoader
from .models import FetchProgress, PaginatedResult

__all__ = [
    "TIME_RANGES",
    "CatalogClient",
    "BatchFetcher",
    "ProgressiveLoader",
    "FetchProgress",
    "PaginatedResult",
]
