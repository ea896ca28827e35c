"""Stats domain - genre ranking, recent activity and view operations."""

from .genres import GenreRecord, calculate_top_genres, find_missing_artist_ids
from .recent import RecentActivity, extract_unique_from_recently_played
from .service import StatsService, UserStats

__all__ = [
    "GenreRecord",
    "calculate_top_genres",
    "find_missing_artist_ids",
    "RecentActivity",
    "extract_unique_from_recently_played",
    "StatsService",
    "UserStats",
]
