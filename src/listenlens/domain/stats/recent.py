"""
Play-count summaries of the recently played history.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

Entity = Dict[str, Any]


@dataclass
class RecentActivity:
    """Recently played plays plus per-artist/album/podcast play counts."""

    tracks: List[Entity] = field(default_factory=list)
    artists: List[Entity] = field(default_factory=list)
    albums: List[Entity] = field(default_factory=list)
    podcasts: List[Entity] = field(default_factory=list)


def _count_play(
    counts: Dict[str, Entity], entity: Optional[Entity], played_at: Optional[str]
) -> None:
    if not entity or not entity.get("id"):
        return
    existing = counts.get(entity["id"])
    if existing is None:
        counts[entity["id"]] = {**entity, "play_count": 1, "last_played": played_at}
        return
    existing["play_count"] += 1
    if played_at and (existing["last_played"] is None or played_at > existing["last_played"]):
        existing["last_played"] = played_at


def _by_play_count(counts: Dict[str, Entity]) -> List[Entity]:
    return sorted(counts.values(), key=lambda entity: -entity["play_count"])


def extract_unique_from_recently_played(items: List[Entity]) -> RecentActivity:
    """Collapse plays into unique artists, albums and podcasts.

    Each entity gets ``play_count`` and ``last_played`` (latest ``played_at``);
    lists are sorted by play count, most played first, ties in first-seen
    order.
    """
    artists: Dict[str, Entity] = {}
    albums: Dict[str, Entity] = {}
    podcasts: Dict[str, Entity] = {}

    for item in items:
        track = item.get("track")
        if not track:
            continue
        played_at = item.get("played_at")

        for artist in track.get("artists") or []:
            _count_play(artists, artist, played_at)

        _count_play(albums, track.get("album"), played_at)

        if track.get("type") == "episode":
            _count_play(podcasts, track.get("show"), played_at)

    return RecentActivity(
        tracks=list(items),
        artists=_by_play_count(artists),
        albums=_by_play_count(albums),
        podcasts=_by_play_count(podcasts),
    )


def merge_artist_details(
    counted: List[Entity], full_artists: List[Entity]
) -> List[Entity]:
    """Replace counted artist stubs with full artist objects, keeping counts."""
    by_id = {artist["id"]: artist for artist in full_artists if artist.get("id")}
    merged = []
    for artist in counted:
        full = by_id.get(artist.get("id"))
        if full is None:
            merged.append(artist)
        else:
            merged.append(
                {
                    **full,
                    "play_count": artist["play_count"],
                    "last_played": artist["last_played"],
                }
            )
    return merged
