"""
Identity functions per cached resource kind.

Each cached collection declares how its items are identified when merging.
"""

from typing import Any, Dict, Hashable, Tuple

Item = Dict[str, Any]


def entity_identity(item: Item) -> Hashable:
    """Top tracks, top artists, artist lookups: the entity id."""
    return item["id"]


def saved_track_identity(item: Item) -> Hashable:
    """Saved-track wrapper: {"added_at", "track": {...}}."""
    return item["track"]["id"]


def saved_album_identity(item: Item) -> Hashable:
    """Saved-album wrapper: {"added_at", "album": {...}}."""
    return item["album"]["id"]


def play_identity(item: Item) -> Tuple[str, str]:
    """A recently-played entry is one play of a track at one instant."""
    return (item["track"]["id"], item["played_at"])


IDENTITY_BY_KIND = {
    "top_tracks": entity_identity,
    "top_artists": entity_identity,
    "artists": entity_identity,
    "saved_tracks": saved_track_identity,
    "saved_albums": saved_album_identity,
    "recently_played": play_identity,
}
