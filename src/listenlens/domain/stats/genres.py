"""
Genre ranking from top tracks and top artists.

Genres are attached to artists only, so tracks are credited with a genre
through their artists, resolved against the combined artist lookup.
"""

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, List, Sequence

Entity = Dict[str, Any]

TRACK_WEIGHT = 1.5
ARTIST_WEIGHT = 1.0


@dataclass(frozen=True)
class GenreRecord:
    name: str
    track_count: int
    artist_count: int

    @property
    def score(self) -> float:
        return TRACK_WEIGHT * self.track_count + ARTIST_WEIGHT * self.artist_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "track_count": self.track_count,
            "artist_count": self.artist_count,
            "score": self.score,
        }


def _artist_genres(artist: Entity) -> List[str]:
    genres = artist.get("genres")
    return list(genres) if isinstance(genres, list) else []


def find_missing_artist_ids(
    tracks: Iterable[Entity], artists: Iterable[Entity]
) -> List[str]:
    """Artist ids credited on tracks but absent from the artist list.

    Returned in first-seen order without duplicates.
    """
    known_ids = {artist.get("id") for artist in artists}
    missing: Dict[str, None] = {}
    for track in tracks:
        for track_artist in track.get("artists") or []:
            artist_id = track_artist.get("id")
            if artist_id and artist_id not in known_ids:
                missing.setdefault(artist_id, None)
    return list(missing)


def calculate_top_genres(
    tracks: Sequence[Entity],
    artists: Sequence[Entity],
    additional_artists: Sequence[Entity] = (),
) -> List[GenreRecord]:
    """Rank genres by ``1.5 * track_count + artist_count``.

    Ties are broken by track count, then artist count, then the order in
    which genres first appear. Inputs are not modified.

    Args:
        tracks: Top tracks, each with an ``artists`` list of {"id"}
        artists: Top artists, each with ``id`` and ``genres``
        additional_artists: Artists looked up because tracks credit them but
            they are not among the top artists

    Returns:
        GenreRecords, highest score first
    """
    all_artists = list(artists) + list(additional_artists)
    artist_map = {artist.get("id"): artist for artist in all_artists}

    genre_artists: Dict[str, set] = {}
    for artist in all_artists:
        for genre in _artist_genres(artist):
            genre_artists.setdefault(genre, set()).add(artist.get("id"))

    genre_tracks: Dict[str, set] = {genre: set() for genre in genre_artists}
    for position, track in enumerate(tracks):
        track_key: Hashable = track.get("id") or ("position", position)
        for track_artist in track.get("artists") or []:
            full_artist = artist_map.get(track_artist.get("id"))
            if full_artist is None:
                continue
            for genre in _artist_genres(full_artist):
                if genre in genre_tracks:
                    genre_tracks[genre].add(track_key)

    records = [
        GenreRecord(
            name=genre,
            track_count=len(genre_tracks[genre]),
            artist_count=len(artist_ids),
        )
        for genre, artist_ids in genre_artists.items()
    ]

    # sorted() is stable, so first-appearance order settles remaining ties
    return sorted(
        records,
        key=lambda record: (-record.score, -record.track_count, -record.artist_count),
    )
