"""Tests for genre ranking."""

import copy

from listenlens.domain.stats.genres import (
    GenreRecord,
    calculate_top_genres,
    find_missing_artist_ids,
)


def track(track_id, *artist_ids):
    return {"id": track_id, "artists": [{"id": artist_id} for artist_id in artist_ids]}


def artist(artist_id, *genres):
    return {"id": artist_id, "genres": list(genres)}


class TestCalculateTopGenres:
    def test_two_artists_sharing_a_genre(self):
        tracks = [track("T1", "A"), track("T2", "B")]
        artists = [artist("A", "rock"), artist("B", "rock", "pop")]

        genres = calculate_top_genres(tracks, artists)

        assert genres == [
            GenreRecord("rock", track_count=2, artist_count=2),
            GenreRecord("pop", track_count=1, artist_count=1),
        ]
        assert [g.score for g in genres] == [5.0, 2.5]

    def test_scores_tracks_and_artists(self):
        tracks = [track("t1", "A"), track("t2", "A"), track("t3", "B")]
        artists = [artist("A", "rock", "indie"), artist("B", "pop")]

        genres = calculate_top_genres(tracks, artists)

        assert [g.name for g in genres] == ["rock", "indie", "pop"]
        assert genres[0] == GenreRecord("rock", track_count=2, artist_count=1)
        assert genres[0].score == 4.0
        assert genres[2].score == 2.5

    def test_ties_break_on_track_count_then_first_appearance(self):
        # "solo" scores 1.5*2 + 1 = 4.0, "crowd" scores 1.5*0 + 4 = 4.0
        tracks = [track("t1", "S"), track("t2", "S")]
        artists = [
            artist("W", "crowd"),
            artist("X", "crowd"),
            artist("Y", "crowd"),
            artist("Z", "crowd"),
            artist("S", "solo"),
            artist("Q", "first"),
            artist("R", "second"),
        ]

        genres = calculate_top_genres(tracks, artists)

        assert [g.name for g in genres] == ["solo", "crowd", "first", "second"]

    def test_track_counted_once_per_genre(self):
        tracks = [track("t1", "A", "B")]
        artists = [artist("A", "jazz"), artist("B", "jazz")]

        (jazz,) = calculate_top_genres(tracks, artists)

        assert jazz.track_count == 1
        assert jazz.artist_count == 2

    def test_additional_artists_resolve_track_genres(self):
        tracks = [track("t1", "M")]

        genres = calculate_top_genres(tracks, [], additional_artists=[artist("M", "folk")])

        assert genres == [GenreRecord("folk", track_count=1, artist_count=1)]

    def test_unknown_artists_and_missing_genres_are_ignored(self):
        tracks = [track("t1", "ghost"), {"id": "t2"}]
        artists = [{"id": "A"}, artist("B")]

        assert calculate_top_genres(tracks, artists) == []

    def test_inputs_are_not_modified(self):
        tracks = [track("t1", "A")]
        artists = [artist("A", "rock")]
        before = copy.deepcopy((tracks, artists))

        calculate_top_genres(tracks, artists)

        assert (tracks, artists) == before

    def test_deterministic(self):
        tracks = [track(f"t{i}", f"A{i % 3}") for i in range(9)]
        artists = [artist(f"A{i}", f"g{i}", "shared") for i in range(3)]

        assert calculate_top_genres(tracks, artists) == calculate_top_genres(
            tracks, artists
        )

    def test_to_dict_includes_score(self):
        record = GenreRecord("rock", track_count=2, artist_count=1)

        assert record.to_dict() == {
            "name": "rock",
            "track_count": 2,
            "artist_count": 1,
            "score": 4.0,
        }


class TestFindMissingArtistIds:
    def test_first_seen_order_without_duplicates(self):
        tracks = [track("t1", "A", "X"), track("t2", "Y", "X"), track("t3", "A")]
        artists = [artist("A", "rock")]

        assert find_missing_artist_ids(tracks, artists) == ["X", "Y"]

    def test_nothing_missing(self):
        assert find_missing_artist_ids([track("t1", "A")], [artist("A")]) == []
