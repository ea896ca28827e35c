"""Tests for recently played summaries."""

from listenlens.domain.stats.recent import (
    extract_unique_from_recently_played,
    merge_artist_details,
)


def play(track_id, played_at, artists=("A",), album="alb-1"):
    return {
        "played_at": played_at,
        "track": {
            "id": track_id,
            "type": "track",
            "artists": [{"id": a, "name": a.lower()} for a in artists],
            "album": {"id": album, "name": album},
        },
    }


def episode(episode_id, played_at, show_id):
    return {
        "played_at": played_at,
        "track": {"id": episode_id, "type": "episode", "show": {"id": show_id}},
    }


def test_counts_and_last_played():
    items = [
        play("t1", "2026-01-01T10:00:00Z", artists=("A", "B")),
        play("t2", "2026-01-01T12:00:00Z", artists=("B",), album="alb-2"),
        play("t3", "2026-01-01T11:00:00Z", artists=("B",)),
    ]

    activity = extract_unique_from_recently_played(items)

    assert [(a["id"], a["play_count"]) for a in activity.artists] == [("B", 3), ("A", 1)]
    assert activity.artists[0]["last_played"] == "2026-01-01T12:00:00Z"
    assert [(a["id"], a["play_count"]) for a in activity.albums] == [
        ("alb-1", 2),
        ("alb-2", 1),
    ]
    assert activity.tracks == items


def test_episodes_count_towards_podcasts():
    items = [
        episode("e1", "2026-01-01T10:00:00Z", "show-1"),
        episode("e2", "2026-01-01T11:00:00Z", "show-1"),
        play("t1", "2026-01-01T12:00:00Z"),
    ]

    activity = extract_unique_from_recently_played(items)

    assert [(p["id"], p["play_count"]) for p in activity.podcasts] == [("show-1", 2)]
    assert [a["id"] for a in activity.artists] == ["A"]


def test_items_without_track_are_skipped():
    activity = extract_unique_from_recently_played([{"played_at": "x"}, {"track": None}])

    assert activity.artists == []
    assert activity.albums == []


def test_input_is_not_modified():
    items = [play("t1", "2026-01-01T10:00:00Z")]

    extract_unique_from_recently_played(items)

    assert "play_count" not in items[0]["track"]["artists"][0]


def test_merge_artist_details_keeps_counts():
    counted = [
        {"id": "A", "name": "a", "play_count": 3, "last_played": "t"},
        {"id": "B", "name": "b", "play_count": 1, "last_played": "u"},
    ]
    full = [{"id": "A", "name": "Artist A", "genres": ["rock"]}]

    merged = merge_artist_details(counted, full)

    assert merged[0] == {
        "id": "A",
        "name": "Artist A",
        "genres": ["rock"],
        "play_count": 3,
        "last_played": "t",
    }
    assert merged[1] == counted[1]
