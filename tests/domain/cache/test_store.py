"""Tests for the persistent cache."""

import pytest

from listenlens.core.exceptions import StorageError
from listenlens.domain.cache.backends import MemoryCacheBackend
from listenlens.domain.cache.identity import play_identity, saved_track_identity
from listenlens.domain.cache.store import CACHE_PREFIX, PersistentCache


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class BrokenBackend(MemoryCacheBackend):
    def read(self, key):
        raise StorageError("disk gone")

    def write(self, key, payload, timestamp):
        raise StorageError("disk gone")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemoryCacheBackend()


@pytest.fixture
def cache(backend, clock):
    return PersistentCache(backend, clock=clock)


def saved(track_id, added_at="2026-01-01T00:00:00Z"):
    return {"added_at": added_at, "track": {"id": track_id}}


class TestGetSet:
    def test_set_then_get(self, cache):
        cache.set("top_tracks", {"items": [1, 2], "total": 2})

        assert cache.get("top_tracks") == {"items": [1, 2], "total": 2}

    def test_keys_are_namespaced(self, cache, backend):
        cache.set("recent", [1])

        assert backend.read(CACHE_PREFIX + "recent") is not None

    def test_missing_key(self, cache):
        assert cache.get("nothing") is None

    def test_ttl_boundary(self, cache, clock):
        cache.set("k", "v")

        clock.advance(600)
        assert cache.get("k", max_age=600) == "v"

        clock.advance(1)
        assert cache.get("k", max_age=600) is None

    def test_stale_get_evicts(self, cache, clock):
        cache.set("k", "v")
        clock.advance(120)

        assert cache.get("k", max_age=60) is None
        assert cache.peek("k") is None

    def test_peek_ignores_age(self, cache, clock):
        cache.set("k", "v")
        clock.advance(10 * 24 * 60 * 60)

        entry = cache.peek("k")

        assert entry.payload == "v"
        assert not cache.is_fresh(entry, max_age=60)

    def test_unreadable_entry_is_evicted(self, cache, backend):
        backend.write(CACHE_PREFIX + "bad", "{not json", 0)

        assert cache.get("bad") is None
        assert backend.read(CACHE_PREFIX + "bad") is None

    def test_unserializable_payload_is_skipped(self, cache):
        cache.set("k", {"when": object()})

        assert cache.get("k") is None

    def test_get_timestamp(self, cache, clock):
        cache.set("k", "v")

        assert cache.get_timestamp("k") == clock.now

    def test_latest_item(self, cache):
        cache.set("saved_tracks", {"items": [saved("new"), saved("old")], "total": 2})

        assert cache.get_latest_item("saved_tracks") == saved("new")
        assert cache.get_latest_item("missing") is None

    def test_latest_item_of_stale_entry(self, cache, clock):
        cache.set("saved_tracks", {"items": [saved("new")], "total": 1})
        clock.advance(2 * 24 * 60 * 60)

        assert cache.get_latest_item("saved_tracks") == saved("new")
        assert cache.peek("saved_tracks") is not None


class TestDisabledAndFailing:
    def test_disabled_cache_is_always_a_miss(self, backend, clock):
        cache = PersistentCache(backend, enabled=False, clock=clock)

        cache.set("k", "v")

        assert cache.get("k") is None
        assert backend.entries() == []

    def test_backend_errors_degrade_to_miss(self, clock):
        cache = PersistentCache(BrokenBackend(), clock=clock)

        cache.set("k", "v")

        assert cache.get("k") is None


class TestQuota:
    def test_quota_failure_clears_old_and_retries(self, clock):
        backend = MemoryCacheBackend(quota_bytes=40)
        cache = PersistentCache(backend, clock=clock)
        cache.set("old", "x" * 20)

        clock.advance(25 * 60 * 60)
        cache.set("new", "y" * 20)

        assert cache.peek("old") is None
        assert cache.get("new") == "y" * 20

    def test_quota_failure_without_old_entries_is_swallowed(self, clock):
        backend = MemoryCacheBackend(quota_bytes=40)
        cache = PersistentCache(backend, clock=clock)
        cache.set("recent", "x" * 20)

        cache.set("new", "y" * 20)

        assert cache.get("recent") == "x" * 20
        assert cache.get("new") is None


class TestClearing:
    def test_clear_old_removes_only_stale_entries(self, cache, clock):
        cache.set("old", 1)
        clock.advance(23 * 60 * 60)
        cache.set("young", 2)
        clock.advance(2 * 60 * 60)

        removed = cache.clear_old()

        assert removed == 1
        assert cache.peek("old") is None
        assert cache.peek("young").payload == 2

    def test_clear_all_keeps_other_namespaces(self, cache, backend):
        backend.write("other_app_key", "1", 0)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear_all()

        assert backend.entries(CACHE_PREFIX) == []
        assert backend.read("other_app_key") is not None

    def test_clear_single_key(self, cache):
        cache.set("a", 1)

        cache.clear("a")

        assert cache.get("a") is None


class TestMergeItems:
    def test_new_items_prepended(self, cache):
        cache.set("saved_tracks", {"items": [saved("b"), saved("a")], "total": 2})

        merged = cache.merge_items("saved_tracks", [saved("c")], saved_track_identity)

        assert [item["track"]["id"] for item in merged["items"]] == ["c", "b", "a"]
        assert merged["total"] == 3

    def test_merge_is_idempotent(self, cache):
        cache.set("saved_tracks", {"items": [saved("b"), saved("a")], "total": 2})

        merged = cache.merge_items("saved_tracks", [saved("b")], saved_track_identity)

        assert [item["track"]["id"] for item in merged["items"]] == ["b", "a"]

    def test_nothing_cached_returns_new_items(self, cache):
        merged = cache.merge_items("saved_tracks", [saved("a")], saved_track_identity)

        assert merged == {"items": [saved("a")], "total": 1}

    def test_plays_use_track_and_time(self, cache):
        play = {"track": {"id": "t"}, "played_at": "2026-01-01T00:00:00Z"}
        replay = {"track": {"id": "t"}, "played_at": "2026-01-01T01:00:00Z"}
        cache.set("plays", {"items": [play], "total": 1})

        merged = cache.merge_items("plays", [replay, play], play_identity)

        assert merged["items"] == [replay, play]

    def test_identity_error_falls_back_to_new_items(self, cache):
        cache.set("saved_tracks", {"items": [{"no_track": True}], "total": 1})

        merged = cache.merge_items("saved_tracks", [saved("a")], saved_track_identity)

        assert merged == {"items": [saved("a")], "total": 1}

    def test_merge_does_not_write(self, cache):
        cache.set("saved_tracks", {"items": [saved("a")], "total": 1})

        cache.merge_items("saved_tracks", [saved("b")], saved_track_identity)

        assert cache.get("saved_tracks")["total"] == 1
