"""
Tests for the priority cache: metadata bookkeeping, usage accounting,
tag and priority invalidation, and hit/miss statistics.
"""

import pytest

from pricache.core.cache_models import CachePolicy, PriorityClass
from pricache.core.clock import ManualClock


class TestPriorityClass:
    def test_total_order(self):
        ordered = [
            PriorityClass.TRANSIENT,
            PriorityClass.LOW,
            PriorityClass.MEDIUM,
            PriorityClass.HIGH,
            PriorityClass.CRITICAL,
        ]
        assert sorted(reversed(ordered)) == ordered
        assert PriorityClass.LOW < PriorityClass.MEDIUM <= PriorityClass.MEDIUM
        assert PriorityClass.CRITICAL > PriorityClass.HIGH

    def test_parse(self):
        assert PriorityClass.parse("HIGH") is PriorityClass.HIGH
        assert PriorityClass.parse(" low ") is PriorityClass.LOW
        assert PriorityClass.parse(PriorityClass.CRITICAL) is PriorityClass.CRITICAL
        with pytest.raises(ValueError):
            PriorityClass.parse("urgent")

    def test_policy_normalizes_fields(self):
        policy = CachePolicy(priority="low", tags=["a", "b", "a"])
        assert policy.priority is PriorityClass.LOW
        assert policy.tags == frozenset({"a", "b"})

    def test_policy_rejects_negative_ttl(self):
        with pytest.raises(ValueError):
            CachePolicy(ttl_minutes=-1)


class TestSetAndGet:
    def test_round_trip_records_metadata(self, engine, clock: ManualClock):
        assert engine.set_priority_cache(
            "quotes",
            {"AAPL": 1},
            CachePolicy(priority=PriorityClass.HIGH, tags=frozenset({"market"})),
        )
        created = clock.now()
        clock.advance(seconds=30)

        assert engine.get_priority_cache("quotes") == {"AAPL": 1}
        metadata = engine.registry.get("quotes")
        assert metadata.priority is PriorityClass.HIGH
        assert metadata.size_bytes == len(b'{"AAPL":1}')
        assert metadata.tags == frozenset({"market"})
        assert metadata.created_at == created
        assert metadata.last_access_at == created + 30_000
        assert metadata.hit_count == 1

    def test_mapping_options_with_aliases(self, engine):
        engine.set_priority_cache(
            "k", "v", {"priority": "low", "expiration_minutes": 5, "tags": ["t"]}
        )
        metadata = engine.registry.get("k")
        assert metadata.priority is PriorityClass.LOW
        assert metadata.tags == frozenset({"t"})

    def test_expired_entry_is_miss_and_releases_usage(
        self, engine, clock: ManualClock
    ):
        engine.set_priority_cache("k", "value", CachePolicy(ttl_minutes=1))
        assert engine.get_cache_stats().usage_bytes == len(b'"value"')

        clock.advance(minutes=2)
        assert engine.get_priority_cache("k") is None
        assert "k" not in engine.registry
        assert engine.get_cache_stats().usage_bytes == 0
        assert engine.get_cache_stats().misses == 1

    def test_unregistered_key_is_miss(self, engine):
        engine.set_cache("plain", "v", 5)
        assert engine.get_priority_cache("plain") is None
        assert engine.get_cache_stats().misses == 1

    def test_overwrite_recomputes_size(self, engine):
        engine.set_priority_cache("k", "a" * 100)
        engine.set_priority_cache("k", "b" * 10)

        stats = engine.get_cache_stats()
        assert stats.usage_bytes == 12
        assert stats.entry_count == 1
        assert engine.registry.get("k").hit_count == 0

    def test_failed_write_records_no_metadata(self, make_engine):
        from pricache.core.persistence.backend import MemoryStorageBackend

        engine = make_engine(
            storage=MemoryStorageBackend(quota_bytes=200), persist_registry=False
        )
        assert not engine.set_priority_cache("big", "x" * 500)
        assert "big" not in engine.registry
        assert engine.get_cache_stats().usage_bytes == 0

    def test_failed_overwrite_drops_old_value(self, make_engine):
        from pricache.core.persistence.backend import MemoryStorageBackend

        storage = MemoryStorageBackend(quota_bytes=200)
        engine = make_engine(storage=storage, persist_registry=False)
        assert engine.set_priority_cache("k", "small")

        assert not engine.set_priority_cache("k", "x" * 500)
        assert "k" not in engine.registry
        assert engine.get_cache("k") is None
        assert storage.get("k") is None
        assert engine.get_cache_stats().usage_bytes == 0

    def test_delete(self, engine):
        engine.set_priority_cache("k", "v")
        assert engine.delete_priority_cache("k")
        assert not engine.delete_priority_cache("k")
        assert engine.get_priority_cache("k") is None
        assert engine.get_cache_stats().usage_bytes == 0


class TestWriteGenerations:
    def test_every_write_gets_a_new_stamp(self, engine):
        engine.set_priority_cache("k", "v1")
        first = engine.priority_cache.generation("k")
        engine.set_priority_cache("k", "v2")
        assert engine.priority_cache.generation("k") > first

    def test_stamps_are_not_reused_after_clear(self, engine):
        engine.set_priority_cache("k", "v1")
        before = engine.priority_cache.generation("k")

        engine.clear_all_cache()
        assert engine.priority_cache.generation("k") is None

        engine.set_priority_cache("k", "v2")
        assert engine.priority_cache.generation("k") > before

    def test_removed_keys_keep_no_stamp(self, engine):
        keys = [f"k{i}" for i in range(500)]
        for key in keys:
            engine.set_priority_cache(key, "v")
            engine.delete_priority_cache(key)

        assert len(engine.registry) == 0
        assert all(engine.priority_cache.generation(key) is None for key in keys)

    def test_stamp_dropped_on_eviction_and_expiry(
        self, engine, clock: ManualClock, payload_of_size
    ):
        engine.set_priority_cache("old", payload_of_size(600), {"priority": "low"})
        engine.set_priority_cache("short", "v", CachePolicy(ttl_minutes=1))
        engine.set_priority_cache("new", payload_of_size(600))
        assert engine.priority_cache.generation("old") is None

        clock.advance(minutes=2)
        assert engine.get_priority_cache("short") is None
        assert engine.priority_cache.generation("short") is None

    def test_stamp_is_not_persisted(self, engine):
        engine.set_priority_cache("k", "v")
        assert "generation" not in engine.registry.get("k").to_dict()


class TestStatistics:
    def test_hits_plus_misses_equals_lookups(self, engine, clock: ManualClock):
        engine.set_priority_cache("a", 1, CachePolicy(ttl_minutes=1))
        engine.set_priority_cache("b", 2, CachePolicy(ttl_minutes=10))
        lookups = ["a", "b", "missing", "a", "b"]
        for key in lookups[:3]:
            engine.get_priority_cache(key)
        clock.advance(minutes=5)
        for key in lookups[3:]:
            engine.get_priority_cache(key)

        stats = engine.get_cache_stats()
        assert stats.hits + stats.misses == len(lookups)
        assert stats.hits == 3
        assert stats.misses == 2
        assert stats.hit_rate == pytest.approx(0.6)

    def test_snapshot_fields(self, engine, payload_of_size):
        engine.set_priority_cache("k", payload_of_size(250))
        stats = engine.get_cache_stats()
        assert stats.limit_bytes == 1000
        assert stats.usage_bytes == 250
        assert stats.usage_percent == pytest.approx(25.0)
        assert stats.entry_count == 1
        assert stats.hit_rate == 0.0
        assert stats.to_dict()["usage_bytes"] == 250

    def test_reset_keeps_usage(self, engine):
        engine.set_priority_cache("k", "v")
        engine.get_priority_cache("k")
        engine.get_priority_cache("nope")
        engine.reset_stats()

        stats = engine.get_cache_stats()
        assert (stats.hits, stats.misses, stats.evictions) == (0, 0, 0)
        assert stats.usage_bytes == 3


class TestTagInvalidation:
    def test_clears_only_tagged_entries(self, make_engine, payload_of_size):
        engine = make_engine(limit_bytes=10_000)
        engine.set_priority_cache(
            "quotes", payload_of_size(120), {"tags": ["marketdata", "live"]}
        )
        engine.set_priority_cache(
            "depth", payload_of_size(80), {"tags": ["marketdata"]}
        )
        engine.set_priority_cache("profile", payload_of_size(50), {"tags": ["user"]})
        engine.set_priority_cache("news", payload_of_size(30))
        engine.get_priority_cache("profile")
        engine.get_priority_cache("profile")
        before = engine.get_cache_stats().usage_bytes

        assert engine.clear_cache_by_tags(["marketdata"]) == 2

        assert engine.get_cache_stats().usage_bytes == before - 200
        assert engine.registry.get("profile").hit_count == 2
        assert engine.registry.get("news") is not None
        assert engine.get_priority_cache("quotes") is None
        assert engine.get_priority_cache("depth") is None

    def test_single_tag_string(self, engine):
        engine.set_priority_cache("a", 1, {"tags": ["x"]})
        engine.set_priority_cache("b", 2, {"tags": ["xy"]})
        assert engine.clear_cache_by_tags("x") == 1
        assert engine.get_priority_cache("b") == 2

    def test_no_matches(self, engine):
        engine.set_priority_cache("a", 1, {"tags": ["x"]})
        assert engine.clear_cache_by_tags(["other"]) == 0
        assert engine.get_cache_stats().entry_count == 1


class TestClearBelowPriority:
    def test_strictly_below_threshold(self, make_engine):
        engine = make_engine(limit_bytes=10_000)
        for priority in PriorityClass:
            engine.set_priority_cache(priority.value, 1, {"priority": priority})

        assert engine.clear_cache_below_priority("medium") == 2
        remaining = {m.priority for m in engine.registry}
        assert remaining == {
            PriorityClass.MEDIUM,
            PriorityClass.HIGH,
            PriorityClass.CRITICAL,
        }
        assert engine.get_cache_stats().usage_bytes == 3

    def test_unknown_threshold_raises(self, engine):
        with pytest.raises(ValueError):
            engine.clear_cache_below_priority("urgent")


class TestRegistryPersistence:
    def test_registry_reloads_in_new_engine(self, make_engine, storage):
        first = make_engine(limit_bytes=10_000)
        first.set_priority_cache("a", "alpha", {"priority": "high", "tags": ["t"]})
        first.set_priority_cache("b", "beta")
        first.get_priority_cache("a")

        second = make_engine(limit_bytes=10_000, storage=storage)
        assert len(second.registry) == 2
        expected = len(b'"alpha"') + len(b'"beta"')
        assert second.get_cache_stats().usage_bytes == expected
        metadata = second.registry.get("a")
        assert metadata.priority is PriorityClass.HIGH
        assert metadata.tags == frozenset({"t"})
        assert metadata.hit_count == 1
        assert second.get_priority_cache("b") == "beta"

    def test_corrupt_registry_starts_empty(self, make_engine, storage):
        storage.set("__pricache_registry__", "{broken")
        engine = make_engine()
        assert len(engine.registry) == 0
        assert engine.get_cache_stats().usage_bytes == 0

    def test_persistence_can_be_disabled(self, make_engine, storage):
        engine = make_engine(persist_registry=False)
        engine.set_priority_cache("k", "v")
        assert "__pricache_registry__" not in storage
