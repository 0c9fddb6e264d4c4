"""Tests for category counting and the persisted freshness cache."""

import asyncio
import json

import pytest

from activity_dashboard.aggregator import CategoryAggregator, count_categories
from activity_dashboard.cache import FreshnessCache
from activity_dashboard.storage import DocumentStore, InMemoryKeyValueStore, JsonFileKeyValueStore

TTL = 3_600_000


class Clock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def scans():
    return []


@pytest.fixture()
def cache(clock, scans):
    async def compute():
        scans.append(clock.now)
        return {"Kids": 2, "Unknown": 1}

    return FreshnessCache(InMemoryKeyValueStore(), compute, ttl_ms=TTL, clock=clock)


# ── Category counts ───────────────────────────────────────────────────────────


def test_missing_or_empty_category_is_unknown():
    records = [{"category": "Kids"}, {"category": ""}, {}, {"category": None}, {"category": "Kids"}]
    assert count_categories(records) == {"Kids": 2, "Unknown": 3}


def test_no_records_no_buckets():
    assert count_categories([]) == {}


def test_counts_sum_to_records_scanned():
    records = [{"category": c} for c in ["a", "b", "", "a", "c", "a"]] + [{}] * 4
    summary = count_categories(records)
    assert sum(summary.values()) == len(records)
    assert all(v > 0 for v in summary.values())


def test_aggregator_scans_whole_collection(store):
    summary = asyncio.run(CategoryAggregator(store).count())
    assert summary == {"Kids": 1, "Unknown": 1, "Sports": 1}


def test_aggregator_empty_collection():
    assert asyncio.run(CategoryAggregator(DocumentStore()).count()) == {}


# ── FreshnessCache ────────────────────────────────────────────────────────────


def test_write_then_read_round_trips(cache):
    summary = {"Sports": 120, "Kids": 50}
    cache.write(summary)
    assert cache.read() == summary


def test_empty_cache_misses(cache):
    assert cache.read() is None


def test_invalidate_forces_miss(cache):
    cache.write({"Kids": 1})
    cache.invalidate()
    assert cache.read() is None


def test_invalidate_without_entry_is_harmless(cache):
    cache.invalidate()
    assert cache.read() is None


def test_ttl_hit_then_miss_triggers_rescan(cache, clock, scans):
    """Written at t=0: hit at t=1000, miss at t=3700000 and rescan."""
    cache.write({"Old": 1})
    clock.now = 1000
    assert cache.read() == {"Old": 1}
    assert asyncio.run(cache.get_or_refresh()) == {"Old": 1}
    assert scans == []

    clock.now = 3_700_000
    assert cache.read() is None
    assert asyncio.run(cache.get_or_refresh()) == {"Kids": 2, "Unknown": 1}
    assert scans == [3_700_000]
    assert cache.read() == {"Kids": 2, "Unknown": 1}


def test_entry_expires_exactly_at_ttl(cache, clock):
    cache.write({"Old": 1})
    clock.now = TTL - 1
    assert cache.read() == {"Old": 1}
    clock.now = TTL
    assert cache.read() is None


def test_get_or_refresh_computes_once(cache, scans):
    first = asyncio.run(cache.get_or_refresh())
    second = asyncio.run(cache.get_or_refresh())
    assert first == second
    assert len(scans) == 1


def test_refresh_always_rescans(cache, scans):
    asyncio.run(cache.get_or_refresh())
    asyncio.run(cache.refresh())
    assert len(scans) == 2


def test_failed_compute_leaves_no_entry(clock):
    async def compute():
        raise ConnectionError("scan failed")

    cache = FreshnessCache(InMemoryKeyValueStore(), compute, clock=clock)
    with pytest.raises(ConnectionError):
        asyncio.run(cache.get_or_refresh())
    assert cache.read() is None


def test_corrupt_entry_is_a_miss(clock):
    kv = InMemoryKeyValueStore()
    kv.set("videoCategoryCache", "{not json")
    cache = FreshnessCache(kv, compute=None, clock=clock)
    assert cache.read() is None


def test_entry_stored_as_json_with_timestamp(clock):
    kv = InMemoryKeyValueStore()
    clock.now = 42
    FreshnessCache(kv, compute=None, clock=clock).write({"Kids": 3})
    assert json.loads(kv.get("videoCategoryCache")) == {"data": {"Kids": 3}, "timestamp": 42}


def test_cache_survives_restart(tmp_path, clock):
    """A new cache over the same file sees the previous entry."""
    path = tmp_path / "cache.json"
    FreshnessCache(JsonFileKeyValueStore(path), compute=None, clock=clock).write({"Kids": 7})

    reopened = FreshnessCache(JsonFileKeyValueStore(path), compute=None, clock=clock)
    assert reopened.read() == {"Kids": 7}
    reopened.invalidate()
    assert FreshnessCache(JsonFileKeyValueStore(path), compute=None, clock=clock).read() is None


def test_file_store_keeps_other_keys(tmp_path):
    kv = JsonFileKeyValueStore(tmp_path / "nested" / "kv.json")
    kv.set("a", "1")
    kv.set("b", "2")
    kv.delete("a")
    assert kv.get("a") is None
    assert kv.get("b") == "2"
