import asyncio

import pytest

from sourcing_pipeline.cache import CacheSweeper, ClassificationCache, SearchCache
from sourcing_pipeline.models import (
    ClassificationResult,
    ManufacturerLabel,
    ParsedQuery,
    SearchResponse,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _response(search_id="search-1", query="led strips"):
    return SearchResponse(search_id=search_id, query=query, parsed_query=ParsedQuery(product=query))


@pytest.fixture
def clock():
    return FakeClock()


def test_put_then_get_before_expiry(clock):
    cache = SearchCache(default_ttl=60, clock=clock)
    response = _response()
    cache.put("search-1", response)

    clock.advance(59.9)
    assert cache.get("search-1") is response


def test_entry_expires_at_ttl_and_is_dropped_lazily(clock):
    cache = SearchCache(default_ttl=60, clock=clock)
    cache.put("search-1", _response())

    clock.advance(60)
    assert len(cache) == 1
    assert cache.get("search-1") is None
    assert len(cache) == 0


def test_zero_ttl_is_never_served(clock):
    cache = SearchCache(clock=clock)
    cache.put("search-1", _response(), ttl=0)
    assert cache.get("search-1") is None


def test_negative_ttl_is_rejected(clock):
    cache = SearchCache(clock=clock)
    with pytest.raises(ValueError):
        cache.put("search-1", _response(), ttl=-1)


def test_unknown_id_returns_none(clock):
    assert SearchCache(clock=clock).get("nope") is None


def test_first_write_wins_while_live(clock):
    cache = SearchCache(default_ttl=60, clock=clock)
    first = _response(query="first")
    cache.put("search-1", first)
    cache.put("search-1", _response(query="second"))
    assert cache.get("search-1") is first


def test_expired_entry_can_be_replaced(clock):
    cache = SearchCache(default_ttl=10, clock=clock)
    cache.put("search-1", _response(query="first"))
    clock.advance(10)
    replacement = _response(query="second")
    cache.put("search-1", replacement)
    assert cache.get("search-1") is replacement


def test_sweep_removes_only_expired_entries(clock):
    cache = SearchCache(default_ttl=10, clock=clock)
    cache.put("old", _response("old"))
    clock.advance(5)
    cache.put("new", _response("new"))
    clock.advance(5)

    assert cache.sweep() == 1
    assert cache.get("old") is None
    assert cache.get("new") is not None
    assert cache.sweep() == 0


def test_stats_report_age_and_remaining_time(clock):
    cache = SearchCache(default_ttl=30, clock=clock)
    cache.put("search-1", _response())
    clock.advance(10)

    stats = cache.stats()
    assert stats["size"] == 1
    (entry,) = stats["entries"]
    assert entry["search_id"] == "search-1"
    assert entry["age_seconds"] == pytest.approx(10)
    assert entry["expires_in_seconds"] == pytest.approx(20)


def test_clear(clock):
    cache = SearchCache(clock=clock)
    cache.put("search-1", _response())
    cache.clear()
    assert len(cache) == 0


def test_classification_cache_keeps_first_verdict():
    cache = ClassificationCache()
    first = ClassificationResult(
        seller_id="s1", label=ManufacturerLabel.FACTORY, confidence=0.9, explanation="a"
    )
    second = ClassificationResult(
        seller_id="s1", label=ManufacturerLabel.TRADING, confidence=0.1, explanation="b"
    )
    cache.put("s1", first)
    cache.put("s1", second)

    assert cache.get("s1") is first
    assert cache.get("s2") is None
    assert cache.sweep() == 0
    assert len(cache) == 1


class CountingCache:
    def __init__(self, fail=False):
        self.sweeps = 0
        self.fail = fail

    def sweep(self):
        self.sweeps += 1
        if self.fail:
            raise RuntimeError("boom")
        return 0


@pytest.mark.asyncio
async def test_sweeper_runs_periodically_until_stopped():
    cache = CountingCache()
    sweeper = CacheSweeper(cache, interval_seconds=0.01)

    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.1)
    await sweeper.stop()

    assert not sweeper.running
    assert cache.sweeps >= 1
    swept = cache.sweeps
    await asyncio.sleep(0.05)
    assert cache.sweeps == swept


@pytest.mark.asyncio
async def test_sweeper_survives_failing_sweep():
    cache = CountingCache(fail=True)
    sweeper = CacheSweeper(cache, interval_seconds=0.01)

    sweeper.start()
    await asyncio.sleep(0.1)
    assert sweeper.running
    await sweeper.stop()

    assert cache.sweeps >= 2


def test_sweeper_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        CacheSweeper(CountingCache(), interval_seconds=0)
