import asyncio

import pytest

from swift_dashboard.cache import DEFAULT_TTL_SECONDS, QueryCache
from tests.helpers import TickingClock


@pytest.fixture
def clock():
    return TickingClock(1000.0)


@pytest.fixture
def cache(clock):
    return QueryCache(ttl=DEFAULT_TTL_SECONDS, clock=clock)


def test_default_ttl_is_five_minutes():
    assert DEFAULT_TTL_SECONDS == 300


def test_miss_on_empty_cache(cache):
    assert cache.get(("memory", "message")) is None
    assert len(cache) == 0


def test_put_stores_an_immutable_copy(cache):
    records = ["a", "b"]
    stored = cache.put("key", records)
    records.append("c")
    assert stored == ("a", "b")
    assert cache.get("key") == ("a", "b")


def test_entry_is_fresh_just_before_ttl(cache, clock):
    cache.put("key", [1])
    clock.advance(299.999)
    assert cache.get("key") == (1,)


def test_entry_expires_at_ttl(cache, clock):
    cache.put("key", [1])
    clock.advance(300.0)
    assert cache.get("key") is None


def test_entry_expires_after_ttl(cache, clock):
    cache.put("key", [1])
    clock.advance(300.001)
    assert cache.get("key") is None


def test_put_refreshes_timestamp(cache, clock):
    cache.put("key", [1])
    clock.advance(200)
    cache.put("key", [2])
    clock.advance(200)
    assert cache.get("key") == (2,)


def test_keys_are_independent(cache):
    cache.put(("memory", "message"), [1])
    cache.put(("memory", "log"), [2])
    assert cache.get(("memory", "message")) == (1,)
    assert cache.get(("memory", "log")) == (2,)


def test_invalidate_single_key(cache):
    cache.put("a", [1])
    cache.put("b", [2])
    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == (2,)


def test_invalidate_everything(cache):
    cache.put("a", [1])
    cache.put("b", [2])
    cache.invalidate()
    assert len(cache) == 0
    assert cache.get("b") is None


def test_invalidate_empty_cache_and_unknown_key(cache):
    cache.invalidate()
    cache.invalidate("missing")
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_get_or_load_loads_once_while_fresh(cache, clock):
    calls = []

    async def loader():
        calls.append(1)
        return ["row"]

    assert await cache.get_or_load("key", loader) == ("row",)
    clock.advance(10)
    assert await cache.get_or_load("key", loader) == ("row",)
    assert len(calls) == 1

    clock.advance(DEFAULT_TTL_SECONDS)
    await cache.get_or_load("key", loader)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_get_or_load_does_not_cache_failures(cache):
    async def failing():
        raise RuntimeError("backend down")

    with pytest.raises(RuntimeError):
        await cache.get_or_load("key", failing)
    assert cache.get("key") is None


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_load(cache):
    calls = []

    async def loader():
        calls.append(1)
        await asyncio.sleep(0.01)
        return ["row"]

    results = await asyncio.gather(*(cache.get_or_load("key", loader) for _ in range(5)))
    assert results == [("row",)] * 5
    assert len(calls) == 1
