import asyncio

import pytest

from config import CacheOptions
from service.cache import RequestMemoizer, TTLCache, create_composite_key


def test_entry_expires_at_ttl_boundary(clock):
    c = TTLCache(ttl=10, max_size=10)
    c.set("k", "v")

    clock.advance(9.999)
    assert c.get("k") == "v"

    clock.advance(0.001)
    assert c.get("k") is None
    assert len(c) == 0


def test_per_call_ttl_overrides_default(clock):
    c = TTLCache(ttl=10, max_size=10)
    c.set("short", 1, ttl=1)
    c.set("long", 2)

    clock.advance(5)
    assert c.get("short") is None
    assert c.get("long") == 2


def test_capacity_bound_evicts_oldest_inserted(clock):
    c = TTLCache(ttl=100, max_size=2)
    c.set("a", 1)
    c.set("b", 2)
    c.set("c", 3)

    assert len(c) == 2
    assert c.get("a") is None
    assert c.get("b") == 2
    assert c.get("c") == 3


def test_read_does_not_refresh_or_reorder(clock):
    c = TTLCache(ttl=10, max_size=2)
    c.set("a", 1)
    c.set("b", 2)

    clock.advance(5)
    assert c.get("a") == 1

    # FIFO, not LRU: "a" is still the oldest even after the read
    c.set("c", 3)
    assert c.get("a") is None
    assert c.get("b") == 2

    clock.advance(5)
    assert c.get("b") is None


def test_reset_existing_key_keeps_position_and_resets_expiry(clock):
    c = TTLCache(ttl=10, max_size=2)
    c.set("a", 1)
    c.set("b", 2)

    clock.advance(8)
    c.set("a", 10)
    assert len(c) == 2

    clock.advance(5)
    assert c.get("a") == 10
    assert c.get("b") is None

    c.set("b", 2)
    c.set("c", 3)
    assert c.get("a") is None
    assert c.get("b") == 2
    assert c.get("c") == 3


def test_contains_respects_expiry_without_mutating(clock):
    c = TTLCache(ttl=10, max_size=10)
    c.set("k", "v")
    assert "k" in c

    clock.advance(10)
    assert "k" not in c
    assert len(c) == 1


def test_delete_and_clear(clock):
    c = TTLCache(ttl=10, max_size=10)
    c.set("a", 1)
    c.set("b", 2)

    c.delete("a")
    c.delete("missing")
    assert c.get("a") is None
    assert len(c) == 1

    c.clear()
    assert len(c) == 0


@pytest.mark.asyncio
async def test_wrap_hit_bypasses_producer(clock):
    c = TTLCache(ttl=10, max_size=10)
    calls = []

    async def producer():
        calls.append(1)
        return "fresh"

    assert await c.wrap("k", producer) == "fresh"
    assert await c.wrap("k", producer) == "fresh"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_wrap_failure_is_not_cached(clock):
    c = TTLCache(ttl=10, max_size=10)

    async def failing():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError, match="upstream down"):
        await c.wrap("k", failing)
    assert "k" not in c

    async def producer():
        return 7

    assert await c.wrap("k", producer) == 7


def test_composite_key_is_deterministic():
    assert create_composite_key(["kms", "/id", "character_name=a"]) == "kms::/id::character_name=a"
    assert create_composite_key(["kms", 1, None, "x"]) == "kms::1::::x"
    assert create_composite_key([1, 2]) == create_composite_key(["1", "2"])
    assert create_composite_key([]) == ""


@pytest.mark.asyncio
async def test_memoizer_caches_success_only(clock):
    memo = RequestMemoizer(TTLCache(ttl=10, max_size=10))
    calls = []

    async def failing():
        calls.append("fail")
        raise ValueError("nope")

    for _ in range(3):
        with pytest.raises(ValueError):
            await memo.request("k", failing)
    assert calls == ["fail"] * 3
    assert "k" not in memo.cache

    async def producer():
        calls.append("ok")
        return {"ocid": "abc"}

    assert await memo.request("k", producer) == {"ocid": "abc"}
    assert await memo.request("k", producer) == {"ocid": "abc"}
    assert calls == ["fail"] * 3 + ["ok"]


@pytest.mark.asyncio
async def test_disabled_cache_calls_producer_every_time(clock):
    memo = RequestMemoizer.from_options(CacheOptions(enabled=False, ttl=300, max_size=10))
    assert memo.enabled is False
    calls = []

    async def producer():
        calls.append(1)
        return len(calls)

    assert await memo.request("k", producer) == 1
    assert await memo.request("k", producer) == 2


@pytest.mark.asyncio
async def test_concurrent_misses_without_single_flight_call_producer_twice(clock):
    memo = RequestMemoizer(TTLCache(ttl=10, max_size=10))
    calls = []

    async def producer():
        calls.append(1)
        await asyncio.sleep(0)
        return len(calls)

    await asyncio.gather(memo.request("k", producer), memo.request("k", producer))
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_single_flight_shares_one_producer_call(clock):
    memo = RequestMemoizer(TTLCache(ttl=10, max_size=10), single_flight=True)
    calls = []
    release = asyncio.Event()

    async def producer():
        calls.append(1)
        await release.wait()
        return "value"

    first = asyncio.ensure_future(memo.request("k", producer))
    second = asyncio.ensure_future(memo.request("k", producer))
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(first, second) == ["value", "value"]
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_single_flight_failure_reaches_waiters_and_is_not_cached(clock):
    memo = RequestMemoizer(TTLCache(ttl=10, max_size=10), single_flight=True)
    release = asyncio.Event()

    async def failing():
        await release.wait()
        raise RuntimeError("boom")

    first = asyncio.ensure_future(memo.request("k", failing))
    second = asyncio.ensure_future(memo.request("k", failing))
    await asyncio.sleep(0)
    release.set()

    results = await asyncio.gather(first, second, return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)
    assert "k" not in memo.cache


@pytest.mark.asyncio
async def test_single_flight_owner_cancellation_lets_waiter_retry(clock):
    memo = RequestMemoizer(TTLCache(ttl=10, max_size=10), single_flight=True)
    calls = []
    never = asyncio.Event()

    async def stuck():
        calls.append("owner")
        await never.wait()
        return "stale"

    async def producer():
        calls.append("waiter")
        return "value"

    owner = asyncio.ensure_future(memo.request("k", stuck))
    await asyncio.sleep(0)
    waiter = asyncio.ensure_future(memo.request("k", producer))
    await asyncio.sleep(0)
    owner.cancel()

    assert await waiter == "value"
    with pytest.raises(asyncio.CancelledError):
        await owner
    assert calls == ["owner", "waiter"]
    assert memo.cache.get("k") == "value"


@pytest.mark.asyncio
async def test_single_flight_waiter_cancellation_keeps_owner_running(clock):
    memo = RequestMemoizer(TTLCache(ttl=10, max_size=10), single_flight=True)
    release = asyncio.Event()

    async def producer():
        await release.wait()
        return "value"

    owner = asyncio.ensure_future(memo.request("k", producer))
    await asyncio.sleep(0)
    waiter = asyncio.ensure_future(memo.request("k", producer))
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    release.set()
    assert await owner == "value"


@pytest.mark.asyncio
async def test_end_to_end_scenario(clock):
    c = TTLCache(ttl=300, max_size=2)
    c.set("a", 1)
    c.set("b", 2)
    c.set("c", 3)
    assert c.get("a") is None

    async def producer():
        raise AssertionError("producer must not run on a hit")

    assert await c.wrap("b", producer) == 2
