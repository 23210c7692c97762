"""Behavior tests for the stale-while-revalidate query cache."""

from __future__ import annotations

import asyncio

import pytest

from resources.adapters.billing_backend import (
    BillingBackendDependencyError,
    BillingBackendValidationError,
)
from services.billing.time_entries.cache import CachePolicy, QueryCache
from services.billing.time_entries.retry import RetryPolicy

_KEY = ("billing", "timeEntries")
_POLICY = CachePolicy(stale_seconds=10.0, gc_seconds=100.0)


class _Clock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _Fetcher:
    """Fetcher returning numbered values, optionally blocked on a gate."""

    def __init__(self, *, gate: asyncio.Event | None = None) -> None:
        self.calls = 0
        self.gate = gate
        self.error: Exception | None = None

    async def __call__(self) -> str:
        self.calls += 1
        call = self.calls
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return f"v{call}"


async def _no_sleep(_: float) -> None:
    return None


async def _drain() -> None:
    """Wait for every background task spawned by the cache to finish."""
    current = asyncio.current_task()
    pending = [task for task in asyncio.all_tasks() if task is not current]
    await asyncio.gather(*pending, return_exceptions=True)


def _cache(clock: _Clock) -> QueryCache:
    return QueryCache(clock=clock, sleep=_no_sleep)


def test_second_read_is_served_from_cache() -> None:
    """Two consecutive reads of one key should call the fetcher once."""
    clock = _Clock()
    fetcher = _Fetcher()

    async def _run() -> tuple[str, str]:
        cache = _cache(clock)
        first = await cache.fetch(_KEY, fetcher, policy=_POLICY)
        second = await cache.fetch(_KEY, fetcher, policy=_POLICY)
        return first, second

    assert asyncio.run(_run()) == ("v1", "v1")
    assert fetcher.calls == 1


def test_concurrent_misses_share_one_fetch() -> None:
    """Concurrent readers of a missing key should await the same fetch."""
    clock = _Clock()

    async def _run() -> list[str]:
        fetcher = _Fetcher(gate=asyncio.Event())
        cache = _cache(clock)
        readers = [
            asyncio.create_task(cache.fetch(_KEY, fetcher, policy=_POLICY))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        assert cache.state(_KEY).is_fetching
        fetcher.gate.set()
        results = await asyncio.gather(*readers)
        assert fetcher.calls == 1
        return results

    assert asyncio.run(_run()) == ["v1", "v1", "v1"]


def test_stale_value_is_served_while_revalidating() -> None:
    """A stale entry returns immediately and refreshes in the background."""
    clock = _Clock()
    fetcher = _Fetcher()

    async def _run() -> tuple[str, str, bool]:
        cache = _cache(clock)
        await cache.fetch(_KEY, fetcher, policy=_POLICY)
        clock.advance(20)
        stale = await cache.fetch(_KEY, fetcher, policy=_POLICY)
        await _drain()
        return stale, cache.get_data(_KEY), cache.is_fresh(_KEY)

    stale, refreshed, fresh = asyncio.run(_run())

    assert stale == "v1"
    assert refreshed == "v2"
    assert fresh is True
    assert fetcher.calls == 2


def test_expired_value_is_evicted_and_refetched_synchronously() -> None:
    """Past the gc window the caller should wait for new data."""
    clock = _Clock()
    fetcher = _Fetcher()

    async def _run() -> str:
        cache = _cache(clock)
        await cache.fetch(_KEY, fetcher, policy=_POLICY)
        clock.advance(100)
        assert not cache.has_data(_KEY)
        return await cache.fetch(_KEY, fetcher, policy=_POLICY)

    assert asyncio.run(_run()) == "v2"


def test_failed_fetch_caches_nothing() -> None:
    """A failing first fetch should propagate and leave the key absent."""
    clock = _Clock()
    fetcher = _Fetcher()
    fetcher.error = BillingBackendValidationError("bad filter")

    async def _run() -> QueryCache:
        cache = _cache(clock)
        with pytest.raises(BillingBackendValidationError):
            await cache.fetch(_KEY, fetcher, policy=_POLICY)
        return cache

    cache = asyncio.run(_run())

    assert cache.state(_KEY).has_value is False
    assert fetcher.calls == 1


def test_fetch_retries_transient_failures_per_policy() -> None:
    """Blocking reads should apply the key's retry policy."""
    clock = _Clock()
    attempts = 0

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise BillingBackendDependencyError("offline")
        return "ok"

    policy = CachePolicy(
        stale_seconds=10,
        gc_seconds=100,
        retry=RetryPolicy(max_retries=3, backoff_strategy="none"),
    )

    async def _run() -> str:
        return await _cache(clock).fetch(_KEY, flaky, policy=policy)

    assert asyncio.run(_run()) == "ok"
    assert attempts == 3


def test_invalidation_cascades_by_prefix_and_forces_refetch() -> None:
    """Invalidating a prefix marks every nested key not-fresh."""
    clock = _Clock()
    nested = ("billing", "timeEntries", "unsubmitted")
    sibling = ("billing", "matters")

    async def _run() -> QueryCache:
        cache = _cache(clock)
        await cache.fetch(_KEY, _Fetcher(), policy=_POLICY)
        await cache.fetch(nested, _Fetcher(), policy=_POLICY)
        await cache.fetch(sibling, _Fetcher(), policy=_POLICY)
        assert cache.invalidate(_KEY) == 2
        return cache

    cache = asyncio.run(_run())

    assert cache.state(_KEY).is_invalidated
    assert not cache.is_fresh(nested)
    assert cache.is_fresh(sibling)


def test_invalidated_entry_read_bypasses_cache() -> None:
    """An invalidated entry should be refetched before being returned."""
    clock = _Clock()
    fetcher = _Fetcher()

    async def _run() -> str:
        cache = _cache(clock)
        await cache.fetch(_KEY, fetcher, policy=_POLICY)
        cache.invalidate(_KEY, exact=True)
        return await cache.fetch(_KEY, fetcher, policy=_POLICY)

    assert asyncio.run(_run()) == "v2"


def test_late_revalidation_does_not_clobber_newer_write() -> None:
    """A revalidation resolving after a direct write should be discarded."""
    clock = _Clock()

    async def _run() -> object:
        cache = _cache(clock)
        await cache.fetch(_KEY, _Fetcher(), policy=_POLICY)
        clock.advance(20)
        gated = _Fetcher(gate=asyncio.Event())
        await cache.fetch(_KEY, gated, policy=_POLICY)
        await asyncio.sleep(0)
        cache.set_data(_KEY, "optimistic")
        gated.gate.set()
        await _drain()
        return cache.get_data(_KEY)

    assert asyncio.run(_run()) == "optimistic"


def test_background_revalidation_failure_keeps_stale_value() -> None:
    """Failed revalidations are logged, not raised, and keep the old value."""
    clock = _Clock()
    fetcher = _Fetcher()

    async def _run() -> object:
        cache = _cache(clock)
        await cache.fetch(_KEY, fetcher, policy=_POLICY)
        clock.advance(20)
        fetcher.error = BillingBackendValidationError("gone")
        await cache.fetch(_KEY, fetcher, policy=_POLICY)
        await _drain()
        return cache.get_data(_KEY)

    assert asyncio.run(_run()) == "v1"


def test_snapshot_restore_round_trips_present_and_absent_keys() -> None:
    """Restoring a snapshot should put values back and remove added keys."""
    clock = _Clock()
    absent = ("billing", "timeEntries", "matter", "m-1")

    async def _run() -> QueryCache:
        cache = _cache(clock)
        await cache.fetch(_KEY, _Fetcher(), policy=_POLICY)
        snapshots = cache.snapshot([_KEY, absent])
        cache.set_data(_KEY, "changed")
        cache.set_data(absent, "added", policy=_POLICY)
        cache.restore(snapshots)
        return cache

    cache = asyncio.run(_run())

    assert cache.get_data(_KEY) == "v1"
    assert not cache.has_data(absent)


def test_set_data_requires_policy_for_new_keys() -> None:
    """Creating an entry without a policy is a programming error."""
    cache = QueryCache(clock=_Clock())

    with pytest.raises(ValueError):
        cache.set_data(_KEY, "value")


def test_revalidate_stale_honors_refetch_triggers() -> None:
    """Focus refetch skips policies that opt out; reconnect does not."""
    clock = _Clock()
    focus_fetcher = _Fetcher()
    quiet_fetcher = _Fetcher()
    quiet_policy = CachePolicy(stale_seconds=10, gc_seconds=100, refetch_on_focus=False)
    quiet_key = ("billing", "analytics")

    async def _run() -> tuple[int, int]:
        cache = _cache(clock)
        await cache.fetch(_KEY, focus_fetcher, policy=_POLICY)
        await cache.fetch(quiet_key, quiet_fetcher, policy=quiet_policy)
        clock.advance(20)
        focus = cache.revalidate_stale("focus")
        await _drain()
        clock.advance(20)
        reconnect = cache.revalidate_stale("reconnect")
        await _drain()
        return focus, reconnect

    assert asyncio.run(_run()) == (1, 2)
    assert focus_fetcher.calls == 3
    assert quiet_fetcher.calls == 2


def test_remove_evicts_and_aclose_cancels_background_work() -> None:
    """Eviction drops entries; closing cancels pending revalidations."""
    clock = _Clock()

    async def _run() -> QueryCache:
        cache = _cache(clock)
        await cache.fetch(_KEY, _Fetcher(), policy=_POLICY)
        clock.advance(20)
        gated = _Fetcher(gate=asyncio.Event())
        await cache.fetch(_KEY, gated, policy=_POLICY)
        assert cache.state(_KEY).is_fetching
        await cache.aclose()
        return cache

    cache = asyncio.run(_run())

    assert cache.keys() == []
    assert cache.remove(_KEY) == 0


def test_removed_keys_drop_their_generation() -> None:
    """Evicting a key with no pending work should forget its generation."""
    clock = _Clock()
    keys = [
        ("billing", "timeEntries", "range", f"2024-03-{day:02d}", f"2024-03-{day:02d}")
        for day in range(1, 6)
    ]

    async def _run() -> QueryCache:
        cache = _cache(clock)
        for key in keys:
            await cache.fetch(key, _Fetcher(), policy=_POLICY)
        assert all(cache.state(key).generation > 0 for key in keys)
        assert cache.remove(("billing",)) == len(keys)
        return cache

    cache = asyncio.run(_run())

    assert [cache.state(key).generation for key in keys] == [0] * len(keys)
    assert cache._generations == {}


def test_fetch_detached_by_remove_is_discarded_then_forgotten() -> None:
    """A fetch outliving its key's eviction must not store, nor leave state behind."""
    clock = _Clock()
    gated = _Fetcher(gate=asyncio.Event())

    async def _run() -> tuple[object, int, int, bool]:
        cache = _cache(clock)
        reader = asyncio.create_task(cache.fetch(_KEY, gated, policy=_POLICY))
        await asyncio.sleep(0)
        cache.remove(_KEY)
        during = cache.state(_KEY).generation
        gated.gate.set()
        result = await reader
        await _drain()
        return result, during, cache.state(_KEY).generation, cache.has_data(_KEY)

    result, during, after, cached = asyncio.run(_run())

    assert result == "v1"
    assert during > 0
    assert after == 0
    assert cached is False


def test_restoring_an_absent_snapshot_forgets_the_generation() -> None:
    """Rolling back a key that did not exist should leave no generation behind."""
    clock = _Clock()
    absent = ("billing", "timeEntries", "matter", "m-9")

    async def _run() -> QueryCache:
        cache = _cache(clock)
        snapshots = cache.snapshot([absent])
        cache.set_data(absent, "optimistic", policy=_POLICY)
        assert cache.state(absent).generation > 0
        cache.restore(snapshots)
        return cache

    cache = asyncio.run(_run())

    assert cache.state(absent).generation == 0
    assert absent not in cache._generations
