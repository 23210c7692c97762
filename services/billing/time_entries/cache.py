"""In-memory query cache with stale-while-revalidate reads.

Entries are keyed by hierarchical ``CacheKey`` tuples. Each key carries a
generation that advances on every write, invalidation or eviction; a fetch
or background revalidation only stores its result when the generation it
started from is still current. A key's generation is dropped once it has
no entry and no fetch or revalidation task that captured it.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from packages.billing_shared.logging import get_logger, log_context
from packages.billing_shared.logging import fields as log_fields
from services.billing.time_entries.config import QueryPolicySettings
from services.billing.time_entries.keys import CacheKey, format_key, is_prefix
from services.billing.time_entries.retry import NO_RETRY, RetryPolicy, run_with_retry

_LOGGER = get_logger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
RefetchTrigger = Literal["focus", "reconnect"]


@dataclass(frozen=True)
class CachePolicy:
    """Freshness windows, refetch triggers and retry policy for one key."""

    stale_seconds: float
    gc_seconds: float
    refetch_on_focus: bool = True
    refetch_on_reconnect: bool = True
    retry: RetryPolicy = NO_RETRY

    @staticmethod
    def from_settings(settings: QueryPolicySettings) -> CachePolicy:
        """Build a cache policy from one resource's query settings."""
        return CachePolicy(
            stale_seconds=settings.stale_seconds,
            gc_seconds=settings.gc_seconds,
            refetch_on_focus=settings.refetch_on_focus,
            refetch_on_reconnect=settings.refetch_on_reconnect,
            retry=RetryPolicy.from_settings(settings),
        )

    def refetches_on(self, trigger: RefetchTrigger) -> bool:
        if trigger == "focus":
            return self.refetch_on_focus
        return self.refetch_on_reconnect


@dataclass
class _Entry:
    value: Any
    updated_at: float
    policy: CachePolicy
    fetcher: Fetcher | None = None
    invalidated: bool = False


@dataclass(frozen=True)
class EntrySnapshot:
    """Immutable copy of one key's cache state; ``present`` is False when absent."""

    key: CacheKey
    present: bool
    value: Any = None
    updated_at: float = 0.0
    policy: CachePolicy | None = None
    fetcher: Fetcher | None = field(default=None, compare=False)
    invalidated: bool = False


@dataclass(frozen=True)
class QueryState:
    """Read-only view of one key's cache state."""

    key: CacheKey
    has_value: bool
    is_fresh: bool
    is_invalidated: bool
    updated_at: float | None
    generation: int
    is_fetching: bool


class QueryCache:
    """Single-loop read-through cache; not safe to share across event loops."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._entries: dict[CacheKey, _Entry] = {}
        self._generations: dict[CacheKey, int] = {}
        self._pending: Counter[CacheKey] = Counter()
        self._counter = itertools.count(1)
        self._inflight: dict[CacheKey, asyncio.Task[Any]] = {}
        self._revalidations: dict[CacheKey, asyncio.Task[None]] = {}

    async def fetch(
        self, key: CacheKey, fetcher: Fetcher, *, policy: CachePolicy
    ) -> Any:
        """Return the value for ``key``, reading through on miss.

        Fresh values return immediately. Stale values return immediately and
        schedule one background revalidation. Missing, invalidated or expired
        values await the fetcher; concurrent callers share one fetch.
        """
        entry = self._live_entry(key)
        if entry is not None and not entry.invalidated:
            entry.fetcher = fetcher
            if not self._is_fresh(entry):
                self._schedule_revalidation(key, entry)
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._load(key, fetcher, policy, self._generation(key))
            )
            self._inflight[key] = task
            self._pending[key] += 1
            task.add_done_callback(lambda done: self._forget_inflight(key, done))
        return await asyncio.shield(task)

    def get_data(self, key: CacheKey) -> Any:
        """Return the cached value for ``key`` or ``None`` without fetching."""
        entry = self._live_entry(key)
        return None if entry is None else entry.value

    def has_data(self, key: CacheKey) -> bool:
        return self._live_entry(key) is not None

    def set_data(
        self, key: CacheKey, value: Any, *, policy: CachePolicy | None = None
    ) -> None:
        """Write ``value`` as fresh data for ``key``.

        Existing entries keep their policy and fetcher; new entries require
        ``policy``.
        """
        entry = self._entries.get(key)
        if entry is None:
            if policy is None:
                raise ValueError(f"policy is required to create {format_key(key)}")
            entry = _Entry(value=value, updated_at=self._clock(), policy=policy)
            self._entries[key] = entry
        else:
            entry.value = value
            entry.updated_at = self._clock()
            entry.invalidated = False
        self._bump(key)

    def update_data(self, key: CacheKey, updater: Callable[[Any], Any]) -> bool:
        """Replace the cached value with ``updater(value)``.

        Returns False without writing when the key is absent or the updater
        leaves the value unchanged, so untouched entries keep their freshness.
        """
        entry = self._live_entry(key)
        if entry is None:
            return False
        updated = updater(entry.value)
        if updated == entry.value:
            return False
        self.set_data(key, updated)
        return True

    def keys(self, prefix: CacheKey = ()) -> list[CacheKey]:
        """Return live cached keys under ``prefix``."""
        return [
            key
            for key in list(self._entries)
            if is_prefix(prefix, key) and self._live_entry(key) is not None
        ]

    def cancel_revalidations(self, prefix: CacheKey, *, exact: bool = False) -> int:
        """Cancel background revalidations for matching keys."""
        cancelled = 0
        for key in self._matching(self._revalidations, prefix, exact=exact):
            task = self._revalidations.pop(key)
            task.cancel()
            cancelled += 1
        return cancelled

    def snapshot(self, keys: Iterable[CacheKey]) -> tuple[EntrySnapshot, ...]:
        """Capture the current state of ``keys``, recording absent keys too."""
        snapshots: list[EntrySnapshot] = []
        for key in dict.fromkeys(keys):
            entry = self._entries.get(key)
            if entry is None:
                snapshots.append(EntrySnapshot(key=key, present=False))
                continue
            snapshots.append(
                EntrySnapshot(
                    key=key,
                    present=True,
                    value=entry.value,
                    updated_at=entry.updated_at,
                    policy=entry.policy,
                    fetcher=entry.fetcher,
                    invalidated=entry.invalidated,
                )
            )
        return tuple(snapshots)

    def restore(self, snapshots: Iterable[EntrySnapshot]) -> None:
        """Put every snapshotted key back into its captured state."""
        for snapshot in snapshots:
            if not snapshot.present or snapshot.policy is None:
                self._entries.pop(snapshot.key, None)
            else:
                self._entries[snapshot.key] = _Entry(
                    value=snapshot.value,
                    updated_at=snapshot.updated_at,
                    policy=snapshot.policy,
                    fetcher=snapshot.fetcher,
                    invalidated=snapshot.invalidated,
                )
            self._bump(snapshot.key)
            self._prune(snapshot.key)

    def invalidate(self, prefix: CacheKey, *, exact: bool = False) -> int:
        """Mark matching entries not-fresh so the next read refetches.

        In-flight fetches for matching keys still answer their callers but no
        longer write to the cache.
        """
        self.cancel_revalidations(prefix, exact=exact)
        self._detach_inflight(prefix, exact=exact)
        invalidated = 0
        for key in self._matching(self._entries, prefix, exact=exact):
            self._entries[key].invalidated = True
            self._bump(key)
            invalidated += 1
        with log_context(
            {
                log_fields.EVENT: log_fields.CACHE_INVALIDATION_EVENT,
                log_fields.CACHE_KEY: format_key(prefix),
            }
        ):
            _LOGGER.debug("Invalidated %d cache entries", invalidated)
        return invalidated

    def remove(self, prefix: CacheKey, *, exact: bool = False) -> int:
        """Evict matching entries outright."""
        self.cancel_revalidations(prefix, exact=exact)
        self._detach_inflight(prefix, exact=exact)
        removed = 0
        for key in self._matching(self._entries, prefix, exact=exact):
            del self._entries[key]
            self._bump(key)
            self._prune(key)
            removed += 1
        return removed

    def state(self, key: CacheKey) -> QueryState:
        entry = self._live_entry(key)
        return QueryState(
            key=key,
            has_value=entry is not None,
            is_fresh=entry is not None and self._is_fresh(entry),
            is_invalidated=entry is not None and entry.invalidated,
            updated_at=None if entry is None else entry.updated_at,
            generation=self._generation(key),
            is_fetching=key in self._inflight or key in self._revalidations,
        )

    def is_fresh(self, key: CacheKey) -> bool:
        entry = self._live_entry(key)
        return entry is not None and self._is_fresh(entry)

    def revalidate_stale(self, trigger: RefetchTrigger) -> int:
        """Schedule revalidation of non-fresh entries opted in to ``trigger``."""
        scheduled = 0
        for key in self.keys():
            entry = self._entries[key]
            if self._is_fresh(entry) or not entry.policy.refetches_on(trigger):
                continue
            if self._schedule_revalidation(key, entry):
                scheduled += 1
        return scheduled

    async def aclose(self) -> None:
        """Cancel background work and drop every entry."""
        tasks = [*self._revalidations.values(), *self._inflight.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._revalidations.clear()
        self._inflight.clear()
        self._entries.clear()
        self._pending.clear()
        self._generations.clear()

    async def _load(
        self,
        key: CacheKey,
        fetcher: Fetcher,
        policy: CachePolicy,
        generation: int,
    ) -> Any:
        with log_context(
            {
                log_fields.EVENT: log_fields.CACHE_FETCH_EVENT,
                log_fields.CACHE_KEY: format_key(key),
            }
        ):
            value = await run_with_retry(fetcher, policy=policy.retry, sleep=self._sleep)
            if self._generation(key) != generation:
                _LOGGER.debug("Discarding fetch result superseded during flight")
                return value
            self._entries[key] = _Entry(
                value=value,
                updated_at=self._clock(),
                policy=policy,
                fetcher=fetcher,
            )
            self._bump(key)
            _LOGGER.debug("Fetched and cached")
            return value

    def _schedule_revalidation(self, key: CacheKey, entry: _Entry) -> bool:
        if entry.fetcher is None:
            return False
        if key in self._revalidations or key in self._inflight:
            return False
        task = asyncio.create_task(
            self._revalidate(key, entry.fetcher, entry.policy, self._generation(key))
        )
        self._revalidations[key] = task
        self._pending[key] += 1
        task.add_done_callback(lambda done: self._forget_revalidation(key, done))
        return True

    async def _revalidate(
        self,
        key: CacheKey,
        fetcher: Fetcher,
        policy: CachePolicy,
        generation: int,
    ) -> None:
        with log_context(
            {
                log_fields.EVENT: log_fields.CACHE_REVALIDATION_EVENT,
                log_fields.CACHE_KEY: format_key(key),
                log_fields.CACHE_GENERATION: generation,
            }
        ):
            try:
                value = await run_with_retry(
                    fetcher, policy=policy.retry, sleep=self._sleep
                )
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("Background revalidation failed: %s", exc)
                return
            entry = self._entries.get(key)
            if entry is None or self._generation(key) != generation:
                _LOGGER.debug("Discarding revalidation superseded during flight")
                return
            entry.value = value
            entry.updated_at = self._clock()
            entry.invalidated = False
            self._bump(key)

    def _live_entry(self, key: CacheKey) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.updated_at >= entry.policy.gc_seconds:
            self.remove(key, exact=True)
            return None
        return entry

    def _is_fresh(self, entry: _Entry) -> bool:
        if entry.invalidated:
            return False
        return self._clock() - entry.updated_at < entry.policy.stale_seconds

    def _generation(self, key: CacheKey) -> int:
        return self._generations.get(key, 0)

    def _bump(self, key: CacheKey) -> None:
        self._generations[key] = next(self._counter)

    def _detach_inflight(self, prefix: CacheKey, *, exact: bool) -> None:
        for key in self._matching(self._inflight, prefix, exact=exact):
            del self._inflight[key]
            self._bump(key)

    def _forget_inflight(self, key: CacheKey, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()
        self._release(key)

    def _forget_revalidation(self, key: CacheKey, task: asyncio.Task[None]) -> None:
        if self._revalidations.get(key) is task:
            del self._revalidations[key]
        self._release(key)

    def _release(self, key: CacheKey) -> None:
        self._pending[key] -= 1
        if self._pending[key] <= 0:
            del self._pending[key]
            self._prune(key)

    def _prune(self, key: CacheKey) -> None:
        """Drop the generation of a key nothing can compare against anymore."""
        if key not in self._entries and key not in self._pending:
            self._generations.pop(key, None)

    @staticmethod
    def _matching(
        source: dict[CacheKey, Any], prefix: CacheKey, *, exact: bool
    ) -> list[CacheKey]:
        if exact:
            return [prefix] if prefix in source else []
        return [key for key in source if is_prefix(prefix, key)]
