"""Mutation executors with optimistic apply, rollback and reconciliation.

Every mutation runs the same phases. Cancelling revalidations, snapshotting
and the optimistic apply all happen before the first ``await`` so a mutation
issued right after observes the previous one's optimistic state. The remote
call follows. On failure, including cancellation, every snapshot is restored
before the error propagates. The invalidation policy runs once the call
settles, whatever the outcome.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from packages.billing_shared.ids import MonotonicUlidGenerator
from packages.billing_shared.logging import get_logger, log_context
from packages.billing_shared.logging import fields as log_fields
from resources.adapters.billing_backend.adapter import (
    BillingBackend,
    TimeEntry,
    TimeEntryDraft,
    TimeEntryPatch,
    apply_patch,
)
from services.billing.time_entries import keys
from services.billing.time_entries.cache import CachePolicy, EntrySnapshot, QueryCache
from services.billing.time_entries.invalidation import (
    MutationKind,
    MutationVariables,
    affected_prefixes,
    apply_invalidation_policy,
)
from services.billing.time_entries.keys import CacheKey

_LOGGER = get_logger(__name__)

ResultT = TypeVar("ResultT")


@dataclass(frozen=True)
class MutationContext:
    """State retained by one in-flight mutation for rollback."""

    kind: MutationKind
    variables: MutationVariables
    snapshots: tuple[EntrySnapshot, ...]
    temporary_id: str | None = None


class TimeEntryMutations:
    """Optimistic time entry writes over one billing backend."""

    def __init__(
        self,
        *,
        cache: QueryCache,
        backend: BillingBackend,
        list_policy: CachePolicy,
        temporary_id_prefix: str = "temp-",
        id_factory: Callable[[], str] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._cache = cache
        self._backend = backend
        self._list_policy = list_policy
        self._temporary_id_prefix = temporary_id_prefix
        self._id_factory = id_factory or MonotonicUlidGenerator()
        self._now = now or (lambda: datetime.now(UTC))

    async def create_time_entry(self, *, draft: TimeEntryDraft) -> TimeEntry:
        temporary_id = f"{self._temporary_id_prefix}{self._id_factory()}"
        context = self._begin(
            MutationKind.CREATE,
            MutationVariables(),
            extra_keys=(keys.time_entries_key(),),
            temporary_id=temporary_id,
        )
        return await self._settle(
            context,
            lambda: self._insert_optimistic(
                self._optimistic_entry(draft, temporary_id)
            ),
            lambda: self._backend.create_time_entry(draft=draft),
        )

    async def update_time_entry(
        self, *, entry_id: str, patch: TimeEntryPatch
    ) -> TimeEntry:
        context = self._begin(
            MutationKind.UPDATE,
            MutationVariables(
                entry_id=entry_id, changed_fields=frozenset(patch.model_fields_set)
            ),
            extra_keys=(keys.time_entry_key(entry_id),),
        )
        timestamp = self._now()

        def merge(entry: TimeEntry) -> TimeEntry:
            merged = apply_patch(entry, patch)
            merged["updated_at"] = timestamp
            return TimeEntry.model_validate(merged)

        return await self._settle(
            context,
            lambda: self._map_entry(entry_id, merge),
            lambda: self._backend.update_time_entry(entry_id=entry_id, patch=patch),
        )

    async def delete_time_entry(self, *, entry_id: str) -> None:
        context = self._begin(
            MutationKind.DELETE,
            MutationVariables(entry_id=entry_id),
            extra_keys=(keys.time_entry_key(entry_id),),
        )

        def remove_optimistically() -> None:
            for key in self._cached_lists():
                self._cache.update_data(
                    key,
                    lambda entries: tuple(
                        entry for entry in entries if entry.id != entry_id
                    ),
                )
            self._cache.remove(keys.time_entry_key(entry_id), exact=True)

        await self._settle(
            context,
            remove_optimistically,
            lambda: self._backend.delete_time_entry(entry_id=entry_id),
        )

    async def submit_time_entries(self, *, entry_ids: Sequence[str]) -> None:
        context = self._begin(
            MutationKind.SUBMIT, MutationVariables(entry_ids=tuple(entry_ids))
        )
        await self._settle(
            context,
            None,
            lambda: self._backend.submit_time_entries(entry_ids=list(entry_ids)),
        )

    def _begin(
        self,
        kind: MutationKind,
        variables: MutationVariables,
        *,
        extra_keys: Sequence[CacheKey] = (),
        temporary_id: str | None = None,
    ) -> MutationContext:
        """Cancel revalidations and snapshot every key the mutation may touch."""
        for prefix, exact in affected_prefixes(kind, variables):
            self._cache.cancel_revalidations(prefix, exact=exact)
        snapshots = self._cache.snapshot(
            [*self._cache.keys(keys.time_entries_key()), *extra_keys]
        )
        return MutationContext(
            kind=kind,
            variables=variables,
            snapshots=snapshots,
            temporary_id=temporary_id,
        )

    async def _settle(
        self,
        context: MutationContext,
        optimistic: Callable[[], None] | None,
        call: Callable[[], Awaitable[ResultT]],
    ) -> ResultT:
        """Apply the optimistic change, call the backend and reconcile.

        The optimistic change runs before the first suspension point. A failure
        in it or in the backend call restores every snapshot; the invalidation
        policy runs in every case.
        """
        with log_context(
            {
                log_fields.MUTATION: context.kind.value,
                log_fields.TIME_ENTRY_ID: context.variables.entry_id,
            }
        ):
            try:
                if optimistic is not None:
                    optimistic()
                return await call()
            except (Exception, asyncio.CancelledError) as exc:
                self._cache.restore(context.snapshots)
                rollback = {log_fields.EVENT: log_fields.MUTATION_ROLLBACK_EVENT}
                with log_context(rollback):
                    _LOGGER.warning(
                        "Mutation failed; restored %d cache entries: %r",
                        len(context.snapshots),
                        exc,
                    )
                raise
            finally:
                apply_invalidation_policy(self._cache, context.kind, context.variables)

    def _optimistic_entry(self, draft: TimeEntryDraft, entry_id: str) -> TimeEntry:
        timestamp = self._now()
        rate = draft.rate or 0.0
        fields: dict[str, Any] = draft.model_dump()
        fields.update(
            id=entry_id,
            rate=rate,
            amount=draft.amount if draft.amount is not None else draft.hours * rate,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return TimeEntry.model_validate(fields)

    def _insert_optimistic(self, entry: TimeEntry) -> None:
        existing = self._cached_lists()
        if keys.time_entries_key() not in existing:
            self._cache.set_data(
                keys.time_entries_key(), (entry,), policy=self._list_policy
            )
        for key in existing:
            if keys.list_key_accepts(key, entry):
                self._cache.update_data(key, lambda entries: (*entries, entry))

    def _map_entry(
        self, entry_id: str, transform: Callable[[TimeEntry], TimeEntry]
    ) -> None:
        """Apply ``transform`` to ``entry_id`` in every cached list and entry key.

        Filtered lists drop the entry when the transformed entry no longer
        matches their filter.
        """
        for key in self._cached_lists():
            self._cache.update_data(
                key, lambda entries: _map_list(key, entries, entry_id, transform)
            )
        self._cache.update_data(keys.time_entry_key(entry_id), transform)

    def _cached_lists(self) -> list[CacheKey]:
        return [
            key
            for key in self._cache.keys(keys.time_entries_key())
            if isinstance(self._cache.get_data(key), tuple)
        ]


def _map_list(
    key: CacheKey,
    entries: tuple[TimeEntry, ...],
    entry_id: str,
    transform: Callable[[TimeEntry], TimeEntry],
) -> tuple[TimeEntry, ...]:
    mapped: list[TimeEntry] = []
    for entry in entries:
        if entry.id != entry_id:
            mapped.append(entry)
            continue
        updated = transform(entry)
        if keys.list_key_accepts(key, entry) and not keys.list_key_accepts(
            key, updated
        ):
            continue
        mapped.append(updated)
    return tuple(mapped)
