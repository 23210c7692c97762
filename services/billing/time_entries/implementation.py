"""Concrete time entry cache service implementation."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Sequence

from packages.billing_shared.logging import get_logger, public_api_logged
from resources.adapters.billing_backend.adapter import (
    BillingAnalytics,
    BillingBackend,
    ClientBillingSummary,
    DateRange,
    MatterSummary,
    TimeEntry,
    TimeEntryDraft,
    TimeEntryFilters,
    TimeEntryPatch,
)
from services.billing.time_entries import prefetch
from services.billing.time_entries.cache import QueryCache, QueryState
from services.billing.time_entries.component import SERVICE_COMPONENT_ID
from services.billing.time_entries.config import TimeEntryCacheSettings
from services.billing.time_entries.keys import CacheKey
from services.billing.time_entries.mutations import TimeEntryMutations
from services.billing.time_entries.queries import TimeEntryQueries
from services.billing.time_entries.service import TimeEntryCacheService

_LOGGER = get_logger(__name__)


class DefaultTimeEntryCacheService(TimeEntryCacheService):
    """Default service composing one query cache with query and mutation executors."""

    def __init__(
        self,
        *,
        settings: TimeEntryCacheSettings,
        backend: BillingBackend,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        id_factory: Callable[[], str] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._backend = backend
        self._cache = QueryCache(clock=clock, sleep=sleep)
        self._queries = TimeEntryQueries(
            cache=self._cache, backend=backend, settings=settings
        )
        self._mutations = TimeEntryMutations(
            cache=self._cache,
            backend=backend,
            list_policy=self._queries.time_entries_policy,
            temporary_id_prefix=settings.temporary_id_prefix,
            id_factory=id_factory,
            now=now,
        )

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def time_entries(
        self, *, filters: TimeEntryFilters | None = None
    ) -> list[TimeEntry]:
        return await self._queries.time_entries(filters=filters)

    @public_api_logged(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("entry_id",)
    )
    async def time_entry(self, *, entry_id: str) -> TimeEntry:
        return await self._queries.time_entry(entry_id=entry_id)

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def unsubmitted_entries(self) -> list[TimeEntry]:
        return await self._queries.unsubmitted_entries()

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def recent_entries(self, *, limit: int = 5) -> list[TimeEntry]:
        return await self._queries.recent_entries(limit=limit)

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def matters_for_time_entry(self) -> list[MatterSummary]:
        return await self._queries.matters_for_time_entry()

    @public_api_logged(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("client_id",)
    )
    async def client_billing(self, *, client_id: str) -> ClientBillingSummary:
        return await self._queries.client_billing(client_id=client_id)

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def billing_analytics(
        self, *, date_range: DateRange | None = None
    ) -> BillingAnalytics:
        return await self._queries.billing_analytics(date_range=date_range)

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def create_time_entry(self, *, draft: TimeEntryDraft) -> TimeEntry:
        return await self._mutations.create_time_entry(draft=draft)

    @public_api_logged(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("entry_id",)
    )
    async def update_time_entry(
        self, *, entry_id: str, patch: TimeEntryPatch
    ) -> TimeEntry:
        return await self._mutations.update_time_entry(entry_id=entry_id, patch=patch)

    @public_api_logged(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("entry_id",)
    )
    async def delete_time_entry(self, *, entry_id: str) -> None:
        await self._mutations.delete_time_entry(entry_id=entry_id)

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    async def submit_time_entries(self, *, entry_ids: Sequence[str]) -> None:
        await self._mutations.submit_time_entries(entry_ids=entry_ids)

    async def prefetch_matters(self) -> None:
        await prefetch.prefetch_matters(cache=self._cache, queries=self._queries)

    @public_api_logged(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    def invalidate_all(self) -> int:
        return prefetch.invalidate_all(cache=self._cache)

    def notify_focus(self) -> int:
        return self._cache.revalidate_stale("focus")

    def notify_reconnect(self) -> int:
        return self._cache.revalidate_stale("reconnect")

    def query_state(self, *, key: CacheKey) -> QueryState:
        return self._cache.state(key)

    async def aclose(self) -> None:
        await self._cache.aclose()
        close = getattr(self._backend, "aclose", None)
        if close is not None:
            await close()
