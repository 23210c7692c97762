"""Read-through query executors for billing data."""

from __future__ import annotations

from resources.adapters.billing_backend.adapter import (
    BillingAnalytics,
    BillingBackend,
    ClientBillingSummary,
    DateRange,
    MatterSummary,
    TimeEntry,
    TimeEntryFilters,
)
from services.billing.time_entries import keys
from services.billing.time_entries.cache import CachePolicy, QueryCache
from services.billing.time_entries.config import TimeEntryCacheSettings

DEFAULT_RECENT_LIMIT = 5


class TimeEntryQueries:
    """Cached reads over one billing backend.

    List results are cached as tuples and handed to callers as fresh lists so
    callers cannot mutate cached state.
    """

    def __init__(
        self,
        *,
        cache: QueryCache,
        backend: BillingBackend,
        settings: TimeEntryCacheSettings,
    ) -> None:
        self._cache = cache
        self._backend = backend
        self.time_entries_policy = CachePolicy.from_settings(settings.time_entries)
        self.unsubmitted_policy = CachePolicy.from_settings(settings.unsubmitted)
        self.recent_policy = CachePolicy.from_settings(settings.recent)
        self.matters_policy = CachePolicy.from_settings(settings.matters)
        self.client_billing_policy = CachePolicy.from_settings(settings.client_billing)
        self.analytics_policy = CachePolicy.from_settings(settings.analytics)

    async def time_entries(
        self, *, filters: TimeEntryFilters | None = None
    ) -> list[TimeEntry]:
        async def load() -> tuple[TimeEntry, ...]:
            return tuple(await self._backend.get_time_entries(filters=filters))

        cached = await self._cache.fetch(
            keys.time_entries_key_for(filters), load, policy=self.time_entries_policy
        )
        return list(cached)

    async def time_entry(self, *, entry_id: str) -> TimeEntry:
        async def load() -> TimeEntry:
            return await self._backend.get_time_entry(entry_id=entry_id)

        return await self._cache.fetch(
            keys.time_entry_key(entry_id), load, policy=self.time_entries_policy
        )

    async def unsubmitted_entries(self) -> list[TimeEntry]:
        async def load() -> tuple[TimeEntry, ...]:
            return tuple(await self._backend.get_unsubmitted_entries())

        cached = await self._cache.fetch(
            keys.unsubmitted_key(), load, policy=self.unsubmitted_policy
        )
        return list(cached)

    async def recent_entries(self, *, limit: int = DEFAULT_RECENT_LIMIT) -> list[TimeEntry]:
        if limit < 1:
            raise ValueError("limit must be >= 1")

        async def load() -> tuple[TimeEntry, ...]:
            return tuple(await self._backend.get_recent_time_entries(limit=limit))

        cached = await self._cache.fetch(
            keys.recent_key(limit), load, policy=self.recent_policy
        )
        return list(cached)

    async def matters_for_time_entry(self) -> list[MatterSummary]:
        cached = await self._cache.fetch(
            keys.matters_for_time_entry_key(),
            self.load_matters,
            policy=self.matters_policy,
        )
        return list(cached)

    async def load_matters(self) -> tuple[MatterSummary, ...]:
        return tuple(await self._backend.get_matters_for_time_entry())

    async def client_billing(self, *, client_id: str) -> ClientBillingSummary:
        if client_id.strip() == "":
            raise ValueError("client_id is required")

        async def load() -> ClientBillingSummary:
            return await self._backend.get_client_billing_info(client_id=client_id)

        return await self._cache.fetch(
            keys.client_billing_key(client_id), load, policy=self.client_billing_policy
        )

    async def billing_analytics(
        self, *, date_range: DateRange | None = None
    ) -> BillingAnalytics:
        async def load() -> BillingAnalytics:
            return await self._backend.get_billing_analytics(date_range=date_range)

        return await self._cache.fetch(
            keys.analytics_key(date_range), load, policy=self.analytics_policy
        )
