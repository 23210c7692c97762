"""Authoritative in-process Python API for the time entry cache service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from packages.billing_shared.config import BillingSettings
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
from services.billing.time_entries.cache import QueryState
from services.billing.time_entries.keys import CacheKey


class TimeEntryCacheService(ABC):
    """Public API for cached billing reads and optimistic time entry writes."""

    @abstractmethod
    async def time_entries(
        self, *, filters: TimeEntryFilters | None = None
    ) -> list[TimeEntry]:
        """List time entries for the key selected by ``filters``."""

    @abstractmethod
    async def time_entry(self, *, entry_id: str) -> TimeEntry:
        """Read one time entry."""

    @abstractmethod
    async def unsubmitted_entries(self) -> list[TimeEntry]:
        """List draft time entries."""

    @abstractmethod
    async def recent_entries(self, *, limit: int = 5) -> list[TimeEntry]:
        """List the ``limit`` most recently created time entries."""

    @abstractmethod
    async def matters_for_time_entry(self) -> list[MatterSummary]:
        """List matters selectable on the time entry form."""

    @abstractmethod
    async def client_billing(self, *, client_id: str) -> ClientBillingSummary:
        """Return billing totals for one client."""

    @abstractmethod
    async def billing_analytics(
        self, *, date_range: DateRange | None = None
    ) -> BillingAnalytics:
        """Return billing analytics, optionally limited to a date range."""

    @abstractmethod
    async def create_time_entry(self, *, draft: TimeEntryDraft) -> TimeEntry:
        """Create one time entry with an optimistic placeholder."""

    @abstractmethod
    async def update_time_entry(
        self, *, entry_id: str, patch: TimeEntryPatch
    ) -> TimeEntry:
        """Apply a partial update optimistically."""

    @abstractmethod
    async def delete_time_entry(self, *, entry_id: str) -> None:
        """Delete one time entry optimistically."""

    @abstractmethod
    async def submit_time_entries(self, *, entry_ids: Sequence[str]) -> None:
        """Submit a batch of time entries."""

    @abstractmethod
    async def prefetch_matters(self) -> None:
        """Warm the matters list; never raises."""

    @abstractmethod
    def invalidate_all(self) -> int:
        """Evict every cached billing key."""

    @abstractmethod
    def notify_focus(self) -> int:
        """Revalidate stale entries that refetch when the view regains focus."""

    @abstractmethod
    def notify_reconnect(self) -> int:
        """Revalidate stale entries that refetch when connectivity returns."""

    @abstractmethod
    def query_state(self, *, key: CacheKey) -> QueryState:
        """Return the cache state for one key."""

    @abstractmethod
    async def aclose(self) -> None:
        """Cancel background work and release backend resources."""


def build_time_entry_cache_service(
    *,
    settings: BillingSettings,
    backend: BillingBackend | None = None,
) -> TimeEntryCacheService:
    """Build the default cache service from typed settings."""
    from resources.adapters.billing_backend.component import build_component
    from services.billing.time_entries.config import (
        resolve_time_entry_cache_settings,
    )
    from services.billing.time_entries.implementation import (
        DefaultTimeEntryCacheService,
    )

    return DefaultTimeEntryCacheService(
        settings=resolve_time_entry_cache_settings(settings),
        backend=backend or build_component(settings=settings),
    )
