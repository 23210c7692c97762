"""In-process billing backend keeping records in memory.

Used for development sessions and tests. Amount derivation, filtering and
analytics follow the production billing rules: missing rates fall back to the
matter's hourly rate and then to ``DEFAULT_HOURLY_RATE``.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from typing import Callable, Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from packages.billing_shared.errors import codes
from packages.billing_shared.ids import MonotonicUlidGenerator
from packages.billing_shared.logging import get_logger
from resources.adapters.billing_backend.adapter import (
    BillingAnalytics,
    BillingBackend,
    BillingBackendNotFoundError,
    BillingBackendValidationError,
    ClientBillingSummary,
    ClientProfitability,
    DateRange,
    MatterSummary,
    MonthlyRevenue,
    TimeEntry,
    TimeEntryDraft,
    TimeEntryFilters,
    TimeEntryPatch,
    TimeEntryStatus,
    apply_patch,
)

_LOGGER = get_logger(__name__)

DEFAULT_HOURLY_RATE = 350.0
PAID_SHARE = 0.7
COLLECTED_SHARE = 0.85
PROFIT_MARGIN_PERCENT = 60.0
UTILIZATION_RATE = 85.0
AVERAGE_COLLECTION_DAYS = 42.0
CLIENT_RECENT_ENTRY_COUNT = 5


class MatterRecord(BaseModel):
    """Matter as stored by the in-memory backend."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    title: str
    client_id: str
    client_name: str
    practice_area: str = ""
    status: str = "active"
    hourly_rate: float | None = None


class InMemoryBillingBackend(BillingBackend):
    """Billing backend over plain in-memory collections."""

    def __init__(
        self,
        *,
        matters: Iterable[MatterRecord] = (),
        clients: Mapping[str, str] | None = None,
        entries: Iterable[TimeEntry] = (),
        id_factory: Callable[[], str] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._matters = {matter.id: matter for matter in matters}
        self._clients = dict(clients or {})
        for matter in self._matters.values():
            self._clients.setdefault(matter.client_id, matter.client_name)
        self._entries: list[TimeEntry] = list(entries)
        self._id_factory = id_factory or MonotonicUlidGenerator()
        self._now = now or (lambda: datetime.now(UTC))

    def add_matter(self, matter: MatterRecord) -> None:
        """Register or replace one matter record."""
        self._matters[matter.id] = matter
        self._clients.setdefault(matter.client_id, matter.client_name)

    async def get_time_entries(
        self, *, filters: TimeEntryFilters | None = None
    ) -> list[TimeEntry]:
        return [entry for entry in self._entries if _matches(entry, filters)]

    async def get_time_entry(self, *, entry_id: str) -> TimeEntry:
        return self._entries[self._index_of(entry_id)]

    async def create_time_entry(self, *, draft: TimeEntryDraft) -> TimeEntry:
        matter = self._matters.get(draft.matter_id)
        if matter is None:
            raise BillingBackendValidationError(
                f"invalid matter id: {draft.matter_id}",
                code=codes.MATTER_NOT_FOUND,
            )

        rate = draft.rate or matter.hourly_rate or DEFAULT_HOURLY_RATE
        timestamp = self._now()
        fields = draft.model_dump()
        fields.update(
            id=self._id_factory(),
            matter_title=draft.matter_title or matter.title,
            client_id=draft.client_id or matter.client_id,
            client_name=draft.client_name or matter.client_name,
            rate=rate,
            amount=draft.hours * rate,
            created_at=timestamp,
            updated_at=timestamp,
        )
        entry = TimeEntry.model_validate(fields)
        self._entries.append(entry)
        _LOGGER.debug("Created time entry %s for matter %s", entry.id, entry.matter_id)
        return entry

    async def update_time_entry(
        self, *, entry_id: str, patch: TimeEntryPatch
    ) -> TimeEntry:
        index = self._index_of(entry_id)
        merged = apply_patch(self._entries[index], patch)
        merged["updated_at"] = self._now()
        updated = TimeEntry.model_validate(merged)
        self._entries[index] = updated
        return updated

    async def delete_time_entry(self, *, entry_id: str) -> None:
        self._entries = [entry for entry in self._entries if entry.id != entry_id]

    async def submit_time_entries(self, *, entry_ids: Sequence[str]) -> None:
        submitted = TimeEntryPatch(status=TimeEntryStatus.SUBMITTED)
        for entry_id in entry_ids:
            await self.update_time_entry(entry_id=entry_id, patch=submitted)

    async def get_unsubmitted_entries(self) -> list[TimeEntry]:
        return await self.get_time_entries(
            filters=TimeEntryFilters(status=TimeEntryStatus.DRAFT)
        )

    async def get_recent_time_entries(self, *, limit: int) -> list[TimeEntry]:
        newest_first = sorted(
            self._entries, key=lambda entry: entry.created_at, reverse=True
        )
        return newest_first[:limit]

    async def get_matters_for_time_entry(self) -> list[MatterSummary]:
        return [
            MatterSummary(
                id=matter.id,
                title=matter.title,
                client_name=matter.client_name,
                practice_area=matter.practice_area,
                hourly_rate=matter.hourly_rate,
                status=matter.status,
            )
            for matter in self._matters.values()
            if matter.status == "active"
        ]

    async def get_client_billing_info(self, *, client_id: str) -> ClientBillingSummary:
        if client_id not in self._clients:
            raise BillingBackendNotFoundError(
                f"client not found: {client_id}", code=codes.CLIENT_NOT_FOUND
            )
        entries = await self.get_time_entries(
            filters=TimeEntryFilters(client_id=client_id)
        )
        total_billed = sum(entry.amount for entry in entries if entry.billable)
        total_paid = total_billed * PAID_SHARE
        return ClientBillingSummary(
            total_billed=total_billed,
            total_paid=total_paid,
            outstanding_balance=total_billed - total_paid,
            recent_time_entries=tuple(entries[-CLIENT_RECENT_ENTRY_COUNT:]),
        )

    async def get_billing_analytics(
        self, *, date_range: DateRange | None = None
    ) -> BillingAnalytics:
        entries = await self.get_time_entries(
            filters=TimeEntryFilters(date_range=date_range) if date_range else None
        )
        billable = [entry for entry in entries if entry.billable]
        total_billed = sum(
            entry.amount for entry in billable if entry.status != TimeEntryStatus.DRAFT
        )
        total_hours = sum(entry.hours for entry in entries)
        billable_hours = sum(entry.hours for entry in billable)

        revenue_by_client: dict[str, float] = {}
        client_names: dict[str, str] = {}
        revenue_by_month: dict[str, float] = defaultdict(float)
        for entry in entries:
            client_names.setdefault(entry.client_id, entry.client_name)
            revenue = entry.amount if entry.billable else 0.0
            revenue_by_client[entry.client_id] = (
                revenue_by_client.get(entry.client_id, 0.0) + revenue
            )
            if entry.billable:
                revenue_by_month[entry.date.strftime("%Y-%m")] += entry.amount

        return BillingAnalytics(
            realization_rate=(billable_hours / total_hours * 100) if total_hours else 0.0,
            utilization_rate=UTILIZATION_RATE,
            total_billed=total_billed,
            total_collected=total_billed * COLLECTED_SHARE,
            outstanding_amount=total_billed * (1 - COLLECTED_SHARE),
            average_collection_time=AVERAGE_COLLECTION_DAYS,
            profitability_by_client=tuple(
                ClientProfitability(
                    client_id=client_id,
                    client_name=client_names[client_id],
                    revenue=revenue,
                    profit=revenue * PROFIT_MARGIN_PERCENT / 100,
                    margin=PROFIT_MARGIN_PERCENT,
                )
                for client_id, revenue in revenue_by_client.items()
            ),
            revenue_by_month=tuple(
                MonthlyRevenue(month=month, revenue=revenue)
                for month, revenue in sorted(revenue_by_month.items())
            ),
        )

    def _index_of(self, entry_id: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        raise BillingBackendNotFoundError(
            f"time entry not found: {entry_id}", code=codes.TIME_ENTRY_NOT_FOUND
        )


def _matches(entry: TimeEntry, filters: TimeEntryFilters | None) -> bool:
    if filters is None:
        return True
    if filters.matter_id and entry.matter_id != filters.matter_id:
        return False
    if filters.client_id and entry.client_id != filters.client_id:
        return False
    if filters.status and entry.status != filters.status:
        return False
    if filters.date_range and not filters.date_range.contains(entry.date):
        return False
    return True
