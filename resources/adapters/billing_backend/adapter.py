"""Transport-agnostic billing backend contracts and DTOs.

The billing backend is the system of record for time entries, matters and
billing aggregates. Query caches hold immutable copies of these DTOs and talk
to the backend only through ``BillingBackend``.
"""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import ClassVar, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.billing_shared.errors import ErrorCategory, codes


class BillingBackendError(Exception):
    """Base exception for billing backend failures.

    Subclasses classify themselves through ``category`` and ``retryable`` so
    callers (and ``exception_to_error``) never need to inspect messages.
    """

    category: ClassVar[ErrorCategory] = ErrorCategory.INTERNAL
    default_code: ClassVar[str] = codes.INTERNAL_ERROR
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.status_code = status_code


class BillingBackendDependencyError(BillingBackendError):
    """Network/transport failure: the backend could not be reached."""

    category = ErrorCategory.DEPENDENCY
    default_code = codes.DEPENDENCY_UNAVAILABLE
    retryable = True


class BillingBackendServerError(BillingBackendError):
    """The backend reached but reported a server-side failure (5xx-equivalent)."""

    category = ErrorCategory.DEPENDENCY
    default_code = codes.BACKEND_SERVER_ERROR
    retryable = True


class BillingBackendValidationError(BillingBackendError):
    """The backend rejected a malformed request (4xx-equivalent)."""

    category = ErrorCategory.VALIDATION
    default_code = codes.VALIDATION_ERROR


class BillingBackendNotFoundError(BillingBackendError):
    """The referenced time entry, matter or client does not exist."""

    category = ErrorCategory.NOT_FOUND
    default_code = codes.NOT_FOUND


class TimeEntryStatus(StrEnum):
    """Submission lifecycle of one time entry; ``draft`` means unsubmitted."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    BILLED = "billed"
    PAID = "paid"


class DateRange(BaseModel):
    """Inclusive calendar date range."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start: dt.date
    end: dt.date

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.end < self.start:
            raise ValueError("date range end must not precede start")
        return self

    def contains(self, value: dt.date) -> bool:
        """Return whether ``value`` falls inside the range, bounds included."""
        return self.start <= value <= self.end


class TimeEntryFilters(BaseModel):
    """Conjunctive filters for time entry listing."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    matter_id: str | None = None
    client_id: str | None = None
    status: TimeEntryStatus | None = None
    date_range: DateRange | None = None


class TimeEntry(BaseModel):
    """One billable unit of work as recorded by the backend."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    matter_id: str
    matter_title: str = ""
    client_id: str = ""
    client_name: str = ""
    description: str
    hours: float = Field(gt=0)
    rate: float = Field(ge=0)
    amount: float = Field(default=0.0, ge=0)
    date: dt.date
    status: TimeEntryStatus = TimeEntryStatus.DRAFT
    billable: bool = True
    user_id: str | None = None
    activity_type: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    ai_suggested: bool = False
    tags: tuple[str, ...] = ()
    created_at: dt.datetime
    updated_at: dt.datetime


class TimeEntryDraft(BaseModel):
    """Create payload; the backend assigns identifier and timestamps.

    Matter-derived fields left empty are filled in from the matter record.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    matter_id: str = Field(min_length=1)
    matter_title: str = ""
    client_id: str = ""
    client_name: str = ""
    description: str
    hours: float = Field(gt=0)
    rate: float | None = Field(default=None, ge=0)
    amount: float | None = Field(default=None, ge=0)
    date: dt.date = Field(default_factory=dt.date.today)
    status: TimeEntryStatus = TimeEntryStatus.DRAFT
    billable: bool = True
    user_id: str | None = None
    activity_type: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    ai_suggested: bool = False
    tags: tuple[str, ...] = ()


_CLEARABLE_PATCH_FIELDS = frozenset({"activity_type", "start_time", "end_time"})


class TimeEntryPatch(BaseModel):
    """Partial update payload; only explicitly set fields are applied.

    Fields that are required on ``TimeEntry`` may be omitted but not set to
    ``None``; only the optional timing and activity fields can be cleared.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    matter_id: str | None = None
    matter_title: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    description: str | None = None
    hours: float | None = Field(default=None, gt=0)
    rate: float | None = Field(default=None, ge=0)
    amount: float | None = Field(default=None, ge=0)
    date: dt.date | None = None
    status: TimeEntryStatus | None = None
    billable: bool | None = None
    activity_type: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    tags: tuple[str, ...] | None = None

    @model_validator(mode="before")
    @classmethod
    def _reject_null_required_fields(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        nulled = sorted(
            name
            for name, item in value.items()
            if item is None and name not in _CLEARABLE_PATCH_FIELDS
        )
        if nulled:
            raise ValueError(f"fields cannot be null: {', '.join(nulled)}")
        return value

    def changes(self) -> dict[str, object]:
        """Return explicitly set fields as a plain mapping."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class MatterSummary(BaseModel):
    """Matter projection used by the time entry form."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    title: str
    client_name: str
    practice_area: str = ""
    hourly_rate: float | None = None
    status: str


class ClientBillingSummary(BaseModel):
    """Billed/paid/outstanding totals for one client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_billed: float
    total_paid: float
    outstanding_balance: float
    recent_time_entries: tuple[TimeEntry, ...] = ()


class ClientProfitability(BaseModel):
    """Revenue and profit attributed to one client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_id: str
    client_name: str
    revenue: float
    profit: float
    margin: float


class MonthlyRevenue(BaseModel):
    """Billable revenue recorded in one calendar month (``YYYY-MM``)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    month: str
    revenue: float


class BillingAnalytics(BaseModel):
    """Aggregate billing analytics over an optional date range."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    realization_rate: float
    utilization_rate: float
    total_billed: float
    total_collected: float
    outstanding_amount: float
    average_collection_time: float
    profitability_by_client: tuple[ClientProfitability, ...] = ()
    revenue_by_month: tuple[MonthlyRevenue, ...] = ()


class BillingBackend(Protocol):
    """Protocol for the billing system of record."""

    async def get_time_entries(
        self, *, filters: TimeEntryFilters | None = None
    ) -> list[TimeEntry]:
        """List time entries matching all supplied filters."""

    async def get_time_entry(self, *, entry_id: str) -> TimeEntry:
        """Read one time entry by identifier."""

    async def create_time_entry(self, *, draft: TimeEntryDraft) -> TimeEntry:
        """Create one time entry; the backend assigns id and timestamps."""

    async def update_time_entry(
        self, *, entry_id: str, patch: TimeEntryPatch
    ) -> TimeEntry:
        """Apply a partial update and return the stored entry."""

    async def delete_time_entry(self, *, entry_id: str) -> None:
        """Delete one time entry."""

    async def submit_time_entries(self, *, entry_ids: Sequence[str]) -> None:
        """Mark a batch of time entries as submitted."""

    async def get_unsubmitted_entries(self) -> list[TimeEntry]:
        """List entries that have not been submitted yet."""

    async def get_recent_time_entries(self, *, limit: int) -> list[TimeEntry]:
        """List the most recently created entries, newest first."""

    async def get_matters_for_time_entry(self) -> list[MatterSummary]:
        """List matters selectable on the time entry form."""

    async def get_client_billing_info(self, *, client_id: str) -> ClientBillingSummary:
        """Return billing totals for one client."""

    async def get_billing_analytics(
        self, *, date_range: DateRange | None = None
    ) -> BillingAnalytics:
        """Return aggregate analytics, optionally limited to a date range."""


def apply_patch(entry: TimeEntry, patch: TimeEntryPatch) -> dict[str, object]:
    """Merge ``patch`` over ``entry`` and return the combined field mapping.

    ``amount`` is recomputed from hours and rate when either changes and the
    patch does not set ``amount`` itself.
    """
    merged = entry.model_dump()
    changes = patch.changes()
    merged.update(changes)
    if ("hours" in changes or "rate" in changes) and "amount" not in changes:
        merged["amount"] = merged["hours"] * merged["rate"]
    return merged
