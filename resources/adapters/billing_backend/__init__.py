"""Billing backend adapter resource exports."""

from resources.adapters.billing_backend.adapter import (
    BillingAnalytics,
    BillingBackend,
    BillingBackendDependencyError,
    BillingBackendError,
    BillingBackendNotFoundError,
    BillingBackendServerError,
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
from resources.adapters.billing_backend.component import (
    RESOURCE_COMPONENT_ID,
    build_component,
)
from resources.adapters.billing_backend.config import (
    BillingBackendSettings,
    resolve_billing_backend_settings,
)
from resources.adapters.billing_backend.memory_adapter import (
    InMemoryBillingBackend,
    MatterRecord,
)
from resources.adapters.billing_backend.rest_adapter import PostgrestBillingBackend

__all__ = [
    "apply_patch",
    "BillingAnalytics",
    "BillingBackend",
    "BillingBackendDependencyError",
    "BillingBackendError",
    "BillingBackendNotFoundError",
    "BillingBackendServerError",
    "BillingBackendSettings",
    "BillingBackendValidationError",
    "build_component",
    "ClientBillingSummary",
    "ClientProfitability",
    "DateRange",
    "InMemoryBillingBackend",
    "MatterRecord",
    "MatterSummary",
    "MonthlyRevenue",
    "PostgrestBillingBackend",
    "RESOURCE_COMPONENT_ID",
    "resolve_billing_backend_settings",
    "TimeEntry",
    "TimeEntryDraft",
    "TimeEntryFilters",
    "TimeEntryPatch",
    "TimeEntryStatus",
]
