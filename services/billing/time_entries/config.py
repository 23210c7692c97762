"""Pydantic settings for the time entry cache service."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.billing_shared.config import BillingSettings, resolve_component_settings
from services.billing.time_entries.component import SERVICE_COMPONENT_ID

BackoffStrategy = Literal["none", "fixed", "exponential"]

DEFAULT_LIST_POLICY: dict[str, Any] = {
    "stale_seconds": 300.0,
    "gc_seconds": 600.0,
    "refetch_on_focus": True,
    "refetch_on_reconnect": True,
    "max_retries": 3,
    "backoff_strategy": "exponential",
    "backoff_base_seconds": 1.0,
    "backoff_max_seconds": 30.0,
}
DEFAULT_MATTERS_POLICY: dict[str, Any] = {
    **DEFAULT_LIST_POLICY,
    "stale_seconds": 600.0,
    "gc_seconds": 1200.0,
    "refetch_on_focus": False,
    "max_retries": 2,
    "backoff_strategy": "fixed",
}
DEFAULT_ANALYTICS_POLICY: dict[str, Any] = {
    **DEFAULT_LIST_POLICY,
    "stale_seconds": 900.0,
    "gc_seconds": 1800.0,
    "refetch_on_focus": False,
}


class QueryPolicySettings(BaseModel):
    """Staleness windows, refetch triggers and retry behavior for one resource."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    stale_seconds: float = Field(ge=0)
    gc_seconds: float = Field(ge=0)
    refetch_on_focus: bool = True
    refetch_on_reconnect: bool = True
    max_retries: int = Field(default=3, ge=0)
    backoff_strategy: BackoffStrategy = "exponential"
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=30.0, ge=0)

    @model_validator(mode="after")
    def _check_windows(self) -> QueryPolicySettings:
        if self.gc_seconds < self.stale_seconds:
            raise ValueError("gc_seconds must be >= stale_seconds")
        return self


class TimeEntryCacheSettings(BaseModel):
    """Resolved per-resource query policies for the time entry cache."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    time_entries: QueryPolicySettings = QueryPolicySettings(**DEFAULT_LIST_POLICY)
    unsubmitted: QueryPolicySettings = QueryPolicySettings(**DEFAULT_LIST_POLICY)
    recent: QueryPolicySettings = QueryPolicySettings(**DEFAULT_LIST_POLICY)
    matters: QueryPolicySettings = QueryPolicySettings(**DEFAULT_MATTERS_POLICY)
    client_billing: QueryPolicySettings = QueryPolicySettings(**DEFAULT_LIST_POLICY)
    analytics: QueryPolicySettings = QueryPolicySettings(**DEFAULT_ANALYTICS_POLICY)
    temporary_id_prefix: str = Field(default="temp-", min_length=1)


class _TimeEntryCacheSettingsInput(BaseModel):
    """Raw config shape where each resource overrides only the keys it names."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    time_entries: dict[str, Any] = Field(default_factory=dict)
    unsubmitted: dict[str, Any] = Field(default_factory=dict)
    recent: dict[str, Any] = Field(default_factory=dict)
    matters: dict[str, Any] = Field(default_factory=dict)
    client_billing: dict[str, Any] = Field(default_factory=dict)
    analytics: dict[str, Any] = Field(default_factory=dict)
    temporary_id_prefix: str = "temp-"


def resolve_time_entry_cache_settings(
    settings: BillingSettings,
) -> TimeEntryCacheSettings:
    """Resolve service settings from ``components.service.time_entries``."""
    raw = resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=_TimeEntryCacheSettingsInput,
    )
    return TimeEntryCacheSettings(
        time_entries=_resolve_policy(raw.time_entries, DEFAULT_LIST_POLICY),
        unsubmitted=_resolve_policy(raw.unsubmitted, DEFAULT_LIST_POLICY),
        recent=_resolve_policy(raw.recent, DEFAULT_LIST_POLICY),
        matters=_resolve_policy(raw.matters, DEFAULT_MATTERS_POLICY),
        client_billing=_resolve_policy(raw.client_billing, DEFAULT_LIST_POLICY),
        analytics=_resolve_policy(raw.analytics, DEFAULT_ANALYTICS_POLICY),
        temporary_id_prefix=raw.temporary_id_prefix,
    )


def _resolve_policy(
    overrides: dict[str, Any], defaults: dict[str, Any]
) -> QueryPolicySettings:
    """Overlay configured keys on one resource's built-in policy."""
    return QueryPolicySettings(**{**defaults, **overrides})
