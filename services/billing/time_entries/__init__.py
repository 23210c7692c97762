"""Time entry cache service package exports."""

from services.billing.time_entries import keys
from services.billing.time_entries.cache import (
    CachePolicy,
    EntrySnapshot,
    QueryCache,
    QueryState,
)
from services.billing.time_entries.component import SERVICE_COMPONENT_ID
from services.billing.time_entries.config import (
    QueryPolicySettings,
    TimeEntryCacheSettings,
    resolve_time_entry_cache_settings,
)
from services.billing.time_entries.implementation import DefaultTimeEntryCacheService
from services.billing.time_entries.invalidation import (
    INVALIDATION_POLICY,
    InvalidationRule,
    MutationKind,
    MutationVariables,
    apply_invalidation_policy,
)
from services.billing.time_entries.keys import CacheKey
from services.billing.time_entries.mutations import MutationContext, TimeEntryMutations
from services.billing.time_entries.queries import TimeEntryQueries
from services.billing.time_entries.retry import NO_RETRY, RetryPolicy, run_with_retry
from services.billing.time_entries.service import (
    TimeEntryCacheService,
    build_time_entry_cache_service,
)

__all__ = [
    "apply_invalidation_policy",
    "build_time_entry_cache_service",
    "CacheKey",
    "CachePolicy",
    "DefaultTimeEntryCacheService",
    "EntrySnapshot",
    "INVALIDATION_POLICY",
    "InvalidationRule",
    "keys",
    "MutationContext",
    "MutationKind",
    "MutationVariables",
    "NO_RETRY",
    "QueryCache",
    "QueryPolicySettings",
    "QueryState",
    "resolve_time_entry_cache_settings",
    "RetryPolicy",
    "run_with_retry",
    "SERVICE_COMPONENT_ID",
    "TimeEntryCacheService",
    "TimeEntryCacheSettings",
    "TimeEntryMutations",
    "TimeEntryQueries",
]
