"""Canonical logging field names.

Keeping names centralized prevents drift between components that log the same
facts (cache keys, mutation kinds, outcomes).
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"

# Public API invocation fields.
COMPONENT_ID = "component_id"
API_NAME = "api_name"
PUBLIC_API_INVOCATION_EVENT = "public_api_invocation"
PUBLIC_API_COMPLETION_EVENT = "public_api_completion"
SUCCESS = "success"
DURATION_MS = "duration_ms"
ERRORS = "errors"
OUTCOME = "outcome"
ERROR_CATEGORY = "error_category"

# Query cache fields.
CACHE_KEY = "cache_key"
CACHE_GENERATION = "cache_generation"
CACHE_FETCH_EVENT = "cache_fetch"
CACHE_REVALIDATION_EVENT = "cache_revalidation"
CACHE_INVALIDATION_EVENT = "cache_invalidation"
ATTEMPT = "attempt"
RETRY_DELAY_SECONDS = "retry_delay_seconds"

# Mutation fields.
MUTATION = "mutation"
MUTATION_ROLLBACK_EVENT = "mutation_rollback"
TIME_ENTRY_ID = "time_entry_id"

# Common service-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"
