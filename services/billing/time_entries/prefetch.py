"""Best-effort cache warming and bulk invalidation helpers."""

from __future__ import annotations

from packages.billing_shared.logging import get_logger
from services.billing.time_entries import keys
from services.billing.time_entries.cache import QueryCache
from services.billing.time_entries.queries import TimeEntryQueries

_LOGGER = get_logger(__name__)


async def prefetch_matters(*, cache: QueryCache, queries: TimeEntryQueries) -> None:
    """Warm the matters-for-entry-form key; failures are logged and dropped."""
    key = keys.matters_for_time_entry_key()
    if cache.is_fresh(key):
        return
    try:
        await cache.fetch(key, queries.load_matters, policy=queries.matters_policy)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("Matter prefetch failed: %s", exc)


def invalidate_all(*, cache: QueryCache) -> int:
    """Evict every billing key, cancelling background work first."""
    root = keys.all_billing_key()
    cache.cancel_revalidations(root)
    removed = cache.remove(root)
    _LOGGER.debug("Evicted %d billing cache entries", removed)
    return removed
