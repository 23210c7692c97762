"""Hierarchical cache keys for billing queries.

Every key is a tuple rooted at ``("billing",)``. A key that is a prefix of
another names the broader scope, so invalidating
``("billing", "timeEntries")`` reaches every time entry list and single entry.
"""

from __future__ import annotations

from resources.adapters.billing_backend.adapter import (
    DateRange,
    TimeEntry,
    TimeEntryFilters,
    TimeEntryStatus,
)

CacheKey = tuple[str | int, ...]

ROOT = "billing"
TIME_ENTRIES = "timeEntries"
ENTRY = "entry"
MATTER = "matter"
CLIENT = "client"
STATUS = "status"
DATE_RANGE = "dateRange"
UNSUBMITTED = "unsubmitted"
RECENT = "recent"
MATTERS = "matters"
FOR_TIME_ENTRY = "forTimeEntry"
BILLING = "billing"
ANALYTICS = "analytics"


def all_billing_key() -> CacheKey:
    return (ROOT,)


def time_entries_key() -> CacheKey:
    return (ROOT, TIME_ENTRIES)


def time_entry_key(entry_id: str) -> CacheKey:
    return (*time_entries_key(), ENTRY, entry_id)


def time_entries_by_matter_key(matter_id: str) -> CacheKey:
    return (*time_entries_key(), MATTER, matter_id)


def time_entries_by_client_key(client_id: str) -> CacheKey:
    return (*time_entries_key(), CLIENT, client_id)


def time_entries_by_status_key(status: TimeEntryStatus | str) -> CacheKey:
    return (*time_entries_key(), STATUS, str(status))


def time_entries_by_date_range_key(date_range: DateRange) -> CacheKey:
    return (
        *time_entries_key(),
        DATE_RANGE,
        date_range.start.isoformat(),
        date_range.end.isoformat(),
    )


def unsubmitted_key() -> CacheKey:
    return (*time_entries_key(), UNSUBMITTED)


def recent_family_key() -> CacheKey:
    return (*time_entries_key(), RECENT)


def recent_key(limit: int) -> CacheKey:
    return (*recent_family_key(), limit)


def matters_key() -> CacheKey:
    return (ROOT, MATTERS)


def matters_for_time_entry_key() -> CacheKey:
    return (*matters_key(), FOR_TIME_ENTRY)


def client_billing_key(client_id: str) -> CacheKey:
    return (ROOT, CLIENT, client_id, BILLING)


def analytics_family_key() -> CacheKey:
    return (ROOT, ANALYTICS)


def analytics_key(date_range: DateRange | None = None) -> CacheKey:
    if date_range is None:
        return analytics_family_key()
    return (
        *analytics_family_key(),
        date_range.start.isoformat(),
        date_range.end.isoformat(),
    )


def time_entries_key_for(filters: TimeEntryFilters | None) -> CacheKey:
    """Return the list key for ``filters``.

    The leading scope is chosen by precedence: matter, client, status, date
    range. Any further filters are appended in that same order so combined
    filters stay under their leading scope without colliding with it.
    """
    if filters is None:
        return time_entries_key()
    segments: list[str | int] = []
    if filters.matter_id:
        segments += [MATTER, filters.matter_id]
    if filters.client_id:
        segments += [CLIENT, filters.client_id]
    if filters.status:
        segments += [STATUS, str(filters.status)]
    if filters.date_range:
        segments += [
            DATE_RANGE,
            filters.date_range.start.isoformat(),
            filters.date_range.end.isoformat(),
        ]
    return (*time_entries_key(), *segments)


def is_prefix(prefix: CacheKey, key: CacheKey) -> bool:
    """Return whether ``prefix`` names ``key`` or a scope containing it."""
    return key[: len(prefix)] == prefix


_SCOPE_ARITY = {MATTER: 1, CLIENT: 1, STATUS: 1, DATE_RANGE: 2}


def list_key_accepts(key: CacheKey, entry: TimeEntry) -> bool:
    """Return whether the cached list under ``key`` should contain ``entry``.

    Only time entry list keys answer ``True``; single-entry keys, recent lists
    (ordered by creation) and keys outside ``timeEntries`` answer ``False``.
    """
    base = time_entries_key()
    if not is_prefix(base, key):
        return False
    scope = list(key[len(base):])
    if scope == [UNSUBMITTED]:
        return entry.status == TimeEntryStatus.DRAFT
    while scope:
        tag = scope.pop(0)
        arity = _SCOPE_ARITY.get(str(tag))
        if arity is None or len(scope) < arity:
            return False
        args, scope = scope[:arity], scope[arity:]
        if not _scope_matches(str(tag), args, entry):
            return False
    return True


def _scope_matches(tag: str, args: list[str | int], entry: TimeEntry) -> bool:
    if tag == MATTER:
        return entry.matter_id == args[0]
    if tag == CLIENT:
        return entry.client_id == args[0]
    if tag == STATUS:
        return entry.status == args[0]
    return str(args[0]) <= entry.date.isoformat() <= str(args[1])


def format_key(key: CacheKey) -> str:
    """Render ``key`` for log records."""
    return "/".join(str(segment) for segment in key)
