"""Unit tests for hierarchical billing cache keys."""

from __future__ import annotations

from datetime import UTC, date, datetime

from resources.adapters.billing_backend import (
    DateRange,
    TimeEntry,
    TimeEntryFilters,
    TimeEntryStatus,
)
from services.billing.time_entries import keys

_MARCH = DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31))


def _entry(**overrides: object) -> TimeEntry:
    values: dict[str, object] = {
        "id": "te-1",
        "matter_id": "m-1",
        "client_id": "c-1",
        "description": "Research",
        "hours": 1.0,
        "rate": 300.0,
        "date": date(2024, 3, 15),
        "created_at": datetime(2024, 3, 15, tzinfo=UTC),
        "updated_at": datetime(2024, 3, 15, tzinfo=UTC),
    }
    values.update(overrides)
    return TimeEntry.model_validate(values)


def test_keys_are_rooted_under_billing_prefix() -> None:
    """Every family should be reachable from the billing root prefix."""
    root = keys.all_billing_key()
    derived = [
        keys.time_entries_key(),
        keys.time_entry_key("te-1"),
        keys.unsubmitted_key(),
        keys.recent_key(5),
        keys.matters_for_time_entry_key(),
        keys.client_billing_key("c-1"),
        keys.analytics_key(_MARCH),
    ]

    assert all(keys.is_prefix(root, key) for key in derived)
    assert keys.recent_key(5) == ("billing", "timeEntries", "recent", 5)
    assert keys.client_billing_key("c-1") == ("billing", "client", "c-1", "billing")


def test_equal_filters_produce_identical_keys() -> None:
    """Key derivation should be stable for equal inputs."""
    first = TimeEntryFilters(matter_id="m-1", date_range=_MARCH)
    second = TimeEntryFilters(
        matter_id="m-1",
        date_range=DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31)),
    )

    assert keys.time_entries_key_for(first) == keys.time_entries_key_for(second)
    assert keys.time_entries_key_for(None) == keys.time_entries_key()
    assert keys.time_entries_key_for(TimeEntryFilters()) == keys.time_entries_key()


def test_differing_filters_produce_distinct_keys() -> None:
    """Filter sets differing in any field should never share a key."""
    filter_sets = [
        TimeEntryFilters(),
        TimeEntryFilters(matter_id="m-1"),
        TimeEntryFilters(matter_id="m-2"),
        TimeEntryFilters(matter_id="m-1", status=TimeEntryStatus.DRAFT),
        TimeEntryFilters(matter_id="m-1", client_id="c-1"),
        TimeEntryFilters(client_id="c-1"),
        TimeEntryFilters(status=TimeEntryStatus.DRAFT),
        TimeEntryFilters(status=TimeEntryStatus.SUBMITTED),
        TimeEntryFilters(date_range=_MARCH),
        TimeEntryFilters(
            date_range=DateRange(start=date(2024, 3, 1), end=date(2024, 3, 30))
        ),
        TimeEntryFilters(status=TimeEntryStatus.DRAFT, date_range=_MARCH),
    ]

    derived = {keys.time_entries_key_for(filters) for filters in filter_sets}

    assert len(derived) == len(filter_sets)


def test_leading_scope_follows_precedence() -> None:
    """Matter outranks client, client outranks status, status outranks range."""
    combined = TimeEntryFilters(
        matter_id="m-1",
        client_id="c-1",
        status=TimeEntryStatus.DRAFT,
        date_range=_MARCH,
    )

    key = keys.time_entries_key_for(combined)

    assert keys.is_prefix(keys.time_entries_by_matter_key("m-1"), key)
    assert keys.time_entries_key_for(
        TimeEntryFilters(client_id="c-1", status=TimeEntryStatus.DRAFT)
    )[:4] == ("billing", "timeEntries", "client", "c-1")
    assert keys.time_entries_key_for(
        TimeEntryFilters(status=TimeEntryStatus.DRAFT, date_range=_MARCH)
    )[:4] == ("billing", "timeEntries", "status", "draft")


def test_single_entry_key_cannot_collide_with_sibling_tags() -> None:
    """An entry id equal to a family tag still yields a distinct key."""
    assert keys.time_entry_key("unsubmitted") != keys.unsubmitted_key()
    assert keys.time_entry_key("recent") != keys.recent_family_key()


def test_analytics_keys_nest_under_family() -> None:
    """Ranged analytics keys should sit under the unranged family key."""
    assert keys.analytics_key() == keys.analytics_family_key()
    assert keys.is_prefix(keys.analytics_family_key(), keys.analytics_key(_MARCH))
    assert keys.analytics_key(_MARCH) != keys.analytics_key()


def test_list_key_accepts_matches_scope_filters() -> None:
    """Scoped list keys accept only entries their filter would return."""
    entry = _entry()

    assert keys.list_key_accepts(keys.time_entries_key(), entry)
    assert keys.list_key_accepts(keys.time_entries_by_matter_key("m-1"), entry)
    assert not keys.list_key_accepts(keys.time_entries_by_matter_key("m-2"), entry)
    assert keys.list_key_accepts(keys.time_entries_by_client_key("c-1"), entry)
    assert keys.list_key_accepts(keys.unsubmitted_key(), entry)
    assert not keys.list_key_accepts(
        keys.unsubmitted_key(), _entry(status=TimeEntryStatus.SUBMITTED)
    )
    assert keys.list_key_accepts(keys.time_entries_by_date_range_key(_MARCH), entry)
    assert not keys.list_key_accepts(
        keys.time_entries_by_date_range_key(_MARCH), _entry(date=date(2024, 4, 1))
    )
    assert keys.list_key_accepts(
        keys.time_entries_key_for(
            TimeEntryFilters(matter_id="m-1", status=TimeEntryStatus.DRAFT)
        ),
        entry,
    )


def test_list_key_accepts_rejects_non_list_keys() -> None:
    """Single-entry, recent and non-time-entry keys are never list targets."""
    entry = _entry()

    assert not keys.list_key_accepts(keys.time_entry_key("te-1"), entry)
    assert not keys.list_key_accepts(keys.recent_key(5), entry)
    assert not keys.list_key_accepts(keys.matters_for_time_entry_key(), entry)
