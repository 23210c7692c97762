"""Declarative mapping from mutation kinds to invalidated key families."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Literal

from services.billing.time_entries import keys
from services.billing.time_entries.cache import QueryCache
from services.billing.time_entries.keys import CacheKey


class MutationKind(StrEnum):
    """Write operations the cache reconciles after settling."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"


@dataclass(frozen=True)
class MutationVariables:
    """Inputs of one settled mutation that rules may key off."""

    entry_id: str | None = None
    entry_ids: tuple[str, ...] = ()
    changed_fields: frozenset[str] = frozenset()


@dataclass(frozen=True)
class InvalidationRule:
    """One key family to reconcile after a mutation settles.

    ``invalidate`` marks entries not-fresh; ``remove`` evicts them.
    ``applies`` gates the rule on the mutation's variables.
    """

    family: str
    key: Callable[[MutationVariables], CacheKey]
    action: Literal["invalidate", "remove"] = "invalidate"
    exact: bool = False
    applies: Callable[[MutationVariables], bool] = field(
        default=lambda _variables: True, compare=False
    )


def _entry_key(variables: MutationVariables) -> CacheKey:
    if variables.entry_id is None:
        raise ValueError("entry_id is required for single-entry rules")
    return keys.time_entry_key(variables.entry_id)


_ALL_TIME_ENTRIES = InvalidationRule(
    family="timeEntries", key=lambda _variables: keys.time_entries_key()
)
_UNSUBMITTED = InvalidationRule(
    family="unsubmitted", key=lambda _variables: keys.unsubmitted_key()
)
_RECENT = InvalidationRule(
    family="recent", key=lambda _variables: keys.recent_family_key()
)
_ANALYTICS = InvalidationRule(
    family="analytics", key=lambda _variables: keys.analytics_family_key()
)

INVALIDATION_POLICY: Mapping[MutationKind, tuple[InvalidationRule, ...]] = (
    MappingProxyType(
        {
            MutationKind.CREATE: (
                _ALL_TIME_ENTRIES,
                _UNSUBMITTED,
                _RECENT,
                _ANALYTICS,
            ),
            MutationKind.UPDATE: (
                InvalidationRule(family="entry", key=_entry_key, exact=True),
                _ALL_TIME_ENTRIES,
                InvalidationRule(
                    family="unsubmitted",
                    key=lambda _variables: keys.unsubmitted_key(),
                    applies=lambda variables: "status" in variables.changed_fields,
                ),
                _ANALYTICS,
            ),
            MutationKind.DELETE: (
                _ALL_TIME_ENTRIES,
                _UNSUBMITTED,
                _ANALYTICS,
                InvalidationRule(
                    family="entry", key=_entry_key, action="remove", exact=True
                ),
            ),
            MutationKind.SUBMIT: (
                _ALL_TIME_ENTRIES,
                _UNSUBMITTED,
                _ANALYTICS,
            ),
        }
    )
)


def apply_invalidation_policy(
    cache: QueryCache,
    kind: MutationKind,
    variables: MutationVariables,
) -> list[CacheKey]:
    """Apply every rule for ``kind`` and return the keys acted upon."""
    acted: list[CacheKey] = []
    for rule in INVALIDATION_POLICY[kind]:
        if not rule.applies(variables):
            continue
        key = rule.key(variables)
        if rule.action == "remove":
            cache.remove(key, exact=rule.exact)
        else:
            cache.invalidate(key, exact=rule.exact)
        acted.append(key)
    return acted


def affected_prefixes(
    kind: MutationKind, variables: MutationVariables
) -> list[tuple[CacheKey, bool]]:
    """Return ``(key, exact)`` pairs the rules for ``kind`` will act upon."""
    return [
        (rule.key(variables), rule.exact)
        for rule in INVALIDATION_POLICY[kind]
        if rule.applies(variables)
    ]
