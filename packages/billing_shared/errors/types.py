"""Canonical error types shared by billing components.

The taxonomy is transport-agnostic: backend adapters, the query cache and the
logging layer all classify failures with the same categories so retry and
reporting decisions stay consistent across boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


class ErrorCategory(str, Enum):
    """High-level error categories shared across component boundaries."""

    UNSPECIFIED = "unspecified"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    POLICY = "policy"
    DEPENDENCY = "dependency"
    INTERNAL = "internal"

    @property
    def is_client_error(self) -> bool:
        """Return whether the category describes a malformed/rejected request."""
        return self in _CLIENT_CATEGORIES


_CLIENT_CATEGORIES = frozenset(
    {
        ErrorCategory.VALIDATION,
        ErrorCategory.CONFLICT,
        ErrorCategory.NOT_FOUND,
        ErrorCategory.POLICY,
    }
)


@dataclass(frozen=True)
class ErrorDetail:
    """Structured description of one failure, used for logs and retry checks."""

    code: str
    message: str
    category: ErrorCategory
    retryable: bool = False
    metadata: Mapping[str, str] = field(default_factory=dict)
