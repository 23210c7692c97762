"""Exception normalization utilities for shared error contracts."""

from __future__ import annotations

from . import codes
from .factories import (
    dependency_error,
    internal_error,
    not_found_error,
    policy_error,
    validation_error,
)
from .types import ErrorCategory, ErrorDetail


def exception_to_error(exc: BaseException) -> ErrorDetail:
    """Normalize a Python exception into a shared ``ErrorDetail``.

    Exceptions that already classify themselves (a ``category`` attribute
    holding an ``ErrorCategory`` plus an optional ``retryable`` flag and
    ``code``) are trusted as-is. Everything else falls back to a conservative
    builtin-type mapping where only timeouts and connection failures are
    retryable.
    """
    metadata = {"exception_type": type(exc).__name__}

    category = getattr(exc, "category", None)
    if isinstance(category, ErrorCategory):
        return ErrorDetail(
            code=str(getattr(exc, "code", "") or codes.UNEXPECTED_EXCEPTION),
            message=str(exc) or type(exc).__name__,
            category=category,
            retryable=bool(getattr(exc, "retryable", False)),
            metadata=metadata,
        )

    if isinstance(exc, (ValueError, TypeError)):
        return validation_error(str(exc), code=codes.INVALID_ARGUMENT, metadata=metadata)

    if isinstance(exc, KeyError):
        return not_found_error(str(exc), metadata=metadata)

    if isinstance(exc, PermissionError):
        return policy_error(str(exc), metadata=metadata)

    if isinstance(exc, TimeoutError):
        return dependency_error(
            str(exc) or "dependency timeout",
            code=codes.DEPENDENCY_TIMEOUT,
            metadata=metadata,
        )

    if isinstance(exc, ConnectionError):
        return dependency_error(
            str(exc) or "dependency unavailable",
            code=codes.DEPENDENCY_UNAVAILABLE,
            metadata=metadata,
        )

    return internal_error(
        str(exc) or "unexpected exception",
        code=codes.UNEXPECTED_EXCEPTION,
        metadata=metadata,
    )
