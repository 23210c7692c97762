"""Tests for shared exception normalization."""

from __future__ import annotations

import pytest

from packages.billing_shared.errors import ErrorCategory, codes, exception_to_error
from resources.adapters.billing_backend.adapter import (
    BillingBackendDependencyError,
    BillingBackendNotFoundError,
    BillingBackendServerError,
    BillingBackendValidationError,
)


@pytest.mark.parametrize(
    ("exc", "category", "code", "retryable"),
    [
        (
            BillingBackendDependencyError("connection refused"),
            ErrorCategory.DEPENDENCY,
            codes.DEPENDENCY_UNAVAILABLE,
            True,
        ),
        (
            BillingBackendServerError("HTTP 503", status_code=503),
            ErrorCategory.DEPENDENCY,
            codes.BACKEND_SERVER_ERROR,
            True,
        ),
        (
            BillingBackendValidationError(
                "invalid matter id", code=codes.MATTER_NOT_FOUND
            ),
            ErrorCategory.VALIDATION,
            codes.MATTER_NOT_FOUND,
            False,
        ),
        (
            BillingBackendNotFoundError("gone"),
            ErrorCategory.NOT_FOUND,
            codes.NOT_FOUND,
            False,
        ),
    ],
)
def test_self_classifying_exceptions_are_trusted(
    exc: Exception, category: ErrorCategory, code: str, retryable: bool
) -> None:
    """Backend errors carry their own category, code and retry flag."""
    detail = exception_to_error(exc)

    assert detail.category == category
    assert detail.code == code
    assert detail.retryable is retryable
    assert detail.message == str(exc)
    assert detail.metadata == {"exception_type": type(exc).__name__}


@pytest.mark.parametrize(
    ("exc", "category", "retryable"),
    [
        (ValueError("limit must be >= 1"), ErrorCategory.VALIDATION, False),
        (KeyError("te-1"), ErrorCategory.NOT_FOUND, False),
        (PermissionError("denied"), ErrorCategory.POLICY, False),
        (TimeoutError(), ErrorCategory.DEPENDENCY, True),
        (ConnectionResetError("reset"), ErrorCategory.DEPENDENCY, True),
        (RuntimeError("boom"), ErrorCategory.INTERNAL, False),
    ],
)
def test_builtin_exceptions_map_conservatively(
    exc: Exception, category: ErrorCategory, retryable: bool
) -> None:
    """Only timeouts and connection failures are retryable among builtins."""
    detail = exception_to_error(exc)

    assert detail.category == category
    assert detail.retryable is retryable


def test_timeout_without_message_gets_default_text() -> None:
    """Empty timeout messages fall back to a descriptive default."""
    detail = exception_to_error(TimeoutError())

    assert detail.message == "dependency timeout"
    assert detail.code == codes.DEPENDENCY_TIMEOUT


def test_client_error_categories() -> None:
    """Rejected-request categories are client errors; dependency is not."""
    assert ErrorCategory.VALIDATION.is_client_error
    assert ErrorCategory.NOT_FOUND.is_client_error
    assert not ErrorCategory.DEPENDENCY.is_client_error
    assert not ErrorCategory.INTERNAL.is_client_error
