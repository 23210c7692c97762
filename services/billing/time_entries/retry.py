"""Bounded retry with backoff for query executors."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from packages.billing_shared.errors import exception_to_error
from packages.billing_shared.logging import get_logger, log_context
from packages.billing_shared.logging import fields as log_fields
from services.billing.time_entries.config import BackoffStrategy, QueryPolicySettings

_LOGGER = get_logger(__name__)

ResultT = TypeVar("ResultT")


def is_retryable_error(exc: BaseException) -> bool:
    """Return whether ``exc`` classifies itself, or normalizes, as transient."""
    return exception_to_error(exc).retryable


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff configuration for one query resource."""

    max_retries: int = 0
    backoff_strategy: BackoffStrategy = "none"
    backoff_base_seconds: float = 0.0
    backoff_max_seconds: float = 0.0
    is_retryable: Callable[[BaseException], bool] = field(
        default=is_retryable_error, compare=False
    )

    @staticmethod
    def from_settings(settings: QueryPolicySettings) -> RetryPolicy:
        """Build a retry policy from one resource's query settings."""
        return RetryPolicy(
            max_retries=settings.max_retries,
            backoff_strategy=settings.backoff_strategy,
            backoff_base_seconds=settings.backoff_base_seconds,
            backoff_max_seconds=settings.backoff_max_seconds,
        )

    def delay_seconds(self, retry_index: int) -> float:
        """Return the wait before retry ``retry_index`` (zero-based)."""
        if retry_index < 0:
            raise ValueError("retry_index must be >= 0.")
        if self.backoff_strategy == "none":
            return 0.0
        if self.backoff_strategy == "fixed":
            return self.backoff_base_seconds
        if self.backoff_strategy == "exponential":
            return min(
                self.backoff_base_seconds * (2**retry_index),
                self.backoff_max_seconds,
            )
        raise ValueError("Unsupported backoff_strategy.")


NO_RETRY = RetryPolicy()


async def run_with_retry(
    operation: Callable[[], Awaitable[ResultT]],
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> ResultT:
    """Await ``operation``, retrying transient failures per ``policy``.

    Non-retryable failures and the failure after the last retry propagate
    unchanged.
    """
    retry_index = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if retry_index >= policy.max_retries or not policy.is_retryable(exc):
                raise
            delay = policy.delay_seconds(retry_index)
            with log_context(
                {
                    log_fields.ATTEMPT: retry_index + 1,
                    log_fields.RETRY_DELAY_SECONDS: delay,
                }
            ):
                _LOGGER.debug("Retrying after transient failure: %s", exc)
            retry_index += 1
            await sleep(delay)
