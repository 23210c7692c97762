"""Invocation logging for public component methods.

``public_api_logged`` wraps one method so every call emits an invocation event
and a completion event carrying duration, outcome and, on failure, the
normalized error category. Coroutine functions are wrapped with an async
wrapper so timing covers the awaited work rather than coroutine creation.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from functools import wraps
from time import perf_counter
from typing import Any, Callable, Mapping, Protocol, Sequence

from packages.billing_shared.errors import exception_to_error

from . import fields
from .context import log_context


@dataclass(frozen=True)
class InvocationContext:
    """Structured metadata describing one public API invocation."""

    component_id: str
    api_name: str
    references: Mapping[str, str]


@dataclass(frozen=True)
class CompletionContext:
    """Structured metadata describing one completed public API invocation."""

    invocation: InvocationContext
    success: bool
    duration_ms: float
    errors: list[str]
    error_categories: list[str]


class PublicApiInstrumentationConcern(Protocol):
    """Hook contract for one public API instrumentation concern."""

    def on_invocation(self, context: InvocationContext) -> None:
        """Handle invocation-start event for one method call."""

    def on_completion(self, context: CompletionContext) -> None:
        """Handle completion event for one method call."""


class PublicApiLoggingConcern:
    """Logging concern emitting structured invocation/completion records."""

    def __init__(self, *, logger: Any) -> None:
        self._logger = logger

    def on_invocation(self, context: InvocationContext) -> None:
        with log_context(_invocation_log_context(context)):
            self._logger.debug("Public API invocation")

    def on_completion(self, context: CompletionContext) -> None:
        payload = _invocation_log_context(context.invocation)
        payload.update(
            {
                fields.EVENT: fields.PUBLIC_API_COMPLETION_EVENT,
                fields.SUCCESS: context.success,
                fields.DURATION_MS: context.duration_ms,
                fields.OUTCOME: "success" if context.success else "failure",
            }
        )
        if not context.success:
            payload[fields.ERRORS] = "; ".join(context.errors)
            payload[fields.ERROR_CATEGORY] = ",".join(context.error_categories)
        with log_context(payload):
            if context.success:
                self._logger.debug("Public API completion")
            else:
                self._logger.warning("Public API completion")


def public_api_logged(
    *,
    logger: Any,
    component_id: str,
    api_name: str | None = None,
    id_fields: tuple[str, ...] = (),
    concerns: Sequence[PublicApiInstrumentationConcern] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorate one public method with logging plus optional extra concerns.

    ``id_fields`` names keyword arguments whose values are attached to both
    events as references (for example ``entry_id``).
    """
    resolved = (PublicApiLoggingConcern(logger=logger), *concerns)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        method_name = api_name or func.__name__

        def _start(kwargs: Mapping[str, Any]) -> InvocationContext:
            invocation = InvocationContext(
                component_id=component_id,
                api_name=method_name,
                references={
                    name: str(kwargs[name])
                    for name in id_fields
                    if kwargs.get(name) not in (None, "")
                },
            )
            _emit(resolved, "on_invocation", invocation, logger=logger)
            return invocation

        def _finish(
            invocation: InvocationContext,
            started: float,
            exc: BaseException | None,
        ) -> None:
            errors: list[str] = []
            categories: list[str] = []
            if exc is not None:
                errors.append(f"{type(exc).__name__}: {exc}")
                categories.append(exception_to_error(exc).category.value)
            completion = CompletionContext(
                invocation=invocation,
                success=exc is None,
                duration_ms=round((perf_counter() - started) * 1000.0, 3),
                errors=errors,
                error_categories=categories,
            )
            _emit(resolved, "on_completion", completion, logger=logger)

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                invocation = _start(kwargs)
                started = perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    _finish(invocation, started, exc)
                    raise
                _finish(invocation, started, None)
                return result

            return async_wrapper

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            invocation = _start(kwargs)
            started = perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _finish(invocation, started, exc)
                raise
            _finish(invocation, started, None)
            return result

        return wrapper

    return decorator


def _invocation_log_context(context: InvocationContext) -> dict[str, object]:
    return {
        fields.EVENT: fields.PUBLIC_API_INVOCATION_EVENT,
        fields.COMPONENT_ID: context.component_id,
        fields.API_NAME: context.api_name,
        **context.references,
    }


def _emit(
    concerns: Sequence[PublicApiInstrumentationConcern],
    hook: str,
    context: object,
    *,
    logger: Any,
) -> None:
    """Dispatch one event to every concern, isolating concern failures."""
    for concern in concerns:
        try:
            getattr(concern, hook)(context)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Public API instrumentation concern %s failed in %s: %s",
                type(concern).__name__,
                hook,
                exc,
            )
