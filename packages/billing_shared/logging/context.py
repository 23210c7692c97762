"""Structured logging context carried through ``contextvars``.

Fields bound here are attached to every log record emitted in the same
context. Each asyncio task runs in a copy of its creator's context, so a
background revalidation keeps the fields of the read that scheduled it while
later bindings in the caller do not leak into it.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Mapping

_LOG_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar(
    "billing_log_context", default={}
)


def get_context() -> dict[str, str]:
    """Return a mutable copy of the current logging context."""
    return dict(_LOG_CONTEXT.get())


def bind_context(**values: object) -> None:
    """Bind values into the current logging context.

    Values are stringified; ``None`` values are skipped.
    """
    updates = _stringify(values)
    if updates:
        _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **updates})


def clear_context(*keys: str) -> None:
    """Clear selected keys, or the whole context when no keys are given."""
    if not keys:
        _LOG_CONTEXT.set({})
        return
    _LOG_CONTEXT.set(
        {key: value for key, value in _LOG_CONTEXT.get().items() if key not in keys}
    )


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Bind values for the duration of a block, restoring the prior context."""
    token = _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **_stringify(values)})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


def _stringify(values: Mapping[str, object]) -> dict[str, str]:
    return {str(key): str(value) for key, value in values.items() if value is not None}
