"""Tests for structured logging context and formatters."""

from __future__ import annotations

import asyncio
import io
import json
import logging

import pytest

from packages.billing_shared.config import LoggingSettings
from packages.billing_shared.logging import (
    bind_context,
    clear_context,
    configure_logging,
    configure_logging_from_settings,
    get_context,
    get_logger,
    log_context,
)
from packages.billing_shared.logging.config import ContextFilter


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    level = root.level
    clear_context()
    yield
    for handler in list(root.handlers):
        if any(isinstance(item, ContextFilter) for item in handler.filters):
            root.removeHandler(handler)
    root.setLevel(level)
    clear_context()


def test_log_context_restores_previous_values() -> None:
    """Nested blocks should layer fields and unwind on exit."""
    bind_context(service="billing", skipped=None)

    with log_context({"cache_key": "billing/timeEntries"}):
        with log_context({"cache_key": "billing/recent/5", "attempt": 2}):
            assert get_context() == {
                "service": "billing",
                "cache_key": "billing/recent/5",
                "attempt": "2",
            }
        assert get_context()["cache_key"] == "billing/timeEntries"

    assert get_context() == {"service": "billing"}


def test_clear_context_drops_selected_keys() -> None:
    """Selective clearing should keep unrelated fields."""
    bind_context(service="billing", mutation="create")
    clear_context("mutation")
    assert get_context() == {"service": "billing"}


def test_tasks_inherit_context_without_leaking_back() -> None:
    """A spawned task keeps its creator's fields; its bindings stay local."""

    async def child() -> dict[str, str]:
        bind_context(attempt=1)
        return get_context()

    async def run() -> tuple[dict[str, str], dict[str, str]]:
        with log_context({"cache_key": "billing/matters"}):
            seen = await asyncio.create_task(child())
            return seen, get_context()

    seen, parent = asyncio.run(run())

    assert seen == {"cache_key": "billing/matters", "attempt": "1"}
    assert parent == {"cache_key": "billing/matters"}


def test_json_output_carries_structured_context() -> None:
    """JSON records should include core fields plus bound context."""
    configure_logging_from_settings(
        LoggingSettings(level="DEBUG", service="billing", environment="test")
    )
    stream = io.StringIO()
    handler = logging.getLogger().handlers[0]
    handler.setStream(stream)

    with log_context({"mutation": "delete"}):
        get_logger("billing.test").info("rolled back %s", "te-1")

    payload = json.loads(stream.getvalue().strip())
    assert payload["level"] == "INFO"
    assert payload["logger"] == "billing.test"
    assert payload["message"] == "rolled back te-1"
    assert payload["service"] == "billing"
    assert payload["environment"] == "test"
    assert payload["mutation"] == "delete"


def test_plain_output_appends_sorted_context() -> None:
    """Plain records should append context as sorted key=value pairs."""
    configure_logging(level="INFO", json_output=False)
    stream = io.StringIO()
    handler = logging.getLogger().handlers[0]
    handler.setStream(stream)

    with log_context({"outcome": "failure", "api_name": "time_entry"}):
        get_logger("billing.test").warning("Public API completion")

    line = stream.getvalue().strip()
    assert line.endswith("Public API completion api_name=time_entry outcome=failure")


def test_configure_logging_replaces_previous_handler() -> None:
    """Repeated configuration should not stack handlers."""
    configure_logging(level="INFO")
    configure_logging(level="WARNING")

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.WARNING
