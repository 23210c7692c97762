"""Component declaration for the time entry cache service."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from packages.billing_shared.config import BillingSettings

if TYPE_CHECKING:
    from services.billing.time_entries.service import TimeEntryCacheService

SERVICE_COMPONENT_ID = "service_time_entries"


def build_component(
    *, settings: BillingSettings, components: Mapping[str, object]
) -> TimeEntryCacheService:
    """Build the runtime service, reusing an already built backend adapter."""
    from services.billing.time_entries.service import (
        build_time_entry_cache_service,
    )

    return build_time_entry_cache_service(
        settings=settings,
        backend=components.get("adapter_billing_backend"),  # type: ignore[arg-type]
    )
