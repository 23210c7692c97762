"""Component declaration for the billing backend adapter resource."""

from __future__ import annotations

from typing import TYPE_CHECKING

from packages.billing_shared.config import BillingSettings

if TYPE_CHECKING:
    from resources.adapters.billing_backend.adapter import BillingBackend

RESOURCE_COMPONENT_ID = "adapter_billing_backend"


def build_component(*, settings: BillingSettings) -> BillingBackend:
    """Build the configured billing backend adapter."""
    from resources.adapters.billing_backend.config import (
        resolve_billing_backend_settings,
    )
    from resources.adapters.billing_backend.memory_adapter import (
        InMemoryBillingBackend,
    )
    from resources.adapters.billing_backend.rest_adapter import (
        PostgrestBillingBackend,
    )

    backend_settings = resolve_billing_backend_settings(settings)
    if backend_settings.kind == "rest":
        return PostgrestBillingBackend(settings=backend_settings)
    return InMemoryBillingBackend()
