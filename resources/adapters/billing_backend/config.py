"""Pydantic settings for the billing backend adapter resource."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.billing_shared.config import BillingSettings, resolve_component_settings
from resources.adapters.billing_backend.component import RESOURCE_COMPONENT_ID


class BillingBackendSettings(BaseModel):
    """Runtime settings selecting and configuring the billing backend.

    ``memory`` keeps records in process (development and tests); ``rest``
    talks to a PostgREST-compatible endpoint such as a Supabase project.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["memory", "rest"] = "memory"
    base_url: str = ""
    api_key: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)
    time_entries_table: str = "time_entries"
    matters_table: str = "matters"

    @model_validator(mode="after")
    def _require_rest_endpoint(self) -> BillingBackendSettings:
        if self.kind == "rest" and self.base_url.strip() == "":
            raise ValueError("base_url is required when kind is 'rest'")
        return self


def resolve_billing_backend_settings(
    settings: BillingSettings,
) -> BillingBackendSettings:
    """Resolve adapter settings from ``components.adapter.billing_backend``."""
    return resolve_component_settings(
        settings=settings,
        component_id=RESOURCE_COMPONENT_ID,
        model=BillingBackendSettings,
    )
