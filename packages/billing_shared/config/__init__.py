"""Public API for shared billing configuration utilities."""

from .loader import load_config, load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    BillingSettings,
    ComponentsSettings,
    LoggingSettings,
    resolve_component_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "BillingSettings",
    "ComponentsSettings",
    "LoggingSettings",
    "load_config",
    "load_settings",
    "resolve_component_settings",
]
