"""Configuration loading with deterministic precedence.

The cascade is always:
1) CLI params
2) Environment variables
3) ~/.config/billing/billing.yaml
4) Built-in defaults

Environment variables use the ``BILLING_`` prefix with ``__`` between nested
keys, for example ``BILLING_LOGGING__LEVEL=DEBUG`` sets ``logging.level``.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .defaults import BUILTIN_DEFAULTS
from .models import DEFAULT_CONFIG_PATH, BillingSettings

ENV_PREFIX = "BILLING_"


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> BillingSettings:
    """Load typed settings by applying the precedence cascade."""
    merged = load_config(
        cli_params=cli_params,
        environ=environ,
        config_path=config_path,
    )
    # model_validate skips the BaseSettings sources; the cascade above
    # already folded env and file values in.
    return BillingSettings.model_validate(merged)


def load_config(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return the merged plain-dict configuration for all layers."""
    merged = copy.deepcopy(dict(BUILTIN_DEFAULTS if defaults is None else defaults))
    for layer in (
        _load_file_config(path=config_path),
        _load_env_config(environ=os.environ if environ is None else environ),
        dict(cli_params or {}),
    ):
        merged = _merge_dicts(merged, layer)
    return merged


def _load_file_config(*, path: str | Path | None) -> dict[str, Any]:
    """Load YAML config from disk; an absent file contributes nothing."""
    resolved = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not resolved.exists():
        return {}

    with resolved.open("r", encoding="utf-8") as handle:
        parsed = yaml.safe_load(handle)

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config file must contain a top-level mapping: {resolved}")
    return parsed


def _load_env_config(*, environ: Mapping[str, str]) -> dict[str, Any]:
    """Map prefixed environment variables into a nested mapping."""
    output: dict[str, Any] = {}
    for key, raw_value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = [
            segment.strip().lower()
            for segment in key[len(ENV_PREFIX) :].split("__")
            if segment.strip()
        ]
        if not path:
            continue

        cursor = output
        for segment in path[:-1]:
            child = cursor.get(segment)
            if not isinstance(child, dict):
                child = cursor[segment] = {}
            cursor = child
        cursor[path[-1]] = _coerce_scalar(raw_value)
    return output


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge mappings, with ``override`` taking precedence."""
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = _merge_dicts(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _coerce_scalar(raw: str) -> Any:
    """Coerce env strings into bool/None/int/float/JSON when unambiguous."""
    value = raw.strip()
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    if value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return raw
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return raw
