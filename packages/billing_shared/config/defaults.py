"""Built-in default configuration values.

These defaults are the final fallback in the configuration cascade:
CLI params > ENV vars > config file > built-in defaults. Component blocks are
intentionally sparse; each component's pydantic model carries its own field
defaults.
"""

from __future__ import annotations

from typing import Any

BUILTIN_DEFAULTS: dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "json_output": True,
        "service": "billing",
        "environment": "dev",
    },
    "components": {
        "service": {"time_entries": {}},
        "adapter": {"billing_backend": {"kind": "memory"}},
    },
}
