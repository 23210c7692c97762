"""Shared ULID identifier helpers."""

from packages.billing_shared.ids.ulid import (
    MonotonicUlidGenerator,
    encode_ulid,
    generate_ulid_str,
    ulid_timestamp_ms,
)

__all__ = [
    "MonotonicUlidGenerator",
    "encode_ulid",
    "generate_ulid_str",
    "ulid_timestamp_ms",
]
