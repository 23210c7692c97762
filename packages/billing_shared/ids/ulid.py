"""ULID generation helpers.

The canonical string form is 26 Crockford Base32 characters representing
exactly 128 bits: a 48-bit millisecond timestamp followed by 80 bits of
entropy. Identifiers from one ``MonotonicUlidGenerator`` sort strictly
increasing even when several are generated in the same millisecond.
"""

from __future__ import annotations

import secrets
import time
from typing import Callable

_ULID_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE_TABLE = {char: index for index, char in enumerate(_ULID_ALPHABET)}
_MAX_TIMESTAMP_MS = (1 << 48) - 1
_MAX_ENTROPY = (1 << 80) - 1


def encode_ulid(timestamp_ms: int, entropy: int) -> str:
    """Encode timestamp and entropy components into a canonical ULID string."""
    if timestamp_ms < 0 or timestamp_ms > _MAX_TIMESTAMP_MS:
        raise ValueError("timestamp_ms out of ULID 48-bit range")
    if entropy < 0 or entropy > _MAX_ENTROPY:
        raise ValueError("entropy out of ULID 80-bit range")

    number = (timestamp_ms << 80) | entropy
    chars: list[str] = []
    for _ in range(26):
        number, remainder = divmod(number, 32)
        chars.append(_ULID_ALPHABET[remainder])
    return "".join(reversed(chars))


def ulid_timestamp_ms(value: str) -> int:
    """Return the millisecond timestamp embedded in a canonical ULID string."""
    candidate = value.strip().upper()
    if len(candidate) != 26:
        raise ValueError("ULID string must be exactly 26 characters")

    number = 0
    for char in candidate:
        if char not in _DECODE_TABLE:
            raise ValueError(f"Invalid ULID character: {char!r}")
        number = (number << 5) | _DECODE_TABLE[char]
    if number >> 128:
        raise ValueError("ULID value exceeds 128-bit range")
    return number >> 80


def generate_ulid_str(*, timestamp_ms: int | None = None) -> str:
    """Generate one ULID string with cryptographically secure entropy."""
    ts_ms = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    entropy = int.from_bytes(secrets.token_bytes(10), byteorder="big", signed=False)
    return encode_ulid(ts_ms, entropy)


class MonotonicUlidGenerator:
    """Session-scoped ULID source with strictly increasing output."""

    def __init__(self, *, clock_ms: Callable[[], int] | None = None) -> None:
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        self._last_timestamp_ms = -1
        self._last_entropy = 0

    def __call__(self) -> str:
        """Return the next identifier."""
        timestamp_ms = self._clock_ms()
        if timestamp_ms <= self._last_timestamp_ms:
            # Same (or rewound) millisecond: keep the timestamp, bump entropy.
            timestamp_ms = self._last_timestamp_ms
            entropy = self._last_entropy + 1
            if entropy > _MAX_ENTROPY:
                raise OverflowError("ULID entropy exhausted within one millisecond")
        else:
            entropy = int.from_bytes(
                secrets.token_bytes(10), byteorder="big", signed=False
            )
        self._last_timestamp_ms = timestamp_ms
        self._last_entropy = entropy
        return encode_ulid(timestamp_ms, entropy)
