"""Typed errors raised by the shared HTTP client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class HttpError(Exception):
    """Base error type for shared HTTP helper failures."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class HttpClientError(HttpError):
    """Base error for outbound HTTP call failures."""

    method: str
    url: str
    retryable: bool = False


@dataclass(frozen=True)
class HttpRequestError(HttpClientError):
    """Transport-level failure: no response was received."""

    cause: Exception | None = None


@dataclass(frozen=True)
class HttpStatusError(HttpClientError):
    """A response arrived with a non-success status code."""

    status_code: int = 0
    response_body: str = ""
    response_headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_client_error(self) -> bool:
        """Return whether the status is a 4xx other than rate limiting."""
        return 400 <= self.status_code < 500 and self.status_code != 429


@dataclass(frozen=True)
class HttpJsonDecodeError(HttpClientError):
    """A successful response carried a body that is not valid JSON."""

    status_code: int = 0
    response_body: str = ""
    cause: Exception | None = None
