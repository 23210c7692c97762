"""Unit tests for the shared async HTTP client wrapper."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from packages.billing_shared.http import (
    AsyncHttpClient,
    HttpJsonDecodeError,
    HttpRequestError,
    HttpStatusError,
)


def _client(handler) -> AsyncHttpClient:
    return AsyncHttpClient(
        base_url="https://example.test",
        transport=httpx.MockTransport(handler),
    )


def test_async_http_client_request_json_returns_decoded_payload() -> None:
    """AsyncHttpClient.request_json should decode and return JSON content."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True}, request=request)

    async def run() -> object:
        client = _client(handler)
        try:
            return await client.request_json("GET", "/health")
        finally:
            await client.aclose()

    assert asyncio.run(run()) == {"ok": True}


def test_async_http_client_maps_status_failure_to_typed_error() -> None:
    """AsyncHttpClient should raise HttpStatusError on non-2xx status codes."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable", request=request)

    async def run() -> None:
        async with _client(handler) as client:
            await client.request("GET", "/health")

    with pytest.raises(HttpStatusError) as exc_info:
        asyncio.run(run())

    error = exc_info.value
    assert error.method == "GET"
    assert error.status_code == 503
    assert error.retryable is True
    assert error.is_client_error is False
    assert error.response_body == "unavailable"


def test_async_http_client_marks_rate_limit_retryable_and_4xx_not() -> None:
    """429 should be retryable while other 4xx responses should not."""
    statuses = iter([429, 422])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses), request=request)

    async def run() -> list[HttpStatusError]:
        captured: list[HttpStatusError] = []
        async with _client(handler) as client:
            for _ in range(2):
                try:
                    await client.request_json("GET", "/entries")
                except HttpStatusError as exc:
                    captured.append(exc)
        return captured

    rate_limited, rejected = asyncio.run(run())
    assert rate_limited.retryable is True
    assert rate_limited.is_client_error is False
    assert rejected.retryable is False
    assert rejected.is_client_error is True


def test_async_http_client_maps_transport_failure_to_typed_error() -> None:
    """AsyncHttpClient should raise HttpRequestError on transport failures."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    async def run() -> None:
        async with _client(handler) as client:
            await client.request_json("GET", "/health")

    with pytest.raises(HttpRequestError) as exc_info:
        asyncio.run(run())

    error = exc_info.value
    assert error.method == "GET"
    assert error.url == "https://example.test/health"
    assert error.retryable is True
    assert isinstance(error.cause, httpx.ConnectError)


def test_async_http_client_maps_invalid_json_to_typed_error() -> None:
    """AsyncHttpClient should raise HttpJsonDecodeError for invalid JSON bodies."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not-json", request=request)

    async def run() -> None:
        async with _client(handler) as client:
            await client.request_json("GET", "/health")

    with pytest.raises(HttpJsonDecodeError) as exc_info:
        asyncio.run(run())

    assert exc_info.value.status_code == 200
    assert exc_info.value.response_body == "not-json"
    assert exc_info.value.retryable is False


def test_async_http_client_returns_none_for_empty_body() -> None:
    """204 responses and empty bodies should decode to None."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/no-content":
            return httpx.Response(204, request=request)
        return httpx.Response(200, content=b"", request=request)

    async def run() -> tuple[object, object]:
        async with _client(handler) as client:
            return (
                await client.request_json("GET", "/no-content"),
                await client.request_json("GET", "/empty"),
            )

    assert asyncio.run(run()) == (None, None)


def test_async_http_client_sends_json_bodies_with_method() -> None:
    """request_json should send the given method and JSON body."""
    seen: list[tuple[str, str, bytes]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.content))
        if request.method == "DELETE":
            return httpx.Response(204, request=request)
        return httpx.Response(200, json=[{"id": "te-1"}], request=request)

    async def run() -> tuple[object, object, object]:
        async with _client(handler) as client:
            created = await client.request_json(
                "POST", "/time_entries", json={"hours": 1.5}
            )
            patched = await client.request_json(
                "PATCH", "/time_entries", json={"hours": 2}
            )
            deleted = await client.request_json("DELETE", "/time_entries")
        return created, patched, deleted

    created, patched, deleted = asyncio.run(run())

    assert created == [{"id": "te-1"}]
    assert patched == [{"id": "te-1"}]
    assert deleted is None
    assert [(method, path) for method, path, _ in seen] == [
        ("POST", "/time_entries"),
        ("PATCH", "/time_entries"),
        ("DELETE", "/time_entries"),
    ]
    assert json.loads(seen[0][2]) == {"hours": 1.5}


def test_async_http_client_leaves_borrowed_client_open() -> None:
    """aclose should not close an httpx client passed in by the caller."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True}, request=request)

    async def run() -> bool:
        inner = httpx.AsyncClient(
            base_url="https://example.test",
            transport=httpx.MockTransport(handler),
        )
        wrapper = AsyncHttpClient(client=inner)
        await wrapper.aclose()
        closed = inner.is_closed
        await inner.aclose()
        return closed

    assert asyncio.run(run()) is False
