"""Billing backend adapter over a PostgREST-compatible HTTP API."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from packages.billing_shared.errors import codes
from packages.billing_shared.http import (
    AsyncHttpClient,
    HttpJsonDecodeError,
    HttpRequestError,
    HttpStatusError,
)
from packages.billing_shared.logging import get_logger
from resources.adapters.billing_backend.adapter import (
    BillingAnalytics,
    BillingBackend,
    BillingBackendDependencyError,
    BillingBackendError,
    BillingBackendNotFoundError,
    BillingBackendServerError,
    BillingBackendValidationError,
    ClientBillingSummary,
    DateRange,
    MatterSummary,
    TimeEntry,
    TimeEntryDraft,
    TimeEntryFilters,
    TimeEntryPatch,
    TimeEntryStatus,
)
from resources.adapters.billing_backend.config import BillingBackendSettings

_LOGGER = get_logger(__name__)

_TIME_ENTRY_COLUMNS = ",".join(TimeEntry.model_fields)
_MATTER_COLUMNS = ",".join(MatterSummary.model_fields)
_RETURN_REPRESENTATION = {"Prefer": "return=representation"}
_CLIENT_BILLING_RPC = "/rpc/client_billing_info"
_ANALYTICS_RPC = "/rpc/billing_analytics"

ModelT = TypeVar("ModelT", bound=BaseModel)


class PostgrestBillingBackend(BillingBackend):
    """Billing backend issuing table and RPC calls against PostgREST."""

    def __init__(
        self,
        *,
        settings: BillingBackendSettings,
        client: AsyncHttpClient | None = None,
    ) -> None:
        self._settings = settings
        self._entries_path = f"/{settings.time_entries_table}"
        self._matters_path = f"/{settings.matters_table}"
        self._client = client or AsyncHttpClient(
            base_url=settings.base_url.rstrip("/"),
            timeout_seconds=settings.timeout_seconds,
            headers=_auth_headers(settings.api_key),
        )

    async def aclose(self) -> None:
        """Release HTTP transport resources."""
        await self._client.aclose()

    async def get_time_entries(
        self, *, filters: TimeEntryFilters | None = None
    ) -> list[TimeEntry]:
        params = [("select", _TIME_ENTRY_COLUMNS), *_filter_params(filters)]
        params.append(("order", "date.desc"))
        payload = await self._request("GET", self._entries_path, params=params)
        return _parse_list(TimeEntry, payload)

    async def get_time_entry(self, *, entry_id: str) -> TimeEntry:
        payload = await self._request(
            "GET",
            self._entries_path,
            params=[("select", _TIME_ENTRY_COLUMNS), ("id", f"eq.{entry_id}")],
        )
        return _single_entry(payload, entry_id=entry_id)

    async def create_time_entry(self, *, draft: TimeEntryDraft) -> TimeEntry:
        payload = await self._request(
            "POST",
            self._entries_path,
            params=[("select", _TIME_ENTRY_COLUMNS)],
            json=draft.model_dump(mode="json", exclude_none=True),
            headers=_RETURN_REPRESENTATION,
        )
        entries = _parse_list(TimeEntry, payload)
        if not entries:
            raise BillingBackendError("create returned no representation")
        return entries[0]

    async def update_time_entry(
        self, *, entry_id: str, patch: TimeEntryPatch
    ) -> TimeEntry:
        payload = await self._request(
            "PATCH",
            self._entries_path,
            params=[("select", _TIME_ENTRY_COLUMNS), ("id", f"eq.{entry_id}")],
            json=patch.model_dump(mode="json", exclude_unset=True),
            headers=_RETURN_REPRESENTATION,
        )
        return _single_entry(payload, entry_id=entry_id)

    async def delete_time_entry(self, *, entry_id: str) -> None:
        await self._request(
            "DELETE", self._entries_path, params=[("id", f"eq.{entry_id}")]
        )

    async def submit_time_entries(self, *, entry_ids: Sequence[str]) -> None:
        if not entry_ids:
            return
        await self._request(
            "PATCH",
            self._entries_path,
            params=[("id", f"in.({','.join(entry_ids)})")],
            json={"status": TimeEntryStatus.SUBMITTED.value},
        )

    async def get_unsubmitted_entries(self) -> list[TimeEntry]:
        return await self.get_time_entries(
            filters=TimeEntryFilters(status=TimeEntryStatus.DRAFT)
        )

    async def get_recent_time_entries(self, *, limit: int) -> list[TimeEntry]:
        payload = await self._request(
            "GET",
            self._entries_path,
            params=[
                ("select", _TIME_ENTRY_COLUMNS),
                ("order", "created_at.desc"),
                ("limit", str(limit)),
            ],
        )
        return _parse_list(TimeEntry, payload)

    async def get_matters_for_time_entry(self) -> list[MatterSummary]:
        payload = await self._request(
            "GET",
            self._matters_path,
            params=[
                ("select", _MATTER_COLUMNS),
                ("status", "eq.active"),
                ("order", "title.asc"),
            ],
        )
        return _parse_list(MatterSummary, payload)

    async def get_client_billing_info(self, *, client_id: str) -> ClientBillingSummary:
        payload = await self._request(
            "POST", _CLIENT_BILLING_RPC, json={"client_id": client_id}
        )
        if payload is None:
            raise BillingBackendNotFoundError(
                f"client not found: {client_id}", code=codes.CLIENT_NOT_FOUND
            )
        return _parse_one(ClientBillingSummary, payload)

    async def get_billing_analytics(
        self, *, date_range: DateRange | None = None
    ) -> BillingAnalytics:
        body: dict[str, str] = {}
        if date_range is not None:
            body = {
                "start_date": date_range.start.isoformat(),
                "end_date": date_range.end.isoformat(),
            }
        payload = await self._request("POST", _ANALYTICS_RPC, json=body)
        return _parse_one(BillingAnalytics, payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Issue one call and translate HTTP failures into backend errors."""
        try:
            return await self._client.request_json(method, path, **kwargs)
        except HttpRequestError as exc:
            raise BillingBackendDependencyError(str(exc)) from exc
        except HttpStatusError as exc:
            _LOGGER.debug(
                "Billing backend returned HTTP %s for %s %s",
                exc.status_code,
                method,
                path,
            )
            raise _status_to_backend_error(exc) from exc
        except HttpJsonDecodeError as exc:
            raise BillingBackendError(str(exc), status_code=exc.status_code) from exc


def _auth_headers(api_key: str) -> dict[str, str]:
    headers = {"Accept": "application/json"}
    if api_key:
        headers["apikey"] = api_key
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _filter_params(filters: TimeEntryFilters | None) -> list[tuple[str, str]]:
    """Translate conjunctive filters into PostgREST query operators."""
    if filters is None:
        return []
    params: list[tuple[str, str]] = []
    if filters.matter_id:
        params.append(("matter_id", f"eq.{filters.matter_id}"))
    if filters.client_id:
        params.append(("client_id", f"eq.{filters.client_id}"))
    if filters.status:
        params.append(("status", f"eq.{filters.status.value}"))
    if filters.date_range:
        params.append(("date", f"gte.{filters.date_range.start.isoformat()}"))
        params.append(("date", f"lte.{filters.date_range.end.isoformat()}"))
    return params


def _status_to_backend_error(exc: HttpStatusError) -> BillingBackendError:
    message = exc.message
    if exc.response_body:
        message = f"{message}: {exc.response_body}"
    if exc.status_code == 404:
        return BillingBackendNotFoundError(message, status_code=exc.status_code)
    if exc.is_client_error:
        return BillingBackendValidationError(message, status_code=exc.status_code)
    return BillingBackendServerError(message, status_code=exc.status_code)


def _single_entry(payload: Any, *, entry_id: str) -> TimeEntry:
    entries = _parse_list(TimeEntry, payload)
    if not entries:
        raise BillingBackendNotFoundError(
            f"time entry not found: {entry_id}", code=codes.TIME_ENTRY_NOT_FOUND
        )
    return entries[0]


def _parse_list(model: type[ModelT], payload: Any) -> list[ModelT]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise BillingBackendError(
            f"expected a JSON array of {model.__name__} rows",
            code=codes.UNEXPECTED_EXCEPTION,
        )
    return [_parse_one(model, row) for row in payload]


def _parse_one(model: type[ModelT], payload: Any) -> ModelT:
    if not isinstance(payload, Mapping):
        raise BillingBackendError(
            f"expected a JSON object for {model.__name__}",
            code=codes.UNEXPECTED_EXCEPTION,
        )
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise BillingBackendError(
            f"malformed {model.__name__} payload: {exc.error_count()} error(s)",
            code=codes.UNEXPECTED_EXCEPTION,
        ) from exc
