from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from settings import SettingsError, TabiSettings
from tabi.remote_store import (
    RecordNotFoundError,
    RemoteStore,
    RemoteStoreError,
    format_error_message,
)


def _store(handler: Callable[[httpx.Request], httpx.Response], requests: List[httpx.Request]) -> RemoteStore:
    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return RemoteStore(
        "https://example.supabase.co/",
        "anon-key",
        access_token="user-token",
        transport=httpx.MockTransport(recording),
    )


def test_insert_posts_record_and_returns_first_row() -> None:
    requests: List[httpx.Request] = []
    store = _store(lambda request: httpx.Response(201, json=[{"id": "srv-1", "title": "Lunch"}]), requests)

    row = store.insert("itinerary_items", {"title": "Lunch"})

    assert row == {"id": "srv-1", "title": "Lunch"}
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/itinerary_items"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer user-token"
    assert request.headers["Prefer"] == "return=representation"
    assert json.loads(request.content) == {"title": "Lunch"}


def test_update_and_delete_filter_by_id() -> None:
    requests: List[httpx.Request] = []
    store = _store(lambda request: httpx.Response(204), requests)

    store.update("trip_days", "d1", {"title": "Arrival"})
    store.update("trip_days", "d1", {})
    store.delete("trip_days", "d1")

    assert [request.method for request in requests] == ["PATCH", "DELETE"]
    assert all(request.url.params["id"] == "eq.d1" for request in requests)
    assert json.loads(requests[0].content) == {"title": "Arrival"}


def test_select_builds_postgrest_query() -> None:
    requests: List[httpx.Request] = []
    store = _store(lambda request: httpx.Response(200, json=[{"id": "a"}]), requests)

    rows = store.select(
        "itinerary_items",
        filters={"day_id": ["d1", "d2"], "status": "planned"},
        order=("sort_order.asc", "start_time.asc.nullslast"),
        limit=5,
    )

    assert rows == [{"id": "a"}]
    params = requests[0].url.params
    assert params["select"] == "*"
    assert params["day_id"] == "in.(d1,d2)"
    assert params["status"] == "eq.planned"
    assert params["order"] == "sort_order.asc,start_time.asc.nullslast"
    assert params["limit"] == "5"


def test_get_raises_when_no_row_matches() -> None:
    store = _store(lambda request: httpx.Response(200, json=[]), [])

    with pytest.raises(RecordNotFoundError):
        store.get("trips", "missing")


def test_server_error_body_is_exposed() -> None:
    body = {
        "message": "new row violates row-level security policy",
        "details": "Failing row contains (...)",
        "hint": "Check the trip membership",
        "code": "42501",
    }
    store = _store(lambda request: httpx.Response(403, json=body), [])

    with pytest.raises(RemoteStoreError) as excinfo:
        store.delete("trips", "t1")

    error = excinfo.value
    assert error.status == 403
    assert error.code == "42501"
    assert format_error_message(error) == (
        "new row violates row-level security policy · Details: Failing row contains (...)"
        " · Hint: Check the trip membership · Code: 42501"
    )


def test_plain_text_error_keeps_status() -> None:
    store = _store(lambda request: httpx.Response(502, text="Bad gateway"), [])

    with pytest.raises(RemoteStoreError) as excinfo:
        store.select("trips")

    assert excinfo.value.status == 502
    assert "Bad gateway" in str(excinfo.value)


def test_network_failure_becomes_remote_store_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    store = _store(handler, [])

    with pytest.raises(RemoteStoreError):
        store.update("trips", "t1", {"name": "Japan"})
    assert store.ping() is False


def test_ping_succeeds_on_any_response() -> None:
    store = _store(lambda request: httpx.Response(401), [])

    assert store.ping() is True


def test_from_settings_requires_configuration() -> None:
    with pytest.raises(SettingsError):
        RemoteStore.from_settings(TabiSettings())


def test_format_error_message_for_other_exceptions() -> None:
    assert format_error_message(ValueError("bad input")) == "bad input"
    assert format_error_message(ValueError("")) == "Something went wrong"
    assert format_error_message(RemoteStoreError("same", details="same")) == "same"
