from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import httpx
import pytest

from listings_client.core.entities import JOBS
from listings_client.core.config import Settings
from listings_client.core.session import Session
from listings_client.main import create_runtime
from listings_client.services.api_client import (
    FALLBACK_ERROR_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    ApiError,
    ListingsAPIClient,
    extract_error_messages,
)
from listings_client.services.notifications import Notifier
from listings_client.services.query_cache import QueryCache
from listings_client.services.resources import SLOT_TAKEN_MESSAGE, BookingResource, ListingResource


def _client(handler: Callable[[httpx.Request], httpx.Response], session: Session | None = None) -> ListingsAPIClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ListingsAPIClient("http://api.test/", session or Session(), client=http_client)


def test_extract_error_messages_shapes() -> None:
    assert extract_error_messages({"message": ["Title is required", "Location is required"]}) == [
        "Title is required",
        "Location is required",
    ]
    assert extract_error_messages({"detail": "job not found"}) == ["job not found"]
    assert extract_error_messages(
        {"detail": [{"loc": ["body", "title"], "msg": "Field required"}, {"loc": ["body"], "msg": "bad window"}]}
    ) == ["title: Field required", "bad window"]
    assert extract_error_messages({"error": "boom"}) == ["boom"]
    assert extract_error_messages({}) == [FALLBACK_ERROR_MESSAGE]
    assert extract_error_messages("plain text") == [FALLBACK_ERROR_MESSAGE]


def test_error_response_raises_api_error_with_every_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": ["first", "second"]}, request=request)

    async def run() -> ApiError:
        with pytest.raises(ApiError) as exc_info:
            await _client(handler).get_listing(JOBS, "job-1")
        return exc_info.value

    error = asyncio.run(run())
    assert error.status_code == 400
    assert error.messages == ["first", "second"]
    assert error.network is False


def test_non_json_error_body_uses_fallback() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>", request=request)

    async def run() -> ApiError:
        with pytest.raises(ApiError) as exc_info:
            await _client(handler).list_slots()
        return exc_info.value

    assert asyncio.run(run()).messages == [FALLBACK_ERROR_MESSAGE]


def test_transport_failure_becomes_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run() -> tuple[ApiError, list[str]]:
        notifier = Notifier()
        resource = ListingResource(JOBS, _client(handler), QueryCache(), notifier)
        with pytest.raises(ApiError) as exc_info:
            await resource.get_by_id("job-1")
        result = await resource.delete("job-1")
        assert not result.ok
        return exc_info.value, notifier.messages("error")

    error, messages = asyncio.run(run())
    assert error.network is True
    assert error.status_code is None
    assert error.messages == [NETWORK_ERROR_MESSAGE]
    assert messages == [NETWORK_ERROR_MESSAGE]


def test_requests_carry_bearer_token_and_no_header_when_logged_out() -> None:
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json=[], request=request)

    session = Session()
    session.login(token="abc", user_id="u-1", role="student")
    client = _client(handler, session)

    async def run() -> None:
        await client.list_listings(JOBS, status="Live")
        session.logout()
        await client.list_listings(JOBS, status="Live")

    asyncio.run(run())
    assert seen == ["Bearer abc", None]


def test_no_content_response_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/research-news/comments/c-1"
        return httpx.Response(204, request=request)

    assert asyncio.run(_client(handler).delete_comment("c-1")) is None


def test_booking_conflict_reports_taken_slot(connect, session_for) -> None:
    async def run() -> tuple[list[bool], list[str], list[str]]:
        async with connect(session_for("mentor-token")) as mentor:
            created = await mentor.booking.create_slot(
                starts_at=_at("2026-11-02T10:00:00+00:00"),
                ends_at=_at("2026-11-02T10:30:00+00:00"),
            )
            slot_id = created.data["id"]

        async with connect(session_for("student-token")) as first:
            booked = await first.booking.book(slot_id)

        async with connect(session_for("student-2-token")) as second:
            slots_before = await second.booking.slots()
            taken = await second.booking.book(slot_id)
            return [booked.ok, taken.ok], second.notifier.messages("error"), [slot["id"] for slot in slots_before]

    outcomes, errors, visible = asyncio.run(run())
    assert outcomes == [True, False]
    assert errors == [SLOT_TAKEN_MESSAGE]
    assert visible == []


def test_slot_window_is_checked_before_sending() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async def run():
        resource = BookingResource(_client(handler), QueryCache(), Notifier())
        return await resource.create_slot(
            starts_at=_at("2026-11-02T10:30:00+00:00"),
            ends_at=_at("2026-11-02T10:00:00+00:00"),
        )

    result = asyncio.run(run())
    assert result.field_errors == {"ends_at": "End time must be after start time"}


def _at(value: str) -> datetime:
    return datetime.fromisoformat(value)


def test_failed_view_refetch_notifies_the_user() -> None:
    online = {"up": True}

    def handler(request: httpx.Request) -> httpx.Response:
        if not online["up"]:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[{"id": "job-1", "title": "RA Position"}], request=request)

    async def run() -> tuple[list[str], list[str]]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            runtime = create_runtime(
                Session(),
                settings=Settings(api_base_url="http://api.test", otel_enabled=False),
                http_client=http_client,
            )
            jobs = runtime.listings["jobs"]
            rows: list[str] = []
            runtime.cache.subscribe(
                jobs.list_key("Live"),
                jobs.list_fetcher("Live"),
                lambda key, data: rows.extend(row["id"] for row in data),
            )
            await runtime.cache.on_window_focus()
            online["up"] = False
            await runtime.cache.on_window_focus()
            return rows, runtime.notifier.messages("error")

    rows, errors = asyncio.run(run())
    assert rows == ["job-1"]
    assert errors == [NETWORK_ERROR_MESSAGE]


def test_logout_drops_cached_queries() -> None:
    calls: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.headers.get("Authorization"))
        return httpx.Response(200, json=[], request=request)

    async def run() -> list[str]:
        session = Session()
        session.login(token="abc", user_id="u-1", role="university")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            runtime = create_runtime(
                session,
                settings=Settings(api_base_url="http://api.test", stale_time_seconds=300, otel_enabled=False),
                http_client=http_client,
            )
            await runtime.listings["jobs"].list_by_status("Draft")
            await runtime.listings["jobs"].list_by_status("Draft")
            runtime.logout()
            await runtime.listings["jobs"].list_by_status("Draft")
            return runtime.notifier.messages("info")

    infos = asyncio.run(run())
    assert calls == ["Bearer abc", None]
    assert infos == ["You have been logged out"]
