from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from backend.app.services.catalog_client import (
    CatalogUpstreamError,
    UpstreamRequestError,
    UpstreamStatusError,
    VodApiClient,
)
from backend.app.services.retry import RetryExecutor

BASE_URL = "https://vod.example/api.php/provide/vod/"


def _client(handler: httpx.MockTransport) -> VodApiClient:
    return VodApiClient(BASE_URL, transport=handler)


def test_list_page_builds_query_and_returns_records() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"code": 1, "list": [{"vod_id": 1, "vod_name": "One"}, "junk", {"vod_id": 2}]},
        )

    async def scenario() -> list[dict[str, object]]:
        client = _client(httpx.MockTransport(handler))
        try:
            return await client.list_page(
                page=2,
                page_size=18,
                filters={"t": "剧情片", "class": ""},
                query="night",
            )
        finally:
            await client.aclose()

    records = asyncio.run(scenario())

    assert records == [{"vod_id": 1, "vod_name": "One"}, {"vod_id": 2}]
    params = seen[0].url.params
    assert params["ac"] == "list"
    assert params["pg"] == "2"
    assert params["limit"] == "18"
    assert params["t"] == "剧情片"
    assert params["wd"] == "night"
    assert "class" not in params
    assert seen[0].headers["user-agent"] == "streamshelf/0.1"


def test_fetch_details_joins_ids() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"list": [{"vod_id": "5"}]})

    async def scenario() -> list[dict[str, object]]:
        client = _client(httpx.MockTransport(handler))
        try:
            empty = await client.fetch_details([])
            assert empty == []
            return await client.fetch_details(["5", "6"])
        finally:
            await client.aclose()

    assert asyncio.run(scenario()) == [{"vod_id": "5"}]
    assert len(seen) == 1
    assert seen[0].url.params["ac"] == "detail"
    assert seen[0].url.params["ids"] == "5,6"


def test_missing_list_yields_empty_list() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 1, "list": None})

    async def scenario() -> list[dict[str, object]]:
        client = _client(httpx.MockTransport(handler))
        try:
            return await client.list_page(page=1)
        finally:
            await client.aclose()

    assert asyncio.run(scenario()) == []


@pytest.mark.parametrize("body", ["", "<html>server busy</html>", json.dumps([1, 2])])
def test_unusable_bodies_raise_request_error(body: str) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    async def scenario() -> list[dict[str, object]]:
        client = _client(httpx.MockTransport(handler))
        try:
            return await client.list_page(page=1)
        finally:
            await client.aclose()

    with pytest.raises(UpstreamRequestError):
        asyncio.run(scenario())


def test_non_json_body_is_retried() -> None:
    calls: list[int] = []

    def handler(_: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(200, text="<html>server busy</html>")
        return httpx.Response(200, json={"list": [{"vod_id": 1}]})

    async def no_sleep(_: float) -> None:
        return None

    async def scenario() -> list[dict[str, object]]:
        client = _client(httpx.MockTransport(handler))
        try:
            return await RetryExecutor(sleep=no_sleep).execute(
                lambda: client.list_page(page=1),
                2,
                1.0,
            )
        finally:
            await client.aclose()

    assert asyncio.run(scenario()) == [{"vod_id": 1}]
    assert len(calls) == 2


def test_non_success_status_raises_status_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    async def scenario() -> None:
        client = _client(httpx.MockTransport(handler))
        try:
            await client.list_page(page=1)
        finally:
            await client.aclose()

    with pytest.raises(UpstreamStatusError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.status_code == 502
    assert isinstance(exc_info.value, CatalogUpstreamError)


def test_transport_error_raises_request_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async def scenario() -> None:
        client = _client(httpx.MockTransport(handler))
        try:
            await client.fetch_details(["1"])
        finally:
            await client.aclose()

    with pytest.raises(UpstreamRequestError):
        asyncio.run(scenario())
