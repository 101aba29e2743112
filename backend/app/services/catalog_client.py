from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, cast

import httpx

LOGGER = logging.getLogger("streamshelf.upstream")

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_USER_AGENT = "streamshelf/0.1"


class CatalogUpstreamError(Exception):
    pass


class UpstreamRequestError(CatalogUpstreamError):
    pass


class UpstreamStatusError(CatalogUpstreamError):
    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogSource(Protocol):
    async def list_page(
        self,
        *,
        page: int | None = None,
        page_size: int | None = None,
        filters: Mapping[str, str] | None = None,
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def fetch_details(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        ...


class VodApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(max(1.0, timeout_seconds)),
            headers={"accept": "application/json", "user-agent": user_agent},
            transport=transport,
            follow_redirects=True,
        )

    async def list_page(
        self,
        *,
        page: int | None = None,
        page_size: int | None = None,
        filters: Mapping[str, str] | None = None,
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"ac": "list"}
        for key, value in (filters or {}).items():
            if value:
                params[key] = value
        if query:
            params["wd"] = query
        if page is not None:
            params["pg"] = str(max(1, page))
        if page_size is not None:
            params["limit"] = str(max(1, page_size))
        return await self._get_list(params)

    async def fetch_details(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        joined = ",".join(str(video_id) for video_id in ids if str(video_id))
        if not joined:
            return []
        return await self._get_list({"ac": "detail", "ids": joined})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_list(self, params: dict[str, str]) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(self._base_url, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamRequestError(f"Catalog request failed: {exc}") from exc

        if not response.is_success:
            raise UpstreamStatusError(
                f"Catalog request returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        payload = _parse_json_dict(response.text)
        records = [_as_dict(item) for item in _as_list(payload.get("list"))]
        LOGGER.debug(
            "catalog response action=%s records=%s",
            params.get("ac"),
            len(records),
        )
        return [record for record in records if record]


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError as exc:
        raise UpstreamRequestError("Catalog response was not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise UpstreamRequestError("Catalog response was not a JSON object")
    return _as_dict(parsed)


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        raw_list = cast(list[Any], value)
        return list(raw_list)
    return []
