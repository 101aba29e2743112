from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from backend.app.services.catalog_client import CatalogSource
from backend.app.services.retry import (
    DETAIL_BATCH_RETRY,
    DETAIL_SINGLE_RETRY,
    RetryExecutor,
    SleepFunction,
)
from backend.app.services.ttl_cache import TTLCache, make_cache_key
from backend.app.services.video_normalizer import (
    Video,
    entry_id,
    normalize_video,
    normalize_video_id,
)

LOGGER = logging.getLogger("streamshelf.batch_fetcher")

MIN_CHUNK_SIZE = 5
MAX_CHUNK_SIZE = 10
CHUNK_PAUSE_SECONDS = 0.5
SINGLE_FETCH_PAUSE_SECONDS = 0.2


def chunked(items: Sequence[str], chunk_size: int) -> list[list[str]]:
    size = max(1, chunk_size)
    return [list(items[index : index + size]) for index in range(0, len(items), size)]


def video_cache_key(video_id: str) -> str:
    return make_cache_key("video", video_id)


class BatchFetcher:
    def __init__(
        self,
        source: CatalogSource,
        executor: RetryExecutor,
        item_cache: TTLCache,
        *,
        chunk_size: int = MIN_CHUNK_SIZE,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        self._source = source
        self._executor = executor
        self._item_cache = item_cache
        self._chunk_size = max(MIN_CHUNK_SIZE, min(MAX_CHUNK_SIZE, chunk_size))
        self._sleep = sleep

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def fetch_details(
        self,
        ids: Sequence[object],
        list_entries: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> list[Video]:
        """
        Resolve detail records for `ids`, degrading instead of raising.

        Ids already in the item cache are not refetched. Each remaining chunk
        is one multi-id request; a chunk that still fails after retries is
        retried id by id, and ids that fail individually fall back to their
        list entry (when one was supplied). Output follows the input order.
        """
        unique_ids = _unique_ids(ids)
        if not unique_ids:
            return []

        resolved: dict[str, Video] = {}
        pending: list[str] = []
        for video_id in unique_ids:
            cached = self._item_cache.get(video_cache_key(video_id))
            if isinstance(cached, Video):
                resolved[video_id] = cached
            else:
                pending.append(video_id)

        chunks = chunked(pending, self._chunk_size)
        for index, chunk in enumerate(chunks):
            try:
                videos = await self._fetch_chunk(chunk)
            except Exception as exc:
                LOGGER.warning(
                    "detail chunk failed; falling back to single requests chunk=%s/%s "
                    "ids=%s error_type=%s",
                    index + 1,
                    len(chunks),
                    len(chunk),
                    type(exc).__name__,
                )
                videos = await self._fetch_individually(chunk, list_entries or {})
            for video in videos:
                resolved.setdefault(video.id, video)
            if index < len(chunks) - 1:
                await self._sleep(CHUNK_PAUSE_SECONDS)

        return [resolved[video_id] for video_id in unique_ids if video_id in resolved]

    async def fetch_one(self, video_id: str) -> Video | None:
        records = await self._executor.execute(
            lambda: self._source.fetch_details([video_id]),
            *DETAIL_SINGLE_RETRY,
            label=f"detail:{video_id}",
        )
        for record in records:
            video = normalize_video(record)
            if video.id == video_id:
                self._remember(video)
                return video
        return None

    async def _fetch_chunk(self, chunk: list[str]) -> list[Video]:
        records = await self._executor.execute(
            lambda: self._source.fetch_details(chunk),
            *DETAIL_BATCH_RETRY,
            label="detail_batch",
        )
        requested = set(chunk)
        videos: list[Video] = []
        for record in records:
            video = normalize_video(record)
            if video.id not in requested:
                continue
            self._remember(video)
            videos.append(video)
        return videos

    async def _fetch_individually(
        self,
        chunk: list[str],
        list_entries: Mapping[str, Mapping[str, Any]],
    ) -> list[Video]:
        videos: list[Video] = []
        for position, video_id in enumerate(chunk):
            video: Video | None
            try:
                video = await self.fetch_one(video_id)
            except Exception:
                LOGGER.warning("single detail fetch failed video_id=%s", video_id, exc_info=True)
                video = None
            if video is None:
                entry = list_entries.get(video_id)
                if entry is not None:
                    video = normalize_video(entry)
                    LOGGER.info("using degraded list record video_id=%s", video_id)
            if video is not None and video.id:
                videos.append(video)
            if position < len(chunk) - 1:
                await self._sleep(SINGLE_FETCH_PAUSE_SECONDS)
        return videos

    def _remember(self, video: Video) -> None:
        if video.id:
            self._item_cache.set(video_cache_key(video.id), video)


def index_list_entries(entries: Sequence[Mapping[str, Any]]) -> dict[str, Mapping[str, Any]]:
    indexed: dict[str, Mapping[str, Any]] = {}
    for entry in entries:
        video_id = entry_id(entry)
        if video_id and video_id not in indexed:
            indexed[video_id] = entry
    return indexed


def _unique_ids(ids: Sequence[object]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for raw_id in ids:
        video_id = normalize_video_id(raw_id)
        if not video_id or video_id in seen:
            continue
        seen.add(video_id)
        unique.append(video_id)
    return unique
