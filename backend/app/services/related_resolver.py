from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from backend.app.services.batch_fetcher import BatchFetcher, index_list_entries
from backend.app.services.catalog_client import CatalogSource
from backend.app.services.category_map import (
    entry_category,
    more_in_category_filter_encodings,
    next_page_probe_filter,
    related_filter_encodings,
)
from backend.app.services.retry import (
    NEXT_PAGE_PROBE_RETRY,
    PAGE_REQUEST_RETRY,
    RetryExecutor,
    SleepFunction,
)
from backend.app.services.video_normalizer import (
    Video,
    dedupe_videos,
    entry_id,
    normalize_video_id,
    sort_by_popularity,
)

LOGGER = logging.getLogger("streamshelf.related")

RELATED_PAGE_WINDOW: tuple[int, ...] = (1, 2, 3)
MAX_TITLE_KEYWORDS = 2
MIN_KEYWORD_LENGTH = 2
DETAIL_PAUSE_SECONDS = 0.3

_KEYWORD_SEPARATORS = re.compile(r"[^\w\s]|_")


@dataclass(frozen=True)
class MoreVideosResult:
    videos: tuple[Video, ...]
    has_more: bool

    @classmethod
    def empty(cls) -> MoreVideosResult:
        return cls(videos=(), has_more=False)


def title_keywords(title: str | None) -> list[str]:
    if not title:
        return []
    cleaned = _KEYWORD_SEPARATORS.sub(" ", title)
    tokens = [token for token in cleaned.split() if len(token) >= MIN_KEYWORD_LENGTH]
    return tokens[:MAX_TITLE_KEYWORDS]


class _Collector:
    """Accumulates same-category videos for one query, never emitting an id twice."""

    def __init__(self, category: str, limit: int, seen_ids: Iterable[str]) -> None:
        self.category = category
        self.limit = limit
        self.seen_ids: set[str] = {video_id for video_id in seen_ids if video_id}
        self.videos: list[Video] = []

    @property
    def remaining(self) -> int:
        return max(0, self.limit - len(self.videos))

    @property
    def full(self) -> bool:
        return self.remaining == 0

    def claim_entries(self, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        claimed: list[dict[str, Any]] = []
        for entry in entries:
            if len(claimed) >= self.remaining:
                break
            video_id = entry_id(entry)
            if not video_id or video_id in self.seen_ids:
                continue
            if entry_category(entry) != self.category:
                continue
            self.seen_ids.add(video_id)
            claimed.append(entry)
        return claimed

    def accept(self, videos: list[Video]) -> int:
        matching = [video for video in videos if _matches_category(video, self.category)]
        before = len(self.videos)
        self.videos.extend(dedupe_videos(matching, {video.id for video in self.videos}))
        return len(self.videos) - before


class RelatedVideoResolver:
    def __init__(
        self,
        source: CatalogSource,
        executor: RetryExecutor,
        batch_fetcher: BatchFetcher,
        *,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        self._source = source
        self._executor = executor
        self._batch_fetcher = batch_fetcher
        self._sleep = sleep

    async def find_related(
        self,
        seed_id: object,
        seed_category: str | None,
        seed_title: str | None,
        limit: int = 12,
    ) -> list[Video]:
        """
        Collect up to `limit` videos from the seed's exact category.

        Strategies run in priority order (category filters, title keywords,
        unfiltered popular listing) and stop once enough results exist. Every
        candidate is re-checked against the seed category on our side because
        the upstream filters are loose; nothing from other categories is ever
        used to pad the result.
        """
        category = (seed_category or "").strip()
        if not category or limit < 1:
            return []

        normalized_seed_id = normalize_video_id(seed_id)
        collector = _Collector(category, limit, [normalized_seed_id])

        for filters in related_filter_encodings(category):
            if collector.full:
                break
            await self._collect_pages(collector, filters=filters, query=None)

        if not collector.full:
            for keyword in title_keywords(seed_title):
                if collector.full:
                    break
                await self._collect_pages(
                    collector,
                    filters=None,
                    query=keyword,
                    pages=(1,),
                    pause_after_fetch=False,
                )

        if not collector.full:
            await self._collect_pages(collector, filters=None, query=None)

        related = [video for video in collector.videos if video.id != normalized_seed_id]
        result = sort_by_popularity(dedupe_videos(related))[:limit]
        LOGGER.info(
            "related videos resolved category=%s found=%s limit=%s",
            category,
            len(result),
            limit,
        )
        return result

    async def more_in_category(
        self,
        category: str | None,
        exclude_ids: Iterable[object] = (),
        page: int = 1,
        limit: int = 12,
    ) -> MoreVideosResult:
        normalized_category = (category or "").strip()
        if not normalized_category or limit < 1:
            return MoreVideosResult.empty()

        current_page = max(1, page)
        collector = _Collector(
            normalized_category,
            limit,
            (normalize_video_id(video_id) for video_id in exclude_ids),
        )
        for filters in more_in_category_filter_encodings(normalized_category):
            if collector.full:
                break
            await self._collect_pages(
                collector,
                filters=filters,
                query=None,
                pages=(current_page,),
                pause_after_fetch=False,
            )

        has_more = False
        if collector.videos:
            has_more = await self._probe_next_page(normalized_category, current_page, collector)

        videos = tuple(sort_by_popularity(dedupe_videos(collector.videos))[:limit])
        LOGGER.info(
            "more in category category=%s page=%s found=%s has_more=%s",
            normalized_category,
            current_page,
            len(videos),
            has_more,
        )
        return MoreVideosResult(videos=videos, has_more=has_more)

    async def _collect_pages(
        self,
        collector: _Collector,
        *,
        filters: Mapping[str, str] | None,
        query: str | None,
        pages: tuple[int, ...] = RELATED_PAGE_WINDOW,
        pause_after_fetch: bool = True,
    ) -> None:
        strategy = _describe_strategy(filters, query)
        page_size = collector.limit * 2
        try:
            for page in pages:
                if collector.full:
                    return
                entries = await self._executor.execute(
                    lambda page=page: self._source.list_page(
                        page=page,
                        page_size=page_size,
                        filters=filters,
                        query=query,
                    ),
                    *PAGE_REQUEST_RETRY,
                    label=f"related:{strategy}:{page}",
                )
                claimed = collector.claim_entries(entries)
                if not claimed:
                    continue
                videos = await self._batch_fetcher.fetch_details(
                    [entry_id(entry) for entry in claimed],
                    index_list_entries(claimed),
                )
                added = collector.accept(videos)
                LOGGER.debug(
                    "strategy page accepted strategy=%s page=%s added=%s", strategy, page, added
                )
                if pause_after_fetch:
                    await self._sleep(DETAIL_PAUSE_SECONDS)
        except Exception as exc:
            LOGGER.warning(
                "discovery strategy failed strategy=%s error_type=%s error=%s",
                strategy,
                type(exc).__name__,
                exc,
            )

    async def _probe_next_page(
        self,
        category: str,
        page: int,
        collector: _Collector,
    ) -> bool:
        try:
            entries = await self._executor.execute(
                lambda: self._source.list_page(
                    page=page + 1,
                    page_size=1,
                    filters=next_page_probe_filter(category),
                ),
                *NEXT_PAGE_PROBE_RETRY,
                label="next_page_probe",
            )
        except Exception:
            LOGGER.info("next page probe failed category=%s page=%s", category, page + 1)
            return len(collector.videos) >= collector.limit
        return len(entries) > 0


def _matches_category(video: Video, category: str) -> bool:
    if video.category == category:
        return True
    return video.raw.get("type_name") == category


def _describe_strategy(filters: Mapping[str, str] | None, query: str | None) -> str:
    if filters:
        return ",".join(f"{key}={value}" for key, value in filters.items())
    if query:
        return f"wd={query}"
    return "popular"
