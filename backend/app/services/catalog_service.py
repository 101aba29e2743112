from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Literal, TypeVar

from backend.app.services.batch_fetcher import (
    MIN_CHUNK_SIZE,
    BatchFetcher,
    index_list_entries,
    video_cache_key,
)
from backend.app.services.catalog_client import CatalogSource
from backend.app.services.category_map import (
    FALLBACK_CATEGORIES,
    entry_category,
    is_all_categories,
)
from backend.app.services.pagination_engine import (
    DEFAULT_BACKGROUND_BATCH_PAGES,
    DEFAULT_GROUP_SIZE,
    DEFAULT_PAGE_SIZE,
    PageResult,
    PaginationEngine,
)
from backend.app.services.related_resolver import MoreVideosResult, RelatedVideoResolver
from backend.app.services.retry import (
    LIST_REQUEST_RETRY,
    VIDEO_LOOKUP_RETRY,
    RetryExecutor,
    SleepFunction,
)
from backend.app.services.ttl_cache import HomepageSnapshotSlot, TTLCache, make_cache_key
from backend.app.services.video_normalizer import (
    Video,
    clean_videos,
    entry_id,
    normalize_video,
    normalize_video_id,
)
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("streamshelf.catalog")

ResultT = TypeVar("ResultT")

DEFAULT_LIST_LIMIT = 20
DEFAULT_RELATED_LIMIT = 12
DEFAULT_PROGRESSIVE_INITIAL_PAGES = 15
DEFAULT_PROGRESSIVE_MAX_PAGES = 100

# (page, page_size) listings sampled for category discovery.
CATEGORY_DISCOVERY_LISTINGS: tuple[tuple[int | None, int], ...] = ((None, 100), (2, 50), (3, 50))


@dataclass(frozen=True)
class ApiStatus:
    status: Literal["ok", "error"]
    error: str | None = None
    sample_count: int = 0


class CatalogService:
    """
    Caller-facing catalog operations.

    Every public coroutine returns a value; upstream and parsing failures are
    logged and turned into an empty result (or `None` for single lookups).
    """

    def __init__(
        self,
        source: CatalogSource,
        item_cache: TTLCache,
        snapshot_slot: HomepageSnapshotSlot,
        *,
        chunk_size: int = MIN_CHUNK_SIZE,
        group_size: int = DEFAULT_GROUP_SIZE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        progressive_initial_pages: int = DEFAULT_PROGRESSIVE_INITIAL_PAGES,
        progressive_max_pages: int = DEFAULT_PROGRESSIVE_MAX_PAGES,
        background_batch_pages: int = DEFAULT_BACKGROUND_BATCH_PAGES,
        sleep: SleepFunction = asyncio.sleep,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._source = source
        self._item_cache = item_cache
        self._snapshot_slot = snapshot_slot
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._progressive_initial_pages = max(1, progressive_initial_pages)
        self._progressive_max_pages = max(self._progressive_initial_pages, progressive_max_pages)
        self._executor = RetryExecutor(sleep=sleep)
        self._batch_fetcher = BatchFetcher(
            source,
            self._executor,
            item_cache,
            chunk_size=chunk_size,
            sleep=sleep,
        )
        self._engine = PaginationEngine(
            source,
            self._executor,
            self._batch_fetcher,
            snapshot_slot,
            group_size=group_size,
            default_page_size=default_page_size,
            background_batch_pages=background_batch_pages,
            sleep=sleep,
            telemetry=self._telemetry,
        )
        self._resolver = RelatedVideoResolver(
            source,
            self._executor,
            self._batch_fetcher,
            sleep=sleep,
        )

    @property
    def pagination_engine(self) -> PaginationEngine:
        return self._engine

    async def search_videos(self, query: str, limit: int = DEFAULT_LIST_LIMIT) -> list[Video]:
        normalized_query = (query or "").strip()
        if not normalized_query:
            LOGGER.debug("empty search query; returning no videos")
            return []
        return await self._cached_listing(
            make_cache_key("search", normalized_query, limit),
            label="search",
            query=normalized_query,
            limit=limit,
        )

    async def videos_by_category(
        self,
        category: str | None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Video]:
        if is_all_categories(category):
            return await self.all_videos(limit)
        normalized_category = (category or "").strip()
        videos = await self._cached_listing(
            make_cache_key("category", normalized_category, limit),
            label="category",
            filters={"t": normalized_category},
            limit=limit,
        )
        if videos:
            return videos
        LOGGER.info(
            "category listing empty; falling back to search category=%s",
            normalized_category,
        )
        return await self.search_videos(normalized_category, limit)

    async def all_videos(
        self,
        limit: int = DEFAULT_LIST_LIMIT,
        progressive: bool = False,
    ) -> list[Video]:
        if progressive:
            try:
                result = await self._engine.load_progressive(
                    self._progressive_initial_pages,
                    self._progressive_max_pages,
                )
            except Exception:
                LOGGER.warning("progressive catalog load failed", exc_info=True)
                return []
            return list(result.videos[: max(0, limit)])
        return await self._cached_listing(
            make_cache_key("all", limit),
            label="all",
            limit=limit,
        )

    async def videos_for_filter(
        self,
        filter_name: str = "",
        query: str = "",
        limit: int = DEFAULT_LIST_LIMIT,
        page: int = 1,
    ) -> list[Video]:
        normalized_filter = (filter_name or "").strip()
        normalized_query = (query or "").strip()
        filters = None if is_all_categories(normalized_filter) else {"t": normalized_filter}
        return await self._cached_listing(
            make_cache_key("filter", normalized_filter, normalized_query, limit, max(1, page)),
            label="filter",
            filters=filters,
            query=normalized_query or None,
            limit=limit,
            page=max(1, page),
        )

    async def video_by_id(self, video_id: object) -> Video | None:
        normalized_id = normalize_video_id(video_id)
        if not normalized_id:
            return None
        cached = self._item_cache.get(video_cache_key(normalized_id))
        if isinstance(cached, Video):
            LOGGER.debug("video cache hit video_id=%s", normalized_id)
            return cached

        try:
            records = await self._executor.execute(
                lambda: self._source.fetch_details([normalized_id]),
                *VIDEO_LOOKUP_RETRY,
                label=f"video:{normalized_id}",
            )
        except Exception as exc:
            LOGGER.warning(
                "video lookup failed video_id=%s error_type=%s error=%s",
                normalized_id,
                type(exc).__name__,
                exc,
            )
            return None

        for record in records:
            video = normalize_video(record)
            if video.id == normalized_id:
                self._item_cache.set(video_cache_key(normalized_id), video)
                return video
        LOGGER.info("video not found upstream video_id=%s", normalized_id)
        return None

    async def related_videos(
        self,
        seed_id: object,
        seed_category: str | None,
        seed_title: str | None,
        limit: int = DEFAULT_RELATED_LIMIT,
    ) -> list[Video]:
        return await self._guard(
            "related_videos",
            lambda: self._resolver.find_related(seed_id, seed_category, seed_title, limit),
            default=[],
        )

    async def more_in_category(
        self,
        category: str | None,
        exclude_ids: Iterable[object] = (),
        page: int = 1,
        limit: int = DEFAULT_RELATED_LIMIT,
    ) -> MoreVideosResult:
        return await self._guard(
            "more_in_category",
            lambda: self._resolver.more_in_category(category, exclude_ids, page, limit),
            default=MoreVideosResult.empty(),
        )

    async def paged_videos(
        self,
        start_page: int = 1,
        page_count: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PageResult:
        return await self._guard(
            "paged_videos",
            lambda: self._engine.load_pages(start_page, page_count, page_size),
            default=PageResult.empty(),
        )

    async def list_categories(self) -> list[str]:
        outcomes = await asyncio.gather(
            *(
                self._source.list_page(page=page, page_size=page_size)
                for page, page_size in CATEGORY_DISCOVERY_LISTINGS
            ),
            return_exceptions=True,
        )
        categories: set[str] = set()
        failures = 0
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                failures += 1
                LOGGER.warning(
                    "category source failed source=%s error_type=%s",
                    index + 1,
                    type(outcome).__name__,
                )
                continue
            for entry in outcome:
                label = entry_category(entry)
                if label and label != "undefined":
                    categories.add(label)
        if failures == len(outcomes):
            LOGGER.warning("every category source failed; using fallback categories")
            return list(FALLBACK_CATEGORIES)
        return sorted(categories)

    async def check_api_status(self) -> ApiStatus:
        try:
            entries = await self._source.list_page(page_size=1)
        except Exception as exc:
            LOGGER.warning("upstream status check failed error_type=%s", type(exc).__name__)
            self._telemetry.emit(
                "catalog.upstream.status",
                status="error",
                error_type=type(exc).__name__,
            )
            return ApiStatus(status="error", error=str(exc) or type(exc).__name__)
        self._telemetry.emit("catalog.upstream.status", status="ok", sample_count=len(entries))
        return ApiStatus(status="ok", sample_count=len(entries))

    async def aclose(self) -> None:
        await self._engine.aclose()
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()

    async def _cached_listing(
        self,
        cache_key: str,
        *,
        label: str,
        limit: int,
        filters: Mapping[str, str] | None = None,
        query: str | None = None,
        page: int | None = None,
    ) -> list[Video]:
        if limit < 1:
            return []
        cached = self._item_cache.get(cache_key)
        if isinstance(cached, tuple):
            LOGGER.debug("listing cache hit key=%s", cache_key)
            return list(cached)

        try:
            entries = await self._executor.execute(
                lambda: self._source.list_page(
                    page=page,
                    page_size=limit,
                    filters=filters,
                    query=query,
                ),
                *LIST_REQUEST_RETRY,
                label=label,
            )
        except Exception as exc:
            LOGGER.warning(
                "catalog listing failed label=%s error_type=%s error=%s",
                label,
                type(exc).__name__,
                exc,
            )
            return []

        listed = [entry for entry in entries[:limit] if entry_id(entry)]
        if not listed:
            LOGGER.info("catalog listing empty label=%s", label)
            return []
        videos = clean_videos(
            await self._batch_fetcher.fetch_details(
                [entry_id(entry) for entry in listed],
                index_list_entries(listed),
            )
        )
        if videos:
            self._item_cache.set(cache_key, tuple(videos))
        LOGGER.info("catalog listing resolved label=%s videos=%s", label, len(videos))
        return videos

    async def _guard(
        self,
        operation: str,
        call: Callable[[], Awaitable[ResultT]],
        *,
        default: ResultT,
    ) -> ResultT:
        try:
            return await call()
        except Exception:
            LOGGER.warning("catalog operation failed operation=%s", operation, exc_info=True)
            return default
