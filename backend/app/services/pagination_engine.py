from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.services.batch_fetcher import BatchFetcher, index_list_entries
from backend.app.services.catalog_client import CatalogSource
from backend.app.services.retry import PAGE_REQUEST_RETRY, RetryExecutor, SleepFunction
from backend.app.services.ttl_cache import HomepageSnapshotSlot
from backend.app.services.video_normalizer import (
    Video,
    dedupe_videos,
    entry_id,
    merge_unique,
    normalize_video,
    sort_by_popularity,
)
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("streamshelf.pagination")

DEFAULT_GROUP_SIZE = 3
DEFAULT_PAGE_SIZE = 18
GROUP_PAUSE_SECONDS = 0.8
BACKGROUND_BATCH_PAUSE_SECONDS = 1.0
DEFAULT_BACKGROUND_BATCH_PAGES = 5


@dataclass(frozen=True)
class PageResult:
    videos: tuple[Video, ...]
    has_more: bool
    pages_loaded: int
    total_count: int

    @classmethod
    def empty(cls) -> PageResult:
        return cls(videos=(), has_more=False, pages_loaded=0, total_count=0)


@dataclass(frozen=True)
class _PageFetch:
    page: int
    entries: list[dict[str, Any]]
    failed: bool


class PaginationEngine:
    def __init__(
        self,
        source: CatalogSource,
        executor: RetryExecutor,
        batch_fetcher: BatchFetcher,
        snapshot_slot: HomepageSnapshotSlot,
        *,
        group_size: int = DEFAULT_GROUP_SIZE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        background_batch_pages: int = DEFAULT_BACKGROUND_BATCH_PAGES,
        sleep: SleepFunction = asyncio.sleep,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._source = source
        self._executor = executor
        self._batch_fetcher = batch_fetcher
        self._snapshot_slot = snapshot_slot
        self._group_size = max(1, group_size)
        self._default_page_size = max(1, default_page_size)
        self._background_batch_pages = max(1, background_batch_pages)
        self._sleep = sleep
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._background_task: asyncio.Task[None] | None = None

    @property
    def default_page_size(self) -> int:
        return self._default_page_size

    @property
    def background_task(self) -> asyncio.Task[None] | None:
        return self._background_task

    async def load_pages(
        self,
        start_page: int,
        page_count: int,
        page_size: int | None = None,
    ) -> PageResult:
        """
        Load `page_count` list pages starting at `start_page` and resolve details.

        Pages run in groups of `group_size`, concurrently inside a group and in
        increasing page order across groups. `has_more` is only a heuristic: it
        stays true when every page came back non-empty.
        """
        if page_count < 1:
            return PageResult.empty()
        first_page = max(1, start_page)
        size = max(1, page_size if page_size is not None else self._default_page_size)
        last_page = first_page + page_count - 1

        seen_ids: set[str] = set()
        collected: list[Video] = []
        pages_processed = 0
        saw_empty_page = False

        for group_start in range(first_page, last_page + 1, self._group_size):
            group_end = min(group_start + self._group_size - 1, last_page)
            fetches = await asyncio.gather(
                *(self._fetch_page(page, size) for page in range(group_start, group_end + 1))
            )
            for fetch in fetches:
                if not fetch.entries:
                    saw_empty_page = True
                    LOGGER.info(
                        "catalog page empty page=%s failed=%s; treating as end of data",
                        fetch.page,
                        fetch.failed,
                    )
                    continue
                collected.extend(await self._resolve_page(fetch, size, seen_ids))
                pages_processed += 1

            if group_end < last_page:
                await self._sleep(GROUP_PAUSE_SECONDS)

        videos = tuple(sort_by_popularity(dedupe_videos(collected)))
        has_more = not saw_empty_page and pages_processed == page_count
        LOGGER.info(
            "catalog pages loaded start=%s count=%s processed=%s videos=%s has_more=%s",
            first_page,
            page_count,
            pages_processed,
            len(videos),
            has_more,
        )
        return PageResult(
            videos=videos,
            has_more=has_more,
            pages_loaded=pages_processed,
            total_count=len(videos),
        )

    async def load_progressive(
        self,
        initial_pages: int = 5,
        max_pages: int = 50,
        page_size: int | None = None,
    ) -> PageResult:
        cached = self._snapshot_slot.get()
        if cached is not None:
            LOGGER.debug("homepage snapshot hit videos=%s", cached.total_count)
            return cached

        size = page_size if page_size is not None else self._default_page_size
        initial = await self.load_pages(1, initial_pages, size)
        if not initial.videos:
            LOGGER.warning("progressive load found no videos in the initial pages")
            return initial

        if initial.has_more and initial_pages >= max_pages:
            initial = replace(initial, has_more=False)
        self._snapshot_slot.replace(initial)
        if initial.has_more:
            self._start_background(initial_pages + 1, max_pages, size)
        return initial

    async def wait_for_background(self) -> None:
        task = self._background_task
        if task is None:
            return
        await asyncio.gather(task, return_exceptions=True)

    async def aclose(self) -> None:
        task = self._background_task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def _start_background(self, next_page: int, max_pages: int, page_size: int) -> None:
        if self._background_task is not None and not self._background_task.done():
            LOGGER.debug("progressive background load already running; not starting another")
            return
        self._background_task = asyncio.create_task(
            self._continue_in_background(next_page, max_pages, page_size),
            name="streamshelf-progressive-load",
        )

    async def _continue_in_background(self, next_page: int, max_pages: int, page_size: int) -> None:
        run_id = uuid4().hex
        tokens = bind_contextvars(progressive_run_id=run_id)
        started_at = time.perf_counter()
        self._telemetry.emit(
            "catalog.progressive.background.start",
            run_id=run_id,
            next_page=next_page,
            max_pages=max_pages,
        )
        try:
            batch_start = next_page
            while batch_start <= max_pages:
                batch_end = min(batch_start + self._background_batch_pages - 1, max_pages)
                result = await self.load_pages(batch_start, batch_end - batch_start + 1, page_size)
                exhausted = not result.videos or batch_end >= max_pages
                snapshot = self._merge_into_snapshot(result, exhausted=exhausted)
                if snapshot is None:
                    LOGGER.info("homepage snapshot expired; stopping progressive background load")
                    break
                if not snapshot.has_more:
                    break
                batch_start = batch_end + 1
                if batch_start <= max_pages:
                    await self._sleep(BACKGROUND_BATCH_PAUSE_SECONDS)
        except Exception as exc:
            self._telemetry.emit(
                "catalog.progressive.background.error",
                run_id=run_id,
                duration_ms=int((time.perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            LOGGER.warning("progressive background load failed", exc_info=True)
        else:
            snapshot = self._snapshot_slot.get()
            self._telemetry.emit(
                "catalog.progressive.background.finish",
                run_id=run_id,
                duration_ms=int((time.perf_counter() - started_at) * 1000),
                total_count=snapshot.total_count if snapshot is not None else 0,
            )
        finally:
            reset_contextvars(**tokens)

    def _merge_into_snapshot(self, result: PageResult, *, exhausted: bool) -> PageResult | None:
        # Read, merge and replace with no await in between so readers never see a partial snapshot.
        current = self._snapshot_slot.get()
        if current is None:
            return None
        merged = sort_by_popularity(merge_unique(current.videos, result.videos))
        snapshot = PageResult(
            videos=tuple(merged),
            has_more=False if exhausted else result.has_more,
            pages_loaded=current.pages_loaded + result.pages_loaded,
            total_count=len(merged),
        )
        self._snapshot_slot.replace(snapshot)
        LOGGER.info(
            "homepage snapshot extended added=%s total=%s has_more=%s",
            len(merged) - len(current.videos),
            snapshot.total_count,
            snapshot.has_more,
        )
        return snapshot

    async def _fetch_page(self, page: int, page_size: int) -> _PageFetch:
        try:
            entries = await self._executor.execute(
                lambda: self._source.list_page(page=page, page_size=page_size),
                *PAGE_REQUEST_RETRY,
                label=f"list_page:{page}",
            )
        except Exception as exc:
            LOGGER.warning(
                "catalog page failed page=%s error_type=%s error=%s",
                page,
                type(exc).__name__,
                exc,
            )
            return _PageFetch(page=page, entries=[], failed=True)
        return _PageFetch(page=page, entries=entries, failed=False)

    async def _resolve_page(
        self,
        fetch: _PageFetch,
        page_size: int,
        seen_ids: set[str],
    ) -> list[Video]:
        fresh_entries: list[dict[str, Any]] = []
        page_ids: set[str] = set()
        for entry in fetch.entries:
            video_id = entry_id(entry)
            if not video_id or video_id in seen_ids or video_id in page_ids:
                continue
            page_ids.add(video_id)
            fresh_entries.append(entry)
        fresh_entries = fresh_entries[:page_size]
        if not fresh_entries:
            return []

        try:
            details = await self._batch_fetcher.fetch_details(
                [entry_id(entry) for entry in fresh_entries],
                index_list_entries(fresh_entries),
            )
        except Exception:
            LOGGER.warning(
                "detail resolution failed page=%s; using list records",
                fetch.page,
                exc_info=True,
            )
            details = [normalize_video(entry) for entry in fresh_entries]

        accepted = dedupe_videos(details, seen_ids)
        LOGGER.debug("catalog page resolved page=%s videos=%s", fetch.page, len(accepted))
        return accepted
