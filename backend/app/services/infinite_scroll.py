from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

from backend.app.services.category_map import category_name_for
from backend.app.services.related_resolver import MoreVideosResult
from backend.app.services.video_normalizer import Video, dedupe_videos

if TYPE_CHECKING:
    from backend.app.services.catalog_service import CatalogService

LOGGER = logging.getLogger("streamshelf.infinite_scroll")

DEFAULT_SCROLL_PAGE_SIZE = 12
DEFAULT_THRESHOLD_PX = 200

PageLoader = Callable[[int, frozenset[str]], Awaitable[MoreVideosResult]]


class ScrollState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    EXHAUSTED = "exhausted"


def is_near_bottom(
    scroll_top: float,
    scroll_height: float,
    client_height: float,
    threshold: float = DEFAULT_THRESHOLD_PX,
) -> bool:
    return scroll_height - scroll_top <= client_height + threshold


class InfiniteScrollController:
    """
    Append-only video feed driven by scroll or sentinel-intersection events.

    At most one load is in flight; triggers that arrive while loading, or after
    the feed is exhausted, are ignored.
    """

    def __init__(
        self,
        loader: PageLoader,
        *,
        page_size: int = DEFAULT_SCROLL_PAGE_SIZE,
        threshold_px: int = DEFAULT_THRESHOLD_PX,
        initial_videos: Iterable[Video] = (),
        start_page: int = 1,
    ) -> None:
        self._loader = loader
        self._page_size = max(1, page_size)
        self._threshold_px = max(0, threshold_px)
        self._start_page = max(1, start_page)
        self._videos: list[Video] = []
        self._seen_ids: set[str] = set()
        self._page = self._start_page
        self._state = ScrollState.IDLE
        self.reset(initial_videos)

    @property
    def videos(self) -> list[Video]:
        return list(self._videos)

    @property
    def page(self) -> int:
        return self._page

    @property
    def state(self) -> ScrollState:
        return self._state

    @property
    def exhausted(self) -> bool:
        return self._state is ScrollState.EXHAUSTED

    def reset(self, initial_videos: Iterable[Video] = ()) -> None:
        self._seen_ids = set()
        self._videos = dedupe_videos(initial_videos, self._seen_ids)
        self._page = self._start_page
        self._state = ScrollState.IDLE

    async def on_scroll(
        self,
        scroll_top: float,
        scroll_height: float,
        client_height: float,
    ) -> list[Video]:
        if not is_near_bottom(scroll_top, scroll_height, client_height, self._threshold_px):
            return []
        return await self.load_more()

    async def on_intersect(self, is_intersecting: bool) -> list[Video]:
        if not is_intersecting:
            return []
        return await self.load_more()

    async def load_more(self) -> list[Video]:
        if self._state is not ScrollState.IDLE:
            return []

        self._state = ScrollState.LOADING
        try:
            result = await self._loader(self._page, frozenset(self._seen_ids))
        except Exception:
            LOGGER.warning("infinite scroll load failed page=%s", self._page, exc_info=True)
            self._state = ScrollState.EXHAUSTED
            return []

        appended = dedupe_videos(result.videos, self._seen_ids)
        if appended:
            self._videos.extend(appended)
            self._page += 1

        short_page = len(result.videos) < self._page_size
        if not result.has_more or short_page or not appended:
            self._state = ScrollState.EXHAUSTED
        else:
            self._state = ScrollState.IDLE
        LOGGER.debug(
            "infinite scroll page merged page=%s appended=%s state=%s",
            self._page,
            len(appended),
            self._state,
        )
        return appended


def for_category(
    service: CatalogService,
    category: str,
    *,
    page_size: int = DEFAULT_SCROLL_PAGE_SIZE,
    initial_videos: Iterable[Video] = (),
    start_page: int = 1,
) -> InfiniteScrollController:
    category_name = category_name_for(category)

    async def load(page: int, exclude_ids: frozenset[str]) -> MoreVideosResult:
        return await service.more_in_category(
            category_name,
            exclude_ids,
            page=page,
            limit=page_size,
        )

    return InfiniteScrollController(
        load,
        page_size=page_size,
        initial_videos=initial_videos,
        start_page=start_page,
    )


def for_filter(
    service: CatalogService,
    filter_name: str,
    *,
    query: str = "",
    page_size: int = DEFAULT_SCROLL_PAGE_SIZE,
    initial_videos: Iterable[Video] = (),
    start_page: int = 1,
) -> InfiniteScrollController:
    async def load(page: int, exclude_ids: frozenset[str]) -> MoreVideosResult:
        # Excluded ids are dropped by the controller's merge, so the page stays full-sized here.
        del exclude_ids
        videos = await service.videos_for_filter(
            filter_name,
            query=query,
            limit=page_size,
            page=page,
        )
        return MoreVideosResult(videos=tuple(videos), has_more=len(videos) >= page_size)

    return InfiniteScrollController(
        load,
        page_size=page_size,
        initial_videos=initial_videos,
        start_page=start_page,
    )
