from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.dependencies import get_catalog_service
from backend.app.models.catalog_contracts import (
    ApiStatusPayload,
    CategoriesPayload,
    MoreVideosPayload,
    PageResultPayload,
    VideoListPayload,
    VideoPayload,
    api_status_payload,
    more_videos_payload,
    page_result_payload,
    video_list_payload,
    video_payload,
)
from backend.app.services.catalog_service import CatalogService

router = APIRouter()

Catalog = Annotated[CatalogService, Depends(get_catalog_service)]
Limit = Annotated[int, Query(ge=1, le=100)]
PageNumber = Annotated[int, Query(ge=1)]


@router.get(
    "/videos",
    response_model=VideoListPayload,
    tags=["videos"],
    operation_id="list_videos",
)
async def list_videos(
    catalog: Catalog,
    limit: Limit = 20,
    progressive: bool = False,
) -> VideoListPayload:
    return video_list_payload(await catalog.all_videos(limit, progressive=progressive))


@router.get(
    "/videos/search",
    response_model=VideoListPayload,
    tags=["videos"],
    operation_id="search_videos",
)
async def search_videos(
    catalog: Catalog,
    q: Annotated[str, Query(max_length=200)] = "",
    limit: Limit = 20,
) -> VideoListPayload:
    return video_list_payload(await catalog.search_videos(q, limit))


@router.get(
    "/videos/by-category",
    response_model=VideoListPayload,
    tags=["videos"],
    operation_id="videos_by_category",
)
async def videos_by_category(
    catalog: Catalog,
    category: Annotated[str, Query(max_length=120)] = "",
    limit: Limit = 20,
) -> VideoListPayload:
    return video_list_payload(await catalog.videos_by_category(category, limit))


@router.get(
    "/videos/pages",
    response_model=PageResultPayload,
    tags=["videos"],
    operation_id="paged_videos",
)
async def paged_videos(
    catalog: Catalog,
    start_page: PageNumber = 1,
    page_count: Annotated[int, Query(ge=1, le=20)] = 1,
    page_size: Limit = 18,
) -> PageResultPayload:
    return page_result_payload(await catalog.paged_videos(start_page, page_count, page_size))


@router.get(
    "/videos/filters/{filter_name}",
    response_model=VideoListPayload,
    tags=["videos"],
    operation_id="videos_for_filter",
)
async def videos_for_filter(
    filter_name: str,
    catalog: Catalog,
    q: Annotated[str, Query(max_length=200)] = "",
    page: PageNumber = 1,
    limit: Limit = 20,
) -> VideoListPayload:
    return video_list_payload(
        await catalog.videos_for_filter(filter_name, query=q, limit=limit, page=page)
    )


@router.get(
    "/videos/{video_id}",
    response_model=VideoPayload,
    tags=["videos"],
    operation_id="get_video",
)
async def get_video(video_id: str, catalog: Catalog) -> VideoPayload:
    video = await catalog.video_by_id(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")
    return video_payload(video)


@router.get(
    "/videos/{video_id}/related",
    response_model=VideoListPayload,
    tags=["videos"],
    operation_id="related_videos",
)
async def related_videos(
    video_id: str,
    catalog: Catalog,
    category: Annotated[str, Query(max_length=120)] = "",
    title: Annotated[str, Query(max_length=400)] = "",
    limit: Annotated[int, Query(ge=1, le=50)] = 12,
) -> VideoListPayload:
    context_tokens = bind_contextvars(seed_video_id=video_id, seed_category=category)
    try:
        return video_list_payload(
            await catalog.related_videos(video_id, category, title, limit)
        )
    finally:
        reset_contextvars(**context_tokens)


@router.get(
    "/categories",
    response_model=CategoriesPayload,
    tags=["categories"],
    operation_id="list_categories",
)
async def list_categories(catalog: Catalog) -> CategoriesPayload:
    return CategoriesPayload(categories=await catalog.list_categories())


@router.get(
    "/categories/{category}/more",
    response_model=MoreVideosPayload,
    tags=["categories"],
    operation_id="more_in_category",
)
async def more_in_category(
    category: str,
    catalog: Catalog,
    exclude_ids: Annotated[list[str] | None, Query()] = None,
    page: PageNumber = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 12,
) -> MoreVideosPayload:
    result = await catalog.more_in_category(category, exclude_ids or [], page, limit)
    return more_videos_payload(result)


@router.get(
    "/upstream/status",
    response_model=ApiStatusPayload,
    tags=["system"],
    operation_id="upstream_status",
)
async def upstream_status(catalog: Catalog) -> ApiStatusPayload:
    return api_status_payload(await catalog.check_api_status())
