from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from backend.app.services.catalog_service import ApiStatus
from backend.app.services.pagination_engine import PageResult
from backend.app.services.related_resolver import MoreVideosResult
from backend.app.services.video_normalizer import Video

ApiStatusValue = Literal["ok", "error"]


class VideoPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    channel_name: str
    views: int = Field(ge=0)
    duration_seconds: int = Field(ge=0)
    upload_date: str
    thumbnail_url: str
    video_url: str
    description: str
    category: str


class VideoListPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    videos: list[VideoPayload]
    count: int = Field(ge=0)


class PageResultPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    videos: list[VideoPayload]
    has_more: bool
    pages_loaded: int = Field(ge=0)
    total_count: int = Field(ge=0)


class MoreVideosPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    videos: list[VideoPayload]
    has_more: bool


class CategoriesPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    categories: list[str]


class ApiStatusPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: ApiStatusValue
    error: str | None = None
    sample_count: int = Field(default=0, ge=0)


def video_payload(video: Video) -> VideoPayload:
    return VideoPayload(
        id=video.id,
        title=video.title,
        channel_name=video.channel_name,
        views=video.views,
        duration_seconds=video.duration_seconds,
        upload_date=video.upload_date,
        thumbnail_url=video.thumbnail_url,
        video_url=video.video_url,
        description=video.description,
        category=video.category,
    )


def video_list_payload(videos: Iterable[Video]) -> VideoListPayload:
    payloads = [video_payload(video) for video in videos]
    return VideoListPayload(videos=payloads, count=len(payloads))


def page_result_payload(result: PageResult) -> PageResultPayload:
    return PageResultPayload(
        videos=[video_payload(video) for video in result.videos],
        has_more=result.has_more,
        pages_loaded=result.pages_loaded,
        total_count=result.total_count,
    )


def more_videos_payload(result: MoreVideosResult) -> MoreVideosPayload:
    return MoreVideosPayload(
        videos=[video_payload(video) for video in result.videos],
        has_more=result.has_more,
    )


def api_status_payload(status: ApiStatus) -> ApiStatusPayload:
    return ApiStatusPayload(
        status=status.status,
        error=status.error,
        sample_count=status.sample_count,
    )
