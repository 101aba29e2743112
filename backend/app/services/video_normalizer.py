from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, cast

UNTITLED = "Untitled"
UNKNOWN_CHANNEL = "Unknown"
UNSPECIFIED_DATE = "Unspecified"
NO_DESCRIPTION = "No description"
DEFAULT_CATEGORY = "General"
PLACEHOLDER_THUMBNAIL_URL = (
    "https://images.unsplash.com/photo-1611162617213-7d7a39e9b1d7?w=640&h=360&fit=crop"
)
MAX_TITLE_LENGTH = 200

_LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")
_YEAR_PATTERN = re.compile(r"^\s*(\d{4})\s*$")
_PLAY_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(https?://[^$#]+\.m3u8[^$#]*)", re.IGNORECASE),
    re.compile(r"(https?://[^$#]+\.mp4[^$#]*)", re.IGNORECASE),
)


def _empty_raw() -> Mapping[str, Any]:
    return {}


@dataclass(frozen=True)
class Video:
    id: str
    title: str = UNTITLED
    channel_name: str = UNKNOWN_CHANNEL
    views: int = 0
    duration_seconds: int = 0
    upload_date: str = UNSPECIFIED_DATE
    thumbnail_url: str = PLACEHOLDER_THUMBNAIL_URL
    video_url: str = ""
    description: str = NO_DESCRIPTION
    category: str = DEFAULT_CATEGORY
    raw: Mapping[str, Any] = field(default_factory=_empty_raw, compare=False, repr=False)


def normalize_video(raw: Mapping[str, Any] | None) -> Video:
    """
    Map one list or detail record onto a `Video`.

    Provider records mix `vod_*` field names with already-normalized ones, so
    each field takes the first non-empty candidate. Nothing in here raises: a
    malformed record still yields a best-effort video with placeholder values.
    """
    record = _as_record(raw)
    return Video(
        id=normalize_video_id(_first_present(record, "vod_id", "id")),
        title=_text_or_default(_first_present(record, "vod_name", "title"), UNTITLED),
        channel_name=_text_or_default(
            _first_present(record, "vod_director", "channelName", "type_name"),
            UNKNOWN_CHANNEL,
        ),
        views=parse_int_or_zero(_first_present(record, "vod_hits", "views")),
        duration_seconds=parse_int_or_zero(_first_present(record, "vod_duration", "duration")),
        upload_date=_text_or_default(
            _first_present(record, "vod_year", "uploadDate", "vod_time"),
            UNSPECIFIED_DATE,
        ),
        thumbnail_url=_text_or_default(
            _first_present(record, "vod_pic", "thumbnail"),
            PLACEHOLDER_THUMBNAIL_URL,
        ),
        video_url=resolve_play_url(_first_present(record, "vod_play_url", "videoUrl")),
        description=_text_or_default(
            _first_present(record, "vod_content", "description"),
            NO_DESCRIPTION,
        ),
        category=_text_or_default(
            _first_present(record, "type_name", "category", "vod_class"),
            DEFAULT_CATEGORY,
        ),
        raw=MappingProxyType(record),
    )


def normalize_video_id(raw_value: object) -> str:
    if raw_value is None or isinstance(raw_value, bool):
        return ""
    if isinstance(raw_value, float) and raw_value.is_integer():
        return str(int(raw_value))
    return str(raw_value).strip()


def parse_int_or_zero(raw_value: object) -> int:
    if raw_value is None or isinstance(raw_value, bool):
        return 0
    if isinstance(raw_value, int):
        return max(0, raw_value)
    if isinstance(raw_value, float):
        if not math.isfinite(raw_value):
            return 0
        return max(0, int(raw_value))
    if isinstance(raw_value, str):
        match = _LEADING_INT_PATTERN.match(raw_value)
        if match is None:
            return 0
        return max(0, int(match.group(1)))
    return 0


def resolve_play_url(raw_value: object) -> str:
    """Pick the first playable stream URL out of a `label$url#label$url` play string."""
    if not isinstance(raw_value, str) or not raw_value.strip():
        return ""
    for pattern in _PLAY_URL_PATTERNS:
        match = pattern.search(raw_value)
        if match is not None:
            return match.group(1).replace("$", "").strip()
    return ""


def parse_upload_timestamp(label: str | None) -> float:
    if not label:
        return 0.0
    year_match = _YEAR_PATTERN.match(label)
    if year_match is not None:
        year = int(year_match.group(1))
        if year < 1:
            return 0.0
        return datetime(year, 1, 1, tzinfo=UTC).timestamp()

    normalized = label.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def popularity_sort_key(video: Video) -> tuple[int, float]:
    return (video.views, parse_upload_timestamp(video.upload_date))


def sort_by_popularity(videos: Iterable[Video]) -> list[Video]:
    # Stable sort keeps arrival order for exact ties.
    return sorted(videos, key=popularity_sort_key, reverse=True)


def dedupe_videos(videos: Iterable[Video], seen: set[str] | None = None) -> list[Video]:
    seen_ids = seen if seen is not None else set()
    unique: list[Video] = []
    for video in videos:
        if not video.id or video.id in seen_ids:
            continue
        seen_ids.add(video.id)
        unique.append(video)
    return unique


def merge_unique(existing: Iterable[Video], incoming: Iterable[Video]) -> list[Video]:
    merged = dedupe_videos(existing)
    seen_ids = {video.id for video in merged}
    merged.extend(dedupe_videos(incoming, seen_ids))
    return merged


def clean_videos(videos: Iterable[Video]) -> list[Video]:
    cleaned: list[Video] = []
    for video in videos:
        if not video.id or not video.title.strip():
            continue
        if len(video.title) > MAX_TITLE_LENGTH:
            video = replace(video, title=f"{video.title[:MAX_TITLE_LENGTH]}...")
        cleaned.append(video)
    return cleaned


def entry_id(raw: Mapping[str, Any]) -> str:
    return normalize_video_id(_first_present(raw, "vod_id", "id"))


def _as_record(raw: object) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        raw_mapping = cast(Mapping[object, object], raw)
        return {key: value for key, value in raw_mapping.items() if isinstance(key, str)}
    return {}


def _first_present(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is None or value is False:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, int | float) and not isinstance(value, bool) and value == 0:
            continue
        return value
    return None


def _text_or_default(raw_value: object, default: str) -> str:
    if raw_value is None:
        return default
    text = str(raw_value).strip()
    return text or default
