from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Upstream category labels and the numeric type ids the list endpoint accepts in `t=`.
# Display names and filter construction both read this table.
CATEGORY_TYPE_IDS: Mapping[str, str] = {
    "伦理片": "20",
    "悬疑片": "40",
    "战争片": "41",
    "犯罪片": "42",
    "剧情片": "43",
    "恐怖片": "44",
    "科幻片": "45",
    "爱情片": "46",
    "喜剧片": "47",
    "动作片": "48",
    "奇幻片": "49",
    "冒险片": "50",
    "惊悚片": "51",
    "动画片": "52",
    "记录片": "53",
}
TYPE_ID_CATEGORIES: Mapping[str, str] = {
    type_id: name for name, type_id in CATEGORY_TYPE_IDS.items()
}

FALLBACK_CATEGORIES: tuple[str, ...] = ("General", "Entertainment", "News", "Sports")


def type_id_for_category(category: str) -> str | None:
    normalized = category.strip()
    if not normalized:
        return None
    exact = CATEGORY_TYPE_IDS.get(normalized)
    if exact is not None:
        return exact
    for name, type_id in CATEGORY_TYPE_IDS.items():
        if name in normalized:
            return type_id
    return None


def category_name_for(value: str) -> str:
    normalized = value.strip()
    if normalized in CATEGORY_TYPE_IDS:
        return normalized
    name = TYPE_ID_CATEGORIES.get(normalized)
    if name is not None:
        return name
    if normalized.isdigit():
        return f"Category {normalized}"
    return normalized


def is_all_categories(category: str | None) -> bool:
    return category is None or not category.strip() or category.strip().lower() == "all"


def related_filter_encodings(category: str) -> list[dict[str, str]]:
    encodings = [{"t": category}, {"class": category}, {"wd": category}]
    type_id = type_id_for_category(category)
    if type_id is not None:
        encodings.append({"t": type_id})
    return encodings


def more_in_category_filter_encodings(category: str) -> list[dict[str, str]]:
    encodings: list[dict[str, str]] = []
    type_id = type_id_for_category(category)
    if type_id is not None:
        encodings.append({"t": type_id})
    encodings.append({"t": category})
    encodings.append({"wd": category})
    return encodings


def next_page_probe_filter(category: str) -> dict[str, str]:
    type_id = type_id_for_category(category)
    return {"t": type_id if type_id is not None else category}


def entry_category(raw: Mapping[str, Any]) -> str:
    for key in ("type_name", "vod_class"):
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
