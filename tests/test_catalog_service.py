from __future__ import annotations

import asyncio

from catalog_fakes import (
    FakeCatalogSource,
    RecordingSleep,
    build_service,
    ids_of,
    make_record,
    sample_records,
)

from backend.app.services.catalog_service import ApiStatus
from backend.app.services.category_map import FALLBACK_CATEGORIES
from backend.app.services.video_normalizer import MAX_TITLE_LENGTH, sort_by_popularity


def test_search_videos_resolves_details_and_caches() -> None:
    source = FakeCatalogSource(records=sample_records(12))
    service = build_service(source)

    first = asyncio.run(service.search_videos("Video 1", limit=5))
    list_calls = len(source.list_calls)
    second = asyncio.run(service.search_videos("Video 1", limit=5))

    assert sorted(ids_of(first), key=int) == ["1", "10", "11", "12"]
    assert all(video.views > 0 for video in first)
    assert source.list_calls[0].query == "Video 1"
    assert source.list_calls[0].page_size == 5
    assert second == first
    assert len(source.list_calls) == list_calls


def test_blank_search_makes_no_requests() -> None:
    source = FakeCatalogSource(records=sample_records(3))
    service = build_service(source)

    assert asyncio.run(service.search_videos("   ")) == []
    assert source.list_calls == []


def test_listing_failure_returns_empty_list() -> None:
    source = FakeCatalogSource(records=sample_records(3), list_failures_remaining=4)
    sleep = RecordingSleep()
    service = build_service(source, sleep=sleep)

    assert asyncio.run(service.search_videos("Video")) == []
    assert len(source.list_calls) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


def test_videos_by_category_blank_or_all_behaves_as_all_videos() -> None:
    source = FakeCatalogSource(records=sample_records(6))
    service = build_service(source)

    blank = asyncio.run(service.videos_by_category("", limit=4))
    everything = asyncio.run(service.videos_by_category("all", limit=4))

    assert ids_of(blank) == ids_of(everything)
    assert len(blank) == 4
    assert source.list_calls[0].filters == {}
    assert source.list_calls[0].query is None


def test_videos_by_category_filters_by_type() -> None:
    records = [
        *sample_records(3, category="剧情片"),
        *sample_records(3, category="动作片", start=4),
    ]
    service = build_service(FakeCatalogSource(records=records))

    videos = asyncio.run(service.videos_by_category("动作片"))

    assert sorted(ids_of(videos), key=int) == ["4", "5", "6"]


def test_empty_category_falls_back_to_search() -> None:
    records = [
        make_record(1, name="Kungfu Legends", category="剧情片", hits=5),
        make_record(2, name="Quiet Days", category="剧情片", hits=9),
    ]
    source = FakeCatalogSource(records=records)
    service = build_service(source)

    videos = asyncio.run(service.videos_by_category("Kungfu"))

    assert ids_of(videos) == ["1"]
    assert source.list_calls[0].filters == {"t": "Kungfu"}
    assert source.list_calls[1].query == "Kungfu"


def test_all_videos_progressive_slices_snapshot() -> None:
    source = FakeCatalogSource(records=sample_records(12))
    service = build_service(
        source,
        default_page_size=5,
        progressive_initial_pages=2,
        progressive_max_pages=2,
    )

    videos = asyncio.run(service.all_videos(3, progressive=True))

    assert len(videos) == 3
    assert videos == sort_by_popularity(videos)
    assert service.pagination_engine.background_task is None


def test_video_by_id_uses_cache_and_normalizes_ids() -> None:
    source = FakeCatalogSource(records=sample_records(3))
    service = build_service(source)

    first = asyncio.run(service.video_by_id(2))
    second = asyncio.run(service.video_by_id("2"))

    assert first is not None and first.id == "2"
    assert second is first
    assert source.detail_calls == [("2",)]


def test_video_by_id_unknown_blank_or_failing() -> None:
    source = FakeCatalogSource(records=sample_records(3), failing_detail_ids={"3"})
    sleep = RecordingSleep()
    service = build_service(source, sleep=sleep)

    assert asyncio.run(service.video_by_id("999")) is None
    assert asyncio.run(service.video_by_id("")) is None
    assert asyncio.run(service.video_by_id("3")) is None
    assert source.detail_calls.count(("3",)) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


def test_missing_hits_normalize_to_zero_views() -> None:
    record = make_record(1)
    del record["vod_hits"]
    service = build_service(FakeCatalogSource(records=[record]))

    video = asyncio.run(service.video_by_id(1))

    assert video is not None
    assert video.views == 0


def test_list_categories_collects_unique_sorted_labels() -> None:
    records = [
        make_record(1, category="喜剧片"),
        make_record(2, category="动作片"),
        make_record(3, category="喜剧片"),
        make_record(4, category="", vod_class="记录片"),
        make_record(5, category="undefined"),
    ]
    service = build_service(FakeCatalogSource(records=records))

    assert asyncio.run(service.list_categories()) == sorted(["喜剧片", "动作片", "记录片"])


def test_list_categories_tolerates_partial_failure() -> None:
    source = FakeCatalogSource(records=[make_record(1, category="喜剧片")], failing_pages={2})
    service = build_service(source)

    assert asyncio.run(service.list_categories()) == ["喜剧片"]


def test_list_categories_falls_back_when_every_source_fails() -> None:
    source = FakeCatalogSource(records=sample_records(3), list_failures_remaining=3)
    service = build_service(source)

    assert asyncio.run(service.list_categories()) == list(FALLBACK_CATEGORIES)


def test_check_api_status_reports_ok_and_error() -> None:
    source = FakeCatalogSource(records=sample_records(2))
    service = build_service(source)

    assert asyncio.run(service.check_api_status()) == ApiStatus(status="ok", sample_count=1)

    source.list_failures_remaining = 1
    status = asyncio.run(service.check_api_status())
    assert status.status == "error"
    assert status.error == "simulated transient list failure"


def test_related_and_more_in_category_delegate_to_resolver() -> None:
    records = sample_records(8, category="剧情片")
    service = build_service(FakeCatalogSource(records=records))

    related = asyncio.run(service.related_videos(1, "剧情片", "Video 1", limit=3))
    more = asyncio.run(service.more_in_category("剧情片", ["1"], page=1, limit=3))

    assert len(related) == 3 and "1" not in ids_of(related)
    assert len(more.videos) == 3 and "1" not in ids_of(more.videos)


def test_paged_videos_and_videos_for_filter() -> None:
    source = FakeCatalogSource(records=sample_records(10))
    service = build_service(source)

    paged = asyncio.run(service.paged_videos(2, 1, 4))
    filtered = asyncio.run(service.videos_for_filter("剧情片", limit=3, page=2))

    assert sorted(ids_of(paged.videos), key=int) == ["5", "6", "7", "8"]
    assert paged.has_more is True
    assert sorted(ids_of(filtered), key=int) == ["4", "5", "6"]
    assert source.list_calls[-1].filters == {"t": "剧情片"}


def test_aclose_closes_source() -> None:
    source = FakeCatalogSource()
    service = build_service(source)

    asyncio.run(service.aclose())

    assert source.closed is True


def test_listings_truncate_overlong_titles() -> None:
    long_name = "Saga " + "x" * 300
    source = FakeCatalogSource(records=[make_record(1, name=long_name, hits=4)])
    service = build_service(source)

    videos = asyncio.run(service.search_videos("Saga"))

    assert len(videos) == 1
    assert videos[0].title == long_name[:MAX_TITLE_LENGTH] + "..."
