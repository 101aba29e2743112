from __future__ import annotations

from catalog_fakes import FakeCatalogSource
from fastapi.testclient import TestClient


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_is_echoed_or_generated(client: TestClient) -> None:
    echoed = client.get("/health", headers={"X-Request-ID": "req-42"})
    generated = client.get("/health")

    assert echoed.headers["X-Request-ID"] == "req-42"
    assert generated.headers["X-Request-ID"]


def test_list_videos(client: TestClient) -> None:
    response = client.get("/videos", params={"limit": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 5
    assert len(body["videos"]) == 5
    first = body["videos"][0]
    assert set(first) == {
        "id",
        "title",
        "channel_name",
        "views",
        "duration_seconds",
        "upload_date",
        "thumbnail_url",
        "video_url",
        "description",
        "category",
    }
    assert first["video_url"] == f"https://cdn.example/{first['id']}/index.m3u8"


def test_search_videos(client: TestClient, fake_source: FakeCatalogSource) -> None:
    response = client.get("/videos/search", params={"q": "Video 1", "limit": 10})

    assert response.status_code == 200
    ids = sorted((video["id"] for video in response.json()["videos"]), key=int)
    assert ids == ["1", "10", "11", "12"]
    assert fake_source.list_calls[-1].query == "Video 1"


def test_blank_search_returns_empty_list(client: TestClient) -> None:
    response = client.get("/videos/search")

    assert response.status_code == 200
    assert response.json() == {"videos": [], "count": 0}


def test_videos_by_category(client: TestClient) -> None:
    response = client.get("/videos/by-category", params={"category": "剧情片", "limit": 3})

    assert response.status_code == 200
    videos = response.json()["videos"]
    assert len(videos) == 3
    assert all(video["category"] == "剧情片" for video in videos)


def test_paged_videos(client: TestClient) -> None:
    response = client.get(
        "/videos/pages",
        params={"start_page": 1, "page_count": 2, "page_size": 5},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 10
    assert body["pages_loaded"] == 2
    assert body["has_more"] is True
    views = [video["views"] for video in body["videos"]]
    assert views == sorted(views, reverse=True)


def test_videos_for_filter(client: TestClient, fake_source: FakeCatalogSource) -> None:
    response = client.get("/videos/filters/剧情片", params={"page": 2, "limit": 4})

    assert response.status_code == 200
    assert response.json()["count"] == 4
    last_call = fake_source.list_calls[-1]
    assert last_call.filters == {"t": "剧情片"}
    assert last_call.page == 2


def test_get_video(client: TestClient) -> None:
    response = client.get("/videos/3")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "3"
    assert body["title"] == "Video 3"
    assert body["views"] == 21


def test_get_unknown_video_returns_404(client: TestClient) -> None:
    response = client.get("/videos/404404")

    assert response.status_code == 404
    assert response.json()["detail"] == "Video not found: 404404"


def test_related_videos(client: TestClient) -> None:
    response = client.get(
        "/videos/1/related",
        params={"category": "剧情片", "title": "Video 1", "limit": 4},
    )

    assert response.status_code == 200
    ids = [video["id"] for video in response.json()["videos"]]
    assert len(ids) == 4
    assert "1" not in ids


def test_list_categories(client: TestClient) -> None:
    response = client.get("/categories")

    assert response.status_code == 200
    assert response.json() == {"categories": ["剧情片"]}


def test_more_in_category_excludes_repeated_ids(client: TestClient) -> None:
    response = client.get(
        "/categories/剧情片/more",
        params=[("exclude_ids", "1"), ("exclude_ids", "2"), ("limit", "3")],
    )

    assert response.status_code == 200
    body = response.json()
    ids = [video["id"] for video in body["videos"]]
    assert len(ids) == 3
    assert not {"1", "2"} & set(ids)
    # The fake catalog has no numeric type ids, so the next-page probe comes back empty.
    assert body["has_more"] is False


def test_upstream_status(client: TestClient, fake_source: FakeCatalogSource) -> None:
    assert client.get("/upstream/status").json() == {
        "status": "ok",
        "error": None,
        "sample_count": 1,
    }

    fake_source.list_failures_remaining = 1
    failed = client.get("/upstream/status").json()
    assert failed["status"] == "error"
    assert failed["error"] == "simulated transient list failure"


def test_query_validation_rejects_out_of_range_values(client: TestClient) -> None:
    assert client.get("/videos", params={"limit": 0}).status_code == 422
    assert client.get("/videos", params={"limit": 101}).status_code == 422
    assert client.get("/videos/pages", params={"page_count": 21}).status_code == 422
    assert client.get("/categories/剧情片/more", params={"page": 0}).status_code == 422
