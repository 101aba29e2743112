from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.services.catalog_client import VodApiClient
from backend.app.services.catalog_service import CatalogService
from backend.app.services.ttl_cache import HomepageSnapshotSlot, TTLCache
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_catalog_service() -> CatalogService:
    settings = get_settings()
    return CatalogService(
        VodApiClient(
            settings.upstream_base_url,
            timeout_seconds=settings.upstream_http_timeout_seconds,
            user_agent=settings.upstream_user_agent,
        ),
        TTLCache(
            max_size=settings.item_cache_max_entries,
            ttl_seconds=settings.item_cache_ttl_seconds,
        ),
        HomepageSnapshotSlot(ttl_seconds=settings.homepage_cache_ttl_seconds),
        chunk_size=settings.detail_chunk_size,
        group_size=settings.page_group_size,
        default_page_size=settings.default_page_size,
        progressive_initial_pages=settings.progressive_initial_pages,
        progressive_max_pages=settings.progressive_max_pages,
        background_batch_pages=settings.progressive_background_batch_pages,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_catalog_service.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
