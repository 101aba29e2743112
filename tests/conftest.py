from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from catalog_fakes import (
    FakeCatalogSource,
    ManualClock,
    RecordingSleep,
    build_service,
    sample_records,
)
from fastapi.testclient import TestClient

from backend.app.dependencies import get_catalog_service, reset_cached_dependencies
from backend.app.main import create_app


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fake_source() -> FakeCatalogSource:
    return FakeCatalogSource(records=sample_records(12))


@pytest.fixture
def client(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_source: FakeCatalogSource,
) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("STREAMSHELF_DATA_DIR", str(data_dir))
    monkeypatch.setenv("STREAMSHELF_TELEMETRY_SINK", "none")
    reset_cached_dependencies()

    service = build_service(fake_source)
    app = create_app()
    app.dependency_overrides[get_catalog_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
