from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".streamshelf"
DEFAULT_UPSTREAM_BASE_URL = "https://ckzy.me/api.php/provide/vod/"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (("log_dir", Path("logs")),)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{STREAMSHELF_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `STREAMSHELF_*` environment variable (or `.env`).
    Retry counts and backoff delays are per-call-site constants in the service
    modules and are intentionally not configurable here.
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMSHELF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for local state and logs.",
    )

    # Upstream catalog API.
    upstream_base_url: str = Field(
        default=DEFAULT_UPSTREAM_BASE_URL,
        description="Base URL of the `provide/vod` catalog endpoint (list and detail actions).",
    )
    upstream_http_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Per-request HTTP timeout for upstream catalog calls.",
    )
    upstream_user_agent: str = Field(
        default="streamshelf/0.1",
        description="User-Agent sent to the upstream catalog API.",
    )

    # Caches.
    item_cache_max_entries: int = Field(
        default=100,
        ge=1,
        description="Maximum entries in the shared item/listing cache (FIFO eviction).",
    )
    item_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Freshness window for cached videos and listings.",
    )
    homepage_cache_ttl_seconds: float = Field(
        default=1800.0,
        ge=0,
        description="Freshness window for the progressive homepage snapshot.",
    )

    # Fetch shaping.
    detail_chunk_size: int = Field(
        default=5,
        ge=5,
        le=10,
        description="Number of ids per multi-id detail request.",
    )
    page_group_size: int = Field(
        default=3,
        ge=1,
        description="List pages fetched concurrently per group.",
    )
    default_page_size: int = Field(
        default=18,
        ge=1,
        le=100,
        description="List page size used when callers do not supply one.",
    )
    progressive_initial_pages: int = Field(
        default=15,
        ge=1,
        description="Pages loaded synchronously by a progressive homepage load.",
    )
    progressive_max_pages: int = Field(
        default=100,
        ge=1,
        description="Upper bound on pages loaded by the progressive background task.",
    )
    progressive_background_batch_pages: int = Field(
        default=5,
        ge=1,
        description="Pages per background batch between snapshot merges.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for backend log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("STREAMSHELF_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("STREAMSHELF_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("upstream_base_url", mode="before")
    @classmethod
    def _normalize_upstream_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("STREAMSHELF_UPSTREAM_BASE_URL must be a string.")
        normalized = value.strip()
        if not normalized.startswith(("http://", "https://")):
            raise ValueError("STREAMSHELF_UPSTREAM_BASE_URL must be an http(s) URL.")
        return f"{normalized.rstrip('/')}/"

    @field_validator("upstream_user_agent", mode="before")
    @classmethod
    def _normalize_upstream_user_agent(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("STREAMSHELF_UPSTREAM_USER_AGENT must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("STREAMSHELF_UPSTREAM_USER_AGENT must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
