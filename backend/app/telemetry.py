from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence, Set
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import structlog

TELEMETRY_LOGGER_NAME = "streamshelf.telemetry"
REDACTED = "[redacted]"

# Attribute keys containing any of these fragments are never emitted verbatim.
_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "api_key",
    "authorization",
    "cookie",
    "password",
    "payload",
    "play_url",
    "raw",
    "secret",
    "token",
)
_MAX_STRING_LENGTH = 160

TelemetryValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    def __init__(self) -> None:
        self._logger = structlog.get_logger(TELEMETRY_LOGGER_NAME)

    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=sanitize_attributes(attributes))


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())

    logging.getLogger(TELEMETRY_LOGGER_NAME).warning(
        "unsupported telemetry sink requested; disabling telemetry sink=%s",
        sink,
    )
    return TelemetryClient.disabled()


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    """
    Flatten attributes into scalar values that are safe to write to disk.

    Sensitive keys are redacted, long strings truncated, and collections
    reduced to their size so video listings never land in telemetry whole.
    """
    sanitized: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(fragment in key for fragment in _SENSITIVE_KEY_FRAGMENTS):
            sanitized[key] = REDACTED
        elif isinstance(raw_value, Mapping | Set) or _is_sequence(raw_value):
            sanitized[f"{key}_count"] = len(raw_value)
        else:
            sanitized[key] = _scalar(raw_value)
    return sanitized


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray)


def _scalar(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    return type(value).__name__
