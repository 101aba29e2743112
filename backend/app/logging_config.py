from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

from backend.app.config import AppSettings

LOG_FILE_NAME = "streamshelf.log"
TELEMETRY_LOG_FILE_NAME = "streamshelf-telemetry.log"
APP_LOGGER_NAME = "streamshelf"
TELEMETRY_LOGGER_NAME = "streamshelf.telemetry"
# Third-party loggers whose warnings belong next to our own upstream logs.
LIBRARY_LOGGER_NAMES: tuple[str, ...] = ("httpx", "httpcore")


@dataclass(frozen=True)
class LoggingPaths:
    log_file: Path
    telemetry_log_file: Path


def configure_application_logging(settings: AppSettings) -> LoggingPaths:
    """
    Route `streamshelf.*` stdlib loggers through structlog formatters.

    Console output follows `settings.log_level`; the JSON file always records
    DEBUG. Telemetry goes to its own file and never reaches the console.
    Calling this again replaces the handlers instead of stacking them.
    """
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    paths = LoggingPaths(
        log_file=log_dir / LOG_FILE_NAME,
        telemetry_log_file=log_dir / TELEMETRY_LOG_FILE_NAME,
    )

    _configure_structlog()

    console_handler = _console_handler(_resolve_log_level(settings.log_level))
    file_handler = _json_file_handler(paths.log_file, level=logging.DEBUG)

    logger = logging.getLogger(APP_LOGGER_NAME)
    _install_handlers(logger, level=logging.DEBUG, handlers=(console_handler, file_handler))
    for library_logger_name in LIBRARY_LOGGER_NAMES:
        _install_handlers(
            logging.getLogger(library_logger_name),
            level=logging.WARNING,
            handlers=(console_handler, file_handler),
        )
    _install_handlers(
        logging.getLogger(TELEMETRY_LOGGER_NAME),
        level=logging.INFO,
        handlers=(_json_file_handler(paths.telemetry_log_file, level=logging.INFO),),
    )

    logger.info(
        "logging configured console_level=%s path=%s telemetry_path=%s upstream=%s",
        settings.log_level.upper(),
        paths.log_file,
        paths.telemetry_log_file,
        settings.upstream_base_url,
    )
    return paths


def _resolve_log_level(raw_level: str) -> int:
    normalized = raw_level.strip().upper()
    resolved = getattr(logging, normalized, None)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _install_handlers(
    logger: logging.Logger,
    *,
    level: int,
    handlers: tuple[logging.Handler, ...],
) -> None:
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def _console_handler(level: int) -> logging.Handler:
    stream = sys.stdout
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=_stream_supports_color(stream)),
            ],
        )
    )
    return handler


def _json_file_handler(path: Path, *, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                _add_record_metadata,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_record_metadata(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["func_name"] = record.funcName
        # Set for records logged inside asyncio tasks (Python 3.12+).
        task_name = getattr(record, "taskName", None)
        if task_name:
            event_dict["task_name"] = task_name
    return event_dict


def _stream_supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except Exception:
            return False
    return False
