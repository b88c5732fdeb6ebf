"""Logging configuration shared by every storefront context.

structlog renders everything. Records emitted through the standard library
(uvicorn, redis, third-party code) pass through the same processor chain via
``ProcessorFormatter``, so one log line looks the same whatever produced it.
Request-scoped values (request id, actor) live in contextvars and are merged
into every event logged while the request is being served.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

from shared.config import Settings

_ROTATE_BYTES = 10 * 1024 * 1024
_ROTATE_BACKUPS = 5


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
    ]


def _renderer(settings: Settings, colors: bool = True):
    if settings.is_production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=colors,
        exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=True, max_frames=2),
    )


def _formatter(settings: Settings, colors: bool) -> structlog.stdlib.ProcessorFormatter:
    final = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if settings.is_production:
        final.append(structlog.processors.format_exc_info)
    final.append(_renderer(settings, colors=colors))
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=final,
    )


def _rotating_handler(path: Path, level: int | str, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_ROTATE_BYTES,
        backupCount=_ROTATE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_stdlib_logging(settings: Settings, log_dir: Path | None = None) -> None:
    """Route the root logger to stdout, plus rotating files when ``log_dir`` is given."""
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(settings.log_level)
    console_handler.setFormatter(_formatter(settings, colors=sys.stdout.isatty()))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        plain = _formatter(settings, colors=False)
        root_logger.addHandler(_rotating_handler(log_dir / "storefront.log", settings.log_level, plain))
        root_logger.addHandler(_rotating_handler(log_dir / "storefront_error.log", logging.ERROR, plain))

    for noisy in ("urllib3", "asyncio", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def setup_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(settings: Settings, log_dir: Path | None = None) -> None:
    """Configure all logging for the application."""
    setup_stdlib_logging(settings, log_dir)
    setup_structlog()


def bind_request_context(**kwargs: Any) -> None:
    """Attach values to every event logged for the rest of the current request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
