"""Structured logging for the keep-alive service.

Events are always rendered to stderr. When a log directory is given, structlog
is routed through the standard library so the same events also land in
daily-rotated JSON files: ``application.log`` at the configured level and
``error.log`` for errors only.
"""

import logging as stdlib_logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

SERVICE_NAME = "keep-alive-service"
APPLICATION_LOG = "application.log"
ERROR_LOG = "error.log"

# Root handlers owned by the last configure_logging call.
_handlers: list[stdlib_logging.Handler] = []


def add_log_level(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the log level to the event dict."""
    event_dict["level"] = "warning" if method_name == "warn" else method_name
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_output: bool) -> Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    # foreign_pre_chain covers records from plain stdlib loggers (werkzeug).
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def _rotating_handler(path: Path, level: int, retention_days: int) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        path,
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(level)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def remove_log_handlers() -> None:
    """Detach and close the handlers installed by ``configure_logging``."""
    root = stdlib_logging.getLogger()
    while _handlers:
        handler = _handlers.pop()
        root.removeHandler(handler)
        handler.close()


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_dir: str | Path | None = None,
    retention_days: int = 14,
    error_retention_days: int = 30,
) -> None:
    """Configure structlog for sessionkeeper.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: Render stderr output as JSON instead of console format.
        log_dir: Directory for rotated log files. No files are written when unset.
        retention_days: Rotated ``application.log`` files kept.
        error_retention_days: Rotated ``error.log`` files kept.
    """
    numeric_level = getattr(stdlib_logging, level.upper(), stdlib_logging.INFO)
    remove_log_handlers()

    config: dict[str, Any] = {
        "wrapper_class": structlog.make_filtering_bound_logger(numeric_level),
        "context_class": dict,
        "cache_logger_on_first_use": False,
    }

    if log_dir is None:
        structlog.configure(
            processors=[*_shared_processors(), _renderer(json_output)],
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
            **config,
        )
        return

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    console = stdlib_logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(_renderer(json_output)))
    _handlers.extend(
        [
            console,
            _rotating_handler(directory / APPLICATION_LOG, numeric_level, retention_days),
            _rotating_handler(directory / ERROR_LOG, stdlib_logging.ERROR, error_retention_days),
        ]
    )
    root = stdlib_logging.getLogger()
    for handler in _handlers:
        root.addHandler(handler)
    root.setLevel(numeric_level)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        **config,
    )


def bind_service_context(service: str = SERVICE_NAME) -> None:
    """Bind the service name to every log line emitted by this process."""
    structlog.contextvars.bind_contextvars(service=service)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, named after the calling module when ``name`` is omitted."""
    return structlog.get_logger(name)
