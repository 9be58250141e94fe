"""Structured logging configuration for playwatch.

Sets up two log streams via ``RotatingFileHandler``:

- ``service.log`` — human-readable, all log events
- ``tracker.log`` — JSON-formatted, only ``playwatch.tracker.*`` events

Both handlers rotate at 10 MB with 5 backup files.  Without a log directory
events go to stderr in the human-readable format.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5

SERVICE_LOG = "service.log"
TRACKER_LOG = "tracker.log"

# Shared by structlog-originated and stdlib-originated ("foreign") events.
_shared_processors: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def setup_logging(log_level: str = "info", log_dir: Path | None = None) -> None:
    """Configure structlog and stdlib logging.

    Parameters
    ----------
    log_level:
        Python log-level name (``debug``, ``info``, ``warning``, etc.).
    log_dir:
        Directory for log files.  When *None* a single stderr handler is
        installed instead.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    human_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=_shared_processors,
    )
    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_shared_processors,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_dir is None:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(human_formatter)
        root.addHandler(console_handler)
    else:
        log_dir.mkdir(parents=True, exist_ok=True)

        service_handler = RotatingFileHandler(
            log_dir / SERVICE_LOG,
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        service_handler.setFormatter(human_formatter)
        root.addHandler(service_handler)

        tracker_handler = RotatingFileHandler(
            log_dir / TRACKER_LOG,
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        tracker_handler.setFormatter(json_formatter)
        tracker_handler.addFilter(logging.Filter("playwatch.tracker"))
        root.addHandler(tracker_handler)

    # -- suppress noisy third-party loggers --------------------------------
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    def _excepthook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_tb: object,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
            return
        logging.getLogger("playwatch").critical(
            "Unhandled exception",
            exc_info=(exc_type, exc_value, exc_tb),
        )

    sys.excepthook = _excepthook  # type: ignore[assignment]
