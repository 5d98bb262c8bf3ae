from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, TextIO

import structlog

_log_stream: Optional[TextIO] = None


def resolve_level(level: Optional[str], environment: str) -> int:
    """Map a level name to a logging level; production defaults to WARNING, others to DEBUG."""
    if level:
        return getattr(logging, level.upper(), logging.INFO)
    return logging.WARNING if environment == "production" else logging.DEBUG


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure structlog for console or log-file output."""
    global _log_stream

    # None lets PrintLogger pick up the current sys.stdout on each call.
    stream: Optional[TextIO] = None
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if _log_stream is not None and not _log_stream.closed:
            _log_stream.close()
        _log_stream = log_path.open("a", encoding="utf-8")
        stream = _log_stream

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
