"""Structured logging configuration — structlog + stdlib logging.

Everything goes to stderr: stdout belongs to the CLI's ``--json`` output.
Events logged inside a scan carry its ``scan_id`` and ``trigger`` through
:func:`scan_context`.
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

LOG_FORMATS = ("console", "json", "plain")

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx", "watchdog")


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog and stdlib logging.

    Arguments win over the environment:
        DEPSENTINEL_LOG_LEVEL  — log level (default: INFO)
        DEPSENTINEL_LOG_FORMAT — console | json | plain (default: console)
    """
    log_level = (level or os.environ.get("DEPSENTINEL_LOG_LEVEL", "INFO")).upper()
    log_format = (fmt or os.environ.get("DEPSENTINEL_LOG_FORMAT", "console")).lower()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"unknown log level {log_level!r}")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log format must be one of {LOG_FORMATS}, got {log_format!r}")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["default"], "level": log_level},
            "loggers": {
                "depsentinel": {"level": log_level},
                **{name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            },
        }
    )


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "plain":
        return structlog.processors.KeyValueRenderer(
            key_order=["timestamp", "level", "event", "scan_id", "trigger"],
            drop_missing=True,
        )
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


@contextmanager
def scan_context(scan_id: int, trigger: str) -> Iterator[None]:
    """Bind ``scan_id`` and ``trigger`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(scan_id=scan_id, trigger=trigger):
        yield
