"""
Folio Logging - structured logging for the composition engine.

Manifesto:
    Install and uninstall runs touch several tables in one transaction;
    when one of them fails, the log line has to say which type, which site
    and which step. Structured key/value events make that searchable:

    - **Structures:** JSON output for log aggregation
    - **Correlates:** type_name / site_id bound once per lifecycle run
    - **Flexes:** Console output for development, JSON for production

Architecture:
    ::

        configure_logging(level="INFO", json_format=True, service="folio")
              ↓
        structlog processor chain:
          1. merge_contextvars
          2. TimeStamper (iso)
          3. add_log_level / add_logger_name
          4. add_service_metadata
          5. JSONRenderer (or ConsoleRenderer for dev)

Examples:
    >>> from folio.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("content.saved", content_id=7, type_name="Article")

Tags:
    logging, structlog, observability, json-logging, folio-core

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "folio"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "folio",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # SQLAlchemy and friends log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(type_name="Article", site_id=1):
            logger.info("install.started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


@contextmanager
def log_step(event: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Log ``<event>.start`` at DEBUG and ``<event>.end`` with timing at INFO.

    The yielded dict collects extra metrics to attach to the end event::

        with log_step("uninstall.delete", type_name="Article") as metrics:
            metrics["rows"] = n

    On error the end event is logged at ERROR with the exception type and
    the exception is re-raised.
    """
    log = get_logger("folio.timing")
    metrics: dict[str, Any] = {}
    log.debug(f"{event}.start", **fields)
    started = time.perf_counter()
    try:
        yield metrics
    except Exception as exc:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log.error(
            f"{event}.failed",
            duration_ms=duration_ms,
            error_type=type(exc).__name__,
            error_message=str(exc),
            **fields,
        )
        raise
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log.info(f"{event}.end", duration_ms=duration_ms, **fields, **metrics)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    "log_step",
]
