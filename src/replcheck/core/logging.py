"""
Structured logging for replcheck.

Every worker thread, recovery task and CLI command logs through structlog
so that a run's log can be correlated with its history file: workers bind
``worker`` and ``node`` once and every event they emit carries them.

Manifesto:
    - **Event names, not sentences:** ``recovery.primary_selected`` with
      fields, so logs can be grepped and aggregated
    - **Per-thread context:** contextvars carry worker/node per thread
    - **Off stdout:** the history may be streamed to stdout, so logs go to
      stderr

Examples:
    >>> from replcheck.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = get_logger(__name__)
    >>> log.info("recovery.started", nodes=["n1", "n2", "n3"])

Tags:
    logging, structlog, observability, replcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Chatty below WARNING; reconnect loops would drown the harness's own events.
_DRIVER_LOGGERS = ("mysql.connector",)


def _add_thread_name(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Name the thread (``replcheck-worker_3``, ``recover-open_0``) an event came from."""
    event_dict.setdefault("thread", threading.current_thread().name)
    return event_dict


def _processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    chain: list[Processor] = []
    if add_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso"))
    chain += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _add_thread_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_format:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog (and the driver's stdlib loggers) for this process.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: True for JSON lines, False for the console renderer,
            None to pick JSON when stderr is not a terminal
        add_timestamp: Prefix every event with an ISO timestamp
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")
    if json_format is None:
        json_format = not sys.stderr.isatty()

    structlog.configure(
        processors=_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(name)s %(levelname)s %(message)s", stream=sys.stderr, level=numeric)
    for name in _DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))


def configure_from_settings(settings: Any) -> None:
    """Apply ``settings.log_level`` and ``settings.log_format``."""
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")


def get_logger(name: str | None = None) -> Any:
    """A bound logger; ``name`` (usually ``__name__``) becomes the ``logger_name`` field."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields to every later event on this thread."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` block.

    Example:
        with LogContext(worker=3, node="n2"):
            log.info("worker.started")
    """

    def __init__(self, **fields: Any):
        self.fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self.fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        unbind_context(*self.fields)


__all__ = [
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
