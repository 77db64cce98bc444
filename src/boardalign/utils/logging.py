"""Structured logging for alignment runs.

Every event emitted through ``get_logger`` inside a run carries the run id,
the board location being aligned and the current state machine state, so a
JSON log of a batch can be split per board. Console output is meant for the
operator; JSON output for machine integration.
"""

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import Processor

from boardalign.config import settings

_CORRELATION_FIELDS = ("run_id", "board_id", "state")

_correlation: dict[str, ContextVar[str | None]] = {
    name: ContextVar(name, default=None) for name in _CORRELATION_FIELDS
}


def set_correlation_context(
    run_id: str | None = None,
    board_id: str | None = None,
    state: str | None = None,
) -> None:
    """Update the correlation fields of the current async context.

    Fields passed as None keep their previous value.

    Args:
        run_id: Identifier of the alignment run.
        board_id: BoardLocation currently being aligned.
        state: Current state machine state name.
    """
    for name, value in zip(_CORRELATION_FIELDS, (run_id, board_id, state), strict=True):
        if value is not None:
            _correlation[name].set(value)


def clear_correlation_context() -> None:
    """Reset every correlation field."""
    for var in _correlation.values():
        var.set(None)


def _add_correlation_ids(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Processor merging the correlation fields that are set into the event."""
    _ = logger, method_name
    for name, var in _correlation.items():
        value = var.get()
        if value is not None:
            event_dict[name] = value
    return event_dict


def _renderer(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to settings.LOG_LEVEL.
        log_format: Output format ("console" or "json").
                    Defaults to settings.LOG_FORMAT.
    """
    level = level or settings.LOG_LEVEL
    log_format = log_format or settings.LOG_FORMAT

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # state machine messages use %-style arguments
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _add_correlation_ids,
        *_renderer(log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    logging.getLogger().setLevel(numeric_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger.

    Loggers are resolved against the configuration active on their first
    use, so long-lived objects should fetch theirs when they are created.

    Args:
        name: Logger name, usually ``__name__``.

    Returns:
        A bound structlog logger.
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
