"""
Structured logging setup for rpcgate.

rpcgate never configures logging on import. Libraries embedding the
authorizer pass their own structlog logger or rely on get_logger(), which
routes events through the standard library ``rpcgate`` logger so host
log levels apply. The CLI calls configure_logging().
"""

import logging
import sys
from typing import Any

import structlog

LOGGER_NAME = "rpcgate"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def configure_logging(log_level: str = "warning", json_output: bool = False) -> None:
    """
    Configure structlog on top of the standard library logging module.

    Args:
        log_level: Minimum level name (debug, info, warning, error, critical)
        json_output: Render events as JSON lines instead of console text

    Raises:
        ValueError: If log_level is not a known level name
    """
    if log_level.lower() not in LOG_LEVELS:
        raise ValueError(
            f"Unknown log level '{log_level}' (expected one of: {', '.join(LOG_LEVELS)})"
        )

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
        force=True,
    )


def get_logger(name: str = LOGGER_NAME) -> Any:
    """
    Get a structlog logger bound to the standard library logger ``name``.

    Processors follow the current structlog configuration, but events are
    always handed to ``logging.getLogger(name)``, so an unconfigured host
    drops debug events instead of printing them to stdout.
    """
    return structlog.wrap_logger(
        logging.getLogger(name),
        wrapper_class=structlog.stdlib.BoundLogger,
    )
