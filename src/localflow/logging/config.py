"""
Logging configuration.

Single entry point for configuring structured logging. Settings are taken
from the arguments, falling back to environment variables:

- LOCALFLOW_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- LOCALFLOW_LOG_FORMAT: json | console (default: console)

structlog events and plain stdlib records (runtime adapters, uvicorn) share
one stderr handler. Both pass through the same processor chain, so a line
from ``logging.getLogger(__name__)`` carries the same timestamp, level and
run context as a structlog event.

Usage:
    from localflow.logging import configure_logging
    configure_logging()

    # Or with explicit settings
    configure_logging(level="DEBUG", format="json")
"""

import logging
import os
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from localflow.logging.context import add_context_processor

_configured = False


def _render_chain(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    # ConsoleRenderer formats exc_info itself
    return [
        structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the process.

    Called once at startup (CLI entry, server lifespan). Subsequent calls are
    no-ops unless force=True.

    Args:
        level: Log level (overrides LOCALFLOW_LOG_LEVEL)
        format: Output format (overrides LOCALFLOW_LOG_FORMAT)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("LOCALFLOW_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("LOCALFLOW_LOG_FORMAT", "console")).lower()

    # Shared by structlog events and foreign stdlib records
    shared: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_render_chain(log_format),
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, log_level))
    logging.getLogger("localflow").setLevel(getattr(logging, log_level))

    _configured = True


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
