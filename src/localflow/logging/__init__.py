"""
localflow logging - structured, run-aware logging.

This module provides:
- Structured logging with structlog
- Run/node context propagation via contextvars
- Environment-based configuration

Usage:
    from localflow.logging import configure_logging, get_logger, bind_context

    # Configure once at startup
    configure_logging()

    # Get a logger
    log = get_logger(__name__)

    # Attach run context (automatically added to all events)
    bind_context(workflow="hello", node="hello[0].say")
    log.info("node_started")
"""

from localflow.logging.config import configure_logging, is_configured
from localflow.logging.context import (
    LogContext,
    add_context_processor,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    push_context,
)

__all__ = [
    # Configuration
    "configure_logging",
    "is_configured",
    # Context
    "LogContext",
    "add_context_processor",
    "bind_context",
    "clear_context",
    "get_context",
    "get_logger",
    "push_context",
]
