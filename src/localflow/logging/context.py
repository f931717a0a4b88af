"""
Logging context management using contextvars.

Run and node identifiers are attached to every log event without being
passed through each call. Every asyncio task copies the context of the task
that created it, so a node bound inside a step's task never leaks into its
siblings.
"""

from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass
from typing import Any

import structlog


@dataclass(frozen=True)
class LogContext:
    """
    Execution context attached to all log entries.

    Attributes:
        workflow: Run (workflow) name
        node: Path-qualified node name
        template: Template the node instantiates
        runtime: Runtime adapter executing units
    """

    workflow: str | None = None
    node: str | None = None
    template: str | None = None
    runtime: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("localflow_log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def bind_context(**kwargs) -> LogContext:
    """
    Bind additional values to the current context.

    Merges with the existing context rather than replacing it.

    Returns:
        The updated context
    """
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token: Token):
        self._token = token

    def restore(self) -> None:
        """Restore the previous context."""
        _log_context.reset(self._token)


def push_context(**kwargs) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(node="hello[0].say")
        try:
            await run_node()
        finally:
            token.restore()
    """
    token = _log_context.set(get_context().merge(**kwargs))
    return _ContextToken(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds the run context to every log entry.

    Keys passed explicitly to the log call win over context keys.
    """
    for key, value in get_context().to_dict().items():
        event_dict.setdefault(key, value)
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
