"""
Tests for the logging module.

Tests verify:
- Log context merges and drops empty fields
- Context processor injects run/node identifiers without overriding
- Context bound inside a task does not leak into siblings
"""

import asyncio
import logging

import pytest

from localflow.logging import (
    LogContext,
    add_context_processor,
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    is_configured,
    push_context,
)


class TestLogContext:
    """Test LogContext dataclass."""

    def test_to_dict_excludes_none(self):
        ctx = LogContext(workflow="hello", node=None)
        d = ctx.to_dict()
        assert d == {"workflow": "hello"}

    def test_merge_creates_new_context(self):
        ctx1 = LogContext(workflow="hello")
        ctx2 = ctx1.merge(node="main[0].a")

        assert ctx1.node is None
        assert ctx2.workflow == "hello"
        assert ctx2.node == "main[0].a"

    def test_merge_ignores_none(self):
        ctx = LogContext(workflow="hello").merge(workflow=None)
        assert ctx.workflow == "hello"


class TestContextManagement:
    """Test context bind/get/clear operations."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_context_merges(self):
        bind_context(workflow="hello")
        bind_context(node="main")
        ctx = get_context()

        assert ctx.workflow == "hello"
        assert ctx.node == "main"

    def test_clear_context_resets(self):
        bind_context(workflow="hello")
        clear_context()

        assert get_context() == LogContext()

    def test_push_context_restores(self):
        bind_context(workflow="hello")
        token = push_context(node="main[0].a")
        assert get_context().node == "main[0].a"

        token.restore()
        assert get_context().node is None
        assert get_context().workflow == "hello"

    @pytest.mark.asyncio
    async def test_task_context_is_isolated(self):
        bind_context(workflow="hello")
        seen: dict[str, LogContext] = {}

        async def child(name: str) -> None:
            bind_context(node=name)
            await asyncio.sleep(0)
            seen[name] = get_context()

        await asyncio.gather(child("a"), child("b"))

        assert seen["a"].node == "a"
        assert seen["b"].node == "b"
        assert seen["a"].workflow == "hello"
        assert get_context().node is None


class TestContextProcessor:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_adds_context_fields(self):
        bind_context(workflow="hello", runtime="stub")
        event = add_context_processor(None, "info", {"event": "node.executing"})

        assert event == {"event": "node.executing", "workflow": "hello", "runtime": "stub"}

    def test_explicit_keys_win(self):
        bind_context(workflow="hello")
        event = add_context_processor(None, "info", {"event": "x", "workflow": "other"})

        assert event["workflow"] == "other"


class TestConfigureLogging:
    def test_configure_sets_level(self):
        configure_logging(level="DEBUG", format="json", force=True)

        assert is_configured()
        assert logging.getLogger("localflow").level == logging.DEBUG

        configure_logging(level="INFO", force=True)
        assert logging.getLogger("localflow").level == logging.INFO

    def test_get_logger_returns_bound_logger(self):
        log = get_logger("localflow.test")
        assert hasattr(log, "info")
        assert hasattr(log, "bind")
