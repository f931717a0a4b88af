"""
Shared pytest fixtures and configuration for localflow tests.

This module provides:
- Runtime, executor, registry and controller fixtures backed by the
  in-memory ``StubRuntimeAdapter``
- Sample workflow definitions
- Settings/logging cleanup for test isolation

Usage:
    Fixtures are auto-discovered by pytest:

    @pytest.mark.asyncio
    async def test_something(controller, hello_workflow):
        await controller.submit(hello_workflow)
"""

import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Ensure localflow package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from localflow.controller import WorkflowController
from localflow.executor import NodeExecutor
from localflow.logging import clear_context
from localflow.models import (
    ContainerTemplate,
    DAGTemplate,
    ScriptTemplate,
    StepRef,
    StepsTemplate,
    TaskRef,
    Workflow,
)
from localflow.registry import RunRegistry
from localflow.runtimes import StubRuntimeAdapter
from localflow.settings import clear_settings_cache


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Fresh settings and log context for every test."""
    for var in ("LOCALFLOW_RUNTIME", "LOCALFLOW_PORT", "LOCALFLOW_LOG_LEVEL", "LOCALFLOW_LOG_FORMAT"):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    clear_context()
    yield
    clear_settings_cache()
    clear_context()


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def stub_adapter() -> StubRuntimeAdapter:
    """In-memory runtime; register per-image behaviors to inject outcomes."""
    return StubRuntimeAdapter()


@pytest.fixture
def registry() -> RunRegistry:
    return RunRegistry()


@pytest.fixture
def executor(stub_adapter: StubRuntimeAdapter) -> NodeExecutor:
    return NodeExecutor(stub_adapter)


@pytest.fixture
def controller(executor: NodeExecutor, registry: RunRegistry) -> WorkflowController:
    return WorkflowController(executor, registry, shutdown_grace_seconds=1.0)


# =============================================================================
# Sample Workflow Fixtures
# =============================================================================


@pytest.fixture
def echo_template() -> ContainerTemplate:
    return ContainerTemplate(name="echo", image="alpine", command=("echo",), args=("hello",))


@pytest.fixture
def hello_workflow(echo_template: ContainerTemplate) -> Workflow:
    """Single unit of work as the entrypoint."""
    return Workflow(name="hello", entrypoint="echo", templates=(echo_template,))


@pytest.fixture
def steps_workflow() -> Workflow:
    """
    Two groups of two steps:

        main[0].a  main[0].b
              \\    /
        main[1].c  main[1].d
    """
    return Workflow(
        name="steps",
        entrypoint="main",
        templates=(
            StepsTemplate(
                name="main",
                groups=(
                    (StepRef("a", "fast"), StepRef("b", "slow")),
                    (StepRef("c", "fast"), StepRef("d", "fast")),
                ),
            ),
            ContainerTemplate(name="fast", image="fast", command=("true",)),
            ContainerTemplate(name="slow", image="slow", command=("true",)),
        ),
    )


@pytest.fixture
def dag_workflow() -> Workflow:
    """Three tasks with declared (but ignored) dependencies."""
    return Workflow(
        name="graph",
        entrypoint="main",
        templates=(
            DAGTemplate(
                name="main",
                tasks=(
                    TaskRef("A", "work"),
                    TaskRef("B", "broken", dependencies=("A",)),
                    TaskRef("C", "work", dependencies=("A",)),
                ),
            ),
            ContainerTemplate(name="work", image="alpine", command=("true",)),
            ContainerTemplate(name="broken", image="broken", command=("false",)),
        ),
    )


@pytest.fixture
def script_template() -> ScriptTemplate:
    return ScriptTemplate(
        name="py",
        image="python:3.12",
        command=("python",),
        source="print('hi')",
    )
