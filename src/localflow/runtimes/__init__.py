"""Container runtime adapters.

Every adapter implements :class:`RuntimeAdapter` — the five imperative calls
(create, start, wait, logs, remove) the execution adapter drives for each
unit of work.

Available adapters:
    - ``docker`` — :class:`DockerAdapter`, containers via the docker CLI
    - ``local`` — :class:`LocalProcessAdapter`, plain subprocesses
    - ``stub`` — :class:`StubRuntimeAdapter`, in-memory, for tests
"""

from __future__ import annotations

from localflow.runtimes._base import BaseRuntimeAdapter, StubBehavior, StubRuntimeAdapter
from localflow.runtimes._types import (
    RuntimeAdapter,
    RuntimeErrorCategory,
    RuntimeHealth,
    RuntimeUnitError,
    UnitSpec,
    unit_name,
)
from localflow.runtimes.docker import DockerAdapter
from localflow.runtimes.local_process import LocalProcessAdapter

RUNTIMES = ("docker", "local", "stub")


def create_adapter(runtime: str, *, docker_binary: str = "docker") -> BaseRuntimeAdapter:
    """Build the adapter registered under ``runtime``.

    Raises:
        ValueError: If ``runtime`` is not one of :data:`RUNTIMES`.
    """
    if runtime == "docker":
        return DockerAdapter(docker_binary=docker_binary)
    if runtime == "local":
        return LocalProcessAdapter()
    if runtime == "stub":
        return StubRuntimeAdapter()
    raise ValueError(f"Unknown runtime '{runtime}' (expected one of: {', '.join(RUNTIMES)})")


__all__ = [
    "RUNTIMES",
    "BaseRuntimeAdapter",
    "DockerAdapter",
    "LocalProcessAdapter",
    "RuntimeAdapter",
    "RuntimeErrorCategory",
    "RuntimeHealth",
    "RuntimeUnitError",
    "StubBehavior",
    "StubRuntimeAdapter",
    "UnitSpec",
    "create_adapter",
    "unit_name",
]
