"""Runtime adapter types and protocols.

This module defines the abstractions between the execution adapter and a
concrete container runtime:

- RuntimeAdapter: Protocol for creating, running and removing runtime units
- UnitSpec: Fully resolved description of one unit of work
- RuntimeUnitError: Structured error taxonomy for runtime failures
- RuntimeHealth: Runtime reachability check result

Design Notes:
    The protocol mirrors the five imperative calls every container runtime
    exposes (create, start, block-until-terminal, read output, remove). The
    execution adapter (``localflow.executor``) is the only caller; it owns
    the mapping from a declarative template to these calls.

Architecture:

    .. code-block:: text

        UnitSpec ──create(spec, name)──► RuntimeAdapter ──► ref
                                          │
                   start(ref) ────────────┤
                   wait(ref) ─────────────┤──► exit code
                   logs(ref) ─────────────┤──► combined stdout/stderr
                   remove(ref) ───────────┘    (force, idempotent)

    .. mermaid::

        graph LR
            US[UnitSpec] -->|"created by"| RA[RuntimeAdapter]
            RA -->|"returns"| REF[ref]
            RA -->|"raises"| RUE[RuntimeUnitError]
            RA -->|"reports"| RH[RuntimeHealth]

See Also:
    _base.py — BaseRuntimeAdapter and StubRuntimeAdapter
    docker.py — docker CLI adapter
    local_process.py — local subprocess adapter
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from localflow.models import fnv1a_32


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------

class RuntimeErrorCategory(str, Enum):
    """Normalized categories for runtime failures.

    Lets callers and logs distinguish "the daemon is down" from "the image
    does not exist" without parsing messages.
    """

    RUNTIME_UNAVAILABLE = "runtime_unavailable"  # Daemon/CLI unreachable
    NOT_FOUND = "not_found"                      # Image, command or unit missing
    CONFLICT = "conflict"                        # Unit name already in use
    UNKNOWN = "unknown"                          # Unclassified


@dataclass(frozen=True)
class RuntimeUnitError(Exception):
    """Structured error from a runtime adapter.

    Both a dataclass AND an Exception — can be raised and caught.

    Example:
        >>> err = RuntimeUnitError(
        ...     category=RuntimeErrorCategory.RUNTIME_UNAVAILABLE,
        ...     message="Cannot connect to the Docker daemon",
        ...     runtime="docker",
        ... )
        >>> str(err)
        '[runtime_unavailable] Cannot connect to the Docker daemon'
    """

    category: RuntimeErrorCategory
    message: str
    runtime: str | None = None
    exit_code: int | None = None

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"

    @classmethod
    def unknown(cls, message: str, *, runtime: str | None = None) -> RuntimeUnitError:
        """Create an UNKNOWN error."""
        return cls(category=RuntimeErrorCategory.UNKNOWN, message=message, runtime=runtime)


# ---------------------------------------------------------------------------
# UnitSpec
# ---------------------------------------------------------------------------

@dataclass
class UnitSpec:
    """Fully resolved specification of one runtime unit.

    Built by the execution adapter from a unit-of-work template. ``command``
    replaces the image entrypoint when set; ``args`` follow it (or feed the
    image's own entrypoint when ``command`` is empty).

    .. code-block:: text

        UnitSpec
        ├── What: image, command, args, working_dir
        ├── Environment: env (ordered; injected identifiers first)
        └── Tracking: labels
    """

    image: str
    command: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    working_dir: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        """``command + args`` as a single argument vector."""
        return [*self.command, *self.args]

    def env_list(self) -> list[str]:
        """Environment as ``NAME=value`` strings, in order."""
        return [f"{k}={v}" for k, v in self.env.items()]

    def to_dict(self) -> dict[str, Any]:
        """Serialize non-empty fields."""
        d: dict[str, Any] = {"image": self.image}
        if self.command:
            d["command"] = list(self.command)
        if self.args:
            d["args"] = list(self.args)
        if self.working_dir:
            d["working_dir"] = self.working_dir
        if self.env:
            d["env"] = dict(self.env)
        if self.labels:
            d["labels"] = dict(self.labels)
        return d


# ---------------------------------------------------------------------------
# Deterministic naming
# ---------------------------------------------------------------------------

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def unit_name(prefix: str, workflow_name: str, node_name: str) -> str:
    """Generate the runtime unit name for a node.

    Format: ``{prefix}-{workflow}-{node}``. When the raw name holds characters
    outside ``[A-Za-z0-9_-]`` they are replaced by ``-`` and the FNV-1a hash
    of the raw name is appended, so ``x.y`` and ``x-y`` stay distinct.

    Example:
        >>> unit_name("localflow", "hello", "echo")
        'localflow-hello-echo'
        >>> unit_name("localflow", "hello", "main[0].say.hi")
        'localflow-hello-main-0--say-hi-56639275'
    """
    name = f"{prefix}-{workflow_name}-{node_name}"
    safe = _UNSAFE_NAME_CHARS.sub("-", name)
    if safe == name:
        return name
    return f"{safe}-{fnv1a_32(name):08x}"


# ---------------------------------------------------------------------------
# Runtime health
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuntimeHealth:
    """Result of a runtime adapter health check.

    Example:
        >>> health = RuntimeHealth(healthy=True, runtime="docker", version="24.0.7")
    """

    healthy: bool
    runtime: str
    version: str | None = None
    message: str | None = None
    latency_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API response."""
        d: dict[str, Any] = {
            "healthy": self.healthy,
            "runtime": self.runtime,
        }
        if self.version:
            d["version"] = self.version
        if self.message:
            d["message"] = self.message
        if self.latency_ms is not None:
            d["latency_ms"] = self.latency_ms
        return d


# ---------------------------------------------------------------------------
# RuntimeAdapter protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class RuntimeAdapter(Protocol):
    """Protocol for container runtime adapters.

    All methods are async. ``wait`` is the dominant suspension point of the
    whole engine: it blocks for as long as the unit runs.

    Lifecycle:
        create → start → wait → logs → remove
        ``remove`` may be called at any point and must be idempotent.
    """

    @property
    def runtime_name(self) -> str:
        """Unique name for this runtime (e.g., 'docker', 'local')."""
        ...

    async def create(self, spec: UnitSpec, name: str) -> str:
        """Create (but do not start) a unit. Returns an opaque reference.

        Raises:
            RuntimeUnitError: If the unit cannot be created.
        """
        ...

    async def start(self, ref: str) -> None:
        """Start a created unit."""
        ...

    async def wait(self, ref: str) -> int:
        """Block until the unit stops running. Returns its exit code."""
        ...

    async def logs(self, ref: str) -> str:
        """Return the unit's combined standard output and error."""
        ...

    async def remove(self, ref: str) -> None:
        """Force-remove the unit. Idempotent."""
        ...

    async def health(self) -> RuntimeHealth:
        """Check runtime reachability and version."""
        ...

    async def close(self) -> None:
        """Release adapter resources."""
        ...
