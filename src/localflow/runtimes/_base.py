"""Base runtime adapter with shared lifecycle logic.

Provides ``BaseRuntimeAdapter`` with common patterns (logging, error
wrapping, health timing) and ``StubRuntimeAdapter`` for unit tests.

Architecture:

    .. code-block:: text

        RuntimeAdapter (Protocol)
              │
              ▼
        BaseRuntimeAdapter
        ├── create()  → logging + error wrapping → _do_create()
        ├── start()   → logging + error wrapping → _do_start()
        ├── wait()    → error wrapping           → _do_wait()
        ├── logs()    → error wrapping           → _do_logs()
        ├── remove()  → logging + error wrapping → _do_remove()
        └── health()  → latency timing           → _do_health()
              │
        ┌─────┼──────────────────────┬─────────────────────┐
        ▼     ▼                      ▼                     ▼
    DockerAdapter          LocalProcessAdapter     StubRuntimeAdapter
    (docker CLI)           (subprocesses)          (in-memory, tests)

Usage:
    # In tests:
    adapter = StubRuntimeAdapter()
    adapter.register("alpine:fail", StubBehavior(exit_code=3))
    ref = await adapter.create(UnitSpec(image="alpine:fail"), "unit-1")
    await adapter.start(ref)
    assert await adapter.wait(ref) == 3

Every public call converts unexpected exceptions into ``RuntimeUnitError``
so the execution adapter only has to handle one error type.

Tags:
    localflow, runtimes, base, adapter-ABC, stub
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from localflow.models import utcnow
from localflow.runtimes._types import (
    RuntimeErrorCategory,
    RuntimeHealth,
    RuntimeUnitError,
    UnitSpec,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------

class BaseRuntimeAdapter:
    """Base class for runtime adapters with shared lifecycle logic.

    Subclasses MUST implement:
        _do_create, _do_start, _do_wait, _do_logs, _do_remove, _do_health

    Subclasses MAY override:
        _do_close (default is a no-op)

    .. code-block:: text

        create(spec, name)
          ├── log: "Creating unit 'X' on docker (image=...)"
          ├── _do_create(spec, name)  ← subclass implements
          ├── log: "Unit 'X' created: ref=abc123"
          └── on error: wrap in RuntimeUnitError(UNKNOWN)

        health()
          ├── start timer
          ├── _do_health()  ← subclass implements
          ├── compute latency_ms
          └── on error: return RuntimeHealth(healthy=False)
    """

    @property
    def runtime_name(self) -> str:
        """Unique name for this runtime."""
        raise NotImplementedError

    async def create(self, spec: UnitSpec, name: str) -> str:
        """Create unit with logging and error wrapping."""
        logger.info(
            "Creating unit '%s' on %s (image=%s)",
            name, self.runtime_name, spec.image,
        )
        ref = await self._call(self._do_create(spec, name), "Create failed")
        logger.info("Unit '%s' created on %s: ref=%s", name, self.runtime_name, ref)
        return ref

    async def start(self, ref: str) -> None:
        """Start unit with logging."""
        await self._call(self._do_start(ref), "Start failed")
        logger.info("Unit %s started on %s", ref, self.runtime_name)

    async def wait(self, ref: str) -> int:
        """Block until the unit stops; return its exit code."""
        return await self._call(self._do_wait(ref), "Wait failed")

    async def logs(self, ref: str) -> str:
        """Fetch combined output."""
        return await self._call(self._do_logs(ref), "Log retrieval failed")

    async def remove(self, ref: str) -> None:
        """Force-remove with logging. Idempotent."""
        logger.debug("Removing %s on %s", ref, self.runtime_name)
        await self._call(self._do_remove(ref), "Remove failed")
        logger.debug("Removed %s", ref)

    async def health(self) -> RuntimeHealth:
        """Health check with latency timing."""
        start = utcnow()
        try:
            result = await self._do_health()
            elapsed = (utcnow() - start).total_seconds() * 1000
            return RuntimeHealth(
                healthy=result.healthy,
                runtime=self.runtime_name,
                version=result.version,
                message=result.message,
                latency_ms=elapsed,
            )
        except Exception as exc:
            elapsed = (utcnow() - start).total_seconds() * 1000
            return RuntimeHealth(
                healthy=False,
                runtime=self.runtime_name,
                message=f"Health check failed: {exc}",
                latency_ms=elapsed,
            )

    async def close(self) -> None:
        """Release adapter resources."""
        await self._do_close()

    async def _call(self, coro, what: str):
        try:
            return await coro
        except RuntimeUnitError:
            raise
        except Exception as exc:
            logger.error("%s on %s: %s", what, self.runtime_name, exc)
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.UNKNOWN,
                message=f"{what}: {exc}",
                runtime=self.runtime_name,
            ) from exc

    # --- Abstract methods for subclasses ---

    async def _do_create(self, spec: UnitSpec, name: str) -> str:
        """Implement in subclass. Return ref."""
        raise NotImplementedError

    async def _do_start(self, ref: str) -> None:
        """Implement in subclass."""
        raise NotImplementedError

    async def _do_wait(self, ref: str) -> int:
        """Implement in subclass."""
        raise NotImplementedError

    async def _do_logs(self, ref: str) -> str:
        """Implement in subclass."""
        raise NotImplementedError

    async def _do_remove(self, ref: str) -> None:
        """Implement in subclass. Idempotent."""
        raise NotImplementedError

    async def _do_health(self) -> RuntimeHealth:
        """Implement in subclass."""
        raise NotImplementedError

    async def _do_close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Stub adapter for testing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StubBehavior:
    """How a stubbed unit behaves, keyed by image in ``StubRuntimeAdapter``."""

    exit_code: int = 0
    output: str | None = None       # None = echo the argv
    delay: float = 0.0              # Seconds spent "running" inside wait()
    fail_create: bool = False
    fail_start: bool = False
    fail_wait: bool = False
    fail_logs: bool = False
    fail_remove: bool = False


@dataclass
class _StubUnit:
    """Internal state for a stubbed unit."""

    ref: str
    name: str
    spec: UnitSpec
    behavior: StubBehavior
    state: str = "created"
    exit_code: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    removed: bool = False


class StubRuntimeAdapter(BaseRuntimeAdapter):
    """In-memory runtime adapter for unit tests.

    No real containers are created. Each unit behaves according to the
    ``StubBehavior`` registered for its image, or the default behavior.

    .. code-block:: text

        StubRuntimeAdapter behavior:

        create → start → wait
          ├── sleeps behavior.delay seconds
          ├── fail_wait=True → RuntimeUnitError(RUNTIME_UNAVAILABLE)
          └── returns behavior.exit_code

        Inject failures per image:
          adapter.register("img", StubBehavior(fail_logs=True))

        Track usage:
          adapter.units         → every unit ever created
          adapter.create_count  → number of create calls
          adapter.remove_count  → number of remove calls
          adapter.fail_health   → health() reports unhealthy

    Example:
        >>> adapter = StubRuntimeAdapter()
        >>> adapter.register("slow", StubBehavior(delay=0.2))
        >>> ref = await adapter.create(UnitSpec(image="slow"), "u1")
        >>> await adapter.start(ref)
        >>> await adapter.wait(ref)
        0
    """

    def __init__(
        self,
        *,
        default: StubBehavior | None = None,
        behaviors: dict[str, StubBehavior] | None = None,
    ) -> None:
        self.default = default or StubBehavior()
        self.behaviors: dict[str, StubBehavior] = dict(behaviors or {})
        self.units: dict[str, _StubUnit] = {}
        self.create_count: int = 0
        self.remove_count: int = 0
        self.fail_health: bool = False
        self.closed: bool = False

    @property
    def runtime_name(self) -> str:
        return "stub"

    def register(self, image: str, behavior: StubBehavior) -> None:
        """Set the behavior for every unit created from ``image``."""
        self.behaviors[image] = behavior

    def unit_by_name(self, name: str) -> _StubUnit | None:
        """Most recent unit created with ``name``."""
        for unit in reversed(list(self.units.values())):
            if unit.name == name:
                return unit
        return None

    async def _do_create(self, spec: UnitSpec, name: str) -> str:
        behavior = self.behaviors.get(spec.image, self.default)
        if behavior.fail_create:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.NOT_FOUND,
                message=f"Stub: no such image: {spec.image}",
                runtime="stub",
            )
        for unit in self.units.values():
            if unit.name == name and not unit.removed:
                raise RuntimeUnitError(
                    category=RuntimeErrorCategory.CONFLICT,
                    message=f"Stub: name '{name}' is already in use",
                    runtime="stub",
                )
        self.create_count += 1
        ref = f"stub-{uuid.uuid4().hex[:12]}"
        self.units[ref] = _StubUnit(ref=ref, name=name, spec=spec, behavior=behavior)
        return ref

    async def _do_start(self, ref: str) -> None:
        unit = self._unit(ref)
        if unit.behavior.fail_start:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.UNKNOWN,
                message="Stub: start failure injected",
                runtime="stub",
            )
        unit.state = "running"
        unit.started_at = utcnow()

    async def _do_wait(self, ref: str) -> int:
        unit = self._unit(ref)
        if unit.behavior.delay:
            await asyncio.sleep(unit.behavior.delay)
        if unit.behavior.fail_wait:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.RUNTIME_UNAVAILABLE,
                message="Stub: lost connection to runtime",
                runtime="stub",
            )
        unit.state = "exited"
        unit.exit_code = unit.behavior.exit_code
        unit.finished_at = utcnow()
        return unit.exit_code

    async def _do_logs(self, ref: str) -> str:
        unit = self._unit(ref)
        if unit.behavior.fail_logs:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.UNKNOWN,
                message="Stub: log failure injected",
                runtime="stub",
            )
        if unit.behavior.output is not None:
            return unit.behavior.output
        return " ".join(unit.spec.argv) + "\n"

    async def _do_remove(self, ref: str) -> None:
        self.remove_count += 1
        unit = self.units.get(ref)
        if unit is None:
            return
        if unit.behavior.fail_remove:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.UNKNOWN,
                message="Stub: remove failure injected",
                runtime="stub",
            )
        unit.removed = True

    async def _do_health(self) -> RuntimeHealth:
        if self.fail_health:
            return RuntimeHealth(
                healthy=False,
                runtime="stub",
                message="Stub: health failure injected",
            )
        return RuntimeHealth(healthy=True, runtime="stub", version="0.0.0-stub")

    async def _do_close(self) -> None:
        self.closed = True

    def _unit(self, ref: str) -> _StubUnit:
        unit = self.units.get(ref)
        if unit is None:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.NOT_FOUND,
                message=f"No stub unit: {ref}",
                runtime="stub",
            )
        return unit
