"""Local process adapter — runs units of work as local subprocesses.

A ``RuntimeAdapter`` that executes ``UnitSpec`` commands as local OS
processes instead of containers. It provides the exact same lifecycle
(create / start / wait / logs / remove) so workflows can be developed and
tested on machines without a docker daemon.

Architecture:

    .. code-block:: text

        LocalProcessAdapter — Container-Free Execution
        ┌──────────────────────────────────────────────────────────────┐
        │  UnitSpec field              │ Local process equivalent      │
        │  ────────────────────────────┼───────────────────────────────│
        │  image                       │ ignored (runs local binary)   │
        │  command + args              │ subprocess argv               │
        │  env                         │ os.environ overlay            │
        │  working_dir                 │ subprocess cwd                │
        │                              │                               │
        │  NOT isolated locally:                                       │
        │  - filesystem, network, resource limits                      │
        └──────────────────────────────────────────────────────────────┘

    .. mermaid::

        flowchart LR
            SPEC[UnitSpec] --> LPA[LocalProcessAdapter]
            LPA --> PROC[asyncio.subprocess]
            PROC --> OUT[stdout + stderr → logs]
            PROC --> RC[returncode → wait]

Example:
    >>> adapter = LocalProcessAdapter()
    >>> ref = await adapter.create(
    ...     UnitSpec(image="ignored", command=["python", "-c", "print('hi')"]),
    ...     "local-task",
    ... )
    >>> await adapter.start(ref)
    >>> await adapter.wait(ref)
    0

Tags:
    localflow, runtimes, local-process, subprocess, development
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from localflow.runtimes._base import BaseRuntimeAdapter
from localflow.runtimes._types import (
    RuntimeErrorCategory,
    RuntimeHealth,
    RuntimeUnitError,
    UnitSpec,
)

logger = logging.getLogger(__name__)


@dataclass
class _LocalUnit:
    """Tracks a local subprocess owned by the adapter."""

    ref: str
    name: str
    spec: UnitSpec
    process: asyncio.subprocess.Process | None = None
    reader: asyncio.Task | None = None
    output: bytearray = field(default_factory=bytearray)
    cwd: Path | None = None
    owns_cwd: bool = False


class LocalProcessAdapter(BaseRuntimeAdapter):
    """Runs ``UnitSpec`` commands as local OS subprocesses.

    The ``image`` field is **ignored** — commands run against whatever is
    installed locally, so ``command`` must reference binaries on ``$PATH``.
    Standard output and error are merged into one stream, in the order the
    process wrote them.
    """

    def __init__(
        self,
        *,
        work_dir: str | Path | None = None,
        inherit_env: bool = True,
        kill_timeout_seconds: float = 5.0,
    ) -> None:
        """Initialize the local process adapter.

        Args:
            work_dir: Base directory for per-unit working dirs when the UnitSpec
                has none. If None, a temp directory is used per unit.
            inherit_env: If True, child processes inherit the current
                environment with spec.env overlaid.
            kill_timeout_seconds: Seconds to wait after SIGTERM before
                sending SIGKILL on removal of a running unit.
        """
        self._work_dir = Path(work_dir) if work_dir else None
        self._inherit_env = inherit_env
        self._kill_timeout = kill_timeout_seconds
        self._units: dict[str, _LocalUnit] = {}

    @property
    def runtime_name(self) -> str:
        return "local"

    # ------------------------------------------------------------------
    # Core lifecycle
    # ------------------------------------------------------------------

    async def _do_create(self, spec: UnitSpec, name: str) -> str:
        if not spec.argv:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.NOT_FOUND,
                message="No command specified; local processes have no image entrypoint",
                runtime="local",
            )
        if any(u.name == name for u in self._units.values()):
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.CONFLICT,
                message=f"unit name '{name}' is already in use",
                runtime="local",
            )
        ref = f"local-{uuid.uuid4().hex[:12]}"
        self._units[ref] = _LocalUnit(ref=ref, name=name, spec=spec)
        return ref

    async def _do_start(self, ref: str) -> None:
        unit = self._unit(ref)
        unit.cwd, unit.owns_cwd = self._resolve_cwd(unit)
        try:
            unit.process = await asyncio.create_subprocess_exec(
                *unit.spec.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=self._build_env(unit.spec),
                cwd=str(unit.cwd),
            )
        except FileNotFoundError as exc:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.NOT_FOUND,
                message=f"Command not found: {unit.spec.argv[0]} ({exc})",
                runtime="local",
            ) from exc
        unit.reader = asyncio.create_task(self._read_output(unit))

    async def _do_wait(self, ref: str) -> int:
        unit = self._unit(ref)
        if unit.process is None:
            raise RuntimeUnitError.unknown(f"unit {ref} was never started", runtime="local")
        returncode = await unit.process.wait()
        if unit.reader is not None:
            await unit.reader
        return returncode

    async def _do_logs(self, ref: str) -> str:
        return self._unit(ref).output.decode(errors="replace")

    async def _do_remove(self, ref: str) -> None:
        unit = self._units.pop(ref, None)
        if unit is None:
            return
        proc = unit.process
        if proc is not None and proc.returncode is None:
            try:
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=self._kill_timeout)
                except TimeoutError:
                    proc.kill()
                    await proc.wait()
            except ProcessLookupError:
                pass
        if unit.reader is not None and not unit.reader.done():
            unit.reader.cancel()
        if unit.owns_cwd and unit.cwd is not None:
            shutil.rmtree(unit.cwd, ignore_errors=True)
        logger.debug("Local unit %s removed", ref)

    async def _do_health(self) -> RuntimeHealth:
        """Local process adapter is always healthy."""
        return RuntimeHealth(
            healthy=True,
            runtime="local",
            version=sys.version.split()[0],
            message="Local process execution (no container runtime required)",
        )

    async def _do_close(self) -> None:
        for ref in list(self._units):
            await self._do_remove(ref)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _unit(self, ref: str) -> _LocalUnit:
        unit = self._units.get(ref)
        if unit is None:
            raise RuntimeUnitError(
                category=RuntimeErrorCategory.NOT_FOUND,
                message=f"No local unit: {ref}",
                runtime="local",
            )
        return unit

    def _build_env(self, spec: UnitSpec) -> dict[str, str]:
        env = dict(os.environ) if self._inherit_env else {}
        env.update(spec.env)
        return env

    def _resolve_cwd(self, unit: _LocalUnit) -> tuple[Path, bool]:
        """Working directory for the subprocess, and whether we created it."""
        if unit.spec.working_dir:
            cwd = Path(unit.spec.working_dir)
            if not cwd.is_dir():
                raise RuntimeUnitError(
                    category=RuntimeErrorCategory.NOT_FOUND,
                    message=f"working directory does not exist: {cwd}",
                    runtime="local",
                )
            return cwd, False
        if self._work_dir:
            cwd = self._work_dir / unit.ref
            cwd.mkdir(parents=True, exist_ok=True)
            return cwd, True
        return Path(tempfile.mkdtemp(prefix=f"localflow-{unit.ref[6:14]}-")), True

    async def _read_output(self, unit: _LocalUnit) -> None:
        """Drain the merged output pipe so the child never blocks on it."""
        assert unit.process is not None and unit.process.stdout is not None
        while True:
            chunk = await unit.process.stdout.read(65536)
            if not chunk:
                break
            unit.output.extend(chunk)
