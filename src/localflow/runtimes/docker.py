"""Docker adapter — runs units of work as ephemeral docker containers.

Talks to the daemon through the ``docker`` CLI (asyncio subprocess).
No ``docker-py`` dependency — the CLI honours ``DOCKER_HOST`` and docker
contexts, so Docker Desktop, Colima and Podman's docker shim all work
without extra configuration.

Architecture:

    .. code-block:: text

        UnitSpec field    │ docker CLI
        ──────────────────┼──────────────────────────────────────────
        image             │ docker create ... IMAGE
        command[0]        │ --entrypoint command[0]
        command[1:]+args  │ trailing CMD arguments
        working_dir       │ -w DIR
        env               │ -e NAME=value (in order)
        labels            │ --label key=value
        ──────────────────┼──────────────────────────────────────────
        start(ref)        │ docker start REF
        wait(ref)         │ docker wait REF         → exit code on stdout
        logs(ref)         │ docker logs REF         (stderr merged)
        remove(ref)       │ docker rm -f REF        ("No such container" ok)
        health()          │ docker version --format {{.Server.Version}}

Architecture Decisions:
    - subprocess, not docker-py: works with any runtime exposing a
      ``docker`` CLI and avoids platform-specific wheels.
    - Containers are created without ``--rm`` so the exit code and logs
      can be read after the container stops; the execution adapter removes
      them explicitly.
    - Error messages from the CLI are classified into
      ``RuntimeErrorCategory`` so the daemon being down is reported
      differently from a missing image.

Tags:
    localflow, runtimes, docker, container, subprocess
"""

from __future__ import annotations

import asyncio
import logging
import shutil

from localflow.runtimes._base import BaseRuntimeAdapter
from localflow.runtimes._types import (
    RuntimeErrorCategory,
    RuntimeHealth,
    RuntimeUnitError,
    UnitSpec,
)

logger = logging.getLogger(__name__)

_UNAVAILABLE_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "error during connect",
)
_NOT_FOUND_MARKERS = (
    "unable to find image",
    "no such image",
    "pull access denied",
    "manifest unknown",
    "no such container",
    "executable file not found",
)
_CONFLICT_MARKERS = ("conflict", "is already in use")


def classify_docker_error(stderr: str) -> RuntimeErrorCategory:
    """Map docker CLI stderr onto a ``RuntimeErrorCategory``."""
    text = stderr.lower()
    if any(m in text for m in _UNAVAILABLE_MARKERS):
        return RuntimeErrorCategory.RUNTIME_UNAVAILABLE
    if any(m in text for m in _CONFLICT_MARKERS):
        return RuntimeErrorCategory.CONFLICT
    if any(m in text for m in _NOT_FOUND_MARKERS):
        return RuntimeErrorCategory.NOT_FOUND
    return RuntimeErrorCategory.UNKNOWN


class DockerAdapter(BaseRuntimeAdapter):
    """Runs ``UnitSpec`` units as docker containers via the CLI.

    Example:
        >>> adapter = DockerAdapter()
        >>> ref = await adapter.create(UnitSpec(image="alpine", command=["echo", "hi"]), "demo")
        >>> await adapter.start(ref)
        >>> await adapter.wait(ref)
        0
        >>> await adapter.logs(ref)
        'hi\\n'
        >>> await adapter.remove(ref)
    """

    def __init__(self, *, docker_binary: str = "docker") -> None:
        self._docker_binary = docker_binary
        self._docker_cmd: str | None = None

    @property
    def runtime_name(self) -> str:
        return "docker"

    # ------------------------------------------------------------------
    # Docker CLI discovery
    # ------------------------------------------------------------------

    def _find_docker(self) -> str:
        """Find the docker CLI binary (cached)."""
        if self._docker_cmd is None:
            docker = shutil.which(self._docker_binary)
            if docker is None:
                raise RuntimeUnitError(
                    category=RuntimeErrorCategory.RUNTIME_UNAVAILABLE,
                    message=(
                        f"'{self._docker_binary}' CLI not found on PATH "
                        "(hint: install Docker, or set DOCKER_HOST when using Colima)"
                    ),
                    runtime="docker",
                )
            self._docker_cmd = docker
        return self._docker_cmd

    async def _run(self, *args: str, merge_stderr: bool = False) -> tuple[int, str, str]:
        """Run a docker CLI command. Returns (returncode, stdout, stderr)."""
        cmd = [self._find_docker(), *args]
        logger.debug("docker %s", " ".join(args))
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await proc.communicate()
        finally:
            # Cancelled mid-command (shutdown): don't leave the CLI child behind
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
        return (
            proc.returncode if proc.returncode is not None else -1,
            stdout.decode(errors="replace") if stdout else "",
            stderr.decode(errors="replace") if stderr else "",
        )

    async def _check(self, *args: str) -> str:
        """Run a docker CLI command, raising a classified error on failure."""
        rc, stdout, stderr = await self._run(*args)
        if rc != 0:
            message = stderr.strip() or stdout.strip() or f"docker {args[0]} exited with {rc}"
            raise RuntimeUnitError(
                category=classify_docker_error(message),
                message=message,
                runtime="docker",
                exit_code=rc,
            )
        return stdout

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def build_create_args(spec: UnitSpec, name: str) -> list[str]:
        """Translate a ``UnitSpec`` into ``docker create`` arguments."""
        args = ["create", "--name", name]
        if spec.working_dir:
            args.extend(["-w", spec.working_dir])
        for entry in spec.env_list():
            args.extend(["-e", entry])
        for key, value in spec.labels.items():
            args.extend(["--label", f"{key}={value}"])
        if spec.command:
            args.extend(["--entrypoint", spec.command[0]])
        args.append(spec.image)
        args.extend(spec.command[1:])
        args.extend(spec.args)
        return args

    async def _do_create(self, spec: UnitSpec, name: str) -> str:
        stdout = await self._check(*self.build_create_args(spec, name))
        # Image pull progress may precede the id; the id is the last line.
        lines = [line for line in stdout.strip().splitlines() if line.strip()]
        if not lines:
            raise RuntimeUnitError.unknown(
                f"docker create returned no container id for '{name}'",
                runtime="docker",
            )
        return lines[-1].strip()

    async def _do_start(self, ref: str) -> None:
        await self._check("start", ref)

    async def _do_wait(self, ref: str) -> int:
        stdout = await self._check("wait", ref)
        try:
            return int(stdout.strip().splitlines()[-1])
        except (ValueError, IndexError) as exc:
            raise RuntimeUnitError.unknown(
                f"unexpected 'docker wait' output: {stdout!r}",
                runtime="docker",
            ) from exc

    async def _do_logs(self, ref: str) -> str:
        rc, stdout, _ = await self._run("logs", ref, merge_stderr=True)
        if rc != 0:
            raise RuntimeUnitError(
                category=classify_docker_error(stdout),
                message=stdout.strip() or f"docker logs exited with {rc}",
                runtime="docker",
                exit_code=rc,
            )
        return stdout

    async def _do_remove(self, ref: str) -> None:
        rc, stdout, stderr = await self._run("rm", "-f", ref)
        if rc != 0 and "no such container" not in stderr.lower():
            message = stderr.strip() or stdout.strip()
            raise RuntimeUnitError(
                category=classify_docker_error(message),
                message=message,
                runtime="docker",
                exit_code=rc,
            )

    async def _do_health(self) -> RuntimeHealth:
        try:
            stdout = await self._check("version", "--format", "{{.Server.Version}}")
        except RuntimeUnitError as exc:
            return RuntimeHealth(
                healthy=False,
                runtime="docker",
                message=f"failed to connect to Docker daemon: {exc.message}",
            )
        return RuntimeHealth(healthy=True, runtime="docker", version=stdout.strip() or None)
