"""Execution adapter — runs one unit-of-work template as a runtime unit.

The executor knows nothing about the template graph. Given a container or
script template and the run it belongs to, it drives the runtime adapter
through one complete unit lifecycle and returns a normalized
:class:`~localflow.models.NodeStatus`.

Lifecycle:

    .. code-block:: text

        execute(node_name, template, workflow)
          ├── build UnitSpec        (argv, env, labels)
          ├── create + start        failure → Error node, NodeError
          ├── on_running(status)    Running, started_at set
          ├── wait                  0 → Succeeded
          │                         N → Failed "exited with code N"
          │                         error → Error node, NodeError
          ├── logs                  → outputs["logs"]  (failure logged only)
          └── remove (always)       failure logged only

Environment:
    Every unit sees ``LOCALFLOW_WORKFLOW_NAME``, ``LOCALFLOW_NODE_NAME`` and
    ``LOCALFLOW_TEMPLATE_NAME``. Template variables follow in document
    order; a template cannot override the three identifiers.

Tags:
    localflow, executor, runtime-unit, lifecycle
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from localflow.errors import NodeError, OutputCaptureError
from localflow.logging import get_logger
from localflow.models import (
    NodePhase,
    NodeStatus,
    NodeType,
    ScriptTemplate,
    UnitOfWork,
    Workflow,
    display_name,
    node_id,
    utcnow,
)
from localflow.runtimes import RuntimeAdapter, RuntimeUnitError, UnitSpec, unit_name

log = get_logger(__name__)

ENV_WORKFLOW_NAME = "LOCALFLOW_WORKFLOW_NAME"
ENV_NODE_NAME = "LOCALFLOW_NODE_NAME"
ENV_TEMPLATE_NAME = "LOCALFLOW_TEMPLATE_NAME"
INJECTED_ENV = frozenset({ENV_WORKFLOW_NAME, ENV_NODE_NAME, ENV_TEMPLATE_NAME})

LABEL_WORKFLOW = "localflow.workflow"
LABEL_NODE = "localflow.node"
LABEL_TEMPLATE = "localflow.template"

RunningCallback = Callable[[NodeStatus], None]


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, RuntimeUnitError):
        return exc.message
    return str(exc) or type(exc).__name__


class NodeExecutor:
    """Turns unit-of-work templates into runtime units.

    Args:
        adapter: Runtime the units are created on.
        unit_name_prefix: First component of every runtime unit name.
        max_concurrent_units: Ceiling on units running at once across all
            runs. ``None`` leaves fan-out unbounded.

    Example:
        >>> executor = NodeExecutor(StubRuntimeAdapter())
        >>> status = await executor.execute("hello", template, workflow)
        >>> status.phase
        <NodePhase.SUCCEEDED: 'Succeeded'>
    """

    def __init__(
        self,
        adapter: RuntimeAdapter,
        *,
        unit_name_prefix: str = "localflow",
        max_concurrent_units: int | None = None,
    ) -> None:
        self.adapter = adapter
        self.unit_name_prefix = unit_name_prefix
        self.max_concurrent_units = max_concurrent_units
        self._slots = asyncio.Semaphore(max_concurrent_units) if max_concurrent_units else None

    # ------------------------------------------------------------------
    # Spec building
    # ------------------------------------------------------------------

    def build_env(self, node_name: str, template: UnitOfWork, workflow: Workflow) -> dict[str, str]:
        """Injected identifiers first, then template variables in order."""
        env = {
            ENV_WORKFLOW_NAME: workflow.name,
            ENV_NODE_NAME: node_name,
            ENV_TEMPLATE_NAME: template.name,
        }
        for var in template.env:
            if var.name in INJECTED_ENV:
                log.warning(
                    "node.env_override_ignored",
                    workflow=workflow.name,
                    node=node_name,
                    variable=var.name,
                )
                continue
            env[var.name] = var.value
        return env

    def build_spec(self, node_name: str, template: UnitOfWork, workflow: Workflow) -> UnitSpec:
        """Resolve a unit-of-work template into a :class:`UnitSpec`."""
        if isinstance(template, ScriptTemplate):
            # Interpreter followed by the inline body
            command = list(template.command)
            args = ["-c", template.source]
        else:
            command = list(template.command)
            args = list(template.args)
        return UnitSpec(
            image=template.image,
            command=command,
            args=args,
            working_dir=template.working_dir,
            env=self.build_env(node_name, template, workflow),
            labels={
                LABEL_WORKFLOW: workflow.name,
                LABEL_NODE: node_name,
                LABEL_TEMPLATE: template.name,
            },
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        node_name: str,
        template: UnitOfWork,
        workflow: Workflow,
        *,
        on_running: RunningCallback | None = None,
    ) -> NodeStatus:
        """Run ``template`` as one runtime unit and report its outcome.

        Returns the terminal status for Succeeded and Failed units. A unit
        whose outcome cannot be determined is reported by raising.

        Raises:
            NodeError: The unit could not be created, started or awaited.
                ``node_status`` holds the populated Error status.
        """
        if self._slots is None:
            return await self._execute(node_name, template, workflow, on_running)
        async with self._slots:
            return await self._execute(node_name, template, workflow, on_running)

    async def _execute(
        self,
        node_name: str,
        template: UnitOfWork,
        workflow: Workflow,
        on_running: RunningCallback | None,
    ) -> NodeStatus:
        name = unit_name(self.unit_name_prefix, workflow.name, node_name)
        status = NodeStatus(
            id=node_id(workflow.name, node_name),
            name=node_name,
            display_name=display_name(node_name),
            type=NodeType.POD,
            template_name=template.name,
            host_node_name=name,
        )
        spec = self.build_spec(node_name, template, workflow)
        log.info("node.executing", workflow=workflow.name, node=node_name, unit=name)

        ref: str | None = None
        try:
            try:
                ref = await self.adapter.create(spec, name)
                await self.adapter.start(ref)
            except Exception as exc:
                raise self._errored(status, _error_text(exc)) from exc

            status.started_at = utcnow()
            if on_running is not None:
                on_running(status)

            try:
                exit_code = await self.adapter.wait(ref)
            except Exception as exc:
                raise self._errored(status, _error_text(exc)) from exc

            status.finished_at = utcnow()
            if exit_code == 0:
                status.phase = NodePhase.SUCCEEDED
            else:
                status.phase = NodePhase.FAILED
                status.message = f"exited with code {exit_code}"
            log.info(
                "node.completed",
                workflow=workflow.name,
                node=node_name,
                phase=status.phase.value,
                exit_code=exit_code,
            )

            await self._capture_output(ref, status, workflow.name)
            return status
        finally:
            if ref is not None:
                await self._remove(ref, workflow.name, node_name)

    def _errored(self, status: NodeStatus, message: str) -> NodeError:
        status.phase = NodePhase.ERROR
        status.message = message
        if status.started_at is None:
            status.started_at = utcnow()
        status.finished_at = utcnow()
        log.error("node.errored", node=status.name, error_message=message)
        return NodeError(message, node_status=status)

    async def _capture_output(self, ref: str, status: NodeStatus, workflow_name: str) -> None:
        try:
            status.outputs["logs"] = await self.adapter.logs(ref)
        except Exception as exc:
            err = OutputCaptureError(f"failed to capture output of '{status.name}': {_error_text(exc)}")
            log.warning(
                "node.output_capture_failed",
                workflow=workflow_name,
                node=status.name,
                code=err.code,
                error_message=err.message,
            )

    async def _remove(self, ref: str, workflow_name: str, node_name: str) -> None:
        try:
            await self.adapter.remove(ref)
        except Exception as exc:
            log.warning(
                "node.remove_failed",
                workflow=workflow_name,
                node=node_name,
                ref=ref,
                error_message=_error_text(exc),
            )
