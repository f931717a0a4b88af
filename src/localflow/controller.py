"""Workflow controller — walks template graphs and drives runs to completion.

The controller owns the registry handle and the execution adapter. A
submission is registered Pending and handed to a detached asyncio task that
walks the template graph from the entrypoint; every status change flows back
through the registry, which is the only channel between a walk and the
readers of its state.

Architecture:

    .. code-block:: text

        submit(workflow) ─► registry.create (Pending) ─► create_task(_walk)
                                                            │
        _walk ─► mark_running ─► validate ─► execute_template(entry)
                                                  │
                 ┌────────────────┬───────────────┴──────────┐
                 ▼                ▼                          ▼
            unit of work      StepsTemplate              DAGTemplate
            executor.execute  groups in order,           all tasks at once
                              members at once            (dependencies ignored)

Failure semantics:
    Siblings always run to completion ("wait-all"): a failing member never
    cancels the others. After a group joins, the first error observed in
    completion order fails the composite and, through it, every ancestor up
    to the run. Remaining step groups are not started.

Tags:
    localflow, controller, orchestrator, asyncio
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import assert_never

from localflow.errors import (
    ControllerClosedError,
    DuplicateNodeNameError,
    EntrypointMissingError,
    EntrypointNotFoundError,
    LocalflowError,
    NodeError,
    NodeFailedError,
    TemplateCycleError,
    TemplateNotFoundError,
)
from localflow.executor import NodeExecutor
from localflow.logging import bind_context, get_logger
from localflow.models import (
    ContainerTemplate,
    DAGTemplate,
    NodePhase,
    NodeStatus,
    NodeType,
    ScriptTemplate,
    StepsTemplate,
    Template,
    UnitOfWork,
    Workflow,
    WorkflowSnapshot,
    display_name,
    node_id,
    utcnow,
)
from localflow.registry import RunRegistry
from localflow.runtimes import RuntimeAdapter, create_adapter
from localflow.settings import LocalflowSettings

log = get_logger(__name__)

CANCELLED_MESSAGE = "workflow execution cancelled"

_ChildRunner = Callable[[Workflow, str, Template], Awaitable[None]]


def _check_unique_names(template: StepsTemplate | DAGTemplate) -> None:
    # Sibling names become node names; a repeat would alias two nodes
    if isinstance(template, StepsTemplate):
        groups = [[s.name for s in group] for group in template.groups]
        kind = "step"
    else:
        groups = [[t.name for t in template.tasks]]
        kind = "task"
    for names in groups:
        seen: set[str] = set()
        for name in names:
            if name in seen:
                raise DuplicateNodeNameError(template.name, name, kind=kind)
            seen.add(name)


def validate_workflow(workflow: Workflow) -> Template:
    """Check the template graph reachable from the entrypoint.

    Runs before any unit of work is created, so a structural mistake
    anywhere in the graph fails the run with nothing executed.

    Returns:
        The entry template.

    Raises:
        EntrypointNotFoundError: Entrypoint empty or unresolved.
        TemplateNotFoundError: A step or task names an unknown template.
        TemplateCycleError: Templates reference each other in a cycle.
        DuplicateNodeNameError: Two steps of a group, or two tasks of a DAG,
            share a name.
    """
    entry = workflow.template(workflow.entrypoint) if workflow.entrypoint else None
    if entry is None:
        raise EntrypointNotFoundError(workflow.entrypoint)

    finished: set[str] = set()
    path: list[str] = []

    def visit(template: Template) -> None:
        if template.name in finished:
            return
        if template.name in path:
            start = path.index(template.name)
            raise TemplateCycleError([*path[start:], template.name])
        if isinstance(template, (StepsTemplate, DAGTemplate)):
            kind = "step" if isinstance(template, StepsTemplate) else "task"
            _check_unique_names(template)
            path.append(template.name)
            for ref_name, template_name in template.references():
                child = workflow.template(template_name)
                if child is None:
                    raise TemplateNotFoundError(template_name, ref_name, kind=kind)
                visit(child)
            path.pop()
        finished.add(template.name)

    visit(entry)
    return entry


class WorkflowController:
    """Accepts workflows and executes them asynchronously.

    Args:
        executor: Execution adapter for units of work.
        registry: Run registry; a private one is created when omitted.
        shutdown_grace_seconds: Default time active runs get to finish
            during :meth:`shutdown`.

    Example:
        >>> controller = WorkflowController(NodeExecutor(StubRuntimeAdapter()))
        >>> await controller.submit(workflow)
        >>> snapshot = await controller.wait(workflow.name)
        >>> snapshot.phase
        <WorkflowPhase.SUCCEEDED: 'Succeeded'>
    """

    def __init__(
        self,
        executor: NodeExecutor,
        registry: RunRegistry | None = None,
        *,
        shutdown_grace_seconds: float = 10.0,
    ) -> None:
        self.executor = executor
        self.registry = registry if registry is not None else RunRegistry()
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: LocalflowSettings,
        adapter: RuntimeAdapter | None = None,
    ) -> WorkflowController:
        """Build a controller (and, unless given, its runtime adapter) from settings."""
        if adapter is None:
            adapter = create_adapter(settings.runtime, docker_binary=settings.docker_binary)
        executor = NodeExecutor(
            adapter,
            unit_name_prefix=settings.unit_name_prefix,
            max_concurrent_units=settings.max_concurrent_units,
        )
        return cls(executor, shutdown_grace_seconds=settings.shutdown_grace_seconds)

    @property
    def adapter(self) -> RuntimeAdapter:
        return self.executor.adapter

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_runs(self) -> list[str]:
        """Names of runs whose walk has not finished."""
        return [name for name, task in self._tasks.items() if not task.done()]

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    async def submit(self, workflow: Workflow) -> WorkflowSnapshot:
        """Register a run and start walking it in the background.

        Returns the Pending snapshot without waiting for any execution.

        Raises:
            ControllerClosedError: Shutdown has begun.
            EntrypointMissingError: The workflow names no entrypoint.
            DuplicateRunError: The run name is already registered.
        """
        if self._closed:
            raise ControllerClosedError()
        if not workflow.entrypoint:
            raise EntrypointMissingError(workflow.name)

        snapshot = self.registry.create(workflow, started_at=utcnow())
        self._tasks[workflow.name] = asyncio.create_task(
            self._walk(workflow), name=f"localflow-walk-{workflow.name}"
        )
        log.info("workflow.submitted", workflow=workflow.name, entrypoint=workflow.entrypoint)
        return snapshot

    def get(self, name: str) -> WorkflowSnapshot:
        """Snapshot of one run. Raises ``RunNotFoundError``."""
        return self.registry.get(name)

    def list(self) -> list[WorkflowSnapshot]:
        """Snapshots of every run, in submission order."""
        return self.registry.list()

    async def wait(self, name: str, timeout: float | None = None) -> WorkflowSnapshot:
        """Block until a run's walk finishes and return its final snapshot.

        A timeout leaves the walk running.

        Raises:
            RunNotFoundError: Unknown run.
            TimeoutError: The walk did not finish within ``timeout`` seconds.
        """
        task = self._tasks.get(name)
        if task is None:
            return self.registry.get(name)
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            raise TimeoutError(f"workflow '{name}' still running after {timeout}s")
        return self.registry.get(name)

    async def shutdown(self, grace_seconds: float | None = None) -> None:
        """Stop accepting work, drain active runs, then close the runtime.

        Runs still active after the grace period are cancelled and recorded
        as Failed.
        """
        self._closed = True
        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        active = [task for task in self._tasks.values() if not task.done()]
        if active:
            log.info("controller.draining", active=len(active), grace_seconds=grace)
            _, pending = await asyncio.wait(active, timeout=grace)
            if pending:
                log.warning("controller.cancelling", runs=len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        await self.adapter.close()
        log.info("controller.stopped")

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    async def _walk(self, workflow: Workflow) -> None:
        name = workflow.name
        bind_context(workflow=name, runtime=self.adapter.runtime_name)
        self.registry.mark_running(name)
        log.info("workflow.started")
        try:
            entry = validate_workflow(workflow)
            await self.execute_template(workflow, workflow.entrypoint, entry)
        except asyncio.CancelledError:
            self.registry.mark_failed(name, CANCELLED_MESSAGE)
            log.warning("workflow.cancelled")
            raise
        except LocalflowError as exc:
            self.registry.mark_failed(name, exc.message)
            log.error("workflow.failed", error_type=type(exc).__name__, error_message=exc.message)
            return
        except Exception as exc:
            # Never leave a run Running because of an engine bug
            log.exception("workflow.crashed")
            self.registry.mark_failed(name, f"internal error: {exc}")
            return
        self.registry.mark_succeeded(name)
        log.info("workflow.succeeded")

    async def execute_template(self, workflow: Workflow, node_name: str, template: Template) -> None:
        """Execute the node ``node_name`` instantiating ``template``.

        Raises:
            NodeExecutionError: The node (or a descendant) did not succeed.
        """
        match template:
            case ContainerTemplate() | ScriptTemplate():
                await self._execute_unit(workflow, node_name, template)
            case StepsTemplate():
                await self._execute_composite(workflow, node_name, template, NodeType.STEPS, self._run_steps)
            case DAGTemplate():
                await self._execute_composite(workflow, node_name, template, NodeType.DAG, self._run_dag)
            case _:
                assert_never(template)

    # ------------------------------------------------------------------
    # Node kinds
    # ------------------------------------------------------------------

    async def _execute_unit(self, workflow: Workflow, node_name: str, template: UnitOfWork) -> None:
        def on_running(status: NodeStatus) -> None:
            self.registry.update_node_status(workflow.name, status)

        try:
            status = await self.executor.execute(node_name, template, workflow, on_running=on_running)
        except NodeError as exc:
            if exc.node_status is not None:
                self.registry.update_node_status(workflow.name, exc.node_status)
            raise NodeError(
                f"node '{node_name}' failed: {exc.message}", node_status=exc.node_status
            ) from exc

        self.registry.update_node_status(workflow.name, status)
        if status.phase is NodePhase.FAILED:
            raise NodeFailedError(f"node '{node_name}' failed: {status.message}", node_status=status)

    async def _execute_composite(
        self,
        workflow: Workflow,
        node_name: str,
        template: StepsTemplate | DAGTemplate,
        node_type: NodeType,
        run_children: _ChildRunner,
    ) -> None:
        status = NodeStatus(
            id=node_id(workflow.name, node_name),
            name=node_name,
            display_name=display_name(node_name),
            type=node_type,
            template_name=template.name,
            started_at=utcnow(),
        )
        self.registry.update_node_status(workflow.name, status)
        log.info("node.dispatching", node=node_name, template=template.name, type=node_type.value)

        try:
            await run_children(workflow, node_name, template)
        except asyncio.CancelledError:
            self._finish_node(workflow, status, NodePhase.FAILED, CANCELLED_MESSAGE)
            raise
        except LocalflowError as exc:
            self._finish_node(workflow, status, NodePhase.FAILED, exc.message)
            raise
        self._finish_node(workflow, status, NodePhase.SUCCEEDED, None)

    def _finish_node(
        self, workflow: Workflow, status: NodeStatus, phase: NodePhase, message: str | None
    ) -> None:
        status.phase = phase
        status.message = message
        status.finished_at = utcnow()
        self.registry.update_node_status(workflow.name, status)

    async def _run_steps(self, workflow: Workflow, node_name: str, template: Template) -> None:
        assert isinstance(template, StepsTemplate)
        for index, group in enumerate(template.groups):
            log.debug("steps.group_started", node=node_name, group=index, size=len(group))
            await self._run_group(
                workflow,
                [(f"{node_name}[{index}].{step.name}", step.template) for step in group],
            )

    async def _run_dag(self, workflow: Workflow, node_name: str, template: Template) -> None:
        assert isinstance(template, DAGTemplate)
        await self._run_group(
            workflow,
            [(f"{node_name}.{task.name}", task.template) for task in template.tasks],
        )

    async def _run_group(self, workflow: Workflow, children: list[tuple[str, str]]) -> None:
        """Run children concurrently, wait for all, raise the first error observed."""
        errors: list[LocalflowError] = []

        async def run_child(child_name: str, template_name: str) -> None:
            bind_context(node=child_name)
            try:
                template = workflow.template(template_name)
                if template is None:
                    raise TemplateNotFoundError(template_name, display_name(child_name))
                await self.execute_template(workflow, child_name, template)
            except LocalflowError as exc:
                # Appended as each child fails, so errors[0] is the first observed
                errors.append(exc)

        results = await asyncio.gather(
            *(run_child(child, tmpl) for child, tmpl in children),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, LocalflowError):
                raise result
        if errors:
            raise errors[0]
