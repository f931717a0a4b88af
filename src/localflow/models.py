"""Workflow data model — templates, runs and the status tree.

Templates are an immutable tagged union. Two kinds are *units of work*
(a container, or an inline script run by an interpreter) and two are
*composites* that reference other templates by name:

.. code-block:: text

    Template
    ├── ContainerTemplate   image, command, args, working_dir, env
    ├── ScriptTemplate      image, command (interpreter), source, working_dir, env
    ├── StepsTemplate       groups[i] = (StepRef, ...)   groups run in order,
    │                                                    members concurrently
    └── DAGTemplate         tasks = (TaskRef, ...)       all run concurrently

A :class:`Workflow` is the parsed, immutable document. Its mutable
:class:`WorkflowStatus` lives in the run registry and is only ever handed out
as a deep copy inside a :class:`WorkflowSnapshot`.

Node identity:
    Every executed graph position has a path-qualified *node name*
    (``main``, ``main[0].hello``, ``main[1].fan.a``) and a deterministic
    *node id* derived from the run name and that path, so the same template
    referenced at two positions yields two distinct nodes.

Tags:
    localflow, models, templates, status
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class WorkflowPhase(str, Enum):
    """Lifecycle of a run: ``Pending → Running → {Succeeded, Failed}``."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowPhase.SUCCEEDED, WorkflowPhase.FAILED)


class NodePhase(str, Enum):
    """Lifecycle of a node: ``Running → {Succeeded, Failed, Error}``.

    ``Failed`` means the user's program ran and exited non-zero. ``Error``
    means the engine could not run it at all.
    """

    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self is not NodePhase.RUNNING


class NodeType(str, Enum):
    """Kind of graph position a node represents."""

    POD = "Pod"
    STEPS = "Steps"
    DAG = "DAG"

    @property
    def is_leaf(self) -> bool:
        return self is NodeType.POD


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnvVar:
    """A single declared environment variable."""

    name: str
    value: str = ""


@dataclass(frozen=True)
class ContainerTemplate:
    """Unit of work: run ``command + args`` in ``image``."""

    name: str
    image: str
    command: tuple[str, ...] = ()
    args: tuple[str, ...] = ()
    working_dir: str | None = None
    env: tuple[EnvVar, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"image": self.image}
        if self.command:
            body["command"] = list(self.command)
        if self.args:
            body["args"] = list(self.args)
        if self.working_dir:
            body["workingDir"] = self.working_dir
        if self.env:
            body["env"] = [{"name": e.name, "value": e.value} for e in self.env]
        return {"name": self.name, "container": body}


@dataclass(frozen=True)
class ScriptTemplate:
    """Unit of work: feed ``source`` to the interpreter in ``command``."""

    name: str
    image: str
    source: str
    command: tuple[str, ...] = ("sh",)
    working_dir: str | None = None
    env: tuple[EnvVar, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "image": self.image,
            "command": list(self.command),
            "source": self.source,
        }
        if self.working_dir:
            body["workingDir"] = self.working_dir
        if self.env:
            body["env"] = [{"name": e.name, "value": e.value} for e in self.env]
        return {"name": self.name, "script": body}


@dataclass(frozen=True)
class StepRef:
    """A named reference to a template inside a step group."""

    name: str
    template: str


@dataclass(frozen=True)
class StepsTemplate:
    """Composite: an ordered sequence of concurrently executed step groups."""

    name: str
    groups: tuple[tuple[StepRef, ...], ...] = ()

    def references(self) -> list[tuple[str, str]]:
        """Return ``(step name, template name)`` for every step."""
        return [(s.name, s.template) for group in self.groups for s in group]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "steps": [
                [{"name": s.name, "template": s.template} for s in group]
                for group in self.groups
            ],
        }


@dataclass(frozen=True)
class TaskRef:
    """A named reference to a template inside a task graph.

    ``dependencies`` is kept for round-tripping documents; the engine does not
    order tasks by it.
    """

    name: str
    template: str
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class DAGTemplate:
    """Composite: an unordered set of tasks, all dispatched concurrently."""

    name: str
    tasks: tuple[TaskRef, ...] = ()

    def references(self) -> list[tuple[str, str]]:
        """Return ``(task name, template name)`` for every task."""
        return [(t.name, t.template) for t in self.tasks]

    def to_dict(self) -> dict[str, Any]:
        tasks = []
        for t in self.tasks:
            task: dict[str, Any] = {"name": t.name, "template": t.template}
            if t.dependencies:
                task["dependencies"] = list(t.dependencies)
            tasks.append(task)
        return {"name": self.name, "dag": {"tasks": tasks}}


UnitOfWork = ContainerTemplate | ScriptTemplate
Template = ContainerTemplate | ScriptTemplate | StepsTemplate | DAGTemplate


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Workflow:
    """A parsed workflow document: immutable templates plus an entrypoint."""

    name: str
    entrypoint: str
    templates: tuple[Template, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)

    def template(self, name: str) -> Template | None:
        """Find a template by name, or ``None``."""
        for tmpl in self.templates:
            if tmpl.name == name:
                return tmpl
        return None

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": self.name}
        if self.labels:
            metadata["labels"] = dict(self.labels)
        return {
            "metadata": metadata,
            "spec": {
                "entrypoint": self.entrypoint,
                "templates": [t.to_dict() for t in self.templates],
            },
        }


# ---------------------------------------------------------------------------
# Status tree
# ---------------------------------------------------------------------------

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoding of ``text``."""
    h = _FNV_OFFSET
    for byte in text.encode():
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def node_id(workflow_name: str, node_name: str) -> str:
    """Deterministic node identifier for a graph position.

    Example:
        >>> node_id("hello", "hello")
        'hello'
        >>> node_id("hello", "main[0].a") == node_id("hello", "main[0].a")
        True
    """
    if node_name == workflow_name:
        return workflow_name
    return f"{workflow_name}-{fnv1a_32(node_name)}"


def display_name(node_name: str) -> str:
    """Last component of a path-qualified node name (``main[0].a`` → ``a``)."""
    return node_name.rsplit(".", 1)[-1]


@dataclass
class NodeStatus:
    """Status of one executed graph position."""

    id: str
    name: str
    display_name: str
    type: NodeType
    template_name: str
    phase: NodePhase = NodePhase.RUNNING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    message: str | None = None
    outputs: dict[str, str] = field(default_factory=dict)
    host_node_name: str | None = None

    @property
    def is_leaf(self) -> bool:
        return self.type.is_leaf

    @property
    def logs(self) -> str | None:
        return self.outputs.get("logs")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "type": self.type.value,
            "templateName": self.template_name,
            "phase": self.phase.value,
        }
        if self.started_at:
            d["startedAt"] = _iso(self.started_at)
        if self.finished_at:
            d["finishedAt"] = _iso(self.finished_at)
        if self.message:
            d["message"] = self.message
        if self.host_node_name:
            d["hostNodeName"] = self.host_node_name
        if self.outputs:
            d["outputs"] = dict(self.outputs)
        return d


@dataclass
class WorkflowStatus:
    """Mutable status of a run. Owned by the registry."""

    phase: WorkflowPhase = WorkflowPhase.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    message: str | None = None
    nodes: dict[str, NodeStatus] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"phase": self.phase.value}
        if self.started_at:
            d["startedAt"] = _iso(self.started_at)
        if self.finished_at:
            d["finishedAt"] = _iso(self.finished_at)
        if self.message:
            d["message"] = self.message
        d["nodes"] = {nid: node.to_dict() for nid, node in self.nodes.items()}
        return d


@dataclass(frozen=True)
class WorkflowSnapshot:
    """Point-in-time, independent copy of a run."""

    workflow: Workflow
    status: WorkflowStatus

    @property
    def name(self) -> str:
        return self.workflow.name

    @property
    def phase(self) -> WorkflowPhase:
        return self.status.phase

    def node(self, node_name: str) -> NodeStatus | None:
        """Look up a node by its path-qualified name."""
        return self.status.nodes.get(node_id(self.workflow.name, node_name))

    def to_dict(self) -> dict[str, Any]:
        d = self.workflow.to_dict()
        d["status"] = self.status.to_dict()
        return d
