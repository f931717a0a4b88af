"""
Structured error types for the localflow engine.

Every error raised by the engine derives from :class:`LocalflowError` and
carries a machine-readable ``code`` that the HTTP layer maps onto a status
code. The hierarchy separates the three ways a run can go wrong:

Architecture:
    ::

        LocalflowError (code)
          ├── DuplicateRunError            CONFLICT
          ├── RunNotFoundError             NOT_FOUND
          ├── ControllerClosedError        UNAVAILABLE
          ├── InvalidNodeTransitionError   CONFLICT
          ├── WorkflowStructureError       VALIDATION_FAILED
          │     ├── EntrypointMissingError
          │     ├── EntrypointNotFoundError
          │     ├── TemplateNotFoundError
          │     ├── TemplateCycleError
          │     ├── DuplicateNodeNameError
          │     └── InvalidWorkflowError
          ├── NodeExecutionError (node_status)
          │     ├── NodeFailedError        unit ran, exited non-zero
          │     └── NodeError              engine could not run the unit
          └── OutputCaptureError           diagnostic only

Structural errors fail a run before any unit of work is created. Node errors
are local to their group but propagate upward as the reason the parent (and
the run) failed.

Tags:
    localflow, errors, exception-hierarchy
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from localflow.models import NodeStatus


class LocalflowError(Exception):
    """Base class for all localflow errors."""

    code: str = "INTERNAL"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DuplicateRunError(LocalflowError):
    """Raised when a run name is already registered."""

    code = "CONFLICT"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"workflow '{name}' already exists")


class RunNotFoundError(LocalflowError):
    """Raised when a run name is unknown to the registry."""

    code = "NOT_FOUND"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"workflow '{name}' not found")


class ControllerClosedError(LocalflowError):
    """Raised when a submission arrives after shutdown has begun."""

    code = "UNAVAILABLE"

    def __init__(self) -> None:
        super().__init__("controller is shutting down and no longer accepts workflows")


class InvalidNodeTransitionError(LocalflowError):
    """Raised when a terminal node status would be overwritten."""

    code = "CONFLICT"

    def __init__(self, node_id: str, current: str, requested: str) -> None:
        self.node_id = node_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"node '{node_id}' is already {current}; cannot move to {requested}"
        )


# ---------------------------------------------------------------------------
# Structural (document) errors
# ---------------------------------------------------------------------------


class WorkflowStructureError(LocalflowError):
    """Base for errors in the shape of a workflow document."""

    code = "VALIDATION_FAILED"


class EntrypointMissingError(WorkflowStructureError):
    """Raised when a workflow declares no entrypoint."""

    def __init__(self, workflow: str) -> None:
        self.workflow = workflow
        super().__init__("No entrypoint specified")


class EntrypointNotFoundError(WorkflowStructureError):
    """Raised when the entrypoint names no template of the document."""

    def __init__(self, entrypoint: str) -> None:
        self.entrypoint = entrypoint
        super().__init__(f"Entrypoint template '{entrypoint}' not found")


class TemplateNotFoundError(WorkflowStructureError):
    """Raised when a step or task references an unknown template."""

    def __init__(self, template: str, referrer: str, kind: str = "step") -> None:
        self.template = template
        self.referrer = referrer
        self.kind = kind
        super().__init__(f"template '{template}' not found for {kind} '{referrer}'")


class TemplateCycleError(WorkflowStructureError):
    """Raised when template references form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"template reference cycle: {' -> '.join(cycle)}")


class DuplicateNodeNameError(WorkflowStructureError):
    """Raised when two steps of one group, or two tasks of one DAG, share a name."""

    def __init__(self, template: str, name: str, kind: str = "step") -> None:
        self.template = template
        self.name = name
        self.kind = kind
        super().__init__(f"duplicate {kind} name '{name}' in template '{template}'")


class InvalidWorkflowError(WorkflowStructureError):
    """Raised when a workflow document cannot be parsed or validated."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# ---------------------------------------------------------------------------
# Node errors
# ---------------------------------------------------------------------------


class NodeExecutionError(LocalflowError):
    """Base for a unit of work that did not succeed.

    ``node_status`` is the fully populated status the executor produced, so
    callers can record it before propagating.
    """

    code = "NODE_FAILED"

    def __init__(self, message: str, node_status: NodeStatus | None = None) -> None:
        self.node_status = node_status
        super().__init__(message)


class NodeFailedError(NodeExecutionError):
    """The unit of work ran to completion with a non-zero exit code."""


class NodeError(NodeExecutionError):
    """The engine could not determine a terminal state for the unit."""

    code = "NODE_ERROR"


class OutputCaptureError(LocalflowError):
    """Captured output could not be read. Never fatal to a node."""

    code = "OUTPUT_CAPTURE_FAILED"
