"""
localflow - run Argo-style workflow documents on a local container runtime.

Submit a document of named templates (containers, scripts, step lists and
task graphs); localflow walks the graph, runs every unit of work as an
ephemeral container (or local process) and keeps a live status tree.

Usage:
    from localflow import WorkflowController, NodeExecutor, load_workflow
    from localflow.runtimes import DockerAdapter

    controller = WorkflowController(NodeExecutor(DockerAdapter()))
    await controller.submit(load_workflow(text))
"""

__version__ = "0.1.0"

from localflow.controller import WorkflowController, validate_workflow  # noqa: E402
from localflow.document import load_workflow, load_workflow_file  # noqa: E402
from localflow.executor import NodeExecutor  # noqa: E402
from localflow.models import (  # noqa: E402
    NodePhase,
    NodeStatus,
    Workflow,
    WorkflowPhase,
    WorkflowSnapshot,
)
from localflow.registry import RunRegistry  # noqa: E402

__all__ = [
    "__version__",
    "NodeExecutor",
    "NodePhase",
    "NodeStatus",
    "RunRegistry",
    "Workflow",
    "WorkflowController",
    "WorkflowPhase",
    "WorkflowSnapshot",
    "load_workflow",
    "load_workflow_file",
    "validate_workflow",
]
