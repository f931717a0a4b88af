"""Run Registry — the shared, concurrently accessed map of runs.

Manifesto:
    The walk of every run writes into this registry while HTTP handlers
    read from it. The registry owns all locking so callers never touch a
    lock: the top-level map has its own lock, and every run has a second,
    independent lock guarding its status tree. Unrelated runs therefore
    never contend, and parallel siblings of one run can never interleave
    into a corrupted status tree.

ARCHITECTURE
────────────
::

    RunRegistry
      ├── _lock ─────────────── guards _runs (name → _RunEntry)
      └── _RunEntry
            ├── workflow   private copy, never handed out
            ├── status     mutable, guarded by entry.lock
            └── lock

    create(workflow)              ─ atomic insert, DuplicateRunError
    get(name) / list()            ─ deep snapshots
    update_node_status(run, node) ─ atomic upsert, terminal nodes frozen
    mark_running / mark_succeeded / mark_failed

Locks are plain ``threading.Lock`` objects. No method awaits while holding
one, so they are safe to use from the event loop and from worker threads.

Tags:
    localflow, registry, state-store, thread-safety
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime

from localflow.errors import DuplicateRunError, InvalidNodeTransitionError, RunNotFoundError
from localflow.models import (
    NodeStatus,
    Workflow,
    WorkflowPhase,
    WorkflowSnapshot,
    WorkflowStatus,
    utcnow,
)


@dataclass
class _RunEntry:
    workflow: Workflow
    status: WorkflowStatus
    lock: threading.Lock = field(default_factory=threading.Lock)

    def snapshot(self) -> WorkflowSnapshot:
        with self.lock:
            return WorkflowSnapshot(
                workflow=copy.deepcopy(self.workflow),
                status=copy.deepcopy(self.status),
            )


class RunRegistry:
    """In-memory store of runs. Lives as long as the process.

    Example:
        >>> registry = RunRegistry()
        >>> registry.create(workflow)
        >>> registry.get(workflow.name).phase
        <WorkflowPhase.PENDING: 'Pending'>
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, _RunEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._runs

    # --- reads -----------------------------------------------------------

    def get(self, name: str) -> WorkflowSnapshot:
        """Return a deep snapshot of a run.

        Raises:
            RunNotFoundError: If no run has this name.
        """
        return self._entry(name).snapshot()

    def list(self) -> list[WorkflowSnapshot]:
        """Snapshots of every run, in submission order."""
        with self._lock:
            entries = list(self._runs.values())
        return [entry.snapshot() for entry in entries]

    # --- writes ----------------------------------------------------------

    def create(self, workflow: Workflow, *, started_at: datetime | None = None) -> WorkflowSnapshot:
        """Register a new run in the Pending phase.

        Raises:
            DuplicateRunError: If the name is already registered.
        """
        entry = _RunEntry(
            workflow=copy.deepcopy(workflow),
            status=WorkflowStatus(
                phase=WorkflowPhase.PENDING,
                started_at=started_at or utcnow(),
            ),
        )
        with self._lock:
            if workflow.name in self._runs:
                raise DuplicateRunError(workflow.name)
            self._runs[workflow.name] = entry
        return entry.snapshot()

    def update_node_status(self, run_name: str, node: NodeStatus) -> None:
        """Atomically upsert one node of a run's status tree.

        A node that already reached a terminal phase is final.

        Raises:
            RunNotFoundError: Unknown run.
            InvalidNodeTransitionError: The stored node is already terminal.
        """
        entry = self._entry(run_name)
        with entry.lock:
            current = entry.status.nodes.get(node.id)
            if current is not None and current.phase.is_terminal:
                raise InvalidNodeTransitionError(
                    node.id, current.phase.value, node.phase.value
                )
            entry.status.nodes[node.id] = copy.deepcopy(node)

    def mark_running(self, run_name: str) -> None:
        """Move a Pending run to Running."""
        entry = self._entry(run_name)
        with entry.lock:
            if entry.status.phase is WorkflowPhase.PENDING:
                entry.status.phase = WorkflowPhase.RUNNING

    def mark_succeeded(self, run_name: str) -> None:
        """Finish a run successfully. Terminal runs are left untouched."""
        self._finish(run_name, WorkflowPhase.SUCCEEDED, None)

    def mark_failed(self, run_name: str, message: str) -> None:
        """Finish a run as failed. Terminal runs are left untouched."""
        self._finish(run_name, WorkflowPhase.FAILED, message)

    # --- internals -------------------------------------------------------

    def _entry(self, name: str) -> _RunEntry:
        with self._lock:
            entry = self._runs.get(name)
        if entry is None:
            raise RunNotFoundError(name)
        return entry

    def _finish(self, run_name: str, phase: WorkflowPhase, message: str | None) -> None:
        entry = self._entry(run_name)
        with entry.lock:
            if entry.status.phase.is_terminal:
                return
            entry.status.phase = phase
            entry.status.message = message
            entry.status.finished_at = utcnow()
