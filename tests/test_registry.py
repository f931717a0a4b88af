"""
Tests for the run registry.

Tests verify:
- Duplicate run names are rejected atomically
- Snapshots are deep copies
- Terminal nodes and runs are final
- Concurrent writers never lose updates
"""

import threading

import pytest

from localflow.errors import DuplicateRunError, InvalidNodeTransitionError, RunNotFoundError
from localflow.models import NodePhase, NodeStatus, NodeType, Workflow, WorkflowPhase, node_id
from localflow.registry import RunRegistry


def _node(run: str, name: str, phase: NodePhase = NodePhase.RUNNING) -> NodeStatus:
    return NodeStatus(
        id=node_id(run, name),
        name=name,
        display_name=name,
        type=NodeType.POD,
        template_name="t",
        phase=phase,
    )


class TestCreate:
    def test_create_registers_pending_run(self, registry):
        snap = registry.create(Workflow(name="a", entrypoint="e"))

        assert snap.phase is WorkflowPhase.PENDING
        assert snap.status.started_at is not None
        assert "a" in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        with pytest.raises(DuplicateRunError) as exc_info:
            registry.create(Workflow(name="a", entrypoint="other"))

        assert exc_info.value.code == "CONFLICT"
        assert registry.get("a").workflow.entrypoint == "e"

    def test_concurrent_duplicate_submissions_accept_exactly_one(self, registry):
        accepted: list[int] = []
        rejected: list[int] = []
        barrier = threading.Barrier(16)

        def submit(i: int) -> None:
            barrier.wait()
            try:
                registry.create(Workflow(name="same", entrypoint="e"))
                accepted.append(i)
            except DuplicateRunError:
                rejected.append(i)

        threads = [threading.Thread(target=submit, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(accepted) == 1
        assert len(rejected) == 15


class TestReads:
    def test_get_unknown(self, registry):
        with pytest.raises(RunNotFoundError, match="workflow 'nope' not found"):
            registry.get("nope")

    def test_list_in_submission_order(self, registry):
        for name in ("c", "a", "b"):
            registry.create(Workflow(name=name, entrypoint="e"))
        assert [s.name for s in registry.list()] == ["c", "a", "b"]

    def test_snapshot_is_independent(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        registry.update_node_status("a", _node("a", "n"))

        snap = registry.get("a")
        snap.status.nodes[node_id("a", "n")].phase = NodePhase.ERROR
        snap.status.phase = WorkflowPhase.FAILED

        fresh = registry.get("a")
        assert fresh.phase is WorkflowPhase.PENDING
        assert fresh.status.nodes[node_id("a", "n")].phase is NodePhase.RUNNING

    def test_snapshot_workflow_is_independent(self, registry):
        submitted = Workflow(name="a", entrypoint="e", labels={"team": "x"})
        registry.create(submitted)

        registry.get("a").workflow.labels["team"] = "mutated"
        submitted.labels["team"] = "changed-after-submit"

        assert registry.get("a").workflow.labels == {"team": "x"}

    def test_repeated_reads_are_identical(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        registry.update_node_status("a", _node("a", "n", NodePhase.SUCCEEDED))
        registry.mark_succeeded("a")

        assert registry.get("a").to_dict() == registry.get("a").to_dict()


class TestNodeUpdates:
    def test_upsert(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        node = _node("a", "n")
        registry.update_node_status("a", node)
        node.phase = NodePhase.SUCCEEDED
        registry.update_node_status("a", node)

        assert registry.get("a").node("n").phase is NodePhase.SUCCEEDED

    def test_stored_copy_not_aliased(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        node = _node("a", "n")
        registry.update_node_status("a", node)
        node.message = "changed after write"

        assert registry.get("a").node("n").message is None

    def test_terminal_node_is_final(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        registry.update_node_status("a", _node("a", "n", NodePhase.FAILED))

        with pytest.raises(InvalidNodeTransitionError):
            registry.update_node_status("a", _node("a", "n", NodePhase.SUCCEEDED))
        assert registry.get("a").node("n").phase is NodePhase.FAILED

    def test_unknown_run(self, registry):
        with pytest.raises(RunNotFoundError):
            registry.update_node_status("nope", _node("nope", "n"))

    def test_concurrent_node_writes_all_land(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))

        def write(i: int) -> None:
            registry.update_node_status("a", _node("a", f"n{i}", NodePhase.SUCCEEDED))

        threads = [threading.Thread(target=write, args=(i,)) for i in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry.get("a").status.nodes) == 50


class TestRunPhases:
    def test_lifecycle(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        registry.mark_running("a")
        assert registry.get("a").phase is WorkflowPhase.RUNNING

        registry.mark_failed("a", "boom")
        snap = registry.get("a")
        assert snap.phase is WorkflowPhase.FAILED
        assert snap.status.message == "boom"
        assert snap.status.finished_at is not None

    def test_terminal_run_is_final(self, registry):
        registry.create(Workflow(name="a", entrypoint="e"))
        registry.mark_succeeded("a")
        registry.mark_failed("a", "late")
        registry.mark_running("a")

        snap = registry.get("a")
        assert snap.phase is WorkflowPhase.SUCCEEDED
        assert snap.status.message is None
