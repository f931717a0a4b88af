"""
Tests for the workflow data model.

Tests verify:
- Phase terminality
- Node ids are deterministic and position-qualified
- Snapshot serialization uses the document's camelCase field names
"""

from datetime import UTC, datetime

from localflow.models import (
    ContainerTemplate,
    DAGTemplate,
    EnvVar,
    NodePhase,
    NodeStatus,
    NodeType,
    ScriptTemplate,
    StepRef,
    StepsTemplate,
    TaskRef,
    Workflow,
    WorkflowPhase,
    WorkflowSnapshot,
    WorkflowStatus,
    display_name,
    node_id,
)


class TestPhases:
    def test_workflow_terminal_phases(self):
        assert not WorkflowPhase.PENDING.is_terminal
        assert not WorkflowPhase.RUNNING.is_terminal
        assert WorkflowPhase.SUCCEEDED.is_terminal
        assert WorkflowPhase.FAILED.is_terminal

    def test_node_terminal_phases(self):
        assert not NodePhase.RUNNING.is_terminal
        assert NodePhase.SUCCEEDED.is_terminal
        assert NodePhase.FAILED.is_terminal
        assert NodePhase.ERROR.is_terminal

    def test_only_pods_are_leaves(self):
        assert NodeType.POD.is_leaf
        assert not NodeType.STEPS.is_leaf
        assert not NodeType.DAG.is_leaf


class TestNodeIdentity:
    def test_node_id_is_deterministic(self):
        assert node_id("run", "main[0].a") == node_id("run", "main[0].a")

    def test_same_template_at_two_positions_gets_two_ids(self):
        assert node_id("run", "main[0].a") != node_id("run", "main[1].a")

    def test_node_id_prefixed_with_run_name(self):
        assert node_id("run", "main").startswith("run-")

    def test_node_named_like_run_uses_run_name(self):
        assert node_id("hello", "hello") == "hello"

    def test_display_name_is_last_component(self):
        assert display_name("main[0].fan.a") == "a"
        assert display_name("main") == "main"


class TestWorkflow:
    def test_template_lookup(self):
        t = ContainerTemplate(name="echo", image="alpine")
        wf = Workflow(name="w", entrypoint="echo", templates=(t,))
        assert wf.template("echo") is t
        assert wf.template("missing") is None

    def test_to_dict_round_trips_document_shape(self):
        wf = Workflow(
            name="w",
            entrypoint="main",
            templates=(
                StepsTemplate(name="main", groups=((StepRef("a", "echo"),),)),
                DAGTemplate(name="graph", tasks=(TaskRef("A", "echo", ("B",)),)),
                ContainerTemplate(
                    name="echo",
                    image="alpine",
                    command=("echo",),
                    working_dir="/tmp",
                    env=(EnvVar("K", "v"),),
                ),
                ScriptTemplate(name="py", image="python", source="print(1)"),
            ),
            labels={"team": "data"},
        )
        d = wf.to_dict()
        assert d["metadata"] == {"name": "w", "labels": {"team": "data"}}
        assert d["spec"]["entrypoint"] == "main"
        main, graph, echo, py = d["spec"]["templates"]
        assert main["steps"] == [[{"name": "a", "template": "echo"}]]
        assert graph["dag"]["tasks"] == [{"name": "A", "template": "echo", "dependencies": ["B"]}]
        assert echo["container"]["workingDir"] == "/tmp"
        assert echo["container"]["env"] == [{"name": "K", "value": "v"}]
        assert py["script"]["command"] == ["sh"]

    def test_steps_references_flatten_groups(self):
        t = StepsTemplate(
            name="main",
            groups=((StepRef("a", "x"), StepRef("b", "y")), (StepRef("c", "x"),)),
        )
        assert t.references() == [("a", "x"), ("b", "y"), ("c", "x")]


class TestStatusSerialization:
    def test_node_status_to_dict(self):
        started = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        status = NodeStatus(
            id="w-1",
            name="main[0].a",
            display_name="a",
            type=NodeType.POD,
            template_name="echo",
            phase=NodePhase.FAILED,
            started_at=started,
            message="exited with code 2",
            outputs={"logs": "boom\n"},
            host_node_name="localflow-w-main-0--a",
        )
        d = status.to_dict()
        assert d["displayName"] == "a"
        assert d["templateName"] == "echo"
        assert d["type"] == "Pod"
        assert d["phase"] == "Failed"
        assert d["startedAt"] == "2024-01-01T12:00:00Z"
        assert "finishedAt" not in d
        assert d["outputs"] == {"logs": "boom\n"}
        assert status.logs == "boom\n"

    def test_snapshot_node_lookup_by_name(self):
        wf = Workflow(name="w", entrypoint="e")
        status = WorkflowStatus(phase=WorkflowPhase.RUNNING)
        nid = node_id("w", "e")
        status.nodes[nid] = NodeStatus(
            id=nid, name="e", display_name="e", type=NodeType.POD, template_name="e"
        )
        snap = WorkflowSnapshot(workflow=wf, status=status)
        assert snap.name == "w"
        assert snap.phase is WorkflowPhase.RUNNING
        assert snap.node("e").id == nid
        assert snap.node("nope") is None
        assert snap.to_dict()["status"]["nodes"][nid]["name"] == "e"
