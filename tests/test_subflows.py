import pytest

from flowgraph.core.errors import InvalidNodeError, NotFoundError
from flowgraph.core.ir import Edge, Handle, Node, NodeKind
from flowgraph.core.store import GraphStore
from flowgraph.engine.subflows import collapse_subflow, detect_subflows, expand_subflow, flatten_subflows
from flowgraph.frontend.editor import GraphEditor

EXEC = "execution"


def onboarding():
    editor = GraphEditor(GraphStore("Onboarding"))
    editor.drop("conditionNode", node_id="start", is_starting_point=True,
                attributes={"conditionText": "New signup"})
    editor.drop("apiNode", node_id="lookup")
    editor.drop("sendingMailNode", node_id="mail")
    editor.drop("endNode", node_id="end")
    editor.drop("textNode", node_id="subject")
    editor.drop("consoleLogNode", node_id="stray")
    editor.connect("start", "lookup", EXEC, EXEC)
    editor.connect("lookup", "mail", EXEC, EXEC)
    editor.connect("mail", "end", EXEC, EXEC)
    editor.store.update_handles("mail", [Handle.classify("attr-subject", "target")])
    editor.connect("subject", "mail", target_handle="attr-subject")
    return editor


def test_subflow_between_start_and_end():
    editor = onboarding()
    subflows = detect_subflows(editor.store.snapshot())

    assert len(subflows) == 1
    subflow = subflows[0]
    assert subflow.id == "subflow-start-end"
    assert subflow.name == "New signup"
    assert subflow.core == ("start", "lookup", "mail", "end")
    assert "subject" in subflow.nodes
    assert "stray" not in subflow.nodes
    assert subflow.intermediate_node_ids == ["lookup", "mail", "subject"]


def test_no_intermediate_node_means_no_subflow():
    editor = GraphEditor(GraphStore())
    editor.drop("conditionNode", node_id="s", is_starting_point=True)
    editor.drop("endNode", node_id="e")
    editor.connect("s", "e", EXEC, EXEC)
    assert detect_subflows(editor.store.snapshot()) == []


def test_unreached_end_is_skipped():
    editor = onboarding()
    editor.drop("endNode", node_id="orphan_end")
    ids = [s.end_node_id for s in detect_subflows(editor.store.snapshot())]
    assert ids == ["end"]


def test_missing_start_or_end():
    editor = GraphEditor(GraphStore())
    editor.drop("apiNode", node_id="a")
    assert detect_subflows(editor.store.snapshot()) == []


def test_default_name():
    editor = onboarding()
    editor.patch("start", {"conditionText": None})
    assert detect_subflows(editor.store.snapshot())[0].name == "Sub-Flow"


class TestCollapse:
    def test_collapse_replaces_members(self):
        editor = onboarding()
        subflow = detect_subflows(editor.store.snapshot())[0]
        node = collapse_subflow(editor.store, subflow)

        assert node.kind is NodeKind.SUB_FLOW
        assert node.id == "subflow-start-end"
        assert node.attributes["subFlowName"] == "New signup"
        assert node.attributes["originalPath"] == ["start", "lookup", "mail", "end"]
        assert node.attributes["isCollapsed"] is True
        assert len(node.attributes["originals"]["nodes"]) == 5
        assert len(node.attributes["originals"]["edges"]) == 4
        assert {n.id for n in editor.store.nodes} == {"stray", "subflow-start-end"}
        assert editor.store.edges == []

    def test_missing_member(self):
        editor = onboarding()
        subflow = detect_subflows(editor.store.snapshot())[0]
        editor.delete("subject")
        with pytest.raises(NotFoundError):
            collapse_subflow(editor.store, subflow)
        assert "start" in editor.store


class TestExpand:
    @pytest.fixture
    def collapsed(self):
        editor = onboarding()
        collapse_subflow(editor.store, detect_subflows(editor.store.snapshot())[0])
        editor.connect("stray", "subflow-start-end", EXEC, EXEC, edge_id="in")
        return editor

    def test_expand_restores_members(self, collapsed):
        expand_subflow(collapsed.store, "subflow-start-end")
        store = collapsed.store
        assert {n.id for n in store.nodes} == {"start", "lookup", "mail", "end", "subject", "stray"}
        assert store.get_node("start").is_starting_point
        assert store.get_node("mail").get_handle("attr-subject", "target") is not None
        assert len([e for e in store.edges if e.is_execution]) == 4

    def test_incoming_edge_is_rewired_to_path_start(self, collapsed):
        expand_subflow(collapsed.store, "subflow-start-end")
        edge = collapsed.store.get_edge("in-relIn-subflow-start-end")
        assert (edge.source_id, edge.target_id, edge.target_handle) == ("stray", "start", EXEC)
        assert edge.is_execution

    def test_outgoing_edge_uses_last_free_output(self):
        nodes = [
            Node("subFlowNode", node_id="sf", attributes={"originalPath": ["s", "a"]}),
            Node("endNode", node_id="z"),
        ]
        originals = {"sf": ([Node("conditionNode", node_id="s"), Node("apiNode", node_id="a")],
                            [Edge("s-a", "s", EXEC, "a", EXEC)])}
        flat_nodes, flat_edges = flatten_subflows(nodes, [Edge("out", "sf", EXEC, "z", EXEC)], originals)
        assert [n.id for n in flat_nodes] == ["z", "s", "a"]
        rewired = next(e for e in flat_edges if e.id == "out-relOut-sf")
        assert (rewired.source_id, rewired.target_id) == ("a", "z")

    def test_uncollapsed_node_is_left_alone(self):
        node = Node("subFlowNode", node_id="sf", attributes={"isCollapsed": False})
        originals = {"sf": ([Node("apiNode", node_id="a")], [])}
        flat_nodes, _ = flatten_subflows([node], [], originals)
        assert [n.id for n in flat_nodes] == ["sf"]

    def test_inputs_are_not_modified(self, collapsed):
        nodes, edges = collapsed.store.serialize()
        flatten_subflows(nodes, edges)
        assert [n.id for n in nodes] == ["stray", "subflow-start-end"]
        assert [e.id for e in edges] == ["in"]

    def test_missing_node(self, collapsed):
        with pytest.raises(NotFoundError):
            expand_subflow(collapsed.store, "nope")

    def test_not_a_subflow(self, collapsed):
        with pytest.raises(InvalidNodeError):
            expand_subflow(collapsed.store, "stray")
