import pytest

from flowgraph.core.errors import (
    DuplicateIdError,
    InvalidEdgeError,
    InvalidNodeError,
    NotFoundError,
    RejectionReason,
)
from flowgraph.core.ir import Edge, Handle, LinkKind, Node
from flowgraph.core.store import GraphStore
from flowgraph.engine.reachability import ReachabilityEngine


def exec_edge(edge_id, source, target, source_handle="execution", target_handle="execution"):
    return Edge(edge_id, source, source_handle, target, target_handle)


def data_edge(edge_id, source, target, source_handle="default-out", target_handle="default-in"):
    return Edge(edge_id, source, source_handle, target, target_handle)


@pytest.fixture
def chain():
    store = GraphStore("Chain")
    store.add_node(Node("conditionNode", node_id="s", is_starting_point=True))
    store.add_node(Node("apiNode", node_id="a"))
    store.add_node(Node("endNode", node_id="z"))
    store.add_node(Node("textNode", node_id="t"))
    store.add_edge(exec_edge("s-a", "s", "a"))
    store.add_edge(exec_edge("a-z", "a", "z"))
    store.add_edge(data_edge("t-a", "t", "a"))
    return store


class TestNodes:
    def test_add_and_get(self, store):
        node = store.add_node(Node("apiNode", node_id="n1"))
        assert store.get_node("n1") is node
        assert "n1" in store
        assert len(store) == 1

    def test_duplicate_id(self, store):
        store.add_node(Node("apiNode", node_id="n1"))
        with pytest.raises(DuplicateIdError) as info:
            store.add_node(Node("aiNode", node_id="n1"))
        assert info.value.entity == "node"
        assert store.get_node("n1").kind.value == "apiNode"

    def test_get_missing_returns_none(self, store):
        assert store.get_node("missing") is None
        assert store.get_edge("missing") is None

    def test_remove_missing(self, store):
        with pytest.raises(NotFoundError):
            store.remove_node("missing")

    def test_remove_cascades_edges(self, chain):
        chain.remove_node("a")
        assert chain.get_node("a") is None
        assert chain.edges == []
        assert {n.id for n in chain.nodes} == {"s", "z", "t"}

    def test_remove_keeps_unrelated_edges(self, chain):
        chain.remove_node("z")
        assert [e.id for e in chain.edges] == ["s-a", "t-a"]


class TestEdges:
    def test_add_edge_missing_node(self, store):
        store.add_node(Node("apiNode", node_id="a"))
        with pytest.raises(NotFoundError, match="missing"):
            store.add_edge(exec_edge("e", "a", "missing"))
        assert store.edges == []

    def test_add_edge_missing_handle(self, store):
        store.add_node(Node("textNode", node_id="t"))
        store.add_node(Node("apiNode", node_id="a"))
        with pytest.raises(NotFoundError) as info:
            store.add_edge(exec_edge("e", "t", "a"))
        assert info.value.entity == "handle"

    def test_duplicate_edge_id(self, chain):
        with pytest.raises(DuplicateIdError):
            chain.add_edge(data_edge("s-a", "t", "z"))

    def test_execution_arity_enforced_on_commit(self, chain):
        chain.add_node(Node("aiNode", node_id="b"))
        with pytest.raises(InvalidEdgeError) as info:
            chain.add_edge(exec_edge("a-b", "a", "b"))
        assert info.value.reason is RejectionReason.SOURCE_ALREADY_CONNECTED
        assert chain.get_edge("a-b") is None

    def test_data_fan_in_allowed(self, chain):
        chain.add_node(Node("intNode", node_id="i"))
        chain.add_edge(data_edge("i-a", "i", "a"))
        chain.add_edge(data_edge("t-z", "t", "z"))
        assert len([e for e in chain.edges if e.target_id == "a" and not e.is_execution]) == 2

    def test_remove_edge(self, chain):
        chain.remove_edge("t-a")
        assert chain.get_edge("t-a") is None
        with pytest.raises(NotFoundError):
            chain.remove_edge("t-a")

    def test_edges_of(self, chain):
        assert {e.id for e in chain.edges_of("a")} == {"s-a", "a-z", "t-a"}


class TestRevision:
    def test_every_mutation_bumps(self, store):
        assert store.revision == 0
        store.add_node(Node("conditionNode", node_id="s"))
        store.add_node(Node("apiNode", node_id="a"))
        store.add_edge(exec_edge("e", "s", "a"))
        store.patch_node("a", {"url": "x"})
        store.remove_edge("e")
        store.remove_node("a")
        assert store.revision == 6

    def test_failed_mutation_does_not_bump(self, store):
        store.add_node(Node("apiNode", node_id="a"))
        rev = store.revision
        with pytest.raises(DuplicateIdError):
            store.add_node(Node("apiNode", node_id="a"))
        with pytest.raises(NotFoundError):
            store.remove_edge("nope")
        assert store.revision == rev

    def test_snapshot_is_detached(self, chain):
        snap = chain.snapshot()
        chain.remove_node("a")
        assert snap.get_node("a") is not None
        assert len(snap.edges) == 3
        assert snap.revision < chain.revision


class TestPatchNode:
    def test_merge_and_delete_attributes(self, store):
        store.add_node(Node("apiNode", node_id="a", attributes={"url": "x", "method": "GET"}))
        node = store.patch_node("a", {"method": None, "timeout": 5})
        assert node.attributes == {"url": "x", "timeout": 5}

    def test_toggle_starting_point(self, store):
        store.add_node(Node("conditionNode", node_id="c"))
        assert store.patch_node("c", is_starting_point=True).is_starting_point

    def test_starting_point_on_wrong_kind(self, store):
        store.add_node(Node("apiNode", node_id="a"))
        rev = store.revision
        with pytest.raises(InvalidNodeError):
            store.patch_node("a", is_starting_point=True)
        assert store.revision == rev

    def test_patch_missing(self, store):
        with pytest.raises(NotFoundError):
            store.patch_node("missing", {"a": 1})


class TestUpdateHandles:
    def test_dropped_handle_cascades_edges(self, store):
        store.add_node(Node("textNode", node_id="t"))
        store.add_node(Node("apiNode", node_id="api", handles=[Handle.classify("body-email", "target")]))
        store.add_edge(data_edge("t-api", "t", "api", target_handle="body-email"))
        store.update_handles("api", [])
        assert store.get_edge("t-api") is None
        assert store.get_node("api").declared_handles == []

    def test_kind_rederived_when_handle_kind_changes(self, store):
        store.add_node(Node("conditionNode", node_id="c", handles=[Handle.classify("next", "source")]))
        store.add_node(Node("apiNode", node_id="a"))
        store.add_edge(Edge("e", "c", "next", "a", "execution"))
        assert store.get_edge("e").kind is LinkKind.DATA

        store.update_handles("c", [Handle("next", "source", LinkKind.EXECUTION)])
        assert store.get_edge("e").kind is LinkKind.EXECUTION

    def test_conflicting_rederivation_is_rejected(self, store):
        store.add_node(Node("conditionNode", node_id="c", handles=[Handle.classify("next", "source")]))
        store.add_node(Node("apiNode", node_id="a"))
        store.add_node(Node("aiNode", node_id="b"))
        store.add_edge(Edge("e1", "c", "next", "a", "execution"))
        store.add_edge(Edge("e2", "c", "next", "b", "execution"))
        rev = store.revision

        with pytest.raises(InvalidEdgeError):
            store.update_handles("c", [Handle("next", "source", LinkKind.EXECUTION)])
        assert store.revision == rev
        assert store.get_edge("e1").kind is LinkKind.DATA
        assert store.get_node("c").get_handle("next", "source").kind is LinkKind.DATA


class TestPatchApplication:
    def test_apply_patch_sets_flags_without_bumping(self, chain):
        rev = chain.revision
        assert chain.apply_patch(ReachabilityEngine().compute(chain.snapshot()))
        assert chain.revision == rev
        assert chain.get_node("z").connected
        assert chain.get_edge("a-z").connected
        assert not chain.get_edge("t-a").connected

    def test_stale_patch_is_ignored(self, chain):
        patch = ReachabilityEngine().compute(chain.snapshot())
        chain.remove_edge("a-z")
        assert chain.apply_patch(patch) is False
        assert not chain.get_node("a").connected


class TestHydrate:
    def test_serialize_then_hydrate(self, chain):
        nodes, edges = chain.serialize()
        other = GraphStore("Other")
        other.hydrate(nodes, edges)
        assert {n.id for n in other.nodes} == {"s", "a", "z", "t"}
        assert {e.id for e in other.edges} == {"s-a", "a-z", "t-a"}
        assert other.revision == 1

    def test_invalid_document_leaves_store_untouched(self, chain):
        rev = chain.revision
        with pytest.raises(InvalidEdgeError):
            chain.hydrate(
                [Node("apiNode", node_id="x"), Node("aiNode", node_id="y"), Node("endNode", node_id="w")],
                [exec_edge("x-y", "x", "y"), exec_edge("x-w", "x", "w")],
            )
        assert chain.revision == rev
        assert {n.id for n in chain.nodes} == {"s", "a", "z", "t"}
