import pytest

from flowgraph.core.ir import Node
from flowgraph.core.store import GraphStore
from flowgraph.frontend.editor import GraphEditor
from flowgraph.logging import configure_logging

EXEC = "execution"


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging():
    configure_logging(level="WARNING")


@pytest.fixture
def store():
    return GraphStore("Test")


@pytest.fixture
def editor():
    return GraphEditor(GraphStore("Editor"))


@pytest.fixture
def scenario_a():
    """S (starting point) -> A -> B over execution edges."""
    editor = GraphEditor(GraphStore("Scenario A"))
    editor.drop("conditionNode", node_id="S", is_starting_point=True)
    editor.drop("apiNode", node_id="A")
    editor.drop("aiNode", node_id="B")
    editor.connect("S", "A", EXEC, EXEC, edge_id="S-A")
    editor.connect("A", "B", EXEC, EXEC, edge_id="A-B")
    return editor


def make_node(kind="apiNode", node_id=None, **kwargs) -> Node:
    return Node(kind, node_id=node_id, **kwargs)
