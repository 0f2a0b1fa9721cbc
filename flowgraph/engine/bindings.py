"""Request-body bindings of API nodes.

An ``apiNode`` exposes one ``body-<field>`` target handle per field of its
request body. Each data edge into such a handle binds the field to the
source node's output; the node keeps the current set under its
``bindings`` attribute so the executor can fill the body in.
"""

from typing import Dict, Iterable, Set

from flowgraph.core.ir import Edge, NodeKind

BODY_HANDLE_PREFIX = "body-"
BINDINGS_KEY = "bindings"


def is_body_edge(edge: Edge) -> bool:
    return edge.target_handle.startswith(BODY_HANDLE_PREFIX)


def bound_api_nodes(edges: Iterable[Edge]) -> Set[str]:
    """Ids of the nodes targeted through a body handle by ``edges``."""
    return {e.target_id for e in edges if is_body_edge(e)}


def api_bindings(graph, api_node_id: str) -> Dict[str, Dict[str, str]]:
    """
    Build the bindings of one API node from the graph's edges.

    ``graph`` is a ``GraphStore`` or a ``GraphSnapshot``. Returns
    ``{field: {"nodeId", "handleId", "nodeType"}}``; edges whose source
    node is gone are skipped.
    """
    bindings: Dict[str, Dict[str, str]] = {}
    for edge in graph.edges:
        if edge.target_id != api_node_id or not is_body_edge(edge):
            continue
        source = graph.get_node(edge.source_id)
        if source is None:
            continue
        field = edge.target_handle[len(BODY_HANDLE_PREFIX):]
        bindings[field] = {
            "nodeId": edge.source_id,
            "handleId": edge.source_handle,
            "nodeType": source.kind.value,
        }
    return bindings


def needs_bindings(graph, node_id: str) -> bool:
    node = graph.get_node(node_id)
    return node is not None and node.kind is NodeKind.API
