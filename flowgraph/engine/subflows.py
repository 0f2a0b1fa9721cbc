"""Sub-flows between starting points and end nodes.

A detected sub-flow can be collapsed into a single ``subFlowNode`` whose
attributes keep the original nodes and edges as persisted JSON, and
flattened back before the graph is handed to the executor.
"""

from dataclasses import dataclass
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from flowgraph.core.errors import InvalidNodeError, NotFoundError
from flowgraph.core.ir import DEFAULT_CONVENTIONS, Edge, HandleConventions, HandleDirection, Node, NodeKind
from flowgraph.core.serialization import JsonSerializer
from flowgraph.core.store import GraphSnapshot, GraphStore
from flowgraph.engine.reachability import execution_adjacency, reachable_from
from flowgraph.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SUBFLOW_NAME = "Sub-Flow"

Originals = Tuple[Sequence[Node], Sequence[Edge]]


@dataclass(frozen=True)
class SubFlow:
    """Nodes lying on execution paths from one starting point to one end node."""

    start_node_id: str
    end_node_id: str
    core: Tuple[str, ...]
    nodes: Tuple[str, ...]
    name: str = DEFAULT_SUBFLOW_NAME

    @property
    def id(self) -> str:
        return f"subflow-{self.start_node_id}-{self.end_node_id}"

    @property
    def intermediate_node_ids(self) -> List[str]:
        return [n for n in self.nodes if n not in (self.start_node_id, self.end_node_id)]


def _all_links(snapshot: GraphSnapshot) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
    forward: Dict[str, List[str]] = {}
    backward: Dict[str, List[str]] = {}
    for edge in snapshot.edges:
        forward.setdefault(edge.source_id, []).append(edge.target_id)
        backward.setdefault(edge.target_id, []).append(edge.source_id)
    return forward, backward


def detect_subflows(snapshot: GraphSnapshot) -> List[SubFlow]:
    """
    Find every sub-flow of a graph.

    For each (starting point, end node) pair the core is the set of nodes
    reachable from the start and able to reach the end, both over execution
    edges. Pairs without an intermediate core node are skipped. Nodes
    linked to the core by any edge (typically data providers) are added
    to the sub-flow.
    """
    starts = snapshot.starting_points()
    ends = [n for n in snapshot.nodes if n.kind is NodeKind.END]
    if not starts or not ends:
        return []

    forward_exec = execution_adjacency(snapshot.edges)
    backward_exec = execution_adjacency(snapshot.edges, reverse=True)
    forward_all, backward_all = _all_links(snapshot)
    order = {n.id: idx for idx, n in enumerate(snapshot.nodes)}

    subflows: List[SubFlow] = []
    for start in starts:
        downstream = reachable_from([start.id], forward_exec)
        for end in ends:
            upstream = reachable_from([end.id], backward_exec)
            core = downstream & upstream
            if start.id not in core or end.id not in core or len(core) <= 2:
                continue

            members = set(core)
            for node_id in core:
                members.update(backward_all.get(node_id, ()))
                members.update(forward_all.get(node_id, ()))

            subflows.append(SubFlow(
                start_node_id=start.id,
                end_node_id=end.id,
                core=tuple(sorted(core, key=order.get)),
                nodes=tuple(sorted(members, key=order.get)),
                name=start.attributes.get("conditionText") or DEFAULT_SUBFLOW_NAME,
            ))
    return subflows


def collapse_subflow(store: GraphStore, subflow: SubFlow) -> Node:
    """Replace a sub-flow's nodes with one collapsed ``subFlowNode``.

    Edges between members are stored on the new node; edges linking members
    to the rest of the graph are dropped. The swap is a single ``hydrate``.
    """
    members = set(subflow.nodes)
    for node_id in subflow.nodes:
        if node_id not in store:
            raise NotFoundError("node", node_id, f"(member of sub-flow {subflow.id})")

    nodes, edges = store.serialize()
    inner_nodes = [n for n in nodes if n.id in members]
    inner_edges = [e for e in edges if e.source_id in members and e.target_id in members]
    collapsed = Node(
        NodeKind.SUB_FLOW,
        node_id=subflow.id,
        attributes={
            "subFlowName": subflow.name,
            "originalPath": list(subflow.core),
            "isCollapsed": True,
            "originals": {
                "nodes": [JsonSerializer.node_to_dict(n) for n in inner_nodes],
                "edges": [JsonSerializer.edge_to_dict(e) for e in inner_edges],
            },
        },
        conventions=store.conventions,
    )
    store.hydrate(
        [n for n in nodes if n.id not in members] + [collapsed],
        [e for e in edges if e.source_id not in members and e.target_id not in members],
    )
    logger.info("subflow_collapsed", subflow=subflow.id, nodes=len(inner_nodes), edges=len(inner_edges))
    return store.get_node(collapsed.id)


def _stored_originals(node: Node, conventions: HandleConventions) -> Optional[Originals]:
    stored = node.attributes.get("originals")
    if not isinstance(stored, Mapping):
        return None
    inner_nodes = [JsonSerializer.node_from_dict(n, conventions) for n in stored.get("nodes") or []]
    inner_edges = [
        JsonSerializer.edge_from_dict(e, idx, conventions)
        for idx, e in enumerate(stored.get("edges") or [])
    ]
    return inner_nodes, inner_edges


def flatten_subflows(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    originals: Optional[Mapping[str, Originals]] = None,
    node_ids: Optional[Collection[str]] = None,
    conventions: HandleConventions = DEFAULT_CONVENTIONS,
) -> Tuple[List[Node], List[Edge]]:
    """
    Expand collapsed ``subFlowNode``s back into the nodes they stand for.

    A sub-flow node is collapsed unless its ``isCollapsed`` attribute is
    ``False``. Its contents come from ``originals`` or, failing that, from
    its own ``originals`` attribute; nodes with neither stay as they are.
    Edges into the sub-flow node are rewired to the first free execution
    input along ``originalPath``, edges out of it to the last free execution
    output, with ids suffixed ``-relIn-<id>`` / ``-relOut-<id>``. Edges with
    no free handle to land on are dropped.
    Nested sub-flows are expanded in later passes. Restrict the expansion
    with ``node_ids``.

    Returns new lists; the inputs are not modified.
    """
    flat_nodes = [n.copy() for n in nodes]
    flat_edges = [e.copy() for e in edges]
    originals = originals or {}
    marker = conventions.execution_marker
    expanded = set()

    again = True
    while again:
        again = False
        for sub in list(flat_nodes):
            if sub.kind is not NodeKind.SUB_FLOW or sub.id in expanded:
                continue
            if node_ids is not None and sub.id not in node_ids:
                continue
            if sub.attributes.get("isCollapsed") is False:
                continue
            contents = originals.get(sub.id) or _stored_originals(sub, conventions)
            if not contents or not contents[0]:
                continue
            inner_nodes, inner_edges = contents
            expanded.add(sub.id)
            again = True

            incoming = [e for e in flat_edges if e.target_id == sub.id]
            outgoing = [e for e in flat_edges if e.source_id == sub.id]
            flat_nodes = [n for n in flat_nodes if n.id != sub.id]
            flat_edges = [e for e in flat_edges if not e.touches(sub.id)]
            flat_nodes.extend(n.copy() for n in inner_nodes)
            flat_edges.extend(e.copy() for e in inner_edges)

            path = sub.attributes.get("originalPath") or [n.id for n in inner_nodes]
            first = _path_endpoint(path, contents, HandleDirection.TARGET, marker)
            last = _path_endpoint(reversed(path), contents, HandleDirection.SOURCE, marker)
            rewired = []
            if first is not None:
                rewired += [
                    Edge(f"{e.id}-relIn-{sub.id}", e.source_id, e.source_handle, first, marker, conventions=conventions)
                    for e in incoming
                ]
            if last is not None:
                rewired += [
                    Edge(f"{e.id}-relOut-{sub.id}", last, marker, e.target_id, e.target_handle, conventions=conventions)
                    for e in outgoing
                ]
            flat_edges.extend(rewired)
            logger.debug(
                "subflow_flattened",
                subflow=sub.id,
                nodes=len(inner_nodes),
                rewired=len(rewired),
                dropped=len(incoming) + len(outgoing) - len(rewired),
            )

    return flat_nodes, flat_edges


def _path_endpoint(path: Iterable[str], contents: Originals, direction, marker: str) -> Optional[str]:
    # First node along path with a free execution handle facing the given way
    inner_nodes, inner_edges = contents
    by_id = {n.id: n for n in inner_nodes}
    if direction is HandleDirection.SOURCE:
        taken = {e.source_key for e in inner_edges if e.is_execution}
    else:
        taken = {e.target_key for e in inner_edges if e.is_execution}
    for node_id in path:
        node = by_id.get(node_id)
        if node is None or (node_id, marker) in taken:
            continue
        if node.get_handle(marker, direction) is not None:
            return node_id
    return None


def expand_subflow(store: GraphStore, node_id: str) -> None:
    """Flatten one collapsed sub-flow node of ``store`` in place."""
    node = store.get_node(node_id)
    if node is None:
        raise NotFoundError("node", node_id)
    if node.kind is not NodeKind.SUB_FLOW:
        raise InvalidNodeError(f"{node_id} is a {node.kind.value}, not a sub-flow node.")
    nodes, edges = store.serialize()
    store.hydrate(*flatten_subflows(nodes, edges, node_ids={node_id}, conventions=store.conventions))
