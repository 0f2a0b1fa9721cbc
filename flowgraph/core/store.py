"""
Canonical node/edge collections for a workflow graph.

Every successful mutation bumps ``GraphStore.revision``. Derived state
(``Node.connected`` / ``Edge.connected``) is not a mutation: it is computed
from a snapshot by the reachability engine and written back explicitly with
``apply_patch``.
"""

import uuid
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from flowgraph.core.errors import (
    DuplicateIdError,
    InvalidEdgeError,
    InvalidNodeError,
    NotFoundError,
    RejectionReason,
)
from flowgraph.core.ir import (
    DEFAULT_CONVENTIONS,
    Edge,
    Handle,
    HandleConventions,
    HandleDirection,
    Node,
    find_execution_conflict,
)
from flowgraph.logging import get_logger

logger = get_logger(__name__)


class GraphSnapshot:
    """Read-only copy of a store's nodes and edges at one revision."""

    def __init__(self, graph_id: str, revision: int, nodes: Iterable[Node], edges: Iterable[Edge], name: str = ""):
        self.graph_id = graph_id
        self.revision = revision
        self.name = name
        self._nodes: Dict[str, Node] = {n.id: n for n in nodes}
        self._edges: Tuple[Edge, ...] = tuple(edges)

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self._edges

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def execution_edges(self) -> List[Edge]:
        return [e for e in self._edges if e.is_execution]

    def starting_points(self) -> List[Node]:
        return [n for n in self._nodes.values() if n.is_starting_point]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __repr__(self):
        return f"<GraphSnapshot rev={self.revision} nodes={len(self._nodes)} edges={len(self._edges)}>"


class GraphStore:
    """Holds the workflow graph and its mutation primitives.

    Mutations validate everything before touching state, so a raised
    ``GraphError`` always leaves the store as it was.
    """

    def __init__(self, name: str = "Workflow", conventions: HandleConventions = DEFAULT_CONVENTIONS):
        self.name = name
        self.conventions = conventions
        self.graph_id = uuid.uuid4().hex
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._revision = 0

    # -- reads -------------------------------------------------------------

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        return self._edges.get(edge_id)

    def edges_of(self, node_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.touches(node_id)]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            self.graph_id,
            self._revision,
            (n.copy() for n in self._nodes.values()),
            (e.copy() for e in self._edges.values()),
            name=self.name,
        )

    # -- mutations ---------------------------------------------------------

    def add_node(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise DuplicateIdError("node", node.id)
        self._nodes[node.id] = node
        self._bump("node_added", node_id=node.id, kind=node.kind.value)
        return node

    def remove_node(self, node_id: str) -> None:
        """Remove a node together with every edge that references it."""
        if node_id not in self._nodes:
            raise NotFoundError("node", node_id)
        dependent = [e.id for e in self._edges.values() if e.touches(node_id)]
        for edge_id in dependent:
            del self._edges[edge_id]
        del self._nodes[node_id]
        self._bump("node_removed", node_id=node_id, cascaded_edges=len(dependent))

    def add_edge(self, edge: Edge) -> Edge:
        """Commit an edge the caller has already validated."""
        if edge.id in self._edges:
            raise DuplicateIdError("edge", edge.id)
        source, target = self._resolve_handles(edge, self._nodes)
        edge._rederive(source, target)
        reason = find_execution_conflict(edge, self._edges.values())
        if reason is not None:
            raise InvalidEdgeError(reason, edge.id)
        edge.connected = False
        self._edges[edge.id] = edge
        self._bump("edge_added", edge_id=edge.id, kind=edge.kind.value)
        return edge

    def remove_edge(self, edge_id: str) -> None:
        if edge_id not in self._edges:
            raise NotFoundError("edge", edge_id)
        del self._edges[edge_id]
        self._bump("edge_removed", edge_id=edge_id)

    def patch_node(
        self,
        node_id: str,
        attributes: Optional[Mapping[str, Any]] = None,
        is_starting_point: Optional[bool] = None,
    ) -> Node:
        """Merge attribute changes into a node; a ``None`` value deletes the key."""
        node = self._require_node(node_id)
        if is_starting_point and not node.kind.supports_activation:
            raise InvalidNodeError(f"{node.kind.value} nodes cannot be starting points.")

        for key, value in (attributes or {}).items():
            if value is None:
                node.attributes.pop(key, None)
            else:
                node.attributes[key] = value
        if is_starting_point is not None:
            node.is_starting_point = bool(is_starting_point)
        self._bump("node_patched", node_id=node_id)
        return node

    def update_handles(self, node_id: str, handles: Iterable[Handle]) -> Node:
        """Replace the handles a node declares beyond its kind defaults.

        Edges attached to handles that disappear are removed in the same
        step, and the kind of every remaining edge on the node is derived
        again from the new handles.
        """
        node = self._require_node(node_id)
        updated = node.copy()
        updated._extra = {h.key: h for h in handles}

        nodes = dict(self._nodes)
        nodes[node_id] = updated
        kept: Dict[str, Edge] = {}
        dropped: List[str] = []
        for edge in self._edges.values():
            if not edge.touches(node_id):
                kept[edge.id] = edge
                continue
            try:
                source, target = self._resolve_handles(edge, nodes)
            except NotFoundError:
                dropped.append(edge.id)
                continue
            candidate = edge.copy()
            candidate._rederive(source, target)
            kept[edge.id] = candidate

        reason = _arity_violation(kept.values())
        if reason is not None:
            raise InvalidEdgeError(reason)

        node._extra = updated._extra
        for edge_id, candidate in kept.items():
            if candidate is not self._edges[edge_id]:
                self._edges[edge_id]._kind = candidate.kind
        for edge_id in dropped:
            del self._edges[edge_id]
        self._bump("node_handles_updated", node_id=node_id, dropped_edges=len(dropped))
        return node

    def apply_patch(self, patch) -> bool:
        """Write computed ``connected`` flags back onto nodes and edges.

        A patch computed for another revision is ignored and ``False`` is
        returned; the caller should recompute from a fresh snapshot.
        """
        if patch.graph_id != self.graph_id or patch.revision != self._revision:
            logger.warning(
                "stale_reachability_patch",
                patch_revision=patch.revision,
                revision=self._revision,
            )
            return False
        for node in self._nodes.values():
            node.connected = node.id in patch.reachable
        for edge in self._edges.values():
            edge.connected = patch.is_connected(edge.id)
        return True

    # -- persistence boundary ---------------------------------------------

    def serialize(self) -> Tuple[List[Node], List[Edge]]:
        """Copies of the current nodes and edges for the persistence layer."""
        return [n.copy() for n in self._nodes.values()], [e.copy() for e in self._edges.values()]

    def hydrate(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Replace the whole graph with persisted state.

        The new graph is assembled in a scratch store first, so an invalid
        document leaves the current graph untouched.
        """
        scratch = GraphStore(self.name, self.conventions)
        for node in nodes:
            scratch.add_node(node)
        for edge in edges:
            scratch.add_edge(edge)

        self._nodes = scratch._nodes
        self._edges = scratch._edges
        self._revision += 1
        logger.info(
            "graph_hydrated",
            graph=self.name,
            nodes=len(self._nodes),
            edges=len(self._edges),
            revision=self._revision,
        )

    # -- helpers -----------------------------------------------------------

    def _require_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError("node", node_id)
        return node

    @staticmethod
    def _resolve_handles(edge: Edge, nodes: Mapping[str, Node]) -> Tuple[Handle, Handle]:
        source_node = nodes.get(edge.source_id)
        if source_node is None:
            raise NotFoundError("node", edge.source_id, f"(source of edge {edge.id})")
        target_node = nodes.get(edge.target_id)
        if target_node is None:
            raise NotFoundError("node", edge.target_id, f"(target of edge {edge.id})")

        source = source_node.get_handle(edge.source_handle, HandleDirection.SOURCE)
        if source is None:
            raise NotFoundError("handle", edge.source_handle, f"(no source handle on node {edge.source_id})")
        target = target_node.get_handle(edge.target_handle, HandleDirection.TARGET)
        if target is None:
            raise NotFoundError("handle", edge.target_handle, f"(no target handle on node {edge.target_id})")
        return source, target

    def _bump(self, event: str, **context: Any) -> None:
        self._revision += 1
        logger.debug(event, revision=self._revision, **context)


def _arity_violation(edges: Iterable[Edge]) -> Optional[RejectionReason]:
    execution = [e for e in edges if e.is_execution]
    if any(count > 1 for count in Counter(e.source_key for e in execution).values()):
        return RejectionReason.SOURCE_ALREADY_CONNECTED
    if any(count > 1 for count in Counter(e.target_key for e in execution).values()):
        return RejectionReason.TARGET_ALREADY_CONNECTED
    return None
