"""
Reachability of workflow nodes from their starting points.

A node is reachable when some path of execution edges leads to it from
any node flagged as a starting point. The engine works on snapshots and
returns a patch; writing the patch back is left to the caller::

    patch = engine.compute(store.snapshot())
    store.apply_patch(patch)
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from flowgraph.core.ir import Edge, Node
from flowgraph.core.store import GraphSnapshot
from flowgraph.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReachabilityPatch:
    """Result of one recompute: the reachable set and per-edge flags."""

    graph_id: str
    revision: int
    reachable: FrozenSet[str]
    edges: Mapping[str, bool] = field(default_factory=dict)

    def is_connected(self, edge_id: str) -> bool:
        return self.edges.get(edge_id, False)

    @property
    def connected_edges(self) -> List[str]:
        return [edge_id for edge_id, flag in self.edges.items() if flag]


def execution_adjacency(edges: Iterable[Edge], reverse: bool = False) -> Dict[str, List[str]]:
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        if not edge.is_execution:
            continue
        origin, dest = (edge.target_id, edge.source_id) if reverse else (edge.source_id, edge.target_id)
        adjacency.setdefault(origin, []).append(dest)
    return adjacency


def reachable_from(seeds: Iterable[str], adjacency: Mapping[str, List[str]]) -> Set[str]:
    """Breadth-first closure of ``seeds`` over ``adjacency``.

    Visited nodes are never expanded twice, so cycles terminate.
    """
    visited: Set[str] = set()
    queue = deque()
    for seed in seeds:
        if seed not in visited:
            visited.add(seed)
            queue.append(seed)
    while queue:
        current = queue.popleft()
        for neighbour in adjacency.get(current, ()):
            if neighbour not in visited:
                visited.add(neighbour)
                queue.append(neighbour)
    return visited


def compute_reachable(nodes: Iterable[Node], edges: Iterable[Edge]) -> Tuple[Set[str], Dict[str, bool]]:
    nodes = list(nodes)
    edges = list(edges)
    known = {n.id for n in nodes}
    seeds = [n.id for n in nodes if n.is_starting_point]
    reachable = reachable_from(seeds, execution_adjacency(edges)) & known
    flags = {
        e.id: e.is_execution and e.source_id in reachable and e.target_id in reachable
        for e in edges
    }
    return reachable, flags


class ReachabilityEngine:
    """Computes reachability patches, reusing the last one while the revision is unchanged."""

    def __init__(self):
        self._last: Optional[ReachabilityPatch] = None
        self.recomputes = 0

    @property
    def last(self) -> Optional[ReachabilityPatch]:
        return self._last

    def compute(self, snapshot: GraphSnapshot) -> ReachabilityPatch:
        last = self._last
        if last is not None and last.graph_id == snapshot.graph_id and last.revision == snapshot.revision:
            logger.debug("reachability_cached", revision=snapshot.revision)
            return last

        reachable, flags = compute_reachable(snapshot.nodes, snapshot.edges)
        patch = ReachabilityPatch(
            graph_id=snapshot.graph_id,
            revision=snapshot.revision,
            reachable=frozenset(reachable),
            edges=flags,
        )
        self._last = patch
        self.recomputes += 1
        logger.debug(
            "reachability_computed",
            revision=snapshot.revision,
            seeds=len(snapshot.starting_points()),
            reachable=len(reachable),
            nodes=len(snapshot.nodes),
        )
        return patch

    def invalidate(self) -> None:
        self._last = None
