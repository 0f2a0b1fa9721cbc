"""Editing session over a GraphStore, as driven by the canvas."""

import itertools
from typing import Any, Dict, FrozenSet, Iterable, Optional

from flowgraph.core.errors import GraphError, InvalidEdgeError
from flowgraph.core.ir import DEFAULT_CONVENTIONS, Handle, HandleConventions, Node
from flowgraph.core.store import GraphStore
from flowgraph.engine.bindings import BINDINGS_KEY, api_bindings, bound_api_nodes, is_body_edge, needs_bindings
from flowgraph.engine.reachability import ReachabilityEngine, ReachabilityPatch
from flowgraph.engine.validator import (
    Accepted,
    ConnectionProposal,
    ConnectionValidator,
    Rejected,
    ValidationResult,
)
from flowgraph.logging import get_logger

logger = get_logger(__name__)


class GraphEditor:
    """
    Imperative API for editing a workflow graph.

    Each gesture (drop, connect, delete, ...) mutates the store and then
    refreshes reachability, so ``connected`` flags are current when the
    call returns. ``connect`` validates and commits in one call. API nodes
    get their ``bindings`` attribute rebuilt whenever an edge into one of
    their ``body-<field>`` handles comes or goes.

    Example:
        editor = GraphEditor(GraphStore("Onboarding"))
        start = editor.drop("conditionNode", is_starting_point=True)
        mail = editor.drop("sendingMailNode")
        end = editor.drop("endNode")
        editor.connect(start.id, mail.id, "execution", "execution")
        editor.connect(mail.id, end.id, "execution", "execution")
        assert editor.reachable == {start.id, mail.id, end.id}
    """

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        engine: Optional[ReachabilityEngine] = None,
        conventions: Optional[HandleConventions] = None,
    ):
        self.store = store if store is not None else GraphStore(conventions=conventions or DEFAULT_CONVENTIONS)
        self.engine = engine or ReachabilityEngine()
        self.validator = ConnectionValidator(conventions or self.store.conventions)
        self._edge_ids = itertools.count(1)
        self.last_patch: Optional[ReachabilityPatch] = None

    @property
    def reachable(self) -> FrozenSet[str]:
        if self.last_patch is None:
            self.refresh()
        return self.last_patch.reachable

    @property
    def connected_nodes(self):
        return [n for n in self.store.nodes if n.connected]

    def refresh(self) -> ReachabilityPatch:
        patch = self.engine.compute(self.store.snapshot())
        self.store.apply_patch(patch)
        self.last_patch = patch
        return patch

    def drop(
        self,
        kind,
        attributes: Optional[Dict[str, Any]] = None,
        node_id: Optional[str] = None,
        is_starting_point: bool = False,
    ) -> Node:
        node = Node(
            kind,
            node_id=node_id,
            attributes=attributes,
            is_starting_point=is_starting_point,
            conventions=self.store.conventions,
        )
        self._mutate("add_node", node)
        return node

    def connect(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        edge_id: Optional[str] = None,
    ) -> ValidationResult:
        proposal = ConnectionProposal(
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
            edge_id=edge_id or self._next_edge_id(),
        )
        result = self.validator.validate(proposal, self.store.edges, nodes=self.store.nodes)
        if isinstance(result, Accepted):
            # The store re-derives the link kind from the handles and may still refuse it
            try:
                self.store.add_edge(result.edge)
            except InvalidEdgeError as exc:
                result = Rejected(exc.reason, self.validator.normalize(proposal))
            except GraphError as exc:
                logger.warning("graph_mutation_failed", operation="add_edge", error=str(exc))
                raise
            else:
                self.refresh()
        if not isinstance(result, Accepted):
            logger.warning(
                "connection_rejected",
                reason=result.reason.value,
                source=source,
                target=target,
                source_handle=result.proposal.source_handle,
                target_handle=result.proposal.target_handle,
            )
            return result
        if is_body_edge(result.edge):
            self._sync_bindings({target})
        return result

    def disconnect(self, edge_id: str) -> None:
        edge = self.store.get_edge(edge_id)
        self._mutate("remove_edge", edge_id)
        self._sync_bindings(bound_api_nodes([edge]))

    def delete(self, node_id: str) -> None:
        affected = bound_api_nodes(self.store.edges_of(node_id)) - {node_id}
        self._mutate("remove_node", node_id)
        self._sync_bindings(affected)

    def patch(self, node_id: str, attributes: Dict[str, Any]) -> Node:
        return self._mutate("patch_node", node_id, attributes=attributes)

    def set_starting_point(self, node_id: str, flag: bool = True) -> Node:
        return self._mutate("patch_node", node_id, is_starting_point=flag)

    def update_handles(self, node_id: str, handles: Iterable[Handle]) -> Node:
        """Replace a node's declared handles; edges on removed handles go with them."""
        node = self._mutate("update_handles", node_id, handles)
        self._sync_bindings({node_id})
        return node

    def _sync_bindings(self, node_ids: Iterable[str]) -> None:
        for node_id in sorted(node_ids):
            if not needs_bindings(self.store, node_id):
                continue
            bindings = api_bindings(self.store, node_id)
            if self.store.get_node(node_id).attributes.get(BINDINGS_KEY) != bindings:
                self._mutate("patch_node", node_id, attributes={BINDINGS_KEY: bindings})

    def _next_edge_id(self) -> str:
        while True:
            edge_id = f"edge-{next(self._edge_ids)}"
            if self.store.get_edge(edge_id) is None:
                return edge_id

    def _mutate(self, operation: str, *args, **kwargs):
        try:
            result = getattr(self.store, operation)(*args, **kwargs)
        except GraphError as exc:
            logger.warning("graph_mutation_failed", operation=operation, error=str(exc))
            raise
        self.refresh()
        return result
