"""Validation of proposed connections before they are committed."""

import uuid
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Union

from flowgraph.core.errors import RejectionReason
from flowgraph.core.ir import (
    DEFAULT_CONVENTIONS,
    Edge,
    HandleConventions,
    HandleDirection,
    LinkKind,
    Node,
    find_execution_conflict,
)


@dataclass(frozen=True)
class ConnectionProposal:
    """A connection gesture, possibly without handle ids."""

    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    edge_id: Optional[str] = None


@dataclass(frozen=True)
class Accepted:
    edge: Edge
    accepted = True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    proposal: ConnectionProposal
    accepted = False

    @property
    def message(self) -> str:
        return self.reason.message


ValidationResult = Union[Accepted, Rejected]


class ConnectionValidator:
    """
    Decides whether a proposed connection may be added to a set of edges.

    Execution links (both handles carry the execution marker) are limited
    to one edge per handle on each side. Data links are always accepted.
    The validator never mutates anything; callers commit accepted edges
    through ``GraphStore.add_edge``.

    When the graph's nodes are passed to ``validate``, link kinds come from
    the handles the nodes actually declare, so a handle typed explicitly as
    execution counts even when its id lacks the marker.
    """

    def __init__(self, conventions: HandleConventions = DEFAULT_CONVENTIONS):
        self.conventions = conventions

    def normalize(self, proposal: ConnectionProposal) -> ConnectionProposal:
        """Fill in default handle ids and an edge id."""
        return replace(
            proposal,
            source_handle=proposal.source_handle or self.conventions.default_source_handle,
            target_handle=proposal.target_handle or self.conventions.default_target_handle,
            edge_id=proposal.edge_id or f"edge-{uuid.uuid4().hex[:12]}",
        )

    def classify(self, proposal: ConnectionProposal) -> LinkKind:
        proposal = self.normalize(proposal)
        if (self.conventions.is_execution(proposal.source_handle)
                and self.conventions.is_execution(proposal.target_handle)):
            return LinkKind.EXECUTION
        return LinkKind.DATA

    def validate(
        self,
        proposal: ConnectionProposal,
        existing_edges: Iterable[Edge],
        nodes: Optional[Iterable[Node]] = None,
    ) -> ValidationResult:
        proposal = self.normalize(proposal)
        edge = Edge(
            proposal.edge_id,
            proposal.source,
            proposal.source_handle,
            proposal.target,
            proposal.target_handle,
            conventions=self.conventions,
        )
        if nodes is not None:
            _resolve_kind(edge, nodes if isinstance(nodes, Mapping) else {n.id: n for n in nodes})
        reason = find_execution_conflict(edge, existing_edges)
        if reason is not None:
            return Rejected(reason, proposal)
        return Accepted(edge)


def validate(
    proposal: ConnectionProposal,
    existing_edges: Iterable[Edge],
    conventions: HandleConventions = DEFAULT_CONVENTIONS,
    nodes: Optional[Iterable[Node]] = None,
) -> ValidationResult:
    """Module-level shortcut for ``ConnectionValidator(conventions).validate``."""
    return ConnectionValidator(conventions).validate(proposal, existing_edges, nodes)


def _resolve_kind(edge: Edge, nodes: Mapping[str, Node]) -> None:
    # Unknown nodes or handles keep the id-based kind; the store reports them on commit
    source_node = nodes.get(edge.source_id)
    target_node = nodes.get(edge.target_id)
    if source_node is None or target_node is None:
        return
    source = source_node.get_handle(edge.source_handle, HandleDirection.SOURCE)
    target = target_node.get_handle(edge.target_handle, HandleDirection.TARGET)
    if source is not None and target is not None:
        edge._rederive(source, target)
