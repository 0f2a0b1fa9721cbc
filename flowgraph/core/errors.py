"""Error taxonomy for flowgraph.

Structural errors (duplicate ids, missing nodes/edges/handles, invariant
violations) are raised and abort the mutation. Connection rejections are
returned by the validator as values and only become exceptions when a
commit bypasses validation.
"""

from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    """Why a proposed execution connection was refused."""

    SOURCE_ALREADY_CONNECTED = "SourceAlreadyConnected"
    TARGET_ALREADY_CONNECTED = "TargetAlreadyConnected"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES = {
    RejectionReason.SOURCE_ALREADY_CONNECTED: "this node already has an outgoing execution connection",
    RejectionReason.TARGET_ALREADY_CONNECTED: "this node already has an incoming execution connection",
}


class GraphError(ValueError):
    """Base class for structural errors raised by the graph store."""


class DuplicateIdError(GraphError):
    def __init__(self, entity: str, item_id: str):
        self.entity = entity
        self.item_id = item_id
        super().__init__(f"{entity.capitalize()} with id {item_id} already exists.")


class NotFoundError(GraphError, KeyError):
    def __init__(self, entity: str, item_id: str, detail: Optional[str] = None):
        self.entity = entity
        self.item_id = item_id
        message = f"{entity.capitalize()} {item_id} does not exist."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class InvalidEdgeError(GraphError):
    """An edge commit would break the one-edge-per-execution-handle rule."""

    def __init__(self, reason: RejectionReason, edge_id: Optional[str] = None):
        self.reason = reason
        self.edge_id = edge_id
        prefix = f"Edge {edge_id}: " if edge_id else ""
        super().__init__(f"{prefix}{reason.message} ({reason.value})")


class InvalidNodeError(GraphError):
    """A node definition that cannot exist in a workflow graph."""
