"""Core data structures for flowgraph workflows."""

from .errors import (
    GraphError,
    DuplicateIdError,
    NotFoundError,
    InvalidEdgeError,
    InvalidNodeError,
    RejectionReason,
)
from .ir import (
    HandleConventions,
    DEFAULT_CONVENTIONS,
    NodeKind,
    HandleDirection,
    LinkKind,
    Handle,
    Node,
    Edge,
)
from .store import GraphStore, GraphSnapshot
from .serialization import JsonSerializer
from .logs import LogEntry, LogPage

__all__ = [
    "GraphError",
    "DuplicateIdError",
    "NotFoundError",
    "InvalidEdgeError",
    "InvalidNodeError",
    "RejectionReason",
    "HandleConventions",
    "DEFAULT_CONVENTIONS",
    "NodeKind",
    "HandleDirection",
    "LinkKind",
    "Handle",
    "Node",
    "Edge",
    "GraphStore",
    "GraphSnapshot",
    "JsonSerializer",
    "LogEntry",
    "LogPage",
]
