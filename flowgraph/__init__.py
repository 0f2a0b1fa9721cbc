"""
flowgraph - Workflow graph engine for visual automation editors.

Main APIs:
- GraphStore: Canonical nodes/edges with cascading, revisioned mutations
- ConnectionValidator: Accepts or rejects a proposed connection
- ReachabilityEngine: Which nodes a starting point activates
- GraphEditor: Validate-then-commit editing session
- TraceReconstructor: Linear execution trace from a run's logs

Backends:
- MermaidExporter: Mermaid.js diagram syntax
- GraphvizExporter: Graphviz DOT format
- SvgExporter: SVG format (requires Graphviz)
"""

from flowgraph.core.errors import (
    GraphError,
    DuplicateIdError,
    NotFoundError,
    InvalidEdgeError,
    InvalidNodeError,
    RejectionReason,
)
from flowgraph.core.ir import NodeKind, HandleDirection, LinkKind, Handle, Node, Edge, HandleConventions
from flowgraph.core.store import GraphStore, GraphSnapshot
from flowgraph.core.serialization import JsonSerializer
from flowgraph.core.logs import LogEntry, LogPage
from flowgraph.engine import (
    ConnectionProposal,
    ConnectionValidator,
    Accepted,
    Rejected,
    ReachabilityEngine,
    ReachabilityPatch,
    SubFlow,
    detect_subflows,
    collapse_subflow,
    expand_subflow,
    flatten_subflows,
    api_bindings,
)
from flowgraph.frontend import GraphEditor, TraceReconstructor, TracePolicy, KindRankTieBreak, Trace
from flowgraph.backend import MermaidExporter, GraphvizExporter, SvgExporter

__all__ = [
    # Errors
    "GraphError",
    "DuplicateIdError",
    "NotFoundError",
    "InvalidEdgeError",
    "InvalidNodeError",
    "RejectionReason",
    # Core model
    "NodeKind",
    "HandleDirection",
    "LinkKind",
    "Handle",
    "Node",
    "Edge",
    "HandleConventions",
    "GraphStore",
    "GraphSnapshot",
    "JsonSerializer",
    "LogEntry",
    "LogPage",
    # Engine
    "ConnectionProposal",
    "ConnectionValidator",
    "Accepted",
    "Rejected",
    "ReachabilityEngine",
    "ReachabilityPatch",
    "SubFlow",
    "detect_subflows",
    "collapse_subflow",
    "expand_subflow",
    "flatten_subflows",
    "api_bindings",
    # Frontends
    "GraphEditor",
    "TraceReconstructor",
    "TracePolicy",
    "KindRankTieBreak",
    "Trace",
    # Backends
    "MermaidExporter",
    "GraphvizExporter",
    "SvgExporter",
]
