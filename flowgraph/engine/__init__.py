"""Graph algorithms: connection validation, reachability, sub-flows and API bindings."""

from flowgraph.engine.validator import (
    ConnectionProposal,
    ConnectionValidator,
    Accepted,
    Rejected,
    validate,
)
from flowgraph.engine.reachability import ReachabilityEngine, ReachabilityPatch
from flowgraph.engine.subflows import SubFlow, collapse_subflow, detect_subflows, expand_subflow, flatten_subflows
from flowgraph.engine.bindings import api_bindings

__all__ = [
    "ConnectionProposal",
    "ConnectionValidator",
    "Accepted",
    "Rejected",
    "validate",
    "ReachabilityEngine",
    "ReachabilityPatch",
    "SubFlow",
    "detect_subflows",
    "collapse_subflow",
    "expand_subflow",
    "flatten_subflows",
    "api_bindings",
]
