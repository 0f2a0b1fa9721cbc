"""
flowgraph frontend modules.

- GraphEditor: Editing session that validates and commits connections
- TraceReconstructor: Rebuilds a linear trace from a run's execution logs
"""

from .editor import GraphEditor
from .tracer import (
    TraceReconstructor,
    TracePolicy,
    KindRankTieBreak,
    Trace,
    TraceStep,
    TraceEdge,
)

__all__ = [
    "GraphEditor",
    "TraceReconstructor",
    "TracePolicy",
    "KindRankTieBreak",
    "Trace",
    "TraceStep",
    "TraceEdge",
]
