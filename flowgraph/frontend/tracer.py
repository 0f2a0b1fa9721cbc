"""
Reconstruction of an execution trace from a run's log entries.

IMPORTANT: the trace is a best-effort visualization aid. Logs carry no
control-flow information, so the reconstructor orders one representative
entry per node by time and links consecutive steps. It does not reproduce
the real execution graph (branches, loops and parallel paths all collapse
into one line).

Example:
    page = LogPage.from_json(response_text)
    trace = TraceReconstructor().reconstruct(page)
    for step in trace.steps:
        print(step.node_id, step.label)
"""

import functools
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from flowgraph.core.ir import DATA_KINDS
from flowgraph.core.logs import LogEntry, LogPage, parse_entries
from flowgraph.logging import get_logger

logger = get_logger(__name__)

TieBreak = Callable[[LogEntry, LogEntry], int]

EXECUTION_VOCABULARY: Tuple[str, ...] = ("processing", "executed", "completed")
DATA_KIND_MARKERS: Tuple[str, ...] = ("dataNode", "variableNode")


def is_data_kind(kind: Optional[str]) -> bool:
    """True for kinds that only hold values and never run as a step."""
    if not kind:
        return False
    if kind in {k.value for k in DATA_KINDS}:
        return True
    return any(marker in kind for marker in DATA_KIND_MARKERS)


def _matches(kind: Optional[str], patterns: Sequence[str]) -> bool:
    # A pattern starting with '*' matches as a substring, otherwise exactly
    if not kind:
        return False
    for pattern in patterns:
        if pattern.startswith("*"):
            if pattern[1:] in kind:
                return True
        elif kind == pattern:
            return True
    return False


@dataclass(frozen=True)
class KindRankTieBreak:
    """Orders entries with equal timestamps by node kind.

    Kinds matching ``first`` sort before everything else, ``later`` after
    ordinary kinds, and ``last`` after everything. Patterns starting with
    ``*`` match anywhere in the kind name.
    """

    first: Tuple[str, ...] = ("*start",)
    later: Tuple[str, ...] = ("sendingMailNode",)
    last: Tuple[str, ...] = ("endNode",)

    def rank(self, kind: Optional[str]) -> int:
        if _matches(kind, self.last):
            return 3
        if _matches(kind, self.first):
            return 0
        if _matches(kind, self.later):
            return 2
        return 1

    def __call__(self, a: LogEntry, b: LogEntry) -> int:
        return self.rank(a.node_kind) - self.rank(b.node_kind)


def no_tie_break(a: LogEntry, b: LogEntry) -> int:
    return 0


@dataclass
class TracePolicy:
    """Tunable rules for picking and ordering representative entries."""

    vocabulary: Tuple[str, ...] = EXECUTION_VOCABULARY
    label_length: int = 30
    data_kind: Callable[[Optional[str]], bool] = is_data_kind
    tie_break: TieBreak = field(default_factory=KindRankTieBreak)

    def mentions_execution(self, message: str) -> bool:
        text = str(message or "").lower()
        return any(word in text for word in self.vocabulary)

    def label(self, text: str) -> str:
        text = str(text or "")
        if len(text) > self.label_length:
            return text[: max(self.label_length - 3, 0)] + "..."
        return text


@dataclass(frozen=True)
class TraceStep:
    """One node's appearance in a reconstructed trace."""

    index: int
    node_id: str
    label: str
    entry: LogEntry

    @property
    def node_kind(self) -> Optional[str]:
        return self.entry.node_kind

    @property
    def timestamp(self) -> Any:
        return self.entry.timestamp

    @property
    def level(self) -> str:
        return self.entry.level

    @property
    def message(self) -> str:
        return self.entry.message

    @property
    def payload(self) -> Any:
        return self.entry.payload

    @property
    def input(self) -> Any:
        return self.entry.payload_field("input")

    @property
    def output(self) -> Any:
        return self.entry.payload_field("output")

    @property
    def prompt(self) -> Any:
        return self.entry.payload_field("prompt")


@dataclass(frozen=True)
class TraceEdge:
    id: str
    source: str
    target: str


@dataclass
class Trace:
    """Ordered steps plus the edges linking consecutive steps."""

    name: str = "Trace"
    steps: List[TraceStep] = field(default_factory=list)
    edges: List[TraceEdge] = field(default_factory=list)

    @property
    def node_ids(self) -> List[str]:
        return [s.node_id for s in self.steps]

    def __len__(self) -> int:
        return len(self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "nodes": [
                {
                    "id": s.node_id,
                    "label": s.label,
                    "nodeKind": s.node_kind,
                    "level": s.level,
                    "timestamp": s.timestamp,
                    "message": s.message,
                    "payload": s.payload,
                }
                for s in self.steps
            ],
            "edges": [{"id": e.id, "source": e.source, "target": e.target} for e in self.edges],
        }


class TraceReconstructor:
    """Builds a Trace from one run's log entries. Stateless and re-entrant."""

    def __init__(self, policy: Optional[TracePolicy] = None):
        self.policy = policy or TracePolicy()

    def reconstruct(self, logs: Union[LogPage, Iterable[LogEntry], Iterable[Dict[str, Any]]], name: str = "Trace") -> Trace:
        entries = self._coerce(logs)
        groups = self._group(entries)
        representatives = [
            self._representative(group)
            for group in groups.values()
            if self._is_step(group)
        ]
        ordered = sorted(representatives, key=functools.cmp_to_key(self._compare))

        steps = [
            TraceStep(index=idx, node_id=str(entry.node_id), label=self.policy.label(entry.message or entry.node_id), entry=entry)
            for idx, entry in enumerate(ordered)
        ]
        edges = [
            TraceEdge(id=f"edge-{idx}", source=steps[idx].node_id, target=steps[idx + 1].node_id)
            for idx in range(len(steps) - 1)
        ]
        logger.debug(
            "trace_reconstructed",
            entries=len(entries),
            groups=len(groups),
            steps=len(steps),
        )
        return Trace(name=name, steps=steps, edges=edges)

    @staticmethod
    def _coerce(logs) -> List[LogEntry]:
        if isinstance(logs, LogPage):
            return list(logs.data)
        return parse_entries(logs or ())

    @staticmethod
    def _group(entries: Iterable[LogEntry]) -> Dict[str, List[LogEntry]]:
        groups: Dict[str, List[LogEntry]] = {}
        for entry in entries:
            if not entry.node_id:
                continue
            groups.setdefault(str(entry.node_id), []).append(entry)
        return groups

    def _is_step(self, group: List[LogEntry]) -> bool:
        # Entries without a kind give no evidence that the node is data-only
        return not all(e.node_kind and self.policy.data_kind(e.node_kind) for e in group)

    def _representative(self, group: List[LogEntry]) -> LogEntry:
        chronological = sorted(group, key=_chronological_key)
        for entry in chronological:
            if entry.has_io:
                return entry
        for entry in chronological:
            if self.policy.mentions_execution(entry.message):
                return entry
        return chronological[0]

    def _compare(self, a: LogEntry, b: LogEntry) -> int:
        ta, tb = _time_key(a), _time_key(b)
        if ta != tb:
            return -1 if ta < tb else 1
        tie = self.policy.tie_break(a, b)
        if tie:
            return tie
        # Input order is not stable across fetches; fall back to ids
        ka, kb = (str(a.node_id), str(a.id)), (str(b.node_id), str(b.id))
        if ka == kb:
            return 0
        return -1 if ka < kb else 1


def _time_key(entry: LogEntry) -> Tuple[int, float]:
    # Unparseable timestamps sort after every parseable one
    ms = entry.epoch_ms
    return (1, 0.0) if ms is None else (0, ms)


def _chronological_key(entry: LogEntry) -> Tuple[Tuple[int, float], str, str]:
    # Entries sharing an id and a time still need a fixed order
    content = json.dumps(entry.to_dict(), sort_keys=True, default=str)
    return (_time_key(entry), str(entry.id), content)
