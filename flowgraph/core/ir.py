import copy
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Any, Tuple

from flowgraph.core.errors import InvalidNodeError, RejectionReason


@dataclass(frozen=True)
class HandleConventions:
    """Naming rules shared by the validator, the store and the kind catalogue."""

    default_source_handle: str = "default-out"
    default_target_handle: str = "default-in"
    execution_marker: str = "execution"

    def is_execution(self, handle_id: Optional[str]) -> bool:
        return bool(handle_id) and handle_id.startswith(self.execution_marker)


DEFAULT_CONVENTIONS = HandleConventions()


class NodeKind(str, Enum):
    """Closed set of node kinds the editor knows how to place."""

    API = "apiNode"
    CONDITION = "conditionNode"
    CONDITIONAL_FLOW = "conditionalFlowNode"
    SWITCH = "switchNode"
    LOGICAL_OPERATOR = "logicalOperatorNode"
    SENDING_MAIL = "sendingMailNode"
    EMAIL_ATTACHMENT = "emailAttachmentNode"
    TEXT = "textNode"
    INT = "intNode"
    BOOLEAN = "booleanNode"
    TOKEN = "tokenNode"
    BASE64 = "base64Node"
    OCR = "ocrNode"
    CONSOLE_LOG = "consoleLogNode"
    AI = "aiNode"
    MAIL_BODY = "mailBodyNode"
    END = "endNode"
    SUB_FLOW = "subFlowNode"

    @property
    def supports_activation(self) -> bool:
        return self is NodeKind.CONDITION

    @property
    def is_data(self) -> bool:
        return self in DATA_KINDS


DATA_KINDS = frozenset({
    NodeKind.TEXT,
    NodeKind.INT,
    NodeKind.BOOLEAN,
    NodeKind.TOKEN,
    NodeKind.MAIL_BODY,
})


class HandleDirection(str, Enum):
    SOURCE = "source"
    TARGET = "target"


class LinkKind(str, Enum):
    EXECUTION = "execution"
    DATA = "data"


def derive_link_kind(source_kind: LinkKind, target_kind: LinkKind) -> LinkKind:
    """An edge is an execution link only when both of its ends are."""
    if source_kind is LinkKind.EXECUTION and target_kind is LinkKind.EXECUTION:
        return LinkKind.EXECUTION
    return LinkKind.DATA


@dataclass(frozen=True)
class Handle:
    """A connection point owned by a node."""

    id: str
    direction: HandleDirection
    kind: LinkKind

    def __post_init__(self):
        object.__setattr__(self, "direction", HandleDirection(self.direction))
        object.__setattr__(self, "kind", LinkKind(self.kind))

    @classmethod
    def classify(cls, handle_id: str, direction, conventions: HandleConventions = DEFAULT_CONVENTIONS) -> "Handle":
        kind = LinkKind.EXECUTION if conventions.is_execution(handle_id) else LinkKind.DATA
        return cls(handle_id, HandleDirection(direction), kind)

    @property
    def key(self) -> Tuple[HandleDirection, str]:
        return (self.direction, self.id)


def default_handles(kind: NodeKind, conventions: HandleConventions = DEFAULT_CONVENTIONS) -> List[Handle]:
    """Handles every node of ``kind`` gets without declaring them."""
    execution = conventions.execution_marker
    data_out = Handle.classify(conventions.default_source_handle, HandleDirection.SOURCE, conventions)
    data_in = Handle.classify(conventions.default_target_handle, HandleDirection.TARGET, conventions)
    exec_out = Handle.classify(execution, HandleDirection.SOURCE, conventions)
    exec_in = Handle.classify(execution, HandleDirection.TARGET, conventions)

    if kind in DATA_KINDS:
        return [data_out]
    if kind is NodeKind.END:
        return [exec_in, data_in]
    if kind is NodeKind.CONDITION:
        return [exec_out, exec_in, data_in]
    return [exec_out, exec_in, data_out, data_in]


class Node:
    """A typed node of the workflow graph."""

    def __init__(
        self,
        kind,
        node_id: Optional[str] = None,
        attributes: Optional[Dict[str, Any]] = None,
        is_starting_point: bool = False,
        handles: Optional[Iterable[Handle]] = None,
        conventions: HandleConventions = DEFAULT_CONVENTIONS,
    ):
        try:
            self.kind = NodeKind(kind)
        except ValueError:
            raise InvalidNodeError(f"Unknown node kind: {kind!r}") from None
        if is_starting_point and not self.kind.supports_activation:
            raise InvalidNodeError(f"{self.kind.value} nodes cannot be starting points.")

        self.id = node_id if node_id else f"{self.kind.value}-{uuid.uuid4().hex[:8]}"
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self.is_starting_point = bool(is_starting_point)
        self.conventions = conventions
        # Set by the reachability engine via GraphStore.apply_patch
        self.connected = False

        self._defaults = {h.key: h for h in default_handles(self.kind, conventions)}
        self._extra: Dict[Tuple[HandleDirection, str], Handle] = {}
        for handle in handles or ():
            self._extra[handle.key] = handle

    @property
    def handles(self) -> List[Handle]:
        merged = dict(self._defaults)
        merged.update(self._extra)
        return list(merged.values())

    @property
    def declared_handles(self) -> List[Handle]:
        """Handles beyond the kind defaults."""
        return list(self._extra.values())

    def get_handle(self, handle_id: str, direction) -> Optional[Handle]:
        key = (HandleDirection(direction), handle_id)
        return self._extra.get(key) or self._defaults.get(key)

    def copy(self) -> "Node":
        clone = copy.copy(self)
        clone.attributes = copy.deepcopy(self.attributes)
        clone._extra = dict(self._extra)
        return clone

    def __repr__(self):
        flag = " start" if self.is_starting_point else ""
        return f"<Node id={self.id} kind={self.kind.value}{flag}>"


class Edge:
    """A directed connection between two handles.

    ``kind`` is derived from the endpoint handles and has no setter; the
    store re-derives it from the actual handles when the edge is committed
    or when a node's handles change.
    """

    def __init__(
        self,
        edge_id: str,
        source_id: str,
        source_handle: str,
        target_id: str,
        target_handle: str,
        conventions: HandleConventions = DEFAULT_CONVENTIONS,
    ):
        if not source_handle or not target_handle:
            raise ValueError(f"Edge {edge_id} must name both handles; normalize it first.")
        self.id = edge_id
        self.source_id = source_id
        self.source_handle = source_handle
        self.target_id = target_id
        self.target_handle = target_handle
        self._kind = derive_link_kind(
            Handle.classify(source_handle, HandleDirection.SOURCE, conventions).kind,
            Handle.classify(target_handle, HandleDirection.TARGET, conventions).kind,
        )
        # Set by the reachability engine via GraphStore.apply_patch
        self.connected = False

    @property
    def kind(self) -> LinkKind:
        return self._kind

    @property
    def is_execution(self) -> bool:
        return self._kind is LinkKind.EXECUTION

    @property
    def source_key(self) -> Tuple[str, str]:
        return (self.source_id, self.source_handle)

    @property
    def target_key(self) -> Tuple[str, str]:
        return (self.target_id, self.target_handle)

    def touches(self, node_id: str) -> bool:
        return self.source_id == node_id or self.target_id == node_id

    def _rederive(self, source: Handle, target: Handle) -> None:
        self._kind = derive_link_kind(source.kind, target.kind)

    def copy(self) -> "Edge":
        return copy.copy(self)

    def __repr__(self):
        return (
            f"<Edge {self.id} {self.source_id}:{self.source_handle} -> "
            f"{self.target_id}:{self.target_handle} kind={self._kind.value}>"
        )


def find_execution_conflict(edge: Edge, existing: Iterable[Edge]) -> Optional[RejectionReason]:
    """Check ``edge`` against the one-edge-per-execution-handle rule.

    Only meaningful for execution edges; data edges never conflict.
    """
    if not edge.is_execution:
        return None
    existing = [e for e in existing if e.is_execution and e.id != edge.id]
    if any(e.source_key == edge.source_key for e in existing):
        return RejectionReason.SOURCE_ALREADY_CONNECTED
    if any(e.target_key == edge.target_key for e in existing):
        return RejectionReason.TARGET_ALREADY_CONNECTED
    return None
