"""
JSON serialization for workflow graphs.

The document mirrors what the editor frontend stores: a ``nodes`` array
whose entries keep their attributes under ``data`` and an ``edges`` array
with ``sourceHandle``/``targetHandle``. Derived fields (``isExecutionLink``,
``connected``) are written for the frontend's benefit and ignored on load.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from flowgraph.core.errors import InvalidNodeError
from flowgraph.core.ir import DEFAULT_CONVENTIONS, Edge, Handle, HandleConventions, Node
from flowgraph.core.store import GraphStore

STARTING_POINT_KEY = "isStartingPoint"


class JsonSerializer:
    """Serializes and deserializes GraphStore contents to/from JSON."""

    @staticmethod
    def node_to_dict(node: Node) -> Dict[str, Any]:
        data = dict(node.attributes)
        if node.kind.supports_activation:
            data[STARTING_POINT_KEY] = node.is_starting_point
        entry: Dict[str, Any] = {
            "id": node.id,
            "type": node.kind.value,
            "data": data,
        }
        if node.declared_handles:
            entry["handles"] = [
                {"id": h.id, "direction": h.direction.value, "kind": h.kind.value}
                for h in node.declared_handles
            ]
        return entry

    @staticmethod
    def edge_to_dict(edge: Edge) -> Dict[str, Any]:
        return {
            "id": edge.id,
            "source": edge.source_id,
            "target": edge.target_id,
            "sourceHandle": edge.source_handle,
            "targetHandle": edge.target_handle,
            "data": {
                "isExecutionLink": edge.is_execution,
                "connected": edge.connected,
            },
        }

    @staticmethod
    def to_dict(store: GraphStore) -> Dict[str, Any]:
        nodes, edges = store.serialize()
        return {
            "name": store.name,
            "nodes": [JsonSerializer.node_to_dict(n) for n in nodes],
            "edges": [JsonSerializer.edge_to_dict(e) for e in edges],
        }

    @staticmethod
    def to_json(store: GraphStore, indent: int = 2) -> str:
        return json.dumps(JsonSerializer.to_dict(store), indent=indent)

    @staticmethod
    def handle_from_dict(data: Mapping[str, Any], conventions: HandleConventions = DEFAULT_CONVENTIONS) -> Handle:
        if not isinstance(data, Mapping):
            raise InvalidNodeError(f"Handle entry must be an object, got {type(data).__name__}.")
        # Documents written before handles carried a kind fall back to the id prefix
        if data.get("kind") is None:
            return Handle.classify(data["id"], data["direction"], conventions)
        return Handle(data["id"], data["direction"], data["kind"])

    @staticmethod
    def node_from_dict(data: Mapping[str, Any], conventions: HandleConventions = DEFAULT_CONVENTIONS) -> Node:
        if not isinstance(data, Mapping):
            raise InvalidNodeError(f"Node entry must be an object, got {type(data).__name__}.")
        if "type" not in data:
            raise InvalidNodeError(f"Node {data.get('id')} has no type.")
        raw = data.get("data") or {}
        if not isinstance(raw, Mapping):
            raise InvalidNodeError(f"Node {data.get('id')} data must be an object.")
        attributes = dict(raw)
        is_starting_point = bool(attributes.pop(STARTING_POINT_KEY, False))
        handles = [
            JsonSerializer.handle_from_dict(h, conventions) for h in data.get("handles") or []
        ]
        node = Node(
            data["type"],
            node_id=data.get("id"),
            attributes=attributes,
            handles=handles,
            conventions=conventions,
        )
        # Older documents carry the flag on every kind; only activatable kinds honour it
        if is_starting_point and node.kind.supports_activation:
            node.is_starting_point = True
        return node

    @staticmethod
    def edge_from_dict(data: Mapping[str, Any], index: int = 0, conventions: HandleConventions = DEFAULT_CONVENTIONS) -> Edge:
        if not isinstance(data, Mapping):
            raise ValueError(f"Edge entry {index} must be an object, got {type(data).__name__}.")
        return Edge(
            data.get("id") or f"e{index}",
            data["source"],
            data.get("sourceHandle") or conventions.default_source_handle,
            data["target"],
            data.get("targetHandle") or conventions.default_target_handle,
            conventions=conventions,
        )

    @staticmethod
    def from_dict(
        data: Dict[str, Any],
        store: Optional[GraphStore] = None,
        conventions: HandleConventions = DEFAULT_CONVENTIONS,
    ) -> GraphStore:
        """Hydrate ``store`` (or a new one) from a persisted document."""
        if not isinstance(data, Mapping):
            raise ValueError(f"Workflow document must be an object, got {type(data).__name__}.")
        if store is None:
            store = GraphStore(name=data.get("name", "LoadedWorkflow"), conventions=conventions)
        nodes: List[Node] = [
            JsonSerializer.node_from_dict(n, store.conventions) for n in _array(data, "nodes")
        ]
        edges: List[Edge] = [
            JsonSerializer.edge_from_dict(e, idx, store.conventions)
            for idx, e in enumerate(_array(data, "edges"))
        ]
        store.hydrate(nodes, edges)
        return store

    @staticmethod
    def from_json(json_str: str, store: Optional[GraphStore] = None) -> GraphStore:
        data = json.loads(json_str)
        return JsonSerializer.from_dict(data, store=store)


def _array(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Workflow document field '{key}' must be an array.")
    return value
