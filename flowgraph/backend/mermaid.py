from flowgraph.core.ir import Node
from flowgraph.core.store import GraphSnapshot
from flowgraph.frontend.tracer import Trace


class MermaidExporter:
    """Exports a workflow snapshot or a reconstructed trace to Mermaid.js syntax."""

    # Starting points use a stadium, end nodes a circle, data nodes a parallelogram
    _SHAPES = {
        "start": ('(["', '"])'),
        "end": ('(("', '"))'),
        "data": ('[/"', '"/]'),
        "step": ('["', '"]'),
    }

    @staticmethod
    def _sanitize(text: str) -> str:
        """Escape special characters for Mermaid syntax."""
        return text.replace('"', '#quot;').replace("(", "#40;").replace(")", "#41;")

    @staticmethod
    def _node_id(node_id: str) -> str:
        # Mermaid ids cannot contain dashes followed by '>' or spaces
        return "".join(c if c.isalnum() or c == "_" else "_" for c in node_id)

    @staticmethod
    def _format_node(node_id: str, label: str, shape_key: str) -> str:
        left, right = MermaidExporter._SHAPES[shape_key]
        return f'{MermaidExporter._node_id(node_id)}{left}{label}{right}'

    @staticmethod
    def _shape_key(node: Node) -> str:
        if node.is_starting_point:
            return "start"
        if node.kind.value == "endNode":
            return "end"
        if node.kind.is_data:
            return "data"
        return "step"

    @staticmethod
    def to_mermaid(graph: GraphSnapshot, direction: str = "LR") -> str:
        """
        Convert a workflow snapshot to Mermaid diagram syntax.

        Execution edges are drawn thick (``==>``), data edges dotted
        (``-.->``). Reachable nodes get the ``connected`` class.
        """
        lines = [f"graph {direction}"]
        connected = []

        for node in graph.nodes:
            label = MermaidExporter._sanitize(node.attributes.get("label") or node.id)
            label = f"{label}<br/><i>{node.kind.value}</i>"
            lines.append("    " + MermaidExporter._format_node(node.id, label, MermaidExporter._shape_key(node)))
            if node.connected:
                connected.append(MermaidExporter._node_id(node.id))

        for edge in graph.edges:
            arrow = "==>" if edge.is_execution else "-.->"
            source = MermaidExporter._node_id(edge.source_id)
            target = MermaidExporter._node_id(edge.target_id)
            lines.append(f"    {source} {arrow} {target}")

        if connected:
            lines.append("    classDef connected stroke:#4CAF50,stroke-width:3px")
            lines.append(f"    class {','.join(connected)} connected")

        return "\n".join(lines)

    @staticmethod
    def trace_to_mermaid(trace: Trace, direction: str = "LR") -> str:
        """Convert a reconstructed trace to a Mermaid chain."""
        lines = [f"graph {direction}"]
        for step in trace.steps:
            label = MermaidExporter._sanitize(step.label or step.node_id)
            shape = "end" if step.node_kind == "endNode" else "step"
            lines.append("    " + MermaidExporter._format_node(step.node_id, label, shape))
        for edge in trace.edges:
            source = MermaidExporter._node_id(edge.source)
            target = MermaidExporter._node_id(edge.target)
            lines.append(f"    {source} --> {target}")
        return "\n".join(lines)
