import graphviz
from typing import Optional

from flowgraph.core.ir import Edge, Node
from flowgraph.core.store import GraphSnapshot
from flowgraph.frontend.tracer import Trace


class GraphvizExporter:
    """Exports a workflow snapshot or a reconstructed trace to Graphviz/Dot."""

    # Node role to shape mapping
    _SHAPES = {
        "start": "doubleoctagon",
        "end": "ellipse",
        "data": "note",
        "step": "box",
    }

    CONNECTED_COLOR = "#4CAF50"
    DATA_COLOR = "#607D8B"
    REACHABLE_FILL = "#E8F5E9"

    @staticmethod
    def _escape_html(text: str) -> str:
        """Escape HTML special characters for Graphviz."""
        return (
            text.replace('&', '&amp;')
            .replace('<', '&lt;')
            .replace('>', '&gt;')
            .replace('"', '&quot;')
        )

    @staticmethod
    def _html_label(title: str, subtitle: Optional[str] = None) -> str:
        title = GraphvizExporter._escape_html(title)
        if not subtitle:
            return f'<<B>{title}</B>>'
        subtitle = GraphvizExporter._escape_html(subtitle)
        return (
            f'<<TABLE BORDER="0" CELLBORDER="0" CELLSPACING="2">'
            f'<TR><TD><B>{title}</B></TD></TR>'
            f'<TR><TD><FONT POINT-SIZE="10">{subtitle}</FONT></TD></TR>'
            f'</TABLE>>'
        )

    @staticmethod
    def _shape(node: Node) -> str:
        if node.is_starting_point:
            return GraphvizExporter._SHAPES["start"]
        if node.kind.value == "endNode":
            return GraphvizExporter._SHAPES["end"]
        if node.kind.is_data:
            return GraphvizExporter._SHAPES["data"]
        return GraphvizExporter._SHAPES["step"]

    @staticmethod
    def _node_title(node: Node) -> str:
        for key in ("label", "conditionText", "name"):
            value = node.attributes.get(key)
            if isinstance(value, str) and value:
                return value
        return node.id

    @staticmethod
    def _edge_attrs(edge: Edge) -> dict:
        if not edge.is_execution:
            return {"style": "dashed", "color": GraphvizExporter.DATA_COLOR}
        attrs = {"style": "bold"}
        if edge.connected:
            attrs["color"] = GraphvizExporter.CONNECTED_COLOR
        return attrs

    @staticmethod
    def to_digraph(graph: GraphSnapshot, show_handles: bool = False) -> graphviz.Digraph:
        """
        Converts a workflow snapshot to a graphviz.Digraph object.

        Args:
            graph: Snapshot of the workflow (``GraphStore.snapshot()``)
            show_handles: If True, label edges with their handle ids
        """
        name = graph.name or "Workflow"
        dot = graphviz.Digraph(name=name, comment=name)
        dot.attr(rankdir='LR')

        for node in graph.nodes:
            attrs = {"shape": GraphvizExporter._shape(node)}
            if node.connected:
                attrs.update(style="filled", fillcolor=GraphvizExporter.REACHABLE_FILL)
            label = GraphvizExporter._html_label(GraphvizExporter._node_title(node), node.kind.value)
            dot.node(node.id, label=label, **attrs)

        for edge in graph.edges:
            label = f"{edge.source_handle} > {edge.target_handle}" if show_handles else ""
            dot.edge(edge.source_id, edge.target_id, label=label, **GraphvizExporter._edge_attrs(edge))

        return dot

    @staticmethod
    def trace_to_digraph(trace: Trace) -> graphviz.Digraph:
        """Converts a reconstructed trace to a left-to-right chain of steps."""
        dot = graphviz.Digraph(name=trace.name, comment=trace.name)
        dot.attr(rankdir='LR')

        for step in trace.steps:
            shape = GraphvizExporter._SHAPES["step"]
            if step.node_kind == "endNode":
                shape = GraphvizExporter._SHAPES["end"]
            label = GraphvizExporter._html_label(step.label or step.node_id, step.node_kind)
            color = "red" if step.level == "error" else "black"
            dot.node(step.node_id, label=label, shape=shape, color=color)

        for edge in trace.edges:
            dot.edge(edge.source, edge.target)

        return dot

    @staticmethod
    def to_dot(graph: GraphSnapshot) -> str:
        """Returns the DOT source string for the workflow."""
        return GraphvizExporter.to_digraph(graph).source

    @staticmethod
    def trace_to_dot(trace: Trace) -> str:
        return GraphvizExporter.trace_to_digraph(trace).source

    @staticmethod
    def render(graph: GraphSnapshot, filename: str, format: str = 'png', view: bool = False):
        """Renders the workflow to a file."""
        dot = GraphvizExporter.to_digraph(graph)
        dot.render(filename, format=format, view=view)
