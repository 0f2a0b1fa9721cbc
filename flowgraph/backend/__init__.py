"""Backend exporters for workflow graphs and traces."""

from flowgraph.backend.graphviz import GraphvizExporter
from flowgraph.backend.mermaid import MermaidExporter
from flowgraph.backend.svg import SvgExporter

__all__ = [
    "GraphvizExporter",
    "MermaidExporter",
    "SvgExporter",
]
