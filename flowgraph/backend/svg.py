"""SVG backend using Graphviz.

Requirements:
    Graphviz must be installed on your system:
    - macOS: brew install graphviz
    - Ubuntu/Debian: sudo apt-get install graphviz
    - Windows: Download from https://graphviz.org/download/

Example:
    >>> svg_string = SvgExporter.to_svg(store.snapshot())
    >>> with open("workflow.svg", "w") as f:
    ...     f.write(svg_string)
"""

from flowgraph.backend.graphviz import GraphvizExporter
from flowgraph.frontend.tracer import Trace


__all__ = ["SvgExporter"]


class SvgExporter:
    """Exports a workflow snapshot or a trace to SVG format using Graphviz."""

    @staticmethod
    def to_svg(graph_or_trace) -> str:
        """
        Convert a GraphSnapshot or Trace to an SVG string.

        Raises:
            RuntimeError: If Graphviz executable is not available
        """
        if isinstance(graph_or_trace, Trace):
            digraph = GraphvizExporter.trace_to_digraph(graph_or_trace)
        else:
            digraph = GraphvizExporter.to_digraph(graph_or_trace)

        try:
            svg_bytes = digraph.pipe(format='svg')
        except Exception as e:
            if 'graphviz' in str(e).lower() or 'dot' in str(e).lower():
                raise RuntimeError(
                    "Graphviz executable not found. "
                    "Please install Graphviz: https://graphviz.org/download/"
                ) from e
            raise
        return svg_bytes.decode('utf-8')
