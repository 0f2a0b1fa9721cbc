"""
Command-line interface for flowgraph.

Usage:
    flowgraph graph ./flow.json
    flowgraph graph ./flow.json -o ./build/ --format mermaid
    flowgraph trace ./logs.json -o ./build/ --format dot
    flowgraph trace ./logs.json --format svg --log-level DEBUG
"""

import argparse
import functools
import json
import sys
from pathlib import Path
from typing import List, Optional

from flowgraph.backend.graphviz import GraphvizExporter
from flowgraph.backend.mermaid import MermaidExporter
from flowgraph.backend.svg import SvgExporter
from flowgraph.core.errors import GraphError
from flowgraph.core.logs import LogPage
from flowgraph.core.serialization import JsonSerializer
from flowgraph.core.store import GraphStore
from flowgraph.engine.reachability import ReachabilityEngine
from flowgraph.engine.subflows import detect_subflows
from flowgraph.frontend.tracer import Trace, TraceReconstructor
from flowgraph.logging import configure_logging, get_logger

logger = get_logger(__name__)

FORMATS = ["dot", "mermaid", "svg", "json"]
_EXTENSIONS = {"dot": ".dot", "mermaid": ".mmd", "svg": ".svg", "json": ".json"}


def load_graph(filepath: Path) -> GraphStore:
    """Hydrate a persisted workflow document and compute reachability."""
    data = json.loads(filepath.read_text(encoding="utf-8"))
    store = JsonSerializer.from_dict(data)
    if not data.get("name"):
        store.name = filepath.stem
    store.apply_patch(ReachabilityEngine().compute(store.snapshot()))
    return store


def load_trace(filepath: Path) -> Trace:
    """Read a log page (or a bare list of entries) and reconstruct its trace."""
    page = LogPage.from_json(filepath.read_text(encoding="utf-8"))
    return TraceReconstructor().reconstruct(page, name=filepath.stem)


def render_graph(store: GraphStore, format: str, direction: str = "LR") -> str:
    snapshot = store.snapshot()
    if format in ("dot", "graphviz"):
        return GraphvizExporter.to_dot(snapshot)
    if format == "mermaid":
        return MermaidExporter.to_mermaid(snapshot, direction=direction)
    if format == "svg":
        return SvgExporter.to_svg(snapshot)
    if format == "json":
        return JsonSerializer.to_json(store)
    raise ValueError(f"Unknown format: {format}. Use: {', '.join(FORMATS)}")


def render_trace(trace: Trace, format: str, direction: str = "LR") -> str:
    if format in ("dot", "graphviz"):
        return GraphvizExporter.trace_to_dot(trace)
    if format == "mermaid":
        return MermaidExporter.trace_to_mermaid(trace, direction=direction)
    if format == "svg":
        return SvgExporter.to_svg(trace)
    if format == "json":
        return json.dumps(trace.to_dict(), indent=2, default=str)
    raise ValueError(f"Unknown format: {format}. Use: {', '.join(FORMATS)}")


def write_output(content: str, name: str, output_dir: Path, format: str) -> Path:
    """Write ``content`` to ``output_dir`` under a filename derived from ``name``."""
    safe_name = name.lower().replace(" ", "_").replace("/", "_")
    safe_name = "".join(c for c in safe_name if c.isalnum() or c in "_-") or "workflow"
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"{safe_name}{_EXTENSIONS[format]}"
    output_file.write_text(content, encoding="utf-8")
    return output_file


def summarize_graph(store: GraphStore) -> List[str]:
    snapshot = store.snapshot()
    reachable = [n for n in snapshot.nodes if n.connected]
    execution = snapshot.execution_edges()
    lines = [
        f"{store.name}: {len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges "
        f"({len(execution)} execution, {len(snapshot.edges) - len(execution)} data)",
        f"  starting points: {', '.join(n.id for n in snapshot.starting_points()) or '-'}",
        f"  reachable: {len(reachable)}/{len(snapshot.nodes)}",
    ]
    unreachable = [n.id for n in snapshot.nodes if not n.connected and not n.kind.is_data]
    if unreachable:
        lines.append(f"  not reachable: {', '.join(unreachable)}")
    for subflow in detect_subflows(snapshot):
        lines.append(f"  sub-flow '{subflow.name}': {' -> '.join(subflow.core)}")
    return lines


def summarize_trace(trace: Trace) -> List[str]:
    lines = [f"{trace.name}: {len(trace.steps)} steps"]
    for step in trace.steps:
        lines.append(f"  {step.index + 1}. {step.node_id} [{step.node_kind or '?'}] {step.label}")
    return lines


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowgraph",
        description="Inspect workflow graphs and reconstruct execution traces.",
        epilog="Example: flowgraph graph ./flow.json -f mermaid -o ./build/",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("graph", "Persisted workflow document (JSON with nodes/edges)"),
        ("trace", "Execution log page (JSON with data/total/page/limit) or list of entries"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("input", type=Path, help=help_text)
        sub.add_argument(
            "-f", "--format",
            choices=FORMATS,
            help="Export format; without it a summary is printed",
        )
        sub.add_argument(
            "-o", "--output",
            type=Path,
            help="Output directory (default: print to stdout)",
        )
        sub.add_argument(
            "-d", "--direction",
            default="LR",
            help="Mermaid graph direction (default: LR)",
        )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = _build_parser().parse_args(argv)
    configure_logging(json_output=args.json_logs, level=args.log_level)

    if not args.input.is_file():
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        return 1

    try:
        if args.command == "graph":
            store = load_graph(args.input)
            name, summary = store.name, summarize_graph(store)
            render = functools.partial(render_graph, store, direction=args.direction)
        else:
            trace = load_trace(args.input)
            name, summary = trace.name, summarize_trace(trace)
            render = functools.partial(render_trace, trace, direction=args.direction)
    except (GraphError, ValueError, KeyError) as e:
        print(f"Error loading {args.input}: {e}", file=sys.stderr)
        return 1

    logger.info("input_loaded", command=args.command, input=str(args.input))

    if not args.format:
        print("\n".join(summary))
        return 0

    try:
        content = render(args.format)
    except RuntimeError as e:
        print(f"Error exporting {name}: {e}", file=sys.stderr)
        return 1

    if args.output is None:
        print(content)
    else:
        print(write_output(content, name, args.output, args.format))
    return 0


if __name__ == "__main__":
    sys.exit(main())
