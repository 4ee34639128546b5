"""Command line interface for canvas-history.

Inspects and maintains a persisted history database. Every command
opens the SQLite database given by --db, or CANVAS_HISTORY_DB_PATH.
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from canvas_history.config import describe_environment, get_log_level
from canvas_history.core import get_logger, setup_logging
from canvas_history.history import (
    HistoryConfig,
    HistoryEngine,
    HistoryError,
    HistoryState,
    NodeId,
    NodeNotFoundError,
    open_history_engine,
)

# Load environment variables from .env file
load_dotenv()

logger = get_logger("cli")


# =============================================================================
# Helpers
# =============================================================================


def _add_db_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="History database path (default: CANVAS_HISTORY_DB_PATH)",
    )


def _open_for_reading(db_path: Path | None) -> HistoryEngine:
    """Open the history without enforcing the retention bound.

    Inspection commands must not evict stored nodes when
    CANVAS_HISTORY_MAX_SIZE is lowered.
    """
    return open_history_engine(
        db_path=db_path, config=HistoryConfig(max_history_size=sys.maxsize)
    )


def _short(node_id: str | None) -> str:
    return node_id[:8] if node_id else "-"


def resolve_node(engine: HistoryEngine, ref: str) -> NodeId:
    """Resolve a full node id or a unique id prefix.

    Raises:
        NodeNotFoundError: If nothing or more than one node matches.
    """
    if ref in engine:
        return NodeId(ref)
    matches = [node_id for node_id in engine.state.nodes if node_id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise NodeNotFoundError(ref, f"Ambiguous node prefix: {ref}")
    raise NodeNotFoundError(ref)


def render_dot(state: HistoryState) -> str:
    """Render a history graph as Graphviz DOT.

    Nodes on a branch take the color of the oldest branch containing them;
    the current node is drawn with a double outline, bookmarks are filled.
    """
    colors: dict[str, str] = {}
    for branch in state.branches.values():
        for node_id in branch.node_sequence:
            colors.setdefault(node_id, branch.color_tag)

    lines = ["digraph history {", "  rankdir=LR;", "  node [shape=box];"]
    for node_id, node in state.nodes.items():
        label = f"{_short(node_id)}\\n{len(node.snapshot.elements)} elements"
        if node.tags:
            label += "\\n" + ", ".join(sorted(node.tags))
        attrs = [f'label="{label}"']
        if node_id in colors:
            attrs.append(f'color="{colors[node_id]}"')
        if node.bookmarked:
            attrs.append('style="filled"')
            attrs.append('fillcolor="#FEF3C7"')
        if node_id == state.current_node:
            attrs.append("peripheries=2")
        lines.append(f'  "{node_id}" [{", ".join(attrs)}];')
    for node_id, node in state.nodes.items():
        for child_id in sorted(node.children):
            lines.append(f'  "{node_id}" -> "{child_id}";')
    lines.append("}")
    return "\n".join(lines) + "\n"


# =============================================================================
# Commands
# =============================================================================


def cmd_stats(args: argparse.Namespace) -> int:
    """Handle the stats command."""
    with _open_for_reading(args.db) as engine:
        stats = engine.get_stats()

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
        return 0

    print("History Statistics")
    print("=" * 40)
    for name, value in stats.to_dict().items():
        print(f"  {name.replace('_', ' ').capitalize():<22} {value}")
    return 0


def cmd_log(args: argparse.Namespace) -> int:
    """Handle the log command."""
    with _open_for_reading(args.db) as engine:
        state = engine.state

    nodes = list(state.nodes.values())[::-1]
    if args.limit:
        nodes = nodes[: args.limit]
    if not nodes:
        print("History is empty.")
        return 0

    for node in nodes:
        marker = "*" if node.id == state.current_node else " "
        flags = "B" if node.bookmarked else " "
        parents = ",".join(_short(p) for p in sorted(node.parents)) or "root"
        line = (
            f"{marker}{flags} {node.id}  {node.timestamp:%Y-%m-%d %H:%M:%S}  "
            f"{node.snapshot.source.value:<6} {len(node.snapshot.elements):>3} el  "
            f"<- {parents}"
        )
        if node.branch_label:
            line += f"  [{node.branch_label}]"
        if node.tags:
            line += f"  #{' #'.join(sorted(node.tags))}"
        print(line)
        if node.description:
            print(f"      {node.description}")
    return 0


def cmd_branches(args: argparse.Namespace) -> int:
    """Handle the branches command."""
    with _open_for_reading(args.db) as engine:
        branches = engine.list_branches()

    if not branches:
        print("No branches.")
        return 0

    for branch in branches:
        marker = "*" if branch.active else " "
        print(
            f"{marker} {branch.name:<20} {branch.color_tag}  "
            f"{len(branch.node_sequence):>4} nodes  head {_short(branch.head)}  "
            f"({branch.id})"
        )
        if branch.description:
            print(f"    {branch.description}")
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    """Handle the diff command."""
    with _open_for_reading(args.db) as engine:
        try:
            comparison = engine.compare(
                resolve_node(engine, args.from_node),
                resolve_node(engine, args.to_node),
            )
        except NodeNotFoundError as e:
            logger.error(str(e))
            return 1

    if args.json:
        print(json.dumps(comparison.summary(), indent=2))
        return 0

    if not comparison.has_changes:
        print("No changes.")
        return 0

    symbols = {"added": "+", "removed": "-", "modified": "~"}
    for change in comparison.element_changes:
        symbol = symbols[change.type.value]
        line = f"{symbol} {change.element_id} ({change.element.type})"
        if change.previous is not None:
            line += f": {', '.join(change.changed_fields())}"
        print(line)
    if comparison.viewport_change:
        before = comparison.viewport_change.from_viewport
        after = comparison.viewport_change.to_viewport
        print(f"~ viewport: zoom {before.zoom} -> {after.zoom}")
    print(f"Similarity: {comparison.similarity:.0%}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Handle the export command."""
    with _open_for_reading(args.db) as engine:
        data = engine.export_history(indent=args.indent)
        count = len(engine)

    if args.output == "-":
        sys.stdout.write(data.decode("utf-8") + "\n")
        return 0

    output = Path(args.output)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
    except OSError as e:
        logger.error(f"Cannot write {output}: {e}")
        return 1
    logger.info(f"Exported {count} nodes to {output}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Handle the import command."""
    source = Path(args.input)
    if not source.exists():
        logger.error(f"File not found: {source}")
        return 1

    with open_history_engine(db_path=args.db) as engine:
        try:
            engine.import_history(source.read_bytes())
        except HistoryError as e:
            logger.error(f"Import failed: {e}")
            return 1
        if engine.last_persistence_error is not None:
            error = engine.last_persistence_error
            logger.error(f"Imported history was not saved: {error}")
            return 1
        logger.info(f"Imported {len(engine)} nodes from {source}")
    return 0


def cmd_graph(args: argparse.Namespace) -> int:
    """Handle the graph command."""
    with _open_for_reading(args.db) as engine:
        dot = render_dot(engine.state)

    if args.output:
        try:
            Path(args.output).write_text(dot, encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot write {args.output}: {e}")
            return 1
        logger.info(f"Wrote graph to {args.output}")
    else:
        sys.stdout.write(dot)
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    """Handle the env command."""
    print("Environment Configuration")
    print("=" * 40)
    for setting in describe_environment(args.category):
        source = "set" if setting["is_set"] else "default"
        print(f"  {setting['name']:<28} {setting['value']} ({source})")
        print(f"      {setting['description']} [{setting['category']}]")
    return 0


# =============================================================================
# Dispatch
# =============================================================================


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="canvas-history",
        description="Inspect and maintain a canvas design history",
    )
    subparsers = parser.add_subparsers(dest="command")

    stats_parser = subparsers.add_parser("stats", help="Show history statistics")
    _add_db_argument(stats_parser)
    stats_parser.add_argument("--json", action="store_true", help="Output JSON")
    stats_parser.set_defaults(func=cmd_stats)

    log_parser = subparsers.add_parser("log", help="List nodes, newest first")
    _add_db_argument(log_parser)
    log_parser.add_argument(
        "-n", "--limit", type=int, default=0, help="Maximum nodes to show"
    )
    log_parser.set_defaults(func=cmd_log)

    branches_parser = subparsers.add_parser("branches", help="List branches")
    _add_db_argument(branches_parser)
    branches_parser.set_defaults(func=cmd_branches)

    diff_parser = subparsers.add_parser("diff", help="Compare two nodes")
    diff_parser.add_argument("from_node", help="Node id or unique prefix")
    diff_parser.add_argument("to_node", help="Node id or unique prefix")
    _add_db_argument(diff_parser)
    diff_parser.add_argument("--json", action="store_true", help="Output JSON")
    diff_parser.set_defaults(func=cmd_diff)

    export_parser = subparsers.add_parser("export", help="Export history as JSON")
    export_parser.add_argument("output", help="Output file ('-' for stdout)")
    _add_db_argument(export_parser)
    export_parser.add_argument(
        "--indent", type=int, default=None, help="Indent JSON output"
    )
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser(
        "import", help="Replace history with an exported document"
    )
    import_parser.add_argument("input", help="Exported JSON file")
    _add_db_argument(import_parser)
    import_parser.set_defaults(func=cmd_import)

    graph_parser = subparsers.add_parser("graph", help="Render history as DOT")
    _add_db_argument(graph_parser)
    graph_parser.add_argument("-o", "--output", help="Output file (default: stdout)")
    graph_parser.set_defaults(func=cmd_graph)

    env_parser = subparsers.add_parser("env", help="Show environment configuration")
    env_parser.add_argument(
        "--category", default=None, help="Only show one category"
    )
    env_parser.set_defaults(func=cmd_env)

    return parser


def show_help() -> None:
    """Display CLI help message."""
    print("Usage: canvas-history {command} [args]")
    print("\n=== Inspect ===")
    print("  stats      Show history statistics")
    print("  log        List recorded nodes")
    print("  branches   List branches")
    print("  diff       Compare two nodes")
    print("  graph      Render the history graph (Graphviz DOT)")
    print("\n=== Maintain ===")
    print("  export     Export history as JSON")
    print("  import     Replace history with an exported document")
    print("  env        Show environment configuration")
    print("\nExamples:")
    print("  canvas-history log -n 20")
    print("  canvas-history diff 1f3a 9bc2")
    print("  canvas-history export backup.json --indent 2")
    print("  canvas-history graph -o history.dot")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    argv = sys.argv[1:] if argv is None else argv

    if not argv:
        show_help()
        return 1
    if argv[0] in ("-h", "--help"):
        show_help()
        return 0

    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    setup_logging(get_log_level())
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
