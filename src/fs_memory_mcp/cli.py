"""fs-memory: CLI entry point.

Installed as ``fs-memory`` command via pyproject.toml entry point.

Commands:
    fs-memory serve <kind> [DIR ...]    Run a tool server over stdio
    fs-memory search <query>            Search a graph file
    fs-memory history <path>            Show what is remembered about a file
    fs-memory stats                     Summarize file activity in a graph file
    fs-memory doctor                    Run installation health checks
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path

from . import __version__
from .bridge import GraphBridge
from .config import DEFAULT_CONFIG_FILES, DEFAULT_MEMORY_FILES, SERVER_KINDS
from .dirconfig import DirectoryConfig, find_config_file
from .errors import FsMemoryError
from .formatter import format_brief, format_json, format_stats
from .graph import GraphStore, find_memory_file
from .tools import build_context

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Doctor checks
# ---------------------------------------------------------------------------


def _check_cli() -> tuple[bool, str]:
    """Verify CLI entry point works."""
    return True, f"v{__version__}"


def _check_mcp_importable() -> tuple[bool, str]:
    """Verify MCP SDK is installed."""
    try:
        from importlib.metadata import version

        return True, f"v{version('mcp')}"
    except Exception as e:
        return False, f"Not installed: {e}"


def _check_memory_file(memory_file: str | None, kind: str) -> tuple[bool, str]:
    """Verify the graph file is absent or loadable."""
    path = find_memory_file(memory_file, DEFAULT_MEMORY_FILES[kind])
    if not path.exists():
        return True, f"{path} (not created yet)"
    with GraphStore.open(path, recover_corrupt=False) as store:
        return True, f"{path} ({len(store)} entities)"


def _check_config_file(config_file: str | None, kind: str) -> tuple[bool, str]:
    """Verify every configured allowed directory still exists."""
    config = DirectoryConfig(find_config_file(config_file, DEFAULT_CONFIG_FILES[kind]))
    dirs = config.load()
    if not dirs:
        return True, f"{config.path} (no stored directories)"
    missing = [d for d in dirs if not Path(d).is_dir()]
    if missing:
        return False, f"Missing directories: {', '.join(missing)}"
    return True, f"{config.path} ({len(dirs)} directories)"


def _check_mcp_server() -> tuple[bool, str]:
    """Verify an MCP server can be created."""
    from .mcp_server import create_mcp_server

    ctx = build_context("memory")
    try:
        create_mcp_server(ctx)
    finally:
        ctx.close()
    return True, "Server created successfully"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _config_key(kind: str) -> str:
    """Sidecar default for inspecting a graph written by ``kind``."""
    return "combined" if kind == "combined" else "filesystem+memory"


def _open_store(args: argparse.Namespace) -> GraphStore:
    return GraphStore.open(find_memory_file(args.memory_file, DEFAULT_MEMORY_FILES[args.kind]))


def cmd_serve(args: argparse.Namespace) -> None:
    """Run a tool server over stdio."""
    from .mcp_server import create_mcp_server, run_stdio

    try:
        ctx = build_context(
            args.server,
            args.directories,
            memory_file=args.memory_file,
            config_file=args.config_file,
            memory=not args.no_memory,
        )
    except FsMemoryError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    logger.info("Starting %s server", args.server)
    if ctx.fs is not None:
        for d in ctx.fs.sandbox.directories:
            logger.info("Allowed directory: %s", d)
    try:
        run_stdio(create_mcp_server(ctx))
    finally:
        ctx.close()


def cmd_search(args: argparse.Namespace) -> None:
    """Search entities in a graph file."""
    with _open_store(args) as store:
        results = store.search_nodes(args.query)
    if args.limit:
        results = results[: args.limit]
    if not results:
        print("No entities found.")
        return
    if args.format == "json":
        print(format_json([r.to_dict() for r in results]))
        return
    for r in results:
        print(format_brief(r))


def cmd_history(args: argparse.Namespace) -> None:
    """Show what is remembered about a file."""
    with _open_store(args) as store:
        history = GraphBridge(store).recall_file_history(args.path)
    if history is None:
        print(f"No memory found for file: {args.path}")
        sys.exit(1)
    print(format_json(history))


def cmd_stats(args: argparse.Namespace) -> None:
    """Summarize file activity recorded in a graph file."""
    config = DirectoryConfig(find_config_file(args.config_file, DEFAULT_CONFIG_FILES[_config_key(args.kind)]))
    with _open_store(args) as store:
        stats = GraphBridge(store).stats(config.load())
    if args.json:
        print(format_json(stats))
    else:
        print(format_stats(stats))


def cmd_doctor(args: argparse.Namespace) -> None:
    """Run installation health checks."""
    checks = [
        ("CLI entry point", _check_cli),
        ("MCP SDK installed", _check_mcp_importable),
        ("MCP server creatable", _check_mcp_server),
        ("Memory file loadable", lambda: _check_memory_file(args.memory_file, args.kind)),
        (
            "Allowed directories",
            lambda: _check_config_file(args.config_file, _config_key(args.kind)),
        ),
    ]
    all_ok = True
    print("fs-memory: Health Check\n")
    for name, check_fn in checks:
        try:
            ok, detail = check_fn()
            status = "✓" if ok else "✗"
            print(f"  {status} {name}: {detail}")
            if not ok:
                all_ok = False
        except Exception as e:
            print(f"  ✗ {name}: CRASH: {e}")
            all_ok = False
    print()
    if all_ok:
        print("All checks passed.")
    else:
        print("Some checks failed. See details above.")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="fs-memory",
        description="Knowledge graph memory and sandboxed filesystem tool servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              fs-memory serve combined ~/project           Filesystem + graph tools
              fs-memory serve filesystem ~/a ~/b --no-memory
              fs-memory search config --format json        Search the graph file
              fs-memory history ~/project/setup.cfg        Access history of a file
        """),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")

    files = argparse.ArgumentParser(add_help=False)
    files.add_argument(
        "--memory-file", help="Graph JSON file (default: $MEMORY_FILE_PATH or per-server file)"
    )
    files.add_argument(
        "--config-file",
        help="Allowed-directories file (default: $FS_MEMORY_CONFIG_FILE or per-server file)",
    )

    inspect = argparse.ArgumentParser(add_help=False, parents=[files])
    inspect.add_argument(
        "--kind",
        default="combined",
        choices=SERVER_KINDS,
        help="Server whose default files to read (default: combined)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # --- serve ---
    p_serve = sub.add_parser("serve", parents=[files], help="Run a tool server over stdio")
    p_serve.add_argument("server", choices=SERVER_KINDS, help="Server kind")
    p_serve.add_argument("directories", nargs="*", help="Allowed directories")
    p_serve.add_argument(
        "--no-memory", action="store_true", help="Filesystem server without the graph bridge"
    )
    p_serve.set_defaults(func=cmd_serve)

    # --- search ---
    p_search = sub.add_parser("search", parents=[inspect], help="Search entities in the graph file")
    p_search.add_argument("query", help="Case-insensitive substring")
    p_search.add_argument("--limit", type=int, default=0, help="Max results (0 = all)")
    p_search.add_argument("--format", default="brief", choices=["brief", "json"])
    p_search.set_defaults(func=cmd_search)

    # --- history ---
    p_history = sub.add_parser(
        "history", parents=[inspect], help="Show what is remembered about a file"
    )
    p_history.add_argument("path", help="File path")
    p_history.set_defaults(func=cmd_history)

    # --- stats ---
    p_stats = sub.add_parser("stats", parents=[inspect], help="Summarize recorded filesystem activity")
    p_stats.add_argument("--json", action="store_true", help="Print raw JSON")
    p_stats.set_defaults(func=cmd_stats)

    # --- doctor ---
    p_doctor = sub.add_parser("doctor", parents=[inspect], help="Run installation health checks")
    p_doctor.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args.func(args)


if __name__ == "__main__":
    main()
