"""Tool handlers and dispatch: independent of the MCP transport.

A tool call is a name plus a flat argument dict. ``call_tool`` routes it to
the handler table of the server kind and always returns a ``ToolResult``;
failures come back with ``is_error`` set rather than as exceptions.

Server kinds:
    memory      graph tools over one ``GraphStore``
    filesystem  sandboxed file tools, directory tools, file-memory tools
    combined    everything, with the file layer and graph tools sharing one store
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from .bridge import GraphBridge
from .config import (
    DEFAULT_CONFIG_FILES,
    DEFAULT_MEMORY_FILES,
    SEARCH_MAX_RESULTS,
    SERVER_KINDS,
    SIMILAR_FILES_LIMIT,
    TREE_MAX_DEPTH,
)
from .dirconfig import DirectoryConfig, find_config_file
from .errors import AlreadyAllowedError, FsMemoryError, InvalidArgumentError, UnknownToolError
from .filesystem import FilesystemOps
from .formatter import (
    format_delete_outcomes,
    format_edit_result,
    format_entity_outcomes,
    format_json,
    format_relation_outcomes,
)
from .graph import GraphStore, find_memory_file
from .sandbox import PathSandbox

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Context and result types
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    """Text payload of a tool call; ``is_error`` marks a failed call."""

    text: str
    is_error: bool = False


@dataclass
class ServerContext:
    """Everything one server's handlers operate on."""

    kind: str
    store: GraphStore | None = None
    fs: FilesystemOps | None = None
    bridge: GraphBridge | None = None
    config_file: Path | None = None

    @property
    def memory_enabled(self) -> bool:
        return self.store is not None

    def close(self) -> None:
        if self.store is not None:
            self.store.close()


def build_context(
    kind: str,
    directories: Iterable[str] = (),
    memory_file: str | None = None,
    config_file: str | None = None,
    memory: bool = True,
) -> ServerContext:
    """Wire up the store, sandbox and bridge for a server kind.

    The memory server loads its graph lazily on the first call; servers with
    a filesystem side load it at startup and record the allowed directories.
    """
    if kind not in SERVER_KINDS:
        raise InvalidArgumentError(f"Unknown server kind: {kind}")

    if kind == "memory":
        store = GraphStore(find_memory_file(memory_file, DEFAULT_MEMORY_FILES["memory"]))
        return ServerContext(kind=kind, store=store)

    memory = memory or kind == "combined"
    config_key = "combined" if kind == "combined" else ("filesystem+memory" if memory else "filesystem")
    config_path = find_config_file(config_file, DEFAULT_CONFIG_FILES[config_key])
    sandbox = PathSandbox(directories, DirectoryConfig(config_path))

    if not memory:
        return ServerContext(kind=kind, fs=FilesystemOps(sandbox), config_file=config_path)

    store = GraphStore.open(find_memory_file(memory_file, DEFAULT_MEMORY_FILES[kind]))
    bridge = GraphBridge(store)
    bridge.directories_registered(sandbox.directories)
    return ServerContext(
        kind=kind,
        store=store,
        fs=FilesystemOps(sandbox, bridge),
        bridge=bridge,
        config_file=config_path,
    )


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _require(args: dict[str, Any], key: str, kind: type = str) -> Any:
    if key not in args or args[key] is None:
        raise InvalidArgumentError(f"Missing required argument: {key}")
    value = args[key]
    if not isinstance(value, kind):
        raise InvalidArgumentError(f"Argument '{key}' must be of type {kind.__name__}")
    return value


def _optional_int(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Argument '{key}' must be a number") from e


def _store(ctx: ServerContext) -> GraphStore:
    assert ctx.store is not None
    return ctx.store


def _fs(ctx: ServerContext) -> FilesystemOps:
    assert ctx.fs is not None
    return ctx.fs


def _bridge(ctx: ServerContext) -> GraphBridge:
    assert ctx.bridge is not None
    return ctx.bridge


# ---------------------------------------------------------------------------
# Graph tools
# ---------------------------------------------------------------------------


def _handle_create_entities(ctx: ServerContext, args: dict[str, Any]) -> str:
    outcomes = _store(ctx).create_entities(_require(args, "entities", list))
    return format_entity_outcomes(outcomes) or "No entities given."


def _handle_create_relations(ctx: ServerContext, args: dict[str, Any]) -> str:
    outcomes = _store(ctx).create_relations(_require(args, "relations", list))
    return (
        format_relation_outcomes(outcomes, "Created relation", "Relation already exists")
        or "No relations given."
    )


def _handle_add_observations(ctx: ServerContext, args: dict[str, Any]) -> str:
    name = _require(args, "entityName")
    added = _store(ctx).add_observations(name, _require(args, "observations", list))
    return f"Added {added} new observations to {name}"


def _handle_search_nodes(ctx: ServerContext, args: dict[str, Any]) -> str:
    results = _store(ctx).search_nodes(_require(args, "query"))
    return format_json([r.to_dict() for r in results])


def _handle_read_graph(ctx: ServerContext, args: dict[str, Any]) -> str:
    return format_json(_store(ctx).read_graph())


def _handle_open_nodes(ctx: ServerContext, args: dict[str, Any]) -> str:
    nodes = _store(ctx).open_nodes(_require(args, "names", list))
    return format_json([n.to_dict() for n in nodes])


def _handle_delete_entities(ctx: ServerContext, args: dict[str, Any]) -> str:
    outcomes = _store(ctx).delete_entities(_require(args, "entityNames", list))
    return format_delete_outcomes(outcomes) or "No entities given."


def _handle_delete_observations(ctx: ServerContext, args: dict[str, Any]) -> str:
    name = _require(args, "entityName")
    deleted = _store(ctx).delete_observations(name, _require(args, "observations", list))
    return f"Deleted {deleted} observations from {name}"


def _handle_delete_relations(ctx: ServerContext, args: dict[str, Any]) -> str:
    outcomes = _store(ctx).delete_relations(_require(args, "relations", list))
    return (
        format_relation_outcomes(outcomes, "Deleted relation", "Relation not found")
        or "No relations given."
    )


# ---------------------------------------------------------------------------
# Filesystem tools
# ---------------------------------------------------------------------------


def _handle_read_file(ctx: ServerContext, args: dict[str, Any]) -> str:
    return _fs(ctx).read_file(_require(args, "path"))


def _handle_read_multiple_files(ctx: ServerContext, args: dict[str, Any]) -> str:
    return format_json(_fs(ctx).read_multiple_files(_require(args, "paths", list)))


def _handle_write_file(ctx: ServerContext, args: dict[str, Any]) -> str:
    path = _require(args, "path")
    _fs(ctx).write_file(path, _require(args, "content"))
    return f"Successfully wrote to {path}"


def _handle_edit_file(ctx: ServerContext, args: dict[str, Any]) -> str:
    path = _require(args, "path")
    result = _fs(ctx).edit_file(path, _require(args, "edits", list), bool(args.get("dryRun", False)))
    return format_edit_result(result, path)


def _handle_create_directory(ctx: ServerContext, args: dict[str, Any]) -> str:
    path = _require(args, "path")
    _fs(ctx).create_directory(path)
    return f"Successfully created directory {path}"


def _handle_list_directory(ctx: ServerContext, args: dict[str, Any]) -> str:
    return format_json(_fs(ctx).list_directory(_require(args, "path")))


def _handle_list_directory_with_sizes(ctx: ServerContext, args: dict[str, Any]) -> str:
    return format_json(_fs(ctx).list_directory_with_sizes(_require(args, "path")))


def _handle_directory_tree(ctx: ServerContext, args: dict[str, Any]) -> str:
    max_depth = _optional_int(args, "maxDepth", TREE_MAX_DEPTH)
    return format_json(_fs(ctx).directory_tree(_require(args, "path"), max_depth))


def _handle_move_file(ctx: ServerContext, args: dict[str, Any]) -> str:
    source, destination = _require(args, "source"), _require(args, "destination")
    _fs(ctx).move_file(source, destination)
    return f"Successfully moved {source} to {destination}"


def _handle_search_files(ctx: ServerContext, args: dict[str, Any]) -> str:
    max_results = _optional_int(args, "maxResults", SEARCH_MAX_RESULTS)
    result = _fs(ctx).search_files(_require(args, "path"), _require(args, "pattern"), max_results)
    return format_json(result.to_dict())


def _handle_get_file_info(ctx: ServerContext, args: dict[str, Any]) -> str:
    return format_json(_fs(ctx).get_file_info(_require(args, "path")))


def _handle_list_allowed_directories(ctx: ServerContext, args: dict[str, Any]) -> str:
    dirs = _fs(ctx).sandbox.directories
    return format_json(
        {
            "allowedDirectories": dirs,
            "count": len(dirs),
            "memoryEnabled": ctx.memory_enabled,
            "memoryFilePath": str(ctx.store.path) if ctx.store is not None else None,
            "configFile": str(ctx.config_file) if ctx.config_file else None,
        }
    )


def _handle_add_allowed_directory(ctx: ServerContext, args: dict[str, Any]) -> str:
    path = _require(args, "path")
    fs = _fs(ctx)
    fs.add_allowed_directory(path)
    return (
        f"Successfully added directory {path} to allowed directories. "
        f"Total directories: {len(fs.sandbox)}"
    )


def _handle_remove_allowed_directory(ctx: ServerContext, args: dict[str, Any]) -> str:
    path = _require(args, "path")
    fs = _fs(ctx)
    fs.remove_allowed_directory(path)
    return (
        f"Successfully removed directory {path} from allowed directories. "
        f"Remaining directories: {len(fs.sandbox)}"
    )


# ---------------------------------------------------------------------------
# File-memory tools
# ---------------------------------------------------------------------------


def _handle_recall_file_history(ctx: ServerContext, args: dict[str, Any]) -> str:
    file_path = _require(args, "filePath")
    history = _bridge(ctx).recall_file_history(file_path)
    if history is None:
        return f"No memory found for file: {file_path}"
    return format_json(history)


def _handle_find_similar_files(ctx: ServerContext, args: dict[str, Any]) -> str:
    limit = _optional_int(args, "limit", SIMILAR_FILES_LIMIT)
    return format_json(_bridge(ctx).find_similar_files(_require(args, "query"), limit))


def _handle_get_filesystem_memory_stats(ctx: ServerContext, args: dict[str, Any]) -> str:
    return format_json(_bridge(ctx).stats(_fs(ctx).sandbox.directories))


# ---------------------------------------------------------------------------
# Dispatch tables
# ---------------------------------------------------------------------------

Handler = Callable[[ServerContext, dict[str, Any]], str]

GRAPH_HANDLERS: dict[str, Handler] = {
    "create_entities": _handle_create_entities,
    "create_relations": _handle_create_relations,
    "add_observations": _handle_add_observations,
    "search_nodes": _handle_search_nodes,
    "read_graph": _handle_read_graph,
    "open_nodes": _handle_open_nodes,
    "delete_entities": _handle_delete_entities,
    "delete_observations": _handle_delete_observations,
    "delete_relations": _handle_delete_relations,
}

FILESYSTEM_HANDLERS: dict[str, Handler] = {
    "read_file": _handle_read_file,
    "read_multiple_files": _handle_read_multiple_files,
    "write_file": _handle_write_file,
    "edit_file": _handle_edit_file,
    "create_directory": _handle_create_directory,
    "list_directory": _handle_list_directory,
    "list_directory_with_sizes": _handle_list_directory_with_sizes,
    "directory_tree": _handle_directory_tree,
    "move_file": _handle_move_file,
    "search_files": _handle_search_files,
    "get_file_info": _handle_get_file_info,
    "list_allowed_directories": _handle_list_allowed_directories,
    "add_allowed_directory": _handle_add_allowed_directory,
    "remove_allowed_directory": _handle_remove_allowed_directory,
}

BRIDGE_HANDLERS: dict[str, Handler] = {
    "recall_file_history": _handle_recall_file_history,
    "find_similar_files": _handle_find_similar_files,
    "get_filesystem_memory_stats": _handle_get_filesystem_memory_stats,
}


def handlers_for(kind: str, memory: bool = True) -> dict[str, Handler]:
    """Tools served by ``kind``; a filesystem server without memory has no file-memory tools."""
    if kind == "memory":
        return dict(GRAPH_HANDLERS)
    if kind == "filesystem":
        if not memory:
            return dict(FILESYSTEM_HANDLERS)
        return {**FILESYSTEM_HANDLERS, **BRIDGE_HANDLERS}
    if kind == "combined":
        return {**FILESYSTEM_HANDLERS, **BRIDGE_HANDLERS, **GRAPH_HANDLERS}
    raise InvalidArgumentError(f"Unknown server kind: {kind}")


def call_tool(ctx: ServerContext, name: str, arguments: dict[str, Any] | None) -> ToolResult:
    """Run one tool call and wrap the outcome."""
    try:
        handler = handlers_for(ctx.kind, ctx.memory_enabled).get(name)
        if handler is None:
            raise UnknownToolError(name)
        return ToolResult(handler(ctx, arguments or {}))
    except AlreadyAllowedError as e:
        return ToolResult(str(e))
    except FsMemoryError as e:
        logger.info("Tool %s failed: %s", name, e)
        return ToolResult(f"Error: {e}", is_error=True)
    except Exception as e:
        logger.exception("Tool %s failed", name)
        return ToolResult(f"Error in {name}: {e}", is_error=True)
