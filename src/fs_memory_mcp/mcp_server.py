"""MCP server: exposes the graph and filesystem tools to LLM agents.

Thin wrapper over ``tools.call_tool``: this module owns the tool catalogs
(names, descriptions, input schemas) and the stdio transport.

Usage:
    # combined server over stdio (Claude Desktop, VS Code Copilot, etc.)
    fs-memory-mcp-stdio /path/to/project

    # a single server kind
    fs-memory serve filesystem /path/to/project --no-memory
    MEMORY_FILE_PATH=/data/graph.json fs-memory serve memory
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import SEARCH_MAX_RESULTS, SERVER_NAMES, SIMILAR_FILES_LIMIT, TREE_MAX_DEPTH
from .tools import ServerContext, call_tool

logger = logging.getLogger(__name__)


class ToolCallError(Exception):
    """Raised inside the MCP handler so the SDK marks the result ``isError``."""


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}


def _path_schema(description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {"path": {"type": "string", "description": description}},
        "required": ["path"],
    }


_RELATION_LIST = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "from": {"type": "string", "description": "Source entity name"},
            "to": {"type": "string", "description": "Target entity name"},
            "relationType": {"type": "string", "description": "Relation label, e.g. 'depends_on'"},
        },
        "required": ["from", "to", "relationType"],
    },
}


def _graph_tools() -> list[Tool]:
    return [
        Tool(
            name="create_entities",
            description=(
                "Create entities in the knowledge graph. "
                "An existing entity keeps its type and gains any new observations."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "entities": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string", "description": "Unique entity name"},
                                "entityType": {"type": "string", "description": "Entity type"},
                                "observations": _STRING_LIST,
                            },
                            "required": ["name", "entityType"],
                        },
                    },
                },
                "required": ["entities"],
            },
        ),
        Tool(
            name="create_relations",
            description=(
                "Create directed relations between entities. "
                "Missing endpoints are created with type 'unknown'; duplicates are reported."
            ),
            inputSchema={
                "type": "object",
                "properties": {"relations": _RELATION_LIST},
                "required": ["relations"],
            },
        ),
        Tool(
            name="add_observations",
            description="Add observations to an existing entity. Duplicates are skipped.",
            inputSchema={
                "type": "object",
                "properties": {"entityName": _STRING, "observations": _STRING_LIST},
                "required": ["entityName", "observations"],
            },
        ),
        Tool(
            name="search_nodes",
            description=(
                "Search entities by case-insensitive substring over names, types, "
                "observations and relations. Results are ranked by score."
            ),
            inputSchema={
                "type": "object",
                "properties": {"query": {"type": "string", "description": "Substring to search for"}},
                "required": ["query"],
            },
        ),
        Tool(
            name="read_graph",
            description="Return the whole knowledge graph.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="open_nodes",
            description="Return the named entities. Unknown names are skipped.",
            inputSchema={
                "type": "object",
                "properties": {"names": _STRING_LIST},
                "required": ["names"],
            },
        ),
        Tool(
            name="delete_entities",
            description="Delete entities and every relation pointing at them.",
            inputSchema={
                "type": "object",
                "properties": {"entityNames": _STRING_LIST},
                "required": ["entityNames"],
            },
        ),
        Tool(
            name="delete_observations",
            description="Delete specific observations from an entity.",
            inputSchema={
                "type": "object",
                "properties": {"entityName": _STRING, "observations": _STRING_LIST},
                "required": ["entityName", "observations"],
            },
        ),
        Tool(
            name="delete_relations",
            description="Delete specific relations.",
            inputSchema={
                "type": "object",
                "properties": {"relations": _RELATION_LIST},
                "required": ["relations"],
            },
        ),
    ]


def _filesystem_tools() -> list[Tool]:
    return [
        Tool(
            name="read_file",
            description="Read the complete contents of a UTF-8 text file.",
            inputSchema=_path_schema("File to read"),
        ),
        Tool(
            name="read_multiple_files",
            description=(
                "Read several files at once. A file that cannot be read gets an "
                "error string instead of failing the whole call."
            ),
            inputSchema={
                "type": "object",
                "properties": {"paths": _STRING_LIST},
                "required": ["paths"],
            },
        ),
        Tool(
            name="write_file",
            description="Create or overwrite a file. Parent directories are created as needed.",
            inputSchema={
                "type": "object",
                "properties": {"path": _STRING, "content": _STRING},
                "required": ["path", "content"],
            },
        ),
        Tool(
            name="edit_file",
            description=(
                "Apply ordered literal replacements to a file. Each oldText must be "
                "present; only its first occurrence is replaced. Use dryRun to preview."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": _STRING,
                    "edits": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"oldText": _STRING, "newText": _STRING},
                            "required": ["oldText", "newText"],
                        },
                    },
                    "dryRun": {
                        "type": "boolean",
                        "description": "Report the result without writing. Default: false.",
                    },
                },
                "required": ["path", "edits"],
            },
        ),
        Tool(
            name="create_directory",
            description="Create a directory, including missing parents.",
            inputSchema=_path_schema("Directory to create"),
        ),
        Tool(
            name="list_directory",
            description="List the names in a directory.",
            inputSchema=_path_schema("Directory to list"),
        ),
        Tool(
            name="list_directory_with_sizes",
            description="List a directory with size and kind of each entry.",
            inputSchema=_path_schema("Directory to list"),
        ),
        Tool(
            name="directory_tree",
            description="Nested JSON view of a directory tree, bounded by depth.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": _STRING,
                    "maxDepth": {
                        "type": "number",
                        "description": f"Levels to descend. Default: {TREE_MAX_DEPTH}.",
                    },
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="move_file",
            description="Move or rename a file or directory. Both paths must be allowed.",
            inputSchema={
                "type": "object",
                "properties": {"source": _STRING, "destination": _STRING},
                "required": ["source", "destination"],
            },
        ),
        Tool(
            name="search_files",
            description=(
                "Find files below a directory by glob pattern. "
                "Returns the matches shown and the total found."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": _STRING,
                    "pattern": {"type": "string", "description": "Glob pattern, e.g. '*.py'"},
                    "maxResults": {
                        "type": "number",
                        "description": f"Maximum matches returned. Default: {SEARCH_MAX_RESULTS}.",
                    },
                },
                "required": ["path", "pattern"],
            },
        ),
        Tool(
            name="get_file_info",
            description="Size, kind, permissions and timestamps of a file or directory.",
            inputSchema=_path_schema("File or directory to inspect"),
        ),
        Tool(
            name="list_allowed_directories",
            description="List the directories this server may access.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="add_allowed_directory",
            description="Allow access to another existing directory. The change is saved.",
            inputSchema=_path_schema("Directory to allow"),
        ),
        Tool(
            name="remove_allowed_directory",
            description="Revoke access to a directory. The last directory cannot be removed.",
            inputSchema=_path_schema("Directory to revoke"),
        ),
    ]


def _bridge_tools() -> list[Tool]:
    return [
        Tool(
            name="recall_file_history",
            description="Everything remembered about a file: access history and relations.",
            inputSchema={
                "type": "object",
                "properties": {"filePath": _STRING},
                "required": ["filePath"],
            },
        ),
        Tool(
            name="find_similar_files",
            description="Search remembered files by name, content preview or history.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": _STRING,
                    "limit": {
                        "type": "number",
                        "description": f"Maximum results. Default: {SIMILAR_FILES_LIMIT}.",
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_filesystem_memory_stats",
            description="Counts of remembered files and directories, and recent activity.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def build_tools(kind: str, memory: bool = True) -> list[Tool]:
    """Tool catalog for a server kind."""
    if kind == "memory":
        return _graph_tools()
    if kind == "filesystem":
        if not memory:
            return _filesystem_tools()
        return _filesystem_tools() + _bridge_tools()
    return _filesystem_tools() + _bridge_tools() + _graph_tools()


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def server_name(ctx: ServerContext) -> str:
    if ctx.kind == "filesystem" and ctx.memory_enabled:
        return SERVER_NAMES["filesystem+memory"]
    return SERVER_NAMES[ctx.kind]


def create_mcp_server(ctx: ServerContext) -> Server:
    """Create and configure the MCP server for ``ctx.kind``."""
    server = Server(server_name(ctx))
    _register_tools(server, build_tools(ctx.kind, ctx.memory_enabled))
    _register_handlers(server, ctx)
    return server


def _register_tools(server: Server, tools: list[Tool]) -> None:
    """Register tool listing handler."""

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return tools


def _register_handlers(server: Server, ctx: ServerContext) -> None:
    """Register the tool call handler."""

    @server.call_tool()
    async def handle_call(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        result = call_tool(ctx, name, arguments)
        if result.is_error:
            raise ToolCallError(result.text)
        return _text_response(result.text)


def _text_response(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def run_stdio(server: Server) -> None:
    """Run ``server`` over stdio until the client disconnects."""

    async def run() -> None:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


def main_stdio() -> None:
    """Run the combined server over stdio; arguments are allowed directories."""
    from .cli import main

    main(["serve", "combined", *sys.argv[1:]])


if __name__ == "__main__":
    main_stdio()
