"""Constants and configuration for the filesystem memory tool servers."""

from __future__ import annotations

from datetime import timedelta

# ---------------------------------------------------------------------------
# Entity and relation vocabulary
# ---------------------------------------------------------------------------

FILE_ENTITY_TYPE = "filesystem_file"
DIRECTORY_ENTITY_TYPE = "filesystem_directory"
UNKNOWN_ENTITY_TYPE = "unknown"

FILE_PREFIX = "file:"
DIRECTORY_PREFIX = "directory:"

REL_CONTAINS = "contains"
REL_SIBLING_DIRECTORY = "sibling_directory"
REL_ACCESSED_AFTER = "accessed_after"

# Observation prefix the temporal heuristic scans for.
ACCESSED_AT_PREFIX = "Accessed at: "

# ---------------------------------------------------------------------------
# Search scoring: name > type > observation > relation
# ---------------------------------------------------------------------------

SCORE_WEIGHTS: dict[str, int] = {
    "name": 10,
    "entity_type": 5,
    "observation": 3,
    "relation": 2,
}

# Observation and relation matches together never reach a name match.
MENTION_SCORE_CAP = SCORE_WEIGHTS["name"] - 1

# ---------------------------------------------------------------------------
# Filesystem / bridge defaults
# ---------------------------------------------------------------------------

PREVIEW_CHARS = 200
PREVIEW_ELLIPSIS = "..."
RECENT_WINDOW = timedelta(hours=24)

TREE_MAX_DEPTH = 3
SEARCH_MAX_DEPTH = 10
SEARCH_MAX_RESULTS = 100
SIMILAR_FILES_LIMIT = 10
HISTORY_RECENT_OBSERVATIONS = 3

# ---------------------------------------------------------------------------
# Server kinds and file defaults
# ---------------------------------------------------------------------------

SERVER_KINDS: list[str] = ["memory", "filesystem", "combined"]

MEMORY_FILE_ENV = "MEMORY_FILE_PATH"
CONFIG_FILE_ENV = "FS_MEMORY_CONFIG_FILE"

DEFAULT_MEMORY_FILES: dict[str, str] = {
    "memory": "memory.json",
    "filesystem": "filesystem-memory.json",
    "combined": "comprehensive-memory.json",
}

DEFAULT_CONFIG_FILES: dict[str, str] = {
    "filesystem": "filesystem-config.json",
    "filesystem+memory": "filesystem-memory-config.json",
    "combined": "comprehensive-filesystem-config.json",
}

SERVER_NAMES: dict[str, str] = {
    "memory": "memory-server",
    "filesystem": "filesystem-server",
    "filesystem+memory": "filesystem-server-with-memory",
    "combined": "comprehensive-filesystem-memory-server",
}
