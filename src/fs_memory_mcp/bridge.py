"""Filesystem-to-graph bridge: records filesystem activity as graph entities.

The filesystem layer reports each successful operation to a ``Notifier``.
Notifiers never raise: recording activity is best-effort and must not fail
the operation that triggered it. ``GraphBridge`` is the notifier that writes
``file:<path>`` / ``directory:<path>`` shadow entities into a ``GraphStore``;
``NullNotifier`` is used when memory is disabled.

Shadow entities are an activity log, not a mirror of the disk; they go stale.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar

from .config import (
    DIRECTORY_ENTITY_TYPE,
    DIRECTORY_PREFIX,
    FILE_ENTITY_TYPE,
    FILE_PREFIX,
    HISTORY_RECENT_OBSERVATIONS,
    PREVIEW_CHARS,
    PREVIEW_ELLIPSIS,
    REL_ACCESSED_AFTER,
    REL_CONTAINS,
    REL_SIBLING_DIRECTORY,
    SIMILAR_FILES_LIMIT,
)
from .graph import GraphStore
from .search import format_timestamp, previous_access, recently_accessed_files, utc_now

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., None])

# ---------------------------------------------------------------------------
# Notifier interface
# ---------------------------------------------------------------------------


class Notifier(Protocol):
    """Receives a description of every successful filesystem effect.

    Implementations must not raise.
    """

    def file_accessed(self, path: Path, operation: str, **metadata: Any) -> None: ...

    def directory_accessed(self, path: Path, operation: str, **metadata: Any) -> None: ...

    def directories_registered(self, paths: list[str]) -> None: ...

    def directory_added(self, path: Path) -> None: ...

    def directory_removed(self, path: Path) -> None: ...


class NullNotifier:
    """Notifier for servers running without memory."""

    def file_accessed(self, path: Path, operation: str, **metadata: Any) -> None:
        pass

    def directory_accessed(self, path: Path, operation: str, **metadata: Any) -> None:
        pass

    def directories_registered(self, paths: list[str]) -> None:
        pass

    def directory_added(self, path: Path) -> None:
        pass

    def directory_removed(self, path: Path) -> None:
        pass


def best_effort(method: F) -> F:
    """Log and swallow any exception raised by a notifier method."""

    @functools.wraps(method)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            method(*args, **kwargs)
        except Exception:
            logger.exception("Memory bridge failed in %s", method.__name__)

    return wrapper  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Observation helpers
# ---------------------------------------------------------------------------


def content_preview(content: str, limit: int = PREVIEW_CHARS) -> str:
    if len(content) > limit:
        return content[:limit] + PREVIEW_ELLIPSIS
    return content


def file_entity_name(path: str | Path) -> str:
    return f"{FILE_PREFIX}{path}"


def directory_entity_name(path: str | Path) -> str:
    return f"{DIRECTORY_PREFIX}{path}"


def _metadata_observations(operation: str, metadata: dict[str, Any]) -> list[str]:
    obs: list[str] = []
    if metadata.get("size") is not None:
        obs.append(f"Size: {metadata['size']} bytes")
    if metadata.get("is_directory") is not None:
        obs.append(f"Is directory: {str(bool(metadata['is_directory'])).lower()}")
    if metadata.get("modified"):
        obs.append(f"Last modified: {metadata['modified']}")
    if metadata.get("content") is not None and operation in ("read", "write"):
        obs.append(f"Content preview: {content_preview(metadata['content'])}")
    if metadata.get("edits") is not None:
        obs.append(f"Edits applied: {metadata['edits']}")
    if metadata.get("original_size") is not None:
        obs.append(f"Original size: {metadata['original_size']} bytes")
    if metadata.get("max_depth") is not None:
        obs.append(f"Max depth: {metadata['max_depth']}")
    if metadata.get("pattern"):
        obs.append(f"Pattern: {metadata['pattern']}")
    if metadata.get("results_found") is not None:
        obs.append(f"Results found: {metadata['results_found']}")
    if metadata.get("moved_to"):
        obs.append(f"Moved to: {metadata['moved_to']}")
    if metadata.get("moved_from"):
        obs.append(f"Moved from: {metadata['moved_from']}")
    return obs


# ---------------------------------------------------------------------------
# Graph bridge
# ---------------------------------------------------------------------------


class GraphBridge:
    """Notifier that mirrors filesystem activity into a knowledge graph."""

    def __init__(self, store: GraphStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    # -- notifications (best-effort) ---------------------------------------

    @best_effort
    def file_accessed(self, path: Path, operation: str, **metadata: Any) -> None:
        now = self.clock()
        parent = path.parent
        name = file_entity_name(path)
        parent_name = directory_entity_name(parent)
        observations = [
            f"Operation: {operation}",
            f"Accessed at: {format_timestamp(now)}",
            f"File name: {path.name}",
            f"Directory: {parent}",
            *_metadata_observations(operation, metadata),
        ]
        self.store.create_entities(
            [
                {"name": name, "entityType": FILE_ENTITY_TYPE, "observations": observations},
                {"name": parent_name, "entityType": DIRECTORY_ENTITY_TYPE},
            ]
        )
        relations = [{"from": parent_name, "to": name, "relationType": REL_CONTAINS}]
        previous = previous_access(self.store.entities.values(), name, now=now)
        if previous is not None:
            relations.append({"from": name, "to": previous, "relationType": REL_ACCESSED_AFTER})
        self.store.create_relations(relations)

    @best_effort
    def directory_accessed(self, path: Path, operation: str, **metadata: Any) -> None:
        parent = path.parent
        name = directory_entity_name(path)
        observations = [
            f"Operation: {operation}",
            f"Accessed at: {format_timestamp(self.clock())}",
            f"Directory name: {path.name}",
            f"Parent: {parent}",
            *_metadata_observations(operation, metadata),
        ]
        entities = [{"name": name, "entityType": DIRECTORY_ENTITY_TYPE, "observations": observations}]
        relations = []
        if parent != path:
            parent_name = directory_entity_name(parent)
            entities.append({"name": parent_name, "entityType": DIRECTORY_ENTITY_TYPE})
            relations.append({"from": parent_name, "to": name, "relationType": REL_CONTAINS})
        self.store.create_entities(entities)
        if relations:
            self.store.create_relations(relations)

    @best_effort
    def directories_registered(self, paths: list[str]) -> None:
        stamp = format_timestamp(self.clock())
        self.store.create_entities(
            [
                {
                    "name": directory_entity_name(d),
                    "entityType": DIRECTORY_ENTITY_TYPE,
                    "observations": [
                        f"Allowed directory: {d}",
                        f"Resolved path: {Path(d).resolve()}",
                        f"Added at: {stamp}",
                    ],
                }
                for d in paths
            ]
        )
        siblings = [
            {
                "from": directory_entity_name(a),
                "to": directory_entity_name(b),
                "relationType": REL_SIBLING_DIRECTORY,
            }
            for a, b in zip(paths, paths[1:])
        ]
        if siblings:
            self.store.create_relations(siblings)

    @best_effort
    def directory_added(self, path: Path) -> None:
        self.store.create_entities(
            [
                {
                    "name": directory_entity_name(path),
                    "entityType": DIRECTORY_ENTITY_TYPE,
                    "observations": [
                        f"Allowed directory: {path}",
                        f"Resolved path: {path.resolve()}",
                        f"Added dynamically at: {format_timestamp(self.clock())}",
                    ],
                }
            ]
        )

    @best_effort
    def directory_removed(self, path: Path) -> None:
        name = directory_entity_name(path)
        if self.store.get(name) is None:
            return
        self.store.add_observations(
            name, [f"Directory access removed at: {format_timestamp(self.clock())}"]
        )

    # -- queries -----------------------------------------------------------

    def recall_file_history(self, file_path: str) -> dict[str, Any] | None:
        """Observations and relations recorded for one file, or None."""
        candidates = [file_entity_name(Path(file_path).expanduser().resolve())]
        if candidates[0] != file_entity_name(file_path):
            candidates.append(file_entity_name(file_path))
        for name in candidates:
            entity = self.store.get(name)
            if entity is not None:
                return {
                    "file": file_path,
                    "entityType": entity.entity_type,
                    "accessHistory": list(entity.observations),
                    "relationships": [r.to_dict() for r in entity.relations],
                }
        return None

    def find_similar_files(self, query: str, limit: int = SIMILAR_FILES_LIMIT) -> dict[str, Any]:
        matches = [r for r in self.store.search_nodes(query) if r.entity_type == FILE_ENTITY_TYPE]
        return {
            "query": query,
            "results": [
                {
                    "filePath": r.name[len(FILE_PREFIX) :],
                    "relevance": r.score,
                    "recentObservations": r.entity.observations[-HISTORY_RECENT_OBSERVATIONS:],
                }
                for r in matches[:limit]
            ],
        }

    def stats(self, allowed_directories: list[str]) -> dict[str, Any]:
        entities = list(self.store.entities.values())
        files = [e for e in entities if e.entity_type == FILE_ENTITY_TYPE]
        dirs = [e for e in entities if e.entity_type == DIRECTORY_ENTITY_TYPE]
        return {
            "memoryEnabled": True,
            "memoryFilePath": str(self.store.path),
            "allowedDirectories": allowed_directories,
            "totalFilesTracked": len(files),
            "totalDirectoriesTracked": len(dirs),
            "totalMemoryEntities": len(entities),
            "recentlyAccessedFiles": len(recently_accessed_files(files, now=self.clock())),
        }
