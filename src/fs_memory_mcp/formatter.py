"""Output formatting: JSON payloads, per-item outcome lines, CLI views."""

from __future__ import annotations

import json
from typing import Any

from .filesystem import EditResult
from .graph import Entity, Relation
from .search import SearchResult


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_brief(result: SearchResult) -> str:
    """Single line per hit: [name] (type) score=N obs=K"""
    e = result.entity
    return f"[{e.name}] ({e.entity_type}) score={result.score} obs={len(e.observations)}"


def format_entity(entity: Entity) -> str:
    """Full multi-line view of one entity."""
    lines = [f"# {entity.name}", f"type: {entity.entity_type}"]
    if entity.observations:
        lines.append("observations:")
        lines.extend(f"  - {obs}" for obs in entity.observations)
    if entity.relations:
        lines.append("relations:")
        lines.extend(f"  - {rel.describe()}" for rel in entity.relations)
    return "\n".join(lines)


def format_entity_outcomes(outcomes: list[tuple[str, str]]) -> str:
    labels = {"created": "Created entity", "updated": "Updated entity"}
    return "\n".join(f"{labels[status]}: {name}" for name, status in outcomes)


def format_relation_outcomes(
    outcomes: list[tuple[Relation, bool]], done: str, not_done: str
) -> str:
    return "\n".join(
        f"{done if ok else not_done}: {rel.describe()}" for rel, ok in outcomes
    )


def format_delete_outcomes(outcomes: list[tuple[str, bool]]) -> str:
    return "\n".join(
        f"{'Deleted entity' if ok else 'Entity not found'}: {name}" for name, ok in outcomes
    )


def format_edit_result(result: EditResult, display_path: str) -> str:
    if result.dry_run:
        return (
            "Dry run preview:\n\n"
            f"Original content length: {result.original_length}\n"
            f"Modified content length: {result.modified_length}\n\n"
            f"Changes would be applied to: {display_path}"
        )
    return f"Successfully edited {display_path} ({result.edits_applied} edits applied)"


def format_stats(stats: dict[str, Any]) -> str:
    """Human-readable summary of ``GraphBridge.stats``."""
    lines = [
        f"Memory file:          {stats.get('memoryFilePath', '?')}",
        f"Entities:             {stats.get('totalMemoryEntities', 0)}",
        f"Files tracked:        {stats.get('totalFilesTracked', 0)}",
        f"Directories tracked:  {stats.get('totalDirectoriesTracked', 0)}",
        f"Accessed in last 24h: {stats.get('recentlyAccessedFiles', 0)}",
    ]
    dirs = stats.get("allowedDirectories") or []
    if dirs:
        lines.append("Allowed directories:")
        lines.extend(f"  {d}" for d in dirs)
    return "\n".join(lines)
