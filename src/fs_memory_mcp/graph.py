"""Knowledge graph store: entities, relations, observations, JSON persistence.

The graph is held in memory and written through to a single JSON file after
every mutating operation::

    {"entities": {"<name>": {"name", "entityType", "observations", "relations"}}}

Usage:
    from fs_memory_mcp.graph import GraphStore
    with GraphStore.open("memory.json") as store:
        store.create_entities([{"name": "Alice", "entityType": "person"}])
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .config import MEMORY_FILE_ENV, UNKNOWN_ENTITY_TYPE
from .errors import (
    EntityNotFoundError,
    FsMemoryError,
    GraphCorruptError,
    InvalidArgumentError,
    PersistenceError,
)
from .search import SearchResult, search_entities

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Relation:
    """Directed, typed edge. Stored on the source entity only."""

    source: str
    target: str
    relation_type: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.source, "to": self.target, "relationType": self.relation_type}

    @classmethod
    def from_dict(cls, data: Any) -> Relation:
        if isinstance(data, Relation):
            return data
        if not isinstance(data, dict):
            raise InvalidArgumentError(f"Relation must be an object, got {type(data).__name__}")
        missing = [k for k in ("from", "to", "relationType") if not data.get(k)]
        if missing:
            raise InvalidArgumentError(f"Relation is missing required fields: {', '.join(missing)}")
        return cls(str(data["from"]), str(data["to"]), str(data["relationType"]))

    def describe(self) -> str:
        return f"{self.source} -> {self.target} ({self.relation_type})"


@dataclass
class Entity:
    """Named, typed node with an ordered set of observations."""

    name: str
    entity_type: str
    observations: list[str] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "entityType": self.entity_type,
            "observations": list(self.observations),
            "relations": [r.to_dict() for r in self.relations],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Entity:
        if isinstance(data, Entity):
            return data
        if not isinstance(data, dict):
            raise InvalidArgumentError(f"Entity must be an object, got {type(data).__name__}")
        missing = [k for k in ("name", "entityType") if not data.get(k)]
        if missing:
            raise InvalidArgumentError(f"Entity is missing required fields: {', '.join(missing)}")
        entity = cls(name=str(data["name"]), entity_type=str(data["entityType"]))
        entity.merge_observations(data.get("observations") or [])
        for raw in data.get("relations") or []:
            rel = Relation.from_dict(raw)
            if not entity.has_relation(rel):
                entity.relations.append(rel)
        return entity

    def merge_observations(self, observations: Iterable[str]) -> int:
        """Append observations not already present. Returns the number added."""
        seen = set(self.observations)
        added = 0
        for obs in observations:
            obs = str(obs)
            if obs in seen:
                continue
            self.observations.append(obs)
            seen.add(obs)
            added += 1
        return added

    def has_relation(self, relation: Relation) -> bool:
        return relation in self.relations


# ---------------------------------------------------------------------------
# File resolution and persistence
# ---------------------------------------------------------------------------


def find_memory_file(explicit: str | None, default: str) -> Path:
    """Locate the graph file.

    Resolution order:
      1. Explicit ``--memory-file`` argument
      2. ``MEMORY_FILE_PATH`` environment variable
      3. The server's default file name, relative to CWD
    """
    if explicit:
        return Path(explicit).expanduser().resolve()
    env = os.environ.get(MEMORY_FILE_ENV)
    if env:
        return Path(env).expanduser().resolve()
    return Path(default).resolve()


def load_graph(path: Path) -> dict[str, Entity]:
    """Read the graph file.

    A missing file is an empty graph. An unreadable or malformed file raises
    ``GraphCorruptError``; whether to start empty is the caller's decision.
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise GraphCorruptError(str(path), str(e)) from e

    raw_entities = data.get("entities") if isinstance(data, dict) else None
    if not isinstance(raw_entities, dict):
        raise GraphCorruptError(str(path), "missing 'entities' object")

    entities: dict[str, Entity] = {}
    for key, raw in raw_entities.items():
        try:
            entity = Entity.from_dict(raw)
        except InvalidArgumentError as e:
            raise GraphCorruptError(str(path), f"entity {key!r}: {e}") from e
        entities[entity.name] = entity
    return entities


def save_graph(path: Path, entities: dict[str, Entity]) -> None:
    """Write the whole graph with an atomic temp-file rename."""
    data = {"entities": {name: e.to_dict() for name, e in entities.items()}}
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(path)
    except OSError as e:
        logger.error("Failed to save memory graph to %s: %s", path, e)
        if temp_path.exists():
            temp_path.unlink()
        raise PersistenceError(f"Failed to save memory graph: {e}") from e


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class GraphStore:
    """In-memory knowledge graph mirrored to a JSON file.

    Constructing a store does not touch the disk; the graph is loaded on the
    first operation (or explicitly via :meth:`load` / :meth:`open`). Every
    mutating operation saves the full graph before returning.
    """

    def __init__(self, path: str | Path, *, recover_corrupt: bool = True):
        self.path = Path(path)
        self.recover_corrupt = recover_corrupt
        self._entities: dict[str, Entity] | None = None
        self._closed = False
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: str | Path, *, recover_corrupt: bool = True) -> GraphStore:
        store = cls(path, recover_corrupt=recover_corrupt)
        store.load()
        return store

    def __enter__(self) -> GraphStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- lifecycle ---------------------------------------------------------

    def load(self) -> None:
        with self._lock:
            try:
                entities = load_graph(self.path)
                logger.info("Loaded memory graph from %s (%d entities)", self.path, len(entities))
            except GraphCorruptError as e:
                if not self.recover_corrupt:
                    raise
                logger.warning("%s; starting with an empty graph", e)
                entities = {}
            self._entities = entities
            self._closed = False

    def close(self) -> None:
        with self._lock:
            self._entities = None
            self._closed = True

    @property
    def loaded(self) -> bool:
        return self._entities is not None

    @property
    def entities(self) -> dict[str, Entity]:
        with self._lock:
            if self._closed:
                raise FsMemoryError(f"Graph store {self.path} is closed")
            if self._entities is None:
                self.load()
            assert self._entities is not None
            return self._entities

    def save(self) -> None:
        with self._lock:
            save_graph(self.path, self.entities)

    def get(self, name: str) -> Entity | None:
        return self.entities.get(name)

    def __len__(self) -> int:
        return len(self.entities)

    # -- mutations ---------------------------------------------------------

    def create_entities(self, items: Iterable[Any]) -> list[tuple[str, str]]:
        """Insert new entities or merge observations into existing ones.

        Returns ``(name, "created" | "updated")`` per input item.
        """
        parsed = [Entity.from_dict(item) for item in items]
        results: list[tuple[str, str]] = []
        with self._lock:
            graph = self.entities
            for entity in parsed:
                existing = graph.get(entity.name)
                if existing is not None:
                    existing.merge_observations(entity.observations)
                    results.append((entity.name, "updated"))
                else:
                    graph[entity.name] = Entity(
                        name=entity.name,
                        entity_type=entity.entity_type,
                        observations=list(entity.observations),
                    )
                    results.append((entity.name, "created"))
            self.save()
        return results

    def create_relations(self, items: Iterable[Any]) -> list[tuple[Relation, bool]]:
        """Attach relations to their source entities.

        Endpoints that do not exist yet are created as stub entities of type
        ``unknown``. An existing (from, to, relationType) triple is left as is.
        Returns ``(relation, created)`` per input item.
        """
        parsed = [Relation.from_dict(item) for item in items]
        results: list[tuple[Relation, bool]] = []
        with self._lock:
            graph = self.entities
            for rel in parsed:
                for endpoint in (rel.source, rel.target):
                    if endpoint not in graph:
                        graph[endpoint] = Entity(name=endpoint, entity_type=UNKNOWN_ENTITY_TYPE)
                source = graph[rel.source]
                if source.has_relation(rel):
                    results.append((rel, False))
                else:
                    source.relations.append(rel)
                    results.append((rel, True))
            self.save()
        return results

    def add_observations(self, entity_name: str, observations: Iterable[str]) -> int:
        with self._lock:
            entity = self.entities.get(entity_name)
            if entity is None:
                raise EntityNotFoundError(entity_name)
            added = entity.merge_observations(observations)
            self.save()
        return added

    def delete_entities(self, names: Iterable[str]) -> list[tuple[str, bool]]:
        """Remove entities and every relation pointing at them."""
        results: list[tuple[str, bool]] = []
        with self._lock:
            graph = self.entities
            removed: set[str] = set()
            for name in names:
                if name in graph:
                    del graph[name]
                    removed.add(name)
                    results.append((name, True))
                else:
                    results.append((name, False))
            if removed:
                for entity in graph.values():
                    entity.relations = [r for r in entity.relations if r.target not in removed]
            self.save()
        return results

    def delete_observations(self, entity_name: str, observations: Iterable[str]) -> int:
        with self._lock:
            entity = self.entities.get(entity_name)
            if entity is None:
                raise EntityNotFoundError(entity_name)
            drop = set(observations)
            before = len(entity.observations)
            entity.observations = [o for o in entity.observations if o not in drop]
            self.save()
        return before - len(entity.observations)

    def delete_relations(self, items: Iterable[Any]) -> list[tuple[Relation, bool]]:
        parsed = [Relation.from_dict(item) for item in items]
        results: list[tuple[Relation, bool]] = []
        with self._lock:
            graph = self.entities
            for rel in parsed:
                source = graph.get(rel.source)
                if source is None or not source.has_relation(rel):
                    results.append((rel, False))
                    continue
                source.relations = [r for r in source.relations if r != rel]
                results.append((rel, True))
            self.save()
        return results

    # -- queries -----------------------------------------------------------

    def search_nodes(self, query: str) -> list[SearchResult]:
        return search_entities(self.entities.values(), query)

    def read_graph(self) -> dict[str, Any]:
        return {"entities": {name: e.to_dict() for name, e in self.entities.items()}}

    def open_nodes(self, names: Iterable[str]) -> list[Entity]:
        graph = self.entities
        return [graph[name] for name in names if name in graph]
