"""Graph search: substring relevance scoring and the recent-access heuristic.

Both are linear scans over the whole graph; no index is kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable

from .config import (
    ACCESSED_AT_PREFIX,
    FILE_ENTITY_TYPE,
    MENTION_SCORE_CAP,
    RECENT_WINDOW,
    SCORE_WEIGHTS,
)

if TYPE_CHECKING:
    from datetime import timedelta

    from .graph import Entity

# ---------------------------------------------------------------------------
# Relevance scoring
# ---------------------------------------------------------------------------


@dataclass
class SearchResult:
    """An entity with its relevance score for one query."""

    entity: Entity
    score: int

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def entity_type(self) -> str:
        return self.entity.entity_type

    def to_dict(self) -> dict[str, Any]:
        d = self.entity.to_dict()
        d["score"] = self.score
        return d


def score_entity(entity: Entity, query: str) -> int:
    """Case-insensitive substring score.

    Every matching observation and relation adds its weight, so an entity
    mentioned repeatedly outranks one mentioned once. Their sum is capped at
    ``MENTION_SCORE_CAP`` so a name match always outscores mentions alone.
    """
    q = query.lower()
    score = 0
    if q in entity.name.lower():
        score += SCORE_WEIGHTS["name"]
    if q in entity.entity_type.lower():
        score += SCORE_WEIGHTS["entity_type"]
    mentions = 0
    for obs in entity.observations:
        if q in obs.lower():
            mentions += SCORE_WEIGHTS["observation"]
    for rel in entity.relations:
        if q in rel.relation_type.lower() or q in rel.target.lower():
            mentions += SCORE_WEIGHTS["relation"]
    return score + min(mentions, MENTION_SCORE_CAP)


def search_entities(entities: Iterable[Entity], query: str) -> list[SearchResult]:
    """Score every entity and return the non-zero ones, best first.

    ``sorted`` is stable, so equal scores keep graph insertion order.
    """
    results = []
    for entity in entities:
        score = score_entity(entity, query)
        if score > 0:
            results.append(SearchResult(entity=entity, score=score))
    return sorted(results, key=lambda r: r.score, reverse=True)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    moment = moment or utc_now()
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime | None:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


# ---------------------------------------------------------------------------
# Recent-access heuristic
# ---------------------------------------------------------------------------


def last_access(entity: Entity) -> datetime | None:
    """Latest ``Accessed at:`` timestamp among the entity's observations."""
    latest: datetime | None = None
    for obs in entity.observations:
        if not obs.startswith(ACCESSED_AT_PREFIX):
            continue
        moment = parse_timestamp(obs[len(ACCESSED_AT_PREFIX) :])
        if moment is not None and (latest is None or moment > latest):
            latest = moment
    return latest


def recently_accessed_files(
    entities: Iterable[Entity],
    now: datetime | None = None,
    window: timedelta = RECENT_WINDOW,
) -> list[tuple[Entity, datetime]]:
    """File entities accessed within ``window`` of ``now``, in graph order."""
    cutoff = (now or utc_now()) - window
    recent = []
    for entity in entities:
        if entity.entity_type != FILE_ENTITY_TYPE:
            continue
        moment = last_access(entity)
        if moment is not None and moment > cutoff:
            recent.append((entity, moment))
    return recent


def previous_access(
    entities: Iterable[Entity],
    current: str,
    now: datetime | None = None,
    window: timedelta = RECENT_WINDOW,
) -> str | None:
    """Name of the file touched most recently before ``current``.

    Returns None unless at least two files (``current`` included) fall in the
    window. Equal timestamps resolve to the later entity in graph order.
    """
    recent = recently_accessed_files(entities, now=now, window=window)
    if len(recent) < 2:
        return None
    others = [(e, t) for e, t in recent if e.name != current]
    if not others:
        return None
    others.sort(key=lambda pair: pair[1])
    return others[-1][0].name
