"""Allowed-directory sidecar: persists the sandbox roots between runs.

File format::

    {"allowedDirectories": ["/abs/a", "/abs/b"], "lastUpdated": "2026-01-01T00:00:00.000Z"}

The sidecar only ever extends the directories given at startup.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable

from .config import CONFIG_FILE_ENV
from .errors import PersistenceError
from .search import format_timestamp

logger = logging.getLogger(__name__)


def find_config_file(explicit: str | None, default: str) -> Path:
    """Locate the sidecar: ``--config-file``, then ``FS_MEMORY_CONFIG_FILE``, then default."""
    if explicit:
        return Path(explicit).expanduser().resolve()
    env = os.environ.get(CONFIG_FILE_ENV)
    if env:
        return Path(env).expanduser().resolve()
    return Path(default).resolve()


def resolve_directory(path: str | Path) -> str:
    return str(Path(path).expanduser().resolve())


def merge_directories(*groups: Iterable[str | Path]) -> list[str]:
    """Resolve every path and concatenate the groups, dropping duplicates."""
    merged: list[str] = []
    for group in groups:
        for raw in group:
            resolved = resolve_directory(raw)
            if resolved not in merged:
                merged.append(resolved)
    return merged


class DirectoryConfig:
    """Reads and writes the allowed-directory sidecar file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> list[str]:
        """Return the stored directories; a missing or broken file yields ``[]``."""
        if not self.path.exists():
            logger.info("No directory configuration at %s, using provided directories only", self.path)
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable directory configuration %s: %s", self.path, e)
            return []
        dirs = data.get("allowedDirectories") if isinstance(data, dict) else None
        if not isinstance(dirs, list):
            logger.warning("Ignoring directory configuration %s: no allowedDirectories list", self.path)
            return []
        dirs = [d for d in dirs if isinstance(d, str) and d]
        logger.info("Loaded %d directories from configuration file %s", len(dirs), self.path)
        return dirs

    def save(self, directories: list[str]) -> None:
        data = {"allowedDirectories": list(directories), "lastUpdated": format_timestamp()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            logger.error("Failed to save directory configuration %s: %s", self.path, e)
            raise PersistenceError("Failed to save directory configuration") from e
        logger.info("Saved %d directories to configuration file %s", len(directories), self.path)
