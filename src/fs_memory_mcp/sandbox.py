"""Path sandbox: the trust boundary for every filesystem operation.

A candidate path is resolved (``..``, ``.`` and symlinks collapsed) before it
is compared component-wise against the allowed roots, so ``/a/../etc`` and
``/ab`` are never mistaken for children of ``/a``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable

from .dirconfig import DirectoryConfig, merge_directories, resolve_directory
from .errors import (
    AccessDeniedError,
    AlreadyAllowedError,
    InvalidArgumentError,
    InvalidDirectoryError,
    LastDirectoryError,
    PathNotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


class PathSandbox:
    """Ordered, de-duplicated set of allowed root directories.

    The set is never empty: construction requires at least one directory and
    removing the last one is refused.
    """

    def __init__(
        self,
        directories: Iterable[str | Path],
        config: DirectoryConfig | None = None,
    ):
        self.config = config
        stored = config.load() if config is not None else []
        self._directories = merge_directories(directories, stored)
        if not self._directories:
            raise InvalidArgumentError("At least one allowed directory must be specified")
        self._lock = threading.Lock()

    @property
    def directories(self) -> list[str]:
        return list(self._directories)

    def __len__(self) -> int:
        return len(self._directories)

    # -- validation --------------------------------------------------------

    @staticmethod
    def resolve(candidate: str | Path) -> Path:
        return Path(candidate).expanduser().resolve()

    def is_allowed(self, path: str | Path) -> bool:
        resolved = self.resolve(path)
        for root in self._directories:
            root_path = Path(root)
            if resolved == root_path or root_path in resolved.parents:
                return True
        return False

    def validate(self, candidate: str | Path) -> Path:
        """Return the resolved absolute path or raise ``AccessDeniedError``."""
        if self.is_allowed(candidate):
            return self.resolve(candidate)
        raise AccessDeniedError(str(candidate))

    # -- mutation ----------------------------------------------------------

    def add_directory(self, path: str | Path) -> Path:
        resolved = self.resolve(path)
        if not resolved.is_dir():
            raise InvalidDirectoryError(str(path))
        key = str(resolved)
        with self._lock:
            if key in self._directories:
                raise AlreadyAllowedError(str(path))
            self._directories.append(key)
            try:
                self._persist()
            except PersistenceError:
                self._directories.remove(key)
                raise
        logger.info("Allowed directory added: %s", key)
        return resolved

    def remove_directory(self, path: str | Path) -> Path:
        key = resolve_directory(path)
        with self._lock:
            if key not in self._directories:
                raise PathNotFoundError(
                    f"Directory {path} was not found in the allowed directories list"
                )
            index = self._directories.index(key)
            del self._directories[index]
            if not self._directories:
                self._directories.insert(index, key)
                raise LastDirectoryError()
            try:
                self._persist()
            except PersistenceError:
                self._directories.insert(index, key)
                raise
        logger.info("Allowed directory removed: %s", key)
        return Path(key)

    def _persist(self) -> None:
        if self.config is not None:
            self.config.save(self._directories)
