"""Filesystem operations routed through the path sandbox.

Each operation validates its path(s) first, performs the effect, maps OS
errors onto the package's exceptions, and only then reports the effect to
the notifier. A denied or failed call therefore leaves no trace in memory.

Usage:
    from fs_memory_mcp.filesystem import FilesystemOps
    ops = FilesystemOps(PathSandbox(["/tmp/a"]))
    ops.write_file("/tmp/a/x.txt", "hello")
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .bridge import Notifier, NullNotifier
from .config import SEARCH_MAX_DEPTH, SEARCH_MAX_RESULTS, TREE_MAX_DEPTH
from .errors import (
    FilesystemError,
    FsMemoryError,
    InvalidArgumentError,
    PathNotFoundError,
    TextNotFoundError,
)
from .sandbox import PathSandbox

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class EditResult:
    """Outcome of ``edit_file``; nothing is written when ``dry_run`` is set."""

    path: str
    original_length: int
    modified_length: int
    edits_applied: int
    dry_run: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "originalLength": self.original_length,
            "modifiedLength": self.modified_length,
            "editsApplied": self.edits_applied,
            "dryRun": self.dry_run,
        }


@dataclass
class SearchFilesResult:
    """Glob matches, truncated to ``max_results``; ``total_found`` is untruncated."""

    pattern: str
    matches: list[str]
    total_found: int

    @property
    def truncated(self) -> bool:
        return self.total_found > len(self.matches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "matches": self.matches,
            "totalFound": self.total_found,
            "showing": len(self.matches),
        }


def _os_error(action: str, path: str | Path, e: OSError) -> FilesystemError:
    if isinstance(e, FileNotFoundError):
        return PathNotFoundError(f"Failed to {action}: {path} does not exist")
    reason = e.strerror or str(e)
    return FilesystemError(f"Failed to {action}: {path}: {reason}")


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def apply_edits(content: str, edits: Iterable[dict[str, Any]]) -> tuple[str, int]:
    """Apply literal replacements in order, each to the first occurrence.

    Every ``oldText`` must be present in the content as modified so far.
    """
    count = 0
    for edit in edits:
        if not isinstance(edit, dict) or "oldText" not in edit or "newText" not in edit:
            raise InvalidArgumentError("Each edit needs 'oldText' and 'newText'")
        old, new = str(edit["oldText"]), str(edit["newText"])
        if old not in content:
            raise TextNotFoundError(old)
        content = content.replace(old, new, 1)
        count += 1
    return content, count


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class FilesystemOps:
    """Sandboxed file operations that report to a notifier on success."""

    def __init__(self, sandbox: PathSandbox, notifier: Notifier | None = None):
        self.sandbox = sandbox
        self.notifier: Notifier = notifier or NullNotifier()

    # -- reading -----------------------------------------------------------

    def read_file(self, path: str) -> str:
        target = self.sandbox.validate(path)
        try:
            content = target.read_text(encoding="utf-8")
        except OSError as e:
            raise _os_error("read file", path, e) from e
        except UnicodeDecodeError as e:
            raise FilesystemError(f"Failed to read file: {path} is not valid UTF-8 text") from e
        self.notifier.file_accessed(target, "read", size=len(content), content=content)
        return content

    def read_multiple_files(self, paths: Iterable[str]) -> dict[str, str]:
        """Read each path independently; a failure becomes that path's value."""
        results: dict[str, str] = {}
        for path in paths:
            try:
                results[path] = self.read_file(path)
            except FsMemoryError as e:
                logger.debug("read_multiple_files: %s failed: %s", path, e)
                results[path] = f"Error: {e}"
        return results

    # -- writing -----------------------------------------------------------

    def write_file(self, path: str, content: str) -> Path:
        target = self.sandbox.validate(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise _os_error("write file", path, e) from e
        self.notifier.file_accessed(target, "write", size=len(content), content=content)
        return target

    def edit_file(self, path: str, edits: list[dict[str, Any]], dry_run: bool = False) -> EditResult:
        target = self.sandbox.validate(path)
        try:
            original = target.read_text(encoding="utf-8")
        except OSError as e:
            raise _os_error("edit file", path, e) from e
        except UnicodeDecodeError as e:
            raise FilesystemError(f"Failed to edit file: {path} is not valid UTF-8 text") from e
        modified, count = apply_edits(original, edits)
        result = EditResult(
            path=str(target),
            original_length=len(original),
            modified_length=len(modified),
            edits_applied=count,
            dry_run=dry_run,
        )
        if dry_run:
            return result
        try:
            target.write_text(modified, encoding="utf-8")
        except OSError as e:
            raise _os_error("edit file", path, e) from e
        self.notifier.file_accessed(
            target, "edit", size=len(modified), edits=count, original_size=len(original)
        )
        return result

    def create_directory(self, path: str) -> Path:
        target = self.sandbox.validate(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _os_error("create directory", path, e) from e
        self.notifier.directory_accessed(target, "create_directory", is_directory=True)
        return target

    def move_file(self, source: str, destination: str) -> tuple[Path, Path]:
        src = self.sandbox.validate(source)
        dst = self.sandbox.validate(destination)
        if not src.exists():
            raise PathNotFoundError(f"Failed to move file: {source} does not exist")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            src.rename(dst)
        except OSError as e:
            raise _os_error("move file", source, e) from e
        if dst.is_dir():
            self.notifier.directory_accessed(src, "move_from", is_directory=True, moved_to=str(dst))
            self.notifier.directory_accessed(dst, "move_to", is_directory=True, moved_from=str(src))
        else:
            self.notifier.file_accessed(src, "move_from", moved_to=str(dst))
            self.notifier.file_accessed(dst, "move_to", moved_from=str(src))
        return src, dst

    # -- listing -----------------------------------------------------------

    def list_directory(self, path: str) -> list[str]:
        target = self.sandbox.validate(path)
        try:
            entries = sorted(os.listdir(target))
        except OSError as e:
            raise _os_error("list directory", path, e) from e
        self.notifier.directory_accessed(target, "list_directory", is_directory=True)
        return entries

    def list_directory_with_sizes(self, path: str) -> list[dict[str, Any]]:
        target = self.sandbox.validate(path)
        try:
            names = sorted(os.listdir(target))
        except OSError as e:
            raise _os_error("list directory with sizes", path, e) from e
        entries = []
        for name in names:
            entry = target / name
            try:
                st = entry.stat()
            except OSError as e:
                entries.append({"name": name, "error": e.strerror or str(e)})
                continue
            entries.append(
                {
                    "name": name,
                    "size": st.st_size,
                    "isDirectory": entry.is_dir(),
                    "isFile": entry.is_file(),
                }
            )
        self.notifier.directory_accessed(target, "list_directory_with_sizes", is_directory=True)
        return entries

    def directory_tree(self, path: str, max_depth: int = TREE_MAX_DEPTH) -> Any:
        """Nested dict of the tree below ``path``.

        Files map to their basename; entries at ``max_depth`` map to None; an
        unreadable subtree maps to an ``"Error: ..."`` string.
        """
        target = self.sandbox.validate(path)
        if not target.exists():
            raise PathNotFoundError(f"Failed to build directory tree: {path} does not exist")

        def build(current: Path, depth: int) -> Any:
            if depth >= max_depth:
                return None
            try:
                if not current.is_dir():
                    return current.name
                return {name: build(current / name, depth + 1) for name in sorted(os.listdir(current))}
            except OSError as e:
                return f"Error: {e.strerror or e}"

        tree = build(target, 0)
        self.notifier.directory_accessed(target, "directory_tree", is_directory=True, max_depth=max_depth)
        return tree

    def search_files(
        self, path: str, pattern: str, max_results: int = SEARCH_MAX_RESULTS
    ) -> SearchFilesResult:
        root = self.sandbox.validate(path)
        if not root.is_dir():
            raise PathNotFoundError(f"Failed to search files: {path} is not a directory")
        try:
            found = sorted(
                str(m)
                for m in root.glob(f"**/{pattern}")
                if len(m.relative_to(root).parts) <= SEARCH_MAX_DEPTH and self.sandbox.is_allowed(m)
            )
        except (ValueError, NotImplementedError) as e:
            raise InvalidArgumentError(f"Invalid search pattern {pattern!r}: {e}") from e
        except OSError as e:
            raise _os_error("search files", path, e) from e
        result = SearchFilesResult(pattern=pattern, matches=found[:max_results], total_found=len(found))
        self.notifier.directory_accessed(
            root, "search_files", pattern=pattern, results_found=result.total_found
        )
        return result

    def get_file_info(self, path: str) -> dict[str, Any]:
        target = self.sandbox.validate(path)
        try:
            st = target.stat()
            is_link = Path(os.path.abspath(os.path.expanduser(path))).is_symlink()
        except OSError as e:
            raise _os_error("get file info", path, e) from e
        created = getattr(st, "st_birthtime", st.st_ctime)
        info = {
            "path": str(target),
            "size": st.st_size,
            "isFile": target.is_file(),
            "isDirectory": target.is_dir(),
            "isSymbolicLink": is_link,
            "permissions": oct(st.st_mode & 0o777)[2:],
            "created": _iso(created),
            "modified": _iso(st.st_mtime),
            "accessed": _iso(st.st_atime),
        }
        if info["isDirectory"]:
            self.notifier.directory_accessed(target, "get_file_info", is_directory=True)
        else:
            self.notifier.file_accessed(
                target, "get_file_info", size=st.st_size, is_directory=False, modified=info["modified"]
            )
        return info

    # -- allowed directories -----------------------------------------------

    def add_allowed_directory(self, path: str) -> Path:
        added = self.sandbox.add_directory(path)
        self.notifier.directory_added(added)
        return added

    def remove_allowed_directory(self, path: str) -> Path:
        removed = self.sandbox.remove_directory(path)
        self.notifier.directory_removed(removed)
        return removed

