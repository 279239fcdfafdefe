"""Exceptions raised by the graph store, sandbox and filesystem layer.

The tool layer turns every ``FsMemoryError`` into an error result;
``AlreadyAllowedError`` is the one informational case reported as success.
"""

from __future__ import annotations


class FsMemoryError(Exception):
    """Base exception for all tool-server failures."""


class InvalidArgumentError(FsMemoryError):
    """Raised when tool arguments are missing or have the wrong shape."""


class AccessDeniedError(FsMemoryError):
    """Raised when a path resolves outside every allowed directory."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Access denied: Path {path} is not within allowed directories")


class FilesystemError(FsMemoryError):
    """Raised when an OS-level file operation fails."""


class PathNotFoundError(FilesystemError):
    """Raised when a referenced file, directory or allowed entry is absent."""


class TextNotFoundError(FsMemoryError):
    """Raised when an edit's ``oldText`` is not in the current content."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f'Text to replace not found: "{text}"')


class EntityNotFoundError(FsMemoryError):
    """Raised when a graph operation names an entity that does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Entity '{name}' not found")


class InvalidDirectoryError(FsMemoryError):
    """Raised when a directory to allow does not exist or is not a directory."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Directory {path} does not exist or is not a directory")


class AlreadyAllowedError(FsMemoryError):
    """Raised when adding a directory that is already allowed (a no-op)."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Directory {path} is already in the allowed directories list")


class LastDirectoryError(FsMemoryError):
    """Raised when a removal would leave the allowed-directory set empty."""

    def __init__(self) -> None:
        super().__init__(
            "Cannot remove the last allowed directory. "
            "At least one directory must remain for security."
        )


class PersistenceError(FsMemoryError):
    """Raised when the graph file or directory sidecar cannot be written."""


class GraphCorruptError(FsMemoryError):
    """Raised when the graph file exists but cannot be parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Graph file {path} is unreadable: {reason}")


class UnknownToolError(FsMemoryError):
    """Raised when a tool name has no handler on this server."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")
