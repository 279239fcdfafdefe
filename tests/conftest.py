"""Shared test fixtures for fs-memory tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from fs_memory_mcp.bridge import GraphBridge
from fs_memory_mcp.dirconfig import DirectoryConfig
from fs_memory_mcp.filesystem import FilesystemOps
from fs_memory_mcp.graph import GraphStore
from fs_memory_mcp.sandbox import PathSandbox

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Notifier that keeps every call for inspection."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def file_accessed(self, path, operation, **metadata) -> None:
        self.calls.append(("file", path, operation, metadata))

    def directory_accessed(self, path, operation, **metadata) -> None:
        self.calls.append(("directory", path, operation, metadata))

    def directories_registered(self, paths) -> None:
        self.calls.append(("registered", list(paths)))

    def directory_added(self, path) -> None:
        self.calls.append(("added", path))

    def directory_removed(self, path) -> None:
        self.calls.append(("removed", path))

    def operations(self) -> list[str]:
        return [c[2] for c in self.calls if c[0] in ("file", "directory")]


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep default file lookups away from the real environment and CWD."""
    monkeypatch.delenv("MEMORY_FILE_PATH", raising=False)
    monkeypatch.delenv("FS_MEMORY_CONFIG_FILE", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def allowed_dir(tmp_path: Path) -> Path:
    d = (tmp_path / "allowed").resolve()
    d.mkdir()
    return d


@pytest.fixture
def outside_dir(tmp_path: Path) -> Path:
    d = (tmp_path / "outside").resolve()
    d.mkdir()
    (d / "secret.txt").write_text("top secret", encoding="utf-8")
    return d


@pytest.fixture
def graph_file(tmp_path: Path) -> Path:
    return tmp_path / "memory.json"


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    return tmp_path / "dirs.json"


@pytest.fixture
def store(graph_file: Path) -> GraphStore:
    return GraphStore.open(graph_file)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bridge(store: GraphStore, clock: FakeClock) -> GraphBridge:
    return GraphBridge(store, clock=clock)


@pytest.fixture
def sandbox(allowed_dir: Path, config_file: Path) -> PathSandbox:
    return PathSandbox([allowed_dir], DirectoryConfig(config_file))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fs(sandbox: PathSandbox, notifier: RecordingNotifier) -> FilesystemOps:
    return FilesystemOps(sandbox, notifier)
