"""Tests for the filesystem-to-graph bridge."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fs_memory_mcp.bridge import GraphBridge, content_preview
from fs_memory_mcp.errors import AccessDeniedError, PersistenceError
from fs_memory_mcp.filesystem import FilesystemOps
from fs_memory_mcp.graph import GraphStore, Relation
from fs_memory_mcp.sandbox import PathSandbox


@pytest.fixture
def memfs(sandbox: PathSandbox, bridge: GraphBridge) -> FilesystemOps:
    return FilesystemOps(sandbox, bridge)


def _accessed_after(store: GraphStore, path: Path) -> list[str]:
    entity = store.get(f"file:{path}")
    return [r.target for r in entity.relations if r.relation_type == "accessed_after"]


class TestContentPreview:
    def test_short_content_unchanged(self) -> None:
        assert content_preview("short") == "short"

    def test_long_content_truncated(self) -> None:
        preview = content_preview("x" * 250)
        assert preview == "x" * 200 + "..."


class TestFileAccessed:
    def test_records_file_and_parent(
        self, memfs: FilesystemOps, store: GraphStore, allowed_dir: Path
    ) -> None:
        path = allowed_dir / "notes.txt"
        memfs.write_file(str(path), "hello world")
        entity = store.get(f"file:{path}")
        assert entity.entity_type == "filesystem_file"
        assert entity.observations == [
            "Operation: write",
            "Accessed at: 2026-03-01T12:00:00.000Z",
            "File name: notes.txt",
            f"Directory: {allowed_dir}",
            "Size: 11 bytes",
            "Content preview: hello world",
        ]
        parent = store.get(f"directory:{allowed_dir}")
        assert parent.entity_type == "filesystem_directory"
        assert Relation(f"directory:{allowed_dir}", f"file:{path}", "contains") in parent.relations

    def test_repeat_access_accumulates(
        self, memfs: FilesystemOps, store: GraphStore, clock, allowed_dir: Path
    ) -> None:
        path = allowed_dir / "notes.txt"
        memfs.write_file(str(path), "hello")
        clock.advance(minutes=1)
        memfs.read_file(str(path))
        obs = store.get(f"file:{path}").observations
        assert "Operation: write" in obs and "Operation: read" in obs
        assert "Accessed at: 2026-03-01T12:01:00.000Z" in obs
        # contains is recorded once
        parent = store.get(f"directory:{allowed_dir}")
        assert len([r for r in parent.relations if r.relation_type == "contains"]) == 1

    def test_long_content_is_previewed(
        self, memfs: FilesystemOps, store: GraphStore, allowed_dir: Path
    ) -> None:
        path = allowed_dir / "big.txt"
        memfs.write_file(str(path), "y" * 500)
        previews = [o for o in store.get(f"file:{path}").observations if o.startswith("Content preview")]
        assert previews == ["Content preview: " + "y" * 200 + "..."]

    def test_edit_records_counts_not_content(
        self, memfs: FilesystemOps, store: GraphStore, clock, allowed_dir: Path
    ) -> None:
        path = allowed_dir / "e.txt"
        path.write_text("abc", encoding="utf-8")
        memfs.edit_file(str(path), [{"oldText": "b", "newText": "BB"}])
        obs = store.get(f"file:{path}").observations
        assert "Edits applied: 1" in obs
        assert "Original size: 3 bytes" in obs
        assert not any(o.startswith("Content preview") for o in obs)

    def test_move_records_both_ends(
        self, memfs: FilesystemOps, store: GraphStore, allowed_dir: Path
    ) -> None:
        src, dst = allowed_dir / "a.txt", allowed_dir / "b.txt"
        src.write_text("x", encoding="utf-8")
        memfs.move_file(str(src), str(dst))
        assert f"Moved to: {dst}" in store.get(f"file:{src}").observations
        assert f"Moved from: {src}" in store.get(f"file:{dst}").observations

    def test_moved_directory_stays_a_directory(
        self, memfs: FilesystemOps, store: GraphStore, clock, allowed_dir: Path
    ) -> None:
        memfs.write_file(str(allowed_dir / "seen.txt"), "x")
        clock.advance(minutes=1)
        src, dst = allowed_dir / "sub", allowed_dir / "moved"
        src.mkdir()
        memfs.move_file(str(src), str(dst))
        assert store.get(f"file:{src}") is None
        assert store.get(f"file:{dst}") is None
        moved = store.get(f"directory:{dst}")
        assert moved.entity_type == "filesystem_directory"
        assert f"Moved from: {src}" in moved.observations
        assert f"Moved to: {dst}" in store.get(f"directory:{src}").observations
        assert not any(r.relation_type == "accessed_after" for r in moved.relations)

    def test_denied_access_records_nothing(
        self, memfs: FilesystemOps, store: GraphStore, outside_dir: Path
    ) -> None:
        with pytest.raises(AccessDeniedError):
            memfs.read_file(str(outside_dir / "secret.txt"))
        assert len(store) == 0


class TestAccessedAfter:
    def test_links_to_previous_file(
        self, memfs: FilesystemOps, store: GraphStore, clock, allowed_dir: Path
    ) -> None:
        a, b, c = (allowed_dir / n for n in ("a.txt", "b.txt", "c.txt"))
        memfs.write_file(str(a), "1")
        assert _accessed_after(store, a) == []
        clock.advance(minutes=1)
        memfs.write_file(str(b), "2")
        assert _accessed_after(store, b) == [f"file:{a}"]
        clock.advance(minutes=1)
        memfs.write_file(str(c), "3")
        assert _accessed_after(store, c) == [f"file:{b}"]

    def test_revisit_links_to_true_predecessor(
        self, memfs: FilesystemOps, store: GraphStore, clock, allowed_dir: Path
    ) -> None:
        a, b = allowed_dir / "a.txt", allowed_dir / "b.txt"
        memfs.write_file(str(a), "1")
        clock.advance(minutes=1)
        memfs.write_file(str(b), "2")
        clock.advance(minutes=1)
        memfs.read_file(str(a))
        assert _accessed_after(store, a) == [f"file:{b}"]

    def test_outside_window_not_linked(
        self, memfs: FilesystemOps, store: GraphStore, clock, allowed_dir: Path
    ) -> None:
        a, b = allowed_dir / "a.txt", allowed_dir / "b.txt"
        memfs.write_file(str(a), "1")
        clock.advance(hours=25)
        memfs.write_file(str(b), "2")
        assert _accessed_after(store, b) == []


class TestDirectoryNotifications:
    def test_directories_registered(self, bridge: GraphBridge, store: GraphStore, tmp_path: Path) -> None:
        dirs = [str(tmp_path / "x"), str(tmp_path / "y"), str(tmp_path / "z")]
        bridge.directories_registered(dirs)
        x = store.get(f"directory:{dirs[0]}")
        assert f"Allowed directory: {dirs[0]}" in x.observations
        assert any(o.startswith("Added at: ") for o in x.observations)
        assert x.relations == [Relation(f"directory:{dirs[0]}", f"directory:{dirs[1]}", "sibling_directory")]
        assert store.get(f"directory:{dirs[1]}").relations == [
            Relation(f"directory:{dirs[1]}", f"directory:{dirs[2]}", "sibling_directory")
        ]

    def test_directory_accessed_links_parent(
        self, memfs: FilesystemOps, store: GraphStore, allowed_dir: Path
    ) -> None:
        sub = allowed_dir / "sub"
        memfs.create_directory(str(sub))
        entity = store.get(f"directory:{sub}")
        assert "Operation: create_directory" in entity.observations
        assert "Directory name: sub" in entity.observations
        parent = store.get(f"directory:{allowed_dir}")
        assert Relation(f"directory:{allowed_dir}", f"directory:{sub}", "contains") in parent.relations

    def test_search_records_pattern(
        self, memfs: FilesystemOps, store: GraphStore, allowed_dir: Path
    ) -> None:
        memfs.search_files(str(allowed_dir), "*.md")
        obs = store.get(f"directory:{allowed_dir}").observations
        assert "Pattern: *.md" in obs
        assert "Results found: 0" in obs

    def test_removed_marks_existing_entity(
        self, bridge: GraphBridge, store: GraphStore, tmp_path: Path
    ) -> None:
        bridge.directory_added(tmp_path)
        bridge.directory_removed(tmp_path)
        obs = store.get(f"directory:{tmp_path}").observations
        assert any(o.startswith("Added dynamically at: ") for o in obs)
        assert any(o.startswith("Directory access removed at: ") for o in obs)

    def test_removed_unknown_is_noop(self, bridge: GraphBridge, store: GraphStore, tmp_path: Path) -> None:
        bridge.directory_removed(tmp_path / "never-seen")
        assert len(store) == 0


class TestBestEffort:
    def test_store_failure_does_not_fail_operation(
        self,
        memfs: FilesystemOps,
        store: GraphStore,
        allowed_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def broken_save() -> None:
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "save", broken_save)
        path = allowed_dir / "still-written.txt"
        with caplog.at_level(logging.ERROR):
            memfs.write_file(str(path), "content")
        assert path.read_text(encoding="utf-8") == "content"
        assert "Memory bridge failed in file_accessed" in caplog.text


class TestQueries:
    def test_recall_history(self, memfs: FilesystemOps, bridge: GraphBridge, allowed_dir: Path) -> None:
        path = allowed_dir / "a.txt"
        memfs.write_file(str(path), "hello")
        history = bridge.recall_file_history(str(path))
        assert history["file"] == str(path)
        assert history["entityType"] == "filesystem_file"
        assert "Operation: write" in history["accessHistory"]

    def test_recall_resolves_relative_segments(
        self, memfs: FilesystemOps, bridge: GraphBridge, allowed_dir: Path
    ) -> None:
        memfs.write_file(str(allowed_dir / "a.txt"), "hello")
        assert bridge.recall_file_history(f"{allowed_dir}/sub/../a.txt") is not None

    def test_recall_unknown(self, bridge: GraphBridge, allowed_dir: Path) -> None:
        assert bridge.recall_file_history(str(allowed_dir / "never.txt")) is None

    def test_find_similar_only_files(
        self, memfs: FilesystemOps, bridge: GraphBridge, clock, allowed_dir: Path
    ) -> None:
        memfs.write_file(str(allowed_dir / "report.md"), "quarterly numbers")
        clock.advance(minutes=1)
        memfs.write_file(str(allowed_dir / "other.txt"), "nothing")
        found = bridge.find_similar_files("quarterly")
        assert found["query"] == "quarterly"
        assert [r["filePath"] for r in found["results"]] == [str(allowed_dir / "report.md")]
        assert len(found["results"][0]["recentObservations"]) == 3

    def test_find_similar_limit(self, memfs: FilesystemOps, bridge: GraphBridge, clock, allowed_dir: Path) -> None:
        for i in range(4):
            memfs.write_file(str(allowed_dir / f"log{i}.txt"), "x")
            clock.advance(seconds=1)
        assert len(bridge.find_similar_files("log", limit=2)["results"]) == 2

    def test_stats(self, memfs: FilesystemOps, bridge: GraphBridge, clock, allowed_dir: Path) -> None:
        memfs.write_file(str(allowed_dir / "a.txt"), "1")
        clock.advance(hours=30)
        memfs.write_file(str(allowed_dir / "b.txt"), "2")
        stats = bridge.stats([str(allowed_dir)])
        assert stats["memoryEnabled"] is True
        assert stats["totalFilesTracked"] == 2
        assert stats["totalDirectoriesTracked"] == 1
        assert stats["totalMemoryEntities"] == 3
        assert stats["recentlyAccessedFiles"] == 1
        assert stats["allowedDirectories"] == [str(allowed_dir)]
