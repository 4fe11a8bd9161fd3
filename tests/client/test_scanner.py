"""Tests for local directory scanning."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from notionsync.client.sync.scanner import is_tracked_file, scan_local, to_relative


def touch(path: Path, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestHelpers:
    """Tests for path helpers."""

    @pytest.mark.parametrize(
        ("name", "tracked"),
        [("note.md", True), ("a/b/c.md", True), ("note.txt", False), ("README.MD", False), ("md", False)],
    )
    def test_is_tracked_file(self, name: str, tracked: bool) -> None:
        """Only the .md extension is tracked."""
        assert is_tracked_file(name) is tracked

    def test_to_relative(self, tmp_path: Path) -> None:
        """Relative paths use forward slashes."""
        assert to_relative(tmp_path, tmp_path / "a" / "b.md") == "a/b.md"


class TestScanLocal:
    """Tests for scan_local."""

    def test_empty(self, tmp_path: Path) -> None:
        """An empty folder has nothing to sync."""
        assert scan_local(tmp_path) == ([], [])

    def test_files_and_dirs(self, tmp_path: Path) -> None:
        """Finds Markdown files and folders recursively."""
        touch(tmp_path / "top.md")
        touch(tmp_path / "notes" / "inner.md")
        touch(tmp_path / "notes" / "deep" / "leaf.md")
        touch(tmp_path / "image.png")

        files, dirs = scan_local(tmp_path)

        assert [f.relative_path for f in files] == [
            "notes/deep/leaf.md",
            "notes/inner.md",
            "top.md",
        ]
        assert [d.relative_path for d in dirs] == ["notes", "notes/deep"]
        assert files[-1].absolute_path == tmp_path.resolve() / "top.md"

    def test_parents_precede_children(self, tmp_path: Path) -> None:
        """Each folder is listed before its sub-folders."""
        (tmp_path / "b" / "c").mkdir(parents=True)
        (tmp_path / "a").mkdir()

        _, dirs = scan_local(tmp_path)

        assert [d.relative_path for d in dirs] == ["a", "b", "b/c"]

    def test_empty_dirs_listed(self, tmp_path: Path) -> None:
        """Folders are mirrored even without documents."""
        (tmp_path / "empty").mkdir()

        files, dirs = scan_local(tmp_path)

        assert files == []
        assert [d.relative_path for d in dirs] == ["empty"]

    def test_node_modules_ignored(self, tmp_path: Path) -> None:
        """node_modules is skipped at any depth."""
        touch(tmp_path / "node_modules" / "pkg" / "README.md")
        touch(tmp_path / "sub" / "node_modules" / "x.md")
        touch(tmp_path / "sub" / "kept.md")

        files, dirs = scan_local(tmp_path)

        assert [f.relative_path for f in files] == ["sub/kept.md"]
        assert [d.relative_path for d in dirs] == ["sub"]

    def test_symlinked_file_followed(self, tmp_path: Path) -> None:
        """A symlink to a Markdown file is synced under the link's name."""
        target = touch(tmp_path / "outside" / "real.md")
        root = tmp_path / "root"
        root.mkdir()
        (root / "linked.md").symlink_to(target)

        files, _ = scan_local(root)

        assert [f.relative_path for f in files] == ["linked.md"]

    def test_symlinked_dir_followed(self, tmp_path: Path) -> None:
        """A symlink to a folder is walked."""
        touch(tmp_path / "outside" / "doc.md")
        root = tmp_path / "root"
        root.mkdir()
        (root / "shared").symlink_to(tmp_path / "outside", target_is_directory=True)

        files, dirs = scan_local(root)

        assert [d.relative_path for d in dirs] == ["shared"]
        assert [f.relative_path for f in files] == ["shared/doc.md"]

    def test_broken_symlink_skipped(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """A dangling link is skipped with a warning."""
        (tmp_path / "dangling.md").symlink_to(tmp_path / "missing.md")
        touch(tmp_path / "ok.md")

        with caplog.at_level(logging.WARNING):
            files, _ = scan_local(tmp_path)

        assert [f.relative_path for f in files] == ["ok.md"]
        assert "Skipping broken symlink: dangling.md" in caplog.text
