"""Tests for routegraph_common.fs helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from routegraph_common.fs import (
    atomic_rename,
    atomic_write,
    ensure_dir,
    remove_path,
    safe_join,
)


class TestAtomicWrite:
    """Tests for atomic_write."""

    def test_writes_text_and_creates_parents(self, tmp_path: Path) -> None:
        """Parents are created and no temporary file is left behind."""
        target = tmp_path / "a" / "b" / "graph_info.yml"
        atomic_write(target, "import_date: x\n")
        assert target.read_text(encoding="utf-8") == "import_date: x\n"
        assert [p.name for p in target.parent.iterdir()] == ["graph_info.yml"]

    def test_binary_mode_requires_bytes(self, tmp_path: Path) -> None:
        """Mode and data type must match."""
        with pytest.raises(ValueError, match="binary mode requires bytes"):
            atomic_write(tmp_path / "x.bin", "text", mode="binary")
        assert list(tmp_path.iterdir()) == []


class TestAtomicRename:
    """Tests for atomic_rename."""

    def test_moves_directory(self, tmp_path: Path) -> None:
        """A directory is moved under its new name."""
        src = ensure_dir(tmp_path / "car_new")
        (src / "edges").write_text("g", encoding="utf-8")
        dst = atomic_rename(src, tmp_path / "car")
        assert not src.exists()
        assert (dst / "edges").read_text(encoding="utf-8") == "g"

    def test_refuses_existing_directory(self, tmp_path: Path) -> None:
        """Renaming onto an existing directory fails and keeps both."""
        src = ensure_dir(tmp_path / "car_new")
        dst = ensure_dir(tmp_path / "car")
        with pytest.raises(FileExistsError, match="already exists"):
            atomic_rename(src, dst)
        assert src.is_dir()
        assert dst.is_dir()

    def test_replaces_file(self, tmp_path: Path) -> None:
        """Files are replaced."""
        src = tmp_path / "a.yml.incomplete"
        src.write_text("new", encoding="utf-8")
        dst = tmp_path / "a.yml"
        dst.write_text("old", encoding="utf-8")
        atomic_rename(src, dst)
        assert dst.read_text(encoding="utf-8") == "new"


class TestSafeJoin:
    """Tests for safe_join."""

    def test_allows_nested_member(self, tmp_path: Path) -> None:
        """Relative members below the base are accepted."""
        assert safe_join(tmp_path, "dir", "file") == (tmp_path / "dir" / "file").resolve()

    def test_rejects_traversal(self, tmp_path: Path) -> None:
        """Members escaping the base are rejected."""
        with pytest.raises(ValueError, match="escapes base directory"):
            safe_join(tmp_path, "..", "evil")

    def test_rejects_relative_base(self) -> None:
        """The base must be absolute."""
        with pytest.raises(ValueError, match="must be absolute"):
            safe_join(Path("relative"), "x")


class TestRemovePath:
    """Tests for remove_path."""

    def test_removes_tree_and_file(self, tmp_path: Path) -> None:
        """Trees and files are removed; missing paths report False."""
        tree = ensure_dir(tmp_path / "tree" / "sub")
        (tree / "f").write_text("x", encoding="utf-8")
        file = tmp_path / "file"
        file.write_text("x", encoding="utf-8")
        assert remove_path(tmp_path / "tree") is True
        assert remove_path(file) is True
        assert remove_path(tmp_path / "missing") is False
        assert list(tmp_path.iterdir()) == []
