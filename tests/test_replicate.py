"""Tests for replicate/replicator.py on real temporary trees.

This test suite covers:
- Type, mode, ownership and content fidelity
- Diverted files are generated, never copied
- Re-running over an existing destination
- Pre-existing destination root keeps its mode
- Unsupported entry kinds abort the run
"""

import os
from pathlib import Path

import pytest

from schillix_installer.domain import ReplicationContext
from schillix_installer.replicate import replicate, replicate_tree
from schillix_installer.replicate.generators import generate_menu
from schillix_installer.storage.exceptions import EntryCopyError, UnsupportedEntryError


def _snapshot(root: Path) -> dict:
    """Relative path -> (type, mode, uid, gid, payload) for every entry below root."""
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            st = os.lstat(path)
            relative = str(path.relative_to(root))
            if path.is_symlink():
                result[relative] = ("link", None, st.st_uid, st.st_gid, os.readlink(path))
            elif path.is_dir():
                result[relative] = ("dir", st.st_mode & 0o7777, st.st_uid, st.st_gid, None)
            else:
                result[relative] = ("file", st.st_mode & 0o7777, st.st_uid, st.st_gid, path.read_bytes())
    return result


@pytest.fixture
def plain_tree(tmp_path) -> Path:
    """A tree with no diverted paths."""
    root = tmp_path / "plain"
    (root / "usr" / "bin").mkdir(parents=True)
    (root / "etc" / "private").mkdir(parents=True)
    (root / "etc" / "private").chmod(0o700)
    (root / "usr" / "bin" / "tool").write_bytes(b"#!/bin/sh\necho tool\n")
    (root / "usr" / "bin" / "tool").chmod(0o755)
    (root / "etc" / "private" / "secret").write_text("hunter2\n")
    (root / "etc" / "private" / "secret").chmod(0o600)
    (root / "etc" / "empty").write_bytes(b"")
    (root / "usr" / "lib.bin").write_bytes(os.urandom(300_000))
    (root / "usr" / "bin" / "alias").symlink_to("tool")
    (root / "dangling").symlink_to("/nonexistent/target")
    return root


def _context(source: Path, dest: Path) -> ReplicationContext:
    return ReplicationContext(source, dest, "rpool", "schillix")


class TestFidelity:
    def test_destination_mirrors_source(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"

        assert replicate(plain_tree, dest, _context(plain_tree, dest)) is True

        assert _snapshot(dest) == _snapshot(plain_tree)

    def test_stats(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"

        stats = replicate_tree(plain_tree, dest, _context(plain_tree, dest))

        assert stats.files == 4
        assert stats.symlinks == 2
        assert stats.directories == 5
        assert stats.generated == 0
        assert stats.bytes_copied == 300_000 + len(b"#!/bin/sh\necho tool\n") + len(b"hunter2\n")


class TestScenario:
    def test_menu_is_generated(self, source_tree, dest_root, replication_context):
        assert replicate(source_tree, dest_root, replication_context) is True

        file1 = dest_root / "a" / "file1"
        assert file1.read_bytes() == (source_tree / "a" / "file1").read_bytes()
        assert file1.stat().st_mode & 0o7777 == 0o644
        assert os.readlink(dest_root / "a" / "link1") == "file1"

        menu = (dest_root / "boot" / "grub" / "menu.lst").read_text()
        assert menu == generate_menu(replication_context)
        assert "default 0" in menu
        assert "timeout 10" in menu
        assert "Live CD" not in menu

    def test_generated_file_takes_source_mode(self, source_tree, dest_root, replication_context):
        (source_tree / "boot" / "grub" / "menu.lst").chmod(0o640)

        replicate(source_tree, dest_root, replication_context)

        assert (dest_root / "boot" / "grub" / "menu.lst").stat().st_mode & 0o7777 == 0o640

    def test_empty_diverted_source(self, tmp_path):
        source = tmp_path / "src"
        (source / "etc").mkdir(parents=True)
        (source / "etc" / "vfstab").write_bytes(b"")
        dest = tmp_path / "dest"

        assert replicate(source, dest, _context(source, dest)) is True
        assert "/devices" in (dest / "etc" / "vfstab").read_text()


class TestRerun:
    def test_second_run_is_identical(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"
        context = _context(plain_tree, dest)

        assert replicate(plain_tree, dest, context) is True
        assert replicate(plain_tree, dest, context) is True

        assert _snapshot(dest) == _snapshot(plain_tree)

    def test_existing_file_is_replaced(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"
        (dest / "usr" / "bin").mkdir(parents=True)
        (dest / "usr" / "bin" / "tool").write_text("stale and much longer content than the source\n")
        (dest / "usr" / "bin" / "alias").symlink_to("elsewhere")

        assert replicate(plain_tree, dest, _context(plain_tree, dest)) is True

        assert (dest / "usr" / "bin" / "tool").read_bytes() == b"#!/bin/sh\necho tool\n"
        assert os.readlink(dest / "usr" / "bin" / "alias") == "tool"

    def test_symlink_at_generated_path_is_replaced(self, tmp_path):
        source = tmp_path / "src"
        (source / "etc").mkdir(parents=True)
        (source / "etc" / "vfstab").write_text("live vfstab\n")
        outside = tmp_path / "host-vfstab"
        outside.write_text("HOST SYSTEM FILE\n")
        dest = tmp_path / "dest"
        (dest / "etc").mkdir(parents=True)
        (dest / "etc" / "vfstab").symlink_to(outside)

        assert replicate(source, dest, _context(source, dest)) is True

        assert not (dest / "etc" / "vfstab").is_symlink()
        assert "/devices" in (dest / "etc" / "vfstab").read_text()
        assert outside.read_text() == "HOST SYSTEM FILE\n"

    def test_existing_subdirectory_is_remoded(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"
        (dest / "etc" / "private").mkdir(parents=True)
        (dest / "etc" / "private").chmod(0o755)

        replicate(plain_tree, dest, _context(plain_tree, dest))

        assert (dest / "etc" / "private").stat().st_mode & 0o7777 == 0o700

    def test_existing_root_keeps_its_mode(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"
        dest.mkdir()
        dest.chmod(0o750)
        plain_tree.chmod(0o755)

        replicate(plain_tree, dest, _context(plain_tree, dest))

        assert dest.stat().st_mode & 0o7777 == 0o750


class TestFailures:
    def test_fifo_aborts(self, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "a").write_text("a")
        os.mkfifo(source / "b-pipe")
        (source / "c").write_text("c")
        dest = tmp_path / "dest"

        with pytest.raises(UnsupportedEntryError):
            replicate_tree(source, dest, _context(source, dest))

        assert (dest / "a").exists()
        assert not (dest / "c").exists()

    def test_replicate_returns_false(self, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        os.mkfifo(source / "pipe")
        dest = tmp_path / "dest"

        assert replicate(source, dest, _context(source, dest)) is False

    def test_missing_destination_parent(self, plain_tree, tmp_path):
        dest = tmp_path / "no" / "such" / "dest"

        with pytest.raises(EntryCopyError, match="create directory"):
            replicate_tree(plain_tree, dest, _context(plain_tree, dest))

    def test_roots_are_canonicalized(self, plain_tree, tmp_path):
        dest = tmp_path / "dest"
        dest.mkdir()
        (tmp_path / "dest-link").symlink_to(dest)
        (tmp_path / "src-link").symlink_to(plain_tree)

        assert replicate(tmp_path / "src-link", tmp_path / "dest-link", _context(plain_tree, dest)) is True
        assert (dest / "usr" / "bin" / "tool").exists()
