"""
Pytest configuration and shared fixtures for schillix-install tests.

Platform tools (parted, prtvtoc, zpool, ...) are never executed: tests
patch the command runners. Replication tests run on real temporary trees.
"""

from pathlib import Path
from typing import List
from unittest.mock import Mock

import pytest

from schillix_installer.config import settings
from schillix_installer.domain import Disk, InstallRequest, ReplicationContext
from schillix_installer.logging import logger


# ==============================================================================
# Settings Isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at an empty temporary file and reload the defaults."""
    settings_file = tmp_path / "config" / "settings.json"
    monkeypatch.setattr("schillix_installer.config.settings.SETTINGS_PATH", settings_file)
    settings.settings_store.values = {}
    settings.load_settings()
    yield settings_file
    settings.settings_store.values = {}
    settings.load_settings()


@pytest.fixture
def temp_settings_file(isolated_settings) -> Path:
    isolated_settings.parent.mkdir(parents=True, exist_ok=True)
    return isolated_settings


# ==============================================================================
# Log Capture
# ==============================================================================


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records: List[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)


# ==============================================================================
# Disk Fixtures
# ==============================================================================


@pytest.fixture
def disk() -> Disk:
    """An x86 disk under the standard raw device directory."""
    return Disk("c0t0d0", device_dir="/dev/rdsk", sparc=False)


@pytest.fixture
def device_dir(tmp_path) -> Path:
    path = tmp_path / "rdsk"
    path.mkdir()
    return path


@pytest.fixture
def local_disk(device_dir) -> Disk:
    """A disk whose device nodes live in a temporary directory (none exist yet)."""
    return Disk("c0t0d0", device_dir=str(device_dir), sparc=False)


@pytest.fixture
def prtvtoc_output() -> str:
    """prtvtoc output for a 16 head, 63 sector, 1000 cylinder disk."""
    return (
        "* /dev/rdsk/c0t0d0p0 partition map\n"
        "*\n"
        "* Dimensions:\n"
        "*     512 bytes/sector\n"
        "*      63 sectors/track\n"
        "*      16 tracks/cylinder\n"
        "*    1008 sectors/cylinder\n"
        "*    1002 cylinders\n"
        "*    1000 accessible cylinders\n"
        "*\n"
        "* Flags:\n"
        "*   1: unmountable\n"
        "*  10: read-only\n"
        "*\n"
        "*                          First     Sector    Last\n"
        "* Partition  Tag  Flags    Sector     Count    Sector  Mount Directory\n"
        "       2      5    01          0   1008000   1007999\n"
        "       7      4    00     504000    504000   1007999   /export\n"
        "       8      1    01          0      1008      1007\n"
    )


def completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> Mock:
    """Mock of a finished subprocess.CompletedProcess."""
    return Mock(stdout=stdout, stderr=stderr, returncode=returncode)


@pytest.fixture
def completed_process():
    return completed


# ==============================================================================
# Replication Fixtures
# ==============================================================================


@pytest.fixture
def source_tree(tmp_path) -> Path:
    """A small live image: a file, a relative symlink and a GRUB menu."""
    root = tmp_path / "cdrom"
    (root / "a").mkdir(parents=True)
    (root / "a" / "file1").write_bytes(b"hello from the live image\n")
    (root / "a" / "file1").chmod(0o644)
    (root / "a" / "link1").symlink_to("file1")
    (root / "boot" / "grub").mkdir(parents=True)
    (root / "boot" / "grub" / "menu.lst").write_text("title Live CD\nkernel /boot/live\n")
    return root


@pytest.fixture
def dest_root(tmp_path) -> Path:
    path = tmp_path / "mnt"
    path.mkdir()
    return path


@pytest.fixture
def replication_context(source_tree, dest_root) -> ReplicationContext:
    return ReplicationContext(
        source_root=source_tree,
        dest_root=dest_root,
        pool_name="rpool",
        os_name="schillix",
    )


@pytest.fixture
def install_request(disk, source_tree, dest_root) -> InstallRequest:
    return InstallRequest(
        disk=disk,
        source_root=source_tree,
        staging_root=dest_root,
        pool_name="rpool",
        os_name="schillix",
    )
