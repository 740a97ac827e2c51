"""Global GRUB directory of the ZFS boot pool.

GRUB reads its menu from /<pool>/boot/grub on the pool's root dataset,
not from the boot environment. After replication the menu (already
rewritten for the new system), the capability file and the splash image
are copied there from the staged root.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

from schillix_installer.domain import EntryKind
from schillix_installer.logging import LoggerFactory
from schillix_installer.replicate.replicator import replicate_file
from schillix_installer.replicate.walker import stat_entry
from schillix_installer.storage.exceptions import (
    PostInstallError,
    ReplicationError,
    SourceTreeError,
)


log = LoggerFactory.for_boot()

ROOT_UID = 0
STAFF_GID = 10
BOOT_DIR_MODE = 0o755

POOL_GRUB_FILES = ("capability", "menu.lst", "splash.xpm.gz")
MAX_SYMLINK_HOPS = 8


def _make_boot_dir(path: Path) -> None:
    try:
        os.mkdir(path, BOOT_DIR_MODE)
    except FileExistsError:
        log.debug(f"{path} already exists")
    except OSError as error:
        raise PostInstallError(f"create {path}", error.strerror or str(error)) from error
    try:
        os.chown(path, ROOT_UID, STAFF_GID)
        os.chmod(path, BOOT_DIR_MODE)
    except OSError as error:
        raise PostInstallError(f"chown {path}", error.strerror or str(error)) from error


def _staged_path(staging: Path, path: Path) -> Path:
    """Follow symlinks at path with staging as the root directory."""
    for _ in range(MAX_SYMLINK_HOPS):
        if not path.is_symlink():
            return path
        try:
            target = PurePosixPath(os.readlink(path))
        except OSError as error:
            raise PostInstallError(f"read link {path}", error.strerror or str(error)) from error
        if target.is_absolute():
            path = staging / target.relative_to("/")
        else:
            path = path.parent / target
        path = Path(os.path.normpath(path))
        if path != staging and staging not in path.parents:
            raise PostInstallError(f"copy {path}", "link leaves the staging root")
    raise PostInstallError(f"copy {path}", "too many levels of symbolic links")


def copy_pool_boot_files(staging_root, pool_name: str) -> list[Path]:
    """Create <staging>/<pool>/boot/grub and fill it from <staging>/boot/grub.

    Raises:
        PostInstallError: If a directory or file cannot be created
    """
    staging = Path(os.path.normpath(staging_root))
    boot_dir = staging / pool_name / "boot"
    grub_dir = boot_dir / "grub"
    source_dir = staging / "boot" / "grub"

    _make_boot_dir(boot_dir)
    _make_boot_dir(grub_dir)

    copied = []
    for name in POOL_GRUB_FILES:
        source = _staged_path(staging, source_dir / name)
        try:
            entry = stat_entry(source, PurePosixPath(name))
            if entry.kind is not EntryKind.FILE:
                raise PostInstallError(f"copy {source}", "not a regular file")
            replicate_file(entry, grub_dir / name)
        except (SourceTreeError, ReplicationError) as error:
            raise PostInstallError(f"copy {source}", str(error)) from error
        copied.append(grub_dir / name)
    return copied


def install_pool_boot_files(staging_root, pool_name: str) -> bool:
    """Populate the pool's GRUB directory.

    Returns:
        True on success, False on failure
    """
    try:
        copied = copy_pool_boot_files(staging_root, pool_name)
    except PostInstallError as error:
        log.error(f"Unable to copy grub files to rpool: {error}")
        return False
    log.info(f"Copied {len(copied)} grub files to /{pool_name}/boot/grub")
    return True
