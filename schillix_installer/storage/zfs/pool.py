"""Root pool creation and management.

The root pool lives on slice 0 of the target disk. It is created with an
alternate root so that its datasets mount below the staging mountpoint
instead of over the running live system.

Every operation on an existing pool is bracketed by ZpoolHandle, which
confirms the pool can be opened and is released on every exit path:

    with ZpoolHandle.open("rpool") as pool:
        pool.set_property("bootfs", "rpool/ROOT/schillix")

Operations:
    - create_pool(): zpool create with altroot and root mountpoint
    - set_bootfs(): point the pool's bootfs at the root dataset
    - mount_all() / unmount_all(): mount or unmount every dataset of the pool
    - export_pool(): export the pool so the installed system can import it
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from schillix_installer.config import settings
from schillix_installer.domain import (
    MOUNTPOINT_LEGACY,
    Disk,
    VdevRoot,
    VdevSpec,
    root_dataset_name,
)
from schillix_installer.logging import LoggerFactory
from schillix_installer.storage.devices import run_checked_command
from schillix_installer.storage.exceptions import (
    CommandError,
    PoolCreateError,
    PoolError,
    PoolOpenError,
    PoolOperationError,
)


log = LoggerFactory.for_pool()

UNMOUNTABLE = {MOUNTPOINT_LEGACY, "none", "-"}


def _zpool(*args: str) -> str:
    return run_checked_command([settings.get_command("zpool"), *args])


def _zfs(*args: str) -> str:
    return run_checked_command([settings.get_command("zfs"), *args])


@dataclass(frozen=True)
class FilesystemInfo:
    name: str
    mountpoint: str
    mounted: bool

    @property
    def can_mount(self) -> bool:
        return self.mountpoint not in UNMOUNTABLE


class ZpoolHandle:
    """An opened pool. Use as a context manager; unusable once closed."""

    def __init__(self, name: str):
        self.name = name
        self._open = False

    @classmethod
    def open(cls, name: str) -> ZpoolHandle:
        """Open a pool by name.

        Raises:
            PoolOpenError: If the pool is not imported
        """
        handle = cls(name)
        try:
            _zpool("list", "-H", "-o", "name", name)
        except CommandError as error:
            raise PoolOpenError(name, error.stderr or str(error)) from error
        handle._open = True
        log.debug(f"Opened pool {name}")
        return handle

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        if self._open:
            log.debug(f"Closed pool {self.name}")
        self._open = False

    def __enter__(self) -> ZpoolHandle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self, operation: str) -> None:
        if not self._open:
            raise PoolOperationError(self.name, operation, "pool handle is closed")

    def _run(self, operation: str, command) -> str:
        self._ensure_open(operation)
        try:
            return command()
        except CommandError as error:
            raise PoolOperationError(self.name, operation, error.stderr or str(error)) from error

    def set_property(self, prop: str, value: str) -> None:
        self._run(f"set {prop}", lambda: _zpool("set", f"{prop}={value}", self.name))

    def filesystems(self) -> list[FilesystemInfo]:
        """List the pool's filesystems with mountpoint and mount state."""
        output = self._run(
            "list datasets",
            lambda: _zfs(
                "list", "-H", "-r", "-t", "filesystem", "-o", "name,mountpoint,mounted", self.name
            ),
        )
        filesystems = []
        for line in output.splitlines():
            fields = line.split("\t")
            if len(fields) != 3:
                continue
            name, mountpoint, mounted = fields
            filesystems.append(FilesystemInfo(name, mountpoint, mounted == "yes"))
        return filesystems

    def mount_all(self) -> list[str]:
        """Mount every mountable filesystem, parents before children."""
        mounted = []
        candidates = [fs for fs in self.filesystems() if fs.can_mount and not fs.mounted]
        for fs in sorted(candidates, key=lambda item: item.mountpoint):
            self._run(f"mount {fs.name}", lambda fs=fs: _zfs("mount", fs.name))
            mounted.append(fs.name)
        return mounted

    def unmount_all(self) -> list[str]:
        """Unmount every mounted filesystem, children before parents."""
        unmounted = []
        candidates = [fs for fs in self.filesystems() if fs.mounted]
        for fs in sorted(candidates, key=lambda item: item.mountpoint, reverse=True):
            self._run(f"unmount {fs.name}", lambda fs=fs: _zfs("unmount", fs.name))
            unmounted.append(fs.name)
        return unmounted

    def export(self) -> None:
        self._run("export", lambda: _zpool("export", self.name))
        self._open = False


def build_vdev_root(disk: Disk) -> VdevRoot:
    """Describe the pool's vdev tree: slice 0 of the disk as a plain disk."""
    return VdevRoot(children=(VdevSpec(path=disk.root_slice_path),))


def _root_mountpoint_inherited(pool_name: str, staging_root: str) -> bool:
    expected = f"/{pool_name}"
    try:
        value = _zfs("get", "-H", "-o", "value", "mountpoint", pool_name).strip()
    except CommandError as error:
        log.debug(f"Unable to read mountpoint of {pool_name}: {error}")
        return False
    return value in (expected, os.path.join(staging_root, pool_name))


def apply_mountpoint_workaround(pool_name: str, staging_root: str, mode: str) -> bool:
    """Re-set the root dataset mountpoint when zpool create dropped it.

    Some platforms create the root dataset without the requested
    mountpoint when an altroot is given. In "auto" mode the value is read
    back and only re-set if it is wrong; "always" re-sets it
    unconditionally and "never" does nothing.

    Returns:
        True if the property was re-set
    """
    if mode == "never":
        return False
    if mode == "auto" and _root_mountpoint_inherited(pool_name, staging_root):
        return False
    try:
        _zfs("set", f"mountpoint=/{pool_name}", pool_name)
    except CommandError as error:
        raise PoolCreateError(pool_name, f"unable to set root mountpoint: {error}") from error
    log.debug(f"Re-set mountpoint of {pool_name} to /{pool_name}")
    return True


def create_root_pool(
    disk: Disk,
    pool_name: str,
    staging_root: str,
    workaround: Optional[str] = None,
) -> VdevRoot:
    """Create the root pool on slice 0.

    Raises:
        PoolCreateError: If the vdev description or zpool create fails
    """
    try:
        vdev_root = build_vdev_root(disk)
    except ValueError as error:
        raise PoolCreateError(pool_name, f"unable to allocate vdev: {error}") from error

    try:
        _zpool(
            "create",
            "-f",
            "-R",
            str(staging_root),
            "-O",
            f"mountpoint=/{pool_name}",
            pool_name,
            *vdev_root.to_args(),
        )
    except CommandError as error:
        raise PoolCreateError(pool_name, error.stderr or str(error)) from error

    apply_mountpoint_workaround(
        pool_name, str(staging_root), workaround or settings.get_workaround_mode()
    )
    return vdev_root


def create_pool(disk: Disk, pool_name: str, staging_root, workaround: Optional[str] = None) -> bool:
    """Create the root pool.

    Returns:
        True on success, False on failure
    """
    try:
        create_root_pool(disk, pool_name, str(staging_root), workaround)
    except PoolError as error:
        log.error(f"Unable to create new rpool: {error}")
        return False
    log.info(f"Created pool {pool_name} on {disk.root_slice_path} (altroot {staging_root})")
    return True


def set_bootfs(pool_name: str, os_name: str) -> bool:
    """Set the pool's bootfs property to the root dataset."""
    bootfs = root_dataset_name(pool_name, os_name)
    try:
        with ZpoolHandle.open(pool_name) as pool:
            pool.set_property("bootfs", bootfs)
    except PoolOpenError as error:
        log.error(f"Unable to open rpool: {error}")
        return False
    except PoolError as error:
        log.error(f"Unable to set bootfs: {error}")
        return False
    log.info(f"Set bootfs of {pool_name} to {bootfs}")
    return True


def mount_all(pool_name: str) -> bool:
    """Recursively mount all datasets of the pool."""
    try:
        with ZpoolHandle.open(pool_name) as pool:
            mounted = pool.mount_all()
    except PoolOpenError as error:
        log.error(f"Unable to open rpool: {error}")
        return False
    except PoolError as error:
        log.error(f"Unable to mount rpool: {error}")
        return False
    log.info(f"Mounted {len(mounted)} datasets of {pool_name}")
    return True


def unmount_all(pool_name: str) -> bool:
    """Recursively unmount all datasets of the pool."""
    try:
        with ZpoolHandle.open(pool_name) as pool:
            unmounted = pool.unmount_all()
    except PoolOpenError as error:
        log.error(f"Unable to open rpool: {error}")
        return False
    except PoolError as error:
        log.error(f"Unable to unmount rpool: {error}")
        return False
    log.info(f"Unmounted {len(unmounted)} datasets of {pool_name}")
    return True


def export_pool(pool_name: str) -> bool:
    """Export the pool."""
    try:
        with ZpoolHandle.open(pool_name) as pool:
            pool.export()
    except PoolOpenError as error:
        log.error(f"Unable to open rpool: {error}")
        return False
    except PoolError as error:
        log.error(f"Unable to export rpool: {error}")
        return False
    log.info(f"Exported pool {pool_name}")
    return True
