"""Safety validation before the installer touches a disk.

An installer must never write to ambiguous hardware, so the checks here fail
closed: the only situation treated as "unused" without further evidence is
a disk whose slice 0 device node does not exist yet (it has never been
given a slice table).

Checks:
    - The slice 0 device can be opened read-only
    - The slice does not carry a ZFS label naming a pool

validate_unused() returns a boolean for the pipeline; the helpers raise
exceptions from the exceptions module so callers can report the reason.

Example:
    from schillix_installer.storage.validation import validate_unused

    if not validate_unused(disk):
        # Refuse to continue
        ...
"""

import errno
import os
import re
from pathlib import Path
from typing import Optional

from schillix_installer.config import settings
from schillix_installer.domain import Disk
from schillix_installer.logging import LoggerFactory

from .devices import run_command
from .exceptions import DeviceBusyError, DeviceNotFoundError, DeviceValidationError


log = LoggerFactory.for_disk()

_POOL_NAME_PATTERN = re.compile(r"^\s*name:\s*'([^']+)'", re.MULTILINE)
_NO_LABEL_PATTERN = re.compile(r"failed to (?:unpack|read) label", re.IGNORECASE)


def _open_slice(path: str) -> int:
    """Open a slice device read-only.

    Raises:
        DeviceNotFoundError: If the device node does not exist
        DeviceBusyError: If the device exists but cannot be opened
    """
    try:
        return os.open(path, os.O_RDONLY)
    except OSError as error:
        if error.errno == errno.ENOENT:
            raise DeviceNotFoundError(path) from error
        raise DeviceBusyError(
            Path(path).name, f"unable to probe disk: {error.strerror or error}"
        ) from error


def find_pool_membership(slice_path: str) -> Optional[str]:
    """Return the name of the pool the slice belongs to, or None.

    Reads the ZFS labels of the slice with zdb. A slice without labels
    produces "failed to unpack label" lines and is not a member.

    Raises:
        DeviceValidationError: If membership cannot be determined
    """
    command = [settings.get_command("zdb"), "-l", slice_path]
    try:
        result = run_command(command, check=False, log_output=False)
    except OSError as error:
        raise DeviceValidationError(
            slice_path, f"unable to determine if disk is in a zpool: {error}"
        ) from error

    output = f"{result.stdout or ''}\n{result.stderr or ''}"
    match = _POOL_NAME_PATTERN.search(output)
    if match:
        return match.group(1)
    if _NO_LABEL_PATTERN.search(output):
        return None
    if result.returncode == 0:
        return None
    raise DeviceValidationError(
        slice_path,
        f"unable to determine if disk is in a zpool (zdb exit code {result.returncode})",
    )


def ensure_unused(disk: Disk) -> None:
    """Raise if the disk may be in use.

    Raises:
        DeviceBusyError: If the slice cannot be opened or belongs to a pool
        DeviceValidationError: If pool membership cannot be determined
    """
    slice_path = disk.root_slice_path
    try:
        fd = _open_slice(slice_path)
    except DeviceNotFoundError:
        log.debug(f"{slice_path} does not exist yet, disk has no slice table")
        return

    try:
        pool_name = find_pool_membership(slice_path)
    finally:
        os.close(fd)

    if pool_name:
        raise DeviceBusyError(disk.name, f"already part of pool {pool_name}")


def validate_unused(disk: Disk) -> bool:
    """Check that a disk is safe to repartition.

    Returns:
        True if the disk is unused, False if it is (or may be) in use
    """
    try:
        ensure_unused(disk)
    except (DeviceBusyError, DeviceValidationError) as error:
        log.error(f"Disk appears to be in use already: {error}")
        return False
    except OSError as error:
        log.error(f"Unable to probe disk {disk.name}: {error}")
        return False
    log.info(f"Disk {disk.name} is not in use")
    return True


def validate_source_tree(source_root) -> bool:
    """Check that the live image root is a directory that can be listed."""
    path = Path(source_root)
    if not path.is_dir():
        log.error(f"Live image path {path} is not a directory")
        return False
    try:
        with os.scandir(path):
            pass
    except OSError as error:
        log.error(f"Unable to open live image path {path}: {error}")
        return False
    return True
