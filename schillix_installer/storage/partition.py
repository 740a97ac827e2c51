"""Partition table creation for the target disk.

Writes a fresh msdos partition table holding a single bootable "solaris"
partition that spans the whole disk. Any previous table is discarded.

Steps:
    1. Device handle: the whole-disk device node must exist
    2. Table type lookup: the label type must be one parted knows
    3. Fresh table: parted mklabel
    4. Partition: parted mkpart over the full addressable range
    5. Active flag: parted set 1 boot on
    6. Commit: parted print must read back the new table

Nothing is rolled back. If a step fails the disk is left as the failing
command left it, and needs operator attention before it can be reused.

Example:
    >>> from schillix_installer.storage.partition import partition
    >>> partition(Disk("c0t0d0"))
    True
"""

from schillix_installer.config import settings
from schillix_installer.domain import Disk
from schillix_installer.logging import LoggerFactory

from .devices import device_exists, run_checked_command
from .exceptions import CommandError, PartitionError


log = LoggerFactory.for_disk()

PARTITION_TABLE_TYPE = "msdos"
PARTITION_FS_TYPE = "solaris"

# Label types accepted by parted mklabel
KNOWN_TABLE_TYPES = {"aix", "amiga", "bsd", "dvh", "gpt", "mac", "msdos", "pc98", "sun", "loop"}


def _parted(device_path: str, *args: str) -> str:
    return run_checked_command([settings.get_command("parted"), "-s", device_path, *args])


def _run_step(device_path: str, step: str, *args: str) -> str:
    log.debug(f"{step.capitalize()} on {device_path}")
    try:
        return _parted(device_path, *args)
    except CommandError as error:
        raise PartitionError(device_path, step, error.stderr or str(error)) from error


def create_root_partition(disk: Disk, table_type: str = PARTITION_TABLE_TYPE) -> None:
    """Write a single active partition spanning the disk.

    Raises:
        PartitionError: Naming the step that failed
    """
    device_path = disk.whole_disk_path

    if not device_exists(device_path):
        raise PartitionError(device_path, "get device handle", "device node does not exist")

    if table_type not in KNOWN_TABLE_TYPES:
        raise PartitionError(device_path, "get disk type handle", f"unknown label type {table_type}")

    _run_step(device_path, "create partition table", "mklabel", table_type)
    _run_step(
        device_path,
        "add partition to disk",
        "mkpart",
        "primary",
        PARTITION_FS_TYPE,
        "0%",
        "100%",
    )
    _run_step(device_path, "set partition as active", "set", "1", "boot", "on")
    _run_step(device_path, "commit changes to disk", "print")


def partition(disk: Disk) -> bool:
    """Partition the disk for a root pool.

    Returns:
        True on success, False on failure
    """
    try:
        create_root_partition(disk)
    except PartitionError as error:
        log.error(f"Unable to create boot partition: {error}")
        return False
    log.info(f"Created {PARTITION_TABLE_TYPE} boot partition on {disk.whole_disk_path}")
    return True
