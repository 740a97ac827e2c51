"""Slice table (VTOC) layout for a ZFS root disk.

After partitioning, the Solaris partition is divided into slices:

    slice 0  root    cylinder 1 to the end of the disk (holds the pool)
    slice 2  backup  the whole disk
    slice 8  boot    the first cylinder

Every other slot is cleared. Sizes are in sectors and derive from the disk
geometry (cylinder size = heads x sectors per track).

Geometry and the current table are read with prtvtoc; the complete new
table is written back in a single fmthard call, fed the same datafile
format prtvtoc prints.
"""

from __future__ import annotations

import errno
import os
import re

from schillix_installer.config import settings
from schillix_installer.domain import V_NUMPAR, Disk, DiskGeometry, SliceEntry, Vtoc
from schillix_installer.logging import LoggerFactory

from .devices import run_checked_command
from .exceptions import (
    CommandError,
    GeometryReadError,
    SliceError,
    VtocReadError,
    VtocWriteError,
)


log = LoggerFactory.for_disk()

_DIMENSION_PATTERN = re.compile(r"^\*\s+(\d+)\s+([a-z /]+?)\s*$", re.MULTILINE)


def parse_geometry(output: str, device_path: str = "") -> DiskGeometry:
    """Extract the disk geometry from the "Dimensions" block of prtvtoc.

    The data cylinder count ("accessible cylinders") is preferred over the
    physical one, matching what the disk driver reports as usable.

    Raises:
        GeometryReadError: If a dimension is missing or zero
    """
    dimensions = {label: int(value) for value, label in _DIMENSION_PATTERN.findall(output)}
    try:
        heads = dimensions["tracks/cylinder"]
        sectors = dimensions["sectors/track"]
        cylinders = dimensions.get("accessible cylinders", dimensions["cylinders"])
    except KeyError as error:
        raise GeometryReadError(device_path, f"missing {error.args[0]}") from error
    if not heads or not sectors or not cylinders:
        raise GeometryReadError(device_path, "geometry has a zero dimension")
    return DiskGeometry(heads=heads, sectors_per_track=sectors, cylinders=cylinders)


def parse_vtoc(output: str, device_path: str = "") -> Vtoc:
    """Parse the partition lines printed by prtvtoc into a Vtoc.

    Raises:
        VtocReadError: If a line is malformed or names an invalid slice
    """
    slices = [SliceEntry() for _ in range(V_NUMPAR)]
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("*"):
            continue
        fields = line.split()
        try:
            index = int(fields[0])
            tag = int(fields[1])
            flag = int(fields[2], 16)
            start = int(fields[3])
            size = int(fields[4])
        except (IndexError, ValueError) as error:
            raise VtocReadError(device_path, f"unexpected line {line!r}") from error
        if not 0 <= index < V_NUMPAR:
            raise VtocReadError(device_path, f"slice {index} out of range")
        slices[index] = SliceEntry(tag=tag, flag=flag, start=start, size=size)
    return Vtoc(slices=tuple(slices))


def format_vtoc(vtoc: Vtoc, device_path: str = "") -> str:
    """Render a Vtoc as an fmthard datafile covering all slots."""
    lines = [f"* {device_path} root pool layout", "* Partition Tag Flags First-Sector Sector-Count"]
    for index, entry in enumerate(vtoc.slices):
        lines.append(f"{index} {entry.tag} {entry.flag:02x} {entry.start} {entry.size}")
    return "\n".join(lines) + "\n"


def read_disk_label(device_path: str) -> tuple[DiskGeometry, Vtoc]:
    """Read geometry and the existing slice table of a disk.

    Raises:
        GeometryReadError: If the geometry cannot be read
        VtocReadError: If the slice table cannot be read
    """
    try:
        output = run_checked_command(
            [settings.get_command("prtvtoc"), device_path], log_output=False
        )
    except CommandError as error:
        if "geometry" in (error.stderr or "").lower():
            raise GeometryReadError(device_path, error.stderr) from error
        raise VtocReadError(device_path, error.stderr or str(error)) from error
    return parse_geometry(output, device_path), parse_vtoc(output, device_path)


def write_vtoc(device_path: str, vtoc: Vtoc) -> None:
    """Write the whole slice table in one call.

    Raises:
        VtocWriteError: If fmthard rejects the table
    """
    try:
        run_checked_command(
            [settings.get_command("fmthard"), "-s", "-", device_path],
            input_text=format_vtoc(vtoc, device_path),
        )
    except CommandError as error:
        raise VtocWriteError(device_path, error.stderr or str(error)) from error


def create_root_vtoc(disk: Disk) -> Vtoc:
    """Lay out the root slices on a freshly partitioned disk.

    Returns:
        The table that was written

    Raises:
        SliceError: Or one of its subclasses naming the failing step
    """
    device_path = disk.whole_disk_path
    try:
        fd = os.open(device_path, os.O_RDWR)
    except OSError as error:
        reason = os.strerror(error.errno) if error.errno else str(error)
        if error.errno == errno.ENOENT:
            reason = "device node does not exist"
        raise SliceError(device_path, f"unable to open disk for VTOC changes: {reason}") from error

    try:
        geometry, current = read_disk_label(device_path)
        log.debug(
            f"Geometry of {device_path}: {geometry.heads} heads, "
            f"{geometry.sectors_per_track} sectors/track, {geometry.cylinders} cylinders"
        )
        vtoc = current.with_root_layout(geometry)
        write_vtoc(device_path, vtoc)
    finally:
        os.close(fd)
    return vtoc


def slice_disk(disk: Disk) -> bool:
    """Create the slices needed for a ZFS root filesystem.

    Returns:
        True on success, False on failure
    """
    try:
        vtoc = create_root_vtoc(disk)
    except SliceError as error:
        log.error(f"Unable to create new slices on disk: {error}")
        return False
    log.info(
        f"Wrote VTOC to {disk.whole_disk_path}: root slice starts at sector "
        f"{vtoc[0].start}, {vtoc[0].size} sectors"
    )
    return True
