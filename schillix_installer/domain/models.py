"""Domain model for the installer.

Type-safe objects for the disk, its slice table, the pool layout and the
entries of the live image being replicated, replacing raw strings and
path arithmetic.
"""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional


# ==============================================================================
# Disk Domain
# ==============================================================================


# Partition identification tags and permission flags from sys/vtoc.h
V_UNASSIGNED = 0
V_BOOT = 1
V_ROOT = 2
V_BACKUP = 5

V_UNMNT = 0x01

V_NUMPAR = 16

ROOT_SLICE = 0
BACKUP_SLICE = 2
BOOT_SLICE = 8


def is_sparc() -> bool:
    return platform.processor() == "sparc"


@dataclass(frozen=True)
class Disk:
    """A target disk addressed by its platform device name.

    Slice and whole-disk device paths are derived from the name; the disk
    itself is only ever mutated in place.
    """

    name: str  # e.g., "c0t0d0"
    device_dir: str = "/dev/rdsk"
    sparc: bool = False

    @property
    def whole_disk_path(self) -> str:
        """Device covering the entire disk (p0 on x86, backup slice on SPARC)."""
        if self.sparc:
            return self.slice_path(BACKUP_SLICE)
        return f"{self.device_dir}/{self.name}p0"

    def slice_path(self, index: int) -> str:
        return f"{self.device_dir}/{self.name}s{index}"

    @property
    def root_slice_path(self) -> str:
        return self.slice_path(ROOT_SLICE)

    @classmethod
    def from_argument(
        cls, value: str, device_dir: str = "/dev/rdsk", sparc: Optional[bool] = None
    ) -> Disk:
        """Build a Disk from a device name or a full device path.

        Accepts "c0t0d0", "/dev/rdsk/c0t0d0", "/dev/dsk/c0t0d0s0" or
        "/dev/rdsk/c0t0d0p0"; any trailing slice/partition suffix is dropped.
        """
        name = os.path.basename(value.rstrip("/"))
        if not name:
            raise ValueError(f"Invalid disk name: {value!r}")
        for marker in ("s", "p"):
            head, sep, tail = name.rpartition(marker)
            if sep and head and tail.isdigit() and head[-1].isdigit():
                name = head
                break
        return cls(
            name=name,
            device_dir=device_dir,
            sparc=is_sparc() if sparc is None else sparc,
        )


@dataclass(frozen=True)
class DiskGeometry:
    """Disk geometry as reported by the disk driver."""

    heads: int
    sectors_per_track: int
    cylinders: int

    @property
    def cylinder_size(self) -> int:
        """Sectors per cylinder."""
        return self.heads * self.sectors_per_track

    @property
    def disk_size(self) -> int:
        """Total addressable sectors."""
        return self.cylinders * self.heads * self.sectors_per_track


@dataclass(frozen=True)
class SliceEntry:
    tag: int = V_UNASSIGNED
    flag: int = 0
    start: int = 0
    size: int = 0


@dataclass(frozen=True)
class Vtoc:
    """Volume table of contents: a fixed array of V_NUMPAR slice entries."""

    slices: tuple[SliceEntry, ...] = field(
        default_factory=lambda: tuple(SliceEntry() for _ in range(V_NUMPAR))
    )

    def __post_init__(self) -> None:
        if len(self.slices) != V_NUMPAR:
            raise ValueError(
                f"A VTOC has exactly {V_NUMPAR} slices, got {len(self.slices)}"
            )

    def __getitem__(self, index: int) -> SliceEntry:
        return self.slices[index]

    def with_root_layout(self, geometry: DiskGeometry) -> Vtoc:
        """Return a copy laid out for a ZFS root pool.

        Slice 0 holds the pool from the second cylinder to the end, slice 2
        covers the whole disk and slice 8 the boot cylinder. Every other slot
        is cleared, including any previous assignments.
        """
        cylinder_size = geometry.cylinder_size
        disk_size = geometry.disk_size
        slices = [SliceEntry() for _ in range(V_NUMPAR)]
        slices[ROOT_SLICE] = SliceEntry(
            tag=V_ROOT, flag=0, start=cylinder_size, size=disk_size - cylinder_size
        )
        slices[BACKUP_SLICE] = SliceEntry(
            tag=V_BACKUP, flag=V_UNMNT, start=0, size=disk_size
        )
        slices[BOOT_SLICE] = SliceEntry(
            tag=V_BOOT, flag=V_UNMNT, start=0, size=cylinder_size
        )
        return Vtoc(slices=tuple(slices))


# ==============================================================================
# Pool Domain
# ==============================================================================


VDEV_TYPE_DISK = "disk"
VDEV_TYPE_ROOT = "root"

MOUNTPOINT_LEGACY = "legacy"


@dataclass(frozen=True)
class VdevSpec:
    """A leaf virtual device backing the pool."""

    path: str
    type: str = VDEV_TYPE_DISK

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("vdev path must not be empty")
        if self.type != VDEV_TYPE_DISK:
            raise ValueError(f"Unsupported vdev type: {self.type}")


@dataclass(frozen=True)
class VdevRoot:
    """Root of the vdev tree; a single plain disk (no mirrors)."""

    children: tuple[VdevSpec, ...]
    type: str = VDEV_TYPE_ROOT

    def __post_init__(self) -> None:
        if len(self.children) != 1:
            raise ValueError("A root pool is built from exactly one vdev")

    def to_args(self) -> list[str]:
        return [child.path for child in self.children]


@dataclass(frozen=True)
class DatasetSpec:
    """A dataset to create, relative to the pool, with its mountpoint."""

    name: str  # e.g., "ROOT/schillix"
    mountpoint: str

    def full_name(self, pool_name: str) -> str:
        return f"{pool_name}/{self.name}"


def root_dataset_name(pool_name: str, os_name: str) -> str:
    """Full name of the dataset mounted at / on the installed system."""
    return f"{pool_name}/ROOT/{os_name}"


def root_datasets(os_name: str) -> tuple[DatasetSpec, ...]:
    """Fixed dataset layout, parents strictly before children."""
    return (
        DatasetSpec("ROOT", MOUNTPOINT_LEGACY),
        DatasetSpec(f"ROOT/{os_name}", "/"),
        DatasetSpec("export", "/export"),
        DatasetSpec("export/home", "/export/home"),
        DatasetSpec(f"export/home/{os_name}", f"/export/home/{os_name}"),
    )


# ==============================================================================
# Replication Domain
# ==============================================================================


class EntryKind(Enum):
    """Kind of a filesystem entry met during traversal."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"


@dataclass(frozen=True)
class TreeEntry:
    """One entry of the source tree, produced by the walker."""

    kind: EntryKind
    path: Path  # absolute path under the source root
    relative: PurePosixPath  # path relative to the source root ("." for the root)
    depth: int
    stat: os.stat_result

    @property
    def mode(self) -> int:
        """Permission bits including setuid/setgid/sticky."""
        return self.stat.st_mode & 0o7777


@dataclass(frozen=True)
class ReplicationContext:
    """Immutable parameters shared by every step of a replication run."""

    source_root: Path
    dest_root: Path
    pool_name: str
    os_name: str

    def destination_for(self, entry: TreeEntry) -> Path:
        if entry.relative == PurePosixPath("."):
            return self.dest_root
        return self.dest_root / entry.relative


# ==============================================================================
# Pipeline Domain
# ==============================================================================


@dataclass(frozen=True)
class InstallRequest:
    """Everything the pipeline needs to provision one disk."""

    disk: Disk
    source_root: Path
    staging_root: Path
    pool_name: str
    os_name: str


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of a pipeline run."""

    success: bool
    completed_stages: tuple[str, ...] = ()
    failed_stage: Optional[str] = None

    @property
    def message(self) -> str:
        if self.success:
            return f"Completed {len(self.completed_stages)} stages"
        return f"Stopped at stage {self.failed_stage}"
