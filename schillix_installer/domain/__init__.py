"""Domain models for the installer."""

from .models import (
    BACKUP_SLICE,
    BOOT_SLICE,
    MOUNTPOINT_LEGACY,
    ROOT_SLICE,
    V_BACKUP,
    V_BOOT,
    V_NUMPAR,
    V_ROOT,
    V_UNASSIGNED,
    V_UNMNT,
    DatasetSpec,
    Disk,
    DiskGeometry,
    EntryKind,
    InstallRequest,
    PipelineResult,
    ReplicationContext,
    SliceEntry,
    TreeEntry,
    VdevRoot,
    VdevSpec,
    Vtoc,
    root_dataset_name,
    root_datasets,
)

__all__ = [
    "BACKUP_SLICE",
    "BOOT_SLICE",
    "MOUNTPOINT_LEGACY",
    "ROOT_SLICE",
    "V_BACKUP",
    "V_BOOT",
    "V_NUMPAR",
    "V_ROOT",
    "V_UNASSIGNED",
    "V_UNMNT",
    "DatasetSpec",
    "Disk",
    "DiskGeometry",
    "EntryKind",
    "InstallRequest",
    "PipelineResult",
    "ReplicationContext",
    "SliceEntry",
    "TreeEntry",
    "VdevRoot",
    "VdevSpec",
    "Vtoc",
    "root_dataset_name",
    "root_datasets",
]
