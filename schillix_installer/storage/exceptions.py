"""Custom exceptions for installer operations.

This module defines a hierarchy of exceptions for the provisioning stages to
provide more specific error handling and better error messages.

Exception Hierarchy:
    InstallerError (base)
        ├── CommandError
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   ├── DeviceBusyError
        │   └── DeviceValidationError
        ├── PartitionError
        ├── SliceError
        │   ├── GeometryReadError
        │   ├── VtocReadError
        │   └── VtocWriteError
        ├── PoolError
        │   ├── PoolCreateError
        │   ├── PoolOpenError
        │   ├── PoolOperationError
        │   └── DatasetCreateError
        ├── ReplicationError
        │   ├── SourceTreeError
        │   ├── EntryCopyError
        │   └── UnsupportedEntryError
        └── PostInstallError

Usage:
    from schillix_installer.storage.exceptions import DeviceBusyError

    if pool_name:
        raise DeviceBusyError(disk.name, f"member of pool {pool_name}")
"""

from typing import Optional, Sequence


class InstallerError(Exception):
    """Base exception for all installer operations."""



class CommandError(InstallerError):
    """An external administration tool exited with an error."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({' '.join(self.command)}) with code {returncode}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class DeviceError(InstallerError):
    """Base exception for device-related errors."""



class DeviceNotFoundError(DeviceError):
    """Device node does not exist."""

    def __init__(self, device_path: str):
        self.device_path = device_path
        super().__init__(f"Device not found: {device_path}")


class DeviceBusyError(DeviceError):
    """Device is in use and must not be touched."""

    def __init__(self, device_name: str, reason: str = ""):
        self.device_name = device_name
        self.reason = reason
        msg = f"Device {device_name} is in use"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DeviceValidationError(DeviceError):
    """Device failed validation checks."""

    def __init__(self, device_name: str, reason: str):
        self.device_name = device_name
        self.reason = reason
        super().__init__(f"Device validation failed for {device_name}: {reason}")


class PartitionError(InstallerError):
    """Writing the partition table failed at the named step."""

    def __init__(self, device_path: str, step: str, reason: str = ""):
        self.device_path = device_path
        self.step = step
        self.reason = reason
        msg = f"Unable to {step} on {device_path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SliceError(InstallerError):
    """Base exception for slice table (VTOC) errors."""

    def __init__(self, device_path: str, reason: str = ""):
        self.device_path = device_path
        self.reason = reason
        msg = f"{self.action} failed for {device_path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    action = "Slice table update"


class GeometryReadError(SliceError):
    """Disk geometry could not be read."""

    action = "Reading disk geometry"


class VtocReadError(SliceError):
    """The existing VTOC could not be read."""

    action = "Reading VTOC"


class VtocWriteError(SliceError):
    """The new VTOC could not be written."""

    action = "Writing VTOC"


class PoolError(InstallerError):
    """Base exception for zpool errors."""

    def __init__(self, pool_name: str, reason: str = ""):
        self.pool_name = pool_name
        self.reason = reason
        msg = f"{self.action} {pool_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    action = "Pool operation failed for"


class PoolCreateError(PoolError):
    """The pool could not be created."""

    action = "Unable to create pool"


class PoolOpenError(PoolError):
    """The pool could not be opened."""

    action = "Unable to open pool"


class PoolOperationError(PoolError):
    """An operation on an open pool failed."""

    def __init__(self, pool_name: str, operation: str, reason: str = ""):
        self.operation = operation
        self.action = f"Unable to {operation} on pool"
        super().__init__(pool_name, reason)


class DatasetCreateError(PoolError):
    """A dataset could not be created."""

    action = "Unable to create dataset"

    def __init__(self, dataset: str, reason: str = ""):
        self.dataset = dataset
        super().__init__(dataset, reason)
        self.pool_name = dataset.split("/", 1)[0]


class ReplicationError(InstallerError):
    """Base exception for live image replication."""



class SourceTreeError(ReplicationError):
    """The live image root is missing or unreadable."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Unable to read source tree {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EntryCopyError(ReplicationError):
    """Materializing one entry at the destination failed."""

    def __init__(self, path: str, operation: str, reason: str = ""):
        self.path = path
        self.operation = operation
        self.reason = reason
        msg = f"Unable to {operation} {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UnsupportedEntryError(ReplicationError):
    """Traversal met an entry that is not a file, directory or symlink."""

    def __init__(self, path: str, kind: Optional[str] = None):
        self.path = path
        self.kind = kind
        detail = f" ({kind})" if kind else ""
        super().__init__(f"Unsupported file type{detail}: {path}")


class PostInstallError(InstallerError):
    """A post-install collaborator failed."""

    def __init__(self, step: str, reason: str = ""):
        self.step = step
        self.reason = reason
        msg = f"{step} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
