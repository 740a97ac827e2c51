"""Post-install steps: pool GRUB directory, boot loader, devices, boot archive."""

from .finalize import install_bootloader, reconcile_devices, update_boot_archive
from .pool_boot import install_pool_boot_files

__all__ = [
    "install_bootloader",
    "install_pool_boot_files",
    "reconcile_devices",
    "update_boot_archive",
]
