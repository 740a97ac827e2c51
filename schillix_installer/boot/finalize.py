"""Final steps that make the installed system bootable.

Each step hands off to the platform tool that owns it:

    install_bootloader   installgrub -mf <mnt>/boot/grub/stage1 <mnt>/boot/grub/stage2 <slice 0>
    reconcile_devices    devfsadm -r <mnt>
    update_boot_archive  bootadm update-archive -R <mnt>
"""

from __future__ import annotations

from pathlib import Path

from schillix_installer.config import settings
from schillix_installer.domain import Disk
from schillix_installer.logging import LoggerFactory
from schillix_installer.storage.devices import run_checked_command
from schillix_installer.storage.exceptions import CommandError, PostInstallError


log = LoggerFactory.for_boot()


def _run_tool(step: str, command: list[str]) -> None:
    try:
        run_checked_command(command)
    except CommandError as error:
        raise PostInstallError(step, error.stderr or str(error)) from error


def bootloader_command(staging_root, disk: Disk) -> list[str]:
    grub_dir = Path(staging_root) / "boot" / "grub"
    return [
        settings.get_command("installgrub"),
        "-mf",
        str(grub_dir / "stage1"),
        str(grub_dir / "stage2"),
        disk.root_slice_path,
    ]


def install_bootloader(staging_root, disk: Disk) -> bool:
    """Write GRUB stage1/stage2 to the root slice and the master boot record."""
    try:
        _run_tool("installgrub", bootloader_command(staging_root, disk))
    except PostInstallError as error:
        log.error(f"Unable to install boot loader: {error}")
        return False
    log.info(f"Installed GRUB on {disk.root_slice_path}")
    return True


def reconcile_devices(staging_root) -> bool:
    """Rebuild /dev and /devices of the new root for the current hardware."""
    try:
        _run_tool("devfsadm", [settings.get_command("devfsadm"), "-r", str(staging_root)])
    except PostInstallError as error:
        log.error(f"Unable to configure device nodes: {error}")
        return False
    log.info(f"Reconciled device nodes under {staging_root}")
    return True


def update_boot_archive(staging_root) -> bool:
    try:
        _run_tool(
            "bootadm",
            [settings.get_command("bootadm"), "update-archive", "-R", str(staging_root)],
        )
    except PostInstallError as error:
        log.error(f"Unable to update boot archive: {error}")
        return False
    log.info(f"Updated boot archive under {staging_root}")
    return True
