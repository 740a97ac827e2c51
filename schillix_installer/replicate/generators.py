"""Fixed content for files that must describe the new system, not the live image.

The live image carries its own boot environment, GRUB menu and vfstab,
all describing the CD. When the replicator meets one of these paths it
writes the text produced here instead of copying the source bytes. The
source file is never read.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Callable, Dict, Optional

from schillix_installer.domain import ReplicationContext, root_dataset_name


Generator = Callable[[ReplicationContext], str]

BOOTENV_PROPERTIES = (
    ("ata-dma-enabled", "1"),
    ("atapi-cd-dma-enabled", "0"),
    ("ttyb-rts-dtr-off", "false"),
    ("ttyb-ignore-cd", "true"),
    ("ttya-rts-dtr-off", "false"),
    ("ttya-ignore-cd", "true"),
    ("ttyb-mode", "9600,8,n,1,-"),
    ("ttya-mode", "9600,8,n,1,-"),
    ("lba-access-ok", "1"),
    ("prealloc-chunk-size", "0x2000"),
    ("console", "text"),
)

VFSTAB_ENTRIES = (
    ("/devices", "-", "/devices", "devfs", "-", "no", "-"),
    ("/proc", "-", "/proc", "proc", "-", "no", "-"),
    ("ctfs", "-", "/system/contract", "ctfs", "-", "no", "-"),
    ("objfs", "-", "/system/object", "objfs", "-", "no", "-"),
    ("sharefs", "-", "/etc/dfs/sharetab", "sharefs", "-", "no", "-"),
    ("fd", "-", "/dev/fd", "fd", "-", "no", "-"),
    ("swap", "-", "/tmp", "tmpfs", "-", "yes", "-"),
)


def generate_bootenv(context: ReplicationContext) -> str:
    lines = ["#", "# bootenv.rc -- boot \"environment variables\"", "#"]
    lines.extend(f"setprop {name} '{value}'" for name, value in BOOTENV_PROPERTIES)
    return "\n".join(lines) + "\n"


def _boot_stanza(title: str, context: ReplicationContext, kernel_args: str) -> list[str]:
    return [
        f"title {title}",
        f"findroot (pool_{context.pool_name},0,a)",
        f"bootfs {root_dataset_name(context.pool_name, context.os_name)}",
        f"kernel$ /platform/i86pc/kernel/$ISADIR/unix -B {kernel_args}",
        "module$ /platform/i86pc/$ISADIR/boot_archive",
    ]


def generate_menu(context: ReplicationContext) -> str:
    """GRUB menu booting the root dataset, with a text console fallback."""
    title = context.os_name.capitalize()
    lines = [
        "default 0",
        "timeout 10",
        "splashimage /boot/grub/splash.xpm.gz",
        "foreground 343434",
        "background F7FBFF",
        "",
    ]
    lines.extend(_boot_stanza(title, context, "$ZFS-BOOTFS"))
    lines.append("")
    lines.extend(_boot_stanza(f"{title} (text console)", context, "$ZFS-BOOTFS,console=text"))
    return "\n".join(lines) + "\n"


def generate_vfstab(context: ReplicationContext) -> str:
    lines = [
        "#device\t\tdevice\t\tmount\t\tFS\tfsck\tmount\tmount",
        "#to mount\tto fsck\t\tpoint\t\ttype\tpass\tat boot\toptions",
        "#",
    ]
    lines.extend("\t".join(entry) for entry in VFSTAB_ENTRIES)
    return "\n".join(lines) + "\n"


DIVERTED_FILES: Dict[PurePosixPath, Generator] = {
    PurePosixPath("boot/solaris/bootenv.rc"): generate_bootenv,
    PurePosixPath("boot/grub/menu.lst"): generate_menu,
    PurePosixPath("etc/vfstab"): generate_vfstab,
}


def generator_for(relative: PurePosixPath) -> Optional[Generator]:
    """Return the generator for a source-relative path, or None."""
    return DIVERTED_FILES.get(relative)
