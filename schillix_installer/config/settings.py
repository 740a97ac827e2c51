"""Settings storage for installer configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "SCHILLIX_INSTALL_SETTINGS_PATH",
        Path.home() / ".config" / "schillix-install" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_RPOOL_NAME = "rpool"
DEFAULT_MNT_POINT = "/mnt"
DEFAULT_CDROM_PATH = "/.cdrom"
DEFAULT_OS_NAME = "schillix"
DEFAULT_DISK_DIR = "/dev/rdsk"

# How to deal with zpool create not applying the root dataset mountpoint
MOUNTPOINT_WORKAROUND_MODES = ("auto", "always", "never")

DEFAULT_SETTINGS: dict[str, Any] = {
    "rpool_name": DEFAULT_RPOOL_NAME,
    "temp_mount": DEFAULT_MNT_POINT,
    "cdrom_path": DEFAULT_CDROM_PATH,
    "os_name": DEFAULT_OS_NAME,
    "disk_dir": DEFAULT_DISK_DIR,
    "root_mountpoint_workaround": "auto",
    "post_install": True,
    "export_pool": True,
    "parted_command": "/usr/sbin/parted",
    "prtvtoc_command": "/usr/sbin/prtvtoc",
    "fmthard_command": "/usr/sbin/fmthard",
    "zdb_command": "/usr/sbin/zdb",
    "zpool_command": "/usr/sbin/zpool",
    "zfs_command": "/usr/sbin/zfs",
    "installgrub_command": "/usr/sbin/installgrub",
    "devfsadm_command": "/usr/sbin/devfsadm",
    "bootadm_command": "/usr/sbin/bootadm",
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def get_command(tool: str) -> str:
    """Return the configured path of an external tool (e.g. "zpool")."""
    return str(get_setting(f"{tool}_command", DEFAULT_SETTINGS.get(f"{tool}_command", tool)))


def get_workaround_mode() -> str:
    mode = str(get_setting("root_mountpoint_workaround", "auto")).lower()
    if mode not in MOUNTPOINT_WORKAROUND_MODES:
        return "auto"
    return mode


load_settings()
