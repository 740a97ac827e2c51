"""External command execution and device node helpers.

Every change the installer makes to the disk goes through one of the
platform's administration tools (parted, prtvtoc, fmthard, zdb, zpool,
zfs). This module runs them with argument lists, logs the command line and
its output, and turns failures into CommandError.

Operations:
    - run_command(): Run a command, optionally raising CalledProcessError
    - run_checked_command(): Run a command and raise CommandError on failure
    - device_exists(): Check whether a device node is present
    - format_disk_label(): Human-readable disk label for messages
"""
import os
import subprocess
from typing import Optional, Sequence

from schillix_installer.logging import LoggerFactory

from .exceptions import CommandError


log = LoggerFactory.for_system()


def run_command(command, check=True, log_output=True, log_command=True, input_text=None):
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command,
            check=check,
            text=True,
            errors="replace",
            capture_output=True,
            input=input_text,
        )
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result


def run_checked_command(
    command: Sequence[str], input_text: Optional[str] = None, log_output: bool = True
) -> str:
    """Run a command and raise CommandError if it fails or cannot be started.

    Returns:
        The command's stdout
    """
    try:
        result = run_command(
            list(command), check=False, log_output=log_output, input_text=input_text
        )
    except OSError as error:
        # Missing binary or permission problem: report it like a failed command
        raise CommandError(command, 127, str(error)) from error
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        stdout = (result.stdout or "").strip()
        raise CommandError(command, result.returncode, stderr or stdout)
    return result.stdout or ""


def device_exists(device_path: str) -> bool:
    return os.path.exists(device_path)


def format_disk_label(disk) -> str:
    name = getattr(disk, "name", None) or str(disk or "")
    device = getattr(disk, "whole_disk_path", None)
    if device:
        return f"{name} ({device})"
    return name
