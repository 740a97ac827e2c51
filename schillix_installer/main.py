import argparse
import os
import sys
from pathlib import Path

from schillix_installer import __version__
from schillix_installer.config import settings
from schillix_installer.domain import Disk, InstallRequest
from schillix_installer.logging import LoggerFactory, setup_logging
from schillix_installer.pipeline import run_install


ZPOOL_MAXNAMELEN = 256


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schillix-install",
        description="Installer for Schillix: copy the live image onto a ZFS root disk",
    )
    parser.add_argument("disks", nargs="*", metavar="DISK", help="/path/to/disk or devname")
    parser.add_argument(
        "-r",
        "--rpool",
        default=settings.get_setting("rpool_name", settings.DEFAULT_RPOOL_NAME),
        help="name of the new rpool (default: %(default)s)",
    )
    parser.add_argument(
        "-m",
        "--mount",
        default=settings.get_setting("temp_mount", settings.DEFAULT_MNT_POINT),
        help="temporary mountpoint (default: %(default)s)",
    )
    parser.add_argument(
        "-c",
        "--cdrom",
        default=settings.get_setting("cdrom_path", settings.DEFAULT_CDROM_PATH),
        help="path to livecd contents (default: %(default)s)",
    )
    parser.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")
    parser.add_argument(
        "--no-post-install",
        action="store_true",
        help="stop after copying files (skip boot loader, devices and boot archive)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log every replicated file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def confirm(disk_name: str, input_func=input) -> bool:
    """Ask until the answer is y or n. End of input counts as no."""
    prompt = f"All data on {disk_name} will be destroyed. Continue? [yn] "
    while True:
        try:
            answer = input_func(prompt).strip().lower()
        except EOFError:
            return False
        if answer in ("y", "n"):
            return answer == "y"
        prompt = "Continue? [yn] "


def _usage_error(parser: argparse.ArgumentParser, message: str) -> int:
    parser.print_usage(sys.stderr)
    print(f"Error: {message}", file=sys.stderr)
    return 1


def main(argv=None, input_func=input) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.disks:
        return _usage_error(parser, "No disk specified")
    if len(args.disks) > 1:
        return _usage_error(parser, "Please specify only one disk")
    if len(args.rpool) >= ZPOOL_MAXNAMELEN:
        return _usage_error(parser, "rpool name too long")

    setup_logging(debug=args.debug, trace=args.trace)
    log = LoggerFactory.for_system()

    try:
        with os.scandir(args.cdrom):
            pass
    except OSError as error:
        return _usage_error(parser, f"unable to open {args.cdrom}: {error.strerror or error}")

    try:
        disk = Disk.from_argument(
            args.disks[0], settings.get_setting("disk_dir", settings.DEFAULT_DISK_DIR)
        )
    except ValueError as error:
        return _usage_error(parser, str(error))

    if not args.yes and not confirm(args.disks[0], input_func):
        log.warning("User aborted format")
        return 1

    request = InstallRequest(
        disk=disk,
        source_root=Path(args.cdrom),
        staging_root=Path(args.mount),
        pool_name=args.rpool,
        os_name=settings.get_setting("os_name", settings.DEFAULT_OS_NAME),
    )
    result = run_install(request, post_install=False if args.no_post_install else None)
    if not result.success:
        log.error(f"Installation failed at {result.failed_stage}")
        return 1
    log.success(f"Installed to {disk.name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
