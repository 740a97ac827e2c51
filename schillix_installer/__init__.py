"""Installer for Schillix: partition a disk, build a ZFS root pool and copy the live image onto it."""

from .__version__ import __version__

__all__ = ["__version__"]
