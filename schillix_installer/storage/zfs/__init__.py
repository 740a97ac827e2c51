"""ZFS root pool and dataset provisioning.

Main Functions:
    - create_pool(): Create the root pool on slice 0
    - create_datasets(): Create the fixed dataset hierarchy
    - set_bootfs(): Mark the root dataset bootable
    - mount_all() / unmount_all(): Mount or unmount every dataset
    - export_pool(): Export the pool after installation
"""

from .datasets import create_dataset, create_datasets, create_root_datasets
from .pool import (
    ZpoolHandle,
    build_vdev_root,
    create_pool,
    create_root_pool,
    export_pool,
    mount_all,
    set_bootfs,
    unmount_all,
)

__all__ = [
    "ZpoolHandle",
    "build_vdev_root",
    "create_dataset",
    "create_datasets",
    "create_pool",
    "create_root_datasets",
    "create_root_pool",
    "export_pool",
    "mount_all",
    "set_bootfs",
    "unmount_all",
]
