"""Root dataset hierarchy.

    <pool>/ROOT                       legacy, container for boot environments
    <pool>/ROOT/<osname>              /
    <pool>/export                     /export
    <pool>/export/home                /export/home
    <pool>/export/home/<osname>       /export/home/<osname>

Datasets are created in this order so a child's mountpoint is always
created after the parent that will contain it.
"""

from __future__ import annotations

from typing import Iterable, Optional

from schillix_installer.config import settings
from schillix_installer.domain import DatasetSpec, root_datasets
from schillix_installer.logging import LoggerFactory
from schillix_installer.storage.devices import run_checked_command
from schillix_installer.storage.exceptions import CommandError, DatasetCreateError


log = LoggerFactory.for_pool()


def create_dataset(pool_name: str, spec: DatasetSpec) -> str:
    """Create one dataset with its mountpoint property.

    Raises:
        DatasetCreateError: Naming the dataset that failed
    """
    full_name = spec.full_name(pool_name)
    try:
        run_checked_command(
            [
                settings.get_command("zfs"),
                "create",
                "-o",
                f"mountpoint={spec.mountpoint}",
                full_name,
            ]
        )
    except CommandError as error:
        raise DatasetCreateError(full_name, error.stderr or str(error)) from error
    log.debug(f"Created {full_name} (mountpoint={spec.mountpoint})")
    return full_name


def create_root_datasets(
    pool_name: str, os_name: str, specs: Optional[Iterable[DatasetSpec]] = None
) -> list[str]:
    """Create the dataset tree. Stops at the first failure."""
    created = []
    for spec in specs if specs is not None else root_datasets(os_name):
        created.append(create_dataset(pool_name, spec))
    return created


def create_datasets(pool_name: str, os_name: str) -> bool:
    """Create the root datasets.

    Returns:
        True on success, False on failure
    """
    try:
        created = create_root_datasets(pool_name, os_name)
    except DatasetCreateError as error:
        log.error(f"Unable to create root datasets: {error}")
        return False
    log.info(f"Created {len(created)} datasets in {pool_name}")
    return True
