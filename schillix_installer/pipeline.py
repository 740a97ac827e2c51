"""Install pipeline: the ordered stages that turn a blank disk into a bootable system.

    validate-source -> validate-unused -> partition -> slice -> create-pool
    -> create-datasets -> set-bootfs -> mount-all -> replicate

and, when post-install is enabled:

    -> pool-boot-files -> install-bootloader -> reconcile-devices
    -> update-boot-archive -> unmount-all [-> export-pool]

Stages run strictly in order. The first stage that fails stops the run
and is named in the result. Earlier stages are not undone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from schillix_installer.boot import (
    install_bootloader,
    install_pool_boot_files,
    reconcile_devices,
    update_boot_archive,
)
from schillix_installer.config import settings
from schillix_installer.domain import InstallRequest, PipelineResult, ReplicationContext
from schillix_installer.logging import EventLogger, LoggerFactory, operation_context
from schillix_installer.replicate import replicate
from schillix_installer.storage.devices import format_disk_label
from schillix_installer.storage.exceptions import InstallerError
from schillix_installer.storage.partition import partition
from schillix_installer.storage.validation import validate_source_tree, validate_unused
from schillix_installer.storage.vtoc import slice_disk
from schillix_installer.storage.zfs import (
    create_datasets,
    create_pool,
    export_pool,
    mount_all,
    set_bootfs,
    unmount_all,
)


log = LoggerFactory.for_pipeline()


@dataclass(frozen=True)
class Stage:
    name: str
    description: str
    run: Callable[[], bool]


class _StageFailed(Exception):
    pass


def build_stages(request: InstallRequest, post_install: bool = True) -> List[Stage]:
    """Bind every stage to the request, in execution order."""
    disk = request.disk
    pool = request.pool_name
    staging = request.staging_root
    context = ReplicationContext(
        source_root=request.source_root,
        dest_root=staging,
        pool_name=pool,
        os_name=request.os_name,
    )

    stages = [
        Stage("validate-source", "live image is readable", lambda: validate_source_tree(request.source_root)),
        Stage("validate-unused", "disk is not in use", lambda: validate_unused(disk)),
        Stage("partition", "create boot partition", lambda: partition(disk)),
        Stage("slice", "create root slices", lambda: slice_disk(disk)),
        Stage("create-pool", "create root pool", lambda: create_pool(disk, pool, staging)),
        Stage("create-datasets", "create root datasets", lambda: create_datasets(pool, request.os_name)),
        Stage("set-bootfs", "set bootfs property", lambda: set_bootfs(pool, request.os_name)),
        Stage("mount-all", "mount root datasets", lambda: mount_all(pool)),
        Stage("replicate", "copy live image", lambda: replicate(request.source_root, staging, context)),
    ]

    if post_install:
        stages.extend(
            [
                Stage("pool-boot-files", "copy grub files to pool", lambda: install_pool_boot_files(staging, pool)),
                Stage("install-bootloader", "install boot loader", lambda: install_bootloader(staging, disk)),
                Stage("reconcile-devices", "configure device nodes", lambda: reconcile_devices(staging)),
                Stage("update-boot-archive", "update boot archive", lambda: update_boot_archive(staging)),
                Stage("unmount-all", "unmount root datasets", lambda: unmount_all(pool)),
            ]
        )
        if settings.get_bool("export_pool", default=True):
            stages.append(Stage("export-pool", "export root pool", lambda: export_pool(pool)))
    return stages


def run_stages(stages: List[Stage]) -> PipelineResult:
    """Run stages in order, stopping at the first failure."""
    completed: List[str] = []
    total = len(stages)

    for index, stage in enumerate(stages, start=1):
        EventLogger.log_stage_started(log, stage.name, index, total)
        try:
            with operation_context(stage.name, stage_index=index):
                if not stage.run():
                    raise _StageFailed(stage.description)
        except _StageFailed:
            EventLogger.log_stage_failed(log, stage.name, stage.description)
            return PipelineResult(False, tuple(completed), stage.name)
        except (InstallerError, OSError) as error:
            EventLogger.log_stage_failed(log, stage.name, f"{stage.description}: {error}")
            return PipelineResult(False, tuple(completed), stage.name)
        completed.append(stage.name)

    return PipelineResult(True, tuple(completed))


def run_install(request: InstallRequest, post_install: Optional[bool] = None) -> PipelineResult:
    """Install the live image onto the requested disk.

    Args:
        request: Disk, live image, staging mount, pool and OS names
        post_install: Run the boot loader and archive steps; defaults to
            the "post_install" setting

    Returns:
        PipelineResult naming the completed stages, or the stage that failed
    """
    if post_install is None:
        post_install = settings.get_bool("post_install", default=True)
    log.info(
        f"Installing {request.source_root} to {format_disk_label(request.disk)} "
        f"(pool {request.pool_name}, staging {request.staging_root})"
    )
    result = run_stages(build_stages(request, post_install))
    if result.success:
        log.success(result.message)
    else:
        log.error(result.message)
    return result
