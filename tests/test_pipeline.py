"""Tests for the install pipeline: stage order and stop-at-first-failure."""

from unittest.mock import patch

import pytest

from schillix_installer import pipeline
from schillix_installer.storage.exceptions import CommandError


CORE_STAGES = [
    "validate-source",
    "validate-unused",
    "partition",
    "slice",
    "create-pool",
    "create-datasets",
    "set-bootfs",
    "mount-all",
    "replicate",
]

POST_INSTALL_STAGES = [
    "pool-boot-files",
    "install-bootloader",
    "reconcile-devices",
    "update-boot-archive",
    "unmount-all",
    "export-pool",
]

STAGE_FUNCTIONS = [
    "validate_source_tree",
    "validate_unused",
    "partition",
    "slice_disk",
    "create_pool",
    "create_datasets",
    "set_bootfs",
    "mount_all",
    "replicate",
    "install_pool_boot_files",
    "install_bootloader",
    "reconcile_devices",
    "update_boot_archive",
    "unmount_all",
    "export_pool",
]


@pytest.fixture
def stage_mocks():
    """Patch every stage function in the pipeline module to succeed."""
    patchers = {name: patch(f"schillix_installer.pipeline.{name}", return_value=True) for name in STAGE_FUNCTIONS}
    mocks = {name: patcher.start() for name, patcher in patchers.items()}
    yield mocks
    for patcher in patchers.values():
        patcher.stop()


class TestBuildStages:
    def test_core_only(self, install_request):
        names = [stage.name for stage in pipeline.build_stages(install_request, post_install=False)]
        assert names == CORE_STAGES

    def test_with_post_install(self, install_request):
        names = [stage.name for stage in pipeline.build_stages(install_request, post_install=True)]
        assert names == CORE_STAGES + POST_INSTALL_STAGES

    def test_export_can_be_disabled(self, install_request):
        pipeline.settings.settings_store.values["export_pool"] = False
        names = [stage.name for stage in pipeline.build_stages(install_request, post_install=True)]
        assert names[-1] == "unmount-all"


class TestRunInstall:
    def test_all_stages_succeed(self, install_request, stage_mocks):
        result = pipeline.run_install(install_request, post_install=True)

        assert result.success is True
        assert list(result.completed_stages) == CORE_STAGES + POST_INSTALL_STAGES
        assert result.failed_stage is None

    def test_stage_arguments(self, install_request, stage_mocks):
        pipeline.run_install(install_request, post_install=True)

        disk = install_request.disk
        staging = install_request.staging_root
        stage_mocks["validate_unused"].assert_called_once_with(disk)
        stage_mocks["create_pool"].assert_called_once_with(disk, "rpool", staging)
        stage_mocks["create_datasets"].assert_called_once_with("rpool", "schillix")
        stage_mocks["set_bootfs"].assert_called_once_with("rpool", "schillix")
        stage_mocks["install_bootloader"].assert_called_once_with(staging, disk)

        source, dest, context = stage_mocks["replicate"].call_args.args
        assert source == install_request.source_root
        assert dest == staging
        assert context.pool_name == "rpool"
        assert context.os_name == "schillix"

    def test_stops_at_first_failure(self, install_request, stage_mocks):
        stage_mocks["slice_disk"].return_value = False

        result = pipeline.run_install(install_request, post_install=True)

        assert result.success is False
        assert result.failed_stage == "slice"
        assert list(result.completed_stages) == ["validate-source", "validate-unused", "partition"]
        stage_mocks["create_pool"].assert_not_called()
        stage_mocks["replicate"].assert_not_called()

    def test_disk_in_use_stops_before_partitioning(self, install_request, stage_mocks):
        stage_mocks["validate_unused"].return_value = False

        result = pipeline.run_install(install_request, post_install=False)

        assert result.failed_stage == "validate-unused"
        stage_mocks["partition"].assert_not_called()

    def test_unexpected_error_is_a_failure(self, install_request, stage_mocks):
        stage_mocks["mount_all"].side_effect = CommandError(["zfs", "mount"], 1, "busy")

        result = pipeline.run_install(install_request, post_install=False)

        assert result.success is False
        assert result.failed_stage == "mount-all"

    def test_post_install_defaults_to_setting(self, install_request, stage_mocks):
        pipeline.settings.settings_store.values["post_install"] = False

        result = pipeline.run_install(install_request)

        assert list(result.completed_stages) == CORE_STAGES
        stage_mocks["install_bootloader"].assert_not_called()

    def test_failure_is_logged(self, install_request, stage_mocks, log_records):
        stage_mocks["replicate"].return_value = False

        pipeline.run_install(install_request, post_install=False)

        failed = [r for r in log_records if r["extra"].get("event_type") == "stage_failed"]
        assert failed
        assert failed[0]["extra"]["stage"] == "replicate"
