"""Tests for the boot package: pool GRUB directory and platform boot tools."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from schillix_installer.boot import finalize, pool_boot
from schillix_installer.storage.exceptions import CommandError, PostInstallError


@pytest.fixture
def staged_root(tmp_path) -> Path:
    """A staging root after replication, with the pool dataset mounted at <mnt>/rpool."""
    root = tmp_path / "mnt"
    grub = root / "boot" / "grub"
    grub.mkdir(parents=True)
    (grub / "capability").write_text("zfs\n")
    (grub / "menu.lst").write_text("default 0\ntimeout 10\n")
    (grub / "splash.xpm.gz").write_bytes(b"\x1f\x8b splash")
    (root / "rpool").mkdir()
    return root


class TestPoolBootFiles:
    @pytest.fixture(autouse=True)
    def no_chown(self):
        # root:staff ownership needs privileges the test run does not have
        with patch("schillix_installer.boot.pool_boot.os.chown") as mock_chown:
            yield mock_chown

    def test_copies_grub_files(self, staged_root, no_chown):
        copied = pool_boot.copy_pool_boot_files(staged_root, "rpool")

        grub_dir = staged_root / "rpool" / "boot" / "grub"
        assert copied == [grub_dir / name for name in pool_boot.POOL_GRUB_FILES]
        assert (grub_dir / "menu.lst").read_text() == "default 0\ntimeout 10\n"
        assert (grub_dir / "splash.xpm.gz").read_bytes() == b"\x1f\x8b splash"
        assert (grub_dir.stat().st_mode & 0o7777) == 0o755
        no_chown.assert_any_call(grub_dir, pool_boot.ROOT_UID, pool_boot.STAFF_GID)

    def test_rerun_replaces_files(self, staged_root):
        pool_boot.copy_pool_boot_files(staged_root, "rpool")
        (staged_root / "boot" / "grub" / "menu.lst").write_text("default 1\n")

        pool_boot.copy_pool_boot_files(staged_root, "rpool")

        assert (staged_root / "rpool" / "boot" / "grub" / "menu.lst").read_text() == "default 1\n"

    def test_missing_source_file(self, staged_root):
        os.unlink(staged_root / "boot" / "grub" / "capability")

        with pytest.raises(PostInstallError, match="capability"):
            pool_boot.copy_pool_boot_files(staged_root, "rpool")

    def test_absolute_link_is_followed_inside_staging(self, staged_root, tmp_path):
        host_splash = tmp_path / "usr" / "share" / "splash.xpm.gz"
        host_splash.parent.mkdir(parents=True)
        host_splash.write_bytes(b"host splash")
        staged_splash = staged_root / "usr" / "share" / "splash.xpm.gz"
        staged_splash.parent.mkdir(parents=True)
        staged_splash.write_bytes(b"staged splash")
        link = staged_root / "boot" / "grub" / "splash.xpm.gz"
        link.unlink()
        link.symlink_to("/usr/share/splash.xpm.gz")

        pool_boot.copy_pool_boot_files(staged_root, "rpool")

        assert (staged_root / "rpool" / "boot" / "grub" / "splash.xpm.gz").read_bytes() == b"staged splash"

    def test_relative_link_is_followed(self, staged_root):
        grub = staged_root / "boot" / "grub"
        (grub / "capability").rename(grub / "capability.zfs")
        (grub / "capability").symlink_to("capability.zfs")

        pool_boot.copy_pool_boot_files(staged_root, "rpool")

        assert (staged_root / "rpool" / "boot" / "grub" / "capability").read_text() == "zfs\n"

    def test_link_leaving_staging_root(self, staged_root):
        link = staged_root / "boot" / "grub" / "menu.lst"
        link.unlink()
        link.symlink_to("../../../outside/menu.lst")

        with pytest.raises(PostInstallError, match="staging root"):
            pool_boot.copy_pool_boot_files(staged_root, "rpool")

    def test_missing_pool_mount(self, staged_root, log_records):
        assert pool_boot.install_pool_boot_files(staged_root, "tank") is False
        assert any("Unable to copy grub files" in r["message"] for r in log_records)

    def test_stage_success(self, staged_root):
        assert pool_boot.install_pool_boot_files(staged_root, "rpool") is True


class TestFinalize:
    @patch("schillix_installer.boot.finalize.run_checked_command")
    def test_install_bootloader_command(self, mock_run, disk):
        assert finalize.install_bootloader("/mnt", disk) is True
        mock_run.assert_called_once_with(
            [
                "/usr/sbin/installgrub",
                "-mf",
                "/mnt/boot/grub/stage1",
                "/mnt/boot/grub/stage2",
                "/dev/rdsk/c0t0d0s0",
            ]
        )

    @patch("schillix_installer.boot.finalize.run_checked_command")
    def test_reconcile_devices_command(self, mock_run):
        assert finalize.reconcile_devices("/mnt") is True
        mock_run.assert_called_once_with(["/usr/sbin/devfsadm", "-r", "/mnt"])

    @patch("schillix_installer.boot.finalize.run_checked_command")
    def test_update_boot_archive_command(self, mock_run):
        assert finalize.update_boot_archive(Path("/mnt")) is True
        mock_run.assert_called_once_with(["/usr/sbin/bootadm", "update-archive", "-R", "/mnt"])

    @pytest.mark.parametrize(
        "step,args,message",
        [
            ("install_bootloader", ("/mnt",), "Unable to install boot loader"),
            ("reconcile_devices", ("/mnt",), "Unable to configure device nodes"),
            ("update_boot_archive", ("/mnt",), "Unable to update boot archive"),
        ],
    )
    @patch("schillix_installer.boot.finalize.run_checked_command")
    def test_failures_return_false(self, mock_run, step, args, message, disk, log_records):
        mock_run.side_effect = CommandError(["tool"], 1, "failed")
        if step == "install_bootloader":
            args = args + (disk,)

        assert getattr(finalize, step)(*args) is False
        assert any(message in r["message"] for r in log_records)
