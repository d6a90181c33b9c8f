"""
Tests for the lifecycle of a single kernel on the ESP.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from systemd_boot_friend.config import Config
from systemd_boot_friend.exceptions import PathNotInitializedError
from systemd_boot_friend.kernel import Kernel, KernelDirectory
from systemd_boot_friend.loader import LoaderConfig
from systemd_boot_friend.shared import REL_DEST_PATH, REL_ENTRY_PATH, REL_LOADER_PATH

BOOTARG = "root=/dev/sda2 rw quiet"

NAME = "5.10.0-11-amd64"


def read_entry(esp: Path, entry_id: str) -> str:
    return (esp / REL_ENTRY_PATH / f"{entry_id}.conf").read_text()


class TestKernelParse:
    """Test building kernels from names."""

    def test_filenames_expanded(self, directory: KernelDirectory) -> None:
        kernel = directory.parse(NAME)
        assert kernel.vmlinux == f"vmlinuz-{NAME}"
        assert kernel.initrd == f"initramfs-{NAME}.img"
        assert kernel.entry_id() == NAME
        assert kernel.entry_path().name == f"{NAME}.conf"
        assert str(kernel) == NAME

    def test_profile_entry_id(self, directory: KernelDirectory) -> None:
        kernel = directory.parse(NAME)
        assert kernel.entry_id("rescue") == f"{NAME}-rescue"

    def test_equality_by_name(self, directory: KernelDirectory) -> None:
        """Test that builds with equal numbers but different suffixes are different kernels."""
        assert directory.parse(NAME) == directory.parse(NAME)
        assert directory.parse("5.10.0-11-amd64") != directory.parse("5.10.0-11-cloud-amd64")

    def test_ordering(self, directory: KernelDirectory) -> None:
        kernels = [directory.parse(n) for n in ["5.14.9-x", "5.15.0-rc1-x", "5.4.0-aosc"]]
        assert [str(k) for k in sorted(kernels, reverse=True)] == ["5.15.0-rc1-x", "5.14.9-x", "5.4.0-aosc"]


class TestKernelInstall:
    """Test copying kernel files to the ESP."""

    def test_install_copies_image_and_initrd(self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path) -> None:
        make_kernel(NAME)
        directory.parse(NAME).install()

        dest = esp / REL_DEST_PATH
        assert (dest / f"vmlinuz-{NAME}").read_bytes() == f"kernel image {NAME}".encode()
        assert (dest / f"initramfs-{NAME}.img").read_bytes() == f"initrd {NAME}".encode()

    def test_install_without_initrd(self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path) -> None:
        """Test that a missing initrd does not fail the install nor the entry."""
        make_kernel(NAME, initrd=False)
        kernel = directory.parse(NAME)

        kernel.install_and_make_config()

        assert not (esp / REL_DEST_PATH / f"initramfs-{NAME}.img").exists()
        entry = read_entry(esp, NAME)
        assert "initrd" not in entry
        assert f"linux /EFI/systemd-boot-friend/vmlinuz-{NAME}" in entry

    def test_install_not_initialized(self, config: Config, loader_conf: LoaderConfig, tmp_path: Path) -> None:
        config.esp_mountpoint = tmp_path / "empty-esp"
        kernel = Kernel.parse(config, NAME, loader_conf, src_path=tmp_path)

        with pytest.raises(PathNotInitializedError, match="sbf init"):
            kernel.install()

    def test_install_missing_image(self, directory: KernelDirectory) -> None:
        with pytest.raises(FileNotFoundError):
            directory.parse(NAME).install()

    def test_microcode_copied(self, directory: KernelDirectory, make_kernel: Callable[..., None], boot: Path, esp: Path) -> None:
        make_kernel(NAME)
        (boot / "intel-ucode.img").write_bytes(b"ucode")

        directory.parse(NAME).install()

        assert (esp / REL_DEST_PATH / "intel-ucode.img").read_bytes() == b"ucode"

    def test_stale_microcode_removed(self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path) -> None:
        """Test that microcode without a source does not stay on the ESP."""
        make_kernel(NAME)
        stale = esp / REL_DEST_PATH / "intel-ucode.img"
        stale.write_bytes(b"old ucode")

        directory.parse(NAME).install()

        assert not stale.exists()

    def test_install_failure_skips_entry(self, config: Config, loader_conf: LoaderConfig, tmp_path: Path) -> None:
        config.esp_mountpoint = tmp_path / "empty-esp"
        kernel = Kernel.parse(config, NAME, loader_conf, src_path=tmp_path)

        with patch.object(kernel, "make_config") as mock_make_config:
            with pytest.raises(PathNotInitializedError):
                kernel.install_and_make_config(True)
            mock_make_config.assert_not_called()


class TestKernelMakeConfig:
    """Test writing boot entries."""

    def test_entry_content_order(self, directory: KernelDirectory, make_kernel: Callable[..., None], boot: Path, esp: Path) -> None:
        """Test that microcode is loaded before the kernel initrd."""
        make_kernel(NAME)
        (boot / "intel-ucode.img").write_bytes(b"ucode")

        directory.parse(NAME).install_and_make_config()

        assert read_entry(esp, NAME) == (
            f"title AOSC OS ({NAME})\n"
            f"linux /EFI/systemd-boot-friend/vmlinuz-{NAME}\n"
            "initrd /EFI/systemd-boot-friend/intel-ucode.img\n"
            f"initrd /EFI/systemd-boot-friend/initramfs-{NAME}.img\n"
            f"options {BOOTARG}\n"
        )

    def test_entries_not_initialized(self, directory: KernelDirectory, esp: Path) -> None:
        (esp / REL_ENTRY_PATH).rmdir()
        with pytest.raises(PathNotInitializedError):
            directory.parse(NAME).make_config()

    def test_existing_entry_kept_without_confirm(self, directory: KernelDirectory, esp: Path) -> None:
        entry = esp / REL_ENTRY_PATH / f"{NAME}.conf"
        entry.write_text("custom entry\n")

        assert directory.parse(NAME).make_config() is False
        assert entry.read_text() == "custom entry\n"

    def test_existing_entry_declined(self, directory: KernelDirectory, esp: Path) -> None:
        entry = esp / REL_ENTRY_PATH / f"{NAME}.conf"
        entry.write_text("custom entry\n")
        kernel = directory.parse(NAME)
        kernel.confirm = Mock(return_value=False)

        assert kernel.make_config() is False
        assert entry.read_text() == "custom entry\n"
        kernel.confirm.assert_called_once()
        assert kernel.confirm.call_args.args[1] is False

    def test_existing_entry_confirmed(self, directory: KernelDirectory, esp: Path) -> None:
        entry = esp / REL_ENTRY_PATH / f"{NAME}.conf"
        entry.write_text("custom entry\n")
        kernel = directory.parse(NAME)
        kernel.confirm = Mock(return_value=True)

        assert kernel.make_config() is True
        assert entry.read_text().startswith("title AOSC OS")

    def test_force_write_skips_question(self, directory: KernelDirectory, esp: Path) -> None:
        entry = esp / REL_ENTRY_PATH / f"{NAME}.conf"
        entry.write_text("custom entry\n")
        kernel = directory.parse(NAME)
        kernel.confirm = Mock(return_value=False)

        assert kernel.make_config(force_write=True) is True
        kernel.confirm.assert_not_called()
        assert entry.read_text().startswith("title AOSC OS")

    def test_entry_per_profile(self, config: Config, loader_conf: LoaderConfig, boot: Path, esp: Path) -> None:
        config.bootargs = {"default": BOOTARG, "rescue": "root=/dev/sda2 rw single"}
        kernel = Kernel.parse(config, NAME, loader_conf, src_path=boot)

        kernel.make_config()

        assert read_entry(esp, NAME).startswith(f"title AOSC OS ({NAME})\n")
        rescue = read_entry(esp, f"{NAME}-rescue")
        assert rescue.startswith(f"title AOSC OS ({NAME}, rescue)\n")
        assert rescue.endswith("options root=/dev/sda2 rw single\n")


class TestKernelRemove:
    """Test removing kernels from the ESP."""

    def test_remove_all_files(self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path) -> None:
        make_kernel(NAME)
        kernel = directory.parse(NAME)
        kernel.install_and_make_config()

        kernel.remove()

        assert list((esp / REL_DEST_PATH).iterdir()) == []
        assert list((esp / REL_ENTRY_PATH).iterdir()) == []

    def test_remove_tolerates_missing_files(
        self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a file removed by hand does not stop the others from being removed."""
        make_kernel(NAME, initrd=False)
        kernel = directory.parse(NAME)
        kernel.install_and_make_config()

        with caplog.at_level(logging.WARNING):
            kernel.remove()

        assert not (esp / REL_DEST_PATH / f"vmlinuz-{NAME}").exists()
        assert not (esp / REL_ENTRY_PATH / f"{NAME}.conf").exists()
        assert f"initramfs-{NAME}.img" in caplog.text

    def test_remove_default_clears_pointer(self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path) -> None:
        make_kernel(NAME)
        kernel = directory.parse(NAME)
        kernel.install_and_make_config()
        kernel.set_default()

        kernel.remove()

        assert kernel.loader_conf.default is None
        assert LoaderConfig.load(esp / REL_LOADER_PATH).default is None

    def test_remove_other_keeps_pointer(self, directory: KernelDirectory, make_kernel: Callable[..., None], esp: Path) -> None:
        make_kernel(NAME)
        make_kernel("6.1.0-aosc")
        default = directory.parse("6.1.0-aosc")
        other = directory.parse(NAME)
        default.install_and_make_config()
        other.install_and_make_config()
        default.set_default()

        other.remove()

        assert LoaderConfig.load(esp / REL_LOADER_PATH).default == "6.1.0-aosc.conf"
        assert default.is_default()


class TestKernelDefault:
    """Test the default entry pointer."""

    def test_set_default(self, directory: KernelDirectory, esp: Path) -> None:
        kernel = directory.parse(NAME)
        kernel.set_default()

        assert (esp / REL_LOADER_PATH / "loader.conf").read_text() == f"default {NAME}.conf\n"
        assert kernel.is_default()

    def test_shared_handle(self, directory: KernelDirectory) -> None:
        """Test that every kernel sees the default set through another one."""
        first = directory.parse(NAME)
        second = directory.parse("6.1.0-aosc")

        first.set_default()
        assert first.is_default()
        assert not second.is_default()

        second.set_default()
        assert not first.is_default()
        assert second.is_default()

    def test_bare_entry_id_recognized(self, directory: KernelDirectory, loader_conf: LoaderConfig) -> None:
        loader_conf.default = NAME
        assert directory.parse(NAME).is_default()

    def test_remove_default_leaves_other_kernel(self, directory: KernelDirectory, loader_conf: LoaderConfig) -> None:
        loader_conf.default = "6.1.0-aosc.conf"

        with patch.object(loader_conf, "write") as mock_write:
            directory.parse(NAME).remove_default()
            mock_write.assert_not_called()

        assert loader_conf.default == "6.1.0-aosc.conf"

    def test_ask_set_default(self, directory: KernelDirectory) -> None:
        kernel = directory.parse(NAME)
        kernel.confirm = Mock(return_value=True)

        kernel.ask_set_default()

        assert kernel.is_default()

    def test_ask_set_default_declined(self, directory: KernelDirectory) -> None:
        kernel = directory.parse(NAME)
        kernel.confirm = Mock(return_value=False)

        kernel.ask_set_default()

        assert not kernel.is_default()
