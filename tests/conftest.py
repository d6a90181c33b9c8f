from collections.abc import Callable
from pathlib import Path

import pytest
from systemd_boot_friend.config import Config
from systemd_boot_friend.kernel import KernelDirectory
from systemd_boot_friend.loader import LoaderConfig
from systemd_boot_friend.shared import MODULE_MARKERS, REL_DEST_PATH, REL_ENTRY_PATH, REL_LOADER_PATH

BOOTARG = "root=/dev/sda2 rw quiet"


@pytest.fixture
def esp(tmp_path: Path) -> Path:
    esp = tmp_path / "efi"
    (esp / REL_DEST_PATH).mkdir(parents=True)
    (esp / REL_ENTRY_PATH).mkdir(parents=True)
    return esp


@pytest.fixture
def boot(tmp_path: Path) -> Path:
    boot = tmp_path / "boot"
    boot.mkdir()
    return boot


@pytest.fixture
def modules(tmp_path: Path) -> Path:
    modules = tmp_path / "modules"
    modules.mkdir()
    return modules


@pytest.fixture
def config(esp: Path) -> Config:
    return Config(distro="AOSC OS", esp_mountpoint=esp, bootargs={"default": BOOTARG})


@pytest.fixture
def loader_conf(esp: Path) -> LoaderConfig:
    return LoaderConfig.load(esp / REL_LOADER_PATH)


@pytest.fixture
def directory(config: Config, loader_conf: LoaderConfig, modules: Path, boot: Path) -> KernelDirectory:
    return KernelDirectory(config, loader_conf, modules_path=modules, src_path=boot)


@pytest.fixture
def make_kernel(boot: Path, modules: Path) -> Callable[..., None]:
    """Create the module tree and /boot images of a kernel."""

    def _make(name: str, initrd: bool = True, complete: bool = True) -> None:
        (boot / f"vmlinuz-{name}").write_bytes(f"kernel image {name}".encode())
        if initrd:
            (boot / f"initramfs-{name}.img").write_bytes(f"initrd {name}".encode())

        tree = modules / name
        tree.mkdir()
        markers = MODULE_MARKERS if complete else MODULE_MARKERS[:1]
        for marker in markers:
            (tree / marker).touch()

    return _make
