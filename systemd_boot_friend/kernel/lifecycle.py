"""
Lifecycle of a single kernel on the ESP.

A kernel is available when its module tree exists under /usr/lib/modules,
installed when its image and boot entry are on the ESP, and default when
loader.conf points at its entry. None of these states is stored anywhere
else, they are read back from the filesystem every run.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from systemd_boot_friend.config import Config
from systemd_boot_friend.exceptions import PathNotInitializedError
from systemd_boot_friend.loader import LoaderConfig
from systemd_boot_friend.prompt import Confirm
from systemd_boot_friend.shared import DEFAULT_PROFILE, REL_DEST_PATH, REL_ENTRY_PATH, SRC_PATH, UCODE_IMAGES
from systemd_boot_friend.utils import expand_template, render_template, safe_copy, write_verified

from .version import KernelVersion, parse_version

logger = logging.getLogger(__name__)


class Kernel:
    """One kernel, identified by the name of its module directory.

    Kernels compare equal when their names are equal and are ordered by
    version, so a list sorted in reverse starts with the newest kernel.
    """

    def __init__(
        self,
        name: str,
        version: KernelVersion,
        vmlinux: str,
        initrd: str,
        distro: str,
        esp_mountpoint: Path,
        bootargs: dict[str, str],
        loader_conf: LoaderConfig,
        src_path: Path = SRC_PATH,
        confirm: Confirm | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.vmlinux = vmlinux
        self.initrd = initrd
        self.distro = distro
        self.esp_mountpoint = esp_mountpoint
        self.bootargs = bootargs
        self.loader_conf = loader_conf
        self.src_path = src_path
        self.confirm = confirm

    @classmethod
    def parse(
        cls,
        config: Config,
        name: str,
        loader_conf: LoaderConfig,
        src_path: Path = SRC_PATH,
        confirm: Confirm | None = None,
    ) -> Kernel:
        """Build a kernel from a module directory name or a user target

        Raises:
            InvalidVersionError: If the name is not a kernel version
        """
        return cls(
            name=name,
            version=parse_version(name),
            vmlinux=expand_template(config.vmlinux, name),
            initrd=expand_template(config.initrd, name),
            distro=config.distro,
            esp_mountpoint=config.esp_mountpoint,
            bootargs=dict(config.bootargs),
            loader_conf=loader_conf,
            src_path=src_path,
            confirm=confirm,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Kernel):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __lt__(self, other: Kernel) -> bool:
        return (self.version, self.name) < (other.version, other.name)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Kernel({self.name!r})"

    @property
    def dest_path(self) -> Path:
        return self.esp_mountpoint / REL_DEST_PATH

    @property
    def entries_path(self) -> Path:
        return self.esp_mountpoint / REL_ENTRY_PATH

    def entry_id(self, profile: str = DEFAULT_PROFILE) -> str:
        if profile == DEFAULT_PROFILE:
            return self.name
        return f"{self.name}-{profile}"

    def entry_path(self, profile: str = DEFAULT_PROFILE) -> Path:
        return self.entries_path / f"{self.entry_id(profile)}.conf"

    def install(self) -> None:
        """Copy the kernel image, initrd and microcode to the ESP."""
        if not self.dest_path.exists():
            raise PathNotInitializedError(self.dest_path)

        logger.info(f"Installing {self} to {self.dest_path}")

        safe_copy(self.src_path / self.vmlinux, self.dest_path / self.vmlinux)

        # Some distributions do not build an initrd
        initrd = self.src_path / self.initrd
        if initrd.exists():
            safe_copy(initrd, self.dest_path / self.initrd)
        else:
            logger.debug(f"{initrd} does not exist, skipping initrd")

        for ucode in UCODE_IMAGES:
            src = self.src_path / ucode
            dest = self.dest_path / ucode
            if src.exists():
                logger.info(f"Installing {ucode}")
                safe_copy(src, dest)
            elif dest.exists():
                logger.info(f"Removing stale {dest}")
                dest.unlink()

    def render_entry(self, profile: str = DEFAULT_PROFILE) -> str:
        rel = PurePosixPath("/") / REL_DEST_PATH.as_posix()

        initrds = [str(rel / ucode) for ucode in UCODE_IMAGES if (self.dest_path / ucode).exists()]
        if (self.dest_path / self.initrd).exists():
            initrds.append(str(rel / self.initrd))

        title = f"{self.distro} ({self})" if profile == DEFAULT_PROFILE else f"{self.distro} ({self}, {profile})"

        return render_template(
            "entry.conf.j2",
            title=title,
            linux=str(rel / self.vmlinux),
            initrds=initrds,
            options=self.bootargs[profile],
        )

    def make_config(self, force_write: bool = False) -> bool:
        """Write one boot entry per boot argument profile

        An existing entry is only replaced when force_write is set or the
        user confirms it.

        Returns:
            True if at least one entry file was written
        """
        if not self.entries_path.exists():
            raise PathNotInitializedError(self.entries_path)

        written = False
        for profile in self.bootargs:
            entry = self.entry_path(profile)

            if entry.exists() and not force_write:
                overwrite = self.confirm is not None and self.confirm(f"{entry} already exists, overwrite it?", False)
                if not overwrite:
                    logger.info(f"Keeping existing {entry}")
                    continue
                logger.info(f"Overwriting {entry}")

            logger.info(f"Creating boot entry for {self} ({profile})")
            write_verified(entry, self.render_entry(profile))
            written = True

        return written

    def install_and_make_config(self, force_write: bool = False) -> None:
        self.install()
        self.make_config(force_write)

    def remove(self) -> None:
        """Remove image, initrd and entries, each one on a best-effort basis.

        The user may already have deleted some of the files by hand, so a
        missing file is reported and the rest is removed anyway.
        """
        logger.info(f"Removing {self}")

        targets = [self.dest_path / self.vmlinux, self.dest_path / self.initrd]
        targets += [self.entry_path(profile) for profile in self.bootargs]

        for path in targets:
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"{path}: {e}")

        self.remove_default()

    def _default_matches(self, default: str | None) -> bool:
        if default is None:
            return False
        ids = {self.entry_id(profile) for profile in self.bootargs}
        return default in ids or default.removesuffix(".conf") in ids

    def is_default(self) -> bool:
        return self._default_matches(self.loader_conf.default)

    def set_default(self, profile: str = DEFAULT_PROFILE) -> None:
        logger.info(f"Setting {self} as the default boot entry")
        self.loader_conf.default = self.entry_path(profile).name
        self.loader_conf.write()

    def remove_default(self) -> None:
        """Clear the default entry, but only if it points at this kernel."""
        if not self.is_default():
            return

        logger.info(f"Removing {self} as the default boot entry")
        self.loader_conf.default = None
        self.loader_conf.write()

    def ask_set_default(self) -> None:
        if self.confirm is not None and self.confirm(f"Set {self} as the default boot entry?", False):
            self.set_default()
