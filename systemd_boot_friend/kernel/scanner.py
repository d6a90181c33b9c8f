"""
Kernel discovery.

Available kernels come from the module tree, installed kernels from the
image files on the ESP. There is no registry file, the filesystem is the
only source of truth.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from systemd_boot_friend.config import Config
from systemd_boot_friend.exceptions import InvalidVersionError
from systemd_boot_friend.loader import LoaderConfig
from systemd_boot_friend.prompt import Confirm
from systemd_boot_friend.shared import MODULE_MARKERS, MODULES_PATH, REL_DEST_PATH, SRC_PATH, VERSION_TOKEN

from .lifecycle import Kernel

logger = logging.getLogger(__name__)


def template_pattern(template: str) -> re.Pattern[str]:
    """Turn a filename template into a regex capturing the version part."""
    before, _, after = template.partition(VERSION_TOKEN)
    return re.compile(f"{re.escape(before)}(?P<version>.+){re.escape(after)}")


class KernelDirectory:
    """Scans the module tree and the ESP for kernels.

    Every Kernel it creates shares the same LoaderConfig handle.
    """

    def __init__(
        self,
        config: Config,
        loader_conf: LoaderConfig,
        modules_path: Path = MODULES_PATH,
        src_path: Path = SRC_PATH,
        confirm: Confirm | None = None,
    ) -> None:
        self.config = config
        self.loader_conf = loader_conf
        self.modules_path = modules_path
        self.src_path = src_path
        self.confirm = confirm

    def parse(self, name: str) -> Kernel:
        return Kernel.parse(self.config, name, self.loader_conf, src_path=self.src_path, confirm=self.confirm)

    def list_available(self) -> list[Kernel]:
        """List kernels with a complete module tree, newest first."""
        if not self.modules_path.is_dir():
            logger.warning(f"{self.modules_path} does not exist, no kernels available")
            return []

        kernels = []
        for entry in sorted(self.modules_path.iterdir()):
            if not entry.is_dir():
                continue

            if not all((entry / marker).exists() for marker in MODULE_MARKERS):
                logger.warning(f"Skipping incomplete kernel {entry.name}")
                continue

            try:
                kernels.append(self.parse(entry.name))
            except InvalidVersionError:
                logger.warning(f"Skipping unidentified kernel {entry.name}")

        kernels.sort(reverse=True)
        return kernels

    def list_installed(self) -> list[Kernel]:
        """List kernels whose image is on the ESP, newest first."""
        dest_path = self.config.esp_mountpoint / REL_DEST_PATH
        if not dest_path.is_dir():
            logger.debug(f"{dest_path} does not exist, no kernels installed")
            return []

        pattern = template_pattern(self.config.vmlinux)

        kernels = []
        for entry in sorted(dest_path.iterdir()):
            match = pattern.fullmatch(entry.name)
            if not match:
                continue

            try:
                kernels.append(self.parse(match.group("version")))
            except InvalidVersionError:
                logger.warning(f"Skipping unidentified kernel image {entry.name}")

        kernels.sort(reverse=True)
        return kernels
