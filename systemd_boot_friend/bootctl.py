from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from shutil import which

from systemd_boot_friend.exceptions import BootctlError

logger = logging.getLogger(__name__)


def install_systemd_boot(esp_mountpoint: Path) -> None:
    """Install systemd-boot to the ESP with bootctl

    Raises:
        BootctlError: If bootctl is missing or exits with an error
    """
    if which("bootctl") is None:
        raise BootctlError(127, "bootctl not found, is systemd-boot installed?")

    logger.info("Installing systemd-boot")
    result = subprocess.run(  # noqa: S603, S607
        ["bootctl", "install", f"--esp-path={esp_mountpoint}"],
        capture_output=True,
        text=True,
        check=False,
    )

    if result.returncode != 0:
        raise BootctlError(result.returncode, result.stderr)

    logger.debug(result.stdout.strip())
