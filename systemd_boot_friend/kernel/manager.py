"""
Reconciliation of installed kernels with available kernels.

This module provides the KernelManager class that installs, removes and
updates kernels on the ESP, and keeps the default boot entry pointing at
the newest one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from systemd_boot_friend.exceptions import FriendError

from .lifecycle import Kernel

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    """Outcome of an update run."""

    installed: list[Kernel] = field(default_factory=list)
    removed: list[Kernel] = field(default_factory=list)
    failed_removals: list[Kernel] = field(default_factory=list)
    default: Kernel | None = None

    def get_summary(self) -> str:
        parts = [f"{len(self.installed)} installed", f"{len(self.removed)} removed"]
        if self.failed_removals:
            parts.append(f"{len(self.failed_removals)} could not be removed")
        if self.default is not None:
            parts.append(f"default is {self.default}")
        return ", ".join(parts)


class KernelManager:
    """Manages the set of kernels installed on the ESP.

    Both lists are expected newest first, as returned by KernelDirectory.
    """

    def __init__(self, kernels: list[Kernel], installed_kernels: list[Kernel], keep: int | None = None) -> None:
        """Initialize the manager.

        Args:
            kernels: Available kernels
            installed_kernels: Kernels currently installed on the ESP
            keep: Install only this many of the newest kernels, all when None
        """
        self.kernels = kernels
        self.installed_kernels = installed_kernels
        self.keep = keep

    def targets(self) -> list[Kernel]:
        keep = len(self.kernels) if self.keep is None else min(self.keep, len(self.kernels))
        return self.kernels[:keep]

    def update(self) -> UpdateResult:
        """Install the target kernels, remove the obsolete ones, set the newest as default.

        Kernels are installed before anything is removed so a failure never
        leaves the ESP without a bootable entry. An install failure aborts
        the update, a removal failure is logged and the other removals go on.
        """
        logger.info("Updating boot entries")
        result = UpdateResult()
        targets = self.targets()

        for kernel in targets:
            kernel.install_and_make_config(force_write=True)
            result.installed.append(kernel)

        for kernel in self.installed_kernels:
            if kernel in targets:
                continue
            try:
                kernel.remove()
                result.removed.append(kernel)
            except (OSError, FriendError) as e:
                logger.warning(f"Failed to remove {kernel}: {e}")
                result.failed_removals.append(kernel)

        if targets:
            targets[0].set_default()
            result.default = targets[0]
        else:
            logger.warning("No kernels available, nothing to install")

        logger.info(result.get_summary())
        self.installed_kernels = sorted(targets + result.failed_removals, reverse=True)
        return result

    @staticmethod
    def install(kernel: Kernel, force: bool = False) -> None:
        kernel.install_and_make_config(force)
        kernel.ask_set_default()

    @staticmethod
    def remove(kernel: Kernel) -> None:
        kernel.remove()

    def list_available(self) -> list[str]:
        """Render available kernels, marking the installed ones."""
        return [f"{'[*]' if k in self.installed_kernels else '[ ]'} {k}" for k in self.kernels]

    def list_installed(self) -> list[str]:
        """Render installed kernels, marking the default one."""
        return [f"{'[*]' if k.is_default() else '[ ]'} {k}" for k in self.installed_kernels]
