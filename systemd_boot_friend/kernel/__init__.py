"""
Kernel discovery, lifecycle and reconciliation.

This package turns kernel module directories into Kernel objects, installs
them and their boot entries on the ESP, and keeps the installed set in line
with the available one.
"""

from .lifecycle import Kernel
from .manager import KernelManager, UpdateResult
from .scanner import KernelDirectory
from .version import KernelVersion, parse_version

__all__ = [
    "Kernel",
    "KernelDirectory",
    "KernelManager",
    "KernelVersion",
    "UpdateResult",
    "parse_version",
]
