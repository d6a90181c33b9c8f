from __future__ import annotations

from pathlib import Path

CONF_PATH = Path("/etc/systemd-boot-friend.conf")
MOUNTS_PATH = Path("/proc/mounts")

SRC_PATH = Path("/boot")
MODULES_PATH = Path("/usr/lib/modules")

# Relative to the ESP mountpoint
REL_DEST_PATH = Path("EFI/systemd-boot-friend")
REL_ENTRY_PATH = Path("loader/entries")
REL_LOADER_PATH = Path("loader")

# Microcode images are loaded before the kernel initrd, in this order
UCODE_IMAGES = ("intel-ucode.img", "amd-ucode.img")

# Marker files of a complete module tree
MODULE_MARKERS = ("modules.dep", "modules.order", "modules.builtin")

VERSION_TOKEN = "{VERSION}"
DEFAULT_PROFILE = "default"
