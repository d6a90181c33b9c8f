"""
systemd-boot's own configuration file, loader/loader.conf.

Only the ``default`` and ``timeout`` keys are managed here. Every other line,
comments included, is kept as it was read.
"""

from __future__ import annotations

import logging
from pathlib import Path

from systemd_boot_friend.utils import write_verified

logger = logging.getLogger(__name__)

LOADER_CONF = "loader.conf"


class LoaderConfig:
    """Read-modify-write handle on loader.conf.

    One instance is created per run and shared by every Kernel, so a default
    entry set by one kernel is seen by all the others.
    """

    def __init__(self, path: Path, lines: list[str] | None = None) -> None:
        self.path = path
        self._lines: list[str] = lines if lines is not None else []

    @classmethod
    def load(cls, loader_dir: Path) -> LoaderConfig:
        path = loader_dir / LOADER_CONF
        if not path.exists():
            logger.debug(f"{path} does not exist, starting from an empty configuration")
            return cls(path)
        return cls(path, path.read_text().splitlines())

    @staticmethod
    def _split(line: str) -> tuple[str, str] | None:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None
        key, *value = stripped.split(None, 1)
        return key, value[0].strip() if value else ""

    def get(self, key: str) -> str | None:
        value = None
        for line in self._lines:
            parsed = self._split(line)
            if parsed and parsed[0] == key:
                value = parsed[1]
        return value

    def set(self, key: str, value: str | None) -> None:
        """Set a key, or remove every occurrence of it when value is None."""
        lines = []
        replaced = False
        for line in self._lines:
            parsed = self._split(line)
            if parsed and parsed[0] == key:
                if value is not None and not replaced:
                    lines.append(f"{key} {value}")
                    replaced = True
                continue
            lines.append(line)

        if value is not None and not replaced:
            lines.append(f"{key} {value}")

        self._lines = lines

    @property
    def default(self) -> str | None:
        return self.get("default")

    @default.setter
    def default(self, entry: str | None) -> None:
        self.set("default", entry)

    @property
    def timeout(self) -> int | None:
        value = self.get("timeout")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            # "menu-force" and friends
            return None

    @timeout.setter
    def timeout(self, seconds: int | None) -> None:
        self.set("timeout", None if seconds is None else str(seconds))

    def render(self) -> str:
        return "\n".join(self._lines) + "\n" if self._lines else ""

    def write(self) -> None:
        logger.debug(f"Writing {self.path}")
        write_verified(self.path, self.render())
