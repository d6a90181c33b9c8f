from __future__ import annotations

import errno
import filecmp
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined

from systemd_boot_friend.exceptions import IncompleteCopyError, NoSpaceError
from systemd_boot_friend.shared import VERSION_TOKEN

logger = logging.getLogger(__name__)

templates = Environment(
    loader=PackageLoader("systemd_boot_friend", "templates"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)
# TOML basic strings accept JSON string escapes
templates.filters["toml"] = json.dumps


def render_template(name: str, **ctx: Any) -> str:
    return templates.get_template(name).render(**ctx)


def expand_template(template: str, version_token: str) -> str:
    """Expand a filename template for a kernel

    Args:
        template: Filename template, e.g. vmlinuz-{VERSION}
        version_token: Raw kernel directory name, inserted verbatim

    Returns:
        The template with every {VERSION} token replaced
    """
    return template.replace(VERSION_TOKEN, version_token)


def is_same_content(src: Path, dest: Path) -> bool:
    """Return True if dest already holds exactly what src holds."""
    if not dest.exists():
        return False

    if os.path.samefile(src, dest):
        return True

    if src.stat().st_size != dest.stat().st_size:
        return False

    return filecmp.cmp(src, dest, shallow=False)


def safe_copy(src: Path, dest: Path) -> bool:
    """Copy src to dest and make sure the copy is complete

    The copy is skipped when dest is already identical to src. An incomplete
    destination file is removed before the error is raised, a truncated
    kernel image must never stay on the ESP.

    Args:
        src: Source file
        dest: Destination file

    Returns:
        True if bytes were copied, False if dest was already up to date

    Raises:
        IncompleteCopyError: If the destination size does not match the source
    """
    if is_same_content(src, dest):
        logger.debug(f"{dest} is up to date, skipping copy")
        return False

    # A missing source fails here, before dest is touched
    expected = src.stat().st_size

    try:
        shutil.copyfile(src, dest)
    except OSError as e:
        actual = _discard(dest)
        if e.errno == errno.ENOSPC:
            raise IncompleteCopyError(dest, expected, actual) from e
        raise

    actual = dest.stat().st_size
    if actual != expected:
        dest.unlink()
        raise IncompleteCopyError(dest, expected, actual)

    return True


def _discard(path: Path) -> int:
    """Remove a partially written file, returning how many bytes it held."""
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return 0
    logger.debug(f"Removing incomplete {path}")
    path.unlink(missing_ok=True)
    return size


def write_verified(path: Path, content: str) -> None:
    """Write a text file and remove it again if the write came up short."""
    data = content.encode()

    # An open failure leaves an existing file untouched
    f = open(path, "wb")  # noqa: SIM115
    try:
        with f:
            f.write(data)
    except OSError as e:
        actual = _discard(path)
        if e.errno == errno.ENOSPC:
            raise NoSpaceError(path, len(data), actual) from e
        raise

    actual = path.stat().st_size
    if actual != len(data):
        path.unlink()
        raise NoSpaceError(path, len(data), actual)
