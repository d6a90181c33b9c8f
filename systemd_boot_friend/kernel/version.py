"""
Kernel version parsing and ordering.

A kernel is identified by the name of its module directory, for example
``5.15.12-100.fc34.x86_64`` or ``5.12.0-rc3-aosc-main``. This module turns
such a name into a ``KernelVersion`` that can be sorted.

Grammar, anchored at the start of the name::

    major    = digits
    minor    = "." digits
    patch    = ("." digits)?       defaults to 0
    rc       = ("-rc" digits)?
    release  = ("-" digits)?       only when the digits end the token
    suffix   = anything else, kept verbatim with its leading separator
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

from systemd_boot_friend.exceptions import InvalidVersionError

VERSION_RE = re.compile(
    r"""
    (?P<major>\d+)
    \.(?P<minor>\d+)
    (?:\.(?P<patch>\d+))?
    (?:-(?P<rc>rc\d+))?
    (?:-(?P<release>\d+)(?![0-9A-Za-z_]))?
    (?P<suffix>.*)
    """,
    re.VERBOSE | re.DOTALL,
)


@total_ordering
@dataclass(frozen=True)
class KernelVersion:
    """Parsed kernel version.

    Equality covers every field, including the local suffix. Ordering is
    numeric, a final release sorts above its release candidates, and the
    local suffix only breaks ties so the order stays total.
    """

    major: int
    minor: int
    patch: int = 0
    release_candidate: str | None = None  # e.g. "rc3"
    release: int | None = None
    local_suffix: str = ""

    @property
    def rc_number(self) -> int | None:
        if self.release_candidate is None:
            return None
        return int(self.release_candidate[2:])

    def sort_key(self) -> tuple[int, int, int, int, int, int, str]:
        rc = self.rc_number
        # (1, 0) for a final release ranks above any (0, n) release candidate
        rc_rank = (1, 0) if rc is None else (0, rc)
        release = -1 if self.release is None else self.release
        return (self.major, self.minor, self.patch, *rc_rank, release, self.local_suffix)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, KernelVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.release_candidate is not None:
            text += f"-{self.release_candidate}"
        if self.release is not None:
            text += f"-{self.release}"
        return text + self.local_suffix


def parse_version(name: str) -> KernelVersion:
    """Parse a kernel directory name into a KernelVersion

    Args:
        name: Kernel directory or package name, e.g. "5.10.0-11-amd64"

    Returns:
        The parsed version

    Raises:
        InvalidVersionError: If the name does not start with major.minor
    """
    match = VERSION_RE.match(name)
    if not match:
        raise InvalidVersionError(name)

    patch = match.group("patch")
    release = match.group("release")

    return KernelVersion(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(patch) if patch is not None else 0,
        release_candidate=match.group("rc"),
        release=int(release) if release is not None else None,
        local_suffix=match.group("suffix"),
    )
