from __future__ import annotations

from pathlib import Path


class FriendError(Exception):
    """Base class for every error reported to the command line."""


class InvalidVersionError(FriendError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid kernel filename: {name}")
        self.name = name


class PathNotInitializedError(FriendError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} does not exist, run `sbf init` first or check esp_mountpoint in the configuration")
        self.path = path


class NoSpaceError(FriendError):
    def __init__(self, path: Path, expected: int, actual: int) -> None:
        super().__init__(f"Incomplete write to {path} ({actual} of {expected} bytes), is there space left on the device?")
        self.path = path
        self.expected = expected
        self.actual = actual


class IncompleteCopyError(NoSpaceError):
    """Raised when a copied file ends up shorter or longer than its source."""


class EmptySelectionError(FriendError):
    def __init__(self, what: str = "kernels") -> None:
        super().__init__(f"No {what} to choose from")


class InvalidIndexError(FriendError):
    def __init__(self, index: int, length: int) -> None:
        super().__init__(f"Index {index} is out of range (1..{length})")
        self.index = index
        self.length = length


class ConfigError(FriendError):
    pass


class BootctlError(FriendError):
    def __init__(self, returncode: int, stderr: str) -> None:
        message = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"bootctl install failed: {message}")
        self.returncode = returncode
        self.stderr = stderr
