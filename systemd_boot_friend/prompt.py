"""
Terminal prompts used by the command line.

The kernel lifecycle code never talks to the terminal itself, it receives a
``Confirm`` callable instead. Tests pass a plain function or a Mock.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from systemd_boot_friend.exceptions import EmptySelectionError, InvalidIndexError

Confirm = Callable[[str, bool], bool]


def confirm(prompt: str, default: bool = False) -> bool:
    """Ask a yes/no question, an empty answer picks the default."""
    hint = "[Y/n]" if default else "[y/N]"
    while True:
        answer = input(f"{prompt} {hint} ").strip().lower()
        if not answer:
            return default
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False


def ask_number(prompt: str) -> int:
    while True:
        answer = input(f"{prompt}: ").strip()
        if answer.isdigit():
            return int(answer)


def _print_items(items: Sequence[Any], marks: Sequence[bool] | None = None) -> None:
    for i, item in enumerate(items, start=1):
        mark = "[*] " if marks and marks[i - 1] else ""
        print(f"{i:>3}) {mark}{item}")


def _to_index(answer: str, length: int) -> int:
    n = int(answer)
    if not 1 <= n <= length:
        raise InvalidIndexError(n, length)
    return n - 1


def select(items: Sequence[Any], prompt: str) -> int:
    """Let the user pick one item, returns its index."""
    if not items:
        raise EmptySelectionError()

    _print_items(items)
    while True:
        answer = input(f"{prompt} [1-{len(items)}]: ").strip()
        try:
            return _to_index(answer, len(items))
        except (ValueError, InvalidIndexError):
            continue


def multiselect(items: Sequence[Any], prompt: str, defaults: Sequence[bool] | None = None) -> list[int]:
    """Let the user pick several items by number, an empty answer keeps the marked ones."""
    if not items:
        raise EmptySelectionError()

    _print_items(items, defaults)
    while True:
        answer = input(f"{prompt} (numbers separated by spaces): ").strip()
        if not answer:
            return [i for i, marked in enumerate(defaults or []) if marked]
        try:
            return sorted({_to_index(part, len(items)) for part in answer.replace(",", " ").split()})
        except (ValueError, InvalidIndexError):
            continue
