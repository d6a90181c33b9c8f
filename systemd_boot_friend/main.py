from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from systemd_boot_friend import prompt
from systemd_boot_friend.bootctl import install_systemd_boot
from systemd_boot_friend.config import Config, read_config
from systemd_boot_friend.exceptions import FriendError, InvalidIndexError
from systemd_boot_friend.kernel import Kernel, KernelDirectory, KernelManager
from systemd_boot_friend.loader import LoaderConfig
from systemd_boot_friend.shared import CONF_PATH, MODULES_PATH, REL_DEST_PATH, REL_ENTRY_PATH, REL_LOADER_PATH, SRC_PATH

logger = logging.getLogger("systemd_boot_friend")

LOG_PREFIX = "[systemd-boot-friend]"


@dataclass
class Context:
    config: Config
    loader_conf: LoaderConfig
    directory: KernelDirectory

    def manager(self) -> KernelManager:
        return KernelManager(self.directory.list_available(), self.directory.list_installed(), keep=self.config.keep)


def get_version() -> str:
    try:
        return version("systemd-boot-friend")
    except PackageNotFoundError:
        return "unknown"


def setup_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(f"{LOG_PREFIX} %(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sbf", description="Kernel version manager for systemd-boot")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("-v", "--verbose", action="store_true", help="print debug messages")
    parser.add_argument("-c", "--config", type=Path, default=CONF_PATH, help=f"configuration file (default: {CONF_PATH})")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="install systemd-boot and the newest kernels")
    subparsers.add_parser("update", help="install all kernels and update boot entries")

    install = subparsers.add_parser("install-kernel", help="install the specified kernels")
    install.add_argument("targets", nargs="*", help="kernel names or numbers from list-available")
    install.add_argument("-f", "--force", action="store_true", help="overwrite existing boot entries")

    remove = subparsers.add_parser("remove-kernel", help="remove the specified kernels")
    remove.add_argument("targets", nargs="*", help="kernel names or numbers from list-installed")

    subparsers.add_parser("list-available", help="list all available kernels")
    subparsers.add_parser("list-installed", help="list all installed kernels")

    set_default = subparsers.add_parser("set-default", help="set the default boot entry")
    set_default.add_argument("target", nargs="?", help="kernel name or number from list-installed")

    set_timeout = subparsers.add_parser("set-timeout", help="set the boot menu timeout")
    set_timeout.add_argument("value", nargs="?", type=int, help="timeout in seconds")

    return parser


def resolve_targets(directory: KernelDirectory, kernels: list[Kernel], targets: Sequence[str]) -> list[Kernel]:
    """Turn command line targets into kernels

    A purely numeric target is a 1-based index into kernels, anything else is
    parsed as a kernel name.
    """
    resolved = []
    for target in targets:
        if target.isdigit():
            index = int(target)
            if not 1 <= index <= len(kernels):
                raise InvalidIndexError(index, len(kernels))
            resolved.append(kernels[index - 1])
        else:
            resolved.append(directory.parse(target))
    return resolved


def cmd_init(ctx: Context, args: argparse.Namespace) -> None:
    esp = ctx.config.esp_mountpoint
    install_systemd_boot(esp)

    logger.info("Creating folder structure")
    for rel in (REL_DEST_PATH, REL_ENTRY_PATH):
        (esp / rel).mkdir(parents=True, exist_ok=True)

    cmd_update(ctx, args)


def cmd_update(ctx: Context, args: argparse.Namespace) -> None:
    ctx.manager().update()


def cmd_install_kernel(ctx: Context, args: argparse.Namespace) -> None:
    available = ctx.directory.list_available()
    if args.targets:
        kernels = resolve_targets(ctx.directory, available, args.targets)
    else:
        installed = ctx.directory.list_installed()
        chosen = prompt.multiselect(available, "Kernels to install", [k in installed for k in available])
        kernels = [available[i] for i in chosen]

    for kernel in kernels:
        KernelManager.install(kernel, args.force)


def cmd_remove_kernel(ctx: Context, args: argparse.Namespace) -> None:
    installed = ctx.directory.list_installed()
    if args.targets:
        kernels = resolve_targets(ctx.directory, installed, args.targets)
    else:
        kernels = [installed[i] for i in prompt.multiselect(installed, "Kernels to remove")]

    for kernel in kernels:
        KernelManager.remove(kernel)


def cmd_list_available(ctx: Context, args: argparse.Namespace) -> None:
    lines = ctx.manager().list_available()
    for line in lines:
        print(line)
    if lines:
        print()
        print("[*] installed")


def cmd_list_installed(ctx: Context, args: argparse.Namespace) -> None:
    lines = ctx.manager().list_installed()
    for line in lines:
        print(line)
    if lines:
        print()
        print("[*] default")


def cmd_set_default(ctx: Context, args: argparse.Namespace) -> None:
    installed = ctx.directory.list_installed()
    if args.target is not None:
        kernel = resolve_targets(ctx.directory, installed, [args.target])[0]
    else:
        kernel = installed[prompt.select(installed, "Default kernel")]
    kernel.set_default()


def cmd_set_timeout(ctx: Context, args: argparse.Namespace) -> None:
    value = args.value if args.value is not None else prompt.ask_number("Boot menu timeout in seconds")
    logger.info(f"Setting the boot menu timeout to {value}s")
    ctx.loader_conf.timeout = value
    ctx.loader_conf.write()


COMMANDS = {
    "init": cmd_init,
    "update": cmd_update,
    "install-kernel": cmd_install_kernel,
    "remove-kernel": cmd_remove_kernel,
    "list-available": cmd_list_available,
    "list-installed": cmd_list_installed,
    "set-default": cmd_set_default,
    "set-timeout": cmd_set_timeout,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = read_config(args.config)
        loader_conf = LoaderConfig.load(config.esp_mountpoint / REL_LOADER_PATH)
        directory = KernelDirectory(config, loader_conf, modules_path=MODULES_PATH, src_path=SRC_PATH, confirm=prompt.confirm)
        COMMANDS[args.command](Context(config, loader_conf, directory), args)
    except (FriendError, OSError) as e:
        logger.error(str(e))
        return 1
    except EOFError:
        logger.error("No input available, aborting")
        return 1
    except KeyboardInterrupt:
        return 130

    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
