from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from systemd_boot_friend.exceptions import ConfigError
from systemd_boot_friend.shared import CONF_PATH, DEFAULT_PROFILE, MOUNTS_PATH, VERSION_TOKEN
from systemd_boot_friend.utils import render_template, write_verified

logger = logging.getLogger(__name__)

OLD_VERSION_TOKEN = "{VERSION}-{LOCALVERSION}"


class Config(BaseModel):
    """Contents of /etc/systemd-boot-friend.conf.

    Older configuration files use upper-case keys, those are accepted as
    aliases. The file is always written back with the lower-case names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vmlinux: str = Field(default="vmlinuz-{VERSION}", validation_alias=AliasChoices("vmlinux", "VMLINUX", "VMLINUZ"))
    initrd: str = Field(default="initramfs-{VERSION}.img", validation_alias=AliasChoices("initrd", "INITRD"))
    distro: str = Field(default="Linux", validation_alias=AliasChoices("distro", "DISTRO"))
    esp_mountpoint: Path = Field(default=Path("/efi"), validation_alias=AliasChoices("esp_mountpoint", "ESP_MOUNTPOINT"))
    keep: int | None = Field(default=None, validation_alias=AliasChoices("keep", "KEEP"))
    bootarg: str | None = Field(default=None, validation_alias=AliasChoices("bootarg", "BOOTARG"))  # legacy
    bootargs: dict[str, str] = Field(
        default_factory=lambda: {DEFAULT_PROFILE: ""},
        validation_alias=AliasChoices("bootargs", "BOOTARGS"),
    )

    @field_validator("vmlinux", "initrd")
    @classmethod
    def _validate_template(cls, v: str, info: ValidationInfo) -> str:
        # Kernels must never share an image or initrd file on the ESP
        if VERSION_TOKEN not in v:
            raise ValueError(f"{info.field_name} template must contain {VERSION_TOKEN}")
        return v

    @field_validator("keep")
    @classmethod
    def _validate_keep(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("keep must be at least 1")
        return v

    def to_toml(self) -> str:
        return render_template("friend.conf.j2", config=self)


def write_config(config: Config, path: Path = CONF_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    write_verified(path, config.to_toml())


def migrate_config(config: Config) -> bool:
    """Bring an older configuration up to date in place

    Returns:
        True if anything changed and the file needs to be written back
    """
    changed = False

    if OLD_VERSION_TOKEN in config.vmlinux or OLD_VERSION_TOKEN in config.initrd:
        logger.info("Migrating filename templates from {VERSION}-{LOCALVERSION} to {VERSION}")
        config.vmlinux = config.vmlinux.replace(OLD_VERSION_TOKEN, VERSION_TOKEN)
        config.initrd = config.initrd.replace(OLD_VERSION_TOKEN, VERSION_TOKEN)
        changed = True

    if config.bootarg is not None:
        config.bootargs[DEFAULT_PROFILE] = config.bootarg
        config.bootarg = None
        changed = True

    if DEFAULT_PROFILE not in config.bootargs:
        config.bootargs[DEFAULT_PROFILE] = ""
        changed = True

    return changed


def detect_root_partition(mounts_path: Path = MOUNTS_PATH) -> str:
    """Return the device mounted on / according to /proc/mounts."""
    root = ""
    for line in mounts_path.read_text().splitlines():
        fields = line.split()
        if len(fields) > 1 and fields[1] == "/":
            root = fields[0]
    return root


def fill_necessary_bootarg(bootarg: str, mounts_path: Path = MOUNTS_PATH) -> str:
    """Append root= and rw to a kernel command line that lacks them."""
    params = bootarg.split()
    has_root = any(p.startswith("root=") for p in params)
    has_rw = any(p in ("rw", "ro") for p in params)

    filled = bootarg.strip()
    if not has_root:
        filled += f" root={detect_root_partition(mounts_path)}"
    if not has_rw:
        filled += " rw"

    return filled.strip()


def read_config(path: Path = CONF_PATH, mounts_path: Path = MOUNTS_PATH) -> Config:
    """Load, migrate and complete the configuration file

    A missing file is created with the defaults, and ConfigError asks the user
    to review it before anything is installed.
    """
    if not path.exists():
        logger.info(f"Creating default configuration at {path}")
        write_config(Config(), path)
        raise ConfigError(f"Please edit {path} to fit your system, then run the command again")

    try:
        config = Config.model_validate(tomllib.loads(path.read_text()))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    if migrate_config(config):
        logger.info(f"Updating {path}")
        write_config(config, path)

    # Completed command lines are never written back
    config.bootargs = {profile: fill_necessary_bootarg(bootarg, mounts_path) for profile, bootarg in config.bootargs.items()}

    return config
