"""Reading the pot system configuration files."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Callable, Optional

from .errors import PathError, PotError, WhichError
from .util import IpAddress, IpNetwork, get_value, parse_ip, parse_network


@dataclass
class PartialSystemConf:
    """System configuration values, any of which may be missing."""

    zfs_root: Optional[str] = None
    fs_root: Optional[str] = None
    network: Optional[IpNetwork] = None
    netmask: Optional[IpAddress] = None
    gateway: Optional[IpAddress] = None
    ext_if: Optional[str] = None
    dns_name: Optional[str] = None
    dns_ip: Optional[IpAddress] = None

    def is_valid(self) -> bool:
        """Whether every mandatory value is present."""
        return (
            self.zfs_root is not None
            and self.fs_root is not None
            and self.network is not None
            and self.netmask is not None
            and self.gateway is not None
            and self.ext_if is not None
            and self.dns_name is not None
        )

    def merge(self, other: "PartialSystemConf") -> None:
        """Overwrite values with those that *other* defines."""
        for field in fields(self):
            value = getattr(other, field.name)
            if value is not None:
                setattr(self, field.name, value)


_KEYS: dict[str, tuple[str, Callable[[str], object]]] = {
    "POT_ZFS_ROOT=": ("zfs_root", str),
    "POT_FS_ROOT=": ("fs_root", str),
    "POT_EXTIF=": ("ext_if", str),
    "POT_DNS_NAME=": ("dns_name", str),
    "POT_NETWORK=": ("network", parse_network),
    "POT_NETMASK=": ("netmask", parse_ip),
    "POT_GATEWAY=": ("gateway", parse_ip),
    "POT_DNS_IP=": ("dns_ip", parse_ip),
}


def parse_partial_system_conf(text: str) -> PartialSystemConf:
    """Parse the content of a pot configuration file.

    Comment lines are skipped; a later line for the same key wins, and a
    value that cannot be parsed leaves that key unset.
    """
    conf = PartialSystemConf()
    for raw in text.split("\n"):
        line = raw.strip()
        if line.startswith("#"):
            continue
        for prefix, (name, parser) in _KEYS.items():
            if line.startswith(prefix):
                setattr(conf, name, get_value(line, parser))
    return conf


def get_pot_prefix() -> Path:
    """Return the installation prefix of ``pot``, found as PREFIX/bin/pot."""
    try:
        completed = subprocess.run(["which", "pot"], capture_output=True, check=False)
    except OSError as exc:
        raise WhichError("pot") from exc
    if completed.returncode != 0:
        raise WhichError("pot")
    try:
        output = completed.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PotError("Invalid UTF-8 string") from exc
    pot_path = Path(output.rstrip("\n"))
    bin_dir = _parent(pot_path)
    return _parent(bin_dir)


def _parent(path: Path) -> Path:
    parent = path.parent
    if parent == path:
        raise PathError(str(path))
    return parent


def _read_conf(file_name: str) -> str:
    return (get_pot_prefix() / "etc" / "pot" / file_name).read_text()


def get_conf_default() -> str:
    """Return the content of ``etc/pot/pot.default.conf`` under the prefix."""
    return _read_conf("pot.default.conf")


def get_conf() -> str:
    """Return the content of ``etc/pot/pot.conf`` under the prefix."""
    return _read_conf("pot.conf")


def load_partial_system_conf() -> PartialSystemConf:
    """Load the default configuration and overlay the local one.

    A DNS address that only comes from the defaults is dropped when it lies
    outside the configured pot network.
    """
    try:
        defaults = parse_partial_system_conf(get_conf_default())
    except (PotError, OSError):
        return PartialSystemConf()
    try:
        local = parse_partial_system_conf(get_conf())
    except (PotError, OSError):
        return defaults
    local_has_dns_ip = local.dns_ip is not None
    defaults.merge(local)
    if not local_has_dns_ip and defaults.dns_ip is not None:
        if defaults.network is None or defaults.dns_ip not in defaults.network:
            defaults.dns_ip = None
    return defaults