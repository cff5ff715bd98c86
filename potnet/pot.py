"""Pot system configuration and the pots installed on the host."""

from __future__ import annotations

import ipaddress
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import IncompleteSystemConfError, JlsError
from .system import PartialSystemConf, load_partial_system_conf
from .util import IpAddress, IpNetwork, parse_ip


@dataclass
class PotDnsConfig:
    """The pot that serves DNS and its address."""

    pot_name: str
    ip: IpAddress


@dataclass
class PotSystemConfig:
    """A complete pot system configuration."""

    zfs_root: str = ""
    fs_root: str = ""
    network: IpNetwork = field(default_factory=lambda: ipaddress.IPv4Network("0.0.0.0/0"))
    netmask: IpAddress = field(default_factory=lambda: ipaddress.IPv4Address("255.255.255.0"))
    gateway: IpAddress = field(default_factory=lambda: ipaddress.IPv4Address("127.0.0.1"))
    ext_if: str = ""
    dns: Optional[PotDnsConfig] = None

    @classmethod
    def from_partial(cls, partial: PartialSystemConf) -> "PotSystemConfig":
        """Build a configuration; raise IncompleteSystemConfError if values are missing."""
        if not partial.is_valid():
            raise IncompleteSystemConfError()
        dns = None
        if partial.dns_ip is not None:
            dns = PotDnsConfig(pot_name=partial.dns_name, ip=partial.dns_ip)
        return cls(
            zfs_root=partial.zfs_root,
            fs_root=partial.fs_root,
            network=partial.network,
            netmask=partial.netmask,
            gateway=partial.gateway,
            ext_if=partial.ext_if,
            dns=dns,
        )

    @classmethod
    def from_system(cls) -> "PotSystemConfig":
        """Load the configuration installed alongside ``pot``."""
        return cls.from_partial(load_partial_system_conf())


class NetType(Enum):
    """Network setup of a pot."""

    INHERIT = "inherit"
    ALIAS = "alias"
    PUBLIC_BRIDGE = "public-bridge"
    PRIVATE_BRIDGE = "private-bridge"


@dataclass
class PotConf:
    """Network information of one pot."""

    name: str = ""
    ip_addr: Optional[IpAddress] = None
    network_type: NetType = NetType.INHERIT


def _pot_paths(conf: PotSystemConfig) -> list[Path]:
    jails = Path(conf.fs_root + "/jails")
    try:
        with os.scandir(jails) as entries:
            names = [e.name for e in entries if e.is_dir(follow_symlinks=False)]
    except OSError:
        return []
    return [jails / name for name in sorted(names)]


def get_pot_list(conf: PotSystemConfig) -> list[str]:
    """Return the names of the pots found under ``fs_root/jails``."""
    return [path.name for path in _pot_paths(conf)]


def is_pot_running(pot_name: str) -> bool:
    """Whether the jail of *pot_name* is running; JlsError if jls cannot run."""
    try:
        completed = subprocess.run(
            ["/usr/sbin/jls", "-j", pot_name],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        raise JlsError() from exc
    return completed.returncode == 0


def get_running_pot_list(conf: PotSystemConfig) -> list[str]:
    """Return the names of the pots whose jail is running."""
    running = []
    for pot in get_pot_list(conf):
        try:
            if is_pot_running(pot):
                running.append(pot)
        except JlsError:
            continue
    return running


_POT_KEYS = {"ip4=": "ip4", "ip=": "ip", "vnet=": "vnet", "network_type=": "network_type"}


def parse_pot_conf(name: str, text: str) -> Optional[PotConf]:
    """Read the network part of a ``pot.conf``.

    Returns None for pots that are aliased, of an unknown network type, or
    whose configuration lacks the entries its network type needs. An address
    that cannot be parsed raises ValueError.
    """
    values: dict[str, str] = {}
    for raw in text.split("\n"):
        line = raw[:-1] if raw.endswith("\r") else raw
        for prefix, key in _POT_KEYS.items():
            if line.startswith(prefix):
                values[key] = line.split("=")[1]

    pot = PotConf(name=name)
    network_type = values.get("network_type")
    if network_type is not None:
        try:
            pot.network_type = NetType(network_type)
        except ValueError:
            return None
        if pot.network_type is NetType.ALIAS:
            return None
        if pot.network_type in (NetType.PUBLIC_BRIDGE, NetType.PRIVATE_BRIDGE):
            ip = values.get("ip")
            if ip is None:
                return None
            pot.ip_addr = parse_ip(ip)
        return pot

    ip4 = values.get("ip4")
    if ip4 is None:
        return None
    if ip4 == "inherit":
        pot.network_type = NetType.INHERIT
        return pot
    pot.ip_addr = parse_ip(ip4)
    vnet = values.get("vnet")
    if vnet is None:
        return None
    pot.network_type = NetType.PUBLIC_BRIDGE if vnet == "true" else NetType.ALIAS
    return pot


def get_pot_conf_list(conf: PotSystemConfig) -> list[PotConf]:
    """Return the network information of every pot with a usable configuration."""
    result = []
    for path in _pot_paths(conf):
        try:
            text = (path / "conf" / "pot.conf").read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        pot = parse_pot_conf(path.name, text)
        if pot is not None:
            result.append(pot)
    return result