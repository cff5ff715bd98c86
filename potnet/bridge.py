"""Private bridge configurations."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import BridgeConfError
from .util import IpAddress, IpNetwork, get_value, parse_ip, parse_network

if TYPE_CHECKING:
    from .pot import PotSystemConfig


@dataclass
class BridgeConf:
    """A private bridge: its name, network and gateway."""

    name: str
    network: IpNetwork
    gateway: IpAddress


def parse_bridge_conf(text: str) -> BridgeConf:
    """Parse a bridge file; raise BridgeConfError if it is incomplete or inconsistent."""
    name = network = gateway = None
    for raw in text.split("\n"):
        line = raw.strip()
        if line.startswith("#"):
            continue
        if line.startswith("name="):
            name = get_value(line, str)
        if line.startswith("net="):
            network = get_value(line, parse_network)
        if line.startswith("gateway="):
            gateway = get_value(line, parse_ip)
    if name is None or network is None or gateway is None:
        raise BridgeConfError()
    if gateway not in network:
        raise BridgeConfError()
    return BridgeConf(name=name, network=network, gateway=gateway)


def get_bridges_list(conf: "PotSystemConfig") -> list[BridgeConf]:
    """Return the valid bridges defined in ``fs_root/bridges``."""
    bridges_dir = Path(conf.fs_root) / "bridges"
    try:
        with os.scandir(bridges_dir) as entries:
            names = sorted(e.name for e in entries if e.is_file(follow_symlinks=False))
    except OSError:
        return []
    result = []
    for name in names:
        try:
            text = (bridges_dir / name).read_text(encoding="utf-8")
            result.append(parse_bridge_conf(text))
        except (OSError, UnicodeDecodeError, BridgeConfError):
            continue
    return result