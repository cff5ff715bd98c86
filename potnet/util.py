"""Helpers to read ``key=value`` lines and IP values."""

from __future__ import annotations

import ipaddress
from typing import Callable, Optional, TypeVar, Union

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IpNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

T = TypeVar("T")


def get_value(line: str, parse: Callable[[str], T]) -> Optional[T]:
    """Return the parsed first word after the first ``=`` of *line*, or None.

    Anything after a space in the value is ignored. A value that *parse*
    rejects with ``ValueError`` yields None.
    """
    parts = line.split("=")
    if len(parts) < 2:
        return None
    word = parts[1].split(" ")[0]
    try:
        return parse(word)
    except ValueError:
        return None


def parse_ip(text: str) -> IpAddress:
    """Parse an IPv4 or IPv6 address; raise ValueError if it is not one."""
    if "%" in text:
        raise ValueError(f"invalid IP address: {text!r}")
    return ipaddress.ip_address(text)


def parse_network(text: str) -> IpNetwork:
    """Parse ``address/prefix`` into a network; host bits are dropped.

    The prefix must be a decimal length; a bare address is rejected.
    """
    address, sep, prefix = text.partition("/")
    if not sep or not (prefix.isascii() and prefix.isdigit()):
        raise ValueError(f"invalid network: {text!r}")
    return ipaddress.ip_network((parse_ip(address), int(prefix)), strict=False)