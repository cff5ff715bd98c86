"""Address management for the pot virtual network and its private bridges."""

from __future__ import annotations

import argparse
import ipaddress
import logging
import sys
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Optional

from .bridge import BridgeConf, get_bridges_list
from .errors import PotError
from .pot import NetType, PotConf, PotSystemConfig, get_pot_conf_list
from .util import IpAddress, IpNetwork, parse_ip

logger = logging.getLogger(__name__)

IpDb = dict[IpAddress, Optional[str]]

_BRIDGED = (NetType.PUBLIC_BRIDGE, NetType.PRIVATE_BRIDGE)


def _ip_key(ip: IpAddress) -> tuple[int, int]:
    return (ip.version, int(ip))


def _sorted_items(ip_db: Mapping[IpAddress, object]) -> list:
    return sorted(ip_db.items(), key=lambda item: _ip_key(item[0]))


def _hosts(network: IpNetwork) -> Iterator[IpAddress]:
    """Usable addresses: IPv4 networks wider than /31 skip network and broadcast."""
    if network.version == 4 and network.prefixlen < 31:
        return network.hosts()
    return iter(network)


def _find_bridge(conf: PotSystemConfig, bridge_name: str) -> Optional[BridgeConf]:
    for bridge in get_bridges_list(conf):
        if bridge.name == bridge_name:
            logger.info("bridge %s found", bridge.name)
            return bridge
    return None


def get_network_size(host_number: int) -> Optional[int]:
    """Host bits needed for *host_number* hosts plus network and broadcast."""
    if host_number == 0:
        return None
    max_hosts = 4
    size = 2
    while host_number > max_hosts - 2:
        max_hosts <<= 1
        size += 1
    return size


def get_prefix_length(host_number: int, ip_addr: IpAddress) -> Optional[int]:
    """Prefix length of a network holding *host_number* hosts of *ip_addr*'s family."""
    size = get_network_size(host_number)
    if size is None:
        return None
    bits = 32 if ip_addr.version == 4 else 128
    return bits - size


def is_subnet_usable(subnet: IpNetwork, ip_db: Iterable[IpAddress]) -> bool:
    """Whether no address already taken lies inside *subnet*."""
    return not any(ip in subnet for ip in ip_db)


def _add_bridge_addresses(ip_db: IpDb, bridge: BridgeConf) -> None:
    ip_db[bridge.network.network_address] = f"{bridge.name} bridge - network "
    ip_db[bridge.network.broadcast_address] = f"{bridge.name} bridge - broadcast "
    ip_db[bridge.gateway] = f"{bridge.name} bridge - gateway "


def init_bridge_ipdb(bridge: BridgeConf, pot_confs: Iterable[PotConf]) -> IpDb:
    """Addresses taken inside a private bridge."""
    logger.info("Evaluating bridge %r", bridge)
    ip_db: IpDb = {}
    _add_bridge_addresses(ip_db, bridge)
    for pot in pot_confs:
        if pot.network_type in _BRIDGED and pot.ip_addr in bridge.network:
            ip_db[pot.ip_addr] = pot.name
    return ip_db


def init_ipdb(
    conf: PotSystemConfig, pot_confs: Iterable[PotConf], bridges: Iterable[BridgeConf]
) -> IpDb:
    """Addresses taken in the pot network, including every bridge's range."""
    ip_db: IpDb = {}
    logger.info("Insert network %s", conf.network)
    ip_db[conf.network.network_address] = None
    logger.info("Insert broadcast %s", conf.network)
    ip_db[conf.network.broadcast_address] = None
    logger.info("Insert gateway %s", conf.gateway)
    ip_db[conf.gateway] = "default gateway"
    if conf.dns is not None:
        logger.info("Insert dns %s", conf.dns.ip)
        ip_db[conf.dns.ip] = conf.dns.pot_name
    for pot in pot_confs:
        if pot.network_type in _BRIDGED:
            logger.info("Insert pot %s", pot.ip_addr)
            ip_db[pot.ip_addr] = pot.name
    for bridge in bridges:
        logger.info("Evaluating bridge %r", bridge)
        _add_bridge_addresses(ip_db, bridge)
        description = f"{bridge.name} bridge - allocated address"
        for host in _hosts(bridge.network):
            ip_db.setdefault(host, description)
    return ip_db


def _print_ipdb(ip_db: IpDb) -> None:
    for ip, name in _sorted_items(ip_db):
        print(f"\t{ip}\t{name or ''}")


def show(conf: PotSystemConfig, ip_db: IpDb, verbose: bool = False) -> None:
    """Print the pot network and the addresses already taken."""
    network = conf.network
    print("Network topology:")
    print(f"\tnetwork : {network.supernet(new_prefix=network.prefixlen)}")
    print(f"\tmin addr: {network.network_address}")
    print(f"\tmax addr: {network.broadcast_address}")
    print("\nAddresses already taken:")
    _print_ipdb(ip_db)
    if verbose:
        print(f"\nDebug information\n{conf!r}")


def show_bridge(conf: PotSystemConfig, bridge_name: str) -> None:
    """Print the addresses taken inside the bridge *bridge_name*."""
    bridge = _find_bridge(conf, bridge_name)
    if bridge is None:
        logger.error("bridge %s not found", bridge_name)
        return
    _print_ipdb(init_bridge_ipdb(bridge, get_pot_conf_list(conf)))


def next_address(network: IpNetwork, ip_db: Iterable[IpAddress]) -> Optional[IpAddress]:
    """First host of *network* not in *ip_db*, or None if all are taken."""
    taken = set(ip_db)
    return next((host for host in _hosts(network) if host not in taken), None)


def get(conf: PotSystemConfig, ip_db: IpDb, verbose: bool = False) -> None:
    """Print the first free address of the pot network."""
    for host in _hosts(conf.network):
        if host not in ip_db:
            print(f"{host} available" if verbose else str(host))
            return
        if verbose:
            print(f"{host} already used")


def get_next_from_bridge(
    conf: PotSystemConfig, bridge_name: str, verbose: bool = False
) -> None:
    """Print the first free address of the bridge *bridge_name*."""
    bridge = _find_bridge(conf, bridge_name)
    if bridge is None:
        logger.error("bridge %s not found", bridge_name)
        return
    ip_db = init_bridge_ipdb(bridge, get_pot_conf_list(conf))
    host = next_address(bridge.network, ip_db)
    if host is not None:
        print(f"{host} available" if verbose else str(host))


def new_net(host_number: int, conf: PotSystemConfig, ip_db: IpDb) -> Optional[IpNetwork]:
    """Print and return the first free subnet able to hold *host_number* hosts."""
    prefix = get_prefix_length(host_number, conf.gateway)
    if prefix is None:
        return None
    logger.info("Subnet prefix length %s", prefix)
    network = conf.network
    if prefix < network.prefixlen or prefix > network.max_prefixlen:
        return None
    for subnet in network.subnets(new_prefix=prefix):
        if is_subnet_usable(subnet, ip_db):
            print(f"net={subnet}")
            print(f"gateway={next(_hosts(subnet))}")
            return subnet
        logger.debug("%s not usable", subnet)
    return None


def _print_hosts(pots: Iterable[PotConf]) -> None:
    hosts = {pot.ip_addr: pot.name for pot in pots}
    for ip, name in _sorted_items(hosts):
        print(f"{ip} {name}")


def get_hosts_from_bridge(conf: PotSystemConfig, bridge_name: str) -> None:
    """Print an ``/etc/hosts`` list of the pots attached to a private bridge."""
    bridge = _find_bridge(conf, bridge_name)
    if bridge is None:
        return
    logger.info("Evaluating bridge %r", bridge)
    _print_hosts(
        pot
        for pot in get_pot_conf_list(conf)
        if pot.network_type is NetType.PRIVATE_BRIDGE and pot.ip_addr in bridge.network
    )


def get_hosts_for_public_bridge(conf: PotSystemConfig) -> None:
    """Print an ``/etc/hosts`` list of the pots on the public bridge."""
    _print_hosts(
        pot for pot in get_pot_conf_list(conf) if pot.network_type is NetType.PUBLIC_BRIDGE
    )


def validate(ip: IpAddress, conf: PotSystemConfig, ip_db: IpDb) -> None:
    """Raise PotError unless *ip* is free and inside the pot network."""
    if ip in ip_db:
        raise PotError("Address already in use")
    if ip not in conf.network:
        raise PotError("Address outside the network")


def validate_with_bridge(conf: PotSystemConfig, bridge_name: str, ip: IpAddress) -> None:
    """Raise PotError unless *ip* is free and inside the bridge *bridge_name*."""
    bridge = _find_bridge(conf, bridge_name)
    if bridge is None:
        raise PotError(f"bridge {bridge_name} not found")
    ip_db = init_bridge_ipdb(bridge, get_pot_conf_list(conf))
    if ip not in bridge.network:
        logger.error("ip %s not in the bridge network %s", ip, bridge.network)
        raise PotError("Ip outside the bridge network")
    if ip in ip_db:
        logger.error("ip %s already in use", ip)
        raise PotError("Ip already used")


def config_check(conf: PotSystemConfig) -> bool:
    """Log inconsistencies of the configuration; False if gateway or netmask is wrong."""
    gateway_ok = conf.gateway in conf.network
    if not gateway_ok:
        logger.error(
            "gateway IP (%s) outside the network range (%s)", conf.gateway, conf.network
        )
    if conf.dns is not None and conf.dns.ip not in conf.network:
        logger.error("DNS IP (%s) outside the network range (%s)", conf.dns.ip, conf.network)
    netmask_ok = conf.network.netmask == conf.netmask
    if not netmask_ok:
        logger.error(
            "netmask (%s) different from the network one (%s)", conf.netmask, conf.network
        )
    return gateway_ok and netmask_ok


_LEVELS = [logging.CRITICAL + 10, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
_DEFAULT_LEVEL_INDEX = 2


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _ip_argument(text: str) -> IpAddress:
    try:
        return parse_ip(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _u16_argument(text: str) -> int:
    if not (text.isascii() and text.isdigit()) or int(text) > 0xFFFF:
        raise argparse.ArgumentTypeError(f"invalid host number: {text!r}")
    return int(text)


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="potnet")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="increase the log level")
    parser.add_argument("-q", "--quiet", action="count", default=0,
                        help="decrease the log level")
    commands = parser.add_subparsers(dest="command", required=True)

    def bridge_option(sub: argparse.ArgumentParser, text: str) -> None:
        sub.add_argument("-b", "--bridge-name", dest="bridge_name", help=text)

    def host_option(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("-H", "--host", dest="host_addr", type=_ip_argument,
                         default=ipaddress.ip_address("127.0.0.1"),
                         help="The host IP (IPv4 or IPv6)")

    bridge_option(commands.add_parser("show", help="Show the pot virtual network status"),
                  "The name of a private bridge")
    bridge_option(commands.add_parser("next", help="Provides the next available IP address"),
                  "The name of a private bridge")
    commands.add_parser("config-check", help="Check the POT config")
    validate_parser = commands.add_parser(
        "validate", help="Validate the IP address provided as parameter")
    host_option(validate_parser)
    bridge_option(validate_parser, "The name of the private bridge, if the IP belongs to it")
    host_option(commands.add_parser(
        "ip4check", help="Check if the argument is a valid ipv4 address"))
    host_option(commands.add_parser(
        "ip6check", help="Check if the argument is a valid ipv6 address"))
    host_option(commands.add_parser("ipcheck", help="Check if the argument is a valid ip address"))
    new_net_parser = commands.add_parser("new-net", help="Provide the next available network")
    new_net_parser.add_argument(
        "-s", dest="host_number", type=_u16_argument, required=True,
        help="The number of host to be included in the network (gateway excluded)")
    bridge_option(commands.add_parser(
        "etc-hosts",
        help="Generate the etc/hosts file with all know hosts in the specific bridge"),
        "The name of a private bridge")
    return parser


def _run(args: argparse.Namespace, verbose: bool) -> int:
    conf = PotSystemConfig.from_system()
    ip_db = init_ipdb(conf, get_pot_conf_list(conf), get_bridges_list(conf))
    command = args.command
    if command == "show":
        if args.bridge_name is not None:
            show_bridge(conf, args.bridge_name)
        else:
            show(conf, ip_db, verbose)
    elif command == "next":
        if args.bridge_name is not None:
            logger.debug("get an ip for the bridge %s", args.bridge_name)
            get_next_from_bridge(conf, args.bridge_name, verbose)
        else:
            get(conf, ip_db, verbose)
    elif command == "validate":
        if args.bridge_name is not None:
            logger.debug("validate the ip %s for the bridge %s", args.host_addr, args.bridge_name)
            validate_with_bridge(conf, args.bridge_name, args.host_addr)
        else:
            validate(args.host_addr, conf, ip_db)
    elif command == "ip4check":
        return 0 if args.host_addr.version == 4 else 1
    elif command == "ip6check":
        return 0 if args.host_addr.version == 6 else 1
    elif command == "ipcheck":
        logger.debug("%s is a valid IP address", args.host_addr)
    elif command == "config-check":
        return 0 if config_check(conf) else 1
    elif command == "new-net":
        if args.host_number <= 1:
            logger.error("A network with size %s is too small", args.host_number)
            return 1
        new_net(args.host_number, conf, ip_db)
    elif command == "etc-hosts":
        if args.bridge_name is not None:
            logger.debug("get an ip for the bridge %s", args.bridge_name)
            get_hosts_from_bridge(conf, args.bridge_name)
        else:
            get_hosts_for_public_bridge(conf)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the ``potnet`` command."""
    args = _build_parser().parse_args(argv)
    index = max(0, min(len(_LEVELS) - 1, _DEFAULT_LEVEL_INDEX + args.verbose - args.quiet))
    logging.basicConfig(level=_LEVELS[index], format="%(levelname)s %(message)s")
    logger.debug("potnet start")
    try:
        return _run(args, index > _DEFAULT_LEVEL_INDEX)
    except (PotError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())