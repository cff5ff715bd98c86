import ipaddress

import pytest

from potnet.bridge import BridgeConf
from potnet.cli import (
    config_check,
    get,
    get_hosts_for_public_bridge,
    get_hosts_from_bridge,
    get_network_size,
    get_next_from_bridge,
    get_prefix_length,
    init_bridge_ipdb,
    init_ipdb,
    is_subnet_usable,
    main,
    new_net,
    next_address,
    show,
    show_bridge,
    validate,
    validate_with_bridge,
)
from potnet.errors import PotError
from potnet.pot import NetType, PotConf, PotDnsConfig, PotSystemConfig

ip = ipaddress.ip_address
net = ipaddress.ip_network


def _conf(fs_root="", network="10.192.0.0/24", gateway="10.192.0.1",
          netmask="255.255.255.0", dns=None):
    return PotSystemConfig(
        zfs_root="zroot/pot",
        fs_root=str(fs_root),
        network=net(network),
        netmask=ip(netmask),
        gateway=ip(gateway),
        ext_if="em0",
        dns=dns,
    )


def _add_pot(root, name, text):
    conf_dir = root / "jails" / name / "conf"
    conf_dir.mkdir(parents=True)
    (conf_dir / "pot.conf").write_text(text)


def _add_bridge(root, file_name, text):
    bridges = root / "bridges"
    bridges.mkdir(exist_ok=True)
    (bridges / file_name).write_text(text)


@pytest.fixture
def bridge_root(tmp_path):
    _add_bridge(tmp_path, "br1", "name=br1\nnet=10.192.0.24/29\ngateway=10.192.0.25\n")
    return tmp_path


@pytest.mark.parametrize("hosts, expected", [(2, 2), (5, 3), (7, 4), (0, None)])
def test_get_network_size(hosts, expected):
    assert get_network_size(hosts) == expected


@pytest.mark.parametrize(
    "hosts, addr, expected",
    [
        (2, "127.0.0.1", 30),
        (5, "127.0.0.1", 29),
        (9, "127.0.0.1", 28),
        (2, "::1", 126),
        (5, "::1", 125),
        (9, "::1", 124),
        (0, "::1", None),
    ],
)
def test_get_prefix_length(hosts, addr, expected):
    assert get_prefix_length(hosts, ip(addr)) == expected


def test_is_subnet_usable():
    ip_db = {ip("10.192.0.1"): None, ip("fd00::1"): None}
    assert is_subnet_usable(net("10.192.0.0/30"), ip_db) is False
    assert is_subnet_usable(net("10.192.0.4/30"), ip_db) is True


def test_init_bridge_ipdb():
    bridge = BridgeConf("test-bridge", net("10.192.0.24/29"), ip("10.192.0.25"))
    pots = [
        PotConf("a", ip("10.192.0.26"), NetType.PRIVATE_BRIDGE),
        PotConf("b", ip("10.1.0.5"), NetType.PUBLIC_BRIDGE),
        PotConf("c", None, NetType.INHERIT),
    ]
    assert init_bridge_ipdb(bridge, pots) == {
        ip("10.192.0.24"): "test-bridge bridge - network ",
        ip("10.192.0.31"): "test-bridge bridge - broadcast ",
        ip("10.192.0.25"): "test-bridge bridge - gateway ",
        ip("10.192.0.26"): "a",
    }


def test_init_ipdb():
    conf = _conf(dns=PotDnsConfig("dns", ip("10.192.0.2")))
    pots = [
        PotConf("web", ip("10.192.0.10"), NetType.PUBLIC_BRIDGE),
        PotConf("inh", None, NetType.INHERIT),
    ]
    bridges = [BridgeConf("br", net("10.192.1.0/30"), ip("10.192.1.1"))]
    assert init_ipdb(conf, pots, bridges) == {
        ip("10.192.0.0"): None,
        ip("10.192.0.255"): None,
        ip("10.192.0.1"): "default gateway",
        ip("10.192.0.2"): "dns",
        ip("10.192.0.10"): "web",
        ip("10.192.1.0"): "br bridge - network ",
        ip("10.192.1.3"): "br bridge - broadcast ",
        ip("10.192.1.1"): "br bridge - gateway ",
        ip("10.192.1.2"): "br bridge - allocated address",
    }


def test_next_address_ipv4_skips_taken():
    ip_db = {ip("10.192.0.1"): None, ip("10.192.0.2"): None}
    assert next_address(net("10.192.0.0/29"), ip_db) == ip("10.192.0.3")


def test_next_address_ipv6_includes_first_address():
    assert next_address(net("fd00::/126"), {ip("fd00::"): None}) == ip("fd00::1")


def test_next_address_full():
    ip_db = {ip("10.0.0.1"): None, ip("10.0.0.2"): None}
    assert next_address(net("10.0.0.0/30"), ip_db) is None


def test_get_plain_and_verbose(capsys):
    conf = _conf(network="10.192.0.0/29")
    ip_db = {ip("10.192.0.1"): None, ip("10.192.0.2"): None}
    get(conf, ip_db)
    assert capsys.readouterr().out == "10.192.0.3\n"
    get(conf, ip_db, verbose=True)
    assert capsys.readouterr().out == (
        "10.192.0.1 already used\n10.192.0.2 already used\n10.192.0.3 available\n"
    )


def test_show(capsys):
    conf = _conf(network="10.192.0.0/24")
    ip_db = {ip("10.192.0.255"): None, ip("10.192.0.1"): "default gateway"}
    show(conf, ip_db)
    assert capsys.readouterr().out == (
        "Network topology:\n"
        "\tnetwork : 10.192.0.0/24\n"
        "\tmin addr: 10.192.0.0\n"
        "\tmax addr: 10.192.0.255\n"
        "\nAddresses already taken:\n"
        "\t10.192.0.1\tdefault gateway\n"
        "\t10.192.0.255\t\n"
    )


def test_new_net_finds_first_free_subnet(capsys):
    conf = _conf()
    ip_db = {ip("10.192.0.0"): None, ip("10.192.0.1"): "gw", ip("10.192.0.255"): None}
    result = new_net(2, conf, ip_db)
    assert result == net("10.192.0.4/30")
    assert capsys.readouterr().out == "net=10.192.0.4/30\ngateway=10.192.0.5\n"


def test_new_net_too_large(capsys):
    conf = _conf(network="10.192.0.0/29")
    assert new_net(100, conf, {}) is None
    assert capsys.readouterr().out == ""


def test_validate_errors():
    conf = _conf()
    ip_db = {ip("10.192.0.1"): "default gateway"}
    with pytest.raises(PotError, match="Address already in use"):
        validate(ip("10.192.0.1"), conf, ip_db)
    with pytest.raises(PotError, match="Address outside the network"):
        validate(ip("10.193.0.1"), conf, ip_db)


def test_validate_with_bridge_errors(bridge_root):
    conf = _conf(fs_root=bridge_root)
    with pytest.raises(PotError, match="Ip already used"):
        validate_with_bridge(conf, "br1", ip("10.192.0.25"))
    with pytest.raises(PotError, match="Ip outside the bridge network"):
        validate_with_bridge(conf, "br1", ip("10.192.1.1"))
    with pytest.raises(PotError, match="bridge nope not found"):
        validate_with_bridge(conf, "nope", ip("10.192.0.26"))


def test_validate_with_bridge_pot_address(bridge_root):
    _add_pot(bridge_root, "app", "network_type=private-bridge\nip=10.192.0.26\n")
    conf = _conf(fs_root=bridge_root)
    with pytest.raises(PotError, match="Ip already used"):
        validate_with_bridge(conf, "br1", ip("10.192.0.26"))


def test_get_next_from_bridge(bridge_root, capsys):
    conf = _conf(fs_root=bridge_root)
    get_next_from_bridge(conf, "br1")
    assert capsys.readouterr().out == "10.192.0.26\n"
    _add_pot(bridge_root, "app", "network_type=private-bridge\nip=10.192.0.26\n")
    get_next_from_bridge(conf, "br1", verbose=True)
    assert capsys.readouterr().out == "10.192.0.27 available\n"


def test_get_next_from_unknown_bridge(bridge_root, capsys):
    get_next_from_bridge(_conf(fs_root=bridge_root), "nope")
    assert capsys.readouterr().out == ""


def test_show_bridge(bridge_root, capsys):
    _add_pot(bridge_root, "app", "network_type=private-bridge\nip=10.192.0.26\n")
    show_bridge(_conf(fs_root=bridge_root), "br1")
    assert capsys.readouterr().out == (
        "\t10.192.0.24\tbr1 bridge - network \n"
        "\t10.192.0.25\tbr1 bridge - gateway \n"
        "\t10.192.0.26\tapp\n"
        "\t10.192.0.31\tbr1 bridge - broadcast \n"
    )


def test_get_hosts_from_bridge(bridge_root, capsys):
    _add_pot(bridge_root, "b", "network_type=private-bridge\nip=10.192.0.28\n")
    _add_pot(bridge_root, "a", "network_type=private-bridge\nip=10.192.0.27\n")
    _add_pot(bridge_root, "pub", "network_type=public-bridge\nip=10.192.0.26\n")
    _add_pot(bridge_root, "far", "network_type=private-bridge\nip=10.192.5.5\n")
    get_hosts_from_bridge(_conf(fs_root=bridge_root), "br1")
    assert capsys.readouterr().out == "10.192.0.27 a\n10.192.0.28 b\n"


def test_get_hosts_for_public_bridge(tmp_path, capsys):
    _add_pot(tmp_path, "web", "network_type=public-bridge\nip=10.192.0.12\n")
    _add_pot(tmp_path, "db", "network_type=public-bridge\nip=10.192.0.9\n")
    _add_pot(tmp_path, "priv", "network_type=private-bridge\nip=10.192.0.30\n")
    _add_pot(tmp_path, "host", "network_type=inherit\n")
    get_hosts_for_public_bridge(_conf(fs_root=tmp_path))
    assert capsys.readouterr().out == "10.192.0.9 db\n10.192.0.12 web\n"


def test_config_check_ok():
    assert config_check(_conf()) is True


def test_config_check_gateway_outside():
    assert config_check(_conf(gateway="10.193.0.1")) is False


def test_config_check_netmask_mismatch():
    assert config_check(_conf(netmask="255.255.0.0")) is False


def test_config_check_dns_outside_is_only_reported():
    conf = _conf(dns=PotDnsConfig("dns", ip("10.200.0.2")))
    assert config_check(conf) is True


def test_main_rejects_invalid_ip():
    with pytest.raises(SystemExit) as info:
        main(["ip4check", "-H", "not-an-ip"])
    assert info.value.code == 1


def test_main_requires_host_number():
    with pytest.raises(SystemExit) as info:
        main(["new-net"])
    assert info.value.code == 1