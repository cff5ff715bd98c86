# potnet

Command line utilities for the pot jail framework on FreeBSD: address
management for the pot virtual network and its private bridges (`potnet`),
and CPU allocation of running pots (`potcpu`).

Both commands read the pot system configuration. The installation prefix is
found by running `which pot` and taking the directory above `bin`; then
`etc/pot/pot.default.conf` is read and `etc/pot/pot.conf` is laid over it.
Pots are looked up as directories under `<POT_FS_ROOT>/jails`, each with a
`conf/pot.conf`, and private bridges as files under `<POT_FS_ROOT>/bridges`
holding `name=`, `net=` and `gateway=` lines.

The configuration must define `POT_ZFS_ROOT`, `POT_FS_ROOT`, `POT_NETWORK`,
`POT_NETMASK`, `POT_GATEWAY`, `POT_EXTIF` and `POT_DNS_NAME`; `POT_DNS_IP` is
optional. A DNS address that only comes from the default file is dropped when
it lies outside the pot network.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## potnet

```
potnet show                      # network topology and addresses in use
potnet show -b BRIDGE            # addresses in use in a private bridge
potnet next                      # first free address in the pot network
potnet next -b BRIDGE            # first free address in a private bridge
potnet validate -H 10.192.0.5    # fail if the address is taken or out of the network
potnet validate -H 10.192.0.5 -b BRIDGE
potnet ip4check -H 10.192.0.5    # exit status 1 if not an IPv4 address
potnet ip6check -H fd00::1       # exit status 1 if not an IPv6 address
potnet ipcheck -H 10.192.0.5     # exit status 1 if not an IP address at all
potnet new-net -s 5              # first free subnet able to hold 5 hosts
potnet etc-hosts                 # hosts entries for pots on the public bridge
potnet etc-hosts -b BRIDGE       # hosts entries for pots on a private bridge
potnet config-check              # sanity checks on the system configuration
```

`-H/--host` defaults to `127.0.0.1`. Addresses counted as taken in the pot
network are its network and broadcast addresses, the gateway, the DNS pot,
every pot on a public or private bridge, and the whole range of every private
bridge.

`new-net -s N` needs `N` of at least 2; it prints `net=<subnet>` and
`gateway=<first host>` for the first subnet of the pot network that holds none
of the taken addresses.

`config-check` logs a gateway outside the network, a DNS address outside the
network and a netmask that does not match the network; it exits with status 1
for the gateway and netmask cases.

`validate` reports failures as `Error: ...` on standard error with exit
status 1, as do the other commands when the configuration cannot be loaded.

`-v` raises the log level (once for info, twice for debug) and `-q` lowers it.
With `-v`, `show` also prints the loaded configuration, and `next` without a
bridge reports each address it skips and marks the chosen one as `available`.

## potcpu

```
potcpu show                # requested and used CPUs per running pot
potcpu get-cpu -n 2        # least used CPUs for a new pot
potcpu rebalance           # cpuset commands for a balanced layout
```

Running pots are those for which `/usr/sbin/jls -j <pot>` succeeds; their
CPUs come from `/usr/bin/cpuset -g -j <pot>` and the CPU count from
`/sbin/sysctl -n hw.ncpu`.

- `show` prints, per running pot, how many CPUs it is restricted to (`NA`
  when it may use all of them) and which CPUs it uses. With `-v` it also
  prints how many pots may run on each CPU.
- `get-cpu -n N` (default 1) prints a comma separated list of the `N` least
  used CPUs, lower numbers first on ties. It prints nothing when the system
  does not have more than `N` CPUs.
- `rebalance` does nothing when the most and least used CPUs differ by at
  most one pot. Otherwise it hands out CPUs round-robin to the restricted
  pots, in name order, and prints one `cpuset -l <cpus> -j <pot>` line each.

## What it does not do

Both commands only read the configuration and the state of the host. They do
not create, start or reconfigure pots or bridges, and `potcpu rebalance` only
prints the `cpuset` commands; it does not run them.

## Library use

The modules can be used from Python as well:

```python
import ipaddress

from potnet.bridge import parse_bridge_conf
from potnet.cli import get_prefix_length, init_bridge_ipdb, next_address

bridge = parse_bridge_conf("net=10.192.0.24/29\ngateway=10.192.0.25\nname=test-bridge")
print(bridge.name, bridge.network, bridge.gateway)

taken = init_bridge_ipdb(bridge, [])
print(next_address(bridge.network, taken))                       # 10.192.0.26
print(get_prefix_length(5, ipaddress.ip_address("10.0.0.1")))   # 29
```

- `potnet.system.parse_partial_system_conf` parses a system configuration
  text into a `PartialSystemConf`; `potnet.pot.PotSystemConfig.from_partial`
  turns a complete one into a `PotSystemConfig`, and
  `PotSystemConfig.from_system` loads the installed configuration.
- `potnet.pot.parse_pot_conf` reads the network part of a pot's `pot.conf`;
  `get_pot_conf_list`, `get_pot_list` and `get_running_pot_list` look at the
  pots of a configuration.
- `potnet.potcpu` offers `allocation_from_bytes`, `get_cpu_allocation`,
  `choose_cpus` and `rebalance_plan` for working on CPU allocations without
  running any command.

Errors are subclasses of `potnet.errors.PotError`: `IncompleteSystemConfError`,
`WhichError`, `PathError`, `JlsError` and `BridgeConfError`.