"""CPU allocation of the running pots: show, propose and rebalance cpusets."""

from __future__ import annotations

import argparse
import logging
import subprocess
import sys
from collections.abc import Mapping, Sequence
from typing import Optional

from .errors import PotError
from .pot import PotSystemConfig, get_running_pot_list

logger = logging.getLogger(__name__)

Allocation = list[int]

_U32_LIMIT = 2**32


def _parse_u32(text: str) -> int:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(digits)
    if value >= _U32_LIMIT:
        raise ValueError(f"unsigned integer out of range: {text!r}")
    return value


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PotError("Invalid UTF-8 string") from exc


def allocation_from_bytes(data: bytes) -> Allocation:
    """Extract the CPU list from the output of ``cpuset -g``.

    Entries of the mask that are not CPU numbers are skipped.
    """
    text = _decode(data)
    if not text:
        raise PotError("cpuset: no stdout")
    first_line = text.split("\n", 1)[0]
    if first_line.endswith("\r"):
        first_line = first_line[:-1]
    parts = first_line.split(":")
    if len(parts) < 2:
        raise PotError("cpuset: malformed stdout")
    allocation = []
    for item in parts[1].split(","):
        try:
            allocation.append(_parse_u32(item.strip()))
        except ValueError:
            continue
    return allocation


def allocation_to_string(allocation: Sequence[int], ncpu: int) -> str:
    """Describe an allocation; one covering every CPU is "not restricted"."""
    if len(allocation) == ncpu:
        return "not restricted"
    return "".join(f"{cpu} " for cpu in allocation)


def get_ncpu() -> int:
    """Return the number of CPUs reported by ``sysctl hw.ncpu``."""
    completed = subprocess.run(
        ["/sbin/sysctl", "-n", "hw.ncpu"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        check=False,
    )
    text = _decode(completed.stdout).strip()
    try:
        return _parse_u32(text)
    except ValueError as exc:
        raise PotError(f"invalid CPU count: {text!r}") from exc


def get_cpusets(conf: PotSystemConfig) -> dict[str, Allocation]:
    """Return the CPU allocation of every running pot."""
    result: dict[str, Allocation] = {}
    for pot in get_running_pot_list(conf):
        completed = subprocess.run(
            ["/usr/bin/cpuset", "-g", "-j", pot],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        if completed.returncode != 0:
            logger.warning("failed to get cpuset information for pot %s", pot)
            continue
        result[pot] = allocation_from_bytes(completed.stdout)
    return result


def get_potcpuconstraints(
    allocations: Mapping[str, Sequence[int]], ncpu: int
) -> dict[str, int]:
    """Return the CPU count of every pot restricted to fewer than *ncpu* CPUs."""
    return {
        name: len(allocation)
        for name, allocation in allocations.items()
        if len(allocation) != ncpu
    }


def get_cpu_allocation(
    cpusets: Mapping[str, Sequence[int]], ncpu: int
) -> dict[int, int]:
    """Count, for each CPU, how many pots are allowed to run on it."""
    counters = dict.fromkeys(range(ncpu), 0)
    for allocation in cpusets.values():
        for cpu in allocation:
            if cpu not in counters:
                raise PotError(f"CPU {cpu} outside the {ncpu} CPUs of the system")
            counters[cpu] += 1
    return counters


def choose_cpus(cpu_allocation: Mapping[int, int], cpu_amount: int) -> list[int]:
    """Pick the *cpu_amount* least used CPUs, lower numbers first on ties."""
    ranked = sorted(cpu_allocation.items(), key=lambda item: (item[1], item[0]))
    return [cpu for cpu, _ in ranked[:cpu_amount]]


def rebalance_plan(
    cpu_allocation: Mapping[int, int], constraints: Mapping[str, int], ncpu: int
) -> Optional[dict[str, list[int]]]:
    """Propose a new CPU list per constrained pot, or None if balanced enough.

    Pots are taken in name order and their CPUs are handed out round-robin.
    """
    if not cpu_allocation:
        raise PotError("no CPU to rebalance")
    lowest = min(cpu_allocation.values())
    highest = max(cpu_allocation.values())
    if highest - lowest <= 1:
        return None
    logger.info("rebalance needed : min %s max %s", lowest, highest)
    plan: dict[str, list[int]] = {}
    next_cpu = 0
    for name in sorted(constraints):
        cpus = []
        for _ in range(constraints[name]):
            cpus.append(next_cpu)
            next_cpu = (next_cpu + 1) % ncpu
        plan[name] = cpus
    return plan


def show(conf: PotSystemConfig, verbose: bool = False) -> None:
    """Print the CPU allocation of each running pot."""
    ncpu = get_ncpu()
    cpusets = get_cpusets(conf)
    constraints = get_potcpuconstraints(cpusets, ncpu)
    for name, allocation in cpusets.items():
        requested = str(constraints[name]) if name in constraints else "NA"
        print(f"pot {name}:")
        print(f"\tCPU requested: {requested}")
        print(f"\tCPU used: {allocation_to_string(allocation, ncpu)}")
    if verbose:
        for cpu, pots in sorted(get_cpu_allocation(cpusets, ncpu).items()):
            print(f"CPU {cpu} : allocated {pots} pots")


def get_cpu(conf: PotSystemConfig, cpu_amount: int = 1) -> None:
    """Print a comma separated list of CPUs for a new pot needing *cpu_amount*."""
    ncpu = get_ncpu()
    if ncpu <= cpu_amount:
        logger.info("Not enough CPU in the system to provide a meaningful allocation")
        return
    cpu_allocation = get_cpu_allocation(get_cpusets(conf), ncpu)
    print(",".join(str(cpu) for cpu in choose_cpus(cpu_allocation, cpu_amount)))


def rebalance(conf: PotSystemConfig) -> None:
    """Print the cpuset commands that would balance the running pots."""
    ncpu = get_ncpu()
    cpusets = get_cpusets(conf)
    cpu_allocation = get_cpu_allocation(cpusets, ncpu)
    plan = rebalance_plan(cpu_allocation, get_potcpuconstraints(cpusets, ncpu), ncpu)
    if plan is None:
        logger.warning("no need to rebalance")
        return
    for name, cpus in plan.items():
        print(f"cpuset -l {','.join(str(cpu) for cpu in cpus)} -j {name}")


_LEVELS = [logging.CRITICAL + 10, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
_DEFAULT_LEVEL_INDEX = 2


def _u32_argument(text: str) -> int:
    try:
        return _parse_u32(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="potcpu")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="increase the log level")
    parser.add_argument("-q", "--quiet", action="count", default=0,
                        help="decrease the log level")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("show", help="Show the current CPU allocation")
    get_cpu_parser = commands.add_parser("get-cpu", help="Get a cpu allocation for a new jail")
    get_cpu_parser.add_argument("-n", "--num", dest="cpu_amount", type=_u32_argument,
                                default=1, help="Amount of CPUs needed by that pot")
    commands.add_parser("rebalance", help="Propose a new allocation layout if needed")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the ``potcpu`` command."""
    args = _build_parser().parse_args(argv)
    index = max(0, min(len(_LEVELS) - 1, _DEFAULT_LEVEL_INDEX + args.verbose - args.quiet))
    logging.basicConfig(level=_LEVELS[index], format="%(levelname)s %(message)s")
    verbose = index > _DEFAULT_LEVEL_INDEX
    logger.debug("potcpu start")
    try:
        conf = PotSystemConfig.from_system()
        if args.command == "show":
            show(conf, verbose)
        elif args.command == "get-cpu":
            get_cpu(conf, args.cpu_amount)
        else:
            rebalance(conf)
    except (PotError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())