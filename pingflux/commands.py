"""Build the platform-specific traceroute command line.

The two native utilities take their timeout in different units: Windows
``tracert`` waits per hop in milliseconds, POSIX ``traceroute`` waits per
probe in whole seconds. Each strategy translates the overall budget into
its tool's own unit.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Command:
    """Executable name plus argument vector, ready for exec (no shell)."""

    executable: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


class WindowsTracert:
    """``tracert`` with numeric output and a per-hop wait in milliseconds."""

    executable = "tracert"

    def build(self, target: str, max_hops: int, timeout_ms: int) -> Command:
        per_hop_ms = max(1000, timeout_ms // max(max_hops, 1))
        return Command(
            self.executable,
            ("-d", "-h", str(max_hops), "-w", str(per_hop_ms), target),
        )


class PosixTraceroute:
    """``traceroute`` with numeric output and a per-probe wait in seconds."""

    executable = "traceroute"

    def build(self, target: str, max_hops: int, timeout_ms: int) -> Command:
        seconds = max(1, round_half_up(timeout_ms / 1000))
        return Command(
            self.executable,
            ("-n", "-m", str(max_hops), "-w", str(seconds), target),
        )


@dataclass(frozen=True)
class OverrideCommand:
    """Operator supplied executable, run with the target as its only argument."""

    executable: str

    def build(self, target: str, max_hops: int, timeout_ms: int) -> Command:
        return Command(self.executable, (target,))


CommandStrategy = WindowsTracert | PosixTraceroute | OverrideCommand


def select_strategy(
    override: str | None = None, os_name: str | None = None
) -> CommandStrategy:
    """Pick the command strategy for this host.

    Args:
        override: Operator configured command. Takes precedence when set.
        os_name: Value of ``os.name`` to select for (defaults to this host).
    """
    if override:
        return OverrideCommand(override)

    match os_name or os.name:
        case "nt":
            return WindowsTracert()
        case _:
            return PosixTraceroute()


def build_command(
    target: str,
    max_hops: int,
    timeout_ms: int,
    override: str | None = None,
    os_name: str | None = None,
) -> Command:
    """Build the traceroute command for an already clamped request.

    Example:
        >>> str(build_command("8.8.8.8", 30, 10000, os_name="posix"))
        'traceroute -n -m 30 -w 10 8.8.8.8'
        >>> str(build_command("8.8.8.8", 30, 10000, os_name="nt"))
        'tracert -d -h 30 -w 1000 8.8.8.8'
    """
    strategy = select_strategy(override, os_name)
    return strategy.build(target, max_hops, timeout_ms)
