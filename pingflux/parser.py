"""Parse traceroute/tracert text output into hop records.

Output differs by platform and locale. Lines that don't look like hops
are skipped and nothing here raises.

Example output (Windows, ``tracert -d``):
      1    <1 ms    <1 ms    <1 ms  192.168.1.1
      2    12 ms    11 ms    13 ms  10.0.0.1
      3     *        *        *     Request timed out.
"""

from __future__ import annotations

import logging
import re

from .commands import round_half_up
from .models import RTT_SLOTS, HopRecord

logger = logging.getLogger(__name__)

LINE_SPLIT_RE = re.compile(r"\r?\n")
HOP_LINE_RE = re.compile(r"^\s*(\d+)\s+(.*)$")
LATENCY_RE = re.compile(r"(?:<\d+|\d+(?:\.\d+)?)\s*ms|\*", re.IGNORECASE)
BRACKET_RE = re.compile(r"\[([^\]]+)\]")
ADDRESS_RE = re.compile(
    r"((?:\d{1,3}\.){3}\d{1,3}|(?:[0-9a-f]{0,4}:){2,}[0-9a-f]{0,4})$", re.IGNORECASE
)

# tracert localizes its timeout message.
REQUEST_TIMEOUT_PATTERNS = [
    re.compile(r"Request timed out", re.IGNORECASE),
    re.compile(r"Esgotado o tempo", re.IGNORECASE),
    re.compile(r"Tiempo de espera agotado", re.IGNORECASE),
    re.compile(r"Zeitüberschreitung", re.IGNORECASE),
    re.compile(r"Délai d'attente", re.IGNORECASE),
    re.compile(r"Timed out", re.IGNORECASE),
]


def parse_latency_token(token: str | None) -> int | None:
    """Convert one latency token to whole milliseconds.

    ``*`` means the probe timed out and yields None. Sub-millisecond
    replies such as ``<1 ms`` count as 0.
    """
    if not token:
        return None
    token = token.strip()
    if token == "*":
        return None
    if token.startswith("<"):
        return 0
    numeric = re.sub(r"[^0-9.]", "", token)
    try:
        return round_half_up(float(numeric))
    except (ValueError, OverflowError):
        # Digit runs too long for a float come back as inf.
        return None


def is_timeout_message(segment: str | None) -> bool:
    if not segment:
        return False
    return any(pattern.search(segment) for pattern in REQUEST_TIMEOUT_PATTERNS)


def extract_address(segment: str | None) -> str | None:
    """Pick the hop address out of the text that follows the latencies.

    A bracketed ``[addr]`` (tracert with name resolution) wins, then a
    trailing IPv4 or IPv6 address.
    """
    if not segment or is_timeout_message(segment):
        return None
    bracket = BRACKET_RE.search(segment)
    if bracket:
        return bracket.group(1)
    address = ADDRESS_RE.search(segment)
    if address:
        return address.group(1)
    return None


def parse_hop_line(line: str) -> HopRecord | None:
    """Parse a single line, or return None if it is not a hop line."""
    match = HOP_LINE_RE.match(line)
    if not match:
        return None
    hop = int(match.group(1))
    if hop < 1:
        return None
    rest = match.group(2)

    samples: list[int | None] = []
    end = 0
    for token in LATENCY_RE.finditer(rest):
        if len(samples) == RTT_SLOTS:
            break
        samples.append(parse_latency_token(token.group(0)))
        end = token.end()

    # The address is whatever follows the last latency, wherever that is.
    address = extract_address(rest[end:].strip())
    return HopRecord(hop=hop, rtt_ms=samples, address=address)


def parse_traceroute_output(output: str | None) -> list[HopRecord]:
    """Parse raw traceroute stdout into hop records, in source order.

    Args:
        output: Raw stdout of traceroute or tracert.

    Returns:
        One HopRecord per hop line. Headers, banners and anything else that
        does not start with a hop number are skipped.

    Example:
        >>> parse_traceroute_output(" 1  12 ms  11 ms  13 ms  [10.0.0.1]")
        [HopRecord(hop=1, rtt_ms=(12, 11, 13), address='10.0.0.1')]
    """
    hops: list[HopRecord] = []
    if not output:
        return hops

    for line in LINE_SPLIT_RE.split(output):
        line = line.rstrip()
        if not line.strip():
            continue
        hop = parse_hop_line(line)
        if hop is None:
            logger.debug(f"Skipping non-hop line: {line!r}")
            continue
        hops.append(hop)

    return hops
