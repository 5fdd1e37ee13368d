"""Traceroute engine: clamp the request, run the OS utility, parse, classify.

``TracerouteEngine.run`` always returns a ``TracerouteRun``. Failures of
the diagnostic itself (timeout, missing executable, no usable output) are
reported through ``success`` and ``failure_reason`` rather than raised,
so every invocation leaves an auditable record.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

from .commands import build_command
from .config import PingfluxConfig, TracerouteConfig
from .models import FailureReason, HopRecord, TracerouteRequest, TracerouteRun
from .parser import parse_traceroute_output
from .supervisor import ExecutionOutcome, supervise

logger = logging.getLogger(__name__)


def _to_number(value: Any) -> float | None:
    """Positive finite number, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric <= 0:
        return None
    return numeric


def clamp_max_hops(value: Any, ceiling: int) -> int:
    """Clamp a caller supplied hop count to ``[1, ceiling]``."""
    numeric = _to_number(value)
    if numeric is None:
        return ceiling
    return max(1, min(math.floor(numeric), ceiling))


def resolve_timeout(value: Any, ceiling: int) -> int:
    """Clamp a caller supplied timeout (ms) to ``[1, ceiling]``."""
    numeric = _to_number(value)
    if numeric is None:
        return ceiling
    return max(1, min(math.floor(numeric), ceiling))


def resolve_target(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def classify(
    outcome: ExecutionOutcome, hops: list[HopRecord]
) -> tuple[bool, FailureReason | None]:
    """Decide whether a run succeeded.

    Checks are evaluated in order, first match wins:
    timeout or spawn failure fail the run; a clean exit succeeds; a
    non-zero (or unknown) exit still succeeds when stdout produced at least
    one hop; anything else fails.
    """
    if outcome.timed_out:
        return False, FailureReason.TIMEOUT
    if outcome.spawn_failed:
        return False, FailureReason.SPAWN_ERROR
    if outcome.exit_code == 0:
        return True, None
    if outcome.stdout and hops:
        return True, None
    if outcome.stderr:
        logger.info(f"Traceroute failed: {outcome.stderr.strip()}")
    return False, FailureReason.NO_DATA


class TracerouteEngine:
    """Run traceroute diagnostics against configured ceilings.

    The engine holds no mutable state; concurrent ``run`` calls each spawn
    their own process.

    Example:
        >>> engine = TracerouteEngine(load_config())
        >>> run = asyncio.run(engine.run("1.1.1.1", max_hops=10))
        >>> run.success, len(run.hops)
        (True, 7)
    """

    def __init__(
        self,
        config: PingfluxConfig | TracerouteConfig | None = None,
        os_name: str | None = None,
    ):
        if config is None:
            config = PingfluxConfig()
        if isinstance(config, PingfluxConfig):
            config = config.traceroute
        self.config = config
        self.os_name = os_name

    async def run(
        self,
        target: Any = None,
        max_hops: Any = None,
        timeout_ms: Any = None,
    ) -> TracerouteRun:
        """Trace the route to ``target``.

        Args:
            target: Hostname or IP. Blank or missing uses the configured default.
            max_hops: Requested hop limit, clamped to the configured ceiling.
            timeout_ms: Requested overall timeout, clamped to the configured ceiling.

        Returns:
            The run record. Hops parsed before a failure are kept.
        """
        timestamp = datetime.now(timezone.utc)
        target = resolve_target(target, self.config.default_target)
        hops: list[HopRecord] = []

        try:
            max_hops = clamp_max_hops(max_hops, self.config.max_hops)
            timeout_ms = resolve_timeout(timeout_ms, self.config.timeout_ms)
            command = build_command(
                target,
                max_hops,
                timeout_ms,
                override=self.config.command,
                os_name=self.os_name,
            )
            logger.debug(f"Running {command} (timeout {timeout_ms} ms)")

            outcome = await supervise(command, timeout_ms)
            hops = parse_traceroute_output(outcome.stdout)
            success, reason = classify(outcome, hops)
        except Exception:
            logger.exception(f"Traceroute to {target} failed unexpectedly")
            success, reason = False, FailureReason.INTERNAL_ERROR

        return TracerouteRun(
            timestamp=timestamp,
            target=target,
            success=success,
            hops=hops,
            failure_reason=reason,
        )

    async def run_request(self, request: TracerouteRequest) -> TracerouteRun:
        return await self.run(request.target, request.max_hops, request.timeout_ms)
