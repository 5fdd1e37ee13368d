"""Tests for the traceroute engine and result classification."""

import asyncio
import sys
from datetime import datetime

import pytest

import pingflux.engine as engine_module
from pingflux.config import PingfluxConfig, TracerouteConfig
from pingflux.engine import (
    TracerouteEngine,
    clamp_max_hops,
    classify,
    resolve_target,
    resolve_timeout,
)
from pingflux.models import FailureReason, HopRecord, TracerouteRequest, TracerouteRun
from pingflux.supervisor import ExecutionOutcome

HOP = HopRecord(hop=1, rtt_ms=(1, 2, 3), address="10.0.0.1")


@pytest.fixture
def fake_supervise(monkeypatch):
    """Replace the supervisor; records calls and returns a canned outcome."""
    calls = []
    state = {"outcome": ExecutionOutcome(stdout="", exit_code=0)}

    async def _supervise(command, timeout_ms):
        calls.append((command, timeout_ms))
        return state["outcome"]

    monkeypatch.setattr(engine_module, "supervise", _supervise)
    return calls, state


def script_engine(tmp_path, body: str, **config) -> tuple[TracerouteEngine, str]:
    """Engine whose override command runs a Python script passed as the target."""
    script = tmp_path / "fake_traceroute.py"
    script.write_text(body)
    engine = TracerouteEngine(TracerouteConfig(command=sys.executable, **config))
    return engine, str(script)


class TestClamping:
    """Test request clamping against the configured ceilings."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, 30),
            (0, 30),
            (-4, 30),
            ("abc", 30),
            (float("nan"), 30),
            (float("inf"), 30),
            (True, 30),
            (10, 10),
            ("12", 12),
            (12.7, 12),
            (0.5, 1),
            (500, 30),
        ],
    )
    def test_clamp_max_hops(self, value, expected):
        assert clamp_max_hops(value, 30) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, 10000),
            (-1, 10000),
            ("", 10000),
            ([], 10000),
            (2500, 2500),
            (2500.9, 2500),
            (0.2, 1),
            (10**9, 10000),
        ],
    )
    def test_resolve_timeout(self, value, expected):
        assert resolve_timeout(value, 10000) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [(None, "8.8.8.8"), ("", "8.8.8.8"), ("   ", "8.8.8.8"), (42, "8.8.8.8"), (" host ", "host")],
    )
    def test_resolve_target(self, value, expected):
        assert resolve_target(value, "8.8.8.8") == expected


class TestClassify:
    """Test the success verdict."""

    def test_timeout_fails_even_with_hops(self):
        outcome = ExecutionOutcome(stdout="x", exit_code=0, timed_out=True)
        assert classify(outcome, [HOP]) == (False, FailureReason.TIMEOUT)

    def test_spawn_failure(self):
        outcome = ExecutionOutcome(spawn_failed=True, stderr="not found")
        assert classify(outcome, []) == (False, FailureReason.SPAWN_ERROR)

    def test_clean_exit(self):
        assert classify(ExecutionOutcome(exit_code=0), []) == (True, None)

    def test_nonzero_exit_with_hops(self):
        outcome = ExecutionOutcome(stdout="1 ...", exit_code=1)
        assert classify(outcome, [HOP]) == (True, None)

    def test_unknown_exit_with_hops(self):
        outcome = ExecutionOutcome(stdout="1 ...", exit_code=None)
        assert classify(outcome, [HOP]) == (True, None)

    def test_nonzero_exit_without_hops(self):
        outcome = ExecutionOutcome(stdout="garbage", exit_code=1)
        assert classify(outcome, []) == (False, FailureReason.NO_DATA)

    def test_stderr_without_data(self):
        outcome = ExecutionOutcome(stderr="unknown host", exit_code=2)
        assert classify(outcome, []) == (False, FailureReason.NO_DATA)


class TestEngineWithFakeSupervisor:
    """Test the engine pipeline with the process layer replaced."""

    @pytest.mark.asyncio
    async def test_defaults_used_when_called_without_arguments(self, fake_supervise):
        calls, _ = fake_supervise
        engine = TracerouteEngine(
            TracerouteConfig(default_target="9.9.9.9", max_hops=20, timeout_ms=4000),
            os_name="posix",
        )
        run = await engine.run()

        command, timeout_ms = calls[0]
        assert run.target == "9.9.9.9"
        assert command.argv == ["traceroute", "-n", "-m", "20", "-w", "4", "9.9.9.9"]
        assert timeout_ms == 4000

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "max_hops, timeout_ms",
        [(-1, -1), (0, 0), ("many", "long"), (10**6, 10**9), (None, None)],
    )
    async def test_ceilings_never_exceeded(self, fake_supervise, max_hops, timeout_ms):
        calls, _ = fake_supervise
        engine = TracerouteEngine(
            TracerouteConfig(max_hops=15, timeout_ms=3000), os_name="nt"
        )
        await engine.run("host", max_hops, timeout_ms)

        command, used_timeout = calls[0]
        assert 1 <= int(command.args[2]) <= 15
        assert 1 <= used_timeout <= 3000

    @pytest.mark.asyncio
    async def test_partial_hops_kept_on_timeout(self, fake_supervise):
        _, state = fake_supervise
        state["outcome"] = ExecutionOutcome(
            stdout=" 1  1 ms  2 ms  3 ms  10.0.0.1\n 2  * * *", timed_out=True
        )
        run = await TracerouteEngine().run("host")

        assert run.success is False
        assert run.failure_reason == FailureReason.TIMEOUT
        assert [h.hop for h in run.hops] == [1, 2]

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_run(self, monkeypatch):
        async def broken(command, timeout_ms):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(engine_module, "supervise", broken)
        run = await TracerouteEngine().run("host")

        assert run.success is False
        assert run.failure_reason == FailureReason.INTERNAL_ERROR
        assert run.hops == ()

    @pytest.mark.asyncio
    async def test_run_request(self, fake_supervise):
        calls, _ = fake_supervise
        engine = TracerouteEngine(PingfluxConfig(), os_name="posix")
        request = TracerouteRequest.model_validate(
            {"target": "1.1.1.1", "maxHops": 5, "timeoutMs": 2000}
        )
        run = await engine.run_request(request)

        command, timeout_ms = calls[0]
        assert run.target == "1.1.1.1"
        assert command.args[2] == "5"
        assert timeout_ms == 2000


class TestEngineWithProcesses:
    """Test the engine end to end against real child processes."""

    @pytest.mark.asyncio
    async def test_nonzero_exit_with_hops_is_success(self, tmp_path):
        engine, target = script_engine(
            tmp_path,
            "import sys\n"
            "print('traceroute to somewhere')\n"
            "print(' 1  12 ms  11 ms  13 ms  [10.0.0.1]')\n"
            "print(' 2  * * *  Request timed out.')\n"
            "sys.exit(1)\n",
        )
        run = await engine.run(target)

        assert isinstance(run, TracerouteRun)
        assert run.success is True
        assert run.failure_reason is None
        assert run.target == target
        assert run.hops[0] == HopRecord(hop=1, rtt_ms=(12, 11, 13), address="10.0.0.1")
        assert run.hops[1].address is None

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_hops_fails(self, tmp_path):
        engine, target = script_engine(
            tmp_path, "import sys\nsys.stderr.write('unknown host')\nsys.exit(2)\n"
        )
        run = await engine.run(target)

        assert run.success is False
        assert run.failure_reason == FailureReason.NO_DATA
        assert run.hops == ()

    @pytest.mark.asyncio
    async def test_timeout_marks_failure_with_partial_hops(self, tmp_path):
        engine, target = script_engine(
            tmp_path,
            "import time\n"
            "print(' 1  <1 ms  2 ms  *  192.168.1.1', flush=True)\n"
            "time.sleep(30)\n",
            timeout_ms=3000,
        )
        run = await engine.run(target)

        assert run.success is False
        assert run.failure_reason == FailureReason.TIMEOUT
        assert run.hops == (HopRecord(hop=1, rtt_ms=(0, 2, None), address="192.168.1.1"),)

    @pytest.mark.asyncio
    async def test_missing_executable_never_raises(self):
        engine = TracerouteEngine(TracerouteConfig(command="pingflux-no-such-binary-xyz"))
        run = await engine.run()

        assert run.success is False
        assert run.failure_reason == FailureReason.SPAWN_ERROR
        assert run.target == "8.8.8.8"
        assert run.hops == ()
        assert isinstance(run.timestamp, datetime)

    @pytest.mark.asyncio
    async def test_concurrent_runs(self, tmp_path):
        engine, target = script_engine(
            tmp_path,
            "import time\ntime.sleep(0.5)\nprint(' 1  1 ms  1 ms  1 ms  10.0.0.1')\n",
        )
        runs = await asyncio.gather(*(engine.run(target) for _ in range(3)))

        assert all(run.success for run in runs)
        assert all(len(run.hops) == 1 for run in runs)
