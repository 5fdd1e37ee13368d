"""Run an external command under a hard wall-clock timeout.

The supervisor never raises for process-level failures: a missing
executable, a permission error or a timeout all come back as an
``ExecutionOutcome`` so the caller can still record what happened.

Example:
    >>> outcome = asyncio.run(supervise(Command("traceroute", ("8.8.8.8",)), 5000))
    >>> outcome.timed_out, outcome.exit_code
    (False, 0)
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import subprocess
from dataclasses import dataclass

from .commands import Command

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
STREAM_LIMIT = 2**16
# How long to keep reading after the process is gone. A descendant that
# inherited the pipes can hold them open indefinitely.
DRAIN_GRACE_S = 1.0


@dataclass(frozen=True)
class ExecutionOutcome:
    """What happened when the command ran."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    spawn_failed: bool = False


class _ExitProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that resolves ``exited`` as soon as the process ends.

    ``Process.wait()`` can also wait for the pipes to close, which never
    happens while a grandchild still holds them.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        super().__init__(limit=STREAM_LIMIT, loop=loop)
        self.exited = loop.create_future()

    def process_exited(self) -> None:
        if not self.exited.done():
            self.exited.set_result(None)
        super().process_exited()


def _spawn_kwargs() -> dict:
    if os.name == "nt":
        return {"creationflags": getattr(subprocess, "CREATE_NO_WINDOW", 0)}
    # Own process group, so a kill also reaches anything the command spawned.
    return {"start_new_session": True}


async def _drain(stream: asyncio.StreamReader, chunks: list[str]) -> None:
    """Read a pipe until EOF, decoding UTF-8 incrementally."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(READ_CHUNK_SIZE)
        if not data:
            break
        chunks.append(decoder.decode(data))
    chunks.append(decoder.decode(b"", final=True))


def _kill(proc: asyncio.subprocess.Process) -> bool:
    """Kill the process (and its group on POSIX) if it is still running.

    Returns True if a kill was sent.
    """
    if proc.returncode is not None:
        return False
    try:
        if os.name == "nt":
            proc.kill()
        else:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except PermissionError:
                proc.kill()
    except ProcessLookupError:
        pass
    return True


def _exit_code(returncode: int | None, timed_out: bool) -> int | None:
    # Negative means killed by a signal, which carries no exit code.
    if timed_out or returncode is None or returncode < 0:
        return None
    return returncode


async def supervise(command: Command, timeout_ms: int) -> ExecutionOutcome:
    """Execute ``command`` and wait for it without blocking the event loop.

    A single timer of exactly ``timeout_ms`` starts at spawn; if it fires
    while the process is still running, the process is killed and the
    outcome is marked ``timed_out``. Output read before the kill is kept.
    Once the process has ended, the pipes get ``DRAIN_GRACE_S`` to reach
    EOF before they are closed.

    Args:
        command: Command to execute. It is run without a shell.
        timeout_ms: Wall-clock budget for the whole run, in milliseconds.

    Returns:
        The execution outcome. ``exit_code`` is None when the process was
        killed or never started.
    """
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.subprocess_exec(
            lambda: _ExitProtocol(loop),
            *command.argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **_spawn_kwargs(),
        )
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to start {command.executable}: {e}")
        return ExecutionOutcome(stderr=str(e), spawn_failed=True)

    proc = asyncio.subprocess.Process(transport, protocol, loop)
    timed_out = False

    def on_timeout() -> None:
        nonlocal timed_out
        if _kill(proc):
            timed_out = True
            logger.warning(
                f"{command.executable} exceeded {timeout_ms} ms; process killed"
            )

    timer = loop.call_later(timeout_ms / 1000, on_timeout)

    stdout_chunks: list[str] = []
    stderr_chunks: list[str] = []
    drains = [
        asyncio.create_task(_drain(proc.stdout, stdout_chunks)),
        asyncio.create_task(_drain(proc.stderr, stderr_chunks)),
    ]
    try:
        await protocol.exited
        _, pending = await asyncio.wait(drains, timeout=DRAIN_GRACE_S)
        if pending:
            logger.debug(
                f"{command.executable} exited but its output pipes are still open"
            )
    finally:
        timer.cancel()
        for task in drains:
            task.cancel()
        # Cancelled by the caller: do not leave the child behind.
        if _kill(proc):
            await protocol.exited
        transport.close()

    return ExecutionOutcome(
        stdout="".join(stdout_chunks),
        stderr="".join(stderr_chunks),
        exit_code=_exit_code(proc.returncode, timed_out),
        timed_out=timed_out,
    )
