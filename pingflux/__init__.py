"""pingflux

Traceroute diagnostics built on the operating system's own utility:
- Runs ``traceroute`` (POSIX) or ``tracert`` (Windows) under a hard timeout
- Parses locale and platform dependent output into hop records
- Classifies each run and keeps partial results on failure
- Stores runs in SQLite and serves them over a small HTTP API
"""

from importlib.metadata import version

__version__ = version("pingflux")

from .commands import Command, build_command, select_strategy
from .config import PingfluxConfig, load_config
from .engine import TracerouteEngine, classify
from .models import FailureReason, HopRecord, TracerouteRequest, TracerouteRun
from .parser import parse_traceroute_output
from .store import TracerouteStore
from .supervisor import ExecutionOutcome, supervise

__all__ = [
    "PingfluxConfig",
    "load_config",
    "Command",
    "build_command",
    "select_strategy",
    "ExecutionOutcome",
    "supervise",
    "parse_traceroute_output",
    "classify",
    "TracerouteEngine",
    "TracerouteStore",
    "FailureReason",
    "HopRecord",
    "TracerouteRequest",
    "TracerouteRun",
]
