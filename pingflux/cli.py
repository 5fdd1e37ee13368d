#!/usr/bin/env python

"""Command line interface for pingflux."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import ConfigurationError, PingfluxConfig, create_default_config, load_config
from .engine import TracerouteEngine
from .models import TracerouteRun
from .store import StoreError, TracerouteStore

CONSOLE_HANDLER = "pingflux-console"


def setup_logger(verbose: bool = False, log_file: str | None = None) -> None:
    """Set up logging."""
    level = logging.DEBUG if verbose else logging.INFO
    if log_file:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
            datefmt="%m-%d %H:%M",
            filename=log_file,
            filemode="a",
        )
    root = logging.getLogger("")
    for handler in list(root.handlers):
        if handler.get_name() == CONSOLE_HANDLER:
            root.removeHandler(handler)

    console = logging.StreamHandler()
    console.set_name(CONSOLE_HANDLER)
    console.setLevel(level)
    formatter = logging.Formatter("%(message)s")
    console.setFormatter(formatter)
    root.setLevel(level)
    root.addHandler(console)


def format_rtt(value: int | None) -> str:
    return "*" if value is None else f"{value} ms"


def format_run(run: TracerouteRun) -> str:
    """Render a run as a plain text hop table."""
    reason = run.failure_reason.value if run.failure_reason else "unknown"
    status = "ok" if run.success else f"failed ({reason})"
    lines = [
        f"traceroute to {run.target} at {run.timestamp.isoformat()}: {status}"
    ]
    for hop in run.hops:
        rtts = "  ".join(f"{format_rtt(rtt):>7}" for rtt in hop.rtt_ms)
        lines.append(f"{hop.hop:>3}  {rtts}  {hop.address or '*'}")
    return "\n".join(lines)


def _print_run(run: TracerouteRun, as_json: bool, run_id: int | None = None) -> None:
    if as_json:
        data = run.to_dict()
        if run_id is not None:
            data = {"id": run_id, **data}
        print(json.dumps(data, indent=2))
    else:
        if run_id is not None:
            print(f"run #{run_id}")
        print(format_run(run))


def cmd_trace(args: argparse.Namespace, config: PingfluxConfig) -> int:
    engine = TracerouteEngine(config)
    run = asyncio.run(engine.run(args.target, args.max_hops, args.timeout_ms))
    run_id = None
    if args.save:
        run_id = TracerouteStore(config.storage.db_path).insert(run)
    _print_run(run, args.json, run_id)
    return 0 if run.success else 1


def cmd_show(args: argparse.Namespace, config: PingfluxConfig) -> int:
    run = TracerouteStore(config.storage.db_path).get(args.id)
    if run is None:
        logging.error(f"Traceroute run {args.id} not found")
        return 1
    _print_run(run, args.json, int(args.id))
    return 0


def cmd_serve(args: argparse.Namespace, config: PingfluxConfig) -> int:
    import uvicorn

    from .server import create_app

    host = args.host or config.server.host
    port = args.port or config.server.port
    logging.info(f"pingflux listening on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="pingflux traceroute diagnostics")
    parser.add_argument("-c", "--config", help="Configuration file (TOML format)")
    parser.add_argument(
        "-v", "--verbose", dest="verbose", action="store_true", help="Verbose mode"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    trace = subparsers.add_parser("trace", help="Run a traceroute")
    trace.add_argument("target", nargs="?", help="Hostname or IP address")
    trace.add_argument("-m", "--max-hops", type=int, help="Maximum number of hops")
    trace.add_argument(
        "-t", "--timeout-ms", type=int, help="Overall timeout in milliseconds"
    )
    trace.add_argument("--save", action="store_true", help="Store the run")
    trace.add_argument("--json", action="store_true", help="Print JSON")
    trace.set_defaults(func=cmd_trace)

    show = subparsers.add_parser("show", help="Print a stored run")
    show.add_argument("id", help="Run id")
    show.add_argument("--json", action="store_true", help="Print JSON")
    show.set_defaults(func=cmd_show)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", help="Bind address")
    serve.add_argument("--port", type=int, help="Bind port")
    serve.set_defaults(func=cmd_serve)

    init = subparsers.add_parser("init-config", help="Write a default config file")
    init.add_argument("path", help="Output TOML file")

    args = parser.parse_args(argv)
    setup_logger(args.verbose, args.log_file)

    if args.command == "init-config":
        create_default_config(Path(args.path))
        logging.info(f"Wrote {args.path}")
        return 0

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logging.error(e)
        return 2

    try:
        return args.func(args, config)
    except StoreError as e:
        logging.error(e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
