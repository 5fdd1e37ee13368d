#!/usr/bin/env python

import asyncio
from pprint import pprint

from pingflux import TracerouteEngine, load_config

if __name__ == "__main__":
    # load configuration (pingflux.toml, ~/.config/pingflux/config.toml, env)
    config = load_config()
    engine = TracerouteEngine(config)

    # single trace
    print("Traceroute...")
    run = asyncio.run(engine.run("1.1.1.1", max_hops=15, timeout_ms=8000))
    pprint(run.to_dict())

    # several traces in flight at once
    print("Concurrent traceroutes...")

    async def trace_all(targets):
        return await asyncio.gather(*(engine.run(t) for t in targets))

    for run in asyncio.run(trace_all(["8.8.8.8", "9.9.9.9"])):
        pprint(run.summary())
