"""HTTP API: run traceroutes and read stored runs back."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from .config import PingfluxConfig
from .engine import TracerouteEngine
from .models import TracerouteRequest
from .store import TracerouteStore

logger = logging.getLogger(__name__)


def create_app(
    config: PingfluxConfig | None = None,
    engine: TracerouteEngine | None = None,
    store: TracerouteStore | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Loaded configuration. Defaults are used when omitted.
        engine: Engine to run traces with; built from ``config`` when omitted.
        store: Run storage; opened at ``config.storage.db_path`` when omitted.
    """
    config = config or PingfluxConfig()
    engine = engine or TracerouteEngine(config)
    store = store or TracerouteStore(config.storage.db_path)

    app = FastAPI(title="pingflux")

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return {
            "defaultTarget": config.traceroute.default_target,
            "maxHops": config.traceroute.max_hops,
            "timeoutMs": config.traceroute.timeout_ms,
        }

    @app.post("/actions/traceroute")
    async def run_traceroute(request: TracerouteRequest | None = None):
        try:
            run = await engine.run_request(request or TracerouteRequest())
            run_id = await asyncio.to_thread(store.insert, run)
        except Exception:
            logger.exception("Failed to run traceroute")
            return JSONResponse(
                status_code=500, content={"error": "FAILED_TO_RUN_TRACEROUTE"}
            )
        return {"id": run_id, **run.summary()}

    @app.get("/api/traceroute")
    def list_traceroutes(limit: int = Query(default=20, ge=1, le=500)):
        return [{"id": run_id, **run.summary()} for run_id, run in store.recent(limit)]

    @app.get("/api/traceroute/{run_id}")
    def get_traceroute(run_id: str):
        run = store.get(run_id)
        if run is None:
            return JSONResponse(
                status_code=404, content={"error": "TRACEROUTE_NOT_FOUND"}
            )
        return {"id": int(run_id), **run.to_dict()}

    return app
