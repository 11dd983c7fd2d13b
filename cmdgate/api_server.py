"""
Gateway HTTP surface

FastAPI app exposing:
- the synchronous call-and-return binding (POST /v1/invoke)
- the one-way signal binding (POST /v1/signal/{capability_id})
- the clock store query interface for UI collaborators (GET /v1/state/...)
- per-request trace waterfalls (GET /v1/trace/{request_id})

Run: uvicorn --factory cmdgate.api_server:create_app
"""
from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cmdgate.config import GATEWAY_VERSION, HTTP_HOST, HTTP_PORT
from cmdgate.errors import InvalidDate
from cmdgate.gateway import Gateway
from cmdgate.models import UNTRACKED_RUN
from cmdgate.observability import configure_logging, configure_observability, instrument_app
from cmdgate.state import format_date, parse_date

# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ClockStateResponse(BaseModel):
    date: str
    has_clocked_in: bool


class MonthViewResponse(BaseModel):
    year: int
    month: int
    days: Dict[int, bool]


class StreakResponse(BaseModel):
    as_of: str
    streak: int


class SignalAccepted(BaseModel):
    request_id: str
    capability: str
    status: str = "accepted"


class WaterfallResponse(BaseModel):
    request_id: str
    steps: List[Dict[str, Any]] = Field(default_factory=list)


def _parse_day(raw: str) -> date:
    try:
        return parse_date(raw)
    except InvalidDate as e:
        raise HTTPException(status_code=400, detail=e.message)


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(gateway: Optional[Gateway] = None, config_path: Optional[Path] = None) -> FastAPI:
    owns_gateway = gateway is None
    gw = gateway or Gateway.from_env(config_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        gw.start()
        try:
            yield
        finally:
            if owns_gateway:
                gw.close()

    configure_observability()

    app = FastAPI(
        title="cmdgate",
        description="Command gateway for LLM-driven capability calls",
        version=GATEWAY_VERSION,
        docs_url="/docs",
        lifespan=lifespan,
    )
    app.state.gateway = gw
    instrument_app(app)

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "version": GATEWAY_VERSION,
            "capabilities": gw.dispatcher.registry.ids(),
        }

    # --- Bindings ---

    @app.post("/v1/invoke")
    async def invoke(request: Request):
        """Canonical request in, canonical Response out (200 even for failures)."""
        body = await request.body()
        encoded = await run_in_threadpool(gw.sync.invoke, body)
        return JSONResponse(content=json.loads(encoded))

    @app.post("/v1/signal/{capability_id}", status_code=status.HTTP_202_ACCEPTED,
              response_model=SignalAccepted)
    def signal(
        capability_id: str,
        args: Optional[Dict[str, Any]] = Body(default=None),
        run_index: int = UNTRACKED_RUN,
    ):
        request_id, future = gw.oneway.signal(capability_id, args, run_index=run_index)
        if future is None:
            raise HTTPException(status_code=503, detail=f"Gateway unavailable; {request_id} was not run")
        return SignalAccepted(request_id=request_id, capability=capability_id)

    # --- Clock store queries ---

    @app.get("/v1/state/streak", response_model=StreakResponse)
    def streak(as_of: Optional[str] = None):
        day = _parse_day(as_of) if as_of else gw.store.today()
        return StreakResponse(as_of=format_date(day), streak=gw.store.consecutive_streak(day))

    @app.get("/v1/state/month/{year}/{month}", response_model=MonthViewResponse)
    def month_view(year: int, month: int):
        try:
            days = gw.store.month_view(year, month)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return MonthViewResponse(year=year, month=month, days=days)

    @app.get("/v1/state/{day}", response_model=ClockStateResponse)
    def clock_state(day: str):
        parsed = _parse_day(day)
        return ClockStateResponse(date=format_date(parsed), has_clocked_in=gw.store.is_done(parsed))

    # --- Trace ---

    @app.get("/v1/trace/{request_id}", response_model=WaterfallResponse)
    async def waterfall(request_id: str):
        steps = await run_in_threadpool(gw.tracer.waterfall, request_id)
        if not steps:
            raise HTTPException(status_code=404, detail=f"No trace records for {request_id}")
        return WaterfallResponse(request_id=request_id, steps=steps)

    return app


def main(host: str = HTTP_HOST, port: int = HTTP_PORT, config_path: Optional[Path] = None) -> None:
    import uvicorn
    configure_logging()
    uvicorn.run(create_app(config_path=config_path), host=host, port=port)


if __name__ == "__main__":
    main()
