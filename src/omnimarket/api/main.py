"""FastAPI backend for the market dashboard."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import duckdb
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from omnimarket import __version__
from omnimarket.api.schemas import ErrorResponse, HealthResponse, MarketTotalsResponse
from omnimarket.config import Settings, get_settings
from omnimarket.ingestion.base import SourceAdapter
from omnimarket.ingestion.scheduler import RefreshScheduler
from omnimarket.models import MarketRecord
from omnimarket.storage.db import get_connection, init_schema
from omnimarket.storage.markets import list_markets, market_totals

log = structlog.get_logger(__name__)

# Set by run_api() so the uvicorn factory can rebuild settings in the server process.
_config_profile: str | None = None
_config_dir: Path | None = None
_run_scheduler = True

_ERRORS: dict[int | str, dict[str, Any]] = {
    500: {"description": "Store unavailable", "model": ErrorResponse},
}


def _error_json(code: str, message: str, status_code: int = 500) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _read_store(request: Request, reader: Callable[[Any], Any], failure: str) -> Any:
    """Open a connection, run reader(conn), close. Store errors become a 500 error JSON."""
    # Same configuration as the scheduler's connection; DuckDB rejects mixed modes in one process.
    try:
        conn = get_connection(request.app.state.settings.db_path)
        try:
            return reader(conn)
        finally:
            conn.close()
    except duckdb.Error as e:
        log.error("store_read_failed", path=request.url.path, error=str(e))
        return _error_json("store_unavailable", failure)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()

    scheduler: RefreshScheduler = app.state.scheduler
    if app.state.run_scheduler:
        scheduler.start()

    yield

    await scheduler.stop()
    scheduler.close()


def create_app(
    settings: Settings | None = None,
    *,
    adapters: list[SourceAdapter] | None = None,
    run_scheduler: bool | None = None,
) -> FastAPI:
    """Composition root: settings, scheduler, routes.

    With run_scheduler the refresh loop runs inside the server process; without it
    only POST /api/markets/refresh writes to the store.
    """
    settings = settings or get_settings(_config_profile, _config_dir)
    app = FastAPI(title="OmniMarket API", version=__version__, lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.settings = settings
    app.state.scheduler = RefreshScheduler.from_settings(settings, adapters)
    app.state.run_scheduler = _run_scheduler if run_scheduler is None else run_scheduler

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())

    @app.get("/api/markets", response_model=list[MarketRecord], responses=_ERRORS)
    def markets_list(request: Request):
        """Current snapshot: markets not yet ended, largest total volume first."""
        return _read_store(request, list_markets, "Failed to fetch markets")

    @app.post("/api/markets/refresh", response_model=list[MarketRecord], responses=_ERRORS)
    async def markets_refresh(request: Request):
        """Run one refresh cycle now, then return the refreshed snapshot."""
        scheduler: RefreshScheduler = request.app.state.scheduler
        report = await scheduler.run_cycle()
        log.info("manual_refresh", fetched=report.fetched, upserted=report.upserted, error=report.error)
        return _read_store(request, list_markets, "Failed to refresh markets")

    @app.get("/api/markets/stats", response_model=MarketTotalsResponse, responses=_ERRORS)
    def markets_stats(request: Request):
        """Total and 24h volume over visible markets, overall and per platform."""
        return _read_store(
            request,
            lambda conn: MarketTotalsResponse(**market_totals(conn)),
            "Failed to fetch market stats",
        )

    return app


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    with_refresh: bool = True,
    profile: str | None = None,
    config_dir: Path | None = None,
) -> None:
    global _config_profile, _config_dir, _run_scheduler
    _config_profile = profile
    _config_dir = config_dir
    _run_scheduler = with_refresh
    import uvicorn

    uvicorn.run("omnimarket.api.main:create_app", factory=True, host=host, port=port, reload=False)
