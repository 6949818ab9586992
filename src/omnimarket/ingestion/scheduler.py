"""Refresh scheduler - fan out to source adapters, upsert, evict stale markets."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from omnimarket.ingestion.base import FetchResult, SourceAdapter
from omnimarket.ingestion.kalshi.client import KalshiAdapter
from omnimarket.ingestion.polymarket.gamma import PolymarketAdapter
from omnimarket.models import MarketRecord
from omnimarket.storage.db import get_connection, init_schema
from omnimarket.storage.markets import DEFAULT_CHUNK_SIZE, delete_stale, upsert_markets

if TYPE_CHECKING:
    from omnimarket.config.settings import Settings

log = structlog.get_logger(__name__)


@dataclass
class CycleReport:
    """What one refresh cycle did. error is set when the store write or eviction failed."""

    started_at: float
    sources: list[FetchResult] = field(default_factory=list)
    upserted: int = 0
    removed: int = 0
    error: str | None = None
    duration_sec: float = 0.0

    @property
    def fetched(self) -> int:
        return sum(len(s.records) for s in self.sources)

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "duration_sec": round(self.duration_sec, 3),
            "fetched": self.fetched,
            "upserted": self.upserted,
            "removed": self.removed,
            "error": self.error,
            "sources": [
                {"platform": s.platform, "count": len(s.records), "skipped": s.skipped, "error": s.error}
                for s in self.sources
            ],
        }


def build_adapters(settings: Settings) -> list[SourceAdapter]:
    """Adapters enabled in config, in registration order."""
    timeout = settings.request_timeout_sec
    adapters: list[SourceAdapter] = []
    if settings.polymarket_enabled:
        adapters.append(
            PolymarketAdapter(settings.polymarket_api_base, limit=settings.polymarket_limit, timeout=timeout)
        )
    if settings.kalshi_enabled:
        adapters.append(KalshiAdapter(settings.kalshi_api_base, limit=settings.kalshi_limit, timeout=timeout))
    return adapters


class RefreshScheduler:
    """Runs refresh cycles: once at start, then every interval_sec after the previous cycle settles.

    The scheduler is the only writer to the markets table. Cycles never overlap:
    timer cycles and on-demand run_cycle() calls share one lock.
    """

    def __init__(
        self,
        db_path: str | Path,
        adapters: list[SourceAdapter],
        *,
        interval_sec: float = 60.0,
        stale_threshold_minutes: int = 24 * 60,
        upsert_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.db_path = Path(db_path)
        self.adapters = list(adapters)
        self.interval_sec = interval_sec
        self.stale_threshold_minutes = stale_threshold_minutes
        self.upsert_chunk_size = upsert_chunk_size
        self.last_report: CycleReport | None = None
        self.cycle_count = 0
        self._conn = None
        self._lock: asyncio.Lock | None = None
        self._stop: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Settings, adapters: list[SourceAdapter] | None = None) -> RefreshScheduler:
        return cls(
            db_path=settings.db_path,
            adapters=build_adapters(settings) if adapters is None else adapters,
            interval_sec=settings.refresh_interval_sec,
            stale_threshold_minutes=settings.stale_threshold_minutes,
            upsert_chunk_size=settings.upsert_chunk_size,
        )

    def _get_conn(self):
        if self._conn is None:
            self._conn = get_connection(self.db_path)
            init_schema(self._conn)
        return self._conn

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def _fetch_all(self) -> list[FetchResult]:
        """Run every adapter concurrently; a raising adapter becomes an empty failed result."""
        outcomes = await asyncio.gather(
            *(adapter.fetch() for adapter in self.adapters),
            return_exceptions=True,
        )
        results: list[FetchResult] = []
        for adapter, outcome in zip(self.adapters, outcomes):
            if isinstance(outcome, Exception):
                log.error("source_failed", platform=adapter.platform, error=repr(outcome))
                outcome = FetchResult.failure(adapter.platform, repr(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        return results

    async def run_cycle(self) -> CycleReport:
        """Fetch, merge, upsert, evict. Never raises except on cancellation."""
        async with self._get_lock():
            report = await self._run_cycle()
        self.last_report = report
        self.cycle_count += 1
        return report

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=time.time())
        t0 = time.monotonic()
        log.info("refresh_started", sources=[a.platform for a in self.adapters])
        try:
            report.sources = await self._fetch_all()
            batch: list[MarketRecord] = []
            for result in report.sources:
                batch.extend(result.records)
            log.info(
                "refresh_fetched",
                counts={r.platform: len(r.records) for r in report.sources},
                failed=[r.platform for r in report.sources if not r.ok],
            )
            if not batch:
                log.warning("no_markets_fetched", sources=len(report.sources))
                return report
            conn = self._get_conn()
            report.upserted = upsert_markets(conn, batch, chunk_size=self.upsert_chunk_size)
            report.removed = delete_stale(conn, self.stale_threshold_minutes)
            if report.removed:
                log.info(
                    "stale_markets_removed",
                    count=report.removed,
                    threshold_minutes=self.stale_threshold_minutes,
                )
            log.info("refresh_completed", upserted=report.upserted)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("refresh_failed", error=str(e))
            report.error = str(e) or type(e).__name__
        finally:
            report.duration_sec = time.monotonic() - t0
        return report

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run cycles until stop_event is set. First cycle runs immediately."""
        stop = stop_event or asyncio.Event()
        self._stop = stop
        while not stop.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_sec)
            except asyncio.TimeoutError:
                pass
        log.info("scheduler_stopped", cycles=self.cycle_count)

    def start(self) -> asyncio.Task:
        """Start the refresh loop as a task on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop))
        log.info("scheduler_started", interval_sec=self.interval_sec)
        return self._task

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the in-flight cycle to settle."""
        if self._stop is not None:
            self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
