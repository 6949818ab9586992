"""Shared fixtures: temporary DuckDB store and record/adapter builders."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
import structlog

from omnimarket.ingestion.base import FetchResult
from omnimarket.models import MarketRecord
from omnimarket.storage.db import get_connection, init_schema


def make_record(external_id: str, total_volume: str = "0", platform: str = "polymarket", **kwargs) -> MarketRecord:
    fields = {
        "question": f"Market {external_id}?",
        "url": f"https://example.com/{external_id}",
        "volume_24h": "0",
    }
    fields.update(kwargs)
    return MarketRecord(external_id=external_id, platform=platform, total_volume=total_volume, **fields)


class StubAdapter:
    """Adapter double: returns preset records, or raises if error is set."""

    def __init__(self, platform: str, records: list[MarketRecord] | None = None, error: Exception | None = None):
        self.platform = platform
        self.records = records or []
        self.error = error
        self.calls = 0

    async def fetch(self) -> FetchResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FetchResult(platform=self.platform, records=list(self.records))


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def db_path():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    yield path
    for p in Path(tmp).iterdir():
        p.unlink()
    Path(tmp).rmdir()


@pytest.fixture
def temp_db(db_path):
    conn = get_connection(db_path)
    init_schema(conn)
    yield conn
    conn.close()
