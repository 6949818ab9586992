"""HTTP layer: list, refresh, stats, health."""

import time
from datetime import datetime, timedelta, timezone

from conftest import StubAdapter, make_record
from fastapi.testclient import TestClient

from omnimarket.api.main import create_app
from omnimarket.config import Settings


def _settings(db_path) -> Settings:
    return Settings(storage={"db_path": str(db_path)}, refresh={"interval_ms": 3_600_000})


def test_health(db_path):
    app = create_app(_settings(db_path), adapters=[], run_scheduler=False)
    with TestClient(app) as client:
        resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


def test_list_is_empty_before_first_refresh(db_path):
    app = create_app(_settings(db_path), adapters=[StubAdapter("polymarket")], run_scheduler=False)
    with TestClient(app) as client:
        resp = client.get("/api/markets")
    assert resp.status_code == 200
    assert resp.json() == []


def test_refresh_returns_snapshot_in_camel_case(db_path):
    ended = make_record("old", "99999", end_date=datetime.now(timezone.utc) - timedelta(days=2))
    poly = StubAdapter("polymarket", [make_record("p1", "250.5", volume_24h="12"), ended])
    kalshi = StubAdapter("kalshi", [make_record("K-1", "1000", platform="kalshi")])
    app = create_app(_settings(db_path), adapters=[poly, kalshi], run_scheduler=False)
    with TestClient(app) as client:
        resp = client.post("/api/markets/refresh")
        listed = client.get("/api/markets").json()

    assert resp.status_code == 200
    body = resp.json()
    assert [m["externalId"] for m in body] == ["K-1", "p1"]
    poly_row = body[1]
    assert poly_row["platform"] == "polymarket"
    assert poly_row["totalVolume"] == "250.5"
    assert poly_row["volume24h"] == "12"
    assert poly_row["lastUpdated"] is not None
    assert "resolutionRules" in poly_row
    assert set(poly_row) == {
        "externalId",
        "platform",
        "question",
        "url",
        "totalVolume",
        "volume24h",
        "startDate",
        "endDate",
        "resolutionRules",
        "lastUpdated",
    }
    assert listed == body


def test_refresh_with_failing_source_still_returns_list(db_path):
    adapters = [StubAdapter("polymarket", [make_record("a1", "500")]), StubAdapter("kalshi", error=RuntimeError("down"))]
    app = create_app(_settings(db_path), adapters=adapters, run_scheduler=False)
    with TestClient(app) as client:
        resp = client.post("/api/markets/refresh")
    assert resp.status_code == 200
    assert [(m["externalId"], m["totalVolume"]) for m in resp.json()] == [("a1", "500")]


def test_stats(db_path):
    adapters = [
        StubAdapter("polymarket", [make_record("p1", "100", volume_24h="10")]),
        StubAdapter("kalshi", [make_record("k1", "300", platform="kalshi", volume_24h="3")]),
    ]
    app = create_app(_settings(db_path), adapters=adapters, run_scheduler=False)
    with TestClient(app) as client:
        client.post("/api/markets/refresh")
        resp = client.get("/api/markets/stats")
    assert resp.status_code == 200
    body = resp.json()
    assert body["marketCount"] == 2
    assert body["totalVolume"] == "400"
    assert body["volume24h"] == "13"
    assert [p["platform"] for p in body["byPlatform"]] == ["kalshi", "polymarket"]


def test_scheduler_runs_on_startup(db_path):
    adapter = StubAdapter("polymarket", [make_record("boot", "1")])
    app = create_app(_settings(db_path), adapters=[adapter], run_scheduler=True)
    with TestClient(app) as client:
        markets = []
        for _ in range(100):
            markets = client.get("/api/markets").json()
            if markets:
                break
            time.sleep(0.02)
        assert app.state.scheduler.running
    assert [m["externalId"] for m in markets] == ["boot"]
    assert adapter.calls == 1
    assert not app.state.scheduler.running
