"""Market listing persistence: keyed upsert, eviction, and the dashboard read path."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from decimal import Context, Decimal, localcontext
from typing import TYPE_CHECKING, Any

from omnimarket.ingestion.normalize import format_decimal, safe_parse_number
from omnimarket.models import MarketRecord

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# Rows per transaction; 1000 rows x 10 columns stays far below bind-parameter limits.
DEFAULT_CHUNK_SIZE = 1000

# Volume column scale; see DECIMAL(38, 10) in db.py.
_VOLUME_SCALE = Decimal("1e-10")
_VOLUME_CONTEXT = Context(prec=38)

_COLUMNS = [
    "platform",
    "external_id",
    "question",
    "url",
    "total_volume",
    "volume_24h",
    "start_date",
    "end_date",
    "resolution_rules",
    "last_updated",
]

UPSERT_SQL = f"""
    INSERT INTO markets ({", ".join(_COLUMNS)})
    VALUES ({", ".join("?" for _ in _COLUMNS)})
    ON CONFLICT (platform, external_id) DO UPDATE SET
        total_volume = excluded.total_volume,
        volume_24h = excluded.volume_24h,
        question = excluded.question,
        end_date = excluded.end_date,
        last_updated = excluded.last_updated
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_db_ts(dt: datetime | None) -> datetime | None:
    """Aware datetime -> naive UTC for a TIMESTAMP column."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _from_db_ts(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc)


def start_of_day(now: datetime | None = None) -> datetime:
    """Midnight UTC of the day containing now, as a naive UTC datetime."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _to_db_volume(value: str) -> Decimal:
    return safe_parse_number(value).quantize(_VOLUME_SCALE, context=_VOLUME_CONTEXT)


def _sum_volumes(values) -> Decimal:
    with localcontext(_VOLUME_CONTEXT):
        return sum(values, Decimal(0))


def _record_row(record: MarketRecord, now_ms: int) -> list[Any]:
    volume_24h = record.volume_24h
    return [
        record.platform,
        record.external_id,
        record.question,
        record.url,
        _to_db_volume(record.total_volume),
        _to_db_volume(volume_24h) if volume_24h is not None else None,
        _to_db_ts(record.start_date),
        _to_db_ts(record.end_date),
        record.resolution_rules,
        now_ms,
    ]


def _row_record(row: tuple) -> MarketRecord:
    d = dict(zip(_COLUMNS, row))
    return MarketRecord(
        platform=d["platform"],
        external_id=d["external_id"],
        question=d["question"],
        url=d["url"],
        total_volume=format_decimal(d["total_volume"] or 0),
        volume_24h=format_decimal(d["volume_24h"]) if d["volume_24h"] is not None else None,
        start_date=_from_db_ts(d["start_date"]),
        end_date=_from_db_ts(d["end_date"]),
        resolution_rules=d["resolution_rules"] or "",
        last_updated=datetime.fromtimestamp(d["last_updated"] / 1000.0, tz=timezone.utc),
    )


def upsert_markets(
    conn: DuckDBPyConnection,
    records: list[MarketRecord],
    *,
    now_ms: int | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Insert new markets and refresh existing ones (volumes, question, end date, last_updated).

    Duplicate keys within the batch collapse to the last occurrence. Each chunk is its
    own transaction: a failing chunk is rolled back and the error propagates, earlier
    chunks stay committed. Returns the number of distinct markets written.
    """
    if not records:
        return 0
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    now_ms = now_ms if now_ms is not None else _now_ms()
    by_key: dict[tuple[str, str], MarketRecord] = {}
    for r in records:
        by_key[r.key] = r
    rows = [_record_row(r, now_ms) for r in by_key.values()]
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        conn.begin()
        try:
            conn.executemany(UPSERT_SQL, chunk)
        except Exception:
            conn.rollback()
            raise
        conn.commit()
    return len(rows)


def list_markets(conn: DuckDBPyConnection, *, now: datetime | None = None) -> list[MarketRecord]:
    """Visible markets, largest total volume first.

    Markets whose end date falls before today (UTC) are hidden but not deleted;
    markets without an end date are always visible.
    """
    rows = conn.execute(
        f"""
        SELECT {", ".join(_COLUMNS)} FROM markets
        WHERE end_date IS NULL OR end_date >= ?
        ORDER BY total_volume DESC, platform, external_id
        """,
        [start_of_day(now)],
    ).fetchall()
    return [_row_record(r) for r in rows]


def get_market(conn: DuckDBPyConnection, platform: str, external_id: str) -> MarketRecord | None:
    """Return one stored market regardless of end date, or None."""
    row = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM markets WHERE platform = ? AND external_id = ?",
        [platform, external_id],
    ).fetchone()
    return _row_record(row) if row else None


def count_markets(conn: DuckDBPyConnection) -> int:
    """Total stored rows, including ones hidden by end date."""
    return conn.execute("SELECT COUNT(*) FROM markets").fetchone()[0]


def delete_older_than(conn: DuckDBPyConnection, cutoff_ms: int) -> int:
    """Delete markets last updated before cutoff_ms. Returns count removed."""
    rows = conn.execute(
        "DELETE FROM markets WHERE last_updated < ? RETURNING external_id",
        [cutoff_ms],
    ).fetchall()
    return len(rows)


def delete_older_than_days(conn: DuckDBPyConnection, days: int, *, now_ms: int | None = None) -> int:
    now_ms = now_ms if now_ms is not None else _now_ms()
    return delete_older_than(conn, now_ms - int(timedelta(days=days).total_seconds() * 1000))


def delete_stale(
    conn: DuckDBPyConnection,
    threshold_minutes: int,
    *,
    now_ms: int | None = None,
) -> int:
    """Delete markets not refreshed within the last threshold_minutes. Returns count removed."""
    now_ms = now_ms if now_ms is not None else _now_ms()
    return delete_older_than(conn, now_ms - threshold_minutes * 60 * 1000)


def market_totals(conn: DuckDBPyConnection, *, now: datetime | None = None) -> dict[str, Any]:
    """Aggregate volume over visible markets: overall and per platform."""
    rows = conn.execute(
        """
        SELECT platform, COUNT(*) AS cnt,
               COALESCE(SUM(total_volume), 0), COALESCE(SUM(volume_24h), 0)
        FROM markets
        WHERE end_date IS NULL OR end_date >= ?
        GROUP BY platform
        ORDER BY 3 DESC
        """,
        [start_of_day(now)],
    ).fetchall()
    by_platform = [
        {
            "platform": r[0],
            "market_count": r[1],
            "total_volume": format_decimal(r[2]),
            "volume_24h": format_decimal(r[3]),
        }
        for r in rows
    ]
    return {
        "market_count": sum(r[1] for r in rows),
        "total_volume": format_decimal(_sum_volumes(r[2] for r in rows)),
        "volume_24h": format_decimal(_sum_volumes(r[3] for r in rows)),
        "by_platform": by_platform,
    }
