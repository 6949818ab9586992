"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# (platform, external_id) is the identity: raw ids are only unique within a platform.
# last_updated is ms epoch, start/end dates are naive UTC timestamps.
# Volumes are exact decimals; ordering and sums stay numeric.
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS markets (
    platform            VARCHAR NOT NULL,
    external_id         VARCHAR NOT NULL,
    question            VARCHAR NOT NULL,
    url                 VARCHAR NOT NULL,
    total_volume        DECIMAL(38, 10) NOT NULL,
    volume_24h          DECIMAL(38, 10),
    start_date          TIMESTAMP,
    end_date            TIMESTAMP,
    resolution_rules    VARCHAR,
    last_updated        BIGINT NOT NULL,
    PRIMARY KEY (platform, external_id)
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
