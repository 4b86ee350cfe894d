"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS history_seq START 1;
CREATE SEQUENCE IF NOT EXISTS trade_seq START 1;

-- Fixtures. Team and league labels are display-only.
CREATE TABLE IF NOT EXISTS markets (
    id              VARCHAR PRIMARY KEY,
    sport           VARCHAR,
    league          VARCHAR,
    home_team       VARCHAR,
    away_team       VARCHAR,
    start_time      VARCHAR,
    liquidity       DOUBLE NOT NULL,
    created_at      BIGINT NOT NULL
);

-- LMSR quantity per outcome
CREATE TABLE IF NOT EXISTS outcomes (
    market_id       VARCHAR NOT NULL,
    outcome_id      VARCHAR NOT NULL,
    label           VARCHAR,
    pool            DOUBLE NOT NULL,
    PRIMARY KEY (market_id, outcome_id)
);

-- Open holdings, one row per (user_id, market_id, outcome_id), kept by upsert_position
CREATE TABLE IF NOT EXISTS positions (
    id              VARCHAR PRIMARY KEY,
    user_id         VARCHAR NOT NULL,
    market_id       VARCHAR NOT NULL,
    outcome_id      VARCHAR NOT NULL,
    shares          DOUBLE NOT NULL,
    avg_price       DOUBLE NOT NULL,
    amount_spent    DOUBLE NOT NULL,
    created_at      VARCHAR NOT NULL
);

-- Probability history (append-only)
CREATE TABLE IF NOT EXISTS history (
    id              BIGINT PRIMARY KEY DEFAULT nextval('history_seq'),
    market_id       VARCHAR NOT NULL,
    ts              BIGINT NOT NULL,
    prob_home       DOUBLE NOT NULL,
    prob_draw       DOUBLE NOT NULL,
    prob_away       DOUBLE NOT NULL
);

-- Cash balances, including synthetic traders
CREATE TABLE IF NOT EXISTS users (
    id              VARCHAR PRIMARY KEY,
    balance         DOUBLE NOT NULL,
    is_bot          BOOLEAN DEFAULT FALSE
);

-- Trade audit log (write-only from the engine's view)
CREATE TABLE IF NOT EXISTS trades (
    id              BIGINT PRIMARY KEY DEFAULT nextval('trade_seq'),
    user_id         VARCHAR NOT NULL,
    market_id       VARCHAR NOT NULL,
    outcome_id      VARCHAR NOT NULL,
    side            VARCHAR NOT NULL,
    shares          DOUBLE NOT NULL,
    price           DOUBLE NOT NULL,
    amount          DOUBLE NOT NULL,
    fee             DOUBLE DEFAULT 0,
    created_at      BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    ":memory:" opens an in-process database that lives as long as the connection."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
