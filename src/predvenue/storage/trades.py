"""Trade audit log."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def record_trade(
    conn: DuckDBPyConnection,
    user_id: str,
    market_id: str,
    outcome_id: str,
    side: str,
    shares: float,
    price: float,
    amount: float,
    fee: float = 0.0,
    created_at: int | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO trades (user_id, market_id, outcome_id, side, shares, price, amount, fee, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            user_id,
            market_id,
            outcome_id,
            side,
            shares,
            price,
            amount,
            fee,
            created_at if created_at is not None else int(time.time() * 1000),
        ],
    )


def list_trades(
    conn: DuckDBPyConnection, user_id: str | None = None, market_id: str | None = None, limit: int = 50
) -> list[dict[str, Any]]:
    """Most recent trades first, optionally filtered by user and/or market."""
    where = []
    params: list[Any] = []
    if user_id is not None:
        where.append("user_id = ?")
        params.append(user_id)
    if market_id is not None:
        where.append("market_id = ?")
        params.append(market_id)
    sql = "SELECT user_id, market_id, outcome_id, side, shares, price, amount, fee, created_at FROM trades"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    columns = ["user_id", "market_id", "outcome_id", "side", "shares", "price", "amount", "fee", "created_at"]
    return [dict(zip(columns, r)) for r in rows]
