"""Open positions, one row per (user, market, outcome)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predvenue.models.position import Position

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = "id, user_id, market_id, outcome_id, shares, avg_price, amount_spent, created_at"


def _row_to_position(row: tuple) -> Position:
    return Position(
        id=row[0],
        market_id=row[2],
        outcome_id=row[3],
        shares=row[4],
        avg_price=row[5],
        amount_spent=row[6],
        created_at=row[7],
        synced=True,
    )


def find_position(
    conn: DuckDBPyConnection, user_id: str, market_id: str, outcome_id: str
) -> Position | None:
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM positions WHERE user_id = ? AND market_id = ? AND outcome_id = ?",
        [user_id, market_id, outcome_id],
    ).fetchone()
    return _row_to_position(row) if row else None


def get_position(conn: DuckDBPyConnection, position_id: str, user_id: str) -> Position | None:
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM positions WHERE id = ? AND user_id = ?", [position_id, user_id]
    ).fetchone()
    return _row_to_position(row) if row else None


def upsert_position(conn: DuckDBPyConnection, user_id: str, position: Position) -> None:
    """Write `position` for `user_id`. The caller keeps (user, market, outcome) unique."""
    conn.execute(
        f"""
        INSERT INTO positions ({_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            shares = excluded.shares,
            avg_price = excluded.avg_price,
            amount_spent = excluded.amount_spent
        """,
        [
            position.id,
            user_id,
            position.market_id,
            position.outcome_id,
            position.shares,
            position.avg_price,
            position.amount_spent,
            position.created_at,
        ],
    )


def delete_position(conn: DuckDBPyConnection, position_id: str) -> None:
    conn.execute("DELETE FROM positions WHERE id = ?", [position_id])


def list_positions(conn: DuckDBPyConnection, user_id: str) -> list[Position]:
    """All of a user's positions, oldest first. Everything read back from the store is synced."""
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM positions WHERE user_id = ? ORDER BY created_at, id", [user_id]
    ).fetchall()
    return [_row_to_position(r) for r in rows]
