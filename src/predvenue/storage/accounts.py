"""User balances."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def get_balance(conn: DuckDBPyConnection, user_id: str) -> float | None:
    row = conn.execute("SELECT balance FROM users WHERE id = ?", [user_id]).fetchone()
    return float(row[0]) if row else None


def set_balance(conn: DuckDBPyConnection, user_id: str, balance: float) -> None:
    conn.execute(
        """
        INSERT INTO users (id, balance) VALUES (?, ?)
        ON CONFLICT (id) DO UPDATE SET balance = excluded.balance
        """,
        [user_id, balance],
    )


def ensure_account(
    conn: DuckDBPyConnection, user_id: str, starting_balance: float, is_bot: bool = False
) -> float:
    """Create the account with `starting_balance` if missing. Returns the current balance."""
    balance = get_balance(conn, user_id)
    if balance is not None:
        return balance
    conn.execute(
        "INSERT INTO users (id, balance, is_bot) VALUES (?, ?, ?)",
        [user_id, starting_balance, is_bot],
    )
    return starting_balance


def add_balance(conn: DuckDBPyConnection, user_id: str, amount: float) -> float:
    """Credit (or debit, if negative) an account; never below zero. Returns the new balance."""
    current = get_balance(conn, user_id) or 0.0
    new_balance = max(0.0, current + amount)
    set_balance(conn, user_id, new_balance)
    return new_balance
