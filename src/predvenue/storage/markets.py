"""Market, outcome and history persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from predvenue.models.market import OUTCOME_LABELS, OUTCOME_ORDER, Market, MarketSnapshot, Outcome

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def upsert_market(conn: DuckDBPyConnection, market: Market) -> None:
    """Insert or replace a market together with its three outcomes."""
    conn.execute(
        """
        INSERT INTO markets (id, sport, league, home_team, away_team, start_time, liquidity, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            sport = excluded.sport,
            league = excluded.league,
            home_team = excluded.home_team,
            away_team = excluded.away_team,
            start_time = excluded.start_time,
            liquidity = excluded.liquidity
        """,
        [
            market.id,
            market.sport,
            market.league,
            market.home_team,
            market.away_team,
            market.start_time,
            market.liquidity,
            int(time.time() * 1000),
        ],
    )
    for o in market.outcomes:
        conn.execute(
            """
            INSERT INTO outcomes (market_id, outcome_id, label, pool)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (market_id, outcome_id) DO UPDATE SET
                label = excluded.label,
                pool = excluded.pool
            """,
            [market.id, o.id, o.label, o.pool],
        )


def count_markets(conn: DuckDBPyConnection) -> int:
    return conn.execute("SELECT COUNT(*) FROM markets").fetchone()[0]


def get_market_state(conn: DuckDBPyConnection, market_id: str) -> tuple[float, dict[str, float]] | None:
    """Return (liquidity, pools) for a market, or None if the market or any outcome is missing."""
    row = conn.execute("SELECT liquidity FROM markets WHERE id = ?", [market_id]).fetchone()
    if row is None:
        return None
    rows = conn.execute(
        "SELECT outcome_id, pool FROM outcomes WHERE market_id = ?", [market_id]
    ).fetchall()
    pools = {r[0]: float(r[1]) for r in rows}
    if any(o not in pools for o in OUTCOME_ORDER):
        return None
    return float(row[0]), pools


def set_pool(conn: DuckDBPyConnection, market_id: str, outcome_id: str, pool: float) -> None:
    conn.execute(
        "UPDATE outcomes SET pool = ? WHERE market_id = ? AND outcome_id = ?",
        [pool, market_id, outcome_id],
    )


def set_liquidity(conn: DuckDBPyConnection, market_id: str, liquidity: float) -> None:
    conn.execute("UPDATE markets SET liquidity = ? WHERE id = ?", [liquidity, market_id])


def append_history(conn: DuckDBPyConnection, market_id: str, snapshot: MarketSnapshot) -> None:
    p = snapshot.probabilities
    conn.execute(
        "INSERT INTO history (market_id, ts, prob_home, prob_draw, prob_away) VALUES (?, ?, ?, ?, ?)",
        [market_id, snapshot.timestamp, p.get("home", 0.0), p.get("draw", 0.0), p.get("away", 0.0)],
    )


def recent_history(conn: DuckDBPyConnection, market_id: str, limit: int = 40) -> list[MarketSnapshot]:
    """Newest `limit` history rows for a market, returned oldest first."""
    rows = conn.execute(
        """
        SELECT ts, prob_home, prob_draw, prob_away FROM history
        WHERE market_id = ?
        ORDER BY ts DESC, id DESC
        LIMIT ?
        """,
        [market_id, limit],
    ).fetchall()
    return [
        MarketSnapshot(timestamp=r[0], probabilities={"home": r[1], "draw": r[2], "away": r[3]})
        for r in reversed(rows)
    ]


def load_markets(conn: DuckDBPyConnection, history_limit: int = 40) -> list[Market]:
    """All markets with outcomes and their most recent history, ordered by kickoff."""
    rows = conn.execute(
        """
        SELECT id, sport, league, home_team, away_team, start_time, liquidity
        FROM markets ORDER BY start_time, id
        """
    ).fetchall()
    outcome_rows = conn.execute("SELECT market_id, outcome_id, label, pool FROM outcomes").fetchall()
    by_market: dict[str, list[Outcome]] = {}
    for market_id, outcome_id, label, pool in outcome_rows:
        by_market.setdefault(market_id, []).append(
            Outcome(id=outcome_id, label=label or OUTCOME_LABELS.get(outcome_id, ""), pool=pool)
        )
    markets = []
    for r in rows:
        markets.append(
            Market(
                id=r[0],
                sport=r[1] or "",
                league=r[2] or "",
                home_team=r[3] or "",
                away_team=r[4] or "",
                start_time=r[5] or "",
                liquidity=r[6],
                outcomes=by_market.get(r[0], []),
                history=recent_history(conn, r[0], history_limit),
            )
        )
    return markets
