"""Deterministic starting fixtures for an empty store."""

from __future__ import annotations

import random
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from predvenue.models.market import OUTCOME_LABELS, OUTCOME_ORDER, Market, MarketSnapshot, Outcome
from predvenue.pricing.lmsr import MIN_B, lmsr_prices
from predvenue.storage.markets import append_history, count_markets, upsert_market

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

BASE_LIQUIDITY = 3000.0
LIQUIDITY_STAGGER = 250.0

FIXTURES = [
    {
        "id": "match-1",
        "sport": "Football",
        "league": "UEFA Champions League",
        "home_team": "Bratislava Titans",
        "away_team": "Praha Royals",
        "start_offset_hours": 4,
    },
    {
        "id": "match-2",
        "sport": "Hockey",
        "league": "NHL Exhibition",
        "home_team": "Toronto Blades",
        "away_team": "New York Storm",
        "start_offset_hours": 12,
    },
    {
        "id": "match-3",
        "sport": "Basketball",
        "league": "EuroLeague",
        "home_team": "Berlin Rockets",
        "away_team": "Madrid Comets",
        "start_offset_hours": 28,
    },
]

# Base share of liquidity per outcome before the random 0..0.1 bump
_POOL_SHARES = {"home": 0.38, "draw": 0.32, "away": 0.30}


def create_initial_markets(now_ms: int | None = None, rng: random.Random | None = None) -> list[Market]:
    """Three fixtures with staggered liquidity and one opening history snapshot each."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    rng = rng or random.Random()
    markets = []
    for index, fixture in enumerate(FIXTURES):
        liquidity = BASE_LIQUIDITY + index * LIQUIDITY_STAGGER
        start = datetime.fromtimestamp(
            (now_ms + fixture["start_offset_hours"] * 3600 * 1000) / 1000, tz=timezone.utc
        )
        pools = {o: liquidity * (_POOL_SHARES[o] + rng.random() * 0.1) for o in OUTCOME_ORDER}
        # Opening snapshot is priced off liquidity, not the pool total.
        b = max(MIN_B, liquidity / 4)
        markets.append(
            Market(
                id=fixture["id"],
                sport=fixture["sport"],
                league=fixture["league"],
                home_team=fixture["home_team"],
                away_team=fixture["away_team"],
                start_time=start.isoformat(),
                liquidity=liquidity,
                outcomes=[Outcome(id=o, label=OUTCOME_LABELS[o], pool=pools[o]) for o in OUTCOME_ORDER],
                history=[MarketSnapshot(timestamp=now_ms, probabilities=lmsr_prices(pools, b))],
            )
        )
    return markets


def seed_if_empty(
    conn: DuckDBPyConnection, now_ms: int | None = None, rng: random.Random | None = None
) -> int:
    """Insert the starting fixtures when the store holds no markets. Returns the number inserted."""
    if count_markets(conn) > 0:
        return 0
    markets = create_initial_markets(now_ms, rng)
    for m in markets:
        upsert_market(conn, m)
        for snap in m.history:
            append_history(conn, m.id, snap)
    log.info("markets_seeded", count=len(markets))
    return len(markets)
