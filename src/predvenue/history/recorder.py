"""Bounded per-market probability history."""

from __future__ import annotations

from typing import Iterable

import structlog

from predvenue.models.market import Market, MarketSnapshot
from predvenue.pricing.lmsr import liquidity_b, lmsr_prices

log = structlog.get_logger(__name__)

HISTORY_LIMIT = 40
DUPLICATE_WINDOW_MS = 2000
DUPLICATE_PROB_EPSILON = 0.001


def snapshot_from_pools(pools: dict[str, float], timestamp: int) -> MarketSnapshot:
    """Price a pool vector and stamp it."""
    b = liquidity_b(sum(pools.values()))
    return MarketSnapshot(timestamp=timestamp, probabilities=lmsr_prices(pools, b))


def is_duplicate(a: MarketSnapshot, b: MarketSnapshot) -> bool:
    """Same point if < 2s apart and every probability within 0.001."""
    if abs(a.timestamp - b.timestamp) >= DUPLICATE_WINDOW_MS:
        return False
    keys = set(a.probabilities) | set(b.probabilities)
    return all(
        abs(a.probabilities.get(k, 0.0) - b.probabilities.get(k, 0.0)) < DUPLICATE_PROB_EPSILON
        for k in keys
    )


class HistoryRecorder:
    """Appends snapshots to `Market.history`, evicting oldest entries past `limit`."""

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        self.limit = limit

    def append(self, market: Market, snapshot: MarketSnapshot) -> None:
        market.history.append(snapshot)
        overflow = len(market.history) - self.limit
        if overflow > 0:
            del market.history[:overflow]

    def record(self, market: Market, timestamp: int) -> MarketSnapshot:
        """Snapshot the market's current (post-mutation) pools."""
        snapshot = snapshot_from_pools(market.pools(), timestamp)
        self.append(market, snapshot)
        return snapshot

    def load(self, market: Market, snapshots: Iterable[MarketSnapshot]) -> None:
        """Replace history with the newest `limit` snapshots, oldest first."""
        ordered = sorted(snapshots, key=lambda s: s.timestamp)
        market.history = ordered[-self.limit :] if self.limit > 0 else []

    def merge_external(self, market: Market, snapshot: MarketSnapshot) -> bool:
        """Append a pushed snapshot unless it duplicates one already held. Returns True if appended."""
        if any(is_duplicate(existing, snapshot) for existing in market.history):
            log.debug("history_duplicate_dropped", market_id=market.id, timestamp=snapshot.timestamp)
            return False
        self.append(market, snapshot)
        return True

    def history(self, market: Market) -> list[MarketSnapshot]:
        return list(market.history)
