"""Per-market trend state: dominant outcome and a decaying strength."""

from __future__ import annotations

from dataclasses import dataclass

TREND_DECAY = 0.9
TREND_DECAY_EVERY_TICKS = 20
TREND_PRUNE_BELOW = 0.1


@dataclass
class Trend:
    outcome_id: str
    strength: float


class TrendTracker:
    def __init__(self) -> None:
        self._trends: dict[str, Trend] = {}
        self.ticks = 0

    def set(self, market_id: str, outcome_id: str, strength: float) -> None:
        self._trends[market_id] = Trend(outcome_id=outcome_id, strength=min(1.0, max(0.0, strength)))

    def get(self, market_id: str) -> Trend | None:
        return self._trends.get(market_id)

    def on_tick(self) -> None:
        """Count a scheduler tick; every 20th decays all trends by 0.9 and prunes the weak ones."""
        self.ticks += 1
        if self.ticks % TREND_DECAY_EVERY_TICKS != 0:
            return
        for market_id in list(self._trends):
            trend = self._trends[market_id]
            trend.strength *= TREND_DECAY
            if trend.strength < TREND_PRUNE_BELOW:
                del self._trends[market_id]

    def __len__(self) -> int:
        return len(self._trends)
