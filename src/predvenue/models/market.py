"""Market, Outcome, MarketSnapshot - the priced state of a fixture."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

OutcomeId = Literal["home", "draw", "away"]

OUTCOME_ORDER: tuple[OutcomeId, ...] = ("home", "draw", "away")

OUTCOME_LABELS: dict[str, str] = {
    "home": "Home",
    "draw": "Draw",
    "away": "Away",
}


class MarketSnapshot(BaseModel):
    """Probability vector at a point in time (ms epoch)."""

    timestamp: int
    probabilities: dict[str, float] = Field(default_factory=dict)


class Outcome(BaseModel):
    """One leg of a 1X2 market. `pool` is the LMSR quantity for this outcome."""

    id: OutcomeId
    label: str = ""
    pool: float = Field(..., ge=0)


class Market(BaseModel):
    """Three-way market on a fixture. Team and league labels are opaque to the engine."""

    id: str
    sport: str = ""
    league: str = ""
    home_team: str = ""
    away_team: str = ""
    start_time: str = ""
    liquidity: float = Field(0.0, ge=0)
    outcomes: list[Outcome]
    history: list[MarketSnapshot] = Field(default_factory=list)

    @field_validator("outcomes")
    @classmethod
    def _exactly_three_outcomes(cls, outcomes: list[Outcome]) -> list[Outcome]:
        ids = sorted(o.id for o in outcomes)
        if ids != sorted(OUTCOME_ORDER):
            raise ValueError(f"market needs exactly one of each outcome {OUTCOME_ORDER}, got {ids}")
        return sorted(outcomes, key=lambda o: OUTCOME_ORDER.index(o.id))

    def outcome(self, outcome_id: str) -> Outcome:
        for o in self.outcomes:
            if o.id == outcome_id:
                return o
        raise KeyError(outcome_id)

    def pools(self) -> dict[str, float]:
        return {o.id: o.pool for o in self.outcomes}

    def total_pool(self) -> float:
        return sum(o.pool for o in self.outcomes)
