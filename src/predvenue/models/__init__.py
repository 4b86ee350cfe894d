"""Canonical schema (Pydantic) - Market, Position, Account, SimulationState."""

from predvenue.models.market import (
    OUTCOME_LABELS,
    OUTCOME_ORDER,
    Market,
    MarketSnapshot,
    Outcome,
    OutcomeId,
)
from predvenue.models.position import Account, Position
from predvenue.models.simulation import SimulationState, SimulationStatus

__all__ = [
    "Market",
    "MarketSnapshot",
    "Outcome",
    "OutcomeId",
    "OUTCOME_ORDER",
    "OUTCOME_LABELS",
    "Position",
    "Account",
    "SimulationState",
    "SimulationStatus",
]
