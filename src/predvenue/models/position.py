"""Position and Account - user holdings and cash."""

from __future__ import annotations

from pydantic import BaseModel, Field

from predvenue.models.market import OutcomeId


class Position(BaseModel):
    """Open holding of one (market, outcome) pair. avg_price = amount_spent / shares."""

    id: str
    market_id: str
    outcome_id: OutcomeId
    shares: float = Field(..., gt=0)
    avg_price: float = 0.0
    amount_spent: float = 0.0
    created_at: str = ""
    synced: bool = False  # False until the authoritative store confirms the opening trade


class Account(BaseModel):
    id: str | None = None
    balance: float = Field(0.0, ge=0)
    authenticated: bool = False
