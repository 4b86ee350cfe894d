"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from predvenue.models.market import MarketSnapshot, OutcomeId
from predvenue.models.position import Position


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. COOLDOWN, not_found")


# --- Markets ---
class OutcomeView(BaseModel):
    id: OutcomeId
    label: str
    pool: float
    probability: float
    price: float = Field(..., description="Probability floored at 0.05")


class MarketView(BaseModel):
    id: str
    sport: str
    league: str
    home_team: str
    away_team: str
    start_time: str
    liquidity: float
    b: float
    max_bet: float
    outcomes: list[OutcomeView]


class MarketsListResponse(BaseModel):
    markets: list[MarketView]
    total: int
    selected_market_id: str | None = None


class MarketDetailResponse(MarketView):
    history: list[MarketSnapshot] = Field(default_factory=list)


# --- Trading ---
class BetRequest(BaseModel):
    market_id: str
    outcome_id: OutcomeId
    amount: float


class TopUpRequest(BaseModel):
    amount: float = Field(..., gt=0)


class ActionResponse(BaseModel):
    accepted: bool
    message: str | None = None
    balance: float
    pending_confirms: int = 0


class AccountResponse(BaseModel):
    user_id: str | None
    balance: float
    positions: list[Position]
    last_message: str | None = None


class TradeItem(BaseModel):
    user_id: str
    market_id: str
    outcome_id: str
    side: str
    shares: float
    price: float
    amount: float
    fee: float | None = None
    created_at: int


# --- Simulation ---
class SimulationResponse(BaseModel):
    status: str
    controller_id: str | None = None
    interval_ms: int
    ticks: int = 0
    shocks: int = 0
    dispatched: int = 0
    rejected: int = 0
    by_style: dict[str, Any] = Field(default_factory=dict)
