"""Push-channel events emitted by the authoritative store."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from predvenue.models.market import MarketSnapshot, OutcomeId
from predvenue.models.position import Position


class _PushBase(BaseModel):
    seq: int = Field(..., ge=0, description="Store-wide monotonic sequence number")


class PoolUpdated(_PushBase):
    kind: Literal["pool"] = "pool"
    market_id: str
    outcome_id: OutcomeId
    pool: float


class LiquidityUpdated(_PushBase):
    kind: Literal["liquidity"] = "liquidity"
    market_id: str
    liquidity: float


class HistoryInserted(_PushBase):
    kind: Literal["history"] = "history"
    market_id: str
    snapshot: MarketSnapshot


class PositionsChanged(_PushBase):
    kind: Literal["positions"] = "positions"
    user_id: str
    positions: list[Position] = Field(default_factory=list)


class BalanceUpdated(_PushBase):
    kind: Literal["balance"] = "balance"
    user_id: str
    balance: float


PushEvent = Annotated[
    Union[PoolUpdated, LiquidityUpdated, HistoryInserted, PositionsChanged, BalanceUpdated],
    Field(discriminator="kind"),
]


def merge_key(
    event: PoolUpdated | LiquidityUpdated | HistoryInserted | PositionsChanged | BalanceUpdated,
) -> tuple[str, ...] | None:
    """Field the event overwrites; sequence ordering is tracked per key. History inserts append, so have none."""
    if isinstance(event, PoolUpdated):
        return ("pool", event.market_id, event.outcome_id)
    if isinstance(event, LiquidityUpdated):
        return ("liquidity", event.market_id)
    if isinstance(event, HistoryInserted):
        return None
    if isinstance(event, PositionsChanged):
        return ("positions", event.user_id)
    return ("balance", event.user_id)
