"""In-memory venue state owned by the reducer."""

from __future__ import annotations

from dataclasses import dataclass, field

from predvenue.models.market import Market
from predvenue.models.position import Account, Position
from predvenue.models.simulation import SimulationState


@dataclass(frozen=True)
class RollbackSnapshot:
    """Deep copy of everything a place_bet may touch, taken before the mutation."""

    positions: tuple[Position, ...]
    markets: tuple[Market, ...]
    balance: float


@dataclass
class VenueState:
    markets: dict[str, Market] = field(default_factory=dict)
    positions: list[Position] = field(default_factory=list)
    account: Account = field(default_factory=Account)
    simulation: SimulationState = field(default_factory=SimulationState)
    selected_market_id: str | None = None
    bet_cooldowns: dict[str, int] = field(default_factory=dict)
    last_message: str | None = None

    def market(self, market_id: str) -> Market | None:
        return self.markets.get(market_id)

    def position(self, position_id: str) -> Position | None:
        for p in self.positions:
            if p.id == position_id:
                return p
        return None

    def find_position(self, market_id: str, outcome_id: str) -> Position | None:
        for p in self.positions:
            if p.market_id == market_id and p.outcome_id == outcome_id:
                return p
        return None

    def set_markets(self, markets: list[Market]) -> None:
        self.markets = {m.id: m for m in markets}
        if self.selected_market_id not in self.markets:
            self.selected_market_id = markets[0].id if markets else None

    def snapshot(self) -> RollbackSnapshot:
        return RollbackSnapshot(
            positions=tuple(p.model_copy(deep=True) for p in self.positions),
            markets=tuple(m.model_copy(deep=True) for m in self.markets.values()),
            balance=self.account.balance,
        )

    def restore(self, snap: RollbackSnapshot) -> None:
        """Put positions, markets and balance back exactly as captured."""
        self.positions = [p.model_copy(deep=True) for p in snap.positions]
        self.markets = {m.id: m.model_copy(deep=True) for m in snap.markets}
        self.account.balance = snap.balance
