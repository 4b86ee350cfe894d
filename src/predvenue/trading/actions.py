"""Action vocabulary accepted by TradeCoordinator.dispatch."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from predvenue.models.market import OutcomeId
from predvenue.models.simulation import SimulationStatus
from predvenue.sync.events import PushEvent


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class PlaceBet(_Action):
    type: Literal["place_bet"] = "place_bet"
    market_id: str
    outcome_id: OutcomeId
    amount: float
    actor: str


class ClosePosition(_Action):
    type: Literal["close_position"] = "close_position"
    position_id: str


class SimulationTick(_Action):
    type: Literal["simulation_tick"] = "simulation_tick"
    market_id: str
    outcome_id: OutcomeId
    amount: float
    is_sell: bool = False
    trader_id: str | None = None


class SelectMarket(_Action):
    type: Literal["select_market"] = "select_market"
    market_id: str


class ToggleSimulation(_Action):
    type: Literal["toggle_simulation"] = "toggle_simulation"
    status: SimulationStatus
    controller_id: str | None = None
    interval_ms: int | None = None


class SetMessage(_Action):
    type: Literal["set_message"] = "set_message"
    message: str | None = None


# Follow-up actions produced by the reconciliation layer


class ConfirmSucceeded(_Action):
    type: Literal["confirm_succeeded"] = "confirm_succeeded"
    action_id: str
    kind: Literal["place_bet", "close_position", "simulation_tick"]
    position_ids: tuple[str, ...] = ()
    balance: float | None = None
    local_balance_delta: float = 0.0


class ConfirmFailed(_Action):
    type: Literal["confirm_failed"] = "confirm_failed"
    action_id: str
    kind: Literal["place_bet", "close_position", "simulation_tick"]
    error: str | None = None


class ApplyPush(_Action):
    type: Literal["apply_push"] = "apply_push"
    event: PushEvent


Action = Union[
    PlaceBet,
    ClosePosition,
    SimulationTick,
    SelectMarket,
    ToggleSimulation,
    SetMessage,
    ConfirmSucceeded,
    ConfirmFailed,
    ApplyPush,
]
