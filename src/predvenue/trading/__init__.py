"""Trade reducer: actions, errors, state, coordinator."""

from predvenue.trading.actions import (
    Action,
    ApplyPush,
    ClosePosition,
    ConfirmFailed,
    ConfirmSucceeded,
    PlaceBet,
    SelectMarket,
    SetMessage,
    SimulationTick,
    ToggleSimulation,
)
from predvenue.trading.coordinator import DispatchResult, PendingConfirm, TradeCoordinator
from predvenue.trading.errors import ErrorCode, PricingError, SyncError, TradeError, ValidationError
from predvenue.trading.state import RollbackSnapshot, VenueState

__all__ = [
    "Action",
    "ApplyPush",
    "ClosePosition",
    "ConfirmFailed",
    "ConfirmSucceeded",
    "DispatchResult",
    "ErrorCode",
    "PendingConfirm",
    "PlaceBet",
    "PricingError",
    "RollbackSnapshot",
    "SelectMarket",
    "SetMessage",
    "SimulationTick",
    "SyncError",
    "ToggleSimulation",
    "TradeCoordinator",
    "TradeError",
    "ValidationError",
    "VenueState",
]
