"""Optimistic-apply / confirm protocol against the authoritative store."""

from predvenue.sync.events import (
    BalanceUpdated,
    HistoryInserted,
    LiquidityUpdated,
    PoolUpdated,
    PositionsChanged,
    PushEvent,
)
from predvenue.sync.protocol import AuthoritativeStore, ConfirmResult, RpcAction, StoreError

__all__ = [
    "AuthoritativeStore",
    "BalanceUpdated",
    "ConfirmResult",
    "HistoryInserted",
    "LiquidityUpdated",
    "PoolUpdated",
    "PositionsChanged",
    "PushEvent",
    "RpcAction",
    "StoreError",
]
