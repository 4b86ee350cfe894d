"""Boundary between the local engine and the authoritative store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Protocol

from predvenue.sync.events import PushEvent

RpcAction = Literal["place_bet", "close_position", "simulation_tick"]


class StoreError(Exception):
    """Authoritative store rejected or failed a write."""


@dataclass(frozen=True)
class ConfirmResult:
    """Outcome of one RPC action against the authoritative store."""

    ok: bool
    balance: float | None = None
    payout: float | None = None
    error: str | None = None


class AuthoritativeStore(Protocol):
    """Authoritative compute boundary: executes RPC actions and pushes state changes."""

    async def execute(self, action: RpcAction, payload: dict[str, Any]) -> ConfirmResult: ...

    def subscribe(self, callback: Callable[[PushEvent], None]) -> Callable[[], None]:
        """Register a push listener. Returns an unsubscribe callable."""
        ...
