"""Trade reducer: validates and applies actions against VenueState.

One action is applied to completion before the next is accepted. Accepted
trades register exactly one pending confirm, which the reconciliation layer
takes with `take_pending_confirm()` after `dispatch` returns and runs on a
later event-loop turn. Its result comes back as a `ConfirmSucceeded` or
`ConfirmFailed` action.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from predvenue.config.settings import TradingConfig
from predvenue.history.recorder import HistoryRecorder
from predvenue.models.market import Market
from predvenue.models.position import Account, Position
from predvenue.pricing.lmsr import delta_for_payment, market_b, sell_payout
from predvenue.pricing.policy import (
    apply_tick_floors,
    bet_cap,
    format_amount,
    format_percentage,
    simulation_tick_effect,
)
from predvenue.sync.events import (
    BalanceUpdated,
    HistoryInserted,
    LiquidityUpdated,
    PoolUpdated,
    PositionsChanged,
)
from predvenue.sync.protocol import RpcAction
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
from predvenue.trading.errors import ErrorCode, PricingError, SyncError, TradeError, ValidationError
from predvenue.trading.state import RollbackSnapshot, VenueState

log = structlog.get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PendingConfirm:
    """A confirm registered during a transition; executed only after the transition completes."""

    action_id: str
    kind: RpcAction
    payload: dict[str, Any] = field(default_factory=dict)
    position_ids: tuple[str, ...] = ()
    local_balance_delta: float = 0.0


@dataclass
class DispatchResult:
    action: Action
    accepted: bool
    message: str | None = None
    error: TradeError | None = None
    action_id: str | None = None  # set when the action registered a confirm

    @property
    def code(self) -> str | None:
        return self.error.code.value if self.error is not None else None


class TradeCoordinator:
    """Single-writer reducer over VenueState."""

    def __init__(
        self,
        state: VenueState | None = None,
        *,
        recorder: HistoryRecorder | None = None,
        clock: Callable[[], int] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.state = state or VenueState()
        self.recorder = recorder or HistoryRecorder()
        self._clock = clock or _now_ms
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._pending: PendingConfirm | None = None
        self._rollbacks: dict[str, RollbackSnapshot] = {}
        self._handlers: dict[str, Callable[[Any, TradingConfig], str | None]] = {
            "place_bet": self._place_bet,
            "close_position": self._close_position,
            "simulation_tick": self._simulation_tick,
            "select_market": self._select_market,
            "toggle_simulation": self._toggle_simulation,
            "set_message": self._set_message,
            "confirm_succeeded": self._confirm_succeeded,
            "confirm_failed": self._confirm_failed,
            "apply_push": self._apply_push,
        }

    # --- public API ---

    def load(self, markets: list[Market], positions: list[Position], account: Account) -> None:
        """Hydrate from the authoritative store (or a local seed)."""
        self.state.set_markets(markets)
        self.state.positions = list(positions)
        self.state.account = account
        self._rollbacks.clear()
        self._pending = None

    def dispatch(self, action: Action, config: TradingConfig) -> DispatchResult:
        """Apply one action. Rejections leave state untouched and are returned, not raised."""
        self._pending = None
        self.recorder.limit = config.history_limit
        handler = self._handlers[action.type]
        try:
            message = handler(action, config)
        except TradeError as e:
            self._pending = None
            if isinstance(action, SimulationTick):
                log.debug("simulation_tick_dropped", market_id=action.market_id, code=e.code.value)
                return DispatchResult(action=action, accepted=False, message=e.message, error=e)
            self.state.last_message = e.message
            log.info("action_rejected", action=action.type, code=e.code.value, reason=e.message)
            return DispatchResult(action=action, accepted=False, message=e.message, error=e)
        if message is not None:
            self.state.last_message = message
        pending = self._pending
        return DispatchResult(
            action=action,
            accepted=True,
            message=message,
            action_id=pending.action_id if pending is not None else None,
        )

    def take_pending_confirm(self) -> PendingConfirm | None:
        """Hand over the confirm registered by the last dispatch, at most once."""
        pending, self._pending = self._pending, None
        return pending

    @property
    def awaiting_rollback(self) -> int:
        return len(self._rollbacks)

    # --- helpers ---

    def _require_market(self, market_id: str) -> Market:
        market = self.state.market(market_id)
        if market is None:
            raise ValidationError(ErrorCode.UNKNOWN_MARKET, f"Unknown market {market_id}.")
        return market

    def _register_confirm(
        self,
        kind: RpcAction,
        payload: dict[str, Any],
        *,
        rollback: RollbackSnapshot | None = None,
        position_ids: tuple[str, ...] = (),
        local_balance_delta: float = 0.0,
    ) -> PendingConfirm:
        action_id = self._new_id()
        if rollback is not None:
            self._rollbacks[action_id] = rollback
        self._pending = PendingConfirm(
            action_id=action_id,
            kind=kind,
            payload=payload,
            position_ids=position_ids,
            local_balance_delta=local_balance_delta,
        )
        return self._pending

    # --- trades ---

    def _place_bet(self, action: PlaceBet, config: TradingConfig) -> str:
        state = self.state
        if not state.account.authenticated:
            raise ValidationError(ErrorCode.AUTH_REQUIRED, "Sign in before placing a bet.")
        market = self._require_market(action.market_id)
        amount = action.amount
        if not amount > 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, "Enter a positive amount.")
        now = self._clock()
        last_bet = state.bet_cooldowns.get(action.actor)
        if last_bet is not None and now - last_bet < config.cooldown_ms:
            raise ValidationError(
                ErrorCode.COOLDOWN, f"Wait {config.cooldown_ms / 1000:g}s between bets."
            )
        cap = bet_cap(market)
        if amount > cap:
            raise ValidationError(
                ErrorCode.AMOUNT_TOO_LARGE, f"Max single bet is {format_amount(cap)}."
            )
        existing = state.find_position(market.id, action.outcome_id)
        if existing is None and len(state.positions) >= config.max_positions:
            raise ValidationError(
                ErrorCode.POSITION_LIMIT,
                f"You already hold {config.max_positions} open positions. Close one first.",
            )
        if state.account.balance < amount:
            raise ValidationError(ErrorCode.INSUFFICIENT_FUNDS, "Insufficient funds.")
        fee = amount * config.fee_rate if config.fee_enabled else 0.0
        tradable = amount - fee
        if tradable <= 0:
            raise ValidationError(ErrorCode.FEE_TOO_LARGE, "Amount after fee is too small.")
        result = delta_for_payment(market.pools(), market_b(market), action.outcome_id, tradable)
        if result is None:
            raise PricingError(ErrorCode.PRICING_FAILED, "Trade failed (pricing).")

        rollback = state.snapshot()
        market.outcome(action.outcome_id).pool += result.delta
        market.liquidity += tradable
        if existing is not None:
            existing.shares += result.delta
            existing.amount_spent += amount
            existing.avg_price = existing.amount_spent / existing.shares
            position = existing
        else:
            position = Position(
                id=self._new_id(),
                market_id=market.id,
                outcome_id=action.outcome_id,
                shares=result.delta,
                avg_price=amount / result.delta,
                amount_spent=amount,
                created_at=datetime.now(timezone.utc).isoformat(),
                synced=False,
            )
            state.positions.append(position)
        state.bet_cooldowns[action.actor] = now
        self.recorder.record(market, now)

        self._register_confirm(
            "place_bet",
            {
                "market_id": market.id,
                "outcome_id": action.outcome_id,
                "amount": amount,
                "user_id": state.account.id,
                "position_id": position.id,
                "fee_rate": config.effective_fee_rate,
            },
            rollback=rollback,
            position_ids=(position.id,),
            local_balance_delta=-amount,
        )
        log.info(
            "bet_applied",
            market_id=market.id,
            outcome_id=action.outcome_id,
            amount=amount,
            fee=fee,
            delta=result.delta,
            avg_price=result.avg_price,
        )
        fee_note = f" with {format_percentage(config.fee_rate)} fee" if config.fee_enabled else ""
        return (
            f"Bet {format_amount(amount)}{fee_note} on {action.outcome_id}. "
            "Waiting for confirmation..."
        )

    def _close_position(self, action: ClosePosition, config: TradingConfig) -> str:
        state = self.state
        if not state.account.authenticated:
            raise ValidationError(ErrorCode.AUTH_REQUIRED, "Sign in before closing a position.")
        position = state.position(action.position_id)
        if position is None:
            raise ValidationError(ErrorCode.UNKNOWN_POSITION, f"Unknown position {action.position_id}.")
        if not position.synced:
            raise SyncError(ErrorCode.NOT_SYNCED, "Wait for the position to sync before closing it.")
        market = self._require_market(position.market_id)

        raw_payout = sell_payout(market.pools(), market_b(market), position.outcome_id, position.shares)
        fee = raw_payout * config.fee_rate if config.fee_enabled else 0.0
        net = raw_payout - fee

        outcome = market.outcome(position.outcome_id)
        outcome.pool = max(outcome.pool - position.shares, 0.0)
        state.positions = [p for p in state.positions if p.id != position.id]
        self.recorder.record(market, self._clock())

        # No rollback snapshot: a failed close is not reverted locally.
        self._register_confirm(
            "close_position",
            {
                "position_id": position.id,
                "market_id": market.id,
                "outcome_id": position.outcome_id,
                "fee_rate": config.effective_fee_rate,
                "user_id": state.account.id,
            },
            position_ids=(position.id,),
            local_balance_delta=net,
        )
        log.info(
            "position_close_applied",
            position_id=position.id,
            shares=position.shares,
            raw_payout=raw_payout,
            net=net,
        )
        return "Closing position, waiting for confirmation..."

    def _simulation_tick(self, action: SimulationTick, config: TradingConfig) -> None:
        market = self._require_market(action.market_id)
        effect = simulation_tick_effect(
            market.pools(), market_b(market), action.outcome_id, action.amount, action.is_sell
        )
        if effect is None:
            raise PricingError(ErrorCode.PRICING_FAILED, "Simulated trade could not be priced.")
        outcome = market.outcome(action.outcome_id)
        outcome.pool, market.liquidity = apply_tick_floors(
            outcome.pool + effect.delta, market.liquidity + effect.liquidity_change
        )
        now = self._clock()
        self.state.simulation.last_tick_at = now
        self.recorder.record(market, now)
        self._register_confirm(
            "simulation_tick",
            {
                "market_id": market.id,
                "outcome_id": action.outcome_id,
                "amount": action.amount,
                "is_sell": action.is_sell,
                "trader_id": action.trader_id,
            },
        )
        return None

    # --- UI-level state ---

    def _select_market(self, action: SelectMarket, config: TradingConfig) -> None:
        self._require_market(action.market_id)
        self.state.selected_market_id = action.market_id
        return None

    def _toggle_simulation(self, action: ToggleSimulation, config: TradingConfig) -> None:
        sim = self.state.simulation
        sim.status = action.status
        sim.controller_id = action.controller_id or self.state.account.id
        if action.interval_ms is not None:
            sim.interval_ms = action.interval_ms
        self.state.last_message = None
        return None

    def _set_message(self, action: SetMessage, config: TradingConfig) -> None:
        self.state.last_message = action.message
        return None

    # --- reconciliation follow-ups ---

    def _settle_balance(self, action: ConfirmSucceeded) -> None:
        account = self.state.account
        if action.balance is not None:
            account.balance = max(0.0, action.balance)
        else:
            account.balance = max(0.0, account.balance + action.local_balance_delta)

    def _confirm_succeeded(self, action: ConfirmSucceeded, config: TradingConfig) -> str | None:
        self._rollbacks.pop(action.action_id, None)
        if action.kind == "place_bet":
            for p in self.state.positions:
                if p.id in action.position_ids:
                    p.synced = True
            self._settle_balance(action)
            log.info("bet_confirmed", action_id=action.action_id, balance=self.state.account.balance)
            return "Bet confirmed."
        if action.kind == "close_position":
            self._settle_balance(action)
            log.info("close_confirmed", action_id=action.action_id, balance=self.state.account.balance)
            return "Position closed."
        return None

    def _confirm_failed(self, action: ConfirmFailed, config: TradingConfig) -> None:
        if action.kind == "place_bet":
            snap = self._rollbacks.pop(action.action_id, None)
            if snap is not None:
                self.state.restore(snap)
            log.warning("bet_confirm_failed", action_id=action.action_id, error=action.error)
            raise SyncError(ErrorCode.WRITE_FAILED, "Write to the store failed, bet reverted.")
        if action.kind == "close_position":
            log.warning("close_confirm_failed", action_id=action.action_id, error=action.error)
            raise SyncError(ErrorCode.CLOSE_FAILED, "Closing the position failed at the store.")
        log.debug("simulation_confirm_failed", action_id=action.action_id, error=action.error)
        return None

    def _apply_push(self, action: ApplyPush, config: TradingConfig) -> None:
        """Field-level merge of an authoritative push; last write wins."""
        event = action.event
        state = self.state
        if isinstance(event, PoolUpdated):
            market = state.market(event.market_id)
            if market is not None:
                market.outcome(event.outcome_id).pool = event.pool
        elif isinstance(event, LiquidityUpdated):
            market = state.market(event.market_id)
            if market is not None:
                market.liquidity = event.liquidity
        elif isinstance(event, HistoryInserted):
            market = state.market(event.market_id)
            if market is not None:
                self.recorder.merge_external(market, event.snapshot)
        elif isinstance(event, PositionsChanged):
            if event.user_id == state.account.id:
                state.positions = [p.model_copy(update={"synced": True}) for p in event.positions]
        elif isinstance(event, BalanceUpdated):
            if event.user_id == state.account.id:
                state.account.balance = max(0.0, event.balance)
        return None
