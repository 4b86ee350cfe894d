"""Authoritative store over DuckDB: executes RPC actions and pushes the resulting changes.

Every action runs in one transaction. Push events are published only after
commit, each stamped with a store-wide monotonic sequence number.
"""

from __future__ import annotations

import asyncio
import random
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import duckdb
import structlog

from predvenue.history.recorder import snapshot_from_pools
from predvenue.models.market import Market
from predvenue.models.position import Position
from predvenue.pricing.lmsr import delta_for_payment, liquidity_b, sell_payout
from predvenue.pricing.policy import MAX_STAKE_FRACTION, apply_tick_floors, simulation_tick_effect
from predvenue.storage import accounts, markets, positions, trades
from predvenue.storage.db import get_connection, init_schema
from predvenue.storage.seed import seed_if_empty
from predvenue.sync.events import (
    BalanceUpdated,
    HistoryInserted,
    LiquidityUpdated,
    PoolUpdated,
    PositionsChanged,
    PushEvent,
)
from predvenue.sync.protocol import ConfirmResult, RpcAction, StoreError

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from predvenue.simulation.traders import TraderPool

log = structlog.get_logger(__name__)

DEFAULT_BOT_ID = "sim-bot"


def _require(payload: dict[str, Any], *keys: str) -> None:
    if any(not payload.get(k) for k in keys):
        raise StoreError("Missing fields")


class DuckDBStore:
    """Authoritative state for markets, positions, balances and history."""

    def __init__(
        self,
        conn: DuckDBPyConnection,
        *,
        trader_pool: TraderPool | None = None,
        latency_ms: int = 0,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.conn = conn
        self.latency_ms = latency_ms
        self._bot_ids = trader_pool.ids() if trader_pool is not None else []
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._subscribers: list[Callable[[PushEvent], None]] = []
        self._seq = 0
        self._handlers: dict[str, Callable[[dict[str, Any], list[PushEvent]], ConfirmResult]] = {
            "place_bet": self._place_bet,
            "close_position": self._close_position,
            "simulation_tick": self._simulation_tick,
        }

    @classmethod
    def open(cls, db_path: str | Path, **kwargs: Any) -> DuckDBStore:
        conn = get_connection(db_path)
        init_schema(conn)
        return cls(conn, **kwargs)

    def close(self) -> None:
        self._subscribers.clear()
        self.conn.close()

    # --- push channel ---

    def subscribe(self, callback: Callable[[PushEvent], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _publish(self, events: list[PushEvent]) -> None:
        for event in events:
            for callback in list(self._subscribers):
                callback(event)

    # --- reads ---

    def seed(self, now_ms: int | None = None, rng: random.Random | None = None) -> int:
        return seed_if_empty(self.conn, now_ms, rng)

    def load_markets(self, history_limit: int = 40) -> list[Market]:
        return markets.load_markets(self.conn, history_limit)

    def load_positions(self, user_id: str) -> list[Position]:
        return positions.list_positions(self.conn, user_id)

    def get_balance(self, user_id: str) -> float | None:
        return accounts.get_balance(self.conn, user_id)

    def ensure_account(self, user_id: str, starting_balance: float) -> float:
        return accounts.ensure_account(self.conn, user_id, starting_balance)

    def add_balance(self, user_id: str, amount: float) -> float:
        """Top up (or debit) an account and push the new balance."""
        balance = accounts.add_balance(self.conn, user_id, amount)
        self._publish([BalanceUpdated(seq=self._next_seq(), user_id=user_id, balance=balance)])
        log.info("balance_adjusted", user_id=user_id, amount=amount, balance=balance)
        return balance

    def list_trades(self, user_id: str | None = None, market_id: str | None = None, limit: int = 50):
        return trades.list_trades(self.conn, user_id=user_id, market_id=market_id, limit=limit)

    # --- RPC ---

    async def execute(self, action: RpcAction, payload: dict[str, Any]) -> ConfirmResult:
        """Run one RPC action in a transaction. Rejections raise StoreError and write nothing."""
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)
        handler = self._handlers.get(action)
        if handler is None:
            raise StoreError(f"Unknown action {action}")
        events: list[PushEvent] = []
        committed = False
        try:
            self.conn.begin()
            result = handler(payload, events)
            self.conn.commit()
            committed = True
        except StoreError as e:
            log.info("store_action_rejected", action=action, reason=str(e))
            raise
        except Exception as e:
            log.error("store_action_failed", action=action, error=str(e))
            raise StoreError("Server error") from e
        finally:
            if not committed:
                self._rollback()
        self._publish(events)
        return result

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except duckdb.TransactionException:
            # begin() itself failed, nothing is open
            pass

    def _load_state(self, market_id: str) -> tuple[float, dict[str, float]]:
        state = markets.get_market_state(self.conn, market_id)
        if state is None:
            raise StoreError("Market not found")
        return state

    def _write_market(
        self,
        market_id: str,
        outcome_id: str,
        next_pools: dict[str, float],
        liquidity: float,
        events: list[PushEvent],
    ) -> None:
        """Persist the moved pool, a history row and liquidity, queueing their pushes."""
        markets.set_pool(self.conn, market_id, outcome_id, next_pools[outcome_id])
        snapshot = snapshot_from_pools(next_pools, self._clock())
        markets.append_history(self.conn, market_id, snapshot)
        markets.set_liquidity(self.conn, market_id, liquidity)
        events.append(
            PoolUpdated(
                seq=self._next_seq(),
                market_id=market_id,
                outcome_id=outcome_id,
                pool=next_pools[outcome_id],
            )
        )
        events.append(HistoryInserted(seq=self._next_seq(), market_id=market_id, snapshot=snapshot))
        events.append(LiquidityUpdated(seq=self._next_seq(), market_id=market_id, liquidity=liquidity))

    def _push_user(self, user_id: str, balance: float, events: list[PushEvent]) -> None:
        events.append(
            PositionsChanged(
                seq=self._next_seq(),
                user_id=user_id,
                positions=positions.list_positions(self.conn, user_id),
            )
        )
        events.append(BalanceUpdated(seq=self._next_seq(), user_id=user_id, balance=balance))

    def _place_bet(self, payload: dict[str, Any], events: list[PushEvent]) -> ConfirmResult:
        _require(payload, "market_id", "outcome_id", "amount", "user_id")
        market_id = payload["market_id"]
        outcome_id = payload["outcome_id"]
        user_id = payload["user_id"]
        liquidity, pools = self._load_state(market_id)
        amount = min(float(payload["amount"]), sum(pools.values()) * MAX_STAKE_FRACTION)
        if amount <= 0:
            raise StoreError("Amount too small")
        balance = accounts.get_balance(self.conn, user_id) or 0.0
        if balance < amount:
            raise StoreError("Insufficient balance")

        fee = amount * float(payload.get("fee_rate") or 0.0)
        tradable = amount - fee
        result = delta_for_payment(pools, liquidity_b(sum(pools.values())), outcome_id, tradable)
        if result is None:
            raise StoreError("Pricing failed")
        next_pools = dict(pools)
        next_pools[outcome_id] += result.delta

        existing = positions.find_position(self.conn, user_id, market_id, outcome_id)
        if existing is not None:
            existing.shares += result.delta
            existing.amount_spent += amount
            existing.avg_price = existing.amount_spent / existing.shares
            position = existing
        else:
            position = Position(
                id=payload.get("position_id") or str(uuid.uuid4()),
                market_id=market_id,
                outcome_id=outcome_id,
                shares=result.delta,
                avg_price=amount / result.delta,
                amount_spent=amount,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
        positions.upsert_position(self.conn, user_id, position)
        self._write_market(market_id, outcome_id, next_pools, liquidity + tradable, events)

        new_balance = balance - amount
        accounts.set_balance(self.conn, user_id, new_balance)
        trades.record_trade(
            self.conn, user_id, market_id, outcome_id, "buy", result.delta, result.avg_price, amount, fee
        )
        self._push_user(user_id, new_balance, events)
        log.info(
            "store_bet_booked", user_id=user_id, market_id=market_id, outcome_id=outcome_id, amount=amount
        )
        return ConfirmResult(ok=True, balance=new_balance)

    def _close_position(self, payload: dict[str, Any], events: list[PushEvent]) -> ConfirmResult:
        _require(payload, "position_id", "market_id", "outcome_id", "user_id")
        market_id = payload["market_id"]
        outcome_id = payload["outcome_id"]
        user_id = payload["user_id"]
        liquidity, pools = self._load_state(market_id)
        pos = positions.get_position(self.conn, payload["position_id"], user_id)
        if pos is None:
            pos = positions.find_position(self.conn, user_id, market_id, outcome_id)
        if pos is None:
            raise StoreError("Position not found")

        raw_payout = sell_payout(pools, liquidity_b(sum(pools.values())), outcome_id, pos.shares)
        fee = raw_payout * float(payload.get("fee_rate") or 0.0)
        payout = raw_payout - fee
        next_pools = dict(pools)
        next_pools[outcome_id] = max(pools[outcome_id] - pos.shares, 0.0)

        positions.delete_position(self.conn, pos.id)
        self._write_market(market_id, outcome_id, next_pools, max(0.0, liquidity - payout), events)

        new_balance = (accounts.get_balance(self.conn, user_id) or 0.0) + payout
        accounts.set_balance(self.conn, user_id, new_balance)
        trades.record_trade(
            self.conn,
            user_id,
            market_id,
            outcome_id,
            "sell",
            pos.shares,
            payout / pos.shares,
            payout,
            fee,
        )
        self._push_user(user_id, new_balance, events)
        log.info("store_position_closed", user_id=user_id, position_id=pos.id, payout=payout)
        return ConfirmResult(ok=True, balance=new_balance, payout=payout)

    def _simulation_tick(self, payload: dict[str, Any], events: list[PushEvent]) -> ConfirmResult:
        _require(payload, "market_id", "outcome_id", "amount")
        market_id = payload["market_id"]
        outcome_id = payload["outcome_id"]
        is_sell = bool(payload.get("is_sell"))
        liquidity, pools = self._load_state(market_id)
        amount = min(float(payload["amount"]), sum(pools.values()) * MAX_STAKE_FRACTION)
        if amount <= 0:
            raise StoreError("Amount too small")
        effect = simulation_tick_effect(
            pools, liquidity_b(sum(pools.values())), outcome_id, amount, is_sell
        )
        if effect is None:
            raise StoreError("Pricing failed")
        next_pools = dict(pools)
        next_pools[outcome_id], next_liquidity = apply_tick_floors(
            pools[outcome_id] + effect.delta, liquidity + effect.liquidity_change
        )
        self._write_market(market_id, outcome_id, next_pools, next_liquidity, events)

        bot_id = payload.get("trader_id") or (
            self._rng.choice(self._bot_ids) if self._bot_ids else DEFAULT_BOT_ID
        )
        accounts.ensure_account(self.conn, bot_id, 0.0, is_bot=True)
        self._book_bot_position(bot_id, market_id, outcome_id, effect.delta, amount)
        trades.record_trade(
            self.conn,
            bot_id,
            market_id,
            outcome_id,
            "sell" if is_sell else "buy",
            abs(effect.delta),
            amount / abs(effect.delta) if effect.delta else 0.0,
            amount,
        )
        return ConfirmResult(ok=True)

    def _book_bot_position(
        self, bot_id: str, market_id: str, outcome_id: str, delta: float, amount: float
    ) -> None:
        existing = positions.find_position(self.conn, bot_id, market_id, outcome_id)
        if delta >= 0:
            if existing is None:
                positions.upsert_position(
                    self.conn,
                    bot_id,
                    Position(
                        id=str(uuid.uuid4()),
                        market_id=market_id,
                        outcome_id=outcome_id,
                        shares=delta,
                        avg_price=amount / delta,
                        amount_spent=amount,
                        created_at=datetime.now(timezone.utc).isoformat(),
                    ),
                )
            else:
                existing.shares += delta
                existing.amount_spent += amount
                existing.avg_price = existing.amount_spent / existing.shares
                positions.upsert_position(self.conn, bot_id, existing)
            return
        if existing is None:
            return
        remaining = existing.shares + delta
        if remaining <= 1e-9:
            positions.delete_position(self.conn, existing.id)
            return
        existing.amount_spent *= remaining / existing.shares
        existing.shares = remaining
        positions.upsert_position(self.conn, bot_id, existing)
