"""Synthetic order flow: per-tick trader decisions and shock cascades.

The driver never touches state directly. Every trade it decides on is issued
as a `SimulationTick` through the same dispatch path the user's actions take.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Callable

import structlog

from predvenue.config.settings import SimulationConfig
from predvenue.models.market import OUTCOME_ORDER, Market
from predvenue.pricing.lmsr import probabilities
from predvenue.pricing.policy import bet_cap, clamp_bet_to_limits, price_from_probability
from predvenue.simulation.traders import Trader, TraderPool, TraderStyle
from predvenue.simulation.trend import TrendTracker
from predvenue.trading.actions import SimulationTick
from predvenue.trading.coordinator import DispatchResult

log = structlog.get_logger(__name__)

BASE_SELL_PROBABILITY = 0.25
CONSERVATIVE_SELL_PROBABILITY = 0.35
LARGE_HOLDING_SHARES = 3.0
LARGE_HOLDING_SELL_BONUS = 0.15

AGGRESSIVE_BUY_PROBABILITY = 0.7
CONSERVATIVE_BUY_PROBABILITY = 0.3
MOMENTUM_FOLLOW_PROBABILITY = 0.6
MOMENTUM_MIN_STRENGTH = 0.3
MOMENTUM_RANDOM_PROBABILITY = 0.4
CONTRARIAN_FADE_PROBABILITY = 0.5
CONTRARIAN_MIN_STRENGTH = 0.5
CONTRARIAN_RANDOM_PROBABILITY = 0.35

SHOCK_TREND_BASE = 0.8
SHOCK_TREND_JITTER = 0.2

# (delay_ms, size factor relative to the shock, is_sell). Sells hit the opposite outcome.
SHOCK_CASCADE: tuple[tuple[int, float, bool], ...] = (
    (100, 0.6, True),
    (200, 0.4, False),
    (300, 0.3, True),
    (400, 0.2, False),
)


@dataclass(frozen=True)
class TradeDecision:
    market_id: str
    outcome_id: str
    amount: float
    is_sell: bool = False
    trader_id: str | None = None
    shock: bool = False


@dataclass
class SyntheticHolding:
    """Approximate shares a synthetic trader holds on one market."""

    outcome_id: str
    shares: float = 0.0


@dataclass
class DriverStats:
    ticks: int = 0
    shocks: int = 0
    dispatched: int = 0
    rejected: int = 0
    by_style: dict[str, int] = field(default_factory=dict)


def _other_outcome(outcome_id: str, rng: random.Random) -> str:
    return rng.choice([o for o in OUTCOME_ORDER if o != outcome_id])


class SimulationDriver:
    def __init__(
        self,
        dispatch: Callable[[SimulationTick], DispatchResult],
        markets: Callable[[], list[Market]],
        traders: TraderPool,
        config: SimulationConfig | Callable[[], SimulationConfig],
        *,
        rng: random.Random | None = None,
        trend: TrendTracker | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._dispatch = dispatch
        self._markets = markets
        self.traders = traders
        self._config = config if callable(config) else (lambda: config)
        self.rng = rng or random.Random()
        self.trend = trend or TrendTracker()
        self._clock = clock or (lambda: int(time.time() * 1000))
        self.holdings: dict[tuple[str, str], SyntheticHolding] = {}
        self.stats = DriverStats()
        self._last_event_at: int | None = None
        self._handles: list[asyncio.TimerHandle] = []

    # --- sizing ---

    def _normal_amount(self, trader: Trader, cfg: SimulationConfig) -> float:
        base = round(cfg.normal_min_amount + self.rng.random() * (cfg.normal_max_amount - cfg.normal_min_amount))
        return base * (0.5 + trader.risk_tolerance)

    def _buy_outcome(self, trader: Trader, market: Market) -> str | None:
        trend = self.trend.get(market.id)
        r = self.rng.random()
        if trader.style is TraderStyle.AGGRESSIVE:
            return self.rng.choice(OUTCOME_ORDER) if r < AGGRESSIVE_BUY_PROBABILITY else None
        if trader.style is TraderStyle.CONSERVATIVE:
            return self.rng.choice(OUTCOME_ORDER) if r < CONSERVATIVE_BUY_PROBABILITY else None
        if trader.style is TraderStyle.MOMENTUM:
            if trend is not None and trend.strength > MOMENTUM_MIN_STRENGTH:
                return trend.outcome_id if r < MOMENTUM_FOLLOW_PROBABILITY else None
            return self.rng.choice(OUTCOME_ORDER) if r < MOMENTUM_RANDOM_PROBABILITY else None
        if trend is not None and trend.strength > CONTRARIAN_MIN_STRENGTH:
            return _other_outcome(trend.outcome_id, self.rng) if r < CONTRARIAN_FADE_PROBABILITY else None
        return self.rng.choice(OUTCOME_ORDER) if r < CONTRARIAN_RANDOM_PROBABILITY else None

    # --- decisions ---

    def decide_shock(self, market: Market, trader: Trader, cfg: SimulationConfig) -> TradeDecision | None:
        """Large buy sized off the market's bet cap; sets the market trend to the shocked outcome."""
        outcome_id = self.rng.choice(OUTCOME_ORDER)
        percent = self.rng.uniform(cfg.event_min_percent, cfg.event_max_percent) / 100
        amount = bet_cap(market) * percent * trader.risk_tolerance
        if amount <= 0:
            return None
        self.trend.set(market.id, outcome_id, SHOCK_TREND_BASE + self.rng.random() * SHOCK_TREND_JITTER)
        return TradeDecision(
            market_id=market.id, outcome_id=outcome_id, amount=amount, trader_id=trader.id, shock=True
        )

    def decide(self, market: Market, trader: Trader, is_event: bool = False) -> TradeDecision | None:
        """Buy, sell or nothing for one trader on one market."""
        cfg = self._config()
        if is_event:
            return self.decide_shock(market, trader, cfg)

        holding = self.holdings.get((trader.id, market.id))
        if holding is not None and holding.shares > 0:
            sell_p = (
                CONSERVATIVE_SELL_PROBABILITY
                if trader.style is TraderStyle.CONSERVATIVE
                else BASE_SELL_PROBABILITY
            )
            if holding.shares > LARGE_HOLDING_SHARES:
                sell_p += LARGE_HOLDING_SELL_BONUS
            if self.rng.random() < sell_p:
                price = price_from_probability(probabilities(market)[holding.outcome_id])
                amount = min(holding.shares * price, self._normal_amount(trader, cfg))
                return TradeDecision(
                    market_id=market.id,
                    outcome_id=holding.outcome_id,
                    amount=amount,
                    is_sell=True,
                    trader_id=trader.id,
                )

        outcome_id = self._buy_outcome(trader, market)
        if outcome_id is None:
            return None
        amount = clamp_bet_to_limits(self._normal_amount(trader, cfg), market)
        if amount <= 0:
            return None
        return TradeDecision(market_id=market.id, outcome_id=outcome_id, amount=amount, trader_id=trader.id)

    def cascade_for(self, shock: TradeDecision) -> list[tuple[int, TradeDecision]]:
        """Reaction trades to a shock as (delay_ms, decision), in firing order."""
        opposite = _other_outcome(shock.outcome_id, self.rng)
        return [
            (
                delay_ms,
                TradeDecision(
                    market_id=shock.market_id,
                    outcome_id=opposite if is_sell else shock.outcome_id,
                    amount=shock.amount * factor,
                    is_sell=is_sell,
                ),
            )
            for delay_ms, factor, is_sell in SHOCK_CASCADE
        ]

    # --- execution ---

    def _is_event_tick(self, now: int, cfg: SimulationConfig) -> bool:
        if self._last_event_at is None:
            self._last_event_at = now
            return False
        if now - self._last_event_at >= cfg.event_interval_ms:
            self._last_event_at = now
            return True
        return False

    def submit(self, decision: TradeDecision) -> DispatchResult:
        """Dispatch one decision as a simulation_tick and track the trader's holding if accepted."""
        market = next((m for m in self._markets() if m.id == decision.market_id), None)
        price = (
            price_from_probability(probabilities(market)[decision.outcome_id]) if market is not None else None
        )
        result = self._dispatch(
            SimulationTick(
                market_id=decision.market_id,
                outcome_id=decision.outcome_id,
                amount=decision.amount,
                is_sell=decision.is_sell,
                trader_id=decision.trader_id,
            )
        )
        self.stats.dispatched += 1
        if not result.accepted:
            self.stats.rejected += 1
            return result
        if decision.trader_id is not None and price is not None:
            self._track(decision, decision.amount / price)
        return result

    def _track(self, decision: TradeDecision, shares: float) -> None:
        key = (decision.trader_id, decision.market_id)
        holding = self.holdings.get(key)
        if decision.is_sell:
            if holding is None:
                return
            holding.shares -= shares
            if holding.shares <= 0:
                del self.holdings[key]
            return
        if holding is None or holding.outcome_id != decision.outcome_id:
            # One tracked leg per trader and market; a buy on another outcome replaces it.
            self.holdings[key] = SyntheticHolding(outcome_id=decision.outcome_id, shares=shares)
        else:
            holding.shares += shares

    def tick(self) -> TradeDecision | None:
        """One scheduler step: pick market and trader, decide, dispatch, and stage a cascade on shocks."""
        markets = self._markets()
        if not markets:
            return None
        cfg = self._config()
        self.trend.on_tick()
        self.stats.ticks += 1
        is_event = self._is_event_tick(self._clock(), cfg)
        market = self.rng.choice(markets)
        trader = self.traders.pick(self.rng)
        decision = self.decide(market, trader, is_event)
        if decision is None:
            return None
        self.stats.by_style[trader.style.value] = self.stats.by_style.get(trader.style.value, 0) + 1
        result = self.submit(decision)
        if decision.shock and result.accepted:
            self.stats.shocks += 1
            log.info(
                "simulation_shock",
                market_id=decision.market_id,
                outcome_id=decision.outcome_id,
                amount=decision.amount,
            )
            self._schedule_cascade(decision)
        return decision

    def _schedule_cascade(self, shock: TradeDecision) -> None:
        cascade = self.cascade_for(shock)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            for _, decision in cascade:
                self.submit(decision)
            return
        self._handles = [h for h in self._handles if not h.cancelled()]
        for delay_ms, decision in cascade:
            self._handles.append(loop.call_later(delay_ms / 1000, self.submit, decision))

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Tick every normal interval until stop_event is set."""
        stop = stop_event or asyncio.Event()
        self._last_event_at = self._clock()
        log.info("simulation_started", traders=len(self.traders))
        try:
            while not stop.is_set():
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self._config().normal_interval_ms / 1000)
                except asyncio.TimeoutError:
                    self.tick()
        finally:
            for handle in self._handles:
                handle.cancel()
            self._handles.clear()
            log.info(
                "simulation_stopped",
                ticks=self.stats.ticks,
                shocks=self.stats.shocks,
                dispatched=self.stats.dispatched,
                rejected=self.stats.rejected,
            )
