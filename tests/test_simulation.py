"""Synthetic order flow: trader pool, trend decay, per-style decisions and shock cascades."""

import asyncio
import random

import pytest

from predvenue.config.settings import SimulationConfig, TradingConfig
from predvenue.models.market import Market, Outcome
from predvenue.models.position import Account
from predvenue.simulation.driver import SimulationDriver, SyntheticHolding
from predvenue.simulation.traders import Trader, TraderPool, TraderStyle
from predvenue.simulation.trend import TrendTracker
from predvenue.trading.coordinator import TradeCoordinator


class ScriptedRng(random.Random):
    """random() replays queued values (0.5 once exhausted); choice() takes the first element."""

    def __init__(self, *values: float) -> None:
        super().__init__(0)
        self.values = list(values)

    def random(self) -> float:
        return self.values.pop(0) if self.values else 0.5

    def uniform(self, a, b):
        return a + (b - a) * self.random()

    def choice(self, seq):
        return seq[0]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> int:
        return self.now


def _market() -> Market:
    return Market(
        id="m1",
        liquidity=5000.0,
        outcomes=[Outcome(id="home", pool=1000), Outcome(id="draw", pool=900), Outcome(id="away", pool=800)],
    )


def _trader(style=TraderStyle.AGGRESSIVE, risk=0.5) -> Trader:
    return Trader(id="bot-01", style=style, risk_tolerance=risk)


def _driver(*values, dispatch=None, markets=None, trader=None, config=None, clock=None):
    market = _market()
    return SimulationDriver(
        dispatch or (lambda action: None),
        markets or (lambda: [market]),
        TraderPool([trader or _trader()]),
        config or SimulationConfig(),
        rng=ScriptedRng(*values),
        clock=clock or FakeClock(),
    )


# --- traders and trends ---


def test_default_pool_cycles_styles():
    pool = TraderPool.default(count=8, rng=random.Random(0))
    assert len(pool) == 8
    assert pool.ids()[:2] == ["bot-01", "bot-02"]
    assert [t.style for t in pool][:4] == list(TraderStyle)
    assert pool.traders[4].style is TraderStyle.AGGRESSIVE
    assert all(0.2 <= t.risk_tolerance <= 1.0 for t in pool)
    assert pool.get("bot-08") is not None
    assert pool.get("bot-99") is None


def test_empty_pool_rejected():
    with pytest.raises(ValueError):
        TraderPool([])


def test_trend_decays_every_twentieth_tick():
    trends = TrendTracker()
    trends.set("m1", "home", 1.5)
    assert trends.get("m1").strength == 1.0
    trends.set("m2", "away", 0.105)
    for _ in range(19):
        trends.on_tick()
    assert trends.get("m1").strength == 1.0
    trends.on_tick()
    assert trends.get("m1").strength == pytest.approx(0.9)
    assert trends.get("m2") is None


# --- decisions ---


def test_aggressive_buy_sized_by_risk():
    driver = _driver(0.1, 0.5)
    decision = driver.decide(_market(), _trader(risk=0.5))
    assert decision.outcome_id == "home"
    assert decision.amount == 25.0
    assert not decision.is_sell
    assert decision.trader_id == "bot-01"


@pytest.mark.parametrize(
    "style,roll,buys",
    [
        (TraderStyle.AGGRESSIVE, 0.69, True),
        (TraderStyle.AGGRESSIVE, 0.71, False),
        (TraderStyle.CONSERVATIVE, 0.29, True),
        (TraderStyle.CONSERVATIVE, 0.31, False),
        (TraderStyle.MOMENTUM, 0.39, True),
        (TraderStyle.MOMENTUM, 0.41, False),
        (TraderStyle.CONTRARIAN, 0.34, True),
        (TraderStyle.CONTRARIAN, 0.36, False),
    ],
)
def test_buy_probability_without_trend(style, roll, buys):
    driver = _driver(roll)
    decision = driver.decide(_market(), _trader(style=style))
    assert (decision is not None) is buys


def test_momentum_follows_strong_trend():
    driver = _driver(0.55)
    driver.trend.set("m1", "away", 0.8)
    decision = driver.decide(_market(), _trader(style=TraderStyle.MOMENTUM))
    assert decision.outcome_id == "away"


def test_contrarian_fades_strong_trend():
    driver = _driver(0.45)
    driver.trend.set("m1", "home", 0.8)
    decision = driver.decide(_market(), _trader(style=TraderStyle.CONTRARIAN))
    assert decision.outcome_id == "draw"


def test_holder_sells_part_of_position():
    driver = _driver(0.39)
    driver.holdings[("bot-01", "m1")] = SyntheticHolding(outcome_id="home", shares=5.0)
    decision = driver.decide(_market(), _trader())
    assert decision.is_sell
    assert decision.outcome_id == "home"
    # capped by the holding's value at the current price
    assert decision.amount == pytest.approx(5.0 * 0.3837, abs=0.01)


def test_holder_may_keep_position_and_skip_buy():
    driver = _driver(0.41, 0.9)
    driver.holdings[("bot-01", "m1")] = SyntheticHolding(outcome_id="home", shares=5.0)
    assert driver.decide(_market(), _trader()) is None


def test_shock_sized_off_bet_cap_and_sets_trend():
    driver = _driver(0.5, 0.5)
    decision = driver.decide(_market(), _trader(risk=0.5), is_event=True)
    assert decision.shock
    assert decision.outcome_id == "home"
    assert decision.amount == pytest.approx(270.0 * 0.75 * 0.5)
    trend = driver.trend.get("m1")
    assert trend.outcome_id == "home"
    assert trend.strength == pytest.approx(0.9)


def test_cascade_alternates_opposite_sells_and_follow_buys():
    driver = _driver(0.5, 0.5)
    shock = driver.decide(_market(), _trader(), is_event=True)
    cascade = driver.cascade_for(shock)
    assert [d for d, _ in cascade] == [100, 200, 300, 400]
    assert [(t.outcome_id, t.is_sell) for _, t in cascade] == [
        ("draw", True),
        ("home", False),
        ("draw", True),
        ("home", False),
    ]
    assert [t.amount for _, t in cascade] == pytest.approx(
        [shock.amount * f for f in (0.6, 0.4, 0.3, 0.2)]
    )


# --- ticks through the reducer ---


def _coordinator():
    coord = TradeCoordinator()
    coord.load([_market()], [], Account(id="u1", balance=1000.0, authenticated=True))
    return coord


def test_tick_dispatches_and_tracks_holding():
    coord = _coordinator()
    driver = _driver(
        0.1,
        0.5,
        dispatch=lambda a: coord.dispatch(a, TradingConfig()),
        markets=lambda: list(coord.state.markets.values()),
    )
    pool_before = coord.state.market("m1").outcome("home").pool
    decision = driver.tick()
    assert decision.amount == 25.0
    assert coord.state.market("m1").outcome("home").pool > pool_before
    assert driver.stats.ticks == 1
    assert driver.stats.dispatched == 1
    assert driver.stats.by_style == {"aggressive": 1}
    holding = driver.holdings[("bot-01", "m1")]
    assert holding.outcome_id == "home"
    assert holding.shares == pytest.approx(25.0 / 0.3837, rel=1e-3)
    assert coord.take_pending_confirm().kind == "simulation_tick"


def test_event_tick_runs_cascade_inline_without_loop():
    coord = _coordinator()
    clock = FakeClock()
    driver = _driver(
        0.9,
        dispatch=lambda a: coord.dispatch(a, TradingConfig()),
        markets=lambda: list(coord.state.markets.values()),
        config=SimulationConfig(event_interval_ms=3000),
        clock=clock,
    )
    assert driver.tick() is None
    clock.now = 3000
    shock = driver.tick()
    assert shock.shock
    assert driver.stats.shocks == 1
    assert driver.stats.dispatched == 5
    assert driver.trend.get("m1").outcome_id == "home"


def test_run_until_stopped():
    coord = _coordinator()
    driver = SimulationDriver(
        lambda a: coord.dispatch(a, TradingConfig()),
        lambda: list(coord.state.markets.values()),
        TraderPool.default(count=4, rng=random.Random(1)),
        SimulationConfig(normal_interval_ms=5, event_interval_ms=20),
        rng=random.Random(1),
    )

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(driver.run(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await task

    asyncio.run(scenario())
    assert driver.stats.ticks > 0
