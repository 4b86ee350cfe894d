"""Stake caps, price floor and synthetic flow damping."""

import pytest

from predvenue.models.market import Market, Outcome
from predvenue.pricing.lmsr import delta_for_payment
from predvenue.pricing.policy import (
    apply_tick_floors,
    bet_cap,
    clamp_bet_to_limits,
    format_amount,
    format_percentage,
    price_from_probability,
    simulation_tick_effect,
)

POOLS = {"home": 1000.0, "draw": 900.0, "away": 800.0}


def _market(liquidity: float, pools=POOLS) -> Market:
    return Market(
        id="m1",
        liquidity=liquidity,
        outcomes=[Outcome(id=k, pool=v) for k, v in pools.items()],
    )


def test_bet_cap_is_smaller_of_pool_and_liquidity_share():
    assert bet_cap(_market(5000)) == pytest.approx(270.0)
    assert bet_cap(_market(1000)) == pytest.approx(100.0)


@pytest.mark.parametrize("amount", [-50.0, 0.0, 10.0, 269.0, 270.0, 10_000.0])
@pytest.mark.parametrize("liquidity", [0.0, 1000.0, 5000.0])
def test_clamp_bet_to_limits_bounds(amount, liquidity):
    market = _market(liquidity)
    clamped = clamp_bet_to_limits(amount, market)
    assert 0.0 <= clamped <= min(0.1 * market.total_pool(), 0.1 * liquidity)


def test_price_floor():
    assert price_from_probability(0.01) == 0.05
    assert price_from_probability(0.123456) == 0.1235
    assert price_from_probability(0.9) == 0.9


def test_sim_buy_effect():
    effect = simulation_tick_effect(POOLS, 675.0, "draw", 40.0)
    assert effect.delta == pytest.approx(delta_for_payment(POOLS, 675.0, "draw", 40.0).delta)
    assert effect.liquidity_change == pytest.approx(12.0)


def test_sim_sell_is_damped_and_asymmetric():
    effect = simulation_tick_effect(POOLS, 675.0, "draw", 40.0, is_sell=True)
    half = delta_for_payment(POOLS, 675.0, "draw", 20.0).delta
    assert effect.delta == pytest.approx(-0.3 * half)
    assert effect.liquidity_change == pytest.approx(-16.0)
    buy = simulation_tick_effect(POOLS, 675.0, "draw", 40.0)
    assert abs(effect.delta) < buy.delta


def test_sim_effect_none_when_unpriceable():
    assert simulation_tick_effect(POOLS, 675.0, "home", 0.0) is None
    assert simulation_tick_effect(POOLS, 675.0, "home", 0.0, is_sell=True) is None


def test_tick_floors():
    assert apply_tick_floors(40.0, 200.0) == (100.0, 10000.0)
    assert apply_tick_floors(1500.0, 12000.0) == (1500.0, 12000.0)


def test_formatting():
    assert format_percentage(0.3837) == "38.4%"
    assert format_percentage(0.5, digits=0) == "50%"
    assert format_amount(1234.5) == "1,234.50"
