"""Trading-engine policy on top of the LMSR core: stake caps, price floor, synthetic flow damping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping

from predvenue.pricing.lmsr import delta_for_payment

if TYPE_CHECKING:
    from predvenue.models.market import Market

PRICE_FLOOR = 0.05
MAX_STAKE_FRACTION = 0.1

# Synthetic sells unwind more shallowly than a real redemption.
SIM_SELL_PAYMENT_SCALE = 0.5
SIM_SELL_DELTA_SCALE = 0.3
SIM_SELL_LIQUIDITY_SCALE = -0.4
SIM_BUY_LIQUIDITY_SCALE = 0.3
SIM_POOL_FLOOR = 100.0
SIM_LIQUIDITY_FLOOR = 10000.0


def bet_cap(market: Market) -> float:
    """Largest single stake: 10% of the total pool or 10% of liquidity, whichever is smaller."""
    return min(market.total_pool() * MAX_STAKE_FRACTION, market.liquidity * MAX_STAKE_FRACTION)


def clamp_bet_to_limits(amount: float, market: Market) -> float:
    return max(0.0, min(amount, bet_cap(market)))


def price_from_probability(probability: float) -> float:
    """Probability as a tradable price, floored at 0.05 and rounded to 4 places."""
    return round(max(probability, PRICE_FLOOR), 4)


@dataclass(frozen=True)
class TickEffect:
    """Pool and liquidity movement produced by one synthetic trade."""

    delta: float
    liquidity_change: float


def simulation_tick_effect(
    pools: Mapping[str, float], b: float, outcome: str, amount: float, is_sell: bool = False
) -> TickEffect | None:
    if is_sell:
        result = delta_for_payment(pools, b, outcome, abs(amount * SIM_SELL_PAYMENT_SCALE))
        if result is None:
            return None
        return TickEffect(
            delta=-result.delta * SIM_SELL_DELTA_SCALE,
            liquidity_change=amount * SIM_SELL_LIQUIDITY_SCALE,
        )
    result = delta_for_payment(pools, b, outcome, abs(amount))
    if result is None:
        return None
    return TickEffect(delta=result.delta, liquidity_change=amount * SIM_BUY_LIQUIDITY_SCALE)


def apply_tick_floors(pool: float, liquidity: float) -> tuple[float, float]:
    return max(SIM_POOL_FLOOR, pool), max(SIM_LIQUIDITY_FLOOR, liquidity)


def format_percentage(value: float, digits: int = 1) -> str:
    return f"{value * 100:.{digits}f}%"


def format_amount(amount: float) -> str:
    return f"{amount:,.2f}"
