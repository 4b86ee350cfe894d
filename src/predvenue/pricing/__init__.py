"""LMSR pricing engine and trading policy."""

from predvenue.pricing.lmsr import (
    DeltaResult,
    delta_for_payment,
    liquidity_b,
    lmsr_cost,
    lmsr_prices,
    market_b,
    payment_for_delta,
    probabilities,
    sell_payout,
)
from predvenue.pricing.policy import (
    bet_cap,
    clamp_bet_to_limits,
    price_from_probability,
    simulation_tick_effect,
)

__all__ = [
    "DeltaResult",
    "delta_for_payment",
    "liquidity_b",
    "lmsr_cost",
    "lmsr_prices",
    "market_b",
    "payment_for_delta",
    "probabilities",
    "sell_payout",
    "bet_cap",
    "clamp_bet_to_limits",
    "price_from_probability",
    "simulation_tick_effect",
]
