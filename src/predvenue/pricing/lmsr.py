"""Logarithmic market scoring rule - cost, prices and trade sizing.

Pure functions over a pool vector ``q = [home, draw, away]`` and a liquidity
parameter ``b``. Shared by the optimistic local path and the authoritative
store so both evaluate identical floating-point expressions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Sequence

from predvenue.models.market import OUTCOME_ORDER

if TYPE_CHECKING:
    from predvenue.models.market import Market

MIN_B = 300.0
DEFAULT_TOTAL_POOL = 800.0
BISECTION_ITERATIONS = 60
BISECTION_TOLERANCE = 1e-6
SEARCH_SLACK = 5.0  # upper bracket is payment * SEARCH_SLACK shares
MIN_SEARCH_BOUND = 0.0001


@dataclass(frozen=True)
class DeltaResult:
    """Shares bought for a payment and the average execution price."""

    delta: float
    avg_price: float


def _to_q(pools: Mapping[str, float]) -> list[float]:
    return [float(pools[o]) for o in OUTCOME_ORDER]


def _index(outcome: str) -> int:
    try:
        return OUTCOME_ORDER.index(outcome)  # type: ignore[arg-type]
    except ValueError:
        raise KeyError(f"unknown outcome: {outcome}") from None


def liquidity_b(total_pool: float) -> float:
    """b = max(300, totalPool / 4); an empty market prices as if it held 800."""
    return max(MIN_B, (total_pool or DEFAULT_TOTAL_POOL) / 4)


def market_b(market: Market) -> float:
    return liquidity_b(market.total_pool())


def lmsr_cost(q: Sequence[float], b: float) -> float:
    """C(q) = b * (m + ln(sum(exp(q_i/b - m)))) with m = max(q_i/b)."""
    a = [x / b for x in q]
    m = max(a)
    total = sum(math.exp(v - m) for v in a)
    return b * (m + math.log(total))


def lmsr_prices(pools: Mapping[str, float], b: float) -> dict[str, float]:
    """Softmax of q/b. Shifted by the max exponent, which leaves the ratios unchanged."""
    a = [x / b for x in _to_q(pools)]
    m = max(a)
    exps = [math.exp(v - m) for v in a]
    total = sum(exps)
    return {o: e / total for o, e in zip(OUTCOME_ORDER, exps)}


def payment_for_delta(pools: Mapping[str, float], b: float, outcome: str, delta: float) -> float:
    """Cost of moving `outcome` by `delta` shares. Negative delta gives a (negative) sale."""
    q = _to_q(pools)
    before = lmsr_cost(q, b)
    q[_index(outcome)] += delta
    after = lmsr_cost(q, b)
    return after - before


def delta_for_payment(
    pools: Mapping[str, float], b: float, outcome: str, payment: float
) -> DeltaResult | None:
    """Invert payment_for_delta by bisection over [0, payment * 5].

    Returns None for non-positive payments and when the search ends on a
    non-positive delta or a non-finite cost.
    """
    if not payment > 0:
        return None
    lo = 0.0
    hi = max(MIN_SEARCH_BOUND, payment * SEARCH_SLACK)
    for _ in range(BISECTION_ITERATIONS):
        mid = (lo + hi) / 2
        cost = payment_for_delta(pools, b, outcome, mid)
        if abs(cost - payment) < BISECTION_TOLERANCE:
            lo = hi = mid
            break
        if cost > payment:
            hi = mid
        else:
            lo = mid
    delta = (lo + hi) / 2
    final_cost = payment_for_delta(pools, b, outcome, delta)
    if delta <= 0 or not math.isfinite(final_cost):
        return None
    return DeltaResult(delta=delta, avg_price=final_cost / delta)


def sell_payout(pools: Mapping[str, float], b: float, outcome: str, delta: float) -> float:
    """Proceeds of selling `delta` shares of `outcome` back to the market maker."""
    return -payment_for_delta(pools, b, outcome, -delta)


def probabilities(market: Market) -> dict[str, float]:
    """Current spot prices of a market."""
    return lmsr_prices(market.pools(), market_b(market))
