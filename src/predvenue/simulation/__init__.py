"""Synthetic traders and the simulation driver."""

from predvenue.simulation.driver import SHOCK_CASCADE, SimulationDriver, TradeDecision
from predvenue.simulation.traders import Trader, TraderPool, TraderStyle
from predvenue.simulation.trend import Trend, TrendTracker

__all__ = [
    "SHOCK_CASCADE",
    "SimulationDriver",
    "TradeDecision",
    "Trader",
    "TraderPool",
    "TraderStyle",
    "Trend",
    "TrendTracker",
]
