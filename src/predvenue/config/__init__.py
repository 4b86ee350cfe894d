"""Configuration loading."""

from predvenue.config.settings import (
    Settings,
    SimulationConfig,
    TradingConfig,
    configure_logging,
    get_settings,
    load_config,
)

__all__ = [
    "Settings",
    "SimulationConfig",
    "TradingConfig",
    "configure_logging",
    "get_settings",
    "load_config",
]
