"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


@dataclass(frozen=True)
class TradingConfig:
    """Immutable per-dispatch configuration snapshot.

    Handed to every action so the reducer never reads ambient settings.
    """

    fee_enabled: bool = True
    fee_rate: float = 0.02
    max_positions: int = 3
    cooldown_ms: int = 1000
    history_limit: int = 40

    @property
    def effective_fee_rate(self) -> float:
        return self.fee_rate if self.fee_enabled else 0.0


@dataclass(frozen=True)
class SimulationConfig:
    """Synthetic order-flow tuning."""

    normal_interval_ms: int = 900
    event_interval_ms: int = 3000
    normal_min_amount: float = 5.0
    normal_max_amount: float = 45.0
    event_min_percent: float = 50.0
    event_max_percent: float = 100.0
    trader_count: int = 8
    seed: int | None = None


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        trading: dict[str, Any] | None = None,
        fee: dict[str, Any] | None = None,
        simulation: dict[str, Any] | None = None,
        store: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.trading = trading or {}
        self.fee = fee or {}
        self.simulation = simulation or {}
        self.store = store or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            trading=raw.get("trading"),
            fee=raw.get("fee"),
            simulation=raw.get("simulation"),
            store=raw.get("store"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predvenue.duckdb")

    @property
    def user_id(self) -> str:
        return str(self.trading.get("user_id", "local-user"))

    @property
    def starting_balance(self) -> float:
        return float(self.trading.get("starting_balance", 1000.0))

    @property
    def max_positions(self) -> int:
        return int(self.trading.get("max_positions", 3))

    @property
    def cooldown_ms(self) -> int:
        return int(self.trading.get("cooldown_ms", 1000))

    @property
    def history_limit(self) -> int:
        return int(self.trading.get("history_limit", 40))

    @property
    def fee_enabled(self) -> bool:
        return bool(self.fee.get("enabled", True))

    @property
    def fee_rate(self) -> float:
        return float(self.fee.get("rate", 0.02))

    @property
    def store_latency_ms(self) -> int:
        return int(self.store.get("latency_ms", 0))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)

    def trading_config(self) -> TradingConfig:
        return TradingConfig(
            fee_enabled=self.fee_enabled,
            fee_rate=self.fee_rate,
            max_positions=self.max_positions,
            cooldown_ms=self.cooldown_ms,
            history_limit=self.history_limit,
        )

    def simulation_config(self) -> SimulationConfig:
        sim = self.simulation
        seed = sim.get("seed")
        return SimulationConfig(
            normal_interval_ms=int(sim.get("normal_interval_ms", 900)),
            event_interval_ms=int(sim.get("event_interval_ms", 3000)),
            normal_min_amount=float(sim.get("normal_min_amount", 5)),
            normal_max_amount=float(sim.get("normal_max_amount", 45)),
            event_min_percent=float(sim.get("event_min_percent", 50)),
            event_max_percent=float(sim.get("event_max_percent", 100)),
            trader_count=int(sim.get("trader_count", 8)),
            seed=int(seed) if seed is not None else None,
        )


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
