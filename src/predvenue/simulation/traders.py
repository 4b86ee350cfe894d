"""Synthetic trader population."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class TraderStyle(str, Enum):
    AGGRESSIVE = "aggressive"
    CONSERVATIVE = "conservative"
    MOMENTUM = "momentum"
    CONTRARIAN = "contrarian"


@dataclass(frozen=True)
class Trader:
    id: str
    style: TraderStyle
    risk_tolerance: float  # 0..1, scales stake size


class TraderPool:
    """Fixed set of synthetic traders, constructed once and handed to the driver and the store."""

    def __init__(self, traders: list[Trader]) -> None:
        if not traders:
            raise ValueError("trader pool must not be empty")
        self.traders = list(traders)

    @classmethod
    def default(cls, count: int = 8, rng: random.Random | None = None) -> TraderPool:
        """`count` traders cycling through the styles, with random risk tolerance."""
        rng = rng or random.Random()
        styles = list(TraderStyle)
        traders = [
            Trader(
                id=f"bot-{i + 1:02d}",
                style=styles[i % len(styles)],
                risk_tolerance=round(rng.uniform(0.2, 1.0), 3),
            )
            for i in range(max(1, count))
        ]
        return cls(traders)

    def ids(self) -> list[str]:
        return [t.id for t in self.traders]

    def get(self, trader_id: str) -> Trader | None:
        for t in self.traders:
            if t.id == trader_id:
                return t
        return None

    def pick(self, rng: random.Random) -> Trader:
        return rng.choice(self.traders)

    def __len__(self) -> int:
        return len(self.traders)

    def __iter__(self) -> Iterator[Trader]:
        return iter(self.traders)
