"""Simulation controller state."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

SimulationStatus = Literal["idle", "running"]


class SimulationState(BaseModel):
    status: SimulationStatus = "idle"
    interval_ms: int = 900
    controller_id: str | None = None
    last_tick_at: int | None = None
