"""Wires coordinator, reconciler, store and simulation driver onto one asyncio loop."""

from __future__ import annotations

import asyncio
import random
from typing import Callable

import structlog

from predvenue.config.settings import Settings
from predvenue.history.recorder import HistoryRecorder
from predvenue.models.market import Market
from predvenue.models.position import Account, Position
from predvenue.simulation.driver import SimulationDriver
from predvenue.simulation.traders import TraderPool
from predvenue.storage.store import DuckDBStore
from predvenue.sync.reconciler import Reconciler
from predvenue.trading.actions import Action, ClosePosition, PlaceBet, SelectMarket, ToggleSimulation
from predvenue.trading.coordinator import DispatchResult, TradeCoordinator
from predvenue.trading.state import VenueState

log = structlog.get_logger(__name__)


class VenueManager:
    """One local user trading against the DuckDB store, with optional synthetic flow."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: DuckDBStore | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.settings = settings
        sim_config = settings.simulation_config()
        self.rng = rng or random.Random(sim_config.seed)
        self.traders = TraderPool.default(sim_config.trader_count, self.rng)
        self.store = store or DuckDBStore.open(
            settings.db_path,
            trader_pool=self.traders,
            latency_ms=settings.store_latency_ms,
            rng=self.rng,
        )
        self.coordinator = TradeCoordinator(recorder=HistoryRecorder(settings.history_limit), clock=clock)
        self.reconciler = Reconciler(self.coordinator, self.store, settings.trading_config)
        self.driver = SimulationDriver(
            self.reconciler.dispatch,
            self.markets,
            self.traders,
            settings.simulation_config,
            rng=self.rng,
            clock=clock,
        )
        self._sim_task: asyncio.Task[None] | None = None
        self._sim_stop: asyncio.Event | None = None

    @property
    def state(self) -> VenueState:
        return self.coordinator.state

    @property
    def user_id(self) -> str:
        return self.state.account.id or self.settings.user_id

    def hydrate(self) -> None:
        """Seed an empty store, then load markets, positions and balance into local state."""
        self.store.seed(rng=self.rng)
        user_id = self.settings.user_id
        balance = self.store.ensure_account(user_id, self.settings.starting_balance)
        markets = self.store.load_markets(self.settings.history_limit)
        positions = self.store.load_positions(user_id)
        self.coordinator.load(markets, positions, Account(id=user_id, balance=balance, authenticated=True))
        self.reconciler.start()
        log.info(
            "venue_hydrated",
            markets=len(markets),
            positions=len(positions),
            user_id=user_id,
            balance=balance,
        )

    # --- reads ---

    def markets(self) -> list[Market]:
        return list(self.state.markets.values())

    def market(self, market_id: str) -> Market | None:
        return self.state.market(market_id)

    def positions(self) -> list[Position]:
        return list(self.state.positions)

    # --- actions ---

    def dispatch(self, action: Action) -> DispatchResult:
        return self.reconciler.dispatch(action)

    def place_bet(self, market_id: str, outcome_id: str, amount: float) -> DispatchResult:
        return self.dispatch(
            PlaceBet(market_id=market_id, outcome_id=outcome_id, amount=amount, actor=self.user_id)
        )

    def close_position(self, position_id: str) -> DispatchResult:
        return self.dispatch(ClosePosition(position_id=position_id))

    def select_market(self, market_id: str) -> DispatchResult:
        return self.dispatch(SelectMarket(market_id=market_id))

    def top_up(self, amount: float) -> float:
        """Credit the local user in the store; the balance push updates local state."""
        return self.store.add_balance(self.user_id, amount)

    async def settle(self) -> None:
        """Wait until every outstanding confirm has been applied."""
        await self.reconciler.drain()

    # --- simulation ---

    @property
    def simulation_running(self) -> bool:
        return self._sim_task is not None and not self._sim_task.done()

    def start_simulation(self) -> bool:
        """Start the driver on the running loop. Returns False if it is already running."""
        if self.simulation_running:
            return False
        self.dispatch(
            ToggleSimulation(
                status="running",
                controller_id=self.user_id,
                interval_ms=self.settings.simulation_config().normal_interval_ms,
            )
        )
        self._sim_stop = asyncio.Event()
        self._sim_task = asyncio.get_running_loop().create_task(self.driver.run(self._sim_stop))
        return True

    async def stop_simulation(self) -> bool:
        if not self.simulation_running:
            return False
        self._sim_stop.set()
        await self._sim_task
        self._sim_task = None
        self._sim_stop = None
        self.dispatch(ToggleSimulation(status="idle", controller_id=self.user_id))
        return True

    async def run_simulation(self, duration_s: float) -> None:
        """Run synthetic flow for `duration_s` seconds, then settle all confirms."""
        self.start_simulation()
        try:
            await asyncio.sleep(duration_s)
        finally:
            await self.stop_simulation()
            await self.settle()

    async def close(self) -> None:
        await self.stop_simulation()
        await self.settle()
        self.reconciler.stop()
        self.store.close()
        log.info("venue_closed")
