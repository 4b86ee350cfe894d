"""Reconciliation: confirms run after the transition, failures roll back, stale pushes drop."""

import asyncio

from predvenue.config.settings import TradingConfig
from predvenue.models.market import Market, MarketSnapshot, Outcome
from predvenue.models.position import Account
from predvenue.sync.events import BalanceUpdated, HistoryInserted, PoolUpdated
from predvenue.sync.protocol import ConfirmResult, StoreError
from predvenue.sync.reconciler import Reconciler
from predvenue.trading.actions import ClosePosition, PlaceBet, SimulationTick
from predvenue.trading.coordinator import TradeCoordinator

CONFIG = TradingConfig(cooldown_ms=0)


class FakeStore:
    """Records calls; answers from a queue of results or exceptions."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.listeners = []

    async def execute(self, action, payload):
        self.calls.append((action, dict(payload)))
        response = self.responses.pop(0) if self.responses else ConfirmResult(ok=True)
        if isinstance(response, Exception):
            raise response
        return response

    def subscribe(self, callback):
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)

    def push(self, event):
        for callback in list(self.listeners):
            callback(event)


def _reconciler(store):
    coord = TradeCoordinator()
    coord.load(
        [
            Market(
                id="m1",
                liquidity=5000.0,
                outcomes=[Outcome(id="home", pool=1000), Outcome(id="draw", pool=900), Outcome(id="away", pool=800)],
            )
        ],
        [],
        Account(id="u1", balance=1000.0, authenticated=True),
    )
    rec = Reconciler(coord, store, CONFIG)
    rec.start()
    return rec


def _bet(amount=50.0):
    return PlaceBet(market_id="m1", outcome_id="home", amount=amount, actor="u1")


def test_confirm_is_not_run_inside_dispatch():
    store = FakeStore(ConfirmResult(ok=True, balance=950.0))
    rec = _reconciler(store)
    result = rec.dispatch(_bet())
    assert result.accepted
    assert store.calls == []
    assert rec.in_flight == 1

    asyncio.run(rec.drain())
    assert [c[0] for c in store.calls] == ["place_bet"]
    assert rec.in_flight == 0
    assert rec.confirmed == 1
    state = rec.coordinator.state
    assert state.positions[0].synced is True
    assert state.account.balance == 950.0


def test_confirm_scheduled_as_task_when_loop_running():
    store = FakeStore(ConfirmResult(ok=True, balance=950.0))
    rec = _reconciler(store)

    async def scenario():
        rec.dispatch(_bet())
        assert store.calls == []
        await rec.drain()

    asyncio.run(scenario())
    assert len(store.calls) == 1
    assert rec.coordinator.state.positions[0].synced is True


def test_store_error_rolls_back():
    store = FakeStore(StoreError("Insufficient balance"))
    rec = _reconciler(store)
    before = rec.coordinator.state.market("m1").model_dump()
    rec.dispatch(_bet())
    asyncio.run(rec.drain())
    state = rec.coordinator.state
    assert state.positions == []
    assert state.market("m1").model_dump() == before
    assert state.last_message == "Write to the store failed, bet reverted."
    assert rec.failed == 1


def test_rejected_result_rolls_back():
    store = FakeStore(ConfirmResult(ok=False, error="nope"))
    rec = _reconciler(store)
    rec.dispatch(_bet())
    asyncio.run(rec.drain())
    assert rec.coordinator.state.positions == []
    assert rec.failed == 1


def test_rejected_action_schedules_nothing():
    store = FakeStore()
    rec = _reconciler(store)
    assert not rec.dispatch(_bet(amount=-5)).accepted
    assert rec.in_flight == 0


def test_simulation_tick_confirm_carries_trader():
    store = FakeStore()
    rec = _reconciler(store)
    rec.dispatch(SimulationTick(market_id="m1", outcome_id="away", amount=20.0, trader_id="bot-03"))
    asyncio.run(rec.drain())
    [(kind, payload)] = store.calls
    assert kind == "simulation_tick"
    assert payload["trader_id"] == "bot-03"


def test_stale_push_dropped_per_field():
    rec = _reconciler(FakeStore())
    store = rec.store
    market = rec.coordinator.state.market("m1")

    store.push(PoolUpdated(seq=5, market_id="m1", outcome_id="home", pool=1500.0))
    store.push(PoolUpdated(seq=3, market_id="m1", outcome_id="home", pool=1100.0))
    assert market.outcome("home").pool == 1500.0
    assert rec.stale_pushes == 1

    # a lower seq on a different field still applies
    store.push(PoolUpdated(seq=4, market_id="m1", outcome_id="draw", pool=950.0))
    assert market.outcome("draw").pool == 950.0

    store.push(BalanceUpdated(seq=7, user_id="u1", balance=10.0))
    store.push(BalanceUpdated(seq=7, user_id="u1", balance=99.0))
    assert rec.coordinator.state.account.balance == 10.0


def test_history_pushes_are_not_seq_filtered():
    rec = _reconciler(FakeStore())
    market = rec.coordinator.state.market("m1")
    probs = {"home": 0.4, "draw": 0.3, "away": 0.3}
    rec.store.push(HistoryInserted(seq=9, market_id="m1", snapshot=MarketSnapshot(timestamp=10_000, probabilities=probs)))
    rec.store.push(HistoryInserted(seq=2, market_id="m1", snapshot=MarketSnapshot(timestamp=1_000, probabilities=probs)))
    assert len(market.history) == 2
    assert rec.stale_pushes == 0


def test_stop_unsubscribes():
    rec = _reconciler(FakeStore())
    rec.stop()
    rec.store.push(BalanceUpdated(seq=1, user_id="u1", balance=1.0))
    assert rec.coordinator.state.account.balance == 1000.0


def test_confirm_without_balance_uses_local_delta():
    rec = _reconciler(FakeStore(ConfirmResult(ok=True), ConfirmResult(ok=True)))
    rec.dispatch(_bet())
    asyncio.run(rec.drain())
    assert rec.coordinator.state.account.balance == 950.0

    pos_id = rec.coordinator.state.positions[0].id
    assert rec.dispatch(ClosePosition(position_id=pos_id)).accepted
    asyncio.run(rec.drain())
    assert rec.coordinator.state.positions == []
    assert rec.coordinator.state.account.balance > 950.0


def test_outcome_is_kept_per_action():
    # bet confirms, the simulation tick confirm after it is rejected
    store = FakeStore(ConfirmResult(ok=True, balance=950.0), StoreError("tick rejected"))
    rec = _reconciler(store)
    bet = rec.dispatch(_bet())
    tick = rec.dispatch(SimulationTick(market_id="m1", outcome_id="draw", amount=10.0))
    asyncio.run(rec.drain())
    assert rec.failed == 1

    outcome = rec.pop_outcome(bet.action_id)
    assert outcome.accepted
    assert rec.pop_outcome(bet.action_id) is None
    # simulation confirms are not kept
    assert rec.pop_outcome(tick.action_id) is None
    assert rec.pop_outcome(None) is None


def test_failed_close_reports_close_failed():
    store = FakeStore(ConfirmResult(ok=True, balance=950.0), StoreError("Position not found"))
    rec = _reconciler(store)
    rec.dispatch(_bet())
    asyncio.run(rec.drain())
    pos_id = rec.coordinator.state.positions[0].id

    close = rec.dispatch(ClosePosition(position_id=pos_id))
    asyncio.run(rec.drain())
    outcome = rec.pop_outcome(close.action_id)
    assert outcome.code == "CLOSE_FAILED"
    assert outcome.message == "Closing the position failed at the store."
    assert rec.coordinator.state.positions == []
