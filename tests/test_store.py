"""Authoritative DuckDB store: seeding, transactional actions and pushes."""

import asyncio
import random
import tempfile
from pathlib import Path

import pytest

from predvenue.storage import DuckDBStore, create_initial_markets
from predvenue.storage.db import get_connection, init_schema
from predvenue.sync.events import (
    BalanceUpdated,
    HistoryInserted,
    LiquidityUpdated,
    PoolUpdated,
    PositionsChanged,
)
from predvenue.sync.protocol import StoreError
from predvenue.simulation.traders import TraderPool


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def store(temp_db):
    s = DuckDBStore(temp_db, clock=lambda: 1_000_000, rng=random.Random(3))
    s.seed(now_ms=1_000_000, rng=random.Random(1))
    s.ensure_account("u1", 1000.0)
    return s


def _capture(store):
    events = []
    store.subscribe(events.append)
    return events


def _bet_payload(amount=50.0, **extra):
    payload = {
        "market_id": "match-1",
        "outcome_id": "home",
        "amount": amount,
        "user_id": "u1",
        "position_id": "pos-1",
        "fee_rate": 0.02,
    }
    payload.update(extra)
    return payload


def test_initial_markets_are_deterministic_for_a_seed():
    a = create_initial_markets(now_ms=0, rng=random.Random(7))
    b = create_initial_markets(now_ms=0, rng=random.Random(7))
    assert [m.model_dump() for m in a] == [m.model_dump() for m in b]
    assert [m.liquidity for m in a] == [3000.0, 3250.0, 3500.0]
    for m in a:
        assert len(m.history) == 1
        assert sum(m.history[0].probabilities.values()) == pytest.approx(1.0)


def test_seed_only_when_empty(store):
    assert store.seed() == 0
    markets = store.load_markets()
    assert [m.id for m in markets] == ["match-1", "match-2", "match-3"]
    assert all(len(m.history) == 1 for m in markets)


def test_place_bet_books_everything(store):
    events = _capture(store)
    before = {m.id: m for m in store.load_markets()}["match-1"]
    result = asyncio.run(store.execute("place_bet", _bet_payload()))
    assert result.ok
    assert result.balance == 950.0
    assert store.get_balance("u1") == 950.0

    after = {m.id: m for m in store.load_markets()}["match-1"]
    assert after.outcome("home").pool > before.outcome("home").pool
    assert after.liquidity == pytest.approx(before.liquidity + 49.0)
    assert len(after.history) == 2

    [pos] = store.load_positions("u1")
    assert pos.id == "pos-1"
    assert pos.amount_spent == 50.0
    assert pos.synced is True

    [trade] = store.list_trades(user_id="u1")
    assert trade["side"] == "buy"
    assert trade["fee"] == pytest.approx(1.0)

    kinds = [type(e) for e in events]
    assert kinds == [PoolUpdated, HistoryInserted, LiquidityUpdated, PositionsChanged, BalanceUpdated]
    seqs = [e.seq for e in events]
    assert seqs == sorted(seqs) and len(set(seqs)) == len(seqs)


def test_second_bet_merges_position(store):
    asyncio.run(store.execute("place_bet", _bet_payload(amount=20)))
    asyncio.run(store.execute("place_bet", _bet_payload(amount=30, position_id="pos-2")))
    [pos] = store.load_positions("u1")
    assert pos.id == "pos-1"
    assert pos.amount_spent == 50.0
    assert pos.avg_price == pytest.approx(50.0 / pos.shares)


def test_insufficient_balance_writes_nothing(store):
    events = _capture(store)
    store.ensure_account("poor", 10.0)
    before = [m.model_dump() for m in store.load_markets()]
    with pytest.raises(StoreError, match="Insufficient balance"):
        asyncio.run(store.execute("place_bet", _bet_payload(user_id="poor")))
    assert [m.model_dump() for m in store.load_markets()] == before
    assert store.load_positions("poor") == []
    assert store.get_balance("poor") == 10.0
    assert events == []


def test_missing_fields_and_unknown_market(store):
    with pytest.raises(StoreError, match="Missing fields"):
        asyncio.run(store.execute("place_bet", {"market_id": "match-1"}))
    with pytest.raises(StoreError, match="Market not found"):
        asyncio.run(store.execute("place_bet", _bet_payload(market_id="nope")))


def test_amount_clamped_to_stake_fraction(store):
    market = {m.id: m for m in store.load_markets()}["match-1"]
    limit = market.total_pool() * 0.1
    store.add_balance("u1", 10_000.0)
    asyncio.run(store.execute("place_bet", _bet_payload(amount=10_000.0)))
    [pos] = store.load_positions("u1")
    assert pos.amount_spent == pytest.approx(limit)


def test_close_position_pays_out(store):
    asyncio.run(store.execute("place_bet", _bet_payload()))
    liquidity_before = {m.id: m for m in store.load_markets()}["match-1"].liquidity
    events = _capture(store)
    result = asyncio.run(
        store.execute(
            "close_position",
            {"position_id": "pos-1", "market_id": "match-1", "outcome_id": "home", "user_id": "u1", "fee_rate": 0.02},
        )
    )
    assert result.ok
    assert 0 < result.payout < 50.0
    assert result.balance == pytest.approx(950.0 + result.payout)
    assert store.load_positions("u1") == []
    after = {m.id: m for m in store.load_markets()}["match-1"]
    assert after.liquidity == pytest.approx(liquidity_before - result.payout)
    positions_push = [e for e in events if isinstance(e, PositionsChanged)]
    assert positions_push[0].positions == []
    assert [t["side"] for t in store.list_trades(user_id="u1")] == ["sell", "buy"]


def test_close_unknown_position(store):
    with pytest.raises(StoreError, match="Position not found"):
        asyncio.run(
            store.execute(
                "close_position",
                {"position_id": "ghost", "market_id": "match-1", "outcome_id": "home", "user_id": "u1"},
            )
        )


def test_simulation_tick_books_bot(temp_db):
    pool = TraderPool.default(count=3, rng=random.Random(0))
    store = DuckDBStore(temp_db, trader_pool=pool, rng=random.Random(2))
    store.seed(rng=random.Random(1))
    result = asyncio.run(
        store.execute(
            "simulation_tick",
            {"market_id": "match-2", "outcome_id": "draw", "amount": 25.0, "trader_id": "bot-02"},
        )
    )
    assert result.ok
    [pos] = store.load_positions("bot-02")
    assert pos.outcome_id == "draw"
    assert store.get_balance("bot-02") == 0.0
    market = {m.id: m for m in store.load_markets()}["match-2"]
    assert market.liquidity == 10_000.0

    # without a trader id a pool member is picked
    asyncio.run(store.execute("simulation_tick", {"market_id": "match-2", "outcome_id": "away", "amount": 10.0}))
    bots = {t["user_id"] for t in store.list_trades(market_id="match-2")}
    assert bots <= set(pool.ids())


def test_simulation_sell_reduces_bot_holding(store):
    tick = {"market_id": "match-3", "outcome_id": "home", "amount": 40.0, "trader_id": "bot-x"}
    asyncio.run(store.execute("simulation_tick", tick))
    [held] = store.load_positions("bot-x")
    asyncio.run(store.execute("simulation_tick", {**tick, "amount": 10.0, "is_sell": True}))
    [after] = store.load_positions("bot-x")
    assert after.shares < held.shares


def test_add_balance_pushes(store):
    events = _capture(store)
    assert store.add_balance("u1", 250.0) == 1250.0
    [event] = events
    assert isinstance(event, BalanceUpdated)
    assert event.balance == 1250.0


def test_unsubscribe_stops_pushes(store):
    events = []
    unsubscribe = store.subscribe(events.append)
    unsubscribe()
    store.add_balance("u1", 1.0)
    assert events == []


def test_schema_creates_on_fresh_file_and_reinit_is_harmless(temp_db):
    init_schema(temp_db)
    temp_db.execute(
        "INSERT INTO positions (id, user_id, market_id, outcome_id, shares, avg_price, amount_spent, created_at) "
        "VALUES ('p1', 'u1', 'match-1', 'home', 10, 0.4, 4, '2026-01-01T00:00:00+00:00')"
    )
    tables = {r[0] for r in temp_db.execute("SELECT table_name FROM information_schema.tables").fetchall()}
    assert {"markets", "outcomes", "positions", "history", "users", "trades"} <= tables
    assert temp_db.execute("SELECT COUNT(*) FROM positions").fetchone()[0] == 1


def test_unexpected_handler_error_rolls_back_and_store_recovers(store):
    events = _capture(store)
    real = store._handlers["place_bet"]

    def broken(payload, pushed):
        real(payload, pushed)
        raise ValueError("bug after writes")

    store._handlers["place_bet"] = broken
    with pytest.raises(StoreError, match="Server error"):
        asyncio.run(store.execute("place_bet", _bet_payload()))
    assert store.load_positions("u1") == []
    assert store.get_balance("u1") == 1000.0
    assert events == []

    store._handlers["place_bet"] = real
    result = asyncio.run(store.execute("place_bet", _bet_payload()))
    assert result.ok
    assert store.get_balance("u1") == 950.0
