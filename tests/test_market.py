"""
Market Simulator Tests
======================
Initialization, per-tick advancement, user trades and end-to-end lifecycle.
Run with: python3 -m pytest tests/test_market.py -v
"""

import math
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from trenches_sim.engine.candles import TIMEFRAMES, Timeframe
from trenches_sim.engine.market import (
    MAX_EVENTS,
    EventType,
    MarketEvent,
    MarketSimulator,
    create_market_state,
    get_candles,
    get_token,
    list_tokens,
)
from trenches_sim.engine.price_engine import Phase
from trenches_sim.engine.tokens import TokenStatus


# ── Helpers ──────────────────────────────────────────────────────────────────

def market_with(sim, *tokens, now=0.0):
    state = create_market_state(now)
    return state.model_copy(update={"tokens": {t.id: t for t in tokens}})


def poised_to_migrate(sim, now=0.0):
    """A NEW token at $0.95 with enough buy pressure queued to cross $1 next tick."""
    token = sim.factory.create_token(now)
    ps = token.price_state.model_copy(update={
        "price": 0.95, "phase": Phase.CRAB, "phase_duration": 10_000, "pending_impact": 0.2,
    })
    return token.model_copy(update={"price_state": ps})


def assert_candles_ordered(candles, label):
    for c in candles:
        assert c.low <= min(c.open, c.close) <= max(c.open, c.close) <= c.high, (
            f"{label} @ {c.time}: o={c.open} h={c.high} l={c.low} c={c.close}"
        )


# ── Initialization ───────────────────────────────────────────────────────────

def test_initialize_market_composition():
    sim = MarketSimulator(seed=1)
    state = sim.initialize_market(create_market_state(1_000_000.0), 35, now=1_000_000.0)

    assert len(state.tokens) == 35
    assert len(list_tokens(state, TokenStatus.SOON)) == 8
    assert len(list_tokens(state, TokenStatus.MIGRATED)) == 4
    assert len(list_tokens(state, TokenStatus.NEW)) == 23

    assert len(state.events) == 35
    assert all(e.type == EventType.NEW_TOKEN for e in state.events)
    assert state.tick_count == 0


def test_backfilled_tokens_have_history():
    now = 1_000_000.0
    sim = MarketSimulator(seed=2)
    state = sim.initialize_market(create_market_state(now), 35, now=now)

    for token in list_tokens(state, TokenStatus.MIGRATED):
        assert now - 300 <= token.migrated_at <= now
        assert 500 <= token.liquidity < 2500
        assert len(get_candles(state, token.id, Timeframe.FIVE_SECONDS)) > 1
    for token in list_tokens(state, TokenStatus.SOON):
        assert 200 <= token.liquidity < 700
        assert token.migrated_at is None
    for token in state.tokens.values():
        assert len(token.price_history) <= 60
        assert token.market_cap == token.price * token.total_supply
        for tf in TIMEFRAMES:
            assert_candles_ordered(get_candles(state, token.id, tf), f"{token.ticker}/{tf.value}")


# ── Tick ─────────────────────────────────────────────────────────────────────

def test_tick_returns_new_state_and_leaves_input_alone():
    sim = MarketSimulator(seed=3)
    state = sim.initialize_market(create_market_state(0.0), 10, now=0.0)
    prices_before = {tid: t.price for tid, t in state.tokens.items()}

    nxt, _ = sim.tick(state, now=1.0)

    assert nxt is not state
    assert nxt.tick_count == state.tick_count + 1
    assert {tid: t.price for tid, t in state.tokens.items()} == prices_before
    for tid, token in nxt.tokens.items():
        if tid not in state.tokens:
            continue
        old = state.tokens[tid]
        assert token.price_history[-1] == token.price
        assert len(token.price_history) == min(len(old.price_history) + 1, 60)
        assert math.isclose(token.market_cap, token.price * token.total_supply)
        assert get_candles(nxt, tid, Timeframe.ONE_SECOND)[-1].close == token.price


def test_market_candles_stay_ordered_while_running():
    sim = MarketSimulator(seed=4)
    state = sim.initialize_market(create_market_state(0.0), 15, now=0.0)
    for t in range(60):
        state, _ = sim.tick(state, now=float(t))
    for token in state.tokens.values():
        assert token.price > 0
        for tf in TIMEFRAMES:
            assert_candles_ordered(get_candles(state, token.id, tf), f"{token.ticker}/{tf.value}")


def test_no_spawn_at_fifty_tokens():
    sim = MarketSimulator(seed=5)
    state = market_with(sim, *[sim.factory.create_token(0.0) for _ in range(50)])
    for t in range(50):
        state, events = sim.tick(state, now=float(t))
        assert len(state.tokens) == 50
        assert not any(e.type == EventType.NEW_TOKEN for e in events)


def test_event_log_capped():
    sim = MarketSimulator(seed=6)
    token = poised_to_migrate(sim)
    filler = tuple(
        MarketEvent(type=EventType.NEW_TOKEN, token_id=f"x{i}", token_name="x", token_ticker="X", timestamp=0.0)
        for i in range(MAX_EVENTS)
    )
    state = market_with(sim, token).model_copy(update={"events": filler})

    state, events = sim.tick(state, now=1.0)
    assert len(state.events) == MAX_EVENTS
    assert state.events[-len(events):] == tuple(events)
    assert any(e.type == EventType.MIGRATION for e in state.events)


# ── Lifecycle ────────────────────────────────────────────────────────────────

def test_migration_event_fires_once():
    sim = MarketSimulator(seed=7)
    token = poised_to_migrate(sim)
    state = market_with(sim, token)

    migrations = []
    for t in range(1, 6):
        state, events = sim.tick(state, now=float(t))
        migrations += [e for e in events if e.type == EventType.MIGRATION]

    migrated = get_token(state, token.id)
    assert migrated.status == TokenStatus.MIGRATED
    assert migrated.migrated_at == 1.0
    assert len(migrations) == 1
    assert migrations[0].token_id == token.id
    assert migrations[0].data["price"] >= 1.0


# ── User trades ──────────────────────────────────────────────────────────────

def test_buy_queues_impact_and_adds_liquidity():
    sim = MarketSimulator(seed=8)
    token = sim.factory.create_token(0.0).model_copy(update={"liquidity": 100.0})
    state = market_with(sim, token)

    after = sim.apply_trade(state, token.id, 10.0, True)
    traded = after.tokens[token.id]
    assert math.isclose(traded.price_state.pending_impact, 0.002, rel_tol=1e-12)
    assert traded.liquidity == 105.0
    assert traded.price == token.price
    # input untouched
    assert state.tokens[token.id].liquidity == 100.0


def test_sell_drains_liquidity_to_floor():
    sim = MarketSimulator(seed=9)
    token = sim.factory.create_token(0.0).model_copy(update={"liquidity": 12.0})
    state = market_with(sim, token)

    after = sim.apply_trade(state, token.id, 100.0, False)
    assert after.tokens[token.id].liquidity == 10.0
    assert after.tokens[token.id].price_state.pending_impact < 0


def test_trade_on_unknown_token_is_a_no_op():
    sim = MarketSimulator(seed=10)
    state = market_with(sim, sim.factory.create_token(0.0))
    assert sim.apply_trade(state, "nope", 5.0, True) is state


def test_trade_moves_next_price_by_exactly_the_impact():
    a = MarketSimulator(seed=11)
    b = MarketSimulator(seed=11)
    state_a = a.initialize_market(create_market_state(0.0), 5, now=0.0)
    state_b = b.initialize_market(create_market_state(0.0), 5, now=0.0)
    assert list(state_a.tokens) == list(state_b.tokens)

    token_id = next(iter(state_a.tokens))
    liquidity = state_a.tokens[token_id].liquidity
    state_b = b.apply_trade(state_b, token_id, 10.0, True)

    state_a, _ = a.tick(state_a, now=1.0)
    state_b, _ = b.tick(state_b, now=1.0)
    impact = 10.0 / liquidity * 0.02
    ratio = state_b.tokens[token_id].price / state_a.tokens[token_id].price
    assert math.isclose(ratio, math.exp(impact), rel_tol=1e-9), f"ratio {ratio} vs {math.exp(impact)}"


# ── Queries / isolation ──────────────────────────────────────────────────────

def test_queries_on_unknown_token():
    state = create_market_state(0.0)
    assert get_token(state, "missing") is None
    assert get_candles(state, "missing", Timeframe.ONE_MINUTE) == []


def test_simulators_do_not_share_counters():
    a = MarketSimulator(seed=12)
    b = MarketSimulator(seed=13)
    a.factory.create_token(0.0)
    a.factory.create_token(0.0)
    assert b.factory.create_token(0.0).id.endswith("1")
    assert a.factory.create_token(0.0).id.endswith("3")
