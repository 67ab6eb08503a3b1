"""
Portfolio Tests
===============
Faucet, buys, sells, PnL accounting and persistence round trip.
Run with: python3 -m pytest tests/test_portfolio.py -v
"""

import math
import sys
import os

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from trenches_sim.services.errors import TradeRejected
from trenches_sim.services.portfolio import (
    CLAIM_AMOUNT,
    CLAIM_COOLDOWN_SECONDS,
    SOL_PRICE_USD,
    TRADE_HISTORY_LEN,
    Portfolio,
)


# ── Helpers ──────────────────────────────────────────────────────────────────

def funded(balance=10.0):
    p = Portfolio()
    p.credit(balance)
    return p


def buy(p, amount_sol, price, token_id="tok1", now=1.0):
    return p.buy(token_id, "Baby Pepe", "BABYP", "🐸", amount_sol, price, now)


# ── Faucet ───────────────────────────────────────────────────────────────────

def test_claim_and_cooldown():
    p = Portfolio()
    assert p.claim(now=10_000.0) == CLAIM_AMOUNT

    with pytest.raises(TradeRejected) as exc:
        p.claim(now=10_000.0 + CLAIM_COOLDOWN_SECONDS - 1)
    assert exc.value.code == "CLAIM_COOLDOWN"
    assert p.balance == CLAIM_AMOUNT

    assert p.claim(now=10_000.0 + CLAIM_COOLDOWN_SECONDS) == 2 * CLAIM_AMOUNT


# ── Buy ──────────────────────────────────────────────────────────────────────

def test_buy_opens_position():
    p = funded()
    position = buy(p, 5.0, 0.01)
    assert math.isclose(position.amount, 5.0 * SOL_PRICE_USD / 0.01)
    assert position.avg_buy_price == 0.01
    assert position.total_invested == 5.0
    assert p.balance == 5.0
    assert p.trade_history[-1].type == "buy"


def test_second_buy_averages_price():
    p = funded()
    buy(p, 2.0, 0.01)
    position = buy(p, 2.0, 0.03)
    expected_tokens = 2.0 * SOL_PRICE_USD / 0.01 + 2.0 * SOL_PRICE_USD / 0.03
    assert math.isclose(position.amount, expected_tokens)
    assert math.isclose(position.avg_buy_price, 4.0 * SOL_PRICE_USD / expected_tokens)
    assert position.total_invested == 4.0
    assert math.isclose(position.current_price, 0.03)


@pytest.mark.parametrize("amount,price,code", [
    (0.0, 0.01, "INVALID_AMOUNT"),
    (-1.0, 0.01, "INVALID_AMOUNT"),
    (11.0, 0.01, "INSUFFICIENT_BALANCE"),
    (1.0, 0.0, "INVALID_PRICE"),
])
def test_buy_rejections(amount, price, code):
    p = funded()
    with pytest.raises(TradeRejected) as exc:
        buy(p, amount, price)
    assert exc.value.code == code
    assert p.balance == 10.0
    assert not p.positions


# ── Sell ─────────────────────────────────────────────────────────────────────

def test_partial_sell_realizes_pnl():
    p = funded()
    position = buy(p, 5.0, 0.01)
    result = p.sell("tok1", position.amount / 2, 0.02, now=2.0)

    assert math.isclose(result.sol_received, 5.0)
    assert math.isclose(result.invested_sol, 2.5)
    assert math.isclose(result.pnl_sol, 2.5)
    assert math.isclose(result.pnl_percent, 100.0)
    assert math.isclose(p.balance, 10.0)
    assert math.isclose(p.realized_pnl, 2.5)

    remaining = p.positions["tok1"]
    assert math.isclose(remaining.total_invested, 2.5)
    assert math.isclose(remaining.amount, position.amount / 2)


def test_full_sell_closes_position():
    p = funded()
    position = buy(p, 4.0, 0.05)
    result = p.sell("tok1", position.amount, 0.025)
    assert "tok1" not in p.positions
    assert math.isclose(result.pnl_sol, -2.0)
    assert result.pnl_percent < 0
    assert p.trade_history[-1].pnl_sol == result.pnl_sol


def test_sell_rejections():
    p = funded()
    with pytest.raises(TradeRejected) as exc:
        p.sell("tok1", 1.0, 0.01)
    assert exc.value.code == "NO_POSITION"

    position = buy(p, 1.0, 0.01)
    with pytest.raises(TradeRejected) as exc:
        p.sell("tok1", position.amount * 2, 0.01)
    assert exc.value.code == "INSUFFICIENT_TOKENS"
    with pytest.raises(TradeRejected) as exc:
        p.sell("tok1", 0.0, 0.01)
    assert exc.value.code == "INVALID_AMOUNT"


# ── Revaluation / history ────────────────────────────────────────────────────

def test_update_prices_revalues_positions():
    p = funded()
    buy(p, 5.0, 0.01)
    assert p.update_prices({"tok1": 0.02, "other": 9.9}) is True
    pos = p.positions["tok1"]
    assert math.isclose(pos.current_value, 10.0)
    assert math.isclose(pos.pnl, 5.0)
    assert math.isclose(pos.pnl_percent, 100.0)
    assert math.isclose(p.unrealized_pnl, 5.0)
    # same price again is not a change
    assert p.update_prices({"tok1": 0.02}) is False


def test_trade_history_is_bounded():
    p = funded(1000.0)
    for i in range(TRADE_HISTORY_LEN + 20):
        buy(p, 1.0, 0.01, now=float(i))
    assert len(p.trade_history) == TRADE_HISTORY_LEN
    assert p.trade_history[0].timestamp == 20.0


def test_round_trip_through_dict():
    p = funded()
    buy(p, 3.0, 0.01)
    p.claim(now=50_000.0)
    restored = Portfolio.from_dict(p.to_dict())

    assert restored.balance == p.balance
    assert restored.last_claim_time == 50_000.0
    assert restored.positions == p.positions
    assert restored.trade_history == p.trade_history
