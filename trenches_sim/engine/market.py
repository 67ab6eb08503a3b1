"""
Market simulator. Owns the token collection and advances it tick by tick.

Every operation takes a MarketState and returns a new one; the input is never
mutated, so callers can diff or swap snapshots atomically.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict

from trenches_sim.engine.candles import (
    Candle,
    CandleStore,
    Timeframe,
    add_tick,
    create_candle_store,
    get_all_candles,
)
from trenches_sim.engine.price_engine import (
    Phase,
    PriceState,
    create_price_state,
    tick_price,
    with_trade_impact,
)
from trenches_sim.engine.tokens import (
    INITIAL_PRICE,
    PRICE_HISTORY_LEN,
    Token,
    TokenFactory,
    TokenStatus,
    evaluate_status,
    should_spawn_token,
)
from trenches_sim.utils.logger import get_logger

logger = get_logger("market")

MAX_EVENTS = 100
DEFAULT_TOKEN_COUNT = 35

# ── Liquidity response to user trades ──
_BUY_LIQUIDITY_GAIN = 0.5
_SELL_LIQUIDITY_DRAIN = 0.3
_LIQUIDITY_FLOOR = 10.0

# ── Back-filled tokens at market start ──
# (count, target price range, tick range, liquidity range)
_BACKFILL_SOON = (8, (0.1, 0.8), (200, 400), (200.0, 700.0))
_BACKFILL_MIGRATED = (4, (1.0, 5.0), (400, 700), (500.0, 2500.0))
_BACKFILL_TICK_SPACING = 2          # seconds between synthetic candles
_BACKFILL_MIGRATED_WITHIN = 300.0   # migrated_at lands in the last 5 minutes


class EventType(str, Enum):
    NEW_TOKEN = "new_token"
    MIGRATION = "migration"


class MarketEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    token_id: str
    token_name: str
    token_ticker: str
    timestamp: float
    data: Optional[Dict[str, Any]] = None


class MarketState(BaseModel):
    model_config = ConfigDict(frozen=True)

    tokens: Dict[str, Token]
    events: Tuple[MarketEvent, ...] = ()
    tick_count: int = 0
    start_time: float


def create_market_state(now: Optional[float] = None) -> MarketState:
    return MarketState(tokens={}, events=(), tick_count=0, start_time=time.time() if now is None else now)


def _event(kind: EventType, token: Token, now: float, data: Optional[Dict[str, Any]] = None) -> MarketEvent:
    return MarketEvent(
        type=kind,
        token_id=token.id,
        token_name=token.name,
        token_ticker=token.ticker,
        timestamp=now,
        data=data,
    )


class MarketSimulator:
    """
    Drives one synthetic market.

    Holds the randomness source and the token factory (id counter, recent
    names), so independent simulators in one process never share state.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.factory = TokenFactory(self.rng)

    # ── Setup ──

    def _simulate_history(
        self, target_price: float, max_ticks: int, now: float,
    ) -> Tuple[PriceState, CandleStore, Tuple[float, ...]]:
        """Run the price engine offline from $0.01 toward target_price."""
        end = int(now)
        state = create_price_state(INITIAL_PRICE, self.rng)
        state = state.model_copy(update={
            "phase": Phase.ACCUMULATION,
            "phase_duration": 5 + int(self.rng.integers(0, 10)),
        })
        store = create_candle_store()
        history = [INITIAL_PRICE]

        for i in range(max_ticks):
            state = tick_price(state, self.rng)
            timestamp = end - (max_ticks - i) * _BACKFILL_TICK_SPACING
            store = add_tick(store, state.price, state.high, state.low, state.open, state.volume, timestamp)
            history.append(state.price)

            if state.price >= target_price * 0.8 and self.rng.random() < 0.15:
                break
            if state.price > target_price * 2:
                break

        # Nudge the last price part of the way to the target
        ratio = target_price / state.price
        if abs(ratio - 1.0) > 0.01:
            prev = history[-1]
            price = state.price * (0.7 + ratio * 0.3)
            high = max(prev, price) * 1.005
            low = min(prev, price) * 0.995
            state = state.model_copy(update={"price": price, "open": prev, "high": high, "low": low, "volume": 150.0})
            store = add_tick(store, price, high, low, prev, 150.0, end - 1)
            history.append(price)

        return state, store, tuple(history[-PRICE_HISTORY_LEN:])

    def _backfill(self, token: Token, plan: tuple, status: TokenStatus, now: float) -> Token:
        _, (target_lo, target_hi), (ticks_lo, ticks_hi), (liq_lo, liq_hi) = plan
        target = target_lo + float(self.rng.random()) * (target_hi - target_lo)
        max_ticks = int(self.rng.integers(ticks_lo, ticks_hi))
        price_state, store, history = self._simulate_history(target, max_ticks, now)

        update = {
            "price_state": price_state,
            "candle_store": store,
            "price_history": history,
            "status": status,
            "liquidity": liq_lo + float(self.rng.random()) * (liq_hi - liq_lo),
            "market_cap": price_state.price * token.total_supply,
        }
        if status == TokenStatus.MIGRATED:
            update["migrated_at"] = now - float(self.rng.random()) * _BACKFILL_MIGRATED_WITHIN
        return token.model_copy(update=update)

    def initialize_market(
        self, state: MarketState, count: int = DEFAULT_TOKEN_COUNT, now: Optional[float] = None,
    ) -> MarketState:
        """Seed `count` tokens; a handful start mid-run so the market looks alive."""
        now = time.time() if now is None else now
        tokens = dict(state.tokens)
        events = list(state.events)
        soon_count = _BACKFILL_SOON[0]
        migrated_count = _BACKFILL_MIGRATED[0]

        for i in range(count):
            token = self.factory.create_token(now)
            if i < soon_count:
                token = self._backfill(token, _BACKFILL_SOON, TokenStatus.SOON, now)
            elif i < soon_count + migrated_count:
                token = self._backfill(token, _BACKFILL_MIGRATED, TokenStatus.MIGRATED, now)

            tokens[token.id] = token
            events.append(_event(EventType.NEW_TOKEN, token, now))

        logger.info("Market initialized with %d tokens", count)
        return state.model_copy(update={"tokens": tokens, "events": tuple(events[-MAX_EVENTS:])})

    # ── Per-tick ──

    def _advance_token(self, token: Token, chart_time: int, now: float) -> Token:
        price_state = tick_price(token.price_state, self.rng)
        store = add_tick(
            token.candle_store,
            price_state.price,
            price_state.high,
            price_state.low,
            price_state.open,
            price_state.volume,
            chart_time,
        )
        updated = token.model_copy(update={
            "price_state": price_state,
            "candle_store": store,
            "market_cap": price_state.price * token.total_supply,
            "price_history": (token.price_history + (price_state.price,))[-PRICE_HISTORY_LEN:],
        })
        return evaluate_status(updated, now)

    def tick(self, state: MarketState, now: Optional[float] = None) -> Tuple[MarketState, List[MarketEvent]]:
        """Advance every token by one tick, then maybe spawn one token."""
        now = time.time() if now is None else now
        chart_time = int(now)
        tokens: Dict[str, Token] = {}
        new_events: List[MarketEvent] = []

        for token_id, token in state.tokens.items():
            updated = self._advance_token(token, chart_time, now)
            if updated.status == TokenStatus.MIGRATED and token.status != TokenStatus.MIGRATED:
                new_events.append(_event(EventType.MIGRATION, updated, now, {"price": updated.price}))
                logger.info("Migration: %s ($%s) at $%.4f", updated.name, updated.ticker, updated.price)
            tokens[token_id] = updated

        if should_spawn_token(len(tokens), self.rng):
            spawned = self.factory.create_token(now)
            tokens[spawned.id] = spawned
            new_events.append(_event(EventType.NEW_TOKEN, spawned, now))
            logger.debug("Spawned %s ($%s), %d tokens live", spawned.name, spawned.ticker, len(tokens))

        new_state = state.model_copy(update={
            "tokens": tokens,
            "events": (state.events + tuple(new_events))[-MAX_EVENTS:],
            "tick_count": state.tick_count + 1,
        })
        return new_state, new_events

    # ── User trades ──

    def apply_trade(self, state: MarketState, token_id: str, amount_sol: float, is_buy: bool) -> MarketState:
        """Queue price pressure from a user trade and adjust liquidity. Unknown ids are ignored."""
        token = state.tokens.get(token_id)
        if token is None:
            return state

        price_state = with_trade_impact(token.price_state, amount_sol, is_buy, token.liquidity)
        if is_buy:
            liquidity = token.liquidity + amount_sol * _BUY_LIQUIDITY_GAIN
        else:
            liquidity = max(_LIQUIDITY_FLOOR, token.liquidity - amount_sol * _SELL_LIQUIDITY_DRAIN)

        tokens = dict(state.tokens)
        tokens[token_id] = token.model_copy(update={"price_state": price_state, "liquidity": liquidity})
        return state.model_copy(update={"tokens": tokens})


# ── Queries ──

def get_token(state: MarketState, token_id: str) -> Optional[Token]:
    return state.tokens.get(token_id)


def list_tokens(state: MarketState, status: Optional[TokenStatus] = None) -> List[Token]:
    tokens = list(state.tokens.values())
    if status is not None:
        tokens = [t for t in tokens if t.status == status]
    return tokens


def get_candles(state: MarketState, token_id: str, timeframe: Timeframe) -> List[Candle]:
    token = state.tokens.get(token_id)
    if token is None:
        return []
    return get_all_candles(token.candle_store, timeframe)
