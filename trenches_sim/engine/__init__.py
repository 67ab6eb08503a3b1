from trenches_sim.engine.candles import Candle, Timeframe, add_tick, create_candle_store, get_all_candles
from trenches_sim.engine.market import (
    EventType,
    MarketEvent,
    MarketSimulator,
    MarketState,
    create_market_state,
    get_candles,
)
from trenches_sim.engine.price_engine import Phase, PriceState, tick_price, with_trade_impact
from trenches_sim.engine.tokens import Token, TokenFactory, TokenStatus, evaluate_status, should_spawn_token

__all__ = [
    "Candle",
    "EventType",
    "MarketEvent",
    "MarketSimulator",
    "MarketState",
    "Phase",
    "PriceState",
    "Timeframe",
    "Token",
    "TokenFactory",
    "TokenStatus",
    "add_tick",
    "create_candle_store",
    "create_market_state",
    "evaluate_status",
    "get_all_candles",
    "get_candles",
    "should_spawn_token",
    "tick_price",
    "with_trade_impact",
]
