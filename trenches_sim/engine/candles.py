"""
Candle aggregation.

Every tick carries its own open/high/low/close/volume. For each timeframe the
tick either extends the open candle of its bucket or, on a new bucket, closes
the open candle into history and starts the next one.
"""

import math
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict


class Timeframe(str, Enum):
    ONE_SECOND = "1s"
    FIVE_SECONDS = "5s"
    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"


TIMEFRAMES: Tuple[Timeframe, ...] = tuple(Timeframe)

TIMEFRAME_SECONDS: Dict[Timeframe, int] = {
    Timeframe.ONE_SECOND: 1,
    Timeframe.FIVE_SECONDS: 5,
    Timeframe.ONE_MINUTE: 60,
    Timeframe.FIVE_MINUTES: 300,
}

MAX_CANDLES = 500  # closed candles kept per timeframe


class Candle(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: int  # bucket start, seconds
    open: float
    high: float
    low: float
    close: float
    volume: float


class CandleStore(BaseModel):
    model_config = ConfigDict(frozen=True)

    candles: Dict[Timeframe, Tuple[Candle, ...]]
    current: Dict[Timeframe, Optional[Candle]]


def create_candle_store() -> CandleStore:
    return CandleStore(
        candles={tf: () for tf in TIMEFRAMES},
        current={tf: None for tf in TIMEFRAMES},
    )


def parse_timeframe(value: Union[str, Timeframe]) -> Timeframe:
    try:
        return Timeframe(value)
    except ValueError:
        allowed = ", ".join(tf.value for tf in TIMEFRAMES)
        raise ValueError(f"timeframe must be one of: {allowed}") from None


def bucket_time(timestamp: float, timeframe: Timeframe) -> int:
    width = TIMEFRAME_SECONDS[timeframe]
    return int(math.floor(timestamp / width) * width)


def add_tick(
    store: CandleStore,
    price: float,
    high: float,
    low: float,
    open: float,
    volume: float,
    timestamp: float,
) -> CandleStore:
    """Fold one tick into every timeframe. Returns a new store."""
    candles = dict(store.candles)
    current = dict(store.current)

    for tf in TIMEFRAMES:
        candle_time = bucket_time(timestamp, tf)
        building = current[tf]

        if building is None or building.time != candle_time:
            if building is not None:
                history = candles[tf] + (building,)
                candles[tf] = history[-MAX_CANDLES:]
            current[tf] = Candle(
                time=candle_time,
                open=open,
                high=max(high, open, price),
                low=min(low, open, price),
                close=price,
                volume=volume,
            )
        else:
            current[tf] = building.model_copy(update={
                "high": max(building.high, high, price),
                "low": min(building.low, low, price),
                "close": price,
                "volume": building.volume + volume,
            })

    return store.model_copy(update={"candles": candles, "current": current})


def get_all_candles(store: CandleStore, timeframe: Timeframe) -> List[Candle]:
    """Closed history plus the in-progress candle, oldest first."""
    completed = list(store.candles[timeframe])
    building = store.current[timeframe]
    if building is not None:
        completed.append(building)
    return completed
