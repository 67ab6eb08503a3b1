"""
Token lifecycle.

    new      $0.01 – $0.10
    soon     $0.10 – $1.00   (can fall back to new)
    migrated $1.00+          (one-way)
"""

import time
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict

from trenches_sim.engine.candles import CandleStore, create_candle_store
from trenches_sim.engine.names import NameGenerator
from trenches_sim.engine.price_engine import PriceState, create_price_state


class TokenStatus(str, Enum):
    NEW = "new"
    SOON = "soon"
    MIGRATED = "migrated"


INITIAL_PRICE = 0.01
TOTAL_SUPPLY = 1_000_000.0
SOON_THRESHOLD = 0.10
MIGRATION_THRESHOLD = 1.00
PRICE_HISTORY_LEN = 60

# ── Spawn policy ──
_SPAWN_HARD_CAP = 50
_SPAWN_FLAT_BELOW = 30
_SPAWN_FLAT_PROB = 0.10
_SPAWN_TARGET = 40
_SPAWN_MIN_PROB = 0.005

_ID_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
_ID_LEN = 8


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    ticker: str
    avatar: str
    status: TokenStatus = TokenStatus.NEW
    price_state: PriceState
    candle_store: CandleStore
    created_at: float
    migrated_at: Optional[float] = None
    liquidity: float
    market_cap: float
    price_history: Tuple[float, ...]
    total_supply: float = TOTAL_SUPPLY

    @property
    def price(self) -> float:
        return self.price_state.price


class TokenFactory:
    """Creates tokens. Holds the id counter and name generator for one market."""

    def __init__(self, rng: Optional[np.random.Generator] = None, names: Optional[NameGenerator] = None):
        self._rng = rng if rng is not None else np.random.default_rng()
        self.names = names if names is not None else NameGenerator(self._rng)
        self._id_counter = 0

    def generate_id(self) -> str:
        self._id_counter += 1
        idx = self._rng.integers(0, len(_ID_CHARS), size=_ID_LEN)
        return "".join(_ID_CHARS[i] for i in idx) + str(self._id_counter)

    def create_token(self, now: Optional[float] = None) -> Token:
        now = time.time() if now is None else now
        identity = self.names.generate()
        return Token(
            id=self.generate_id(),
            name=identity.name,
            ticker=identity.ticker,
            avatar=identity.avatar,
            status=TokenStatus.NEW,
            price_state=create_price_state(INITIAL_PRICE, self._rng),
            candle_store=create_candle_store(),
            created_at=now,
            migrated_at=None,
            liquidity=50.0 + float(self._rng.random()) * 200.0,
            market_cap=INITIAL_PRICE * TOTAL_SUPPLY,
            price_history=(INITIAL_PRICE,),
            total_supply=TOTAL_SUPPLY,
        )


def status_for_price(price: float) -> TokenStatus:
    if price >= MIGRATION_THRESHOLD:
        return TokenStatus.MIGRATED
    if price >= SOON_THRESHOLD:
        return TokenStatus.SOON
    return TokenStatus.NEW


def evaluate_status(token: Token, now: Optional[float] = None) -> Token:
    """Re-evaluate status from the current price. Migration is stamped once and never undone."""
    if token.status == TokenStatus.MIGRATED:
        return token

    band = status_for_price(token.price_state.price)
    if band == TokenStatus.MIGRATED:
        stamp = time.time() if now is None else now
        return token.model_copy(update={"status": TokenStatus.MIGRATED, "migrated_at": stamp})
    if band != token.status:
        return token.model_copy(update={"status": band})
    return token


def spawn_probability(active_count: int) -> float:
    if active_count >= _SPAWN_HARD_CAP:
        return 0.0
    if active_count < _SPAWN_FLAT_BELOW:
        return _SPAWN_FLAT_PROB
    return max(_SPAWN_MIN_PROB, 0.05 * (1.0 - active_count / _SPAWN_TARGET))


def should_spawn_token(active_count: int, rng: np.random.Generator) -> bool:
    """Bias the population toward ~40 tokens; never above 50."""
    prob = spawn_probability(active_count)
    if prob <= 0.0:
        return False
    return bool(rng.random() < prob)
