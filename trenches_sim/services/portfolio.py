"""
Simulated SOL portfolio: balance, open positions, realized/unrealized PnL.

Prices are USD per token; balances and PnL are in SOL at a fixed SOL/USD rate.
    buy:  tokens = amount_sol * SOL_PRICE_USD / price
    sell: sol    = tokens * price / SOL_PRICE_USD
"""

import time
from typing import Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel

from trenches_sim.services.errors import TradeRejected


SOL_PRICE_USD = 88.0
CLAIM_AMOUNT = 10.0
CLAIM_COOLDOWN_SECONDS = 3600.0
TRADE_HISTORY_LEN = 100
_DUST_TOKENS = 0.001          # a position below this is closed
_PRICE_EPSILON = 0.000001


class Position(BaseModel):
    token_id: str
    token_name: str
    token_ticker: str
    token_avatar: str
    amount: float             # tokens held
    avg_buy_price: float      # USD per token
    total_invested: float     # SOL
    current_price: float      # USD per token
    current_value: float      # SOL
    pnl: float                # SOL, unrealized
    pnl_percent: float


class TradeRecord(BaseModel):
    token_id: str
    token_ticker: str
    type: Literal["buy", "sell"]
    amount_sol: float
    amount_tokens: float
    price: float
    timestamp: float
    pnl_sol: Optional[float] = None


class SellResult(BaseModel):
    sol_received: float
    pnl_sol: float
    pnl_percent: float        # position PnL % at the moment of the sale
    invested_sol: float       # SOL basis of the part that was sold


def _revalue(position: Position, price: float) -> Position:
    current_value = position.amount * price / SOL_PRICE_USD
    pnl = current_value - position.total_invested
    pnl_percent = (pnl / position.total_invested) * 100 if position.total_invested > 0 else 0.0
    return position.model_copy(update={
        "current_price": price,
        "current_value": current_value,
        "pnl": pnl,
        "pnl_percent": pnl_percent,
    })


class Portfolio:
    def __init__(self, balance: float = 0.0):
        self.balance = balance
        self.positions: Dict[str, Position] = {}
        self.last_claim_time = 0.0
        self.realized_pnl = 0.0
        self.trade_history: List[TradeRecord] = []

    @property
    def unrealized_pnl(self) -> float:
        return sum(p.pnl for p in self.positions.values())

    def _record(self, record: TradeRecord) -> None:
        self.trade_history = (self.trade_history + [record])[-TRADE_HISTORY_LEN:]

    def can_claim(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_claim_time >= CLAIM_COOLDOWN_SECONDS

    def claim(self, now: Optional[float] = None) -> float:
        """Faucet: +10 SOL once per hour."""
        now = time.time() if now is None else now
        if not self.can_claim(now):
            wait = CLAIM_COOLDOWN_SECONDS - (now - self.last_claim_time)
            raise TradeRejected(f"Claim available in {int(wait)}s", code="CLAIM_COOLDOWN")
        self.balance += CLAIM_AMOUNT
        self.last_claim_time = now
        return self.balance

    def credit(self, amount_sol: float) -> None:
        self.balance += amount_sol

    def buy(
        self,
        token_id: str,
        token_name: str,
        token_ticker: str,
        token_avatar: str,
        amount_sol: float,
        price: float,
        now: Optional[float] = None,
    ) -> Position:
        if amount_sol <= 0:
            raise TradeRejected("Buy amount must be > 0", code="INVALID_AMOUNT")
        if amount_sol > self.balance:
            raise TradeRejected(
                f"Insufficient balance: {self.balance:.4f} SOL < {amount_sol:.4f} SOL",
                code="INSUFFICIENT_BALANCE",
            )
        if price <= 0:
            raise TradeRejected("Token price must be > 0", code="INVALID_PRICE")

        now = time.time() if now is None else now
        token_amount = amount_sol * SOL_PRICE_USD / price
        existing = self.positions.get(token_id)

        if existing is not None:
            total_tokens = existing.amount + token_amount
            total_invested = existing.total_invested + amount_sol
            position = _revalue(existing.model_copy(update={
                "amount": total_tokens,
                "total_invested": total_invested,
                # weighted average, USD per token
                "avg_buy_price": total_invested * SOL_PRICE_USD / total_tokens,
            }), price)
        else:
            position = Position(
                token_id=token_id,
                token_name=token_name,
                token_ticker=token_ticker,
                token_avatar=token_avatar,
                amount=token_amount,
                avg_buy_price=price,
                total_invested=amount_sol,
                current_price=price,
                current_value=amount_sol,
                pnl=0.0,
                pnl_percent=0.0,
            )

        self.positions[token_id] = position
        self.balance -= amount_sol
        self._record(TradeRecord(
            token_id=token_id,
            token_ticker=token_ticker,
            type="buy",
            amount_sol=amount_sol,
            amount_tokens=token_amount,
            price=price,
            timestamp=now,
        ))
        return position

    def sell(self, token_id: str, amount_tokens: float, price: float, now: Optional[float] = None) -> SellResult:
        position = self.positions.get(token_id)
        if position is None:
            raise TradeRejected(f"No open position in {token_id}", code="NO_POSITION")
        if amount_tokens <= 0:
            raise TradeRejected("Sell amount must be > 0", code="INVALID_AMOUNT")
        if amount_tokens > position.amount:
            raise TradeRejected(
                f"Cannot sell {amount_tokens:.4f} tokens, holding {position.amount:.4f}",
                code="INSUFFICIENT_TOKENS",
            )

        now = time.time() if now is None else now
        pnl_percent = _revalue(position, price).pnl_percent
        sol_received = amount_tokens * price / SOL_PRICE_USD
        sell_fraction = amount_tokens / position.amount
        invested_for_sold = position.total_invested * sell_fraction
        trade_pnl = sol_received - invested_for_sold

        remaining = position.amount - amount_tokens
        if remaining < _DUST_TOKENS:
            del self.positions[token_id]
        else:
            self.positions[token_id] = _revalue(position.model_copy(update={
                "amount": remaining,
                "total_invested": position.total_invested * (1.0 - sell_fraction),
            }), price)

        self.balance += sol_received
        self.realized_pnl += trade_pnl
        self._record(TradeRecord(
            token_id=token_id,
            token_ticker=position.token_ticker,
            type="sell",
            amount_sol=sol_received,
            amount_tokens=amount_tokens,
            price=price,
            timestamp=now,
            pnl_sol=trade_pnl,
        ))
        return SellResult(
            sol_received=sol_received,
            pnl_sol=trade_pnl,
            pnl_percent=pnl_percent,
            invested_sol=invested_for_sold,
        )

    def update_prices(self, prices: Mapping[str, float]) -> bool:
        """Revalue positions from the latest prices. Returns True if anything moved."""
        changed = False
        for token_id, position in list(self.positions.items()):
            price = prices.get(token_id)
            if price is None or abs(position.current_price - price) <= _PRICE_EPSILON:
                continue
            self.positions[token_id] = _revalue(position, price)
            changed = True
        return changed

    # ── Persistence ──

    def to_dict(self) -> dict:
        return {
            "balance": self.balance,
            "last_claim_time": self.last_claim_time,
            "realized_pnl": self.realized_pnl,
            "positions": [p.model_dump() for p in self.positions.values()],
            "trade_history": [t.model_dump() for t in self.trade_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Portfolio":
        portfolio = cls(balance=float(data.get("balance", 0.0)))
        portfolio.last_claim_time = float(data.get("last_claim_time", 0.0))
        portfolio.realized_pnl = float(data.get("realized_pnl", 0.0))
        for raw in data.get("positions", []):
            position = Position.model_validate(raw)
            portfolio.positions[position.token_id] = position
        portfolio.trade_history = [TradeRecord.model_validate(t) for t in data.get("trade_history", [])]
        return portfolio
