"""
Game session: the market plus one player's portfolio and quests.

All mutation happens on one asyncio loop. The tick task and request
handlers never await in the middle of a state change, so ticks and trades
are serialized without locks.
"""

import asyncio
from typing import List, Optional

from trenches_sim.config import Settings
from trenches_sim.engine.market import (
    DEFAULT_TOKEN_COUNT,
    MarketEvent,
    MarketSimulator,
    MarketState,
    create_market_state,
)
from trenches_sim.engine.tokens import Token
from trenches_sim.services.errors import TradeRejected
from trenches_sim.services.portfolio import Portfolio, Position, SellResult
from trenches_sim.services.quests import Quest, QuestBook
from trenches_sim.services.storage import PORTFOLIO_KEY, QUESTS_KEY, JsonStore
from trenches_sim.utils.logger import get_logger

logger = get_logger("session")

QUEST_TRACK_EVERY_TICKS = 5
_DOWN_50_PCT = -50.0


class GameSession:
    def __init__(
        self,
        simulator: Optional[MarketSimulator] = None,
        store: Optional[JsonStore] = None,
        initial_token_count: int = DEFAULT_TOKEN_COUNT,
        tick_interval_ms: int = 500,
        persist_every_ticks: int = 20,
    ):
        self.simulator = simulator if simulator is not None else MarketSimulator()
        self.store = store
        self.initial_token_count = initial_token_count
        self.tick_interval_ms = tick_interval_ms
        self.persist_every_ticks = persist_every_ticks
        self.state: MarketState = create_market_state()
        self.portfolio = Portfolio()
        self.quests = QuestBook()
        self.started = False

    @classmethod
    def from_settings(cls, cfg: Settings) -> "GameSession":
        return cls(
            simulator=MarketSimulator(seed=cfg.random_seed),
            store=JsonStore(cfg.data_dir),
            initial_token_count=cfg.initial_token_count,
            tick_interval_ms=cfg.tick_interval_ms,
            persist_every_ticks=cfg.persist_every_ticks,
        )

    # ── Lifecycle ──

    def start(self, now: Optional[float] = None) -> None:
        self.state = self.simulator.initialize_market(create_market_state(now), self.initial_token_count, now)
        self.load()
        self.started = True
        logger.info(
            "Session started: %d tokens, balance %.2f SOL",
            len(self.state.tokens), self.portfolio.balance,
        )

    def load(self) -> None:
        if self.store is None:
            return
        saved = self.store.load(PORTFOLIO_KEY)
        if saved is not None:
            self.portfolio = Portfolio.from_dict(saved)
        saved = self.store.load(QUESTS_KEY)
        if saved is not None:
            self.quests = QuestBook.from_dict(saved)

    def save(self) -> None:
        if self.store is None:
            return
        self.store.save(PORTFOLIO_KEY, self.portfolio.to_dict())
        self.store.save(QUESTS_KEY, self.quests.to_dict())

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick forever at the configured interval until stop_event is set."""
        interval = self.tick_interval_ms / 1000.0
        while not stop_event.is_set():
            try:
                self.step()
            except Exception:
                logger.exception("Tick %d failed", self.state.tick_count)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        self.save()

    # ── Tick ──

    def step(self, now: Optional[float] = None) -> List[MarketEvent]:
        self.state, events = self.simulator.tick(self.state, now)

        if self.portfolio.positions:
            prices = {tid: t.price for tid, t in self.state.tokens.items() if tid in self.portfolio.positions}
            self.portfolio.update_prices(prices)
            if self.state.tick_count % QUEST_TRACK_EVERY_TICKS == 0:
                self._track_holdings()

        self._complete_quests()
        if self.state.tick_count % self.persist_every_ticks == 0:
            self.save()
        return events

    def _track_holdings(self) -> None:
        self.quests.track_position_count(len(self.portfolio.positions))
        loss_count = 0
        for position in self.portfolio.positions.values():
            token = self.state.tokens.get(position.token_id)
            if token is None or position.avg_buy_price <= 0:
                continue
            multiple = token.price / position.avg_buy_price
            pnl_percent = (multiple - 1.0) * 100
            if pnl_percent <= _DOWN_50_PCT:
                self.quests.track_holding_down_50()
            if pnl_percent < 0:
                loss_count += 1
            if multiple > 1:
                self.quests.track_profit(multiple)
        if loss_count > 0:
            self.quests.track_tokens_at_loss(loss_count)

    def _complete_quests(self) -> List[Quest]:
        completed = self.quests.check_quests()
        for quest in completed:
            if quest.reward > 0:
                self.portfolio.credit(quest.reward)
            logger.info("Quest completed: %s (+%s SOL)", quest.title, quest.reward)
        if completed:
            self.save()
        return completed

    # ── Player actions ──

    def _token(self, token_id: str) -> Token:
        token = self.state.tokens.get(token_id)
        if token is None:
            raise TradeRejected(f"Unknown token {token_id}", code="UNKNOWN_TOKEN")
        return token

    def claim(self, now: Optional[float] = None) -> float:
        balance = self.portfolio.claim(now)
        self.save()
        return balance

    def buy(self, token_id: str, amount_sol: float, now: Optional[float] = None) -> Position:
        token = self._token(token_id)
        position = self.portfolio.buy(
            token.id, token.name, token.ticker, token.avatar, amount_sol, token.price, now,
        )
        self.state = self.simulator.apply_trade(self.state, token.id, amount_sol, True)
        self.quests.track_trade("buy", now=now)
        self._complete_quests()
        self.save()
        logger.info("BUY %.4f SOL of %s @ $%.6f", amount_sol, token.ticker, token.price)
        return position

    def sell(self, token_id: str, percent: float, now: Optional[float] = None) -> SellResult:
        token = self._token(token_id)
        position = self.portfolio.positions.get(token_id)
        if position is None:
            raise TradeRejected(f"No open position in {token.ticker}", code="NO_POSITION")

        result = self.portfolio.sell(token.id, position.amount * (percent / 100.0), token.price, now)
        self.state = self.simulator.apply_trade(self.state, token.id, result.sol_received, False)
        self.quests.track_trade("sell", result.pnl_percent, now=now)
        self.quests.track_sol_earned(result.sol_received)
        self._complete_quests()
        self.save()
        logger.info(
            "SELL %.0f%% of %s @ $%.6f -> %.4f SOL (pnl %+.4f)",
            percent, token.ticker, token.price, result.sol_received, result.pnl_sol,
        )
        return result
