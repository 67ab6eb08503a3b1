"""
Side quests / achievements.

Trackers only ever raise their high-water marks; check_quests() turns the
current stats into progress and reports quests completed since the last check.
"""

import time
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


SPEED_WINDOW_SECONDS = 300.0


class QuestDefinition(BaseModel):
    id: str
    title: str
    description: str
    icon: str
    reward: float             # SOL credited on completion
    target: float
    category: Literal["trading", "holding", "degen"]


class Quest(QuestDefinition):
    completed: bool = False
    progress: float = 0.0     # 0..1
    current: float = 0.0


class QuestStats(BaseModel):
    total_trades: int = 0
    total_buys: int = 0
    total_sells: int = 0
    consecutive_losses: int = 0
    consecutive_wins: int = 0
    max_profit_multiple: float = 0.0
    tokens_held_simultaneously: int = 0
    tokens_at_loss: int = 0
    total_sol_earned: float = 0.0
    held_while_down_50: bool = False
    speed_trades: List[float] = Field(default_factory=list)


QUEST_DEFINITIONS: List[QuestDefinition] = [
    QuestDefinition(id="first_blood", title="First Blood", description="Make your first trade",
                    icon="🩸", reward=0, target=1, category="trading"),
    QuestDefinition(id="diamond_hands", title="Diamond Hands", description="Hold a position while it's down 50%+",
                    icon="💎", reward=2, target=1, category="holding"),
    QuestDefinition(id="paper_hands", title="Paper Hands", description="Sell at a loss 3 times in a row",
                    icon="🧻", reward=0, target=3, category="degen"),
    QuestDefinition(id="to_the_moon", title="To The Moon", description="Make 10x profit on a single position",
                    icon="🚀", reward=5, target=10, category="trading"),
    QuestDefinition(id="bag_holder", title="Bag Holder", description="Hold 3 tokens at a loss simultaneously",
                    icon="💰", reward=2, target=3, category="holding"),
    QuestDefinition(id="degen_lord", title="Degen Lord", description="Hold 10+ tokens simultaneously",
                    icon="👑", reward=5, target=10, category="degen"),
    QuestDefinition(id="speed_runner", title="Speed Runner", description="Make 20 trades in 5 minutes",
                    icon="⚡", reward=3, target=20, category="trading"),
    QuestDefinition(id="whale_alert", title="Whale Alert", description="Accumulate 500 SOL total earned",
                    icon="🐳", reward=10, target=500, category="holding"),
    QuestDefinition(id="portfolio_diversifier", title="Portfolio Diversifier",
                    description="Hold 5 different tokens at once",
                    icon="📊", reward=2, target=5, category="holding"),
    QuestDefinition(id="lucky_trader", title="Lucky Trader", description="Make a profitable trade 5 times in a row",
                    icon="🍀", reward=3, target=5, category="trading"),
]


def _current_value(quest_id: str, stats: QuestStats) -> float:
    if quest_id == "first_blood":
        return min(stats.total_trades, 1)
    if quest_id == "diamond_hands":
        return 1 if stats.held_while_down_50 else 0
    if quest_id == "paper_hands":
        return stats.consecutive_losses
    if quest_id == "to_the_moon":
        return stats.max_profit_multiple
    if quest_id == "bag_holder":
        return stats.tokens_at_loss
    if quest_id in ("degen_lord", "portfolio_diversifier"):
        return stats.tokens_held_simultaneously
    if quest_id == "speed_runner":
        return len(stats.speed_trades)
    if quest_id == "whale_alert":
        return stats.total_sol_earned
    if quest_id == "lucky_trader":
        return stats.consecutive_wins
    return 0


class QuestBook:
    def __init__(self):
        self.quests: List[Quest] = [Quest(**d.model_dump()) for d in QUEST_DEFINITIONS]
        self.stats = QuestStats()

    @property
    def completed_count(self) -> int:
        return sum(1 for q in self.quests if q.completed)

    # ── Trackers ──

    def track_trade(self, side: Literal["buy", "sell"], pnl_percent: Optional[float] = None,
                    now: Optional[float] = None) -> None:
        now = time.time() if now is None else now
        s = self.stats
        s.total_trades += 1
        if side == "buy":
            s.total_buys += 1
        else:
            s.total_sells += 1
            if pnl_percent is not None and pnl_percent < 0:
                s.consecutive_losses += 1
                s.consecutive_wins = 0
            elif pnl_percent is not None and pnl_percent > 0:
                s.consecutive_wins += 1
                s.consecutive_losses = 0
        s.speed_trades = [t for t in s.speed_trades if now - t < SPEED_WINDOW_SECONDS] + [now]

    def track_position_count(self, count: int) -> None:
        self.stats.tokens_held_simultaneously = max(self.stats.tokens_held_simultaneously, count)

    def track_profit(self, multiple: float) -> None:
        self.stats.max_profit_multiple = max(self.stats.max_profit_multiple, multiple)

    def track_sol_earned(self, amount: float) -> None:
        self.stats.total_sol_earned += amount

    def track_holding_down_50(self) -> None:
        self.stats.held_while_down_50 = True

    def track_tokens_at_loss(self, count: int) -> None:
        self.stats.tokens_at_loss = max(self.stats.tokens_at_loss, count)

    # ── Evaluation ──

    def check_quests(self) -> List[Quest]:
        """Refresh progress; return quests completed by this call."""
        newly_completed: List[Quest] = []
        updated: List[Quest] = []
        for quest in self.quests:
            if quest.completed:
                updated.append(quest)
                continue
            current = float(_current_value(quest.id, self.stats))
            progress = min(current / quest.target, 1.0)
            quest = quest.model_copy(update={"current": current, "progress": progress, "completed": progress >= 1.0})
            if quest.completed:
                newly_completed.append(quest)
            updated.append(quest)
        self.quests = updated
        return newly_completed

    # ── Persistence ──

    def to_dict(self) -> Dict:
        return {
            "quests": [q.model_dump() for q in self.quests],
            "stats": self.stats.model_dump(),
            "completed_count": self.completed_count,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "QuestBook":
        book = cls()
        saved = {q["id"]: q for q in data.get("quests", []) if "id" in q}
        # Definitions come from code; only progress is restored
        book.quests = [
            q.model_copy(update={
                "completed": bool(saved[q.id].get("completed", False)),
                "progress": float(saved[q.id].get("progress", 0.0)),
                "current": float(saved[q.id].get("current", 0.0)),
            }) if q.id in saved else q
            for q in book.quests
        ]
        book.stats = QuestStats.model_validate({**book.stats.model_dump(), **data.get("stats", {})})
        return book
