from trenches_sim.services.portfolio import Portfolio
from trenches_sim.services.quests import QuestBook
from trenches_sim.services.session import GameSession

__all__ = ["GameSession", "Portfolio", "QuestBook"]
