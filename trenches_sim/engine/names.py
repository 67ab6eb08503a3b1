"""Meme-style token identity generation (name, ticker, avatar)."""

import re
from collections import OrderedDict
from typing import Callable, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict


ANIMALS = [
    "Doge", "Shiba", "Pepe", "Cat", "Monkey", "Hamster", "Frog", "Pig", "Bear", "Bull",
    "Fox", "Owl", "Eagle", "Rat", "Whale", "Penguin", "Panda", "Tiger", "Llama", "Crab",
    "Bat", "Seal", "Otter", "Gecko", "Axolotl", "Capybara", "Quokka", "Platypus",
]

PREFIXES = [
    "Baby", "Super", "Mega", "Ultra", "Mini", "Dark", "Turbo", "Giga", "Hyper", "Based",
    "Floki", "King", "Lord", "Chief", "Captain", "Dr.", "Mr.", "Alpha", "Sigma", "Chad",
]

SUFFIXES = [
    "Inu", "Moon", "Rocket", "Finance", "Swap", "Coin", "Token", "DAO", "AI", "Bot",
    "Protocol", "Chain", "Verse", "Fi", "X", "GPT", "Pro", "Max", "Classic",
]

MEME_WORDS = [
    "HODL", "WAGMI", "NGMI", "FOMO", "COPE", "BONK", "BOOP", "WIF", "HAT", "POPCAT",
    "GMGN", "DEGEN", "APE", "PUMP", "MOON", "LAMBO", "YOLO", "GG", "KEK", "LOL",
    "SHILL", "REKT", "FUD", "NPC", "SIGMA", "CHAD", "BASED",
]

FOODS = [
    "Pizza", "Burger", "Taco", "Sushi", "Ramen", "Banana", "Donut", "Cookie", "Cake",
    "Tendies", "Nuggies", "Waffle", "Burrito",
]

POP_CULTURE = [
    "Elon", "Trump", "Satoshi", "Vitalik", "Ansem", "Solana", "Matrix", "Goku",
    "Thanos", "Harambe", "Musk", "CZ", "Wojak", "Bogdanoff",
]

AVATARS = [
    "🐸", "🐕", "🦊", "🐱", "🐵", "🐷", "🐻", "🐂", "🦅", "🐧", "🐼", "🐯",
    "🦙", "🦀", "🦇", "🦦", "🐢", "🐰", "🦎", "🐹", "💀", "🔥", "⚡", "🌙", "🚀", "💎", "🎮",
]

_MAX_ATTEMPTS = 50
_RECENT_LIMIT = 200   # once exceeded, trim down to the newest _RECENT_KEEP
_RECENT_KEEP = 100
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class TokenIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    ticker: str
    avatar: str


def make_ticker(name: str) -> str:
    cleaned = _NON_ALNUM.sub("", name).upper()
    return cleaned[:5] or "TOKEN"


class NameGenerator:
    """
    Draws token names from ten construction strategies.

    Recently used names (case-insensitive) are rejected so the feed does not
    show duplicates side by side. Only the newest names are remembered.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng if rng is not None else np.random.default_rng()
        self._recent: "OrderedDict[str, None]" = OrderedDict()
        self._fallback_count = 0
        self._strategies: List[Callable[[], str]] = [
            lambda: f"{self._pick(PREFIXES)} {self._pick(ANIMALS)}",
            lambda: f"{self._pick(ANIMALS)}{self._pick(SUFFIXES)}",
            lambda: self._pick(MEME_WORDS),
            lambda: f"{self._maybe(lambda: self._pick(PREFIXES) + ' ', 0.4)}{self._pick(FOODS)}",
            lambda: f"{self._pick(POP_CULTURE)}{self._maybe(lambda: ' ' + self._pick(SUFFIXES), 0.5)}",
            lambda: f"{self._pick(ANIMALS)}{self._pick(ANIMALS)}",
            lambda: f"{self._pick(PREFIXES)} {self._pick(MEME_WORDS)}",
            lambda: f"{self._pick(ANIMALS)} WIF {self._pick(FOODS)}",
            lambda: f"{self._pick(ANIMALS)}GPT",
            lambda: f"{self._pick(PREFIXES)}{self._pick(PREFIXES)}",
        ]

    def _pick(self, items: Sequence):
        return items[int(self._rng.integers(0, len(items)))]

    def _maybe(self, fn: Callable[[], str], chance: float = 0.3) -> str:
        return fn() if self._rng.random() < chance else ""

    def is_recent(self, name: str) -> bool:
        return name.upper() in self._recent

    @property
    def recent_count(self) -> int:
        return len(self._recent)

    def _remember(self, name: str) -> None:
        key = name.upper()
        self._recent.pop(key, None)
        self._recent[key] = None
        if len(self._recent) > _RECENT_LIMIT:
            while len(self._recent) > _RECENT_KEEP:
                self._recent.popitem(last=False)

    def generate_name(self) -> str:
        for _ in range(_MAX_ATTEMPTS):
            candidate = self._pick(self._strategies)()
            if candidate and not self.is_recent(candidate):
                self._remember(candidate)
                return candidate

        self._fallback_count += 1
        name = f"{self._pick(ANIMALS)}{self._fallback_count}"
        self._remember(name)
        return name

    def generate(self) -> TokenIdentity:
        name = self.generate_name()
        return TokenIdentity(name=name, ticker=make_ticker(name), avatar=self._pick(AVATARS))

    def reset(self) -> None:
        self._recent.clear()
        self._fallback_count = 0
