from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, Literal, cast

Outcome = Literal["perfect", "minor", "major"]

OUTCOMES: tuple[Outcome, ...] = ("perfect", "minor", "major")


def normalize_path(path: str) -> str:
    """Drop empty segments: ``"/maths//q1"`` -> ``"maths/q1"``."""
    return "/".join(segment for segment in path.split("/") if segment)


@dataclass(slots=True)
class Completion:
    """A single attempt at a card: when, how long, and by whom."""

    date: datetime
    duration: timedelta
    user: str = ""


@dataclass(slots=True)
class Card:
    id: str
    path: str
    date: datetime | None = None
    tags: list[str] = field(default_factory=list)
    notes: str = ""
    completions_perfect: list[Completion] = field(default_factory=list)
    completions_minor: list[Completion] = field(default_factory=list)
    completions_major: list[Completion] = field(default_factory=list)
    question_path: Path | None = None
    answer_path: Path | None = None

    @property
    def category(self) -> str:
        """Path of the card without its own leaf segment."""
        head, _, _ = normalize_path(self.path).rpartition("/")
        return head

    def completions(self, outcome: Outcome) -> list[Completion]:
        if outcome == "perfect":
            return self.completions_perfect
        if outcome == "minor":
            return self.completions_minor
        if outcome == "major":
            return self.completions_major
        raise ValueError(f"Unsupported outcome: {outcome}")

    def count(self, outcome: Outcome, user: str = "") -> int:
        """Completions of one outcome, restricted to ``user`` unless it is empty."""
        completions = self.completions(outcome)
        if not user:
            return len(completions)
        return sum(1 for completion in completions if completion.user == user)

    def user_perfect(self, user: str = "") -> int:
        return self.count("perfect", user)

    def user_minor(self, user: str = "") -> int:
        return self.count("minor", user)

    def user_major(self, user: str = "") -> int:
        return self.count("major", user)

    def total_completions(self, user: str = "") -> int:
        return self.user_perfect(user) + self.user_minor(user) + self.user_major(user)

    def iter_completions(self, user: str = "") -> Iterator[tuple[Outcome, Completion]]:
        for outcome in OUTCOMES:
            for completion in self.completions(outcome):
                if not user or completion.user == user:
                    yield outcome, completion


CardFilter = Callable[[Card], bool]


@dataclass(slots=True)
class CardSet:
    """An unordered collection of cards handed to the selectors."""

    cards: list[Card] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self.cards)

    def __bool__(self) -> bool:
        return bool(self.cards)

    def filter(self, *filters: CardFilter) -> CardSet:
        """Cards matching every filter. No filters keeps everything."""
        return CardSet([card for card in self.cards if all(f(card) for f in filters)])

    def by_id(self, card_id: str) -> Card | None:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def paths(self) -> list[str]:
        return sorted(card.path for card in self.cards)


def filter_paths(*prefixes: str) -> CardFilter:
    """Allow cards whose path starts with any of ``prefixes``."""

    def _allowed(card: Card) -> bool:
        return any(card.path.startswith(prefix) for prefix in prefixes)

    return _allowed


def filter_tags(*tags: str) -> CardFilter:
    """Allow cards carrying at least one of ``tags``."""
    wanted = set(tags)

    def _allowed(card: Card) -> bool:
        return bool(wanted.intersection(card.tags))

    return _allowed


def filter_before_date(when: datetime) -> CardFilter:
    def _allowed(card: Card) -> bool:
        return card.date is not None and card.date < when

    return _allowed


def filter_after_date(when: datetime) -> CardFilter:
    def _allowed(card: Card) -> bool:
        return card.date is not None and card.date > when

    return _allowed


def filter_before_duration(delta: timedelta, now: datetime) -> CardFilter:
    """Cards created more than ``delta`` before ``now``."""
    return filter_before_date(now - delta)


def filter_after_duration(delta: timedelta, now: datetime) -> CardFilter:
    """Cards created within the last ``delta`` before ``now``."""
    return filter_after_date(now - delta)


def ensure_outcome(value: str) -> Outcome:
    """Normalise and validate an outcome string."""

    normalized = value.strip().lower()
    if normalized not in OUTCOMES:
        raise ValueError(f"Unsupported outcome: {value}")
    return cast(Outcome, normalized)


__all__ = [
    "Card",
    "CardFilter",
    "CardSet",
    "Completion",
    "OUTCOMES",
    "Outcome",
    "ensure_outcome",
    "filter_after_date",
    "filter_after_duration",
    "filter_before_date",
    "filter_before_duration",
    "filter_paths",
    "filter_tags",
    "normalize_path",
]
