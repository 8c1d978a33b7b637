"""Per-set reporting: activity heatmap, time spent, category difficulties."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import OUTCOMES, CardSet, Outcome
from .views import BayesianView, CategoryDifficulty


@dataclass(slots=True)
class HeatmapDay:
    day: str
    value: int = 0  # seconds spent
    perfect: int = 0
    minor: int = 0
    major: int = 0


@dataclass(slots=True)
class TimeSummary:
    counts: dict[str, int] = field(default_factory=lambda: {outcome: 0 for outcome in OUTCOMES})
    seconds: dict[str, float] = field(default_factory=lambda: {outcome: 0.0 for outcome in OUTCOMES})

    @property
    def total_count(self) -> int:
        return sum(self.counts.values())

    @property
    def total_seconds(self) -> float:
        return sum(self.seconds.values())

    def mean_seconds(self, outcome: Outcome | None = None) -> float:
        if outcome is None:
            count, seconds = self.total_count, self.total_seconds
        else:
            count, seconds = self.counts[outcome], self.seconds[outcome]
        return seconds / count if count else 0.0


def heatmap(card_set: CardSet, user: str = "") -> list[HeatmapDay]:
    days: dict[str, HeatmapDay] = {}
    for card in card_set:
        for outcome, completion in card.iter_completions(user):
            key = completion.date.strftime("%Y-%m-%d")
            day = days.setdefault(key, HeatmapDay(day=key))
            setattr(day, outcome, getattr(day, outcome) + 1)
            day.value += int(completion.duration.total_seconds())
    return [days[key] for key in sorted(days)]


def time_summary(card_set: CardSet, user: str = "") -> TimeSummary:
    summary = TimeSummary()
    for card in card_set:
        for outcome, completion in card.iter_completions(user):
            summary.counts[outcome] += 1
            summary.seconds[outcome] += completion.duration.total_seconds()
    return summary


def difficulty_report(
    card_set: CardSet,
    user: str = "",
    view: BayesianView | None = None,
) -> list[CategoryDifficulty]:
    return (view or BayesianView()).difficulties(card_set, user)


__all__ = [
    "HeatmapDay",
    "TimeSummary",
    "difficulty_report",
    "heatmap",
    "time_summary",
]
