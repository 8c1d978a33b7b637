"""Views: the different ways of choosing which card to show next."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Protocol

from .difficulty import propagate_difficulty
from .models import Card, CardSet, normalize_path
from .trie import ProbabilityNode, build_trie

logger = logging.getLogger(__name__)

DEFAULT_POWER = 2.0
DEFAULT_TOP_PERCENT = 0.4
WEIGHT_SCALE = 1000

PRIOR_ALPHA = 2
PRIOR_BETA = 4


class SamplingError(RuntimeError):
    pass


class UnknownViewError(KeyError):
    pass


class View(Protocol):
    name: str

    def next(self, card_set: CardSet, user: str = "") -> Card | None:
        ...


def _make_rng(seed: int | None, rng: random.Random | None) -> random.Random:
    if rng is not None:
        return rng
    return random.Random(seed)


def in_category(card: Card, category: str) -> bool:
    return normalize_path(card.path).startswith(category + "/")


def unanswered(cards: Iterable[Card], user: str = "", category: str | None = None) -> list[Card]:
    """Cards with no completions by ``user``, optionally limited to one category."""
    return [
        card
        for card in cards
        if card.total_completions(user) == 0 and (category is None or in_category(card, category))
    ]


class RandomView:
    """Any card, uniformly."""

    name = "random"

    def __init__(self, seed: int | None = None, *, rng: random.Random | None = None) -> None:
        self._rng = _make_rng(seed, rng)

    def next(self, card_set: CardSet, user: str = "") -> Card | None:
        if not card_set.cards:
            return None
        return self._rng.choice(card_set.cards)


class UnseenView:
    """Any card the user has never completed, uniformly."""

    name = "unseen"

    def __init__(self, seed: int | None = None, *, rng: random.Random | None = None) -> None:
        self._rng = _make_rng(seed, rng)

    def next(self, card_set: CardSet, user: str = "") -> Card | None:
        candidates = unanswered(card_set.cards, user)
        if not candidates:
            return None
        return self._rng.choice(candidates)


class DifficultyView:
    """Unanswered cards from the hardest categories by smoothed difficulty.

    Categories are ranked by ``difficulty ** power`` ascending and the first
    ``top_percent`` of them form the focus window. A category is then drawn
    with its raw difficulty as the weight.
    """

    name = "difficulty"

    def __init__(
        self,
        seed: int | None = None,
        *,
        rng: random.Random | None = None,
        power: float = DEFAULT_POWER,
        top_percent: float = DEFAULT_TOP_PERCENT,
        **difficulty_options: Any,
    ) -> None:
        if not 0 < top_percent <= 1:
            raise ValueError(f"top_percent must be in (0, 1], got {top_percent}")
        self._rng = _make_rng(seed, rng)
        self.power = power
        self.top_percent = top_percent
        self.difficulty_options = difficulty_options

    def ranked(self, card_set: CardSet, user: str = "") -> list[ProbabilityNode]:
        """Categories ordered hardest first."""
        trie = propagate_difficulty(build_trie(card_set.cards, user), **self.difficulty_options)
        return sorted(trie.nodes(), key=lambda node: (node.difficulty**self.power, node.path))

    def window(self, card_set: CardSet, user: str = "") -> list[ProbabilityNode]:
        ranked = self.ranked(card_set, user)
        if not ranked:
            return []
        size = max(1, math.ceil(len(ranked) * self.top_percent))
        return ranked[:size]

    def next(self, card_set: CardSet, user: str = "") -> Card | None:
        window = self.window(card_set, user)
        candidates = {node.path: unanswered(card_set.cards, user, node.path) for node in window}
        if not any(candidates.values()):
            return None

        # Raw difficulty is the probability of a perfect answer, so easier
        # categories inside the window get the larger weights.
        weights = [max(1, round(node.difficulty * WEIGHT_SCALE)) for node in window]
        while True:
            chosen = self._rng.choices(window, weights=weights)[0]
            pool = candidates[chosen.path]
            if pool:
                logger.debug("difficulty view picked %s (difficulty %.3f)", chosen.path, chosen.difficulty)
                return self._rng.choice(pool)


@dataclass(slots=True)
class CategoryDifficulty:
    path: str
    alpha: int
    beta: int

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)


class BayesianView:
    """Thompson sampling over Beta posteriors of each category's perfect rate.

    Every attempt draws one sample per category and takes the smallest, i.e.
    the category currently believed hardest. Categories with nothing left to
    answer are dropped for the rest of the call.
    """

    name = "bayesian"

    def __init__(
        self,
        seed: int | None = None,
        *,
        rng: random.Random | None = None,
        prior_alpha: int = PRIOR_ALPHA,
        prior_beta: int = PRIOR_BETA,
    ) -> None:
        self._rng = _make_rng(seed, rng)
        self.prior_alpha = prior_alpha
        self.prior_beta = prior_beta

    def posteriors(self, card_set: CardSet, user: str = "") -> list[CategoryDifficulty]:
        trie = build_trie(card_set.cards, user)
        return [
            CategoryDifficulty(
                path=node.path,
                alpha=self.prior_alpha + node.perfect,
                beta=self.prior_beta + node.minor + node.major,
            )
            for node in trie.nodes()
        ]

    def difficulties(self, card_set: CardSet, user: str = "") -> list[CategoryDifficulty]:
        """Posterior means per category, lowest (hardest) first."""
        return sorted(self.posteriors(card_set, user), key=lambda item: (item.mean, item.path))

    def sample(self, posterior: CategoryDifficulty) -> float:
        if posterior.alpha <= 0 or posterior.beta <= 0:
            raise SamplingError(
                f"Cannot sample Beta({posterior.alpha}, {posterior.beta}) for '{posterior.path}'"
            )
        try:
            return self._rng.betavariate(posterior.alpha, posterior.beta)
        except (ValueError, ZeroDivisionError) as exc:
            raise SamplingError(
                f"Sampling Beta({posterior.alpha}, {posterior.beta}) for '{posterior.path}' failed: {exc}"
            ) from exc

    def pool(self, card_set: CardSet, user: str, category: str) -> list[Card]:
        return unanswered(card_set.cards, user, category)

    def next(self, card_set: CardSet, user: str = "") -> Card | None:
        active = self.posteriors(card_set, user)
        while active:
            samples = [(self.sample(posterior), posterior.path, posterior) for posterior in active]
            _, _, chosen = min(samples, key=lambda item: (item[0], item[1]))
            pool = self.pool(card_set, user, chosen.path)
            if pool:
                logger.debug("bayesian view picked %s (alpha=%d, beta=%d)", chosen.path, chosen.alpha, chosen.beta)
                return self._rng.choice(pool)
            active = [posterior for posterior in active if posterior.path != chosen.path]
        return None


class ViewRegistry:
    """Named views available to callers."""

    def __init__(self, views: Iterable[View] = ()) -> None:
        self._views: dict[str, View] = {}
        for view in views:
            self.register(view)

    def register(self, view: View, name: str | None = None) -> None:
        self._views[name or view.name] = view

    def get(self, name: str) -> View:
        try:
            return self._views[name]
        except KeyError:
            raise UnknownViewError(f"The view '{name}' doesn't exist") from None

    def names(self) -> list[str]:
        return sorted(self._views)

    def __contains__(self, name: object) -> bool:
        return name in self._views

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._views)


def default_registry(
    seed: int | None = None,
    *,
    difficulty_options: dict[str, Any] | None = None,
    bayesian_options: dict[str, Any] | None = None,
) -> ViewRegistry:
    """One instance of every view, each with its own generator derived from ``seed``."""
    root = random.Random(seed)
    return ViewRegistry(
        [
            RandomView(root.getrandbits(64)),
            UnseenView(root.getrandbits(64)),
            DifficultyView(root.getrandbits(64), **(difficulty_options or {})),
            BayesianView(root.getrandbits(64), **(bayesian_options or {})),
        ]
    )


__all__ = [
    "BayesianView",
    "CategoryDifficulty",
    "DifficultyView",
    "PRIOR_ALPHA",
    "PRIOR_BETA",
    "RandomView",
    "SamplingError",
    "UnknownViewError",
    "UnseenView",
    "View",
    "ViewRegistry",
    "default_registry",
    "in_category",
    "unanswered",
]
