"""Tests for views.py: baseline, difficulty-weighted and Thompson-sampling selectors."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

import pytest

from sergeant.models import Card, CardSet, Completion
from sergeant.views import (
    BayesianView,
    DifficultyView,
    RandomView,
    SamplingError,
    UnknownViewError,
    UnseenView,
    ViewRegistry,
    default_registry,
    in_category,
    unanswered,
)


def _done(user: str = "", n: int = 1) -> list[Completion]:
    return [Completion(date=datetime(2021, 2, 16, 10, 18), duration=timedelta(minutes=3), user=user) for _ in range(n)]


def _scenario() -> CardSet:
    return CardSet(
        [
            Card(id="a1", path="algebra/a1", completions_perfect=_done(n=3)),
            Card(id="a2", path="algebra/a2"),
            Card(id="g1", path="geometry/g1", completions_major=_done()),
        ]
    )


def _alice_set() -> CardSet:
    return CardSet(
        [
            Card(id="seen1", path="maths/algebra/q1", completions_perfect=_done("alice")),
            Card(id="seen2", path="maths/algebra/q2", completions_minor=_done("alice")),
            Card(id="seen3", path="maths/geometry/q1", completions_major=_done("alice", 2)),
            Card(id="fresh", path="maths/geometry/q2"),
            Card(id="bobs", path="physics/q1", completions_perfect=_done("bob")),
        ]
    )


ALL_VIEWS = (RandomView, UnseenView, DifficultyView, BayesianView)


class TestHelpers:
    def test_in_category_needs_segment_boundary(self):
        card = Card(id="x", path="algebra-2/q1")
        assert in_category(card, "algebra-2")
        assert not in_category(card, "algebra")

    def test_in_category_ignores_empty_segments(self):
        card = Card(id="x", path="/maths//algebra/q1")
        assert in_category(card, "maths/algebra")
        assert card.category == "maths/algebra"

    def test_unanswered_respects_user(self):
        cards = _alice_set().cards
        assert {card.id for card in unanswered(cards, "alice")} == {"fresh", "bobs"}
        assert {card.id for card in unanswered(cards)} == {"fresh"}
        assert [card.id for card in unanswered(cards, "alice", "physics")] == ["bobs"]


class TestEmptySets:
    @pytest.mark.parametrize("view_cls", ALL_VIEWS)
    def test_empty_set_gives_none(self, view_cls):
        assert view_cls(seed=1).next(CardSet(), "alice") is None

    @pytest.mark.parametrize("view_cls", (UnseenView, DifficultyView, BayesianView))
    def test_fully_answered_gives_none(self, view_cls):
        card_set = CardSet([Card(id="1", path="a/q1", completions_perfect=_done("alice"))])
        assert view_cls(seed=1).next(card_set, "alice") is None


class TestRandomView:
    def test_draws_from_every_card(self):
        view = RandomView(seed=3)
        card_set = _alice_set()
        seen = {view.next(card_set).id for _ in range(300)}
        assert seen == {card.id for card in card_set}


class TestUnseenView:
    def test_only_unseen_cards_for_user(self):
        view = UnseenView(seed=7)
        card_set = _alice_set()
        seen = {view.next(card_set, "alice").id for _ in range(200)}
        assert seen == {"fresh", "bobs"}

    def test_empty_user_counts_all_completions(self):
        view = UnseenView(seed=7)
        for _ in range(50):
            assert view.next(_alice_set()).id == "fresh"


class TestDifficultyView:
    def test_scenario_picks_only_unanswered_card(self):
        view = DifficultyView(seed=11, top_percent=1.0)
        for _ in range(50):
            assert view.next(_scenario()).id == "a2"

    def test_ranked_hardest_first(self):
        ranked = DifficultyView(seed=1).ranked(_scenario())
        assert [node.path for node in ranked] == ["geometry", "algebra"]

    def test_window_keeps_leading_fraction(self):
        view = DifficultyView(seed=1, top_percent=0.4)
        assert [node.path for node in view.window(_scenario())] == ["geometry"]
        # geometry is the only category in the window and it has nothing unanswered
        assert view.next(_scenario()) is None

    def test_window_never_empty_when_categories_exist(self):
        view = DifficultyView(seed=1, top_percent=0.01)
        assert len(view.window(_scenario())) == 1

    def test_invalid_top_percent(self):
        with pytest.raises(ValueError):
            DifficultyView(top_percent=0)
        with pytest.raises(ValueError):
            DifficultyView(top_percent=1.5)

    def test_uses_users_history(self):
        card_set = CardSet(
            [
                Card(id="done", path="a/q1", completions_perfect=_done("alice")),
                Card(id="open", path="b/q1", completions_perfect=_done("bob")),
            ]
        )
        view = DifficultyView(seed=5, top_percent=1.0)
        for _ in range(20):
            assert view.next(card_set, "alice").id == "open"

    def test_cards_without_category_are_never_picked(self):
        view = DifficultyView(seed=5, top_percent=1.0)
        assert view.next(CardSet([Card(id="x", path="lonely")])) is None

    def test_draw_inside_window_is_weighted_by_raw_difficulty(self):
        card_set = CardSet(
            [
                Card(id="easy-done", path="easy/q1", completions_perfect=_done(n=30)),
                Card(id="easy-open", path="easy/q2"),
                Card(id="hard-done", path="hard/q1", completions_major=_done(n=30)),
                Card(id="hard-open", path="hard/q2"),
            ]
        )
        view = DifficultyView(seed=3, top_percent=1.0)
        # easy weighs ~1000 against hard's floor of 1
        picks = [view.next(card_set).id for _ in range(300)]
        assert picks.count("easy-open") >= 290
        assert set(picks) <= {"easy-open", "hard-open"}

    def test_messy_paths_still_find_their_category(self):
        view = DifficultyView(seed=2, top_percent=1.0)
        assert view.next(CardSet([Card(id="x", path="/maths//q1")])).id == "x"


class TestBayesianView:
    def test_exhaustion_returns_unanswered_card(self):
        card_set = CardSet(
            [
                Card(id="a1", path="algebra/a1", completions_perfect=_done("alice")),
                Card(id="a2", path="algebra/a2", completions_major=_done("alice")),
                Card(id="g1", path="geometry/g1"),
            ]
        )
        for seed in range(30):
            assert BayesianView(seed=seed).next(card_set, "alice").id == "g1"

    def test_blacklisted_path_is_not_revisited(self):
        pools: list[str] = []

        class SpyView(BayesianView):
            def pool(self, card_set, user, category):
                pools.append(category)
                return super().pool(card_set, user, category)

        card_set = CardSet(
            [
                Card(id="a1", path="algebra/a1", completions_perfect=_done("alice", 4)),
                Card(id="c1", path="calculus/c1", completions_minor=_done("alice")),
                Card(id="g1", path="geometry/g1"),
            ]
        )
        view = SpyView(seed=2)
        for _ in range(40):
            pools.clear()
            assert view.next(card_set, "alice").id == "g1"
            assert len(pools) == len(set(pools))
            assert pools[-1] == "geometry"

    def test_deterministic_with_seed(self):
        card_set = _alice_set()
        first = BayesianView(seed=42)
        second = BayesianView(seed=42)
        assert [first.next(card_set, "alice").id for _ in range(20)] == [
            second.next(card_set, "alice").id for _ in range(20)
        ]

    def test_prefers_weak_categories(self):
        card_set = CardSet(
            [Card(id=f"s{i}", path=f"strong/s{i}", completions_perfect=_done("alice", 10)) for i in range(5)]
            + [Card(id=f"w{i}", path=f"weak/w{i}", completions_major=_done("alice", 10)) for i in range(5)]
            + [Card(id="snew", path="strong/new"), Card(id="wnew", path="weak/new")]
        )
        view = BayesianView(seed=9)
        picks = [view.next(card_set, "alice").id for _ in range(100)]
        assert picks.count("wnew") > 90

    def test_difficulties_sorted_by_posterior_mean(self):
        result = BayesianView().difficulties(_scenario())
        assert [item.path for item in result] == ["geometry", "algebra"]
        assert result[0].mean == pytest.approx(2 / 7)
        assert result[1].mean == pytest.approx(5 / 9)

    def test_difficulties_ties_broken_by_path(self):
        card_set = CardSet([Card(id="1", path="zeta/q1"), Card(id="2", path="alpha/q1")])
        result = BayesianView().difficulties(card_set)
        assert [item.path for item in result] == ["alpha", "zeta"]
        assert all(item.mean == pytest.approx(2 / 6) for item in result)

    def test_difficulties_do_not_touch_generator(self):
        rng = random.Random(1)
        state = rng.getstate()
        BayesianView(rng=rng).difficulties(_scenario())
        assert rng.getstate() == state

    def test_degenerate_prior_raises(self):
        view = BayesianView(seed=1, prior_alpha=0)
        with pytest.raises(SamplingError, match="geometry"):
            view.next(_scenario())


class TestDeterminism:
    @pytest.mark.parametrize("view_cls", ALL_VIEWS)
    def test_same_seed_same_sequence(self, view_cls):
        card_set = _alice_set()
        first = view_cls(seed=123)
        second = view_cls(seed=123)
        for _ in range(25):
            a = first.next(card_set, "alice")
            b = second.next(card_set, "alice")
            assert (a and a.id) == (b and b.id)

    def test_default_registry_is_reproducible(self):
        card_set = _alice_set()
        first = default_registry(5)
        second = default_registry(5)
        for name in first.names():
            assert [getattr(first.get(name).next(card_set, "alice"), "id", None) for _ in range(10)] == [
                getattr(second.get(name).next(card_set, "alice"), "id", None) for _ in range(10)
            ]


class TestViewRegistry:
    def test_default_names(self):
        assert default_registry(1).names() == ["bayesian", "difficulty", "random", "unseen"]

    def test_unknown_view(self):
        with pytest.raises(UnknownViewError):
            default_registry(1).get("spaced")

    def test_register_custom_name(self):
        registry = ViewRegistry()
        view = RandomView(seed=1)
        registry.register(view, name="shuffle")
        assert "shuffle" in registry
        assert registry.get("shuffle") is view
        assert len(registry) == 1

    def test_default_registry_passes_options(self):
        registry = default_registry(1, difficulty_options={"power": 3, "top_percent": 0.5})
        view = registry.get("difficulty")
        assert isinstance(view, DifficultyView)
        assert view.power == 3
        assert view.top_percent == 0.5
