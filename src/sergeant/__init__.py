"""Sergeant: flashcard practice that surfaces the weakest topics first."""

from .models import Card, CardSet, Completion
from .views import (
    BayesianView,
    DifficultyView,
    RandomView,
    UnseenView,
    ViewRegistry,
    default_registry,
)

__all__ = [
    "BayesianView",
    "Card",
    "CardSet",
    "Completion",
    "DifficultyView",
    "RandomView",
    "UnseenView",
    "ViewRegistry",
    "default_registry",
]
