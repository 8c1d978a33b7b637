"""Smoothed per-category difficulty: local evidence shrunk toward the parent's estimate."""

from __future__ import annotations

import math

from .trie import ProbabilityNode, ProbabilityTrie

BASE_PROBABILITY = 0.5    # prior one level above the top-level categories
DAMPING_FACTOR = 0.6      # discount on an inherited prior with no local samples
CONFIDENCE_MIDPOINT = 6   # completions at which local evidence gets half the weight
CONFIDENCE_SLOPE = 1 / 3


def confidence(
    total: int,
    *,
    midpoint: float = CONFIDENCE_MIDPOINT,
    slope: float = CONFIDENCE_SLOPE,
) -> float:
    """Logistic weight of a category's own samples.

    With the defaults this is ``1 / (1 + exp(2 - total/3))``.
    """
    return 1.0 / (1.0 + math.exp(slope * (midpoint - total)))


def node_difficulty(
    node: ProbabilityNode,
    general_probability: float,
    *,
    damping_factor: float = DAMPING_FACTOR,
    confidence_midpoint: float = CONFIDENCE_MIDPOINT,
    confidence_slope: float = CONFIDENCE_SLOPE,
) -> float:
    """Modelled probability of a perfect completion for one category.

    No samples:   general * damping
    Otherwise:    sample * c + general * (1 - c), sample = perfect / total
    """
    total = node.total
    if total == 0:
        return general_probability * damping_factor

    sample_probability = node.perfect / total
    weight = confidence(total, midpoint=confidence_midpoint, slope=confidence_slope)
    return sample_probability * weight + general_probability * (1 - weight)


def propagate_difficulty(
    trie: ProbabilityTrie,
    *,
    base_probability: float = BASE_PROBABILITY,
    damping_factor: float = DAMPING_FACTOR,
    confidence_midpoint: float = CONFIDENCE_MIDPOINT,
    confidence_slope: float = CONFIDENCE_SLOPE,
) -> ProbabilityTrie:
    """Fill in ``difficulty`` on every node, parents before children."""
    for node in trie.top_down():
        parent = trie.parent(node)
        general = base_probability if parent is None else parent.difficulty
        node.difficulty = node_difficulty(
            node,
            general,
            damping_factor=damping_factor,
            confidence_midpoint=confidence_midpoint,
            confidence_slope=confidence_slope,
        )
    return trie


__all__ = [
    "BASE_PROBABILITY",
    "CONFIDENCE_MIDPOINT",
    "CONFIDENCE_SLOPE",
    "DAMPING_FACTOR",
    "confidence",
    "node_difficulty",
    "propagate_difficulty",
]
