"""Probability trie: per-category outcome counts aggregated from a card set."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from .models import Card, normalize_path


@dataclass(slots=True)
class ProbabilityNode:
    path: str
    perfect: int = 0
    minor: int = 0
    major: int = 0
    difficulty: float = 0.0

    @property
    def total(self) -> int:
        return self.perfect + self.minor + self.major

    @property
    def depth(self) -> int:
        return self.path.count("/") + 1

    @property
    def parent_path(self) -> str:
        head, _, _ = self.path.rpartition("/")
        return head


class ProbabilityTrie:
    """Category path -> ProbabilityNode, keyed by the full ``/``-joined prefix."""

    def __init__(self) -> None:
        self._nodes: dict[str, ProbabilityNode] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __getitem__(self, path: str) -> ProbabilityNode:
        return self._nodes[path]

    def get(self, path: str) -> ProbabilityNode | None:
        return self._nodes.get(path)

    def upsert(self, path: str) -> ProbabilityNode:
        node = self._nodes.get(path)
        if node is None:
            node = ProbabilityNode(path=path)
            self._nodes[path] = node
        return node

    def paths(self) -> list[str]:
        return sorted(self._nodes)

    def nodes(self) -> list[ProbabilityNode]:
        return [self._nodes[path] for path in self.paths()]

    def parent(self, node: ProbabilityNode) -> ProbabilityNode | None:
        parent_path = node.parent_path
        if not parent_path:
            return None
        return self._nodes.get(parent_path)

    def top_down(self) -> list[ProbabilityNode]:
        """Every node, ordered so that each parent precedes its children."""
        return sorted(self._nodes.values(), key=lambda node: (node.depth, node.path))

    def counts(self) -> dict[str, tuple[int, int, int]]:
        return {path: (node.perfect, node.minor, node.major) for path, node in self._nodes.items()}


def category_prefixes(path: str) -> list[str]:
    """All category prefixes of a card path, shortest first.

    ``"maths/algebra/ex1/q1"`` -> ``["maths", "maths/algebra", "maths/algebra/ex1"]``.
    The card's own leaf segment never forms a prefix.
    """
    segments = normalize_path(path).split("/")
    return ["/".join(segments[:end]) for end in range(1, len(segments))]


def build_trie(cards: Iterable[Card], user: str = "") -> ProbabilityTrie:
    """Aggregate each card's completion counts into every category above it.

    With an empty ``user`` every completion counts; otherwise only that user's.
    """
    trie = ProbabilityTrie()
    for card in cards:
        prefixes = category_prefixes(card.path)
        if not prefixes:
            continue
        perfect = card.user_perfect(user)
        minor = card.user_minor(user)
        major = card.user_major(user)
        for prefix in prefixes:
            node = trie.upsert(prefix)
            node.perfect += perfect
            node.minor += minor
            node.major += major
    return trie


__all__ = [
    "ProbabilityNode",
    "ProbabilityTrie",
    "build_trie",
    "category_prefixes",
]
