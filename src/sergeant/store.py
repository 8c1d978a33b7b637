"""File-backed card store: one directory per card under a root directory."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

from .cards import ENTRY_FILENAME, CardParseError, dump_card, load_card, new_card_id
from .config import Config, SetConfig
from .models import Card, CardSet, Completion, ensure_outcome

logger = logging.getLogger(__name__)


class UnknownSetError(KeyError):
    pass


class UnknownCardError(KeyError):
    pass


class Store:
    def __init__(self, root: Path, config: Config | None = None) -> None:
        self.root = Path(root)
        self.config = config or Config()
        self.errors: dict[str, str] = {}

    @property
    def sets(self) -> dict[str, SetConfig]:
        return self.config.sets

    def load(self) -> CardSet:
        """Parse every entry under the root. Broken entries are skipped and recorded."""
        self.errors = {}
        cards: list[Card] = []
        if not self.root.exists():
            return CardSet(cards)
        for entry_path in sorted(self.root.rglob(ENTRY_FILENAME)):
            try:
                cards.append(load_card(entry_path, self.root))
            except (CardParseError, OSError, UnicodeDecodeError) as exc:
                relative = entry_path.parent.relative_to(self.root).as_posix()
                self.errors[relative] = str(exc)
                logger.warning("Skipping card %s: %s", relative, exc)
        return CardSet(cards)

    def set_config(self, name: str) -> SetConfig:
        try:
            return self.config.sets[name]
        except KeyError:
            raise UnknownSetError(f"The set '{name}' doesn't exist") from None

    def set(self, name: str, *, now: datetime | None = None) -> CardSet:
        return self.set_from_config(self.set_config(name), now=now)

    def set_from_config(self, set_config: SetConfig, *, now: datetime | None = None) -> CardSet:
        return self.load().filter(*set_config.filters(now))

    def card(self, card_id: str) -> Card:
        card = self.load().by_id(card_id)
        if card is None:
            raise UnknownCardError(f"The card '{card_id}' doesn't exist")
        return card

    def card_by_path(self, path: str) -> Card:
        entry_path = self.root / path / ENTRY_FILENAME
        if not entry_path.exists():
            raise UnknownCardError(f"No card at path '{path}'")
        return load_card(entry_path, self.root)

    def save(self, card: Card) -> None:
        entry_path = self.root / card.path / ENTRY_FILENAME
        entry_path.parent.mkdir(parents=True, exist_ok=True)
        entry_path.write_text(dump_card(card), encoding="utf-8")

    def add_completion(self, card_id: str, outcome: str, completion: Completion) -> Card:
        normalized = ensure_outcome(outcome)
        card = self.card(card_id)
        card.completions(normalized).append(completion)
        self.save(card)
        logger.info("Recorded %s completion for %s (user=%r)", normalized, card.path, completion.user)
        return card

    def add_completion_by_path(self, path: str, outcome: str, completion: Completion) -> Card:
        normalized = ensure_outcome(outcome)
        card = self.card_by_path(path)
        card.completions(normalized).append(completion)
        self.save(card)
        logger.info("Recorded %s completion for %s (user=%r)", normalized, card.path, completion.user)
        return card

    def add_card(
        self,
        path: str,
        *,
        tags: list[str] | None = None,
        notes: str = "",
        question: Path | None = None,
        answer: Path | None = None,
        now: datetime | None = None,
    ) -> Card:
        """Create a new card directory, copying in question/answer attachments if given."""
        clean_path = path.strip().strip("/")
        if not clean_path:
            raise ValueError("path must not be empty")
        directory = self.root / clean_path
        if (directory / ENTRY_FILENAME).exists():
            raise ValueError(f"A card already exists at '{clean_path}'")

        card = Card(
            id=new_card_id(),
            path=clean_path,
            date=(now or datetime.now()).replace(second=0, microsecond=0),
            tags=list(tags or []),
            notes=notes,
        )
        self.save(card)
        if question is not None:
            card.question_path = Path(shutil.copy(question, directory / f"question{question.suffix}"))
        if answer is not None:
            card.answer_path = Path(shutil.copy(answer, directory / f"answer{answer.suffix}"))
        return card


__all__ = [
    "Store",
    "UnknownCardError",
    "UnknownSetError",
]
