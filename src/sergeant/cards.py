"""Card entries: Markdown files with YAML front matter, one directory per card."""

from __future__ import annotations

import base64
import mimetypes
import re
import secrets
import string
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import markdown
import yaml

from .models import OUTCOMES, Card, Completion

ENTRY_FILENAME = "entry.md"
FRONT_MATTER_DELIMITER = "---"
DATE_FORMAT = "%Y-%m-%d %H:%M"
TITLE_PREFIX = "Question "
ID_LENGTH = 16
_ID_ALPHABET = string.ascii_letters + string.digits

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(h|ms|m|s)")
_DURATION_UNITS = {
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
    "ms": timedelta(milliseconds=1),
}


class CardParseError(RuntimeError):
    pass


def new_card_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH))


def parse_duration(value: str | int | float) -> timedelta:
    """Parse ``1h2m3s`` style durations. Bare numbers are seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    text = str(value).strip()
    if not text:
        raise ValueError("duration is empty")
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return timedelta(seconds=float(text))

    total = timedelta()
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        position = match.end()
    if position != len(text) or position == 0:
        raise ValueError(f"invalid duration {text!r}")
    return total


def format_duration(value: timedelta) -> str:
    """Inverse of ``parse_duration``: ``timedelta(minutes=7, seconds=10)`` -> ``7m10s``."""
    seconds, micros = divmod(value // timedelta(microseconds=1), 1_000_000)
    hours, remainder = divmod(seconds, 3600)
    minutes, whole = divmod(remainder, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    if micros:
        # timedelta stores microseconds, so six digits are exact
        out += f"{whole}.{micros:06d}".rstrip("0") + "s"
    else:
        out += f"{whole}s"
    return out


def parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return datetime.strptime(value.strip(), DATE_FORMAT)
    raise ValueError(f"unsupported date {value!r}")


def format_date(value: datetime) -> str:
    return value.strftime(DATE_FORMAT)


def _read_front_matter(text: str, source: str) -> tuple[dict[str, Any], str]:
    """Split an entry into its parsed YAML header and the Markdown body below it."""
    stripped = text.lstrip()
    if not stripped.startswith(FRONT_MATTER_DELIMITER):
        raise CardParseError(f"Entry has no front matter header in {source}")
    try:
        _, front, body = stripped.split(FRONT_MATTER_DELIMITER, 2)
    except ValueError as exc:
        raise CardParseError(f"Front matter is not closed by '{FRONT_MATTER_DELIMITER}' in {source}") from exc
    try:
        loaded = yaml.safe_load(front) or {}
    except yaml.YAMLError as exc:
        raise CardParseError(f"Invalid front matter in {source}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise CardParseError(f"Front matter must be a mapping in {source}")
    if body.startswith("\n"):
        body = body[1:]
    return loaded, body


def _parse_completions(raw: Any, source: str) -> dict[str, list[Completion]]:
    parsed: dict[str, list[Completion]] = {outcome: [] for outcome in OUTCOMES}
    if raw is None:
        return parsed
    if not isinstance(raw, dict):
        raise CardParseError(f"'completions' must be a mapping in {source}")

    for outcome, entries in raw.items():
        if outcome not in parsed:
            raise CardParseError(f"Not expecting completions field '{outcome}' in {source}")
        if entries is None:
            continue
        if not isinstance(entries, list):
            raise CardParseError(f"'{outcome}' completions must be a list in {source}")
        for entry in entries:
            if not isinstance(entry, dict):
                raise CardParseError(f"'{outcome}' completion must be a mapping in {source}")
            if not entry.get("date"):
                raise CardParseError(f"'date' field in '{outcome}' completion list is empty in {source}")
            if entry.get("time") in (None, ""):
                raise CardParseError(f"'time' field in '{outcome}' completion list is empty in {source}")
            try:
                when = parse_date(entry["date"])
            except ValueError as exc:
                raise CardParseError(
                    f"'date' field {entry['date']!r} in '{outcome}' completion list is not a valid date in {source}"
                ) from exc
            try:
                duration = parse_duration(entry["time"])
            except ValueError as exc:
                raise CardParseError(
                    f"'time' field {entry['time']!r} in '{outcome}' completion list is not a valid duration in {source}"
                ) from exc
            user = entry.get("user") or ""
            parsed[outcome].append(Completion(date=when, duration=duration, user=str(user)))
    return parsed


def _find_attachment(directory: Path, stem: str) -> Path | None:
    for candidate in sorted(directory.glob(f"{stem}.*")):
        if candidate.is_file():
            return candidate
    return None


def parse_card(text: str, card_path: str, *, source: str | None = None) -> Card:
    """Build a Card from the text of an entry file."""
    source = source or card_path
    front, body = _read_front_matter(text, source)

    entry_type = front.get("type")
    if not isinstance(entry_type, str):
        raise CardParseError(f"Missing required 'type' field in {source}")
    if entry_type != "question":
        raise CardParseError(f"Expected 'type' to be 'question', not {entry_type!r} in {source}")

    title = front.get("title")
    if not isinstance(title, str) or not title.startswith(TITLE_PREFIX):
        raise CardParseError(f"Expected card title to start with 'Question', it is {title!r} in {source}")

    card_date = None
    if front.get("date"):
        try:
            card_date = parse_date(front["date"])
        except ValueError as exc:
            raise CardParseError(f"Invalid 'date' {front['date']!r} in {source}") from exc

    tags = front.get("tags") or []
    if not isinstance(tags, list):
        raise CardParseError(f"'tags' must be a list in {source}")

    completions = _parse_completions(front.get("completions"), source)
    return Card(
        id=title[len(TITLE_PREFIX):].strip(),
        path=card_path,
        date=card_date,
        tags=[str(tag) for tag in tags],
        notes=body,
        completions_perfect=completions["perfect"],
        completions_minor=completions["minor"],
        completions_major=completions["major"],
    )


def load_card(entry_path: Path, root: Path) -> Card:
    """Parse ``<root>/<card path>/entry.md``; attachments are looked up beside it."""
    directory = entry_path.parent
    card_path = directory.relative_to(root).as_posix()
    text = entry_path.read_text(encoding="utf-8")
    card = parse_card(text, card_path, source=str(entry_path))
    card.question_path = _find_attachment(directory, "question")
    card.answer_path = _find_attachment(directory, "answer")
    return card


def _completion_list(completions: list[Completion]) -> list[dict[str, str]]:
    return [
        {
            "date": format_date(completion.date),
            "time": format_duration(completion.duration),
            "user": completion.user,
        }
        for completion in completions
    ]


def dump_card(card: Card) -> str:
    """Serialise a card back into entry text."""
    front: dict[str, Any] = {
        "title": f"{TITLE_PREFIX}{card.id}",
        "type": "question",
        "tags": list(card.tags),
    }
    if card.date is not None:
        front["date"] = format_date(card.date)
    front["completions"] = {
        "perfect": _completion_list(card.completions_perfect),
        "minor": _completion_list(card.completions_minor),
        "major": _completion_list(card.completions_major),
    }
    rendered = yaml.safe_dump(front, sort_keys=False, allow_unicode=True)
    return f"{FRONT_MATTER_DELIMITER}\n{rendered}{FRONT_MATTER_DELIMITER}\n{card.notes}"


def notes_html(card: Card) -> str:
    if not card.notes.strip():
        return ""
    return markdown.markdown(card.notes)


def attachment_data_uri(path: Path | None) -> str | None:
    if path is None or not path.exists():
        return None
    mime, _ = mimetypes.guess_type(path.name)
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime or 'application/octet-stream'};base64,{encoded}"


__all__ = [
    "CardParseError",
    "DATE_FORMAT",
    "ENTRY_FILENAME",
    "attachment_data_uri",
    "dump_card",
    "format_date",
    "format_duration",
    "load_card",
    "new_card_id",
    "notes_html",
    "parse_card",
    "parse_date",
    "parse_duration",
]
