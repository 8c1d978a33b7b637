"""Configuration: named sets, friendly path names and view parameters from YAML."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

import yaml

from .cards import parse_date, parse_duration
from .models import (
    CardFilter,
    filter_after_date,
    filter_after_duration,
    filter_before_date,
    filter_before_duration,
    filter_paths,
    filter_tags,
)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_STORE_PATH = DATA_DIR / "cards"
DEFAULT_CONFIG_PATH = DATA_DIR / "config.yaml"
STORE_PATH = Path(os.environ.get("SERGEANT_STORE_PATH", DEFAULT_STORE_PATH))
CONFIG_PATH = Path(os.environ.get("SERGEANT_CONFIG_PATH", DEFAULT_CONFIG_PATH))

ALL_SET = "all"


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class SetConfig:
    name: str
    description: str = ""
    paths: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    before_duration: timedelta | None = None
    after_duration: timedelta | None = None
    before_date: datetime | None = None
    after_date: datetime | None = None
    hidden: bool = False
    background: str = ""
    color: str = ""

    def filters(self, now: datetime | None = None) -> list[CardFilter]:
        """Model filters equivalent to this set definition; all must pass."""
        now = now or datetime.now()
        result: list[CardFilter] = []
        if self.paths:
            result.append(filter_paths(*self.paths))
        if self.tags:
            result.append(filter_tags(*self.tags))
        if self.before_date is not None:
            result.append(filter_before_date(self.before_date))
        if self.after_date is not None:
            result.append(filter_after_date(self.after_date))
        if self.before_duration is not None:
            result.append(filter_before_duration(self.before_duration, now))
        if self.after_duration is not None:
            result.append(filter_after_duration(self.after_duration, now))
        return result


DEFAULT_SET_ALL = SetConfig(
    name="All",
    description="This set contains all cards added to the program.",
)


@dataclass(slots=True)
class Config:
    names: dict[str, str] = field(default_factory=dict)
    sets: dict[str, SetConfig] = field(default_factory=lambda: {ALL_SET: DEFAULT_SET_ALL})
    difficulty_options: dict[str, Any] = field(default_factory=dict)
    bayesian_options: dict[str, Any] = field(default_factory=dict)

    def display_name(self, path: str) -> str:
        return self.names.get(path, path)


def _ensure_str_list(raw: dict[str, Any], key: str, where: str) -> list[str]:
    value = raw.get(key) or []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"Expected a list of strings for '{key}' in {where}")
    return list(value)


def _optional(raw: dict[str, Any], key: str, parse: Any, where: str) -> Any:
    value = raw.get(key)
    if value in (None, ""):
        return None
    try:
        return parse(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid '{key}' {value!r} in {where}: {exc}") from exc


def parse_set(key: str, raw: dict[str, Any] | None) -> SetConfig:
    raw = raw or {}
    where = f"set '{key}'"
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping for {where}")

    name = raw.get("name") or key.replace("-", " ").title()
    return SetConfig(
        name=str(name),
        description=str(raw.get("description") or f"This is a custom set containing all {name} cards."),
        paths=_ensure_str_list(raw, "paths", where),
        tags=_ensure_str_list(raw, "tags", where),
        before_duration=_optional(raw, "before-duration", parse_duration, where),
        after_duration=_optional(raw, "after-duration", parse_duration, where),
        before_date=_optional(raw, "before-date", parse_date, where),
        after_date=_optional(raw, "after-date", parse_date, where),
        hidden=bool(raw.get("hidden", False)),
        background=str(raw.get("background") or ""),
        color=str(raw.get("color") or ""),
    )


_DIFFICULTY_RANGES: dict[str, tuple[str, Callable[[float], bool]]] = {
    "power": ("greater than 0", lambda value: value > 0),
    "top_percent": ("in (0, 1]", lambda value: 0 < value <= 1),
}
_BAYESIAN_RANGES: dict[str, tuple[str, Callable[[float], bool]]] = {
    "prior_alpha": ("greater than 0", lambda value: value > 0),
    "prior_beta": ("greater than 0", lambda value: value > 0),
}


def _view_options(
    raw: dict[str, Any], key: str, ranges: dict[str, tuple[str, Callable[[float], bool]]]
) -> dict[str, Any]:
    """Numeric options for one view. Keys may be spelled with hyphens or underscores."""
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Expected a mapping for views.{key}")
    options: dict[str, Any] = {}
    for option, value in section.items():
        name = str(option).replace("-", "_")
        if name not in ranges:
            raise ConfigError(f"Unknown option views.{key}.{option}")
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConfigError(f"Expected a number for views.{key}.{option}")
        expected, valid = ranges[name]
        if not valid(value):
            raise ConfigError(f"views.{key}.{option} must be {expected}, got {value}")
        options[name] = value
    return options


def parse_config(raw: dict[str, Any] | None) -> Config:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a mapping")

    names = raw.get("names") or {}
    if not isinstance(names, dict):
        raise ConfigError("Expected a mapping for 'names'")

    raw_sets = raw.get("sets") or {}
    if not isinstance(raw_sets, dict):
        raise ConfigError("Expected a mapping for 'sets'")
    sets = {ALL_SET: DEFAULT_SET_ALL}
    for key, value in raw_sets.items():
        sets[str(key)] = parse_set(str(key), value)

    views = raw.get("views") or {}
    if not isinstance(views, dict):
        raise ConfigError("Expected a mapping for 'views'")

    return Config(
        names={str(path): str(name) for path, name in names.items()},
        sets=sets,
        difficulty_options=_view_options(views, "difficulty", _DIFFICULTY_RANGES),
        bayesian_options=_view_options(views, "bayesian", _BAYESIAN_RANGES),
    )


def load_config(path: Path | None = None) -> Config:
    """Read the YAML config. A missing file gives the default config."""
    file_path = path or CONFIG_PATH
    if not file_path.exists():
        return Config()
    try:
        with open(file_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid config file {file_path}: {exc}") from exc
    return parse_config(raw)


__all__ = [
    "ALL_SET",
    "CONFIG_PATH",
    "Config",
    "ConfigError",
    "DEFAULT_SET_ALL",
    "STORE_PATH",
    "SetConfig",
    "load_config",
    "parse_config",
    "parse_set",
]
