"""League vocabulary and scoring configuration loaded from YAML."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError
from .models import SCORING_STATS

DEFAULT_POSITIONS = (
    "1B", "2B", "3B", "SS", "OF", "C", "CM", "MI", "DH", "P", "IL1", "IL2", "DL", "R",
    "SP", "RP", "PITCHER", "STAFF", "CO", "UT", "CI", "LF", "CF", "RF",
)
DEFAULT_PITCHER_POSITIONS = ("P", "SP", "RP", "PITCHER", "STAFF")
DEFAULT_SENTINELS = ("total", "standings", "salary cap")
TIE_POLICIES = ("ordinal", "split")


def normalize_alias(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value).strip().lower())


@dataclass(frozen=True)
class Category:
    key: str
    lower_is_better: bool = False
    label: Optional[str] = None


DEFAULT_CATEGORIES: Tuple[Category, ...] = (
    Category("R", label="Runs"),
    Category("HR", label="Home Runs"),
    Category("RBI", label="RBI"),
    Category("SB", label="Stolen Bases"),
    Category("AVG", label="Average"),
    Category("W", label="Wins"),
    Category("SV", label="Saves"),
    Category("K", label="Strikeouts"),
    Category("ERA", lower_is_better=True, label="ERA"),
    Category("WHIP", lower_is_better=True, label="WHIP"),
)


@dataclass(frozen=True)
class LeagueVocabulary:
    """Static team-alias and roster-position vocabularies for one league.

    Instances are passed explicitly to the grid extractor so several leagues
    (or seasons with different team rosters) can be parsed side by side.
    """

    team_aliases: Mapping[str, str]
    positions: frozenset[str] = frozenset(DEFAULT_POSITIONS)
    pitcher_positions: frozenset[str] = frozenset(DEFAULT_PITCHER_POSITIONS)
    sentinels: Tuple[str, ...] = DEFAULT_SENTINELS
    header_scan_rows: int = 10
    legacy_roster_through: int = 2022
    legacy_roster_size: int = 23
    roster_size: int = 30

    @classmethod
    def from_teams(cls, teams: Mapping[str, Iterable[str]], **kwargs: object) -> "LeagueVocabulary":
        aliases: Dict[str, str] = {}
        for code, names in teams.items():
            team_code = str(code).strip().upper()
            for name in [team_code, *names]:
                key = normalize_alias(name)
                if key:
                    aliases.setdefault(key, team_code)
        return cls(team_aliases=aliases, **kwargs)  # type: ignore[arg-type]

    @property
    def team_codes(self) -> frozenset[str]:
        return frozenset(self.team_aliases.values())

    def _aliases_longest_first(self) -> Tuple[str, ...]:
        return tuple(sorted(self.team_aliases, key=len, reverse=True))

    def identify_team(self, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        key = normalize_alias(text)
        if not key:
            return None
        if key in self.team_aliases:
            return self.team_aliases[key]
        if text.upper() in self.team_codes:
            return text.upper()
        for alias in self._aliases_longest_first():
            if len(alias) > 3 and alias in key:
                return self.team_aliases[alias]
        return None

    def is_team_alias(self, value: object) -> bool:
        key = normalize_alias(str(value or ""))
        return bool(key) and key in self.team_aliases

    def is_position(self, value: object) -> bool:
        return str(value or "").strip().upper() in self.positions

    def is_pitcher_position(self, value: object) -> bool:
        return str(value or "").strip().upper() in self.pitcher_positions

    def is_sentinel_text(self, text: str) -> bool:
        lowered = text.lower()
        return any(token in lowered for token in self.sentinels)

    def roster_cap(self, season: Optional[int]) -> int:
        if season is not None and season <= self.legacy_roster_through:
            return self.legacy_roster_size
        return self.roster_size


@dataclass(frozen=True)
class LeagueConfig:
    vocabulary: LeagueVocabulary
    categories: Tuple[Category, ...] = DEFAULT_CATEGORIES
    tie_policy: str = "ordinal"
    max_periods: int = 7
    opening_days: Mapping[int, date] = field(default_factory=dict)
    season_ends: Mapping[int, date] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "LeagueConfig":
        if not path.exists():
            raise FileNotFoundError(f"League config not found at {path}")

        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"League config at {path} must be a mapping")

        teams = raw.get("teams") or {}
        if not isinstance(teams, dict) or not teams:
            raise ConfigError("League config must define at least one team under 'teams'")

        vocab_kwargs: Dict[str, object] = {}
        if raw.get("positions"):
            vocab_kwargs["positions"] = frozenset(str(p).strip().upper() for p in raw["positions"])
        if raw.get("pitcher_positions"):
            vocab_kwargs["pitcher_positions"] = frozenset(
                str(p).strip().upper() for p in raw["pitcher_positions"]
            )
        if raw.get("sentinels"):
            vocab_kwargs["sentinels"] = tuple(str(s).strip().lower() for s in raw["sentinels"])
        if raw.get("header_scan_rows") is not None:
            vocab_kwargs["header_scan_rows"] = int(raw["header_scan_rows"])

        roster = raw.get("roster_cap") or {}
        if roster:
            vocab_kwargs["legacy_roster_through"] = int(roster.get("legacy_through", 2022))
            vocab_kwargs["legacy_roster_size"] = int(roster.get("legacy_size", 23))
            vocab_kwargs["roster_size"] = int(roster.get("size", 30))

        vocabulary = LeagueVocabulary.from_teams(
            {str(code): [str(name) for name in (names or [])] for code, names in teams.items()},
            **vocab_kwargs,
        )

        categories: Tuple[Category, ...] = DEFAULT_CATEGORIES
        if raw.get("categories"):
            parsed = []
            for entry in raw["categories"]:
                if isinstance(entry, str):
                    parsed.append(Category(entry.strip().upper()))
                    continue
                if not isinstance(entry, dict) or not entry.get("key"):
                    raise ConfigError(f"Invalid category entry: {entry!r}")
                parsed.append(
                    Category(
                        key=str(entry["key"]).strip().upper(),
                        lower_is_better=bool(entry.get("lower_is_better", False)),
                        label=entry.get("label"),
                    )
                )
            unknown = sorted({c.key for c in parsed} - SCORING_STATS)
            if unknown:
                raise ConfigError(
                    f"Unknown scoring categories: {', '.join(unknown)}; expected any of {', '.join(sorted(SCORING_STATS))}"
                )
            categories = tuple(parsed)

        tie_policy = str(raw.get("tie_policy", "ordinal")).strip().lower()
        if tie_policy not in TIE_POLICIES:
            raise ConfigError(f"tie_policy must be one of {', '.join(TIE_POLICIES)}; got {tie_policy!r}")

        return cls(
            vocabulary=vocabulary,
            categories=categories,
            tie_policy=tie_policy,
            max_periods=int(raw.get("max_periods", 7)),
            opening_days=_parse_dates(raw.get("opening_days")),
            season_ends=_parse_dates(raw.get("season_ends")),
        )

    def opening_day(self, season: int) -> date:
        return self.opening_days.get(season) or date(season, 3, 28)

    def season_end(self, season: int) -> date:
        return self.season_ends.get(season) or date(season, 9, 30)


def _parse_dates(raw: object) -> Dict[int, date]:
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("Date tables must map season -> YYYY-MM-DD")
    parsed: Dict[int, date] = {}
    for season, value in raw.items():
        if isinstance(value, date):
            parsed[int(season)] = value
            continue
        try:
            parsed[int(season)] = date.fromisoformat(str(value))
        except ValueError:
            raise ConfigError(f"Invalid date for season {season}: {value!r}") from None
    return parsed
