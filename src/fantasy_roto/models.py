from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

RawCell = Union[str, int, float, None]
Grid = Sequence[Sequence[Any]]

HITTING_STATS = ("AB", "H", "R", "HR", "RBI", "SB", "AVG")
PITCHING_STATS = ("W", "SV", "K", "IP", "ER", "ERA", "WHIP")
FLOAT_STATS = {"AVG", "IP", "ERA", "WHIP"}
SCORING_STATS = frozenset({"R", "HR", "RBI", "SB", "H", "AB", "AVG", "W", "SV", "K", "ER", "IP", "ERA", "WHIP"})


class SheetKind(str, Enum):
    DRAFT = "draft"
    PERIOD = "period"
    STANDINGS = "standings"


@dataclass(frozen=True)
class RawPlayerRow:
    player_name_raw: str
    team_code: str
    position: str = ""
    is_pitcher_guess: bool = False
    draft_dollars: Optional[int] = None
    is_keeper: bool = False
    mlb_team: Optional[str] = None
    stats: Mapping[str, float] = field(default_factory=dict, compare=False, hash=False)

    def is_valid(self) -> bool:
        return bool(self.player_name_raw.strip()) and bool(self.team_code.strip())


@dataclass
class ExtractionResult:
    layout: str
    rows: List[RawPlayerRow] = field(default_factory=list)
    records: List[Dict[str, Any]] = field(default_factory=list)
    team_columns: Dict[int, str] = field(default_factory=dict)
    header_row: Optional[int] = None


@dataclass(frozen=True)
class Identity:
    full_name: str
    external_id: Optional[str] = None
    position: Optional[str] = None
    mlb_team: Optional[str] = None
    is_pitcher: bool = False


@dataclass(frozen=True)
class Period:
    period_id: int
    start: date
    end: date
    tab_name: str
    kind: SheetKind = SheetKind.PERIOD

    def as_record(self, season: int) -> Dict[str, object]:
        return {
            "season": season,
            "period_id": self.period_id,
            "tab_name": self.tab_name,
            "kind": self.kind.value,
            "start_date": self.start.isoformat(),
            "end_date": self.end.isoformat(),
        }


@dataclass
class PlayerPeriodStat:
    period_id: int
    player_name_raw: str
    team_code: str
    full_name: Optional[str] = None
    external_id: Optional[str] = None
    position: Optional[str] = None
    mlb_team: Optional[str] = None
    is_pitcher: bool = False
    AB: int = 0
    H: int = 0
    R: int = 0
    HR: int = 0
    RBI: int = 0
    SB: int = 0
    AVG: float = 0.0
    W: int = 0
    SV: int = 0
    K: int = 0
    IP: float = 0.0
    ER: int = 0
    ERA: float = 0.0
    WHIP: float = 0.0
    draft_dollars: Optional[int] = None
    is_keeper: bool = False

    @property
    def key(self) -> Tuple[int, str, str]:
        return (self.period_id, self.player_name_raw, self.team_code)

    def identity(self) -> Identity:
        return Identity(
            full_name=self.full_name or self.player_name_raw,
            external_id=self.external_id,
            position=self.position,
            mlb_team=self.mlb_team,
            is_pitcher=self.is_pitcher,
        )

    def apply_identity(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self.full_name = self.player_name_raw
            self.external_id = None
            return
        self.full_name = identity.full_name
        self.external_id = identity.external_id
        self.position = identity.position or self.position
        self.mlb_team = identity.mlb_team or self.mlb_team

    def clear_inactive_group(self) -> None:
        inactive = HITTING_STATS if self.is_pitcher else PITCHING_STATS
        for stat in inactive:
            setattr(self, stat, 0.0 if stat in FLOAT_STATS else 0)

    def as_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "PlayerPeriodStat":
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in record:
                continue
            value = record[f.name]
            if _is_missing(value):
                continue
            kwargs[f.name] = value
        kwargs["period_id"] = int(kwargs["period_id"])
        kwargs["player_name_raw"] = str(kwargs["player_name_raw"])
        kwargs["team_code"] = str(kwargs["team_code"])
        for name in ("full_name", "position", "mlb_team"):
            if name in kwargs:
                kwargs[name] = str(kwargs[name])
        if "external_id" in kwargs:
            kwargs["external_id"] = _stringify_id(kwargs["external_id"])
        for name in ("is_pitcher", "is_keeper"):
            if name in kwargs:
                kwargs[name] = _coerce_bool(kwargs[name])
        for stat in HITTING_STATS + PITCHING_STATS:
            if stat in kwargs:
                kwargs[stat] = float(kwargs[stat]) if stat in FLOAT_STATS else int(float(kwargs[stat]))
        if "draft_dollars" in kwargs:
            kwargs["draft_dollars"] = int(float(kwargs["draft_dollars"]))
        return cls(**kwargs)


@dataclass(frozen=True)
class StatDelta:
    """Period-scoped totals returned by the stats provider for one player."""

    external_id: str
    stats: Mapping[str, float] = field(default_factory=dict)
    mlb_team: Optional[str] = None

    def has_group(self, is_pitcher: bool) -> bool:
        group = PITCHING_STATS if is_pitcher else HITTING_STATS
        return any(stat in self.stats for stat in group)

    def apply_to(self, record: PlayerPeriodStat) -> bool:
        """Overwrite the record's active stat group; return True if anything changed."""

        changed = False
        if self.has_group(record.is_pitcher):
            group = PITCHING_STATS if record.is_pitcher else HITTING_STATS
            for stat in group:
                value = self.stats.get(stat, 0)
                setattr(record, stat, float(value) if stat in FLOAT_STATS else int(value))
            changed = True
        if self.mlb_team:
            record.mlb_team = self.mlb_team
            changed = True
        return changed


@dataclass(frozen=True)
class TeamPeriodAggregate:
    team_code: str
    R: int = 0
    HR: int = 0
    RBI: int = 0
    SB: int = 0
    H: int = 0
    AB: int = 0
    W: int = 0
    SV: int = 0
    K: int = 0
    ER: float = 0.0
    IP: float = 0.0
    whip_component: float = 0.0

    @property
    def AVG(self) -> float:
        return self.H / self.AB if self.AB > 0 else 0.0

    @property
    def ERA(self) -> float:
        return 9.0 * self.ER / self.IP if self.IP > 0 else 0.0

    @property
    def WHIP(self) -> float:
        return self.whip_component / self.IP if self.IP > 0 else 0.0

    def value(self, category: str) -> float:
        return float(getattr(self, category))


@dataclass
class StandingsRow:
    team_code: str
    points: Dict[str, float] = field(default_factory=dict)
    values: Dict[str, float] = field(default_factory=dict)
    total_score: float = 0.0
    rank: int = 0


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and value == ""


def _stringify_id(value: object) -> Optional[str]:
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "y"}
    return bool(value)
