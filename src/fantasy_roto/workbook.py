"""Workbook loading, sheet classification and the season period calendar."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import load_workbook as _open_workbook

from .league import LeagueConfig
from .models import Period, SheetKind

LOGGER = logging.getLogger(__name__)

STANDINGS_TOKENS = ("standing", "final stat", "league stats", "scoring", "cumulative")
EXCLUDED_TOKENS = ("transaction", "info", "salary", "traded", "keeper")
EXCLUDED_NAMES = {"rosters", "ranks", "projections"}
FINAL_TOKENS = ("final", "season", "end")
YEAR_RE = re.compile(r"\b(20\d{2})\b")
MONTH_DAY_RE = re.compile(r"(\d{1,2})[./\-](\d{1,2})")
PERIOD_NUMBER_RE = re.compile(r"^period[_ ](\d+)")
PERIOD_SPACING_DAYS = 14


@dataclass
class Sheet:
    name: str
    cells: List[List[Any]]
    bold: Optional[List[List[bool]]] = None


@dataclass
class Workbook:
    season: int
    sheets: Dict[str, Sheet] = field(default_factory=dict)

    @property
    def sheet_names(self) -> List[str]:
        return list(self.sheets)

    @classmethod
    def from_grids(cls, season: int, grids: Dict[str, Sequence[Sequence[Any]]]) -> "Workbook":
        return cls(
            season=season,
            sheets={name: Sheet(name=name, cells=[list(row) for row in rows]) for name, rows in grids.items()},
        )


def load_workbook(path: Path, season: int) -> Workbook:
    """Read every worksheet as a 2-D value grid plus a parallel bold-font grid.

    Bold name cells mark keepers in the league's archives, so styles are read
    alongside values (``read_only`` mode does not expose fonts).
    """

    if not path.exists():
        raise FileNotFoundError(f"Workbook not found at {path}")

    wb = _open_workbook(path, data_only=True)
    try:
        sheets: Dict[str, Sheet] = {}
        for ws in wb.worksheets:
            cells: List[List[Any]] = []
            bold: List[List[bool]] = []
            for row in ws.iter_rows():
                cells.append([cell.value for cell in row])
                bold.append([bool(cell.font is not None and cell.font.b) for cell in row])
            sheets[ws.title] = Sheet(name=ws.title, cells=cells, bold=bold)
        LOGGER.info("Loaded %s sheets from %s: %s", len(sheets), path, ", ".join(sheets))
        return Workbook(season=season, sheets=sheets)
    finally:
        wb.close()


@dataclass(frozen=True)
class SheetPlan:
    draft: Optional[str]
    standings: Optional[str]
    periods: List[str]


def classify_sheets(names: Sequence[str], season: int) -> SheetPlan:
    draft = next((name for name in names if "draft" in name.lower()), None)
    standings = next(
        (name for name in names if any(token in name.lower() for token in STANDINGS_TOKENS)),
        None,
    )

    periods: List[str] = []
    for name in names:
        lowered = name.lower().strip()
        if name in (draft, standings):
            continue
        if any(token in lowered for token in EXCLUDED_TOKENS) or lowered in EXCLUDED_NAMES:
            continue
        year_match = YEAR_RE.search(lowered)
        if year_match and int(year_match.group(1)) < season:
            continue
        periods.append(name)
    return SheetPlan(draft=draft, standings=standings, periods=periods)


def parse_tab_date(name: str, season: int, opening_day: date) -> Optional[date]:
    normalized = name.lower().strip()
    if any(token in normalized for token in FINAL_TOKENS):
        return date(season, 10, 1)

    period_match = PERIOD_NUMBER_RE.match(normalized)
    if period_match:
        number = int(period_match.group(1))
        return opening_day + timedelta(days=PERIOD_SPACING_DAYS * max(number - 1, 0))

    match = MONTH_DAY_RE.search(normalized)
    if match:
        try:
            return date(season, int(match.group(1)), int(match.group(2)))
        except ValueError:
            return None

    for fmt in ("%B %d", "%b %d", "%B %d %Y", "%b %d %Y"):
        try:
            parsed = datetime.strptime(name.strip().replace(",", ""), fmt)
        except ValueError:
            continue
        return date(season, parsed.month, parsed.day)
    return None


def build_periods(plan: SheetPlan, season: int, config: LeagueConfig) -> List[Period]:
    """Map draft and dated tabs to contiguous scoring periods.

    The draft tab (when present) is period 1 starting on opening day; each
    dated tab starts a period that ends the day before the next one, and the
    last period ends on the regular-season end date.
    """

    opening_day = config.opening_day(season)
    season_end = config.season_end(season)

    dated: List[tuple[str, date]] = []
    for name in plan.periods:
        parsed = parse_tab_date(name, season, opening_day)
        if parsed is None:
            LOGGER.info("Skipping tab %r (could not parse as date)", name)
            continue
        LOGGER.debug("Identified tab %r as %s", name, parsed.isoformat())
        dated.append((name, parsed))
    dated.sort(key=lambda item: item[1])

    limit = config.max_periods - 1 if plan.draft else config.max_periods
    dated = dated[: max(limit, 0)]

    periods: List[Period] = []
    if plan.draft:
        draft_end = max(dated[0][1] - timedelta(days=1), opening_day) if dated else season_end
        periods.append(Period(period_id=1, start=opening_day, end=draft_end, tab_name=plan.draft, kind=SheetKind.DRAFT))

    offset = 2 if plan.draft else 1
    for idx, (name, start) in enumerate(dated):
        end = dated[idx + 1][1] - timedelta(days=1) if idx + 1 < len(dated) else max(season_end, start)
        periods.append(Period(period_id=idx + offset, start=start, end=end, tab_name=name))

    LOGGER.info(
        "Season %s: draft=%s, %s dated tabs -> %s periods",
        season,
        bool(plan.draft),
        len(dated),
        len(periods),
    )
    return periods
