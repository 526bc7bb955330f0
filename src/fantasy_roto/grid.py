"""Turn spreadsheet-shaped roster archives into flat per-player rows.

Season archives come in a handful of layouts that drift from year to year:

* wide grids: one roster per team column, with a team-name header row near
  the top and position labels printed once per row in a leading column;
* vertical blocks: one or more ``Player | Team | Pos | ...`` tables repeated
  side by side;
* side-by-side standings tables (``Rank | Team | Total ...``).

``extract`` detects the layout and emits :class:`RawPlayerRow` values. Sheets
that match nothing are passed through verbatim as opaque records instead of
raising.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from .league import LeagueVocabulary
from .models import ExtractionResult, Grid, RawPlayerRow, SheetKind

LOGGER = logging.getLogger(__name__)

NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
MLB_TEAM_RE = re.compile(r"^[A-Za-z]{2,3}$")

PITCHER_SECTION_LABELS = {"pitchers", "pitching", "pitching staff"}
HITTER_SECTION_LABELS = {"hitters", "hitting", "batters"}

NAME_LABELS = ("player_name", "player name", "player", "name")
TEAM_LABELS = ("team_code", "team", "fantasy team", "owner", "user")
POSITION_LABELS = ("position", "pos")
DOLLAR_LABELS = ("draft_dollars", "price", "dollars", "cost", "$")
MLB_TEAM_LABELS = ("mlb_team", "mlb", "tm")
STAT_LABELS = {
    "ab": "AB", "h": "H", "r": "R", "hr": "HR", "rbi": "RBI", "sb": "SB",
    "avg": "AVG", "ba": "AVG", "w": "W", "wins": "W", "sv": "SV", "saves": "SV",
    "k": "K", "so": "K", "ip": "IP", "er": "ER", "era": "ERA", "whip": "WHIP",
}

VERTICAL_SCAN_ROWS = 50
STANDINGS_SCAN_ROWS = 20
DRAFT_LOOKAHEAD = 5


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value == value
    if isinstance(value, int):
        return True
    return bool(NUMERIC_RE.match(cell_text(value).replace(",", "")))


def _row_text(row: Sequence[Any]) -> str:
    return " ".join(cell_text(cell) for cell in row if cell_text(cell)).lower()


def _cell(grid: Grid, row_idx: int, col_idx: int) -> Any:
    if row_idx >= len(grid):
        return None
    row = grid[row_idx] or ()
    return row[col_idx] if col_idx < len(row) else None


def _is_bold(bold: Optional[Grid], row_idx: int, col_idx: int) -> bool:
    if bold is None:
        return False
    return bool(_cell(bold, row_idx, col_idx))


def parse_dollars(value: Any) -> int:
    text = cell_text(value).replace("$", "").replace(",", "")
    try:
        amount = int(float(text))
    except (ValueError, OverflowError):
        return 0
    return amount if amount >= 0 else 0


def detect_team_header(grid: Grid, vocabulary: LeagueVocabulary) -> tuple[Optional[int], Dict[int, str]]:
    """Return the wide-grid header row index and its ``column -> team`` map."""

    for row_idx in range(min(vocabulary.header_scan_rows, len(grid))):
        row = grid[row_idx] or ()
        columns: Dict[int, str] = {}
        for col_idx, cell in enumerate(row):
            text = cell_text(cell)
            if not text or is_numeric(cell):
                continue
            code = vocabulary.identify_team(text)
            if code:
                columns[col_idx] = code
        if len(columns) >= 2:
            return row_idx, columns
    return None, {}


def is_noise(value: Any, vocabulary: LeagueVocabulary) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    text = cell_text(value)
    if len(text) <= 2:
        return True
    if "/" in text:
        return True
    if is_numeric(value):
        return True
    if vocabulary.is_position(text):
        return True
    return vocabulary.is_team_alias(text)


def _row_position(row: Sequence[Any], vocabulary: LeagueVocabulary) -> Optional[str]:
    for cell in row:
        text = cell_text(cell).upper()
        if text and vocabulary.is_position(text):
            return text
    return None


def _section_label(row: Sequence[Any]) -> Optional[str]:
    for cell in row:
        text = cell_text(cell).lower()
        if text in PITCHER_SECTION_LABELS:
            return "P"
        if text in HITTER_SECTION_LABELS:
            return ""
    return None


def parse_wide_grid(
    grid: Grid,
    header_row: int,
    team_columns: Dict[int, str],
    vocabulary: LeagueVocabulary,
    *,
    season: Optional[int] = None,
    draft: bool = False,
    bold: Optional[Grid] = None,
) -> List[RawPlayerRow]:
    cap = vocabulary.roster_cap(season)
    counts: Dict[str, int] = {}
    rows: List[RawPlayerRow] = []
    sorted_columns = sorted(team_columns)
    current_position = ""

    for row_idx in range(header_row + 1, len(grid)):
        row = grid[row_idx] or ()
        if not any(cell_text(cell) for cell in row):
            continue
        if vocabulary.is_sentinel_text(_row_text(row)):
            LOGGER.debug("Sentinel row %s reached; stopping grid parse", row_idx)
            break

        section = _section_label(row)
        if section is not None:
            current_position = section

        position = _row_position(row, vocabulary)
        if position:
            current_position = position
        is_pitcher = vocabulary.is_pitcher_position(current_position)

        for order, col_idx in enumerate(sorted_columns):
            team_code = team_columns[col_idx]
            if counts.get(team_code, 0) >= cap:
                continue
            value = _cell(grid, row_idx, col_idx)
            if is_noise(value, vocabulary) or _section_label((value,)) is not None:
                continue
            name = cell_text(value)

            dollars: Optional[int] = None
            mlb_team: Optional[str] = None
            if draft:
                dollars = parse_dollars(_cell(grid, row_idx, col_idx + 1))
                next_team_col = sorted_columns[order + 1] if order + 1 < len(sorted_columns) else None
                mlb_team = _adjacent_mlb_team(grid, row_idx, col_idx, next_team_col, vocabulary)

            rows.append(
                RawPlayerRow(
                    player_name_raw=name,
                    team_code=team_code,
                    position=current_position,
                    is_pitcher_guess=is_pitcher,
                    draft_dollars=dollars,
                    is_keeper=_is_bold(bold, row_idx, col_idx),
                    mlb_team=mlb_team,
                )
            )
            counts[team_code] = counts.get(team_code, 0) + 1

    return rows


def _adjacent_mlb_team(
    grid: Grid,
    row_idx: int,
    col_idx: int,
    next_team_col: Optional[int],
    vocabulary: LeagueVocabulary,
) -> Optional[str]:
    for offset in range(1, DRAFT_LOOKAHEAD + 1):
        target = col_idx + offset
        if next_team_col is not None and target >= next_team_col:
            break
        text = cell_text(_cell(grid, row_idx, target))
        if MLB_TEAM_RE.match(text) and not vocabulary.is_position(text):
            return text.upper()
    return None


def _block_starts(labels: Sequence[str], matches) -> List[int]:
    starts: List[int] = []
    for idx, label in enumerate(labels):
        if matches(label.lower()) and (not starts or idx > starts[-1] + 2):
            starts.append(idx)
    return starts


def _unroll_blocks(
    grid: Grid,
    header_row: int,
    starts: List[int],
    keep_block,
) -> List[tuple[int, int, Dict[str, Any]]]:
    labels = [cell_text(cell) for cell in (grid[header_row] or ())]
    width = (starts[1] - starts[0]) if len(starts) > 1 else len(labels) - starts[0]
    block_labels = labels[starts[0] : starts[0] + width]

    unrolled: List[tuple[int, int, Dict[str, Any]]] = []
    for row_idx in range(header_row + 1, len(grid)):
        row = list(grid[row_idx] or ())
        for block_idx, start in enumerate(starts):
            end = starts[block_idx + 1] if block_idx + 1 < len(starts) else len(row)
            if start >= len(row):
                continue
            chunk = row[start:end]
            if not keep_block(chunk):
                continue
            record = {
                label: chunk[offset]
                for offset, label in enumerate(block_labels)
                if label and offset < len(chunk)
            }
            unrolled.append((row_idx, start, record))
    return unrolled


def _find_header(grid: Grid, scan_rows: int, tokens: Sequence[str]) -> Optional[int]:
    for row_idx in range(min(scan_rows, len(grid))):
        text = _row_text(grid[row_idx] or ())
        if any(token in text for token in tokens):
            return row_idx
    return None


def _is_player_label(label: str) -> bool:
    return "player" in label or label == "name"


def _vertical_header_row(grid: Grid) -> Optional[int]:
    for row_idx in range(min(VERTICAL_SCAN_ROWS, len(grid))):
        if any(_is_player_label(cell_text(cell).lower()) for cell in (grid[row_idx] or ())):
            return row_idx
    return None


def _pick(record: Dict[str, Any], labels: Sequence[str]) -> Any:
    lowered = {key.lower().strip(): value for key, value in record.items()}
    for label in labels:
        value = lowered.get(label)
        if cell_text(value):
            return value
    return None


def _record_stats(record: Dict[str, Any]) -> Dict[str, float]:
    stats: Dict[str, float] = {}
    for key, value in record.items():
        stat = STAT_LABELS.get(key.lower().strip())
        if not stat or not is_numeric(value):
            continue
        try:
            stats[stat] = float(cell_text(value).replace(",", ""))
        except ValueError:
            LOGGER.debug("Ignoring unreadable %s value %r", stat, value)
    return stats


def parse_vertical_blocks(
    grid: Grid,
    vocabulary: LeagueVocabulary,
    *,
    bold: Optional[Grid] = None,
) -> Optional[ExtractionResult]:
    header_row = _vertical_header_row(grid)
    if header_row is None:
        return None
    labels = [cell_text(cell) for cell in (grid[header_row] or ())]
    starts = _block_starts(labels, _is_player_label)
    if not starts:
        return None

    result = ExtractionResult(layout="vertical", header_row=header_row)
    section_pitcher = False
    for row_idx, start, record in _unroll_blocks(
        grid, header_row, starts, lambda chunk: bool(chunk and cell_text(chunk[0]))
    ):
        section = _section_label(grid[row_idx] or ())
        if section is not None:
            section_pitcher = section == "P"
            if _section_label((_pick(record, NAME_LABELS),)) is not None:
                continue

        position = cell_text(_pick(record, POSITION_LABELS)).upper()
        if position and vocabulary.is_position(position):
            section_pitcher = vocabulary.is_pitcher_position(position)
        stats = _record_stats(record)
        is_pitcher = section_pitcher or any(stats.get(stat, 0) > 0 for stat in ("W", "SV", "IP"))

        keeper = _is_bold(bold, row_idx, start)
        result.records.append({**record, "is_keeper": keeper, "is_pitcher": is_pitcher})

        name = cell_text(_pick(record, NAME_LABELS))
        team_raw = cell_text(_pick(record, TEAM_LABELS))
        if not name or not team_raw:
            continue
        team_code = vocabulary.identify_team(team_raw) or team_raw.upper()
        dollars_value = _pick(record, DOLLAR_LABELS)
        mlb_team = cell_text(_pick(record, MLB_TEAM_LABELS)).upper() or None
        result.rows.append(
            RawPlayerRow(
                player_name_raw=name,
                team_code=team_code,
                position=position or ("P" if is_pitcher else ""),
                is_pitcher_guess=is_pitcher,
                draft_dollars=parse_dollars(dollars_value) if dollars_value is not None else None,
                is_keeper=keeper,
                mlb_team=mlb_team,
                stats=stats,
            )
        )
    return result


def parse_standings_tables(grid: Grid) -> Optional[ExtractionResult]:
    header_row = _find_header(grid, STANDINGS_SCAN_ROWS, ("rank", "team", "total"))
    if header_row is None:
        return None
    labels = [cell_text(cell) for cell in (grid[header_row] or ())]
    starts = _block_starts(
        labels,
        lambda label: "rank" in label or label == "rk" or ("team" in label and "score" not in label),
    )
    if not starts:
        return None

    result = ExtractionResult(layout="vertical", header_row=header_row)
    if len(starts) > 1:
        keep = lambda chunk: bool(chunk) and is_numeric(chunk[0])  # noqa: E731
    else:
        keep = lambda chunk: bool(chunk) and bool(cell_text(chunk[0]))  # noqa: E731
    for _, _, record in _unroll_blocks(grid, header_row, starts, keep):
        result.records.append(record)
    return result


def opaque(grid: Grid) -> ExtractionResult:
    records = [
        {f"col_{idx}": cell for idx, cell in enumerate(row or ())}
        for row in grid
        if row and any(cell_text(cell) for cell in row)
    ]
    return ExtractionResult(layout="opaque", records=records)


def extract(
    grid: Grid,
    kind: SheetKind | str,
    vocabulary: LeagueVocabulary,
    *,
    season: Optional[int] = None,
    bold: Optional[Grid] = None,
) -> ExtractionResult:
    """Detect the sheet layout and emit normalized rows.

    Never raises for structural reasons: a sheet that matches no known layout
    comes back as ``layout="opaque"`` with its rows passed through verbatim.
    """

    sheet_kind = SheetKind(kind)

    if sheet_kind is SheetKind.STANDINGS:
        return parse_standings_tables(grid) or opaque(grid)

    header_row, team_columns = detect_team_header(grid, vocabulary)
    vertical_header = _vertical_header_row(grid)
    # A team column inside a vertical table also matches several aliases in one row.
    if header_row is not None and (vertical_header is None or header_row < vertical_header):
        LOGGER.debug("Wide grid header at row %s: %s", header_row, team_columns)
        rows = parse_wide_grid(
            grid,
            header_row,
            team_columns,
            vocabulary,
            season=season,
            draft=sheet_kind is SheetKind.DRAFT,
            bold=bold,
        )
        return ExtractionResult(
            layout="wide",
            rows=[row for row in rows if row.is_valid()],
            team_columns=team_columns,
            header_row=header_row,
        )

    vertical = parse_vertical_blocks(grid, vocabulary, bold=bold)
    if vertical is not None:
        vertical.rows = [row for row in vertical.rows if row.is_valid()]
        return vertical

    LOGGER.info("No known layout detected; passing sheet through as opaque rows")
    return opaque(grid)
