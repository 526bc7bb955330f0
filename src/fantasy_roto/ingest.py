from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import ProviderError
from .grid import extract, opaque
from .identity import IdentityReport, KnowledgeBase, Resolved, Unresolved, resolve
from .league import LeagueConfig
from .mlb import MlbStatsClient
from .models import FLOAT_STATS, ExtractionResult, Identity, Period, PlayerPeriodStat, RawPlayerRow, SheetKind
from .store import HistoryStore
from .workbook import Sheet, Workbook, build_periods, classify_sheets, load_workbook

LOGGER = logging.getLogger(__name__)


@dataclass
class TeamValidation:
    hitters: int = 0
    pitchers: int = 0

    @property
    def total(self) -> int:
        return self.hitters + self.pitchers


@dataclass
class ImportResult:
    season: int
    periods: List[Period] = field(default_factory=list)
    rows_by_period: Dict[int, int] = field(default_factory=dict)
    layouts: Dict[str, str] = field(default_factory=dict)
    validation: Dict[int, Dict[str, TeamValidation]] = field(default_factory=dict)
    report: IdentityReport = field(default_factory=IdentityReport)
    standings_rows: int = 0
    orphaned_periods: List[int] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return sum(self.rows_by_period.values())


def build_record(
    period_id: int,
    row: RawPlayerRow,
    knowledge_base: KnowledgeBase,
    report: IdentityReport,
    pitcher_positions: frozenset[str],
) -> PlayerPeriodStat:
    stats = dict(row.stats)
    is_pitcher = (
        row.is_pitcher_guess
        or row.position.upper() in pitcher_positions
        or any(stats.get(stat, 0) > 0 for stat in ("W", "SV", "IP"))
    )

    record = PlayerPeriodStat(
        period_id=period_id,
        player_name_raw=row.player_name_raw,
        team_code=row.team_code.upper(),
        position=row.position or ("P" if is_pitcher else None),
        mlb_team=row.mlb_team,
        is_pitcher=is_pitcher,
        draft_dollars=row.draft_dollars,
        is_keeper=row.is_keeper,
    )

    result = resolve(row.player_name_raw, is_pitcher, knowledge_base)
    report.record(record.team_code, result)
    record.apply_identity(result.identity if isinstance(result, Resolved) else None)

    for stat, value in stats.items():
        if stat in FLOAT_STATS:
            setattr(record, stat, float(value))
        else:
            setattr(record, stat, int(value))
    record.clear_inactive_group()
    return record


class SeasonImporter:
    """Import one season workbook into the history store."""

    def __init__(self, config: LeagueConfig, store: HistoryStore) -> None:
        self.config = config
        self.store = store

    def import_file(self, path: Path, season: int) -> ImportResult:
        return self.import_workbook(load_workbook(path, season))

    def extract_sheet(self, sheet: Sheet, kind: SheetKind, season: int) -> ExtractionResult:
        try:
            return extract(sheet.cells, kind, self.config.vocabulary, season=season, bold=sheet.bold)
        except Exception:  # one malformed sheet must not abort the season
            LOGGER.exception("Failed to parse sheet %r; falling back to opaque rows", sheet.name)
            return opaque(sheet.cells)

    def import_workbook(self, workbook: Workbook) -> ImportResult:
        season = workbook.season
        plan = classify_sheets(workbook.sheet_names, season)
        periods = build_periods(plan, season, self.config)
        result = ImportResult(season=season, periods=periods)

        knowledge_base = KnowledgeBase.from_records(self.store.load_all())
        pitcher_positions = self.config.vocabulary.pitcher_positions

        for period in periods:
            sheet = workbook.sheets.get(period.tab_name)
            if sheet is None:
                continue
            extraction = self.extract_sheet(sheet, period.kind, season)
            result.layouts[period.tab_name] = extraction.layout
            if not extraction.rows:
                LOGGER.warning(
                    "Period %s (%s): %s layout produced no player rows",
                    period.period_id,
                    period.tab_name,
                    extraction.layout,
                )

            records: Dict[tuple, PlayerPeriodStat] = {}
            for row in extraction.rows:
                record = build_record(period.period_id, row, knowledge_base, result.report, pitcher_positions)
                if record.key in records:
                    LOGGER.debug("Duplicate row %s in period %s ignored", record.key, period.period_id)
                    continue
                records[record.key] = record

            self.store.replace_period(season, period.period_id, records.values())
            result.rows_by_period[period.period_id] = len(records)
            result.validation[period.period_id] = self.validate(period, records.values(), season)

        result.orphaned_periods = self.store.prune_periods(season, [p.period_id for p in periods])
        self.store.save_periods(season, periods)

        if plan.standings and plan.standings in workbook.sheets:
            standings = self.extract_sheet(workbook.sheets[plan.standings], SheetKind.STANDINGS, season)
            result.layouts[plan.standings] = standings.layout
            self.store.save_standings_sheet(season, standings.records)
            result.standings_rows = len(standings.records)

        self.store.save_identity_report(season, result.report.as_records())
        LOGGER.info(
            "Season %s imported: %s periods, %s rows, %s fuzzy, %s unresolved, %s ambiguous",
            season,
            len(periods),
            result.total_rows,
            len(result.report.fuzzy),
            len(result.report.unresolved),
            len(result.report.ambiguous),
        )
        return result

    def validate(
        self,
        period: Period,
        records: Iterable[PlayerPeriodStat],
        season: int,
    ) -> Dict[str, TeamValidation]:
        expected = self.config.vocabulary.roster_cap(season)
        summary: Dict[str, TeamValidation] = {}
        for record in records:
            counts = summary.setdefault(record.team_code, TeamValidation())
            if record.is_pitcher:
                counts.pitchers += 1
            else:
                counts.hitters += 1
        for team_code, counts in summary.items():
            if counts.total != expected:
                LOGGER.warning(
                    "Period %s %s: %s hitters, %s pitchers (total %s, expected %s)",
                    period.period_id,
                    team_code,
                    counts.hitters,
                    counts.pitchers,
                    counts.total,
                    expected,
                )
        return summary

    def reresolve(
        self,
        season: int,
        period_id: Optional[int] = None,
        client: Optional[MlbStatsClient] = None,
    ) -> IdentityReport:
        """Re-run identity resolution for stored rows that still lack an external id.

        With a ``client``, names that stay unresolved against stored history
        are looked up through the provider's name search. Those matches are
        reported alongside the fuzzy ones for review.
        """

        knowledge_base = KnowledgeBase.from_records(self.store.load_all())
        report = IdentityReport()
        targets = (
            self.store.load_period(season, period_id) if period_id is not None else self.store.load_season(season)
        )
        searched: Dict[str, Optional[Identity]] = {}
        changed: List[PlayerPeriodStat] = []
        for record in targets:
            if record.external_id is not None:
                continue
            result = resolve(record.player_name_raw, record.is_pitcher, knowledge_base)
            if isinstance(result, Unresolved) and client is not None:
                result = self._search(client, record, searched) or result
            report.record(record.team_code, result)
            if isinstance(result, Resolved) and result.identity.external_id is not None:
                record.apply_identity(result.identity)
                changed.append(record)
        if changed:
            self.store.upsert(season, changed)
        self.store.save_identity_report(season, report.as_records())
        return report

    @staticmethod
    def _search(
        client: MlbStatsClient,
        record: PlayerPeriodStat,
        searched: Dict[str, Optional[Identity]],
    ) -> Optional[Resolved]:
        name = record.full_name or record.player_name_raw
        if name not in searched:
            try:
                searched[name] = client.search_player(name)
            except ProviderError as exc:
                LOGGER.warning("Name search failed for %r: %s", name, exc)
                searched[name] = None
        found = searched[name]
        if found is None:
            return None
        identity = Identity(
            full_name=found.full_name,
            external_id=found.external_id,
            position=record.position,
            mlb_team=record.mlb_team,
            is_pitcher=record.is_pitcher,
        )
        return Resolved(
            identity=identity,
            fuzzy=True,
            note=f'Name search matched "{record.player_name_raw}" to "{found.full_name}" ({found.external_id})',
        )
