from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .models import Period, PlayerPeriodStat, SheetKind
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)

STAT_COLUMNS = [f.name for f in fields(PlayerPeriodStat)]
KEY_COLUMNS = ["period_id", "player_name_raw", "team_code"]


def write_dataframe(df: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return path


@dataclass
class HistoryStore:
    """Flat-file store of player-period rows, one directory per season."""

    settings: AppSettings

    @property
    def root(self) -> Path:
        return self.settings.archive_root

    def season_dir(self, season: int) -> Path:
        return self.root / str(season)

    def stats_path(self, season: int) -> Path:
        return self.season_dir(season) / "player_period_stats.csv"

    def periods_path(self, season: int) -> Path:
        return self.season_dir(season) / "periods.csv"

    def standings_sheet_path(self, season: int) -> Path:
        return self.season_dir(season) / "season_standings.csv"

    def identity_report_path(self, season: int) -> Path:
        return self.season_dir(season) / "identity_report.csv"

    def standings_path(self, season: int, period_id: Optional[int] = None) -> Path:
        if period_id is None:
            return self.season_dir(season) / "standings_season.csv"
        return self.season_dir(season) / f"standings_period_{period_id}.csv"

    def seasons(self) -> List[int]:
        if not self.root.exists():
            return []
        return sorted(int(p.name) for p in self.root.iterdir() if p.is_dir() and p.name.isdigit())

    def _read_stats(self, season: int) -> pd.DataFrame:
        path = self.stats_path(season)
        if not path.exists():
            return pd.DataFrame(columns=STAT_COLUMNS)
        df = pd.read_csv(path, dtype={"player_name_raw": str, "team_code": str, "external_id": str})
        for column in STAT_COLUMNS:
            if column not in df.columns:
                df[column] = None
        return df[STAT_COLUMNS]

    def _write_stats(self, season: int, records: Sequence[PlayerPeriodStat]) -> Path:
        df = pd.DataFrame([record.as_record() for record in records], columns=STAT_COLUMNS)
        df = df.sort_values(KEY_COLUMNS, kind="mergesort") if not df.empty else df
        return write_dataframe(df, self.stats_path(season))

    def _to_records(self, df: pd.DataFrame) -> List[PlayerPeriodStat]:
        return [PlayerPeriodStat.from_record(row) for row in df.to_dict(orient="records")]

    def load_season(self, season: int) -> List[PlayerPeriodStat]:
        return self._to_records(self._read_stats(season))

    def load_all(self) -> List[PlayerPeriodStat]:
        """Every stored row across seasons, oldest season first."""

        records: List[PlayerPeriodStat] = []
        for season in self.seasons():
            records.extend(self.load_season(season))
        return records

    def load_period(self, season: int, period_id: int) -> List[PlayerPeriodStat]:
        df = self._read_stats(season)
        if df.empty:
            return []
        return self._to_records(df.loc[pd.to_numeric(df["period_id"]) == period_id])

    def upsert(self, season: int, rows: Iterable[PlayerPeriodStat]) -> Tuple[int, int]:
        """Insert or update rows keyed by (period, raw name, team); returns (inserted, updated)."""

        existing: Dict[Tuple[int, str, str], PlayerPeriodStat] = {
            record.key: record for record in self.load_season(season)
        }
        inserted = updated = 0
        for row in rows:
            if row.key in existing:
                updated += 1
            else:
                inserted += 1
            existing[row.key] = row
        self._write_stats(season, list(existing.values()))
        LOGGER.info("Season %s upsert: %s inserted, %s updated", season, inserted, updated)
        return inserted, updated

    def replace_period(self, season: int, period_id: int, rows: Iterable[PlayerPeriodStat]) -> int:
        kept = [record for record in self.load_season(season) if record.period_id != period_id]
        new_rows = list(rows)
        self._write_stats(season, kept + new_rows)
        return len(new_rows)

    def prune_periods(self, season: int, valid_period_ids: Iterable[int]) -> List[int]:
        valid = set(valid_period_ids)
        records = self.load_season(season)
        orphaned = sorted({record.period_id for record in records if record.period_id not in valid})
        if orphaned:
            LOGGER.info("Season %s: deleting orphaned periods %s", season, orphaned)
            self._write_stats(season, [record for record in records if record.period_id in valid])
        return orphaned

    def save_periods(self, season: int, periods: Sequence[Period]) -> Path:
        df = pd.DataFrame([period.as_record(season) for period in periods])
        return write_dataframe(df, self.periods_path(season))

    def load_periods(self, season: int) -> List[Period]:
        path = self.periods_path(season)
        if not path.exists():
            return []
        df = pd.read_csv(path, dtype={"tab_name": str})
        return [
            Period(
                period_id=int(row["period_id"]),
                start=date.fromisoformat(str(row["start_date"])),
                end=date.fromisoformat(str(row["end_date"])),
                tab_name=str(row["tab_name"]),
                kind=SheetKind(str(row.get("kind") or SheetKind.PERIOD.value)),
            )
            for row in df.to_dict(orient="records")
        ]

    def find_period(self, season: int, period_id: int) -> Optional[Period]:
        return next((p for p in self.load_periods(season) if p.period_id == period_id), None)

    def save_standings_sheet(self, season: int, records: Sequence[Mapping[str, object]]) -> Path:
        return write_dataframe(pd.DataFrame(list(records)), self.standings_sheet_path(season))

    def save_identity_report(self, season: int, records: Sequence[Mapping[str, object]]) -> Path:
        df = pd.DataFrame(list(records), columns=["status", "team_code", "player_name_raw", "candidates"])
        return write_dataframe(df, self.identity_report_path(season))
