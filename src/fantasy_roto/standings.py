from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

import pandas as pd

from .league import DEFAULT_CATEGORIES, TIE_POLICIES, Category
from .models import SCORING_STATS, PlayerPeriodStat, StandingsRow, TeamPeriodAggregate

LOGGER = logging.getLogger(__name__)

SUM_COLUMNS = ("R", "HR", "RBI", "SB", "H", "AB", "W", "SV", "K", "ER", "IP")


def stats_frame(stats: Iterable[PlayerPeriodStat]) -> pd.DataFrame:
    records = [stat.as_record() for stat in stats]
    return pd.DataFrame(records)


def aggregate_teams(stats: Iterable[PlayerPeriodStat]) -> List[TeamPeriodAggregate]:
    """Sum counting stats per team and keep the ingredients for rate stats.

    Teams come back in order of first appearance. WHIP is rebuilt as the
    innings-weighted sum of per-player WHIP because walks and hits allowed are
    not stored.
    """

    df = stats_frame(stats)
    if df.empty:
        return []

    for column in SUM_COLUMNS + ("WHIP",):
        if column not in df.columns:
            df[column] = 0.0
        df[column] = pd.to_numeric(df[column], errors="coerce").fillna(0.0)
    df["whip_component"] = df["WHIP"] * df["IP"]

    grouped = df.groupby("team_code", sort=False)[list(SUM_COLUMNS) + ["whip_component"]].sum()

    aggregates: List[TeamPeriodAggregate] = []
    for team_code, row in grouped.iterrows():
        aggregates.append(
            TeamPeriodAggregate(
                team_code=str(team_code),
                R=int(row["R"]),
                HR=int(row["HR"]),
                RBI=int(row["RBI"]),
                SB=int(row["SB"]),
                H=int(row["H"]),
                AB=int(row["AB"]),
                W=int(row["W"]),
                SV=int(row["SV"]),
                K=int(row["K"]),
                ER=float(row["ER"]),
                IP=float(row["IP"]),
                whip_component=float(row["whip_component"]),
            )
        )
    return aggregates


def rank_category(
    values: Mapping[str, float],
    higher_is_better: bool,
    tie_policy: str = "ordinal",
) -> Dict[str, float]:
    """Award N points to the best team down to 1 for the worst.

    ``ordinal`` keeps input order among equal values, so ties are broken by
    team order; ``split`` gives tied teams the average of the points for the
    ranks they span.
    """

    if tie_policy not in TIE_POLICIES:
        raise ValueError(f"Unknown tie policy {tie_policy!r}")
    if not values:
        return {}

    series = pd.Series(values, dtype="float64")
    n = len(series)
    ordered = series.sort_values(ascending=not higher_is_better, kind="mergesort")
    ordinal_points = pd.Series(range(n, 0, -1), index=ordered.index, dtype="float64")

    if tie_policy == "ordinal":
        points = ordinal_points
    else:
        points = ordinal_points.groupby(ordered.values).transform("mean")
    return {str(team): float(points[team]) for team in series.index}


def calculate(
    stats: Sequence[PlayerPeriodStat],
    categories: Sequence[Category] = DEFAULT_CATEGORIES,
    tie_policy: str = "ordinal",
) -> List[StandingsRow]:
    """Roto leaderboard for one period, sorted by total score descending."""

    aggregates = aggregate_teams(stats)
    if not aggregates:
        return []

    rows = {agg.team_code: StandingsRow(team_code=agg.team_code) for agg in aggregates}
    for category in categories:
        if category.key not in SCORING_STATS:
            LOGGER.warning("Skipping unknown scoring category %r", category.key)
            continue
        values = {agg.team_code: agg.value(category.key) for agg in aggregates}
        points = rank_category(values, not category.lower_is_better, tie_policy)
        for team_code, value in values.items():
            row = rows[team_code]
            row.values[category.key] = value
            row.points[category.key] = points[team_code]

    for row in rows.values():
        row.total_score = float(sum(row.points.values()))
    return _ordered(list(rows.values()))


def season_standings(period_tables: Iterable[Sequence[StandingsRow]]) -> List[StandingsRow]:
    """Sum per-period totals (and category points) across periods."""

    combined: Dict[str, StandingsRow] = {}
    for table in period_tables:
        for row in table:
            target = combined.setdefault(row.team_code, StandingsRow(team_code=row.team_code))
            for key, points in row.points.items():
                target.points[key] = target.points.get(key, 0.0) + points
            target.total_score += row.total_score
    return _ordered(list(combined.values()))


def _ordered(rows: List[StandingsRow]) -> List[StandingsRow]:
    ordered = sorted(rows, key=lambda row: row.total_score, reverse=True)
    for idx, row in enumerate(ordered, start=1):
        row.rank = idx
    return ordered


def standings_frame(rows: Sequence[StandingsRow], categories: Sequence[Category] = DEFAULT_CATEGORIES) -> pd.DataFrame:
    records = []
    for row in rows:
        record: Dict[str, object] = {"rank": row.rank, "team_code": row.team_code}
        for category in categories:
            if category.key in row.values:
                record[category.key] = row.values[category.key]
            record[f"{category.key}_points"] = row.points.get(category.key, 0.0)
        record["total_score"] = row.total_score
        records.append(record)
    return pd.DataFrame(records)
