from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import click

from .errors import ArchiveError
from .ingest import SeasonImporter
from .league import TIE_POLICIES, LeagueConfig
from .mlb import MlbStatsClient
from .models import Period, StandingsRow
from .refresh import PeriodStatRefresher, RateLimiter
from .settings import AppSettings, get_settings
from .standings import calculate, season_standings, standings_frame
from .store import HistoryStore, write_dataframe

env_file_option = click.option(
    "--env-file",
    type=click.Path(path_type=Path, dir_okay=False, exists=False, readable=True),
    default=".env",
    show_default=True,
    help="Path to the .env file to load.",
)
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False, exists=False, readable=True),
    default=None,
    help="League configuration file (defaults to LEAGUE_CONFIG or config/league.yaml).",
)


def _configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_context(env_file: Path, config_path: Optional[Path]) -> tuple[AppSettings, LeagueConfig]:
    settings = get_settings(env_file)
    _configure_logging(settings)
    path = config_path or settings.league_config
    try:
        config = LeagueConfig.load(path)
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    except ArchiveError as exc:
        raise click.ClickException(f"Invalid league config {path}: {exc}") from exc
    return settings, config


def _require_period(store: HistoryStore, season: int, period_id: int) -> Period:
    period = store.find_period(season, period_id)
    if period is None:
        raise click.BadParameter(
            f"Period {period_id} not found for season {season}; run `archive import` first",
            param_hint="--period",
        )
    return period


def _env_rows(settings: AppSettings) -> list[tuple[str, str]]:
    return [
        ("DATA_ROOT", str(settings.data_root)),
        ("LOG_LEVEL", settings.log_level),
        ("LEAGUE_CONFIG", str(settings.league_config)),
        ("MLB_API_BASE", settings.mlb_api_base),
        ("MLB_REQUEST_DELAY_MS", str(settings.mlb_request_delay_ms)),
        ("MLB_MAX_WORKERS", str(settings.mlb_max_workers)),
        ("MLB_TIMEOUT_SECONDS", str(settings.mlb_timeout_seconds)),
    ]


@click.group()
def cli() -> None:
    """Roto league archive ingestion and scoring CLI."""


@cli.command()
@env_file_option
def env(env_file: Path) -> None:
    """Show the current environment configuration."""

    settings = get_settings(env_file)
    rows = _env_rows(settings)
    width = max(len(key) for key, _ in rows)
    for key, value in rows:
        click.echo(f"{key.ljust(width)} : {value}")


@cli.group()
def archive() -> None:
    """Season workbook import and stat refresh."""


@archive.command("import")
@click.argument("workbook", type=click.Path(path_type=Path, dir_okay=False, exists=True, readable=True))
@click.option("--season", type=int, required=True, help="Season the workbook belongs to.")
@config_option
@env_file_option
def archive_import(workbook: Path, season: int, config_path: Optional[Path], env_file: Path) -> None:
    """Import a season workbook into the history store."""

    settings, config = _load_context(env_file, config_path)
    store = HistoryStore(settings)
    result = SeasonImporter(config, store).import_file(workbook, season)

    for period in result.periods:
        click.echo(
            f"Period {period.period_id} {period.tab_name!r} "
            f"{period.start.isoformat()}..{period.end.isoformat()}: "
            f"{result.rows_by_period.get(period.period_id, 0)} rows "
            f"({result.layouts.get(period.tab_name, 'missing')})"
        )
    if result.orphaned_periods:
        click.echo(f"Removed orphaned periods: {', '.join(str(p) for p in result.orphaned_periods)}")
    click.echo(
        f"Season {season}: {result.total_rows} rows → {store.stats_path(season)} "
        f"({len(result.report.fuzzy)} fuzzy, {len(result.report.unresolved)} unresolved, "
        f"{len(result.report.ambiguous)} ambiguous)"
    )


@archive.command("refresh")
@click.option("--season", type=int, required=True, help="Season to refresh.")
@click.option("--period", "period_id", type=int, default=None, help="Single period to refresh (default: all).")
@env_file_option
def archive_refresh(season: int, period_id: Optional[int], env_file: Path) -> None:
    """Backfill official MLB stats for identified players."""

    settings = get_settings(env_file)
    _configure_logging(settings)
    store = HistoryStore(settings)

    periods = [_require_period(store, season, period_id)] if period_id is not None else store.load_periods(season)
    if not periods:
        raise click.ClickException(f"No periods stored for season {season}; run `archive import` first")

    with MlbStatsClient(settings) as client:
        refresher = PeriodStatRefresher(client, RateLimiter.from_settings(settings), season=season)
        for period in periods:
            records = store.load_period(season, period.period_id)
            summary = refresher.refresh_period(records, period)
            store.replace_period(season, period.period_id, records)
            click.echo(
                f"Period {period.period_id}: {summary.updated} rows updated, "
                f"{summary.skipped} skipped, {summary.failed} failed"
            )


@cli.group()
def standings() -> None:
    """Roto standings from stored period stats."""


def _tie_policy(config: LeagueConfig, override: Optional[str]) -> str:
    return override or config.tie_policy


tie_policy_option = click.option(
    "--tie-policy",
    type=click.Choice(TIE_POLICIES),
    default=None,
    help="Override the configured tie policy.",
)


@standings.command("period")
@click.option("--season", type=int, required=True)
@click.option("--period", "period_id", type=int, required=True)
@tie_policy_option
@config_option
@env_file_option
def standings_period(
    season: int,
    period_id: int,
    tie_policy: Optional[str],
    config_path: Optional[Path],
    env_file: Path,
) -> None:
    """Compute the roto leaderboard for one period."""

    settings, config = _load_context(env_file, config_path)
    store = HistoryStore(settings)
    _require_period(store, season, period_id)

    rows = calculate(store.load_period(season, period_id), config.categories, _tie_policy(config, tie_policy))
    output_path = write_dataframe(
        standings_frame(rows, config.categories),
        store.standings_path(season, period_id),
    )
    _echo_table(rows)
    click.echo(f"Period {period_id} standings → {output_path} ({len(rows)} teams)")


@standings.command("season")
@click.option("--season", type=int, required=True)
@tie_policy_option
@config_option
@env_file_option
def standings_season(season: int, tie_policy: Optional[str], config_path: Optional[Path], env_file: Path) -> None:
    """Sum per-period roto totals across the whole season."""

    settings, config = _load_context(env_file, config_path)
    store = HistoryStore(settings)
    periods = store.load_periods(season)
    if not periods:
        raise click.ClickException(f"No periods stored for season {season}; run `archive import` first")

    policy = _tie_policy(config, tie_policy)
    tables = [calculate(store.load_period(season, p.period_id), config.categories, policy) for p in periods]
    rows = season_standings(tables)
    output_path = write_dataframe(standings_frame(rows, config.categories), store.standings_path(season))
    _echo_table(rows)
    click.echo(f"Season {season} standings → {output_path} ({len(periods)} periods)")


def _echo_table(rows: List[StandingsRow]) -> None:
    for row in rows:
        click.echo(f"{row.rank:>3}  {row.team_code:<6} {row.total_score:g}")


@cli.group()
def identity() -> None:
    """Player identity maintenance."""


@identity.command("check")
@click.option("--season", type=int, required=True)
@click.option("--period", "period_id", type=int, default=None)
@click.option("--search/--no-search", default=False, help="Look up still-unresolved names through the MLB API.")
@config_option
@env_file_option
def identity_check(
    season: int,
    period_id: Optional[int],
    search: bool,
    config_path: Optional[Path],
    env_file: Path,
) -> None:
    """Re-run name resolution for stored rows without an external id."""

    settings, config = _load_context(env_file, config_path)
    store = HistoryStore(settings)
    importer = SeasonImporter(config, store)
    if search:
        with MlbStatsClient(settings) as client:
            report = importer.reresolve(season, period_id, client=client)
    else:
        report = importer.reresolve(season, period_id)

    for team_code, name, candidates in report.ambiguous:
        options = ", ".join(f"{c.full_name} ({c.external_id})" for c in candidates)
        click.echo(f"AMBIGUOUS [{team_code}] {name}: {options}")
    for team_code, name in report.unresolved:
        click.echo(f"UNRESOLVED [{team_code}] {name}")
    click.echo(
        f"Identity report → {store.identity_report_path(season)} "
        f"({len(report.fuzzy)} fuzzy, {len(report.unresolved)} unresolved, {len(report.ambiguous)} ambiguous)"
    )


if __name__ == "__main__":
    cli()
