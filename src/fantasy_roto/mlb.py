from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional

import httpx

from .errors import ProviderError
from .models import Identity, StatDelta
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)

HITTING_FIELDS = {
    "atBats": "AB",
    "hits": "H",
    "runs": "R",
    "homeRuns": "HR",
    "rbi": "RBI",
    "stolenBases": "SB",
    "avg": "AVG",
}
PITCHING_FIELDS = {
    "wins": "W",
    "saves": "SV",
    "strikeOuts": "K",
    "inningsPitched": "IP",
    "earnedRuns": "ER",
    "era": "ERA",
    "whip": "WHIP",
}


class MlbStatsClient:
    """Thin wrapper around the public MLB Stats API."""

    def __init__(self, settings: AppSettings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self.base_url = settings.mlb_api_base.rstrip("/")
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.mlb_timeout_seconds),
            headers={"Accept": "application/json"},
        )

    def _get(self, path: str, params: Mapping[str, object] | None = None) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        LOGGER.debug("GET %s params=%s", url, params)
        try:
            response = self._client.get(url, params=dict(params or {}))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"MLB API request failed for {url} with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"MLB API request failed for {url}: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"MLB API returned invalid JSON for {url}") from exc

    def fetch_person(
        self,
        external_id: str,
        start: date,
        end: date,
        groups: Iterable[str] = ("hitting",),
    ) -> dict:
        group_list = ",".join(groups)
        hydrate = (
            "currentTeam,"
            f"stats(group=[{group_list}],type=[byDateRange],"
            f"startDate={start.isoformat()},endDate={end.isoformat()})"
        )
        return self._get(f"people/{external_id}", {"hydrate": hydrate, "date": start.isoformat()})

    def fetch_team_abbreviations(self, season: Optional[int] = None) -> Dict[int, str]:
        params: Dict[str, object] = {"sportId": 1}
        if season is not None:
            params["season"] = season
        data = self._get("teams", params)
        mapping: Dict[int, str] = {}
        for team in data.get("teams") or []:
            team_id = team.get("id")
            abbrev = team.get("abbreviation") or team.get("teamCode") or team.get("name")
            if team_id is not None and abbrev:
                mapping[int(team_id)] = str(abbrev)
        return mapping

    def search_player(self, name: str) -> Optional[Identity]:
        """Look a player up by name; the provider's best match wins."""

        data = self._get("people/search", {"names": name})
        people = data.get("people") if isinstance(data, dict) else None
        if not people or not isinstance(people[0], dict) or people[0].get("id") is None:
            return None
        person = people[0]
        return Identity(full_name=str(person.get("fullName") or name), external_id=str(person["id"]))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "MlbStatsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def parse_innings(value: Any) -> float:
    """Convert box-score innings (``"6.2"`` = 6 and 2/3) to a float."""

    if value in (None, ""):
        return 0.0
    text = str(value)
    whole, _, outs = text.partition(".")
    try:
        innings = float(int(whole or 0))
        if outs:
            innings += int(outs[0]) / 3.0
    except ValueError:
        return 0.0
    return innings


def _parse_rate(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_count(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _group_stats(stat: Mapping[str, Any], fields: Mapping[str, str]) -> Dict[str, float]:
    parsed: Dict[str, float] = {}
    for source, target in fields.items():
        raw = stat.get(source)
        if target == "IP":
            parsed[target] = parse_innings(raw)
        elif target in ("AVG", "ERA", "WHIP"):
            parsed[target] = _parse_rate(raw)
        else:
            parsed[target] = _parse_count(raw)
    return parsed


def parse_person_stats(
    payload: Mapping[str, Any],
    external_id: str,
    team_lookup: Mapping[int, str] | None = None,
) -> Optional[StatDelta]:
    """Pull date-ranged stats and the current team out of a ``people`` response.

    Returns ``None`` when the response carries neither stats nor a team.
    """

    people = payload.get("people") or []
    if not people:
        return None
    person = people[0] or {}

    mlb_team: Optional[str] = None
    current_team = person.get("currentTeam") or {}
    if current_team:
        mlb_team = current_team.get("abbreviation")
        if not mlb_team and current_team.get("id") is not None and team_lookup:
            mlb_team = team_lookup.get(int(current_team["id"]))

    stats: Dict[str, float] = {}
    for group in person.get("stats") or []:
        name = str((group.get("group") or {}).get("displayName") or "").lower()
        splits = group.get("splits") or []
        if not splits:
            continue
        stat = splits[0].get("stat") or {}
        if name == "hitting":
            stats.update(_group_stats(stat, HITTING_FIELDS))
        elif name == "pitching":
            stats.update(_group_stats(stat, PITCHING_FIELDS))

    if not stats and not mlb_team:
        return None
    return StatDelta(external_id=str(external_id), stats=stats, mlb_team=mlb_team)
