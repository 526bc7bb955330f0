from datetime import date
from pathlib import Path
from typing import Callable

import httpx
import pytest

from fantasy_roto.errors import ProviderError
from fantasy_roto.mlb import MlbStatsClient, parse_innings, parse_person_stats
from fantasy_roto.models import Period, PlayerPeriodStat
from fantasy_roto.refresh import PeriodStatRefresher, RateLimiter
from fantasy_roto.settings import AppSettings


def make_settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        data_root=tmp_path,
        log_level="INFO",
        league_config=tmp_path / "league.yaml",
        mlb_api_base="https://statsapi.test/api/v1",
        mlb_request_delay_ms=0,
    )


TEAMS_PAYLOAD = {"teams": [{"id": 147, "abbreviation": "NYY"}, {"id": 111, "abbreviation": "BOS"}]}


def person_payload(person_id: int, group: str, stat: dict, team_id: int = 147) -> dict:
    return {
        "people": [
            {
                "id": person_id,
                "currentTeam": {"id": team_id},
                "stats": [{"group": {"displayName": group}, "splits": [{"stat": stat}]}],
            }
        ]
    }


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("6.2", 6 + 2 / 3), ("6.1", 6 + 1 / 3), ("7.0", 7.0), ("12", 12.0), (None, 0.0), ("abc", 0.0)],
)
def test_parse_innings_box_score_notation(raw: object, expected: float) -> None:
    assert parse_innings(raw) == pytest.approx(expected)


def test_parse_person_stats_maps_fields_and_team() -> None:
    payload = person_payload(
        1,
        "pitching",
        {"wins": 2, "saves": 0, "strikeOuts": 15, "inningsPitched": "12.1", "earnedRuns": 3, "era": "2.19", "whip": "0.97"},
    )
    delta = parse_person_stats(payload, "1", {147: "NYY"})

    assert delta is not None
    assert delta.mlb_team == "NYY"
    assert delta.stats["W"] == 2
    assert delta.stats["IP"] == pytest.approx(12 + 1 / 3)
    assert delta.stats["ERA"] == pytest.approx(2.19)
    assert delta.has_group(True)
    assert not delta.has_group(False)


def test_parse_person_stats_empty_response() -> None:
    assert parse_person_stats({"people": []}, "1") is None
    assert parse_person_stats({"people": [{"id": 1, "stats": []}]}, "1") is None


def test_rate_limiter_spaces_request_starts() -> None:
    clock = FakeClock()
    limiter = RateLimiter(0.02, clock=clock, sleep=clock.sleep)

    for _ in range(3):
        with limiter.slot():
            pass

    assert clock.sleeps == [pytest.approx(0.02), pytest.approx(0.02)]


def test_rate_limiter_requires_a_slot() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0.0, max_concurrent=0)


def test_client_wraps_http_errors(tmp_path: Path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    client = MlbStatsClient(make_settings(tmp_path), client=httpx.Client(transport=transport))

    with pytest.raises(ProviderError) as excinfo:
        client.fetch_person("1", date(2024, 4, 1), date(2024, 4, 14))
    assert excinfo.value.status_code == 503


def test_refresh_period_applies_stats_and_skips_failures(tmp_path: Path) -> None:
    seen_params: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/teams"):
            return httpx.Response(200, json=TEAMS_PAYLOAD)
        if path.endswith("/people/1"):
            seen_params.append(dict(request.url.params))
            return httpx.Response(
                200,
                json=person_payload(
                    1,
                    "hitting",
                    {"atBats": 40, "hits": 12, "runs": 8, "homeRuns": 3, "rbi": 9, "stolenBases": 1, "avg": ".300"},
                ),
            )
        if path.endswith("/people/2"):
            return httpx.Response(500)
        if path.endswith("/people/3"):
            return httpx.Response(
                200,
                json=person_payload(3, "pitching", {"wins": 1, "saves": 4, "strikeOuts": 10, "inningsPitched": "6.2", "earnedRuns": 2, "era": "2.70", "whip": "1.05"}, team_id=111),
            )
        return httpx.Response(404)

    settings = make_settings(tmp_path)
    client = MlbStatsClient(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))
    clock = FakeClock()
    refresher = PeriodStatRefresher(client, RateLimiter(0.0, clock=clock, sleep=clock.sleep), season=2024)

    records = [
        PlayerPeriodStat(period_id=2, player_name_raw="J. Hitter", team_code="DDG", full_name="Joe Hitter", external_id="1", AB=1),
        PlayerPeriodStat(period_id=2, player_name_raw="B. Broken", team_code="DDG", full_name="Bob Broken", external_id="2", HR=7),
        PlayerPeriodStat(period_id=2, player_name_raw="R. Arm", team_code="SKD", full_name="Rob Arm", external_id="3", is_pitcher=True),
        PlayerPeriodStat(period_id=2, player_name_raw="No Id", team_code="SKD"),
    ]
    period = Period(period_id=2, start=date(2024, 4, 12), end=date(2024, 4, 25), tab_name="4.12")

    summary = refresher.refresh_period(records, period)

    assert summary.requested == 3
    assert summary.failed == 1
    assert summary.updated == 2

    hitter, broken, arm, unknown = records
    assert hitter.AB == 40
    assert hitter.AVG == pytest.approx(0.3)
    assert hitter.mlb_team == "NYY"
    assert broken.HR == 7
    assert arm.IP == pytest.approx(6 + 2 / 3)
    assert arm.SV == 4
    assert arm.mlb_team == "BOS"
    assert unknown.AB == 0

    assert seen_params[0]["date"] == "2024-04-12"
    assert "startDate=2024-04-12" in seen_params[0]["hydrate"]
    assert "endDate=2024-04-25" in seen_params[0]["hydrate"]


def test_cancelled_refresh_fetches_nothing(tmp_path: Path) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"teams": []})

    client = MlbStatsClient(make_settings(tmp_path), client=httpx.Client(transport=httpx.MockTransport(handler)))
    refresher = PeriodStatRefresher(client, RateLimiter(0.0))
    refresher.cancel()

    records = [PlayerPeriodStat(period_id=1, player_name_raw="J. Hitter", team_code="DDG", external_id="1")]
    summary = refresher.refresh_period(records, Period(1, date(2024, 3, 28), date(2024, 4, 11), "Draft"))

    assert summary.cancelled is True
    assert summary.updated == 0
    assert not any("/people/" in path for path in calls)


def hitting_payload(person_id: int) -> dict:
    return person_payload(person_id, "hitting", {"atBats": 30, "hits": 9, "homeRuns": 2, "avg": ".300"})


def refresh_two_hitters(tmp_path: Path, first_player: Callable[[httpx.Request], httpx.Response]):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/teams"):
            return httpx.Response(200, json=TEAMS_PAYLOAD)
        if path.endswith("/people/1"):
            return first_player(request)
        if path.endswith("/people/2"):
            return httpx.Response(200, json=hitting_payload(2))
        return httpx.Response(404)

    client = MlbStatsClient(make_settings(tmp_path), client=httpx.Client(transport=httpx.MockTransport(handler)))
    refresher = PeriodStatRefresher(client, RateLimiter(0.0), season=2024)
    records = [
        PlayerPeriodStat(period_id=2, player_name_raw="J. One", team_code="DDG", external_id="1", AB=5),
        PlayerPeriodStat(period_id=2, player_name_raw="J. Two", team_code="SKD", external_id="2", AB=5),
    ]
    summary = refresher.refresh_period(records, Period(2, date(2024, 4, 12), date(2024, 4, 25), "4.12"))
    return summary, records


def test_timed_out_player_is_skipped(tmp_path: Path) -> None:
    def time_out(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    summary, (first, second) = refresh_two_hitters(tmp_path, time_out)

    assert summary.failed == 1
    assert summary.updated == 1
    assert first.AB == 5
    assert second.AB == 30


@pytest.mark.parametrize(
    "body",
    [
        {"people": [{"currentTeam": {"id": "abc"}}]},
        {"people": ["not a person"]},
        [1, 2, 3],
    ],
)
def test_malformed_payload_is_skipped(tmp_path: Path, body: object) -> None:
    summary, (first, second) = refresh_two_hitters(tmp_path, lambda request: httpx.Response(200, json=body))

    assert summary.failed == 1
    assert first.AB == 5
    assert second.AB == 30
    assert second.mlb_team == "NYY"


def test_search_player_returns_best_match(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/people/search")
        if request.url.params["names"] == "Barry Bonds":
            return httpx.Response(200, json={"people": [{"id": 111188, "fullName": "Barry Bonds"}]})
        return httpx.Response(200, json={"people": []})

    client = MlbStatsClient(make_settings(tmp_path), client=httpx.Client(transport=httpx.MockTransport(handler)))

    found = client.search_player("Barry Bonds")
    assert found is not None
    assert (found.full_name, found.external_id) == ("Barry Bonds", "111188")
    assert client.search_player("Nobody Atall") is None
