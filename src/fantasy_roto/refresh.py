"""Backfill official date-ranged stats for every identified player in a period."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import ProviderError
from .mlb import MlbStatsClient, parse_person_stats
from .models import Identity, Period, PlayerPeriodStat, StatDelta
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Concurrency cap plus a minimum spacing between request starts."""

    def __init__(
        self,
        min_interval: float,
        max_concurrent: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.min_interval = max(min_interval, 0.0)
        self.max_concurrent = max_concurrent
        self._clock = clock
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._next_start = 0.0

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RateLimiter":
        return cls(settings.request_delay_seconds, settings.mlb_max_workers)

    def _wait_turn(self) -> None:
        with self._lock:
            now = self._clock()
            start = max(now, self._next_start)
            self._next_start = start + self.min_interval
        delay = start - now
        if delay > 0:
            self._sleep(delay)

    @contextmanager
    def slot(self) -> Iterator[None]:
        with self._slots:
            self._wait_turn()
            yield


@dataclass
class RefreshSummary:
    requested: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False


def _groups_by_player(identities: Sequence[Identity]) -> Dict[str, Tuple[Identity, set[str]]]:
    grouped: Dict[str, Tuple[Identity, set[str]]] = {}
    for identity in identities:
        if identity.external_id is None:
            continue
        entry = grouped.setdefault(identity.external_id, (identity, set()))
        entry[1].add("pitching" if identity.is_pitcher else "hitting")
    return grouped


class PeriodStatRefresher:
    def __init__(
        self,
        client: MlbStatsClient,
        limiter: RateLimiter,
        *,
        season: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.season = season
        self.cancel_event = cancel_event or threading.Event()
        self._team_lookup: Optional[Mapping[int, str]] = None
        self.last_summary = RefreshSummary()

    def cancel(self) -> None:
        self.cancel_event.set()

    def team_lookup(self) -> Mapping[int, str]:
        if self._team_lookup is None:
            try:
                with self.limiter.slot():
                    self._team_lookup = self.client.fetch_team_abbreviations(self.season)
            except ProviderError as exc:
                LOGGER.warning("Could not load MLB team abbreviations: %s", exc)
                self._team_lookup = {}
        return self._team_lookup

    def _fetch_one(
        self,
        identity: Identity,
        groups: set[str],
        start: date,
        end: date,
    ) -> Optional[StatDelta]:
        if self.cancel_event.is_set():
            return None
        external_id = identity.external_id or ""
        try:
            with self.limiter.slot():
                payload = self.client.fetch_person(external_id, start, end, sorted(groups))
        except ProviderError as exc:
            LOGGER.warning(
                "Skipping %s (%s) for %s..%s: %s",
                identity.full_name,
                external_id,
                start.isoformat(),
                end.isoformat(),
                exc,
            )
            raise
        try:
            delta = parse_person_stats(payload, external_id, self.team_lookup())
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping %s (%s): malformed provider response: %s", identity.full_name, external_id, exc)
            raise ProviderError(f"Malformed MLB API response for person {external_id}") from exc
        if delta is None:
            LOGGER.info(
                "No stats returned for %s (%s) in %s..%s",
                identity.full_name,
                external_id,
                start.isoformat(),
                end.isoformat(),
            )
        return delta

    def refresh(self, identities: Sequence[Identity], start: date, end: date) -> Dict[str, StatDelta]:
        """Fetch period-scoped stats for every identity that has an external id.

        Provider errors, timeouts, malformed payloads and empty responses skip
        the player; the batch itself never aborts.
        """

        grouped = _groups_by_player(identities)
        summary = RefreshSummary(requested=len(grouped))
        results: Dict[str, StatDelta] = {}
        if not grouped:
            self.last_summary = summary
            return results

        self.team_lookup()
        with ThreadPoolExecutor(max_workers=self.limiter.max_concurrent) as executor:
            futures = {
                external_id: executor.submit(self._fetch_one, identity, groups, start, end)
                for external_id, (identity, groups) in grouped.items()
            }
            for external_id, future in futures.items():
                try:
                    delta = future.result()
                except ProviderError:
                    summary.failed += 1
                    continue
                if delta is None:
                    summary.skipped += 1
                    continue
                results[external_id] = delta

        summary.updated = len(results)
        summary.cancelled = self.cancel_event.is_set()
        if summary.cancelled:
            LOGGER.warning("Refresh cancelled after %s of %s players", len(results), len(grouped))
        self.last_summary = summary
        return results

    def refresh_period(self, records: List[PlayerPeriodStat], period: Period) -> RefreshSummary:
        """Fetch and apply provider stats to the stored rows of one period in place."""

        identities = [record.identity() for record in records if record.external_id]
        deltas = self.refresh(identities, period.start, period.end)

        updated = 0
        for record in records:
            delta = deltas.get(record.external_id or "")
            if delta is not None and delta.apply_to(record):
                updated += 1
        summary = self.last_summary
        summary.updated = updated
        LOGGER.info(
            "Period %s (%s..%s): %s rows updated, %s players skipped, %s failed",
            period.period_id,
            period.start.isoformat(),
            period.end.isoformat(),
            updated,
            summary.skipped,
            summary.failed,
        )
        return summary
