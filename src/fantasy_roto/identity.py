"""Map abbreviated archive player names to canonical identities.

Resolution order:

1. exact lookup of the raw string against every previously ingested raw name;
2. fuzzy lookup by (last name, first initial, pitcher flag) against the
   full-name index.

Fuzzy lookups that produce more than one candidate come back as
:class:`Ambiguous`; the resolver never picks one on the caller's behalf.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .models import Identity, PlayerPeriodStat

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FuzzyEntry:
    last: str
    first_initial: str
    is_pitcher: bool
    identity: Identity


@dataclass(frozen=True)
class Resolved:
    identity: Identity
    fuzzy: bool = False
    note: Optional[str] = None


@dataclass(frozen=True)
class Unresolved:
    name_raw: str


@dataclass(frozen=True)
class Ambiguous:
    name_raw: str
    candidates: Tuple[Identity, ...]


Resolution = Union[Resolved, Unresolved, Ambiguous]


@dataclass(frozen=True)
class KnowledgeBase:
    """Immutable snapshot of every identity seen in stored history.

    Built once per ingestion run and discarded afterwards.
    """

    exact: Mapping[str, Identity]
    fuzzy: Tuple[FuzzyEntry, ...]

    @classmethod
    def from_records(cls, records: Iterable[PlayerPeriodStat]) -> "KnowledgeBase":
        exact: Dict[str, Identity] = {}
        fuzzy: List[FuzzyEntry] = []
        seen: set[tuple[str, Optional[str], bool]] = set()

        for record in records:
            identity = record.identity()
            # Rows that were never resolved or corrected carry no identity worth reusing.
            corrected = bool(record.full_name) and record.full_name != record.player_name_raw
            if record.player_name_raw not in exact and (record.external_id is not None or corrected):
                exact[record.player_name_raw] = identity

            if not record.full_name or record.external_id is None:
                continue
            parts = record.full_name.strip().split()
            if len(parts) < 2:
                continue
            marker = (record.full_name, record.external_id, record.is_pitcher)
            if marker in seen:
                continue
            seen.add(marker)
            fuzzy.append(
                FuzzyEntry(
                    last=parts[-1].lower(),
                    first_initial=parts[0][0].lower(),
                    is_pitcher=record.is_pitcher,
                    identity=identity,
                )
            )

        LOGGER.info("Knowledge base built: %s exact names, %s full-name entries", len(exact), len(fuzzy))
        return cls(exact=exact, fuzzy=tuple(fuzzy))

    def candidates(self, last: str, first_initial: str, is_pitcher: bool) -> Tuple[Identity, ...]:
        matches: List[Identity] = []
        seen: set[tuple[str, Optional[str]]] = set()
        for entry in self.fuzzy:
            if entry.last != last or entry.first_initial != first_initial or entry.is_pitcher != is_pitcher:
                continue
            marker = (entry.identity.full_name, entry.identity.external_id)
            if marker in seen:
                continue
            seen.add(marker)
            matches.append(entry.identity)
        return tuple(matches)


def parse_name(name_raw: str) -> Optional[Tuple[str, str]]:
    """Split a raw archive name into ``(last name, first initial)``.

    Accepts ``"J. Smith"``, ``"Smith J"`` and ``"John Smith"`` shapes.
    """

    cleaned = name_raw.lower().replace(".", " ").replace(",", " ")
    parts = cleaned.split()
    if len(parts) < 2:
        return None
    if len(parts[1]) == 1 and len(parts[0]) > 1:
        return parts[0], parts[1]
    return parts[-1], parts[0][0]


def resolve(name_raw: str, is_pitcher_guess: bool, knowledge_base: KnowledgeBase) -> Resolution:
    if name_raw in knowledge_base.exact:
        return Resolved(identity=knowledge_base.exact[name_raw])

    parsed = parse_name(name_raw)
    if parsed is None:
        return Unresolved(name_raw=name_raw)

    last, first_initial = parsed
    candidates = knowledge_base.candidates(last, first_initial, is_pitcher_guess)
    if len(candidates) == 1:
        identity = candidates[0]
        return Resolved(
            identity=identity,
            fuzzy=True,
            note=f'Fuzzy matched "{name_raw}" to "{identity.full_name}"',
        )
    if not candidates:
        return Unresolved(name_raw=name_raw)
    return Ambiguous(name_raw=name_raw, candidates=candidates)


@dataclass
class IdentityReport:
    """Operator-facing log of fuzzy, unresolved and ambiguous resolutions."""

    fuzzy: List[Tuple[str, str, str]] = field(default_factory=list)
    unresolved: List[Tuple[str, str]] = field(default_factory=list)
    ambiguous: List[Tuple[str, str, Tuple[Identity, ...]]] = field(default_factory=list)

    def record(self, team_code: str, result: Resolution) -> None:
        if isinstance(result, Resolved):
            if result.fuzzy:
                self.fuzzy.append((team_code, result.identity.full_name, result.note or ""))
                LOGGER.info("[%s] %s", team_code, result.note)
        elif isinstance(result, Ambiguous):
            self.ambiguous.append((team_code, result.name_raw, result.candidates))
            LOGGER.warning(
                "[%s] Ambiguous name %r matches %s candidates: %s",
                team_code,
                result.name_raw,
                len(result.candidates),
                ", ".join(f"{c.full_name} ({c.external_id})" for c in result.candidates),
            )
        else:
            self.unresolved.append((team_code, result.name_raw))
            LOGGER.debug("[%s] Unresolved name %r", team_code, result.name_raw)

    def as_records(self) -> List[Dict[str, object]]:
        rows: List[Dict[str, object]] = []
        for team_code, name, candidates in self.ambiguous:
            rows.append(
                {
                    "status": "ambiguous",
                    "team_code": team_code,
                    "player_name_raw": name,
                    "candidates": "; ".join(f"{c.full_name}|{c.external_id}" for c in candidates),
                }
            )
        for team_code, name in self.unresolved:
            rows.append({"status": "unresolved", "team_code": team_code, "player_name_raw": name, "candidates": ""})
        return rows
