from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from schedule_graphic.core.logger import get_logger

log = get_logger("data.models")

DEFAULT_TEAM_NAME = "TBD"


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Team:
    name: str | None = None
    logo: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or DEFAULT_TEAM_NAME


@dataclass(frozen=True)
class Match:
    team1: Team = field(default_factory=Team)
    team2: Team = field(default_factory=Team)
    time: str | None = None
    date: str | None = None
    tournament: str | None = None


def team_from_payload(payload: Any) -> Team:
    if isinstance(payload, Team):
        return payload
    if not isinstance(payload, dict):
        return Team()
    return Team(name=_clean_text(payload.get("name")), logo=_clean_text(payload.get("logo")))


def match_from_payload(payload: Any) -> Match | None:
    """Map one stored match record onto a Match.

    Accepts both the schedule shape (``tournament``/``time``) and the upcoming
    feed shape, where the tournament lives under ``event`` and the kickoff
    under ``date``. Returns None for anything that is not a mapping.
    """
    if isinstance(payload, Match):
        return payload
    if not isinstance(payload, dict):
        return None
    return Match(
        team1=team_from_payload(payload.get("team1")),
        team2=team_from_payload(payload.get("team2")),
        time=_clean_text(payload.get("time")),
        date=_clean_text(payload.get("date")),
        tournament=_clean_text(payload.get("tournament")) or _clean_text(payload.get("event")),
    )


def parse_matches(raw: Any) -> list[Match]:
    if not isinstance(raw, (list, tuple)):
        if raw is not None:
            log.warning("matches_invalid type=%s; rendering empty schedule", type(raw).__name__)
        return []
    out: list[Match] = []
    for idx, item in enumerate(raw):
        match = match_from_payload(item)
        if match is None:
            log.warning("match_skipped index=%s type=%s", idx, type(item).__name__)
            continue
        out.append(match)
    return out


def logo_urls(matches: Iterable[Match]) -> list[str]:
    urls: list[str] = []
    for match in matches:
        for team in (match.team1, match.team2):
            if team.logo:
                urls.append(team.logo)
    return urls
