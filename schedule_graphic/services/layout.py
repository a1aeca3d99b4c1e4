from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Callable, Sequence

from schedule_graphic.data.models import Match
from schedule_graphic.services.geometry import truncate_to_width
from schedule_graphic.services.surface import FontSpec

CANVAS_WIDTH = 1200
TITLE_HEIGHT = 90
ROW_OFFSET = 15  # rows and title sit this far below the title band
ROW_PITCH = 92  # 72px row + 20px gap
ROW_HEIGHT = 72
ROW_PADDING_X = 24
ROW_RADIUS = 16
MIN_MATCHES_HEIGHT = 100
BOTTOM_PADDING = 30
TITLE_MARGIN_RIGHT = 24
TIME_INSET = 38
TIME_ZONE_WIDTH = 180
TOURNAMENT_ZONE_WIDTH = 200
TOURNAMENT_MARGIN_RIGHT = 48
LOGO_SIZE = 49
LOGO_NAME_GAP = 16
VS_GAP = 80
TEAM_OFFSET = VS_GAP + LOGO_SIZE / 2
TEAM_NAME_MAX_WIDTH = 300

TITLE_FONT = FontSpec(42, bold=True)
TIME_FONT = FontSpec(36, bold=True)
VS_FONT = FontSpec(20)
TEAM_FONT = FontSpec(24, bold=True)
TOURNAMENT_FONT = FontSpec(16)


@dataclass(frozen=True)
class RowGeometry:
    x: float
    y: float
    width: float
    height: float
    radius: float
    center_y: float
    time_anchor: tuple[float, float]
    center_x: float
    team1_anchor: tuple[float, float]
    team2_anchor: tuple[float, float]
    team1_name_x: float
    team2_name_x: float
    tournament_anchor: tuple[float, float]

    def logo_box(self, team_index: int) -> tuple[float, float, float, float]:
        anchor_x, anchor_y = self.team1_anchor if team_index == 1 else self.team2_anchor
        return (anchor_x - LOGO_SIZE / 2, anchor_y - LOGO_SIZE / 2, LOGO_SIZE, LOGO_SIZE)


@dataclass(frozen=True)
class RenderPlan:
    canvas_width: int
    canvas_height: int
    title: str
    title_anchor: tuple[float, float]
    rows: tuple[RowGeometry, ...]
    matches: tuple[Match, ...]


def _parse_date(value: str) -> datetime | None:
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _minutes(value: str) -> int | None:
    parts = value.strip().split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return None
    return hours * 60 + minutes


def _sign(delta: float) -> int:
    return (delta > 0) - (delta < 0)


def compare_matches(a: Match, b: Match) -> int:
    if a.date and b.date:
        da, db = _parse_date(a.date), _parse_date(b.date)
        if da is None or db is None:
            return 0
        return _sign((da - db).total_seconds())
    if a.time and b.time:
        ma, mb = _minutes(a.time), _minutes(b.time)
        if ma is None or mb is None:
            return 0
        return _sign(ma - mb)
    return 0


def sort_matches(matches: Sequence[Match]) -> list[Match]:
    """Chronological order where a pair can be compared, input order otherwise."""
    return sorted(matches, key=cmp_to_key(compare_matches))


def canvas_height(match_count: int) -> int:
    matches_height = match_count * ROW_PITCH or MIN_MATCHES_HEIGHT
    return TITLE_HEIGHT + matches_height + BOTTOM_PADDING + ROW_OFFSET


def row_geometry(index: int, canvas_width: int = CANVAS_WIDTH) -> RowGeometry:
    center_y = TITLE_HEIGHT + ROW_OFFSET + index * ROW_PITCH + ROW_PITCH / 2
    row_x = ROW_PADDING_X
    row_width = canvas_width - 2 * ROW_PADDING_X
    time_x = row_x + TIME_INSET
    content_x = time_x + TIME_ZONE_WIDTH
    content_width = row_width - TIME_ZONE_WIDTH - TOURNAMENT_ZONE_WIDTH
    center_x = content_x + content_width / 2
    team1_x = center_x - TEAM_OFFSET
    team2_x = center_x + TEAM_OFFSET
    return RowGeometry(
        x=row_x,
        y=center_y - ROW_HEIGHT / 2,
        width=row_width,
        height=ROW_HEIGHT,
        radius=ROW_RADIUS,
        center_y=center_y,
        time_anchor=(time_x, center_y),
        center_x=center_x,
        team1_anchor=(team1_x, center_y),
        team2_anchor=(team2_x, center_y),
        team1_name_x=team1_x - LOGO_SIZE - LOGO_NAME_GAP,
        team2_name_x=team2_x + LOGO_SIZE / 2 + LOGO_NAME_GAP,
        tournament_anchor=(canvas_width - TOURNAMENT_MARGIN_RIGHT, center_y),
    )


def compute_plan(matches: Sequence[Match], title: str) -> RenderPlan:
    ordered = sort_matches(matches)
    return RenderPlan(
        canvas_width=CANVAS_WIDTH,
        canvas_height=canvas_height(len(ordered)),
        title=title,
        title_anchor=(CANVAS_WIDTH - TITLE_MARGIN_RIGHT, TITLE_HEIGHT / 2 + ROW_OFFSET),
        rows=tuple(row_geometry(i) for i in range(len(ordered))),
        matches=tuple(ordered),
    )


def team_labels(match: Match, measure: Callable[[str], float]) -> tuple[str, str]:
    """Team names cut to the name slot using the target surface's metrics."""
    return (
        truncate_to_width(measure, match.team1.display_name, TEAM_NAME_MAX_WIDTH),
        truncate_to_width(measure, match.team2.display_name, TEAM_NAME_MAX_WIDTH),
    )
