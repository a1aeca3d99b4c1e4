"""Pure drawing helpers shared by the layout engine and the surfaces."""

from __future__ import annotations

import math
from typing import Callable

Point = tuple[float, float]

ELLIPSIS = "..."


def _arc(cx: float, cy: float, radius: float, start_deg: float, segments: int) -> list[Point]:
    points: list[Point] = []
    for step in range(segments + 1):
        angle = math.radians(start_deg + 90.0 * step / segments)
        points.append((cx + radius * math.cos(angle), cy + radius * math.sin(angle)))
    return points


def rounded_rect_path(
    x: float,
    y: float,
    width: float,
    height: float,
    radius: float,
    segments: int = 8,
) -> list[Point]:
    """Closed polygon for a rectangle with quarter-round corners.

    Starts at ``(x + radius, y)`` and walks clockwise (in screen coordinates);
    the last point repeats the first. ``radius`` must not exceed half of the
    shorter side, no clamping is applied.
    """
    right = x + width
    bottom = y + height
    points: list[Point] = [(x + radius, y), (right - radius, y)]
    points += _arc(right - radius, y + radius, radius, 270.0, segments)[1:]
    points.append((right, bottom - radius))
    points += _arc(right - radius, bottom - radius, radius, 0.0, segments)[1:]
    points.append((x + radius, bottom))
    points += _arc(x + radius, bottom - radius, radius, 90.0, segments)[1:]
    points.append((x, y + radius))
    points += _arc(x + radius, y + radius, radius, 180.0, segments)[1:-1]
    points.append((x + radius, y))
    return points


def truncate_to_width(
    measure: Callable[[str], float],
    text: str | None,
    max_width: float,
    ellipsis: str = ELLIPSIS,
) -> str:
    if not text:
        return ""
    if measure(text) <= max_width:
        return text
    truncated = text
    while truncated and measure(f"{truncated}{ellipsis}") > max_width:
        truncated = truncated[:-1]
    return f"{truncated}{ellipsis}"
