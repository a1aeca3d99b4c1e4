from __future__ import annotations

import asyncio
import base64
import io
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlsplit

import httpx
from PIL import Image

from schedule_graphic.core.config import settings
from schedule_graphic.core.http import AssetFetchError, assets_client, fetch_bytes
from schedule_graphic.core.logger import get_logger
from schedule_graphic.data.models import Match, Team, logo_urls, parse_matches
from schedule_graphic.services import layout
from schedule_graphic.services.geometry import rounded_rect_path
from schedule_graphic.services.image_resolver import LogoCache, LogoMemo, PlaceholderCache, resolve_logos
from schedule_graphic.services.layout import RenderPlan, RowGeometry
from schedule_graphic.services.surface import Color, PillowSurface, RenderSurface, mime_type

log = get_logger("services.compositor")

GRADIENT_TOP: Color = (30, 41, 59, 255)  # #1e293b
GRADIENT_BOTTOM: Color = (15, 23, 42, 255)  # #0f172a
BACKGROUND_OVERLAY: Color = (0, 0, 0, 77)  # rgba(0, 0, 0, 0.3)
BACKGROUND_OFFSET_Y = -15
ROW_FILL: Color = (58, 58, 58, 128)  # rgba(58, 58, 58, 0.5)
TITLE_COLOR: Color = (255, 255, 255, 255)
TIME_COLOR: Color = (156, 163, 175, 255)  # #9CA3AF
MUTED_COLOR: Color = (107, 114, 128, 255)  # #6B7280
TEAM_COLOR: Color = (255, 255, 255, 255)
NO_BACKGROUND = {"", "none"}


@dataclass
class RenderSession:
    """Caches owned by a single render call."""

    logos: LogoCache = field(default_factory=dict)
    placeholders: PlaceholderCache = field(default_factory=PlaceholderCache)


@dataclass
class RenderResult:
    plan: RenderPlan
    surface: RenderSurface
    session: RenderSession
    background_loaded: bool = False

    def encode(self, fmt: str = "PNG", quality: int = 100) -> bytes:
        return self.surface.encode(fmt, quality)

    def to_data_url(self, fmt: str = "PNG", quality: int = 100) -> str:
        payload = base64.b64encode(self.encode(fmt, quality)).decode("ascii")
        return f"data:{mime_type(fmt)};base64,{payload}"


class BackgroundRejected(ValueError):
    """Background source outside the backgrounds directory or the allowed hosts."""


def background_source(
    source: str,
    *,
    backgrounds_dir: str | None = None,
    allowed_hosts: Iterable[str] | None = None,
) -> Path | str:
    """Resolve ``source`` to a file under ``backgrounds_dir`` or an allowed URL.

    Relative paths are taken from ``backgrounds_dir``; absolute paths and
    ``..`` segments must still land inside it. URLs are accepted only for
    hosts listed in ``BACKGROUND_HOSTS``.
    """
    if source.startswith(("http://", "https://")):
        hosts = settings.background_hosts if allowed_hosts is None else [h.lower() for h in allowed_hosts]
        host = (urlsplit(source).hostname or "").lower()
        if host not in hosts:
            raise BackgroundRejected(f"background host not allowed: {host or source}")
        return source
    if "://" in source:
        raise BackgroundRejected(f"unsupported background source: {source}")
    root = Path(backgrounds_dir or settings.backgrounds_dir).resolve()
    path = (root / source).resolve()
    if not path.is_relative_to(root):
        raise BackgroundRejected(f"background outside {root}: {source}")
    return path


def _read_file_capped(path: Path, max_bytes: int) -> bytes:
    if not path.is_file():
        raise FileNotFoundError(path)
    if path.stat().st_size > max_bytes:
        raise AssetFetchError(str(path), "too_large")
    with path.open("rb") as fh:
        data = fh.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise AssetFetchError(str(path), "too_large")
    return data


async def _read_background_bytes(target: Path | str, client: httpx.AsyncClient | None) -> bytes:
    if isinstance(target, Path):
        return await asyncio.to_thread(_read_file_capped, target, settings.background_max_bytes)
    return await fetch_bytes(
        client or assets_client(),
        target,
        max_bytes=settings.background_max_bytes,
        retries=1,
    )


async def load_background(
    source: str | None,
    client: httpx.AsyncClient | None = None,
    *,
    backgrounds_dir: str | None = None,
) -> Image.Image | None:
    """Background image for ``source``, or None when the gradient should be used."""
    if source is None or source.strip().lower() in NO_BACKGROUND:
        return None
    try:
        target = background_source(source.strip(), backgrounds_dir=backgrounds_dir)
        data = await _read_background_bytes(target, client)
        img = Image.open(io.BytesIO(data))
        img.load()
        return img.convert("RGBA")
    except BackgroundRejected as exc:
        log.warning("background_rejected src=%s reason=%s", source, exc)
    except AssetFetchError as exc:
        log.warning("background_fetch_failed src=%s reason=%s status=%s", source, exc.reason, exc.status)
    except Exception:
        log.warning("background_load_failed src=%s", source, exc_info=True)
    return None


def paint_background(surface: RenderSurface, image: Image.Image | None) -> None:
    surface.fill_gradient(GRADIENT_TOP, GRADIENT_BOTTOM)
    if image is None or image.width <= 0 or image.height <= 0:
        return
    scale = surface.width / image.width
    surface.draw_image(image, 0, BACKGROUND_OFFSET_Y, surface.width, image.height * scale)
    surface.fill_rect(0, 0, surface.width, surface.height, BACKGROUND_OVERLAY)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _fit_box(image: Image.Image, x: float, y: float, size: float) -> tuple[int, int, int, int] | None:
    width, height = image.size
    if width <= 0 or height <= 0:
        return None
    if width > height:
        draw_w, draw_h = size, height / width * size
    else:
        draw_w, draw_h = width / height * size, size
    off_x = (size - draw_w) / 2
    off_y = (size - draw_h) / 2
    return _round_half_up(x + off_x), _round_half_up(y + off_y), _round_half_up(draw_w), _round_half_up(draw_h)


def paint_logo(surface: RenderSurface, session: RenderSession, team: Team, box: tuple[float, float, float, float]) -> None:
    x, y, size, _ = box
    try:
        logo = session.logos.get(team.logo) if team.logo else None
        if logo is not None:
            fitted = _fit_box(logo, x, y, size)
            if fitted is not None:
                surface.draw_image(logo, *fitted)
                return
        avatar = session.placeholders.get(team.name)
        surface.draw_image(avatar.image, x, y, size, size)
    except Exception:
        log.exception("logo_draw_failed team=%s", team.name)
        try:
            surface.draw_image(session.placeholders.default().image, x, y, size, size)
        except Exception:
            log.exception("default_placeholder_draw_failed team=%s", team.name)


def paint_row(surface: RenderSurface, session: RenderSession, match: Match, row: RowGeometry) -> None:
    surface.fill_path(rounded_rect_path(row.x, row.y, row.width, row.height, row.radius), ROW_FILL)

    time_x, time_y = row.time_anchor
    surface.draw_text(match.time or "TBD", time_x, time_y, layout.TIME_FONT, TIME_COLOR, "left")
    surface.draw_text("vs", row.center_x, row.center_y, layout.VS_FONT, MUTED_COLOR, "center")

    team1_label, team2_label = layout.team_labels(match, lambda text: surface.text_width(text, layout.TEAM_FONT))
    paint_logo(surface, session, match.team1, row.logo_box(1))
    surface.draw_text(team1_label, row.team1_name_x, row.center_y, layout.TEAM_FONT, TEAM_COLOR, "right")
    paint_logo(surface, session, match.team2, row.logo_box(2))
    surface.draw_text(team2_label, row.team2_name_x, row.center_y, layout.TEAM_FONT, TEAM_COLOR, "left")

    if match.tournament:
        tx, ty = row.tournament_anchor
        surface.draw_text(match.tournament, tx, ty, layout.TOURNAMENT_FONT, MUTED_COLOR, "right")


def paint(surface: RenderSurface, plan: RenderPlan, session: RenderSession, background: Image.Image | None) -> None:
    surface.begin(plan.canvas_width, plan.canvas_height)
    paint_background(surface, background)
    title_x, title_y = plan.title_anchor
    surface.draw_text(plan.title, title_x, title_y, layout.TITLE_FONT, TITLE_COLOR, "right")
    for match, row in zip(plan.matches, plan.rows):
        paint_row(surface, session, match, row)


async def render(
    matches: Any,
    title: str | None = None,
    background: str | None = None,
    *,
    surface: RenderSurface | None = None,
    client: httpx.AsyncClient | None = None,
    memo: LogoMemo | None = None,
    backgrounds_dir: str | None = None,
) -> RenderResult:
    """Render one schedule graphic.

    Logos and the background are fetched concurrently; the layout does not
    wait for them. Missing images degrade to placeholders or the gradient, so
    this only raises for programming errors in the surface itself.
    """
    items = parse_matches(matches)
    session = RenderSession()
    session.placeholders.prime(items)

    fetches = asyncio.gather(
        resolve_logos(logo_urls(items), client=client, memo=memo),
        load_background(background, client, backgrounds_dir=backgrounds_dir),
    )
    plan = layout.compute_plan(items, settings.default_title if title is None else title)
    session.logos, background_image = await fetches

    target = surface or PillowSurface()
    paint(target, plan, session, background_image)
    log.info(
        "schedule_rendered rows=%s logos=%s/%s background=%s size=%sx%s",
        len(plan.rows),
        len(session.logos),
        len(set(logo_urls(items))),
        background_image is not None,
        plan.canvas_width,
        plan.canvas_height,
    )
    return RenderResult(plan=plan, surface=target, session=session, background_loaded=background_image is not None)


async def render_schedule(
    matches: Any,
    title: str | None = None,
    background: str | None = None,
    *,
    fmt: str = "PNG",
    quality: int = 100,
    client: httpx.AsyncClient | None = None,
    memo: LogoMemo | None = None,
    backgrounds_dir: str | None = None,
) -> bytes:
    result = await render(matches, title, background, client=client, memo=memo, backgrounds_dir=backgrounds_dir)
    return result.encode(fmt, quality)
