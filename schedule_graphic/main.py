from contextlib import asynccontextmanager
from typing import Any, Optional
import logging

from fastapi import FastAPI, HTTPException, Query, Response
from pydantic import BaseModel, Field

from schedule_graphic.core.config import settings
from schedule_graphic.core.http import close_http_clients
from schedule_graphic.data.providers.matches_file import load_current_matches
from schedule_graphic.services.compositor import NO_BACKGROUND, BackgroundRejected, background_source, render
from schedule_graphic.services.image_resolver import LogoMemo
from schedule_graphic.services.surface import mime_type, normalize_format

logger = logging.getLogger(__name__)
LOGO_MEMO: LogoMemo | None = LogoMemo(settings.logo_memo_max_entries) if settings.enable_logo_memo else None


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("startup relay=%s cdn_hosts=%s", settings.relay_base, ",".join(settings.relay_cdn_hosts))
    try:
        yield
    finally:
        await close_http_clients()
        if LOGO_MEMO is not None:
            LOGO_MEMO.clear()


app = FastAPI(title="schedule-graphic", lifespan=lifespan)


class ScheduleGraphicRequest(BaseModel):
    # Non-list values render an empty schedule.
    matches: Any = None
    title: Optional[str] = None
    background: Optional[str] = None
    format: str = "png"
    quality: int = Field(default=100, ge=1, le=100)


def _checked_format(fmt: str) -> str:
    try:
        return normalize_format(fmt)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _check_background(source: Optional[str]) -> None:
    if source is None or source.strip().lower() in NO_BACKGROUND:
        return
    try:
        background_source(source.strip())
    except BackgroundRejected as exc:
        raise HTTPException(status_code=422, detail=str(exc))


async def _render_response(matches: Any, title: Optional[str], background: Optional[str], fmt: str, quality: int) -> Response:
    image_format = _checked_format(fmt)
    source = settings.default_background if background is None else background
    _check_background(source)
    result = await render(matches, title, source, memo=LOGO_MEMO)
    return Response(
        content=result.encode(image_format, quality),
        media_type=mime_type(image_format),
        headers={
            "Cache-Control": "no-store",
            "X-Schedule-Rows": str(len(result.plan.rows)),
            "X-Schedule-Background": "image" if result.background_loaded else "gradient",
        },
    )


@app.get("/health")
async def health():
    return {"ok": True}


@app.post("/api/v1/schedule-graphic")
async def api_schedule_graphic(req: ScheduleGraphicRequest):
    logger.info("schedule_graphic_request source=body format=%s", req.format)
    return await _render_response(req.matches, req.title, req.background, req.format, req.quality)


@app.get("/api/v1/schedule-graphic")
async def api_schedule_graphic_current(
    title: Optional[str] = None,
    background: Optional[str] = None,
    format: str = "png",
    quality: int = Query(default=100, ge=1, le=100),
):
    matches = load_current_matches()
    logger.info("schedule_graphic_request source=file matches=%s format=%s", len(matches), format)
    return await _render_response(matches, title, background, format, quality)
