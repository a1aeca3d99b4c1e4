from __future__ import annotations

import asyncio
import base64
import io
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote, unquote_to_bytes, urlsplit

import httpx
from PIL import Image, ImageDraw

from schedule_graphic.core.config import settings
from schedule_graphic.core.http import AssetFetchError, assets_client, fetch_bytes
from schedule_graphic.core.logger import get_logger
from schedule_graphic.data.models import Match
from schedule_graphic.services.surface import load_font

log = get_logger("services.image_resolver")

PLACEHOLDER_SIZE = 49
DEFAULT_INITIALS = "TM"
DEFAULT_PLACEHOLDER_KEY = "default"
_PLACEHOLDER_BG = (130, 130, 130, 255)  # #828282
_PLACEHOLDER_TEXT = (255, 255, 255, 255)
_PLACEHOLDER_FONT_SIZE = 20

LogoCache = dict[str, Image.Image]


def _short(url: str, limit: int = 60) -> str:
    return url if len(url) <= limit else f"{url[:limit]}..."


def proxy_url(
    url: str | None,
    *,
    relay_base: str | None = None,
    cdn_hosts: Iterable[str] | None = None,
) -> str | None:
    """Route logos from cross-origin CDNs through the CORS relay.

    ``https://cdn.pandascore.co/x.png`` becomes
    ``https://corsproxy.io/?https%3A%2F%2Fcdn.pandascore.co%2Fx.png``.
    Empty values, ``data:`` URLs and other hosts are returned untouched.
    """
    if not url or url.startswith("data:"):
        return url
    base = settings.relay_base if relay_base is None else relay_base
    hosts = settings.relay_cdn_hosts if cdn_hosts is None else [h.lower() for h in cdn_hosts]
    if not base or not hosts:
        return url
    host = (urlsplit(url).hostname or "").lower()
    if not any(host == h or host.endswith(f".{h}") for h in hosts):
        return url
    return f"{base}?{quote(url, safe='')}"


class LogoMemo:
    """Process-level memo of logo bytes keyed by original URL.

    Least-recently-used entries are evicted once ``max_entries`` is exceeded;
    nothing is ever revalidated. A render session only reads from it before
    fetching, so eviction never affects a render in progress.
    """

    def __init__(self, max_entries: int = 256):
        self.max_entries = max(0, max_entries)
        self._items: OrderedDict[str, bytes] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, url: str) -> bytes | None:
        data = self._items.get(url)
        if data is not None:
            self._items.move_to_end(url)
        return data

    def put(self, url: str, data: bytes) -> None:
        if self.max_entries <= 0:
            return
        self._items[url] = data
        self._items.move_to_end(url)
        while len(self._items) > self.max_entries:
            self._items.popitem(last=False)

    def clear(self) -> None:
        self._items.clear()


def _decode_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img.convert("RGBA")


def _data_url_bytes(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep:
        raise ValueError("data URL without payload")
    if header.endswith(";base64"):
        return base64.b64decode(payload, validate=False)
    return unquote_to_bytes(payload)


async def _fetch_logo_bytes(client: httpx.AsyncClient, url: str) -> bytes:
    return await fetch_bytes(
        client,
        proxy_url(url),
        max_bytes=settings.logo_max_bytes,
        retries=settings.logo_fetch_retries,
        backoff_base=0.4,
        backoff_max=settings.logo_retry_max_wait_seconds,
    )


async def _resolve_one(
    client: httpx.AsyncClient,
    url: str,
    memo: LogoMemo | None,
) -> tuple[str, Image.Image | None]:
    try:
        if url.startswith("data:"):
            data = _data_url_bytes(url)
        else:
            data = memo.get(url) if memo is not None else None
            if data is None:
                data = await _fetch_logo_bytes(client, url)
        image = _decode_image(data)
        if memo is not None and not url.startswith("data:"):
            memo.put(url, data)
        log.debug("logo_loaded url=%s size=%sx%s", _short(url), image.width, image.height)
        return url, image
    except AssetFetchError as exc:
        log.warning("logo_fetch_failed url=%s reason=%s status=%s", _short(url), exc.reason, exc.status)
        return url, None
    except httpx.HTTPError as exc:
        log.warning("logo_fetch_failed url=%s error=%s", _short(url), type(exc).__name__)
        return url, None
    except Exception:
        log.exception("logo_fetch_failed url=%s", _short(url))
        return url, None


async def resolve_logos(
    urls: Iterable[str | None] | None,
    *,
    client: httpx.AsyncClient | None = None,
    memo: LogoMemo | None = None,
) -> LogoCache:
    """Fetch every distinct logo concurrently.

    The result only holds URLs that downloaded and decoded; a missing key means
    the caller should fall back to a placeholder. Never raises.
    """
    unique = list(dict.fromkeys(u for u in (urls or []) if u))
    if not unique:
        return {}
    http = client or assets_client()
    results = await asyncio.gather(*(_resolve_one(http, url, memo) for url in unique))
    cache: LogoCache = {url: image for url, image in results if image is not None}
    if len(cache) < len(unique):
        log.info("logos_resolved ok=%s failed=%s", len(cache), len(unique) - len(cache))
    return cache


def team_initials(name: str | None) -> str:
    if not name:
        return DEFAULT_INITIALS
    words = name.split(" ")
    if len(words) == 1:
        return name[:2].upper()
    return (words[0][:1] + words[1][:1]).upper()


@dataclass(frozen=True)
class Avatar:
    initials: str
    image: Image.Image


def make_placeholder(name: str | None = None, *, initials: str | None = None) -> Avatar:
    text = initials if initials is not None else team_initials(name)
    size = PLACEHOLDER_SIZE
    image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    draw.ellipse((0, 0, size - 1, size - 1), fill=_PLACEHOLDER_BG)
    font = load_font(_PLACEHOLDER_FONT_SIZE, True)
    draw.text((size / 2, size / 2), text, font=font, fill=_PLACEHOLDER_TEXT, anchor="mm")
    return Avatar(initials=text, image=image)


class PlaceholderCache:
    """Per-session avatars keyed by team display name."""

    def __init__(self):
        self._items: dict[str, Avatar] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._items

    def __getitem__(self, name: str) -> Avatar:
        return self._items[name]

    def __len__(self) -> int:
        return len(self._items)

    def get(self, name: str | None) -> Avatar:
        if not name:
            return self.default()
        avatar = self._items.get(name)
        if avatar is None:
            avatar = make_placeholder(name)
            self._items[name] = avatar
        return avatar

    def default(self) -> Avatar:
        avatar = self._items.get(DEFAULT_PLACEHOLDER_KEY)
        if avatar is None:
            avatar = make_placeholder(initials=DEFAULT_INITIALS)
            self._items[DEFAULT_PLACEHOLDER_KEY] = avatar
        return avatar

    def prime(self, matches: Iterable[Match]) -> None:
        for match in matches:
            for team in (match.team1, match.team2):
                if team.name:
                    self.get(team.name)
