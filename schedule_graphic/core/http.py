import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from .config import settings

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
_assets_client: httpx.AsyncClient | None = None


class AssetFetchError(Exception):
    """An image download that was given up on.

    ``reason`` is a short token for log lines (``status``, ``too_large``,
    ``empty``, ``retry_after``); ``status`` is the last HTTP status seen.
    """

    def __init__(self, url: str, reason: str, status: int | None = None):
        super().__init__(f"{reason} url={url} status={status}")
        self.url = url
        self.reason = reason
        self.status = status


def assets_client() -> httpx.AsyncClient:
    """Shared client for logo and background downloads."""
    global _assets_client
    if _assets_client is None or _assets_client.is_closed:
        _assets_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.assets_timeout_seconds),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            follow_redirects=True,
            headers={"Accept": "image/*"},
        )
    return _assets_client


async def close_http_clients() -> None:
    global _assets_client
    if _assets_client is not None and not _assets_client.is_closed:
        await _assets_client.aclose()
    _assets_client = None


def _retry_after_seconds(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def backoff_delay(attempt: int, base: float, cap: float, retry_after: float | None = None) -> float:
    """Exponential backoff, raised to ``retry_after`` but never above ``cap``."""
    delay = base * (2 ** attempt)
    if retry_after is not None:
        delay = max(delay, retry_after)
    return min(cap, delay)


async def _read_capped(response: httpx.Response, url: str, max_bytes: int) -> bytes:
    declared = response.headers.get("Content-Length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise AssetFetchError(url, "too_large", response.status_code)
    body = bytearray()
    async for chunk in response.aiter_bytes():
        body.extend(chunk)
        if len(body) > max_bytes:
            raise AssetFetchError(url, "too_large", response.status_code)
    return bytes(body)


async def fetch_bytes(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_bytes: int,
    retries: int = 2,
    backoff_base: float = 0.4,
    backoff_max: float = 2.0,
    _sleep=asyncio.sleep,
) -> bytes:
    """Download ``url`` and return its body.

    Transport errors and 429/5xx answers are retried up to ``retries`` times.
    No wait exceeds ``backoff_max``: a ``Retry-After`` longer than that ends
    the download instead. The body is streamed and abandoned as soon as it
    passes ``max_bytes``.

    Raises ``AssetFetchError`` for answers that will not yield an image and
    ``httpx.RequestError`` once transport retries are used up.
    """
    for attempt in range(retries + 1):
        final = attempt >= retries
        try:
            async with client.stream("GET", url) as response:
                status = response.status_code
                if status in RETRY_STATUSES and not final:
                    retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
                    if retry_after is not None and retry_after > backoff_max:
                        raise AssetFetchError(url, "retry_after", status)
                    delay = backoff_delay(attempt, backoff_base, backoff_max, retry_after)
                else:
                    if status < 200 or status >= 300:
                        raise AssetFetchError(url, "status", status)
                    body = await _read_capped(response, url, max_bytes)
                    if not body:
                        raise AssetFetchError(url, "empty", status)
                    return body
        except httpx.RequestError:
            if final:
                raise
            delay = backoff_delay(attempt, backoff_base, backoff_max)
        await _sleep(delay)
    raise AssetFetchError(url, "no_attempts")
