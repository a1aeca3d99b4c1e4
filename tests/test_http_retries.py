import asyncio

import httpx
import pytest

from schedule_graphic.core.http import AssetFetchError, backoff_delay, fetch_bytes

LOGO = "https://logos.example.org/navi.png"


def _fetch(handler, *, retries=1, max_bytes=1024, backoff_max=2.0, sleeps=None):
    async def _sleep(delay):
        if sleeps is not None:
            sleeps.append(delay)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_bytes(
                client,
                LOGO,
                max_bytes=max_bytes,
                retries=retries,
                backoff_base=0.4,
                backoff_max=backoff_max,
                _sleep=_sleep,
            )

    return asyncio.run(_run())


def test_retries_on_502_then_returns_body():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(502, request=request)
        return httpx.Response(200, content=b"png", request=request)

    assert _fetch(handler) == b"png"
    assert calls["count"] == 2


def test_short_retry_after_is_honoured():
    sleeps = []
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(429, headers={"Retry-After": "1.5"}, request=request)
        return httpx.Response(200, content=b"png", request=request)

    assert _fetch(handler, sleeps=sleeps) == b"png"
    assert sleeps == [1.5]


def test_long_retry_after_gives_up_without_waiting():
    sleeps = []
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        return httpx.Response(429, headers={"Retry-After": "3600"}, request=request)

    with pytest.raises(AssetFetchError) as excinfo:
        _fetch(handler, retries=2, sleeps=sleeps)

    assert excinfo.value.reason == "retry_after"
    assert excinfo.value.status == 429
    assert sleeps == []
    assert calls["count"] == 1


def test_backoff_never_exceeds_cap():
    assert backoff_delay(0, 0.4, 2.0) == 0.4
    assert backoff_delay(10, 0.4, 2.0) == 2.0
    assert backoff_delay(0, 0.4, 2.0, retry_after=90.0) == 2.0


def test_retries_on_connect_error():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("boom", request=request)
        return httpx.Response(200, content=b"png", request=request)

    assert _fetch(handler) == b"png"
    assert calls["count"] == 2


def test_connect_error_raised_when_retries_exhausted():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(httpx.ConnectError):
        _fetch(handler, retries=2)


def test_last_status_reported_when_retries_exhausted():
    sleeps = []
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        return httpx.Response(503, request=request)

    with pytest.raises(AssetFetchError) as excinfo:
        _fetch(handler, retries=2, sleeps=sleeps)

    assert excinfo.value.status == 503
    assert calls["count"] == 3
    assert sleeps == [0.4, 0.8]


def test_does_not_retry_client_errors():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        return httpx.Response(404, request=request)

    with pytest.raises(AssetFetchError) as excinfo:
        _fetch(handler, retries=3)

    assert excinfo.value.reason == "status"
    assert calls["count"] == 1


def test_declared_length_over_cap_rejected():
    def handler(request):
        return httpx.Response(200, content=b"x" * 2048, request=request)

    with pytest.raises(AssetFetchError) as excinfo:
        _fetch(handler, max_bytes=1024)
    assert excinfo.value.reason == "too_large"


def test_streamed_body_abandoned_once_over_cap():
    sent = []

    async def body():
        for _ in range(10):
            sent.append(1000)
            yield b"x" * 1000

    def handler(request):
        return httpx.Response(200, content=body(), request=request)

    with pytest.raises(AssetFetchError) as excinfo:
        _fetch(handler, max_bytes=2500)

    assert excinfo.value.reason == "too_large"
    assert len(sent) <= 3


def test_empty_body_rejected():
    def handler(request):
        return httpx.Response(200, content=b"", request=request)

    with pytest.raises(AssetFetchError) as excinfo:
        _fetch(handler)
    assert excinfo.value.reason == "empty"
