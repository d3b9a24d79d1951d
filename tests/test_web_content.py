"""Tests for guarded page downloads and article extraction."""

import asyncio
import time

import httpx
import pytest

from briefdeck.services import web_content
from briefdeck.services.url_safety import check_url
from briefdeck.services.web_content import PageFetchError, SafeResponse, download_page, fetch_article_text, safe_get

ARTICLE = """<html>
<head><title>Harbour report</title></head>
<body>
  <nav><a href="/">Home</a> <a href="/about">About</a></nav>
  <article>
    <h1>Tidal turbines power the old harbour</h1>
    <p>The harbour authority switched on six tidal turbines this week, and the
    first measurements show the array covering most of the port's night-time
    electricity demand without any help from the regional grid.</p>
    <p>Engineers spent two winters anchoring the turbines to the seabed. They
    expect maintenance divers to inspect the blades every spring, when the
    currents are weakest and the water is clearest.</p>
    <p>Fishermen who opposed the project say the turbines have not changed the
    catch so far, although they want the monitoring programme to continue for
    at least another five years before anyone draws conclusions.</p>
  </article>
  <footer>Copyright</footer>
</body>
</html>
"""


@pytest.fixture(autouse=True)
def no_dns(monkeypatch):
    async def fake_ensure_public_url(url, allow_localhost=False):
        return check_url(url, allow_localhost=allow_localhost)

    monkeypatch.setattr(web_content, "ensure_public_url", fake_ensure_public_url)


def _html(body: str | bytes, charset: str = "utf-8") -> httpx.Response:
    content = body.encode() if isinstance(body, str) else body
    return httpx.Response(200, content=content, headers={"Content-Type": f"text/html; charset={charset}"})


async def test_fetch_article_text_extracts_main_body():
    transport = httpx.MockTransport(lambda request: _html(ARTICLE))
    async with httpx.AsyncClient(transport=transport) as client:
        text = await fetch_article_text("https://news.example.com/harbour", client=client)

    assert text is not None
    assert "tidal turbines" in text


async def test_unknown_charset_decodes_as_utf8():
    transport = httpx.MockTransport(lambda request: _html(ARTICLE, charset="x-bogus-charset"))
    async with httpx.AsyncClient(transport=transport) as client:
        url, html = await download_page("https://news.example.com/harbour", client=client)
        text = await fetch_article_text("https://news.example.com/harbour", client=client)

    assert url == "https://news.example.com/harbour"
    assert "Tidal turbines power the old harbour" in html
    assert text is not None
    assert "tidal turbines" in text


def test_safe_response_text_with_bad_encoding():
    resp = SafeResponse(
        url="https://e.com", status_code=200, headers=httpx.Headers(), content="café".encode(), encoding="nope-8"
    )
    assert resp.text == "café"


async def test_fetch_article_text_refuses_redirect_to_private_address():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(302, headers={"Location": "http://10.0.0.1/admin"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await fetch_article_text("http://news.example.com/story", client=client) is None
    assert [str(r.url) for r in requests] == ["http://news.example.com/story"]


@pytest.mark.parametrize("url", ["http://127.0.0.1/story", "file:///etc/passwd", "https://news.example.com:8443/a", None, ""])
async def test_fetch_article_text_rejects_unsafe_urls(url):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await fetch_article_text(url, client=client) is None


@pytest.mark.parametrize("status", [404, 500])
async def test_fetch_article_text_http_errors_return_none(status):
    transport = httpx.MockTransport(lambda request: httpx.Response(status))
    async with httpx.AsyncClient(transport=transport) as client:
        assert await fetch_article_text("https://news.example.com/gone", client=client) is None


async def test_fetch_article_text_swallows_unexpected_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("boom")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await fetch_article_text("https://news.example.com/story", client=client) is None


async def test_safe_get_follows_redirects_with_checks():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/short":
            return httpx.Response(301, headers={"Location": "/long/story"})
        return _html("<p>ok</p>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        resp = await safe_get("https://news.example.com/short", client=client)

    assert resp.url == "https://news.example.com/long/story"
    assert resp.text == "<p>ok</p>"


async def test_safe_get_gives_up_on_redirect_loop():
    transport = httpx.MockTransport(lambda request: httpx.Response(302, headers={"Location": "/again"}))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(PageFetchError, match="Too many redirects"):
            await safe_get("https://news.example.com/again", client=client)


async def test_safe_get_timeout_covers_slow_body():
    async def trickle():
        for _ in range(40):
            await asyncio.sleep(0.05)
            yield b"x"

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=trickle())

    started = time.monotonic()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(PageFetchError, match="timed out"):
            await safe_get("https://news.example.com/slow", client=client, timeout=0.3)

    assert time.monotonic() - started < 1.5
