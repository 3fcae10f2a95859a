"""WebFetcher against a local aiohttp test server."""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from hydracrawl.crawler.fetcher import WebFetcher
from hydracrawl.errors import RobotsDisallowedError, TransientFetchError

USER_AGENT = "HydraCrawlTest/1.0"


async def _index(request):
    return web.Response(text='<a href="/next">next</a>', content_type="text/html")


async def _missing(request):
    return web.Response(status=404, text="gone", content_type="text/html")


async def _unavailable(request):
    return web.Response(status=503, text="later", content_type="text/html")


async def _image(request):
    return web.Response(body=b"\x89PNG....", content_type="image/png")


async def _large(request):
    return web.Response(text="x" * 5000, content_type="text/plain")


async def _slow(request):
    await asyncio.sleep(1.0)
    return web.Response(text="late", content_type="text/html")


async def _redirect(request):
    raise web.HTTPFound("/")


async def _robots(request):
    return web.Response(text="User-agent: *\nDisallow: /private\n", content_type="text/plain")


def _app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", _index)
    app.router.add_get("/missing", _missing)
    app.router.add_get("/unavailable", _unavailable)
    app.router.add_get("/image.png", _image)
    app.router.add_get("/large", _large)
    app.router.add_get("/slow", _slow)
    app.router.add_get("/moved", _redirect)
    app.router.add_get("/robots.txt", _robots)
    app.router.add_get("/private", _index)
    return app


class TestWebFetcher:
    @pytest.mark.asyncio
    async def test_fetches_html(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT, request_timeout=5) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/")))

        assert result.ok
        assert result.status_code == 200
        assert 'href="/next"' in result.content
        assert result.content_type.startswith("text/html")
        assert fetcher.get_stats()['successful_requests'] == 1

    @pytest.mark.asyncio
    async def test_error_statuses_are_returned_not_raised(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT) as fetcher:
                missing = await fetcher.fetch(str(server.make_url("/missing")))
                unavailable = await fetcher.fetch(str(server.make_url("/unavailable")))

        assert missing.status_code == 404 and not missing.ok
        assert unavailable.status_code == 503

    @pytest.mark.asyncio
    async def test_redirect_is_returned_not_followed(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/moved")))

        assert result.status_code == 302
        assert result.is_redirect
        assert not result.ok
        assert result.url == str(server.make_url("/moved"))
        assert result.location.endswith("/")
        assert fetcher.get_stats()['successful_requests'] == 1

    @pytest.mark.asyncio
    async def test_non_text_body_is_not_read(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/image.png")))

        assert result.ok
        assert result.content is None

    @pytest.mark.asyncio
    async def test_oversized_body_is_dropped(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT, max_content_size=1000) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/large")))

        assert result.ok
        assert result.content is None

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT) as fetcher:
                with pytest.raises(TransientFetchError):
                    await fetcher.fetch(str(server.make_url("/slow")), timeout=0.1)

        assert fetcher.get_stats()['failed_requests'] == 1

    @pytest.mark.asyncio
    async def test_connection_refused_is_transient(self, unused_tcp_port):
        async with WebFetcher(USER_AGENT, request_timeout=2) as fetcher:
            with pytest.raises(TransientFetchError):
                await fetcher.fetch(f"http://127.0.0.1:{unused_tcp_port}/")

    @pytest.mark.asyncio
    async def test_robots_txt_block_raises_disallowed(self):
        async with TestServer(_app()) as server:
            async with WebFetcher(USER_AGENT, respect_robots_txt=True) as fetcher:
                allowed = await fetcher.fetch(str(server.make_url("/")))
                with pytest.raises(RobotsDisallowedError):
                    await fetcher.fetch(str(server.make_url("/private")))

        assert allowed.ok
        assert fetcher.get_stats()['robots_blocked'] == 1

    @pytest.mark.asyncio
    async def test_fetch_starts_session_lazily(self):
        async with TestServer(_app()) as server:
            fetcher = WebFetcher(USER_AGENT)
            try:
                result = await fetcher.fetch(str(server.make_url("/")))
            finally:
                await fetcher.close()

        assert result.ok
        assert fetcher.session is None

    def test_from_config(self, crawl_config):
        fetcher = WebFetcher.from_config(crawl_config(max_workers=7, request_timeout=3.0,
                                                      respect_robots_txt=True))
        assert fetcher.max_concurrent_requests == 7
        assert fetcher.request_timeout == 3.0
        assert fetcher.robots_checker is not None
