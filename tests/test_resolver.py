"""Tests for the resolver strategy chain."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from spectator_mcp.config import ServerConfig
from spectator_mcp.errors import BlockedError, ResolutionError
from spectator_mcp.models.media import MediaBytes, MediaRedirect
from spectator_mcp.resolver import (
    YTDLP_FORMAT,
    GenericFetchStrategy,
    PlatformExtractionStrategy,
    Resolver,
    build_default_resolver,
    is_block_signal,
)
from tests.conftest import FakeProcess

VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"\x01" * 4096


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


class RecordingStrategy:
    """Strategy stub that records calls and returns or raises a fixed outcome."""

    def __init__(self, name: str, outcome, *, restricted_only: bool = False) -> None:
        self.name = name
        self.outcome = outcome
        self.restricted_only = restricted_only
        self.calls: list[str] = []

    def matches(self, url: str) -> bool:
        return "youtube.com" in url if self.restricted_only else True

    async def resolve(self, url: str):
        self.calls.append(url)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


class TestBlockSignal:
    @pytest.mark.parametrize("message", [
        "ERROR: [youtube] abc: Sign in to confirm you're not a bot",
        "HTTP Error 403: Forbidden",
        "<div id='cf-chl-widget'>",
        "Please complete the CAPTCHA",
    ])
    def test_detected(self, message):
        assert is_block_signal(message)

    def test_ordinary_failure(self):
        assert not is_block_signal("ERROR: Unsupported URL")


class TestPrecedence:
    async def test_restricted_url_tries_platform_first(self):
        media = MediaBytes(_chunks(b"data"), "video/mp4")
        platform = RecordingStrategy("platform", media, restricted_only=True)
        generic = RecordingStrategy("generic", ResolutionError("should not run"))
        resolver = Resolver([platform, generic], ServerConfig())

        result = await resolver.resolve("https://www.youtube.com/watch?v=abc")

        assert platform.calls == ["https://www.youtube.com/watch?v=abc"]
        assert generic.calls == []
        assert await result.read() == b"data"

    async def test_platform_failure_falls_back_to_generic(self):
        platform = RecordingStrategy("platform", ResolutionError("format unavailable"), restricted_only=True)
        generic = RecordingStrategy("generic", MediaRedirect("https://cdn.example.com/a.mp4"))
        resolver = Resolver([platform, generic], ServerConfig())

        result = await resolver.resolve("https://www.youtube.com/watch?v=abc")

        assert len(platform.calls) == 1
        assert len(generic.calls) == 1
        assert result == MediaRedirect("https://cdn.example.com/a.mp4")

    async def test_blocked_stops_the_chain(self):
        platform = RecordingStrategy("platform", BlockedError("not a bot"), restricted_only=True)
        generic = RecordingStrategy("generic", MediaRedirect("https://x.test/a.mp4"))
        resolver = Resolver([platform, generic], ServerConfig())

        with pytest.raises(BlockedError):
            await resolver.resolve("https://www.youtube.com/watch?v=abc")
        assert generic.calls == []

    async def test_all_failures_combined(self):
        platform = RecordingStrategy("platform", ResolutionError("p failed"), restricted_only=True)
        generic = RecordingStrategy("generic", ResolutionError("g failed"))
        resolver = Resolver([platform, generic], ServerConfig())

        with pytest.raises(ResolutionError, match="p failed.*g failed"):
            await resolver.resolve("https://www.youtube.com/watch?v=abc")

    async def test_unrestricted_url_never_invokes_platform(self):
        transport = _transport(lambda req: httpx.Response(200, content=VIDEO, headers={"content-type": "video/mp4"}))
        resolver = build_default_resolver(ServerConfig(), transport=transport)
        with patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new_callable=AsyncMock) as spawn:
            media = await resolver.resolve("https://cdn.example.com/clip.mp4")
            assert await media.read() == VIDEO
        spawn.assert_not_called()

    async def test_invalid_url_rejected_before_strategies(self):
        generic = RecordingStrategy("generic", MediaRedirect("x"))
        resolver = Resolver([generic], ServerConfig())
        with pytest.raises(ResolutionError):
            await resolver.resolve("ftp://example.com/a.mp4")
        assert generic.calls == []


class TestGenericFetch:
    async def test_relays_body_and_content_type(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["user-agent"].startswith("Mozilla/5.0")
            assert request.headers["accept-language"].startswith("en-US")
            return httpx.Response(200, content=VIDEO, headers={"content-type": "video/webm"})

        strategy = GenericFetchStrategy(ServerConfig(), transport=_transport(handler))
        media = await strategy.resolve("https://cdn.example.com/clip.webm")

        assert media.content_type == "video/webm"
        assert media.content_length == len(VIDEO)
        assert media.filename == "clip.webm"
        assert await media.read() == VIDEO
        assert media.closed

    async def test_403_is_blocked(self):
        transport = _transport(lambda req: httpx.Response(403, text="Forbidden"))
        resolver = build_default_resolver(ServerConfig(), transport=transport)
        with pytest.raises(BlockedError):
            await resolver.resolve("https://blocked.example/video")

    async def test_challenge_page_is_blocked(self):
        page = "<html><body>Checking your browser... cf-chl challenge</body></html>"
        transport = _transport(
            lambda req: httpx.Response(200, text=page, headers={"content-type": "text/html; charset=utf-8"})
        )
        strategy = GenericFetchStrategy(ServerConfig(), transport=transport)
        with pytest.raises(BlockedError, match="bot challenge"):
            await strategy.fetch("https://cdn.example.com/watch")

    async def test_429_with_captcha_is_blocked(self):
        transport = _transport(lambda req: httpx.Response(429, text="solve this captcha"))
        strategy = GenericFetchStrategy(ServerConfig(), transport=transport)
        with pytest.raises(BlockedError):
            await strategy.fetch("https://cdn.example.com/a.mp4")

    async def test_404_is_resolution_error(self):
        transport = _transport(lambda req: httpx.Response(404, text="no such clip"))
        strategy = GenericFetchStrategy(ServerConfig(), transport=transport)
        with pytest.raises(ResolutionError, match="HTTP 404 no such clip") as exc_info:
            await strategy.fetch("https://cdn.example.com/a.mp4")
        assert not isinstance(exc_info.value, BlockedError)

    async def test_plain_html_page_passes_through(self):
        transport = _transport(
            lambda req: httpx.Response(200, text="<html>hello</html>", headers={"content-type": "text/html"})
        )
        strategy = GenericFetchStrategy(ServerConfig(), transport=transport)
        media = await strategy.fetch("https://cdn.example.com/page")
        assert await media.read() == b"<html>hello</html>"

    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        strategy = GenericFetchStrategy(ServerConfig(), transport=_transport(handler))
        with pytest.raises(ResolutionError, match="connection refused"):
            await strategy.fetch("https://cdn.example.com/a.mp4")

    async def test_redirect_only_returns_url(self):
        strategy = GenericFetchStrategy(ServerConfig(redirect_only=True))
        result = await strategy.resolve("https://cdn.example.com/a.mp4")
        assert result == MediaRedirect("https://cdn.example.com/a.mp4")

    async def test_open_follows_redirect(self):
        transport = _transport(lambda req: httpx.Response(200, content=VIDEO, headers={"content-type": "video/mp4"}))
        resolver = build_default_resolver(ServerConfig(redirect_only=True), transport=transport)
        media = await resolver.open("https://cdn.example.com/a.mp4")
        assert await media.read() == VIDEO

    async def test_body_error_mid_stream_wrapped(self):
        class PeerReset(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b"\x00" * 100
                raise httpx.ReadError("peer reset")

        transport = _transport(
            lambda req: httpx.Response(200, headers={"content-type": "video/mp4"}, stream=PeerReset())
        )
        media = await GenericFetchStrategy(ServerConfig(), transport=transport).fetch("https://cdn.example.com/a.mp4")
        with pytest.raises(ResolutionError, match="mid-stream.*peer reset"):
            await media.read()
        assert media.closed

    async def test_close_without_reading(self):
        transport = _transport(lambda req: httpx.Response(200, content=VIDEO))
        media = await GenericFetchStrategy(ServerConfig(), transport=transport).fetch("https://cdn.example.com/a.mp4")
        await media.aclose()
        await media.aclose()
        assert media.closed


class TestSizeAccounting:
    async def test_declared_size_over_limit_warns(self, caplog):
        big = b"\x00" * (1024 * 1024 + 10)
        transport = _transport(lambda req: httpx.Response(200, content=big))
        resolver = build_default_resolver(ServerConfig(media_warn_mb=1), transport=transport)
        with caplog.at_level(logging.WARNING, logger="spectator_mcp.resolver"):
            media = await resolver.resolve("https://cdn.example.com/a.mp4")
            assert len(await media.read()) == len(big)
        assert "advisory threshold" in caplog.text

    async def test_declared_size_over_limit_enforced(self):
        big = b"\x00" * (1024 * 1024 + 10)
        transport = _transport(lambda req: httpx.Response(200, content=big))
        resolver = build_default_resolver(
            ServerConfig(media_warn_mb=1, enforce_media_limit=True), transport=transport,
        )
        with pytest.raises(ResolutionError, match="over the 1 MB limit"):
            await resolver.resolve("https://cdn.example.com/a.mp4")

    async def test_streamed_size_over_limit_enforced(self):
        chunk = b"\x00" * (600 * 1024)
        media = MediaBytes(_chunks(chunk, chunk), "video/mp4")
        resolver = Resolver(
            [RecordingStrategy("stub", media)],
            ServerConfig(media_warn_mb=1, enforce_media_limit=True),
        )
        result = await resolver.resolve("https://cdn.example.com/a.mp4")
        with pytest.raises(ResolutionError, match="mid-stream"):
            await result.read()
        assert media.closed


class TestPlatformExtraction:
    def _strategy(self) -> PlatformExtractionStrategy:
        return PlatformExtractionStrategy(ServerConfig())

    def test_command_requests_small_combined_mp4(self):
        cmd = self._strategy()._command("https://youtu.be/abc")
        assert cmd[cmd.index("-f") + 1] == YTDLP_FORMAT
        assert cmd[cmd.index("-o") + 1] == "-"
        assert "--user-agent" in cmd
        assert cmd[-1] == "https://youtu.be/abc"

    async def test_streams_stdout(self):
        proc = FakeProcess(stdout=VIDEO)
        with (
            patch("spectator_mcp.resolver.shutil.which", return_value="/usr/bin/yt-dlp"),
            patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)),
        ):
            media = await self._strategy().resolve("https://youtu.be/abc")
            data = await media.read()
        assert data == VIDEO
        assert media.content_type == "video/mp4"
        assert media.filename == "network_stream.mp4"

    async def test_bot_check_is_blocked(self):
        proc = FakeProcess(stderr=b"ERROR: [youtube] abc: Sign in to confirm you're not a bot", returncode=1)
        with (
            patch("spectator_mcp.resolver.shutil.which", return_value="/usr/bin/yt-dlp"),
            patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)),
        ):
            with pytest.raises(BlockedError, match="not a bot"):
                await self._strategy().resolve("https://youtu.be/abc")

    async def test_other_failure_is_resolution_error(self):
        proc = FakeProcess(stderr=b"ERROR: Requested format is not available", returncode=1)
        with (
            patch("spectator_mcp.resolver.shutil.which", return_value="/usr/bin/yt-dlp"),
            patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)),
        ):
            with pytest.raises(ResolutionError, match="format is not available") as exc_info:
                await self._strategy().resolve("https://youtu.be/abc")
        assert not isinstance(exc_info.value, BlockedError)

    async def test_missing_binary(self):
        with patch("spectator_mcp.resolver.shutil.which", return_value=None):
            with pytest.raises(ResolutionError, match="yt-dlp not found"):
                await self._strategy().resolve("https://youtu.be/abc")

    async def test_early_close_kills_process(self):
        proc = FakeProcess(stdout=VIDEO)
        with (
            patch("spectator_mcp.resolver.shutil.which", return_value="/usr/bin/yt-dlp"),
            patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)),
        ):
            media = await self._strategy().resolve("https://youtu.be/abc")
            await media.aclose()
        proc.kill.assert_called_once()
        assert media.closed

    async def test_mid_stream_block_is_raised(self):
        proc = FakeProcess(stdout=VIDEO, stderr=b"ERROR: HTTP Error 403: Forbidden", returncode=1)
        with (
            patch("spectator_mcp.resolver.shutil.which", return_value="/usr/bin/yt-dlp"),
            patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)),
        ):
            media = await self._strategy().resolve("https://youtu.be/abc")
            with pytest.raises(BlockedError, match="403"):
                await media.read()
        assert media.closed

    async def test_mid_stream_failure_is_resolution_error(self):
        proc = FakeProcess(stdout=VIDEO, stderr=b"ERROR: fragment 3 not found", returncode=1)
        with (
            patch("spectator_mcp.resolver.shutil.which", return_value="/usr/bin/yt-dlp"),
            patch("spectator_mcp.resolver.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)),
        ):
            media = await self._strategy().resolve("https://youtu.be/abc")
            with pytest.raises(ResolutionError, match="mid-stream") as exc_info:
                await media.read()
        assert not isinstance(exc_info.value, BlockedError)
