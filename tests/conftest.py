"""Shared test fixtures for spectator-mcp."""

from __future__ import annotations

import asyncio
import io
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from PIL import Image


def unwrap_tool(tool: Any) -> Any:
    """Extract the raw coroutine from a FastMCP FunctionTool, if wrapped.

    FastMCP 2.x wraps @server.tool functions in FunctionTool (not callable).
    FastMCP 3.x preserves the original function. This helper works with both.
    """
    return getattr(tool, "fn", tool)


@pytest.fixture(autouse=True)
def _set_dummy_api_key(monkeypatch):
    """Ensure tests never hit real Gemini API."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key-not-real")


@pytest.fixture(autouse=True)
def clean_config():
    """Reset the config singleton between tests."""
    import spectator_mcp.config as cfg_mod

    cfg_mod._config = None
    yield
    cfg_mod._config = None


@pytest.fixture()
def mock_gemini_client():
    """Patch GeminiClient.get() with a client whose aio surface is AsyncMock."""
    with patch("spectator_mcp.client.GeminiClient.get") as mock_get:
        client = MagicMock()
        client.aio.files.get = AsyncMock()
        client.aio.models.generate_content = AsyncMock()
        mock_get.return_value = client
        yield {
            "get": mock_get,
            "client": client,
            "files_get": client.aio.files.get,
            "generate_content": client.aio.models.generate_content,
        }


def make_frame(width: int = 320, height: int = 240, color: str = "navy") -> Image.Image:
    """Solid-color RGB test frame."""
    return Image.new("RGB", (width, height), color)


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_response(text: str) -> MagicMock:
    """Minimal GenerateContentResponse stand-in with one text part."""
    part = MagicMock()
    part.text = text
    part.thought = False
    response = MagicMock()
    response.candidates = [MagicMock()]
    response.candidates[0].content.parts = [part]
    return response


def file_info(state: str) -> MagicMock:
    info = MagicMock()
    info.state = state
    return info


class FakeProcess:
    """asyncio subprocess stand-in backed by real StreamReaders."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        if stdout:
            self.stdout.feed_data(stdout)
        self.stdout.feed_eof()
        if stderr:
            self.stderr.feed_data(stderr)
        self.stderr.feed_eof()
        self._exit_code = returncode
        self.returncode: int | None = None
        self.kill = MagicMock(side_effect=self._killed)
        self.wait = AsyncMock(side_effect=self._wait)

    def _killed(self) -> None:
        self._exit_code = -9

    async def _wait(self) -> int:
        self.returncode = self._exit_code
        return self.returncode


class FakeCommunicateProcess:
    """Subprocess stand-in for commands run to completion with communicate()."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> None:
        self.returncode = returncode
        self.communicate = AsyncMock(return_value=(stdout, stderr))
