"""Main FastMCP server — mounts the console tools and the resolver route."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import Response

from .client import GeminiClient
from .config import get_config
from .http_routes import resolve_endpoint
from .sessions import session_store
from .tools.console import console_server

logger = logging.getLogger(__name__)

_TRANSPORTS = {"stdio": "stdio", "http": "streamable-http", "sse": "sse"}


@asynccontextmanager
async def _lifespan(server: FastMCP):
    """Startup/shutdown hook — drops live sessions and shared Gemini clients."""
    yield {}
    sessions = session_store.close_all()
    closed = await GeminiClient.close_all()
    logger.info("Lifespan shutdown: closed %d session(s), %d client(s)", sessions, closed)


app = FastMCP(
    "spectator",
    instructions=(
        "Forensic video analysis console — stage a local file or video URL, "
        "upload it to Gemini, then ask questions. Flagged events come back with "
        "annotated evidence frames captured from the original footage."
    ),
    lifespan=_lifespan,
)

app.mount(console_server)


@app.custom_route("/resolve", methods=["GET"])
async def resolve_route(request: Request) -> Response:
    return await resolve_endpoint(request)


def main() -> None:
    """Entry-point for ``spectator-mcp`` console script."""
    cfg = get_config()
    logging.basicConfig(level=logging.INFO)
    transport = _TRANSPORTS[cfg.transport]
    if transport == "stdio":
        app.run()
    else:
        app.run(transport=transport, host=cfg.http_host, port=cfg.http_port)


if __name__ == "__main__":
    main()
