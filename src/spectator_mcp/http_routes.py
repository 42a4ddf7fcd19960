"""HTTP surface of the resolver — ``GET /resolve?url=...``.

Registered as a custom route on the FastMCP app; served when the server
runs over an HTTP transport.
"""

from __future__ import annotations

import logging

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse

from .errors import BlockedError, SpectatorError
from .models.media import MediaBytes
from .resolver import Resolver, build_default_resolver

logger = logging.getLogger(__name__)


def _attachment(filename: str) -> str:
    safe = filename.replace('"', "").replace("\r", "").replace("\n", "") or "video.mp4"
    return f'attachment; filename="{safe}"'


async def resolve_endpoint(request: Request, resolver: Resolver | None = None) -> Response:
    """Resolve a URL into a redirect JSON body or a streamed media download."""
    url = request.query_params.get("url", "").strip()
    if not url:
        return JSONResponse({"error": "Missing url parameter"}, status_code=400)

    resolver = resolver or build_default_resolver()
    try:
        result = await resolver.resolve(url)
    except BlockedError as exc:
        logger.warning("Resolve blocked for %s: %s", url, exc)
        return JSONResponse(
            {"error": "Source platform blocked the request", "details": str(exc), "blocked": True},
            status_code=500,
        )
    except SpectatorError as exc:
        logger.warning("Resolve failed for %s: %s", url, exc)
        return JSONResponse(
            {"error": "Failed to resolve media", "details": str(exc)},
            status_code=500,
        )

    if not isinstance(result, MediaBytes):
        return JSONResponse({"downloadUrl": result.url})

    headers = {"Content-Disposition": _attachment(result.filename or "network_stream.mp4")}
    if result.content_length is not None:
        headers["Content-Length"] = str(result.content_length)
    return StreamingResponse(
        result.iter_chunks(),
        media_type=result.content_type or "video/mp4",
        headers=headers,
        background=BackgroundTask(result.aclose),
    )
