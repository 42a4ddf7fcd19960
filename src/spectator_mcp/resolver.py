"""Video URL resolution — platform extraction via yt-dlp, generic fetch via httpx.

Strategies are tried in a fixed order. The platform strategy only handles
URLs on restricted hosts; the generic strategy accepts any http(s) URL.
A ``BlockedError`` from any strategy stops the chain immediately, since a
platform that rejects automated clients will not accept a different fetch.

Bytes are always returned as a stream (``MediaBytes``). Nothing here is
retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from .config import ServerConfig, get_config
from .errors import BlockedError, ResolutionError
from .models.media import MediaBytes, MediaRedirect, ResolutionResult
from .platforms import filename_from_url, is_restricted_url, validate_media_url

logger = logging.getLogger(__name__)

# Smallest mp4 that still carries both audio and video.
YTDLP_FORMAT = "worst[ext=mp4][vcodec!=none][acodec!=none]/worst[ext=mp4]"

CHUNK_SIZE = 64 * 1024
_CHALLENGE_SNIFF_BYTES = 16 * 1024

_BLOCK_MARKERS: tuple[str, ...] = (
    "http error 403",
    "403 forbidden",
    "sign in to confirm",
    "not a bot",
    "captcha",
    "cf-chl",
    "challenge-platform",
    "are you a robot",
    "unusual traffic",
)


def is_block_signal(message: str) -> bool:
    """Check a diagnostic (stderr or body) for signs of active rejection."""
    s = message.lower()
    return any(marker in s for marker in _BLOCK_MARKERS)


def browser_headers(user_agent: str) -> dict[str, str]:
    """Header set of a regular desktop browser."""
    return {
        "User-Agent": user_agent,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        "Sec-Fetch-Mode": "navigate",
    }


class ResolutionStrategy(Protocol):
    """One way of turning a URL into media."""

    name: str

    def matches(self, url: str) -> bool: ...

    async def resolve(self, url: str) -> ResolutionResult: ...


class PlatformExtractionStrategy:
    """Direct extraction from restricted platforms by piping yt-dlp's stdout."""

    name = "platform-extraction"

    def __init__(self, cfg: ServerConfig | None = None) -> None:
        self._cfg = cfg or get_config()

    def matches(self, url: str) -> bool:
        return is_restricted_url(url, self._cfg.restricted_hosts)

    def _command(self, url: str) -> list[str]:
        return [
            self._cfg.ytdlp_binary,
            "--no-playlist",
            "--quiet",
            "--no-warnings",
            "--no-part",
            "-f", YTDLP_FORMAT,
            "--user-agent", self._cfg.user_agent,
            "--add-header", "Accept-Language:en-US,en;q=0.9",
            "-o", "-",
            url,
        ]

    async def resolve(self, url: str) -> MediaBytes:
        """Start yt-dlp and hand back its stdout as a stream.

        The first chunk is read before returning so that a rejection (which
        produces no output) surfaces as an exception rather than an empty
        stream.

        Raises:
            BlockedError: If yt-dlp reports a 403 or bot challenge.
            ResolutionError: If yt-dlp is missing or fails for any other reason.
        """
        if not shutil.which(self._cfg.ytdlp_binary):
            raise ResolutionError(
                "yt-dlp not found. Install it: brew install yt-dlp (macOS) or pip install yt-dlp"
            )

        logger.info("Extracting %s via yt-dlp", url)
        proc = await asyncio.create_subprocess_exec(
            *self._command(url),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        # Drain stderr concurrently so a chatty extractor cannot stall stdout.
        stderr_task = asyncio.create_task(proc.stderr.read())

        async def _close() -> None:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        try:
            first = await proc.stdout.read(CHUNK_SIZE)
        except BaseException:
            await _close()
            raise

        if not first:
            stderr = (await stderr_task).decode(errors="replace").strip()
            await proc.wait()
            diagnostic = stderr or f"yt-dlp exited with code {proc.returncode} and no output"
            if is_block_signal(diagnostic):
                raise BlockedError(
                    f"Source platform rejected the extraction request for {url}: {diagnostic}"
                )
            raise ResolutionError(f"yt-dlp failed for {url}: {diagnostic}")

        async def _pipe() -> AsyncIterator[bytes]:
            yield first
            while True:
                chunk = await proc.stdout.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
            code = await proc.wait()
            if code != 0:
                err = (await stderr_task).decode(errors="replace").strip()
                err = err or f"yt-dlp exited with code {code}"
                logger.warning("yt-dlp exited %d after streaming %s: %s", code, url, err)
                # Output so far is truncated media.
                if is_block_signal(err):
                    raise BlockedError(
                        f"Source platform rejected the extraction request for {url}: {err}"
                    )
                raise ResolutionError(f"yt-dlp failed mid-stream for {url}: {err}")

        return MediaBytes(
            _pipe(),
            "video/mp4",
            filename="network_stream.mp4",
            on_close=_close,
        )


class GenericFetchStrategy:
    """Plain HTTP GET relaying body and content type unchanged."""

    name = "generic-fetch"

    def __init__(
        self,
        cfg: ServerConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cfg = cfg or get_config()
        self._transport = transport

    def matches(self, url: str) -> bool:
        return url.startswith(("http://", "https://"))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            timeout=self._cfg.http_timeout_seconds,
            headers=browser_headers(self._cfg.user_agent),
        )

    async def resolve(self, url: str) -> ResolutionResult:
        if self._cfg.redirect_only:
            return MediaRedirect(url=url)
        return await self.fetch(url)

    async def fetch(self, url: str) -> MediaBytes:
        """Open a streaming GET and return the body as ``MediaBytes``.

        Raises:
            BlockedError: On HTTP 403 or a bot-challenge page.
            ResolutionError: On any other non-success status or transport error.
        """
        client = self._client()
        try:
            response = await client.send(client.build_request("GET", url), stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise ResolutionError(f"Fetch failed for {url}: {exc}") from exc

        body = response.aiter_bytes(CHUNK_SIZE)

        async def _close() -> None:
            await response.aclose()
            await client.aclose()

        try:
            prefix = await self._check_response(url, response, body)
        except httpx.HTTPError as exc:
            await _close()
            raise ResolutionError(f"Fetch failed for {url}: {exc}") from exc
        except BaseException:
            await _close()
            raise

        async def _relay() -> AsyncIterator[bytes]:
            if prefix:
                yield prefix
            try:
                async for chunk in body:
                    yield chunk
            except httpx.HTTPError as exc:
                raise ResolutionError(f"Fetch failed for {url} mid-stream: {exc}") from exc

        length = response.headers.get("content-length", "")
        encoded = "content-encoding" in response.headers
        content_type = response.headers.get("content-type", "application/octet-stream")
        return MediaBytes(
            _relay(),
            content_type,
            content_length=int(length) if length.isdigit() and not encoded else None,
            filename=filename_from_url(str(response.url)),
            on_close=_close,
        )

    async def _check_response(
        self, url: str, response: httpx.Response, body: AsyncIterator[bytes],
    ) -> bytes:
        """Raise on rejection; return any body prefix consumed while sniffing."""
        status = response.status_code
        content_type = response.headers.get("content-type", "").lower()
        sniffed = b""
        if status >= 400 or content_type.startswith("text/html"):
            sniffed = await _read_prefix(body, _CHALLENGE_SNIFF_BYTES)
        text = sniffed.decode(errors="replace")

        if status == 403 or (status in (429, 503) and is_block_signal(text)):
            raise BlockedError(
                f"Source platform rejected the request for {url} (HTTP {status})"
            )
        if status >= 400:
            detail = text.strip()[:200] or response.reason_phrase
            raise ResolutionError(f"Fetch failed for {url}: HTTP {status} {detail}")
        if content_type.startswith("text/html") and is_block_signal(text):
            raise BlockedError(
                f"Source platform answered {url} with a bot challenge instead of media"
            )
        return sniffed


async def _read_prefix(body: AsyncIterator[bytes], limit: int) -> bytes:
    """Read up to roughly *limit* bytes, leaving *body* positioned after them."""
    buf = bytearray()
    async for chunk in body:
        buf.extend(chunk)
        if len(buf) >= limit:
            break
    return bytes(buf)


class Resolver:
    """Ordered strategy chain with size accounting."""

    def __init__(
        self,
        strategies: list[ResolutionStrategy],
        cfg: ServerConfig | None = None,
    ) -> None:
        self._strategies = strategies
        self._cfg = cfg or get_config()

    @property
    def strategies(self) -> list[ResolutionStrategy]:
        return list(self._strategies)

    async def resolve(self, url: str) -> ResolutionResult:
        """Resolve *url* with the first strategy that succeeds.

        Raises:
            BlockedError: As soon as any strategy reports active rejection.
            ResolutionError: If the URL is invalid or every strategy failed.
        """
        url = validate_media_url(url, allow_private=self._cfg.allow_private_hosts)
        failures: list[str] = []
        for strategy in self._strategies:
            if not strategy.matches(url):
                continue
            try:
                result = await strategy.resolve(url)
            except BlockedError:
                logger.warning("%s: source rejected %s", strategy.name, url)
                raise
            except ResolutionError as exc:
                logger.warning("%s failed for %s, trying next strategy: %s", strategy.name, url, exc)
                failures.append(f"{strategy.name}: {exc}")
                continue
            logger.info("Resolved %s via %s", url, strategy.name)
            if isinstance(result, MediaBytes):
                return await self._account_size(url, result)
            return result

        if not failures:
            raise ResolutionError(f"No resolution strategy accepts {url}")
        raise ResolutionError(f"Could not resolve {url} — " + "; ".join(failures))

    async def open(self, url: str) -> MediaBytes:
        """Resolve *url* and always return bytes, following a redirect result."""
        result = await self.resolve(url)
        if isinstance(result, MediaBytes):
            return result
        fetcher = next(
            (s for s in self._strategies if isinstance(s, GenericFetchStrategy)),
            GenericFetchStrategy(self._cfg),
        )
        media = await fetcher.fetch(result.url)
        return await self._account_size(result.url, media)

    async def _account_size(self, url: str, media: MediaBytes) -> MediaBytes:
        """Warn (or reject, when enforced) once media exceeds the size threshold."""
        limit = self._cfg.media_warn_bytes
        enforce = self._cfg.enforce_media_limit
        if media.content_length is not None and media.content_length > limit:
            if enforce:
                await media.aclose()
                raise ResolutionError(
                    f"Media at {url} is {media.content_length} bytes, over the "
                    f"{self._cfg.media_warn_mb} MB limit"
                )
            logger.warning(
                "Media at %s declares %.1f MB, above the %d MB advisory threshold",
                url, media.content_length / (1024 * 1024), self._cfg.media_warn_mb,
            )
            return media

        source = media.iter_chunks()

        async def _counted() -> AsyncIterator[bytes]:
            total = 0
            warned = False
            async for chunk in source:
                total += len(chunk)
                if total > limit and not warned:
                    warned = True
                    if enforce:
                        raise ResolutionError(
                            f"Media at {url} exceeded the {self._cfg.media_warn_mb} MB limit mid-stream"
                        )
                    logger.warning(
                        "Media at %s passed the %d MB advisory threshold while streaming",
                        url, self._cfg.media_warn_mb,
                    )
                yield chunk

        async def _close() -> None:
            await source.aclose()
            await media.aclose()

        return MediaBytes(
            _counted(),
            media.content_type,
            content_length=media.content_length,
            filename=media.filename,
            on_close=_close,
        )


def build_default_resolver(
    cfg: ServerConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Resolver:
    """Platform extraction first, then generic fetch."""
    cfg = cfg or get_config()
    return Resolver(
        [PlatformExtractionStrategy(cfg), GenericFetchStrategy(cfg, transport=transport)],
        cfg,
    )
