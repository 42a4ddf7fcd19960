"""Gemini resumable upload protocol and file readiness probe.

The SDK's ``files.upload`` hides the protocol phases. Driving them over
httpx keeps each phase's failure distinct: a rejected start is a
``HandshakeError`` (usually a bad key), a failed byte transfer is a
``TransmissionError``.
"""

from __future__ import annotations

import logging

import httpx
from google import genai

from .errors import HandshakeError, TransmissionError
from .models.media import FileState, RemoteFileHandle

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/upload/v1beta/files"


def _service_message(response: httpx.Response) -> str:
    """Pull ``error.message`` from a Google error body, falling back to raw text."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:200] or response.reason_phrase
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return response.text.strip()[:200]


async def initiate_upload(
    http: httpx.AsyncClient,
    *,
    api_key: str,
    base_url: str,
    mime_type: str,
    size: int,
    display_name: str,
) -> str:
    """Phase (a): open a resumable upload session, return its endpoint URL.

    Raises:
        HandshakeError: If the service rejects the start command or omits
            the session URL.
    """
    try:
        response = await http.post(
            f"{base_url}{UPLOAD_PATH}",
            headers={
                "x-goog-api-key": api_key,
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(size),
                "X-Goog-Upload-Header-Content-Type": mime_type,
            },
            json={"file": {"display_name": display_name}},
        )
    except httpx.HTTPError as exc:
        raise HandshakeError(f"Upload handshake failed: {exc}") from exc

    if response.is_error:
        raise HandshakeError(
            f"Upload handshake failed (HTTP {response.status_code}): {_service_message(response)}. "
            "Check API key."
        )
    upload_url = response.headers.get("x-goog-upload-url")
    if not upload_url:
        raise HandshakeError("Upload handshake returned no upload URL")
    return upload_url


async def transmit_bytes(
    http: httpx.AsyncClient,
    upload_url: str,
    data: bytes,
    mime_type: str,
) -> RemoteFileHandle:
    """Phases (b)+(c): send the whole payload in one finalized request.

    Raises:
        TransmissionError: On a non-success response or a response without
            file metadata.
    """
    try:
        response = await http.post(
            upload_url,
            headers={
                "Content-Length": str(len(data)),
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            content=data,
        )
    except httpx.HTTPError as exc:
        raise TransmissionError(f"Byte transmission failed: {exc}") from exc

    if response.is_error:
        raise TransmissionError(
            f"Byte transmission failed (HTTP {response.status_code}): {_service_message(response)}"
        )
    try:
        meta = response.json()["file"]
        handle = RemoteFileHandle(
            name=meta["name"],
            uri=meta["uri"],
            mime_type=meta.get("mimeType") or mime_type,
            state=FileState.PENDING,
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise TransmissionError(f"Upload finalized without file metadata: {exc}") from exc

    logger.info("Uploaded %d bytes → %s", len(data), handle.uri)
    return handle


async def fetch_file_state(client: genai.Client, handle: RemoteFileHandle) -> FileState:
    """Ask the service for the current readiness of *handle*."""
    file_info = await client.aio.files.get(name=handle.name)
    return FileState.from_service(file_info.state)
