"""Restricted-platform detection and URL validation for the resolver."""

from __future__ import annotations

from ipaddress import ip_address
from pathlib import PurePosixPath
from urllib.parse import urlparse

from .errors import ResolutionError

VIDEO_EXTENSION_MIME: dict[str, str] = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".mpeg": "video/mpeg",
    ".wmv": "video/x-ms-wmv",
    ".3gpp": "video/3gpp",
}


def _host(url: str) -> str:
    """Lower-cased hostname without port, or empty string."""
    return (urlparse(url.replace("\\", "")).hostname or "").lower()


def host_matches(host: str, domain: str) -> bool:
    """True when *host* is *domain* or one of its subdomains.

    ``notyoutube.com`` and ``youtube.com.evil.test`` do not match ``youtube.com``.
    """
    host = host.lower().split(":", 1)[0].rstrip(".")
    domain = domain.lower().lstrip(".")
    return host == domain or host.endswith("." + domain)


def is_restricted_url(url: str, restricted_hosts: list[str] | tuple[str, ...]) -> bool:
    """Check whether *url* points at a platform that blocks direct fetching."""
    host = _host(url)
    if not host:
        return False
    return any(host_matches(host, domain) for domain in restricted_hosts)


def validate_media_url(url: str, *, allow_private: bool = False) -> str:
    """Validate a user-supplied media URL and return it stripped.

    Checks:
    - http or https scheme
    - hostname present, no embedded credentials
    - literal IPs are not private, loopback, link-local, or reserved
      (unless *allow_private*)

    No DNS lookups are made; hostnames are accepted as-is.

    Raises:
        ResolutionError: If any check fails.
    """
    url = url.strip().replace("\\", "")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ResolutionError(f"Only http(s) URLs can be resolved, got '{parsed.scheme or url}'")
    if parsed.username or parsed.password:
        raise ResolutionError("URLs with embedded credentials are not allowed")
    hostname = parsed.hostname
    if not hostname:
        raise ResolutionError(f"URL has no hostname: {url}")

    if not allow_private:
        try:
            ip = ip_address(hostname)
        except ValueError:
            ip = None
        if ip is not None and (
            ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved or ip.is_multicast
        ):
            raise ResolutionError(f"URL points at a non-public address ({hostname})")
        if hostname == "localhost":
            raise ResolutionError("URL points at a non-public address (localhost)")
    return url


def filename_from_url(url: str, default: str = "network_stream.mp4") -> str:
    """Use the URL's last path segment when it carries a known video extension."""
    name = PurePosixPath(urlparse(url).path).name
    if PurePosixPath(name).suffix.lower() in VIDEO_EXTENSION_MIME:
        return name
    return default
