"""URL helpers for link metadata: validation, provider detection, classification."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from urllib.parse import parse_qs, urljoin, urlsplit

import httpx

from clubhouse.main.exceptions import MetadataFetchError

INTERNAL_UPLOAD_PREFIX = "/api/v1/uploads"

BLOCKED_HOSTNAMES = {"localhost", "metadata.google.internal"}

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "avif", "tif", "tiff")

_PROVIDERS = (
    (("spotify.com",), "spotify"),
    (("youtube.com", "youtu.be"), "youtube"),
    (("imdb.com",), "imdb"),
    (("soundcloud.com",), "soundcloud"),
    (("bandcamp.com",), "bandcamp"),
    (("vimeo.com",), "vimeo"),
)


def extract_domain(raw_url: str) -> str:
    """Lowercased hostname of ``raw_url``, or an empty string."""
    if not raw_url or not raw_url.strip():
        return ""
    try:
        host = urlsplit(raw_url.strip()).hostname
    except ValueError:
        return ""
    return (host or "").strip().lower()


def is_internal_upload_url(raw_url: str) -> bool:
    """Whether ``raw_url`` points at the app's own uploads endpoint."""
    trimmed = (raw_url or "").strip()
    if not trimmed:
        return False
    try:
        path = urlsplit(trimmed).path.strip()
    except ValueError:
        return False
    return path == INTERNAL_UPLOAD_PREFIX or path.startswith(f"{INTERNAL_UPLOAD_PREFIX}/")


def detect_provider(host: str) -> str:
    host = host.lower()
    for needles, provider in _PROVIDERS:
        if any(needle in host for needle in needles):
            return provider
    return ""


def _has_image_extension(value: str) -> bool:
    lower = value.lower()
    for ext in IMAGE_EXTENSIONS:
        needle = f".{ext}"
        idx = lower.rfind(needle)
        if idx == -1:
            continue
        end = idx + len(needle)
        if end == len(lower) or lower[end] in "?#&":
            return True
    return False


def looks_like_image_url(raw_url: str) -> bool:
    parts = urlsplit(raw_url)
    if _has_image_extension(parts.path):
        return True
    if not parts.query:
        return False

    query = parse_qs(parts.query)
    for key in ("format", "fm", "ext", "type"):
        values = query.get(key)
        if values and values[0].lower() in (*IMAGE_EXTENSIONS, "image"):
            return True

    return any(_has_image_extension(value) for values in query.values() for value in values)


def resolve_url(base: str, ref: str) -> str:
    return urljoin(base, ref)


def is_blocked_ip(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return True
    return (
        ip.is_loopback
        or ip.is_link_local
        or ip.is_private
        or ip.is_unspecified
        or ip.is_multicast
    )


def is_blocked_hostname(host: str) -> bool:
    return host in BLOCKED_HOSTNAMES or host.endswith(".localhost")


async def resolve_host(host: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


async def validate_url(raw_url: str) -> None:
    """Reject URLs the fetcher must not request (non-http schemes, internal hosts).

    Raises:
        MetadataFetchError: with error_type ``invalid_url``, ``blocked`` or ``dns``.
    """
    try:
        parts = urlsplit(raw_url)
    except ValueError as exc:
        raise MetadataFetchError(f"parse url: {exc}", "invalid_url") from exc

    if not parts.scheme:
        raise MetadataFetchError("missing url scheme", "invalid_url")
    if parts.scheme not in ("http", "https"):
        raise MetadataFetchError("unsupported url scheme", "invalid_url")

    host = (parts.hostname or "").rstrip(".").lower()
    if not host:
        raise MetadataFetchError("missing url host", "invalid_url")
    if is_blocked_hostname(host):
        raise MetadataFetchError(f"blocked host: {host}", "blocked")

    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        if is_blocked_ip(host):
            raise MetadataFetchError(f"blocked ip: {host}", "blocked")
        return

    try:
        addresses = await resolve_host(host)
    except OSError as exc:
        raise MetadataFetchError(f"resolve host: {exc}", "dns") from exc
    if not addresses:
        raise MetadataFetchError("resolve host: no addresses", "dns")
    for address in addresses:
        if is_blocked_ip(address):
            raise MetadataFetchError(f"blocked ip: {address}", "blocked")


def classify_fetch_error(exc: BaseException | None) -> str:
    """Short error type for fetch failure logs."""
    if exc is None:
        return ""
    if isinstance(exc, MetadataFetchError):
        return exc.error_type
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return "timeout"
    if isinstance(exc, httpx.TooManyRedirects):
        return "redirect"
    if isinstance(exc, httpx.HTTPStatusError):
        return "http_status"
    return "fetch_error"
