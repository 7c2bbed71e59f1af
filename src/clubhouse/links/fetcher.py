"""HTTP fetcher that scrapes preview metadata (title, description, image) from a URL."""

from __future__ import annotations

from typing import Any

import httpx
from bs4 import BeautifulSoup

from clubhouse.links.urls import (
    detect_provider,
    extract_domain,
    looks_like_image_url,
    resolve_url,
    validate_url,
)
from clubhouse.main.exceptions import MetadataFetchError
from clubhouse.main.logging import get_logger
from clubhouse.observability.redaction import redact_url

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_BODY_BYTES = 2 * 1024 * 1024
MAX_REDIRECTS = 5

REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; ClubhouseLinkPreview/1.0)",
    "Accept": "text/html,application/xhtml+xml;q=0.9,image/*;q=0.8,*/*;q=0.5",
    "Accept-Language": "en-US,en;q=0.8",
}


def first_non_empty(*values: str | None) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


def extract_html_meta(body: bytes) -> tuple[dict[str, str], str]:
    """Collect ``<meta>`` tags (first occurrence wins) and the document title."""
    meta_tags: dict[str, str] = {}
    if not body:
        return meta_tags, ""

    soup = BeautifulSoup(body, "lxml")
    for tag in soup.find_all("meta"):
        key = (tag.get("property") or tag.get("name") or "").strip().lower()
        content = (tag.get("content") or "").strip()
        if key and content and key not in meta_tags:
            meta_tags[key] = content

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    return meta_tags, title


def build_html_metadata(page_url: str, meta_tags: dict[str, str], title: str) -> dict[str, Any]:
    metadata: dict[str, Any] = {}

    fields = {
        "title": first_non_empty(meta_tags.get("og:title"), meta_tags.get("twitter:title"), title),
        "description": first_non_empty(
            meta_tags.get("og:description"),
            meta_tags.get("twitter:description"),
            meta_tags.get("description"),
        ),
        "image": first_non_empty(
            meta_tags.get("og:image:secure_url"),
            meta_tags.get("og:image"),
            meta_tags.get("twitter:image"),
            meta_tags.get("twitter:image:src"),
        ),
        "site_name": first_non_empty(meta_tags.get("og:site_name"), meta_tags.get("application-name")),
        "author": first_non_empty(meta_tags.get("author"), meta_tags.get("twitter:creator")),
        "type": first_non_empty(meta_tags.get("og:type")),
    }
    for key, value in fields.items():
        if value:
            metadata[key] = value

    if "image" in metadata:
        metadata["image"] = resolve_url(page_url, metadata["image"])
    return metadata


class HttpMetadataFetcher:
    """Fetches a URL and turns its response into link preview metadata.

    Every hop of a redirect chain is validated, so a public URL cannot
    redirect the fetcher into the internal network. Bodies are read up to
    ``max_body_bytes``.

    Args:
        client: Optional shared httpx client. One is created (and owned) if omitted.
        timeout: Per-request timeout in seconds.
        max_body_bytes: Body read limit.
        validate_urls: Disable only for tests against local servers.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
        validate_urls: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
            headers=REQUEST_HEADERS,
        )
        self._max_body_bytes = max_body_bytes
        self._validate_urls = validate_urls

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> dict[str, Any]:
        """Return preview metadata for ``url``.

        Raises:
            MetadataFetchError: invalid or blocked URL, unexpected status, too many redirects.
            httpx.HTTPError: transport failures and timeouts.
        """
        current_url = url
        for _ in range(MAX_REDIRECTS + 1):
            if self._validate_urls:
                await validate_url(current_url)

            async with self._client.stream(
                "GET", current_url, headers=REQUEST_HEADERS, follow_redirects=False
            ) as response:
                if response.is_redirect:
                    location = response.headers.get("location")
                    if not location:
                        raise MetadataFetchError("redirect without location", "redirect")
                    current_url = resolve_url(str(response.url), location)
                    continue

                if not response.is_success:
                    raise MetadataFetchError(
                        f"unexpected status: {response.status_code}", "http_status"
                    )

                content_type = response.headers.get("content-type", "").lower()
                body = await self._read_body(response)
                return self._build_metadata(str(response.url), content_type, body)

        raise MetadataFetchError("too many redirects", "redirect")

    async def _read_body(self, response: httpx.Response) -> bytes:
        chunks: list[bytes] = []
        size = 0
        async for chunk in response.aiter_bytes():
            remaining = self._max_body_bytes - size
            if remaining <= 0:
                break
            chunks.append(chunk[:remaining])
            size += min(len(chunk), remaining)
        return b"".join(chunks)

    def _build_metadata(self, page_url: str, content_type: str, body: bytes) -> dict[str, Any]:
        metadata: dict[str, Any] = {}
        provider = detect_provider(extract_domain(page_url))
        is_html = "text/html" in content_type or "application/xhtml" in content_type

        # SVGs are treated as images; the client renders them with <img>
        if content_type.startswith("image/"):
            metadata["image"] = page_url
            metadata["type"] = "image"

        if is_html:
            meta_tags, title = extract_html_meta(body)
            metadata.update(build_html_metadata(page_url, meta_tags, title))
            if not provider and metadata.get("site_name"):
                provider = metadata["site_name"]

        if "image" not in metadata and not is_html and looks_like_image_url(page_url):
            metadata["image"] = page_url
            metadata["type"] = "image"

        provider = provider or extract_domain(page_url)
        if provider:
            metadata["provider"] = provider

        logger.debug(
            "Extracted link metadata",
            extra={"url": redact_url(page_url), "keys": sorted(metadata)},
        )
        return metadata
