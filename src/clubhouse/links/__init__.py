"""Link metadata fetching.

This package provides:
- HttpMetadataFetcher: scrapes title/description/image/type from a URL
- URL helpers: validation against internal hosts, provider detection,
  internal upload detection and fetch error classification
"""

from clubhouse.links.fetcher import HttpMetadataFetcher
from clubhouse.links.urls import (
    classify_fetch_error,
    extract_domain,
    is_internal_upload_url,
    validate_url,
)

__all__ = [
    "HttpMetadataFetcher",
    "classify_fetch_error",
    "extract_domain",
    "is_internal_upload_url",
    "validate_url",
]
