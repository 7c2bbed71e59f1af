"""Helpers for masking sensitive information in logs."""

from __future__ import annotations

from typing import Any, Dict
from urllib.parse import urlsplit, urlunsplit


def redact_url(value: str | None) -> str | None:
    """Drop credentials, query string and fragment from a URL.

    Shared links often carry tokens in the query string.
    """
    if not value:
        return value

    try:
        parts = urlsplit(value)
    except ValueError:
        return "[UNPARSEABLE URL]"

    if not parts.scheme or not parts.netloc:
        return value

    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    query = "[REDACTED]" if parts.query else ""
    return urlunsplit((parts.scheme, host, parts.path, query, ""))


def redact_secret(_: Any) -> str:
    return "[REDACTED]"


SENSITIVE_KEYS = {
    "password",
    "redis_password",
    "postgres_password",
    "secret",
    "token",
}


def sanitize_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy with sensitive fields masked."""

    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if key in SENSITIVE_KEYS:
            sanitized[key] = redact_secret(value)
        elif key == "url" and isinstance(value, str):
            sanitized[key] = redact_url(value)
        else:
            sanitized[key] = value
    return sanitized
