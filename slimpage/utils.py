"""Utility helpers for sizes and URL handling."""

from __future__ import annotations

import html
from typing import List
from urllib.parse import urljoin, urlparse

from requests.utils import requote_uri

_SIZE_UNITS = ("KB", "MB", "GB")


def format_size(value) -> str:
    """Render a byte count as a human-readable magnitude."""
    if isinstance(value, str):
        return value
    size = float(value)
    if size < 1024:
        return f"{int(size)}B"
    for unit in _SIZE_UNITS:
        size /= 1024.0
        if size < 1024.0 or unit == _SIZE_UNITS[-1]:
            break
    return f"{size:.1f}{unit}"


def is_http_url(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https")


def resolve_url(reference: str, base_url: str) -> str:
    """Join ``reference`` onto ``base_url`` in the percent-encoded form a browser requests."""
    return requote_uri(urljoin(base_url, reference))


def url_variants(url: str) -> List[str]:
    """Return the spellings a URL can take inside serialized markup."""
    variants = [url, url.replace("&", "&amp;"), html.escape(url)]
    unique: List[str] = []
    for variant in variants:
        if variant not in unique:
            unique.append(variant)
    return unique


def normalize_page_url(url: str) -> str:
    """Return the URL a browser requests for ``url``: no fragment, and a path."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return url
    return parsed._replace(path=parsed.path or "/", fragment="").geturl()
