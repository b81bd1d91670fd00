from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Only absolute http(s) URLs can identify a document."""
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def normalize_url(url: str) -> str:
    """Strip surrounding whitespace and a trailing fragment."""
    return url.strip().split("#", 1)[0]


def excerpt(text: str, max_length: int) -> str:
    """Collapse whitespace and cut to `max_length`, marking truncation."""
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[:max_length].rstrip() + "..."
    return text


def hostname(url: str) -> str:
    """Host for user-facing notes; falls back to the URL itself."""
    try:
        return urlparse(url).netloc or url
    except ValueError:
        return url
