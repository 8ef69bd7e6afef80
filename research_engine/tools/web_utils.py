from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def clean_text(text: str, max_length: int = 2000) -> str:
    """Collapse whitespace and markup remnants, trim to max length."""
    text = re.sub(r"<[^>]+>", " ", text or "")
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def extract_domain(url: str) -> str:
    """Extract the bare host (no ``www.``) for display and trust checks."""
    try:
        host = urlparse(url).netloc
    except ValueError:
        return url
    host = host.lower().split("@")[-1].split(":")[0]
    if host.startswith("www."):
        host = host[4:]
    return host


def normalize_url(url: str) -> str | None:
    """Canonical form used as an identity key: host + path, lower-cased.

    Scheme, ``www.``, query string, fragment and trailing slash are dropped
    so that http/https and mirror variants collapse onto one key.
    """
    raw = (url or "").strip()
    if not raw:
        return None
    if "://" not in raw:
        raw = f"https://{raw}"
    try:
        parsed = urlparse(raw)
    except ValueError:
        return None
    host = extract_domain(raw)
    if not host:
        return None
    path = parsed.path.rstrip("/")
    return f"{host}{path}".lower()
