"""URL normalization, scope helpers, and anchor extraction."""

from __future__ import annotations

import posixpath
import re
from typing import Sequence
from urllib.parse import (
    parse_qsl,
    quote,
    urlencode,
    urljoin,
    urlsplit,
    urlunsplit,
)

from bs4 import BeautifulSoup


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_domain(domain_or_url: str) -> str:
    """Normalize a domain (or URL containing one) for matching.

    This strips `www.` and leading/trailing dots and lowercases the host.
    """

    raw = (domain_or_url or "").strip().lower()
    if not raw:
        return ""

    parsed = urlsplit(raw if "://" in raw else f"//{raw}")
    host = (parsed.hostname or "").strip().lower()
    if host.startswith("www."):
        host = host[4:]
    return host.strip(".")


def host_from_url(url: str) -> str:
    """Extract normalized host from URL."""

    parsed = urlsplit(url)
    host = (parsed.hostname or "").strip().lower()
    if host.startswith("www."):
        host = host[4:]
    return host.strip(".")


def _has_default_port(scheme: str, port: int | None) -> bool:
    if port is None:
        return False
    return (scheme == "http" and port == 80) or (scheme == "https" and port == 443)


def _normalize_netloc(parsed_url) -> str:  # urllib.parse.SplitResult
    host = (parsed_url.hostname or "").lower()
    if not host:
        return parsed_url.netloc.lower()

    userinfo = ""
    if parsed_url.username:
        userinfo = quote(parsed_url.username, safe="")
        if parsed_url.password:
            userinfo += ":" + quote(parsed_url.password, safe="")
        userinfo += "@"

    port: int | None
    try:
        port = parsed_url.port
    except ValueError:
        port = None

    if port is not None and not _has_default_port(parsed_url.scheme.lower(), port):
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


def _normalize_path(path: str) -> str:
    if not path:
        return "/"

    collapsed = re.sub(r"/{2,}", "/", path)
    trailing_slash = collapsed.endswith("/")
    normalized = posixpath.normpath(collapsed)

    if collapsed.startswith("/") and not normalized.startswith("/"):
        normalized = "/" + normalized

    if normalized in {"", "."}:
        return "/"

    # A trailing slash is significant.
    if trailing_slash and normalized != "/":
        normalized += "/"

    return normalized


def _normalize_query(query: str) -> str:
    if not query:
        return ""

    pairs = parse_qsl(query, keep_blank_values=True)
    if not pairs:
        return ""

    # Parameter order is kept.
    return urlencode(pairs, doseq=True)


def normalize_url(
    url: str | None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Canonicalize absolute URL for dedup and visited tracking.

    Returns `None` for URLs that are invalid or outside allowed schemes.
    """

    if not url:
        return None

    raw = url.strip()
    if not raw:
        return None

    parsed = urlsplit(raw)
    if not parsed.scheme or not parsed.netloc:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in {item.lower() for item in allowed_schemes}:
        return None

    netloc = _normalize_netloc(parsed)
    if not netloc:
        return None

    return urlunsplit((scheme, netloc, _normalize_path(parsed.path), _normalize_query(parsed.query), ""))


def resolve_url(
    base_url: str,
    href: str | None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Resolve possibly relative link against base URL and normalize it."""

    if href is None:
        return None

    candidate = href.strip()
    if not candidate or candidate.startswith("#"):
        return None

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return None

    return normalize_url(urljoin(base_url, candidate), allowed_schemes=allowed_schemes)


def collapse_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace in anchor text to single spaces."""

    return _WHITESPACE_RE.sub(" ", text or "").strip()


def select_elements(html: str | bytes, selector: str) -> list[tuple[dict[str, str], str]]:
    """Return `(attributes, text)` for each element matching a CSS selector.

    Elements are returned in document order. Multi-valued attributes such as
    `class` are joined with spaces.
    """

    soup = BeautifulSoup(html, "lxml")

    out: list[tuple[dict[str, str], str]] = []
    for element in soup.select(selector):
        attrs = {
            str(name): " ".join(value) if isinstance(value, list) else str(value)
            for name, value in element.attrs.items()
        }
        out.append((attrs, element.get_text(" ", strip=True)))
    return out


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_HREF_PREFIXES",
    "collapse_whitespace",
    "host_from_url",
    "normalize_domain",
    "normalize_url",
    "resolve_url",
    "select_elements",
]
