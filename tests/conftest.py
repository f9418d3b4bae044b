"""
Pytest Configuration and Shared Fixtures

Provides an in-memory fetcher that serves canned HTML pages, plus a small
route-listing site used by the controller and CLI tests.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Mapping, Tuple, Union

import pytest

from transit.crawler import CrawlConfig, FetchResult
from transit.crawler.url import normalize_url


ROOT_URL = "https://bustime.example.org/m/routes/"

Page = Union[str, int, Tuple[int, str], Exception]


class FakeFetcher:
    """Serve pages from a dict keyed by URL.

    Values may be an HTML string (200), an int status code (empty body),
    a `(status, html)` tuple, or an exception instance (transport error).
    Unknown URLs return 404.
    """

    def __init__(self, pages: Mapping[str, Page], *, content_type: str = "text/html; charset=utf-8") -> None:
        self.pages: Dict[str, Page] = {normalize_url(url) or url: page for url, page in pages.items()}
        self.content_type = content_type
        self.calls: List[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls.append(url)

        page = self.pages.get(normalize_url(url) or url, 404)

        if isinstance(page, Exception):
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error=f"{page.__class__.__name__}: {page}",
            )

        if isinstance(page, tuple):
            status, html = page
        elif isinstance(page, int):
            status, html = page, ""
        else:
            status, html = 200, page

        return FetchResult(
            requested_url=url,
            final_url=url,
            status_code=status,
            content_type=self.content_type,
            body=html.encode("utf-8"),
        )

    def call_count(self, url: str) -> int:
        target = normalize_url(url)
        with self._lock:
            return sum(1 for call in self.calls if call == target)

    def close(self) -> None:
        self.closed = True


def anchors(*links: Tuple[str, str]) -> str:
    """Build a minimal HTML page from `(href, text)` pairs."""

    items = "\n".join(f'<li><a href="{href}">{text}</a></li>' for href, text in links)
    return f"<html><body><ul>\n{items}\n</ul></body></html>"


# ============================================================================
# Site Fixtures
# ============================================================================

@pytest.fixture
def root_url() -> str:
    return ROOT_URL


@pytest.fixture
def site_pages() -> Dict[str, Page]:
    """Root listing with two routes, each listing a few stops."""

    return {
        ROOT_URL: anchors(
            ("/m/?q=BX1", "BX1 Grand Concourse"),
            ("/m/?q=M15", "M15 1st Av / 2nd Av"),
            ("/m/?q=ignored", "Not a route"),
            ("/m/about", "About"),
            ("mailto:help@example.org", "Help"),
        ),
        "https://bustime.example.org/m/?q=BX1": anchors(
            ("/m/?q=308323", "Main St &amp; 1st Ave"),
            ("/m/?q=400100", "Fordham Rd"),
            ("/m/?q=M15", "Transfer to M15"),
            ("/m/?q=nope", "Schedule"),
        ),
        "https://bustime.example.org/m/?q=M15": anchors(
            ("/m/?q=308323", "Main St &amp; 1st Ave"),
            ("/m/?q=500200", "2 Av /\n   E 14 St"),
        ),
    }


@pytest.fixture
def fake_fetcher(site_pages: Dict[str, Page]) -> FakeFetcher:
    return FakeFetcher(site_pages)


@pytest.fixture
def crawl_config(root_url: str) -> CrawlConfig:
    return CrawlConfig(root_url=root_url, concurrency=4, timeout_seconds=5.0)


@pytest.fixture
def test_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "test_output"
    output_dir.mkdir(exist_ok=True)
    return output_dir
