"""URL fetching over `requests` with rate-limit, robots, and retry policies."""

from __future__ import annotations

import logging
import threading
import time
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import requests

from .config import CrawlConfig
from .types import FetchResult
from .url import host_from_url, normalize_url

LOGGER = logging.getLogger(__name__)


class Fetcher:
    """Fetch URLs with one `requests.Session` per worker thread.

    Sessions are not shared between threads; rate limiting is tracked per host
    under a lock so concurrent workers respect the same spacing.
    """

    def __init__(self, config: CrawlConfig) -> None:
        self.config = config

        self._thread_local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

        self._rate_lock = threading.Lock()
        self._next_allowed_time_by_host: dict[str, float] = {}

        self._robots_lock = threading.Lock()
        self._robots_cache: dict[str, RobotFileParser | None] = {}

        self._closed = False
        self._closed_lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        """Fetch one URL with configured retries and policies."""

        normalized = normalize_url(url)
        if normalized is None:
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="Invalid or unsupported URL",
            )

        if self.config.respect_robots and not self._is_allowed_by_robots(normalized):
            return FetchResult(
                requested_url=normalized,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="Blocked by robots.txt",
            )

        if self._is_closed():
            return FetchResult(
                requested_url=normalized,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="Fetcher is closed",
            )

        attempts = self.config.retries + 1
        result = self._fetch_once(normalized)

        for attempt in range(1, attempts):
            if self._is_terminal_result(result) or self._is_closed():
                break

            LOGGER.debug("Retrying %s (attempt %d/%d)", normalized, attempt + 1, attempts)
            if self.config.retry_backoff_seconds > 0:
                # Linear backoff.
                time.sleep(self.config.retry_backoff_seconds * attempt)
            result = self._fetch_once(normalized)

        return result

    def close(self) -> None:
        """Close all per-thread sessions."""

        with self._closed_lock:
            self._closed = True

        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _is_closed(self) -> bool:
        with self._closed_lock:
            return self._closed

    @staticmethod
    def _is_terminal_result(result: FetchResult) -> bool:
        if result.error is not None:
            return False

        if result.status_code is None:
            return False

        if result.status_code in {408, 429} or result.status_code >= 500:
            return False

        return True

    def _fetch_once(self, url: str) -> FetchResult:
        self._wait_for_rate_limit(url)
        started = time.perf_counter()

        session = self._thread_local_session()

        try:
            response = session.get(
                url,
                headers=self.config.request_headers(),
                timeout=self.config.timeout_seconds,
                allow_redirects=True,
            )
            elapsed_ms = int((time.perf_counter() - started) * 1000)

            body = response.content if response.content is not None else b""
            return FetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
                body=body,
                elapsed_ms=elapsed_ms,
                error=None,
            )
        except requests.RequestException as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=elapsed_ms,
                error=f"{exc.__class__.__name__}: {exc}",
            )

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _wait_for_rate_limit(self, url: str) -> None:
        wait_seconds = max(0.0, self.config.rate_limit_seconds)
        if wait_seconds <= 0:
            return

        host = host_from_url(url)

        while True:
            with self._rate_lock:
                now = time.monotonic()
                next_allowed = self._next_allowed_time_by_host.get(host, 0.0)
                if now >= next_allowed:
                    self._next_allowed_time_by_host[host] = now + wait_seconds
                    return
                sleep_for = next_allowed - now

            if sleep_for > 0:
                time.sleep(sleep_for)

    def _is_allowed_by_robots(self, url: str) -> bool:
        parsed = urlsplit(url)
        host_key = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"

        with self._robots_lock:
            cached = host_key in self._robots_cache
            parser = self._robots_cache.get(host_key)

        if not cached:
            parser = self._load_robots_parser(host_key)
            with self._robots_lock:
                self._robots_cache[host_key] = parser

        # Unloadable robots.txt allows everything.
        if parser is None:
            return True

        return parser.can_fetch(self.config.user_agent or "*", url)

    def _load_robots_parser(self, host_root: str) -> RobotFileParser | None:
        robots_url = f"{host_root}/robots.txt"

        try:
            response = requests.get(
                robots_url,
                headers={"User-Agent": self.config.user_agent},
                timeout=min(10.0, self.config.timeout_seconds),
            )
        except requests.RequestException as exc:
            LOGGER.debug("Could not load %s: %s", robots_url, exc)
            return None

        if response.status_code >= 400:
            return None

        parser = RobotFileParser()
        parser.set_url(robots_url)
        parser.parse(response.text.splitlines())
        return parser


__all__ = ["Fetcher"]
