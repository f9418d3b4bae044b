"""Threaded fetch engine that dispatches parsed elements to callbacks.

The engine owns the frontier, the worker threads, and the fetcher. It knows
nothing about routes or stops: callers register callbacks with `on_html`,
`on_error`, and `on_scraped`, seed it with `visit`, and block on `wait`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from .config import CrawlConfig
from .fetcher import Fetcher
from .frontier import EnqueueResult, Frontier
from .stats import StatsCollector
from .types import TRANSPORT_ERROR_STATUS, FetchResult, PageRequest, PageRole
from .url import resolve_url, select_elements

LOGGER = logging.getLogger(__name__)

WORKER_POLL_SECONDS = 0.5
WORKER_JOIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class HTMLElement:
    """One element matched by a registered selector."""

    attrs: dict[str, str]
    text: str
    request: PageRequest
    base_url: str
    selector: str = field(default="")

    def attr(self, name: str) -> str:
        return self.attrs.get(name, "")

    def absolute_url(self, href: str | None) -> str | None:
        return resolve_url(self.base_url, href)


HTMLCallback = Callable[[HTMLElement], None]
ErrorCallback = Callable[[PageRequest, int, str], None]
ScrapedCallback = Callable[[PageRequest], None]


class CrawlEngine:
    """Fetch queued pages on a pool of worker threads.

    Callbacks run synchronously on the worker thread that fetched the page, so
    they may be invoked concurrently for different pages. An engine runs one
    crawl: after `wait` returns, further `visit` calls are rejected.
    """

    def __init__(
        self,
        config: CrawlConfig,
        *,
        fetcher: Fetcher | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher or Fetcher(config)
        self.stats = stats or StatsCollector()
        self.frontier = Frontier(config)

        self._owns_fetcher = fetcher is None

        self._html_callbacks: list[tuple[str, HTMLCallback]] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._scraped_callbacks: list[ScrapedCallback] = []

        self._workers: list[threading.Thread] = []
        self._start_lock = threading.Lock()

    def on_html(self, selector: str, callback: HTMLCallback) -> None:
        """Call `callback` for every element matching CSS `selector`."""

        self._html_callbacks.append((selector, callback))

    def on_error(self, callback: ErrorCallback) -> None:
        """Call `callback(request, status_code, message)` for failed fetches."""

        self._error_callbacks.append(callback)

    def on_scraped(self, callback: ScrapedCallback) -> None:
        """Call `callback(request)` after all element callbacks for a page."""

        self._scraped_callbacks.append(callback)

    def visit(
        self,
        url: str,
        *,
        role: PageRole,
        depth: int = 0,
        route_id: str | None = None,
        referrer: str | None = None,
    ) -> EnqueueResult:
        """Queue a page fetch. Depth and scope limits are enforced here."""

        result = self.frontier.push(
            url,
            depth=depth,
            role=role,
            route_id=route_id,
            referrer=referrer,
        )
        self.stats.record_enqueue(result)
        if result.accepted:
            self._ensure_workers()
        else:
            LOGGER.debug("Not queued (%s): %s", result.status.value, url)
        return result

    def wait(self) -> None:
        """Block until every queued page, and pages queued from it, is done."""

        try:
            self.frontier.join()
        finally:
            self.frontier.close()

            for worker in self._workers:
                worker.join(timeout=WORKER_JOIN_TIMEOUT_SECONDS)

            self.stats.record_frontier_snapshot(self.frontier.snapshot())

            if self._owns_fetcher:
                self.fetcher.close()

    def _ensure_workers(self) -> None:
        with self._start_lock:
            if self._workers:
                return
            self._workers = [
                threading.Thread(
                    target=self._worker,
                    name=f"crawler-worker-{idx}",
                    daemon=True,
                )
                for idx in range(self.config.concurrency)
            ]
            for worker in self._workers:
                worker.start()

    def _worker(self) -> None:
        while True:
            item = self.frontier.pop(block=True, timeout=WORKER_POLL_SECONDS)
            if item is None:
                if self.frontier.closed and self.frontier.empty():
                    return
                continue

            try:
                self._process(item)
            except Exception:
                LOGGER.exception("Unhandled error while processing %s", item.url)
                self.stats.record_handler_error()
            finally:
                self.frontier.task_done()

    def _process(self, item: PageRequest) -> None:
        fetch_result = self.fetcher.fetch(item.url)
        self.stats.record_fetch(fetch_result)

        if not fetch_result.ok:
            status_code = fetch_result.status_code or TRANSPORT_ERROR_STATUS
            LOGGER.warning(
                "Fetch failed for %s (%s): %s",
                item.url,
                status_code,
                fetch_result.failure_message(),
            )
            self._dispatch_error(item, status_code, fetch_result.failure_message())
            return

        LOGGER.debug("Fetched %s [%s, depth=%d]", item.url, item.role.value, item.depth)

        if fetch_result.is_html:
            self._dispatch_html(item, fetch_result)
        else:
            LOGGER.debug("Skipping element callbacks for non-HTML %s (%s)", item.url, fetch_result.content_type)

        for callback in self._scraped_callbacks:
            callback(item)

    def _dispatch_html(self, item: PageRequest, fetch_result: FetchResult) -> None:
        base_url = fetch_result.final_url or fetch_result.requested_url
        body = fetch_result.body or b""

        for selector, callback in self._html_callbacks:
            for attrs, text in select_elements(body, selector):
                element = HTMLElement(
                    attrs=attrs,
                    text=text,
                    request=item,
                    base_url=base_url,
                    selector=selector,
                )
                try:
                    callback(element)
                except Exception:
                    # Remaining elements on the page are still dispatched.
                    LOGGER.exception("Element callback failed on %s", item.url)
                    self.stats.record_handler_error()

    def _dispatch_error(self, item: PageRequest, status_code: int, message: str) -> None:
        for callback in self._error_callbacks:
            callback(item, status_code, message)


__all__ = [
    "CrawlEngine",
    "HTMLElement",
]
