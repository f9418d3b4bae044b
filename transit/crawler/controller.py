"""Crawl controller: turns engine callbacks into routes, stops, and errors.

Page roles form a two-level hierarchy rooted at the route listing:

    INITIAL (depth 0) -> ROUTE_DETAIL (depth 1) -> STOP (terminal)

Links on the root page that look like routes are recorded and queued as
route-detail pages. Links on a route-detail page that look like stops are
recorded against that page's route. Stop pages are never expanded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .classifier import ClassifierRules, classify_link
from .config import CrawlConfig
from .engine import CrawlEngine, HTMLElement
from .frontier import EnqueueResult
from .state import ErrorCollector, ResultAggregator, VisitedTracker
from .stats import StatsCollector
from .types import AggregateSnapshot, LinkKind, PageRequest, PageRole
from .url import collapse_whitespace

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CrawlResult:
    """Final state of one crawl run."""

    snapshot: AggregateSnapshot
    stats: dict[str, Any]

    @property
    def ok(self) -> bool:
        return not self.snapshot.errors


class CrawlController:
    """Classify visited pages and accumulate results into shared state."""

    def __init__(
        self,
        config: CrawlConfig,
        *,
        engine: CrawlEngine | None = None,
        aggregator: ResultAggregator | None = None,
        visited: VisitedTracker | None = None,
        errors: ErrorCollector | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config
        self.stats = stats or (engine.stats if engine is not None else StatsCollector())
        self.engine = engine or CrawlEngine(config, stats=self.stats)
        self.aggregator = aggregator or ResultAggregator()
        self.visited = visited or VisitedTracker()
        self.errors = errors or ErrorCollector()
        self.rules = ClassifierRules.from_config(config)

        self.engine.on_html(config.link_selector, self.handle_link)
        self.engine.on_error(self.handle_error)
        self.engine.on_scraped(self.handle_scraped)

    def run(self) -> CrawlResult:
        """Crawl from `config.root_url` and block until all pages are done."""

        LOGGER.info("Starting crawl at %s (max_depth=%d)", self.config.root_url, self.config.max_depth)

        seed = self.engine.visit(self.config.root_url, role=PageRole.INITIAL, depth=0)
        if not seed.accepted:
            LOGGER.error("Root URL was not queued (%s): %s", seed.status.value, self.config.root_url)

        self.engine.wait()
        self.stats.finish()

        snapshot = self.snapshot()
        LOGGER.info(
            "Crawl finished: routes=%d, stops=%d, errors=%d",
            len(snapshot.routes),
            len(snapshot.stop_ids),
            len(snapshot.errors),
        )
        return CrawlResult(snapshot=snapshot, stats=self.stats.to_json())

    def snapshot(self) -> AggregateSnapshot:
        return self.aggregator.snapshot(self.errors)

    def handle_link(self, element: HTMLElement) -> None:
        """Dispatch one matched anchor by the role of the page it sits on."""

        role = element.request.role
        if role == PageRole.INITIAL:
            self.handle_root_link(element)
        elif role == PageRole.ROUTE_DETAIL:
            self.handle_route_link(element)
        # STOP pages are terminal.

    def handle_root_link(self, element: HTMLElement) -> None:
        url = element.absolute_url(element.attr("href"))
        link = None if url is None else classify_link(url, PageRole.INITIAL, rules=self.rules)
        self.stats.record_link(classified=link is not None and link.kind == LinkKind.ROUTE)
        if link is None or link.kind != LinkKind.ROUTE:
            return

        if self.visited.is_visited(link.url):
            LOGGER.debug("Route page already visited: %s", link.url)
            return

        self.aggregator.add_route(link.identifier)
        result = self._follow(element.request, link.url, PageRole.ROUTE_DETAIL, link.identifier)
        if result.accepted:
            self.stats.record_route_queued()

    def handle_route_link(self, element: HTMLElement) -> None:
        url = element.absolute_url(element.attr("href"))
        link = None if url is None else classify_link(url, PageRole.ROUTE_DETAIL, rules=self.rules)
        self.stats.record_link(classified=link is not None and link.kind == LinkKind.STOP)
        if link is None or link.kind != LinkKind.STOP:
            return

        route_id = element.request.route_id
        if route_id is None:
            LOGGER.warning("Route page %s has no route id; stop %s recorded without one", element.request.url, link.identifier)

        self.aggregator.add_stop(link.identifier, collapse_whitespace(element.text), route_id)
        self.stats.record_stop()

        if self.config.visit_stops and not self.visited.is_visited(link.url):
            self._follow(element.request, link.url, PageRole.STOP, route_id)

    def handle_scraped(self, request: PageRequest) -> None:
        """Mark a page visited once all of its links have been handled."""

        newly_marked = self.visited.mark_visited(request.url)
        self.stats.record_page_scraped(revisit=not newly_marked)
        if not newly_marked:
            LOGGER.debug("Page processed more than once: %s", request.url)

    def handle_error(self, request: PageRequest, status_code: int, message: str) -> None:
        self.errors.record(status_code, message, url=request.url)

    def _follow(
        self,
        parent: PageRequest,
        url: str,
        role: PageRole,
        route_id: str | None,
    ) -> EnqueueResult:
        return self.engine.visit(
            url,
            role=role,
            depth=parent.depth + 1,
            route_id=route_id,
            referrer=parent.url,
        )


__all__ = [
    "CrawlController",
    "CrawlResult",
]
