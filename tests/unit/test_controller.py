"""
Unit and end-to-end tests for the crawl controller.

The end-to-end tests run the real engine and worker threads against the
in-memory site from conftest.py.
"""

from __future__ import annotations

from typing import List

import pytest

from transit.crawler import (
    CrawlConfig,
    CrawlController,
    CrawlEngine,
    EnqueueResult,
    EnqueueStatus,
    HTMLElement,
    PageRequest,
    PageRole,
    StatsCollector,
)
from tests.conftest import ROOT_URL, FakeFetcher, anchors

BX1_URL = "https://bustime.example.org/m/?q=BX1"
M15_URL = "https://bustime.example.org/m/?q=M15"
STOP_URL = "https://bustime.example.org/m/?q=308323"


def run_crawl(config: CrawlConfig, fetcher: FakeFetcher) -> tuple:
    controller = CrawlController(config, engine=CrawlEngine(config, fetcher=fetcher))
    return controller, controller.run()


class RecordingEngine:
    """Engine stand-in that records visits instead of fetching."""

    def __init__(self) -> None:
        self.stats = StatsCollector()
        self.visits: List[dict] = []

    def on_html(self, selector, callback):
        pass

    def on_error(self, callback):
        pass

    def on_scraped(self, callback):
        pass

    def visit(self, url, **kwargs):
        self.visits.append({"url": url, **kwargs})
        return EnqueueResult(EnqueueStatus.ENQUEUED, normalized_url=url)

    def wait(self):
        pass


def element(href: str, text: str, request: PageRequest) -> HTMLElement:
    return HTMLElement(attrs={"href": href}, text=text, request=request, base_url=request.url)


@pytest.fixture
def root_request() -> PageRequest:
    return PageRequest(url=ROOT_URL, depth=0, role=PageRole.INITIAL)


@pytest.fixture
def route_request() -> PageRequest:
    return PageRequest(url=BX1_URL, depth=1, role=PageRole.ROUTE_DETAIL, route_id="BX1", referrer=ROOT_URL)


class TestRootLinks:
    """Handling of links found on the root listing page."""

    def test_route_link_is_recorded_and_queued(self, crawl_config, root_request):
        engine = RecordingEngine()
        controller = CrawlController(crawl_config, engine=engine)

        controller.handle_link(element("/m/?q=BX1", "BX1", root_request))

        assert controller.aggregator.routes.snapshot() == frozenset({"BX1"})
        assert engine.visits == [
            {
                "url": BX1_URL,
                "role": PageRole.ROUTE_DETAIL,
                "depth": 1,
                "route_id": "BX1",
                "referrer": ROOT_URL,
            }
        ]

    def test_non_route_link_is_skipped(self, crawl_config, root_request):
        engine = RecordingEngine()
        controller = CrawlController(crawl_config, engine=engine)

        controller.handle_link(element("/m/?q=ignored", "Not a route", root_request))
        controller.handle_link(element("/m/about", "About", root_request))

        assert controller.aggregator.routes.snapshot() == frozenset()
        assert engine.visits == []
        assert controller.stats.core().links_unclassified == 2

    def test_visited_route_page_is_skipped(self, crawl_config, root_request):
        engine = RecordingEngine()
        controller = CrawlController(crawl_config, engine=engine)
        controller.visited.mark_visited(BX1_URL)

        controller.handle_link(element("/m/?q=BX1", "BX1", root_request))

        assert engine.visits == []


class TestRouteLinks:
    """Handling of links found on a route-detail page."""

    def test_stop_is_recorded_under_page_route(self, crawl_config, route_request):
        engine = RecordingEngine()
        controller = CrawlController(crawl_config, engine=engine)

        controller.handle_link(element("/m/?q=308323", "  Main St &\n 1st Ave ", route_request))

        snapshot = controller.snapshot()
        assert snapshot.stop_names == {"308323": "Main St & 1st Ave"}
        assert snapshot.stop_routes == {"308323": frozenset({"BX1"})}
        assert engine.visits == []

    def test_route_to_route_link_is_ignored(self, crawl_config, route_request):
        engine = RecordingEngine()
        controller = CrawlController(crawl_config, engine=engine)

        controller.handle_link(element("/m/?q=M15", "Transfer", route_request))

        snapshot = controller.snapshot()
        assert snapshot.routes == frozenset()
        assert snapshot.stop_ids == frozenset()
        assert engine.visits == []

    def test_visit_stops_queues_stop_page(self, root_url, route_request):
        config = CrawlConfig(root_url=root_url, visit_stops=True)
        engine = RecordingEngine()
        controller = CrawlController(config, engine=engine)

        controller.handle_link(element("/m/?q=308323", "Main St", route_request))

        assert len(engine.visits) == 1
        assert engine.visits[0]["url"] == STOP_URL
        assert engine.visits[0]["role"] == PageRole.STOP
        assert engine.visits[0]["depth"] == 2

    def test_stop_page_links_are_ignored(self, crawl_config):
        engine = RecordingEngine()
        controller = CrawlController(crawl_config, engine=engine)
        stop_request = PageRequest(url=STOP_URL, depth=2, role=PageRole.STOP, route_id="BX1")

        controller.handle_link(element("/m/?q=BX1", "BX1", stop_request))
        controller.handle_link(element("/m/?q=400100", "Fordham Rd", stop_request))

        snapshot = controller.snapshot()
        assert snapshot.routes == frozenset()
        assert snapshot.stop_ids == frozenset()
        assert engine.visits == []


class TestScrapedAndErrors:
    """Visited marking and error recording."""

    def test_scraped_marks_visited(self, crawl_config, root_request):
        controller = CrawlController(crawl_config, engine=RecordingEngine())
        controller.handle_scraped(root_request)
        controller.handle_scraped(root_request)

        assert controller.visited.is_visited(ROOT_URL)
        core = controller.stats.core()
        assert core.pages_scraped == 2
        assert core.pages_revisited == 1

    def test_error_is_recorded(self, crawl_config, route_request):
        controller = CrawlController(crawl_config, engine=RecordingEngine())
        controller.handle_error(route_request, 500, "HTTP status 500")

        errors = controller.errors.records()
        assert len(errors) == 1
        assert errors[0].status_code == 500
        assert errors[0].url == BX1_URL


class TestEndToEnd:
    """Full crawls through the threaded engine."""

    def test_discovers_routes_and_stops(self, crawl_config, fake_fetcher):
        controller, result = run_crawl(crawl_config, fake_fetcher)
        snapshot = result.snapshot

        assert snapshot.routes == frozenset({"BX1", "M15"})
        assert snapshot.stop_names == {
            "308323": "Main St & 1st Ave",
            "400100": "Fordham Rd",
            "500200": "2 Av / E 14 St",
        }
        assert snapshot.stop_routes == {
            "308323": frozenset({"BX1", "M15"}),
            "400100": frozenset({"BX1"}),
            "500200": frozenset({"M15"}),
        }
        assert snapshot.errors == ()
        assert result.ok

    def test_pages_fetched_once_and_stops_not_followed(self, crawl_config, fake_fetcher):
        controller, _ = run_crawl(crawl_config, fake_fetcher)

        assert fake_fetcher.call_count(ROOT_URL) == 1
        assert fake_fetcher.call_count(BX1_URL) == 1
        assert fake_fetcher.call_count(M15_URL) == 1
        assert fake_fetcher.call_count(STOP_URL) == 0
        assert len(fake_fetcher.calls) == 3
        assert controller.visited.snapshot() == frozenset({ROOT_URL, BX1_URL, M15_URL})

    def test_stats(self, crawl_config, fake_fetcher):
        _, result = run_crawl(crawl_config, fake_fetcher)
        stats = result.stats

        assert stats["fetched_ok"] == 3
        assert stats["fetched_error"] == 0
        assert stats["routes_queued"] == 2
        assert stats["stops_recorded"] == 4
        assert stats["finished_at"] is not None

    def test_failed_route_page_is_recorded_and_crawl_continues(self, crawl_config, site_pages):
        """A single failed fetch yields one error row and a failed result.

        The errors table is written when it has more than one row counting its
        header, so one recorded failure is enough. This is the reading taken
        for the "more than one error" threshold so that the single-500 route
        page scenario produces an error row.
        """

        site_pages[M15_URL] = 500
        _, result = run_crawl(crawl_config, FakeFetcher(site_pages))
        snapshot = result.snapshot

        assert [(e.status_code, e.message) for e in snapshot.errors] == [(500, "HTTP status 500")]
        assert snapshot.routes == frozenset({"BX1", "M15"})
        assert snapshot.stop_routes == {
            "308323": frozenset({"BX1"}),
            "400100": frozenset({"BX1"}),
        }
        assert not result.ok

    def test_transport_error_uses_status_zero(self, crawl_config, site_pages):
        site_pages[BX1_URL] = ConnectionError("connection reset")
        _, result = run_crawl(crawl_config, FakeFetcher(site_pages))

        assert len(result.snapshot.errors) == 1
        error = result.snapshot.errors[0]
        assert error.status_code == 0
        assert "connection reset" in error.message
        assert error.url == BX1_URL

    def test_failed_root_page(self, crawl_config, site_pages):
        site_pages[ROOT_URL] = 503
        _, result = run_crawl(crawl_config, FakeFetcher(site_pages))

        assert result.snapshot.routes == frozenset()
        assert [e.status_code for e in result.snapshot.errors] == [503]

    def test_handler_failure_is_not_a_fetch_error(self, crawl_config, fake_fetcher, monkeypatch):
        controller = CrawlController(crawl_config, engine=CrawlEngine(crawl_config, fetcher=fake_fetcher))
        add_stop = controller.aggregator.add_stop

        def add_stop_failing_on_fordham(stop_id, name, route_id):
            if stop_id == "400100":
                raise RuntimeError("broken stop")
            add_stop(stop_id, name, route_id)

        monkeypatch.setattr(controller.aggregator, "add_stop", add_stop_failing_on_fordham)
        result = controller.run()

        assert result.ok
        assert result.snapshot.errors == ()
        assert result.snapshot.stop_ids == frozenset({"308323", "500200"})
        assert result.stats["handler_errors"] == 1

    def test_max_depth_zero_records_routes_without_fetching_them(self, root_url, fake_fetcher):
        config = CrawlConfig(root_url=root_url, max_depth=0)
        _, result = run_crawl(config, fake_fetcher)

        assert result.snapshot.routes == frozenset({"BX1", "M15"})
        assert result.snapshot.stop_ids == frozenset()
        assert fake_fetcher.calls == [ROOT_URL]
        assert result.stats["frontier_skipped_depth"] == 2


class TestDepthBound:
    """Stop pages are leaves even when they are fetched."""

    @pytest.fixture
    def pages_with_stop_pages(self, site_pages):
        for stop_id in ("308323", "400100", "500200"):
            site_pages[f"https://bustime.example.org/m/?q={stop_id}"] = anchors(
                ("/m/?q=BX1", "BX1"),
                ("/m/?q=999999", "Nearby stop"),
            )
        return site_pages

    def test_stop_pages_fetched_but_not_expanded(self, root_url, pages_with_stop_pages):
        fetcher = FakeFetcher(pages_with_stop_pages)
        config = CrawlConfig(root_url=root_url, visit_stops=True)
        _, result = run_crawl(config, fetcher)

        assert fetcher.call_count(STOP_URL) == 1
        assert fetcher.call_count("https://bustime.example.org/m/?q=999999") == 0
        assert "999999" not in result.snapshot.stop_ids
        assert result.snapshot.errors == ()

    def test_links_two_hops_from_root_are_never_queued(self, root_url, pages_with_stop_pages):
        fetcher = FakeFetcher(pages_with_stop_pages)
        config = CrawlConfig(root_url=root_url, visit_stops=True, max_depth=1)
        _, result = run_crawl(config, fetcher)

        assert fetcher.call_count(STOP_URL) == 0
        assert len(fetcher.calls) == 3
        assert result.snapshot.stop_ids == frozenset({"308323", "400100", "500200"})


class TestDuplicateWork:
    """Duplicate processing collapses in the aggregate."""

    def test_revisits_do_not_duplicate_results(self, root_url, site_pages):
        site_pages[ROOT_URL] = anchors(
            ("/m/?q=BX1", "BX1"),
            ("/m/?q=BX1", "BX1 again"),
            ("/m/?q=M15", "M15"),
            ("/m/?q=BX1", "BX1 once more"),
        )
        fetcher = FakeFetcher(site_pages)
        config = CrawlConfig(root_url=root_url, allow_revisit=True, concurrency=8)
        _, result = run_crawl(config, fetcher)

        assert 1 <= fetcher.call_count(BX1_URL) <= 3
        assert result.snapshot.routes == frozenset({"BX1", "M15"})
        assert result.snapshot.stop_routes["308323"] == frozenset({"BX1", "M15"})
        assert result.snapshot.stop_routes["400100"] == frozenset({"BX1"})

    def test_duplicate_links_are_deduplicated_by_engine(self, root_url, site_pages):
        site_pages[ROOT_URL] = anchors(("/m/?q=BX1", "BX1"), ("/m/?q=BX1", "BX1 again"))
        fetcher = FakeFetcher(site_pages)
        config = CrawlConfig(root_url=root_url)
        _, result = run_crawl(config, fetcher)

        assert fetcher.call_count(BX1_URL) == 1
        assert result.stats["routes_queued"] == 1
        assert result.snapshot.routes == frozenset({"BX1"})
