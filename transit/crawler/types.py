"""Core type definitions for the route crawler.

This module is intentionally dependency-light so other crawler modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping


class PageRole(str, Enum):
    """Position of a page in the route-listing hierarchy."""

    INITIAL = "initial"
    ROUTE_DETAIL = "route_detail"
    STOP = "stop"


class LinkKind(str, Enum):
    """What a classified link points at."""

    ROUTE = "route"
    STOP = "stop"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]

# Status code recorded for failures that never produced an HTTP response.
TRANSPORT_ERROR_STATUS = 0


def utc_now_iso() -> str:
    """Return an RFC3339-like UTC timestamp string for manifests."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True, slots=True)
class ClassifiedLink:
    """A link whose role in the hierarchy is known."""

    kind: LinkKind
    identifier: str
    url: str


@dataclass(frozen=True, slots=True)
class PageRequest:
    """One scheduled page fetch and the typed context it was queued with."""

    url: str
    depth: int
    role: PageRole
    route_id: str | None = None
    referrer: str | None = None


@dataclass(slots=True)
class FetchResult:
    """Result of attempting to download one URL."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: bytes | None
    elapsed_ms: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and self.body is not None
        )

    @property
    def is_html(self) -> bool:
        normalized = (self.content_type or "").split(";", maxsplit=1)[0].strip().lower()
        # A missing Content-Type is treated as HTML.
        return not normalized or normalized in {"text/html", "application/xhtml+xml"}

    @property
    def content_length(self) -> int | None:
        return None if self.body is None else len(self.body)

    def failure_message(self) -> str:
        if self.error:
            return self.error
        if self.status_code is not None:
            return f"HTTP status {self.status_code}"
        return "Unknown fetch failure"


@dataclass(frozen=True, slots=True)
class CrawlError:
    """One failed page fetch, as reported in the errors table."""

    status_code: int
    message: str
    url: str | None = None


@dataclass(frozen=True, slots=True)
class AggregateSnapshot:
    """Read-only view of everything a crawl discovered."""

    routes: frozenset[str]
    stop_names: Mapping[str, str]
    stop_routes: Mapping[str, frozenset[str]]
    errors: tuple[CrawlError, ...] = ()

    @property
    def stop_ids(self) -> frozenset[str]:
        return frozenset(self.stop_names) | frozenset(self.stop_routes)


@dataclass(slots=True)
class CrawlStats:
    """Simple mutable counters used for crawl summary reporting."""

    frontier_enqueued: int = 0
    frontier_skipped_visited: int = 0
    frontier_skipped_depth: int = 0
    frontier_skipped_budget: int = 0

    fetched_ok: int = 0
    fetched_error: int = 0

    links_seen: int = 0
    links_unclassified: int = 0
    routes_queued: int = 0
    stops_recorded: int = 0
    pages_scraped: int = 0
    pages_revisited: int = 0
    handler_errors: int = 0

    started_at: str = field(default_factory=utc_now_iso)
    finished_at: str | None = None

    def finish(self) -> None:
        self.finished_at = utc_now_iso()

    def to_json(self) -> JSONDict:
        return {
            "frontier_enqueued": self.frontier_enqueued,
            "frontier_skipped_visited": self.frontier_skipped_visited,
            "frontier_skipped_depth": self.frontier_skipped_depth,
            "frontier_skipped_budget": self.frontier_skipped_budget,
            "fetched_ok": self.fetched_ok,
            "fetched_error": self.fetched_error,
            "links_seen": self.links_seen,
            "links_unclassified": self.links_unclassified,
            "routes_queued": self.routes_queued,
            "stops_recorded": self.stops_recorded,
            "pages_scraped": self.pages_scraped,
            "pages_revisited": self.pages_revisited,
            "handler_errors": self.handler_errors,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


__all__ = [
    "AggregateSnapshot",
    "ClassifiedLink",
    "CrawlError",
    "CrawlStats",
    "FetchResult",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "LinkKind",
    "PageRequest",
    "PageRole",
    "TRANSPORT_ERROR_STATUS",
    "utc_now_iso",
]
