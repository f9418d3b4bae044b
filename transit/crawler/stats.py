"""Thread-safe crawl statistics aggregation utilities."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
import threading
from typing import Any, Mapping

from .frontier import EnqueueResult, EnqueueStatus
from .types import CrawlStats, FetchResult


class StatsCollector:
    """Collect and summarize crawler runtime statistics.

    The collector is thread-safe and intended for use across concurrent
    crawl workers.
    """

    def __init__(self, base: CrawlStats | None = None) -> None:
        self._lock = threading.Lock()
        self._core = base or CrawlStats()

        self._frontier_extra: dict[str, int] = defaultdict(int)
        self._frontier_snapshot: dict[str, int | bool] = {}

        self._fetch_status_code_counts: dict[str, int] = defaultdict(int)
        self._fetch_error_type_counts: dict[str, int] = defaultdict(int)
        self._fetch_elapsed_ms_total = 0
        self._fetch_elapsed_samples = 0
        self._fetch_bytes_total = 0

    def record_enqueue(self, result_or_status: EnqueueResult | EnqueueStatus) -> None:
        """Record one frontier enqueue outcome."""

        if isinstance(result_or_status, EnqueueResult):
            status = result_or_status.status
        else:
            status = result_or_status

        with self._lock:
            if status == EnqueueStatus.ENQUEUED:
                self._core.frontier_enqueued += 1
                return
            if status == EnqueueStatus.SKIPPED_SEEN:
                self._core.frontier_skipped_visited += 1
                return
            if status == EnqueueStatus.SKIPPED_DEPTH:
                self._core.frontier_skipped_depth += 1
                return
            if status == EnqueueStatus.SKIPPED_BUDGET:
                self._core.frontier_skipped_budget += 1
                return

            # Extra skip reasons not present in CrawlStats core fields.
            self._frontier_extra[status.value] += 1

    def record_frontier_snapshot(self, snapshot: Mapping[str, int | bool]) -> None:
        """Attach latest frontier snapshot for diagnostics."""

        with self._lock:
            self._frontier_snapshot = dict(snapshot)

    def record_fetch(self, result: FetchResult) -> None:
        """Record one fetch result."""

        with self._lock:
            if result.ok:
                self._core.fetched_ok += 1
            else:
                self._core.fetched_error += 1

            if result.status_code is not None:
                self._fetch_status_code_counts[str(result.status_code)] += 1

            if result.error:
                err_type = result.error.split(":", maxsplit=1)[0].strip() or "Unknown"
                self._fetch_error_type_counts[err_type] += 1

            if result.elapsed_ms is not None:
                self._fetch_elapsed_ms_total += int(result.elapsed_ms)
                self._fetch_elapsed_samples += 1

            if result.content_length is not None:
                self._fetch_bytes_total += int(result.content_length)

    def record_link(self, *, classified: bool) -> None:
        with self._lock:
            self._core.links_seen += 1
            if not classified:
                self._core.links_unclassified += 1

    def record_route_queued(self) -> None:
        with self._lock:
            self._core.routes_queued += 1

    def record_stop(self) -> None:
        with self._lock:
            self._core.stops_recorded += 1

    def record_page_scraped(self, *, revisit: bool) -> None:
        with self._lock:
            self._core.pages_scraped += 1
            if revisit:
                self._core.pages_revisited += 1

    def record_handler_error(self) -> None:
        with self._lock:
            self._core.handler_errors += 1

    def finish(self) -> None:
        """Mark crawl as finished."""

        with self._lock:
            self._core.finish()

    def core(self) -> CrawlStats:
        """Return a copy of the core `CrawlStats` record."""

        with self._lock:
            return replace(self._core)

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary payload."""

        with self._lock:
            core = self._core.to_json()

            start = _parse_iso_utc(self._core.started_at)
            end = _parse_iso_utc(self._core.finished_at) if self._core.finished_at else datetime.now(
                timezone.utc
            )
            duration_seconds = max(0.0, (end - start).total_seconds())

            fetch_elapsed_avg = (
                self._fetch_elapsed_ms_total / self._fetch_elapsed_samples
                if self._fetch_elapsed_samples > 0
                else 0.0
            )

            fetched_total = self._core.fetched_ok + self._core.fetched_error

            return {
                **core,
                "duration_seconds": duration_seconds,
                "throughput": {
                    "fetched_per_second": (
                        fetched_total / duration_seconds if duration_seconds > 0 else 0.0
                    ),
                },
                "frontier": {
                    "extra_status_counts": dict(self._frontier_extra),
                    "snapshot": dict(self._frontier_snapshot),
                },
                "fetch": {
                    "status_code_counts": dict(self._fetch_status_code_counts),
                    "error_type_counts": dict(self._fetch_error_type_counts),
                    "elapsed_ms_total": self._fetch_elapsed_ms_total,
                    "elapsed_ms_samples": self._fetch_elapsed_samples,
                    "elapsed_ms_avg": fetch_elapsed_avg,
                    "bytes_total": self._fetch_bytes_total,
                },
            }


def _parse_iso_utc(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["StatsCollector"]
