"""Thread-safe frontier queue with depth, scope, and budget enforcement."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum

from .config import CrawlConfig
from .types import PageRequest, PageRole
from .url import normalize_url


class EnqueueStatus(str, Enum):
    """Result status for frontier enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_INVALID_URL = "skipped_invalid_url"
    SKIPPED_OUT_OF_SCOPE = "skipped_out_of_scope"
    SKIPPED_DEPTH = "skipped_depth"
    SKIPPED_SEEN = "skipped_seen"
    SKIPPED_BUDGET = "skipped_budget"
    SKIPPED_CLOSED = "skipped_closed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    normalized_url: str | None = None
    item: PageRequest | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


class Frontier:
    """Frontier queue used by producer/consumer crawl workers.

    - Thread-safe `push` and `pop` for multi-worker crawling.
    - Rejects requests deeper than `config.max_depth`.
    - Unless `config.allow_revisit` is set, a URL is accepted once per run.
    """

    def __init__(self, config: CrawlConfig) -> None:
        self.config = config

        self._queue: queue.Queue[PageRequest] = queue.Queue()
        self._lock = threading.Lock()

        self._seen_urls: set[str] = set()
        self._accepted_this_run = 0

        self._enqueued_count = 0
        self._dequeued_count = 0
        self._skipped_seen_count = 0
        self._skipped_depth_count = 0
        self._skipped_budget_count = 0
        self._skipped_invalid_count = 0
        self._skipped_out_of_scope_count = 0

        self._closed = False

    def push(
        self,
        url: str,
        *,
        depth: int,
        role: PageRole,
        route_id: str | None = None,
        referrer: str | None = None,
    ) -> EnqueueResult:
        """Attempt to enqueue one URL with constraints enforced."""

        normalized = normalize_url(url)
        if not normalized:
            with self._lock:
                self._skipped_invalid_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_URL)

        if depth < 0 or depth > self.config.max_depth:
            with self._lock:
                self._skipped_depth_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_DEPTH, normalized_url=normalized)

        if not self.config.is_url_allowed(normalized):
            with self._lock:
                self._skipped_out_of_scope_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_OUT_OF_SCOPE, normalized_url=normalized)

        with self._lock:
            if self._closed:
                return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED, normalized_url=normalized)

            if not self.config.allow_revisit and normalized in self._seen_urls:
                self._skipped_seen_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_SEEN, normalized_url=normalized)

            if self._accepted_this_run >= self.config.max_pages:
                self._skipped_budget_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_BUDGET, normalized_url=normalized)

            self._seen_urls.add(normalized)
            self._accepted_this_run += 1

            item = PageRequest(
                url=normalized,
                depth=depth,
                role=role,
                route_id=route_id,
                referrer=referrer,
            )
            self._queue.put(item)
            self._enqueued_count += 1

        return EnqueueResult(
            EnqueueStatus.ENQUEUED,
            normalized_url=normalized,
            item=item,
        )

    def pop(self, *, block: bool = True, timeout: float | None = None) -> PageRequest | None:
        """Pop one request for a worker thread.

        Returns `None` when no item is available under the requested blocking mode.
        """

        try:
            if block:
                item = self._queue.get(block=True, timeout=timeout)
            else:
                item = self._queue.get(block=False)
        except queue.Empty:
            return None

        with self._lock:
            self._dequeued_count += 1
        return item

    def task_done(self) -> None:
        """Mark one popped task as finished (delegates to Queue.task_done)."""

        self._queue.task_done()

    def join(self) -> None:
        """Block until all queued tasks are marked done."""

        self._queue.join()

    def close(self) -> None:
        """Close frontier to future enqueue attempts."""

        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def qsize(self) -> int:
        """Approximate queue size."""

        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def snapshot(self) -> dict[str, int | bool]:
        """Return frontier counters for logs/stats reporting."""

        with self._lock:
            return {
                "closed": self._closed,
                "queue_size": self._queue.qsize(),
                "seen_urls": len(self._seen_urls),
                "accepted_this_run": self._accepted_this_run,
                "enqueued": self._enqueued_count,
                "dequeued": self._dequeued_count,
                "skipped_seen": self._skipped_seen_count,
                "skipped_depth": self._skipped_depth_count,
                "skipped_budget": self._skipped_budget_count,
                "skipped_invalid": self._skipped_invalid_count,
                "skipped_out_of_scope": self._skipped_out_of_scope_count,
            }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
]
