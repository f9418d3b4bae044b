"""Thread-safe shared state written by crawl workers.

Each container owns its own lock and there are no cross-container
transactions. Every `add` holds the lock for the full read-modify-write, so
concurrent updates to one key never lose writes.
"""

from __future__ import annotations

import threading
from typing import Generic, Hashable, TypeVar

from .types import AggregateSnapshot, CrawlError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class VisitedTracker:
    """Set of page URLs that have already been processed.

    `is_visited` followed by `mark_visited` from different call sites is not
    atomic; callers treat it as best-effort dedup.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._urls: set[str] = set()

    def mark_visited(self, url: str) -> bool:
        """Mark URL processed. Returns False if it was already marked."""

        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._urls)

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


class ConcurrentSet(Generic[K]):
    """Idempotent set; `get` reports membership as `(key, found)`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: set[K] = set()

    def add(self, key: K) -> bool:
        """Add key. Returns True when it was new."""

        with self._lock:
            if key in self._items:
                return False
            self._items.add(key)
            return True

    def get(self, key: K) -> tuple[K | None, bool]:
        with self._lock:
            if key in self._items:
                return key, True
            return None, False

    def snapshot(self) -> frozenset[K]:
        with self._lock:
            return frozenset(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class ConcurrentMap(Generic[K, V]):
    """Key/value map where the last writer wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[K, V] = {}

    def add(self, key: K, value: V) -> V | None:
        """Store value under key and return the value it replaced, if any."""

        with self._lock:
            previous = self._items.get(key)
            self._items[key] = value
            return previous

    def get(self, key: K) -> tuple[V | None, bool]:
        with self._lock:
            if key in self._items:
                return self._items[key], True
            return None, False

    def snapshot(self) -> dict[K, V]:
        with self._lock:
            return dict(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class ConcurrentSetMap(Generic[K, V]):
    """Map from key to a growing set of values.

    `add` unions the value into the key's set; values are never removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[K, set[V]] = {}

    def add(self, key: K, value: V) -> bool:
        """Union value into key's set. Returns True when the set grew."""

        with self._lock:
            bucket = self._items.setdefault(key, set())
            if value in bucket:
                return False
            bucket.add(value)
            return True

    def get(self, key: K) -> tuple[frozenset[V], bool]:
        with self._lock:
            bucket = self._items.get(key)
            if bucket is None:
                return frozenset(), False
            return frozenset(bucket), True

    def snapshot(self) -> dict[K, frozenset[V]]:
        with self._lock:
            return {key: frozenset(values) for key, values in self._items.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class ResultAggregator:
    """Routes, stop names, and stop-to-route associations found by a crawl."""

    def __init__(self) -> None:
        self.routes: ConcurrentSet[str] = ConcurrentSet()
        self.stop_names: ConcurrentMap[str, str] = ConcurrentMap()
        self.stop_routes: ConcurrentSetMap[str, str] = ConcurrentSetMap()

    def add_route(self, route_id: str) -> bool:
        return self.routes.add(route_id)

    def add_stop(self, stop_id: str, name: str, route_id: str | None) -> None:
        """Record a stop's display name and the route it was listed under."""

        self.stop_names.add(stop_id, name)
        if route_id:
            self.stop_routes.add(stop_id, route_id)

    def snapshot(self, errors: "ErrorCollector | None" = None) -> AggregateSnapshot:
        return AggregateSnapshot(
            routes=self.routes.snapshot(),
            stop_names=self.stop_names.snapshot(),
            stop_routes=self.stop_routes.snapshot(),
            errors=() if errors is None else errors.records(),
        )


class ErrorCollector:
    """Append-only list of fetch failures. Identical failures are kept."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[CrawlError] = []

    def record(self, status_code: int, message: str, *, url: str | None = None) -> CrawlError:
        error = CrawlError(status_code=int(status_code), message=message, url=url)
        with self._lock:
            self._records.append(error)
        return error

    def records(self) -> tuple[CrawlError, ...]:
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = [
    "ConcurrentMap",
    "ConcurrentSet",
    "ConcurrentSetMap",
    "ErrorCollector",
    "ResultAggregator",
    "VisitedTracker",
]
