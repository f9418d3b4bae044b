"""CSV export of crawl results.

The exporter owns the on-disk layout of a run's output directory:

    <output_dir>/routes.csv         routeId
    <output_dir>/stops.csv          stopId, stopName, routes
    <output_dir>/errors.csv         status code, error message   (only on failures)
    <output_dir>/crawl_stats.json
    <output_dir>/crawl_config.json

Files are written atomically. Any filesystem failure raises `ExportError`.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .constants import (
    CRAWL_CONFIG_FILENAME,
    CRAWL_STATS_FILENAME,
    DEFAULT_ERROR_TABLE_MIN_ROWS,
    DEFAULT_ROUTE_SEPARATOR,
    ERRORS_FILENAME,
    ERRORS_HEADER,
    JSON_INDENT,
    ROUTES_FILENAME,
    ROUTES_HEADER,
    STOPS_FILENAME,
    STOPS_HEADER,
)
from .types import AggregateSnapshot, CrawlError

LOGGER = logging.getLogger(__name__)


class ExportError(OSError):
    """Raised when an output table or manifest cannot be written."""


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Paths written by one export."""

    routes_path: Path
    stops_path: Path
    errors_path: Path | None
    route_count: int
    stop_count: int
    error_count: int

    @property
    def ok(self) -> bool:
        """False when the crawl recorded fetch failures."""

        return self.errors_path is None

    @property
    def paths(self) -> dict[str, str | None]:
        return {
            "routes": str(self.routes_path),
            "stops": str(self.stops_path),
            "errors": None if self.errors_path is None else str(self.errors_path),
        }


def _stop_sort_key(stop_id: str) -> tuple[int, int | str]:
    if stop_id.isdigit():
        return (0, int(stop_id))
    return (1, stop_id)


def route_rows(snapshot: AggregateSnapshot) -> list[tuple[str]]:
    return [(route_id,) for route_id in sorted(snapshot.routes)]


def stop_rows(
    snapshot: AggregateSnapshot,
    *,
    route_separator: str = DEFAULT_ROUTE_SEPARATOR,
) -> list[tuple[str, str, str]]:
    rows: list[tuple[str, str, str]] = []
    for stop_id in sorted(snapshot.stop_ids, key=_stop_sort_key):
        name = snapshot.stop_names.get(stop_id, "")
        routes = route_separator.join(sorted(snapshot.stop_routes.get(stop_id, ())))
        rows.append((stop_id, name, routes))
    return rows


def error_rows(errors: Iterable[CrawlError]) -> list[tuple[str, str]]:
    # Recording order is kept; it is the order failures were observed.
    return [(str(error.status_code), error.message) for error in errors]


def render_csv(header: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    """Render a header plus rows as CSV text with `\\n` line endings."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


class Exporter:
    """Write a crawl snapshot as CSV tables under `output_dir`."""

    def __init__(
        self,
        output_dir: str | Path,
        *,
        route_separator: str = DEFAULT_ROUTE_SEPARATOR,
        error_table_min_rows: int = DEFAULT_ERROR_TABLE_MIN_ROWS,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.route_separator = route_separator
        self.error_table_min_rows = error_table_min_rows

        self.routes_path = self.output_dir / ROUTES_FILENAME
        self.stops_path = self.output_dir / STOPS_FILENAME
        self.errors_path = self.output_dir / ERRORS_FILENAME
        self.crawl_stats_path = self.output_dir / CRAWL_STATS_FILENAME
        self.crawl_config_path = self.output_dir / CRAWL_CONFIG_FILENAME

    def should_write_errors(self, snapshot: AggregateSnapshot) -> bool:
        """The errors table is written when it has more rows than the threshold, header included."""

        return len(snapshot.errors) + 1 > self.error_table_min_rows

    def export(self, snapshot: AggregateSnapshot) -> ExportResult:
        """Write routes, stops, and (on failures) errors tables."""

        self._ensure_output_dir()

        routes = route_rows(snapshot)
        stops = stop_rows(snapshot, route_separator=self.route_separator)

        self._write_text(self.routes_path, render_csv(ROUTES_HEADER, routes))
        self._write_text(self.stops_path, render_csv(STOPS_HEADER, stops))

        errors_path: Path | None = None
        if self.should_write_errors(snapshot):
            self._write_text(self.errors_path, render_csv(ERRORS_HEADER, error_rows(snapshot.errors)))
            errors_path = self.errors_path

        LOGGER.info(
            "Exported %d routes to %s and %d stops to %s",
            len(routes),
            self.routes_path,
            len(stops),
            self.stops_path,
        )
        if errors_path is not None:
            LOGGER.warning("Exported %d fetch errors to %s", len(snapshot.errors), errors_path)

        return ExportResult(
            routes_path=self.routes_path,
            stops_path=self.stops_path,
            errors_path=errors_path,
            route_count=len(routes),
            stop_count=len(stops),
            error_count=len(snapshot.errors),
        )

    def save_crawl_stats(self, stats: Mapping[str, Any]) -> Path:
        """Write crawl stats manifest as JSON."""

        self._ensure_output_dir()
        self._write_text(self.crawl_stats_path, _to_json_text(stats))
        return self.crawl_stats_path

    def save_crawl_config(self, config: Mapping[str, Any]) -> Path:
        """Write crawl config manifest as JSON."""

        self._ensure_output_dir()
        self._write_text(self.crawl_config_path, _to_json_text(config))
        return self.crawl_config_path

    def _ensure_output_dir(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportError(f"Cannot create output directory {self.output_dir}: {exc}") from exc

    @staticmethod
    def _write_text(path: Path, content: str) -> None:
        try:
            _atomic_write_text(path, content)
        except OSError as exc:
            raise ExportError(f"Cannot write {path}: {exc}") from exc


def _to_json_text(payload: Mapping[str, Any]) -> str:
    return json.dumps(dict(payload), ensure_ascii=False, indent=JSON_INDENT, sort_keys=True) + "\n"


def _atomic_write_text(path: Path, content: str) -> None:
    tmp_fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=path.name + ".",
        suffix=".tmp",
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


__all__ = [
    "ExportError",
    "ExportResult",
    "Exporter",
    "error_rows",
    "render_csv",
    "route_rows",
    "stop_rows",
]
