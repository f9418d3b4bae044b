"""CLI entrypoint for crawling a route listing into CSV tables."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Any

if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from transit.crawler import (
    CrawlConfig,
    CrawlController,
    CrawlResult,
    ExportError,
    ExportResult,
    Exporter,
    load_config,
)

EXIT_OK = 0
EXIT_FETCH_ERRORS = 1
EXIT_CONFIG_ERROR = 2
EXIT_EXPORT_ERROR = 3
EXIT_INTERRUPTED = 130


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Discover bus routes and stops from a transit route-listing site.",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML crawl config.",
    )
    parser.add_argument(
        "--output_dir",
        type=Path,
        default=Path("output"),
        help="Directory for routes.csv, stops.csv, errors.csv, manifests, and logs.",
    )
    parser.add_argument(
        "--root_url",
        type=str,
        default=None,
        help="Route-listing page to start from. Overrides config.",
    )
    parser.add_argument(
        "--domain",
        action="append",
        default=[],
        help="Allowed domain (repeatable). Defaults to the root URL's host.",
    )

    parser.add_argument("--max_depth", type=int, default=None)
    parser.add_argument("--max_pages", type=int, default=None)
    parser.add_argument("--concurrency", type=int, default=None)

    parser.add_argument("--timeout_seconds", type=float, default=None)
    parser.add_argument("--retries", type=int, default=None)
    parser.add_argument("--rate_limit_seconds", type=float, default=None)
    parser.add_argument("--user_agent", type=str, default=None)
    parser.add_argument(
        "--respect_robots",
        dest="respect_robots",
        action="store_true",
        default=None,
        help="Respect robots.txt (default comes from config).",
    )
    parser.add_argument(
        "--no_respect_robots",
        dest="respect_robots",
        action="store_false",
        help="Ignore robots.txt.",
    )

    parser.add_argument("--query_param", type=str, default=None)
    parser.add_argument("--route_separator", type=str, default=None)
    parser.add_argument(
        "--visit_stops",
        action="store_true",
        help="Also fetch each stop page (its links are never followed).",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CrawlConfig:
    if args.config is not None:
        payload: dict[str, Any] = load_config(args.config).to_dict()
    else:
        payload = {}

    if args.root_url is not None:
        payload["root_url"] = args.root_url
        if not args.domain:
            # Scope follows the new root unless domains are given explicitly.
            payload.pop("allowed_domains", None)
    if args.domain:
        payload["allowed_domains"] = list(args.domain)

    if args.max_depth is not None:
        payload["max_depth"] = args.max_depth
    if args.max_pages is not None:
        payload["max_pages"] = args.max_pages
    if args.concurrency is not None:
        payload["concurrency"] = args.concurrency

    if args.timeout_seconds is not None:
        payload["timeout_seconds"] = args.timeout_seconds
    if args.retries is not None:
        payload["retries"] = args.retries
    if args.rate_limit_seconds is not None:
        payload["rate_limit_seconds"] = args.rate_limit_seconds
    if args.user_agent is not None:
        payload["user_agent"] = args.user_agent
    if args.respect_robots is not None:
        payload["respect_robots"] = args.respect_robots

    if args.query_param is not None:
        payload["query_param"] = args.query_param or None
    if args.route_separator is not None:
        payload["route_separator"] = args.route_separator
    if args.visit_stops:
        payload["visit_stops"] = True

    return CrawlConfig.from_dict(payload)


def setup_logging(output_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "crawl.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # urllib3 logs every connection at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_summary(result: CrawlResult, export: ExportResult) -> None:
    stats = result.stats

    print("\n=== Crawl Complete ===")
    print(f"routes: {export.route_count} -> {export.routes_path}")
    print(f"stops: {export.stop_count} -> {export.stops_path}")
    if export.errors_path is not None:
        print(f"errors: {export.error_count} -> {export.errors_path}")
    else:
        print("errors: 0")

    print("\n--- Core Stats ---")
    for key in [
        "frontier_enqueued",
        "frontier_skipped_visited",
        "frontier_skipped_depth",
        "frontier_skipped_budget",
        "fetched_ok",
        "fetched_error",
        "links_seen",
        "routes_queued",
        "stops_recorded",
        "pages_revisited",
        "handler_errors",
        "duration_seconds",
    ]:
        if key in stats:
            print(f"{key}: {stats[key]}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        setup_logging(args.output_dir, verbose=args.verbose)
    except OSError as exc:
        print(f"Cannot create log directory under {args.output_dir}: {exc}", file=sys.stderr)
        return EXIT_EXPORT_ERROR

    try:
        config = build_config(args)
    except (OSError, TypeError, ValueError) as exc:
        logging.error("Failed to build config: %s", exc)
        return EXIT_CONFIG_ERROR

    logging.info(
        "Starting crawl: root_url=%s, output_dir=%s, concurrency=%d",
        config.root_url,
        args.output_dir,
        config.concurrency,
    )

    exporter = Exporter(args.output_dir, route_separator=config.route_separator)

    try:
        exporter.save_crawl_config(config.to_dict())
        result = CrawlController(config).run()
        export = exporter.export(result.snapshot)
        exporter.save_crawl_stats(result.stats)
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        return EXIT_INTERRUPTED
    except ExportError:
        logging.exception("Writing crawl output failed")
        return EXIT_EXPORT_ERROR

    print_summary(result, export)

    if not export.ok:
        logging.error("Crawl finished with %d fetch errors", export.error_count)
        return EXIT_FETCH_ERRORS
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
