"""Crawler package: config, shared state, engine, controller, and export."""

from .classifier import ClassifierRules, classify_link, is_route_id, is_stop_id, query_value
from .config import CrawlConfig, load_config, save_config
from .controller import CrawlController, CrawlResult
from .engine import CrawlEngine, HTMLElement
from .exporter import ExportError, ExportResult, Exporter
from .fetcher import Fetcher
from .frontier import EnqueueResult, EnqueueStatus, Frontier
from .state import (
    ConcurrentMap,
    ConcurrentSet,
    ConcurrentSetMap,
    ErrorCollector,
    ResultAggregator,
    VisitedTracker,
)
from .stats import StatsCollector
from .types import (
    AggregateSnapshot,
    ClassifiedLink,
    CrawlError,
    CrawlStats,
    FetchResult,
    LinkKind,
    PageRequest,
    PageRole,
    utc_now_iso,
)
from .url import host_from_url, normalize_domain, normalize_url, resolve_url

__all__ = [
    "AggregateSnapshot",
    "ClassifiedLink",
    "ClassifierRules",
    "ConcurrentMap",
    "ConcurrentSet",
    "ConcurrentSetMap",
    "CrawlConfig",
    "CrawlController",
    "CrawlEngine",
    "CrawlError",
    "CrawlResult",
    "CrawlStats",
    "EnqueueResult",
    "EnqueueStatus",
    "ErrorCollector",
    "ExportError",
    "ExportResult",
    "Exporter",
    "FetchResult",
    "Fetcher",
    "Frontier",
    "HTMLElement",
    "LinkKind",
    "PageRequest",
    "PageRole",
    "ResultAggregator",
    "StatsCollector",
    "VisitedTracker",
    "classify_link",
    "host_from_url",
    "is_route_id",
    "is_stop_id",
    "load_config",
    "normalize_domain",
    "normalize_url",
    "query_value",
    "resolve_url",
    "save_config",
    "utc_now_iso",
]
