"""Default values shared by config, fetcher, and exporter."""

from __future__ import annotations

DEFAULT_ROOT_URL = "https://bustime.mta.info/m/routes/"

DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_PAGES = 5000
DEFAULT_CONCURRENCY = 4

DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_RETRIES = 0
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0
DEFAULT_RATE_LIMIT_SECONDS = 0.0

DEFAULT_USER_AGENT = "transit-route-crawler/0.1 (+https://github.com/)"
DEFAULT_HTTP_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.8",
}
DEFAULT_RESPECT_ROBOTS = False
DEFAULT_ALLOW_REVISIT = False

DEFAULT_LINK_SELECTOR = "a[href]"
DEFAULT_QUERY_PARAM = "q"
DEFAULT_ROUTE_ID_PATTERN = r"^[A-Za-z]+[0-9]+"
DEFAULT_STOP_ID_PATTERN = r"^[0-9]+$"
DEFAULT_VISIT_STOPS = False

DEFAULT_ROUTE_SEPARATOR = ","
# The errors table is written once it holds more rows than this, header included.
DEFAULT_ERROR_TABLE_MIN_ROWS = 1

ROUTES_FILENAME = "routes.csv"
STOPS_FILENAME = "stops.csv"
ERRORS_FILENAME = "errors.csv"
CRAWL_STATS_FILENAME = "crawl_stats.json"
CRAWL_CONFIG_FILENAME = "crawl_config.json"

ROUTES_HEADER = ("routeId",)
STOPS_HEADER = ("stopId", "stopName", "routes")
ERRORS_HEADER = ("status code", "error message")

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
