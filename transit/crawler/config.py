"""Typed crawler configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml  # type: ignore

from .constants import (
    DEFAULT_ALLOW_REVISIT,
    DEFAULT_CONCURRENCY,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_LINK_SELECTOR,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_QUERY_PARAM,
    DEFAULT_RATE_LIMIT_SECONDS,
    DEFAULT_RESPECT_ROBOTS,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_ROOT_URL,
    DEFAULT_ROUTE_ID_PATTERN,
    DEFAULT_ROUTE_SEPARATOR,
    DEFAULT_STOP_ID_PATTERN,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_VISIT_STOPS,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .types import JSONDict, JSONValue
from .url import host_from_url, normalize_domain


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid int for '{key}': {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"Invalid bool for '{key}': {value!r}")


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _compile(pattern: str, key: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"Invalid regular expression for '{key}': {pattern!r} ({exc})") from exc


@dataclass(slots=True)
class CrawlConfig:
    """Top-level crawler configuration used by engine/controller/exporter."""

    root_url: str = DEFAULT_ROOT_URL
    allowed_domains: list[str] = field(default_factory=list)

    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    concurrency: int = DEFAULT_CONCURRENCY

    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    rate_limit_seconds: float = DEFAULT_RATE_LIMIT_SECONDS

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))
    respect_robots: bool = DEFAULT_RESPECT_ROBOTS
    allow_revisit: bool = DEFAULT_ALLOW_REVISIT

    link_selector: str = DEFAULT_LINK_SELECTOR
    query_param: str | None = DEFAULT_QUERY_PARAM
    route_id_pattern: str = DEFAULT_ROUTE_ID_PATTERN
    stop_id_pattern: str = DEFAULT_STOP_ID_PATTERN
    visit_stops: bool = DEFAULT_VISIT_STOPS

    route_separator: str = DEFAULT_ROUTE_SEPARATOR

    metadata: dict[str, JSONValue] = field(default_factory=dict)

    route_id_regex: re.Pattern[str] = field(init=False, repr=False)
    stop_id_regex: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.root_url = (self.root_url or "").strip()
        parsed = urlparse(self.root_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"root_url must be an absolute http(s) URL: {self.root_url!r}")

        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.max_pages <= 0:
            raise ValueError("max_pages must be > 0")
        if self.concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0")
        if self.rate_limit_seconds < 0:
            raise ValueError("rate_limit_seconds must be >= 0")
        if not self.link_selector.strip():
            raise ValueError("link_selector cannot be empty")
        if not self.route_separator:
            raise ValueError("route_separator cannot be empty")

        self.query_param = _as_optional_str(self.query_param)

        domains = [normalize_domain(domain) for domain in self.allowed_domains]
        domains = [domain for domain in dict.fromkeys(domains) if domain]
        if not domains:
            domains = [host_from_url(self.root_url)]
        self.allowed_domains = domains

        self.route_id_regex = _compile(self.route_id_pattern, "route_id_pattern")
        self.stop_id_regex = _compile(self.stop_id_pattern, "stop_id_pattern")

    def is_url_allowed(self, url: str) -> bool:
        """Check URL scheme and host against the allowed domains."""

        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"}:
            return False

        host = host_from_url(url)
        if not host:
            return False

        # Suffix match so that subdomains of an allowed domain stay in scope.
        return any(host == domain or host.endswith("." + domain) for domain in self.allowed_domains)

    def request_headers(self) -> dict[str, str]:
        """Return request headers merged with the configured user agent."""

        merged: dict[str, str] = dict(self.default_headers)
        merged.setdefault("User-Agent", self.user_agent)
        return merged

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "root_url": self.root_url,
            "allowed_domains": list(self.allowed_domains),
            "max_depth": self.max_depth,
            "max_pages": self.max_pages,
            "concurrency": self.concurrency,
            "timeout_seconds": self.timeout_seconds,
            "retries": self.retries,
            "retry_backoff_seconds": self.retry_backoff_seconds,
            "rate_limit_seconds": self.rate_limit_seconds,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
            "respect_robots": self.respect_robots,
            "allow_revisit": self.allow_revisit,
            "link_selector": self.link_selector,
            "query_param": self.query_param,
            "route_id_pattern": self.route_id_pattern,
            "stop_id_pattern": self.stop_id_pattern,
            "visit_stops": self.visit_stops,
            "route_separator": self.route_separator,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CrawlConfig":
        """Build config from a parsed dictionary."""

        raw_domains = payload.get("allowed_domains") or []
        if isinstance(raw_domains, str):
            raw_domains = [raw_domains]

        query_param = payload.get("query_param", DEFAULT_QUERY_PARAM)

        return cls(
            root_url=str(payload.get("root_url", DEFAULT_ROOT_URL)),
            allowed_domains=[str(domain) for domain in raw_domains],
            max_depth=_as_int(payload.get("max_depth", DEFAULT_MAX_DEPTH), "max_depth"),
            max_pages=_as_int(payload.get("max_pages", DEFAULT_MAX_PAGES), "max_pages"),
            concurrency=_as_int(payload.get("concurrency", DEFAULT_CONCURRENCY), "concurrency"),
            timeout_seconds=_as_float(
                payload.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
                "timeout_seconds",
            ),
            retries=_as_int(payload.get("retries", DEFAULT_RETRIES), "retries"),
            retry_backoff_seconds=_as_float(
                payload.get("retry_backoff_seconds", DEFAULT_RETRY_BACKOFF_SECONDS),
                "retry_backoff_seconds",
            ),
            rate_limit_seconds=_as_float(
                payload.get("rate_limit_seconds", DEFAULT_RATE_LIMIT_SECONDS),
                "rate_limit_seconds",
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            respect_robots=_as_bool(
                payload.get("respect_robots", DEFAULT_RESPECT_ROBOTS),
                "respect_robots",
            ),
            allow_revisit=_as_bool(
                payload.get("allow_revisit", DEFAULT_ALLOW_REVISIT),
                "allow_revisit",
            ),
            link_selector=str(payload.get("link_selector", DEFAULT_LINK_SELECTOR)),
            query_param=None if query_param is None else str(query_param),
            route_id_pattern=str(payload.get("route_id_pattern", DEFAULT_ROUTE_ID_PATTERN)),
            stop_id_pattern=str(payload.get("stop_id_pattern", DEFAULT_STOP_ID_PATTERN)),
            visit_stops=_as_bool(payload.get("visit_stops", DEFAULT_VISIT_STOPS), "visit_stops"),
            route_separator=str(payload.get("route_separator", DEFAULT_ROUTE_SEPARATOR)),
            metadata=dict(payload.get("metadata", {})),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> CrawlConfig:
    """Load CrawlConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ValueError(f"Config at {config_path} must be a mapping")

    return CrawlConfig.from_dict(payload)


def save_config(config: CrawlConfig, path: str | Path) -> None:
    """Save CrawlConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValueError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "CrawlConfig",
    "load_config",
    "save_config",
]
