"""Pure URL classification for the route-listing hierarchy.

A link's meaning depends on where it was found:

- on the root listing page, a query value shaped like a route id
  (letters followed by digits) is a route-detail link;
- on a route-detail page, route-shaped values are ignored (they point at
  sibling routes) and numeric values are stop entries;
- on a stop page nothing is classified.

Links without the expected query parameter are not errors; they are skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit

from .config import CrawlConfig
from .constants import DEFAULT_QUERY_PARAM, DEFAULT_ROUTE_ID_PATTERN, DEFAULT_STOP_ID_PATTERN
from .types import ClassifiedLink, LinkKind, PageRole


@dataclass(frozen=True, slots=True)
class ClassifierRules:
    """Patterns used to recognise route and stop identifiers."""

    query_param: str | None = DEFAULT_QUERY_PARAM
    route_id_regex: re.Pattern[str] = re.compile(DEFAULT_ROUTE_ID_PATTERN)
    stop_id_regex: re.Pattern[str] = re.compile(DEFAULT_STOP_ID_PATTERN)

    @classmethod
    def from_config(cls, config: CrawlConfig) -> "ClassifierRules":
        return cls(
            query_param=config.query_param,
            route_id_regex=config.route_id_regex,
            stop_id_regex=config.stop_id_regex,
        )


DEFAULT_RULES = ClassifierRules()


def query_value(url: str, param: str | None = DEFAULT_QUERY_PARAM) -> str | None:
    """Return the value of query parameter `param`, or the first one if `param` is None."""

    query = urlsplit(url).query
    if not query:
        return None

    for key, value in parse_qsl(query, keep_blank_values=True):
        if param is not None and key != param:
            continue
        value = value.strip()
        return value or None

    return None


def is_route_id(value: str | None, rules: ClassifierRules = DEFAULT_RULES) -> bool:
    return bool(value) and rules.route_id_regex.match(value) is not None


def is_stop_id(value: str | None, rules: ClassifierRules = DEFAULT_RULES) -> bool:
    return bool(value) and rules.stop_id_regex.match(value) is not None


def classify_link(
    url: str,
    role: PageRole,
    *,
    rules: ClassifierRules = DEFAULT_RULES,
) -> ClassifiedLink | None:
    """Classify `url` found on a page with the given role.

    Returns `None` for links that should be skipped.
    """

    if role == PageRole.STOP:
        return None

    value = query_value(url, rules.query_param)
    if value is None:
        return None

    if role == PageRole.INITIAL:
        if is_route_id(value, rules):
            return ClassifiedLink(kind=LinkKind.ROUTE, identifier=value, url=url)
        return None

    # Links to sibling routes are not stops.
    if is_route_id(value, rules):
        return None
    if is_stop_id(value, rules):
        return ClassifiedLink(kind=LinkKind.STOP, identifier=value, url=url)
    return None


__all__ = [
    "ClassifierRules",
    "DEFAULT_RULES",
    "classify_link",
    "is_route_id",
    "is_stop_id",
    "query_value",
]
