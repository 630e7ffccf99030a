"""Matching of concrete request paths against registered endpoint patterns.

Endpoint patterns are stored per HTTP verb in ``.xano/endpoints.json``
(for example ``users/{id}``). A request such as ``GET /users/42?x=1`` is
matched segment by segment; placeholders bind unconditionally.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qsl

from .exceptions import AmbiguousRouteError, RouteResolutionError
from .models import RouteEntry
from .registry import (
    find_group_by_canonical,
    find_group_by_name,
    load_route_entries,
    load_route_groups,
)

logger = logging.getLogger(__name__)


def normalize_route_path(path: str) -> str:
    """Ensure a path starts with exactly one slash.

    Examples:
        >>> normalize_route_path("//users/1")
        '/users/1'
        >>> normalize_route_path("users")
        '/users'
    """
    normalized = path
    while normalized.startswith("//"):
        normalized = normalized[1:]
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    return normalized


def _segments(path: str) -> list[str]:
    return [segment for segment in path.strip("/").split("/") if segment]


def _is_placeholder(segment: str) -> bool:
    return len(segment) > 2 and segment.startswith("{") and segment.endswith("}")


def match_pattern(pattern: str, path: str) -> Optional[dict[str, str]]:
    """Match a path (without query string) against one pattern.

    Args:
        pattern: Pattern such as ``users/{id}``
        path: Concrete path such as ``/users/42``

    Returns:
        Bound path parameters, or None if the pattern does not match

    Examples:
        >>> match_pattern("users/{id}", "/users/42")
        {'id': '42'}
        >>> match_pattern("users", "/users/42") is None
        True
    """
    pattern_segments = _segments(pattern)
    path_segments = _segments(path)
    if len(pattern_segments) != len(path_segments):
        return None

    params: dict[str, str] = {}
    for expected, actual in zip(pattern_segments, path_segments):
        if _is_placeholder(expected):
            params[expected[1:-1]] = actual
        elif expected != actual:
            return None
    return params


@dataclass
class RouteMatch:
    """Result of a successful route match."""

    canonical_id: str
    id: int
    pattern: str
    path_params: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)


class RouteMatcher:
    """Matches requests against the endpoint patterns of a workspace."""

    def __init__(self, entries: dict[str, list[RouteEntry]]):
        """Initialize the matcher.

        Args:
            entries: Endpoint patterns per HTTP verb, in registration order
        """
        self.entries = {verb.upper(): list(items) for verb, items in entries.items()}

    @classmethod
    def from_file(cls, project_root: Path) -> "RouteMatcher":
        """Create a matcher from .xano/endpoints.json."""
        return cls(load_route_entries(project_root))

    @property
    def is_empty(self) -> bool:
        return not any(self.entries.values())

    def match(self, verb: str, path: str) -> Optional[RouteMatch]:
        """Find the endpoint serving ``verb path``.

        Every pattern registered for the verb is checked. Matches from a
        single API group resolve to the first one registered.

        Args:
            verb: HTTP verb (case-insensitive)
            path: Concrete request path, optionally with a query string

        Returns:
            RouteMatch, or None if no pattern matches

        Raises:
            AmbiguousRouteError: If matches belong to more than one API group
        """
        path_part, _, query = path.partition("?")
        query_params = dict(parse_qsl(query, keep_blank_values=True))
        normalized = normalize_route_path(path_part)

        matches: list[RouteMatch] = []
        for entry in self.entries.get(verb.upper(), []):
            params = match_pattern(entry.pattern, normalized)
            if params is None:
                continue
            matches.append(
                RouteMatch(
                    canonical_id=entry.canonical_id,
                    id=entry.id,
                    pattern=entry.pattern,
                    path_params=params,
                    query_params=dict(query_params),
                )
            )

        if not matches:
            logger.debug(f"No endpoint matches {verb.upper()} {normalized}")
            return None

        canonicals = list(dict.fromkeys(m.canonical_id for m in matches))
        if len(canonicals) > 1:
            raise AmbiguousRouteError(verb.upper(), normalized, canonicals)

        logger.debug(
            f"{verb.upper()} {normalized} matched {matches[0].pattern} "
            f"({matches[0].canonical_id})"
        )
        return matches[0]


def resolve_canonical(
    project_root: Path,
    method: str,
    path: str,
    api_group: Optional[str] = None,
) -> str:
    """Resolve the API group canonical that serves a request.

    An explicit ``api_group`` (name or canonical) wins; otherwise the
    request is matched against the synced endpoint patterns.

    Args:
        project_root: Project root
        method: HTTP verb
        path: Request path
        api_group: Optional API group name or canonical

    Returns:
        Canonical ID of the API group

    Raises:
        RouteResolutionError: With code ``INVALID_GROUP``,
            ``NO_ENDPOINT_DATA`` or ``ENDPOINT_NOT_FOUND``
        AmbiguousRouteError: If the path matches several API groups
    """
    if api_group:
        groups = load_route_groups(project_root)
        info = find_group_by_name(groups, api_group)
        if info is None:
            info = find_group_by_canonical(groups, api_group)
        if info is None:
            raise RouteResolutionError(
                "INVALID_GROUP", f"API group not found: {api_group}"
            )
        return info.canonical_id

    matcher = RouteMatcher.from_file(project_root)
    if matcher.is_empty:
        raise RouteResolutionError(
            "NO_ENDPOINT_DATA",
            "No endpoint data found. Run 'pyxano fetch' first to sync "
            "endpoint metadata.",
        )

    match = matcher.match(method, path)
    if match is None:
        raise RouteResolutionError(
            "ENDPOINT_NOT_FOUND",
            f"Could not find API endpoint: {method.upper()} "
            f"{normalize_route_path(path)}. Verify the path exists and "
            "endpoint data is synced.",
        )
    return match.canonical_id
