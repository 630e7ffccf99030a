"""Derived lookup index over the object registry.

The index is disposable: it is rebuilt from the registry every time the
registry is saved and can always be regenerated from ``objects.json``.
It is persisted to ``.xano/search.json`` so that read-only commands can
resolve user input without rebuilding it.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from .models import ObjectKind, TrackedObject
from .naming import API_GROUP_FILENAME, sanitize, snake_case, strip_id_prefix
from .project import SEARCH_JSON, metadata_path, read_json, write_json_atomic
from .utils import XS_EXTENSION

logger = logging.getLogger(__name__)

SEARCH_INDEX_VERSION = 2


def object_name_from_path(path: str) -> str:
    """Derive the display name of an object from its file path.

    Examples:
        >>> object_name_from_path("tables/123_orders.xs")
        'orders'
        >>> object_name_from_path("apis/auth/api_group.xs")
        'auth'
    """
    pure = PurePosixPath(path)
    if pure.name == API_GROUP_FILENAME and pure.parent.name:
        return pure.parent.name
    stem = pure.name[: -len(XS_EXTENSION)] if pure.name.endswith(XS_EXTENSION) else pure.name
    return strip_id_prefix(stem)


def path_variants(path: str) -> list[str]:
    """All trailing sub-paths of ``path``, with and without extension.

    Examples:
        >>> path_variants("apis/auth/login_POST.xs")  # doctest: +NORMALIZE_WHITESPACE
        ['apis/auth/login_POST', 'auth/login_POST.xs', 'auth/login_POST',
         'login_POST.xs', 'login_POST']
    """
    parts = path.split("/")
    variants: list[str] = []
    for i in range(len(parts)):
        suffix = "/".join(parts[i:])
        if i > 0:
            variants.append(suffix)
        if suffix.endswith(XS_EXTENSION):
            variants.append(suffix[: -len(XS_EXTENSION)])
    return variants


def _append(mapping: dict[str, list[str]], key: str, path: str) -> None:
    bucket = mapping.setdefault(key, [])
    if path not in bucket:
        bucket.append(path)


def _discard(mapping: dict[str, list[str]], key: str, path: str) -> None:
    bucket = mapping.get(key)
    if bucket is None:
        return
    if path in bucket:
        bucket.remove(path)
    if not bucket:
        del mapping[key]


@dataclass
class SearchIndex:
    """Lookup structures rebuilt from the registry."""

    paths: dict[str, str] = field(default_factory=dict)
    """Exact path -> object kind"""

    by_basename: dict[str, list[str]] = field(default_factory=dict)
    """Filename -> paths (collisions allowed)"""

    by_name: dict[str, list[str]] = field(default_factory=dict)
    """Permissively sanitized object name -> paths"""

    by_strict_name: dict[str, list[str]] = field(default_factory=dict)
    """snake_case object name -> paths"""

    by_kind: dict[str, list[str]] = field(default_factory=dict)
    """Object kind -> paths"""

    tables: dict[str, str] = field(default_factory=dict)
    """Lowercased table name -> path"""

    variants: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    """Object kind -> trailing sub-path -> paths"""

    @classmethod
    def build(cls, objects: Iterable[TrackedObject]) -> "SearchIndex":
        """Build an index from registry records."""
        index = cls()
        for obj in objects:
            index.add(obj)
        return index

    def add(self, obj: TrackedObject) -> None:
        """Add or replace one record."""
        if obj.path in self.paths:
            self.remove(obj.path)

        kind = obj.kind.value
        name = object_name_from_path(obj.path)
        self.paths[obj.path] = kind
        _append(self.by_basename, PurePosixPath(obj.path).name, obj.path)
        _append(self.by_name, sanitize(name), obj.path)
        _append(self.by_strict_name, snake_case(name), obj.path)
        _append(self.by_kind, kind, obj.path)
        if obj.kind == ObjectKind.TABLE:
            self.tables[name.lower()] = obj.path
        kind_variants = self.variants.setdefault(kind, {})
        for variant in path_variants(obj.path):
            _append(kind_variants, variant, obj.path)

    def remove(self, path: str) -> None:
        """Remove one path from every structure."""
        kind = self.paths.pop(path, None)
        if kind is None:
            return
        name = object_name_from_path(path)
        _discard(self.by_basename, PurePosixPath(path).name, path)
        _discard(self.by_name, sanitize(name), path)
        _discard(self.by_strict_name, snake_case(name), path)
        _discard(self.by_kind, kind, path)
        if self.tables.get(name.lower()) == path:
            del self.tables[name.lower()]
        kind_variants = self.variants.get(kind, {})
        for variant in path_variants(path):
            _discard(kind_variants, variant, path)
        if not kind_variants:
            self.variants.pop(kind, None)

    def lookup(self, query: str, kind: Optional[ObjectKind] = None) -> list[str]:
        """Resolve user input to registry paths.

        Tries, in order: exact path, path with ``.xs`` appended, trailing
        sub-path, filename, sanitized name and strict name. The first
        strategy that yields results wins.

        Args:
            query: Path fragment or object name
            kind: Restrict results to one object kind

        Returns:
            Matching paths (possibly several when names collide)
        """
        query = query.strip().rstrip("/")
        while query.startswith("./"):
            query = query[2:]
        if not query:
            return []

        def accept(candidates: Iterable[str]) -> list[str]:
            if kind is None:
                return list(candidates)
            return [p for p in candidates if self.paths.get(p) == kind.value]

        for exact in (query, f"{query}{XS_EXTENSION}"):
            if exact in self.paths:
                found = accept([exact])
                if found:
                    return found

        kinds = [kind.value] if kind is not None else sorted(self.variants)
        suffix_hits: list[str] = []
        for kind_name in kinds:
            suffix_hits.extend(self.variants.get(kind_name, {}).get(query, []))
        if suffix_hits:
            return suffix_hits

        for mapping, key in (
            (self.by_basename, PurePosixPath(query).name),
            (self.by_name, sanitize(query)),
            (self.by_strict_name, snake_case(query)),
        ):
            found = accept(mapping.get(key, []))
            if found:
                return found
        return []

    def find_table(self, name: str) -> Optional[str]:
        """Path of a table by name (case-insensitive)."""
        return self.tables.get(strip_id_prefix(name).lower())

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SEARCH_INDEX_VERSION,
            "paths": self.paths,
            "byBasename": self.by_basename,
            "byName": self.by_name,
            "byStrictName": self.by_strict_name,
            "byKind": self.by_kind,
            "tables": self.tables,
            "variants": self.variants,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["SearchIndex"]:
        """Create an index from its JSON form.

        Returns None if the version does not match, so that the caller
        rebuilds the index.
        """
        if data.get("version") != SEARCH_INDEX_VERSION:
            logger.debug(
                f"Search index version {data.get('version')} != "
                f"{SEARCH_INDEX_VERSION}, ignoring"
            )
            return None
        return cls(
            paths=dict(data.get("paths", {})),
            by_basename={k: list(v) for k, v in data.get("byBasename", {}).items()},
            by_name={k: list(v) for k, v in data.get("byName", {}).items()},
            by_strict_name={
                k: list(v) for k, v in data.get("byStrictName", {}).items()
            },
            by_kind={k: list(v) for k, v in data.get("byKind", {}).items()},
            tables=dict(data.get("tables", {})),
            variants={
                kind: {k: list(v) for k, v in entries.items()}
                for kind, entries in data.get("variants", {}).items()
            },
        )

    def save(self, project_root: Path) -> None:
        """Write the index to .xano/search.json."""
        write_json_atomic(metadata_path(project_root, SEARCH_JSON), self.to_dict())

    @classmethod
    def load(cls, project_root: Path) -> Optional["SearchIndex"]:
        """Load .xano/search.json; None if missing, corrupt or outdated."""
        data = read_json(metadata_path(project_root, SEARCH_JSON))
        if not isinstance(data, dict):
            return None
        try:
            return cls.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring malformed search index: {e}")
            return None
