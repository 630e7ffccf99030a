"""Registry of tracked objects.

The registry (``.xano/objects.json``) records, for every synced file, the
remote object it belongs to and the body it had at the last successful
sync. It is shared with the Xano VS Code extension, so the file layout is
fixed.

Route groups (``.xano/groups.json``) and endpoint patterns
(``.xano/endpoints.json``) are persisted next to it.
"""

import logging
from collections.abc import Iterator
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from .models import (
    ObjectKind,
    ObjectStatus,
    RouteEntry,
    RouteGroupInfo,
    TrackedObject,
)
from .naming import API_GROUP_FILENAME
from .project import (
    ENDPOINTS_JSON,
    GROUPS_JSON,
    OBJECTS_JSON,
    metadata_path,
    read_json,
    write_json_atomic,
)
from .search_index import SearchIndex
from .utils import (
    XS_EXTENSION,
    compute_file_sha256,
    compute_sha256,
    encode_file_snapshot,
    encode_snapshot,
)

logger = logging.getLogger(__name__)


class ObjectRegistry:
    """In-memory view of .xano/objects.json with explicit load and save.

    The registry is owned by the caller and must only be mutated from one
    place at a time. Nothing is written until :meth:`save` is called.

    Examples:
        >>> registry = ObjectRegistry(Path("/project"))
        >>> registry.load()
        >>> registry.mark_synced("functions/calc.xs", "function calc {}",
        ...                      id=12, kind=ObjectKind.FUNCTION)
        >>> registry.save()
    """

    def __init__(self, project_root: Union[str, Path]):
        """Initialize an empty registry.

        Args:
            project_root: Project root; record paths are relative to it
        """
        self.project_root = Path(project_root)
        self._objects: dict[str, TrackedObject] = {}
        self._index: Optional[SearchIndex] = None

    @property
    def file_path(self) -> Path:
        return metadata_path(self.project_root, OBJECTS_JSON)

    # =========================
    # Persistence
    # =========================

    def load(self) -> None:
        """Load records from disk.

        A missing or corrupt file results in an empty registry.
        """
        self._objects = {}
        self._index = None

        data = read_json(self.file_path)
        if data is None:
            return
        if not isinstance(data, list):
            logger.warning(f"Ignoring {self.file_path}: expected a JSON array")
            return

        skipped = 0
        for item in data:
            obj = TrackedObject.from_dict(item) if isinstance(item, dict) else None
            if obj is None:
                skipped += 1
                continue
            self._objects[obj.path] = obj

        if skipped:
            logger.warning(f"Skipped {skipped} invalid entries in {self.file_path}")
        logger.debug(f"Loaded {len(self._objects)} tracked objects")

    def save(self) -> None:
        """Write records to disk and regenerate the search index.

        Raises:
            RegistrySaveError: If a file cannot be written
        """
        write_json_atomic(self.file_path, [obj.to_dict() for obj in self._objects.values()])
        self._index = SearchIndex.build(self._objects.values())
        self._index.save(self.project_root)
        logger.debug(f"Saved {len(self._objects)} tracked objects to {self.file_path}")

    @property
    def index(self) -> SearchIndex:
        """Search index for the current records, built on first use."""
        if self._index is None:
            self._index = SearchIndex.build(self._objects.values())
        return self._index

    # =========================
    # Mutation
    # =========================

    def upsert(
        self,
        path: str,
        id: Optional[int] = None,
        kind: Optional[ObjectKind] = None,
        status: Optional[ObjectStatus] = None,
        content_hash: Optional[str] = None,
        original_snapshot: Optional[str] = None,
    ) -> TrackedObject:
        """Insert a record or merge fields into the record at ``path``.

        Hash and snapshot that are not given are derived from the file at
        ``path`` if it exists, otherwise left empty. Status defaults to
        ``unchanged``.

        Args:
            path: Project-relative path
            id: Remote object ID (required for new records)
            kind: Object kind (required for new records)
            status: Registry status
            content_hash: SHA-256 of the synced body
            original_snapshot: Base64 of the synced body

        Returns:
            The stored record

        Raises:
            ValueError: If a new record lacks id or kind
        """
        existing = self._objects.get(path)
        if id is None:
            id = existing.id if existing else None
        if kind is None:
            kind = existing.kind if existing else None
        if id is None or kind is None:
            raise ValueError(f"id and kind are required to track {path}")

        file_path = self.project_root / path
        if content_hash is None:
            content_hash = compute_file_sha256(file_path) or ""
        if original_snapshot is None:
            original_snapshot = encode_file_snapshot(file_path) or ""

        obj = TrackedObject(
            id=id,
            kind=ObjectKind(kind),
            path=path,
            status=ObjectStatus(status) if status is not None else ObjectStatus.UNCHANGED,
            content_hash=content_hash,
            original_snapshot=original_snapshot,
        )
        self._objects[path] = obj
        if self._index is not None:
            self._index.add(obj)
        return obj

    def mark_synced(
        self,
        path: str,
        body: str,
        id: Optional[int] = None,
        kind: Optional[ObjectKind] = None,
    ) -> TrackedObject:
        """Record ``body`` as the last successfully synced content of ``path``."""
        return self.upsert(
            path,
            id=id,
            kind=kind,
            status=ObjectStatus.UNCHANGED,
            content_hash=compute_sha256(body),
            original_snapshot=encode_snapshot(body),
        )

    def remove_by_path(self, path: str) -> Optional[TrackedObject]:
        """Remove the record at ``path``; returns it if it existed."""
        obj = self._objects.pop(path, None)
        if obj is not None and self._index is not None:
            self._index.remove(path)
        return obj

    def remove_by_id(
        self, id: int, kind: Optional[ObjectKind] = None
    ) -> list[TrackedObject]:
        """Remove all records with ``id`` (optionally of one kind)."""
        removed = self.find_by_id(id, kind)
        for obj in removed:
            self.remove_by_path(obj.path)
        return removed

    def refresh_statuses(self) -> None:
        """Update record statuses from the files on disk.

        Uses the VS Code extension vocabulary: ``notfound`` if the file is
        gone, ``changed`` if it differs from the synced body, otherwise
        ``unchanged``.
        """
        for obj in self._objects.values():
            local_hash = compute_file_sha256(self.project_root / obj.path)
            if local_hash is None:
                obj.status = ObjectStatus.NOTFOUND
            elif local_hash != obj.content_hash:
                obj.status = ObjectStatus.CHANGED
            else:
                obj.status = ObjectStatus.UNCHANGED

    # =========================
    # Queries
    # =========================

    def find_by_path(self, path: str) -> Optional[TrackedObject]:
        return self._objects.get(path)

    def find_by_id(
        self, id: int, kind: Optional[ObjectKind] = None
    ) -> list[TrackedObject]:
        return [
            obj
            for obj in self._objects.values()
            if obj.id == id and (kind is None or obj.kind == kind)
        ]

    def find_by_kind(self, kind: ObjectKind) -> list[TrackedObject]:
        return [obj for obj in self._objects.values() if obj.kind == kind]

    def paths(self) -> list[str]:
        return list(self._objects)

    def find_route_group_for_endpoint(
        self, endpoint_path: str
    ) -> Optional[TrackedObject]:
        """Find the API group record owning an endpoint file.

        ``app/apis/bootstrap/auth_login_POST.xs`` belongs to the group
        stored at ``app/apis/bootstrap.xs`` (or ``app/apis/bootstrap/api_group.xs``
        in VS Code layouts); failing that, any group whose file is named
        ``bootstrap.xs`` is returned.
        """
        pure = PurePosixPath(endpoint_path)
        if len(pure.parts) < 3:
            return None
        group_dir = pure.parent
        group_name = group_dir.name
        expected = (
            f"{group_dir.parent.as_posix()}/{group_name}{XS_EXTENSION}",
            f"{group_dir.as_posix()}/{API_GROUP_FILENAME}",
        )

        groups = self.find_by_kind(ObjectKind.API_GROUP)
        for obj in groups:
            if obj.path in expected:
                return obj
        for obj in groups:
            if obj.path.endswith(f"/{group_name}{XS_EXTENSION}"):
                return obj
        return None

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[TrackedObject]:
        return iter(list(self._objects.values()))

    def __contains__(self, path: object) -> bool:
        return path in self._objects


# =============================================================================
# Route groups and endpoint patterns
# =============================================================================


def load_route_groups(project_root: Path) -> dict[str, RouteGroupInfo]:
    """Load .xano/groups.json; empty if missing or corrupt."""
    data = read_json(metadata_path(project_root, GROUPS_JSON))
    if not isinstance(data, dict):
        return {}
    groups: dict[str, RouteGroupInfo] = {}
    for name, info in data.items():
        if not isinstance(info, dict) or "canonical" not in info:
            continue
        try:
            group_id = int(info.get("id", 0))
        except (TypeError, ValueError):
            logger.debug(f"Skipping route group {name}: invalid id")
            continue
        groups[name] = RouteGroupInfo(
            name=name, canonical_id=str(info["canonical"]), id=group_id
        )
    return groups


def save_route_groups(project_root: Path, groups: dict[str, RouteGroupInfo]) -> None:
    write_json_atomic(
        metadata_path(project_root, GROUPS_JSON),
        {name: info.to_dict() for name, info in groups.items()},
    )


def load_route_entries(project_root: Path) -> dict[str, list[RouteEntry]]:
    """Load .xano/endpoints.json; empty if missing or corrupt."""
    data = read_json(metadata_path(project_root, ENDPOINTS_JSON))
    if not isinstance(data, dict):
        return {}
    entries: dict[str, list[RouteEntry]] = {}
    for verb, items in data.items():
        if not isinstance(items, list):
            continue
        parsed = (RouteEntry.from_dict(item) for item in items if isinstance(item, dict))
        entries[verb.upper()] = [entry for entry in parsed if entry is not None]
    return entries


def save_route_entries(
    project_root: Path, entries: dict[str, list[RouteEntry]]
) -> None:
    write_json_atomic(
        metadata_path(project_root, ENDPOINTS_JSON),
        {verb: [entry.to_dict() for entry in items] for verb, items in entries.items()},
    )


def find_group_by_name(
    groups: dict[str, RouteGroupInfo], name: str
) -> Optional[RouteGroupInfo]:
    """Find a route group by name, exact match first, then case-insensitive."""
    if name in groups:
        return groups[name]
    lower = name.lower()
    for group_name, info in groups.items():
        if group_name.lower() == lower:
            return info
    return None


def find_group_by_canonical(
    groups: dict[str, RouteGroupInfo], canonical: str
) -> Optional[RouteGroupInfo]:
    for info in groups.values():
        if info.canonical_id == canonical:
            return info
    return None
