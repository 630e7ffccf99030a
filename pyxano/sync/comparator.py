"""Three-way state comparison for sync operations."""

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from ..models import FileStatus, RemoteSnapshot, StatusDetail, StatusEntry
from ..registry import ObjectRegistry
from ..utils import compute_file_sha256, compute_sha256

logger = logging.getLogger(__name__)

Classification = tuple[FileStatus, Optional[StatusDetail]]


def classify(
    local: Optional[str], synced: Optional[str], remote: Optional[str]
) -> Optional[Classification]:
    """Classify one path from three optional content hashes.

    Args:
        local: Hash of the local file, None if it does not exist
        synced: Hash recorded at the last sync, None if untracked
        remote: Hash of the remote body, None if the object does not exist

    Returns:
        (status, detail), or None when there is nothing to report (the
        path is gone locally and remotely)

    Examples:
        >>> classify("a", "a", "a")
        (<FileStatus.UNCHANGED: 'unchanged'>, None)
        >>> classify("b", "a", "a")
        (<FileStatus.MODIFIED: 'modified'>, <StatusDetail.LOCAL: 'local'>)
        >>> classify(None, "a", None) is None
        True
    """
    has_local = local is not None
    has_synced = synced is not None
    has_remote = remote is not None

    if has_local and has_synced and has_remote:
        local_matches = local == synced
        remote_matches = synced == remote
        if local_matches and remote_matches:
            return FileStatus.UNCHANGED, None
        if remote_matches:
            return FileStatus.MODIFIED, StatusDetail.LOCAL
        if local_matches:
            return FileStatus.MODIFIED, StatusDetail.REMOTE
        # Both sides moved away from the synced body
        return FileStatus.MODIFIED, StatusDetail.BOTH

    if has_local and has_synced:
        return FileStatus.DELETED, StatusDetail.REMOTE
    if has_local and has_remote:
        # Untracked file for an object that exists remotely
        return FileStatus.MODIFIED, StatusDetail.LOCAL
    if has_local:
        return FileStatus.NEW, None
    if has_synced and has_remote:
        return FileStatus.DELETED, StatusDetail.LOCAL
    if has_synced:
        return None
    if has_remote:
        return FileStatus.REMOTE_ONLY, None
    return None


class StatusComparator:
    """Builds status reports from the registry, local files and remote bodies."""

    def __init__(self, project_root: Path):
        """Initialize the comparator.

        Args:
            project_root: Project root; paths are relative to it
        """
        self.project_root = Path(project_root)

    def compare_path(
        self,
        path: str,
        registry: ObjectRegistry,
        remote: Optional[RemoteSnapshot],
    ) -> Optional[StatusEntry]:
        """Compare a single path.

        Args:
            path: Project-relative path
            registry: Loaded registry
            remote: Remote object mapped to the path, if any

        Returns:
            StatusEntry, or None if nothing is to be reported
        """
        tracked = registry.find_by_path(path)
        if tracked is not None and remote is not None and (
            tracked.id != remote.id or tracked.kind != remote.kind
        ):
            # The path now belongs to another remote object; the record
            # describes a different body and cannot serve as merge base
            logger.warning(
                f"{path}: tracked as {tracked.kind.value} {tracked.id} but "
                f"generated for {remote.kind.value} {remote.id}"
            )
            tracked = None
        local_hash = compute_file_sha256(self.project_root / path)
        synced_hash = tracked.content_hash if tracked is not None else None
        remote_hash = compute_sha256(remote.body) if remote is not None else None

        result = classify(local_hash, synced_hash, remote_hash)
        if result is None:
            logger.debug(f"{path}: gone locally and remotely, not reported")
            return None

        status, detail = result
        logger.debug(f"{path}: {status.value}" + (f"/{detail.value}" if detail else ""))
        if remote is not None:
            obj_id, kind = remote.id, remote.kind
        elif tracked is not None:
            obj_id, kind = tracked.id, tracked.kind
        else:
            obj_id, kind = None, None
        return StatusEntry(path=path, status=status, id=obj_id, kind=kind, detail=detail)

    def compare(
        self,
        paths: Iterable[str],
        registry: ObjectRegistry,
        remote_by_path: dict[str, RemoteSnapshot],
    ) -> list[StatusEntry]:
        """Compare every path in ``paths``.

        Args:
            paths: Candidate paths (local files, registry paths and remote
                paths); duplicates are ignored
            registry: Loaded registry
            remote_by_path: Remote objects by generated path

        Returns:
            Status entries sorted by path
        """
        entries: list[StatusEntry] = []
        for path in sorted(set(paths)):
            entry = self.compare_path(path, registry, remote_by_path.get(path))
            if entry is not None:
                entries.append(entry)
        return entries
