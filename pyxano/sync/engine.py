"""Core sync engine for pull, push and status operations."""

import logging
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from typing import Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api import XanoClient
from ..detector import (
    detect_type,
    extract_api_details,
    extract_name,
    extract_trigger_details,
    validate_single_block,
)
from ..models import (
    FileStatus,
    ObjectKind,
    RemoteSnapshot,
    StatusDetail,
    StatusEntry,
)
from ..naming import ObjectDescriptor, generate_file_path, sanitize, snake_case
from ..output import OutputFormatter
from ..permissions import Operation, check_datasource_permission
from ..project import ProjectSettings
from ..registry import (
    ObjectRegistry,
    load_route_groups,
    save_route_entries,
    save_route_groups,
)
from ..search_index import SearchIndex
from ..utils import compute_file_sha256, compute_sha256, read_text
from .comparator import StatusComparator
from .fetcher import FetchResult, RemoteFetcher
from .merge import GitMergeFile, MergeResult, ThreeWayMerger, has_conflict_markers, merge_into_local
from .operations import SyncOperations
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)

ROUTE_KINDS = {ObjectKind.API_GROUP, ObjectKind.API_ENDPOINT}


class SyncEngine:
    """Orchestrates status, pull and push for one project.

    The engine owns the registry for the duration of a command: every
    operation loads it first and saves it once at the end.
    """

    def __init__(
        self,
        settings: ProjectSettings,
        client: Optional[XanoClient] = None,
        output: Optional[OutputFormatter] = None,
        merger: Optional[ThreeWayMerger] = None,
        max_workers: int = 4,
    ):
        """Initialize sync engine.

        Args:
            settings: Project settings
            client: Xano API client (required for remote operations)
            output: Output formatter for progress and messages
            merger: Three-way merge capability (defaults to git merge-file)
            max_workers: Number of concurrent collection fetches
        """
        self.settings = settings
        self.root = Path(settings.root)
        self.client = client
        self.output = output or OutputFormatter()
        self.merger = merger or GitMergeFile()
        self.max_workers = max_workers
        self.registry = ObjectRegistry(self.root)
        self.comparator = StatusComparator(self.root)
        self.scanner = DirectoryScanner(self.root, settings.paths)
        self.operations = SyncOperations(self.root, client)

    # =========================
    # Remote state
    # =========================

    def path_for(self, snapshot: RemoteSnapshot) -> str:
        """Generate the local path of a remote object."""
        descriptor = ObjectDescriptor(
            id=snapshot.id,
            name=snapshot.name,
            kind=snapshot.kind,
            group=snapshot.group_name,
            verb=snapshot.verb,
            route_path=snapshot.route_path,
            table=snapshot.table_name,
        )
        return generate_file_path(
            descriptor,
            self.settings.paths,
            self.settings.naming,
            resolver=self.settings.resolver,
            sanitizer=self.settings.sanitizer,
        )

    def map_remote(self, objects: Iterable[RemoteSnapshot]) -> dict[str, RemoteSnapshot]:
        """Map remote objects to their generated paths.

        When two objects map to the same path the first one keeps it.
        """
        by_path: dict[str, RemoteSnapshot] = {}
        for snapshot in objects:
            path = self.path_for(snapshot)
            other = by_path.get(path)
            if other is not None:
                logger.warning(
                    f"{snapshot.kind.value} {snapshot.id} and {other.kind.value} "
                    f"{other.id} both map to {path}; keeping the first"
                )
                continue
            by_path[path] = snapshot
        return by_path

    def fetch(self, kinds: Optional[Iterable[ObjectKind]] = None) -> FetchResult:
        """Fetch remote objects, showing a spinner on interactive output."""
        if self.client is None:
            raise RuntimeError("Fetching requires an API client")
        fetcher = RemoteFetcher(self.client, max_workers=self.max_workers)

        if self.output.quiet or self.output.json_output:
            result = fetcher.fetch(kinds)
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
            ) as progress:
                task = progress.add_task("Fetching remote objects...", total=None)
                result = fetcher.fetch(
                    kinds,
                    on_progress=lambda message: progress.update(task, description=message),
                )

        for error in result.errors.values():
            self.output.warning(error)
        return result

    def save_route_metadata(self, result: FetchResult) -> None:
        """Persist route groups and endpoint patterns from a fetch.

        Nothing is written when the API groups could not be fetched.
        """
        if ObjectKind.API_GROUP.value in result.errors:
            return
        save_route_groups(self.root, result.groups)
        if ObjectKind.API_ENDPOINT.value not in result.errors:
            save_route_entries(self.root, result.endpoints)

    def refresh_metadata(self) -> FetchResult:
        """Fetch API groups and endpoints and store their route metadata."""
        result = self.fetch(ROUTE_KINDS)
        self.save_route_metadata(result)
        return result

    def rebuild_index(self) -> SearchIndex:
        """Regenerate .xano/search.json from the registry."""
        self.registry.load()
        index = SearchIndex.build(self.registry)
        index.save(self.root)
        return index

    # =========================
    # Status
    # =========================

    def _compare(
        self, result: FetchResult
    ) -> tuple[list[StatusEntry], dict[str, RemoteSnapshot]]:
        remote = self.map_remote(result.objects)
        paths = set(self.scanner.scan_paths()) | set(self.registry.paths()) | set(remote)
        entries = self.comparator.compare(paths, self.registry, remote)

        if result.errors:
            # Objects of a kind that failed to list are not gone remotely
            entries = [
                e
                for e in entries
                if not (
                    e.status == FileStatus.DELETED
                    and e.detail == StatusDetail.REMOTE
                    and e.kind is not None
                    and e.kind.value in result.errors
                )
            ]
        return entries, remote

    def status(self, result: Optional[FetchResult] = None) -> list[StatusEntry]:
        """Compare local files, the registry and the remote workspace.

        Args:
            result: Previously fetched remote state (fetched if omitted)

        Returns:
            Status entries sorted by path
        """
        self.registry.load()
        if result is None:
            result = self.fetch()
        entries, _ = self._compare(result)
        return entries

    # =========================
    # Pull
    # =========================

    def _create_pull_stats(self) -> dict:
        return {
            "downloaded": 0,
            "unchanged": 0,
            "merged": 0,
            "conflicts": 0,
            "skipped": 0,
            "deleted": 0,
            "errors": 0,
        }

    def _has_unpushed_changes_only(self, entry: StatusEntry, remote: RemoteSnapshot) -> bool:
        """True if the remote body is still the synced one."""
        tracked = self.registry.find_by_path(entry.path)
        return (
            tracked is not None
            and tracked.id == remote.id
            and tracked.kind == remote.kind
            and tracked.content_hash == compute_sha256(remote.body)
        )

    def _download(self, path: str, remote: RemoteSnapshot, stats: dict, dry_run: bool) -> None:
        if not dry_run:
            try:
                self.operations.write_local(path, remote.body)
            except OSError as e:
                self.output.error(f"Failed to write {path}: {e}")
                stats["errors"] += 1
                return
            self.registry.mark_synced(path, remote.body, id=remote.id, kind=remote.kind)
        stats["downloaded"] += 1
        self.output.info(f"  ↓ {path}")

    def pull(
        self,
        force: bool = False,
        merge: bool = False,
        clean: bool = False,
        dry_run: bool = False,
    ) -> dict:
        """Bring local files up to date with the remote workspace.

        Local edits are never overwritten unless ``force`` is set. With
        ``merge``, conflicting files are merged three-way instead of skipped.
        A failed merge only affects its own file.

        Args:
            force: Overwrite local changes
            merge: Merge local changes with remote changes
            clean: Delete local files whose remote object is gone (only if
                they have no local changes)
            dry_run: Report what would happen without writing anything

        Returns:
            Dictionary with pull statistics

        Examples:
            >>> engine = SyncEngine(settings, client)
            >>> stats = engine.pull(merge=True)
            >>> print(f"{stats['conflicts']} files need manual resolution")
        """
        stats = self._create_pull_stats()
        self.registry.load()
        result = self.fetch()
        if not dry_run:
            self.save_route_metadata(result)
        entries, remote = self._compare(result)

        for entry in entries:
            snapshot = remote.get(entry.path)
            status, detail = entry.status, entry.detail

            if status == FileStatus.UNCHANGED:
                stats["unchanged"] += 1
            elif snapshot is not None and (
                status == FileStatus.REMOTE_ONLY
                or (status == FileStatus.DELETED and detail == StatusDetail.LOCAL)
                or (status == FileStatus.MODIFIED and detail == StatusDetail.REMOTE)
            ):
                self._download(entry.path, snapshot, stats, dry_run)
            elif snapshot is not None and status == FileStatus.MODIFIED:
                if detail == StatusDetail.LOCAL and self._has_unpushed_changes_only(
                    entry, snapshot
                ):
                    logger.debug(f"{entry.path}: local changes not pushed yet")
                    stats["skipped"] += 1
                elif force:
                    self._download(entry.path, snapshot, stats, dry_run)
                elif merge:
                    self._merge(entry.path, snapshot, stats, dry_run)
                else:
                    self.output.warning(
                        f"{entry.path} has local changes; use --merge or --force"
                    )
                    stats["skipped"] += 1
            elif status == FileStatus.DELETED and detail == StatusDetail.REMOTE:
                self._handle_remote_deletion(entry, stats, clean, dry_run)

        if clean and not dry_run:
            self._drop_orphan_records(remote, result)

        if not dry_run:
            self.registry.refresh_statuses()
            self.registry.save()
        return stats

    def _merge(self, path: str, snapshot: RemoteSnapshot, stats: dict, dry_run: bool) -> None:
        if dry_run:
            stats["merged"] += 1
            return
        report = merge_into_local(
            self.registry, path, snapshot.body, self.merger, id=snapshot.id, kind=snapshot.kind
        )
        if report.outcome == MergeResult.MERGED:
            stats["merged"] += 1
            self.output.info(f"  ⇄ {path}")
        elif report.outcome == MergeResult.CONFLICT:
            stats["conflicts"] += 1
            self.output.warning(f"{path}: merge conflict, resolve the markers and push")
        else:
            stats["errors"] += 1
            self.output.error(f"{path}: {report.message}")

    def _handle_remote_deletion(
        self, entry: StatusEntry, stats: dict, clean: bool, dry_run: bool
    ) -> None:
        tracked = self.registry.find_by_path(entry.path)
        local_hash = compute_file_sha256(self.root / entry.path)
        unchanged = (
            tracked is not None
            and local_hash is not None
            and local_hash == tracked.content_hash
        )
        if not clean:
            logger.debug(f"{entry.path}: deleted remotely, keeping local file")
            stats["skipped"] += 1
            return
        if not unchanged:
            self.output.warning(f"{entry.path} was deleted remotely but has local changes")
            stats["skipped"] += 1
            return
        if not dry_run:
            self.operations.delete_local(entry.path)
            self.registry.remove_by_path(entry.path)
        stats["deleted"] += 1
        self.output.info(f"  ✗ {entry.path}")

    def _drop_orphan_records(
        self, remote: dict[str, RemoteSnapshot], result: FetchResult
    ) -> None:
        """Forget records whose file and remote object are both gone."""
        for tracked in self.registry:
            if tracked.kind.value in result.errors or tracked.path in remote:
                continue
            if not (self.root / tracked.path).exists():
                logger.debug(f"Dropping record for {tracked.path}")
                self.registry.remove_by_path(tracked.path)

    # =========================
    # Push
    # =========================

    def _create_push_stats(self) -> dict:
        return {
            "created": 0,
            "updated": 0,
            "deleted": 0,
            "skipped": 0,
            "errors": 0,
        }

    def _normalize_targets(self, targets: Iterable[str]) -> set[str]:
        normalized = set()
        for target in targets:
            path = Path(target)
            if path.is_absolute():
                try:
                    path = path.resolve().relative_to(self.root.resolve())
                except ValueError:
                    self.output.warning(f"{target} is outside the project")
                    continue
            normalized.add(PurePosixPath(path.as_posix()).as_posix())
        return normalized

    def _group_id_for(
        self, path: str, snapshot: Optional[RemoteSnapshot]
    ) -> Optional[int]:
        """API group ID of an endpoint file."""
        if snapshot is not None and snapshot.group_id is not None:
            return snapshot.group_id
        tracked_group = self.registry.find_route_group_for_endpoint(path)
        if tracked_group is not None:
            return tracked_group.id

        folder = PurePosixPath(path).parent.name
        for name, info in load_route_groups(self.root).items():
            if folder in (name, sanitize(name), snake_case(name)):
                return info.id
        return None

    def push(
        self,
        targets: Optional[Iterable[str]] = None,
        force: bool = False,
        delete: bool = False,
        datasource: Optional[str] = None,
        dry_run: bool = False,
    ) -> dict:
        """Send local changes to the remote workspace.

        Files changed remotely since the last sync are skipped unless
        ``force`` is set, and so are files with unresolved conflict markers.

        Args:
            targets: Restrict the push to these project-relative paths
            force: Overwrite remote changes
            delete: Delete remote objects whose local file was deleted
            datasource: Datasource whose permissions apply
            dry_run: Report what would happen without sending anything

        Returns:
            Dictionary with push statistics

        Raises:
            DatasourcePermissionError: If writes are not allowed; raised
                before any request is sent
        """
        if datasource is not None or self.settings.datasources:
            check_datasource_permission(
                datasource or self.settings.default_datasource,
                Operation.WRITE,
                self.settings.datasources,
            )

        stats = self._create_push_stats()
        self.registry.load()
        result = self.fetch()
        entries, remote = self._compare(result)
        if targets is not None:
            wanted = self._normalize_targets(targets)
            entries = [e for e in entries if e.path in wanted]

        for entry in entries:
            status, detail = entry.status, entry.detail
            if status in (FileStatus.UNCHANGED, FileStatus.REMOTE_ONLY):
                continue
            snapshot = remote.get(entry.path)

            if status == FileStatus.DELETED and detail == StatusDetail.LOCAL:
                if delete:
                    self._delete_remote(entry, snapshot, stats, dry_run)
                else:
                    stats["skipped"] += 1
                continue

            tracked = self.registry.find_by_path(entry.path)
            if (
                tracked is not None
                and snapshot is not None
                and (tracked.id, tracked.kind) != (snapshot.id, snapshot.kind)
                and not force
            ):
                self.output.warning(
                    f"{entry.path} is tracked as {tracked.kind.value} {tracked.id} "
                    f"but the workspace maps it to {snapshot.kind.value} {snapshot.id}"
                )
                stats["skipped"] += 1
                continue

            if status == FileStatus.MODIFIED and detail != StatusDetail.LOCAL and not force:
                self.output.warning(
                    f"{entry.path} changed remotely; pull first or use --force"
                )
                stats["skipped"] += 1
                continue
            if status == FileStatus.DELETED and detail == StatusDetail.REMOTE and not force:
                self.output.warning(
                    f"{entry.path} was deleted remotely; use --force to recreate it"
                )
                stats["skipped"] += 1
                continue

            self._upload(entry, snapshot, stats, force, dry_run)

        if not dry_run:
            self.registry.refresh_statuses()
            self.registry.save()
        return stats

    def _upload(
        self,
        entry: StatusEntry,
        snapshot: Optional[RemoteSnapshot],
        stats: dict,
        force: bool,
        dry_run: bool,
    ) -> None:
        try:
            body = read_text(self.root / entry.path)
        except (OSError, UnicodeDecodeError) as e:
            self.output.error(f"Cannot read {entry.path}: {e}")
            stats["errors"] += 1
            return
        if body is None:
            stats["errors"] += 1
            return

        problem = validate_single_block(body)
        if problem is not None:
            self.output.error(f"{entry.path}: {problem}")
            stats["errors"] += 1
            return
        if has_conflict_markers(body) and not force:
            self.output.error(f"{entry.path} has unresolved conflict markers")
            stats["errors"] += 1
            return

        # A record whose remote object is gone is recreated
        exists_remotely = snapshot is not None
        kind = entry.kind if exists_remotely else detect_type(body)
        if kind is None:
            kind = entry.kind
        if kind is None:
            self.output.error(f"{entry.path}: cannot detect object type")
            stats["errors"] += 1
            return
        obj_id = entry.id if exists_remotely else None
        if obj_id is None:
            problem = self._check_new_object(entry.path, kind, body)
            if problem is not None:
                self.output.error(f"{entry.path}: {problem}")
                stats["errors"] += 1
                return

        parent_id = None
        if kind == ObjectKind.API_ENDPOINT:
            parent_id = self._group_id_for(entry.path, snapshot)
            if parent_id is None:
                self.output.error(f"{entry.path}: cannot determine the API group")
                stats["errors"] += 1
                return

        stat_key = "updated" if obj_id is not None else "created"
        if dry_run:
            stats[stat_key] += 1
            return

        response = self.operations.push_object(kind, body, id=obj_id, parent_id=parent_id)
        if not response.ok:
            self.output.error(f"{entry.path}: {response.error}")
            stats["errors"] += 1
            return

        if obj_id is None:
            data = response.data if isinstance(response.data, dict) else {}
            if "id" not in data:
                self.output.error(f"{entry.path}: server did not return an ID")
                stats["errors"] += 1
                return
            obj_id = int(data["id"])
            if entry.id is not None and entry.id != obj_id:
                self.registry.remove_by_path(entry.path)

        self.registry.mark_synced(entry.path, body, id=obj_id, kind=kind)
        stats[stat_key] += 1
        self.output.info(f"  ↑ {entry.path}")

    def _check_new_object(self, path: str, kind: ObjectKind, body: str) -> Optional[str]:
        """Check the header of a file about to be created remotely.

        Returns:
            A problem description, or None if the object can be created
        """
        if kind == ObjectKind.API_ENDPOINT:
            if extract_api_details(body) is None:
                return "endpoint header must declare a verb and a path"
            return None
        if kind == ObjectKind.TABLE_TRIGGER:
            details = extract_trigger_details(body)
            if details is None:
                return "trigger header must name its table and event"
            if self.registry.index.find_table(details.table) is None:
                self.output.warning(f"{path}: table {details.table} is not tracked locally")
            return None
        if extract_name(body) is None:
            return "cannot detect object name"
        return None

    def _delete_remote(
        self,
        entry: StatusEntry,
        snapshot: Optional[RemoteSnapshot],
        stats: dict,
        dry_run: bool,
    ) -> None:
        if entry.id is None or entry.kind is None:
            stats["errors"] += 1
            return
        parent_id = None
        if entry.kind == ObjectKind.API_ENDPOINT:
            parent_id = self._group_id_for(entry.path, snapshot)
        if dry_run:
            stats["deleted"] += 1
            return
        response = self.operations.delete_remote(entry.kind, entry.id, parent_id=parent_id)
        if not response.ok:
            self.output.error(f"{entry.path}: {response.error}")
            stats["errors"] += 1
            return
        self.registry.remove_by_path(entry.path)
        stats["deleted"] += 1
        self.output.info(f"  ✗ {entry.path}")
