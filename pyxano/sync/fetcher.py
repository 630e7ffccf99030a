"""Fetching of remote objects from the Metadata API."""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..api import ApiResponse, XanoClient
from ..detector import extract_canonical
from ..models import ObjectKind, RemoteSnapshot, RouteEntry, RouteGroupInfo
from ..utils import DEFAULT_PER_PAGE, extract_xanoscript

logger = logging.getLogger(__name__)

# Order of objects in a FetchResult
FETCH_ORDER: list[ObjectKind] = [
    ObjectKind.API_GROUP,
    ObjectKind.API_ENDPOINT,
    ObjectKind.FUNCTION,
    ObjectKind.TABLE,
    ObjectKind.TABLE_TRIGGER,
    ObjectKind.TASK,
    ObjectKind.WORKFLOW_TEST,
    ObjectKind.ADDON,
    ObjectKind.MIDDLEWARE,
    ObjectKind.AGENT,
    ObjectKind.AGENT_TRIGGER,
    ObjectKind.TOOL,
    ObjectKind.MCP_SERVER,
    ObjectKind.MCP_SERVER_TRIGGER,
    ObjectKind.REALTIME_CHANNEL,
    ObjectKind.REALTIME_TRIGGER,
]

# (parent, child) pairs where child paths depend on the parent's names
DEPENDENT_KINDS: list[tuple[ObjectKind, ObjectKind]] = [
    (ObjectKind.API_GROUP, ObjectKind.API_ENDPOINT),
    (ObjectKind.TABLE, ObjectKind.TABLE_TRIGGER),
]

# Safety net against a server that never reports the last page
MAX_PAGES = 1000


@dataclass
class FetchResult:
    """Everything fetched in one invocation."""

    objects: list[RemoteSnapshot] = field(default_factory=list)
    """Objects with a XanoScript body, in FETCH_ORDER"""

    groups: dict[str, RouteGroupInfo] = field(default_factory=dict)
    """API groups by name"""

    endpoints: dict[str, list[RouteEntry]] = field(default_factory=dict)
    """Endpoint patterns per HTTP verb"""

    errors: dict[str, str] = field(default_factory=dict)
    """Collections that could not be fetched, by kind"""

    @property
    def complete(self) -> bool:
        return not self.errors


class FetchError(Exception):
    """A collection could not be listed."""

    def __init__(self, kind: ObjectKind, response: ApiResponse):
        self.kind = kind
        self.response = response
        super().__init__(
            f"Failed to list {kind.value} (HTTP {response.status}): {response.error}"
        )


class RemoteFetcher:
    """Fetches object collections of a workspace.

    API groups, and tables when triggers are requested, are fetched first
    because endpoints and triggers borrow their names. The remaining
    collections are fetched concurrently; each one pages sequentially.
    """

    def __init__(
        self,
        client: XanoClient,
        per_page: int = DEFAULT_PER_PAGE,
        max_workers: int = 4,
    ):
        self.client = client
        self.per_page = per_page
        self.max_workers = max_workers

    def list_all(self, kind: ObjectKind) -> list[dict[str, Any]]:
        """List every item of a collection, page by page.

        Raises:
            FetchError: If a page cannot be fetched
        """
        items: list[dict[str, Any]] = []
        page = 1
        while page <= MAX_PAGES:
            response = self.client.list(kind, page=page, per_page=self.per_page)
            if not response.ok:
                raise FetchError(kind, response)
            page_items = response.items
            items.extend(page_items)

            if len(page_items) < self.per_page:
                break
            if isinstance(response.data, dict) and "nextPage" in response.data:
                next_page = response.data.get("nextPage")
                if not next_page:
                    break
                page = int(next_page)
            else:
                page += 1
        logger.debug(f"Listed {len(items)} {kind.value} items")
        return items

    def fetch(
        self,
        kinds: Optional[Iterable[ObjectKind]] = None,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> FetchResult:
        """Fetch the requested kinds (all kinds by default).

        A collection that fails is recorded in ``FetchResult.errors`` and
        logged; the others are still returned. Endpoints are not listed
        when API groups fail, nor triggers when tables fail, and are
        recorded as failed too.

        Args:
            kinds: Kinds to fetch
            on_progress: Optional callback receiving status messages

        Returns:
            FetchResult
        """
        wanted = set(kinds) if kinds is not None else set(FETCH_ORDER)
        notify = on_progress or (lambda message: None)
        result = FetchResult()
        raw: dict[ObjectKind, list[dict[str, Any]]] = {}

        group_names: dict[int, str] = {}
        group_canonicals: dict[int, str] = {}
        if wanted & {ObjectKind.API_GROUP, ObjectKind.API_ENDPOINT}:
            notify("Fetching API groups...")
            groups = self._fetch_into(ObjectKind.API_GROUP, raw, result)
            for group in groups:
                group_id = int(group["id"])
                body = extract_xanoscript(group.get("xanoscript"))
                canonical = (extract_canonical(body) if body else None) or str(
                    group.get("guid", "")
                )
                group_names[group_id] = group["name"]
                group_canonicals[group_id] = canonical
                result.groups[group["name"]] = RouteGroupInfo(
                    name=group["name"], canonical_id=canonical, id=group_id
                )

        table_names: dict[int, str] = {}
        if wanted & {ObjectKind.TABLE, ObjectKind.TABLE_TRIGGER}:
            notify("Fetching tables...")
            for table in self._fetch_into(ObjectKind.TABLE, raw, result):
                table_names[int(table["id"])] = table["name"]

        # Endpoints and triggers are named after their parent; without the
        # parent list their paths cannot be generated
        blocked: set[ObjectKind] = set()
        for parent, child in DEPENDENT_KINDS:
            if child in wanted and parent.value in result.errors:
                blocked.add(child)
                result.errors[child.value] = (
                    f"Skipped {child.value}: {parent.value} could not be listed"
                )
                logger.debug(result.errors[child.value])

        independent = [
            kind
            for kind in FETCH_ORDER
            if kind in wanted
            and kind not in (ObjectKind.API_GROUP, ObjectKind.TABLE)
            and kind not in blocked
        ]
        if independent:
            notify(f"Fetching {len(independent)} collections...")
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    kind: executor.submit(self.list_all, kind) for kind in independent
                }
                for kind, future in futures.items():
                    try:
                        raw[kind] = future.result()
                    except FetchError as e:
                        logger.debug(str(e))
                        result.errors[kind.value] = str(e)

        for endpoint in raw.get(ObjectKind.API_ENDPOINT, []):
            canonical = group_canonicals.get(endpoint.get("apigroup_id"))
            if canonical is None:
                continue
            verb = str(endpoint.get("verb", "GET")).upper()
            result.endpoints.setdefault(verb, []).append(
                RouteEntry(canonical_id=canonical, id=int(endpoint["id"]), pattern=endpoint["name"])
            )

        for kind in FETCH_ORDER:
            if kind not in wanted:
                continue
            skipped = 0
            for item in raw.get(kind, []):
                snapshot = self._to_snapshot(kind, item, group_names, table_names)
                if snapshot is None:
                    skipped += 1
                    continue
                result.objects.append(snapshot)
            if skipped:
                logger.debug(f"Skipped {skipped} {kind.value} items without XanoScript")

        notify(f"Fetched {len(result.objects)} objects")
        return result

    def _fetch_into(
        self,
        kind: ObjectKind,
        raw: dict[ObjectKind, list[dict[str, Any]]],
        result: FetchResult,
    ) -> list[dict[str, Any]]:
        try:
            raw[kind] = self.list_all(kind)
        except FetchError as e:
            logger.debug(str(e))
            result.errors[kind.value] = str(e)
            raw[kind] = []
        return raw[kind]

    @staticmethod
    def _to_snapshot(
        kind: ObjectKind,
        item: dict[str, Any],
        group_names: dict[int, str],
        table_names: dict[int, str],
    ) -> Optional[RemoteSnapshot]:
        body = extract_xanoscript(item.get("xanoscript"))
        if body is None:
            return None

        snapshot = RemoteSnapshot(
            id=int(item["id"]), kind=kind, name=str(item.get("name", "")), body=body
        )
        if kind == ObjectKind.API_ENDPOINT:
            group_id = item.get("apigroup_id")
            snapshot.group_id = int(group_id) if group_id is not None else None
            snapshot.group_name = group_names.get(group_id) if group_id is not None else None
            snapshot.verb = str(item.get("verb", "GET")).upper()
            snapshot.route_path = snapshot.name
        elif kind == ObjectKind.TABLE_TRIGGER:
            table_id = item.get("table_id")
            snapshot.table_id = int(table_id) if table_id is not None else None
            snapshot.table_name = table_names.get(table_id, "unknown")
        return snapshot
