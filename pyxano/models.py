"""Data models for Xano objects and sync metadata."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ObjectKind(str, Enum):
    """Kinds of workspace objects that are synced as XanoScript files.

    Values match the ``type`` field written to ``.xano/objects.json`` by
    the VS Code extension.
    """

    TABLE = "table"
    FUNCTION = "function"
    API_ENDPOINT = "api_endpoint"
    API_GROUP = "api_group"
    TABLE_TRIGGER = "table_trigger"
    TASK = "task"
    MIDDLEWARE = "middleware"
    ADDON = "addon"
    WORKFLOW_TEST = "workflow_test"
    AGENT = "agent"
    AGENT_TRIGGER = "agent_trigger"
    TOOL = "tool"
    MCP_SERVER = "mcp_server"
    MCP_SERVER_TRIGGER = "mcp_server_trigger"
    REALTIME_CHANNEL = "realtime_channel"
    REALTIME_TRIGGER = "realtime_trigger"

    @classmethod
    def from_value(cls, value: Any) -> Optional["ObjectKind"]:
        """Convert a raw value to an ObjectKind, returning None if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ObjectStatus(str, Enum):
    """Status stored on a registry record."""

    UNCHANGED = "unchanged"
    NEW = "new"
    CHANGED = "changed"
    MODIFIED = "modified"
    DELETED = "deleted"
    REMOTE_ONLY = "remote_only"
    ERROR = "error"
    NOTFOUND = "notfound"


class FileStatus(str, Enum):
    """Result of comparing local, last-synced and remote state."""

    UNCHANGED = "unchanged"
    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    REMOTE_ONLY = "remote_only"


class StatusDetail(str, Enum):
    """Which side a change happened on."""

    LOCAL = "local"
    REMOTE = "remote"
    BOTH = "both"


@dataclass
class TrackedObject:
    """Last known synced state of one remote object mapped to a local path."""

    id: int
    """Remote object ID"""

    kind: ObjectKind
    """Object kind"""

    path: str
    """Project-relative path of the local file (forward slashes)"""

    status: ObjectStatus = ObjectStatus.UNCHANGED
    """Registry status"""

    content_hash: str = ""
    """SHA-256 of the last successfully synced body"""

    original_snapshot: str = ""
    """Base64 of the last successfully synced body"""

    @property
    def staged(self) -> bool:
        """Always False; kept because the VS Code extension reads it."""
        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the objects.json representation.

        Key order is fixed because the VS Code extension shares the file.
        """
        return {
            "id": self.id,
            "type": self.kind.value,
            "path": self.path,
            "status": self.status.value,
            "staged": False,
            "sha256": self.content_hash,
            "original": self.original_snapshot,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["TrackedObject"]:
        """Create a TrackedObject from an objects.json entry.

        Returns None for entries with an unknown type, a missing path or an
        ID that is not an integer.
        """
        kind = ObjectKind.from_value(data.get("type"))
        path = data.get("path")
        if kind is None or not path:
            return None
        try:
            obj_id = int(data["id"])
        except (KeyError, TypeError, ValueError):
            return None
        try:
            status = ObjectStatus(data.get("status", "unchanged"))
        except ValueError:
            status = ObjectStatus.UNCHANGED
        return cls(
            id=obj_id,
            kind=kind,
            path=str(path),
            status=status,
            content_hash=data.get("sha256", "") or "",
            original_snapshot=data.get("original", "") or "",
        )


@dataclass
class RemoteSnapshot:
    """An object as fetched from the workspace during one invocation."""

    id: int
    kind: ObjectKind
    name: str
    body: str
    group_name: Optional[str] = None
    group_id: Optional[int] = None
    verb: Optional[str] = None
    route_path: Optional[str] = None
    table_name: Optional[str] = None
    table_id: Optional[int] = None


@dataclass
class RouteGroupInfo:
    """An API group and its canonical identifier."""

    name: str
    canonical_id: str
    id: int

    def to_dict(self) -> dict[str, Any]:
        return {"canonical": self.canonical_id, "id": self.id}


@dataclass
class RouteEntry:
    """A registered endpoint pattern such as ``users/{id}``."""

    canonical_id: str
    id: int
    pattern: str

    def to_dict(self) -> dict[str, Any]:
        return {"canonical": self.canonical_id, "id": self.id, "pattern": self.pattern}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["RouteEntry"]:
        """Create a RouteEntry, or None if the ID is not an integer."""
        try:
            entry_id = int(data.get("id", 0))
        except (TypeError, ValueError):
            return None
        return cls(
            canonical_id=str(data.get("canonical", "")),
            id=entry_id,
            pattern=str(data.get("pattern", "")),
        )


@dataclass
class StatusEntry:
    """One row of a status report."""

    path: str
    status: FileStatus
    id: Optional[int] = None
    kind: Optional[ObjectKind] = None
    detail: Optional[StatusDetail] = None

    @property
    def is_conflict(self) -> bool:
        return self.status == FileStatus.MODIFIED and self.detail == StatusDetail.BOTH

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"path": self.path, "status": self.status.value}
        if self.detail is not None:
            result["detail"] = self.detail.value
        if self.id is not None:
            result["id"] = self.id
        if self.kind is not None:
            result["type"] = self.kind.value
        return result
