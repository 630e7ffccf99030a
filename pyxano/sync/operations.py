"""File and remote operations used by the sync engine."""

import logging
from pathlib import Path
from typing import Optional

from ..api import ApiResponse, XanoClient
from ..models import ObjectKind

logger = logging.getLogger(__name__)


class SyncOperations:
    """Local file writes and remote mutations with a common interface."""

    def __init__(self, project_root: Path, client: Optional[XanoClient] = None):
        """Initialize sync operations.

        Args:
            project_root: Project root; paths are relative to it
            client: Xano API client (required for remote operations)
        """
        self.project_root = Path(project_root)
        self.client = client

    def _require_client(self) -> XanoClient:
        if self.client is None:
            raise RuntimeError("Remote operation requires an API client")
        return self.client

    def write_local(self, relative_path: str, body: str) -> Path:
        """Write a body to a local file, creating parent directories.

        Returns:
            Absolute path of the written file
        """
        local_path = self.project_root / relative_path
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_text(body, encoding="utf-8", newline="")
        logger.debug(f"Wrote {relative_path}")
        return local_path

    def delete_local(self, relative_path: str) -> bool:
        """Delete a local file and prune directories left empty.

        Returns:
            True if a file was deleted
        """
        local_path = self.project_root / relative_path
        if not local_path.is_file():
            return False
        local_path.unlink()
        logger.debug(f"Deleted {relative_path}")

        parent = local_path.parent
        root = self.project_root.resolve()
        while parent.resolve() != root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
        return True

    def push_object(
        self,
        kind: ObjectKind,
        body: str,
        id: Optional[int] = None,
        parent_id: Optional[int] = None,
    ) -> ApiResponse:
        """Create (``id`` is None) or update a remote object."""
        client = self._require_client()
        if id is None:
            return client.create(kind, body, parent_id=parent_id)
        return client.update(kind, id, body, parent_id=parent_id)

    def delete_remote(
        self, kind: ObjectKind, id: int, parent_id: Optional[int] = None
    ) -> ApiResponse:
        return self._require_client().delete(kind, id, parent_id=parent_id)
