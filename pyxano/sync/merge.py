"""Three-way merge of local edits with incoming remote changes."""

import logging
import re
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from ..exceptions import MergeToolError
from ..models import ObjectKind, ObjectStatus
from ..registry import ObjectRegistry
from ..utils import compute_sha256, decode_snapshot, encode_snapshot, read_text

logger = logging.getLogger(__name__)


@dataclass
class MergeOutcome:
    """Text produced by a merge tool."""

    text: str
    conflicted: bool
    """True if the text contains conflict markers"""


class ThreeWayMerger(Protocol):
    """Anything able to merge two descendants of a common base."""

    def merge(self, base: str, ours: str, theirs: str) -> MergeOutcome:
        """Merge ``ours`` and ``theirs``.

        Raises:
            MergeToolError: If no result could be produced
        """
        ...


class GitMergeFile:
    """Merges with ``git merge-file``.

    The three bodies are written to a temporary directory outside the
    project, which is removed again whatever the outcome.
    """

    def __init__(
        self,
        git: str = "git",
        labels: tuple[str, str, str] = ("local", "base", "remote"),
        timeout: Optional[float] = 30.0,
    ):
        self.git = git
        self.labels = labels
        self.timeout = timeout

    def merge(self, base: str, ours: str, theirs: str) -> MergeOutcome:
        with tempfile.TemporaryDirectory(prefix="pyxano-merge-") as tmp:
            tmp_path = Path(tmp)
            ours_file = tmp_path / "ours.xs"
            base_file = tmp_path / "base.xs"
            theirs_file = tmp_path / "theirs.xs"
            # newline="" keeps line endings byte-identical
            ours_file.write_text(ours, encoding="utf-8", newline="")
            base_file.write_text(base, encoding="utf-8", newline="")
            theirs_file.write_text(theirs, encoding="utf-8", newline="")

            local_label, base_label, remote_label = self.labels
            cmd = [
                self.git,
                "merge-file",
                "-p",
                "-L",
                local_label,
                "-L",
                base_label,
                "-L",
                remote_label,
                str(ours_file),
                str(base_file),
                str(theirs_file),
            ]
            try:
                result = subprocess.run(
                    cmd, capture_output=True, timeout=self.timeout, check=False
                )
            except FileNotFoundError as e:
                raise MergeToolError(f"{self.git} not found: {e}") from e
            except subprocess.TimeoutExpired as e:
                raise MergeToolError(f"git merge-file timed out after {self.timeout}s") from e

        # Exit code is the number of conflicts (capped at 127); higher is an error
        if result.returncode < 0 or result.returncode >= 128:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise MergeToolError(
                f"git merge-file failed with exit code {result.returncode}: {stderr}"
            )

        return MergeOutcome(
            text=result.stdout.decode("utf-8"),
            conflicted=result.returncode > 0,
        )


_CONFLICT_MARKER_RE = re.compile(r"^(<{7} |={7}$|>{7} )", re.MULTILINE)


def has_conflict_markers(text: str) -> bool:
    """Check whether a body still holds unresolved conflict markers."""
    return _CONFLICT_MARKER_RE.search(text) is not None


class MergeResult(str, Enum):
    MERGED = "merged"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass
class MergeReport:
    """Per-file outcome of :func:`merge_into_local`."""

    path: str
    outcome: MergeResult
    message: str = ""


def merge_into_local(
    registry: ObjectRegistry,
    path: str,
    remote_body: str,
    merger: ThreeWayMerger,
    id: Optional[int] = None,
    kind: Optional[ObjectKind] = None,
) -> MergeReport:
    """Merge a remote body into the local file at ``path``.

    The merge base is the snapshot recorded at the last sync (empty for
    untracked files). On success the local file holds the merged text and
    the registry records ``remote_body`` as the synced body, so local
    edits that survived the merge still show as local modifications.

    Args:
        registry: Loaded registry; updated in place but not saved
        path: Project-relative path of the local file
        remote_body: Incoming remote body
        merger: Merge capability
        id: Remote object ID, for untracked files
        kind: Object kind, for untracked files

    Returns:
        MergeReport. Errors leave the local file and registry untouched.
    """
    file_path = registry.project_root / path
    tracked = registry.find_by_path(path)

    try:
        ours = read_text(file_path)
    except (OSError, UnicodeDecodeError) as e:
        return MergeReport(path, MergeResult.ERROR, f"Cannot read local file: {e}")
    if ours is None:
        return MergeReport(path, MergeResult.ERROR, "Local file does not exist")
    if tracked is None and (id is None or kind is None):
        return MergeReport(path, MergeResult.ERROR, "Untracked file has no remote object")

    base = ""
    if tracked is not None and tracked.original_snapshot:
        try:
            base = decode_snapshot(tracked.original_snapshot)
        except ValueError as e:
            return MergeReport(path, MergeResult.ERROR, f"Corrupt snapshot: {e}")

    try:
        outcome = merger.merge(base, ours, remote_body)
    except MergeToolError as e:
        logger.debug(f"Merge of {path} failed: {e}")
        return MergeReport(path, MergeResult.ERROR, str(e))

    try:
        file_path.write_text(outcome.text, encoding="utf-8", newline="")
    except OSError as e:
        return MergeReport(path, MergeResult.ERROR, f"Cannot write merged file: {e}")

    status = ObjectStatus.CHANGED if outcome.conflicted else ObjectStatus.UNCHANGED
    registry.upsert(
        path,
        id=id,
        kind=kind,
        status=status,
        content_hash=compute_sha256(remote_body),
        original_snapshot=encode_snapshot(remote_body),
    )

    if outcome.conflicted:
        logger.debug(f"Merged {path} with conflicts")
        return MergeReport(path, MergeResult.CONFLICT, "Conflict markers written to file")
    logger.debug(f"Merged {path} cleanly")
    return MergeReport(path, MergeResult.MERGED)
