"""Local scanning of XanoScript files."""

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..project import XANO_DIR
from ..utils import XS_EXTENSION

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """A local .xs file."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Project-relative path (forward slashes)"""

    size: int
    """File size in bytes"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalFile":
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Project root

        Returns:
            LocalFile instance
        """
        stat = file_path.stat()
        return cls(
            path=file_path,
            relative_path=file_path.relative_to(base_path).as_posix(),
            size=stat.st_size,
            mtime=stat.st_mtime,
        )


class DirectoryScanner:
    """Finds .xs files below the configured object directories.

    Only the top-level directory of each configured path is scanned, so
    ``tables`` and ``tables/triggers`` are walked once. Hidden files and
    directories (including ``.xano``) are skipped.

    Examples:
        >>> scanner = DirectoryScanner(Path("/project"), {"functions": "functions"})
        >>> [f.relative_path for f in scanner.scan()]
        ['functions/calc.xs']
    """

    def __init__(
        self,
        project_root: Path,
        paths: dict[str, str],
        ignore_patterns: Optional[list[str]] = None,
    ):
        """Initialize the scanner.

        Args:
            project_root: Project root
            paths: Base directory per kind (see pyxano.naming.DEFAULT_PATHS)
            ignore_patterns: Glob patterns matched against relative paths
        """
        self.project_root = Path(project_root)
        self.paths = paths
        self.ignore_patterns = ignore_patterns or []

    def roots(self) -> list[str]:
        """Distinct top-level directories to scan, sorted."""
        roots = set()
        for directory in self.paths.values():
            if not directory:
                continue
            first = directory.strip("/").split("/")[0]
            if first and first != XANO_DIR:
                roots.add(first)
        return sorted(roots)

    def should_ignore(self, relative_path: str, name: str) -> bool:
        if name.startswith("."):
            return True
        return any(fnmatch.fnmatch(relative_path, p) for p in self.ignore_patterns)

    def scan(self) -> list[LocalFile]:
        """Scan all configured directories.

        Returns:
            LocalFile objects sorted by relative path
        """
        files: dict[str, LocalFile] = {}
        for root in self.roots():
            directory = self.project_root / root
            if not directory.is_dir():
                continue
            for local_file in self.scan_directory(directory):
                files[local_file.relative_path] = local_file
        logger.debug(f"Found {len(files)} local {XS_EXTENSION} files")
        return [files[key] for key in sorted(files)]

    def scan_directory(self, directory: Path) -> list[LocalFile]:
        """Recursively scan one directory."""
        files: list[LocalFile] = []
        try:
            for item in sorted(directory.iterdir()):
                relative_path = item.relative_to(self.project_root).as_posix()
                if self.should_ignore(relative_path, item.name):
                    continue
                if item.is_dir():
                    files.extend(self.scan_directory(item))
                elif item.is_file() and item.suffix == XS_EXTENSION:
                    try:
                        files.append(LocalFile.from_path(item, self.project_root))
                    except OSError:
                        # Skip files we can't stat
                        continue
        except PermissionError as e:
            logger.warning(f"Permission denied: {e}")
        return files

    def scan_paths(self) -> list[str]:
        """Relative paths of all scanned files."""
        return [f.relative_path for f in self.scan()]
