"""Project configuration and .xano/ metadata files.

A project is a directory containing ``.xano/config.json`` (local,
VS Code compatible) and usually a versioned ``xano.json``. All sync
metadata lives under ``.xano/``.
"""

import contextlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import RegistrySaveError, XanoConfigError
from .naming import DEFAULT_PATHS, NamingMode, PathResolver, SanitizeFunction

logger = logging.getLogger(__name__)

XANO_DIR = ".xano"
XANO_JSON = "xano.json"
CONFIG_JSON = "config.json"
OBJECTS_JSON = "objects.json"
GROUPS_JSON = "groups.json"
ENDPOINTS_JSON = "endpoints.json"
SEARCH_JSON = "search.json"

# Legacy snake_case keys from older xano.json files
LEGACY_KEY_MAPPING = {
    "addons": "addOns",
    "triggers": "tableTriggers",
    "workflow_tests": "workflowTests",
}


def find_project_root(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find the project root by walking up from ``start_dir``.

    A directory is a project root if it holds ``.xano/config.json`` or,
    failing that, a ``xano.json``.

    Args:
        start_dir: Directory to start from (defaults to the current directory)

    Returns:
        Project root, or None if no parent qualifies
    """
    current = (start_dir or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / XANO_DIR / CONFIG_JSON).is_file():
            return directory
        if (directory / XANO_JSON).is_file():
            return directory
    return None


def get_xano_dir(project_root: Path) -> Path:
    return Path(project_root) / XANO_DIR


def metadata_path(project_root: Path, filename: str) -> Path:
    """Path of a metadata file under .xano/."""
    return get_xano_dir(project_root) / filename


def read_json(file_path: Path) -> Optional[Any]:
    """Read a JSON file, returning None if it is missing or unreadable."""
    if not file_path.exists():
        logger.debug(f"No metadata file at {file_path}")
        return None
    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to load {file_path}: {e}")
        return None


def write_json_atomic(file_path: Path, data: Any) -> None:
    """Write JSON so that readers never observe a partial file.

    The content goes to a temporary file in the same directory which is
    then renamed over the target.

    Raises:
        RegistrySaveError: If the file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
        )
    except OSError as e:
        raise RegistrySaveError(str(file_path), str(e)) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_name, file_path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise RegistrySaveError(str(file_path), str(e)) from e


def get_default_paths() -> dict[str, str]:
    """Default base directory per object kind."""
    return dict(DEFAULT_PATHS)


def normalize_paths(paths: Optional[dict[str, Any]]) -> dict[str, str]:
    """Merge configured paths over the defaults.

    Legacy snake_case keys are mapped to their camelCase equivalents.

    Examples:
        >>> normalize_paths({"triggers": "db/triggers"})["tableTriggers"]
        'db/triggers'
    """
    normalized = get_default_paths()
    for key, value in (paths or {}).items():
        if value is None:
            continue
        normalized[LEGACY_KEY_MAPPING.get(key, key)] = str(value).rstrip("/")
    return normalized


@dataclass
class ProjectSettings:
    """Everything the sync core needs to know about a project."""

    root: Path
    """Project root directory"""

    paths: dict[str, str] = field(default_factory=get_default_paths)
    """Base directory per object kind"""

    naming: NamingMode = NamingMode.DEFAULT
    """File naming mode"""

    workspace_id: Optional[int] = None
    workspace_name: str = ""
    branch: str = ""
    instance_name: str = ""

    datasources: dict[str, str] = field(default_factory=dict)
    """Access level per datasource label"""

    default_datasource: Optional[str] = None

    resolver: Optional[PathResolver] = None
    """Injected custom path resolver"""

    sanitizer: Optional[SanitizeFunction] = None
    """Injected custom sanitizer"""


def load_project_config(project_root: Path) -> Optional[dict[str, Any]]:
    """Load the versioned xano.json, or None if absent or invalid."""
    data = read_json(Path(project_root) / XANO_JSON)
    return data if isinstance(data, dict) else None


def load_local_config(project_root: Path) -> Optional[dict[str, Any]]:
    """Load .xano/config.json, or None if absent or invalid."""
    data = read_json(metadata_path(project_root, CONFIG_JSON))
    if not isinstance(data, dict):
        return None
    data["paths"] = normalize_paths(data.get("paths"))
    return data


def save_local_config(project_root: Path, data: dict[str, Any]) -> None:
    write_json_atomic(metadata_path(project_root, CONFIG_JSON), data)


def load_project_settings(
    project_root: Path,
    resolver: Optional[PathResolver] = None,
    sanitizer: Optional[SanitizeFunction] = None,
) -> ProjectSettings:
    """Build ProjectSettings from xano.json and .xano/config.json.

    Values from xano.json win over the local config for paths and naming.

    Args:
        project_root: Project root directory
        resolver: Optional custom path resolver
        sanitizer: Optional custom sanitizer

    Returns:
        ProjectSettings

    Raises:
        XanoConfigError: If neither config file exists or the naming mode
            is unknown
    """
    root = Path(project_root)
    local = load_local_config(root)
    versioned = load_project_config(root)
    if local is None and versioned is None:
        raise XanoConfigError(
            f"No project configuration found in {root}. Run 'pyxano init' first."
        )

    local = local or {}
    versioned = versioned or {}

    paths = normalize_paths({**local.get("paths", {}), **versioned.get("paths", {})})
    naming_value = versioned.get("naming") or local.get("naming") or "default"
    try:
        naming = NamingMode(naming_value)
    except ValueError as e:
        raise XanoConfigError(f"Unknown naming mode: {naming_value}") from e

    workspace_id = local.get("workspaceId", versioned.get("workspaceId"))
    if workspace_id is not None:
        try:
            workspace_id = int(workspace_id)
        except (TypeError, ValueError) as e:
            raise XanoConfigError(f"Invalid workspaceId: {workspace_id}") from e

    return ProjectSettings(
        root=root,
        paths=paths,
        naming=naming,
        workspace_id=workspace_id,
        workspace_name=local.get("workspaceName", versioned.get("workspace", "")),
        branch=local.get("branch", ""),
        instance_name=local.get("instanceName", versioned.get("instance", "")),
        datasources=dict(versioned.get("datasources") or local.get("datasources") or {}),
        default_datasource=versioned.get("defaultDatasource")
        or local.get("defaultDatasource"),
        resolver=resolver,
        sanitizer=sanitizer,
    )
