"""File naming for synced objects.

Every remote object is mapped to a project-relative ``.xs`` path. Four
naming modes exist:

- ``default``: pyxano's own layout. Names containing ``/`` become nested
  directories, API groups are flat files (``apis/{group}.xs``) and table
  triggers are nested under their table (``tables/triggers/{table}/{name}.xs``).
- ``vscode`` / ``vscode_name``: the layout of the Xano VS Code extension.
  A stricter snake_case sanitizer is used, API groups are folders holding an
  ``api_group.xs`` file and table triggers are flat.
- ``vscode_id``: like ``vscode`` but every filename is prefixed with the
  object ID (``123_my_function.xs``).

Projects can override the result with a path resolver or replace the text
transform with a custom sanitizer.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional

from .models import ObjectKind
from .utils import XS_EXTENSION

API_GROUP_FILENAME = "api_group.xs"

DEFAULT_VERB = "GET"
DEFAULT_GROUP = "default"

# camelCase path config keys, as written by the VS Code extension
DEFAULT_PATHS: dict[str, str] = {
    "addOns": "addons",
    "agents": "agents",
    "agentTriggers": "agents/triggers",
    "apis": "apis",
    "functions": "functions",
    "mcpServers": "mcp_servers",
    "mcpServerTriggers": "mcp_servers/triggers",
    "middlewares": "middlewares",
    "realtimeChannels": "realtime",
    "realtimeTriggers": "realtime/triggers",
    "tables": "tables",
    "tableTriggers": "tables/triggers",
    "tasks": "tasks",
    "tools": "tools",
    "workflowTests": "workflow_tests",
}

# Kinds that live as one file per object in a single base directory
_KIND_DIRECTORY_KEYS: dict[ObjectKind, str] = {
    ObjectKind.ADDON: "addOns",
    ObjectKind.AGENT: "agents",
    ObjectKind.AGENT_TRIGGER: "agentTriggers",
    ObjectKind.FUNCTION: "functions",
    ObjectKind.MCP_SERVER: "mcpServers",
    ObjectKind.MCP_SERVER_TRIGGER: "mcpServerTriggers",
    ObjectKind.MIDDLEWARE: "middlewares",
    ObjectKind.REALTIME_CHANNEL: "realtimeChannels",
    ObjectKind.REALTIME_TRIGGER: "realtimeTriggers",
    ObjectKind.TABLE: "tables",
    ObjectKind.TASK: "tasks",
    ObjectKind.TOOL: "tools",
    ObjectKind.WORKFLOW_TEST: "workflowTests",
}


class NamingMode(str, Enum):
    """File naming strategy for a project."""

    DEFAULT = "default"
    VSCODE = "vscode"
    VSCODE_NAME = "vscode_name"
    VSCODE_ID = "vscode_id"

    @property
    def is_vscode(self) -> bool:
        return self != NamingMode.DEFAULT


@dataclass
class ObjectDescriptor:
    """The fields of an object that determine its file path."""

    id: int
    name: str
    kind: ObjectKind
    group: Optional[str] = None
    verb: Optional[str] = None
    route_path: Optional[str] = None
    table: Optional[str] = None


@dataclass
class ResolverContext:
    """Passed to custom resolvers and sanitizers."""

    default: str
    """Result the active naming mode would produce"""

    naming: NamingMode
    """Active naming mode"""

    kind: ObjectKind
    """Kind of the object being resolved"""


PathResolver = Callable[[ObjectDescriptor, dict[str, str], ResolverContext], Optional[str]]
SanitizeFunction = Callable[[str, ResolverContext], str]

_CAMEL_WORD_RE = re.compile(r"(?!^)([A-Z][a-z]+)")
_SPACE_HYPHEN_RE = re.compile(r"[\s-]+")
_INVALID_CHARS_RE = re.compile(r"[^a-z0-9_]")
_MULTI_UNDERSCORE_RE = re.compile(r"_+")
_EDGE_UNDERSCORE_RE = re.compile(r"^_|_$")

_LOWER_UPPER_RE = re.compile(r"([a-z])([A-Z])")
_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_SEPARATORS_RE = re.compile(r"[\s\-./]+")
_NON_WORD_RE = re.compile(r"[^a-zA-Z0-9_]")

_ID_PREFIX_RE = re.compile(r"^(\d+)_")


def sanitize(name: str) -> str:
    """Sanitize a name segment for use as a filename.

    Splits camelCase words, lowercases, and collapses every run of
    characters outside ``[a-z0-9_]`` into a single underscore.

    Args:
        name: Raw name segment

    Returns:
        Sanitized segment

    Examples:
        >>> sanitize("Log Auth-Events")
        'log_auth_events'
        >>> sanitize("getUserProfile")
        'get_user_profile'
    """
    result = _CAMEL_WORD_RE.sub(r"_\1", name).lower()
    result = _SPACE_HYPHEN_RE.sub("_", result)
    result = _INVALID_CHARS_RE.sub("_", result)
    result = _MULTI_UNDERSCORE_RE.sub("_", result)
    return _EDGE_UNDERSCORE_RE.sub("", result)


def snake_case(name: str) -> str:
    """Convert a name to snake_case the way the VS Code extension does.

    Examples:
        >>> snake_case("MyFunctionName")
        'my_function_name'
        >>> snake_case("API Endpoint")
        'api_endpoint'
        >>> snake_case("HTTPRequest")
        'http_request'
    """
    result = _LOWER_UPPER_RE.sub(r"\1_\2", name)
    result = _ACRONYM_RE.sub(r"\1_\2", result)
    result = _SEPARATORS_RE.sub("_", result)
    result = _NON_WORD_RE.sub("", result)
    result = result.lower()
    result = _MULTI_UNDERSCORE_RE.sub("_", result)
    return _EDGE_UNDERSCORE_RE.sub("", result)


def sanitize_path(name: str, sanitize_fn: Callable[[str], str] = sanitize) -> str:
    """Sanitize a name that may contain ``/`` separated folders.

    Examples:
        >>> sanitize_path("User/Security Events/Log Auth")
        'user/security_events/log_auth'
    """
    segments = (sanitize_fn(segment.strip()) for segment in name.split("/"))
    return "/".join(segment for segment in segments if segment)


def _default_sanitizer(naming: NamingMode) -> Callable[[str], str]:
    return snake_case if naming.is_vscode else sanitize


def _make_sanitizer(
    naming: NamingMode,
    kind: ObjectKind,
    custom: Optional[SanitizeFunction],
) -> Callable[[str], str]:
    base = _default_sanitizer(naming)
    if custom is None:
        return base

    def wrapped(name: str) -> str:
        context = ResolverContext(default=base(name), naming=naming, kind=kind)
        return custom(name, context)

    return wrapped


def _directory(paths: dict[str, str], key: str, fallback: Optional[str] = None) -> str:
    value = paths.get(key)
    if value:
        return value
    if fallback is not None:
        return fallback
    return DEFAULT_PATHS[key]


def _stem(value: str, obj: ObjectDescriptor) -> str:
    # An empty stem would produce a bare ".xs" file
    return value if value else str(obj.id)


def _default_path(
    obj: ObjectDescriptor, paths: dict[str, str], s: Callable[[str], str]
) -> str:
    def sp(name: str) -> str:
        return _stem(sanitize_path(name, s), obj)

    kind = obj.kind
    if kind == ObjectKind.API_ENDPOINT:
        group = _stem(sanitize_path(obj.group or DEFAULT_GROUP, s), obj)
        verb = (obj.verb or DEFAULT_VERB).upper()
        route = s(obj.route_path or obj.name)
        return f"{_directory(paths, 'apis')}/{group}/{route}_{verb}{XS_EXTENSION}"
    if kind == ObjectKind.API_GROUP:
        return f"{_directory(paths, 'apis')}/{sp(obj.name)}{XS_EXTENSION}"
    if kind == ObjectKind.TABLE_TRIGGER:
        table = _stem(s(obj.table or "unknown"), obj)
        base = _directory(paths, "tableTriggers", paths.get("tables") or None)
        return f"{base}/{table}/{sp(obj.name)}{XS_EXTENSION}"
    if kind in _KIND_DIRECTORY_KEYS:
        directory = _directory(paths, _KIND_DIRECTORY_KEYS[kind])
        return f"{directory}/{sp(obj.name)}{XS_EXTENSION}"
    return f"{sp(obj.name)}{XS_EXTENSION}"


def _vscode_path(
    obj: ObjectDescriptor,
    paths: dict[str, str],
    s: Callable[[str], str],
    include_id: bool,
) -> str:
    def with_id(name: str) -> str:
        name = _stem(name, obj)
        return f"{obj.id}_{name}" if include_id else name

    kind = obj.kind
    if kind == ObjectKind.API_ENDPOINT:
        group = _stem(s(obj.group or DEFAULT_GROUP), obj)
        verb = (obj.verb or DEFAULT_VERB).upper()
        route = s(obj.route_path or obj.name)
        filename = f"{obj.id}_{route}_{verb}" if include_id else f"{route}_{verb}"
        return f"{_directory(paths, 'apis')}/{group}/{filename}{XS_EXTENSION}"
    if kind == ObjectKind.API_GROUP:
        group = _stem(s(obj.name), obj)
        return f"{_directory(paths, 'apis')}/{group}/{API_GROUP_FILENAME}"
    if kind == ObjectKind.TABLE_TRIGGER:
        tables = _directory(paths, "tables")
        base = paths.get("tableTriggers") or f"{tables}/triggers"
        return f"{base}/{with_id(s(obj.name))}{XS_EXTENSION}"
    if kind == ObjectKind.FUNCTION:
        # Functions keep their folder structure: "User/Auth/Login"
        parts = obj.name.split("/")
        filename = with_id(s(parts[-1])) + XS_EXTENSION
        folders = "/".join(f for f in (s(part) for part in parts[:-1]) if f)
        base = _directory(paths, "functions")
        return f"{base}/{folders}/{filename}" if folders else f"{base}/{filename}"
    if kind in _KIND_DIRECTORY_KEYS:
        directory = _directory(paths, _KIND_DIRECTORY_KEYS[kind])
        return f"{directory}/{with_id(s(obj.name))}{XS_EXTENSION}"
    return f"{with_id(s(obj.name))}{XS_EXTENSION}"


def generate_file_path(
    obj: ObjectDescriptor,
    paths: dict[str, str],
    naming: NamingMode = NamingMode.DEFAULT,
    resolver: Optional[PathResolver] = None,
    sanitizer: Optional[SanitizeFunction] = None,
) -> str:
    """Generate the project-relative file path of an object.

    Never raises for unknown kinds or odd names: objects without a
    dedicated layout become a flat sanitized-name file.

    Args:
        obj: Object descriptor
        paths: Base directory per kind (camelCase keys, see DEFAULT_PATHS)
        naming: Naming mode of the project
        resolver: Optional hook; a non-empty return value replaces the path
        sanitizer: Optional hook replacing the text transform of each
            name segment

    Returns:
        Relative path using forward slashes

    Examples:
        >>> desc = ObjectDescriptor(id=7, name="users", kind=ObjectKind.TABLE)
        >>> generate_file_path(desc, DEFAULT_PATHS)
        'tables/users.xs'
        >>> generate_file_path(desc, DEFAULT_PATHS, NamingMode.VSCODE_ID)
        'tables/7_users.xs'
    """
    naming = NamingMode(naming)
    s = _make_sanitizer(naming, obj.kind, sanitizer)

    include_id = naming == NamingMode.VSCODE_ID
    if naming.is_vscode:
        # The resolver sees the built-in layout; the custom sanitizer only
        # applies to the final path
        default_path = _vscode_path(obj, paths, _default_sanitizer(naming), include_id)
    else:
        default_path = _default_path(obj, paths, s)

    if resolver is not None:
        context = ResolverContext(default=default_path, naming=naming, kind=obj.kind)
        custom_path = resolver(obj, paths, context)
        if custom_path:
            return custom_path

    if naming.is_vscode and sanitizer is not None:
        return _vscode_path(obj, paths, s, include_id)
    return default_path


def detect_naming_mode(xs_files: Iterable[str]) -> NamingMode:
    """Guess the VS Code naming mode from existing files.

    Args:
        xs_files: File paths or names of existing .xs files

    Returns:
        ``vscode_id`` if any file carries an ID prefix, else ``vscode_name``
    """
    for file_path in xs_files:
        filename = PurePosixPath(file_path).name
        if filename == API_GROUP_FILENAME:
            continue
        if _ID_PREFIX_RE.match(filename):
            return NamingMode.VSCODE_ID
    return NamingMode.VSCODE_NAME


def strip_id_prefix(stem: str) -> str:
    """Remove a ``123_`` prefix from a filename stem."""
    return _ID_PREFIX_RE.sub("", stem, count=1)
