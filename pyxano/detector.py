"""Header detection for XanoScript files.

Only the first significant line of a file is interpreted: it tells the
object kind, its name and, for endpoints and triggers, the verb/path or
owning table. Everything else in a body is opaque to pyxano.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .models import ObjectKind

# Declaration keyword -> object kind
KEYWORD_KINDS: dict[str, ObjectKind] = {
    "function": ObjectKind.FUNCTION,
    "table": ObjectKind.TABLE,
    "table_trigger": ObjectKind.TABLE_TRIGGER,
    "query": ObjectKind.API_ENDPOINT,
    "api_group": ObjectKind.API_GROUP,
    "middleware": ObjectKind.MIDDLEWARE,
    "addon": ObjectKind.ADDON,
    "task": ObjectKind.TASK,
    "workflow_test": ObjectKind.WORKFLOW_TEST,
    "agent": ObjectKind.AGENT,
    "agent_trigger": ObjectKind.AGENT_TRIGGER,
    "tool": ObjectKind.TOOL,
    "mcp_server": ObjectKind.MCP_SERVER,
    "mcp_server_trigger": ObjectKind.MCP_SERVER_TRIGGER,
    "realtime_channel": ObjectKind.REALTIME_CHANNEL,
    "realtime_trigger": ObjectKind.REALTIME_TRIGGER,
}

_KEYWORDS = "|".join(KEYWORD_KINDS)

_NAME_RE = re.compile(
    rf"^(?:{_KEYWORDS})\s+(?:\"([^\"]+)\"|([a-zA-Z_][a-zA-Z0-9_]*))", re.IGNORECASE
)
_API_RE = re.compile(r"^query\s+(GET|POST|PUT|DELETE|PATCH)\s+([^\s(]+)", re.IGNORECASE)
_TRIGGER_RE = re.compile(
    r"^table_trigger\s+\w+\s+on\s+(\w+)\s+"
    r"(before_insert|after_insert|before_update|after_update|before_delete|after_delete)",
    re.IGNORECASE,
)
_CANONICAL_RE = re.compile(r"""^\s*canonical\s*=\s*["']([^"']+)["']""", re.MULTILINE)


@dataclass
class ApiDetails:
    """Verb and path declared by an endpoint header."""

    verb: str
    path: str


@dataclass
class TriggerDetails:
    """Table and event declared by a table trigger header."""

    table: str
    event: str


@dataclass
class Block:
    """A top-level declaration found in a file."""

    keyword: str
    line: int
    name: str


def _first_significant_line(content: str) -> Optional[str]:
    for line in content.strip().split("\n"):
        clean = line.strip()
        if not clean or clean.startswith("//"):
            continue
        return clean
    return None


def detect_type(content: str) -> Optional[ObjectKind]:
    """Detect the object kind from the first non-comment line.

    Examples:
        >>> detect_type("// helper\\nfunction calc {}")
        <ObjectKind.FUNCTION: 'function'>
        >>> detect_type("nothing here") is None
        True
    """
    line = _first_significant_line(content)
    if line is None:
        return None
    keyword = line.split(None, 1)[0]
    if keyword in KEYWORD_KINDS and line.startswith(keyword + " "):
        return KEYWORD_KINDS[keyword]
    return None


def extract_name(content: str) -> Optional[str]:
    """Extract the declared name, quoted or bare.

    Examples:
        >>> extract_name('function "User/Login" {')
        'User/Login'
        >>> extract_name("table users {")
        'users'
    """
    line = _first_significant_line(content)
    if line is None:
        return None
    match = _NAME_RE.match(line)
    if not match:
        return None
    return match.group(1) or match.group(2)


def extract_api_details(content: str) -> Optional[ApiDetails]:
    """Extract verb and path of an endpoint header such as ``query GET /users/{id}``."""
    line = _first_significant_line(content)
    if line is None:
        return None
    match = _API_RE.match(line)
    if not match:
        return None
    return ApiDetails(verb=match.group(1).upper(), path=match.group(2))


def extract_trigger_details(content: str) -> Optional[TriggerDetails]:
    """Extract table and event of ``table_trigger name on table event``."""
    line = _first_significant_line(content)
    if line is None:
        return None
    match = _TRIGGER_RE.match(line)
    if not match:
        return None
    return TriggerDetails(table=match.group(1), event=match.group(2).lower())


def extract_canonical(content: str) -> Optional[str]:
    """Extract the ``canonical = "..."`` property of an API group body."""
    match = _CANONICAL_RE.search(content)
    return match.group(1) if match else None


def count_blocks(content: str) -> list[Block]:
    """Find top-level declarations.

    Braces inside string literals are ignored. Property assignments such
    as ``api_group = "x"`` are not declarations.
    """
    blocks: list[Block] = []
    depth = 0
    in_string = False
    quote = ""

    for line_number, line in enumerate(content.split("\n"), start=1):
        depth_at_start = depth
        for i, char in enumerate(line):
            if i > 0 and line[i - 1] == "\\":
                continue
            if char in ("'", '"') and not in_string:
                in_string = True
                quote = char
            elif in_string and char == quote:
                in_string = False
                quote = ""
            if not in_string:
                if char == "{":
                    depth += 1
                elif char == "}":
                    depth -= 1

        stripped = line.strip()
        if depth_at_start != 0 or not stripped or stripped.startswith("//"):
            continue

        for keyword in KEYWORD_KINDS:
            if not stripped.startswith(keyword + " "):
                continue
            match = re.match(
                rf"^{keyword}\s+(?:\"([^\"]+)\"|([a-zA-Z_/][a-zA-Z0-9_/]*))",
                stripped,
                re.IGNORECASE,
            )
            if not match:
                break
            name = match.group(1) or match.group(2) or "(unnamed)"
            blocks.append(Block(keyword=keyword, line=line_number, name=name))
            break

    return blocks


def validate_single_block(content: str) -> Optional[str]:
    """Check that a file holds exactly one top-level declaration.

    Returns:
        None if valid, otherwise an error message for the user
    """
    blocks = count_blocks(content)
    if not blocks:
        return (
            "No valid XanoScript block found. File must start with a keyword "
            "like function, table, query, task, agent, tool, mcp_server, etc."
        )
    if len(blocks) > 1:
        listing = "\n".join(f'  Line {b.line}: {b.keyword} "{b.name}"' for b in blocks)
        return (
            "Multiple XanoScript blocks found in single file (only one allowed):\n"
            f"{listing}\n\nSplit into separate files - one {blocks[0].keyword} per file."
        )
    return None
