"""Datasource permission checks.

Projects can restrict what pyxano may do against each datasource
(``live``, ``test``, ...) through the ``datasources`` map of xano.json:

    {"datasources": {"live": "read-only", "test": "read-write"}}

Unconfigured datasources are read-only.
"""

import logging
from enum import Enum
from typing import Optional

from .exceptions import DatasourcePermissionError

logger = logging.getLogger(__name__)

DEFAULT_DATASOURCE = "live"


class AccessLevel(str, Enum):
    LOCKED = "locked"
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"


class Operation(str, Enum):
    READ = "read"
    WRITE = "write"


DEFAULT_ACCESS_LEVEL = AccessLevel.READ_ONLY


def get_datasource_access_level(
    datasource: Optional[str], permissions: Optional[dict[str, str]]
) -> AccessLevel:
    """Access level configured for a datasource.

    Args:
        datasource: Datasource label; None means the default (``live``)
        permissions: Access level per datasource label

    Returns:
        The configured level, or read-only when not configured or invalid
    """
    label = datasource or DEFAULT_DATASOURCE
    value = (permissions or {}).get(label)
    if value is None:
        return DEFAULT_ACCESS_LEVEL
    try:
        return AccessLevel(value)
    except ValueError:
        logger.warning(
            f"Unknown access level '{value}' for datasource '{label}', "
            f"using {DEFAULT_ACCESS_LEVEL.value}"
        )
        return DEFAULT_ACCESS_LEVEL


def is_operation_allowed(
    datasource: Optional[str],
    operation: Operation,
    permissions: Optional[dict[str, str]],
) -> bool:
    level = get_datasource_access_level(datasource, permissions)
    if level == AccessLevel.LOCKED:
        return False
    if level == AccessLevel.READ_ONLY:
        return Operation(operation) == Operation.READ
    return True


def check_datasource_permission(
    datasource: Optional[str],
    operation: Operation,
    permissions: Optional[dict[str, str]],
) -> None:
    """Raise if ``operation`` is not allowed on ``datasource``.

    Call this before issuing any mutating request.

    Raises:
        DatasourcePermissionError: If the operation is not allowed
    """
    if not is_operation_allowed(datasource, operation, permissions):
        level = get_datasource_access_level(datasource, permissions)
        raise DatasourcePermissionError(datasource, Operation(operation).value, level.value)


def format_datasource_name(datasource: Optional[str]) -> str:
    return datasource or f"{DEFAULT_DATASOURCE} (default)"


def describe_access_level(level: AccessLevel) -> str:
    """Human-readable description of an access level."""
    return {
        AccessLevel.LOCKED: "no access",
        AccessLevel.READ_ONLY: "read-only access",
        AccessLevel.READ_WRITE: "full access",
    }[AccessLevel(level)]
