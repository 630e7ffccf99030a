"""pyxano - sync Xano workspaces with local XanoScript files."""

from .api import ApiResponse, XanoClient
from .exceptions import (
    AmbiguousRouteError,
    DatasourcePermissionError,
    MergeToolError,
    RegistrySaveError,
    RouteResolutionError,
    XanoAPIError,
    XanoAuthenticationError,
    XanoConfigError,
    XanoError,
    XanoInvalidResponseError,
    XanoNetworkError,
    XanoNotFoundError,
    XanoPermissionError,
    XanoRateLimitError,
)
from .models import FileStatus, ObjectKind, StatusDetail
from .utils import compute_sha256, decode_snapshot, encode_snapshot

__version__ = "0.1.0"

__all__ = [
    "ApiResponse",
    "XanoClient",
    "XanoError",
    "XanoAPIError",
    "XanoAuthenticationError",
    "XanoConfigError",
    "XanoInvalidResponseError",
    "XanoNetworkError",
    "XanoNotFoundError",
    "XanoPermissionError",
    "XanoRateLimitError",
    "AmbiguousRouteError",
    "DatasourcePermissionError",
    "MergeToolError",
    "RegistrySaveError",
    "RouteResolutionError",
    "FileStatus",
    "ObjectKind",
    "StatusDetail",
    "compute_sha256",
    "decode_snapshot",
    "encode_snapshot",
]
