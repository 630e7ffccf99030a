"""Custom exceptions for pyxano."""

from typing import Optional


class XanoError(Exception):
    """Base exception for all pyxano errors."""

    pass


class XanoAPIError(XanoError):
    """Base exception for Xano Metadata API errors."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class XanoAuthenticationError(XanoAPIError):
    """Raised when the access token is missing or rejected."""

    pass


class XanoPermissionError(XanoAPIError):
    """Raised when the token lacks access to a resource."""

    pass


class XanoNotFoundError(XanoAPIError):
    """Raised when a remote object does not exist."""

    pass


class XanoRateLimitError(XanoAPIError):
    """Raised when the API rate limit is exceeded."""

    pass


class XanoNetworkError(XanoAPIError):
    """Raised on connection or timeout errors."""

    pass


class XanoInvalidResponseError(XanoAPIError):
    """Raised when the server returns something that is not JSON."""

    pass


class XanoConfigError(XanoError):
    """Raised when configuration is missing or invalid."""

    pass


class RegistrySaveError(XanoError):
    """Raised when a metadata file under .xano/ cannot be written."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to save {path}: {reason}")
        self.path = path
        self.reason = reason


class MergeToolError(XanoError):
    """Raised when the external three-way merge tool cannot produce a result."""

    pass


class AmbiguousRouteError(XanoError):
    """Raised when a request path matches routes of several API groups."""

    def __init__(self, verb: str, path: str, canonicals: list[str]):
        self.verb = verb
        self.path = path
        self.canonicals = canonicals
        names = ", ".join(canonicals)
        super().__init__(
            f"Ambiguous route {verb} {path}: matches endpoints in API groups "
            f"{names}. Specify the API group explicitly."
        )


class RouteResolutionError(XanoError):
    """Raised when a request cannot be resolved to an API group canonical."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class DatasourcePermissionError(XanoError):
    """Raised when an operation is not allowed on a protected datasource."""

    def __init__(
        self, datasource: Optional[str], operation: str, access_level: str
    ) -> None:
        self.datasource = datasource
        self.operation = operation
        self.access_level = access_level
        name = datasource or "live (default)"
        if access_level == "locked":
            message = f"Datasource '{name}' is locked. No operations are allowed."
        else:
            message = (
                f"Datasource '{name}' is read-only. Write operations are not allowed."
            )
        super().__init__(message)
