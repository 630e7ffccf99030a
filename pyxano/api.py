"""API client for the Xano Metadata API."""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .config import config
from .exceptions import (
    XanoAPIError,
    XanoAuthenticationError,
    XanoConfigError,
    XanoInvalidResponseError,
    XanoNetworkError,
    XanoNotFoundError,
    XanoPermissionError,
    XanoRateLimitError,
)
from .models import ObjectKind
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PER_PAGE, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

XANOSCRIPT_CONTENT_TYPE = "text/x-xanoscript"

# Metadata API collection per object kind. Endpoints are also listed
# workspace-wide through "api" but created below their API group.
KIND_ENDPOINTS: dict[ObjectKind, str] = {
    ObjectKind.TABLE: "table",
    ObjectKind.FUNCTION: "function",
    ObjectKind.API_ENDPOINT: "api",
    ObjectKind.API_GROUP: "apigroup",
    ObjectKind.TABLE_TRIGGER: "table/trigger",
    ObjectKind.TASK: "task",
    ObjectKind.MIDDLEWARE: "middleware",
    ObjectKind.ADDON: "addon",
    ObjectKind.WORKFLOW_TEST: "workflow_test",
    ObjectKind.AGENT: "agent",
    ObjectKind.AGENT_TRIGGER: "agent/trigger",
    ObjectKind.TOOL: "tool",
    ObjectKind.MCP_SERVER: "mcp_server",
    ObjectKind.MCP_SERVER_TRIGGER: "mcp_server/trigger",
    ObjectKind.REALTIME_CHANNEL: "realtime/channel",
    ObjectKind.REALTIME_TRIGGER: "realtime/channel/trigger",
}


@dataclass
class ApiResponse:
    """Uniform result of a request: ``data`` when ok, ``error`` otherwise."""

    ok: bool
    status: int
    data: Any = None
    error: Optional[str] = None

    @property
    def items(self) -> list[dict[str, Any]]:
        """Items of a paginated list response."""
        if isinstance(self.data, dict):
            items = self.data.get("items")
            return items if isinstance(items, list) else []
        if isinstance(self.data, list):
            return self.data
        return []


class XanoClient:
    """Client for the Xano Metadata API of one workspace branch."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        instance_origin: Optional[str] = None,
        workspace_id: Optional[int] = None,
        branch: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            api_key: Access token (uses config if not provided)
            instance_origin: Instance URL, e.g. ``https://x1.xano.io``
                (uses config if not provided)
            workspace_id: Workspace ID (uses config if not provided)
            branch: Branch label (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.api_key = api_key or config.api_key
        self.instance_origin = (instance_origin or config.instance_origin or "").rstrip("/")
        self.workspace_id = workspace_id if workspace_id is not None else config.workspace_id
        self.branch = branch if branch is not None else (config.branch or "")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.api_key:
            raise XanoConfigError(
                "API key not configured. Please set XANO_API_KEY environment variable."
            )
        if not self.instance_origin:
            raise XanoConfigError(
                "Instance not configured. Please set XANO_INSTANCE_ORIGIN "
                "environment variable."
            )

        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client.

        Collections are listed from several threads, which share one client.
        """
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    headers={"accept": "application/json"},
                    timeout=httpx.Timeout(self.timeout),
                    follow_redirects=True,
                )
            return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        with self._client_lock:
            if self._client is not None and not self._client.is_closed:
                self._client.close()
            self._client = None

    def __enter__(self) -> XanoClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================
    # Request handling
    # =========================

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[XanoAPIError, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception, should_retry)
        """
        status_code = e.response.status_code
        message = f"HTTP {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = error_data.get("message") or error_data.get("error")
                    if msg:
                        message = str(msg)
        except ValueError:
            pass

        if status_code == 401:
            return XanoAuthenticationError(message, status_code), False
        if status_code == 403:
            return XanoPermissionError(message, status_code), False
        if status_code == 404:
            return XanoNotFoundError(message, status_code), False
        if status_code == 429:
            return XanoRateLimitError(message, status_code), attempt < self.max_retries
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return XanoAPIError(message, status_code), should_retry

    def _request(
        self,
        method: str,
        url: str,
        retry: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Make a request with retry logic.

        Network errors, 429 and 5xx responses are retried with exponential
        backoff. A ``Retry-After`` header on 429 responses is honoured.

        Args:
            method: HTTP method
            url: Absolute URL
            retry: Whether transient failures are retried
            **kwargs: Additional arguments passed to httpx

        Returns:
            Parsed JSON body, or None for empty responses

        Raises:
            XanoAPIError: If the request fails after all retries
        """
        client = self._get_client()
        max_retries = self.max_retries if retry else 0
        last_exception: Optional[XanoAPIError] = None

        for attempt in range(max_retries + 1):
            logger.debug(f"{method} {url} (attempt {attempt + 1})")
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return None
                try:
                    return response.json()
                except ValueError as e:
                    raise XanoInvalidResponseError(
                        "Invalid JSON response from server", response.status_code
                    ) from e

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error
                if should_retry and attempt < max_retries:
                    retry_after = e.response.headers.get("Retry-After")
                    if isinstance(error, XanoRateLimitError) and retry_after and retry_after.isdigit():
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"Retrying after {delay:.1f}s: {error}")
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = XanoNetworkError(f"Network error: {e}")
                last_exception = error
                if attempt < max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"Retrying after {delay:.1f}s: {error}")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise XanoAPIError("Request failed after all retry attempts")

    def _envelope(self, method: str, url: str, **kwargs: Any) -> ApiResponse:
        """Run a request and wrap the outcome in an ApiResponse."""
        try:
            data = self._request(method, url, **kwargs)
        except XanoAPIError as e:
            logger.debug(f"{method} {url} failed: {e}")
            return ApiResponse(ok=False, status=e.status, error=str(e))
        return ApiResponse(ok=True, status=200, data=data)

    def _meta_url(self, collection: str, params: Optional[dict[str, Any]] = None) -> str:
        if self.workspace_id is None:
            raise XanoConfigError(
                "Workspace not configured. Please set XANO_WORKSPACE_ID or "
                "workspaceId in .xano/config.json."
            )
        query = {"branch": self.branch, **(params or {})}
        query_string = "&".join(
            f"{k}={quote(str(v), safe='')}" for k, v in query.items() if v is not None
        )
        return (
            f"{self.instance_origin}/api:meta/workspace/{self.workspace_id}/"
            f"{collection}?{query_string}"
        )

    def _auth_headers(self, content_type: Optional[str] = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    @staticmethod
    def _collection(kind: ObjectKind, parent_id: Optional[int] = None) -> str:
        kind = ObjectKind(kind)
        if kind == ObjectKind.API_ENDPOINT and parent_id is not None:
            return f"apigroup/{parent_id}/api"
        return KIND_ENDPOINTS[kind]

    # =========================
    # Object operations
    # =========================

    def list(
        self, kind: ObjectKind, page: int = 1, per_page: int = DEFAULT_PER_PAGE
    ) -> ApiResponse:
        """List one page of a collection, including XanoScript bodies.

        Args:
            kind: Object kind
            page: Page number (1-based)
            per_page: Page size

        Returns:
            ApiResponse whose data holds ``items`` and paging fields
        """
        url = self._meta_url(
            self._collection(kind),
            {"page": page, "per_page": per_page, "include_xanoscript": "true"},
        )
        return self._envelope("GET", url, headers=self._auth_headers())

    def get(
        self, kind: ObjectKind, id: int, parent_id: Optional[int] = None
    ) -> ApiResponse:
        """Get one object with its XanoScript body."""
        url = self._meta_url(
            f"{self._collection(kind, parent_id)}/{id}", {"include_xanoscript": "true"}
        )
        return self._envelope("GET", url, headers=self._auth_headers())

    def create(
        self, kind: ObjectKind, body: str, parent_id: Optional[int] = None
    ) -> ApiResponse:
        """Create an object from its XanoScript body.

        Args:
            kind: Object kind
            body: XanoScript source
            parent_id: API group ID (required for endpoints)
        """
        url = self._meta_url(self._collection(kind, parent_id))
        return self._envelope(
            "POST",
            url,
            headers=self._auth_headers(XANOSCRIPT_CONTENT_TYPE),
            content=body.encode("utf-8"),
        )

    def update(
        self,
        kind: ObjectKind,
        id: int,
        body: str,
        parent_id: Optional[int] = None,
    ) -> ApiResponse:
        """Replace an object's XanoScript body."""
        url = self._meta_url(f"{self._collection(kind, parent_id)}/{id}")
        return self._envelope(
            "PUT",
            url,
            headers=self._auth_headers(XANOSCRIPT_CONTENT_TYPE),
            content=body.encode("utf-8"),
        )

    def delete(
        self, kind: ObjectKind, id: int, parent_id: Optional[int] = None
    ) -> ApiResponse:
        """Delete an object."""
        url = self._meta_url(f"{self._collection(kind, parent_id)}/{id}")
        return self._envelope("DELETE", url, headers=self._auth_headers())

    # =========================
    # Live API
    # =========================

    def call_route(
        self,
        canonical: str,
        path: str,
        method: str = "GET",
        body: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        datasource: Optional[str] = None,
    ) -> ApiResponse:
        """Call a live endpoint of an API group.

        Live calls are not retried since they may not be idempotent.

        Args:
            canonical: API group canonical ID
            path: Endpoint path with a leading slash, optionally with a
                query string
            method: HTTP verb
            body: JSON body for POST/PUT/PATCH
            headers: Extra request headers
            datasource: Datasource label sent as ``x-data-source``
        """
        group = f"api:{canonical}:{self.branch}" if self.branch else f"api:{canonical}"
        url = f"{self.instance_origin}/{group}{path}"

        request_headers: dict[str, str] = {}
        if datasource:
            request_headers["x-data-source"] = datasource
        request_headers.update(headers or {})

        kwargs: dict[str, Any] = {"headers": request_headers}
        if body is not None:
            kwargs["json"] = body
        return self._envelope(method.upper(), url, retry=False, **kwargs)
