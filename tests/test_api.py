"""Unit tests for the Xano API client."""

import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import httpx
import pytest

from pyxano.api import ApiResponse, XanoClient
from pyxano.exceptions import (
    XanoAuthenticationError,
    XanoConfigError,
    XanoNetworkError,
    XanoRateLimitError,
)
from pyxano.models import ObjectKind

ORIGIN = "https://x1.xano.io"


def _response(status=200, json=None, content=None, headers=None, method="GET"):
    request = httpx.Request(method, f"{ORIGIN}/api:meta/test")
    if json is not None:
        return httpx.Response(status, json=json, headers=headers, request=request)
    return httpx.Response(status, content=content or b"", headers=headers, request=request)


@pytest.fixture
def client():
    c = XanoClient(
        api_key="token",
        instance_origin=f"{ORIGIN}/",
        workspace_id=5,
        branch="dev",
        retry_delay=0.01,
    )
    yield c
    c.close()


class TestXanoClientInit:
    """Tests for client initialization."""

    def test_init(self, client):
        assert client.api_key == "token"
        assert client.instance_origin == ORIGIN
        assert client.workspace_id == 5

    def test_missing_api_key(self):
        with patch("pyxano.api.config") as mock_config:
            mock_config.api_key = None
            mock_config.instance_origin = ORIGIN
            with pytest.raises(XanoConfigError, match="API key"):
                XanoClient()

    def test_missing_instance(self):
        with patch("pyxano.api.config") as mock_config:
            mock_config.api_key = "token"
            mock_config.instance_origin = None
            with pytest.raises(XanoConfigError, match="Instance"):
                XanoClient()

    def test_missing_workspace_raises_on_request(self):
        with patch("pyxano.api.config") as mock_config:
            mock_config.workspace_id = None
            mock_config.branch = None
            c = XanoClient(api_key="token", instance_origin=ORIGIN)
        with pytest.raises(XanoConfigError, match="Workspace"):
            c.list(ObjectKind.TABLE)


class TestClientLifecycle:
    """Tests for the shared httpx client."""

    def test_one_client_shared_across_threads(self, client):
        def slow_client(**kwargs):
            time.sleep(0.01)
            instance = Mock()
            instance.is_closed = False
            return instance

        with patch("pyxano.api.httpx.Client", side_effect=slow_client) as mock_class:
            with ThreadPoolExecutor(max_workers=8) as executor:
                clients = list(executor.map(lambda _: client._get_client(), range(8)))

        assert mock_class.call_count == 1
        assert all(c is clients[0] for c in clients)

    def test_reopen_after_close(self, client):
        first = client._get_client()
        client.close()

        assert first.is_closed
        second = client._get_client()
        assert second is not first
        assert not second.is_closed


class TestApiResponse:
    def test_items_from_dict(self):
        assert ApiResponse(ok=True, status=200, data={"items": [{"id": 1}]}).items == [{"id": 1}]

    def test_items_from_list(self):
        assert ApiResponse(ok=True, status=200, data=[{"id": 1}]).items == [{"id": 1}]

    def test_items_missing(self):
        assert ApiResponse(ok=False, status=500, error="x").items == []


class TestRequests:
    """Tests for URLs, headers and bodies of object operations."""

    @patch("httpx.Client.request")
    def test_list_url(self, mock_request, client):
        mock_request.return_value = _response(json={"items": [], "nextPage": None})

        response = client.list(ObjectKind.FUNCTION, page=2, per_page=50)

        assert response.ok
        method, url = mock_request.call_args.args
        assert method == "GET"
        assert url == (
            f"{ORIGIN}/api:meta/workspace/5/function?branch=dev&page=2"
            "&per_page=50&include_xanoscript=true"
        )
        assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer token"

    @patch("httpx.Client.request")
    def test_create_endpoint_under_group(self, mock_request, client):
        mock_request.return_value = _response(json={"id": 12}, method="POST")

        response = client.create(ObjectKind.API_ENDPOINT, "query GET /x {}", parent_id=3)

        assert response.data == {"id": 12}
        method, url = mock_request.call_args.args
        assert method == "POST"
        assert url.startswith(f"{ORIGIN}/api:meta/workspace/5/apigroup/3/api?")
        kwargs = mock_request.call_args.kwargs
        assert kwargs["headers"]["Content-Type"] == "text/x-xanoscript"
        assert kwargs["content"] == b"query GET /x {}"

    @patch("httpx.Client.request")
    def test_get_endpoint(self, mock_request, client):
        mock_request.return_value = _response(json={"id": 10, "xanoscript": "query GET /x {}"})

        response = client.get(ObjectKind.API_ENDPOINT, 10, parent_id=3)

        assert response.data["id"] == 10
        assert mock_request.call_args.args[1] == (
            f"{ORIGIN}/api:meta/workspace/5/apigroup/3/api/10?branch=dev&include_xanoscript=true"
        )

    @patch("httpx.Client.request")
    def test_update_and_delete(self, mock_request, client):
        mock_request.return_value = _response(content=b"")

        assert client.update(ObjectKind.TABLE, 4, "table t {}").ok
        assert mock_request.call_args.args[0] == "PUT"
        assert "/table/4?" in mock_request.call_args.args[1]

        response = client.delete(ObjectKind.TABLE_TRIGGER, 9)
        assert response.ok
        assert response.data is None
        assert "/table/trigger/9?" in mock_request.call_args.args[1]

    @patch("httpx.Client.request")
    def test_call_route(self, mock_request, client):
        mock_request.return_value = _response(json={"ok": 1}, method="POST")

        response = client.call_route(
            "abc123", "/users?x=1", method="post", body={"a": 1}, datasource="test"
        )

        assert response.data == {"ok": 1}
        method, url = mock_request.call_args.args
        assert method == "POST"
        assert url == f"{ORIGIN}/api:abc123:dev/users?x=1"
        kwargs = mock_request.call_args.kwargs
        assert kwargs["headers"]["x-data-source"] == "test"
        assert kwargs["json"] == {"a": 1}


class TestErrorHandling:
    """Tests for error mapping and retries."""

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_auth_error_not_retried(self, mock_request, mock_sleep, client):
        mock_request.return_value = _response(401, json={"message": "Invalid token"})

        response = client.list(ObjectKind.TABLE)

        assert not response.ok
        assert response.status == 401
        assert response.error == "Invalid token"
        assert mock_request.call_count == 1

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_server_error_retried(self, mock_request, mock_sleep, client):
        mock_request.side_effect = [
            _response(503),
            _response(json={"items": [{"id": 1}]}),
        ]

        response = client.list(ObjectKind.TABLE)

        assert response.ok
        assert response.items == [{"id": 1}]
        assert mock_request.call_count == 2
        assert mock_sleep.call_count == 1

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_retries_exhausted(self, mock_request, mock_sleep, client):
        mock_request.return_value = _response(500, json={"error": "boom"})

        response = client.list(ObjectKind.TABLE)

        assert not response.ok
        assert response.status == 500
        assert mock_request.call_count == client.max_retries + 1

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_rate_limit_honours_retry_after(self, mock_request, mock_sleep, client):
        mock_request.side_effect = [
            _response(429, headers={"Retry-After": "2"}),
            _response(json={"items": []}),
        ]

        assert client.list(ObjectKind.TABLE).ok
        mock_sleep.assert_called_once_with(2.0)

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_rate_limit_raised_from_request(self, mock_request, mock_sleep, client):
        mock_request.return_value = _response(429)

        with pytest.raises(XanoRateLimitError):
            client._request("GET", f"{ORIGIN}/x")

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_network_error(self, mock_request, mock_sleep, client):
        mock_request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(XanoNetworkError):
            client._request("GET", f"{ORIGIN}/x")
        assert mock_request.call_count == client.max_retries + 1

    @patch("pyxano.api.time.sleep")
    @patch("httpx.Client.request")
    def test_live_calls_not_retried(self, mock_request, mock_sleep, client):
        mock_request.return_value = _response(502)

        response = client.call_route("abc", "/x", method="POST")

        assert not response.ok
        assert mock_request.call_count == 1

    @patch("httpx.Client.request")
    def test_authentication_error_type(self, mock_request, client):
        mock_request.return_value = _response(401)
        with pytest.raises(XanoAuthenticationError):
            client._request("GET", f"{ORIGIN}/x")

    @patch("httpx.Client.request")
    def test_invalid_json(self, mock_request, client):
        mock_request.return_value = _response(content=b"<html>")

        response = client.list(ObjectKind.TABLE)

        assert not response.ok
        assert "Invalid JSON" in response.error

    def test_retry_delay_grows(self, client):
        client.retry_delay = 1.0
        assert 0.75 <= client._calculate_retry_delay(0) <= 1.25
        assert 3.0 <= client._calculate_retry_delay(2) <= 5.0
