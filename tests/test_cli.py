"""Unit tests for the pyxano CLI commands."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pyxano.api import ApiResponse
from pyxano.cli import main
from pyxano.exceptions import DatasourcePermissionError
from pyxano.models import FileStatus, ObjectKind, RouteEntry, RouteGroupInfo, StatusDetail, StatusEntry
from pyxano.project import save_local_config
from pyxano.registry import ObjectRegistry, save_route_entries, save_route_groups

PULL_STATS = {
    "downloaded": 1,
    "unchanged": 0,
    "merged": 0,
    "conflicts": 0,
    "skipped": 0,
    "deleted": 0,
    "errors": 0,
}


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch):
    """An initialized project as the current directory."""
    save_local_config(tmp_path, {"workspaceId": 5, "branch": "dev"})
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def mock_config():
    with patch("pyxano.cli.config") as mock:
        mock.is_configured.return_value = True
        yield mock


@pytest.fixture
def mock_client_class():
    with patch("pyxano.cli.XanoClient") as mock:
        yield mock


@pytest.fixture
def mock_engine(mock_config, mock_client_class):
    with patch("pyxano.sync.SyncEngine") as mock:
        yield mock.return_value


@pytest.fixture
def routes(project):
    save_route_groups(project, {"users": RouteGroupInfo(name="users", canonical_id="abc", id=1)})
    save_route_entries(
        project,
        {
            "GET": [RouteEntry(canonical_id="abc", id=10, pattern="users/{id}")],
            "POST": [RouteEntry(canonical_id="abc", id=11, pattern="users")],
        },
    )
    return project


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("init", "status", "pull", "push", "fetch", "index", "route", "call"):
            assert command in result.output

    def test_outside_project(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 1

    def test_missing_credentials(self, runner, project, mock_config):
        mock_config.is_configured.return_value = False
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 1


class TestInitCommand:
    """Tests for the init command."""

    def test_init_valid_token(self, runner, tmp_path, monkeypatch, mock_config, mock_client_class):
        monkeypatch.chdir(tmp_path)
        client = mock_client_class.return_value
        client.list.return_value = ApiResponse(ok=True, status=200, data={"items": []})

        result = runner.invoke(
            main, ["init", "--branch", "dev"], input="token\nhttps://x1.xano.io/\n5\n"
        )

        assert result.exit_code == 0
        assert "Access token is valid" in result.output
        mock_config.save.assert_called_once_with(
            XANO_API_KEY="token",
            XANO_INSTANCE_ORIGIN="https://x1.xano.io",
            XANO_WORKSPACE_ID="5",
            XANO_BRANCH="dev",
        )
        local = json.loads((tmp_path / ".xano" / "config.json").read_text(encoding="utf-8"))
        assert local["workspaceId"] == 5
        assert local["paths"]["functions"] == "functions"

    def test_init_invalid_token_cancel(self, runner, tmp_path, monkeypatch, mock_config, mock_client_class):
        monkeypatch.chdir(tmp_path)
        client = mock_client_class.return_value
        client.list.return_value = ApiResponse(ok=False, status=401, error="Invalid token")

        result = runner.invoke(main, ["init"], input="bad\nhttps://x1.xano.io\n5\nn\n")

        assert result.exit_code == 1
        mock_config.save.assert_not_called()
        assert not (tmp_path / ".xano").exists()

    def test_init_detects_vscode_layout(self, runner, tmp_path, monkeypatch, mock_config, mock_client_class):
        monkeypatch.chdir(tmp_path)
        for path in ("apis/auth/api_group.xs", "functions/12_calc.xs"):
            (tmp_path / path).parent.mkdir(parents=True, exist_ok=True)
            (tmp_path / path).write_text("function calc {}\n", encoding="utf-8")
        client = mock_client_class.return_value
        client.list.return_value = ApiResponse(ok=True, status=200, data={"items": []})

        result = runner.invoke(main, ["init"], input="token\nhttps://x1.xano.io\n5\n")

        assert result.exit_code == 0
        local = json.loads((tmp_path / ".xano" / "config.json").read_text(encoding="utf-8"))
        assert local["naming"] == "vscode_id"

    def test_init_default_layout_has_no_naming(self, runner, tmp_path, monkeypatch, mock_config, mock_client_class):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "functions").mkdir()
        (tmp_path / "functions" / "calc.xs").write_text("function calc {}\n", encoding="utf-8")
        client = mock_client_class.return_value
        client.list.return_value = ApiResponse(ok=True, status=200, data={"items": []})

        result = runner.invoke(main, ["init"], input="token\nhttps://x1.xano.io\n5\n")

        assert result.exit_code == 0
        local = json.loads((tmp_path / ".xano" / "config.json").read_text(encoding="utf-8"))
        assert "naming" not in local


class TestStatusCommand:
    def test_status_json(self, runner, project, mock_engine):
        mock_engine.status.return_value = [
            StatusEntry(path="functions/calc.xs", status=FileStatus.NEW),
            StatusEntry(
                path="tables/users.xs",
                status=FileStatus.MODIFIED,
                id=4,
                kind=ObjectKind.TABLE,
                detail=StatusDetail.BOTH,
            ),
        ]

        result = runner.invoke(main, ["--json", "status"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"path": "functions/calc.xs", "status": "new"},
            {
                "path": "tables/users.xs",
                "status": "modified",
                "detail": "both",
                "id": 4,
                "type": "table",
            },
        ]

    def test_status_text(self, runner, project, mock_engine):
        mock_engine.status.return_value = [
            StatusEntry(path="functions/calc.xs", status=FileStatus.NEW)
        ]

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "functions/calc.xs" in result.output


class TestPullCommand:
    def test_force_and_merge_conflict(self, runner, project, mock_engine):
        result = runner.invoke(main, ["pull", "--force", "--merge"])
        assert result.exit_code == 1
        mock_engine.pull.assert_not_called()

    def test_pull_json(self, runner, project, mock_engine):
        mock_engine.pull.return_value = dict(PULL_STATS)

        result = runner.invoke(main, ["--json", "pull", "--merge", "--dry-run"])

        assert result.exit_code == 0
        assert json.loads(result.output) == PULL_STATS
        mock_engine.pull.assert_called_once_with(
            force=False, merge=True, clean=False, dry_run=True
        )

    def test_pull_errors_exit_code(self, runner, project, mock_engine):
        mock_engine.pull.return_value = dict(PULL_STATS, errors=2)

        result = runner.invoke(main, ["pull"])

        assert result.exit_code == 1
        assert "Pull Complete" in result.output


class TestPushCommand:
    def test_push_paths(self, runner, project, mock_engine):
        mock_engine.push.return_value = {
            "created": 1,
            "updated": 0,
            "deleted": 0,
            "skipped": 0,
            "errors": 0,
        }

        result = runner.invoke(main, ["push", "functions/calc.xs", "--datasource", "test"])

        assert result.exit_code == 0
        mock_engine.push.assert_called_once_with(
            targets=["functions/calc.xs"],
            force=False,
            delete=False,
            datasource="test",
            dry_run=False,
        )

    def test_push_permission_denied(self, runner, project, mock_engine):
        mock_engine.push.side_effect = DatasourcePermissionError("live", "write", "read-only")

        result = runner.invoke(main, ["push"])

        assert result.exit_code == 1


class TestRouteCommand:
    def test_route_json(self, runner, routes):
        result = runner.invoke(main, ["--json", "route", "GET", "/users/42?expand=true"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "canonical": "abc",
            "id": 10,
            "pattern": "users/{id}",
            "path_params": {"id": "42"},
            "query_params": {"expand": "true"},
        }

    def test_route_no_match(self, runner, routes):
        result = runner.invoke(main, ["route", "DELETE", "/users/42"])
        assert result.exit_code == 1

    def test_route_without_metadata(self, runner, project):
        result = runner.invoke(main, ["route", "GET", "/users/42"])
        assert result.exit_code == 1


class TestIndexCommand:
    def test_rebuild_and_lookup(self, runner, project):
        registry = ObjectRegistry(project)
        registry.load()
        registry.upsert("functions/calc.xs", id=3, kind=ObjectKind.FUNCTION)
        registry.save()

        result = runner.invoke(main, ["index"])
        assert result.exit_code == 0

        result = runner.invoke(main, ["--json", "index", "functions/calc"])
        assert result.exit_code == 0
        assert json.loads(result.output) == ["functions/calc.xs"]

    def test_lookup_no_match(self, runner, project):
        result = runner.invoke(main, ["index", "missing"])
        assert result.exit_code == 1


class TestCallCommand:
    def test_call_resolves_group(self, runner, routes, mock_config, mock_client_class):
        client = mock_client_class.return_value
        client.call_route.return_value = ApiResponse(ok=True, status=200, data={"id": 42})

        result = runner.invoke(main, ["call", "GET", "users/42", "-H", "X-Trace: 1"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"id": 42}
        client.call_route.assert_called_once_with(
            "abc",
            "/users/42",
            method="GET",
            body=None,
            headers={"X-Trace": "1"},
            datasource=None,
        )

    def test_call_explicit_group_with_body(self, runner, routes, mock_config, mock_client_class):
        client = mock_client_class.return_value
        client.call_route.return_value = ApiResponse(ok=True, status=200, data=None)

        result = runner.invoke(
            main, ["call", "POST", "/anything", "--group", "users", "-d", '{"a": 1}']
        )

        assert result.exit_code == 0
        assert client.call_route.call_args.args[0] == "abc"
        assert client.call_route.call_args.kwargs["body"] == {"a": 1}

    def test_call_invalid_json(self, runner, routes, mock_config, mock_client_class):
        result = runner.invoke(main, ["call", "POST", "/users", "-d", "{"])
        assert result.exit_code == 1
        mock_client_class.return_value.call_route.assert_not_called()

    def test_call_invalid_header(self, runner, routes, mock_config, mock_client_class):
        result = runner.invoke(main, ["call", "GET", "/users/1", "-H", "nocolon"])
        assert result.exit_code == 2

    def test_call_unknown_group(self, runner, routes, mock_config, mock_client_class):
        result = runner.invoke(main, ["call", "GET", "/users/1", "--group", "nope"])
        assert result.exit_code == 1

    def test_call_write_blocked_on_read_only_datasource(
        self, runner, routes, mock_config, mock_client_class
    ):
        (routes / "xano.json").write_text(
            json.dumps({"datasources": {"live": "read-only"}}), encoding="utf-8"
        )

        result = runner.invoke(main, ["call", "POST", "/users", "-d", "{}"])

        assert result.exit_code == 1
        mock_client_class.return_value.call_route.assert_not_called()

    def test_call_http_error(self, runner, routes, mock_config, mock_client_class):
        client = mock_client_class.return_value
        client.call_route.return_value = ApiResponse(ok=False, status=404, error="Not Found")

        result = runner.invoke(main, ["call", "GET", "/users/1"])

        assert result.exit_code == 1
