"""Unit tests for the object registry and route metadata files."""

import json

import pytest

from pyxano.exceptions import RegistrySaveError
from pyxano.models import ObjectKind, ObjectStatus, RouteEntry, RouteGroupInfo, TrackedObject
from pyxano.registry import (
    ObjectRegistry,
    find_group_by_canonical,
    find_group_by_name,
    load_route_entries,
    load_route_groups,
    save_route_entries,
    save_route_groups,
)
from pyxano.utils import compute_sha256, encode_snapshot


@pytest.fixture
def project(tmp_path):
    (tmp_path / ".xano").mkdir()
    return tmp_path


@pytest.fixture
def registry(project):
    reg = ObjectRegistry(project)
    reg.load()
    return reg


def _write(project, relative_path, body):
    file_path = project / relative_path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(body, encoding="utf-8")
    return file_path


class TestTrackedObjectSerialization:
    """Tests for the objects.json record format."""

    def test_key_order(self):
        obj = TrackedObject(
            id=1,
            kind=ObjectKind.TABLE,
            path="tables/users.xs",
            content_hash="abc",
            original_snapshot="ZGVm",
        )
        assert list(obj.to_dict()) == [
            "id",
            "type",
            "path",
            "status",
            "staged",
            "sha256",
            "original",
        ]
        assert obj.to_dict()["staged"] is False

    def test_from_dict_round_trip(self):
        data = {
            "id": 5,
            "type": "api_endpoint",
            "path": "apis/auth/login_POST.xs",
            "status": "changed",
            "staged": False,
            "sha256": "h",
            "original": "s",
        }
        obj = TrackedObject.from_dict(data)
        assert obj.kind == ObjectKind.API_ENDPOINT
        assert obj.status == ObjectStatus.CHANGED
        assert obj.to_dict() == data

    def test_unknown_type_rejected(self):
        assert TrackedObject.from_dict({"id": 1, "type": "spaceship", "path": "x.xs"}) is None

    def test_unknown_status_defaults(self):
        obj = TrackedObject.from_dict({"id": 1, "type": "table", "path": "t.xs", "status": "??"})
        assert obj.status == ObjectStatus.UNCHANGED


class TestLoad:
    """Tests for ObjectRegistry.load."""

    def test_missing_file_is_empty(self, registry):
        assert len(registry) == 0

    def test_corrupt_file_is_empty(self, project):
        (project / ".xano" / "objects.json").write_text("{not json", encoding="utf-8")
        reg = ObjectRegistry(project)
        reg.load()
        assert len(reg) == 0

    def test_non_list_is_empty(self, project):
        (project / ".xano" / "objects.json").write_text('{"a": 1}', encoding="utf-8")
        reg = ObjectRegistry(project)
        reg.load()
        assert len(reg) == 0

    def test_invalid_entries_skipped(self, project):
        data = [
            {"id": 1, "type": "table", "path": "tables/users.xs", "sha256": "h"},
            {"id": 2, "type": "bogus", "path": "x.xs"},
            "garbage",
        ]
        (project / ".xano" / "objects.json").write_text(json.dumps(data), encoding="utf-8")
        reg = ObjectRegistry(project)
        reg.load()
        assert reg.paths() == ["tables/users.xs"]

    def test_entries_with_bad_ids_skipped(self, project):
        data = [
            {"id": None, "type": "table", "path": "tables/a.xs"},
            {"id": "x", "type": "table", "path": "tables/b.xs"},
            {"type": "table", "path": "tables/c.xs"},
            {"id": "7", "type": "function", "path": "functions/calc.xs"},
        ]
        (project / ".xano" / "objects.json").write_text(json.dumps(data), encoding="utf-8")
        reg = ObjectRegistry(project)
        reg.load()
        assert reg.paths() == ["functions/calc.xs"]
        assert reg.find_by_path("functions/calc.xs").id == 7


class TestUpsert:
    """Tests for ObjectRegistry.upsert and mark_synced."""

    def test_new_record_derives_from_file(self, project, registry):
        _write(project, "functions/calc.xs", "function calc {}")

        obj = registry.upsert("functions/calc.xs", id=12, kind=ObjectKind.FUNCTION)

        assert obj.content_hash == compute_sha256("function calc {}")
        assert obj.original_snapshot == encode_snapshot("function calc {}")
        assert obj.status == ObjectStatus.UNCHANGED

    def test_new_record_without_file_left_empty(self, registry):
        obj = registry.upsert("functions/gone.xs", id=1, kind=ObjectKind.FUNCTION)
        assert obj.content_hash == ""
        assert obj.original_snapshot == ""

    def test_new_record_keeps_crlf_bytes(self, project, registry):
        body = "function calc {\r\n}\r\n"
        file_path = project / "functions" / "calc.xs"
        file_path.parent.mkdir(parents=True)
        file_path.write_bytes(body.encode("utf-8"))

        obj = registry.upsert("functions/calc.xs", id=12, kind=ObjectKind.FUNCTION)

        assert obj.content_hash == compute_sha256(body)
        assert obj.original_snapshot == encode_snapshot(body)

    def test_new_record_from_non_utf8_file(self, project, registry):
        file_path = project / "functions" / "calc.xs"
        file_path.parent.mkdir(parents=True)
        file_path.write_bytes(b"function caf\xe9 {}")

        obj = registry.upsert("functions/calc.xs", id=12, kind=ObjectKind.FUNCTION)

        assert len(obj.content_hash) == 64
        assert obj.original_snapshot == "ZnVuY3Rpb24gY2Fm6SB7fQ=="

    def test_new_record_requires_id_and_kind(self, registry):
        with pytest.raises(ValueError):
            registry.upsert("functions/calc.xs", kind=ObjectKind.FUNCTION)

    def test_merges_into_existing(self, project, registry):
        registry.mark_synced("tables/users.xs", "table users {}", id=3, kind=ObjectKind.TABLE)

        obj = registry.upsert("tables/users.xs", status=ObjectStatus.CHANGED, content_hash="x")

        assert obj.id == 3
        assert obj.kind == ObjectKind.TABLE
        assert obj.status == ObjectStatus.CHANGED
        assert obj.content_hash == "x"
        assert len(registry) == 1

    def test_one_record_per_path(self, registry):
        registry.mark_synced("a.xs", "function a {}", id=1, kind=ObjectKind.FUNCTION)
        registry.mark_synced("a.xs", "function a { }", id=1, kind=ObjectKind.FUNCTION)
        assert len(registry) == 1
        assert registry.find_by_path("a.xs").content_hash == compute_sha256("function a { }")

    def test_mark_synced_ignores_file_on_disk(self, project, registry):
        _write(project, "functions/calc.xs", "function calc { edited }")

        obj = registry.mark_synced(
            "functions/calc.xs", "function calc {}", id=12, kind=ObjectKind.FUNCTION
        )

        assert obj.content_hash == compute_sha256("function calc {}")


class TestQueriesAndRemoval:
    """Tests for find and remove operations."""

    @pytest.fixture
    def populated(self, registry):
        registry.mark_synced("tables/users.xs", "table users {}", id=1, kind=ObjectKind.TABLE)
        registry.mark_synced("functions/users.xs", "function users {}", id=1, kind=ObjectKind.FUNCTION)
        registry.mark_synced("apis/auth.xs", "api_group auth {}", id=7, kind=ObjectKind.API_GROUP)
        registry.mark_synced(
            "apis/auth/login_POST.xs", "query POST login {}", id=8, kind=ObjectKind.API_ENDPOINT
        )
        return registry

    def test_find_by_id(self, populated):
        assert len(populated.find_by_id(1)) == 2
        assert [o.path for o in populated.find_by_id(1, ObjectKind.TABLE)] == ["tables/users.xs"]

    def test_find_by_kind(self, populated):
        assert [o.path for o in populated.find_by_kind(ObjectKind.API_GROUP)] == ["apis/auth.xs"]

    def test_remove_by_path(self, populated):
        removed = populated.remove_by_path("tables/users.xs")
        assert removed.id == 1
        assert "tables/users.xs" not in populated
        assert populated.remove_by_path("tables/users.xs") is None

    def test_remove_by_id_with_kind(self, populated):
        populated.remove_by_id(1, ObjectKind.FUNCTION)
        assert "functions/users.xs" not in populated
        assert "tables/users.xs" in populated

    def test_find_route_group_default_layout(self, populated):
        group = populated.find_route_group_for_endpoint("apis/auth/login_POST.xs")
        assert group.id == 7

    def test_find_route_group_vscode_layout(self, registry):
        registry.mark_synced("apis/auth/api_group.xs", "api_group auth {}", id=9, kind=ObjectKind.API_GROUP)
        group = registry.find_route_group_for_endpoint("apis/auth/login_POST.xs")
        assert group.id == 9

    def test_find_route_group_missing(self, populated):
        assert populated.find_route_group_for_endpoint("apis/other/x_GET.xs") is None

    def test_index_patched_incrementally(self, populated):
        assert populated.index.lookup("login_POST") == ["apis/auth/login_POST.xs"]
        populated.remove_by_path("apis/auth/login_POST.xs")
        assert populated.index.lookup("login_POST") == []


class TestRefreshStatuses:
    """Tests for refresh_statuses."""

    def test_statuses(self, project, registry):
        _write(project, "a.xs", "function a {}")
        _write(project, "b.xs", "function b { changed }")
        registry.mark_synced("a.xs", "function a {}", id=1, kind=ObjectKind.FUNCTION)
        registry.mark_synced("b.xs", "function b {}", id=2, kind=ObjectKind.FUNCTION)
        registry.mark_synced("c.xs", "function c {}", id=3, kind=ObjectKind.FUNCTION)

        registry.refresh_statuses()

        assert registry.find_by_path("a.xs").status == ObjectStatus.UNCHANGED
        assert registry.find_by_path("b.xs").status == ObjectStatus.CHANGED
        assert registry.find_by_path("c.xs").status == ObjectStatus.NOTFOUND


class TestSave:
    """Tests for ObjectRegistry.save."""

    def test_save_and_reload(self, project, registry):
        registry.mark_synced("tables/users.xs", "table users {}", id=1, kind=ObjectKind.TABLE)
        registry.save()

        reloaded = ObjectRegistry(project)
        reloaded.load()
        obj = reloaded.find_by_path("tables/users.xs")
        assert obj.content_hash == compute_sha256("table users {}")

        data = json.loads((project / ".xano" / "objects.json").read_text(encoding="utf-8"))
        assert data[0]["type"] == "table"

    def test_save_regenerates_search_index(self, project, registry):
        registry.mark_synced("tables/users.xs", "table users {}", id=1, kind=ObjectKind.TABLE)
        registry.save()

        search = json.loads((project / ".xano" / "search.json").read_text(encoding="utf-8"))
        assert search["tables"] == {"users": "tables/users.xs"}

    def test_save_failure_raises(self, tmp_path):
        # .xano is a file, so nothing can be written below it
        (tmp_path / ".xano").write_text("", encoding="utf-8")
        reg = ObjectRegistry(tmp_path)
        reg.mark_synced("a.xs", "function a {}", id=1, kind=ObjectKind.FUNCTION)

        with pytest.raises(RegistrySaveError):
            reg.save()


class TestRouteMetadata:
    """Tests for groups.json and endpoints.json."""

    def test_groups_round_trip(self, project):
        groups = {"Auth": RouteGroupInfo(name="Auth", canonical_id="abc123", id=4)}
        save_route_groups(project, groups)

        data = json.loads((project / ".xano" / "groups.json").read_text(encoding="utf-8"))
        assert data == {"Auth": {"canonical": "abc123", "id": 4}}
        assert load_route_groups(project) == groups

    def test_entries_round_trip(self, project):
        entries = {"GET": [RouteEntry(canonical_id="abc123", id=9, pattern="users/{id}")]}
        save_route_entries(project, entries)

        assert load_route_entries(project) == entries

    def test_missing_files(self, project):
        assert load_route_groups(project) == {}
        assert load_route_entries(project) == {}

    def test_groups_with_bad_ids_skipped(self, project):
        data = {
            "Auth": {"canonical": "abc", "id": 4},
            "Broken": {"canonical": "def", "id": "four"},
            "Null": {"canonical": "ghi", "id": None},
        }
        (project / ".xano" / "groups.json").write_text(json.dumps(data), encoding="utf-8")

        assert list(load_route_groups(project)) == ["Auth"]

    def test_entries_with_bad_ids_skipped(self, project):
        data = {
            "get": [
                {"canonical": "abc", "id": 9, "pattern": "users/{id}"},
                {"canonical": "abc", "id": "nine", "pattern": "users"},
                {"canonical": "abc", "id": None, "pattern": "orders"},
            ]
        }
        (project / ".xano" / "endpoints.json").write_text(json.dumps(data), encoding="utf-8")

        assert load_route_entries(project) == {
            "GET": [RouteEntry(canonical_id="abc", id=9, pattern="users/{id}")]
        }

    def test_find_group(self):
        groups = {
            "Auth": RouteGroupInfo(name="Auth", canonical_id="c1", id=1),
            "Public": RouteGroupInfo(name="Public", canonical_id="c2", id=2),
        }
        assert find_group_by_name(groups, "Auth").id == 1
        assert find_group_by_name(groups, "auth").id == 1
        assert find_group_by_name(groups, "nope") is None
        assert find_group_by_canonical(groups, "c2").name == "Public"
        assert find_group_by_canonical(groups, "c3") is None
