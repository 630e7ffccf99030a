"""Unit tests for the derived search index."""

import json

import pytest

from pyxano.models import ObjectKind, TrackedObject
from pyxano.search_index import (
    SEARCH_INDEX_VERSION,
    SearchIndex,
    object_name_from_path,
    path_variants,
)


def _obj(path, kind, id=1):
    return TrackedObject(id=id, kind=kind, path=path)


@pytest.fixture
def index():
    return SearchIndex.build(
        [
            _obj("tables/users.xs", ObjectKind.TABLE, 1),
            _obj("functions/users.xs", ObjectKind.FUNCTION, 2),
            _obj("functions/auth/login_user.xs", ObjectKind.FUNCTION, 3),
            _obj("apis/auth/auth_login_POST.xs", ObjectKind.API_ENDPOINT, 4),
            _obj("tables/123_orders.xs", ObjectKind.TABLE, 123),
        ]
    )


class TestHelpers:
    """Tests for path helpers."""

    def test_object_name(self):
        assert object_name_from_path("tables/123_orders.xs") == "orders"
        assert object_name_from_path("apis/auth/api_group.xs") == "auth"
        assert object_name_from_path("functions/calc.xs") == "calc"

    def test_path_variants(self):
        assert path_variants("apis/auth/login_POST.xs") == [
            "apis/auth/login_POST",
            "auth/login_POST.xs",
            "auth/login_POST",
            "login_POST.xs",
            "login_POST",
        ]


class TestLookup:
    """Tests for SearchIndex.lookup."""

    def test_exact_path(self, index):
        assert index.lookup("tables/users.xs") == ["tables/users.xs"]

    def test_path_without_extension(self, index):
        assert index.lookup("tables/users") == ["tables/users.xs"]

    def test_leading_dot_slash(self, index):
        assert index.lookup("./tables/users.xs") == ["tables/users.xs"]

    def test_suffix(self, index):
        assert index.lookup("auth/login_user") == ["functions/auth/login_user.xs"]

    def test_name_collision_returns_all(self, index):
        assert sorted(index.lookup("users")) == ["functions/users.xs", "tables/users.xs"]

    def test_kind_filter(self, index):
        assert index.lookup("users", ObjectKind.TABLE) == ["tables/users.xs"]

    def test_sanitized_name(self, index):
        assert index.lookup("Login User") == ["functions/auth/login_user.xs"]

    def test_strict_name(self, index):
        assert index.lookup("loginUser") == ["functions/auth/login_user.xs"]

    def test_no_match(self, index):
        assert index.lookup("nothing") == []
        assert index.lookup("  ") == []

    def test_find_table(self, index):
        assert index.find_table("Users") == "tables/users.xs"
        assert index.find_table("orders") == "tables/123_orders.xs"
        assert index.find_table("missing") is None


class TestIncrementalUpdates:
    """Tests for add and remove."""

    def test_remove_clears_every_structure(self, index):
        index.remove("tables/users.xs")

        assert "tables/users.xs" not in index.paths
        assert index.lookup("users") == ["functions/users.xs"]
        assert index.find_table("users") is None

    def test_add_replaces_record(self, index):
        index.add(_obj("tables/users.xs", ObjectKind.TABLE, 99))
        assert index.by_kind["table"].count("tables/users.xs") == 1

    def test_incremental_equals_rebuild(self, index):
        objects = [
            _obj("tables/users.xs", ObjectKind.TABLE, 1),
            _obj("functions/users.xs", ObjectKind.FUNCTION, 2),
        ]
        rebuilt = SearchIndex.build(objects)

        incremental = SearchIndex.build(objects + [_obj("tasks/nightly.xs", ObjectKind.TASK)])
        incremental.remove("tasks/nightly.xs")

        assert incremental.to_dict() == rebuilt.to_dict()


class TestPersistence:
    """Tests for save and load."""

    def test_save_and_load(self, tmp_path, index):
        index.save(tmp_path)
        loaded = SearchIndex.load(tmp_path)
        assert loaded.to_dict() == index.to_dict()

    def test_missing_file(self, tmp_path):
        assert SearchIndex.load(tmp_path) is None

    def test_version_mismatch_treated_as_absent(self, tmp_path, index):
        data = index.to_dict()
        data["version"] = SEARCH_INDEX_VERSION + 1
        (tmp_path / ".xano").mkdir()
        (tmp_path / ".xano" / "search.json").write_text(json.dumps(data), encoding="utf-8")

        assert SearchIndex.load(tmp_path) is None

    def test_corrupt_file(self, tmp_path):
        (tmp_path / ".xano").mkdir()
        (tmp_path / ".xano" / "search.json").write_text("[1, 2", encoding="utf-8")
        assert SearchIndex.load(tmp_path) is None
