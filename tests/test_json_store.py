"""Tests for the keyed JSON document store (database and file backends)."""
import pytest

from app.pms import create_app
from app.pms.errors import RepoError
from app.pms.json_store import (
    append_record,
    find_record,
    patch_record,
    read_json,
    read_records,
    remove_records,
    resolve_key,
    update_json,
    write_json,
)
from app.pms.models import Base


def _make_app(tmp_path, monkeypatch, backend):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("JSON_STORE_BACKEND", backend)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture(params=["database", "file"])
def app(request, tmp_path, monkeypatch):
    return _make_app(tmp_path, monkeypatch, request.param)


def test_resolve_key_drops_json_suffix():
    assert resolve_key("tenants.json") == "tenants"
    assert resolve_key(" settings.general ") == "settings.general"


@pytest.mark.parametrize("bad", ["", "../etc", "a/b", "a\\b"])
def test_resolve_key_rejects_paths(bad):
    with pytest.raises(RepoError) as exc:
        resolve_key(bad)
    assert exc.value.status == 400


def test_read_missing_returns_fallback_copy(app):
    fallback = {"items": []}
    with app.test_request_context():
        value = read_json("missing", fallback)
        assert value == fallback
        value["items"].append(1)
        assert fallback == {"items": []}


def test_write_then_read(app):
    with app.test_request_context():
        write_json("settings.general", {"orgName": "Orfane"})
    with app.test_request_context():
        assert read_json("settings.general.json", {}) == {"orgName": "Orfane"}


def test_update_json_applies_updater(app):
    with app.test_request_context():
        update_json("counter", lambda n: n + 1, 0)
        update_json("counter", lambda n: n + 1, 0)
        assert read_json("counter", 0) == 2


def test_record_helpers(app):
    with app.test_request_context():
        append_record("things", {"id": "a", "n": 1})
        append_record("things", {"id": "b", "n": 2})
        append_record("things", {"id": "b", "n": 3})

        items = read_records("things")
        assert find_record(items, "id", "b") == {"id": "b", "n": 2}
        assert find_record(items, "id", "z") is None

        patched = patch_record("things", "id", "b", lambda r: {**r, "n": 20})
        assert patched == {"id": "b", "n": 20}
        assert [r["n"] for r in read_records("things")] == [1, 20, 3]
        assert patch_record("things", "id", "z", lambda r: r) is None

        assert remove_records("things", "id", "b") == 2
        assert read_records("things") == [{"id": "a", "n": 1}]


def test_read_records_ignores_non_lists(app):
    with app.test_request_context():
        write_json("odd", {"not": "a list"})
        assert read_records("odd") == []
        write_json("mixed", [{"id": 1}, "junk", 3])
        assert read_records("mixed") == [{"id": 1}]


def test_file_backend_writes_json_file(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, "file")
    with app.test_request_context():
        write_json("notices", [{"id": "n1"}])
    assert (tmp_path / "data" / "notices.json").exists()


def test_file_backend_corrupt_document(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, "file")
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "broken.json").write_text("{nope", encoding="utf-8")
    with app.test_request_context():
        with pytest.raises(RepoError):
            read_json("broken", [])


def test_unknown_backend(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, "redis")
    with app.test_request_context():
        with pytest.raises(RepoError):
            read_json("anything", [])
