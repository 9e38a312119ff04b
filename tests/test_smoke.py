import pytest

from app.pms import create_app
from app.pms.db import session_scope
from app.pms.models import Base, User
from app.pms.security import hash_password


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("JSON_STORE_BACKEND", "database")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(User(phone="+15550000001", password_hash=hash_password("pw"), role="admin", is_active=True))

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_health_reports_db_time(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert r.json["now"]


def test_api_health_db_lists_tables(client):
    r = client.get("/api/health/db")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["db"]["connected"] is True
    assert data["tables"]["tenants"] is True
    assert data["tables"]["bank_transactions"] is True
    assert data["env"]["hasDatabaseUrl"] is True


def test_public_index_renders(client):
    r = client.get("/")
    assert r.status_code == 200


def test_login_and_admin_access(client):
    # Anonymous should be redirected to login
    r = client.get("/admin/")
    assert r.status_code in (302, 403)

    # Login
    r = client.post("/auth/login", data={"phone": "+15550000001", "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302

    # Now admin should be accessible
    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"Dashboard" in r.data


def test_unknown_api_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json == {"ok": False, "error": "Not found."}
