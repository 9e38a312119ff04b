"""Tests for staff auth, signed tokens, passwords, RBAC and CSRF."""
import base64
import hashlib

import pytest

from app.pms import create_app
from app.pms.auth import _login_attempts
from app.pms.db import session_scope
from app.pms.models import AuditEvent, Base, User
from app.pms.security import (
    _signature,
    hash_password,
    issue_token,
    sign_session_token,
    verify_password,
    verify_session_token,
)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("JSON_STORE_BACKEND", "database")
    _login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                User(phone="+15550000001", password_hash=hash_password("pw"), role="admin", is_active=True),
                User(phone="+15550000002", password_hash=hash_password("pw"), role="reception", is_active=True),
                User(phone="+15550000003", password_hash=hash_password("pw"), role="admin", is_active=False),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, phone="+15550000001", password="pw"):
    return client.post("/api/auth/login", json={"phone": phone, "password": password})


# ---------- Tokens ----------
def test_session_token_roundtrip():
    token = issue_token("secret", ttl_seconds=60, sub="7", role="admin")
    payload = verify_session_token(token, "secret")
    assert payload["sub"] == "7"
    assert payload["role"] == "admin"


def test_session_token_rejects_wrong_secret_and_tampering():
    token = issue_token("secret", ttl_seconds=60, sub="7")
    assert verify_session_token(token, "other") is None
    body, sig = token.split(".")
    assert verify_session_token(f"{body}x.{sig}", "secret") is None
    assert verify_session_token("not-a-token", "secret") is None


@pytest.mark.parametrize("token", ["é.abc", "abc.é", "a.b.c", ".abc", "abc.", "", None, "%%%.###"])
def test_session_token_rejects_malformed(token):
    assert verify_session_token(token, "secret") is None


def test_session_token_rejects_bad_payloads():
    assert verify_session_token(sign_session_token([1, 2], "secret"), "secret") is None
    assert verify_session_token(sign_session_token({"sub": "7"}, "secret"), "secret") is None
    assert verify_session_token(sign_session_token({"sub": "7", "exp": "soon"}, "secret"), "secret") is None

    body = base64.urlsafe_b64encode(b"\xff\xfe").decode("ascii").rstrip("=")
    forged = f"{body}.{_signature(body, 'secret')}"
    assert verify_session_token(forged, "secret") is None
    assert verify_session_token(None, "secret") is None


def test_session_token_expiry():
    token = sign_session_token({"sub": "1", "exp": 1_000}, "secret")
    assert verify_session_token(token, "secret", now=999) is not None
    assert verify_session_token(token, "secret", now=1_001) is None


def test_sign_requires_secret():
    with pytest.raises(ValueError):
        sign_session_token({"exp": 1}, "")


# ---------- Passwords ----------
def test_hash_and_verify_password():
    stored = hash_password("hunter2")
    assert stored.startswith("scrypt:")
    assert verify_password("hunter2", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("hunter2", None)


def test_verify_legacy_scrypt_hash():
    salt = b"0123456789abcdef"
    digest = hashlib.scrypt(b"pw", salt=salt, n=16384, r=8, p=1, dklen=64, maxmem=64 * 1024 * 1024)
    stored = f"scrypt${base64.b64encode(salt).decode()}${base64.b64encode(digest).decode()}"
    assert verify_password("pw", stored)
    assert not verify_password("nope", stored)
    assert not verify_password("pw", "scrypt$$")


# ---------- Login API ----------
def test_api_login_sets_cookie_and_session(client):
    r = _login(client)
    assert r.status_code == 200
    assert r.json == {"ok": True, "role": "admin"}
    assert "pms_session=" in r.headers.get("Set-Cookie", "")

    r = client.get("/api/auth/session")
    assert r.json == {"authenticated": True, "phone": "+15550000001", "role": "admin"}


def test_api_login_failures(client):
    r = client.post("/api/auth/login", json={"phone": "", "password": ""})
    assert r.status_code == 400
    assert r.json["error"] == "Phone and password are required."

    r = _login(client, password="bad")
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials."

    r = _login(client, phone="+15550000003")
    assert r.status_code == 401


def test_failed_login_is_audited(app, client):
    _login(client, password="bad")
    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
    assert "auth.login_failed" in actions


def test_api_login_rate_limited(client):
    for _ in range(5):
        _login(client, password="bad")
    r = _login(client)
    assert r.status_code == 429


def test_api_logout_clears_session(client):
    _login(client)
    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    r = client.get("/api/auth/session")
    assert r.json == {"authenticated": False}


# ---------- RBAC ----------
def test_api_requires_login(client):
    r = client.get("/api/tenants")
    assert r.status_code == 401
    assert r.json == {"ok": False, "error": "Unauthorized."}


@pytest.mark.parametrize("cookie", ["é.abc", "abc.é", "garbage", "a.b.c"])
def test_malformed_session_cookie_is_ignored(client, cookie):
    client.set_cookie("pms_session", cookie)
    assert client.get("/api/auth/session").json == {"authenticated": False}
    assert client.get("/api/tenants").status_code == 401
    assert client.get("/").status_code == 200


def test_malformed_portal_cookie_is_ignored(client):
    client.set_cookie("tenant_session", "é.abc")
    client.set_cookie("tenant_org_session", "abc.é")
    assert client.get("/api/tenant/me").status_code == 401
    assert client.get("/api/tenant-org/me").status_code == 401


def test_portal_token_is_not_a_staff_session(app, client):
    with session_scope(app) as s:
        admin_id = s.query(User).filter(User.phone == "+15550000001").one().id
    token = issue_token(app.config["AUTH_SECRET"], ttl_seconds=60, sub=str(admin_id), kind="tenant")
    client.set_cookie("pms_session", token)
    assert client.get("/api/auth/session").json == {"authenticated": False}
    assert client.get("/api/tenants").status_code == 401


def test_page_redirects_to_login_with_next(client):
    r = client.get("/admin/tenants", follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert "next=" in r.headers["Location"]


def test_reception_cannot_manage_users(client):
    _login(client, phone="+15550000002")
    r = client.get("/api/tenants")
    assert r.status_code == 200
    r = client.get("/api/admin/users")
    assert r.status_code == 403
    assert r.json == {"ok": False, "error": "Forbidden."}
    r = client.post("/api/tenants", json={"name": "X"})
    assert r.status_code == 403


def test_admin_changes_user_role(client):
    _login(client)
    users = client.get("/api/admin/users").json["users"]
    reception = next(u for u in users if u["phone"] == "+15550000002")

    r = client.patch("/api/admin/users", json={"id": reception["id"], "role": "admin"})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "admin"

    r = client.patch("/api/admin/users", json={"id": reception["id"], "role": "owner"})
    assert r.status_code == 400
    assert r.json["error"] == "Invalid role."

    r = client.patch("/api/admin/users", json={"id": "999", "role": "admin"})
    assert r.status_code == 404

    r = client.patch("/api/admin/users", json={"role": "admin"})
    assert r.status_code == 400
    assert r.json["error"] == "User id is required."


def test_audit_page_lists_events(client):
    _login(client)
    r = client.get("/admin/audit?action=auth")
    assert r.status_code == 200
    assert b"auth.login" in r.data


# ---------- CSRF ----------
def test_form_post_requires_csrf_token(client):
    _login(client)
    r = client.post("/admin/house-rules", data={"content": "No pets."})
    assert r.status_code == 400

    with client.session_transaction() as sess:
        sess["csrf_token"] = "tok"
    r = client.post("/admin/house-rules", data={"content": "No pets.", "csrf_token": "tok"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/api/admin/house-rules")
    assert r.json["doc"]["content"] == "No pets."
