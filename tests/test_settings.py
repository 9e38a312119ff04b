"""Tests for organization settings and staff documents."""
import pytest

from app.pms import create_app
from app.pms.db import session_scope
from app.pms.models import Base, User
from app.pms.modules.settings.service import normalize
from app.pms.security import hash_password


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("JSON_STORE_BACKEND", "database")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(User(phone="+15550000001", password_hash=hash_password("pw"), role="admin", is_active=True))

    c = app.test_client()
    c.post("/api/auth/login", json={"phone": "+15550000001", "password": "pw"})
    return c


# ---------- Normalizers ----------
def test_general_lenient_and_strict():
    value, errors = normalize("general", {"fiscalYearStartMonth": 15, "email": "bad"})
    assert value["fiscalYearStartMonth"] == 12
    assert value["orgName"] == "Orfane Tower"
    assert errors == {}

    _, errors = normalize("general", {"orgName": " ", "email": "bad"}, strict=True)
    assert set(errors) == {"orgName", "email"}


def test_bank_has_exactly_one_default():
    value, _ = normalize(
        "bank",
        {"accounts": [{"id": "a", "nickname": "A"}, {"id": "b", "nickname": "B", "isDefault": True}, {"id": "c", "nickname": "C", "isDefault": True}]},
    )
    assert [a["isDefault"] for a in value["accounts"]] == [False, True, False]

    value, _ = normalize("bank", {"accounts": [{"id": "a", "nickname": "A"}, {"id": "b", "nickname": "B"}]})
    assert [a["isDefault"] for a in value["accounts"]] == [True, False]

    _, errors = normalize("bank", {"accounts": [{"id": "a"}]}, strict=True)
    assert errors == {"accounts.a.nickname": "Account nickname is required."}


def test_lists_drop_unnamed_items_unless_strict():
    value, errors = normalize("payment-methods", {"methods": [{"id": "m1", "name": ""}, {"id": "m2", "name": "Cash"}, "junk"]})
    assert [m["id"] for m in value["methods"]] == ["m2"]
    assert errors == {}

    _, errors = normalize("payment-methods", {"methods": [{"id": "m1", "name": ""}]}, strict=True)
    assert errors == {"methods.m1.name": "Method name is required."}

    _, errors = normalize("property-types", {"types": [{"id": "t1"}]}, strict=True)
    assert errors == {"types.t1.name": "Type name is required."}


def test_initial_readings_clamps_and_rules():
    value, _ = normalize(
        "initial-readings",
        {"enabledMeters": ["gas"], "defaultReadingDay": 40, "initialReadings": {"water": "12.5"}, "rules": {"min": "1", "max": "x"}},
    )
    assert value["enabledMeters"] == ["electricity", "water"]
    assert value["defaultReadingDay"] == 28
    assert value["initialReadings"] == {"electricity": 0, "water": 12.5}
    assert value["rules"] == {"allowZero": True, "min": 1}


def test_expense_categories():
    value, _ = normalize("expense-categories", {"categories": [{"id": "c1", "name": "Gardening", "type": "overhead"}, {"id": "c2"}]})
    assert value["categories"] == [
        {
            "id": "c1",
            "code": "c1",
            "name": "Gardening",
            "type": "overhead",
            "taxRate": "",
            "description": "",
            "active": True,
            "showOnPurchases": True,
        }
    ]
    _, errors = normalize("expense-categories", {"categories": [{"id": "c2", "code": ""}]}, strict=True)
    assert set(errors) == {"categories.c2.name", "categories.c2.code"}


# ---------- API ----------
def test_get_defaults(client):
    r = client.get("/api/settings/branding")
    assert r.status_code == 200
    assert r.json["data"]["brandMode"] == "icon_text"

    r = client.get("/api/settings/payment-methods")
    assert [m["id"] for m in r.json["data"]["methods"]] == ["pm_bank", "pm_cash", "pm_mobile"]


def test_unknown_settings_key(client):
    r = client.get("/api/settings/nope")
    assert r.status_code == 404
    assert r.json["error"] == "Unknown settings key."


def test_put_validates_and_saves(client):
    r = client.put("/api/settings/general", json={"orgName": "", "email": "ops@example.com"})
    assert r.status_code == 400
    assert r.json["fields"] == {"orgName": "Organization name is required."}

    r = client.put("/api/settings/general", json={"orgName": "Orfane", "email": "ops@example.com", "junk": 1})
    assert r.status_code == 200
    assert "junk" not in r.json["data"]
    assert client.get("/api/settings/general").json["data"]["orgName"] == "Orfane"


def test_staff_docs(client):
    assert client.get("/api/admin/sop").json["doc"] == {"content": "", "updatedAt": ""}

    r = client.patch("/api/admin/sop", json={"content": "Open at 8."})
    assert r.status_code == 200
    first = r.json["doc"]
    assert first["content"] == "Open at 8."
    assert first["updatedAt"]

    r = client.patch("/api/admin/sop", json={})
    assert r.json["doc"]["content"] == "Open at 8."

    r = client.patch("/api/admin/sop", json={"content": 5})
    assert r.status_code == 400
    assert r.json["error"] == "content must be a string."


def test_doc_pages_render(client):
    client.patch("/api/admin/house-rules", json={"content": "Quiet after 10pm."})
    r = client.get("/admin/house-rules")
    assert r.status_code == 200
    assert b"Quiet after 10pm." in r.data
    assert client.get("/admin/sop").status_code == 200
