"""Tests for commercial tenant onboarding and the tenant-org portal."""
import pytest

from app.pms import create_app
from app.pms.db import session_scope
from app.pms.errors import RepoError
from app.pms.models import Base, User
from app.pms.modules.tenant_orgs.service import compute_status, missing_summary, notice_visible_to, tenant_row
from app.pms.security import hash_password

REQUIRED = {
    "leaseUploaded": True,
    "houseRulesConfirmed": True,
    "idCopyTaken": True,
    "accessCardsIssued": True,
    "depositOrGuaranteeConfirmed": True,
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("JSON_STORE_BACKEND", "database")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(User(phone="+15550000001", password_hash=hash_password("pw"), role="admin", is_active=True))
    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    c.post("/api/auth/login", json={"phone": "+15550000001", "password": "pw"})
    return c


def _create(client, **extra):
    payload = {
        "name": "Acme Ltd",
        "billingEmail": "billing@acme.example",
        "unitIds": ["U-101", "U-102"],
        "propertyId": "P-01",
        "rentAmount": 5000,
        "dueDay": 3,
        **extra,
    }
    r = client.post("/api/admin/tenant-orgs/onboarding", json=payload)
    assert r.status_code == 200
    return r.json["orgId"]


def _portal(app, client, org_id):
    token = client.post(f"/api/admin/tenant-orgs/{org_id}/invite").json["inviteUrl"].split("token=", 1)[1]
    portal = app.test_client()
    r = portal.post("/api/tenant-org/activate", json={"token": token})
    assert r.status_code == 200
    return portal


# ---------- Pure logic ----------
def test_status_and_missing():
    assert compute_status("draft", {}) == "draft"
    assert compute_status("draft", {"portalInviteSent": True}) == "invited"
    assert compute_status("invited", REQUIRED) == "active"
    assert compute_status("ended", REQUIRED) == "ended"

    assert missing_summary(None) == ["Lease", "Deposit/Guarantee", "Invoices"]
    assert missing_summary({}) == ["Lease", "House rules", "+3"]
    assert missing_summary({**REQUIRED, "idCopyTaken": False}) == ["ID copy"]


def test_tenant_row_mirrors_org():
    org = {"id": "o1", "name": "Acme", "propertyId": "P-01", "unitIds": ["A", "B"]}
    row = tenant_row(org, {"rentAmount": 900, "dueDay": 2})
    assert row["unit"] == "A, B"
    assert row["monthly_rent"] == 900
    assert row["reference"] == "o1"
    assert tenant_row({"id": "o2", "unitIds": []}, None)["name"] == "o2"


def test_notice_visibility():
    org = {"id": "o1", "propertyId": "P-01"}
    assert notice_visible_to({"propertyId": "P-01", "visibility": "all_tenants"}, org)
    assert not notice_visible_to({"propertyId": "P-02", "visibility": "all_tenants"}, org)
    assert notice_visible_to({"propertyId": "P-01", "visibility": "tenantOrgIds", "tenantOrgIds": ["o1"]}, org)
    assert not notice_visible_to({"propertyId": "P-01", "visibility": "tenantOrgIds", "tenantOrgIds": ["o9"]}, org)


# ---------- Admin API ----------
def test_create_requires_name(client):
    r = client.post("/api/admin/tenant-orgs/onboarding", json={"billingEmail": "x@example.com"})
    assert r.status_code == 400
    assert r.json["error"] == "name is required."


def test_create_list_and_get(client):
    org_id = _create(client)
    rows = client.get("/api/admin/tenant-orgs/onboarding").json
    assert len(rows) == 1
    assert rows[0]["org"]["status"] == "draft"
    assert rows[0]["lease"]["rentAmount"] == 5000
    assert rows[0]["missing"] == ["Lease", "House rules", "+3"]

    detail = client.get(f"/api/admin/tenant-orgs/{org_id}/onboarding").json
    assert detail["org"]["unitIds"] == ["U-101", "U-102"]
    assert detail["checkpoints"]["firstLogin"] is False
    assert detail["documents"] == []

    assert client.get("/api/admin/tenant-orgs/nope/onboarding").status_code == 404


def test_patch_updates_org_and_checkpoints(client):
    org_id = _create(client)
    r = client.patch(
        f"/api/admin/tenant-orgs/{org_id}/onboarding",
        json={"org": {"billingPhone": "+15553334444"}, "leaseUploaded": True},
    )
    assert r.status_code == 200
    assert r.json["org"]["billingPhone"] == "+15553334444"
    assert r.json["checkpoints"]["leaseUploaded"] is True


def test_delete_cascades(client):
    org_id = _create(client)
    client.post(f"/api/admin/tenant-orgs/{org_id}/documents", json={"url": "https://files.example.com/lease.pdf"})
    r = client.delete(f"/api/admin/tenant-orgs/{org_id}/onboarding")
    assert r.status_code == 200
    assert client.get("/api/admin/tenant-orgs/onboarding").json == []
    assert client.get(f"/api/admin/tenant-orgs/{org_id}/onboarding").status_code == 404


def test_document_defaults_to_lease(client):
    org_id = _create(client)
    r = client.post(f"/api/admin/tenant-orgs/{org_id}/documents", json={"url": "https://x/lease.pdf", "markLeaseUploaded": "true"})
    assert r.status_code == 200
    assert r.json["document"]["type"] == "lease"
    detail = client.get(f"/api/admin/tenant-orgs/{org_id}/onboarding").json
    assert detail["checkpoints"]["leaseUploaded"] is True

    r = client.post(f"/api/admin/tenant-orgs/{org_id}/documents", json={"type": "lease"})
    assert r.status_code == 400
    assert r.json["error"] == "Missing document URL."


def test_activate_mirrors_tenant_and_blocks_delete(client):
    org_id = _create(client)
    r = client.patch(f"/api/admin/tenant-orgs/{org_id}/activate")
    assert r.status_code == 400
    assert r.json["error"] == "Onboarding checklist incomplete."

    client.patch(f"/api/admin/tenant-orgs/{org_id}/onboarding", json=REQUIRED)
    r = client.patch(f"/api/admin/tenant-orgs/{org_id}/activate")
    assert r.status_code == 200
    assert r.json["org"]["status"] == "active"

    tenant = client.get(f"/api/tenants/{org_id}").json["data"]
    assert tenant["name"] == "Acme Ltd"
    assert tenant["unit"] == "U-101, U-102"
    assert tenant["monthly_rent"] == 5000
    assert tenant["due_day"] == 3

    r = client.delete(f"/api/admin/tenant-orgs/{org_id}/onboarding")
    assert r.status_code == 400
    assert r.json["error"] == "Active tenants cannot be deleted from onboarding."


def test_failed_tenant_mirror_leaves_org_inactive(client, monkeypatch):
    from app.pms.modules.tenant_orgs import service

    def fail(*args, **kwargs):
        raise RepoError("Tenant table unavailable.", 500)

    org_id = _create(client)
    client.patch(f"/api/admin/tenant-orgs/{org_id}/onboarding", json=REQUIRED)
    monkeypatch.setattr(service, "upsert_tenants", fail)

    r = client.patch(f"/api/admin/tenant-orgs/{org_id}/activate")
    assert r.status_code == 500
    assert client.get(f"/api/admin/tenant-orgs/{org_id}/onboarding").json["org"]["status"] != "active"
    assert client.get(f"/api/tenants/{org_id}").status_code == 404


def test_invoices(client):
    org_id = _create(client)
    r = client.post(f"/api/admin/tenant-orgs/{org_id}/invoices", json={"amount": 5000})
    assert r.status_code == 400
    assert r.json["error"] == "amount, issueDate, and dueDate are required."

    r = client.post(
        f"/api/admin/tenant-orgs/{org_id}/invoices",
        json={"amount": 5000, "issueDate": "2024-03-01", "dueDate": "2024-03-05"},
    )
    assert r.status_code == 201
    invoice = r.json["invoice"]
    assert invoice["period"] == "2024-03"
    assert invoice["status"] == "open"
    assert invoice["type"] == "rent"

    invoices = client.get(f"/api/admin/tenant-orgs/{org_id}/invoices").json["invoices"]
    assert [i["id"] for i in invoices] == [invoice["id"]]


def test_notices_admin(client):
    r = client.post("/api/admin/notices", json={"propertyId": "P-01", "title": "Water"})
    assert r.status_code == 400

    r = client.post("/api/admin/notices", json={"propertyId": "P-01", "title": "Water", "body": "Off 9-11", "visibility": "tenantOrgIds"})
    assert r.status_code == 400
    assert r.json["error"] == "tenantOrgIds is required for targeted notices."

    r = client.post("/api/admin/notices", json={"propertyId": "P-01", "title": "Water", "body": "Off 9-11"})
    assert r.status_code == 201
    assert r.json["notice"]["visibility"] == "all_tenants"

    assert len(client.get("/api/admin/notices?propertyId=P-01").json["notices"]) == 1
    assert client.get("/api/admin/notices?propertyId=P-02").json["notices"] == []


# ---------- Portal ----------
def test_portal_requires_session(app):
    r = app.test_client().get("/api/tenant-org/me")
    assert r.status_code == 401


def test_invite_sets_status_and_token_expiry(client):
    org_id = _create(client)
    r = client.post(f"/api/admin/tenant-orgs/{org_id}/invite")
    assert r.status_code == 200
    assert r.json["inviteUrl"].startswith("/tenant-org/activate?token=")
    detail = client.get(f"/api/admin/tenant-orgs/{org_id}/onboarding").json
    assert detail["org"]["status"] == "invited"
    assert detail["checkpoints"]["tokenExpiresAt"] == r.json["expiresAt"]


def test_portal_flow(app, client):
    org_id = _create(client)
    portal = _portal(app, client, org_id)

    me = portal.get("/api/tenant-org/me").json
    assert me["org"]["id"] == org_id
    assert me["checkpoints"]["firstLogin"] is True
    assert "activationToken" not in me["checkpoints"]

    r = portal.patch("/api/tenant-org/profile", json={"financeContactName": "Fay", "name": "Hijack"})
    assert r.status_code == 200
    assert r.json["org"]["financeContactName"] == "Fay"
    assert r.json["org"]["name"] == "Acme Ltd"
    detail = client.get(f"/api/admin/tenant-orgs/{org_id}/onboarding").json
    assert detail["checkpoints"]["contactsConfirmed"] is True

    client.post(f"/api/admin/tenant-orgs/{org_id}/documents", json={"type": "compliance", "url": "https://x/c.pdf"})
    docs = portal.get("/api/tenant-org/documents").json["documents"]
    assert [d["type"] for d in docs] == ["compliance"]

    client.post(
        f"/api/admin/tenant-orgs/{org_id}/invoices",
        json={"amount": 700, "issueDate": "2024-04-01", "dueDate": "2024-04-10", "type": "service_charge"},
    )
    invoices = portal.get("/api/tenant-org/invoices").json["invoices"]
    assert invoices[0]["type"] == "service_charge"


def test_portal_facilities(app, client):
    org_id = _create(client)
    portal = _portal(app, client, org_id)

    r = portal.post("/api/tenant-org/facilities", json={"title": "AC broken"})
    assert r.status_code == 400
    assert r.json["error"] == "Missing required fields."

    r = portal.post("/api/tenant-org/facilities", json={"title": "AC broken", "description": "Room 2", "category": "Roof"})
    assert r.status_code == 200
    ticket = r.json["ticket"]
    assert ticket["category"] == "Other"
    assert ticket["status"] == "open"

    r = client.patch(f"/api/admin/facilities/{ticket['id']}", json={"status": "in_progress"})
    assert r.status_code == 200
    r = client.patch(f"/api/admin/facilities/{ticket['id']}", json={"status": "done"})
    assert r.status_code == 400
    r = client.patch("/api/admin/facilities/nope", json={"status": "resolved"})
    assert r.status_code == 404

    tickets = portal.get("/api/tenant-org/facilities").json["tickets"]
    assert tickets[0]["status"] == "in_progress"


def test_portal_notices_filtered(app, client):
    org_id = _create(client)
    other_id = _create(client, name="Other Co")
    client.post("/api/admin/notices", json={"propertyId": "P-01", "title": "All", "body": "Everyone"})
    client.post("/api/admin/notices", json={"propertyId": "P-02", "title": "Elsewhere", "body": "Not ours"})
    client.post(
        "/api/admin/notices",
        json={"propertyId": "P-01", "title": "Targeted", "body": "Other only", "visibility": "tenantOrgIds", "tenantOrgIds": [other_id]},
    )
    portal = _portal(app, client, org_id)
    titles = [n["title"] for n in portal.get("/api/tenant-org/notices").json["notices"]]
    assert titles == ["All"]


def test_tenant_orgs_page_renders(client):
    _create(client)
    r = client.get("/admin/tenant-orgs")
    assert r.status_code == 200
    assert b"Acme Ltd" in r.data
