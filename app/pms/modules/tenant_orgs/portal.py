from __future__ import annotations

from flask import Blueprint, jsonify

from app.pms.auth import portal_subject, set_portal_cookie
from app.pms.errors import unauthorized
from app.pms.modules.tenant_orgs.service import (
    activate_with_token,
    create_ticket,
    get_org,
    list_invoices,
    list_tickets,
    notices_for_org,
    portal_view,
    update_profile,
)
from app.pms.utils import json_object

bp = Blueprint("tenant_org_portal", __name__)

SESSION_COOKIE = "tenant_org_session"
SESSION_KIND = "tenant_org"


def _org_id() -> str:
    org_id = portal_subject(SESSION_COOKIE, kind=SESSION_KIND)
    if not org_id:
        raise unauthorized()
    return org_id


@bp.post("/api/tenant-org/activate")
def api_activate():
    org_id = activate_with_token(str(json_object().get("token") or "").strip())
    return set_portal_cookie(jsonify({"ok": True, "orgId": org_id}), SESSION_COOKIE, kind=SESSION_KIND, subject_id=org_id)


@bp.get("/api/tenant-org/me")
def api_me():
    return jsonify({"ok": True, **portal_view(_org_id())})


@bp.patch("/api/tenant-org/profile")
def api_profile():
    org = update_profile(_org_id(), json_object())
    return jsonify({"ok": True, "org": org})


@bp.get("/api/tenant-org/documents")
def api_documents():
    return jsonify({"ok": True, "documents": get_org(_org_id())["documents"]})


@bp.get("/api/tenant-org/invoices")
def api_invoices():
    return jsonify({"ok": True, "invoices": list_invoices(_org_id())})


@bp.get("/api/tenant-org/facilities")
def api_tickets():
    return jsonify({"ok": True, "tickets": list_tickets(_org_id())})


@bp.post("/api/tenant-org/facilities")
def api_ticket_create():
    ticket = create_ticket(_org_id(), json_object())
    return jsonify({"ok": True, "ticket": ticket})


@bp.get("/api/tenant-org/notices")
def api_notices():
    return jsonify({"ok": True, "notices": notices_for_org(_org_id())})
