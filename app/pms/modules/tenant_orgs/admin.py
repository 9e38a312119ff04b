from __future__ import annotations

from flask import Blueprint, g, jsonify, render_template, request

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.modules.onboarding.admin import document_payload
from app.pms.modules.tenant_orgs.service import (
    activate_org,
    add_document,
    create_invoice,
    create_notice,
    create_org,
    delete_org,
    get_org,
    list_invoices,
    list_notices,
    list_orgs,
    send_invite,
    update_checkpoints,
    update_org_details,
    update_ticket_status,
)
from app.pms.rbac import require_permission
from app.pms.utils import json_object, truthy

bp = Blueprint("tenant_orgs", __name__)


def _audit(action: str, entity_id: str, metadata: dict | None = None, entity_type: str = "TenantOrg") -> None:
    s = db_session()
    record_event(s, actor=g.current_user, action=action, entity_type=entity_type, entity_id=entity_id, metadata=metadata)
    s.commit()


# ---------- Orgs ----------
@bp.get("/api/admin/tenant-orgs/onboarding")
@require_permission("onboarding.view")
def api_list():
    return jsonify(list_orgs())


@bp.post("/api/admin/tenant-orgs/onboarding")
@require_permission("onboarding.edit")
def api_create():
    org_id = create_org(json_object())
    _audit("tenant_org.create", org_id)
    return jsonify({"ok": True, "orgId": org_id})


@bp.get("/api/admin/tenant-orgs/<org_id>/onboarding")
@require_permission("onboarding.view")
def api_get(org_id: str):
    return jsonify(get_org(org_id))


@bp.patch("/api/admin/tenant-orgs/<org_id>/onboarding")
@require_permission("onboarding.edit")
def api_patch(org_id: str):
    payload = json_object()
    result = {"ok": True}
    if isinstance(payload.get("org"), dict):
        result["org"] = update_org_details(org_id, payload["org"])
    result["checkpoints"] = update_checkpoints(org_id, payload)
    _audit("tenant_org.update", org_id, {"fields": sorted(payload)})
    return jsonify(result)


@bp.delete("/api/admin/tenant-orgs/<org_id>/onboarding")
@require_permission("onboarding.edit")
def api_delete(org_id: str):
    delete_org(org_id)
    _audit("tenant_org.delete", org_id)
    return jsonify({"ok": True})


@bp.post("/api/admin/tenant-orgs/<org_id>/invite")
@require_permission("onboarding.edit")
def api_invite(org_id: str):
    token, expires_at = send_invite(org_id)
    _audit("tenant_org.invite", org_id, {"expiresAt": expires_at})
    return jsonify({"ok": True, "inviteUrl": f"/tenant-org/activate?token={token}", "expiresAt": expires_at})


@bp.post("/api/admin/tenant-orgs/<org_id>/documents")
@require_permission("onboarding.edit")
def api_documents(org_id: str):
    payload = document_payload(org_id)
    document = add_document(
        org_id,
        doc_type=str(payload.get("type") or "").strip(),
        name=str(payload.get("name") or "").strip(),
        url=str(payload.get("url") or "").strip(),
        mark_lease_uploaded=truthy(payload.get("markLeaseUploaded")),
    )
    _audit("tenant_org.document_add", org_id, {"type": document["type"], "url": document["url"]})
    return jsonify({"ok": True, "document": document})


@bp.patch("/api/admin/tenant-orgs/<org_id>/activate")
@require_permission("onboarding.edit")
def api_activate(org_id: str):
    s = db_session()
    org = activate_org(s, org_id, g.current_user)
    record_event(s, actor=g.current_user, action="tenant_org.activate", entity_type="TenantOrg", entity_id=org_id)
    s.commit()
    return jsonify({"ok": True, "org": org})


# ---------- Invoices ----------
@bp.get("/api/admin/tenant-orgs/<org_id>/invoices")
@require_permission("onboarding.view")
def api_invoices(org_id: str):
    return jsonify({"ok": True, "invoices": list_invoices(org_id)})


@bp.post("/api/admin/tenant-orgs/<org_id>/invoices")
@require_permission("onboarding.edit")
def api_invoice_create(org_id: str):
    invoice = create_invoice(org_id, json_object())
    _audit("tenant_org.invoice_create", org_id, {"invoiceId": invoice["id"], "amount": invoice["amount"]})
    return jsonify({"ok": True, "invoice": invoice}), 201


# ---------- Facilities ----------
@bp.patch("/api/admin/facilities/<ticket_id>")
@require_permission("onboarding.edit")
def api_ticket_status(ticket_id: str):
    ticket = update_ticket_status(ticket_id, str(json_object().get("status") or ""))
    _audit("facilities.status", ticket_id, {"status": ticket["status"]}, entity_type="FacilitiesTicket")
    return jsonify({"ok": True, "ticket": ticket})


# ---------- Notices ----------
@bp.get("/api/admin/notices")
@require_permission("onboarding.view")
def api_notices():
    property_id = (request.args.get("propertyId") or "").strip() or None
    return jsonify({"ok": True, "notices": list_notices(property_id)})


@bp.post("/api/admin/notices")
@require_permission("onboarding.edit")
def api_notice_create():
    notice = create_notice(json_object())
    _audit("notice.create", notice["id"], {"propertyId": notice["propertyId"]}, entity_type="Notice")
    return jsonify({"ok": True, "notice": notice}), 201


# ---------- Pages ----------
@bp.get("/admin/tenant-orgs")
@require_permission("onboarding.view")
def tenant_orgs_list():
    return render_template("tenant_orgs/list.html", rows=list_orgs())
