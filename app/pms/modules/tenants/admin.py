from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, render_template, request

from app.pms.db import db_session
from app.pms.errors import bad_request, not_found
from app.pms.modules.tenants.service import (
    create_tenant,
    delete_tenant,
    get_tenant,
    import_rows_from_payload,
    list_tenants,
    update_tenant,
    upsert_tenants,
)
from app.pms.rbac import require_permission
from app.pms.utils import json_object

bp = Blueprint("tenants", __name__)


# ---------- JSON API ----------
@bp.get("/api/tenants")
@require_permission("tenants.view")
def api_list():
    property_id = (request.args.get("propertyId") or "").strip() or None
    search = (request.args.get("search") or "").strip() or None
    tenants = list_tenants(db_session(), property_id=property_id, search=search)
    return jsonify({"ok": True, "data": [t.to_dict() for t in tenants]})


@bp.post("/api/tenants")
@require_permission("tenants.edit")
def api_create():
    s = db_session()
    tenant = create_tenant(s, json_object(), g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": tenant.to_dict()}), 201


@bp.get("/api/tenants/<tenant_id>")
@require_permission("tenants.view")
def api_get(tenant_id: str):
    tenant = get_tenant(db_session(), tenant_id)
    if tenant is None:
        raise not_found("Tenant not found.")
    return jsonify({"ok": True, "data": tenant.to_dict()})


@bp.put("/api/tenants/<tenant_id>")
@require_permission("tenants.edit")
def api_update(tenant_id: str):
    s = db_session()
    tenant = update_tenant(s, tenant_id, json_object(), g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": tenant.to_dict()})


@bp.delete("/api/tenants/<tenant_id>")
@require_permission("tenants.edit")
def api_delete(tenant_id: str):
    s = db_session()
    if not delete_tenant(s, tenant_id, g.current_user):
        raise not_found("Tenant not found.")
    s.commit()
    return jsonify({"ok": True})


@bp.post("/api/import/tenants")
@require_permission("tenants.import")
def api_import():
    if not request.is_json:
        return jsonify({"ok": False, "error": "JSON payload required. CSV imports must use scripts/import_tenants.py."}), 415

    body = request.get_json(silent=True)
    rows = import_rows_from_payload(body)
    if not rows:
        raise bad_request("No tenant rows provided.")

    s = db_session()
    result = upsert_tenants(s, rows, g.current_user)
    s.commit()
    current_app.logger.info("Tenant import: inserted=%s updated=%s", result["inserted"], result["updated"])
    return jsonify({"ok": True, "data": {**result, "total": len(rows)}})


# ---------- Pages ----------
@bp.get("/admin/tenants")
@require_permission("tenants.view")
def tenants_list():
    search = (request.args.get("q") or "").strip()
    property_id = (request.args.get("propertyId") or "").strip()
    tenants = list_tenants(db_session(), property_id=property_id or None, search=search or None)
    return render_template("tenants/list.html", tenants=tenants, search=search, property_id=property_id)
