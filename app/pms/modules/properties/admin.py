from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.errors import bad_request, not_found
from app.pms.modules.properties.service import (
    create_property,
    create_unit,
    delete_unit,
    drop_tenant_rows,
    get_property,
    list_properties,
    list_units,
    update_property,
    update_unit,
    upsert_properties,
)
from app.pms.rbac import require_permission
from app.pms.utils import json_body, json_object, truthy

bp = Blueprint("properties", __name__)


# ---------- Properties ----------
@bp.get("/api/properties")
@require_permission("properties.view")
def api_properties_list():
    s = db_session()
    prop_id = (request.args.get("id") or "").strip()
    if prop_id:
        prop = get_property(s, prop_id)
        if prop is None:
            raise not_found("Property not found.")
        return jsonify({"ok": True, "data": prop.to_dict()})
    return jsonify({"ok": True, "data": [p.to_dict() for p in list_properties(s)]})


@bp.post("/api/properties")
@require_permission("properties.edit")
def api_properties_create():
    s = db_session()
    payload = json_body()
    # A list is a bulk upsert keyed on property_id.
    if isinstance(payload, list):
        rows = [r for r in payload if isinstance(r, dict)]
        if not rows:
            raise bad_request("No property rows provided.")
        result = upsert_properties(s, rows, g.current_user)
        s.commit()
        return jsonify({"ok": True, "data": {**result, "total": len(rows)}})
    if not isinstance(payload, dict):
        raise bad_request("JSON object body required.")
    prop = create_property(s, payload, g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": prop.to_dict()}), 201


@bp.put("/api/properties")
@require_permission("properties.edit")
def api_properties_update():
    payload = json_object()
    if not payload.get("id"):
        raise bad_request("id is required.")
    s = db_session()
    prop = update_property(s, str(payload["id"]), {k: v for k, v in payload.items() if k != "id"}, g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": prop.to_dict()})


# ---------- Units ----------
@bp.get("/api/units")
@require_permission("properties.view")
def api_units_list():
    property_id = (request.args.get("propertyId") or "").strip() or None
    units = list_units(db_session(), property_id=property_id)
    return jsonify({"ok": True, "data": [u.to_dict() for u in units]})


@bp.post("/api/units")
@require_permission("properties.edit")
def api_units_create():
    s = db_session()
    unit = create_unit(s, json_object(), g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": unit.to_dict()}), 201


@bp.put("/api/units")
@require_permission("properties.edit")
def api_units_update():
    payload = json_object()
    if not payload.get("id"):
        raise bad_request("id is required.")
    s = db_session()
    unit = update_unit(s, str(payload["id"]), payload, g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": unit.to_dict()})


@bp.delete("/api/units")
@require_permission("properties.edit")
def api_units_delete():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise bad_request("JSON object body required.")
    unit_id = str(payload.get("id") or request.args.get("id") or "").strip()
    if not unit_id:
        raise bad_request("id is required.")
    force = truthy(payload.get("force")) or truthy(request.args.get("force"))

    s = db_session()
    deleted_tenants = delete_unit(s, unit_id, g.current_user, force=force)
    s.commit()
    drop_tenant_rows(deleted_tenants)
    return jsonify({"ok": True, "deletedTenants": deleted_tenants})
