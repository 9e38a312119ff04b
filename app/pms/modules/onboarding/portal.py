from __future__ import annotations

from flask import Blueprint, jsonify

from app.pms.auth import portal_subject, set_portal_cookie
from app.pms.errors import unauthorized
from app.pms.modules.onboarding.service import activate_with_token, tenant_view, update_tenant_checkpoints
from app.pms.utils import json_object

bp = Blueprint("tenant_portal", __name__)

SESSION_COOKIE = "tenant_session"
SESSION_KIND = "tenant"


def _tenant_id() -> str:
    tenant_id = portal_subject(SESSION_COOKIE, kind=SESSION_KIND)
    if not tenant_id:
        raise unauthorized()
    return tenant_id


@bp.post("/api/tenant/activate")
def api_activate():
    payload = json_object()
    tenant_id = activate_with_token(str(payload.get("token") or "").strip())
    return set_portal_cookie(jsonify({"ok": True, "tenantId": tenant_id}), SESSION_COOKIE, kind=SESSION_KIND, subject_id=tenant_id)


@bp.get("/api/tenant/me")
def api_me():
    return jsonify({"ok": True, **tenant_view(_tenant_id())})


@bp.patch("/api/tenant/checkpoints")
def api_checkpoints():
    tenant_id = _tenant_id()
    cp = update_tenant_checkpoints(tenant_id, json_object())
    return jsonify({"ok": True, "checkpoints": cp})
