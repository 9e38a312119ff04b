from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, jsonify, render_template, request
from werkzeug.utils import secure_filename

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.errors import bad_request
from app.pms.modules.onboarding.service import (
    activate_tenant,
    add_document,
    create_onboarding,
    get_onboarding,
    list_onboarding,
    send_invite,
    update_admin_checkpoints,
)
from app.pms.rbac import require_permission
from app.pms.storage import storage_from_config
from app.pms.utils import json_object, truthy

bp = Blueprint("onboarding", __name__)


def _audit(action: str, tenant_id: str, metadata: dict | None = None) -> None:
    s = db_session()
    record_event(s, actor=g.current_user, action=action, entity_type="OnboardingTenant", entity_id=tenant_id, metadata=metadata)
    s.commit()


def store_upload(owner_id: str, file_storage) -> tuple[str, str]:
    """
    Saves an uploaded file under documents/<owner>/ and returns (name, url).
    The url points at the authenticated download route.
    """
    filename = secure_filename(file_storage.filename or "") or "upload.bin"
    key = f"documents/{owner_id}/{uuid.uuid4().hex}-{filename}"
    storage = storage_from_config(current_app.config)
    storage.put_bytes(key, file_storage.read(), content_type=file_storage.mimetype or None)
    current_app.logger.info("Stored upload %s (%s)", key, file_storage.mimetype)
    return file_storage.filename or filename, f"/api/files/{key}"


def document_payload(owner_id: str) -> dict:
    """JSON body, or multipart form with an optional `file` part."""
    if request.files.get("file"):
        name, url = store_upload(owner_id, request.files["file"])
        form = request.form
        return {
            "type": form.get("type"),
            "name": (form.get("name") or "").strip() or name,
            "url": url,
            "markLeaseUploaded": truthy(form.get("markLeaseUploaded")),
        }
    if request.mimetype == "multipart/form-data":
        raise bad_request("File is required.")
    return json_object()


# ---------- JSON API ----------
@bp.get("/api/admin/tenants/onboarding")
@require_permission("onboarding.view")
def api_list():
    return jsonify(list_onboarding())


@bp.post("/api/admin/tenants/onboarding")
@require_permission("onboarding.edit")
def api_create():
    tenant_id = create_onboarding(json_object())
    _audit("onboarding.create", tenant_id)
    return jsonify({"ok": True, "tenantId": tenant_id})


@bp.get("/api/admin/tenants/<tenant_id>/onboarding")
@require_permission("onboarding.view")
def api_get(tenant_id: str):
    return jsonify(get_onboarding(tenant_id))


@bp.patch("/api/admin/tenants/<tenant_id>/onboarding")
@require_permission("onboarding.edit")
def api_patch(tenant_id: str):
    payload = json_object()
    cp = update_admin_checkpoints(tenant_id, payload)
    _audit("onboarding.update", tenant_id, {"fields": sorted(k for k in payload if k in cp)})
    return jsonify({"ok": True, "checkpoints": cp})


@bp.post("/api/admin/tenants/<tenant_id>/invite")
@require_permission("onboarding.edit")
def api_invite(tenant_id: str):
    token, expires_at = send_invite(tenant_id)
    _audit("onboarding.invite", tenant_id, {"expiresAt": expires_at})
    return jsonify({"ok": True, "inviteUrl": f"/tenant/activate?token={token}", "expiresAt": expires_at})


@bp.patch("/api/admin/tenants/<tenant_id>/activate")
@require_permission("onboarding.edit")
def api_activate(tenant_id: str):
    activate_tenant(tenant_id)
    _audit("onboarding.activate", tenant_id)
    return jsonify({"ok": True})


@bp.post("/api/admin/tenants/<tenant_id>/documents")
@require_permission("onboarding.edit")
def api_documents(tenant_id: str):
    payload = document_payload(tenant_id)
    document = add_document(
        tenant_id,
        doc_type=str(payload.get("type") or "").strip(),
        name=str(payload.get("name") or "").strip(),
        url=str(payload.get("url") or "").strip(),
        mark_lease_uploaded=truthy(payload.get("markLeaseUploaded")),
    )
    _audit("onboarding.document_add", tenant_id, {"type": document["type"], "url": document["url"]})
    return jsonify({"ok": True, "document": document})


# ---------- Pages ----------
@bp.get("/admin/onboarding")
@require_permission("onboarding.view")
def onboarding_list():
    return render_template("onboarding/list.html", rows=list_onboarding())
