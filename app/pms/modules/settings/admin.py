from __future__ import annotations

from flask import Blueprint, flash, g, jsonify, redirect, render_template, request, url_for

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.errors import bad_request
from app.pms.modules.settings.service import (
    SETTINGS,
    load_settings,
    load_staff_doc,
    save_settings,
    staff_doc_meta,
    update_staff_doc,
)
from app.pms.rbac import require_permission
from app.pms.utils import json_object

bp = Blueprint("settings", __name__)


def _audit(action: str, entity_id: str) -> None:
    s = db_session()
    record_event(s, actor=g.current_user, action=action, entity_type="Settings", entity_id=entity_id)
    s.commit()


# ---------- Settings API ----------
@bp.get("/api/settings/<key>")
@require_permission("settings.view")
def api_settings_get(key: str):
    return jsonify({"ok": True, "data": load_settings(key)})


@bp.put("/api/settings/<key>")
@require_permission("settings.edit")
def api_settings_put(key: str):
    value, errors = save_settings(key, json_object())
    if errors:
        return jsonify({"ok": False, "error": "Validation failed.", "fields": errors}), 400
    _audit("settings.update", SETTINGS[key].dataset_key)
    return jsonify({"ok": True, "data": value})


# ---------- House rules / SOP API ----------
def _doc_get(slug: str):
    return jsonify({"ok": True, "doc": load_staff_doc(slug)})


def _doc_patch(slug: str):
    payload = json_object()
    content = payload.get("content")
    if content is not None and not isinstance(content, str):
        raise bad_request("content must be a string.")
    doc = update_staff_doc(slug, content)
    _audit("staff_doc.update", slug)
    return jsonify({"ok": True, "doc": doc})


@bp.get("/api/admin/house-rules")
@require_permission("settings.view")
def api_house_rules_get():
    return _doc_get("house-rules")


@bp.patch("/api/admin/house-rules")
@require_permission("settings.edit")
def api_house_rules_patch():
    return _doc_patch("house-rules")


@bp.get("/api/admin/sop")
@require_permission("settings.view")
def api_sop_get():
    return _doc_get("sop")


@bp.patch("/api/admin/sop")
@require_permission("settings.edit")
def api_sop_patch():
    return _doc_patch("sop")


# ---------- Pages ----------
def _doc_page(slug: str):
    _, title = staff_doc_meta(slug)
    return render_template("admin/doc_edit.html", slug=slug, title=title, doc=load_staff_doc(slug))


def _doc_save(slug: str):
    update_staff_doc(slug, request.form.get("content") or "")
    _audit("staff_doc.update", slug)
    flash("Saved.", "success")
    return redirect(url_for(f"settings.{slug.replace('-', '_')}_page"))


@bp.get("/admin/house-rules")
@require_permission("settings.view")
def house_rules_page():
    return _doc_page("house-rules")


@bp.post("/admin/house-rules")
@require_permission("settings.edit")
def house_rules_save():
    return _doc_save("house-rules")


@bp.get("/admin/sop")
@require_permission("settings.view")
def sop_page():
    return _doc_page("sop")


@bp.post("/admin/sop")
@require_permission("settings.edit")
def sop_save():
    return _doc_save("sop")
