from __future__ import annotations

import mimetypes
from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, render_template, send_file

from app.pms.auth import portal_subject
from app.pms.db import database_now, db_session, get_engine, probe_tables
from app.pms.errors import not_found, unauthorized
from app.pms.rbac import user_has_permission
from app.pms.storage import StorageError, storage_from_config

bp = Blueprint("routes", __name__)

HEALTH_TABLES = ["tenants", "units", "properties", "bank_transactions", "meter_readings"]

# (cookie, kind) pairs of the two tenant portals.
PORTAL_SESSIONS = (("tenant_session", "tenant"), ("tenant_org_session", "tenant_org"))


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe: no DB access."""
    return "ok", 200


@bp.get("/api/health")
def api_health():
    return jsonify({"ok": True, "now": database_now(db_session())})


@bp.get("/api/health/db")
def api_health_db():
    timestamp = datetime.utcnow().isoformat() + "Z"
    env = {"hasDatabaseUrl": bool(current_app.config.get("DATABASE_URL"))}
    try:
        latency_ms, tables = probe_tables(get_engine(), HEALTH_TABLES)
    except Exception as e:
        current_app.logger.error("DB health probe failed: %s", e)
        return (
            jsonify(
                {
                    "ok": False,
                    "error": str(e),
                    "data": {"db": {"connected": False}, "env": env, "timestamp": timestamp},
                }
            ),
            500,
        )
    return jsonify(
        {
            "ok": True,
            "data": {
                "db": {"connected": True, "latencyMs": latency_ms},
                "tables": tables,
                "env": env,
                "timestamp": timestamp,
            },
        }
    )


def _may_read_file(key: str) -> bool:
    if user_has_permission(getattr(g, "current_user", None), "onboarding.view"):
        return True
    # Portal users only see files uploaded for their own record.
    for cookie, kind in PORTAL_SESSIONS:
        subject = portal_subject(cookie, kind=kind)
        if subject and key.startswith(f"documents/{subject}/"):
            return True
    return False


@bp.get("/api/files/<path:key>")
def api_file(key: str):
    if not _may_read_file(key):
        raise unauthorized()
    storage = storage_from_config(current_app.config)
    try:
        if not storage.exists(key):
            raise not_found("File not found.")
        fobj = storage.open(key)
    except StorageError as e:
        raise not_found("File not found.") from e
    filename = key.rsplit("/", 1)[-1]
    mimetype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mimetype, download_name=filename, max_age=0)
