from __future__ import annotations

import io

from flask import Blueprint, g, jsonify, render_template, request, send_file

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.modules.reports.service import (
    DATA_FILES,
    EXPORT_SOURCES,
    export_csv,
    get_pinned,
    integration_csv,
    set_pinned,
)
from app.pms.modules.reports.statement import statement_csv, tenant_statement
from app.pms.rbac import require_permission
from app.pms.utils import json_body, normalize_id, parse_date

bp = Blueprint("reports", __name__)


def _csv_download(text: str, filename: str):
    return send_file(
        io.BytesIO(text.encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )


# ---------- Statements ----------
@bp.get("/api/tenants/<tenant_id>/statement")
@require_permission("reports.view")
def api_statement(tenant_id: str):
    payload = tenant_statement(
        db_session(),
        tenant_id,
        start=parse_date(request.args.get("start")),
        end=parse_date(request.args.get("end")),
    )
    if request.args.get("format") == "csv":
        period = payload["period"]
        filename = f"tenant-statement-{normalize_id(tenant_id)}-{period['start']}-to-{period['end']}.csv"
        return _csv_download(statement_csv(payload), filename)
    return jsonify(payload)


# ---------- Downloads ----------
@bp.get("/api/integrations/<path:filename>")
@require_permission("reports.export")
def api_integration(filename: str):
    name, text = integration_csv(filename)
    return _csv_download(text, name)


@bp.get("/api/exports/<source>.csv")
@require_permission("reports.export")
def api_export(source: str):
    s = db_session()
    text, count = export_csv(s, source)
    record_event(s, actor=g.current_user, action="report.export", entity_type="Export", entity_id=source, metadata={"row_count": count})
    s.commit()
    return _csv_download(text, f"{source}.csv")


# ---------- Pinned ----------
@bp.get("/api/reports/pinned")
@require_permission("reports.view")
def api_pinned():
    return jsonify({"ok": True, "data": get_pinned()})


@bp.put("/api/reports/pinned")
@require_permission("reports.view")
def api_pinned_save():
    body = json_body()
    pins = set_pinned(body.get("pins") if isinstance(body, dict) else body)
    return jsonify({"ok": True, "data": pins})


# ---------- Pages ----------
@bp.get("/admin/reports")
@require_permission("reports.view")
def reports_index():
    return render_template(
        "reports/index.html",
        pinned=get_pinned(),
        data_files=DATA_FILES,
        export_sources=sorted(EXPORT_SOURCES),
    )
