from datetime import date, datetime, time, timedelta

from flask import Blueprint, flash, g, jsonify, render_template, request

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.errors import bad_request, not_found
from app.pms.models import AuditEvent, User
from app.pms.modules.banking.ledger import bank_summary
from app.pms.modules.banking.service import list_transactions
from app.pms.modules.onboarding import store as onboarding_store
from app.pms.modules.tenant_orgs import store as tenant_orgs_store
from app.pms.modules.tenants.models import Tenant
from app.pms.rbac import ROLE_PERMISSIONS, require_permission
from app.pms.utils import json_object, parse_date

bp = Blueprint("admin", __name__)

_SETTLED = ("active", "ended")


def _in_progress(records: list[dict], status_field: str) -> int:
    return sum(1 for r in records if (r.get(status_field) or "draft") not in _SETTLED)


@bp.get("/admin/")
@require_permission("dashboard.view")
def index():
    s = db_session()
    summary = bank_summary([t.to_dict() for t in list_transactions(s)])
    counts = {
        "tenants": s.query(Tenant).count(),
        "onboarding": _in_progress(onboarding_store.get_tenants(), "onboardingStatus")
        + _in_progress(tenant_orgs_store.get_orgs(), "status"),
        "unreconciled": summary["unreconciledCount"],
    }
    return render_template("admin/index.html", counts=counts, summary=summary)


@bp.get("/admin/audit")
@require_permission("users.manage")
def audit_list():
    """Last 200 audit events, filterable by action (contains) and date range (YYYY-MM-DD)."""
    s = db_session()
    action = (request.args.get("action") or "").strip()
    date_from = parse_date(request.args.get("date_from"))
    date_to = parse_date(request.args.get("date_to"))

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit.html",
        events=events,
        action=action,
        date_from=date_from.isoformat() if isinstance(date_from, date) else "",
        date_to=date_to.isoformat() if isinstance(date_to, date) else "",
    )


# ---------- Users API ----------
@bp.get("/api/admin/users")
@require_permission("users.manage")
def api_users():
    users = db_session().query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({"users": [u.to_dict() for u in users]})


@bp.patch("/api/admin/users")
@require_permission("users.manage")
def api_user_role():
    payload = json_object()
    role = str(payload.get("role") or "").strip()
    if role not in ROLE_PERMISSIONS:
        raise bad_request("Invalid role.")
    try:
        user_id = int(str(payload.get("id") or "").strip())
    except ValueError:
        raise bad_request("User id is required.")

    s = db_session()
    user = s.get(User, user_id)
    if user is None:
        raise not_found("User not found.")
    before = user.role
    user.role = role
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=g.current_user,
        action="user.role_change",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"from": before, "to": role},
    )
    s.commit()
    return jsonify({"ok": True, "user": user.to_dict()})
