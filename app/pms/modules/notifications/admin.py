from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.errors import RepoError, bad_request, not_found
from app.pms.modules.notifications.messages import (
    build_late_rent_message,
    build_rent_reminder_body,
    is_past_grace_period,
    normalize_phone,
)
from app.pms.modules.notifications.twilio_client import SmsError, TwilioClient
from app.pms.modules.tenants.service import find_tenant_by_any_id, list_tenants
from app.pms.rbac import require_permission
from app.pms.utils import json_object, parse_date, to_number

bp = Blueprint("notifications", __name__)

MAX_BODY_LENGTH = 500


def _deliver(to: str, body: str, *, tenant_id: str | None = None) -> str:
    client = TwilioClient.from_config(current_app.config)
    try:
        result = client.send_sms(to, body)
    except SmsError as e:
        current_app.logger.error("SMS send failed (to=%s request_id=%s): %s", to, getattr(g, "request_id", None), e)
        raise RepoError(str(e), 500) from e
    sid = result.get("sid")
    s = db_session()
    record_event(
        s,
        actor=g.current_user,
        action="sms.send",
        entity_type="Tenant" if tenant_id else "Phone",
        entity_id=tenant_id or to,
        metadata={"sid": sid, "length": len(body)},
    )
    s.commit()
    return sid


@bp.post("/api/sms/send")
@require_permission("sms.send")
def api_send():
    payload = json_object()
    to = payload.get("to").strip() if isinstance(payload.get("to"), str) else ""
    body = payload.get("body").strip() if isinstance(payload.get("body"), str) else ""
    if not to.startswith("+"):
        raise bad_request("Phone number must be in E.164 format.")
    if not body:
        raise bad_request("Message body is required.")
    if len(body) > MAX_BODY_LENGTH:
        raise bad_request(f"Message body must be {MAX_BODY_LENGTH} characters or less.")
    return jsonify({"ok": True, "sid": _deliver(to, body)})


@bp.post("/api/notifications/sms")
@require_permission("sms.send")
def api_tenant_sms():
    payload = json_object()
    tenant_id = str(payload.get("tenantId") or "").strip()
    to = normalize_phone(payload.get("to") if isinstance(payload.get("to"), str) else None)
    body = str(payload.get("body") or "").strip()

    if tenant_id:
        tenant = find_tenant_by_any_id(db_session(), tenant_id)
        if tenant is None:
            raise not_found("Tenant not found.")
        tenant_id = tenant.id
        if not to:
            to = normalize_phone(tenant.phone)
        if not body and payload.get("template") == "late_rent":
            body = build_late_rent_message(
                tenant.name,
                company_name=current_app.config.get("COMPANY_NAME", ""),
                company_phone=current_app.config.get("COMPANY_PHONE", ""),
            )

    if not to:
        raise bad_request("Missing phone number.")
    if not body:
        raise bad_request("Missing SMS message body.")
    return jsonify({"ok": True, "sid": _deliver(to, body, tenant_id=tenant_id or None)})


@bp.get("/api/notifications/rent-reminders")
@require_permission("sms.send")
def api_rent_reminders():
    """Tenants whose rent due day plus the grace period has passed this month, with a draft reminder."""
    on = parse_date(request.args.get("date"))
    grace = int(to_number(request.args.get("graceDays"), 3.0) or 0)
    rows = []
    for tenant in list_tenants(db_session()):
        if not tenant.monthly_rent or not is_past_grace_period(tenant.due_day, on, grace_days=grace):
            continue
        rows.append(
            {
                "tenantId": tenant.id,
                "name": tenant.name,
                "phone": normalize_phone(tenant.phone),
                "body": build_rent_reminder_body(tenant.name, tenant.monthly_rent, tenant.due_day, on),
            }
        )
    return jsonify({"ok": True, "data": rows})
