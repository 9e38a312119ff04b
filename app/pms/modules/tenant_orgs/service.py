"""
Commercial tenant (organisation) onboarding, plus the records its portal reads:
invoices, documents, facilities tickets and property notices.

Org status is draft -> invited -> active, derived from the checkpoint booleans
by compute_status; "ended" is terminal.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from app.pms.errors import RepoError, bad_request, not_found
from app.pms.json_store import append_record, find_record, patch_record, remove_records
from app.pms.models import User
from app.pms.modules.onboarding.service import create_activation_token
from app.pms.modules.tenant_orgs import store
from app.pms.modules.tenants.service import upsert_tenants
from app.pms.utils import clean_none, is_past, iso_after, now_iso, to_number

logger = logging.getLogger(__name__)

STATUSES = ("draft", "invited", "active", "ended")
DOCUMENT_TYPES = ("lease", "house_rules", "compliance", "welcome_pack", "statement")
INVOICE_TYPES = ("rent", "service_charge", "other")
INVOICE_STATUSES = ("open", "paid", "overdue")
TICKET_CATEGORIES = ("HVAC", "Electrical", "Plumbing", "Access", "Other")
TICKET_STATUSES = ("open", "in_progress", "resolved")
NOTICE_VISIBILITY = ("all_tenants", "tenantOrgIds")

REQUIRED_FOR_ACTIVE = (
    "leaseUploaded",
    "houseRulesConfirmed",
    "idCopyTaken",
    "accessCardsIssued",
    "depositOrGuaranteeConfirmed",
)

MISSING_LABELS = (
    ("leaseUploaded", "Lease"),
    ("houseRulesConfirmed", "House rules"),
    ("idCopyTaken", "ID copy"),
    ("accessCardsIssued", "Keys"),
    ("depositOrGuaranteeConfirmed", "Deposit + rent"),
)
DEFAULT_MISSING = ["Lease", "Deposit/Guarantee", "Invoices"]

INVITE_TTL = timedelta(hours=48)

CHECKPOINT_FIELDS = (
    "leaseUploaded",
    "depositOrGuaranteeConfirmed",
    "invoicesEnabled",
    "portalInviteSent",
    "contactsConfirmed",
    "houseRulesConfirmed",
    "idCopyTaken",
    "accessCardsIssued",
)
PROFILE_FIELDS = ("billingPhone", "financeContactName", "facilitiesContactEmail", "facilitiesContactName")
ORG_FIELDS = ("name", "billingEmail", "billingPhone", "financeContactName", "facilitiesContactName", "facilitiesContactEmail", "unitIds", "propertyId")


# ---------- Pure logic ----------
def compute_missing(cp: dict[str, Any]) -> list[str]:
    return [label for key, label in MISSING_LABELS if not cp.get(key)]


def missing_summary(cp: dict[str, Any] | None) -> list[str]:
    if not cp:
        return list(DEFAULT_MISSING)
    missing = compute_missing(cp)
    return [*missing[:2], f"+{len(missing) - 2}"] if len(missing) > 2 else missing


def can_activate(cp: dict[str, Any]) -> bool:
    return all(bool(cp.get(key)) for key in REQUIRED_FOR_ACTIVE)


def compute_status(current: str, cp: dict[str, Any]) -> str:
    if current == "ended":
        return current
    if can_activate(cp):
        return "active"
    if cp.get("portalInviteSent"):
        return "invited"
    return "draft"


def new_checkpoints(org_id: str) -> dict[str, Any]:
    cp: dict[str, Any] = {"tenantOrgId": org_id}
    cp.update({key: False for key in (*CHECKPOINT_FIELDS, "firstLogin")})
    cp["updatedAt"] = now_iso()
    return cp


def tenant_row(org: dict[str, Any], lease: dict[str, Any] | None) -> dict[str, Any]:
    """The SQL tenants row an activated org is mirrored into."""
    lease = lease or {}
    units = [str(u) for u in (org.get("unitIds") or []) if u]
    return {
        "id": org["id"],
        "name": org.get("name") or org["id"],
        "building": org.get("propertyId"),
        "property_id": org.get("propertyId"),
        "unit": ", ".join(units) or None,
        "monthly_rent": to_number(lease.get("rentAmount")),
        "due_day": to_number(lease.get("dueDay")),
        "reference": org["id"],
    }


def notice_visible_to(notice: dict[str, Any], org: dict[str, Any]) -> bool:
    if notice.get("propertyId") != org.get("propertyId"):
        return False
    if notice.get("visibility") == "all_tenants":
        return True
    return org.get("id") in (notice.get("tenantOrgIds") or [])


# ---------- Store-backed operations ----------
def _org_or_404(org_id: str) -> dict[str, Any]:
    org = find_record(store.get_orgs(), "id", org_id)
    if org is None:
        raise not_found("Tenant org not found.")
    return org


def _refresh_status(org_id: str, cp: dict[str, Any], extra: dict[str, Any] | None = None) -> dict[str, Any] | None:
    def _apply(org: dict[str, Any]) -> dict[str, Any]:
        return {**org, **(extra or {}), "status": compute_status(org.get("status") or "draft", cp), "updatedAt": now_iso()}

    return patch_record(store.ORGS_KEY, "id", org_id, _apply)


def _patch_checkpoints(org_id: str, changes: dict[str, Any]) -> dict[str, Any]:
    cp = patch_record(store.CHECKPOINTS_KEY, "tenantOrgId", org_id, lambda item: {**item, **changes, "updatedAt": now_iso()})
    if cp is None:
        raise not_found("Onboarding record not found.")
    return cp


def list_orgs() -> list[dict[str, Any]]:
    leases = store.get_leases()
    checkpoints = store.get_checkpoints()
    rows = []
    for org in store.get_orgs():
        cp = find_record(checkpoints, "tenantOrgId", org.get("id"))
        rows.append(
            {
                "org": org,
                "lease": find_record(leases, "tenantOrgId", org.get("id")),
                "checkpoints": cp,
                "missing": missing_summary(cp),
            }
        )
    return rows


def create_org(payload: dict[str, Any]) -> str:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise bad_request("name is required.")
    unit_ids = payload.get("unitIds") or []
    if not isinstance(unit_ids, list):
        unit_ids = [str(unit_ids)]

    timestamp = now_iso()
    org_id = str(uuid.uuid4())
    org = {
        "id": org_id,
        "name": name,
        "billingEmail": str(payload.get("billingEmail") or ""),
        "billingPhone": payload.get("billingPhone"),
        "financeContactName": payload.get("financeContactName"),
        "facilitiesContactName": payload.get("facilitiesContactName"),
        "facilitiesContactEmail": payload.get("facilitiesContactEmail"),
        "unitIds": unit_ids,
        "propertyId": payload.get("propertyId"),
        "status": "draft",
        "createdAt": timestamp,
        "updatedAt": timestamp,
    }
    due_day = to_number(payload.get("dueDay"))
    lease = {
        "id": str(uuid.uuid4()),
        "tenantOrgId": org_id,
        "startDate": payload.get("leaseStart"),
        "endDate": payload.get("leaseEnd"),
        "rentAmount": to_number(payload.get("rentAmount"), 0.0) or 0.0,
        "serviceChargeAmount": to_number(payload.get("serviceChargeAmount")),
        "dueDay": int(due_day) if due_day else 1,
        "graceDays": int(to_number(payload.get("graceDays"), 0.0) or 0),
        "currency": str(payload.get("currency") or "") or "USD",
    }
    cp = new_checkpoints(org_id)

    append_record(store.ORGS_KEY, org)
    append_record(store.LEASES_KEY, lease)
    append_record(store.CHECKPOINTS_KEY, cp)
    if compute_status(org["status"], cp) != org["status"]:
        _refresh_status(org_id, cp)

    logger.info("Tenant org %s created (%s)", org_id, name)
    return org_id


def get_org(org_id: str) -> dict[str, Any]:
    org = _org_or_404(org_id)
    return {
        "org": org,
        "lease": find_record(store.get_leases(), "tenantOrgId", org_id),
        "checkpoints": find_record(store.get_checkpoints(), "tenantOrgId", org_id),
        "documents": [d for d in store.get_documents() if d.get("tenantOrgId") == org_id],
    }


def update_checkpoints(org_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    changes = clean_none({k: payload.get(k) for k in CHECKPOINT_FIELDS})
    cp = _patch_checkpoints(org_id, changes)
    _refresh_status(org_id, cp)
    return cp


def update_org_details(org_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    changes = clean_none({k: payload.get(k) for k in ORG_FIELDS})
    if "name" in changes and not str(changes["name"]).strip():
        raise bad_request("name is required.")
    org = patch_record(store.ORGS_KEY, "id", org_id, lambda item: {**item, **changes, "updatedAt": now_iso()})
    if org is None:
        raise not_found("Tenant org not found.")
    return org


def delete_org(org_id: str) -> None:
    org = _org_or_404(org_id)
    if org.get("status") == "active":
        raise bad_request("Active tenants cannot be deleted from onboarding.")
    remove_records(store.ORGS_KEY, "id", org_id)
    remove_records(store.LEASES_KEY, "tenantOrgId", org_id)
    remove_records(store.CHECKPOINTS_KEY, "tenantOrgId", org_id)
    remove_records(store.DOCUMENTS_KEY, "tenantOrgId", org_id)
    logger.info("Tenant org %s deleted", org_id)


def send_invite(org_id: str) -> tuple[str, str]:
    """Returns (token, expiresAt)."""
    _org_or_404(org_id)
    token = create_activation_token()
    expires_at = iso_after(INVITE_TTL)
    cp = _patch_checkpoints(org_id, {"portalInviteSent": True, "activationToken": token, "tokenExpiresAt": expires_at})
    _refresh_status(org_id, cp)
    return token, expires_at


def add_document(
    org_id: str,
    *,
    doc_type: str,
    name: str,
    url: str,
    mark_lease_uploaded: bool = False,
) -> dict[str, Any]:
    _org_or_404(org_id)
    if not url:
        raise bad_request("Missing document URL.")
    doc_type = doc_type or "lease"
    if doc_type not in DOCUMENT_TYPES:
        raise bad_request(f"Document type must be one of: {', '.join(DOCUMENT_TYPES)}.")
    document = {
        "id": str(uuid.uuid4()),
        "tenantOrgId": org_id,
        "type": doc_type,
        "name": name or doc_type,
        "url": url,
        "uploadedAt": now_iso(),
    }
    append_record(store.DOCUMENTS_KEY, document)
    if mark_lease_uploaded:
        cp = patch_record(
            store.CHECKPOINTS_KEY,
            "tenantOrgId",
            org_id,
            lambda item: {**item, "leaseUploaded": True, "updatedAt": now_iso()},
        )
        if cp is not None:
            _refresh_status(org_id, cp)
    return document


def activate_org(s: Session, org_id: str, user: User | None) -> dict[str, Any]:
    """
    Mirrors the org into the SQL tenants table so it shows up in statements,
    exports and reminders, then marks it active. The tenant upsert is only
    flushed; the status write commits both on the database backend, otherwise
    the caller commits `s`.
    """
    org = _org_or_404(org_id)
    cp = find_record(store.get_checkpoints(), "tenantOrgId", org_id)
    if cp is None:
        raise not_found("Onboarding record not found.")
    if not can_activate(cp):
        raise bad_request("Onboarding checklist incomplete.")
    lease = find_record(store.get_leases(), "tenantOrgId", org_id)
    upsert_tenants(s, [tenant_row(org, lease)], user)
    org = patch_record(store.ORGS_KEY, "id", org_id, lambda item: {**item, "status": "active", "updatedAt": now_iso()})
    logger.info("Tenant org %s activated", org_id)
    return org


# ---------- Invoices ----------
def list_invoices(org_id: str) -> list[dict[str, Any]]:
    return [i for i in store.get_invoices() if i.get("tenantOrgId") == org_id]


def create_invoice(org_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    _org_or_404(org_id)
    amount = to_number(payload.get("amount"))
    issue_date = str(payload.get("issueDate") or "").strip()
    due_date = str(payload.get("dueDate") or "").strip()
    if amount is None or not issue_date or not due_date:
        raise bad_request("amount, issueDate, and dueDate are required.")
    invoice_type = str(payload.get("type") or "rent")
    if invoice_type not in INVOICE_TYPES:
        raise bad_request(f"Invoice type must be one of: {', '.join(INVOICE_TYPES)}.")
    status = str(payload.get("status") or "open")
    if status not in INVOICE_STATUSES:
        raise bad_request(f"Invoice status must be one of: {', '.join(INVOICE_STATUSES)}.")
    invoice = clean_none(
        {
            "id": str(uuid.uuid4()),
            "tenantOrgId": org_id,
            "type": invoice_type,
            "period": str(payload.get("period") or issue_date[:7]),
            "issueDate": issue_date,
            "dueDate": due_date,
            "amount": amount,
            "status": status,
            "pdfUrl": payload.get("pdfUrl"),
            "createdAt": now_iso(),
        }
    )
    return append_record(store.INVOICES_KEY, invoice)


# ---------- Notices ----------
def list_notices(property_id: str | None = None) -> list[dict[str, Any]]:
    notices = store.get_notices()
    if property_id:
        notices = [n for n in notices if n.get("propertyId") == property_id]
    return sorted(notices, key=lambda n: n.get("createdAt") or "", reverse=True)


def create_notice(payload: dict[str, Any]) -> dict[str, Any]:
    property_id = str(payload.get("propertyId") or "").strip()
    title = str(payload.get("title") or "").strip()
    body = str(payload.get("body") or "").strip()
    if not property_id or not title or not body:
        raise bad_request("propertyId, title, and body are required.")
    visibility = str(payload.get("visibility") or "all_tenants")
    if visibility not in NOTICE_VISIBILITY:
        raise bad_request(f"Visibility must be one of: {', '.join(NOTICE_VISIBILITY)}.")
    org_ids = [str(i) for i in (payload.get("tenantOrgIds") or []) if i]
    if visibility == "tenantOrgIds" and not org_ids:
        raise bad_request("tenantOrgIds is required for targeted notices.")
    notice = {
        "id": str(uuid.uuid4()),
        "propertyId": property_id,
        "title": title,
        "body": body,
        "createdAt": now_iso(),
        "visibility": visibility,
    }
    if visibility == "tenantOrgIds":
        notice["tenantOrgIds"] = org_ids
    return append_record(store.NOTICES_KEY, notice)


# ---------- Tenant-org portal ----------
def activate_with_token(token: str) -> str:
    if not token:
        raise bad_request("Missing token.")
    cp = find_record(store.get_checkpoints(), "activationToken", token)
    if cp is None:
        raise not_found("Invalid token.")
    if is_past(cp.get("tokenExpiresAt")):
        raise RepoError("Token expired.", 410)
    org_id = str(cp.get("tenantOrgId"))
    _org_or_404(org_id)

    def _consume(item: dict[str, Any]) -> dict[str, Any]:
        item = {k: v for k, v in item.items() if k not in ("activationToken", "tokenExpiresAt")}
        return {**item, "firstLogin": True, "updatedAt": now_iso()}

    updated = patch_record(store.CHECKPOINTS_KEY, "tenantOrgId", org_id, _consume)
    _refresh_status(org_id, updated or cp)
    logger.info("Tenant org %s activated portal access", org_id)
    return org_id


def portal_view(org_id: str) -> dict[str, Any]:
    return get_org(org_id)


def update_profile(org_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    changes = clean_none({k: payload.get(k) for k in PROFILE_FIELDS})
    org = patch_record(store.ORGS_KEY, "id", org_id, lambda item: {**item, **changes, "updatedAt": now_iso()})
    if org is None:
        raise not_found("Tenant org not found.")
    cp = _patch_checkpoints(org_id, {"contactsConfirmed": True})
    return _refresh_status(org_id, cp) or org


def list_tickets(org_id: str) -> list[dict[str, Any]]:
    tickets = [t for t in store.get_tickets() if t.get("tenantOrgId") == org_id]
    return sorted(tickets, key=lambda t: t.get("createdAt") or "", reverse=True)


def create_ticket(org_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    title = str(payload.get("title") or "").strip()
    description = str(payload.get("description") or "").strip()
    if not title or not description:
        raise bad_request("Missing required fields.")
    category = str(payload.get("category") or "Other")
    if category not in TICKET_CATEGORIES:
        category = "Other"
    timestamp = now_iso()
    ticket = clean_none(
        {
            "id": str(uuid.uuid4()),
            "tenantOrgId": org_id,
            "unitId": payload.get("unitId"),
            "category": category,
            "title": title,
            "description": description,
            "status": "open",
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
    )
    return append_record(store.TICKETS_KEY, ticket)


def update_ticket_status(ticket_id: str, status: str) -> dict[str, Any]:
    if status not in TICKET_STATUSES:
        raise bad_request(f"Status must be one of: {', '.join(TICKET_STATUSES)}.")
    ticket = patch_record(store.TICKETS_KEY, "id", ticket_id, lambda t: {**t, "status": status, "updatedAt": now_iso()})
    if ticket is None:
        raise not_found("Ticket not found.")
    return ticket


def notices_for_org(org_id: str) -> list[dict[str, Any]]:
    org = _org_or_404(org_id)
    return [n for n in list_notices() if notice_visible_to(n, org)]
