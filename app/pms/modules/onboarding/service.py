"""
Residential tenant onboarding.

A tenant moves draft -> pending_payment -> ready_to_move_in / invited -> active
as staff and the tenant tick off checkpoints. Status is always derived from the
checkpoint booleans (compute_status) after every checkpoint write; "ended" is
terminal and never recomputed.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any

from app.pms.errors import RepoError, bad_request, not_found
from app.pms.json_store import append_record, find_record, patch_record
from app.pms.modules.onboarding import store
from app.pms.utils import clean_none, is_past, iso_after, now_iso, to_number

logger = logging.getLogger(__name__)

STATUSES = ("draft", "invited", "pending_payment", "ready_to_move_in", "active", "ended")
DOCUMENT_TYPES = ("lease", "house_rules", "welcome_pack", "deposit_receipt", "statement")

REQUIRED_FOR_ACTIVE = (
    "leaseUploaded",
    "depositReceived",
    "firstRentReceived",
    "leaseAcknowledged",
    "contactConfirmed",
)

MISSING_LABELS = (
    ("leaseUploaded", "Lease"),
    ("depositReceived", "Deposit"),
    ("firstRentReceived", "First rent"),
    ("portalInviteSent", "Invite"),
    ("leaseAcknowledged", "Lease ack"),
    ("contactConfirmed", "Contact"),
    ("moveInConditionConfirmed", "Move-in"),
)

INVITE_TTL = timedelta(days=2)

# Checkpoint keys each side may write.
ADMIN_CHECKPOINT_FIELDS = ("leaseUploaded", "depositExpected", "depositReceived", "firstRentReceived", "portalInviteSent")
TENANT_CHECKPOINT_FIELDS = ("leaseAcknowledged", "contactConfirmed", "moveInConditionConfirmed")
TENANT_CONTACT_FIELDS = ("phone", "emergencyContactName", "emergencyContactPhone")


# ---------- Pure logic ----------
def compute_missing(cp: dict[str, Any]) -> list[str]:
    return [label for key, label in MISSING_LABELS if not cp.get(key)]


def summarize_missing(missing: list[str]) -> list[str]:
    return [*missing[:2], f"+{len(missing) - 2} more"] if len(missing) > 2 else missing


def missing_summary(cp: dict[str, Any]) -> list[str]:
    return summarize_missing(compute_missing(cp))


def can_activate(cp: dict[str, Any]) -> bool:
    return all(bool(cp.get(key)) for key in REQUIRED_FOR_ACTIVE)


def compute_status(current: str, cp: dict[str, Any]) -> str:
    if current == "ended":
        return current
    if can_activate(cp):
        return "active"
    if cp.get("portalInviteSent"):
        return "invited"
    if cp.get("leaseUploaded") and cp.get("depositReceived") and cp.get("firstRentReceived"):
        return "ready_to_move_in"
    if cp.get("leaseUploaded"):
        return "pending_payment"
    return "draft"


def create_activation_token() -> str:
    return secrets.token_hex(16)


def new_checkpoints(tenant_id: str, *, first_rent_expected: float) -> dict[str, Any]:
    return {
        "tenantId": tenant_id,
        "leaseUploaded": False,
        "leaseAcknowledged": False,
        "depositExpected": 0,
        "depositReceived": False,
        "firstRentExpected": first_rent_expected,
        "firstRentReceived": False,
        "portalInviteSent": False,
        "tenantFirstLogin": False,
        "contactConfirmed": False,
        "moveInConditionConfirmed": False,
        "updatedAt": now_iso(),
    }


# ---------- Store-backed operations ----------
def _refresh_status(tenant_id: str, cp: dict[str, Any], extra: dict[str, Any] | None = None) -> dict[str, Any] | None:
    def _apply(tenant: dict[str, Any]) -> dict[str, Any]:
        return {
            **tenant,
            **(extra or {}),
            "onboardingStatus": compute_status(tenant.get("onboardingStatus") or "draft", cp),
            "updatedAt": now_iso(),
        }

    return patch_record(store.TENANTS_KEY, "id", tenant_id, _apply)


def _checkpoint_or_404(tenant_id: str, changes: dict[str, Any]) -> dict[str, Any]:
    cp = patch_record(
        store.CHECKPOINTS_KEY,
        "tenantId",
        tenant_id,
        lambda item: {**item, **changes, "updatedAt": now_iso()},
    )
    if cp is None:
        raise not_found("Onboarding record not found.")
    return cp


def list_onboarding() -> list[dict[str, Any]]:
    leases = store.get_leases()
    checkpoints = store.get_checkpoints()
    rows = []
    for tenant in store.get_tenants():
        cp = find_record(checkpoints, "tenantId", tenant.get("id"))
        rows.append(
            {
                "tenant": tenant,
                "lease": find_record(leases, "id", tenant.get("leaseId")),
                "checkpoints": cp,
                "missing": missing_summary(cp) if cp else ["Onboarding"],
            }
        )
    return rows


def create_onboarding(payload: dict[str, Any]) -> str:
    full_name = str(payload.get("fullName") or "").strip()
    if not full_name:
        raise bad_request("fullName is required.")

    timestamp = now_iso()
    tenant_id = str(uuid.uuid4())
    lease_id = str(uuid.uuid4())
    rent = to_number(payload.get("rentAmount"), 0.0) or 0.0
    due_day = to_number(payload.get("dueDay"))

    tenant = {
        "id": tenant_id,
        "fullName": full_name,
        "email": str(payload.get("email") or ""),
        "phone": payload.get("phone"),
        "emergencyContactName": payload.get("emergencyContactName"),
        "emergencyContactPhone": payload.get("emergencyContactPhone"),
        "unitId": payload.get("unitId"),
        "propertyId": payload.get("propertyId"),
        "leaseId": lease_id,
        "role": "tenant",
        "onboardingStatus": "draft",
        "createdAt": timestamp,
        "updatedAt": timestamp,
    }
    lease = {
        "id": lease_id,
        "tenantId": tenant_id,
        "startDate": payload.get("leaseStart"),
        "endDate": payload.get("leaseEnd"),
        "rentAmount": rent,
        "dueDay": int(due_day) if due_day else 1,
        "graceDays": 0,
        "currency": str(payload.get("currency") or "") or "USD",
    }
    cp = new_checkpoints(tenant_id, first_rent_expected=rent)

    append_record(store.TENANTS_KEY, tenant)
    append_record(store.LEASES_KEY, lease)
    append_record(store.CHECKPOINTS_KEY, cp)
    if compute_status(tenant["onboardingStatus"], cp) != tenant["onboardingStatus"]:
        _refresh_status(tenant_id, cp)

    logger.info("Onboarding created for tenant %s", tenant_id)
    return tenant_id


def get_onboarding(tenant_id: str) -> dict[str, Any]:
    tenant = find_record(store.get_tenants(), "id", tenant_id)
    if tenant is None:
        raise not_found("Tenant not found.")
    return {
        "tenant": tenant,
        "lease": find_record(store.get_leases(), "id", tenant.get("leaseId")),
        "checkpoints": find_record(store.get_checkpoints(), "tenantId", tenant_id),
        "documents": [d for d in store.get_documents() if d.get("tenantId") == tenant_id],
    }


def update_admin_checkpoints(tenant_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    changes = clean_none({k: payload.get(k) for k in ADMIN_CHECKPOINT_FIELDS})
    cp = _checkpoint_or_404(tenant_id, changes)
    _refresh_status(tenant_id, cp)
    return cp


def send_invite(tenant_id: str) -> tuple[str, str]:
    """Returns (token, expiresAt)."""
    if find_record(store.get_tenants(), "id", tenant_id) is None:
        raise not_found("Tenant not found.")
    token = create_activation_token()
    expires_at = iso_after(INVITE_TTL)
    cp = _checkpoint_or_404(
        tenant_id,
        {"portalInviteSent": True, "activationToken": token, "activationExpiresAt": expires_at},
    )
    _refresh_status(tenant_id, cp)
    return token, expires_at


def activate_tenant(tenant_id: str) -> None:
    tenant = find_record(store.get_tenants(), "id", tenant_id)
    cp = find_record(store.get_checkpoints(), "tenantId", tenant_id)
    if tenant is None or cp is None:
        raise not_found("Tenant not found.")
    if not can_activate(cp):
        raise bad_request("Required checkpoints incomplete.")
    patch_record(
        store.TENANTS_KEY,
        "id",
        tenant_id,
        lambda t: {**t, "onboardingStatus": "active", "updatedAt": now_iso()},
    )


def add_document(
    tenant_id: str,
    *,
    doc_type: str,
    name: str,
    url: str,
    mark_lease_uploaded: bool = False,
) -> dict[str, Any]:
    if find_record(store.get_tenants(), "id", tenant_id) is None:
        raise not_found("Tenant not found.")
    if doc_type not in DOCUMENT_TYPES:
        raise bad_request(f"Document type must be one of: {', '.join(DOCUMENT_TYPES)}.")
    if not url:
        raise bad_request("Document url is required.")

    document = {
        "id": str(uuid.uuid4()),
        "tenantId": tenant_id,
        "type": doc_type,
        "name": name or doc_type,
        "url": url,
        "uploadedAt": now_iso(),
    }
    append_record(store.DOCUMENTS_KEY, document)

    if mark_lease_uploaded:
        cp = patch_record(
            store.CHECKPOINTS_KEY,
            "tenantId",
            tenant_id,
            lambda item: {**item, "leaseUploaded": True, "updatedAt": now_iso()},
        )
        if cp is not None:
            _refresh_status(tenant_id, cp)
    return document


# ---------- Tenant portal ----------
def activate_with_token(token: str) -> str:
    if not token:
        raise bad_request("Missing token.")
    cp = find_record(store.get_checkpoints(), "activationToken", token)
    if cp is None:
        raise not_found("Invalid token.")
    if is_past(cp.get("activationExpiresAt")):
        raise RepoError("Token expired.", 410)
    tenant_id = cp.get("tenantId")
    if find_record(store.get_tenants(), "id", tenant_id) is None:
        raise not_found("Tenant not found.")

    def _consume(item: dict[str, Any]) -> dict[str, Any]:
        item = {k: v for k, v in item.items() if k not in ("activationToken", "activationExpiresAt")}
        return {**item, "tenantFirstLogin": True, "updatedAt": now_iso()}

    updated = patch_record(store.CHECKPOINTS_KEY, "tenantId", tenant_id, _consume)
    _refresh_status(tenant_id, updated or cp)
    logger.info("Tenant %s activated portal access", tenant_id)
    return str(tenant_id)


def tenant_view(tenant_id: str) -> dict[str, Any]:
    return get_onboarding(tenant_id)


def update_tenant_checkpoints(tenant_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    changes = clean_none({k: payload.get(k) for k in TENANT_CHECKPOINT_FIELDS})
    cp = _checkpoint_or_404(tenant_id, changes)
    contact = clean_none({k: payload.get(k) for k in TENANT_CONTACT_FIELDS})
    _refresh_status(tenant_id, cp, contact)
    return cp
