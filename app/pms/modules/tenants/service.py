from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.pms.audit import record_event
from app.pms.errors import bad_request, not_found
from app.pms.modules.tenants.models import Tenant
from app.pms.utils import normalize_id, to_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User


TENANT_FIELDS = ("name", "building", "property_id", "unit", "monthly_rent", "due_day", "reference", "phone")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce(field: str, value: Any) -> Any:
    if field == "monthly_rent":
        return to_number(value)
    if field == "due_day":
        n = to_number(value)
        return int(n) if n is not None else None
    return _text(value)


def normalize_tenant_input(payload: dict[str, Any], *, require_name: bool = True) -> dict[str, Any]:
    """
    Keep only known fields that are present in the payload (absent = untouched).
    """
    values = {f: _coerce(f, payload[f]) for f in TENANT_FIELDS if f in payload}
    if require_name and not values.get("name"):
        raise bad_request("Tenant name is required.")
    if "name" in values and not values["name"]:
        raise bad_request("Tenant name cannot be blank.")
    return values


def list_tenants(s: "Session", *, property_id: str | None = None, search: str | None = None) -> list[Tenant]:
    q = s.query(Tenant)
    if property_id:
        q = q.filter(or_(Tenant.property_id == property_id, Tenant.building == property_id))
    if search:
        q = q.filter(func.lower(Tenant.name).like(f"%{search.lower()}%"))
    return q.order_by(Tenant.name.asc()).all()


def get_tenant(s: "Session", tenant_id: str) -> Tenant | None:
    if not tenant_id:
        raise bad_request("Tenant id is required.")
    return s.get(Tenant, str(tenant_id))


def create_tenant(s: "Session", payload: dict[str, Any], user: "User | None") -> Tenant:
    values = normalize_tenant_input(payload)
    tenant_id = _text(payload.get("id")) or str(uuid.uuid4())
    if s.get(Tenant, tenant_id) is not None:
        raise bad_request(f"Tenant {tenant_id} already exists.")
    now = datetime.utcnow()
    tenant = Tenant(id=tenant_id, created_at=now, updated_at=now, **values)
    s.add(tenant)
    s.flush()
    record_event(
        s,
        actor=user,
        action="tenant.create",
        entity_type="Tenant",
        entity_id=tenant.id,
        metadata={"name": tenant.name},
    )
    return tenant


def update_tenant(s: "Session", tenant_id: str, payload: dict[str, Any], user: "User | None") -> Tenant:
    if not tenant_id:
        raise bad_request("Tenant id is required.")
    values = normalize_tenant_input(payload, require_name=False)
    if not values:
        raise bad_request("No fields provided to update.")
    tenant = s.get(Tenant, str(tenant_id))
    if tenant is None:
        raise not_found("Tenant not found.")

    changes = {}
    for field, value in values.items():
        old = getattr(tenant, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(tenant, field, value)
    tenant.updated_at = datetime.utcnow()
    if changes:
        record_event(
            s,
            actor=user,
            action="tenant.update",
            entity_type="Tenant",
            entity_id=tenant.id,
            metadata={"changes": changes},
        )
    return tenant


def delete_tenant(s: "Session", tenant_id: str, user: "User | None") -> bool:
    if not tenant_id:
        raise bad_request("Tenant id is required.")
    tenant = s.get(Tenant, str(tenant_id))
    if tenant is None:
        return False
    s.delete(tenant)
    record_event(s, actor=user, action="tenant.delete", entity_type="Tenant", entity_id=str(tenant_id))
    return True


def upsert_tenants(s: "Session", entries: list[dict[str, Any]], user: "User | None") -> dict[str, int]:
    """Insert or overwrite by id. Returns {"inserted": n, "updated": m}."""
    inserted = 0
    updated = 0
    now = datetime.utcnow()
    for entry in entries:
        tenant_id = _text(entry.get("id"))
        if not tenant_id:
            raise bad_request("Tenant id is required for import.")
        values = {f: _coerce(f, entry.get(f)) for f in TENANT_FIELDS}
        values["name"] = values.get("name") or ""
        tenant = s.get(Tenant, tenant_id)
        if tenant is None:
            s.add(Tenant(id=tenant_id, created_at=now, updated_at=now, **values))
            inserted += 1
        else:
            for field, value in values.items():
                # Phone is maintained in-app; imports without one keep it.
                if field == "phone" and value is None:
                    continue
                setattr(tenant, field, value)
            tenant.updated_at = now
            updated += 1
    s.flush()
    record_event(
        s,
        actor=user,
        action="tenant.upsert",
        entity_type="Tenant",
        metadata={"inserted": inserted, "updated": updated},
    )
    return {"inserted": inserted, "updated": updated}


def find_tenant_by_any_id(s: "Session", tenant_id: str) -> Tenant | None:
    """
    Lookup by normalized id, then by reference. Statement and SMS callers pass
    ids copied from spreadsheets, hence the normalization.
    """
    wanted = normalize_id(tenant_id)
    if not wanted:
        return None
    tenant = s.get(Tenant, wanted)
    if tenant is not None:
        return tenant
    for t in s.query(Tenant).all():
        if normalize_id(t.id) == wanted:
            return t
    for t in s.query(Tenant).filter(Tenant.reference.isnot(None)).all():
        if normalize_id(t.reference) == wanted:
            return t
    return None


def import_rows_from_payload(body: Any) -> list[dict[str, Any]]:
    """
    Accepts a JSON list, {"rows": [...]} or {"tenants": [...]}. Each row's id
    falls back to its reference; rows without id or name are dropped.
    """
    if isinstance(body, list):
        raw_rows = body
    elif isinstance(body, dict) and isinstance(body.get("rows"), list):
        raw_rows = body["rows"]
    elif isinstance(body, dict) and isinstance(body.get("tenants"), list):
        raw_rows = body["tenants"]
    else:
        raw_rows = []

    rows: list[dict[str, Any]] = []
    for raw in raw_rows:
        if not isinstance(raw, dict):
            continue
        row = {
            "id": raw.get("id") if raw.get("id") not in (None, "") else raw.get("reference"),
            "name": raw.get("name"),
            "building": raw.get("building"),
            "property_id": raw.get("property_id"),
            "unit": raw.get("unit"),
            "monthly_rent": raw.get("monthly_rent"),
            "due_day": raw.get("due_day"),
            "reference": raw.get("reference"),
            "phone": raw.get("phone") or None,
        }
        if _text(row["id"]) and _text(row["name"]):
            rows.append(row)
    return rows
