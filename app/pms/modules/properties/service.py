from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.pms.audit import record_event
from app.pms.errors import bad_request, not_found
from app.pms.json_store import update_json
from app.pms.modules.properties.models import Property, Unit
from app.pms.modules.tenants.models import Tenant
from app.pms.utils import normalize_id, to_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User

logger = logging.getLogger(__name__)

UNIT_FIELDS = ("property_id", "unit", "floor", "type", "beds", "rent", "status")

# Documents keyed by tenant_id that go away with a force-deleted unit's tenants.
TENANT_KEYED_DATASETS = ("tenant_charges", "manual_payments")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ---------- Properties ----------
def _property_values(payload: dict[str, Any], *, require_id: bool) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "property_id" in payload:
        values["property_id"] = _text(payload.get("property_id"))
    if require_id and not values.get("property_id"):
        raise bad_request("property_id is required.")
    if "name" in payload:
        values["name"] = _text(payload.get("name"))
    if "building" in payload or (require_id and "name" in payload):
        values["building"] = _text(payload.get("building")) or _text(payload.get("name"))
    if "units" in payload:
        n = to_number(payload.get("units"))
        values["units"] = int(n) if n is not None else None
    return values


def list_properties(s: "Session") -> list[Property]:
    return s.query(Property).order_by(Property.property_id.asc()).all()


def get_property(s: "Session", property_pk: str) -> Property | None:
    if not property_pk:
        raise bad_request("Property id is required.")
    return s.get(Property, str(property_pk))


def create_property(s: "Session", payload: dict[str, Any], user: "User | None") -> Property:
    values = _property_values(payload, require_id=True)
    if s.query(Property).filter(Property.property_id == values["property_id"]).one_or_none():
        raise bad_request(f"Property {values['property_id']} already exists.")
    now = datetime.utcnow()
    prop = Property(id=_text(payload.get("id")) or str(uuid.uuid4()), created_at=now, updated_at=now, **values)
    s.add(prop)
    s.flush()
    record_event(s, actor=user, action="property.create", entity_type="Property", entity_id=prop.id,
                 metadata={"property_id": prop.property_id})
    return prop


def update_property(s: "Session", property_pk: str, payload: dict[str, Any], user: "User | None") -> Property:
    if not property_pk:
        raise bad_request("Property id is required.")
    values = _property_values(payload, require_id=False)
    if not values:
        raise bad_request("No fields provided to update.")
    if "property_id" in values and not values["property_id"]:
        raise bad_request("property_id cannot be blank.")
    prop = s.get(Property, str(property_pk))
    if prop is None:
        raise not_found("Property not found.")
    for field, value in values.items():
        setattr(prop, field, value)
    prop.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="property.update", entity_type="Property", entity_id=prop.id,
                 metadata={"fields": sorted(values)})
    return prop


def upsert_properties(s: "Session", entries: list[dict[str, Any]], user: "User | None") -> dict[str, int]:
    """Upsert on property_id (the business key), not on the surrogate id."""
    inserted = 0
    updated = 0
    now = datetime.utcnow()
    for entry in entries:
        values = _property_values(entry, require_id=True)
        prop = s.query(Property).filter(Property.property_id == values["property_id"]).one_or_none()
        if prop is None:
            s.add(Property(id=_text(entry.get("id")) or str(uuid.uuid4()), created_at=now, updated_at=now, **values))
            inserted += 1
        else:
            for field in ("building", "units", "name"):
                setattr(prop, field, values.get(field))
            prop.updated_at = now
            updated += 1
        s.flush()
    record_event(s, actor=user, action="property.upsert", entity_type="Property",
                 metadata={"inserted": inserted, "updated": updated})
    return {"inserted": inserted, "updated": updated}


# ---------- Units ----------
def _unit_values(payload: dict[str, Any], *, require_unit: bool) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field in UNIT_FIELDS:
        if field not in payload:
            continue
        values[field] = to_number(payload[field]) if field == "rent" else _text(payload[field])
    if require_unit and not values.get("unit"):
        raise bad_request("Unit label is required.")
    return values


def list_units(s: "Session", *, property_id: str | None = None) -> list[Unit]:
    q = s.query(Unit)
    if property_id:
        q = q.filter(Unit.property_id == property_id)
    return q.order_by(Unit.unit.asc()).all()


def get_unit(s: "Session", unit_id: str) -> Unit | None:
    if not unit_id:
        raise bad_request("Unit id is required.")
    return s.get(Unit, str(unit_id))


def create_unit(s: "Session", payload: dict[str, Any], user: "User | None") -> Unit:
    values = _unit_values(payload, require_unit=True)
    now = datetime.utcnow()
    unit = Unit(id=_text(payload.get("id")) or str(uuid.uuid4()), created_at=now, updated_at=now, **values)
    s.add(unit)
    s.flush()
    record_event(s, actor=user, action="unit.create", entity_type="Unit", entity_id=unit.id,
                 metadata={"property_id": unit.property_id, "unit": unit.unit})
    return unit


def update_unit(s: "Session", unit_id: str, payload: dict[str, Any], user: "User | None") -> Unit:
    if not unit_id:
        raise bad_request("Unit id is required.")
    values = _unit_values({k: v for k, v in payload.items() if k != "id"}, require_unit=False)
    if not values:
        raise bad_request("No fields provided to update.")
    if "unit" in values and not values["unit"]:
        raise bad_request("Unit label cannot be blank.")
    unit = s.get(Unit, str(unit_id))
    if unit is None:
        raise not_found("Unit not found.")
    for field, value in values.items():
        setattr(unit, field, value)
    unit.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="unit.update", entity_type="Unit", entity_id=unit.id,
                 metadata={"fields": sorted(values)})
    return unit


def _tenants_in_unit(s: "Session", unit: Unit) -> list[Tenant]:
    """
    Tenants whose unit label matches and whose property_id or building names the
    unit's property (by property_id, name or building; case-insensitive).
    """
    candidates: set[str] = set()
    if unit.property_id:
        candidates.add(unit.property_id.lower())
        prop = s.query(Property).filter(Property.property_id == unit.property_id).one_or_none()
        if prop is not None:
            for label in (prop.name, prop.building):
                if label:
                    candidates.add(label.lower())

    def matches_property(value: str | None) -> bool:
        if not candidates:
            return True
        key = (value or "").strip().lower()
        return bool(key) and key in candidates

    label = (unit.unit or "").strip().lower()
    return [
        t
        for t in s.query(Tenant).all()
        if t.unit and t.unit.strip().lower() == label and (matches_property(t.property_id) or matches_property(t.building))
    ]


def delete_unit(s: "Session", unit_id: str, user: "User | None", *, force: bool = False) -> list[str]:
    """
    Deletes the unit. With force, also deletes its tenants; callers follow up
    with drop_tenant_rows() once the SQL side is committed. Returns the deleted
    tenant ids.
    """
    if not unit_id:
        raise bad_request("Unit id is required.")
    unit = s.get(Unit, str(unit_id))
    if unit is None:
        raise not_found("Unit not found.")

    deleted_tenants: list[str] = []
    if force:
        tenants = _tenants_in_unit(s, unit)
        for t in tenants:
            deleted_tenants.append(t.id)
            s.delete(t)

    s.delete(unit)
    record_event(
        s,
        actor=user,
        action="unit.delete",
        entity_type="Unit",
        entity_id=str(unit_id),
        metadata={"force": force, "deleted_tenants": deleted_tenants},
    )
    if deleted_tenants:
        logger.info("Unit %s force-deleted with tenants %s", unit_id, deleted_tenants)
    return deleted_tenants


def drop_tenant_rows(tenant_ids: list[str]) -> None:
    """Remove rows belonging to deleted tenants from the tenant-keyed documents."""
    wanted = {normalize_id(tid) for tid in tenant_ids}
    if not wanted:
        return

    def _keep(rows: Any) -> list[Any]:
        return [
            r for r in (rows if isinstance(rows, list) else [])
            if not (isinstance(r, dict) and normalize_id(r.get("tenant_id")) in wanted)
        ]

    for key in TENANT_KEYED_DATASETS:
        update_json(key, _keep, [])
