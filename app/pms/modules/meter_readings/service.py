from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.pms.audit import record_event
from app.pms.errors import bad_request
from app.pms.modules.meter_readings.models import MeterReading
from app.pms.modules.settings.service import load_settings
from app.pms.utils import parse_date, to_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def list_readings(s: "Session", *, unit: str | None = None, meter_type: str | None = None) -> list[MeterReading]:
    q = s.query(MeterReading)
    if unit:
        q = q.filter(MeterReading.unit == unit)
    if meter_type:
        q = q.filter(MeterReading.meter_type == meter_type)
    return q.order_by(MeterReading.reading_date.desc(), MeterReading.created_at.desc()).all()


def previous_value(s: "Session", unit: str, meter_type: str) -> float:
    """Latest reading for the unit + meter, else the configured initial reading, else 0."""
    latest = (
        s.query(MeterReading)
        .filter(MeterReading.unit == unit, MeterReading.meter_type == meter_type)
        .order_by(MeterReading.reading_date.desc(), MeterReading.created_at.desc())
        .first()
    )
    if latest is not None:
        return float(latest.reading_value or 0)
    if meter_type in ("water", "electricity"):
        initial = load_settings("initial-readings")["initialReadings"]
        return float(initial.get(meter_type) or 0)
    return 0.0


def create_reading(s: "Session", payload: dict[str, Any], user: "User | None") -> MeterReading:
    unit = _text(payload.get("unit"))
    meter_type = _text(payload.get("meter_type"))
    reading_date_s = _text(payload.get("reading_date"))
    value = to_number(payload.get("reading_value"))

    if not unit:
        raise bad_request("Unit is required.")
    if not meter_type:
        raise bad_request("Meter type is required.")
    if not reading_date_s:
        raise bad_request("Reading date is required.")
    if value is None:
        raise bad_request("Reading value is required.")
    reading_date = parse_date(reading_date_s)
    if reading_date is None:
        raise bad_request("Reading date is invalid.")

    prev = previous_value(s, unit, meter_type)
    reading = MeterReading(
        id=str(uuid.uuid4()),
        unit=unit,
        tenant_id=_text(payload.get("tenant_id")),
        meter_type=meter_type,
        reading_date=reading_date,
        reading_value=value,
        prev_value=prev,
        usage=round(value - prev, 2),
        amount=0,
        proof_url=_text(payload.get("proof_url")),
        created_at=datetime.utcnow(),
    )
    s.add(reading)
    s.flush()
    record_event(
        s,
        actor=user,
        action="meter_reading.create",
        entity_type="MeterReading",
        entity_id=reading.id,
        metadata={"unit": unit, "meter_type": meter_type, "usage": reading.usage},
    )
    return reading
