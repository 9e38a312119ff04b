from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.modules.meter_readings.service import create_reading, list_readings
from app.pms.rbac import require_permission
from app.pms.utils import json_object

bp = Blueprint("meter_readings", __name__)


@bp.get("/api/meter-readings")
@require_permission("readings.view")
def api_list():
    readings = list_readings(
        db_session(),
        unit=(request.args.get("unit") or "").strip() or None,
        meter_type=(request.args.get("meterType") or "").strip() or None,
    )
    return jsonify({"ok": True, "data": [r.to_dict() for r in readings]})


@bp.post("/api/meter-readings")
@require_permission("readings.edit")
def api_create():
    s = db_session()
    reading = create_reading(s, json_object(), g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": reading.to_dict()}), 201
