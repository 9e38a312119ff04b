from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

from flask import request

from app.pms.errors import bad_request

_NON_NUMERIC = re.compile(r"[^\d.-]")


def now_iso() -> str:
    """UTC timestamp in the millisecond ISO form the JSON documents use."""
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def iso_after(delta: timedelta) -> str:
    return (datetime.utcnow() + delta).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def is_past(iso_value: str | None) -> bool:
    """True when an ISO timestamp (naive = UTC) is in the past; False for empty or unparseable."""
    if not iso_value:
        return False
    try:
        when = datetime.fromisoformat(str(iso_value).replace("Z", "+00:00"))
    except ValueError:
        return False
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when < datetime.now(timezone.utc)


def to_number(value: Any, default: float | None = None) -> float | None:
    """
    Lenient numeric coercion: strips currency symbols, thousands separators etc.
    "" / None / garbage -> default.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return default


def normalize_id(value: Any) -> str:
    """Spreadsheet exports turn ids into floats ("12.0"); undo that."""
    text = "" if value is None else str(value).strip()
    return text[:-2] if text.endswith(".0") else text


def parse_date(value: Any) -> date | None:
    """
    Accepts YYYY-MM-DD (optionally with a time part) and DD-MM-YYYY / DD/MM/YYYY.
    Returns None when the value is empty or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    parts = re.split(r"[-/]", s[:10])
    if len(parts) == 3 and len(parts[0]) != 4 and len(parts[2]) == 4:
        s = f"{parts[2]}-{parts[1].zfill(2)}-{parts[0].zfill(2)}"
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(max(day, 1), days_in_month(year, month)))


def json_body() -> Any:
    """Parsed JSON request body; 400 when the body is not JSON."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise bad_request("JSON body required.")
    return payload


def json_object() -> dict[str, Any]:
    payload = json_body()
    if not isinstance(payload, dict):
        raise bad_request("JSON object body required.")
    return payload


def clean_none(values: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None (absent in a partial update)."""
    return {k: v for k, v in values.items() if v is not None}


def truthy(value: Any) -> bool:
    """Form-style booleans: "1", "true", "yes", "on" (any case)."""
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")
