"""SMS bodies and phone formatting for rent reminders."""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any

from app.pms.utils import clamp_day, to_number

_NON_DIGIT = re.compile(r"\D")


def normalize_phone(value: str | None) -> str:
    """
    Keeps an explicit "+..." number as is. Otherwise digits only: 10 digits are
    treated as a North American number ("+1..."), anything else gets a "+".
    """
    text = (value or "").strip()
    if not text:
        return ""
    if text.startswith("+"):
        return text
    digits = _NON_DIGIT.sub("", text)
    if not digits:
        return ""
    return f"+1{digits}" if len(digits) == 10 else f"+{digits}"


def resolve_due_date(due_day: Any, reference_date: date) -> date | None:
    day = to_number(due_day)
    if day is None or day <= 0:
        return None
    return clamp_day(reference_date.year, reference_date.month, int(day))


def format_currency(value: float) -> str:
    return f"${value or 0:,.2f}"


def build_rent_reminder_body(name: str | None, monthly_rent: Any, due_day: Any, reference_date: date | None = None) -> str:
    reference_date = reference_date or date.today()
    tenant_name = (name or "").strip() or "tenant"
    amount = format_currency(to_number(monthly_rent, 0.0) or 0.0)
    due = resolve_due_date(due_day, reference_date)
    due_label = f"{due.strftime('%b')} {due.day}, {due.year}" if due else "this month"
    return (
        f"Hi {tenant_name}, this is a gentle reminder that your rent of {amount} was due on {due_label}. "
        "Please pay at your earliest convenience. Thanks!"
    )


def build_late_rent_message(name: str | None, *, company_name: str, company_phone: str = "") -> str:
    tenant_name = name or "tenant"
    help_line = f" Call {company_phone} if you need help." if company_phone else ""
    return (
        f"Hi {tenant_name}, this is a reminder from {company_name} that your rent is past due. "
        f"Please log in to the tenant portal to pay.{help_line}"
    )


def is_past_grace_period(due_day: Any, reference_date: date | None = None, grace_days: int = 3) -> bool:
    reference_date = reference_date or date.today()
    due = resolve_due_date(due_day, reference_date)
    if due is None:
        return False
    return reference_date >= due + timedelta(days=grace_days)
