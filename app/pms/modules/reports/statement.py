"""
Tenant statements: monthly rent charges plus extra charges, less payments,
with a running balance.

Charges and payments are merged by date; on the same date charges sort first.
Balances and totals are rounded to 2 decimals.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from app.pms.errors import bad_request, not_found
from app.pms.json_store import read_records
from app.pms.modules.banking.models import BankTransaction
from app.pms.modules.banking.service import list_manual_payments
from app.pms.modules.reports.csv_export import csv_value
from app.pms.modules.tenants.service import find_tenant_by_any_id
from app.pms.utils import clamp_day, normalize_id, parse_date, to_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TENANT_CHARGES_KEY = "tenant_charges"


@dataclass
class Entry:
    """A charge or payment before it is placed on the statement."""

    date: date
    amount: float
    description: str
    kind: str  # "charge" | "payment"
    source: str | None = None


@dataclass
class Statement:
    rows: list[dict[str, Any]] = field(default_factory=list)
    totals: dict[str, float] = field(default_factory=dict)


def build_charges(tenant: dict[str, Any], start: date, end: date) -> list[Entry]:
    """One rent charge per month on the due day (clamped to month length), within [start, end]."""
    rent = to_number(tenant.get("monthly_rent"), 0.0) or 0.0
    if not rent:
        return []
    due_day = int(to_number(tenant.get("due_day"), 1.0) or 1)
    if due_day <= 0:
        due_day = 1

    entries: list[Entry] = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        charge_date = clamp_day(year, month, due_day)
        if start <= charge_date <= end:
            entries.append(Entry(charge_date, rent, f"Rent for {charge_date.strftime('%B %Y')}", "charge"))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return entries


def create_statement(
    tenant: dict[str, Any],
    start: date,
    end: date,
    payments: list[Entry],
    additional_charges: list[Entry] | None = None,
    *,
    include_rent_charges: bool = True,
) -> Statement:
    if start > end:
        raise bad_request("Start date must be before end date")

    charges = build_charges(tenant, start, end) if include_rent_charges else []
    charges += [c for c in (additional_charges or []) if c.amount and start <= c.date <= end]
    in_range = [p for p in payments if start <= p.date <= end]

    combined = sorted(charges + in_range, key=lambda e: (e.date, 0 if e.kind == "charge" else 1))

    statement = Statement()
    balance = 0.0
    total_charges = 0.0
    total_payments = 0.0
    for entry in combined:
        if entry.kind == "charge":
            balance += entry.amount
            total_charges += entry.amount
        else:
            balance -= entry.amount
            total_payments += entry.amount
        statement.rows.append(
            {
                "date": entry.date.isoformat(),
                "description": entry.description or ("Charge" if entry.kind == "charge" else "Payment received"),
                "charge": entry.amount if entry.kind == "charge" else 0,
                "payment": entry.amount if entry.kind == "payment" else 0,
                "balance": round(balance, 2),
                "entryType": entry.kind,
                "source": entry.source,
            }
        )
    statement.totals = {
        "charges": round(total_charges, 2),
        "payments": round(total_payments, 2),
        "balance": round(balance, 2),
    }
    return statement


def default_period(start: date | None, end: date | None, *, today: date | None = None) -> tuple[date, date]:
    """end defaults to today; start to the 1st of the month two months before end."""
    end = end or today or date.today()
    if start is None:
        year, month = end.year, end.month - 2
        if month < 1:
            year, month = year - 1, month + 12
        start = date(year, month, 1)
    return start, end


# ---------- Inputs ----------
def _bank_payments(s: "Session", tenant: dict[str, Any], start: date, end: date) -> list[Entry]:
    tenant_id = normalize_id(tenant["id"])
    name = (tenant.get("name") or "").lower()
    reference = (tenant.get("reference") or "").lower()

    q = s.query(BankTransaction).filter(
        BankTransaction.date >= start,
        BankTransaction.date <= end,
        BankTransaction.amount > 0,
    )
    entries = []
    for txn in q.all():
        description = (txn.description or "").lower()
        matched = (
            normalize_id(txn.tenant_id) == tenant_id
            or normalize_id(txn.matched_tenant_id) == tenant_id
            or (reference and reference in description)
            or (name and name in description)
        )
        if not matched:
            continue
        amount = txn.match_amount if txn.match_amount is not None else txn.amount
        entries.append(Entry(txn.date, float(amount), txn.description or "Payment received", "payment", "bank"))
    return entries


def _manual_payments(tenant_id: str) -> list[Entry]:
    entries = []
    for row in list_manual_payments():
        if normalize_id(row.get("tenant_id")) != tenant_id:
            continue
        when = parse_date(row.get("date"))
        if when is None:
            continue
        amount = to_number(row.get("amount"), 0.0) or 0.0
        entries.append(Entry(when, amount, row.get("description") or "Manual payment", "payment", "manual"))
    return entries


def _extra_charges(tenant_id: str) -> list[Entry]:
    entries = []
    for row in read_records(TENANT_CHARGES_KEY):
        if normalize_id(row.get("tenant_id")) != tenant_id:
            continue
        when = parse_date(row.get("date"))
        if when is None:
            continue
        amount = to_number(row.get("amount"), 0.0) or 0.0
        entries.append(Entry(when, amount, row.get("description") or "Charge", "charge", row.get("category")))
    return entries


def tenant_statement(s: "Session", tenant_id: str, *, start: date | None = None, end: date | None = None) -> dict[str, Any]:
    tenant_obj = find_tenant_by_any_id(s, tenant_id)
    if tenant_obj is None:
        raise not_found("Tenant not found")
    tenant = tenant_obj.to_dict()
    start, end = default_period(start, end)
    if start > end:
        raise bad_request("Start date must be before end date")

    key = normalize_id(tenant["id"])
    payments = _bank_payments(s, tenant, start, end) + _manual_payments(key)
    statement = create_statement(tenant, start, end, payments, _extra_charges(key))
    logger.debug("Statement for %s: %d rows", key, len(statement.rows))
    return {
        "tenant": {
            "id": tenant["id"],
            "name": tenant["name"],
            "property": tenant.get("building") or tenant.get("property_id"),
            "unit": tenant.get("unit"),
            "monthlyRent": tenant.get("monthly_rent") or 0,
            "dueDay": tenant.get("due_day") or 1,
        },
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "totals": statement.totals,
        "rows": statement.rows,
    }


def statement_csv(payload: dict[str, Any]) -> str:
    tenant = payload["tenant"]
    period = payload["period"]
    lines = [
        f"Tenant,{csv_value(tenant.get('name') or '')}",
        f"Unit,{csv_value(tenant.get('unit') or '—')}",
        f"Period,{csv_value(period['start'] + ' – ' + period['end'])}",
        "",
        ",".join(["Date", "Type", "Description", "Charge", "Payment", "Balance", "Source"]),
    ]
    for row in payload["rows"]:
        cells = [
            row["date"],
            row["entryType"],
            row["description"],
            f"{row['charge']:.2f}" if row["charge"] else "",
            f"{row['payment']:.2f}" if row["payment"] else "",
            f"{row['balance']:.2f}",
            row.get("source") or "",
        ]
        lines.append(",".join(csv_value(c) for c in cells))
    return "\n".join(lines)
