from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote

from app.pms.errors import bad_request, not_found
from app.pms.json_store import read_json, read_records, write_json
from app.pms.modules.banking.service import list_manual_payments, list_transactions
from app.pms.modules.meter_readings.service import list_readings
from app.pms.modules.reports.csv_export import build_csv
from app.pms.modules.tenants.service import list_tenants

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

PINS_KEY = "reports_pins"

# Spreadsheet feeds exposed to external tools; each maps to the dataset of the same stem.
DATA_FILES: tuple[str, ...] = (
    "bank_all_buildings_simple.csv",
    "bank_balances.csv",
    "bank_import_summary.csv",
    "bank_reconciliation_items.csv",
    "deposit_transactions.csv",
    "journal_entries.csv",
    "kpi_dashboard.csv",
    "maintenance_tickets.csv",
    "month_end_tasks.csv",
    "monthly_owner_summary.csv",
    "properties_all_buildings.csv",
    "tenant_charges.csv",
    "tenant_deposits.csv",
    "tenants_all_buildings_simple_unique.csv",
    "unit_expenses.csv",
    "unit_inventory.csv",
    "unit_turnover.csv",
    "units_master_66.csv",
)


# ---------- Integrations feed ----------
def integration_filename(raw: str) -> str:
    name = unquote(raw or "")
    if not name or ".." in name or "/" in name or not name.lower().endswith(".csv") or name not in DATA_FILES:
        raise bad_request("Invalid file name")
    return name


def integration_csv(raw: str) -> tuple[str, str]:
    """Returns (filename, csv text) for a whitelisted feed."""
    name = integration_filename(raw)
    return name, build_csv(read_records(name[: -len(".csv")]))


# ---------- Export centre ----------
def _tenant_rows(s: "Session") -> list[dict[str, Any]]:
    return [t.to_dict() for t in list_tenants(s)]


def _transaction_rows(s: "Session") -> list[dict[str, Any]]:
    return [t.to_dict() for t in list_transactions(s)]


def _manual_payment_rows(s: "Session") -> list[dict[str, Any]]:
    return list_manual_payments()


def _reading_rows(s: "Session") -> list[dict[str, Any]]:
    return [r.to_dict() for r in list_readings(s)]


EXPORT_SOURCES: dict[str, Callable[["Session"], list[dict[str, Any]]]] = {
    "tenants": _tenant_rows,
    "bank-transactions": _transaction_rows,
    "manual-payments": _manual_payment_rows,
    "meter-readings": _reading_rows,
}


def export_csv(s: "Session", source: str) -> tuple[str, int]:
    """Returns (csv text, row count)."""
    loader = EXPORT_SOURCES.get(source)
    if loader is None:
        raise not_found("Unknown export source.")
    rows = loader(s)
    return build_csv(rows), len(rows)


# ---------- Pinned reports ----------
def get_pinned() -> list[str]:
    pins = read_json(PINS_KEY, [])
    return [p for p in pins if isinstance(p, str)] if isinstance(pins, list) else []


def set_pinned(pins: Any) -> list[str]:
    if not isinstance(pins, list) or not all(isinstance(p, str) for p in pins):
        raise bad_request("Pinned reports must be a list of strings.")
    cleaned = list(dict.fromkeys(p.strip() for p in pins if p.strip()))
    return write_json(PINS_KEY, cleaned)
