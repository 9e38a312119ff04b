"""Commercial tenant collections (one JSON document each)."""
from __future__ import annotations

from app.pms.json_store import Record, read_records

ORGS_KEY = "tenant_orgs"
LEASES_KEY = "leases_commercial"
CHECKPOINTS_KEY = "onboarding_commercial"
DOCUMENTS_KEY = "documents_commercial"
INVOICES_KEY = "invoices"
TICKETS_KEY = "facilities_tickets"
NOTICES_KEY = "notices"


def get_orgs() -> list[Record]:
    return read_records(ORGS_KEY)


def get_leases() -> list[Record]:
    return read_records(LEASES_KEY)


def get_checkpoints() -> list[Record]:
    return read_records(CHECKPOINTS_KEY)


def get_documents() -> list[Record]:
    return read_records(DOCUMENTS_KEY)


def get_invoices() -> list[Record]:
    return read_records(INVOICES_KEY)


def get_tickets() -> list[Record]:
    return read_records(TICKETS_KEY)


def get_notices() -> list[Record]:
    return read_records(NOTICES_KEY)
