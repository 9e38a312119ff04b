"""Residential onboarding collections (one JSON document each)."""
from __future__ import annotations

from app.pms.json_store import Record, read_records

TENANTS_KEY = "onboarding_tenants"
LEASES_KEY = "leases"
CHECKPOINTS_KEY = "onboarding"
DOCUMENTS_KEY = "documents"


def get_tenants() -> list[Record]:
    return read_records(TENANTS_KEY)


def get_leases() -> list[Record]:
    return read_records(LEASES_KEY)


def get_checkpoints() -> list[Record]:
    return read_records(CHECKPOINTS_KEY)


def get_documents() -> list[Record]:
    return read_records(DOCUMENTS_KEY)
