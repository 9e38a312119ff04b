from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.pms.audit import record_event
from app.pms.errors import bad_request, not_found
from app.pms.json_store import read_json, update_json
from app.pms.modules.banking.models import BankTransaction
from app.pms.utils import parse_date, to_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User

logger = logging.getLogger(__name__)

MANUAL_PAYMENTS_KEY = "manual_payments"
CATEGORIES_KEY = "transaction_categories"


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _date_filter(value: str | date | None, label: str) -> date | None:
    if value in (None, ""):
        return None
    d = parse_date(value)
    if d is None:
        raise bad_request(f"Invalid {label} date.")
    return d


# ---------- Transactions ----------
def list_transactions(
    s: "Session",
    *,
    start: str | date | None = None,
    end: str | date | None = None,
    property_id: str | None = None,
    tenant_id: str | None = None,
    type: str | None = None,
) -> list[BankTransaction]:
    q = s.query(BankTransaction)
    start_d = _date_filter(start, "start")
    end_d = _date_filter(end, "end")
    if start_d:
        q = q.filter(BankTransaction.date >= start_d)
    if end_d:
        q = q.filter(BankTransaction.date <= end_d)
    if property_id:
        q = q.filter(BankTransaction.property_id == property_id)
    if tenant_id:
        q = q.filter(BankTransaction.tenant_id == tenant_id)
    if type:
        q = q.filter(BankTransaction.type == type)
    return q.order_by(BankTransaction.date.desc(), BankTransaction.id.desc()).all()


def normalize_transaction_input(payload: dict[str, Any]) -> dict[str, Any]:
    txn_date = parse_date(payload.get("date"))
    description = _text(payload.get("description"))
    amount = to_number(payload.get("amount"))
    if not _text(payload.get("date")):
        raise bad_request("Transaction date is required.")
    if txn_date is None:
        raise bad_request("Transaction date is invalid.")
    if not description:
        raise bad_request("Transaction description is required.")
    if amount is None:
        raise bad_request("Transaction amount is required.")
    return {
        "date": txn_date,
        "description": description,
        "amount": amount,
        "type": _text(payload.get("type")),
        "property_id": _text(payload.get("property_id")),
        "tenant_id": _text(payload.get("tenant_id")),
        "reference": _text(payload.get("reference")),
    }


def create_transaction(s: "Session", payload: dict[str, Any], user: "User | None", *, audit: bool = True) -> BankTransaction:
    values = normalize_transaction_input(payload)
    now = datetime.utcnow()
    txn = BankTransaction(id=_text(payload.get("id")) or str(uuid.uuid4()), created_at=now, updated_at=now, **values)
    s.add(txn)
    s.flush()
    if audit:
        record_event(s, actor=user, action="bank_transaction.create", entity_type="BankTransaction", entity_id=txn.id,
                     metadata={"amount": txn.amount, "date": txn.date.isoformat()})
    return txn


def import_transactions(s: "Session", rows: list[dict[str, Any]], user: "User | None", *, filename: str | None = None) -> list[BankTransaction]:
    created = [create_transaction(s, row, user, audit=False) for row in rows]
    record_event(
        s,
        actor=user,
        action="bank_transaction.import",
        entity_type="BankTransaction",
        metadata={"filename": filename, "count": len(created)},
    )
    return created


def categorize_transaction(s: "Session", txn_id: str, category_id: str | None, user: "User | None") -> BankTransaction:
    if not txn_id:
        raise bad_request("Transaction id is required.")
    txn = s.get(BankTransaction, str(txn_id))
    if txn is None:
        raise not_found("Transaction not found.")
    old = txn.category_id
    txn.category_id = _text(category_id)
    txn.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="bank_transaction.categorize", entity_type="BankTransaction", entity_id=txn.id,
                 metadata={"old": old, "new": txn.category_id})
    return txn


def match_transaction_to_tenant(
    s: "Session",
    txn_id: str,
    tenant_id: str,
    user: "User | None",
    *,
    amount: Any = None,
    note: str | None = None,
) -> BankTransaction:
    if not txn_id:
        raise bad_request("Transaction id is required.")
    if not tenant_id:
        raise bad_request("Tenant id is required.")
    txn = s.get(BankTransaction, str(txn_id))
    if txn is None:
        raise not_found("Transaction not found.")
    txn.matched_tenant_id = str(tenant_id)
    txn.match_amount = to_number(amount)
    txn.match_note = note
    txn.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="bank_transaction.match", entity_type="BankTransaction", entity_id=txn.id,
                 metadata={"tenant_id": txn.matched_tenant_id, "amount": txn.match_amount})
    return txn


# ---------- Manual payments (JSON document) ----------
def list_manual_payments() -> list[dict[str, Any]]:
    rows = read_json(MANUAL_PAYMENTS_KEY, [])
    return rows if isinstance(rows, list) else []


def add_manual_payment(payload: dict[str, Any]) -> dict[str, Any]:
    tenant_id = _text(payload.get("tenant_id"))
    amount = to_number(payload.get("amount"))
    paid_on = _text(payload.get("date"))
    if not tenant_id or not amount or not paid_on:
        raise bad_request("tenant_id, amount, and date are required")
    entry = {
        "id": str(uuid.uuid4()),
        "tenant_id": tenant_id,
        "amount": amount,
        "date": paid_on,
    }
    if _text(payload.get("description")):
        entry["description"] = _text(payload.get("description"))

    def _append(rows: Any) -> list[dict[str, Any]]:
        rows = rows if isinstance(rows, list) else []
        return [*rows, entry]

    update_json(MANUAL_PAYMENTS_KEY, _append, [])
    logger.info("Manual payment %s recorded for tenant %s", entry["id"], tenant_id)
    return entry


def delete_manual_payment(payment_id: str) -> None:
    if not payment_id:
        raise bad_request("id is required")
    update_json(
        MANUAL_PAYMENTS_KEY,
        lambda rows: [r for r in (rows if isinstance(rows, list) else []) if r.get("id") != payment_id],
        [],
    )


# ---------- Transaction categories (id -> account id) ----------
def get_transaction_categories() -> dict[str, str]:
    data = read_json(CATEGORIES_KEY, {})
    return data if isinstance(data, dict) else {}


def set_transaction_category(txn_id: str, account_id: str) -> dict[str, str]:
    txn_id = (txn_id or "").strip()
    account_id = (account_id or "").strip()
    if not txn_id or not account_id:
        raise bad_request("id and accountId are required")

    def _set(current: Any) -> dict[str, str]:
        mapping = dict(current) if isinstance(current, dict) else {}
        mapping[txn_id] = account_id
        return mapping

    return update_json(CATEGORIES_KEY, _set, {})
