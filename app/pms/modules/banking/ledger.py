"""
Ledger view of the bank feed plus the heuristics used by the reconciliation
screens: a transaction counts as reconciled when its text looks like a known
expense (debits) or a rent receipt (credits).
"""
from __future__ import annotations

import re
from typing import Any

from app.pms.utils import parse_date

KNOWN_EXPENSE_WORDS = ("utilities", "water", "gas", "electric", "repair", "clean", "fee", "insurance")
_RENT_DESCRIPTION = re.compile(r"\brent\b|\btenant\b|\bso\b")
_UNIT_REFERENCE = re.compile(r"\bunit\b|\bapt\b|\bflat\b")


def ledger_row(txn: dict[str, Any]) -> dict[str, Any]:
    amount = float(txn.get("amount") or 0)
    row = dict(txn)
    row["reference"] = txn.get("reference") or ""
    row["unit"] = ""
    row["type"] = txn.get("type") or ("credit" if amount >= 0 else "debit")
    return row


def is_unreconciled(txn: dict[str, Any]) -> bool:
    amount = float(txn.get("amount") or 0)
    description = (txn.get("description") or "").lower()
    if amount < 0:
        return not any(word in description for word in KNOWN_EXPENSE_WORDS)
    reference = (txn.get("reference") or "").lower()
    return not (_RENT_DESCRIPTION.search(description) or _UNIT_REFERENCE.search(reference))


def bank_summary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    balance = round(sum(float(r.get("amount") or 0) for r in rows), 2)
    dates = [d for d in (parse_date(r.get("date")) for r in rows) if d is not None]
    last = max(dates) if dates else None
    return {
        "bankBalance": balance,
        "unreconciledCount": sum(1 for r in rows if is_unreconciled(r)),
        "lastUpdatedISO": f"{last.isoformat()}T00:00:00.000Z" if last else None,
    }
