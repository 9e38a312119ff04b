from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from openpyxl import load_workbook

from app.pms.utils import parse_date, to_number


@dataclass(frozen=True)
class CsvRowError:
    row_number: int
    message: str


def _get(row: dict[str, Any], *names: str) -> str:
    for n in names:
        if n in row and row[n] is not None:
            return str(row[n]).strip()
    return ""


def _lower_keys(row: dict[Any, Any]) -> dict[str, Any]:
    return {str(k).strip().lower(): ("" if v is None else v) for k, v in row.items() if k is not None}


def _is_blank(raw: dict[Any, Any]) -> bool:
    return all(str(v if v is not None else "").strip() == "" for v in raw.values())


def parse_bank_records(records: Iterable[dict[Any, Any]]) -> tuple[list[dict], list[CsvRowError]]:
    """
    Normalize statement rows (header -> value) into transaction dicts.

    Two layouts are accepted (header names are case-insensitive):
    - date, description, amount (signed), optional reference/type/property_id/tenant_id
    - txn_date/date, particulars, deposit, withdrawal, ref  (the bank's own export)

    Row numbers in errors are spreadsheet rows (1 = header).
    """
    rows: list[dict] = []
    errors: list[CsvRowError] = []

    for idx, raw in enumerate(records, start=2):
        if not raw or _is_blank(raw):
            continue
        r = _lower_keys(raw)

        date_s = _get(r, "date", "txn_date", "transaction date", "value date")
        txn_date = parse_date(date_s)
        if txn_date is None:
            errors.append(CsvRowError(idx, f"Invalid date {date_s!r}."))
            continue

        description = _get(r, "description", "particulars", "narration", "details")
        if not description:
            errors.append(CsvRowError(idx, "Description is required."))
            continue

        amount = to_number(_get(r, "amount"))
        if amount is None:
            deposit = to_number(_get(r, "deposit", "credit"), 0.0) or 0.0
            withdrawal = to_number(_get(r, "withdrawal", "debit"), 0.0) or 0.0
            if not deposit and not withdrawal:
                errors.append(CsvRowError(idx, "Amount is required (amount, or deposit/withdrawal)."))
                continue
            amount = abs(deposit) - abs(withdrawal)

        txn_type = _get(r, "type").lower() or ("credit" if amount >= 0 else "debit")
        rows.append(
            {
                "date": txn_date.isoformat(),
                "description": description,
                "amount": round(amount, 2),
                "type": txn_type,
                "reference": _get(r, "reference", "ref") or None,
                "property_id": _get(r, "property_id", "property") or None,
                "tenant_id": _get(r, "tenant_id") or None,
            }
        )

    return rows, errors


def parse_bank_csv(file_bytes: bytes) -> tuple[list[dict], list[CsvRowError]]:
    text = file_bytes.decode("utf-8-sig", errors="replace")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValueError("CSV has no header row.")
    return parse_bank_records(reader)


def parse_bank_xlsx(file_bytes: bytes) -> tuple[list[dict], list[CsvRowError]]:
    """First worksheet; first row is the header."""
    try:
        wb = load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError("Could not read the Excel workbook.") from e
    try:
        ws = wb.worksheets[0]
        values = ws.iter_rows(values_only=True)
        header = next(values, None)
        if not header or all(h is None for h in header):
            raise ValueError("Worksheet has no header row.")
        headers = [str(h).strip() if h is not None else None for h in header]
        records = [dict(zip(headers, row)) for row in values]
    finally:
        wb.close()
    return parse_bank_records(records)


def parse_bank_file(filename: str, file_bytes: bytes) -> tuple[list[dict], list[CsvRowError]]:
    if filename.lower().endswith((".xlsx", ".xlsm")):
        return parse_bank_xlsx(file_bytes)
    return parse_bank_csv(file_bytes)
