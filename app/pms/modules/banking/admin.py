from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, render_template, request

from app.pms.db import db_session
from app.pms.errors import bad_request
from app.pms.modules.banking.ledger import bank_summary, is_unreconciled, ledger_row
from app.pms.modules.banking.parsers import parse_bank_file
from app.pms.modules.banking.service import (
    add_manual_payment,
    categorize_transaction,
    create_transaction,
    delete_manual_payment,
    get_transaction_categories,
    import_transactions,
    list_manual_payments,
    list_transactions,
    match_transaction_to_tenant,
    set_transaction_category,
)
from app.pms.rbac import require_permission
from app.pms.utils import json_object

bp = Blueprint("banking", __name__)


def _ledger_rows() -> list[dict]:
    txns = list_transactions(
        db_session(),
        start=request.args.get("start") or None,
        end=request.args.get("end") or None,
        property_id=(request.args.get("propertyId") or "").strip() or None,
    )
    return [ledger_row(t.to_dict()) for t in txns]


# ---------- Transactions ----------
@bp.get("/api/bank-transactions")
@require_permission("banking.view")
def api_transactions_list():
    txns = list_transactions(
        db_session(),
        start=request.args.get("start") or None,
        end=request.args.get("end") or None,
        property_id=(request.args.get("propertyId") or "").strip() or None,
        tenant_id=(request.args.get("tenantId") or "").strip() or None,
        type=(request.args.get("type") or "").strip() or None,
    )
    return jsonify({"ok": True, "data": [t.to_dict() for t in txns]})


@bp.post("/api/bank-transactions")
@require_permission("banking.edit")
def api_transactions_create():
    s = db_session()
    txn = create_transaction(s, json_object(), g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": txn.to_dict()}), 201


@bp.post("/api/bank-transactions/import")
@require_permission("banking.edit")
def api_transactions_import():
    f = request.files.get("file")
    if not f or not f.filename:
        raise bad_request("Statement file (CSV or XLSX) is required.")
    try:
        rows, errors = parse_bank_file(f.filename, f.read())
    except ValueError as e:
        raise bad_request(str(e)) from e

    s = db_session()
    created = import_transactions(s, rows, g.current_user, filename=f.filename) if rows else []
    s.commit()
    current_app.logger.info("Bank statement %s: imported=%s errors=%s", f.filename, len(created), len(errors))
    return jsonify(
        {
            "ok": True,
            "data": {
                "imported": len(created),
                "errors": [{"row": e.row_number, "message": e.message} for e in errors],
            },
        }
    )


@bp.patch("/api/bank-transactions/<txn_id>/category")
@require_permission("banking.edit")
def api_transaction_categorize(txn_id: str):
    payload = json_object()
    s = db_session()
    txn = categorize_transaction(s, txn_id, payload.get("category_id"), g.current_user)
    s.commit()
    return jsonify({"ok": True, "data": txn.to_dict()})


@bp.patch("/api/bank-transactions/<txn_id>/match")
@require_permission("banking.edit")
def api_transaction_match(txn_id: str):
    payload = json_object()
    s = db_session()
    txn = match_transaction_to_tenant(
        s,
        txn_id,
        str(payload.get("tenant_id") or "").strip(),
        g.current_user,
        amount=payload.get("amount"),
        note=payload.get("note"),
    )
    s.commit()
    return jsonify({"ok": True, "data": txn.to_dict()})


# ---------- Ledger ----------
@bp.get("/api/ledger")
@require_permission("banking.view")
def api_ledger():
    return jsonify({"ok": True, "data": _ledger_rows()})


@bp.get("/api/ledger/unreconciled")
@require_permission("banking.view")
def api_ledger_unreconciled():
    return jsonify({"ok": True, "data": [r for r in _ledger_rows() if is_unreconciled(r)]})


@bp.get("/api/bank-summary")
@require_permission("banking.view")
def api_bank_summary():
    return jsonify({"ok": True, "data": bank_summary(_ledger_rows())})


# ---------- Manual payments ----------
@bp.get("/api/manual-payments")
@require_permission("banking.view")
def api_manual_payments_list():
    return jsonify({"ok": True, "data": list_manual_payments()})


@bp.post("/api/manual-payments")
@require_permission("banking.edit")
def api_manual_payments_create():
    entry = add_manual_payment(json_object())
    return jsonify({"ok": True, "data": entry}), 201


@bp.delete("/api/manual-payments")
@require_permission("banking.edit")
def api_manual_payments_delete():
    delete_manual_payment((request.args.get("id") or "").strip())
    return jsonify({"ok": True})


# ---------- Categories ----------
@bp.get("/api/transaction-categories")
@require_permission("banking.view")
def api_categories_list():
    return jsonify({"ok": True, "data": get_transaction_categories()})


@bp.post("/api/transaction-categories")
@require_permission("banking.edit")
def api_categories_set():
    payload = json_object()
    set_transaction_category(str(payload.get("id") or ""), str(payload.get("accountId") or ""))
    return jsonify({"ok": True})


# ---------- Pages ----------
@bp.get("/admin/banking/unreconciled")
@require_permission("banking.view")
def unreconciled_page():
    rows = _ledger_rows()
    return render_template(
        "banking/unreconciled.html",
        rows=[r for r in rows if is_unreconciled(r)],
        summary=bank_summary(rows),
        start=request.args.get("start") or "",
        end=request.args.get("end") or "",
    )
