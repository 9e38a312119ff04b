"""Tests for the bank feed: statement import, matching, ledger views and manual payments."""
import io

import pytest
from openpyxl import Workbook

from app.pms import create_app
from app.pms.db import session_scope
from app.pms.models import Base, User
from app.pms.modules.banking.ledger import bank_summary, is_unreconciled, ledger_row
from app.pms.modules.banking.parsers import parse_bank_csv, parse_bank_file
from app.pms.security import hash_password

BANK_CSV = (
    "Date,Description,Amount,Reference\n"
    "2024-01-05,Rent payment Ann,1000.00,UNIT 1A\n"
    "05/01/2024,Water utilities,-120.50,\n"
    "not-a-date,Broken,5,\n"
    "2024-01-07,,5,\n"
    ",,,\n"
)


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("JSON_STORE_BACKEND", "database")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(User(phone="+15550000001", password_hash=hash_password("pw"), role="admin", is_active=True))
    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    c.post("/api/auth/login", json={"phone": "+15550000001", "password": "pw"})
    return c


# ---------- Parsers ----------
def test_parse_bank_csv_rows_and_errors():
    rows, errors = parse_bank_csv(BANK_CSV.encode("utf-8"))
    assert [r["date"] for r in rows] == ["2024-01-05", "2024-01-05"]
    assert rows[0]["type"] == "credit"
    assert rows[0]["reference"] == "UNIT 1A"
    assert rows[1]["amount"] == -120.5
    assert rows[1]["type"] == "debit"
    assert rows[1]["reference"] is None
    assert [(e.row_number, e.message) for e in errors] == [
        (4, "Invalid date 'not-a-date'."),
        (5, "Description is required."),
    ]


def test_parse_bank_csv_deposit_withdrawal_layout():
    text = "Txn_Date,Particulars,Deposit,Withdrawal,Ref\n2024-02-01,Transfer in,500,,R1\n2024-02-02,Cash out,,200,\n2024-02-03,Nothing,,,\n"
    rows, errors = parse_bank_csv(text.encode("utf-8"))
    assert [r["amount"] for r in rows] == [500.0, -200.0]
    assert rows[0]["reference"] == "R1"
    assert errors[0].row_number == 4


def test_parse_bank_csv_requires_header():
    with pytest.raises(ValueError):
        parse_bank_csv(b"")


def test_parse_bank_xlsx():
    data = _xlsx(
        [
            ["Date", "Description", "Amount"],
            ["2024-03-01", "Rent Ben", 1100],
            [None, None, None],
            ["2024-03-02", "Bank fee", -5],
        ]
    )
    rows, errors = parse_bank_file("statement.XLSX", data)
    assert errors == []
    assert [(r["date"], r["amount"]) for r in rows] == [("2024-03-01", 1100.0), ("2024-03-02", -5.0)]


def test_parse_bank_xlsx_unreadable():
    with pytest.raises(ValueError):
        parse_bank_file("statement.xlsx", b"not a workbook")


# ---------- Ledger heuristics ----------
def test_reconciliation_heuristics():
    assert not is_unreconciled({"amount": -50, "description": "Electric bill"})
    assert is_unreconciled({"amount": -50, "description": "Mystery"})
    assert not is_unreconciled({"amount": 100, "description": "Monthly rent"})
    assert not is_unreconciled({"amount": 100, "description": "Transfer", "reference": "Unit 4"})
    assert is_unreconciled({"amount": 100, "description": "Transfer", "reference": "X1"})


def test_ledger_row_and_summary():
    row = ledger_row({"amount": -3, "description": "Fee"})
    assert row["type"] == "debit"
    assert row["reference"] == ""

    summary = bank_summary(
        [
            {"amount": 100, "description": "rent", "date": "2024-01-02"},
            {"amount": -40, "description": "Unknown", "date": "2024-01-09"},
        ]
    )
    assert summary == {"bankBalance": 60.0, "unreconciledCount": 1, "lastUpdatedISO": "2024-01-09T00:00:00.000Z"}
    assert bank_summary([])["lastUpdatedISO"] is None


# ---------- API ----------
def test_create_and_filter_transactions(client):
    r = client.post("/api/bank-transactions", json={"date": "2024-01-10", "description": "Rent", "amount": "500", "tenant_id": "T-1"})
    assert r.status_code == 201
    client.post("/api/bank-transactions", json={"date": "2024-02-10", "description": "Repair", "amount": -80, "type": "debit"})

    assert len(client.get("/api/bank-transactions").json["data"]) == 2
    assert len(client.get("/api/bank-transactions?start=2024-02-01").json["data"]) == 1
    assert len(client.get("/api/bank-transactions?tenantId=T-1").json["data"]) == 1
    assert len(client.get("/api/bank-transactions?type=debit").json["data"]) == 1

    r = client.get("/api/bank-transactions?start=garbage")
    assert r.status_code == 400
    assert r.json["error"] == "Invalid start date."


def test_create_transaction_validation(client):
    r = client.post("/api/bank-transactions", json={"description": "X", "amount": 1})
    assert r.json["error"] == "Transaction date is required."
    r = client.post("/api/bank-transactions", json={"date": "2024-13-45", "description": "X", "amount": 1})
    assert r.json["error"] == "Transaction date is invalid."
    r = client.post("/api/bank-transactions", json={"date": "2024-01-01", "amount": 1})
    assert r.json["error"] == "Transaction description is required."
    r = client.post("/api/bank-transactions", json={"date": "2024-01-01", "description": "X"})
    assert r.status_code == 400
    assert r.json["error"] == "Transaction amount is required."


def test_import_csv_statement(client):
    r = client.post(
        "/api/bank-transactions/import",
        data={"file": (io.BytesIO(BANK_CSV.encode("utf-8")), "jan.csv")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert r.json["data"]["imported"] == 2
    assert len(r.json["data"]["errors"]) == 2
    assert len(client.get("/api/bank-transactions").json["data"]) == 2


def test_import_xlsx_statement(client):
    data = _xlsx([["Date", "Description", "Amount"], ["2024-03-01", "Rent Ben", 1100]])
    r = client.post(
        "/api/bank-transactions/import",
        data={"file": (io.BytesIO(data), "march.xlsx")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert r.json["data"] == {"imported": 1, "errors": []}


def test_import_requires_file(client):
    r = client.post("/api/bank-transactions/import", data={}, content_type="multipart/form-data")
    assert r.status_code == 400
    assert r.json["error"] == "Statement file (CSV or XLSX) is required."


def test_categorize_and_match(client):
    txn = client.post("/api/bank-transactions", json={"date": "2024-01-10", "description": "Transfer", "amount": 900}).json["data"]

    r = client.patch(f"/api/bank-transactions/{txn['id']}/category", json={"category_id": "exp_5000"})
    assert r.json["data"]["category_id"] == "exp_5000"

    r = client.patch(f"/api/bank-transactions/{txn['id']}/match", json={"tenant_id": "T-1", "amount": "450", "note": "half"})
    data = r.json["data"]
    assert data["matched_tenant_id"] == "T-1"
    assert data["match_amount"] == 450.0
    assert data["match_note"] == "half"

    assert client.patch(f"/api/bank-transactions/{txn['id']}/match", json={}).status_code == 400
    assert client.patch("/api/bank-transactions/nope/category", json={"category_id": "x"}).status_code == 404


def test_ledger_endpoints(client):
    client.post("/api/bank-transactions", json={"date": "2024-01-10", "description": "Rent Ann", "amount": 500})
    client.post("/api/bank-transactions", json={"date": "2024-01-12", "description": "Mystery", "amount": -20})

    ledger = client.get("/api/ledger").json["data"]
    assert {r["type"] for r in ledger} == {"credit", "debit"}

    unreconciled = client.get("/api/ledger/unreconciled").json["data"]
    assert [r["description"] for r in unreconciled] == ["Mystery"]

    summary = client.get("/api/bank-summary").json["data"]
    assert summary["bankBalance"] == 480.0
    assert summary["unreconciledCount"] == 1

    r = client.get("/admin/banking/unreconciled")
    assert r.status_code == 200
    assert b"Mystery" in r.data


def test_manual_payments(client):
    r = client.post("/api/manual-payments", json={"tenant_id": "T-1", "amount": 0, "date": "2024-01-01"})
    assert r.status_code == 400

    r = client.post("/api/manual-payments", json={"tenant_id": "T-1", "amount": "250", "date": "2024-01-01", "description": "Cash"})
    assert r.status_code == 201
    payment = r.json["data"]
    assert payment["description"] == "Cash"

    assert client.get("/api/manual-payments").json["data"] == [payment]
    assert client.delete(f"/api/manual-payments?id={payment['id']}").status_code == 200
    assert client.get("/api/manual-payments").json["data"] == []
    assert client.delete("/api/manual-payments").status_code == 400


def test_transaction_categories_map(client):
    assert client.get("/api/transaction-categories").json["data"] == {}
    r = client.post("/api/transaction-categories", json={"id": "txn-1", "accountId": "exp_5100"})
    assert r.status_code == 200
    assert client.get("/api/transaction-categories").json["data"] == {"txn-1": "exp_5100"}
    assert client.post("/api/transaction-categories", json={"id": "txn-1"}).status_code == 400
