"""Tests for tenant statements, CSV downloads and pinned reports."""
from datetime import date

import pytest

from app.pms import create_app
from app.pms.db import session_scope
from app.pms.errors import RepoError
from app.pms.json_store import write_json
from app.pms.models import AuditEvent, Base, User
from app.pms.modules.reports.csv_export import build_csv, csv_value
from app.pms.modules.reports.statement import Entry, build_charges, create_statement, default_period
from app.pms.security import hash_password


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


def _seed_ledger(app, client):
    client.post("/api/tenants", json={"id": "T-1", "name": "Ann", "unit": "1A", "monthly_rent": 500, "due_day": 1})
    client.post("/api/bank-transactions", json={"date": "2024-01-03", "description": "Rent T-1", "amount": 500, "tenant_id": "T-1"})
    client.post("/api/bank-transactions", json={"date": "2024-01-20", "description": "Transfer from ANN", "amount": 200})
    client.post("/api/bank-transactions", json={"date": "2024-01-21", "description": "Ann refund", "amount": -30})
    client.post("/api/bank-transactions", json={"date": "2024-03-05", "description": "Ann later", "amount": 999})
    client.post("/api/manual-payments", json={"tenant_id": "T-1", "amount": 100, "date": "2024-02-02"})
    with app.test_request_context():
        write_json("tenant_charges", [{"tenant_id": "T-1", "amount": 50, "date": "2024-01-15", "description": "Late fee"}])


# ---------- Statement logic ----------
def test_build_charges_clamps_due_day():
    charges = build_charges({"monthly_rent": 1000, "due_day": 31}, date(2024, 1, 1), date(2024, 3, 31))
    assert [c.date for c in charges] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
    assert charges[1].description == "Rent for February 2024"
    assert build_charges({"monthly_rent": 0}, date(2024, 1, 1), date(2024, 3, 31)) == []


def test_build_charges_respects_window():
    charges = build_charges({"monthly_rent": 100, "due_day": 10}, date(2024, 1, 15), date(2024, 3, 5))
    assert [c.date for c in charges] == [date(2024, 2, 10)]


def test_create_statement_orders_charges_first_and_totals():
    payments = [
        Entry(date(2024, 2, 29), 1000, "Bank", "payment", "bank"),
        Entry(date(2023, 12, 1), 5, "Too early", "payment"),
    ]
    extra = [Entry(date(2024, 1, 10), 25.25, "Key", "charge"), Entry(date(2024, 1, 11), 0, "Zero", "charge")]
    st = create_statement({"monthly_rent": 1000, "due_day": 31}, date(2024, 1, 1), date(2024, 3, 31), payments, extra)

    assert [(r["date"], r["entryType"]) for r in st.rows] == [
        ("2024-01-10", "charge"),
        ("2024-01-31", "charge"),
        ("2024-02-29", "charge"),
        ("2024-02-29", "payment"),
        ("2024-03-31", "charge"),
    ]
    assert st.rows[3]["balance"] == 1025.25
    assert st.totals == {"charges": 3025.25, "payments": 1000, "balance": 2025.25}


def test_create_statement_without_rent():
    st = create_statement({"monthly_rent": 1000}, date(2024, 1, 1), date(2024, 1, 31), [], include_rent_charges=False)
    assert st.rows == []
    assert st.totals == {"charges": 0, "payments": 0, "balance": 0}


def test_create_statement_rejects_inverted_period():
    with pytest.raises(RepoError) as exc:
        create_statement({}, date(2024, 2, 1), date(2024, 1, 1), [])
    assert exc.value.status == 400


def test_default_period():
    assert default_period(None, None, today=date(2024, 3, 10)) == (date(2024, 1, 1), date(2024, 3, 10))
    assert default_period(None, date(2024, 2, 15)) == (date(2023, 12, 1), date(2024, 2, 15))
    assert default_period(date(2024, 2, 1), date(2024, 2, 2)) == (date(2024, 2, 1), date(2024, 2, 2))


# ---------- CSV ----------
def test_csv_value_quoting():
    assert csv_value("plain") == "plain"
    assert csv_value('a"b') == '"a""b"'
    assert csv_value("a,b") == '"a,b"'
    assert csv_value(None) == ""
    assert csv_value(True) == "true"
    assert csv_value(2.0) == "2"
    assert csv_value("a\rb") == "\"a\rb\""


def test_build_csv_union_header():
    text = build_csv([{"a": 1, "b": "x,y"}, {"c": None, "a": 'q"'}])
    assert text == 'a,b,c\n1,"x,y",\n"q""",,'
    assert build_csv([]) == ""


def test_build_csv_escaping():
    assert build_csv([{"a": ""}]) == "a\n"
    assert build_csv([{"a": None, "b": None}]) == "a,b\n,"
    assert build_csv([{"flag": True}, {"flag": False}]) == "flag\ntrue\nfalse"
    assert build_csv([{"n": 500.0, "m": 12.5, "k": 3}]) == "n,m,k\n500,12.5,3"
    assert build_csv([{"note": 'say "hi"', "addr": "1 Main St, Apt 2", "memo": "line1\nline2"}]) == (
        'note,addr,memo\n"say ""hi""","1 Main St, Apt 2","line1\nline2"'
    )
    assert build_csv([{"a,b": 1}]) == '"a,b"\n1'


# ---------- Statement API ----------
def test_statement_json(app, client):
    _seed_ledger(app, client)
    r = client.get("/api/tenants/T-1/statement?start=2024-01-01&end=2024-02-28")
    assert r.status_code == 200
    body = r.json
    assert body["tenant"]["name"] == "Ann"
    assert body["period"] == {"start": "2024-01-01", "end": "2024-02-28"}
    assert [(row["date"], row["entryType"], row["balance"]) for row in body["rows"]] == [
        ("2024-01-01", "charge", 500),
        ("2024-01-03", "payment", 0),
        ("2024-01-15", "charge", 50),
        ("2024-01-20", "payment", -150),
        ("2024-02-01", "charge", 350),
        ("2024-02-02", "payment", 250),
    ]
    assert body["rows"][3]["source"] == "bank"
    assert body["rows"][5]["source"] == "manual"
    assert body["totals"] == {"charges": 1050, "payments": 800, "balance": 250}


def test_statement_uses_match_amount(app, client):
    _seed_ledger(app, client)
    txn = client.post("/api/bank-transactions", json={"date": "2024-02-10", "description": "Combined", "amount": 900}).json["data"]
    client.patch(f"/api/bank-transactions/{txn['id']}/match", json={"tenant_id": "T-1", "amount": 300})
    body = client.get("/api/tenants/T-1/statement?start=2024-02-01&end=2024-02-28").json
    assert body["totals"]["payments"] == 400


def test_statement_csv_download(app, client):
    _seed_ledger(app, client)
    r = client.get("/api/tenants/T-1/statement?start=2024-01-01&end=2024-01-31&format=csv")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "tenant-statement-T-1-2024-01-01-to-2024-01-31.csv" in r.headers["Content-Disposition"]
    lines = r.data.decode("utf-8").split("\n")
    assert lines[:5] == [
        "Tenant,Ann",
        "Unit,1A",
        "Period,2024-01-01 – 2024-01-31",
        "",
        "Date,Type,Description,Charge,Payment,Balance,Source",
    ]
    assert lines[5] == "2024-01-01,charge,Rent for January 2024,500.00,,500.00,"


def test_statement_csv_placeholder_for_missing_unit(client):
    client.post("/api/tenants", json={"id": "T-9", "name": "Zed"})
    r = client.get("/api/tenants/T-9/statement?start=2024-01-01&end=2024-01-31&format=csv")
    assert r.status_code == 200
    assert r.data.decode("utf-8").split("\n")[1] == "Unit,—"


def test_statement_errors(client):
    r = client.get("/api/tenants/nope/statement")
    assert r.status_code == 404
    assert r.json["error"] == "Tenant not found"

    client.post("/api/tenants", json={"id": "T-1", "name": "Ann"})
    r = client.get("/api/tenants/T-1/statement?start=2024-02-01&end=2024-01-01")
    assert r.status_code == 400
    assert r.json["error"] == "Start date must be before end date"


# ---------- Downloads ----------
def test_integration_feed(app, client):
    with app.test_request_context():
        write_json("unit_inventory", [{"unit": "1A", "beds": 2}, {"unit": "1B", "notes": "corner, view"}])
    r = client.get("/api/integrations/unit_inventory.csv")
    assert r.status_code == 200
    assert r.data.decode("utf-8") == 'unit,beds,notes\n1A,2,\n1B,,"corner, view"'

    r = client.get("/api/integrations/kpi_dashboard.csv")
    assert r.status_code == 200
    assert r.data == b""


@pytest.mark.parametrize("name", ["secrets.csv", "unit_inventory.json", "unit_inventory"])
def test_integration_feed_rejects_unknown(client, name):
    r = client.get(f"/api/integrations/{name}")
    assert r.status_code == 400
    assert r.json["error"] == "Invalid file name"


def test_export_centre(app, client):
    client.post("/api/tenants", json={"id": "T-1", "name": "Ann"})
    r = client.get("/api/exports/tenants.csv")
    assert r.status_code == 200
    lines = r.data.decode("utf-8").split("\n")
    assert lines[0] == "id,name,building,property_id,unit,monthly_rent,due_day,reference,phone"
    assert lines[1] == "T-1,Ann" + "," * 7

    assert client.get("/api/exports/meter-readings.csv").data == b""
    r = client.get("/api/exports/nope.csv")
    assert r.status_code == 404
    assert r.json["error"] == "Unknown export source."

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "report.export", AuditEvent.entity_id == "tenants").one()
        assert ev.entity_id == "tenants"


def test_pinned_reports(client):
    assert client.get("/api/reports/pinned").json["data"] == []

    r = client.put("/api/reports/pinned", json={"pins": ["rent-roll", " arrears ", "rent-roll", ""]})
    assert r.json["data"] == ["rent-roll", "arrears"]
    assert client.get("/api/reports/pinned").json["data"] == ["rent-roll", "arrears"]

    r = client.put("/api/reports/pinned", json=["occupancy"])
    assert r.json["data"] == ["occupancy"]

    r = client.put("/api/reports/pinned", json={"pins": "rent-roll"})
    assert r.status_code == 400


def test_reports_page_renders(client):
    client.put("/api/reports/pinned", json={"pins": ["rent-roll"]})
    r = client.get("/admin/reports")
    assert r.status_code == 200
    assert b"rent-roll" in r.data
    assert b"units_master_66.csv" in r.data
