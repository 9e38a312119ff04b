"""
Upsert tenants from a spreadsheet export.

Columns (header names, any order): id or reference, name, building,
property_id, unit, monthly_rent, due_day, phone. Rows without an id/reference
or a name are skipped.

Usage:
  python scripts/import_tenants.py tenants.csv [--dry-run]
"""

from __future__ import annotations

import argparse
import csv
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.pms.modules.tenants.service import import_rows_from_payload, upsert_tenants
from scripts._db_utils import script_session


def read_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        return [{(k or "").strip().lower(): (v or "").strip() for k, v in row.items()} for row in reader]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--dry-run", action="store_true", help="Parse and report without writing.")
    parser.add_argument("--database-url", default=os.environ.get("DATABASE_URL") or "sqlite:///pms.db")
    args = parser.parse_args(argv)

    if not args.csv_path.exists():
        print(f"File not found: {args.csv_path}", file=sys.stderr)
        return 2

    raw = read_rows(args.csv_path)
    rows = import_rows_from_payload(raw)
    print(f"Read {len(raw)} rows; {len(rows)} importable.")
    if args.dry_run or not rows:
        return 0

    with script_session(args.database_url) as s:
        result = upsert_tenants(s, rows, None)
    print(f"Inserted {result['inserted']}, updated {result['updated']}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
