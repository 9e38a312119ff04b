"""
Release step: apply Alembic migrations, then seed the admin account.

Refuses to run without DATABASE_URL, and refuses SQLite when ENV is production.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class ReleaseError(RuntimeError):
    pass


def resolve_database_url(environ: dict[str, str] | None = None) -> str:
    environ = os.environ if environ is None else environ
    db_url = (environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise ReleaseError("DATABASE_URL must be set for a release.")
    env = (environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise ReleaseError("SQLite is not allowed in production; point DATABASE_URL at Postgres.")
    return db_url


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def run_release(environ: dict[str, str] | None = None) -> None:
    from alembic import command

    from scripts import init_db

    db_url = resolve_database_url(environ)
    print("[release] upgrading schema to head", flush=True)
    command.upgrade(alembic_config(db_url), "head")
    print("[release] seeding admin account", flush=True)
    init_db.seed_only(database_url=db_url)
    print("[release] done", flush=True)


if __name__ == "__main__":
    try:
        run_release()
    except ReleaseError as e:
        print(f"[release] {e}", flush=True)
        sys.exit(2)
