from __future__ import annotations

import time
from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event, inspect as sa_inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def _engine_kwargs(db_url: str) -> dict[str, object]:
    kwargs: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        kwargs.update({"pool_recycle": 1800, "pool_size": 5, "max_overflow": 10, "pool_timeout": 30})
    return kwargs


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **_engine_kwargs(db_url))

    if db_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):  # type: ignore[no-redef]
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def get_engine(app: Flask | None = None) -> Engine:
    app = app or current_app
    return app.extensions["sqlalchemy_engine"]


def db_session(app: Flask | None = None) -> Session:
    """Request-scoped session, opened lazily and closed on teardown."""
    s = getattr(g, "db_session", None)
    if s is not None:
        return s
    app = app or current_app
    g.db_session = app.extensions["sqlalchemy_sessionmaker"]()
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        return
    try:
        s.close()
    except Exception as e:
        current_app.logger.warning("Closing request DB session failed: %s", e)
    g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts and tests: yields a session and commits/rolls back.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def database_now(s: Session) -> str:
    """Server clock as reported by the database (liveness probe)."""
    if s.get_bind().dialect.name == "sqlite":
        value = s.execute(text("SELECT CURRENT_TIMESTAMP")).scalar()
    else:
        value = s.execute(text("SELECT now()")).scalar()
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def probe_tables(engine: Engine, names: list[str]) -> tuple[float, dict[str, bool]]:
    """Round-trip latency (ms) of a trivial query plus table presence."""
    started = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    latency_ms = round((time.perf_counter() - started) * 1000, 2)
    insp = sa_inspect(engine)
    return latency_ms, {name: insp.has_table(name) for name in names}
