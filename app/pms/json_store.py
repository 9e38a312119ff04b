"""
Keyed JSON document store.

Collections that have no relational table (onboarding records, commercial
tenant orgs, settings, pinned reports, manual payments, ...) live as whole JSON
documents addressed by a key such as "onboarding" or "settings.general".
Callers may pass legacy file names ("tenants.json"); the suffix is dropped.

Two backends, picked by JSON_STORE_BACKEND:
  - database: one row per key in app_datasets (default)
  - file: DATA_DIR/<key>.json

update_json() serializes read-modify-write per key inside this process.
Writers in other processes are not coordinated.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from flask import current_app
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.pms.db import db_session
from app.pms.errors import RepoError, bad_request
from app.pms.models import Dataset

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JSON_SUFFIX = re.compile(r"\.json$", re.IGNORECASE)
_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def resolve_key(name: str) -> str:
    key = _JSON_SUFFIX.sub("", (name or "").strip())
    if not key:
        raise bad_request("Dataset key is required.")
    if "/" in key or "\\" in key or ".." in key:
        raise bad_request(f"Invalid dataset key {key!r}.")
    return key


def _lock_for(key: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


# ---------- Dataset service (app_datasets rows) ----------
def get_dataset(s: Session, key: str, fallback: Any) -> Any:
    row = s.get(Dataset, resolve_key(key))
    if row is None or row.data is None:
        return copy.deepcopy(fallback)
    return copy.deepcopy(row.data)


def set_dataset(s: Session, key: str, data: Any) -> Any:
    key = resolve_key(key)
    try:
        json.dumps(data)
    except (TypeError, ValueError) as e:
        logger.error("Failed to serialize dataset %s: %s", key, e)
        raise RepoError(f"Failed to serialize dataset {key!r}.") from e
    now = datetime.utcnow()
    row = s.get(Dataset, key)
    if row is None:
        row = Dataset(key=key, data=data, created_at=now, updated_at=now)
        s.add(row)
    else:
        row.data = data
        row.updated_at = now
        flag_modified(row, "data")
    s.flush()
    return data


def update_dataset(s: Session, key: str, updater: Callable[[Any], Any], fallback: Any) -> Any:
    current = get_dataset(s, key, fallback)
    return set_dataset(s, key, updater(current))


# ---------- Backends ----------
class JsonStore:
    def read(self, key: str, fallback: Any) -> Any:
        raise NotImplementedError

    def write(self, key: str, data: Any) -> None:
        raise NotImplementedError


class DatabaseJsonStore(JsonStore):
    """Backed by the request-scoped session; every write commits."""

    def read(self, key: str, fallback: Any) -> Any:
        return get_dataset(db_session(), key, fallback)

    def write(self, key: str, data: Any) -> None:
        s = db_session()
        try:
            set_dataset(s, key, data)
            s.commit()
        except Exception:
            s.rollback()
            raise


class FileJsonStore(JsonStore):
    def __init__(self, root: Path):
        self.root = root

    def _path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def read(self, key: str, fallback: Any) -> Any:
        p = self._path(key)
        if not p.exists():
            return copy.deepcopy(fallback)
        try:
            return json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error("Corrupt JSON document %s: %s", p, e)
            raise RepoError(f"Stored document {key!r} is not valid JSON.") from e

    def write(self, key: str, data: Any) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        text = json.dumps(data, indent=2)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self._path(key))
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


def store_from_config(config: dict) -> JsonStore:
    backend = (config.get("JSON_STORE_BACKEND") or "database").strip().lower()
    if backend == "file":
        return FileJsonStore(Path(config.get("DATA_DIR") or "data"))
    if backend != "database":
        raise RepoError(f"Unknown JSON_STORE_BACKEND {backend!r}.")
    return DatabaseJsonStore()


def _store() -> JsonStore:
    return store_from_config(current_app.config)


# ---------- Public API ----------
def read_json(name: str, fallback: T) -> T:
    return _store().read(resolve_key(name), fallback)


def write_json(name: str, data: T) -> T:
    key = resolve_key(name)
    with _lock_for(key):
        _store().write(key, data)
    return data


def update_json(name: str, updater: Callable[[T], T], fallback: T) -> T:
    key = resolve_key(name)
    store = _store()
    with _lock_for(key):
        current = store.read(key, fallback)
        nxt = updater(current)
        store.write(key, nxt)
    return nxt


# ---------- Record lists ----------
# Most collections are a JSON list of dict records; lookups are linear scans.
Record = dict[str, Any]


def _as_records(value: Any) -> list[Record]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def read_records(name: str) -> list[Record]:
    return _as_records(read_json(name, []))


def update_records(name: str, updater: Callable[[list[Record]], list[Record]]) -> list[Record]:
    return update_json(name, lambda current: updater(_as_records(current)), [])


def append_record(name: str, record: Record) -> Record:
    update_records(name, lambda items: [*items, record])
    return record


def find_record(items: list[Record], field: str, value: Any) -> Record | None:
    return next((item for item in items if item.get(field) == value), None)


def patch_record(name: str, field: str, value: Any, changes: Callable[[Record], Record]) -> Record | None:
    """
    Replace the first record whose `field` equals `value` with changes(record).
    Returns the new record, or None when nothing matched.
    """
    updated: list[Record] = []

    def _apply(items: list[Record]) -> list[Record]:
        out = []
        for item in items:
            if not updated and item.get(field) == value:
                item = changes(item)
                updated.append(item)
            out.append(item)
        return out

    update_records(name, _apply)
    return updated[0] if updated else None


def remove_records(name: str, field: str, value: Any) -> int:
    removed: list[int] = []

    def _apply(items: list[Record]) -> list[Record]:
        kept = [item for item in items if item.get(field) != value]
        removed.append(len(items) - len(kept))
        return kept

    update_records(name, _apply)
    return removed[0] if removed else 0
