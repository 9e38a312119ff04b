"""CSV rendering for downloads (integrations feed, export centre, statements)."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def csv_value(value: Any) -> str:
    """Single cell: quoted only when it holds a quote, comma or line break."""
    text = _text(value)
    if any(ch in text for ch in ('"', ",", "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def _headers(rows: list[dict[str, Any]]) -> list[str]:
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def build_csv(rows: Iterable[dict[str, Any]]) -> str:
    """
    Header is the union of row keys in first-seen order; missing cells are blank.
    No rows -> "". Lines are joined with "\\n" and there is no trailing newline.
    """
    rows = [r for r in rows if isinstance(r, dict)]
    if not rows:
        return ""
    headers = _headers(rows)
    lines = [",".join(csv_value(h) for h in headers)]
    for row in rows:
        lines.append(",".join(csv_value(row.get(h)) for h in headers))
    return "\n".join(lines)
