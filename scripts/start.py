#!/usr/bin/env python3
"""
Container entrypoint: run the release step, then exec gunicorn in place of this
process so it receives signals directly.

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080


def parse_port(value: str | None) -> int:
    text = (value or "").strip()
    if not text:
        return DEFAULT_PORT
    port = int(text)
    if not 1 <= port <= 65535:
        raise ValueError(f"port {port} is out of range")
    return port


def gunicorn_argv(port: int, workers: str | None = None) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", workers or "2",
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        port = parse_port(os.environ.get("PORT"))
    except ValueError as e:
        print(f"[start] invalid PORT: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"[start] release failed: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port, os.environ.get("WEB_CONCURRENCY"))
    print(f"[start] {' '.join(argv)}", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
