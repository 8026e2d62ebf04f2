#!/usr/bin/env python3
"""
Production entrypoint: run the release phase, then exec gunicorn.

Environment:
    PORT             listen port (default 8080)
    WEB_CONCURRENCY  gunicorn worker processes (default 1)
    GUNICORN_THREADS threads per worker (default 4)

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


def _port() -> int:
    raw = os.environ.get("PORT", "").strip()
    if not raw:
        print(f"WARNING: PORT not set, using {DEFAULT_PORT}", flush=True)
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        port = 0
    if not 1 <= port <= 65535:
        print(f"ERROR: Invalid PORT value '{raw}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)
    return port


def gunicorn_argv(port: int) -> list[str]:
    # Transition locks are process-local.
    workers = os.environ.get("WEB_CONCURRENCY", "1")
    threads = os.environ.get("GUNICORN_THREADS", "4")
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", workers,
        "--threads", threads,
        "--timeout", "60",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _port()

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port)
    print(f"=== DMS serving on 0.0.0.0:{port} (workers={argv[5]}, threads={argv[7]}) ===", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
