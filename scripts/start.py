#!/usr/bin/env python3
"""
Container entrypoint: release phase (migrations + seed), then exec gunicorn.

    python scripts/start.py

gunicorn replaces this process so it owns PID 1 and receives container signals.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080


def parse_port(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        print(f"WARNING: PORT not set, using default {DEFAULT_PORT}", flush=True)
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        raise SystemExit(f"ERROR: Invalid PORT value '{raw}'. Must be integer 1-65535.")
    if not 1 <= port <= 65535:
        raise SystemExit(f"ERROR: PORT {port} out of range 1-65535.")
    return port


def gunicorn_argv(port: int, environ: dict[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", env.get("WEB_CONCURRENCY", "2"),
        "--timeout", env.get("GUNICORN_TIMEOUT", "60"),
        # The app factory disposes the engine in forked workers.
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = parse_port(os.environ.get("PORT"))

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port)
    print(f"=== Starting gunicorn on 0.0.0.0:{port} (health: /healthz) ===", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
