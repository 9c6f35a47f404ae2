"""
Release phase: alembic upgrade to head, then the idempotent permission/role/admin seed.

Refuses to run without DATABASE_URL, and refuses sqlite when ENV is production.
Existing passwords are never overwritten by the seed.

    python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url(environ: dict[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    db_url = (env.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    if (env.get("ENV") or "").strip().lower() in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")
    return db_url


def _alembic_upgrade(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # configparser interpolation
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    command.upgrade(cfg, "head")


def run_release(*, seed: bool = True) -> None:
    db_url = release_database_url()
    print(f"=== HSE document control release (ENV={os.environ.get('ENV') or '(unset)'}) ===", flush=True)

    print("Running Alembic migrations...", flush=True)
    _alembic_upgrade(db_url)
    print("Migrations complete.", flush=True)

    if seed:
        from scripts import init_db

        print("Seeding permissions/roles/admin...", flush=True)
        init_db.seed_only(database_url=db_url)
        print("Seed complete.", flush=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed for a release.")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations.")
    args = parser.parse_args(argv)
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
