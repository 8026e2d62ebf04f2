"""
Release phase: migrate the schema to head, then seed users and defaults.

Seeding is idempotent and never resets existing passwords. Production runs
refuse SQLite.

Usage:
  python scripts/release.py [--no-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def migrate(db_url: str) -> None:
    from alembic import command

    print("Upgrading schema to head...", flush=True)
    command.upgrade(alembic_config(db_url), "head")


def seed(db_url: str) -> None:
    from scripts import init_db

    print("Seeding users, document types and default workflow...", flush=True)
    init_db.seed_only(database_url=db_url)


def run_release(*, with_seed: bool = True) -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production. Set DATABASE_URL to Postgres.")

    print(f"=== DMS release (ENV={env or 'unset'}) ===", flush=True)
    migrate(db_url)
    if with_seed:
        seed(db_url)
    print("=== DMS release done ===", flush=True)


def main() -> None:
    ap = argparse.ArgumentParser(description="Run DMS migrations and seed defaults.")
    ap.add_argument("--no-seed", action="store_true", help="Only run migrations.")
    args = ap.parse_args()
    run_release(with_seed=not args.no_seed)


if __name__ == "__main__":
    main()
