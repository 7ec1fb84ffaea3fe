#!/usr/bin/env python3
"""Container entrypoint: wait for Postgres, migrate, seed demo data, then exec uvicorn."""
import logging
import os
import sys

from alembic import command
from alembic.config import Config

from app.core.config import settings
from wait_for_db import wait_for_database

log = logging.getLogger("start_api")


def migrate() -> None:
    cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    command.upgrade(cfg, "head")


def seed() -> None:
    # import after migrating so the seed session sees the new tables
    from app.db.session import SessionLocal
    from app.seed import run

    run(SessionLocal())


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    wait_for_database(settings.DATABASE_URL)
    migrate()
    seed()
    port = os.getenv("PORT", "8000")
    log.info("starting uvicorn on port %s", port)
    os.execv(sys.executable, [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", port])


if __name__ == "__main__":
    main()
