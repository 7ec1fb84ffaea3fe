"""Block until Postgres accepts connections. Used by start_api and runnable on its own."""
import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

log = logging.getLogger("wait_for_db")


def wait(database_url: str, timeout_s: int) -> None:
    # SQLAlchemy driver suffixes mean nothing to psycopg2
    url = database_url.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://")
    p = urlparse(url)
    params = dict(
        host=p.hostname or "db",
        port=p.port or 5432,
        user=p.username or "safariplus",
        password=p.password or "safariplus",
        dbname=(p.path or "/safariplus").lstrip("/") or "safariplus",
    )
    log.info("waiting for Postgres at %s:%s db=%s (timeout=%ss)", params["host"], params["port"], params["dbname"], timeout_s)
    deadline = time.time() + timeout_s
    while True:
        try:
            psycopg2.connect(**params).close()
            log.info("Postgres is ready")
            return
        except psycopg2.OperationalError as e:
            if time.time() > deadline:
                log.error("timed out waiting for Postgres: %s", e)
                raise
            time.sleep(1)


def wait_for_database(database_url: str) -> None:
    if database_url.startswith("sqlite"):
        log.info("sqlite database; nothing to wait for")
        return
    wait(database_url, int(os.getenv("DB_WAIT_TIMEOUT", "60")))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    url = os.getenv("DATABASE_URL", "")
    if not url:
        raise SystemExit("DATABASE_URL is not set")
    wait_for_database(url)
