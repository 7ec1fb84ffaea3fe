import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from app.db.session import SessionLocal
from app.services.email_service import process_pending_emails
from app.services.gateway_adapters import get_gateway_adapters
from app.services.payment_service import reconcile_stale_payments as _reconcile

log = logging.getLogger(__name__)


def reconcile_stale_payments(limit: int = 100, adapters: dict | None = None) -> dict:
    """Resolve payments stuck in PENDING/PROCESSING. Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return _reconcile(db, adapters or get_gateway_adapters(), limit=limit)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()
