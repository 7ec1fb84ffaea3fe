from datetime import datetime, timezone
import logging
import smtplib
from email.message import EmailMessage
from sqlalchemy.orm import Session
import uuid
import requests

from app.core.config import settings
from app.models.booking import Booking
from app.models.email_log import EmailLog

log = logging.getLogger(__name__)


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_ref: str = "") -> str:
    """Queue and attempt immediate send. Body is stored so the worker can retry on failure."""
    eid = str(uuid.uuid4())
    db.add(
        EmailLog(
            id=eid,
            to_email=to_email,
            subject=subject,
            body=body,
            status="queued",
            related_booking_ref=related_booking_ref,
        )
    )
    db.commit()

    if not settings.EMAIL_ENABLED:
        log.info("email disabled; %s to %s left queued", subject, to_email)
        return eid

    entry = db.get(EmailLog, eid)
    try:
        send_email(to_email, subject, body)
        entry.status = "sent"
        entry.sent_at = datetime.now(timezone.utc)
    except (OSError, smtplib.SMTPException, requests.RequestException, RuntimeError) as e:
        # Worker will retry via process_email_queue
        log.warning("email %s to %s failed: %s", eid, to_email, e)
        entry.status = "failed"
    db.commit()
    return eid


def send_email(to_email: str, subject: str, body: str):
    """Send email via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""

    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str):
    from_email = settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def booking_confirmation_email(booking: Booking, tour_title: str, agent_name: str) -> tuple[str, str]:
    """(subject, body) for a confirmed booking."""
    subject = f"Booking confirmed: {tour_title} ({booking.booking_reference})"
    guests = f"{booking.adults} adult(s)"
    if booking.children:
        guests += f", {booking.children} child(ren)"
    if booking.infants:
        guests += f", {booking.infants} infant(s)"
    lines = [
        f"Hi {booking.contact_name},",
        "",
        f"Your safari with {agent_name} is confirmed.",
        "",
        f"Booking reference: {booking.booking_reference}",
        f"Tour: {tour_title}",
        f"Dates: {booking.start_date.isoformat()} to {booking.end_date.isoformat()}",
        f"Guests: {guests}",
        f"Total: {booking.currency} {booking.total_amount:,.2f}",
    ]
    if booking.payment_type == "DEPOSIT" and booking.deposit_amount is not None:
        lines.append(f"Deposit paid: {booking.currency} {booking.deposit_amount:,.2f}")
        lines.append(f"Balance: {booking.currency} {booking.balance_amount:,.2f}")
        if booking.balance_due_date:
            lines.append(f"Balance due by: {booking.balance_due_date.isoformat()}")
    lines += [
        "",
        f"Manage your booking: {settings.APP_PUBLIC_URL.rstrip('/')}/booking/confirmation/{booking.id}",
        "",
        "SafariPlus",
    ]
    return subject, "\n".join(lines)


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Process up to `limit` queued or failed emails; retry send and update status. Returns counts."""
    pending = (
        db.query(EmailLog)
        .filter(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, failed = 0, 0
    for entry in pending:
        try:
            send_email(entry.to_email, entry.subject, entry.body)
            entry.status = "sent"
            entry.sent_at = datetime.now(timezone.utc)
            sent += 1
        except (OSError, smtplib.SMTPException, requests.RequestException, RuntimeError) as e:
            log.warning("retry of email %s failed: %s", entry.id, e)
            entry.status = "failed"
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed}
