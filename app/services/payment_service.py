"""Payment initiation, gateway status application and reconciliation.

Every path that learns a gateway's verdict (IPN, webhook, status refresh,
reconciliation sweep) goes through apply_gateway_status, so the booking side
effects happen exactly once per payment.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.agent import Agent
from app.models.agent_earning import AgentEarning
from app.models.booking import Booking
from app.models.payment import Payment
from app.models.tour import Tour
from app.models.user import User
from app.services import gateway_router
from app.services.audit_service import log_audit
from app.services.email_service import booking_confirmation_email, queue_email
from app.services.errors import NotFoundError, PaymentGatewayError, PaymentGuardError
from app.services.gateway_adapters import GatewayStatus, PaymentGatewayAdapter

log = logging.getLogger(__name__)

OPEN_STATUSES = ("PENDING", "PROCESSING")
FINAL_STATUSES = ("COMPLETED", "REFUNDED")


class PaymentForbidden(PermissionError):
    pass


class PaymentSubmissionError(RuntimeError):
    """Gateway rejected the order; the payment row is already FAILED."""

    def __init__(self, message: str, payment_id: str):
        super().__init__(message)
        self.payment_id = payment_id


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _latest_payment(db: Session, booking_id: str, statuses) -> Payment | None:
    return (
        db.query(Payment)
        .filter(Payment.booking_id == booking_id, Payment.status.in_(statuses))
        .order_by(Payment.created_at.desc())
        .first()
    )


def _adapter_for(adapters: dict, payment: Payment) -> PaymentGatewayAdapter:
    adapter = adapters.get(payment.gateway.lower())
    if adapter is None:
        raise PaymentGatewayError(f"No adapter configured for gateway {payment.gateway}")
    return adapter


def payment_amount(booking: Booking):
    """What this payment charges: the deposit on a DEPOSIT plan, otherwise the full total."""
    if booking.payment_type == "DEPOSIT" and booking.deposit_amount is not None:
        return booking.deposit_amount
    return booking.total_amount


def initiate_payment(
    db: Session,
    booking: Booking,
    user: User,
    method: str | None,
    phone: str | None,
    gateway: str | None,
    adapters: dict[str, PaymentGatewayAdapter],
    now: datetime | None = None,
) -> dict:
    now = now or datetime.now(timezone.utc)
    method = method or "CARD"

    if booking.user_id != user.id:
        raise PaymentForbidden("Forbidden. This booking does not belong to you.")

    if _latest_payment(db, booking.id, ("COMPLETED",)):
        raise PaymentGuardError("Payment already completed for this booking")

    open_payment = _latest_payment(db, booking.id, OPEN_STATUSES)
    if open_payment is not None:
        age = now - _as_utc(open_payment.created_at)
        # older attempts are treated as abandoned and may be retried
        if age < timedelta(minutes=settings.PAYMENT_IN_PROGRESS_MINUTES) and PaymentGatewayAdapter.has_tracking(open_payment):
            raise PaymentGuardError(
                "A payment is already in progress for this booking",
                existing_payment={
                    "id": open_payment.id,
                    "status": open_payment.status,
                    "gateway": open_payment.gateway.lower(),
                    "createdAt": _as_utc(open_payment.created_at).isoformat(),
                },
            )

    if booking.status == "CANCELLED":
        raise PaymentGuardError("Cannot process payment for cancelled booking")
    if method == "MPESA" and not (phone or "").strip():
        raise PaymentGuardError("Phone number is required for M-Pesa payments")

    if gateway:
        if not gateway_router.is_gateway_supported_currency(gateway, booking.currency):
            raise PaymentGuardError(
                f"{gateway_router.display_name(gateway)} does not support {booking.currency} payments"
            )
    else:
        gateway = gateway_router.select_gateway(method, booking.currency)
    adapter = adapters.get(gateway)
    if adapter is None:
        raise PaymentGatewayError(f"No adapter configured for gateway {gateway}")

    amount = payment_amount(booking)
    reference = adapter.make_reference(booking.booking_reference)
    payment = Payment(
        id=str(uuid.uuid4()),
        booking_id=booking.id,
        gateway=adapter.code,
        method=method,
        amount=amount,
        currency=booking.currency,
        status="PENDING",
        idempotency_key=reference,
        **adapter.reference_fields(reference),
    )
    db.add(payment)
    log_audit(db, user.id, "PAYMENT_INITIATED", "payment", payment.id, {
        "bookingReference": booking.booking_reference,
        "gateway": adapter.code,
        "method": method,
        "amount": amount,
        "currency": booking.currency,
    })
    # the row must exist before the gateway sees the reference
    db.commit()

    tour = db.get(Tour, booking.tour_id)
    order = adapter.build_order(booking, tour.title if tour else "Safari Tour", amount, reference, phone)
    try:
        result = adapter.submit_order(order)
    except PaymentGatewayError as e:
        payment.status = "FAILED"
        payment.status_message = str(e)
        payment.failed_at = datetime.now(timezone.utc)
        db.commit()
        log.error("%s order submission failed for booking %s: %s", adapter.code, booking.booking_reference, e)
        raise PaymentSubmissionError(str(e), payment.id) from e

    for col, value in result.payment_fields.items():
        setattr(payment, col, value)
    payment.status = "PROCESSING"
    payment.status_message = "Payment initiated, awaiting completion"
    booking.payment_status = "PROCESSING"
    db.commit()

    log.info(
        "payment %s initiated via %s for booking %s (%s %s)",
        payment.id, adapter.code, booking.booking_reference, order.currency, order.amount,
    )
    return {
        "success": True,
        "gateway": adapter.name,
        "paymentId": payment.id,
        "redirectUrl": result.redirect_url,
        "merchantReference": reference,
        **result.response_fields,
        "message": "Payment initiated successfully. Redirecting to payment page...",
    }


def apply_gateway_status(
    db: Session,
    payment: Payment,
    status: str,
    message: str = "",
    fields: dict | None = None,
    method: str | None = None,
    actor: str = "system",
    update_booking: bool = True,
) -> bool:
    """Move a payment to the gateway's verdict. Returns False when nothing changed.

    A failure only reaches the booking when it is the booking's current attempt;
    ``update_booking=False`` keeps the booking untouched regardless.
    """
    if payment.status in FINAL_STATUSES and status != "REFUNDED":
        return False
    if payment.status == status or status == "PENDING":
        return False

    booking = db.get(Booking, payment.booking_id)
    old = payment.status
    for col, value in (fields or {}).items():
        setattr(payment, col, value)
    if method:
        payment.method = method
    payment.status = status
    if message:
        payment.status_message = message
    now = datetime.now(timezone.utc)

    if status == "COMPLETED":
        payment.completed_at = now
        booking.status = "CONFIRMED" if booking.status == "PENDING" else booking.status
        booking.payment_status = "COMPLETED"
        _record_agent_earning(db, booking)
    elif status == "FAILED":
        payment.failed_at = now
        if update_booking and _is_current_attempt(db, payment):
            booking.payment_status = "FAILED"
    elif status == "REFUNDED":
        booking.status = "REFUNDED"
        booking.payment_status = "REFUNDED"

    log_audit(db, actor, f"PAYMENT_{status}", "payment", payment.id, {
        "bookingId": booking.id,
        "bookingReference": booking.booking_reference,
        "from": old,
        "amount": payment.amount,
        "currency": payment.currency,
        "gateway": payment.gateway,
    })
    db.commit()
    log.info("payment %s (%s): %s -> %s", payment.id, booking.booking_reference, old, status)

    if status == "COMPLETED":
        send_booking_confirmation(db, booking)
    return True


def _is_current_attempt(db: Session, payment: Payment) -> bool:
    """No other payment on the booking has completed or was started after this one and is still open."""
    others = db.query(Payment).filter(Payment.booking_id == payment.booking_id, Payment.id != payment.id)
    if others.filter(Payment.status == "COMPLETED").first():
        return False
    newer_open = others.filter(Payment.status.in_(OPEN_STATUSES), Payment.created_at > payment.created_at)
    return newer_open.first() is None


def _record_agent_earning(db: Session, booking: Booking) -> None:
    if db.query(AgentEarning.id).filter(AgentEarning.booking_id == booking.id).first():
        return
    db.add(AgentEarning(
        id=str(uuid.uuid4()),
        agent_id=booking.agent_id,
        booking_id=booking.id,
        amount=booking.agent_earnings,
        currency=booking.currency,
        description=f"Earnings from booking {booking.booking_reference}",
        type="booking",
    ))


def send_booking_confirmation(db: Session, booking: Booking) -> None:
    tour = db.get(Tour, booking.tour_id)
    agent = db.get(Agent, booking.agent_id)
    subject, body = booking_confirmation_email(
        booking, tour.title if tour else "Safari Tour", agent.business_name if agent else "SafariPlus"
    )
    queue_email(db, booking.contact_email, subject, body, related_booking_ref=booking.booking_reference)


def sync_from_gateway(db: Session, payment: Payment, adapter: PaymentGatewayAdapter, actor: str) -> bool:
    """Ask the gateway for the true status and apply it."""
    result: GatewayStatus = adapter.fetch_status(payment)
    if result.reference and result.reference != payment.idempotency_key:
        log.error(
            "payment %s: gateway transaction belongs to %s, expected %s",
            payment.id, result.reference, payment.idempotency_key,
        )
        raise PaymentGatewayError("Gateway transaction does not belong to this payment")
    if result.status == "COMPLETED" and result.amount is not None and not adapter.dev_mode:
        if result.amount < payment.amount or (result.currency and result.currency.upper() != payment.currency.upper()):
            log.error(
                "payment %s: gateway reports %s %s, expected %s %s",
                payment.id, result.currency, result.amount, payment.currency, payment.amount,
            )
            return apply_gateway_status(
                db, payment, "FAILED", "Amount mismatch between gateway and booking",
                result.payment_fields, result.method, actor,
            )
    return apply_gateway_status(db, payment, result.status, result.message, result.payment_fields, result.method, actor)


def handle_pesapal_ipn(db: Session, tracking_id: str, merchant_reference: str, adapters: dict) -> Payment:
    payment = (
        db.query(Payment)
        .filter(
            (Payment.pesapal_order_id == tracking_id)
            | (Payment.pesapal_tracking_id == tracking_id)
            | (Payment.pesapal_merchant_ref == merchant_reference)
        )
        .first()
    )
    if not payment:
        raise NotFoundError("Payment record not found")
    if payment.status in FINAL_STATUSES:
        log.info("pesapal IPN for payment %s already in %s", payment.id, payment.status)
        return payment
    if not payment.pesapal_order_id:
        payment.pesapal_order_id = tracking_id
    sync_from_gateway(db, payment, adapters[gateway_router.PESAPAL], actor="pesapal")
    db.commit()
    return payment


def handle_flutterwave_webhook(db: Session, payload: dict, adapters: dict) -> Payment:
    data = payload["data"]
    payment = db.query(Payment).filter(Payment.flutterwave_ref == data["tx_ref"]).first()
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.status == "COMPLETED" and data.get("status") == "successful":
        log.info("flutterwave webhook for payment %s already processed", payment.id)
        return payment
    payment.flutterwave_tx_id = str(data["id"])
    # never trust the webhook body; re-verify with the API
    sync_from_gateway(db, payment, adapters[gateway_router.FLUTTERWAVE], actor="flutterwave")
    db.commit()
    return payment


def refresh_payment_status(db: Session, booking: Booking, adapters: dict, refresh: bool = False) -> dict:
    payment = (
        db.query(Payment)
        .filter(Payment.booking_id == booking.id)
        .order_by(Payment.created_at.desc())
        .first()
    )
    refreshed = False
    if payment and refresh and payment.status in OPEN_STATUSES and PaymentGatewayAdapter.has_tracking(payment):
        try:
            refreshed = sync_from_gateway(db, payment, _adapter_for(adapters, payment), actor="system")
        except PaymentGatewayError as e:
            # the stored status is still a valid answer
            log.warning("status refresh for payment %s failed: %s", payment.id, e)
        db.refresh(booking)

    return {
        "bookingId": booking.id,
        "bookingReference": booking.booking_reference,
        "bookingStatus": booking.status,
        "paymentStatus": booking.payment_status,
        "refreshed": refreshed,
        "payment": payment_out(payment) if payment else None,
    }


def payment_out(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "gateway": payment.gateway.lower(),
        "method": payment.method,
        "amount": float(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "statusMessage": payment.status_message,
        "merchantReference": payment.idempotency_key,
        "completedAt": _as_utc(payment.completed_at).isoformat() if payment.completed_at else None,
        "failedAt": _as_utc(payment.failed_at).isoformat() if payment.failed_at else None,
        "createdAt": _as_utc(payment.created_at).isoformat() if payment.created_at else None,
    }


def reconcile_stale_payments(db: Session, adapters: dict, now: datetime | None = None, limit: int = 100) -> dict:
    """Resolve PENDING/PROCESSING payments older than PAYMENT_RECONCILE_AFTER_MINUTES."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.PAYMENT_RECONCILE_AFTER_MINUTES)
    stale = (
        db.query(Payment)
        .filter(Payment.status.in_(OPEN_STATUSES), Payment.created_at < cutoff)
        .order_by(Payment.created_at.asc())
        .limit(limit)
        .all()
    )
    counts = {"checked": len(stale), "updated": 0, "abandoned": 0, "errors": 0}
    for payment in stale:
        if not PaymentGatewayAdapter.has_tracking(payment):
            # row created but the order never reached the gateway
            apply_gateway_status(
                db, payment, "FAILED", "Order was never submitted to the gateway", actor="system", update_booking=False,
            )
            counts["abandoned"] += 1
            continue
        try:
            if sync_from_gateway(db, payment, _adapter_for(adapters, payment), actor="system"):
                counts["updated"] += 1
        except PaymentGatewayError as e:
            db.rollback()
            log.warning("reconcile of payment %s failed: %s", payment.id, e)
            counts["errors"] += 1
    if stale:
        log.info("payment reconciliation: %s", counts)
    return counts
