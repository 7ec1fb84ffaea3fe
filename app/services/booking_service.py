import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import hash_password
from app.models.accommodation_option import AccommodationOption
from app.models.activity_addon import ActivityAddon
from app.models.agent import Agent
from app.models.booking import Booking
from app.models.booking_accommodation import BookingAccommodation
from app.models.booking_activity import BookingActivity
from app.models.tour import Tour
from app.models.tour_availability import TourAvailability
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingOut
from app.services.audit_service import log_audit
from app.services.availability_service import check_availability
from app.services.errors import BookingError, NotFoundError
from app.services.pricing_service import (
    compare_client_pricing,
    price_booking,
    round_half_up,
    split_commission,
    to_decimal,
)
from app.services.reference_service import allocate_booking_ref

log = logging.getLogger(__name__)

# Booking.status -> statuses it may move to
TRANSITIONS = {
    "PENDING": ("CONFIRMED", "CANCELLED"),
    "CONFIRMED": ("IN_PROGRESS", "CANCELLED"),
    "IN_PROGRESS": ("COMPLETED",),
    "CANCELLED": ("REFUNDED",),
}

ACTIVE_BOOKING_STATUSES = ("PENDING", "CONFIRMED")


def get_or_create_booker(db: Session, email: str, name: str, phone: str = "") -> User:
    email = email.strip().lower()
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name or "",
        phone=phone or "",
        role="client",
        password_hash=hash_password(str(uuid.uuid4())),  # random; can reset later
        is_active=True,
        is_guest=True,
    )
    db.add(u)
    db.flush()
    log.info("created guest user %s for booking contact", u.id)
    return u


def payment_plan(tour: Tour, payment_type: str, total, start_date: date) -> dict:
    """deposit_amount / balance_amount / balance_due_date for the chosen plan."""
    if payment_type != "DEPOSIT":
        return {"deposit_amount": None, "balance_amount": None, "balance_due_date": None}
    if not tour.deposit_enabled:
        raise BookingError("This tour does not accept deposit payments")
    pct = tour.deposit_percentage if tour.deposit_percentage is not None else settings.DEFAULT_DEPOSIT_PERCENT
    total = to_decimal(total)
    deposit = round_half_up(total * to_decimal(pct) / 100)
    due = None
    if tour.free_cancellation_days is not None:
        due = start_date - timedelta(days=tour.free_cancellation_days)
    return {"deposit_amount": deposit, "balance_amount": total - deposit, "balance_due_date": due}


def create_booking(db: Session, body: BookingCreate, current_user: User | None, today: date | None = None) -> Booking:
    # Row lock on the tour serialises concurrent bookings so capacity cannot be oversold
    tour = db.execute(select(Tour).where(Tour.id == body.tourId).with_for_update()).scalar_one_or_none()
    if not tour:
        raise NotFoundError("Tour not found")
    if tour.status != "ACTIVE":
        raise BookingError("Tour is not available for booking")

    check_availability(db, tour, body.startDate, body.endDate, body.adults, body.children, today=today)

    agent = db.get(Agent, tour.agent_id)
    if not agent:
        raise NotFoundError("Tour operator not found")

    options = db.query(AccommodationOption).filter(AccommodationOption.tour_id == tour.id).all()
    catalog_addons = db.query(ActivityAddon).filter(ActivityAddon.tour_id == tour.id).all()
    quote = price_booking(
        tour,
        body.adults,
        body.children,
        body.accommodations,
        [(a.id, a.quantity) for a in body.addons],
        options,
        catalog_addons,
        settings.SERVICE_FEE_PERCENT,
        settings.CHILD_PRICE_PERCENT,
    )
    if body.pricing is not None:
        diffs = compare_client_pricing(quote, body.pricing.model_dump())
        if diffs:
            log.warning("client pricing for tour %s differs from quote: %s", tour.id, diffs)

    commission, earnings = split_commission(quote.total, agent.commission_rate)
    plan = payment_plan(tour, body.paymentType, quote.total, body.startDate)
    if body.paymentType == "DEPOSIT" and body.depositAmount is not None and to_decimal(body.depositAmount) != plan["deposit_amount"]:
        log.warning("client deposit %s replaced by %s", body.depositAmount, plan["deposit_amount"])

    booker = current_user or get_or_create_booker(db, body.contact.email, body.contact.name, body.contact.phone)

    booking = Booking(
        id=str(uuid.uuid4()),
        booking_reference=allocate_booking_ref(db),
        user_id=booker.id,
        tour_id=tour.id,
        agent_id=agent.id,
        start_date=body.startDate,
        end_date=body.endDate,
        adults=body.adults,
        children=body.children,
        infants=body.infants,
        currency=tour.currency,
        base_amount=quote.base_total,
        accommodation_amount=quote.accommodation_total,
        activities_amount=quote.addons_total,
        tax_amount=quote.service_fee,
        discount_amount=quote.discount,
        total_amount=quote.total,
        platform_commission=commission,
        agent_earnings=earnings,
        status="PENDING",
        payment_status="PENDING",
        payment_type=body.paymentType,
        contact_name=body.contact.name,
        contact_email=body.contact.email,
        contact_phone=body.contact.phone,
        special_requests=body.contact.specialRequests,
        **plan,
    )
    db.add(booking)

    for line in quote.accommodations:
        db.add(BookingAccommodation(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            accommodation_option_id=line.option.id,
            day_number=line.day_number,
            price=line.price,
        ))
    for line in quote.addons:
        db.add(BookingActivity(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            activity_addon_id=line.addon.id,
            quantity=line.quantity,
            price=line.price,
        ))

    log_audit(db, booker.id, "BOOKING_CREATED", "booking", booking.id, {
        "bookingReference": booking.booking_reference,
        "tourId": tour.id,
        "total": booking.total_amount,
        "paymentType": booking.payment_type,
    })
    db.commit()
    db.refresh(booking)
    log.info("booking %s created for tour %s (%s %s)", booking.booking_reference, tour.id, booking.currency, booking.total_amount)
    return booking


def transition_booking_status(db: Session, booking: Booking, new_status: str, actor: User, reason: str = "") -> Booking:
    allowed = TRANSITIONS.get(booking.status, ())
    if new_status not in allowed:
        raise BookingError(f"Cannot change booking status from {booking.status} to {new_status}")
    old = booking.status
    booking.status = new_status
    if new_status == "REFUNDED":
        booking.payment_status = "REFUNDED"
    log_audit(db, actor.id, "BOOKING_STATUS_CHANGED", "booking", booking.id, {"from": old, "to": new_status, "reason": reason})
    db.commit()
    db.refresh(booking)
    log.info("booking %s: %s -> %s", booking.booking_reference, old, new_status)
    return booking


def get_booking(db: Session, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def can_view_booking(db: Session, booking: Booking, user: User) -> bool:
    if user.role == "admin" or booking.user_id == user.id:
        return True
    return user.role == "agent" and _agent_id_for(db, user) == booking.agent_id


def can_manage_tour_bookings(db: Session, agent_id: str, user: User) -> bool:
    if user.role == "admin":
        return True
    return user.role == "agent" and _agent_id_for(db, user) == agent_id


def _agent_id_for(db: Session, user: User) -> str | None:
    return db.query(Agent.id).filter(Agent.user_id == user.id).scalar()


def list_user_bookings(db: Session, user: User, status: str | None = None) -> list[dict]:
    q = db.query(Booking).filter(Booking.user_id == user.id)
    if status:
        q = q.filter(Booking.status == status.upper())
    bookings = q.order_by(Booking.created_at.desc()).all()

    tour_ids = {b.tour_id for b in bookings}
    tours = {t.id: t for t in db.query(Tour).filter(Tour.id.in_(tour_ids)).all()} if tour_ids else {}
    out = []
    for b in bookings:
        t = tours.get(b.tour_id)
        out.append({
            **booking_out(db, b, tour=t).model_dump(mode="json"),
            "tour": {
                "id": b.tour_id,
                "title": t.title if t else "",
                "slug": t.slug if t else "",
                "destination": t.destination if t else "",
                "durationDays": t.duration_days if t else None,
            },
        })
    return out


def booking_out(db: Session, booking: Booking, tour: Tour | None = None, agent: Agent | None = None) -> BookingOut:
    tour = tour or db.get(Tour, booking.tour_id)
    agent = agent or db.get(Agent, booking.agent_id)
    return BookingOut(
        id=booking.id,
        bookingReference=booking.booking_reference,
        tourTitle=tour.title if tour else "",
        agentName=agent.business_name if agent else "",
        startDate=booking.start_date,
        endDate=booking.end_date,
        adults=booking.adults,
        children=booking.children,
        infants=booking.infants,
        currency=booking.currency,
        baseAmount=float(booking.base_amount),
        accommodationAmount=float(booking.accommodation_amount),
        activitiesAmount=float(booking.activities_amount),
        taxAmount=float(booking.tax_amount),
        discountAmount=float(booking.discount_amount),
        totalAmount=float(booking.total_amount),
        status=booking.status,
        paymentStatus=booking.payment_status,
        paymentType=booking.payment_type,
        depositAmount=float(booking.deposit_amount) if booking.deposit_amount is not None else None,
        balanceAmount=float(booking.balance_amount) if booking.balance_amount is not None else None,
        balanceDueDate=booking.balance_due_date,
    )


def delete_tour(db: Session, tour: Tour, actor: User) -> None:
    active = (
        db.query(Booking.id)
        .filter(Booking.tour_id == tour.id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .count()
    )
    if active:
        raise BookingError(f"Cannot delete tour with {active} active booking(s)")
    db.query(AccommodationOption).filter(AccommodationOption.tour_id == tour.id).delete()
    db.query(ActivityAddon).filter(ActivityAddon.tour_id == tour.id).delete()
    db.query(TourAvailability).filter(TourAvailability.tour_id == tour.id).delete()
    log_audit(db, actor.id, "TOUR_DELETED", "tour", tour.id, {"title": tour.title})
    db.delete(tour)
    db.commit()
    log.info("tour %s deleted by %s", tour.id, actor.id)
