from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.tour import Tour
from app.models.tour_availability import TourAvailability
from app.services.errors import BookingError

INACTIVE_BOOKING_STATUSES = ("CANCELLED", "REFUNDED")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def booked_guests(db: Session, tour_id: str, start_date: date, end_date: date) -> int:
    """adults + children over live bookings whose [start, end] overlaps the range (both ends inclusive)."""
    total = (
        db.query(func.coalesce(func.sum(Booking.adults + Booking.children), 0))
        .filter(
            Booking.tour_id == tour_id,
            Booking.status.notin_(INACTIVE_BOOKING_STATUSES),
            Booking.start_date <= end_date,
            Booking.end_date >= start_date,
        )
        .scalar()
    )
    return int(total or 0)


def check_availability(
    db: Session,
    tour: Tour,
    start_date: date,
    end_date: date,
    adults: int,
    children: int,
    today: date | None = None,
) -> int:
    """Raise BookingError if the tour cannot take the party; return capacity left after it.

    Capacity is a single aggregate over the whole requested range, not per day.
    """
    today = today or utc_today()
    if start_date < today:
        raise BookingError("Start date cannot be in the past")
    if end_date <= start_date:
        raise BookingError("End date must be after start date")

    blocked = (
        db.query(TourAvailability)
        .filter(
            TourAvailability.tour_id == tour.id,
            TourAvailability.type == "BLOCKED",
            TourAvailability.date >= start_date,
            TourAvailability.date <= end_date,
        )
        .order_by(TourAvailability.date.asc())
        .all()
    )
    if blocked:
        days = ", ".join(b.date.isoformat() for b in blocked)
        raise BookingError(f"Selected dates include unavailable days: {days}")

    requested = adults + children
    already = booked_guests(db, tour.id, start_date, end_date)
    remaining = tour.max_group_size - already
    if requested > remaining:
        raise BookingError(
            f"Not enough capacity for the selected dates. Only {max(remaining, 0)} spot(s) remaining."
        )
    return remaining - requested


def availability_calendar(db: Session, tour: Tour, start: date, end: date, guests: int = 1) -> list[dict]:
    """Per-day availability for the tour's booking calendar."""
    if end < start:
        raise BookingError("end must not be before start")
    if (end - start).days > 366:
        raise BookingError("calendar range is limited to one year")

    days: dict[date, dict] = {}
    d = start
    while d <= end:
        days[d] = {
            "date": d.isoformat(),
            "available": True,
            "type": "AVAILABLE",
            "spotsAvailable": tour.max_group_size,
            "bookedSpots": 0,
            "reason": None,
        }
        d += timedelta(days=1)

    entries = (
        db.query(TourAvailability)
        .filter(TourAvailability.tour_id == tour.id, TourAvailability.date >= start, TourAvailability.date <= end)
        .all()
    )
    for e in entries:
        day = days[e.date]
        if e.type == "BLOCKED":
            day.update(available=False, type="BLOCKED", spotsAvailable=0, reason=e.notes or "Date is blocked")
        elif e.type == "LIMITED":
            day.update(type="LIMITED", spotsAvailable=min(e.spots_available or 0, tour.max_group_size))

    bookings = (
        db.query(Booking.start_date, Booking.end_date, Booking.adults, Booking.children)
        .filter(
            Booking.tour_id == tour.id,
            Booking.status.notin_(INACTIVE_BOOKING_STATUSES),
            Booking.start_date <= end,
            Booking.end_date >= start,
        )
        .all()
    )
    for b_start, b_end, adults, children in bookings:
        d = max(b_start, start)
        while d <= min(b_end, end):
            days[d]["bookedSpots"] += adults + children
            d += timedelta(days=1)

    for day in days.values():
        if day["type"] == "BLOCKED":
            continue
        left = day["spotsAvailable"] - day["bookedSpots"]
        if left < guests:
            day["available"] = False
            day["reason"] = "Fully booked" if left <= 0 else f"Only {left} spot(s) left"
    return list(days.values())
