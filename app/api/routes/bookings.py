import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import booking_limiter, get_current_user, rate_limited
from app.db.session import get_db
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingOut, BookingStatusUpdate
from app.services import booking_service
from app.services.errors import BookingError, NotFoundError

router = APIRouter(prefix="/bookings", tags=["bookings"])
log = logging.getLogger(__name__)


def today_provider():
    """Overridden in tests to pin the booking calendar."""
    return None


@router.post("", response_model=BookingOut, status_code=201)
def create_booking(
    body: BookingCreate,
    db: Session = Depends(get_db),
    user: User | None = Depends(rate_limited(booking_limiter, optional_auth=True)),
    today=Depends(today_provider),
):
    try:
        booking = booking_service.create_booking(db, body, user, today=today)
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except BookingError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return booking_service.booking_out(db, booking)


@router.get("")
def list_bookings(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"bookings": booking_service.list_user_bookings(db, user, status)}


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        booking = booking_service.get_booking(db, booking_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not booking_service.can_view_booking(db, booking, user):
        raise HTTPException(status_code=403, detail="Forbidden")
    return booking_service.booking_out(db, booking)


@router.patch("/{booking_id}/status", response_model=BookingOut)
def update_booking_status(
    booking_id: str,
    body: BookingStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        booking = booking_service.get_booking(db, booking_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not booking_service.can_manage_tour_bookings(db, booking.agent_id, user):
        raise HTTPException(status_code=403, detail="Forbidden")
    try:
        booking = booking_service.transition_booking_status(db, booking, body.status, user, body.reason)
    except BookingError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return booking_service.booking_out(db, booking)
