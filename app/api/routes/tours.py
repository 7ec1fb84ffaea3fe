from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.tour import Tour
from app.models.user import User
from app.services import booking_service
from app.services.availability_service import availability_calendar, utc_today
from app.services.errors import BookingError

router = APIRouter(prefix="/tours", tags=["tours"])


@router.get("/{tour_id}/availability")
def tour_availability(
    tour_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    guests: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
):
    tour = db.get(Tour, tour_id)
    if not tour or tour.status != "ACTIVE":
        raise HTTPException(status_code=404, detail="Tour not found")
    start = start or utc_today()
    end = end or start + timedelta(days=60)
    try:
        days = availability_calendar(db, tour, start, end, guests)
    except BookingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "tourId": tour.id,
        "maxGroupSize": tour.max_group_size,
        "durationDays": tour.duration_days,
        "availability": days,
    }


@router.delete("/{tour_id}")
def delete_tour(tour_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    tour = db.get(Tour, tour_id)
    if not tour:
        raise HTTPException(status_code=404, detail="Tour not found")
    if not booking_service.can_manage_tour_bookings(db, tour.agent_id, user):
        raise HTTPException(status_code=403, detail="Forbidden")
    try:
        booking_service.delete_tour(db, tour, user)
    except BookingError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}
