import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, payment_limiter, rate_limited
from app.db.session import get_db
from app.models.booking import Booking
from app.models.user import User
from app.schemas.payments import PaymentInitiateRequest
from app.services import booking_service, gateway_router
from app.services.gateway_adapters import get_gateway_adapters
from app.services.errors import PaymentGatewayError, PaymentGuardError
from app.services.payment_service import (
    PaymentForbidden,
    PaymentSubmissionError,
    initiate_payment,
    refresh_payment_status,
)

router = APIRouter(prefix="/payments", tags=["payments"])
log = logging.getLogger(__name__)


@router.post("/initiate")
def initiate(
    body: PaymentInitiateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(rate_limited(payment_limiter)),
    adapters: dict = Depends(get_gateway_adapters),
):
    booking = db.get(Booking, body.bookingId)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    try:
        return initiate_payment(db, booking, user, body.paymentMethod, body.phoneNumber, body.gateway, adapters)
    except PaymentForbidden as e:
        raise HTTPException(status_code=403, detail=str(e))
    except PaymentGuardError as e:
        content = {"detail": str(e)}
        if e.existing_payment:
            content["existingPayment"] = e.existing_payment
        return JSONResponse(status_code=400, content=content)
    except PaymentSubmissionError as e:
        return JSONResponse(status_code=500, content={
            "detail": "Failed to initiate payment with payment processor",
            "paymentId": e.payment_id,
        })
    except PaymentGatewayError as e:
        # no adapter / misconfigured gateway credentials
        log.error("payment gateway unavailable: %s", e)
        raise HTTPException(status_code=500, detail="Payment gateway is not available")


@router.get("/status")
def payment_status(
    bookingId: str,
    refresh: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    adapters: dict = Depends(get_gateway_adapters),
):
    booking = db.get(Booking, bookingId)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if not booking_service.can_view_booking(db, booking, user):
        raise HTTPException(status_code=403, detail="Forbidden")
    return refresh_payment_status(db, booking, adapters, refresh=refresh)


@router.get("/methods")
def payment_methods(currency: str = Query(default="USD", min_length=3, max_length=3)):
    methods = gateway_router.available_payment_methods(currency)
    return {
        "currency": currency.upper(),
        "methods": [{**m, "gatewayName": gateway_router.display_name(m["gateway"])} for m in methods],
    }
