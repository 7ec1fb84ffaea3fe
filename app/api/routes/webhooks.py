import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.payments import PesapalIPN
from app.services import gateway_router
from app.services.errors import NotFoundError, PaymentGatewayError
from app.services.flutterwave_client import is_valid_webhook_payload
from app.services.gateway_adapters import get_gateway_adapters
from app.services.payment_service import handle_flutterwave_webhook, handle_pesapal_ipn

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
log = logging.getLogger(__name__)


async def _pesapal_params(request: Request) -> dict:
    params = dict(request.query_params)
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            params.update(body)
    return params


@router.api_route("/pesapal", methods=["GET", "POST"])
async def pesapal_ipn(request: Request, db: Session = Depends(get_db), adapters: dict = Depends(get_gateway_adapters)):
    try:
        ipn = PesapalIPN.model_validate(await _pesapal_params(request))
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid notification structure")
    tracking_id = ipn.OrderTrackingId
    merchant_ref = ipn.OrderMerchantReference
    notification_type = ipn.OrderNotificationType
    log.info("pesapal IPN %s tracking=%s merchant_ref=%s", notification_type, tracking_id, merchant_ref)
    if not tracking_id or not merchant_ref:
        raise HTTPException(status_code=400, detail="Invalid notification structure")

    try:
        handle_pesapal_ipn(db, tracking_id, merchant_ref, adapters)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PaymentGatewayError as e:
        db.rollback()
        log.error("pesapal IPN verification failed for %s: %s", tracking_id, e)
        raise HTTPException(status_code=500, detail="Failed to verify transaction status")

    # Pesapal expects this acknowledgement shape
    return {
        "orderNotificationType": notification_type,
        "orderTrackingId": tracking_id,
        "orderMerchantReference": merchant_ref,
        "status": 200,
    }


@router.post("/flutterwave")
async def flutterwave_webhook(
    request: Request,
    verif_hash: Optional[str] = Header(default=None, alias="verif-hash"),
    db: Session = Depends(get_db),
    adapters: dict = Depends(get_gateway_adapters),
):
    adapter = adapters[gateway_router.FLUTTERWAVE]
    if not adapter.verify_webhook_signature(verif_hash):
        log.warning("flutterwave webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not is_valid_webhook_payload(payload):
        log.warning("flutterwave webhook payload rejected: %s", payload)
        raise HTTPException(status_code=400, detail="Invalid payload")

    log.info("flutterwave webhook %s tx_ref=%s", payload["event"], payload["data"]["tx_ref"])
    try:
        payment = handle_flutterwave_webhook(db, payload, adapters)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PaymentGatewayError as e:
        db.rollback()
        log.error("flutterwave verification failed for %s: %s", payload["data"]["tx_ref"], e)
        raise HTTPException(status_code=500, detail="Failed to verify transaction")
    return {"status": "success", "paymentStatus": payment.status}


@router.get("/flutterwave")
def flutterwave_webhook_check():
    return {"status": "ok"}
