"""One adapter per payment gateway behind a common interface.

payment_service only talks to PaymentGatewayAdapter; adding a gateway means
adding an adapter here and a route in gateway_router.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

from app.core.config import settings
from app.models.booking import Booking
from app.models.payment import Payment
from app.services import flutterwave_client, gateway_router, pesapal_client
from app.services.flutterwave_client import FlutterwaveClient, FlutterwaveConfig
from app.services.pesapal_client import PesapalClient, PesapalConfig
from app.services.pricing_service import to_decimal
from app.services.reference_service import make_flutterwave_tx_ref, make_pesapal_merchant_ref

log = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    reference: str
    amount: Decimal
    currency: str
    payload: dict


@dataclass
class SubmitResult:
    redirect_url: str
    payment_fields: dict  # Payment columns to store, e.g. pesapal_order_id
    response_fields: dict = field(default_factory=dict)  # extra keys for the initiate response


@dataclass
class GatewayStatus:
    status: str  # PENDING, COMPLETED, FAILED, REFUNDED
    message: str
    method: str | None = None
    payment_fields: dict = field(default_factory=dict)
    amount: Decimal | None = None
    currency: str | None = None
    reference: str | None = None  # merchant reference the gateway holds for the transaction


def split_name(full_name: str | None) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class PaymentGatewayAdapter(ABC):
    name: str       # router key: pesapal, flutterwave
    code: str       # Payment.gateway value
    dev_mode: bool = False
    dev_amount: Decimal = Decimal("0")
    dev_currency: str = ""

    def supports_currency(self, currency: str) -> bool:
        return gateway_router.is_gateway_supported_currency(self.name, currency)

    def charge_amount(self, amount, currency: str) -> tuple[Decimal, str]:
        """Amount actually sent to the gateway; dev mode swaps in a token charge."""
        if self.dev_mode:
            log.info(
                "%s dev mode: charging %s %s instead of %s %s",
                self.code, self.dev_currency, self.dev_amount, currency, amount,
            )
            return to_decimal(self.dev_amount), self.dev_currency
        return to_decimal(amount), currency

    @abstractmethod
    def make_reference(self, booking_reference: str) -> str: ...

    @abstractmethod
    def reference_fields(self, reference: str) -> dict:
        """Payment columns set when the PENDING payment is created."""

    @abstractmethod
    def build_order(self, booking: Booking, tour_title: str, amount, reference: str, phone: str | None = None) -> GatewayOrder: ...

    @abstractmethod
    def submit_order(self, order: GatewayOrder) -> SubmitResult: ...

    @abstractmethod
    def fetch_status(self, payment: Payment) -> GatewayStatus: ...

    @abstractmethod
    def map_status(self, raw) -> str: ...

    @abstractmethod
    def verify_webhook_signature(self, signature: str | None) -> bool: ...

    @staticmethod
    def has_tracking(payment: Payment) -> bool:
        """True once the gateway has accepted the order for this payment."""
        return bool(payment.pesapal_order_id or payment.flutterwave_ref)


class PesapalAdapter(PaymentGatewayAdapter):
    name = gateway_router.PESAPAL
    code = "PESAPAL"

    def __init__(self, client: PesapalClient | None = None):
        self._client = client
        self.dev_mode = settings.PESAPAL_DEV_MODE
        self.dev_amount = to_decimal(settings.PESAPAL_DEV_AMOUNT)
        self.dev_currency = settings.PESAPAL_DEV_CURRENCY

    @property
    def client(self) -> PesapalClient:
        if self._client is None:
            self._client = PesapalClient(PesapalConfig(
                api_url=settings.PESAPAL_API_URL,
                consumer_key=settings.PESAPAL_CONSUMER_KEY,
                consumer_secret=settings.PESAPAL_CONSUMER_SECRET,
                ipn_url=settings.PESAPAL_IPN_URL,
                ipn_id=settings.PESAPAL_IPN_ID,
                timeout=settings.GATEWAY_TIMEOUT,
            ))
        return self._client

    def make_reference(self, booking_reference: str) -> str:
        return make_pesapal_merchant_ref(booking_reference)

    def reference_fields(self, reference: str) -> dict:
        return {"pesapal_merchant_ref": reference}

    def build_order(self, booking: Booking, tour_title: str, amount, reference: str, phone: str | None = None) -> GatewayOrder:
        amount, currency = self.charge_amount(amount, booking.currency)
        first_name, last_name = split_name(booking.contact_name)
        payload = {
            "id": reference,
            "currency": currency,
            "amount": float(amount),
            "description": f"Safari Booking: {tour_title} - {booking.booking_reference}",
            "callback_url": f"{settings.APP_PUBLIC_URL.rstrip('/')}/booking/confirmation/{booking.id}",
            "notification_id": settings.PESAPAL_IPN_ID,
            "billing_address": {
                "email_address": booking.contact_email,
                "phone_number": phone or booking.contact_phone or None,
                "first_name": first_name,
                "last_name": last_name,
                "country_code": settings.PESAPAL_COUNTRY_CODE,
            },
        }
        return GatewayOrder(reference=reference, amount=amount, currency=currency, payload=payload)

    def submit_order(self, order: GatewayOrder) -> SubmitResult:
        resp = self.client.submit_order(order.payload)
        tracking_id = resp["order_tracking_id"]
        return SubmitResult(
            redirect_url=resp["redirect_url"],
            payment_fields={"pesapal_order_id": tracking_id, "pesapal_tracking_id": tracking_id},
            response_fields={"orderTrackingId": tracking_id},
        )

    def map_status(self, raw) -> str:
        return pesapal_client.map_status_code(raw)

    def fetch_status(self, payment: Payment) -> GatewayStatus:
        data = self.client.get_transaction_status(payment.pesapal_order_id or payment.pesapal_tracking_id)
        fields = {}
        if data.get("confirmation_code"):
            fields["pesapal_tracking_id"] = data["confirmation_code"]
        return GatewayStatus(
            status=self.map_status(data.get("status_code")),
            message=data.get("payment_status_description") or data.get("description") or "",
            method=pesapal_client.map_payment_method(data.get("payment_method")) if data.get("payment_method") else None,
            payment_fields=fields,
            amount=to_decimal(data["amount"]) if data.get("amount") is not None else None,
            currency=data.get("currency"),
            reference=data.get("merchant_reference"),
        )

    def verify_webhook_signature(self, signature: str | None) -> bool:
        # IPNs are unsigned; every notification is confirmed through GetTransactionStatus instead
        return True


class FlutterwaveAdapter(PaymentGatewayAdapter):
    name = gateway_router.FLUTTERWAVE
    code = "FLUTTERWAVE"

    def __init__(self, client: FlutterwaveClient | None = None):
        self._client = client
        self.dev_mode = settings.FLUTTERWAVE_DEV_MODE
        self.dev_amount = to_decimal(settings.FLUTTERWAVE_DEV_AMOUNT)
        self.dev_currency = settings.FLUTTERWAVE_DEV_CURRENCY

    @property
    def client(self) -> FlutterwaveClient:
        if self._client is None:
            self._client = FlutterwaveClient(FlutterwaveConfig(
                api_url=settings.FLUTTERWAVE_API_URL,
                secret_key=settings.FLUTTERWAVE_SECRET_KEY,
                public_key=settings.FLUTTERWAVE_PUBLIC_KEY,
                webhook_secret=settings.FLUTTERWAVE_WEBHOOK_SECRET,
                timeout=settings.GATEWAY_TIMEOUT,
            ))
        return self._client

    def make_reference(self, booking_reference: str) -> str:
        return make_flutterwave_tx_ref(booking_reference)

    def reference_fields(self, reference: str) -> dict:
        # flutterwave_ref is only stored once the checkout link exists; it marks the order as submitted
        return {}

    def build_order(self, booking: Booking, tour_title: str, amount, reference: str, phone: str | None = None) -> GatewayOrder:
        amount, currency = self.charge_amount(amount, booking.currency)
        payload = {
            "tx_ref": reference,
            "amount": float(amount),
            "currency": currency,
            "redirect_url": f"{settings.APP_PUBLIC_URL.rstrip('/')}/booking/confirmation/{booking.id}",
            "customer": {
                "email": booking.contact_email,
                "phone_number": phone or booking.contact_phone,
                "name": booking.contact_name,
            },
            "customizations": {
                "title": "SafariPlus",
                "description": f"Safari Booking: {tour_title} - {booking.booking_reference}",
            },
            "meta": {"booking_id": booking.id, "booking_reference": booking.booking_reference},
        }
        return GatewayOrder(reference=reference, amount=amount, currency=currency, payload=payload)

    def submit_order(self, order: GatewayOrder) -> SubmitResult:
        resp = self.client.initiate_payment(order.payload)
        return SubmitResult(
            redirect_url=resp["data"]["link"],
            payment_fields={"flutterwave_ref": order.reference},
            response_fields={"txRef": order.reference},
        )

    def map_status(self, raw) -> str:
        return flutterwave_client.map_status(raw)

    def fetch_status(self, payment: Payment) -> GatewayStatus:
        if payment.flutterwave_tx_id:
            resp = self.client.verify_transaction(payment.flutterwave_tx_id)
        else:
            resp = self.client.verify_transaction_by_ref(payment.flutterwave_ref or payment.idempotency_key)
        data = resp.get("data") or {}
        fields = {}
        if data.get("id"):
            fields["flutterwave_tx_id"] = str(data["id"])
        card = data.get("card") or {}
        if card.get("last_4digits"):
            fields["card_last_four"] = str(card["last_4digits"])[-4:]
        if card.get("type"):
            fields["card_type"] = card["type"]
        return GatewayStatus(
            status=self.map_status(data.get("status")),
            message=data.get("processor_response") or f"Payment {data.get('status') or 'pending'}",
            method=flutterwave_client.map_payment_type(data.get("payment_type")) if data.get("payment_type") else None,
            payment_fields=fields,
            amount=to_decimal(data["amount"]) if data.get("amount") is not None else None,
            currency=data.get("currency"),
            reference=data.get("tx_ref"),
        )

    def verify_webhook_signature(self, signature: str | None) -> bool:
        return self.client.verify_webhook_signature(signature)


def get_gateway_adapters() -> dict[str, PaymentGatewayAdapter]:
    """FastAPI dependency; tests override it with fakes."""
    return {gateway_router.PESAPAL: PesapalAdapter(), gateway_router.FLUTTERWAVE: FlutterwaveAdapter()}
