import hmac
import logging
from dataclasses import dataclass
from urllib.parse import quote

import requests

from app.services.errors import PaymentGatewayError

log = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = ("NGN", "USD", "EUR", "GBP", "KES", "GHS", "ZAR", "TZS", "UGX", "RWF")
WEBHOOK_EVENTS = ("charge.completed", "charge.successful", "charge.failed")

STATUSES = {
    "successful": "COMPLETED",
    "failed": "FAILED",
    "cancelled": "FAILED",
    "pending": "PENDING",
}

PAYMENT_TYPES = {
    "card": "CARD",
    "mobilemoney": "MPESA",
    "mobilemoneyghana": "MPESA",
    "mobilemoneyfranco": "MPESA",
    "mobilemoneyuganda": "MPESA",
    "mobilemoneyrwanda": "MPESA",
    "mobilemoneyzambia": "MPESA",
    "mpesa": "MPESA",
    "ussd": "BANK_TRANSFER",
    "bank_transfer": "BANK_TRANSFER",
    "banktransfer": "BANK_TRANSFER",
    "account": "BANK_TRANSFER",
    "qr": "BANK_TRANSFER",
    "paypal": "PAYPAL",
}


@dataclass
class FlutterwaveConfig:
    api_url: str            # https://api.flutterwave.com
    secret_key: str
    public_key: str = ""
    webhook_secret: str = ""  # compared against the verif-hash header
    timeout: int = 25


class FlutterwaveError(PaymentGatewayError):
    pass


def map_status(status: str | None) -> str:
    return STATUSES.get((status or "").lower(), "PENDING")


def map_payment_type(payment_type: str | None) -> str:
    return PAYMENT_TYPES.get((payment_type or "").lower(), "CARD")


def is_valid_webhook_payload(payload: dict) -> bool:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not payload or not payload.get("event") or not isinstance(data, dict):
        return False
    if not data.get("id") or not data.get("tx_ref"):
        return False
    return payload["event"] in WEBHOOK_EVENTS


class FlutterwaveClient:
    def __init__(self, cfg: FlutterwaveConfig):
        if not cfg.secret_key:
            raise FlutterwaveError("Flutterwave secret key is required")
        self.cfg = cfg

    def _send(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = self.cfg.api_url.rstrip("/") + path
        headers = {
            "Authorization": f"Bearer {self.cfg.secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            r = requests.request(method=method.upper(), url=url, json=payload, headers=headers, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise FlutterwaveError(f"Flutterwave request failed: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            msg = data.get("message") if isinstance(data, dict) else None
            raise FlutterwaveError(f"Flutterwave {r.status_code}: {msg or data}")
        if isinstance(data, dict) and data.get("status") != "success":
            raise FlutterwaveError(f"Flutterwave request failed: {data.get('message') or 'Unknown error'}")
        return data

    def initiate_payment(self, payment: dict) -> dict:
        """Create a Standard checkout; returns the response whose data.link is the hosted payment page."""
        if not payment.get("tx_ref") or not payment.get("amount") or not payment.get("currency"):
            raise FlutterwaveError("Transaction reference, amount, and currency are required")
        if float(payment["amount"]) <= 0:
            raise FlutterwaveError("Payment amount must be greater than zero")
        if payment["currency"].upper() not in SUPPORTED_CURRENCIES:
            raise FlutterwaveError(f"Invalid currency. Supported currencies: {', '.join(SUPPORTED_CURRENCIES)}")
        if not (payment.get("customer") or {}).get("email"):
            raise FlutterwaveError("Customer email is required")

        data = self._send("POST", "/v3/payments", payment)
        if not (data.get("data") or {}).get("link"):
            raise FlutterwaveError("Invalid payment response: missing payment link")
        return data

    def verify_transaction(self, transaction_id) -> dict:
        return self._send("GET", f"/v3/transactions/{transaction_id}/verify")

    def verify_transaction_by_ref(self, tx_ref: str) -> dict:
        return self._send("GET", f"/v3/transactions/verify_by_reference?tx_ref={quote(tx_ref, safe='')}")

    def verify_webhook_signature(self, signature: str | None) -> bool:
        if not self.cfg.webhook_secret:
            log.warning("FLUTTERWAVE_WEBHOOK_SECRET not set; webhook signature not checked")
            return True
        return hmac.compare_digest(signature or "", self.cfg.webhook_secret)
