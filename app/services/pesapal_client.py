import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import requests

from app.services.errors import PaymentGatewayError

SUPPORTED_CURRENCIES = ("KES", "TZS", "UGX", "USD")

# GetTransactionStatus status_code -> internal payment status
STATUS_CODES = {
    0: "PENDING",    # invalid / not yet paid
    1: "COMPLETED",
    2: "FAILED",
    3: "REFUNDED",   # reversed
}

PAYMENT_METHODS = {
    "mpesa": "MPESA",
    "m-pesa": "MPESA",
    "mpesake": "MPESA",
    "mpesatz": "MPESA",
    "airtel money": "MPESA",
    "airtelke": "MPESA",
    "tigopesatz": "MPESA",
    "visa": "CARD",
    "mastercard": "CARD",
    "american express": "CARD",
    "amex": "CARD",
    "equity": "BANK_TRANSFER",
    "equity bank": "BANK_TRANSFER",
    "cooperative bank": "BANK_TRANSFER",
    "co-op": "BANK_TRANSFER",
    "pesapal": "PAYPAL",
    "pesapal wallet": "PAYPAL",
}


@dataclass
class PesapalConfig:
    api_url: str            # https://cybqa.pesapal.com/pesapalv3 (sandbox) or https://pay.pesapal.com/v3
    consumer_key: str
    consumer_secret: str
    ipn_url: str = ""
    ipn_id: str = ""        # notification_id returned by RegisterIPN
    timeout: int = 25


class PesapalError(PaymentGatewayError):
    pass


def map_status_code(status_code) -> str:
    try:
        return STATUS_CODES.get(int(status_code), "PENDING")
    except (TypeError, ValueError):
        return "PENDING"


def map_payment_method(pesapal_method: str | None) -> str:
    return PAYMENT_METHODS.get((pesapal_method or "").strip().lower(), "CARD")


class PesapalClient:
    """Pesapal API 3.0. Bearer tokens live 5 minutes; cached until 30s before expiry."""

    def __init__(self, cfg: PesapalConfig):
        if not cfg.consumer_key or not cfg.consumer_secret:
            raise PesapalError("Pesapal consumer key and secret are required")
        if not cfg.api_url:
            raise PesapalError("Pesapal API URL is required")
        self.cfg = cfg
        self._token: str | None = None
        self._token_expiry: datetime | None = None

    def _url(self, path: str) -> str:
        return self.cfg.api_url.rstrip("/") + path

    def _send(self, method: str, path: str, payload: dict | None = None, params: dict | None = None, token: str | None = None) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            r = requests.request(
                method=method.upper(), url=self._url(path), json=payload, params=params,
                headers=headers, timeout=self.cfg.timeout,
            )
        except requests.RequestException as e:
            raise PesapalError(f"Pesapal request failed: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            raise PesapalError(f"Pesapal {r.status_code}: {data}")
        return data

    @staticmethod
    def _check(data, what: str) -> None:
        if not isinstance(data, dict):
            return
        err = data.get("error")
        if err:
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise PesapalError(f"{what} failed: {msg or 'Unknown error'}")
        status = data.get("status")
        if status is not None and str(status) != "200":
            raise PesapalError(f"{what} failed: status {status}")

    def get_access_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._token and self._token_expiry and now < self._token_expiry - timedelta(seconds=30):
            return self._token
        data = self._send("POST", "/api/Auth/RequestToken", {
            "consumer_key": self.cfg.consumer_key,
            "consumer_secret": self.cfg.consumer_secret,
        })
        self._check(data, "Pesapal authentication")
        token, expiry = data.get("token"), data.get("expiryDate")
        if not token or not expiry:
            raise PesapalError("Invalid authentication response: missing token or expiry date")
        self._token = token
        self._token_expiry = _parse_expiry(expiry)
        return token

    def register_ipn(self, url: str | None = None, notification_type: str = "POST") -> str:
        """Register the IPN URL once per environment; returns the ipn_id for PESAPAL_IPN_ID."""
        data = self._send("POST", "/api/URLSetup/RegisterIPN", {
            "url": url or self.cfg.ipn_url,
            "ipn_notification_type": notification_type,
        }, token=self.get_access_token())
        self._check(data, "IPN registration")
        if not data.get("ipn_id"):
            raise PesapalError("Invalid IPN registration response: missing ipn_id")
        return data["ipn_id"]

    def list_ipns(self) -> list:
        return self._send("GET", "/api/URLSetup/GetIpnList", token=self.get_access_token())

    def submit_order(self, order: dict) -> dict:
        if not order.get("id") or not order.get("currency") or not order.get("amount"):
            raise PesapalError("Order ID, currency, and amount are required")
        if float(order["amount"]) <= 0:
            raise PesapalError("Order amount must be greater than zero")
        if order["currency"].upper() not in SUPPORTED_CURRENCIES:
            raise PesapalError(f"Invalid currency. Supported currencies: {', '.join(SUPPORTED_CURRENCIES)}")
        if not (order.get("billing_address") or {}).get("email_address"):
            raise PesapalError("Billing email address is required")
        order = {**order, "notification_id": order.get("notification_id") or self.cfg.ipn_id}
        if not order["notification_id"]:
            raise PesapalError("IPN ID is required. Register the IPN URL first.")

        data = self._send("POST", "/api/Transactions/SubmitOrderRequest", order, token=self.get_access_token())
        self._check(data, "Order submission")
        if not data.get("order_tracking_id") or not data.get("redirect_url"):
            raise PesapalError("Invalid order response: missing tracking ID or redirect URL")
        return data

    def get_transaction_status(self, order_tracking_id: str) -> dict:
        if not order_tracking_id:
            raise PesapalError("Order tracking ID is required")
        data = self._send(
            "GET", "/api/Transactions/GetTransactionStatus",
            params={"orderTrackingId": order_tracking_id}, token=self.get_access_token(),
        )
        err = data.get("error") if isinstance(data, dict) else None
        if err and (not isinstance(err, dict) or err.get("message") or err.get("code")):
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise PesapalError(f"Status check failed: {msg or 'Unknown error'}")
        return data


def _parse_expiry(value: str) -> datetime:
    # e.g. "2021-08-26T12:29:30.5177702Z"; fractional seconds beyond 6 digits are dropped
    v = value.strip().replace("Z", "+00:00")
    if "." in v:
        head, _, rest = v.partition(".")
        frac, tz = re.match(r"(\d*)(.*)", rest).groups()
        v = f"{head}.{frac[:6]}{tz}"
    try:
        dt = datetime.fromisoformat(v)
    except ValueError:
        return datetime.now(timezone.utc) + timedelta(minutes=5)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
