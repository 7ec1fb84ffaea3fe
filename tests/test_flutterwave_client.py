import pytest

from app.services import flutterwave_client
from app.services.flutterwave_client import (
    FlutterwaveClient,
    FlutterwaveConfig,
    FlutterwaveError,
    is_valid_webhook_payload,
    map_payment_type,
    map_status,
)


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data or {}
        self.text = "x"

    def json(self):
        return self._data


class Calls(list):
    """Recorded requests, plus the canned responses to serve."""


@pytest.fixture
def calls(monkeypatch):
    calls = Calls()
    calls.next = FakeResponse(data={"status": "success", "data": {"link": "https://checkout.flutterwave.test/abc"}})

    def fake_request(method, url, json=None, headers=None, timeout=None):
        calls.append({"method": method, "url": url, "json": json, "headers": headers})
        return calls.next

    monkeypatch.setattr(flutterwave_client.requests, "request", fake_request)
    return calls


@pytest.fixture
def flw():
    return FlutterwaveClient(FlutterwaveConfig(api_url="https://api.flutterwave.test", secret_key="FLWSECK-1", webhook_secret="hash-1"))


def _payment(**kw):
    payment = {"tx_ref": "SP-1", "amount": 2499, "currency": "USD", "customer": {"email": "jane@example.com"}}
    payment.update(kw)
    return payment


def test_initiate_payment(calls, flw):
    data = flw.initiate_payment(_payment())
    assert data["data"]["link"].startswith("https://checkout.flutterwave.test/")
    assert calls[0]["url"] == "https://api.flutterwave.test/v3/payments"
    assert calls[0]["headers"]["Authorization"] == "Bearer FLWSECK-1"


@pytest.mark.parametrize("payment,message", [
    (_payment(tx_ref=""), "required"),
    (_payment(amount=-1), "greater than zero"),
    (_payment(currency="JPY"), "Invalid currency"),
    (_payment(customer={}), "email"),
])
def test_initiate_payment_validation(calls, flw, payment, message):
    with pytest.raises(FlutterwaveError, match=message):
        flw.initiate_payment(payment)
    assert calls == []


def test_missing_link_is_an_error(calls, flw):
    calls.next = FakeResponse(data={"status": "success", "data": {}})
    with pytest.raises(FlutterwaveError, match="missing payment link"):
        flw.initiate_payment(_payment())


def test_non_success_status_is_an_error(calls, flw):
    calls.next = FakeResponse(data={"status": "error", "message": "Invalid authorization key"})
    with pytest.raises(FlutterwaveError, match="Invalid authorization key"):
        flw.verify_transaction(123)


def test_http_error_uses_message(calls, flw):
    calls.next = FakeResponse(404, {"status": "error", "message": "No transaction was found"})
    with pytest.raises(FlutterwaveError, match="404: No transaction was found"):
        flw.verify_transaction(123)


def test_verify_by_reference_quotes_ref(calls, flw):
    calls.next = FakeResponse(data={"status": "success", "data": {"id": 1}})
    flw.verify_transaction_by_ref("SP 1/2")
    assert calls[0]["url"].endswith("/v3/transactions/verify_by_reference?tx_ref=SP%201%2F2")


def test_webhook_signature():
    flw = FlutterwaveClient(FlutterwaveConfig(api_url="https://x", secret_key="k", webhook_secret="hash-1"))
    assert flw.verify_webhook_signature("hash-1")
    assert not flw.verify_webhook_signature("other")
    assert not flw.verify_webhook_signature(None)

    open_client = FlutterwaveClient(FlutterwaveConfig(api_url="https://x", secret_key="k"))
    assert open_client.verify_webhook_signature(None)


def test_webhook_payload_validation():
    good = {"event": "charge.completed", "data": {"id": 1, "tx_ref": "SP-1"}}
    assert is_valid_webhook_payload(good)
    assert not is_valid_webhook_payload({"event": "transfer.completed", "data": {"id": 1, "tx_ref": "SP-1"}})
    assert not is_valid_webhook_payload({"event": "charge.completed", "data": {"id": 1}})
    assert not is_valid_webhook_payload({})


def test_status_and_type_mapping():
    assert map_status("successful") == "COMPLETED"
    assert map_status("cancelled") == "FAILED"
    assert map_status(None) == "PENDING"
    assert map_payment_type("mobilemoneyghana") == "MPESA"
    assert map_payment_type("ussd") == "BANK_TRANSFER"
    assert map_payment_type("something-new") == "CARD"
