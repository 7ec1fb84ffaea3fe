from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.models.booking import Booking
from app.api.deps import payment_limiter
from app.models.payment import Payment

from conftest import auth_headers, booking_body, make_agent, make_tour, make_user


def _book(client, db, user, currency="USD", **overrides):
    tour = make_tour(db, make_agent(db), currency=currency)
    r = client.post("/api/bookings", json=booking_body(tour, **overrides), headers=auth_headers(user))
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_mpesa_payment_end_to_end(client, db, pesapal):
    user = make_user(db)
    booking_id = _book(client, db, user)

    r = client.post(
        "/api/payments/initiate",
        json={"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "+254712345678"},
        headers=auth_headers(user),
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["success"] is True
    assert data["gateway"] == "pesapal"
    assert data["redirectUrl"].startswith("https://pay.pesapal.test/")
    assert data["orderTrackingId"] == "TRK-1"
    assert data["merchantReference"].startswith("SP-SF")

    payment = db.get(Payment, data["paymentId"])
    assert payment.status == "PROCESSING"
    assert payment.gateway == "PESAPAL"
    assert payment.amount == Decimal("2499")
    assert payment.idempotency_key == data["merchantReference"]
    assert payment.pesapal_order_id == "TRK-1"
    assert db.get(Booking, booking_id).payment_status == "PROCESSING"

    order = pesapal.orders[0]
    assert order["amount"] == 2499
    assert order["currency"] == "USD"
    assert order["callback_url"].endswith(f"/booking/confirmation/{booking_id}")
    assert order["billing_address"]["first_name"] == "Jane"
    assert order["billing_address"]["last_name"] == "Wanjiru"
    assert order["billing_address"]["phone_number"] == "+254712345678"


def test_second_initiation_is_rejected_while_first_is_in_progress(client, db):
    user = make_user(db)
    booking_id = _book(client, db, user)
    body = {"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "+254712345678"}

    first = client.post("/api/payments/initiate", json=body, headers=auth_headers(user))
    second = client.post("/api/payments/initiate", json=body, headers=auth_headers(user))
    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["detail"] == "A payment is already in progress for this booking"
    assert second.json()["existingPayment"]["id"] == first.json()["paymentId"]


def test_stale_in_progress_payment_may_be_retried(client, db):
    user = make_user(db)
    booking_id = _book(client, db, user)
    body = {"bookingId": booking_id, "paymentMethod": "CARD", "gateway": "pesapal"}
    first = client.post("/api/payments/initiate", json=body, headers=auth_headers(user))

    payment = db.get(Payment, first.json()["paymentId"])
    payment.created_at = datetime.now(timezone.utc) - timedelta(minutes=31)
    db.commit()

    second = client.post("/api/payments/initiate", json=body, headers=auth_headers(user))
    assert second.status_code == 200, second.text
    assert second.json()["paymentId"] != first.json()["paymentId"]


def test_completed_payment_blocks_every_gateway(client, db):
    user = make_user(db)
    booking_id = _book(client, db, user)
    db.add(Payment(
        id="paid-1", booking_id=booking_id, gateway="FLUTTERWAVE", method="CARD", amount=Decimal("2499"),
        currency="USD", status="COMPLETED", idempotency_key="FLW-x",
    ))
    db.commit()

    for body in (
        {"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "0712345678"},
        {"bookingId": booking_id, "paymentMethod": "CARD"},
        {"bookingId": booking_id, "paymentMethod": "CARD", "gateway": "pesapal"},
    ):
        payment_limiter.reset()
        r = client.post("/api/payments/initiate", json=body, headers=auth_headers(user))
        assert r.status_code == 400
        assert r.json()["detail"] == "Payment already completed for this booking"


def test_card_in_usd_routes_to_flutterwave(client, db, flutterwave):
    user = make_user(db)
    booking_id = _book(client, db, user)
    r = client.post("/api/payments/initiate", json={"bookingId": booking_id, "paymentMethod": "CARD"}, headers=auth_headers(user))
    assert r.status_code == 200, r.text
    assert r.json()["gateway"] == "flutterwave"
    assert r.json()["redirectUrl"].startswith("https://checkout.flutterwave.test/")

    payment = db.get(Payment, r.json()["paymentId"])
    assert payment.gateway == "FLUTTERWAVE"
    assert payment.flutterwave_ref == r.json()["merchantReference"]
    assert flutterwave.payments[0]["customer"]["email"] == "jane@example.com"
    assert flutterwave.payments[0]["customizations"]["title"] == "SafariPlus"


def test_deposit_plan_charges_the_deposit(client, db, pesapal):
    user = make_user(db)
    booking_id = _book(client, db, user, paymentType="DEPOSIT")
    r = client.post(
        "/api/payments/initiate",
        json={"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "0712345678"},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    assert db.get(Payment, r.json()["paymentId"]).amount == Decimal("750")
    assert pesapal.orders[0]["amount"] == 750


def test_gateway_failure_marks_payment_failed(client, db, pesapal):
    user = make_user(db)
    booking_id = _book(client, db, user)
    pesapal.fail_with = "Pesapal 500: upstream unavailable"

    r = client.post(
        "/api/payments/initiate",
        json={"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "0712345678"},
        headers=auth_headers(user),
    )
    assert r.status_code == 500
    payment = db.get(Payment, r.json()["paymentId"])
    assert payment.status == "FAILED"
    assert payment.status_message == "Pesapal 500: upstream unavailable"
    assert payment.failed_at is not None
    assert db.get(Booking, booking_id).payment_status == "PENDING"


def test_failed_attempt_does_not_block_retry(client, db, pesapal):
    user = make_user(db)
    booking_id = _book(client, db, user)
    body = {"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "0712345678"}
    pesapal.fail_with = "timeout"
    assert client.post("/api/payments/initiate", json=body, headers=auth_headers(user)).status_code == 500
    pesapal.fail_with = None
    assert client.post("/api/payments/initiate", json=body, headers=auth_headers(user)).status_code == 200


def test_mpesa_requires_phone_number(client, db):
    user = make_user(db)
    booking_id = _book(client, db, user)
    r = client.post("/api/payments/initiate", json={"bookingId": booking_id, "paymentMethod": "MPESA"}, headers=auth_headers(user))
    assert r.status_code == 400
    assert db.query(Payment).count() == 0


def test_cancelled_booking_cannot_be_paid(client, db):
    user = make_user(db)
    booking_id = _book(client, db, user)
    db.get(Booking, booking_id).status = "CANCELLED"
    db.commit()
    r = client.post("/api/payments/initiate", json={"bookingId": booking_id, "paymentMethod": "CARD"}, headers=auth_headers(user))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot process payment for cancelled booking"


def test_explicit_gateway_must_support_currency(client, db):
    user = make_user(db)
    booking_id = _book(client, db, user, currency="NGN")
    r = client.post(
        "/api/payments/initiate",
        json={"bookingId": booking_id, "paymentMethod": "CARD", "gateway": "pesapal"},
        headers=auth_headers(user),
    )
    assert r.status_code == 400
    assert "does not support NGN" in r.json()["detail"]


def test_initiate_requires_auth_and_ownership(client, db):
    owner, stranger = make_user(db), make_user(db)
    booking_id = _book(client, db, owner)
    body = {"bookingId": booking_id, "paymentMethod": "CARD"}

    assert client.post("/api/payments/initiate", json=body).status_code == 401
    assert client.post("/api/payments/initiate", json=body, headers=auth_headers(stranger)).status_code == 403
    missing = {"bookingId": "nope", "paymentMethod": "CARD"}
    assert client.post("/api/payments/initiate", json=missing, headers=auth_headers(owner)).status_code == 404


def test_status_refresh_confirms_booking(client, db, pesapal):
    user = make_user(db)
    booking_id = _book(client, db, user)
    client.post(
        "/api/payments/initiate",
        json={"bookingId": booking_id, "paymentMethod": "MPESA", "phoneNumber": "0712345678"},
        headers=auth_headers(user),
    )

    plain = client.get(f"/api/payments/status?bookingId={booking_id}", headers=auth_headers(user)).json()
    assert plain["refreshed"] is False
    assert plain["payment"]["status"] == "PROCESSING"

    r = client.get(f"/api/payments/status?bookingId={booking_id}&refresh=true", headers=auth_headers(user))
    assert r.status_code == 200
    data = r.json()
    assert data["refreshed"] is True
    assert data["payment"]["status"] == "COMPLETED"
    assert data["bookingStatus"] == "CONFIRMED"
    assert data["paymentStatus"] == "COMPLETED"


def test_payment_methods_by_currency(client):
    kes = client.get("/api/payments/methods?currency=kes").json()
    assert [m["method"] for m in kes["methods"]] == ["MPESA", "CARD", "BANK_TRANSFER"]
    assert all(m["gateway"] == "pesapal" for m in kes["methods"])

    usd = client.get("/api/payments/methods?currency=USD").json()
    assert usd["methods"] == [{
        "method": "CARD",
        "gateway": "flutterwave",
        "label": "Credit/Debit Card",
        "description": "Pay with Visa, Mastercard, or American Express",
        "gatewayName": "Flutterwave",
    }]
