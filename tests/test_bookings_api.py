from datetime import date
from decimal import Decimal

from app.models.audit_log import AuditLog
from app.models.booking import Booking
from app.models.booking_activity import BookingActivity
from app.models.activity_addon import ActivityAddon
from app.models.tour_availability import TourAvailability
from app.models.user import User

from conftest import TODAY, auth_headers, booking_body, make_agent, make_tour, make_user


def test_full_payment_booking_for_signed_in_client(client, db):
    tour = make_tour(db, make_agent(db))
    user = make_user(db)

    r = client.post("/api/bookings", json=booking_body(tour), headers=auth_headers(user))
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["bookingReference"].startswith("SF")
    assert data["tourTitle"] == "7-Day Masai Mara Migration Safari"
    assert data["agentName"] == "Mara Trails Safaris"
    assert data["totalAmount"] == 2499
    assert data["status"] == "PENDING"
    assert data["paymentStatus"] == "PENDING"
    assert data["paymentType"] == "FULL"
    assert data["depositAmount"] is None
    assert data["balanceAmount"] is None
    assert data["balanceDueDate"] is None

    b = db.get(Booking, data["id"])
    assert b.user_id == user.id
    assert b.total_amount == b.platform_commission + b.agent_earnings
    assert b.platform_commission == Decimal("375")
    assert db.query(AuditLog).filter(AuditLog.entity_id == b.id, AuditLog.action == "BOOKING_CREATED").count() == 1


def test_deposit_booking_derives_balance_due_date(client, db):
    tour = make_tour(db, make_agent(db))
    body = booking_body(tour, paymentType="DEPOSIT", depositAmount=750, balanceAmount=1749)

    r = client.post("/api/bookings", json=body)
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["depositAmount"] == 750
    assert data["balanceAmount"] == 1749
    assert data["balanceDueDate"] == "2025-07-18"


def test_deposit_without_cancellation_window_has_no_due_date(client, db):
    tour = make_tour(db, make_agent(db), free_cancellation_days=None)
    r = client.post("/api/bookings", json=booking_body(tour, paymentType="DEPOSIT"))
    assert r.status_code == 201, r.text
    assert r.json()["balanceDueDate"] is None
    assert r.json()["depositAmount"] == 750


def test_deposit_rejected_when_tour_does_not_offer_it(client, db):
    tour = make_tour(db, make_agent(db), deposit_enabled=False)
    r = client.post("/api/bookings", json=booking_body(tour, paymentType="DEPOSIT"))
    assert r.status_code == 400
    assert "deposit" in r.json()["detail"]


def test_guest_booking_creates_and_reuses_user(client, db):
    tour = make_tour(db, make_agent(db))
    body = booking_body(tour)
    body["contact"]["email"] = "Guest@Example.com"

    first = client.post("/api/bookings", json=body)
    second = client.post("/api/bookings", json=body)
    assert first.status_code == 201 and second.status_code == 201

    guests = db.query(User).filter(User.email == "guest@example.com").all()
    assert len(guests) == 1
    assert guests[0].is_guest
    ids = {db.get(Booking, r.json()["id"]).user_id for r in (first, second)}
    assert ids == {guests[0].id}


def test_start_date_in_the_past_is_rejected(client, db):
    tour = make_tour(db, make_agent(db))
    r = client.post("/api/bookings", json=booking_body(tour, startDate="2025-05-31", endDate="2025-06-06"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Start date cannot be in the past"


def test_start_date_today_is_accepted(client, db):
    tour = make_tour(db, make_agent(db))
    r = client.post("/api/bookings", json=booking_body(tour, startDate=TODAY.isoformat(), endDate="2025-06-07"))
    assert r.status_code == 201, r.text


def test_iso_timestamps_are_truncated_to_dates(client, db):
    tour = make_tour(db, make_agent(db))
    r = client.post(
        "/api/bookings",
        json=booking_body(tour, startDate="2025-08-01T00:00:00.000Z", endDate="2025-08-07T00:00:00.000Z"),
    )
    assert r.status_code == 201, r.text
    assert r.json()["startDate"] == "2025-08-01"


def test_end_date_must_follow_start_date(client, db):
    tour = make_tour(db, make_agent(db))
    for end in ("2025-08-01", "2025-07-30"):
        r = client.post("/api/bookings", json=booking_body(tour, endDate=end))
        assert r.status_code == 400
        assert r.json()["detail"] == "End date must be after start date"


def test_unknown_tour_is_404(client, db):
    tour = make_tour(db, make_agent(db))
    body = booking_body(tour, tourId="does-not-exist")
    assert client.post("/api/bookings", json=body).status_code == 404


def test_inactive_tour_is_rejected(client, db):
    tour = make_tour(db, make_agent(db), status="DRAFT")
    r = client.post("/api/bookings", json=booking_body(tour))
    assert r.status_code == 400
    assert r.json()["detail"] == "Tour is not available for booking"


def test_blocked_day_inside_range_is_rejected(client, db):
    tour = make_tour(db, make_agent(db))
    db.add(TourAvailability(id="blk-1", tour_id=tour.id, date=date(2025, 8, 4), type="BLOCKED", notes="Park closed"))
    db.commit()

    r = client.post("/api/bookings", json=booking_body(tour))
    assert r.status_code == 400
    assert "2025-08-04" in r.json()["detail"]


def test_overlapping_bookings_cannot_exceed_group_size(client, db):
    tour = make_tour(db, make_agent(db), max_group_size=12)
    assert client.post("/api/bookings", json=booking_body(tour, adults=6)).status_code == 201
    assert client.post("/api/bookings", json=booking_body(tour, adults=4, startDate="2025-08-05", endDate="2025-08-10")).status_code == 201

    r = client.post("/api/bookings", json=booking_body(tour, adults=3))
    assert r.status_code == 400
    assert "Only 2 spot(s) remaining" in r.json()["detail"]

    assert client.post("/api/bookings", json=booking_body(tour, adults=2)).status_code == 201
    assert db.query(Booking).filter(Booking.tour_id == tour.id).count() == 3


def test_cancelled_bookings_free_their_capacity(client, db):
    tour = make_tour(db, make_agent(db), max_group_size=4)
    r = client.post("/api/bookings", json=booking_body(tour, adults=4))
    db.get(Booking, r.json()["id"]).status = "CANCELLED"
    db.commit()

    assert client.post("/api/bookings", json=booking_body(tour, adults=4)).status_code == 201


def test_non_overlapping_dates_do_not_share_capacity(client, db):
    tour = make_tour(db, make_agent(db), max_group_size=4)
    assert client.post("/api/bookings", json=booking_body(tour, adults=4)).status_code == 201
    r = client.post("/api/bookings", json=booking_body(tour, adults=4, startDate="2025-08-08", endDate="2025-08-14"))
    assert r.status_code == 201


def test_addon_quantity_is_clamped_to_capacity(client, db):
    tour = make_tour(db, make_agent(db))
    addon = ActivityAddon(id="balloon", tour_id=tour.id, name="Balloon", price=Decimal("450"), price_type="PER_PERSON", max_capacity=2)
    db.add(addon)
    db.commit()

    body = booking_body(tour, adults=4, addons=[{"id": "balloon", "quantity": 5}], pricing=None)
    r = client.post("/api/bookings", json=body)
    assert r.status_code == 201, r.text
    line = db.query(BookingActivity).filter(BookingActivity.booking_id == r.json()["id"]).one()
    assert line.quantity == 2
    assert line.price == Decimal("900")
    assert r.json()["activitiesAmount"] == 900


def test_client_total_is_not_trusted(client, db):
    tour = make_tour(db, make_agent(db))
    body = booking_body(tour)
    body["pricing"]["total"] = 1
    r = client.post("/api/bookings", json=body)
    assert r.status_code == 201
    assert r.json()["totalAmount"] == 2499


def test_validation_errors_are_400(client, db):
    tour = make_tour(db, make_agent(db))
    r = client.post("/api/bookings", json=booking_body(tour, adults=0))
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid request data"


def test_booking_creation_is_rate_limited(client, db):
    tour = make_tour(db, make_agent(db), max_group_size=100)
    user = make_user(db)
    codes = [client.post("/api/bookings", json=booking_body(tour, adults=1), headers=auth_headers(user)).status_code for _ in range(11)]
    assert codes[:10] == [201] * 10
    assert codes[10] == 429

    r = client.post("/api/bookings", json=booking_body(tour, adults=1), headers=auth_headers(user))
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1


def test_list_bookings_returns_only_callers_bookings(client, db):
    tour = make_tour(db, make_agent(db))
    me, other = make_user(db), make_user(db)
    client.post("/api/bookings", json=booking_body(tour), headers=auth_headers(me))
    client.post("/api/bookings", json=booking_body(tour), headers=auth_headers(other))

    r = client.get("/api/bookings", headers=auth_headers(me))
    assert r.status_code == 200
    rows = r.json()["bookings"]
    assert len(rows) == 1
    assert rows[0]["tour"]["title"] == tour.title

    assert client.get("/api/bookings?status=CONFIRMED", headers=auth_headers(me)).json()["bookings"] == []
    assert client.get("/api/bookings").status_code == 401


def test_booking_detail_is_limited_to_owner_agent_and_admin(client, db):
    agent = make_agent(db)
    tour = make_tour(db, agent)
    owner, stranger, admin = make_user(db), make_user(db), make_user(db, role="admin")
    booking_id = client.post("/api/bookings", json=booking_body(tour), headers=auth_headers(owner)).json()["id"]
    agent_user = db.get(User, agent.user_id)

    assert client.get(f"/api/bookings/{booking_id}", headers=auth_headers(owner)).status_code == 200
    assert client.get(f"/api/bookings/{booking_id}", headers=auth_headers(agent_user)).status_code == 200
    assert client.get(f"/api/bookings/{booking_id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/api/bookings/{booking_id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get("/api/bookings/missing", headers=auth_headers(owner)).status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
