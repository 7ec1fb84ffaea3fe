import os
import uuid
from datetime import date
from decimal import Decimal

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["FLUTTERWAVE_WEBHOOK_SECRET"] = "whsec-test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api.deps import booking_limiter, payment_limiter
from app.api.routes.bookings import today_provider
from app.core.security import create_access_token, hash_password
from app.db.session import Base, get_db
from app.models.agent import Agent
from app.models.tour import Tour
from app.models.user import User
from app.services.flutterwave_client import FlutterwaveError
from app.services.gateway_adapters import FlutterwaveAdapter, PesapalAdapter, get_gateway_adapters
from app.services.pesapal_client import PesapalError

# Bookings in tests are made against this calendar day
TODAY = date(2025, 6, 1)

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePesapalClient:
    def __init__(self):
        self.orders = []
        self.fail_with = None
        self.status = {"status_code": 1, "payment_status_description": "Completed", "payment_method": "MpesaKE", "confirmation_code": "CONF-1"}
        self._n = 0

    def submit_order(self, order):
        if self.fail_with:
            raise PesapalError(self.fail_with)
        self.orders.append(order)
        self._n += 1
        return {
            "order_tracking_id": f"TRK-{self._n}",
            "merchant_reference": order["id"],
            "redirect_url": f"https://pay.pesapal.test/iframe?OrderTrackingId=TRK-{self._n}",
            "status": "200",
        }

    def get_transaction_status(self, order_tracking_id):
        if self.fail_with:
            raise PesapalError(self.fail_with)
        return dict(self.status)


class FakeFlutterwaveClient:
    def __init__(self):
        self.payments = []
        self.fail_with = None
        self.transaction = {"id": 987654, "status": "successful", "payment_type": "card", "processor_response": "Approved"}

    def initiate_payment(self, payment):
        if self.fail_with:
            raise FlutterwaveError(self.fail_with)
        self.payments.append(payment)
        return {"status": "success", "data": {"link": f"https://checkout.flutterwave.test/pay/{payment['tx_ref']}"}}

    def verify_transaction(self, transaction_id):
        if self.fail_with:
            raise FlutterwaveError(self.fail_with)
        return {"status": "success", "data": dict(self.transaction)}

    def verify_transaction_by_ref(self, tx_ref):
        return self.verify_transaction(None)

    def verify_webhook_signature(self, signature):
        return signature == "whsec-test"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def pesapal():
    return FakePesapalClient()


@pytest.fixture
def flutterwave():
    return FakeFlutterwaveClient()


@pytest.fixture
def adapters(pesapal, flutterwave):
    return {"pesapal": PesapalAdapter(pesapal), "flutterwave": FlutterwaveAdapter(flutterwave)}


@pytest.fixture
def client(db, adapters):
    def _get_db():
        s = TestingSessionLocal()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway_adapters] = lambda: adapters
    app.dependency_overrides[today_provider] = lambda: TODAY
    booking_limiter.reset()
    payment_limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, role="client", email=None, name="Test User") -> User:
    u = User(
        id=str(uuid.uuid4()),
        email=email or f"{uuid.uuid4().hex[:8]}@example.com",
        full_name=name,
        role=role,
        password_hash=hash_password("secret123"),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def make_agent(db, commission_rate="15") -> Agent:
    u = make_user(db, role="agent", name="Mara Trails")
    a = Agent(id=str(uuid.uuid4()), user_id=u.id, business_name="Mara Trails Safaris", commission_rate=Decimal(commission_rate))
    db.add(a)
    db.commit()
    return a


def make_tour(db, agent: Agent, **overrides) -> Tour:
    fields = dict(
        id=str(uuid.uuid4()),
        agent_id=agent.id,
        title="7-Day Masai Mara Migration Safari",
        slug=f"masai-mara-{uuid.uuid4().hex[:6]}",
        destination="Masai Mara",
        status="ACTIVE",
        duration_days=7,
        duration_nights=6,
        max_group_size=12,
        currency="USD",
        base_price=Decimal("1190"),
        free_cancellation_days=14,
        deposit_enabled=True,
        deposit_percentage=Decimal("30"),
    )
    fields.update(overrides)
    t = Tour(**fields)
    db.add(t)
    db.commit()
    return t


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def booking_body(tour: Tour, **overrides) -> dict:
    body = {
        "tourId": tour.id,
        "startDate": "2025-08-01",
        "endDate": "2025-08-07",
        "adults": 2,
        "children": 0,
        "infants": 0,
        "accommodations": {},
        "addons": [],
        "contact": {"name": "Jane Wanjiru", "email": "jane@example.com", "phone": "+254712345678"},
        "pricing": {"baseTotal": 2380, "childTotal": 0, "accommodationTotal": 0, "addonsTotal": 0, "serviceFee": 119, "total": 2499},
        "paymentType": "FULL",
    }
    body.update(overrides)
    return body
