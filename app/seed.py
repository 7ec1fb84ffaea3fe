import logging
import uuid
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from app.db.session import SessionLocal
from app.core.security import hash_password
from app.models.user import User
from app.models.agent import Agent
from app.models.tour import Tour
from app.models.accommodation_option import AccommodationOption
from app.models.activity_addon import ActivityAddon

log = logging.getLogger(__name__)


def ensure_user(db: Session, email: str, password: str, role: str, name: str) -> User:
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def ensure_agent(db: Session, user: User, business_name: str, commission_rate: Decimal) -> Agent:
    a = db.query(Agent).filter(Agent.user_id == user.id).first()
    if a:
        return a
    a = Agent(
        id=str(uuid.uuid4()),
        user_id=user.id,
        business_name=business_name,
        business_email=user.email,
        commission_rate=commission_rate,
    )
    db.add(a)
    db.commit()
    return a


def ensure_demo_tour(db: Session, agent: Agent) -> Tour:
    slug = "7-day-masai-mara-migration-safari"
    t = db.query(Tour).filter(Tour.slug == slug).first()
    if t:
        return t
    t = Tour(
        id=str(uuid.uuid4()),
        agent_id=agent.id,
        title="7-Day Masai Mara Migration Safari",
        slug=slug,
        destination="Masai Mara",
        country="Kenya",
        status="ACTIVE",
        duration_days=7,
        duration_nights=6,
        max_group_size=12,
        currency="USD",
        base_price=Decimal("1190"),
        free_cancellation_days=14,
        deposit_enabled=True,
        deposit_percentage=Decimal("30"),
        group_discount_threshold=6,
        group_discount_percent=Decimal("5"),
    )
    db.add(t)
    for name, tier, price in (
        ("Mara Budget Camp", "BUDGET", "60"),
        ("Mara Serena Lodge", "MID_RANGE", "180"),
        ("Angama Mara", "LUXURY", "950"),
    ):
        db.add(AccommodationOption(id=str(uuid.uuid4()), tour_id=t.id, name=name, tier=tier, price_per_night=Decimal(price)))
    db.add(ActivityAddon(id=str(uuid.uuid4()), tour_id=t.id, name="Hot Air Balloon Safari", price=Decimal("450"), price_type="PER_PERSON", max_capacity=8))
    db.add(ActivityAddon(id=str(uuid.uuid4()), tour_id=t.id, name="Maasai Village Visit", price=Decimal("120"), price_type="PER_GROUP"))
    db.commit()
    return t


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            log.warning("users table not found yet; skipping seed (run alembic upgrade head)")
            return

        ensure_user(db, "admin@safariplus.local", "admin12345", "admin", "Admin")
        agent_user = ensure_user(db, "agent@safariplus.local", "agent12345", "agent", "Mara Trails")
        agent = ensure_agent(db, agent_user, "Mara Trails Safaris", Decimal("15"))
        ensure_user(db, "client@safariplus.local", "client12345", "client", "Demo Client")
        tour = ensure_demo_tour(db, agent)
        log.info("seed complete (demo tour %s)", tour.slug)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
