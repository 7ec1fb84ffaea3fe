from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Agent(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    business_name: Mapped[str] = mapped_column(String(200))
    business_email: Mapped[str] = mapped_column(String(320), default="")
    business_phone: Mapped[str] = mapped_column(String(40), default="")
    # percentage of each booking total retained by the platform
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("15"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
