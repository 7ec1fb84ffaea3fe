from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Boolean, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Tour(Base):
    __tablename__ = "tours"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(36), index=True)
    title: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(220), unique=True, index=True)
    destination: Mapped[str] = mapped_column(String(120), default="")
    country: Mapped[str] = mapped_column(String(80), default="Kenya")
    status: Mapped[str] = mapped_column(String(20), default="DRAFT")  # DRAFT, ACTIVE, PAUSED, ARCHIVED

    duration_days: Mapped[int] = mapped_column(Integer, default=1)
    duration_nights: Mapped[int] = mapped_column(Integer, default=0)
    max_group_size: Mapped[int] = mapped_column(Integer, default=12)

    currency: Mapped[str] = mapped_column(String(3), default="USD")
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))  # per adult
    child_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    free_cancellation_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deposit_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    deposit_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    group_discount_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    group_discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
