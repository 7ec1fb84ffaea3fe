from decimal import Decimal
from sqlalchemy import String, Integer, Date, DateTime, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from app.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_reference: Mapped[str] = mapped_column(String(24), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), index=True)  # booker
    tour_id: Mapped[str] = mapped_column(String(36), index=True)
    agent_id: Mapped[str] = mapped_column(String(36), index=True)

    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date, index=True)
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    infants: Mapped[int] = mapped_column(Integer, default=0)

    currency: Mapped[str] = mapped_column(String(3), default="USD")
    base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    accommodation_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    activities_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))  # service fee
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    platform_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    agent_earnings: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)  # PENDING, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED, REFUNDED
    payment_status: Mapped[str] = mapped_column(String(20), default="PENDING")  # PENDING, PROCESSING, COMPLETED, FAILED, REFUNDED, PARTIALLY_REFUNDED

    payment_type: Mapped[str] = mapped_column(String(10), default="FULL")  # FULL, DEPOSIT
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    balance_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    balance_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    contact_name: Mapped[str] = mapped_column(String(200))
    contact_email: Mapped[str] = mapped_column(String(320))
    contact_phone: Mapped[str] = mapped_column(String(40))
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
