from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    gateway: Mapped[str] = mapped_column(String(20))  # PESAPAL, FLUTTERWAVE
    method: Mapped[str] = mapped_column(String(20), default="CARD")  # MPESA, CARD, BANK_TRANSFER, PAYPAL
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)  # PENDING, PROCESSING, COMPLETED, FAILED, REFUNDED
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # merchant reference / tx_ref sent to the gateway; the gateway dedupes on it
    idempotency_key: Mapped[str] = mapped_column(String(80), unique=True, index=True)

    pesapal_merchant_ref: Mapped[str | None] = mapped_column(String(80), nullable=True, index=True)
    pesapal_order_id: Mapped[str | None] = mapped_column(String(80), nullable=True, index=True)
    pesapal_tracking_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    flutterwave_ref: Mapped[str | None] = mapped_column(String(80), nullable=True, index=True)
    flutterwave_tx_id: Mapped[str | None] = mapped_column(String(40), nullable=True)

    card_last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    card_type: Mapped[str | None] = mapped_column(String(30), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
