import datetime as dt
from sqlalchemy import String, Integer, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base

class TourAvailability(Base):
    __tablename__ = "tour_availability"
    __table_args__ = (
        UniqueConstraint("tour_id", "date", name="uq_tour_availability_tour_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tour_id: Mapped[str] = mapped_column(String(36), index=True)
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    type: Mapped[str] = mapped_column(String(12), default="AVAILABLE")  # AVAILABLE, BLOCKED, LIMITED
    spots_available: Mapped[int | None] = mapped_column(Integer, nullable=True)  # LIMITED only
    notes: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=lambda: dt.datetime.now(dt.timezone.utc))
