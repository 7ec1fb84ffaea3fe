from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ContactIn(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)  # plain str to allow .local and other dev domains
    phone: str = Field(min_length=3)
    specialRequests: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("invalid email address")
        return v


class AddonIn(BaseModel):
    id: str
    quantity: Optional[int] = Field(default=None, ge=0)


class PricingIn(BaseModel):
    # What the checkout page displayed; compared against the server quote, never charged.
    baseTotal: Decimal = Decimal("0")
    childTotal: Decimal = Decimal("0")
    accommodationTotal: Decimal = Decimal("0")
    addonsTotal: Decimal = Decimal("0")
    serviceFee: Decimal = Decimal("0")
    discount: Optional[Decimal] = None
    total: Decimal


class BookingCreate(BaseModel):
    tourId: str
    startDate: date
    endDate: date
    adults: int = Field(ge=1)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)
    accommodations: Dict[int, str] = Field(default_factory=dict)  # dayNumber -> accommodationOptionId
    addons: List[AddonIn] = Field(default_factory=list)
    contact: ContactIn
    pricing: Optional[PricingIn] = None
    paymentType: Literal["FULL", "DEPOSIT"] = "FULL"
    depositAmount: Optional[Decimal] = None
    balanceAmount: Optional[Decimal] = None

    @field_validator("startDate", "endDate", mode="before")
    @classmethod
    def date_part_of_timestamp(cls, v):
        # clients send full ISO-8601 timestamps; bookings are day-granular
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @field_validator("addons", mode="before")
    @classmethod
    def addon_ids_as_objects(cls, v):
        if isinstance(v, list):
            return [{"id": a} if isinstance(a, str) else a for a in v]
        return v


class BookingOut(BaseModel):
    id: str
    bookingReference: str
    tourTitle: str
    agentName: str
    startDate: date
    endDate: date
    adults: int
    children: int
    infants: int
    currency: str
    baseAmount: float
    accommodationAmount: float
    activitiesAmount: float
    taxAmount: float
    discountAmount: float
    totalAmount: float
    status: str
    paymentStatus: str
    paymentType: str
    depositAmount: Optional[float] = None
    balanceAmount: Optional[float] = None
    balanceDueDate: Optional[date] = None


class BookingStatusUpdate(BaseModel):
    status: Literal["CONFIRMED", "IN_PROGRESS", "COMPLETED", "CANCELLED", "REFUNDED"]
    reason: str = ""
