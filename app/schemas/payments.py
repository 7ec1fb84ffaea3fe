from typing import Literal, Optional

from pydantic import BaseModel, field_validator


class PaymentInitiateRequest(BaseModel):
    bookingId: str
    paymentMethod: Optional[Literal["MPESA", "CARD", "BANK_TRANSFER", "PAYPAL"]] = None
    phoneNumber: Optional[str] = None  # required for M-Pesa
    gateway: Optional[Literal["pesapal", "flutterwave"]] = None  # explicit override of the router

    @field_validator("paymentMethod", mode="before")
    @classmethod
    def upper_method(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("gateway", mode="before")
    @classmethod
    def lower_gateway(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class PesapalIPN(BaseModel):
    OrderTrackingId: Optional[str] = None
    OrderMerchantReference: Optional[str] = None
    OrderNotificationType: Optional[str] = None
